"""
Utilidades de logging del motor de análisis.
Incluye el decorador de performance y el logger estructurado que usan el
ensamblador de reportes, los renderers y el geocodificador.
"""
import asyncio
import functools
import logging
import time
from typing import Any, Callable

from django.conf import settings

# Logger especializado
performance_logger = logging.getLogger('core.performance')


def _report_elapsed(func: Callable, elapsed_ms: float, threshold_ms: float):
    name = f"{func.__module__}.{func.__name__}"
    if elapsed_ms > threshold_ms:
        performance_logger.warning(
            f"Slow operation: {name} took {elapsed_ms:.2f}ms (threshold: {threshold_ms}ms)"
        )
    elif settings.DEBUG:
        performance_logger.debug(f"{name} took {elapsed_ms:.2f}ms")


def log_performance(threshold_ms: float = 1000.0):
    """
    Decorador para loggear el tiempo de ejecución de funciones.
    Funciona igual sobre funciones normales y corutinas.
    """
    def decorator(func: Callable) -> Callable:
        if asyncio.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs) -> Any:
                start_time = time.perf_counter()
                try:
                    return await func(*args, **kwargs)
                finally:
                    _report_elapsed(func, (time.perf_counter() - start_time) * 1000, threshold_ms)
            return async_wrapper

        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            start_time = time.perf_counter()
            try:
                return func(*args, **kwargs)
            finally:
                _report_elapsed(func, (time.perf_counter() - start_time) * 1000, threshold_ms)
        return wrapper
    return decorator


def log_report_built(report, logger_name: str = 'core'):
    """Una línea de resumen por reporte construido."""
    logger = logging.getLogger(logger_name)
    logger.info(
        f"Report built: survey={report.survey_id} | responses={report.kpis.total_responses} "
        f"| fields={len(report.field_analyses)} | zones={len(report.geo_zones)}"
    )


class StructuredLogger:
    """
    Helper class para logging estructurado con contexto.
    Soporta *args y kwargs estándar de logging (exc_info, extra, stack_info).

    >>> log = StructuredLogger('core.services.geocoding')
    >>> log.warning("Geocoding failed", point='p2', key='6.1300,1.2200')
    # -> "Geocoding failed | point=p2 | key=6.1300,1.2200"
    """

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)

    def _format_message(self, message: str, **context) -> str:
        if context:
            context_str = ' | '.join(f"{k}={v}" for k, v in context.items())
            return f"{message} | {context_str}"
        return message

    def _log(self, level_func, message, args, kwargs):
        # Extraer argumentos reservados de logging estándar; solo se reenvían
        # si el llamador los pasó, para no pisar los defaults de exception()
        reserved = {k: kwargs.pop(k) for k in ('exc_info', 'stack_info', 'extra') if k in kwargs}

        formatted_msg = self._format_message(str(message), **kwargs)
        level_func(formatted_msg, *args, **reserved)

    def debug(self, message: str, *args, **context):
        self._log(self.logger.debug, message, args, context)

    def info(self, message: str, *args, **context):
        self._log(self.logger.info, message, args, context)

    def warning(self, message: str, *args, **context):
        self._log(self.logger.warning, message, args, context)

    def error(self, message: str, *args, **context):
        self._log(self.logger.error, message, args, context)

    def exception(self, message: str, *args, **context):
        # exception() añade exc_info=True automáticamente en el logger nativo
        self._log(self.logger.exception, message, args, context)
