"""
Validadores del contrato de entrada del motor de análisis.

Solo se valida la *estructura* (listas, tipos de elementos, parámetros).
La calidad de los datos (valores vacíos, no numéricos, coordenadas fuera de
rango) nunca es un error: los servicios la filtran en silencio.
"""
from django.core.exceptions import ValidationError

from core.models_analytics import FieldDefinition, ResponseRecord


class ReportInputValidator:
    """Valida y normaliza la entrada de un análisis."""

    @staticmethod
    def validate_fields(fields):
        """Returns a tuple of FieldDefinition; dicts are converted."""
        if not isinstance(fields, (list, tuple)):
            raise ValidationError(
                f"La lista de campos debe ser una lista, no '{type(fields).__name__}'"
            )
        normalized = []
        for index, item in enumerate(fields):
            if isinstance(item, FieldDefinition):
                normalized.append(item)
            elif isinstance(item, dict):
                try:
                    normalized.append(FieldDefinition.from_dict(item))
                except (KeyError, TypeError, ValueError) as exc:
                    raise ValidationError(f"Campo #{index} inválido: {exc}")
            else:
                raise ValidationError(
                    f"Campo #{index} inválido: se esperaba FieldDefinition o dict, "
                    f"no '{type(item).__name__}'"
                )
        return tuple(normalized)

    @staticmethod
    def validate_responses(responses):
        """Returns a tuple of ResponseRecord; dicts are converted."""
        if not isinstance(responses, (list, tuple)):
            raise ValidationError(
                f"La lista de respuestas debe ser una lista, no '{type(responses).__name__}'"
            )
        normalized = []
        for index, item in enumerate(responses):
            if isinstance(item, ResponseRecord):
                normalized.append(item)
            elif isinstance(item, dict):
                try:
                    normalized.append(ResponseRecord.from_dict(item))
                except (KeyError, TypeError, ValueError) as exc:
                    raise ValidationError(f"Respuesta #{index} inválida: {exc}")
            else:
                raise ValidationError(
                    f"Respuesta #{index} inválida: se esperaba ResponseRecord o dict, "
                    f"no '{type(item).__name__}'"
                )
        return tuple(normalized)

    @staticmethod
    def validate_precision(precision_decimals):
        if isinstance(precision_decimals, bool) or not isinstance(precision_decimals, int):
            raise ValidationError(
                f"La precisión debe ser un entero, no '{precision_decimals}'"
            )
        if not 0 <= precision_decimals <= 8:
            raise ValidationError(
                f"La precisión debe estar entre 0 y 8 decimales (recibido {precision_decimals})"
            )
        return precision_decimals


class ExportValidator:
    """Validadores para exportación de reportes."""

    EXPORT_KINDS = {
        'xlsx': 'xlsx',
        'spreadsheet': 'xlsx',
        'csv': 'csv',
        'pdf': 'pdf',
        'docx': 'docx',
        'document': 'docx',
        'pptx': 'pptx',
        'presentation': 'pptx',
    }

    @staticmethod
    def validate_export_kind(kind):
        normalized = ExportValidator.EXPORT_KINDS.get(str(kind or '').strip().lower())
        if normalized is None:
            raise ValidationError(
                f"Formato de exportación inválido: '{kind}'. Use xlsx, csv, pdf, docx o pptx"
            )
        return normalized

    @staticmethod
    def validate_boolean_param(param_value, param_name):
        """Valida parámetros booleanos de tipo 'true'/'false'."""
        if param_value is None:
            return True  # Default

        if isinstance(param_value, bool):
            return param_value

        if isinstance(param_value, str):
            lower_val = param_value.lower()
            if lower_val in ('true', '1', 'yes', 'on'):
                return True
            if lower_val in ('false', '0', 'no', 'off'):
                return False

        raise ValidationError(
            f"Parámetro '{param_name}' inválido: '{param_value}'. Use 'true' o 'false'"
        )
