"""core/reports/pdf_generator.py"""
import logging

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.template.loader import render_to_string

from core.reports.document_model import ReportDocument
from core.utils.logging_utils import log_performance

# Intentamos importar weasyprint de forma segura
try:
    from weasyprint import HTML
except ImportError:
    HTML = None

logger = logging.getLogger(__name__)


class PDFReportGenerator:
    """
    Generador de reportes PDF basado en plantillas HTML.
    Utiliza WeasyPrint para la conversión; la paginación la resuelve el CSS
    de medios paginados de la plantilla (``@page``, cabeceras de tabla
    repetidas, filas que no se parten).
    """

    TEMPLATE_NAME = 'core/reports/report_pdf_template.html'

    @classmethod
    def render_html(cls, document: ReportDocument) -> str:
        context = {
            'document': document,
            'sections': document.printable_sections,
            'generated_at': document.generated_at,
            'generated_label': document.generated_label,
            'company_name': getattr(settings, 'COMPANY_NAME', 'FieldPulse'),
        }
        return render_to_string(cls.TEMPLATE_NAME, context)

    @classmethod
    @log_performance(threshold_ms=3000)
    def render(cls, document: ReportDocument) -> bytes:
        if HTML is None:
            raise ImproperlyConfigured("WeasyPrint no está instalado. No se puede generar PDF.")

        html_string = cls.render_html(document)
        # base_url: recursos relativos (logo, fuentes) del proyecto
        pdf_file = HTML(string=html_string, base_url=str(settings.BASE_DIR)).write_pdf()
        logger.debug(f"PDF rendered for '{document.title}' ({len(pdf_file)} bytes)")
        return pdf_file
