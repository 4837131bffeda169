"""core/reports/docx_generator.py"""
import io
import logging
from datetime import timezone as dt_timezone

from django.utils import timezone
from docx import Document
from docx.oxml import OxmlElement
from docx.oxml.ns import qn
from docx.shared import Inches, Pt, RGBColor

from core.reports.document_model import ReportDocument
from core.utils.logging_utils import log_performance

logger = logging.getLogger(__name__)


def set_cell_background(cell, fill_color):
    shading_elm = OxmlElement('w:shd')
    shading_elm.set(qn('w:fill'), fill_color)
    cell._tc.get_or_add_tcPr().append(shading_elm)


class DOCXReportRenderer:
    """Documento Word con las mismas secciones que el PDF."""

    HEADER_FILL = "D9D9D9"
    CHART_WIDTH = Inches(6)
    SENTIMENT_COLORS = {
        'positive': RGBColor(0x15, 0x80, 0x3D),
        'warning': RGBColor(0xB4, 0x53, 0x09),
        'neutral': RGBColor(0x37, 0x41, 0x51),
    }
    MUTED_COLOR = RGBColor(0x6B, 0x72, 0x80)

    @staticmethod
    def _naive(moment):
        if timezone.is_aware(moment):
            return timezone.make_naive(moment, dt_timezone.utc)
        return moment

    @classmethod
    def _add_paragraph(cls, doc, text, style='body'):
        p = doc.add_paragraph()
        run = p.add_run(text)
        if style == 'muted':
            run.italic = True
            run.font.size = Pt(9)
            run.font.color.rgb = cls.MUTED_COLOR
        elif style in cls.SENTIMENT_COLORS:
            run.font.color.rgb = cls.SENTIMENT_COLORS[style]
        return p

    @classmethod
    def _add_table(cls, doc, block):
        if block.title:
            doc.add_heading(block.title, level=3)
        table = doc.add_table(rows=1, cols=len(block.headers))
        table.style = 'Table Grid'
        hdr_cells = table.rows[0].cells
        for i, header in enumerate(block.headers):
            hdr_cells[i].text = str(header)
            for run in hdr_cells[i].paragraphs[0].runs:
                run.bold = True
            set_cell_background(hdr_cells[i], cls.HEADER_FILL)
        for row in block.rows:
            cells = table.add_row().cells
            for i, value in enumerate(row):
                cells[i].text = '' if value is None else str(value)
        return table

    @classmethod
    def _add_chart(cls, doc, block):
        try:
            doc.add_picture(io.BytesIO(block.image), width=cls.CHART_WIDTH)
        except Exception:
            logger.exception(f"Could not embed chart '{block.title}' in DOCX")

    @classmethod
    def _write_blocks(cls, doc, blocks):
        for block in blocks:
            kind = block.block_type
            if kind == 'heading':
                # nivel 1 es el título de sección
                doc.add_heading(block.text, level=block.level + 1)
            elif kind == 'paragraph':
                cls._add_paragraph(doc, block.text, block.style)
            elif kind == 'key_value':
                for key, value in block.pairs:
                    p = doc.add_paragraph()
                    p.add_run(f"{key}: ").bold = True
                    p.add_run(str(value))
            elif kind == 'table':
                cls._add_table(doc, block)
            elif kind == 'bullets':
                for text, style in block.entries:
                    p = doc.add_paragraph(style='List Bullet')
                    run = p.add_run(text)
                    if style in cls.SENTIMENT_COLORS:
                        run.font.color.rgb = cls.SENTIMENT_COLORS[style]
            elif kind == 'chart':
                cls._add_chart(doc, block)

    @classmethod
    @log_performance(threshold_ms=3000)
    def render(cls, document: ReportDocument) -> bytes:
        doc = Document()
        props = doc.core_properties
        props.title = document.title
        props.subject = document.subtitle
        props.author = 'FieldPulse'
        props.created = cls._naive(document.generated_at)
        props.modified = cls._naive(document.generated_at)
        props.revision = 1

        doc.add_heading(document.title, level=0)
        cls._add_paragraph(doc, f"{document.subtitle} · Generated {document.generated_label}", 'muted')

        for section in document.printable_sections:
            doc.add_heading(section.title, level=1)
            cls._write_blocks(doc, section.blocks)

        buffer = io.BytesIO()
        doc.save(buffer)
        content = buffer.getvalue()
        logger.debug(f"Document rendered for '{document.title}' ({len(content)} bytes)")
        return content
