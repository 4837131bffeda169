"""core/reports/pptx_generator.py"""
import io
import logging
import math
from dataclasses import dataclass
from datetime import timezone as dt_timezone

from django.utils import timezone
from pptx import Presentation
from pptx.dml.color import RGBColor
from pptx.util import Inches, Pt

from core.reports.document_model import ReportDocument, Section
from core.utils.logging_utils import log_performance

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PPTXStyleConfig:
    """Medidas en pulgadas sobre la diapositiva estándar de 10 x 7.5."""

    title_max_len: int = 80
    table_rows_per_slide: int = 12
    body_size: int = 14
    table_size: int = 11
    left: float = 0.5
    top: float = 1.4
    bottom: float = 7.0
    full_width: float = 9.0
    column_width: float = 4.4
    chart_left: float = 5.1
    line_height: float = 0.32


def _add_chart_image(slide, left, top, width, png_bytes: bytes) -> None:
    if not png_bytes:
        return
    try:
        slide.shapes.add_picture(io.BytesIO(png_bytes), left, top, width=width)
    except Exception:
        # Si falla la imagen, preferimos un PPTX sin gráfico antes que romper export.
        logger.exception("Could not embed chart image in PPTX")


class PPTXReportRenderer:
    """
    Presentación: portada, una diapositiva por sección y una por pregunta.
    El contenido que no cabe continúa en diapositivas "(cont.)".
    """

    TITLE_LAYOUT = 0
    TITLE_ONLY_LAYOUT = 5
    BRAND_COLOR = RGBColor(0x43, 0x38, 0xCA)
    MUTED_COLOR = RGBColor(0x6B, 0x72, 0x80)
    SENTIMENT_COLORS = {
        'positive': RGBColor(0x15, 0x80, 0x3D),
        'warning': RGBColor(0xB4, 0x53, 0x09),
        'neutral': RGBColor(0x37, 0x41, 0x51),
    }

    def __init__(self, style: PPTXStyleConfig = None):
        self.style = style or PPTXStyleConfig()
        self.prs = None
        self.slide = None
        self.page_title = ''
        self.with_chart = False
        self.cursor = 0.0
        self.chart_cursor = 0.0
        self.text_frame = None

    @staticmethod
    def _clean_title(title: str, max_len: int = 80) -> str:
        title = (title or '').strip()
        if len(title) > max_len:
            title = title[:max_len - 3] + '...'
        return title

    @staticmethod
    def _naive(moment):
        if timezone.is_aware(moment):
            return timezone.make_naive(moment, dt_timezone.utc)
        return moment

    @staticmethod
    def pages(section: Section):
        """Divide una sección en páginas ``(title, blocks)``: una por cada ``Heading``."""
        pages = []
        title, blocks = section.title, []
        for block in section.blocks:
            if block.block_type == 'heading':
                if blocks:
                    pages.append((title, blocks))
                title, blocks = block.text, []
            else:
                blocks.append(block)
        if blocks or not pages:
            pages.append((title, blocks))
        return pages

    @property
    def content_width(self) -> float:
        return self.style.column_width if self.with_chart else self.style.full_width

    # ------------------------------------------------------------------
    # Slides
    # ------------------------------------------------------------------

    def _start_slide(self, title: str):
        layout = self.prs.slide_layouts[self.TITLE_ONLY_LAYOUT]
        self.slide = self.prs.slides.add_slide(layout)
        self.slide.shapes.title.text = self._clean_title(title, self.style.title_max_len)
        self.cursor = self.style.top
        self.chart_cursor = self.style.top
        self.text_frame = None

    def _continue(self):
        self._start_slide(f"{self.page_title} (cont.)")

    def _line_count(self, text: str) -> int:
        chars_per_line = max(1, int(self.content_width * 11))
        return max(1, math.ceil(len(text) / chars_per_line))

    def _next_paragraph(self, text: str):
        s = self.style
        height = s.line_height * self._line_count(text)
        if self.cursor + height > s.bottom:
            self._continue()
        if self.text_frame is None:
            box = self.slide.shapes.add_textbox(
                Inches(s.left), Inches(self.cursor), Inches(self.content_width), Inches(height)
            )
            self.text_frame = box.text_frame
            self.text_frame.word_wrap = True
            paragraph = self.text_frame.paragraphs[0]
        else:
            paragraph = self.text_frame.add_paragraph()
        self.cursor += height
        return paragraph

    def _write_text(self, text, size=None, bold=False, italic=False, color=None):
        p = self._next_paragraph(text)
        p.text = text
        p.font.size = Pt(size or self.style.body_size)
        p.font.bold = bold
        p.font.italic = italic
        if color is not None:
            p.font.color.rgb = color
        return p

    def _write_pairs(self, pairs):
        for key, value in pairs:
            p = self._next_paragraph(f"{key}: {value}")
            run = p.add_run()
            run.text = f"{key}: "
            run.font.bold = True
            run.font.size = Pt(self.style.body_size)
            run = p.add_run()
            run.text = str(value)
            run.font.size = Pt(self.style.body_size)

    def _set_cell(self, cell, value, bold=False):
        cell.text = '' if value is None else str(value)
        for paragraph in cell.text_frame.paragraphs:
            paragraph.font.size = Pt(self.style.table_size)
            paragraph.font.bold = bold

    def _write_table(self, block):
        s = self.style
        if block.title:
            self._write_text(block.title, bold=True)
        rows = list(block.rows)
        step = s.table_rows_per_slide
        chunks = [rows[i:i + step] for i in range(0, len(rows), step)] or [[]]
        for chunk in chunks:
            height = s.line_height * (len(chunk) + 1)
            if self.cursor + height > s.bottom:
                self._continue()
            self.text_frame = None
            shape = self.slide.shapes.add_table(
                len(chunk) + 1, len(block.headers),
                Inches(s.left), Inches(self.cursor), Inches(self.content_width), Inches(height),
            )
            table = shape.table
            for col, header in enumerate(block.headers):
                self._set_cell(table.cell(0, col), header, bold=True)
            for r, row in enumerate(chunk, start=1):
                for col, value in enumerate(row):
                    self._set_cell(table.cell(r, col), value)
            self.cursor += height + 0.2

    def _write_chart(self, block):
        s = self.style
        # proporción aproximada de las figuras de ChartGenerator
        height = s.column_width * 0.7
        if self.chart_cursor + height > s.bottom:
            self._continue()
        _add_chart_image(
            self.slide, Inches(s.chart_left), Inches(self.chart_cursor), Inches(s.column_width), block.image
        )
        self.chart_cursor += height + 0.2

    def _write_blocks(self, blocks):
        for block in blocks:
            kind = block.block_type
            if kind == 'paragraph':
                if block.style == 'muted':
                    self._write_text(block.text, size=12, italic=True, color=self.MUTED_COLOR)
                else:
                    self._write_text(block.text, color=self.SENTIMENT_COLORS.get(block.style))
            elif kind == 'key_value':
                self._write_pairs(block.pairs)
            elif kind == 'table':
                self._write_table(block)
            elif kind == 'bullets':
                for text, style in block.entries:
                    self._write_text(f"• {text}", color=self.SENTIMENT_COLORS.get(style))
            elif kind == 'chart':
                self._write_chart(block)
            elif kind == 'heading':
                self._write_text(block.text, size=18, bold=True, color=self.BRAND_COLOR)

    def _title_slide(self, document: ReportDocument):
        slide = self.prs.slides.add_slide(self.prs.slide_layouts[self.TITLE_LAYOUT])
        slide.shapes.title.text = self._clean_title(document.title, self.style.title_max_len)
        slide.placeholders[1].text = f"{document.subtitle}\nGenerated {document.generated_label}"

    def build(self, document: ReportDocument):
        self.prs = Presentation()
        props = self.prs.core_properties
        props.title = document.title
        props.subject = document.subtitle
        props.author = 'FieldPulse'
        props.created = self._naive(document.generated_at)
        props.modified = self._naive(document.generated_at)
        props.revision = 1

        self._title_slide(document)
        for section in document.printable_sections:
            for title, blocks in self.pages(section):
                self.page_title = title
                self.with_chart = any(b.block_type == 'chart' for b in blocks)
                self._start_slide(title)
                self._write_blocks(blocks)
        return self.prs

    @classmethod
    @log_performance(threshold_ms=3000)
    def render(cls, document: ReportDocument, style: PPTXStyleConfig = None) -> bytes:
        prs = cls(style).build(document)
        output = io.BytesIO()
        prs.save(output)
        content = output.getvalue()
        logger.debug(f"Presentation rendered for '{document.title}' ({len(content)} bytes)")
        return content
