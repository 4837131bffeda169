"""core/reports/xlsx_generator.py"""
import io
from datetime import timezone as dt_timezone
import logging

from django.utils import timezone
from openpyxl import Workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from core.reports.document_model import (
    SECTION_GEO,
    SECTION_RAW_DATA,
    ReportDocument,
)
from core.utils.logging_utils import log_performance

logger = logging.getLogger(__name__)


class XLSXReportRenderer:
    """
    Libro multi-hoja:
        1. Report    - KPIs, recomendaciones y tablas por pregunta
        2. Raw data  - una fila por respuesta
        3. Geo zones - solo si hay zonas
    """

    HEADER_FILL = PatternFill(start_color="4338CA", end_color="4338CA", fill_type="solid")
    HEADER_FONT = Font(color="FFFFFF", bold=True, size=10)
    SECTION_FONT = Font(size=14, bold=True, color="3730A3")
    TITLE_FONT = Font(size=18, bold=True)
    WRAP = Alignment(wrap_text=True, vertical='top')
    SENTIMENT_COLORS = {'positive': '15803D', 'warning': 'B45309', 'neutral': '374151'}

    @staticmethod
    def _naive(moment):
        # openpyxl escribe W3CDTF sin zona horaria
        if timezone.is_aware(moment):
            return timezone.make_naive(moment, dt_timezone.utc)
        return moment

    @staticmethod
    def _cell_value(value):
        # openpyxl rechaza caracteres de control (\x0b de teclados móviles, etc.)
        if isinstance(value, str):
            return ILLEGAL_CHARACTERS_RE.sub('', value)
        return value

    @classmethod
    def _append(cls, ws, values):
        """
        Añade una fila con los valores saneados. Un texto que empieza por "="
        se guarda como texto, nunca como fórmula.
        """
        values = [cls._cell_value(v) for v in values]
        ws.append(values)
        if not values:
            return
        row = ws.max_row
        for column, value in enumerate(values, 1):
            if isinstance(value, str) and value.startswith('='):
                ws.cell(row=row, column=column).data_type = 's'

    @classmethod
    def _style_header_row(cls, ws, row_index):
        for cell in ws[row_index]:
            if cell.value is None:
                continue
            cell.fill = cls.HEADER_FILL
            cell.font = cls.HEADER_FONT
            cell.alignment = Alignment(horizontal='center', vertical='center')

    @classmethod
    def _write_blocks(cls, ws, blocks):
        for block in blocks:
            kind = block.block_type
            if kind == 'heading':
                ws.append([])
                cls._append(ws, [block.text])
                ws.cell(row=ws.max_row, column=1).font = Font(size=12, bold=True)
            elif kind == 'paragraph':
                cls._append(ws, [block.text])
                color = cls.SENTIMENT_COLORS.get(block.style)
                if color:
                    ws.cell(row=ws.max_row, column=1).font = Font(color=color)
                elif block.style == 'muted':
                    ws.cell(row=ws.max_row, column=1).font = Font(italic=True, color='6B7280')
            elif kind == 'key_value':
                for key, value in block.pairs:
                    cls._append(ws, [key, value])
                    ws.cell(row=ws.max_row, column=1).font = Font(bold=True)
            elif kind == 'table':
                if block.title:
                    cls._append(ws, [block.title])
                    ws.cell(row=ws.max_row, column=1).font = Font(bold=True)
                cls._append(ws, list(block.headers))
                cls._style_header_row(ws, ws.max_row)
                for row in block.rows:
                    cls._append(ws, list(row))
            elif kind == 'bullets':
                for text, style in block.entries:
                    cls._append(ws, [f"• {text}"])
                    color = cls.SENTIMENT_COLORS.get(style)
                    if color:
                        ws.cell(row=ws.max_row, column=1).font = Font(color=color)
            # los gráficos no se incrustan en la hoja de cálculo

    @classmethod
    def _write_table_sheet(cls, ws, table, widths=None):
        cls._append(ws, list(table.headers))
        cls._style_header_row(ws, 1)
        for row in table.rows:
            cls._append(ws, list(row))
        ws.freeze_panes = 'A2'
        for i, header in enumerate(table.headers, 1):
            width = (widths or {}).get(i) or max(12, min(40, len(str(header)) + 4))
            ws.column_dimensions[get_column_letter(i)].width = width

    @classmethod
    @log_performance(threshold_ms=2000)
    def render(cls, document: ReportDocument) -> bytes:
        wb = Workbook()
        wb.properties.title = f"{document.title} - {document.subtitle}"
        wb.properties.creator = 'FieldPulse'
        wb.properties.created = cls._naive(document.generated_at)
        wb.properties.modified = cls._naive(document.generated_at)

        # ── Sheet 1: Report ──
        ws_report = wb.active
        ws_report.title = "Report"
        cls._append(ws_report, [document.title])
        ws_report['A1'].font = cls.TITLE_FONT
        cls._append(ws_report, [f"{document.subtitle} · Generated {document.generated_label}"])
        for section in document.printable_sections:
            if section.key == SECTION_GEO:
                continue
            ws_report.append([])
            cls._append(ws_report, [section.title])
            ws_report.cell(row=ws_report.max_row, column=1).font = cls.SECTION_FONT
            cls._write_blocks(ws_report, section.blocks)
        for row in ws_report.iter_rows(min_row=3):
            for cell in row:
                cell.alignment = cls.WRAP
        ws_report.column_dimensions['A'].width = 60
        for letter in ('B', 'C', 'D', 'E'):
            ws_report.column_dimensions[letter].width = 16

        # ── Sheet 2: Raw data ──
        raw = document.section(SECTION_RAW_DATA)
        ws_raw = wb.create_sheet("Raw data")
        if raw is not None and raw.blocks:
            cls._write_table_sheet(ws_raw, raw.blocks[0], widths={1: 6, 2: 18})

        # ── Sheet 3: Geo zones (solo si hay datos) ──
        geo = document.section(SECTION_GEO)
        if geo is not None:
            ws_geo = wb.create_sheet("Geo zones")
            cls._write_table_sheet(ws_geo, geo.blocks[0], widths={1: 40})
            for block in geo.blocks[1:]:
                ws_geo.append([])
                cls._write_blocks(ws_geo, [block])

        buffer = io.BytesIO()
        wb.save(buffer)
        content = buffer.getvalue()
        logger.debug(f"Workbook rendered for '{document.title}' ({len(content)} bytes)")
        return content
