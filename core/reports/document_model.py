"""
Modelo intermedio de documento.

Un único recorrido ``Report -> ReportDocument`` decide qué se muestra y en qué
orden; los renderers (xlsx, pdf, docx, pptx) solo traducen bloques a su
formato. Así ninguno vuelve a recorrer el reporte por su cuenta y todos
muestran exactamente los mismos números.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import ClassVar, Optional, Tuple

from core.models_analytics import (
    FieldAnalysis,
    KIND_CATEGORICAL,
    KIND_NUMERIC,
    Report,
)
from core.utils.charts import ChartGenerator
from core.utils.helpers import format_number, local_datetime

# Secciones
SECTION_SUMMARY = 'summary'
SECTION_RECOMMENDATIONS = 'recommendations'
SECTION_TIMELINE = 'timeline'
SECTION_QUALITY = 'quality'
SECTION_FIELDS = 'fields'
SECTION_GEO = 'geo'
SECTION_RAW_DATA = 'raw_data'


@dataclass(frozen=True)
class Heading:
    block_type: ClassVar[str] = 'heading'

    text: str
    level: int = 1


@dataclass(frozen=True)
class Paragraph:
    block_type: ClassVar[str] = 'paragraph'

    text: str
    # body | muted | positive | neutral | warning
    style: str = 'body'


@dataclass(frozen=True)
class KeyValue:
    block_type: ClassVar[str] = 'key_value'

    pairs: Tuple[Tuple[str, str], ...]


@dataclass(frozen=True)
class Table:
    block_type: ClassVar[str] = 'table'

    headers: Tuple[str, ...]
    rows: Tuple[Tuple, ...]
    title: Optional[str] = None


@dataclass(frozen=True)
class BulletList:
    block_type: ClassVar[str] = 'bullets'

    items: Tuple[str, ...]
    styles: Tuple[str, ...] = ()

    @property
    def entries(self):
        """(text, style) pairs; items without a style are 'body'."""
        styles = tuple(self.styles) + ('body',) * (len(self.items) - len(self.styles))
        return tuple(zip(self.items, styles))


@dataclass(frozen=True)
class ChartBlock:
    block_type: ClassVar[str] = 'chart'

    title: str
    image: bytes

    @property
    def data_uri(self) -> str:
        return ChartGenerator.to_data_uri(self.image)


@dataclass(frozen=True)
class Section:
    key: str
    title: str
    blocks: Tuple = ()
    # solo para formatos tabulares (hoja de datos crudos)
    tabular_only: bool = False


@dataclass(frozen=True)
class ReportDocument:
    title: str
    subtitle: str
    generated_at: datetime
    sections: Tuple[Section, ...] = field(default_factory=tuple)

    @property
    def generated_label(self) -> str:
        return local_datetime(self.generated_at).strftime('%d/%m/%Y %H:%M')

    def section(self, key: str) -> Optional[Section]:
        for section in self.sections:
            if section.key == key:
                return section
        return None

    @property
    def printable_sections(self) -> Tuple[Section, ...]:
        return tuple(s for s in self.sections if not s.tabular_only)


class DocumentBuilder:
    """Traduce un ``Report`` a secciones y bloques."""

    KIND_LABELS = {
        KIND_CATEGORICAL: 'Multiple choice',
        KIND_NUMERIC: 'Numeric',
    }

    def __init__(self, include_charts: bool = False):
        self.include_charts = include_charts

    def build(self, report: Report) -> ReportDocument:
        sections = [
            self.summary_section(report),
            self.recommendations_section(report),
            self.timeline_section(report),
            self.quality_section(report),
            self.fields_section(report),
        ]
        geo = self.geo_section(report)
        if geo is not None:
            sections.append(geo)
        sections.append(self.raw_data_section(report))

        return ReportDocument(
            title=report.title or 'Survey',
            subtitle='Analysis report',
            generated_at=report.generated_at,
            sections=tuple(sections),
        )

    # ------------------------------------------------------------------
    # Secciones
    # ------------------------------------------------------------------

    @staticmethod
    def kpi_pairs(report: Report):
        kpis = report.kpis
        return (
            ('Total responses', str(kpis.total_responses)),
            ('Completion rate', f"{kpis.completion_rate}%"),
            ('Geo-tagged', f"{kpis.geo_tagged_rate}%"),
            ('Average per day', str(kpis.avg_per_day)),
        )

    def summary_section(self, report: Report) -> Section:
        blocks = [KeyValue(pairs=self.kpi_pairs(report))]
        if report.kpis.total_responses == 0:
            blocks.append(Paragraph(text='No responses to analyze yet.', style='muted'))
        return Section(key=SECTION_SUMMARY, title='Key indicators', blocks=tuple(blocks))

    def recommendations_section(self, report: Report) -> Section:
        # en el orden en que se generaron
        return Section(
            key=SECTION_RECOMMENDATIONS,
            title='Recommendations',
            blocks=(BulletList(
                items=tuple(r.comment for r in report.recommendations),
                styles=tuple(r.sentiment for r in report.recommendations),
            ),),
        )

    def timeline_section(self, report: Report) -> Section:
        blocks = []
        if report.timeline:
            blocks.append(Table(
                headers=('Day', 'Responses'),
                rows=tuple((b.label, b.count) for b in report.timeline),
            ))
            if self.include_charts:
                image = ChartGenerator.for_timeline(report.timeline)
                if image:
                    blocks.append(ChartBlock(title='Responses per day', image=image))
        else:
            blocks.append(Paragraph(text='No collection activity yet.', style='muted'))

        temporal = report.temporal
        if temporal.days_active:
            blocks.append(KeyValue(pairs=(
                ('Peak day', temporal.peak_day or '-'),
                ('Peak hour', temporal.peak_hour or '-'),
                ('Trend (last 7 days)', f"{temporal.trend_pct:+d}%"),
                ('Active days', str(temporal.days_active)),
            )))
        return Section(key=SECTION_TIMELINE, title='Collection timeline', blocks=tuple(blocks))

    def quality_section(self, report: Report) -> Section:
        quality = report.data_quality
        blocks = [KeyValue(pairs=(
            ('Quality score', f"{quality.quality_score}%"),
            ('Complete responses', f"{quality.complete} ({quality.completion_rate}%)"),
            ('With GPS', f"{quality.with_gps} ({quality.gps_rate}%)"),
            ('Possible duplicates', f"{quality.duplicates} ({quality.duplicate_rate}%)"),
        ))]
        if quality.field_completeness:
            blocks.append(Table(
                headers=('Question', 'Required', 'Filled', 'Rate'),
                rows=tuple(
                    (fc.label, 'Yes' if fc.required else 'No', fc.filled, f"{fc.rate}%")
                    for fc in quality.field_completeness
                ),
                title='Completeness by question',
            ))
        return Section(key=SECTION_QUALITY, title='Data quality', blocks=tuple(blocks))

    def fields_section(self, report: Report) -> Section:
        blocks = []
        for analysis in report.field_analyses:
            blocks.extend(self.field_blocks(analysis))
        if not blocks:
            blocks.append(Paragraph(text='No questions to analyze.', style='muted'))
        return Section(key=SECTION_FIELDS, title='Analysis by question', blocks=tuple(blocks))

    def field_blocks(self, analysis: FieldAnalysis):
        kind_label = self.KIND_LABELS.get(analysis.kind, 'Text')
        blocks = [
            Heading(text=analysis.label, level=2),
            Paragraph(
                text=(
                    f"{kind_label} | {analysis.total_answered} answers "
                    f"({analysis.response_rate}% response rate)"
                ),
                style='muted',
            ),
        ]

        if analysis.kind == KIND_CATEGORICAL:
            if analysis.categories:
                blocks.append(Table(
                    headers=('Option', 'Count', '%'),
                    rows=tuple(
                        (c.option_label, c.count, f"{c.percentage}%") for c in analysis.categories
                    ),
                ))
        elif analysis.kind == KIND_NUMERIC:
            stats = analysis.stats
            if stats is not None and stats.count:
                blocks.append(KeyValue(pairs=(
                    ('Mean', f"{stats.mean:.2f}"),
                    ('Median', format_number(stats.median)),
                    ('Min', format_number(stats.min)),
                    ('Max', format_number(stats.max)),
                    ('Std dev', f"{stats.std_dev:.2f}"),
                    ('Count', str(stats.count)),
                )))
                blocks.append(Table(
                    headers=('Value', 'Count', '%'),
                    rows=tuple(
                        (format_number(b.value), b.count, f"{b.percentage}%") for b in analysis.histogram
                    ),
                ))
        else:
            blocks.append(KeyValue(pairs=(
                ('Answered', str(analysis.answered_count)),
                ('Unique answers', str(analysis.unique_normalized_count)),
            )))

        if self.include_charts:
            image = ChartGenerator.for_field_analysis(analysis)
            if image:
                blocks.append(ChartBlock(title=analysis.label, image=image))

        insight = analysis.insight
        if insight is not None:
            blocks.append(Paragraph(text=insight.comment, style=insight.sentiment))
            if insight.recommendation:
                blocks.append(Paragraph(text=f"Recommendation: {insight.recommendation}"))
            if insight.market_insight:
                blocks.append(Paragraph(text=f"Market insight: {insight.market_insight}", style='muted'))
        return blocks

    def geo_section(self, report: Report) -> Optional[Section]:
        if not report.geo_zones:
            return None
        blocks = [Table(
            headers=('Zone', 'Latitude', 'Longitude', 'Responses', '% of geo-tagged'),
            rows=tuple(
                (z.label, f"{z.center_lat:.4f}", f"{z.center_lng:.4f}", z.count, f"{z.percentage_of_geo_tagged}%")
                for z in report.geo_zones
            ),
        )]
        summary = report.geo_summary
        if summary is not None and summary.by_city:
            blocks.append(Table(
                headers=('City', 'Responses', '%'),
                rows=tuple((c.name, c.count, f"{c.percentage}%") for c in summary.by_city),
                title='By city',
            ))
        if summary is not None and summary.by_region:
            blocks.append(Table(
                headers=('Region', 'Responses', '%'),
                rows=tuple((r.name, r.count, f"{r.percentage}%") for r in summary.by_region),
                title='By region',
            ))
        if summary is not None and summary.hotspots:
            blocks.append(BulletList(
                items=tuple(f"{h.name}: {h.description}" for h in summary.hotspots),
                styles=tuple('positive' if h.level == 'high' else 'neutral' for h in summary.hotspots),
            ))
        return Section(key=SECTION_GEO, title='Geographic zones', blocks=tuple(blocks))

    def raw_data_section(self, report: Report) -> Section:
        raw = report.raw_data
        return Section(
            key=SECTION_RAW_DATA,
            title='Raw data',
            blocks=(Table(headers=raw.headers, rows=raw.rows),),
            tabular_only=True,
        )
