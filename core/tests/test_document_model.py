"""
Tests para core/reports/document_model.py
"""
from dataclasses import replace

import pytest

from core.models_analytics import GeocodeResult, Insight
from core.reports.document_model import (
    BulletList,
    ChartBlock,
    DocumentBuilder,
    KeyValue,
    Paragraph,
    SECTION_FIELDS,
    SECTION_GEO,
    SECTION_RAW_DATA,
    SECTION_RECOMMENDATIONS,
    SECTION_SUMMARY,
    Table,
)
from core.services.report_assembler import ReportAssembler
from core.services.spatial_clusterer import SpatialClusterer


@pytest.fixture
def report(survey_fields, make_response, generated_at):
    responses = [
        make_response({'color': 'red', 'score': 5, 'age': 30}, lat=6.13, lng=1.22),
        make_response({'color': 'blue', 'score': 4, 'age': 32, 'notes': 'fine'}, day=1, lat=6.13, lng=1.22),
    ]
    return ReportAssembler().build_report({'id': 1, 'title': 'Market study'}, survey_fields, responses, generated_at)


class TestDocumentBuilder:

    def test_section_order(self, report):
        document = DocumentBuilder().build(report)
        assert [s.key for s in document.sections] == [
            'summary', 'recommendations', 'timeline', 'quality', 'fields', 'geo', 'raw_data',
        ]
        assert document.title == 'Market study'
        assert document.generated_at == report.generated_at
        assert document.generated_label == '15/03/2024 12:00'

    def test_raw_data_is_tabular_only(self, report):
        document = DocumentBuilder().build(report)
        assert SECTION_RAW_DATA not in [s.key for s in document.printable_sections]
        raw = document.section(SECTION_RAW_DATA).blocks[0]
        assert raw.headers == report.raw_data.headers

    def test_kpi_pairs(self, report):
        summary = DocumentBuilder().build(report).section(SECTION_SUMMARY)
        assert summary.blocks[0] == KeyValue(pairs=(
            ('Total responses', '2'),
            ('Completion rate', '100%'),
            ('Geo-tagged', '100%'),
            ('Average per day', '1'),
        ))

    def test_recommendations_keep_generation_order(self, report):
        bullets = DocumentBuilder().build(report).section(SECTION_RECOMMENDATIONS).blocks[0]
        assert bullets.items == tuple(r.comment for r in report.recommendations)
        assert bullets.styles == tuple(r.sentiment for r in report.recommendations)

    def test_field_blocks(self, report):
        fields = DocumentBuilder().build(report).section(SECTION_FIELDS)
        headings = [b.text for b in fields.blocks if b.block_type == 'heading']
        tables = [b for b in fields.blocks if isinstance(b, Table)]

        assert headings == ['Favorite color', 'Satisfaction', 'Age', 'Notes']
        assert tables[0].headers == ('Option', 'Count', '%')
        assert tables[0].rows == (('Red', 1, '50%'), ('Blue', 1, '50%'))

    def test_insight_paragraphs(self, report):
        analysis = replace(
            report.field_analyses[0],
            insight=Insight(comment='C', sentiment='warning', recommendation='R', market_insight='M'),
        )
        blocks = DocumentBuilder().field_blocks(analysis)
        assert Paragraph(text='C', style='warning') in blocks
        assert Paragraph(text='Recommendation: R') in blocks
        assert Paragraph(text='Market insight: M', style='muted') in blocks

    def test_geo_section_with_named_zones(self, report):
        zones = tuple(replace(z, place=GeocodeResult(city='Lomé', country='Togo')) for z in report.geo_zones)
        named = replace(report, geo_zones=zones, geo_summary=SpatialClusterer.summarize(zones))

        geo = DocumentBuilder().build(named).section(SECTION_GEO)
        assert geo.blocks[0].rows[0][0] == 'Lomé, Togo'
        assert geo.blocks[1].title == 'By city'
        assert isinstance(geo.blocks[-1], BulletList)

    def test_no_geo_section_without_zones(self, report):
        document = DocumentBuilder().build(replace(report, geo_zones=()))
        assert document.section(SECTION_GEO) is None

    def test_charts_only_when_requested(self, report):
        without = DocumentBuilder().build(report)
        with_charts = DocumentBuilder(include_charts=True).build(report)

        def charts(document):
            return [b for s in document.sections for b in s.blocks if isinstance(b, ChartBlock)]

        assert charts(without) == []
        assert charts(with_charts)
        assert charts(with_charts)[0].data_uri.startswith('data:image/png;base64,')

    def test_empty_report(self, survey_fields, generated_at):
        empty = ReportAssembler().build_report({'title': ''}, survey_fields, [], generated_at)
        document = DocumentBuilder().build(empty)

        assert document.title == 'Survey'
        assert Paragraph(text='No responses to analyze yet.', style='muted') in document.section(SECTION_SUMMARY).blocks
        assert document.section(SECTION_FIELDS).blocks == (Paragraph(text='No questions to analyze.', style='muted'),)
