"""
core/services/report_assembler.py

Orquesta el pipeline completo: agregación por campo, insights, zonas
geográficas, línea de tiempo, calidad de datos y recomendaciones globales,
y entrega el ``Report`` inmutable que consumen los exportadores.
"""
import csv
import logging
from dataclasses import replace
from typing import Optional

import pandas as pd
from asgiref.sync import async_to_sync
from django.utils import timezone
from django.utils.text import get_valid_filename

from core.conf import AnalyticsSettings, get_analytics_settings
from core.models_analytics import (
    GeoPoint,
    Insight,
    KIND_CATEGORICAL,
    KPIs,
    RawDataTable,
    Report,
    SENTIMENT_NEUTRAL,
    SENTIMENT_POSITIVE,
    SENTIMENT_WARNING,
    SurveyInfo,
)
from core.reports.docx_generator import DOCXReportRenderer
from core.reports.document_model import DocumentBuilder
from core.reports.pdf_generator import PDFReportGenerator
from core.reports.pptx_generator import PPTXReportRenderer
from core.reports.xlsx_generator import XLSXReportRenderer
from core.services.data_quality import DataQualityAnalyzer
from core.services.field_aggregator import FieldAggregator
from core.services.insight_generator import InsightGenerator
from core.services.spatial_clusterer import SpatialClusterer
from core.services.temporal_analysis import TimelineEngine
from core.utils.helpers import is_answered, local_datetime, percent, round_half_up
from core.utils.logging_utils import log_performance, log_report_built
from core.validators import ExportValidator, ReportInputValidator

logger = logging.getLogger(__name__)


class RecommendationEngine:
    """Recomendaciones globales en orden fijo de reglas."""

    MESSAGES = {
        'sample_low': "Insufficient sample (< {min} responses). Keep collecting for statistically significant results.",
        'sample_high': "Excellent data volume! The sample is representative and reliable.",
        'completion_low': "Low completion rate. Simplify the questionnaire or train the field agents.",
        'completion_high': "Excellent completion rate! Optimal data quality.",
        'geo_low': "Few geo-tagged responses. Geographic analysis will be limited.",
        'geo_high': "Excellent geographic coverage. Territorial analysis is reliable.",
        'slow_pace': "Slow collection pace. Increase the number of field agents.",
        'concentration': "{n} question(s) with a strong concentration of answers. Market opportunities identified.",
        'default': "Excellent data quality! Keep up the good work.",
    }

    def __init__(self, thresholds=None, concentration_pct=None):
        conf = get_analytics_settings()
        self.thresholds = thresholds or conf.recommendation_thresholds
        self.concentration_pct = (
            concentration_pct if concentration_pct is not None
            else conf.insight_thresholds.concentration_pct
        )

    def build(self, kpis: KPIs, field_analyses):
        t = self.thresholds
        m = self.MESSAGES
        recs = []

        if kpis.total_responses < t.min_sample:
            recs.append(Insight(comment=m['sample_low'].format(min=t.min_sample), sentiment=SENTIMENT_WARNING))
        elif kpis.total_responses >= t.large_sample:
            recs.append(Insight(comment=m['sample_high'], sentiment=SENTIMENT_POSITIVE))

        if kpis.completion_rate < t.completion_low_pct:
            recs.append(Insight(comment=m['completion_low'], sentiment=SENTIMENT_WARNING))
        elif kpis.completion_rate >= t.completion_high_pct:
            recs.append(Insight(comment=m['completion_high'], sentiment=SENTIMENT_POSITIVE))

        if kpis.geo_tagged_rate < t.geo_low_pct:
            recs.append(Insight(comment=m['geo_low'], sentiment=SENTIMENT_NEUTRAL))
        elif kpis.geo_tagged_rate >= t.geo_high_pct:
            recs.append(Insight(comment=m['geo_high'], sentiment=SENTIMENT_POSITIVE))

        if kpis.avg_per_day < t.slow_pace_per_day and kpis.total_responses < t.slow_pace_max_total:
            recs.append(Insight(comment=m['slow_pace'], sentiment=SENTIMENT_NEUTRAL))

        concentrated = [
            fa for fa in field_analyses
            if fa.kind == KIND_CATEGORICAL and fa.top_category
            and fa.top_category.percentage > self.concentration_pct
        ]
        if concentrated:
            recs.append(Insight(
                comment=m['concentration'].format(n=len(concentrated)),
                sentiment=SENTIMENT_POSITIVE,
            ))

        if not recs:
            recs.append(Insight(comment=m['default'], sentiment=SENTIMENT_POSITIVE))
        return tuple(recs)


class ReportAssembler:
    """
    Punto de entrada del motor.

    ``build_report`` es síncrono y puro (para un ``generated_at`` fijo, dos
    llamadas con la misma entrada devuelven reportes iguales).
    ``build_report_async`` añade el nombrado de zonas con el geocodificador.
    """

    RAW_FIXED_HEADERS = ('#', 'Date', 'GPS lat', 'GPS lng')

    def __init__(self, conf: Optional[AnalyticsSettings] = None):
        self.conf = conf or get_analytics_settings()
        self.insights = InsightGenerator(self.conf.insight_thresholds)
        self.recommendations = RecommendationEngine(
            self.conf.recommendation_thresholds, self.conf.insight_thresholds.concentration_pct
        )

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------

    @staticmethod
    def _survey_info(survey) -> SurveyInfo:
        if isinstance(survey, SurveyInfo):
            return survey
        if isinstance(survey, dict):
            return SurveyInfo(
                id=str(survey.get('id', '')),
                title=str(survey.get('title') or ''),
                description=str(survey.get('description') or ''),
            )
        return SurveyInfo(
            id=str(getattr(survey, 'id', '')),
            title=str(getattr(survey, 'title', '') or ''),
            description=str(getattr(survey, 'description', '') or ''),
        )

    @staticmethod
    def compute_kpis(fields, responses, timeline) -> KPIs:
        total = len(responses)
        if total == 0:
            return KPIs()
        required = [f for f in fields if f.required]
        complete = sum(1 for r in responses if DataQualityAnalyzer.is_complete(r, required))
        geo_tagged = sum(1 for r in responses if DataQualityAnalyzer.has_gps(r))
        avg_per_day = int(round_half_up(total / len(timeline))) if timeline else 0
        return KPIs(
            total_responses=total,
            completion_rate=percent(complete, total),
            geo_tagged_rate=percent(geo_tagged, total),
            avg_per_day=avg_per_day,
        )

    @staticmethod
    def _cell(value, field=None):
        """Valor legible de una respuesta; las opciones se muestran con su etiqueta."""
        if value is None:
            return ''
        categorical = field is not None and field.kind == KIND_CATEGORICAL
        if isinstance(value, (list, tuple)):
            items = [v for v in value if is_answered(v)]
            if categorical:
                return '; '.join(field.option_label(v) for v in items)
            return '; '.join(str(v) for v in items)
        if isinstance(value, dict):
            point = GeoPoint.from_raw(value)
            if point is not None:
                return f"{point.lat},{point.lng}"
            return '; '.join(f"{k}: {v}" for k, v in value.items())
        if categorical and is_answered(value):
            return field.option_label(value)
        return value

    @classmethod
    def raw_data_frame(cls, fields, responses) -> pd.DataFrame:
        """Una fila por respuesta: #, fecha, GPS y una columna por campo."""
        headers = list(cls.RAW_FIXED_HEADERS) + [f.label for f in fields]
        records = []
        for index, response in enumerate(responses, start=1):
            created = response.created_at
            location = response.location
            row = [
                index,
                local_datetime(created).strftime('%Y-%m-%d %H:%M') if created else '',
                location.lat if location is not None else '',
                location.lng if location is not None else '',
            ]
            answers = response.answers or {}
            row.extend(cls._cell(answers.get(f.id), f) for f in fields)
            records.append(row)
        return pd.DataFrame(records, columns=headers, dtype=object)

    @classmethod
    def raw_data_table(cls, fields, responses) -> RawDataTable:
        frame = cls.raw_data_frame(fields, responses)
        return RawDataTable(
            headers=tuple(str(c) for c in frame.columns),
            rows=tuple(tuple(row) for row in frame.itertuples(index=False, name=None)),
        )

    @log_performance(threshold_ms=2000)
    def build_report(self, survey, fields, responses, generated_at=None) -> Report:
        fields = ReportInputValidator.validate_fields(fields)
        responses = ReportInputValidator.validate_responses(responses)
        info = self._survey_info(survey)
        if generated_at is None:
            generated_at = timezone.now()

        if responses:
            analyses = tuple(
                self.insights.attach(FieldAggregator.aggregate(f, responses), f) for f in fields
            )
            zones = tuple(SpatialClusterer.cluster(responses, self.conf.geo_zone_precision))
        else:
            analyses, zones = (), ()

        timeline = TimelineEngine.daily_timeline(responses, self.conf.timeline_days)
        kpis = self.compute_kpis(fields, responses, timeline)

        report = Report(
            survey_id=info.id,
            title=info.title,
            generated_at=generated_at,
            kpis=kpis,
            timeline=timeline,
            field_analyses=analyses,
            geo_zones=zones,
            recommendations=self.recommendations.build(kpis, analyses),
            temporal=TimelineEngine.patterns(responses),
            data_quality=DataQualityAnalyzer.analyze(fields, responses),
            geo_summary=SpatialClusterer.summarize(zones),
            raw_data=self.raw_data_table(fields, responses),
        )
        log_report_built(report)
        return report

    async def build_report_async(
        self, survey, fields, responses, geocoder=None, cancel_token=None, generated_at=None
    ) -> Report:
        """``build_report`` plus human-readable names for the densest zones."""
        report = self.build_report(survey, fields, responses, generated_at=generated_at)
        if geocoder is None or not report.geo_zones:
            return report

        zones = await SpatialClusterer.name_zones(
            report.geo_zones, geocoder, top_n=self.conf.geo_zone_top_n, cancel_token=cancel_token
        )
        return replace(
            report,
            geo_zones=tuple(zones),
            geo_summary=SpatialClusterer.summarize(zones, report.geo_summary.geo_tagged),
        )

    def build_report_with_geocoding(self, survey, fields, responses, geocoder, generated_at=None) -> Report:
        """Entrada síncrona para código que no corre dentro de un event loop."""
        return async_to_sync(self.build_report_async)(
            survey, fields, responses, geocoder=geocoder, generated_at=generated_at
        )

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    @staticmethod
    def to_document_model(report: Report, include_charts: bool = False):
        return DocumentBuilder(include_charts=include_charts).build(report)

    @classmethod
    def to_spreadsheet(cls, report: Report) -> bytes:
        return XLSXReportRenderer.render(cls.to_document_model(report))

    @classmethod
    def to_pdf(cls, report: Report, include_charts: bool = True) -> bytes:
        return PDFReportGenerator.render(cls.to_document_model(report, include_charts))

    @classmethod
    def to_document(cls, report: Report, include_charts: bool = True) -> bytes:
        return DOCXReportRenderer.render(cls.to_document_model(report, include_charts))

    @classmethod
    def to_presentation(cls, report: Report, include_charts: bool = True) -> bytes:
        return PPTXReportRenderer.render(cls.to_document_model(report, include_charts))

    @staticmethod
    def to_csv(report: Report) -> bytes:
        """
        Datos crudos en CSV simple: UTF-8 con BOM (Excel lo abre con acentos)
        y todas las celdas entre comillas.
        """
        raw = report.raw_data
        frame = pd.DataFrame(list(raw.rows), columns=list(raw.headers), dtype=object)
        text = frame.to_csv(index=False, quoting=csv.QUOTE_ALL, lineterminator='\n')
        return text.encode('utf-8-sig')

    @staticmethod
    def get_filename(report: Report, kind: str) -> str:
        extension = ExportValidator.validate_export_kind(kind)
        title = (report.title or '').strip() or 'survey'
        suffix = 'export' if extension == 'csv' else 'analysis_report'
        return get_valid_filename(f"{title}_{suffix}.{extension}")

    def export(self, report: Report, kind: str, include_charts: bool = True):
        """Devuelve ``(filename, bytes)`` para el formato pedido."""
        extension = ExportValidator.validate_export_kind(kind)
        include_charts = ExportValidator.validate_boolean_param(include_charts, 'include_charts')
        if extension == 'xlsx':
            content = self.to_spreadsheet(report)
        elif extension == 'csv':
            content = self.to_csv(report)
        elif extension == 'pdf':
            content = self.to_pdf(report, include_charts)
        elif extension == 'docx':
            content = self.to_document(report, include_charts)
        else:
            content = self.to_presentation(report, include_charts)
        return self.get_filename(report, extension), content
