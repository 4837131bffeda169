"""
Configuración del motor de análisis.

Los umbrales de las heurísticas son datos, no literales repartidos por el
código: se definen aquí con sus valores por defecto y se pueden ajustar desde
``settings.FIELD_ANALYTICS`` sin tocar los servicios.
"""
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict

from django.conf import settings


@dataclass(frozen=True)
class InsightThresholds:
    """Umbrales por campo usados por InsightGenerator."""

    # categorical: top option above this share is a "concentration"
    concentration_pct: float = 60
    # categorical: highest - lowest share below this is a "balanced distribution"
    balance_spread_pct: float = 20
    # rating: mean / max as a percentage
    rating_positive_pct: float = 80
    rating_neutral_pct: float = 60
    # text: answered count above which a follow-up recommendation is emitted
    text_recommendation_min: int = 10
    text_market_insight_min: int = 5
    # numeric: std dev above mean * ratio is flagged as a heterogeneous sample
    dispersion_ratio: float = 0.5
    default_rating_max: float = 5


@dataclass(frozen=True)
class RecommendationThresholds:
    """Umbrales de las recomendaciones globales del reporte."""

    min_sample: int = 30
    large_sample: int = 100
    completion_low_pct: int = 70
    completion_high_pct: int = 90
    geo_low_pct: int = 50
    geo_high_pct: int = 80
    slow_pace_per_day: int = 3
    slow_pace_max_total: int = 50


@dataclass(frozen=True)
class AnalyticsSettings:
    insight_thresholds: InsightThresholds = field(default_factory=InsightThresholds)
    recommendation_thresholds: RecommendationThresholds = field(default_factory=RecommendationThresholds)
    geocoding_delay_seconds: float = 1.1
    geocoding_timeout_seconds: float = 10.0
    geocoding_batch_limit: int = 20
    geocoding_language: str = 'fr'
    geocoding_user_agent: str = 'FieldPulse-Analytics/1.0 (geocoding)'
    nominatim_url: str = 'https://nominatim.openstreetmap.org/reverse'
    geocode_cache_max_entries: int = 1000
    timeline_days: int = 14
    geo_zone_precision: int = 2
    geo_zone_top_n: int = 20


def _override(instance, overrides: Dict[str, Any]):
    """Apply a partial dict of overrides, ignoring unknown keys."""
    known = {f.name for f in fields(instance)}
    return replace(instance, **{k: v for k, v in (overrides or {}).items() if k in known})


def get_analytics_settings() -> AnalyticsSettings:
    """Build the engine configuration from ``settings.FIELD_ANALYTICS``."""
    raw = getattr(settings, 'FIELD_ANALYTICS', None) or {}
    defaults = AnalyticsSettings()
    return AnalyticsSettings(
        insight_thresholds=_override(InsightThresholds(), raw.get('INSIGHT_THRESHOLDS')),
        recommendation_thresholds=_override(RecommendationThresholds(), raw.get('RECOMMENDATION_THRESHOLDS')),
        geocoding_delay_seconds=float(raw.get('GEOCODING_DELAY_SECONDS', defaults.geocoding_delay_seconds)),
        geocoding_timeout_seconds=float(raw.get('GEOCODING_TIMEOUT_SECONDS', defaults.geocoding_timeout_seconds)),
        geocoding_batch_limit=int(raw.get('GEOCODING_BATCH_LIMIT', defaults.geocoding_batch_limit)),
        geocoding_language=raw.get('GEOCODING_LANGUAGE', defaults.geocoding_language),
        geocoding_user_agent=raw.get('GEOCODING_USER_AGENT', defaults.geocoding_user_agent),
        nominatim_url=raw.get('NOMINATIM_URL', defaults.nominatim_url),
        geocode_cache_max_entries=int(raw.get('GEOCODE_CACHE_MAX_ENTRIES', defaults.geocode_cache_max_entries)),
        timeline_days=int(raw.get('TIMELINE_DAYS', defaults.timeline_days)),
        geo_zone_precision=int(raw.get('GEO_ZONE_PRECISION', defaults.geo_zone_precision)),
        geo_zone_top_n=int(raw.get('GEO_ZONE_TOP_N', defaults.geo_zone_top_n)),
    )
