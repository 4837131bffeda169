"""
Modelos de datos del motor de análisis.

No son modelos de base de datos: las respuestas y definiciones de campos las
entrega la aplicación que rodea al motor, y todo lo derivado (análisis,
zonas, reportes) se recalcula en cada ejecución. Por eso son dataclasses
congeladas: un reporte se reemplaza, nunca se modifica en sitio.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from django.utils.dateparse import parse_datetime


CATEGORICAL_TYPES = frozenset({'select', 'multiselect', 'categorical', 'radio', 'single', 'multi'})
NUMERIC_TYPES = frozenset({'number', 'numeric', 'rating', 'scale'})
RATING_TYPES = frozenset({'rating', 'scale'})

KIND_CATEGORICAL = 'categorical'
KIND_NUMERIC = 'numeric'
KIND_TEXT = 'text'

SENTIMENT_POSITIVE = 'positive'
SENTIMENT_NEUTRAL = 'neutral'
SENTIMENT_WARNING = 'warning'


def field_kind(field_type: str) -> str:
    """Aggregation kind for an application field type.

    Anything that is neither a choice nor a number is summarized as text.
    """
    normalized = (field_type or '').strip().lower()
    if normalized in CATEGORICAL_TYPES:
        return KIND_CATEGORICAL
    if normalized in NUMERIC_TYPES:
        return KIND_NUMERIC
    return KIND_TEXT


# ============================================================================
# INPUT
# ============================================================================

@dataclass(frozen=True)
class FieldOption:
    value: str
    label: str

    @classmethod
    def from_raw(cls, raw) -> 'FieldOption':
        if isinstance(raw, FieldOption):
            return raw
        if isinstance(raw, dict):
            value = raw.get('value', raw.get('label', ''))
            label = raw.get('label') or value
            return cls(value=str(value), label=str(label))
        return cls(value=str(raw), label=str(raw))


@dataclass(frozen=True)
class FieldDefinition:
    id: str
    label: str
    type: str
    required: bool = False
    options: Tuple[FieldOption, ...] = ()
    min_value: Optional[float] = None
    max_value: Optional[float] = None

    @property
    def kind(self) -> str:
        return field_kind(self.type)

    @property
    def is_rating(self) -> bool:
        return (self.type or '').strip().lower() in RATING_TYPES

    def option_label(self, value) -> str:
        key = str(value)
        for option in self.options:
            if option.value == key:
                return option.label
        return key

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FieldDefinition':
        """Build a definition from the application's JSON shape."""
        options = data.get('options') or ()
        if not isinstance(options, (list, tuple)):
            options = ()
        max_value = data.get('max_value', data.get('maxValue', data.get('max')))
        min_value = data.get('min_value', data.get('minValue', data.get('min')))
        return cls(
            id=str(data['id']),
            label=str(data.get('label') or data['id']),
            type=str(data.get('field_type') or data.get('type') or 'text'),
            required=bool(data.get('required', False)),
            options=tuple(FieldOption.from_raw(o) for o in options),
            min_value=float(min_value) if min_value is not None else None,
            max_value=float(max_value) if max_value is not None else None,
        )


@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lng: float

    @classmethod
    def from_raw(cls, raw) -> Optional['GeoPoint']:
        """Accepts ``{lat, lng}`` or ``{latitude, longitude}``; anything else is None."""
        if raw is None:
            return None
        if isinstance(raw, GeoPoint):
            return raw
        if not isinstance(raw, dict):
            return None
        lat = raw.get('lat', raw.get('latitude'))
        lng = raw.get('lng', raw.get('longitude'))
        if lat is None or lng is None:
            return None
        try:
            return cls(lat=float(lat), lng=float(lng))
        except (TypeError, ValueError):
            return None


@dataclass(frozen=True)
class ResponseRecord:
    id: str
    created_at: datetime
    answers: Dict[str, Any] = field(default_factory=dict, hash=False)
    location: Optional[GeoPoint] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ResponseRecord':
        created = data.get('created_at', data.get('createdAt'))
        if isinstance(created, str):
            created = parse_datetime(created)
        return cls(
            id=str(data['id']),
            created_at=created,
            answers=dict(data.get('answers', data.get('data')) or {}),
            location=GeoPoint.from_raw(data.get('location')),
        )


@dataclass(frozen=True)
class SurveyInfo:
    id: str
    title: str
    description: str = ''


# ============================================================================
# FIELD ANALYSIS
# ============================================================================

@dataclass(frozen=True)
class Insight:
    comment: str
    sentiment: str = SENTIMENT_NEUTRAL
    recommendation: Optional[str] = None
    market_insight: Optional[str] = None


@dataclass(frozen=True)
class CategoryCount:
    value: str
    option_label: str
    count: int
    percentage: int


@dataclass(frozen=True)
class HistogramBin:
    value: float
    count: int
    percentage: int


@dataclass(frozen=True)
class NumericStats:
    mean: float = 0.0
    median: float = 0.0
    min: float = 0.0
    max: float = 0.0
    std_dev: float = 0.0
    count: int = 0


@dataclass(frozen=True)
class FieldAnalysis:
    field_id: str
    label: str
    field_type: str
    kind: str
    total_answered: int = 0
    response_rate: int = 0
    # categorical
    categories: Tuple[CategoryCount, ...] = ()
    total_mentions: int = 0
    # numeric
    stats: Optional[NumericStats] = None
    histogram: Tuple[HistogramBin, ...] = ()
    # text
    answered_count: int = 0
    unique_normalized_count: int = 0
    insight: Optional[Insight] = None

    @property
    def top_category(self) -> Optional[CategoryCount]:
        return self.categories[0] if self.categories else None


# ============================================================================
# GEO
# ============================================================================

@dataclass(frozen=True)
class GeocodeResult:
    city: Optional[str] = None
    region: Optional[str] = None
    country: Optional[str] = None

    @property
    def full_address(self) -> str:
        return ', '.join(part for part in (self.city, self.region, self.country) if part)


def coordinates_label(lat: float, lng: float) -> str:
    return f"{lat:.4f}°, {lng:.4f}°"


@dataclass(frozen=True)
class GeoZone:
    cell_key: str
    center_lat: float
    center_lng: float
    count: int
    percentage_of_geo_tagged: int
    place: Optional[GeocodeResult] = None

    @property
    def label(self) -> str:
        if self.place and self.place.full_address:
            return self.place.full_address
        return coordinates_label(self.center_lat, self.center_lng)


@dataclass(frozen=True)
class NamedCount:
    name: str
    count: int
    percentage: int


@dataclass(frozen=True)
class Hotspot:
    name: str
    description: str
    level: str  # 'high' | 'medium'


@dataclass(frozen=True)
class GeoSummary:
    geo_tagged: int = 0
    zone_count: int = 0
    by_city: Tuple[NamedCount, ...] = ()
    by_region: Tuple[NamedCount, ...] = ()
    hotspots: Tuple[Hotspot, ...] = ()


# ============================================================================
# TIMELINE / QUALITY
# ============================================================================

@dataclass(frozen=True)
class TimelineBucket:
    day: Any  # datetime.date
    label: str
    count: int


@dataclass(frozen=True)
class TemporalPatterns:
    by_weekday: Tuple[NamedCount, ...] = ()
    by_hour: Tuple[NamedCount, ...] = ()
    peak_day: Optional[str] = None
    peak_hour: Optional[str] = None
    trend_pct: int = 0
    days_active: int = 0
    first_day: Optional[Any] = None
    last_day: Optional[Any] = None


@dataclass(frozen=True)
class FieldCompleteness:
    field_id: str
    label: str
    required: bool
    filled: int
    rate: int


@dataclass(frozen=True)
class DataQuality:
    quality_score: int = 0
    complete: int = 0
    completion_rate: int = 0
    with_gps: int = 0
    gps_rate: int = 0
    duplicates: int = 0
    duplicate_rate: int = 0
    field_completeness: Tuple[FieldCompleteness, ...] = ()


# ============================================================================
# REPORT
# ============================================================================

@dataclass(frozen=True)
class KPIs:
    total_responses: int = 0
    completion_rate: int = 0
    geo_tagged_rate: int = 0
    avg_per_day: int = 0


@dataclass(frozen=True)
class RawDataTable:
    headers: Tuple[str, ...] = ()
    rows: Tuple[Tuple[Any, ...], ...] = ()


@dataclass(frozen=True)
class Report:
    survey_id: str
    title: str
    generated_at: datetime
    kpis: KPIs = field(default_factory=KPIs)
    timeline: Tuple[TimelineBucket, ...] = ()
    field_analyses: Tuple[FieldAnalysis, ...] = ()
    geo_zones: Tuple[GeoZone, ...] = ()
    recommendations: Tuple[Insight, ...] = ()
    temporal: TemporalPatterns = field(default_factory=TemporalPatterns)
    data_quality: DataQuality = field(default_factory=DataQuality)
    geo_summary: Optional[GeoSummary] = None
    raw_data: RawDataTable = field(default_factory=RawDataTable)
