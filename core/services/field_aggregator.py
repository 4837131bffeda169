"""core/services/field_aggregator.py"""
import logging
import math
from collections import Counter

from core.models_analytics import (
    CategoryCount,
    FieldAnalysis,
    FieldDefinition,
    HistogramBin,
    KIND_CATEGORICAL,
    KIND_NUMERIC,
    NumericStats,
)
from core.utils.helpers import is_answered, percent, to_number

logger = logging.getLogger(__name__)


class FieldAggregator:
    """
    Agregación por tipo de campo: frecuencias para preguntas de opción,
    estadísticos para numéricas y conteos de unicidad para texto libre.

    Nunca lanza excepciones por falta de datos: un campo sin respuestas
    produce estructuras en cero.
    """

    @staticmethod
    def extract_values(field: FieldDefinition, responses):
        """Answers for ``field`` with missing, None and empty-string values discarded."""
        values = []
        for response in responses:
            value = (response.answers or {}).get(field.id)
            if is_answered(value):
                values.append(value)
        return values

    @classmethod
    def aggregate(cls, field: FieldDefinition, responses) -> FieldAnalysis:
        responses = list(responses)
        values = cls.extract_values(field, responses)
        base = {
            'field_id': field.id,
            'label': field.label,
            'field_type': field.type,
            'kind': field.kind,
            'total_answered': len(values),
            'response_rate': percent(len(values), len(responses)),
        }
        if field.kind == KIND_CATEGORICAL:
            categories, total_mentions = cls.categorical_distribution(field, values)
            return FieldAnalysis(categories=categories, total_mentions=total_mentions, **base)
        if field.kind == KIND_NUMERIC:
            stats, histogram = cls.numeric_summary(values)
            return FieldAnalysis(stats=stats, histogram=histogram, **base)
        answered, unique = cls.text_summary(values)
        return FieldAnalysis(answered_count=answered, unique_normalized_count=unique, **base)

    # ------------------------------------------------------------------
    # Categorical
    # ------------------------------------------------------------------

    @staticmethod
    def categorical_distribution(field: FieldDefinition, values):
        """
        Frequency table sorted by count descending.

        Multi-select answers increment every selected option, so the
        percentages are computed against the sum of all option counts and
        not against the number of respondents. Ties keep the order in which
        options were first seen.
        """
        counts = {}
        for value in values:
            items = value if isinstance(value, (list, tuple)) else [value]
            for item in items:
                if not is_answered(item):
                    continue
                key = str(item)
                counts[key] = counts.get(key, 0) + 1

        total_mentions = sum(counts.values())
        # sorted() es estable: los empates conservan el orden de aparición
        ordered = sorted(counts.items(), key=lambda kv: kv[1], reverse=True)
        categories = tuple(
            CategoryCount(
                value=key,
                option_label=field.option_label(key),
                count=count,
                percentage=percent(count, total_mentions),
            )
            for key, count in ordered
        )
        return categories, total_mentions

    # ------------------------------------------------------------------
    # Numeric
    # ------------------------------------------------------------------

    @staticmethod
    def numeric_summary(values):
        """
        Mean, median, min, max and population std dev plus a histogram of
        distinct values in ascending order.

        Non-numeric entries are dropped silently. The median is the element
        at ``n // 2`` of the sorted values, i.e. the upper median for even
        sample sizes; downstream reports depend on that value so it is kept
        as is.
        """
        numbers = []
        for value in values:
            number = to_number(value)
            if number is None:
                continue
            numbers.append(number)

        if not numbers:
            return NumericStats(), ()

        n = len(numbers)
        mean = sum(numbers) / n
        ordered = sorted(numbers)
        median = ordered[n // 2]
        variance = sum((x - mean) ** 2 for x in numbers) / n
        stats = NumericStats(
            mean=mean,
            median=median,
            min=ordered[0],
            max=ordered[-1],
            std_dev=math.sqrt(variance),
            count=n,
        )

        distribution = Counter(numbers)
        histogram = tuple(
            HistogramBin(value=value, count=count, percentage=percent(count, n))
            for value, count in sorted(distribution.items())
        )
        return stats, histogram

    # ------------------------------------------------------------------
    # Text
    # ------------------------------------------------------------------

    @staticmethod
    def normalize_text(value) -> str:
        if isinstance(value, dict):
            lat = value.get('lat', value.get('latitude'))
            lng = value.get('lng', value.get('longitude'))
            if lat is not None and lng is not None:
                return f"{lat},{lng}"
        if isinstance(value, (list, tuple)):
            value = '; '.join(str(v) for v in value)
        return str(value).lower().strip()

    @classmethod
    def text_summary(cls, values):
        """Answered count and count of distinct answers after lowercase + trim."""
        unique = {cls.normalize_text(v) for v in values}
        return len(values), len(unique)

    @classmethod
    def aggregate_all(cls, fields, responses):
        responses = list(responses)
        analyses = [cls.aggregate(field, responses) for field in fields]
        logger.debug(f"Aggregated {len(analyses)} fields over {len(responses)} responses")
        return analyses
