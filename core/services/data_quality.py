"""core/services/data_quality.py"""
import json

from core.models_analytics import DataQuality, FieldCompleteness
from core.utils.helpers import is_answered, is_valid_coordinate, percent, round_half_up


class DataQualityAnalyzer:
    """Completitud, cobertura GPS y duplicados de un conjunto de respuestas."""

    WEIGHTS = {'completion': 0.4, 'gps': 0.3, 'uniqueness': 0.3}

    @staticmethod
    def is_complete(response, required_fields) -> bool:
        answers = response.answers or {}
        return all(is_answered(answers.get(f.id)) for f in required_fields)

    @staticmethod
    def has_gps(response) -> bool:
        location = getattr(response, 'location', None)
        return location is not None and is_valid_coordinate(location.lat, location.lng)

    @staticmethod
    def signature(response) -> str:
        """Same set of answer values, regardless of field order."""
        values = sorted(
            json.dumps(v, sort_keys=True, default=str) for v in (response.answers or {}).values()
        )
        return json.dumps(values)

    @classmethod
    def count_duplicates(cls, responses) -> int:
        seen = set()
        duplicates = 0
        for response in responses:
            sig = cls.signature(response)
            if sig in seen:
                duplicates += 1
            else:
                seen.add(sig)
        return duplicates

    @classmethod
    def analyze(cls, fields, responses) -> DataQuality:
        fields = list(fields)
        responses = list(responses)
        total = len(responses)
        if total == 0:
            return DataQuality()

        required = [f for f in fields if f.required]
        complete = sum(1 for r in responses if cls.is_complete(r, required))
        with_gps = sum(1 for r in responses if cls.has_gps(r))
        duplicates = cls.count_duplicates(responses)

        completion_rate = percent(complete, total)
        gps_rate = percent(with_gps, total)
        duplicate_rate = percent(duplicates, total)

        field_completeness = []
        for f in fields:
            filled = sum(1 for r in responses if is_answered((r.answers or {}).get(f.id)))
            field_completeness.append(FieldCompleteness(
                field_id=f.id, label=f.label, required=f.required,
                filled=filled, rate=percent(filled, total),
            ))

        score = (
            completion_rate * cls.WEIGHTS['completion']
            + gps_rate * cls.WEIGHTS['gps']
            + (100 - duplicate_rate) * cls.WEIGHTS['uniqueness']
        )
        return DataQuality(
            quality_score=int(round_half_up(score)),
            complete=complete,
            completion_rate=completion_rate,
            with_gps=with_gps,
            gps_rate=gps_rate,
            duplicates=duplicates,
            duplicate_rate=duplicate_rate,
            field_completeness=tuple(field_completeness),
        )
