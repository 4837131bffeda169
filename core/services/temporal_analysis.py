"""core/services/temporal_analysis.py"""
from collections import Counter
from typing import Tuple

from core.models_analytics import NamedCount, TemporalPatterns, TimelineBucket
from core.utils.helpers import local_datetime, local_day, percent, round_half_up


class TimelineEngine:
    """Evolución temporal de la recolección, siempre en la zona horaria del proyecto."""

    WEEKDAYS = ('Mon', 'Tue', 'Wed', 'Thu', 'Fri', 'Sat', 'Sun')
    TREND_WINDOW = 7

    @staticmethod
    def _timestamps(responses):
        return [r.created_at for r in responses if getattr(r, 'created_at', None) is not None]

    @classmethod
    def daily_counts(cls, responses):
        """All (day, count) pairs in chronological order."""
        counts = Counter(local_day(moment) for moment in cls._timestamps(responses))
        return sorted(counts.items())

    @classmethod
    def daily_timeline(cls, responses, days: int = 14) -> Tuple[TimelineBucket, ...]:
        """
        Los ``days`` días con respuestas más recientes, del más antiguo al
        más reciente, etiquetados ``dd/MM``.
        """
        recent = cls.daily_counts(responses)[-days:] if days > 0 else []
        return tuple(
            TimelineBucket(day=day, label=day.strftime('%d/%m'), count=count)
            for day, count in recent
        )

    @classmethod
    def patterns(cls, responses) -> TemporalPatterns:
        moments = [local_datetime(m) for m in cls._timestamps(responses)]
        if not moments:
            return TemporalPatterns()

        total = len(moments)
        weekday_counts = Counter(m.weekday() for m in moments)
        hour_counts = Counter(m.hour for m in moments)

        by_weekday = tuple(
            NamedCount(name=name, count=weekday_counts.get(i, 0), percentage=percent(weekday_counts.get(i, 0), total))
            for i, name in enumerate(cls.WEEKDAYS)
        )
        by_hour = tuple(
            NamedCount(name=f"{h}h", count=hour_counts.get(h, 0), percentage=percent(hour_counts.get(h, 0), total))
            for h in range(24)
        )
        # max() devuelve el primero en caso de empate
        peak_day = max(by_weekday, key=lambda d: d.count)
        peak_hour = max(by_hour, key=lambda h: h.count)

        daily = cls.daily_counts(responses)
        return TemporalPatterns(
            by_weekday=by_weekday,
            by_hour=by_hour,
            peak_day=peak_day.name,
            peak_hour=peak_hour.name,
            trend_pct=cls.trend(daily),
            days_active=len(daily),
            first_day=daily[0][0],
            last_day=daily[-1][0],
        )

    @classmethod
    def trend(cls, daily) -> int:
        """
        Average of the last 7 active days against the 7 before them, as an
        integer percentage; 0 when there is no previous window.
        """
        window = cls.TREND_WINDOW
        recent = [count for _, count in daily[-window:]]
        previous = [count for _, count in daily[-2 * window:-window]]
        if not previous:
            return 0
        recent_avg = sum(recent) / max(len(recent), 1)
        previous_avg = sum(previous) / len(previous)
        if previous_avg <= 0:
            return 0
        return int(round_half_up((recent_avg - previous_avg) / previous_avg * 100))
