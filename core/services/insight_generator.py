"""core/services/insight_generator.py"""
from dataclasses import replace
from typing import Optional

from core.conf import InsightThresholds, get_analytics_settings
from core.models_analytics import (
    FieldAnalysis,
    FieldDefinition,
    Insight,
    KIND_CATEGORICAL,
    KIND_NUMERIC,
    SENTIMENT_NEUTRAL,
    SENTIMENT_POSITIVE,
    SENTIMENT_WARNING,
)
from core.services.field_aggregator import FieldAggregator
from core.utils.helpers import format_number, percent


class InsightGenerator:
    """
    Clasificador por reglas que convierte los números agregados de un campo
    en una observación legible, un sentimiento y, cuando aplica, una
    recomendación.

    Es una función pura del análisis: mismos números, mismo texto.
    """

    TEMPLATES = {
        'NO_DATA': "No answers yet for this question.",
        'CATEGORICAL': {
            'concentration': (
                'Strong concentration: "{label}" dominates with {pct}% of answers '
                '({count} of {total}).'
            ),
            'concentration_rec': (
                "Check that the sample is representative before generalizing this "
                "preference; if it is, target it in your strategy."
            ),
            'concentration_market': (
                'High-potential segment: {pct}% of demand is concentrated on "{label}". '
                'Prioritize this segment.'
            ),
            'balanced': "Balanced distribution across {n} options. No marked preference.",
            'balanced_market': "Fragmented market: diversify the offer to cover several segments.",
            'leader': '"{label}" leads with {pct}% ({count}), followed by "{second}" ({second_pct}%).',
            'leader_single': '"{label}" leads with {pct}% ({count}).',
            'leader_market': (
                "Clear trend: focus on the dominant options, which account for "
                "{share}% of answers."
            ),
        },
        'RATING': {
            'positive': "Excellent score: {score} ({pct}%). Std dev: {std:.2f}.",
            'positive_market': (
                "High score means strong satisfaction. Use these positive "
                "testimonials in your communication."
            ),
            'neutral': "Satisfactory score: {score} ({pct}%). Room for improvement.",
            'neutral_rec': "Identify the factors holding satisfaction back to reach excellence.",
            'warning': "Low score: {score} ({pct}%). Attention required.",
            'warning_rec': "Analyze the causes of this low score and prioritize improvements.",
            'warning_market': "Risk of losing customers. Corrective action recommended.",
        },
        'NUMERIC': {
            'summary': "Mean: {mean:.1f} | Median: {median} | Range: {min}-{max} | Std dev: {std:.2f}",
            'dispersed': "High dispersion of values: the sample is heterogeneous. Segment your approach.",
            'homogeneous': "Low dispersion: the sample is homogeneous. A uniform strategy can work.",
        },
        'TEXT': {
            'summary': "{answered} text answers ({unique} unique).",
            'rec': "Review the answers to identify recurring themes and qualitative insights.",
            'market': "Open answers often reveal needs not covered by predefined options.",
        },
    }

    def __init__(self, thresholds: Optional[InsightThresholds] = None):
        self.thresholds = thresholds or get_analytics_settings().insight_thresholds

    # ------------------------------------------------------------------
    # API
    # ------------------------------------------------------------------

    def insight(self, analysis: FieldAnalysis, field: FieldDefinition) -> Insight:
        if analysis.kind == KIND_CATEGORICAL:
            return self.categorical_insight(analysis)
        if analysis.kind == KIND_NUMERIC:
            if field.is_rating:
                return self.rating_insight(analysis, field)
            return self.numeric_insight(analysis)
        return self.text_insight(analysis)

    def analyze(self, field: FieldDefinition, responses) -> FieldAnalysis:
        """Aggregate ``field`` over ``responses`` and attach its insight."""
        analysis = FieldAggregator.aggregate(field, responses)
        return self.attach(analysis, field)

    def attach(self, analysis: FieldAnalysis, field: FieldDefinition) -> FieldAnalysis:
        return replace(analysis, insight=self.insight(analysis, field))

    # ------------------------------------------------------------------
    # Reglas por tipo
    # ------------------------------------------------------------------

    def categorical_insight(self, analysis: FieldAnalysis) -> Insight:
        categories = analysis.categories
        if not categories:
            return Insight(comment=self.TEMPLATES['NO_DATA'])

        t = self.TEMPLATES['CATEGORICAL']
        top = categories[0]

        if top.percentage > self.thresholds.concentration_pct:
            return Insight(
                comment=t['concentration'].format(
                    label=top.option_label, pct=top.percentage,
                    count=top.count, total=analysis.total_mentions,
                ),
                sentiment=SENTIMENT_WARNING,
                recommendation=t['concentration_rec'],
                market_insight=t['concentration_market'].format(
                    pct=top.percentage, label=top.option_label
                ),
            )

        percentages = [c.percentage for c in categories]
        spread = max(percentages) - min(percentages)
        if len(categories) >= 2 and spread < self.thresholds.balance_spread_pct:
            return Insight(
                comment=t['balanced'].format(n=len(categories)),
                sentiment=SENTIMENT_NEUTRAL,
                market_insight=t['balanced_market'],
            )

        if len(categories) >= 2:
            second = categories[1]
            comment = t['leader'].format(
                label=top.option_label, pct=top.percentage, count=top.count,
                second=second.option_label, second_pct=second.percentage,
            )
        else:
            comment = t['leader_single'].format(
                label=top.option_label, pct=top.percentage, count=top.count
            )
        share = sum(c.percentage for c in categories[:3])
        return Insight(
            comment=comment,
            sentiment=SENTIMENT_POSITIVE,
            market_insight=t['leader_market'].format(share=share),
        )

    def rating_insight(self, analysis: FieldAnalysis, field: FieldDefinition) -> Insight:
        stats = analysis.stats
        if stats is None or stats.count == 0:
            return Insight(comment=self.TEMPLATES['NO_DATA'])

        t = self.TEMPLATES['RATING']
        max_value = field.max_value or self.thresholds.default_rating_max
        ratio = stats.mean / max_value * 100
        score = f"{stats.mean:.1f}/{format_number(max_value)}"
        values = {'score': score, 'pct': percent(stats.mean, max_value), 'std': stats.std_dev}

        if ratio >= self.thresholds.rating_positive_pct:
            return Insight(
                comment=t['positive'].format(**values),
                sentiment=SENTIMENT_POSITIVE,
                market_insight=t['positive_market'],
            )
        if ratio >= self.thresholds.rating_neutral_pct:
            return Insight(
                comment=t['neutral'].format(**values),
                sentiment=SENTIMENT_NEUTRAL,
                recommendation=t['neutral_rec'],
            )
        return Insight(
            comment=t['warning'].format(**values),
            sentiment=SENTIMENT_WARNING,
            recommendation=t['warning_rec'],
            market_insight=t['warning_market'],
        )

    def numeric_insight(self, analysis: FieldAnalysis) -> Insight:
        # Numéricos simples: siempre neutral, sin ramas de sentimiento.
        stats = analysis.stats
        if stats is None or stats.count == 0:
            return Insight(comment=self.TEMPLATES['NO_DATA'])

        t = self.TEMPLATES['NUMERIC']
        comment = t['summary'].format(
            mean=stats.mean,
            median=format_number(stats.median),
            min=format_number(stats.min),
            max=format_number(stats.max),
            std=stats.std_dev,
        )
        dispersed = stats.std_dev > stats.mean * self.thresholds.dispersion_ratio
        return Insight(
            comment=comment,
            sentiment=SENTIMENT_NEUTRAL,
            market_insight=t['dispersed'] if dispersed else t['homogeneous'],
        )

    def text_insight(self, analysis: FieldAnalysis) -> Insight:
        t = self.TEMPLATES['TEXT']
        answered = analysis.answered_count
        return Insight(
            comment=t['summary'].format(answered=answered, unique=analysis.unique_normalized_count),
            sentiment=SENTIMENT_NEUTRAL,
            recommendation=t['rec'] if answered > self.thresholds.text_recommendation_min else None,
            market_insight=t['market'] if answered > self.thresholds.text_market_insight_min else None,
        )
