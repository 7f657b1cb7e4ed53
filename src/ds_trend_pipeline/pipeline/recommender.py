"""Actionable recommendation lines derived from a run's results.

Pure functions of the run data collected so far. At most one line per rule,
always in rule order.
"""

from __future__ import annotations

from .models import ScoredProduct, ScoredSignal, SignalSummary
from .scoring import rank_signals

HIGH_SIGNAL_SCORE = 80
HIGH_SOCIAL_SCORE = 70
HIGH_PRODUCT_SCORE = 75
MIN_PROVEN_REVIEWS = 100


def generate_recommendations(
    signals: list[ScoredSignal],
    products: list[ScoredProduct],
    summary: SignalSummary,
) -> list[str]:
    recommendations: list[str] = []
    ranked = rank_signals(list(signals))

    # High-scoring search trends
    high = [s for s in ranked if s.kind != "social" and s.trend_score >= HIGH_SIGNAL_SCORE]
    if high:
        recommendations.append(
            "Focus on high-scoring trends: " + ", ".join(s.key for s in high[:3])
        )

    # Trending social hashtags
    social = [s for s in ranked if s.kind == "social" and s.trend_score >= HIGH_SOCIAL_SCORE]
    if social:
        recommendations.append(
            "Leverage trending social hashtags: " + ", ".join(s.key for s in social[:3])
        )

    proven = [
        p for p in products
        if p.trend_score >= HIGH_PRODUCT_SCORE and p.review_count >= MIN_PROVEN_REVIEWS
    ]
    if proven:
        recommendations.append(
            f"Consider sourcing: {len(proven)} high-potential products identified"
        )

    if summary.top_regions:
        recommendations.append(
            "Target regions: " + ", ".join(r.geo_name or r.geo for r in summary.top_regions[:2])
        )

    return recommendations
