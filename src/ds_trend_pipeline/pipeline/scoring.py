"""Normalize heterogeneous source metrics into a 0-100 trend score.

All functions are pure: identical inputs and weights give identical output.
Missing, zero, negative or NaN metrics contribute nothing; results are always
clamped to [0, 100].
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from ds_trend_pipeline.config import Settings
from ds_trend_pipeline.sources.base import CandidateProduct, SignalRecord

from .models import ScoredProduct, ScoredSignal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScoringWeights:
    # Marketplace listings (sum = 1.00)
    rating_weight: float = 0.4
    review_weight: float = 0.4
    price_weight: float = 0.2
    ref_reviews: float = 1000.0
    ref_price: float = 200.0
    # Social signals; views are a bonus on top
    post_weight: float = 0.4
    engagement_weight: float = 0.4
    view_weight: float = 0.2
    ref_posts: float = 100.0
    ref_engagement: float = 10.0
    ref_views: float = 1_000_000.0
    # Rank-only listings
    max_rank: int = 100

    @classmethod
    def from_settings(cls, s: Settings) -> ScoringWeights:
        return cls(
            rating_weight=s.rating_weight,
            review_weight=s.review_weight,
            price_weight=s.price_weight,
            ref_reviews=s.ref_reviews,
            ref_price=s.ref_price,
            post_weight=s.post_weight,
            engagement_weight=s.engagement_weight,
            view_weight=s.view_weight,
            ref_posts=s.ref_posts,
            ref_engagement=s.ref_engagement,
            ref_views=s.ref_views,
            max_rank=s.max_rank,
        )


DEFAULT_WEIGHTS = ScoringWeights()


def _metric(value) -> float:
    """Coerce a raw metric to a non-negative finite-or-inf float; bad input -> 0."""
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(value) or value <= 0:
        return 0.0
    return value


def _ratio(value: float, reference: float) -> float:
    """min(value / reference, 1) with a zero reference treated as no signal."""
    if reference <= 0:
        return 0.0
    return min(value / reference, 1.0)


def _finalize(score: float) -> int:
    """Round half up and clamp to [0, 100]."""
    if math.isnan(score):
        return 0
    score = min(max(score, 0.0), 100.0)
    return int(math.floor(score + 0.5))


def score_marketplace_item(
    rating, review_count, price, weights: ScoringWeights = DEFAULT_WEIGHTS
) -> int:
    """Score a listing with rating/review/price data. Cheaper is better."""
    rating_norm = min(_metric(rating) / 5, 1.0)
    review_norm = _ratio(_metric(review_count), weights.ref_reviews)

    price_val = _metric(price)
    # A missing price is the worst case, not a free item
    if price_val == 0 or weights.ref_price <= 0:
        price_norm = 0.0
    else:
        price_norm = max(0.0, 1 - price_val / weights.ref_price)

    score = (
        rating_norm * weights.rating_weight
        + review_norm * weights.review_weight
        + price_norm * weights.price_weight
    ) * 100
    return _finalize(score)


def score_by_rank(rank, max_rank: int = 100) -> int:
    """Score a rank-only listing, linear from rank 1 -> 100 down to 0 past ``max_rank``.

    This is ``100 - (rank - 1) * 100 / max_rank``, not the plain
    ``max(0, 100 - rank)``: the plain form gives 99 for the top rank, and rank 1
    must be the maximum score. With the default ``max_rank=100`` each rank
    costs one point.
    """
    rank_val = _metric(rank)
    if rank_val < 1 or max_rank <= 0:
        return 0
    return _finalize(100 - (rank_val - 1) * 100 / max_rank)


def score_social_signal(
    post_count,
    engagement_rate,
    views=None,
    weights: ScoringWeights = DEFAULT_WEIGHTS,
) -> int:
    """Score a hashtag by volume and engagement, plus an optional view bonus."""
    post_norm = _ratio(_metric(post_count), weights.ref_posts)
    engagement_norm = _ratio(_metric(engagement_rate), weights.ref_engagement)

    score = (post_norm * weights.post_weight + engagement_norm * weights.engagement_weight) * 100

    views_val = _metric(views)
    if views_val:
        score += _ratio(views_val, weights.ref_views) * weights.view_weight * 100

    return _finalize(score)


def score_signal(record: SignalRecord, weights: ScoringWeights = DEFAULT_WEIGHTS) -> ScoredSignal:
    """Dispatch on the signal kind and return a scored copy."""
    meta = record.metadata or {}
    if record.kind == "social":
        score = score_social_signal(
            meta.get("post_count"),
            meta.get("engagement_rate"),
            meta.get("total_views"),
            weights,
        )
    elif record.kind == "rank":
        score = score_by_rank(meta.get("rank", record.raw_score), weights.max_rank)
    else:
        # Search indices are already on a 0-100 scale
        score = _finalize(_metric(record.raw_score))
    return ScoredSignal.from_record(record, score)


def score_candidate(
    candidate: CandidateProduct, weights: ScoringWeights = DEFAULT_WEIGHTS
) -> ScoredProduct:
    """Rank-only listings use their rank, everything else its listing metrics."""
    if candidate.rank is not None:
        score = score_by_rank(candidate.rank, weights.max_rank)
    else:
        score = score_marketplace_item(
            candidate.rating, candidate.review_count, candidate.price, weights
        )
    return ScoredProduct.from_candidate(candidate, score)


def rank_signals(signals: list[ScoredSignal]) -> list[ScoredSignal]:
    """Highest score first; ties by key for a stable order."""
    return sorted(signals, key=lambda s: (-s.trend_score, s.key.lower()))
