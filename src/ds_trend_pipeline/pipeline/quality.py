from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ds_trend_pipeline.config import Settings
from ds_trend_pipeline.sources.base import as_utc

from .errors import ItemRejected
from .models import ScoredProduct

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QualityRules:
    min_score: float = 70.0
    min_price: float = 10.0
    max_price: float = 500.0
    min_rating: float = 3.5
    # Listings with no reviews yet are not held to the rating floor
    exempt_unreviewed: bool = True
    min_title_length: int = 10
    max_results: int = 20

    @classmethod
    def from_settings(cls, s: Settings) -> QualityRules:
        return cls(
            min_score=s.min_score,
            min_price=s.min_price,
            max_price=s.max_price,
            min_rating=s.min_rating,
            exempt_unreviewed=s.exempt_unreviewed,
            min_title_length=s.min_title_length,
            max_results=s.max_results,
        )


DEFAULT_RULES = QualityRules()


@dataclass
class FilterReport:
    kept: list[ScoredProduct] = field(default_factory=list)
    rejected: list[ItemRejected] = field(default_factory=list)
    duplicates: int = 0


def rejection_reasons(product: ScoredProduct, rules: QualityRules = DEFAULT_RULES) -> list[str]:
    """Every rule the product breaks; empty when it passes."""
    reasons = []
    if product.trend_score < rules.min_score:
        reasons.append(f"score {product.trend_score} < {rules.min_score:g}")
    if not rules.min_price <= product.price <= rules.max_price:
        reasons.append(f"price {product.price:g} outside {rules.min_price:g}..{rules.max_price:g}")
    unreviewed = product.review_count == 0 and rules.exempt_unreviewed
    if product.rating < rules.min_rating and not unreviewed:
        reasons.append(f"rating {product.rating:g} < {rules.min_rating:g}")
    if len(product.title or "") < rules.min_title_length:
        reasons.append("title too short")
    if not product.image_url:
        reasons.append("no image")
    return reasons


def _preferred(current: ScoredProduct, other: ScoredProduct) -> ScoredProduct:
    """Higher score wins; on a tie the earlier observation wins."""
    if other.trend_score != current.trend_score:
        return other if other.trend_score > current.trend_score else current
    return other if as_utc(other.observed_at) < as_utc(current.observed_at) else current


def deduplicate(products: list[ScoredProduct]) -> list[ScoredProduct]:
    """Keep one entry per id, preserving first-seen order of ids."""
    best: dict[str, ScoredProduct] = {}
    for p in products:
        best[p.id] = _preferred(best[p.id], p) if p.id in best else p
    return list(best.values())


def rank_key(product: ScoredProduct):
    return (-product.trend_score, -product.review_count, product.id)


def filter_with_report(
    candidates: list[ScoredProduct], rules: QualityRules = DEFAULT_RULES
) -> FilterReport:
    report = FilterReport()
    valid = []
    for product in candidates:
        reasons = rejection_reasons(product, rules)
        if reasons:
            report.rejected.append(ItemRejected(product.id, reasons))
            logger.debug("Rejected %s: %s", product.id, "; ".join(reasons))
            continue
        valid.append(product)

    unique = deduplicate(valid)
    report.duplicates = len(valid) - len(unique)
    report.kept = sorted(unique, key=rank_key)[: max(rules.max_results, 0)]
    return report


def filter_products(
    candidates: list[ScoredProduct], rules: QualityRules = DEFAULT_RULES
) -> list[ScoredProduct]:
    """Validate, deduplicate by id, rank and truncate to the top ``max_results``."""
    return filter_with_report(candidates, rules).kept
