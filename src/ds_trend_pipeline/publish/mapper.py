"""Map a scored listing onto the catalog schema consumers expect.

The JSON field names (``sourceURL``, ``trendScore``, ``metadata.sourceID`` ...)
are a contract with downstream readers and must not change.
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from ds_trend_pipeline.config import Settings
from ds_trend_pipeline.pipeline.models import ScoredProduct, ScoredSignal
from ds_trend_pipeline.pipeline.normalizer import strip_marketplace_names
from ds_trend_pipeline.sources.base import utcnow

DEFAULT_CATEGORY = "General"

# Category -> lower-case substrings looked up in the title and origin keywords
TAXONOMY: dict[str, list[str]] = {
    "Electronics": ["wireless", "bluetooth", "charger", "earbuds", "speaker", "usb", "led", "camera"],
    "Home & Kitchen": ["kitchen", "air fryer", "blender", "organizer", "lamp", "mug", "tumbler"],
    "Beauty & Personal Care": ["skin", "serum", "hair", "makeup", "personal care", "beauty"],
    "Health & Wellness": ["wellness", "health", "massage", "posture", "sleep"],
    "Fitness & Outdoors": ["fitness", "yoga", "resistance band", "gym", "camping", "hiking"],
    "Pet Supplies": ["pet", "dog", "cat", "leash", "litter"],
    "Toys & Gadgets": ["toy", "fidget", "puzzle", "gadget", "game"],
}

FEATURE_KEYWORDS = [
    "waterproof", "rechargeable", "silicone", "wireless", "portable",
    "premium", "quiet", "powerful", "ergonomic", "durable", "flexible",
]

MAX_TAGS = 10


@dataclass(frozen=True)
class PublishPolicy:
    publish_threshold: float = 85.0
    title_max_length: int = 80
    slug_max_length: int = 50
    taxonomy: dict[str, list[str]] = field(default_factory=lambda: dict(TAXONOMY))
    default_category: str = DEFAULT_CATEGORY
    meta_title_suffix: str = "Trending Picks"

    @classmethod
    def from_settings(cls, s: Settings) -> PublishPolicy:
        return cls(
            publish_threshold=s.publish_threshold,
            title_max_length=s.title_max_length,
            slug_max_length=s.slug_max_length,
        )


class CatalogMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    source_id: str = Field(alias="sourceID")
    rating: float
    review_count: int = Field(alias="reviewCount")
    scraped_at: datetime = Field(alias="scrapedAt")
    last_updated: datetime = Field(alias="lastUpdated")


class CatalogSeo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    meta_title: str = Field(alias="metaTitle")
    meta_description: str = Field(alias="metaDescription")
    slug: str


class CatalogProduct(BaseModel):
    """Wire shape of a published product."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    description: str = ""
    content: str = ""
    price: float
    images: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)
    source_url: str = Field(alias="sourceURL")
    trend_score: int = Field(alias="trendScore")
    metadata: CatalogMetadata
    seo: CatalogSeo
    status: Literal["draft", "published", "pending_review"] = "draft"

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


def clean_title(title: str, max_length: int = 80) -> str:
    """Drop marketplace names and punctuation (hyphens survive), collapse spaces."""
    text = strip_marketplace_names(title or "")
    text = re.sub(r"[^\w\s-]|_", "", text)
    text = re.sub(r"\s+", " ", text).strip()
    return text[:max_length].strip()


def make_slug(text: str, max_length: int = 50) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", (text or "").lower())
    slug = re.sub(r"-+", "-", slug).strip("-")
    return slug[:max_length].strip("-")


def infer_categories(product: ScoredProduct, policy: PublishPolicy) -> list[str]:
    haystack = " ".join([product.title, *product.origin_keywords]).lower()
    categories = [
        name for name, needles in policy.taxonomy.items()
        if any(n in haystack for n in needles)
    ]
    return categories or [policy.default_category]


def generate_tags(
    product: ScoredProduct,
    trending: list[ScoredSignal],
    policy: PublishPolicy,
) -> list[str]:
    tags: dict[str, None] = {}
    for kw in product.origin_keywords:
        if kw.strip():
            tags[kw.strip().lower()] = None
    for sig in trending[:5]:
        tags[sig.key.lstrip("#").lower()] = None

    if product.rating >= 4.5:
        tags["premium"] = None
    if product.review_count >= 200:
        tags["popular"] = None
    if product.trend_score >= policy.publish_threshold:
        tags["trending"] = None
    if 0 < product.price < 30:
        tags["affordable"] = None
    return list(tags)[:MAX_TAGS]


def _trend_context(product: ScoredProduct, trending: list[ScoredSignal]) -> str | None:
    keywords = [k.lower() for k in product.origin_keywords]
    for sig in trending:
        key = sig.key.lstrip("#").lower()
        if any(key in k or k in key for k in keywords if k):
            return f'Trending now: matches the "{sig.key}" trend (score {sig.trend_score})'
    return None


def _features(title: str) -> list[str]:
    lower = title.lower()
    return [kw.capitalize() for kw in FEATURE_KEYWORDS if kw in lower]


def _benefits(product: ScoredProduct) -> list[str]:
    benefits = []
    if product.rating >= 4.0:
        benefits.append("Highly rated by customers")
    if product.review_count >= 100:
        benefits.append("Proven customer satisfaction")
    if 0 < product.price < 50:
        benefits.append("Affordable quality")
    elif product.price > 100:
        benefits.append("Premium quality construction")
    if product.trend_score >= 80:
        benefits.append("Currently trending product")
    return benefits


def build_content(product: ScoredProduct, trending: list[ScoredSignal]) -> str:
    """HTML body with trend context, features, benefits and score meta."""
    parts = ['<div class="product-content">']
    context = _trend_context(product, trending)
    if context:
        parts.append(f'<div class="trend-highlight">{html.escape(context)}</div>')
    parts.append(f'<div class="product-description"><p>{html.escape(product.description)}</p></div>')

    for heading, items in (("Key Features", _features(product.title)), ("Benefits", _benefits(product))):
        if items:
            lis = "".join(f"<li>{html.escape(i)}</li>" for i in items)
            parts.append(f"<h3>{heading}:</h3><ul>{lis}</ul>")

    meta = f"<p><strong>Trend Score:</strong> {product.trend_score}/100</p>"
    if product.rating > 0:
        meta += (
            f"<p><strong>Rating:</strong> {product.rating:g}/5 "
            f"({product.review_count} reviews)</p>"
        )
    parts.append(f'<div class="product-meta">{meta}</div>')
    parts.append("</div>")
    return "".join(parts)


def status_for(trend_score: float, policy: PublishPolicy) -> str:
    return "published" if trend_score >= policy.publish_threshold else "draft"


def to_catalog_product(
    product: ScoredProduct,
    *,
    images: list[str] | None = None,
    trending: list[ScoredSignal] | None = None,
    policy: PublishPolicy | None = None,
    now: datetime | None = None,
) -> CatalogProduct:
    policy = policy or PublishPolicy()
    trending = trending or []
    title = clean_title(product.title, policy.title_max_length)

    return CatalogProduct(
        id=product.id,
        title=title,
        description=product.description,
        content=build_content(product, trending),
        price=product.price,
        images=list(images or []),
        tags=generate_tags(product, trending, policy),
        categories=infer_categories(product, policy),
        source_url=product.source_url,
        trend_score=product.trend_score,
        metadata=CatalogMetadata(
            source_id=product.id,
            rating=product.rating,
            review_count=product.review_count,
            scraped_at=product.observed_at,
            last_updated=now or utcnow(),
        ),
        seo=CatalogSeo(
            meta_title=f"{title} - {policy.meta_title_suffix}",
            meta_description=(
                f"Discover {title.lower()}. Rated {product.rating:g}/5, "
                f"trend score {product.trend_score}/100."
            ),
            slug=make_slug(title, policy.slug_max_length),
        ),
        status=status_for(product.trend_score, policy),
    )
