import hashlib
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone

_ASIN_RE = re.compile(r"/dp/([A-Z0-9]{10})")

SIGNAL_KINDS = ("search", "social", "rank")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Aware UTC datetime; naive values are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def product_id_from_url(url: str, platform: str = "web") -> str:
    """Stable listing id: the ASIN for Amazon-style URLs, else a URL hash."""
    match = _ASIN_RE.search(url or "")
    if match:
        return match.group(1)
    digest = hashlib.sha1((url or "").strip().encode("utf-8")).hexdigest()[:12]
    return f"{platform}-{digest}"


@dataclass(frozen=True)
class SignalQuery:
    """What a signal source is asked to look at."""

    keywords: list[str] = field(default_factory=list)
    geo: str = "US"
    timeframe: str = "today 1-m"


@dataclass(frozen=True)
class SignalRecord:
    """A single trend indicator (keyword or hashtag) from any signal source."""

    key: str
    raw_score: float
    origin: str  # e.g. "google_trends", "tiktok", "instagram"
    kind: str = "search"  # one of SIGNAL_KINDS
    related_terms: list[str] = field(default_factory=list)
    metadata: dict = field(default_factory=dict)
    observed_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class CandidateProduct:
    """A not-yet-validated marketplace listing.

    ``id`` is the deduplication key: equal ids are the same real listing.
    ``rank`` is set for rank-only listings (bestseller pages) that carry no
    rating/review data.
    """

    id: str
    title: str
    source_url: str
    price: float = 0.0
    rating: float = 0.0
    review_count: int = 0
    description: str = ""
    image_url: str = ""
    platform: str = "web"
    rank: int | None = None
    origin_keywords: list[str] = field(default_factory=list)
    observed_at: datetime = field(default_factory=utcnow)

    def problems(self) -> list[str]:
        """Structural defects that make the record unusable before scoring."""
        issues = []
        if not self.id or not isinstance(self.id, str):
            issues.append("missing id")
        if not isinstance(self.title, str) or not self.title.strip():
            issues.append("missing title")
        if not _is_number(self.price):
            issues.append("non-numeric price")
        elif self.price < 0:
            issues.append("negative price")
        if not _is_number(self.rating):
            issues.append("non-numeric rating")
        elif not 0 <= self.rating <= 5:
            issues.append("rating outside 0..5")
        if not _is_number(self.review_count):
            issues.append("non-numeric review count")
        elif self.review_count < 0:
            issues.append("negative review count")
        if self.rank is not None and not _is_number(self.rank):
            issues.append("non-numeric rank")
        if not isinstance(self.observed_at, datetime):
            issues.append("missing observation time")
        return issues


def field_values(record) -> dict:
    """Shallow field dict of a dataclass record (lists are not copied)."""
    return {f.name: getattr(record, f.name) for f in fields(record)}


class SignalSource(ABC):
    """Abstract base for trend channels (keyword indices, social hashtags)."""

    source_name: str = "unknown"
    # A required source that raises aborts the run.
    required: bool = False

    @abstractmethod
    async def fetch(self, query: SignalQuery) -> list[SignalRecord]:
        """Collect signal records for the query."""
        ...


class ProductSource(ABC):
    """Abstract base for marketplace channels.

    Implementations holding a browser/session handle release it in ``close``,
    which must be safe to call when never opened or already closed.
    """

    source_name: str = "unknown"

    @abstractmethod
    async def search(self, keywords: list[str]) -> list[CandidateProduct]:
        """Return candidate listings for the given query terms."""
        ...

    async def close(self) -> None:
        return None
