"""Sources backed by JSON documents produced by external collectors.

A feed is a local file path or an http(s) URL. The document is either a list
of records or an object holding the list under ``signals`` / ``products``.
"""

import asyncio
import json
import logging
from datetime import datetime
from pathlib import Path

import httpx

from .base import (
    SIGNAL_KINDS,
    CandidateProduct,
    ProductSource,
    SignalQuery,
    SignalRecord,
    SignalSource,
    as_utc,
    product_id_from_url,
    utcnow,
)

logger = logging.getLogger(__name__)


class FeedError(Exception):
    """The feed could not be read or is not a list of records."""


def _is_url(location: str) -> bool:
    return location.startswith(("http://", "https://"))


def _parse_time(value) -> datetime:
    if isinstance(value, str) and value:
        try:
            return as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
        except ValueError:
            logger.debug("Unparseable timestamp %r", value)
    return utcnow()


def _number(value, default=0.0) -> float:
    """Float from a JSON number or numeric string; missing gives ``default``."""
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise ValueError(f"not a number: {value!r}")
    if isinstance(value, str):
        value = value.strip().lstrip("$").replace(",", "")
    return float(value)


def _records(document, key: str) -> list[dict]:
    if isinstance(document, dict):
        document = document.get(key, [])
    if not isinstance(document, list):
        raise FeedError(f"expected a list of {key}")
    return [item for item in document if isinstance(item, dict)]


def parse_signal(item: dict, origin: str) -> SignalRecord:
    """Raises ValueError for an unknown ``kind``."""
    kind = str(item.get("kind") or "search").strip().lower()
    if kind not in SIGNAL_KINDS:
        raise ValueError(f"unknown signal kind {kind!r}")
    return SignalRecord(
        key=str(item.get("key") or item.get("keyword") or item.get("hashtag") or ""),
        raw_score=_number(item.get("raw_score", item.get("score"))),
        origin=str(item.get("origin") or origin),
        kind=kind,
        related_terms=list(item.get("related_terms") or []),
        metadata=dict(item.get("metadata") or {}),
        observed_at=_parse_time(item.get("observed_at")),
    )


def parse_candidate(item: dict, platform: str) -> CandidateProduct:
    """Raises ValueError or TypeError when a numeric field cannot be read."""
    source_url = str(item.get("source_url") or item.get("url") or "")
    platform = str(item.get("platform") or platform)
    rank = item.get("rank")
    return CandidateProduct(
        id=str(item.get("id") or product_id_from_url(source_url, platform)),
        title=str(item.get("title") or ""),
        source_url=source_url,
        price=_number(item.get("price")),
        rating=_number(item.get("rating")),
        review_count=int(_number(item.get("review_count"), 0)),
        description=str(item.get("description") or ""),
        image_url=str(item.get("image_url") or ""),
        platform=platform,
        rank=int(_number(rank)) if rank not in (None, "") else None,
        origin_keywords=_keywords(item.get("origin_keywords")),
        observed_at=_parse_time(item.get("observed_at")),
    )


def _keywords(value) -> list[str]:
    if isinstance(value, str):
        return [value]
    return [str(k) for k in value or []]


def _parse_all(items: list[dict], parse, default: str, source_name: str) -> list:
    """Parse every record, skipping (and logging) the unreadable ones."""
    records = []
    for item in items:
        try:
            records.append(parse(item, default))
        except (TypeError, ValueError, OverflowError) as e:
            label = item.get("id") or item.get("title") or item.get("key") or "?"
            logger.warning("%s: skipping record %s: %s", source_name, label, e)
    return records


class _FeedReader:
    def __init__(self, location: str, client: httpx.AsyncClient | None = None, timeout: float = 30.0):
        self.location = location
        self._client = client
        self._own_client: httpx.AsyncClient | None = None
        self._timeout = timeout

    async def read(self):
        try:
            if _is_url(self.location):
                client = self._client or self._own_client
                if client is None:
                    client = self._own_client = httpx.AsyncClient(timeout=self._timeout)
                resp = await client.get(self.location)
                resp.raise_for_status()
                return resp.json()
            text = await asyncio.to_thread(Path(self.location).read_text, encoding="utf-8")
            return json.loads(text)
        except (httpx.HTTPError, OSError, ValueError) as e:
            raise FeedError(f"cannot read feed {self.location}: {e}") from e

    async def close(self) -> None:
        # Injected clients belong to the caller
        if self._own_client is not None:
            await self._own_client.aclose()
            self._own_client = None


class JsonFeedSignalSource(SignalSource):
    """Signals from a feed. Records without a key are skipped."""

    def __init__(
        self,
        location: str,
        name: str = "json_signals",
        required: bool = False,
        client: httpx.AsyncClient | None = None,
    ):
        self.source_name = name
        self.required = required
        self._reader = _FeedReader(location, client)

    async def fetch(self, query: SignalQuery) -> list[SignalRecord]:
        try:
            items = _records(await self._reader.read(), "signals")
        finally:
            await self._reader.close()
        signals = _parse_all(items, parse_signal, self.source_name, self.source_name)
        return [s for s in signals if s.key.strip()]


class JsonFeedProductSource(ProductSource):
    """Candidates from a feed, filtered per search term.

    The feed is read once and kept until ``close``. A record matches a term
    when the term appears in its title or its origin keywords.
    """

    def __init__(
        self,
        location: str,
        name: str = "json_products",
        platform: str = "web",
        client: httpx.AsyncClient | None = None,
    ):
        self.source_name = name
        self.platform = platform
        self._reader = _FeedReader(location, client)
        self._items: list[dict] | None = None

    async def _load(self) -> list[dict]:
        if self._items is None:
            self._items = _records(await self._reader.read(), "products")
            logger.info("Loaded %d records from %s", len(self._items), self._reader.location)
        return self._items

    async def search(self, keywords: list[str]) -> list[CandidateProduct]:
        terms = [k.lower() for k in keywords if k.strip()]
        matched = []
        for item in await self._load():
            haystack = " ".join(
                [str(item.get("title") or ""), *_keywords(item.get("origin_keywords"))]
            ).lower()
            if not terms or any(t in haystack for t in terms):
                matched.append(item)
        return _parse_all(matched, parse_candidate, self.platform, self.source_name)

    async def close(self) -> None:
        self._items = None
        await self._reader.close()
