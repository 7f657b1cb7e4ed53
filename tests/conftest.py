import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from ds_trend_pipeline.notifications import Event, NotificationEmitter
from ds_trend_pipeline.pipeline.errors import PublishFailed
from ds_trend_pipeline.pipeline.models import ScoredProduct, ScoredSignal
from ds_trend_pipeline.pipeline.runner import PipelineConfig
from ds_trend_pipeline.publish.base import PublishSink
from ds_trend_pipeline.sources.base import CandidateProduct, ProductSource, SignalRecord, SignalSource

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Monotonic clock whose sleeps advance time instantly."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: list[float] = []

    def monotonic(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def make_signal(key, score=90, kind="search", origin="index", metadata=None, **kwargs) -> SignalRecord:
    kwargs.setdefault("observed_at", T0)
    return SignalRecord(
        key=key, raw_score=score, origin=origin, kind=kind, metadata=metadata or {}, **kwargs
    )


def make_candidate(id="p1", title="Wireless Earbuds Pro Max", **kwargs) -> CandidateProduct:
    values = dict(
        source_url=f"https://shop.example.com/item/{id}",
        price=25.0,
        rating=4.6,
        review_count=800,
        description="Noise cancelling earbuds with a charging case.",
        image_url=f"https://img.example.com/{id}.jpg",
        observed_at=T0,
    )
    values.update(kwargs)
    return CandidateProduct(id=id, title=title, **values)


def make_scored(score, id="p1", **kwargs) -> ScoredProduct:
    return ScoredProduct.from_candidate(make_candidate(id=id, **kwargs), score)


def make_scored_signal(key, score, kind="search", **kwargs) -> ScoredSignal:
    return ScoredSignal.from_record(make_signal(key, score, kind=kind, **kwargs), score)


class StaticSignalSource(SignalSource):
    def __init__(self, name, records=(), error=None, required=False, delay=0.0):
        self.source_name = name
        self.required = required
        self.records = list(records)
        self.error = error
        self.delay = delay
        self.queries = []

    async def fetch(self, query):
        self.queries.append(query)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.records)


class ScriptedProductSource(ProductSource):
    """Answers each search term from a script; exceptions in the script are raised."""

    def __init__(self, name, script=None, default=(), clock=None, close_error=None):
        self.source_name = name
        self.script = dict(script or {})
        self.default = list(default)
        self.clock = clock
        self.close_error = close_error
        self.calls: list[tuple[str, float]] = []
        self.close_calls = 0

    async def search(self, keywords):
        term = keywords[0]
        self.calls.append((term, self.clock.monotonic() if self.clock else 0.0))
        response = self.script.get(term, self.default)
        if isinstance(response, Exception):
            raise response
        return list(response)

    async def close(self):
        self.close_calls += 1
        if self.close_error is not None:
            raise self.close_error


class RecordingSink(PublishSink):
    sink_name = "recording"

    def __init__(self, fail_ids=()):
        self.fail_ids = set(fail_ids)
        self.upserts: list[str] = []
        self.trending: list = []
        self.store: dict[str, ScoredProduct] = {}

    async def upsert(self, product, *, trending=None):
        self.upserts.append(product.id)
        self.trending.append(trending)
        if product.id in self.fail_ids:
            raise PublishFailed(product.id, "rejected by backend")
        self.store[product.id] = product
        return f"remote-{product.id}"


class RecordingNotifier(NotificationEmitter):
    def __init__(self, error=None):
        self.events: list[Event] = []
        self.error = error

    async def emit(self, event):
        self.events.append(event)
        if self.error is not None:
            raise self.error


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config():
    return PipelineConfig(source_delay=2.0, publish_delay=1.0, call_timeout=5.0)


@pytest.fixture
def later():
    return T0 + timedelta(hours=1)
