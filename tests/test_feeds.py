import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from ds_trend_pipeline.sources.base import CandidateProduct, SignalQuery, product_id_from_url
from ds_trend_pipeline.sources.json_feed import FeedError, JsonFeedProductSource, JsonFeedSignalSource

PRODUCTS = {
    "products": [
        {
            "title": "Wireless Earbuds with Charging Case",
            "url": "https://www.amazon.com/Earbuds/dp/B0ABCDE123/ref=zg",
            "price": 24.99,
            "rating": 4.4,
            "review_count": 1200,
            "image_url": "https://img.example.com/e.jpg",
            "observed_at": "2026-03-01T10:00:00Z",
        },
        {
            "title": "Smart Pet Camera",
            "source_url": "https://shop.example.com/pet-cam",
            "platform": "shopify",
            "rank": 3,
            "origin_keywords": ["pet camera"],
        },
    ]
}


def test_product_id_from_url():
    assert product_id_from_url("https://www.amazon.com/x/dp/B0ABCDE123?th=1") == "B0ABCDE123"
    generated = product_id_from_url("https://shop.example.com/pet-cam", "shopify")
    assert generated.startswith("shopify-")
    assert generated == product_id_from_url("https://shop.example.com/pet-cam ", "shopify")


@pytest.mark.asyncio
async def test_signal_feed_from_file(tmp_path):
    path = tmp_path / "signals.json"
    path.write_text(json.dumps([
        {"key": "air fryer", "raw_score": 88, "metadata": {"regions": [{"geo": "US-CA", "score": 100}]}},
        {"hashtag": "#desksetup", "kind": "social", "metadata": {"post_count": 40}},
        {"key": "  ", "raw_score": 50},
    ]))
    source = JsonFeedSignalSource(str(path), name="trends")
    signals = await source.fetch(SignalQuery())

    assert [(s.key, s.kind, s.origin) for s in signals] == [
        ("air fryer", "search", "trends"),
        ("#desksetup", "social", "trends"),
    ]
    assert signals[0].metadata["regions"][0]["geo"] == "US-CA"


@pytest.mark.asyncio
async def test_missing_signal_feed_raises(tmp_path):
    with pytest.raises(FeedError):
        await JsonFeedSignalSource(str(tmp_path / "nope.json")).fetch(SignalQuery())


@pytest.mark.asyncio
async def test_product_feed_over_http_filters_by_term():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json=PRODUCTS)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        source = JsonFeedProductSource("https://feeds.example.com/products.json", client=client)
        earbuds = await source.search(["wireless earbuds"])
        cameras = await source.search(["pet camera"])
        await source.close()
        await source.close()

    assert len(requests) == 1
    assert [c.id for c in earbuds] == ["B0ABCDE123"]
    assert earbuds[0].observed_at.year == 2026
    assert cameras[0].id.startswith("shopify-")
    assert cameras[0].rank == 3
    assert cameras[0].problems() == []


@pytest.mark.asyncio
async def test_product_feed_rejects_non_list_documents():
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"products": "none"}))
    async with httpx.AsyncClient(transport=transport) as client:
        source = JsonFeedProductSource("https://feeds.example.com/p.json", client=client)
        with pytest.raises(FeedError):
            await source.search(["anything"])


@pytest.mark.asyncio
async def test_unreadable_product_records_are_skipped(tmp_path):
    path = tmp_path / "products.json"
    path.write_text(json.dumps([
        {"id": "good", "title": "Portable Charger 20000mAh", "price": 24.5, "rating": 4.5},
        {"id": "text-price", "title": "Portable Charger Slim", "price": "$19.99", "review_count": "1,250"},
        {"id": "bad-price", "title": "Portable Charger Mini", "price": "cheap"},
        {"id": "bad-rank", "title": "Portable Charger Max", "rank": "n/a"},
    ]))
    source = JsonFeedProductSource(str(path))
    candidates = await source.search(["portable charger"])

    assert [c.id for c in candidates] == ["good", "text-price"]
    assert candidates[1].price == 19.99
    assert candidates[1].review_count == 1250
    assert all(c.problems() == [] for c in candidates)


def test_problems_reports_wrongly_typed_fields():
    candidate = CandidateProduct(
        id="raw", title="Raw Record Title", source_url="", price="19.99", rating=None, review_count="7",
    )
    assert candidate.problems() == [
        "non-numeric price", "non-numeric rating", "non-numeric review count",
    ]


@pytest.mark.asyncio
async def test_feed_timestamps_are_utc_aware(tmp_path):
    path = tmp_path / "products.json"
    path.write_text(json.dumps([
        {"id": "naive", "title": "Pet Camera Naive", "observed_at": "2026-01-01T00:00:00"},
        {"id": "offset", "title": "Pet Camera Offset", "observed_at": "2026-01-01T02:00:00+02:00"},
        {"id": "missing", "title": "Pet Camera Missing"},
    ]))
    candidates = await JsonFeedProductSource(str(path)).search(["pet camera"])

    assert [c.observed_at.utcoffset() for c in candidates] == [timedelta(0)] * 3
    assert candidates[0].observed_at == datetime(2026, 1, 1, tzinfo=timezone.utc)
    assert candidates[1].observed_at == datetime(2026, 1, 1, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_signal_kinds_are_validated(tmp_path):
    path = tmp_path / "signals.json"
    path.write_text(json.dumps([
        {"key": "#desksetup", "kind": "Social", "metadata": {"post_count": 40}},
        {"key": "lamp", "kind": "socail"},
        {"key": "air fryer", "raw_score": "88"},
    ]))
    signals = await JsonFeedSignalSource(str(path)).fetch(SignalQuery())

    assert [(s.key, s.kind, s.raw_score) for s in signals] == [
        ("#desksetup", "social", 0.0),
        ("air fryer", "search", 88.0),
    ]
