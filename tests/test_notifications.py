import json

import httpx
import pytest

from conftest import make_scored
from ds_trend_pipeline.notifications import (
    Event,
    LoggingNotifier,
    WebhookNotifier,
    error_event,
    make_notifier,
    pipeline_complete_event,
)
from ds_trend_pipeline.pipeline.models import PublishOutcome, RunResult, SignalSummary


def test_pipeline_complete_event_summarizes_counts():
    result = RunResult(
        candidates=(make_scored(90, id="a"), make_scored(40, id="b")),
        products=(make_scored(90, id="a"),),
        publish_outcomes=(PublishOutcome("a", True), PublishOutcome("c", False)),
        recommendations=("one", "two", "three", "four"),
        signal_summary=SignalSummary(count=3, average=71.33),
    )
    event = pipeline_complete_event(result)
    text = event.text()
    assert event.kind == "pipeline_complete"
    assert "Signals: 3 (avg score 71.3)" in text
    assert "Products scored: 2" in text
    assert "Published: 1/2 (1 failed)" in text
    assert "• three" in text
    assert "four" not in text


def test_error_event_uses_class_name_for_blank_errors():
    assert "Error: ValueError" in error_event("collector", ValueError()).text()
    assert "Error: disk full" in error_event("collector", OSError("disk full")).text()


@pytest.mark.asyncio
async def test_webhook_posts_slack_style_message():
    posted = []

    def handler(request):
        posted.append(json.loads(request.content))
        return httpx.Response(200, text="ok")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        await WebhookNotifier("https://hooks.example.com/T1", client=client).emit(
            Event(kind="error", title="Error in test", lines=["Error: boom"])
        )

    assert posted == [{
        "text": "Error in test",
        "blocks": [{"type": "section", "text": {"type": "mrkdwn", "text": "*Error in test*\nError: boom"}}],
    }]


@pytest.mark.asyncio
async def test_webhook_transport_errors_are_swallowed():
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        notifier = WebhookNotifier("https://hooks.example.com/T1", client=client)
        await notifier.emit(Event(kind="error", title="x"))

    transport = httpx.MockTransport(lambda request: httpx.Response(500))
    async with httpx.AsyncClient(transport=transport) as client:
        await WebhookNotifier("https://hooks.example.com/T1", client=client).emit(Event(kind="error", title="x"))


def test_make_notifier_falls_back_to_logging():
    assert isinstance(make_notifier(""), LoggingNotifier)
    assert isinstance(make_notifier("https://hooks.example.com/T1"), WebhookNotifier)
