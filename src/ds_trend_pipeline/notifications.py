"""Best-effort run notifications.

Emitters log and swallow their own transport errors; a notification problem
never fails a pipeline run.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime

import httpx

from ds_trend_pipeline.pipeline.models import RunResult
from ds_trend_pipeline.sources.base import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Event:
    kind: str  # "pipeline_complete" | "error"
    title: str
    lines: list[str] = field(default_factory=list)
    occurred_at: datetime = field(default_factory=utcnow)

    def text(self) -> str:
        return "\n".join([f"*{self.title}*", *self.lines])


def pipeline_complete_event(result: RunResult) -> Event:
    outcomes = result.publish_outcomes
    lines = [
        f"• Signals: {result.signal_summary.count} (avg score {result.signal_summary.average:.1f})",
        f"• Products scored: {len(result.candidates)}",
        f"• Shortlisted: {len(result.products)}",
        f"• Published: {result.published_count}/{len(outcomes)}"
        f" ({len(outcomes) - result.published_count} failed)",
        f"• Recommendations: {len(result.recommendations)}",
    ]
    if result.recommendations:
        lines.append("")
        lines.append("*Top Recommendations:*")
        lines.extend(f"• {r}" for r in result.recommendations[:3])
    return Event(kind="pipeline_complete", title="Trend pipeline complete", lines=lines)


def error_event(service: str, error: BaseException) -> Event:
    return Event(
        kind="error",
        title=f"Error in {service}",
        lines=[f"Error: {str(error) or type(error).__name__}", f"Time: {utcnow().isoformat()}"],
    )


class NotificationEmitter(ABC):
    @abstractmethod
    async def emit(self, event: Event) -> None:
        ...


class LoggingNotifier(NotificationEmitter):
    """Used when no webhook is configured."""

    async def emit(self, event: Event) -> None:
        logger.info("Notification [%s] %s", event.kind, event.text().replace("\n", " | "))


class WebhookNotifier(NotificationEmitter):
    """Posts Slack-style ``{text, blocks}`` messages to a webhook URL."""

    def __init__(self, url: str, client: httpx.AsyncClient | None = None, timeout: float = 5.0):
        self.url = url
        self._client = client
        self._timeout = timeout

    def _message(self, event: Event) -> dict:
        return {
            "text": event.title,
            "blocks": [
                {"type": "section", "text": {"type": "mrkdwn", "text": event.text()}},
            ],
        }

    async def _post(self, message: dict) -> httpx.Response:
        if self._client is not None:
            return await self._client.post(self.url, json=message, timeout=self._timeout)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.post(self.url, json=message)

    async def emit(self, event: Event) -> None:
        if not self.url:
            logger.warning("Webhook URL not configured, skipping notification")
            return
        try:
            resp = await self._post(self._message(event))
            resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("Error sending %s notification: %s", event.kind, e)
            return
        logger.info("%s notification sent", event.kind)


def make_notifier(webhook_url: str, client: httpx.AsyncClient | None = None) -> NotificationEmitter:
    if webhook_url:
        return WebhookNotifier(webhook_url, client=client)
    return LoggingNotifier()
