"""Wiring: builds an orchestrator from settings and runs it with history."""

import logging

from sqlalchemy.exc import SQLAlchemyError

from ds_trend_pipeline.config import Settings
from ds_trend_pipeline.db import session as db
from ds_trend_pipeline.notifications import make_notifier
from ds_trend_pipeline.pipeline.errors import FatalDependencyFailure
from ds_trend_pipeline.pipeline.models import RunResult
from ds_trend_pipeline.pipeline.quality import QualityRules
from ds_trend_pipeline.pipeline.runner import PipelineConfig, PipelineOrchestrator
from ds_trend_pipeline.pipeline.scoring import ScoringWeights
from ds_trend_pipeline.publish.assets import AssetProcessor
from ds_trend_pipeline.publish.base import PublishSink
from ds_trend_pipeline.publish.http_sink import HttpCatalogSink
from ds_trend_pipeline.publish.mapper import PublishPolicy
from ds_trend_pipeline.publish.sql_sink import SqlCatalogSink
from ds_trend_pipeline.sources.json_feed import JsonFeedProductSource, JsonFeedSignalSource

logger = logging.getLogger(__name__)

SINK_KINDS = ("none", "cms", "db")


def build_sink(kind: str, s: Settings) -> PublishSink | None:
    if kind == "none":
        return None
    options = dict(
        policy=PublishPolicy.from_settings(s),
        processor=AssetProcessor(s.image_dir, s.image_url_prefix),
    )
    if kind == "cms":
        return HttpCatalogSink(s.cms_api_url, s.cms_api_key, **options)
    if kind == "db":
        return SqlCatalogSink(db.async_session_factory, **options)
    raise ValueError(f"Unknown sink {kind!r}, expected one of {', '.join(SINK_KINDS)}")


def build_orchestrator(
    s: Settings,
    signal_feeds: list[str] | None = None,
    product_feeds: list[str] | None = None,
    sink: str | None = None,
) -> PipelineOrchestrator:
    """Fresh sources per call: sources hold per-run resources."""
    signal_feeds = s.signal_feeds if signal_feeds is None else signal_feeds
    product_feeds = s.product_feeds if product_feeds is None else product_feeds

    signal_sources = [
        JsonFeedSignalSource(loc, name=f"signals[{i}]") for i, loc in enumerate(signal_feeds)
    ]
    product_sources = [
        JsonFeedProductSource(loc, name=f"products[{i}]") for i, loc in enumerate(product_feeds)
    ]
    return PipelineOrchestrator(
        signal_sources,
        product_sources,
        sink=build_sink(sink or s.publish_sink, s),
        notifier=make_notifier(s.webhook_url),
        weights=ScoringWeights.from_settings(s),
        rules=QualityRules.from_settings(s),
        config=PipelineConfig.from_settings(s),
    )


async def record_run(result: RunResult | None) -> None:
    """Store run history. A database problem is logged, never raised."""
    if result is None:
        return
    try:
        await db.init_db()
        async with db.async_session_factory() as session:
            row = await db.store_run(session, result)
    except SQLAlchemyError as e:
        logger.error("Failed to store run history (%s): %s", result.stage.value, e)
        return
    logger.info("Stored run %d (%s)", row.id, result.stage.value)


async def run_pipeline(orchestrator: PipelineOrchestrator) -> RunResult:
    """One run; the result is stored even when the run failed."""
    if isinstance(orchestrator.sink, SqlCatalogSink):
        await db.init_db()
    try:
        result = await orchestrator.run()
    except FatalDependencyFailure as e:
        await record_run(e.result)
        raise
    await record_run(result)
    return result
