import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from ds_trend_pipeline.config import Settings, settings
from ds_trend_pipeline.service import build_orchestrator, run_pipeline

logger = logging.getLogger(__name__)


def _run_async(coro_func):
    """Wrapper for APScheduler to run async functions."""
    async def wrapper():
        try:
            await coro_func()
        except Exception as e:
            logger.error("Scheduled job %s failed: %s", coro_func.__name__, e)
    return wrapper


def make_pipeline_job(s: Settings = settings):
    async def run_trend_pipeline():
        result = await run_pipeline(build_orchestrator(s))
        logger.info(
            "Scheduled run finished: %d products, %d published",
            len(result.products), result.published_count,
        )
    return run_trend_pipeline


def setup_scheduler(s: Settings = settings) -> AsyncIOScheduler:
    """Configure and return the scheduler with the daily pipeline job."""
    scheduler = AsyncIOScheduler(timezone=s.pipeline_timezone)
    scheduler.add_job(
        _run_async(make_pipeline_job(s)),
        CronTrigger.from_crontab(s.pipeline_cron, timezone=s.pipeline_timezone),
        id="trend_pipeline",
        max_instances=1,
        coalesce=True,
        name="Trend Pipeline",
    )
    return scheduler
