"""Command-line entry point.

Usage:
  python -m ds_trend_pipeline run --signals trends.json --products listings.json
  python -m ds_trend_pipeline run --sink db                # feeds from settings
  python -m ds_trend_pipeline schedule                     # daily cron job
"""

import argparse
import asyncio
import json
import logging
import sys

from ds_trend_pipeline.config import settings
from ds_trend_pipeline.pipeline.errors import FatalDependencyFailure
from ds_trend_pipeline.service import SINK_KINDS, build_orchestrator, run_pipeline
from ds_trend_pipeline.utils.logs import configure_logging

logger = logging.getLogger(__name__)


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ds-trend-pipeline",
        description="Aggregate trend signals, score marketplace listings and publish a shortlist.",
    )
    parser.add_argument("--log-level", default=settings.log_level, help="Logging level (default: %(default)s)")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Execute one pipeline run and print the result as JSON")
    run.add_argument(
        "--signals", action="append", metavar="FEED",
        help="Signal feed file or URL (repeatable; default: settings.signal_feeds)",
    )
    run.add_argument(
        "--products", action="append", metavar="FEED",
        help="Product feed file or URL (repeatable; default: settings.product_feeds)",
    )
    run.add_argument("--sink", choices=SINK_KINDS, help="Publish target (default: settings.publish_sink)")
    run.add_argument("--no-history", action="store_true", help="Do not store the run in the database")

    sub.add_parser("schedule", help="Run the pipeline on the configured cron schedule")
    return parser


async def _run(args) -> int:
    orchestrator = build_orchestrator(settings, args.signals, args.products, args.sink)
    try:
        if args.no_history:
            result = await orchestrator.run()
        else:
            result = await run_pipeline(orchestrator)
    except FatalDependencyFailure as e:
        logger.error("Run failed: %s", e)
        if e.result is not None:
            print(json.dumps(e.result.to_dict(), indent=2))
        return 1
    print(json.dumps(result.to_dict(), indent=2))
    return 0


async def _schedule() -> int:
    from ds_trend_pipeline.scheduler.jobs import setup_scheduler

    sched = setup_scheduler(settings)
    sched.start()
    logger.info("Scheduler started with %d jobs", len(sched.get_jobs()))
    try:
        await asyncio.Event().wait()
    finally:
        sched.shutdown()
        logger.info("Scheduler shut down.")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = create_parser().parse_args(argv)
    configure_logging(args.log_level)
    if args.command == "run":
        return asyncio.run(_run(args))
    try:
        return asyncio.run(_schedule())
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())
