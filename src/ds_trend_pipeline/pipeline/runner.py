"""End-to-end pipeline run.

Stages run strictly in order:

    init -> collect_signals -> collect_products -> score_and_filter
         -> publish -> notify -> done

with ``failed`` reachable from any stage. Calls to a source are sequential and
spaced by a fixed delay. A failing source or item is recorded and skipped; only
a dependency that yields no data at all aborts the run, and product sources are
closed in every case before ``run`` returns or raises.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from functools import partial

from ds_trend_pipeline.config import Settings
from ds_trend_pipeline.notifications import (
    Event,
    LoggingNotifier,
    NotificationEmitter,
    error_event,
    pipeline_complete_event,
)
from ds_trend_pipeline.publish.base import PublishSink
from ds_trend_pipeline.sources.base import (
    CandidateProduct,
    ProductSource,
    SignalQuery,
    SignalRecord,
    SignalSource,
    utcnow,
)
from ds_trend_pipeline.utils.logs import log_timing

from .dedup import derive_query_terms
from .errors import (
    Err,
    FatalDependencyFailure,
    ItemRejected,
    Ok,
    PipelineError,
    PublishFailed,
    ResourceLeakRisk,
    Result,
    RunCancelled,
    SourceUnavailable,
)
from .models import (
    STAGE_ORDER,
    PublishOutcome,
    RegionScore,
    RunResult,
    ScoredProduct,
    ScoredSignal,
    SignalSummary,
    Stage,
    StageFailure,
)
from .quality import DEFAULT_RULES, QualityRules, filter_with_report
from .ratelimit import Clock, FixedDelayLimiter, SystemClock
from .recommender import generate_recommendations
from .scoring import DEFAULT_WEIGHTS, ScoringWeights, rank_signals, score_candidate, score_signal

logger = logging.getLogger(__name__)

MAX_REGIONS = 5


@dataclass(frozen=True)
class PipelineConfig:
    source_delay: float = 2.0
    publish_delay: float = 1.0
    call_timeout: float = 30.0
    top_k_signals: int = 10
    summary_top_n: int = 5
    query: SignalQuery = field(default_factory=SignalQuery)

    @classmethod
    def from_settings(cls, s: Settings) -> PipelineConfig:
        return cls(
            source_delay=s.source_delay_secs,
            publish_delay=s.publish_delay_secs,
            call_timeout=s.call_timeout_secs,
            top_k_signals=s.top_k_signals,
            summary_top_n=s.summary_top_n,
            query=SignalQuery(keywords=list(s.seed_keywords), geo=s.geo, timeframe=s.timeframe),
        )


def summarize_signals(signals: list[ScoredSignal], top_n: int = 5) -> SignalSummary:
    """Count, mean score, top keys and the strongest regions across signals."""
    if not signals:
        return SignalSummary()

    ranked = rank_signals(list(signals))
    average = round(sum(s.trend_score for s in signals) / len(signals), 2)

    # Keep each region's best score
    regions: dict[str, RegionScore] = {}
    for sig in signals:
        for entry in (sig.metadata or {}).get("regions", []):
            if not isinstance(entry, dict) or not entry.get("geo"):
                continue
            try:
                score = float(entry.get("score", 0))
            except (TypeError, ValueError):
                continue
            region = RegionScore(
                geo=str(entry["geo"]), geo_name=str(entry.get("geo_name") or entry["geo"]), score=score
            )
            current = regions.get(region.geo)
            if current is None or region.score > current.score:
                regions[region.geo] = region
    top_regions = sorted(regions.values(), key=lambda r: (-r.score, r.geo))[:MAX_REGIONS]

    return SignalSummary(
        count=len(signals),
        average=average,
        top=tuple(s.key for s in ranked[: max(top_n, 0)]),
        top_regions=tuple(top_regions),
    )


class _RunState:
    """In-flight data of a single run. Owned by exactly one ``run`` call."""

    def __init__(self):
        self.stage = Stage.INIT
        self.started_at = utcnow()
        self.signals: list[ScoredSignal] = []
        self.summary = SignalSummary()
        self.query_terms: list[str] = []
        self.raw_candidates: list[CandidateProduct] = []
        self.candidates: list[ScoredProduct] = []
        self.products: list[ScoredProduct] = []
        self.outcomes: list[PublishOutcome] = []
        self.recommendations: list[str] = []
        self.failures: list[StageFailure] = []

    def advance(self, stage: Stage) -> None:
        if STAGE_ORDER.index(stage) <= STAGE_ORDER.index(self.stage):
            raise RuntimeError(f"Illegal stage transition {self.stage.value} -> {stage.value}")
        self.stage = stage

    def record(self, target: str, error: PipelineError) -> None:
        self.failures.append(StageFailure(
            stage=self.stage, target=target, kind=type(error).__name__, message=str(error),
        ))

    def freeze(self) -> RunResult:
        return RunResult(
            signals=tuple(self.signals),
            candidates=tuple(self.candidates),
            products=tuple(self.products),
            publish_outcomes=tuple(self.outcomes),
            recommendations=tuple(self.recommendations),
            signal_summary=self.summary,
            failures=tuple(self.failures),
            stage=self.stage,
            started_at=self.started_at,
            generated_at=utcnow(),
        )


class PipelineOrchestrator:
    """Drives one run over injected sources, sink and notifier.

    The orchestrator keeps no per-run state, but sources own resources such as
    browser sessions: concurrent runs need their own source instances.
    """

    def __init__(
        self,
        signal_sources: list[SignalSource],
        product_sources: list[ProductSource],
        sink: PublishSink | None = None,
        notifier: NotificationEmitter | None = None,
        weights: ScoringWeights = DEFAULT_WEIGHTS,
        rules: QualityRules = DEFAULT_RULES,
        config: PipelineConfig | None = None,
        clock: Clock | None = None,
    ):
        self.signal_sources = list(signal_sources)
        self.product_sources = list(product_sources)
        self.sink = sink
        self.notifier = notifier or LoggingNotifier()
        self.weights = weights
        self.rules = rules
        self.config = config or PipelineConfig()
        self._clock = clock or SystemClock()

    async def run(self, cancel_event: asyncio.Event | None = None) -> RunResult:
        """Execute every stage and return the run's result.

        Raises FatalDependencyFailure (with the partial result on ``.result``)
        when a required dependency produced nothing, or RunCancelled when
        ``cancel_event`` was set at a stage boundary.
        """
        state = _RunState()
        fatal: FatalDependencyFailure | None = None

        with log_timing("trend pipeline run", logger):
            try:
                await self._run_stages(state, cancel_event)
            except FatalDependencyFailure as e:
                fatal = e
            except Exception as e:
                logger.exception("Unexpected error in stage %s", state.stage.value)
                fatal = FatalDependencyFailure(f"Stage {state.stage.value} failed: {e}")
                fatal.__cause__ = e
            finally:
                await self._cleanup(state)

        if fatal is not None:
            failed_stage = state.stage
            state.stage = Stage.FAILED
            fatal.result = state.freeze()
            logger.error("Pipeline failed during %s: %s", failed_stage.value, fatal)
            await self._emit(error_event(f"pipeline stage {failed_stage.value}", fatal))
            raise fatal

        return state.freeze()

    async def _run_stages(self, state: _RunState, cancel_event: asyncio.Event | None) -> None:
        await self._collect_signals(state)
        self._checkpoint(state, cancel_event)
        await self._collect_products(state)
        self._checkpoint(state, cancel_event)
        self._score_and_filter(state)
        self._checkpoint(state, cancel_event)
        await self._publish(state)
        self._checkpoint(state, cancel_event)
        await self._notify(state)
        state.advance(Stage.DONE)

    def _checkpoint(self, state: _RunState, cancel_event: asyncio.Event | None) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise RunCancelled(f"Run cancelled after {state.stage.value}")

    async def _call(
        self,
        limiter: FixedDelayLimiter,
        target: str,
        factory: Callable[[], Awaitable],
    ) -> Result:
        """One rate-limited, time-boxed source call as Ok/Err."""
        await limiter.wait()
        timeout = self.config.call_timeout
        try:
            value = await asyncio.wait_for(factory(), timeout)
        except asyncio.TimeoutError:
            return Err(SourceUnavailable(target, f"timed out after {timeout:g}s", timed_out=True))
        except PublishFailed as e:
            return Err(e)
        except Exception as e:
            return Err(SourceUnavailable(target, str(e) or type(e).__name__))
        return Ok(value)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _collect_signals(self, state: _RunState) -> None:
        state.advance(Stage.COLLECT_SIGNALS)
        limiter = FixedDelayLimiter(self.config.source_delay, self._clock, "signals")
        succeeded = 0

        for source in self.signal_sources:
            result = await self._call(
                limiter, source.source_name, partial(source.fetch, self.config.query)
            )
            if isinstance(result, Err):
                error = result.error
                logger.error("Signal source %s failed: %s", source.source_name, error)
                state.record(source.source_name, error)
                if source.required and not getattr(error, "timed_out", False):
                    raise FatalDependencyFailure(
                        f"Required signal source {source.source_name} failed: {error}"
                    ) from error
                continue

            succeeded += 1
            records = [r for r in (result.value or []) if isinstance(r, SignalRecord)]
            state.signals.extend(score_signal(r, self.weights) for r in records)
            logger.info("%s returned %d signals", source.source_name, len(records))

        if self.signal_sources and succeeded == 0:
            raise FatalDependencyFailure("No signal source returned data")

        state.signals = rank_signals(state.signals)
        state.summary = summarize_signals(state.signals, self.config.summary_top_n)
        logger.info(
            "Signals: count=%d average=%.1f top=%s",
            state.summary.count, state.summary.average, ", ".join(state.summary.top),
        )

    async def _collect_products(self, state: _RunState) -> None:
        state.advance(Stage.COLLECT_PRODUCTS)
        state.query_terms = derive_query_terms(state.signals, self.config.top_k_signals)
        if not state.query_terms:
            logger.info("No query terms derived from signals; skipping product collection")
            return

        calls = failed = 0
        for source in self.product_sources:
            limiter = FixedDelayLimiter(self.config.source_delay, self._clock, source.source_name)
            for term in state.query_terms:
                calls += 1
                result = await self._call(limiter, source.source_name, partial(source.search, [term]))
                if isinstance(result, Err):
                    failed += 1
                    logger.warning("%s search for '%s' failed: %s", source.source_name, term, result.error)
                    state.record(source.source_name, result.error)
                    continue
                accepted = self._accept_candidates(state, result.value or [], term)
                logger.info("%s: %d candidates for '%s'", source.source_name, accepted, term)

        if calls and failed == calls:
            raise FatalDependencyFailure("Every product source call failed")
        logger.info(
            "Collected %d candidates from %d sources x %d terms",
            len(state.raw_candidates), len(self.product_sources), len(state.query_terms),
        )

    def _accept_candidates(self, state: _RunState, candidates: list, term: str) -> int:
        accepted = 0
        for candidate in candidates:
            if not isinstance(candidate, CandidateProduct):
                state.record(term, ItemRejected("?", ["not a candidate record"]))
                continue
            item_id = str(candidate.id or "?")
            try:
                problems = candidate.problems()
                if not problems and term not in candidate.origin_keywords:
                    candidate = replace(candidate, origin_keywords=[term, *candidate.origin_keywords])
            except Exception as e:
                problems = [f"unreadable record: {e}"]
            if problems:
                logger.warning("Dropping malformed candidate %s: %s", item_id, ", ".join(problems))
                state.record(item_id, ItemRejected(item_id, problems))
                continue
            state.raw_candidates.append(candidate)
            accepted += 1
        return accepted

    def _score_and_filter(self, state: _RunState) -> None:
        state.advance(Stage.SCORE_AND_FILTER)
        state.candidates = [score_candidate(c, self.weights) for c in state.raw_candidates]
        report = filter_with_report(state.candidates, self.rules)
        state.products = report.kept
        state.recommendations = generate_recommendations(
            state.signals, state.candidates, state.summary
        )
        logger.info(
            "Scored %d candidates: %d shortlisted, %d rejected, %d duplicates",
            len(state.candidates), len(report.kept), len(report.rejected), report.duplicates,
        )

    async def _publish(self, state: _RunState) -> None:
        state.advance(Stage.PUBLISH)
        if self.sink is None:
            logger.info("No publish sink configured; skipping publish")
            return

        limiter = FixedDelayLimiter(self.config.publish_delay, self._clock, self.sink.sink_name)
        trending = state.signals[: self.config.summary_top_n]

        for product in state.products:
            result = await self._call(
                limiter, product.id, partial(self.sink.upsert, product, trending=trending)
            )
            if isinstance(result, Ok):
                state.outcomes.append(PublishOutcome(product.id, True, remote_id=str(result.value)))
                continue
            error = result.error
            if not isinstance(error, PublishFailed):
                error = PublishFailed(product.id, _reason(error))
            logger.warning("Publish failed for %s: %s", product.id, error.reason)
            state.record(product.id, error)
            state.outcomes.append(PublishOutcome(product.id, False, error_message=error.reason))

        logger.info(
            "Publish complete: %d/%d succeeded",
            sum(1 for o in state.outcomes if o.success), len(state.outcomes),
        )

    async def _notify(self, state: _RunState) -> None:
        state.advance(Stage.NOTIFY)
        await self._emit(pipeline_complete_event(state.freeze()))

    # ------------------------------------------------------------------
    # Best-effort helpers
    # ------------------------------------------------------------------

    async def _emit(self, event: Event) -> None:
        try:
            await asyncio.wait_for(self.notifier.emit(event), self.config.call_timeout)
        except asyncio.TimeoutError:
            logger.error("Notification %s timed out", event.kind)
        except Exception as e:
            logger.error("Notification %s failed: %s", event.kind, e)

    async def _cleanup(self, state: _RunState) -> None:
        for source in self.product_sources:
            try:
                await asyncio.wait_for(source.close(), self.config.call_timeout)
            except asyncio.TimeoutError:
                self._leak(state, source.source_name, "close timed out")
            except Exception as e:
                self._leak(state, source.source_name, str(e) or type(e).__name__)

    def _leak(self, state: _RunState, source_name: str, message: str) -> None:
        error = ResourceLeakRisk(source_name, message)
        logger.error("Failed to release %s: %s", source_name, message)
        state.record(source_name, error)


def _reason(error: PipelineError) -> str:
    # SourceUnavailable prefixes the target; outcomes only need the cause
    text = str(error)
    prefix = f"{getattr(error, 'source', '')}: "
    return text[len(prefix):] if text.startswith(prefix) else text
