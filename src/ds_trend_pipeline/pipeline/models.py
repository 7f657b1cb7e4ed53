from __future__ import annotations

import enum
from dataclasses import asdict, dataclass, field
from datetime import datetime

from ds_trend_pipeline.sources.base import CandidateProduct, SignalRecord, field_values, utcnow


class Stage(str, enum.Enum):
    INIT = "init"
    COLLECT_SIGNALS = "collect_signals"
    COLLECT_PRODUCTS = "collect_products"
    SCORE_AND_FILTER = "score_and_filter"
    PUBLISH = "publish"
    NOTIFY = "notify"
    DONE = "done"
    FAILED = "failed"


# Forward order of the linear stages; FAILED is reachable from any of them.
STAGE_ORDER = [
    Stage.INIT,
    Stage.COLLECT_SIGNALS,
    Stage.COLLECT_PRODUCTS,
    Stage.SCORE_AND_FILTER,
    Stage.PUBLISH,
    Stage.NOTIFY,
    Stage.DONE,
]


@dataclass(frozen=True)
class ScoredSignal(SignalRecord):
    trend_score: int = 0

    @classmethod
    def from_record(cls, record: SignalRecord, score: int) -> ScoredSignal:
        return cls(**field_values(record), trend_score=score)


@dataclass(frozen=True)
class ScoredProduct(CandidateProduct):
    trend_score: int = 0

    @classmethod
    def from_candidate(cls, candidate: CandidateProduct, score: int) -> ScoredProduct:
        return cls(**field_values(candidate), trend_score=score)


@dataclass(frozen=True)
class PublishOutcome:
    candidate_id: str
    success: bool
    remote_id: str | None = None
    error_message: str | None = None


@dataclass(frozen=True)
class StageFailure:
    """A recovered per-source/per-item error, kept for reporting."""

    stage: Stage
    target: str  # source name or item id
    kind: str  # error class name
    message: str


@dataclass(frozen=True)
class RegionScore:
    geo: str
    geo_name: str
    score: float


@dataclass(frozen=True)
class SignalSummary:
    count: int = 0
    average: float = 0.0
    top: tuple[str, ...] = ()
    top_regions: tuple[RegionScore, ...] = ()


@dataclass(frozen=True)
class RunResult:
    """Everything one pipeline run produced. Never mutated after return."""

    signals: tuple[ScoredSignal, ...] = ()
    candidates: tuple[ScoredProduct, ...] = ()
    products: tuple[ScoredProduct, ...] = ()
    publish_outcomes: tuple[PublishOutcome, ...] = ()
    recommendations: tuple[str, ...] = ()
    signal_summary: SignalSummary = field(default_factory=SignalSummary)
    failures: tuple[StageFailure, ...] = ()
    stage: Stage = Stage.INIT
    started_at: datetime = field(default_factory=utcnow)
    generated_at: datetime = field(default_factory=utcnow)

    @property
    def published_count(self) -> int:
        return sum(1 for o in self.publish_outcomes if o.success)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["stage"] = self.stage.value
        for failure in data["failures"]:
            failure["stage"] = failure["stage"].value
        return _jsonable(data)


def _jsonable(value):
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value
