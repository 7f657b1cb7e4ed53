"""Pipeline error taxonomy and the Ok/Err values used to accumulate per-item outcomes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Generic, TypeVar

if TYPE_CHECKING:
    from .models import RunResult

T = TypeVar("T")


class PipelineError(Exception):
    """Base for every error the pipeline raises or records."""


class SourceUnavailable(PipelineError):
    """A signal or product source call failed or timed out."""

    def __init__(self, source: str, message: str, *, timed_out: bool = False):
        super().__init__(f"{source}: {message}")
        self.source = source
        self.timed_out = timed_out


class ItemRejected(PipelineError):
    """A candidate failed validation. Recorded, never raised by the filter."""

    def __init__(self, item_id: str, reasons: list[str]):
        super().__init__(f"{item_id}: {', '.join(reasons)}")
        self.item_id = item_id
        self.reasons = reasons


class PublishFailed(PipelineError):
    """The sink could not upsert one item."""

    def __init__(self, item_id: str, message: str):
        super().__init__(f"{item_id}: {message}")
        self.item_id = item_id
        self.reason = message


class ResourceLeakRisk(PipelineError):
    """Releasing a source's resources failed."""

    def __init__(self, source: str, message: str):
        super().__init__(f"{source}: {message}")
        self.source = source


class FatalDependencyFailure(PipelineError):
    """A required dependency produced no data; the run is aborted.

    ``result`` holds whatever the run had collected before failing.
    """

    def __init__(self, message: str, result: RunResult | None = None):
        super().__init__(message)
        self.result = result


class RunCancelled(FatalDependencyFailure):
    """The caller cancelled the run between stages."""


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Err:
    error: PipelineError


Result = Ok | Err
