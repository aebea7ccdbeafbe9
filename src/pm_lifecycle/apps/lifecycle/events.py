"""Progress and telemetry events emitted by the drivers.

Every event carries a ``type`` tag. Consumers must ignore tags they do not
recognise so new event kinds can be added without breaking them.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Literal

from pm_lifecycle.apps.lifecycle.models import LedgerStatistics, Position


@dataclass(frozen=True)
class TickEvent:
    """Emitted after each completed tick."""

    tick: int
    timestamp: int
    statistics: LedgerStatistics
    candidates: int
    type: Literal["tick"] = field(default="tick", init=False)


@dataclass(frozen=True)
class ProgressEvent:
    """Emitted when a tick enters a new processing step."""

    tick: int
    timestamp: int
    step: str
    type: Literal["progress"] = field(default="progress", init=False)


@dataclass(frozen=True)
class OpenedEvent:
    """Emitted when a position is opened."""

    timestamp: int
    position: Position
    type: Literal["opened"] = field(default="opened", init=False)


@dataclass(frozen=True)
class ClosedEvent:
    """Emitted when a position is closed."""

    timestamp: int
    position: Position
    reason: str
    type: Literal["closed"] = field(default="closed", init=False)


@dataclass(frozen=True)
class CompleteEvent:
    """Emitted once when a run finishes."""

    timestamp: int
    ticks: int
    statistics: LedgerStatistics
    final_equity: Decimal
    type: Literal["complete"] = field(default="complete", init=False)


@dataclass(frozen=True)
class ErrorEvent:
    """Emitted for a non-fatal error during a tick."""

    timestamp: int
    message: str
    kind: str
    details: dict[str, Any] = field(default_factory=dict)
    type: Literal["error"] = field(default="error", init=False)


DriverEvent = TickEvent | ProgressEvent | OpenedEvent | ClosedEvent | CompleteEvent | ErrorEvent

EventSink = Callable[[DriverEvent], None]


def ignore_event(event: DriverEvent) -> None:  # noqa: ARG001
    """Discard an event."""
