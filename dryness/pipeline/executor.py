"""Background execution of the heavy stages with progress events.

A command is handed to ``ProgressExecutor.submit``; a worker thread runs it
and publishes events on a queue. The stream is zero or more ``ProgressEvent``
followed by exactly one ``CompletedEvent`` or ``FailedEvent``. A cancelled
run ends with neither; ``events()`` simply stops.

State machine: IDLE -> RUNNING -> COMPLETED | FAILED | CANCELLED.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterator, Sequence, Union

from dryness.common.constants import DEFAULT_BBOX_CHUNK, DEFAULT_GRID_CHUNK, DEFAULT_MATCH_CHUNK
from dryness.common.errors import PipelineError
from dryness.common.logging import log_event
from dryness.common.models import (
    CHObservation,
    HTHObservation,
    MonthlyThresholds,
    Observation,
    RegionFeature,
    SHObservation,
)
from dryness.common.time_utils import elapsed_ms
from dryness.pipeline.classify import SpatialClassifier
from dryness.pipeline.grid import interpolate_grid
from dryness.pipeline.indicators import aggregate, aggregate_hth, aggregate_monthly, filter_points_in_boundary
from dryness.pipeline.matching import match_observations
from dryness.pipeline.progress import OperationCancelled, ProgressReporter

STAGE = "executor"


@dataclass(frozen=True)
class FilterBBoxCommand:
    points: Sequence[Any]
    regions: Sequence[RegionFeature]
    chunk_size: int = DEFAULT_BBOX_CHUNK
    repair_invalid: bool = True


@dataclass(frozen=True)
class MatchPointsCommand:
    ch_points: Sequence[CHObservation]
    sh_points: Sequence[SHObservation]
    method: str
    chunk_size: int = DEFAULT_MATCH_CHUNK


@dataclass(frozen=True)
class GridInterpolateCommand:
    ch_points: Sequence[CHObservation]
    sh_points: Sequence[SHObservation]
    regions: Sequence[RegionFeature]
    chunk_size: int = DEFAULT_GRID_CHUNK
    repair_invalid: bool = True


@dataclass(frozen=True)
class ProcessCHSHCommand:
    points: Sequence[Observation]
    regions: Sequence[RegionFeature]
    repair_invalid: bool = True


@dataclass(frozen=True)
class ProcessMonthlyCommand:
    points: Sequence[Observation]
    regions: Sequence[RegionFeature]
    thresholds: MonthlyThresholds
    repair_invalid: bool = True


@dataclass(frozen=True)
class ProcessHTHCommand:
    points: Sequence[HTHObservation]
    regions: Sequence[RegionFeature]
    repair_invalid: bool = True


Command = Union[
    FilterBBoxCommand,
    MatchPointsCommand,
    GridInterpolateCommand,
    ProcessCHSHCommand,
    ProcessMonthlyCommand,
    ProcessHTHCommand,
]


@dataclass(frozen=True)
class RegionOutcome:
    """Per-region results plus the regions skipped for unusable geometry."""

    results: list
    skipped_regions: list[str] = field(default_factory=list)


class EventKind(str, Enum):
    PROGRESS = "progress"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass(frozen=True)
class ProgressEvent:
    fraction: float
    message: str
    kind: EventKind = field(default=EventKind.PROGRESS, init=False)


@dataclass(frozen=True)
class CompletedEvent:
    payload: Any
    message: str = ""
    kind: EventKind = field(default=EventKind.COMPLETE, init=False)


@dataclass(frozen=True)
class FailedEvent:
    message: str
    error_code: str = "UNEXPECTED_ERROR"
    kind: EventKind = field(default=EventKind.ERROR, init=False)


Event = Union[ProgressEvent, CompletedEvent, FailedEvent]


class ExecutorState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


def _filter_bbox(command: FilterBBoxCommand, progress: ProgressReporter, logger) -> list:
    classifier = SpatialClassifier(command.regions, repair_invalid=command.repair_invalid, logger=logger)
    return filter_points_in_boundary(
        command.points,
        classifier,
        chunk_size=command.chunk_size,
        progress=progress,
        logger=logger,
    )


def _match_points(command: MatchPointsCommand, progress: ProgressReporter, logger) -> list[Observation]:
    return match_observations(
        command.ch_points,
        command.sh_points,
        command.method,
        chunk_size=command.chunk_size,
        progress=progress,
        logger=logger,
    )


def _grid_interpolate(command: GridInterpolateCommand, progress: ProgressReporter, logger) -> list[Observation]:
    classifier = SpatialClassifier(command.regions, repair_invalid=command.repair_invalid, logger=logger)
    return interpolate_grid(
        command.ch_points,
        command.sh_points,
        classifier,
        chunk_size=command.chunk_size,
        progress=progress,
        logger=logger,
    )


def _process_chsh(command: ProcessCHSHCommand, progress: ProgressReporter, logger) -> RegionOutcome:
    classifier = SpatialClassifier(command.regions, repair_invalid=command.repair_invalid, logger=logger)
    results = aggregate(command.points, classifier, progress=progress, logger=logger)
    return RegionOutcome(results=results, skipped_regions=classifier.skipped_regions)


def _process_monthly(command: ProcessMonthlyCommand, progress: ProgressReporter, logger) -> RegionOutcome:
    classifier = SpatialClassifier(command.regions, repair_invalid=command.repair_invalid, logger=logger)
    results = aggregate_monthly(command.points, classifier, command.thresholds, progress=progress, logger=logger)
    return RegionOutcome(results=results, skipped_regions=classifier.skipped_regions)


def _process_hth(command: ProcessHTHCommand, progress: ProgressReporter, logger) -> RegionOutcome:
    classifier = SpatialClassifier(command.regions, repair_invalid=command.repair_invalid, logger=logger)
    results = aggregate_hth(command.points, classifier, progress=progress, logger=logger)
    return RegionOutcome(results=results, skipped_regions=classifier.skipped_regions)


HANDLERS: dict[type, Callable[[Any, ProgressReporter, Any], Any]] = {
    FilterBBoxCommand: _filter_bbox,
    MatchPointsCommand: _match_points,
    GridInterpolateCommand: _grid_interpolate,
    ProcessCHSHCommand: _process_chsh,
    ProcessMonthlyCommand: _process_monthly,
    ProcessHTHCommand: _process_hth,
}


def run_command(
    command: Command,
    *,
    progress: ProgressReporter | None = None,
    logger: logging.Logger | None = None,
) -> Any:
    """Run one command synchronously in the calling thread."""
    handler = HANDLERS.get(type(command))
    if handler is None:
        raise TypeError(f"Unknown command type: {type(command).__name__}")
    return handler(command, progress or ProgressReporter(), logger)


_DONE = object()


class ProgressExecutor:
    def __init__(self, *, logger: logging.Logger | None = None) -> None:
        self.logger = logger
        self._events: queue.Queue = queue.Queue()
        self._cancel = threading.Event()
        self._lock = threading.Lock()
        self._state = ExecutorState.IDLE
        self._thread: threading.Thread | None = None
        self._terminal: CompletedEvent | FailedEvent | None = None

    @property
    def state(self) -> ExecutorState:
        with self._lock:
            return self._state

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def submit(self, command: Command) -> None:
        with self._lock:
            if self._state is not ExecutorState.IDLE:
                raise RuntimeError(f"Executor already used (state={self._state.value})")
            self._state = ExecutorState.RUNNING
        self._thread = threading.Thread(
            target=self._run,
            args=(command,),
            name=f"dryness-{type(command).__name__}",
            daemon=True,
        )
        self._thread.start()

    def cancel(self) -> None:
        self._cancel.set()

    def wait(self, timeout: float | None = None) -> bool:
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def events(self, timeout: float | None = None) -> Iterator[Event]:
        """Yield events until the run ends; raises ``queue.Empty`` on timeout."""
        while True:
            item = self._events.get(timeout=timeout)
            if item is _DONE:
                return
            yield item

    def result(self) -> Any:
        """Payload of a completed run; raises for any other terminal state."""
        self.wait()
        terminal = self._terminal
        if isinstance(terminal, CompletedEvent):
            return terminal.payload
        if isinstance(terminal, FailedEvent):
            raise RuntimeError(terminal.message)
        raise RuntimeError(f"No result available (state={self.state.value})")

    def _publish(self, event: Event) -> None:
        with self._lock:
            if self._state is not ExecutorState.RUNNING or self._cancel.is_set():
                return
            if isinstance(event, CompletedEvent):
                self._state = ExecutorState.COMPLETED
                self._terminal = event
            elif isinstance(event, FailedEvent):
                self._state = ExecutorState.FAILED
                self._terminal = event
            self._events.put(event)

    def _on_progress(self, fraction: float, message: str) -> None:
        self._publish(ProgressEvent(fraction=fraction, message=message))

    def _run(self, command: Command) -> None:
        started = time.monotonic()
        reporter = ProgressReporter(self._on_progress, self._cancel)
        command_name = type(command).__name__
        try:
            result = run_command(command, progress=reporter, logger=self.logger)
        except OperationCancelled:
            pass
        except PipelineError as exc:
            self._publish(FailedEvent(message=str(exc), error_code=exc.error_code))
        except Exception as exc:
            self._publish(FailedEvent(message=str(exc) or type(exc).__name__))
        else:
            self._publish(CompletedEvent(payload=result, message=f"{command_name} complete"))
        finally:
            with self._lock:
                if self._state is ExecutorState.RUNNING:
                    self._state = ExecutorState.CANCELLED
            log_event(
                self.logger,
                f"{command_name} finished",
                stage=STAGE,
                event="COMMAND_END",
                status=self.state.value,
                duration_ms=elapsed_ms(started),
                error_code=self._terminal.error_code if isinstance(self._terminal, FailedEvent) else None,
            )
            self._events.put(_DONE)
