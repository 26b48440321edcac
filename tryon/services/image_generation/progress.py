"""
Stage/percentage progress contract shared by all adapters.

One ProgressReporter belongs to one job. It keeps the job's sequence well formed:
stages only move forward, percentages never go down, and at most one terminal
event (succeeded or failed) is delivered.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    STARTING = "starting"
    REQUESTING = "requesting"
    PENDING = "pending"
    RUNNING = "running"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def rank(self) -> int:
        return _STAGE_ORDER.index(self)

    @property
    def is_terminal(self) -> bool:
        return self in (Stage.SUCCEEDED, Stage.FAILED)


_STAGE_ORDER = list(Stage)


@dataclass(frozen=True)
class ProgressEvent:
    stage: Stage
    progress: int | None = None


ProgressListener = Callable[[ProgressEvent], None]


def _coerce_percent(value) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        percent = int(float(value))
    except (TypeError, ValueError):
        return None
    return max(0, min(100, percent))


class ProgressReporter:
    """Per-job event channel; listeners receive events in emission order."""

    def __init__(self, listener: ProgressListener | None = None) -> None:
        self._listeners: list[ProgressListener] = []
        self.events: list[ProgressEvent] = []
        self._floor = 0
        self._stage: Stage | None = None
        if listener is not None:
            self.subscribe(listener)

    def subscribe(self, listener: ProgressListener) -> Callable[[], None]:
        """Register a listener; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @property
    def stage(self) -> Stage | None:
        return self._stage

    @property
    def terminal(self) -> bool:
        return self._stage is not None and self._stage.is_terminal

    @property
    def progress(self) -> int:
        return self._floor

    def emit(self, stage: Stage, progress=None) -> ProgressEvent | None:
        """
        Deliver one event. Percentages below the current floor are raised to it.
        Returns None (and delivers nothing) when the job is already terminal or
        the stage would move backwards.
        """
        if self.terminal:
            logger.debug("progress_after_terminal", extra={"stage": stage.value})
            return None
        if self._stage is not None and stage != Stage.FAILED and stage.rank < self._stage.rank:
            logger.warning(
                "progress_stage_out_of_order",
                extra={"stage": stage.value, "error": self._stage.value},
            )
            return None

        percent = None
        if stage != Stage.FAILED:
            percent = _coerce_percent(progress)
            if percent is not None:
                percent = max(percent, self._floor)
                self._floor = percent

        event = ProgressEvent(stage=stage, progress=percent)
        self._stage = stage
        self.events.append(event)
        for listener in list(self._listeners):
            listener(event)
        return event

    def fail(self) -> ProgressEvent | None:
        """Emit the terminal failed event unless the job already ended."""
        return self.emit(Stage.FAILED)
