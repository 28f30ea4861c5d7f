"""
Processing stages, progress reporting and cancellation.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from ..errors import CancelledError


class TaskStatus(str, Enum):
    """The stages a watermarking task passes through."""

    PENDING = "pending"
    DECODING = "decoding"
    SAMPLING = "sampling"
    RENDERING = "rendering"
    COMPOSITING = "compositing"
    ENCODING = "encoding"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        """Whether the status can not change anymore."""
        return self in (TaskStatus.DONE, TaskStatus.FAILED, TaskStatus.CANCELLED)


PROCESSING_ORDER = [
    TaskStatus.PENDING,
    TaskStatus.DECODING,
    TaskStatus.SAMPLING,
    TaskStatus.RENDERING,
    TaskStatus.COMPOSITING,
    TaskStatus.ENCODING,
    TaskStatus.DONE,
]
"Regular order of the stages of a successful run"

STAGE_WEIGHTS = {
    TaskStatus.DECODING: 0.10,
    TaskStatus.SAMPLING: 0.0,
    TaskStatus.RENDERING: 0.05,
    TaskStatus.COMPOSITING: 0.50,
    TaskStatus.ENCODING: 0.35,
}
"Share of the overall progress of each working stage"


@dataclass(frozen=True)
class ProgressEvent:
    """A progress notification.

    :ivar stage: The current stage
    :ivar fraction: Overall progress from 0.0 to 1.0
    :ivar message: Human readable description
    """

    stage: TaskStatus
    fraction: float
    message: str = ""


ProgressCallback = Callable[[ProgressEvent], None]


class ProgressTracker:
    """Converts per-stage progress into monotonic overall progress events.

    :param callback: Receiver of the events, may be None
    """

    def __init__(self, callback: ProgressCallback | None = None):
        self.callback = callback
        self._lock = threading.Lock()
        self._stage = TaskStatus.PENDING
        self._fraction = 0.0

    @property
    def fraction(self) -> float:
        """The last reported overall fraction"""
        return self._fraction

    @staticmethod
    def stage_offset(stage: TaskStatus) -> float:
        """Overall progress at the begin of the given stage."""
        offset = 0.0
        for status, weight in STAGE_WEIGHTS.items():
            if status == stage:
                break
            offset += weight
        return offset

    def start(self, stage: TaskStatus, message: str = "") -> None:
        """Enters a new stage."""
        self._stage = stage
        self.update(0.0, message)

    def update(self, stage_fraction: float, message: str = "") -> None:
        """
        Reports progress within the current stage.

        :param stage_fraction: Progress of the current stage from 0.0 to 1.0
        :param message: Optional description
        """
        stage_fraction = min(max(stage_fraction, 0.0), 1.0)
        overall = self.stage_offset(self._stage) + STAGE_WEIGHTS.get(self._stage, 0.0) * stage_fraction
        self._emit(self._stage, overall, message)

    def finish(self, message: str = "Done") -> None:
        """Reports the completion of the run."""
        self._stage = TaskStatus.DONE
        self._emit(TaskStatus.DONE, 1.0, message)

    def _emit(self, stage: TaskStatus, overall: float, message: str) -> None:
        with self._lock:
            # never report a smaller fraction than before
            overall = min(max(overall, self._fraction), 1.0)
            self._fraction = overall
        if self.callback is not None:
            self.callback(ProgressEvent(stage=stage, fraction=overall, message=message))


class CancellationToken:
    """A thread safe flag used to request the cancellation of a run."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        """Requests cancellation. Idempotent."""
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        """Raises :class:`CancelledError` if cancellation was requested."""
        if self._event.is_set():
            raise CancelledError("Processing was cancelled")
