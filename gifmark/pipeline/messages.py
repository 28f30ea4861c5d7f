"""
Messages sent from a running task to its owner.

A task emits any number of :class:`ProgressMessage` instances followed by
exactly one of :class:`ResultMessage`, :class:`ErrorMessage` or
:class:`CancelledMessage`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from .progress import TaskStatus


@dataclass(frozen=True)
class ProgressMessage:
    """Progress of a running task."""

    task_id: str
    stage: TaskStatus
    fraction: float
    message: str = ""


@dataclass(frozen=True)
class ResultMessage:
    """The task finished, ``data`` holds the watermarked GIF."""

    task_id: str
    data: bytes


@dataclass(frozen=True)
class ErrorMessage:
    """The task failed."""

    task_id: str
    error: str


@dataclass(frozen=True)
class CancelledMessage:
    """The task was cancelled on request."""

    task_id: str


TaskMessage = Union[ProgressMessage, ResultMessage, ErrorMessage, CancelledMessage]

FINAL_MESSAGE_TYPES = (ResultMessage, ErrorMessage, CancelledMessage)
"Message types ending a task's message stream"
