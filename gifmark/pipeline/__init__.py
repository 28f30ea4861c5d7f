"""
Watermarking pipeline, progress reporting and background tasks.
"""

from .progress import (
    TaskStatus,
    ProgressEvent,
    ProgressTracker,
    CancellationToken,
    STAGE_WEIGHTS,
)
from .pipeline import PipelineConfig, WatermarkPipeline
from .messages import (
    TaskMessage,
    ProgressMessage,
    ResultMessage,
    ErrorMessage,
    CancelledMessage,
)
from .tasks import ProcessingTask, TaskRunner

__all__ = [
    "TaskStatus",
    "ProgressEvent",
    "ProgressTracker",
    "CancellationToken",
    "STAGE_WEIGHTS",
    "PipelineConfig",
    "WatermarkPipeline",
    "TaskMessage",
    "ProgressMessage",
    "ResultMessage",
    "ErrorMessage",
    "CancelledMessage",
    "ProcessingTask",
    "TaskRunner",
]
