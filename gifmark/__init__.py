"""
gifmark - Apply text and image watermarks to every frame of animated GIFs

Example:
    >>> from gifmark import WatermarkPipeline, TextWatermark
    >>> pipeline = WatermarkPipeline()
    >>> result = pipeline.run(gif_bytes, TextWatermark(content="DRAFT", opacity=0.4))
"""

__version__ = "0.1.0"

from .errors import (
    GifmarkError,
    DecodeError,
    EncodeError,
    UnsupportedWatermarkError,
    CancelledError,
)
from .frame import DisposalMethod, Frame, GifDocument
from .gif import GifDecoder, GifEncoder
from .sampler import FrameSampler
from .font_registry import FontRegistry
from .watermark import (
    WatermarkSpec,
    TextWatermark,
    ImageWatermark,
    TiledWatermark,
    WatermarkAnchor,
    WatermarkPosition,
    OverlaySurface,
    WatermarkRenderer,
    FrameCompositor,
)
from .pipeline import (
    TaskStatus,
    ProgressEvent,
    CancellationToken,
    PipelineConfig,
    WatermarkPipeline,
    TaskMessage,
    ProgressMessage,
    ResultMessage,
    ErrorMessage,
    CancelledMessage,
    ProcessingTask,
    TaskRunner,
)

__all__ = [
    # Errors
    "GifmarkError",
    "DecodeError",
    "EncodeError",
    "UnsupportedWatermarkError",
    "CancelledError",
    # Frames
    "DisposalMethod",
    "Frame",
    "GifDocument",
    # GIF codec
    "GifDecoder",
    "GifEncoder",
    "FrameSampler",
    # Watermarks
    "FontRegistry",
    "WatermarkSpec",
    "TextWatermark",
    "ImageWatermark",
    "TiledWatermark",
    "WatermarkAnchor",
    "WatermarkPosition",
    "OverlaySurface",
    "WatermarkRenderer",
    "FrameCompositor",
    # Processing
    "TaskStatus",
    "ProgressEvent",
    "CancellationToken",
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
