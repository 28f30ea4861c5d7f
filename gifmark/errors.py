"""Exception classes for the GIF watermarking pipeline."""

from __future__ import annotations


class GifmarkError(Exception):
    """Base exception for all gifmark errors."""

    pass


class DecodeError(GifmarkError):
    """Raised when a GIF byte stream is malformed or unsupported.

    :ivar offset: Byte offset in the input where the problem was detected
    :ivar frame_index: Index of the frame being decoded, if any
    """

    def __init__(
        self,
        message: str,
        offset: int | None = None,
        frame_index: int | None = None,
    ):
        self.offset = offset
        self.frame_index = frame_index
        details = []
        if frame_index is not None:
            details.append(f"frame {frame_index}")
        if offset is not None:
            details.append(f"offset {offset}")
        if details:
            message = f"{message} ({', '.join(details)})"
        super().__init__(message)


class EncodeError(GifmarkError):
    """Raised when frames can not be encoded, e.g. on size mismatches."""

    pass


class UnsupportedWatermarkError(GifmarkError):
    """Raised for unknown watermark variants."""

    pass


class CancelledError(GifmarkError):
    """Raised when a task was cancelled on request.

    This is a deliberate outcome, not a failure.
    """

    pass
