# gifmark - Frame
"""
Frame and GifDocument classes holding decoded animation data.

Frames are always full-canvas RGBA rasters. The decoder composites partial
frame patches onto a running canvas, so every frame of a document has the
document's size.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Iterator

import numpy as np


class DisposalMethod(IntEnum):
    """How a frame's area is treated before the next frame is drawn."""

    NONE = 0
    "No disposal specified, the frame stays on the canvas"
    DO_NOT_DISPOSE = 1
    "Leave the frame in place"
    RESTORE_BACKGROUND = 2
    "Clear the frame's area to the (transparent) background"
    RESTORE_PREVIOUS = 3
    "Restore the canvas to its state before the frame was drawn"

    @classmethod
    def from_code(cls, code: int) -> DisposalMethod:
        """
        Converts the 3 bit disposal field of a graphic control extension.

        Reserved values (4-7) are treated as :attr:`NONE`.

        :param code: The raw field value
        :return: The disposal method
        """
        if 0 <= code <= 3:
            return cls(code)
        return cls.NONE

    @property
    def clears_canvas(self) -> bool:
        """Whether the disposal removes the frame's content again."""
        return self in (
            DisposalMethod.RESTORE_BACKGROUND,
            DisposalMethod.RESTORE_PREVIOUS,
        )


@dataclass(frozen=True)
class Frame:
    """A single full-canvas frame of an animation.

    The pixel buffer is stored read-only. Use :meth:`replace` to derive a
    modified frame.

    :ivar pixels: RGBA pixel data of shape (height, width, 4), uint8
    :ivar delay_cs: Display duration in centiseconds (1/100 s)
    :ivar disposal: Disposal method applied after this frame
    """

    pixels: np.ndarray
    delay_cs: int = 10
    disposal: DisposalMethod = DisposalMethod.NONE

    def __post_init__(self):
        pixels = self.pixels
        if not isinstance(pixels, np.ndarray):
            raise ValueError("Frame pixels must be a numpy array")
        if pixels.dtype != np.uint8 or pixels.ndim != 3 or pixels.shape[2] != 4:
            raise ValueError(
                f"Frame pixels must be uint8 RGBA (H, W, 4), got "
                f"{pixels.dtype} {pixels.shape}"
            )
        if pixels.shape[0] < 1 or pixels.shape[1] < 1:
            raise ValueError("Frame must be at least 1x1 pixels")
        if self.delay_cs < 0:
            raise ValueError("delay_cs must be >= 0")
        view = pixels.view()
        view.flags.writeable = False
        object.__setattr__(self, "pixels", view)
        object.__setattr__(self, "disposal", DisposalMethod(self.disposal))

    @property
    def width(self) -> int:
        """The frame's width in pixels"""
        return self.pixels.shape[1]

    @property
    def height(self) -> int:
        """The frame's height in pixels"""
        return self.pixels.shape[0]

    @property
    def size(self) -> tuple[int, int]:
        """The frame's size as (width, height)"""
        return self.width, self.height

    @property
    def has_transparency(self) -> bool:
        """Whether any pixel is not fully opaque."""
        return bool((self.pixels[:, :, 3] < 255).any())

    def replace(self, **changes) -> Frame:
        """
        Returns a copy of this frame with the given fields replaced.

        :param changes: Field values, e.g. ``pixels`` or ``delay_cs``
        :return: The new frame
        """
        return dataclasses.replace(self, **changes)

    def __eq__(self, other):
        if not isinstance(other, Frame):
            return NotImplemented
        return (
            self.delay_cs == other.delay_cs
            and self.disposal == other.disposal
            and np.array_equal(self.pixels, other.pixels)
        )

    __hash__ = None


@dataclass
class GifDocument:
    """A decoded animation: logical screen size, loop setting and frames.

    :ivar width: Logical screen width
    :ivar height: Logical screen height
    :ivar loop_count: 0 loops forever, n repeats n times, None means the file
        has no looping extension (played once)
    :ivar frames: The full-canvas frames in display order
    """

    width: int
    height: int
    loop_count: int | None = 0
    frames: list[Frame] = field(default_factory=list)

    @property
    def frame_count(self) -> int:
        """Number of frames"""
        return len(self.frames)

    @property
    def duration_cs(self) -> int:
        """Total animation duration of one loop in centiseconds"""
        return sum(frame.delay_cs for frame in self.frames)

    @property
    def size(self) -> tuple[int, int]:
        """The document's size as (width, height)"""
        return self.width, self.height

    def with_frames(self, frames: list[Frame]) -> GifDocument:
        """
        Returns a document with the same header data but other frames.

        :param frames: The new frames
        :return: The new document
        """
        return GifDocument(
            width=self.width,
            height=self.height,
            loop_count=self.loop_count,
            frames=list(frames),
        )

    def __iter__(self) -> Iterator[Frame]:
        return iter(self.frames)

    def __len__(self) -> int:
        return len(self.frames)
