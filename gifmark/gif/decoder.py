"""GIF decoding into full-canvas RGBA frames.

This module defines the :class:`GifDecoder` which parses GIF87a / GIF89a byte
streams. Frames which only store a changed sub-rectangle are composited onto
a running canvas, honoring the disposal method of the previous frame, so the
result always consists of complete frames of the logical screen size.
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from typing import Callable

import numpy as np

from ..errors import DecodeError
from ..frame import DisposalMethod, Frame, GifDocument
from .lzw import lzw_decode

logger = logging.getLogger(__name__)

GIF_SIGNATURES = (b"GIF87a", b"GIF89a")
"Valid header signatures"

EXTENSION_INTRODUCER = 0x21
IMAGE_SEPARATOR = 0x2C
TRAILER = 0x3B

GRAPHIC_CONTROL_LABEL = 0xF9
APPLICATION_LABEL = 0xFF

LOOP_APPLICATIONS = (b"NETSCAPE2.0", b"ANIMEXTS1.0")
"Application identifiers carrying the loop count"

# Row order of the four interlace passes as (start, step)
INTERLACE_PASSES = ((0, 8), (4, 8), (2, 4), (1, 2))


def interlaced_row_order(height: int) -> np.ndarray:
    """
    Returns the image row each stored row of an interlaced frame belongs to.

    :param height: The frame height
    :return: Array of row indices in storage order
    """
    return np.concatenate(
        [np.arange(start, height, step) for start, step in INTERLACE_PASSES]
    ).astype(np.intp)


@dataclass
class _GraphicControl:
    """Pending graphic control extension data for the next image."""

    delay_cs: int = 0
    disposal: DisposalMethod = DisposalMethod.NONE
    transparent_index: int | None = None


@dataclass
class _FramePatch:
    """A decoded image block before it is placed onto the canvas."""

    left: int
    top: int
    width: int
    height: int
    indices: np.ndarray
    palette: np.ndarray
    transparent_index: int | None


class _Reader:
    """Bounds checked sequential access to the input bytes."""

    def __init__(self, data: bytes):
        self.data = data
        self.pos = 0

    def remaining(self) -> int:
        return len(self.data) - self.pos

    def read(self, count: int) -> bytes:
        if self.pos + count > len(self.data):
            raise DecodeError("Unexpected end of data", offset=len(self.data))
        chunk = self.data[self.pos:self.pos + count]
        self.pos += count
        return chunk

    def byte(self) -> int:
        if self.pos >= len(self.data):
            raise DecodeError("Unexpected end of data", offset=len(self.data))
        value = self.data[self.pos]
        self.pos += 1
        return value

    def u16(self) -> int:
        return struct.unpack("<H", self.read(2))[0]

    def sub_blocks(self) -> bytes:
        """Reads data sub-blocks up to and including the block terminator."""
        chunks = []
        while True:
            size = self.byte()
            if size == 0:
                return b"".join(chunks)
            chunks.append(self.read(size))

    def skip_sub_blocks(self) -> None:
        while True:
            size = self.byte()
            if size == 0:
                return
            self.read(size)


class GifDecoder:
    """Decodes GIF byte streams into :class:`GifDocument` instances.

    Example::

        document = GifDecoder().decode(open("anim.gif", "rb").read())
        for frame in document.frames:
            print(frame.delay_cs, frame.pixels.shape)
    """

    def decode(
        self,
        data: bytes,
        on_progress: Callable[[float], None] | None = None,
    ) -> GifDocument:
        """
        Decodes a GIF file.

        :param data: The complete file content
        :param on_progress: Optional callback receiving the fraction of input
            bytes consumed after each frame
        :return: The document with one full-canvas frame per image block
        """
        data = bytes(data)
        reader = _Reader(data)
        signature = reader.read(6) if len(data) >= 6 else b""
        if signature not in GIF_SIGNATURES:
            raise DecodeError("Missing GIF header", offset=0)

        width = reader.u16()
        height = reader.u16()
        packed = reader.byte()
        background_index = reader.byte()
        reader.byte()  # pixel aspect ratio
        if width == 0 or height == 0:
            raise DecodeError(f"Invalid logical screen size {width}x{height}", offset=6)

        global_palette = None
        if packed & 0x80:
            global_palette = self._read_palette(reader, packed & 0x07)
        logger.debug(
            f"GIF {signature.decode()} {width}x{height}, global palette: "
            f"{global_palette is not None}, background index {background_index}"
        )

        canvas = np.zeros((height, width, 4), dtype=np.uint8)
        frames: list[Frame] = []
        loop_count: int | None = None
        control = _GraphicControl()
        # disposal of the previously drawn frame: (method, rect, saved canvas)
        pending_disposal: tuple[DisposalMethod, tuple, np.ndarray | None] | None = None

        while True:
            offset = reader.pos
            if reader.remaining() == 0:
                raise DecodeError("Missing GIF trailer", offset=offset)
            block = reader.byte()
            if block == TRAILER:
                break
            if block == EXTENSION_INTRODUCER:
                label = reader.byte()
                if label == GRAPHIC_CONTROL_LABEL:
                    control = self._read_graphic_control(reader)
                elif label == APPLICATION_LABEL:
                    loop = self._read_application(reader)
                    if loop is not None:
                        loop_count = loop
                else:
                    reader.skip_sub_blocks()
                continue
            if block != IMAGE_SEPARATOR:
                raise DecodeError(f"Unknown block type 0x{block:02X}", offset=offset)

            frame_index = len(frames)
            patch = self._read_image(reader, global_palette, control, frame_index)

            if pending_disposal is not None:
                self._dispose(canvas, *pending_disposal)
            rect = self._clip(patch, width, height)
            saved = canvas.copy() if control.disposal == DisposalMethod.RESTORE_PREVIOUS else None
            self._draw(canvas, patch, rect)
            pending_disposal = (control.disposal, rect, saved)

            frames.append(
                Frame(
                    pixels=canvas.copy(),
                    delay_cs=control.delay_cs,
                    disposal=control.disposal,
                )
            )
            control = _GraphicControl()
            if on_progress is not None:
                on_progress(reader.pos / len(data))

        if not frames:
            raise DecodeError("GIF contains no image data", offset=reader.pos)
        logger.debug(f"Decoded {len(frames)} frames, loop count {loop_count}")
        return GifDocument(width=width, height=height, loop_count=loop_count, frames=frames)

    @staticmethod
    def _read_palette(reader: _Reader, size_field: int) -> np.ndarray:
        """
        Reads a color table and returns it as 256 entry RGBA lookup table.

        Entries beyond the stored table are opaque black.
        """
        count = 2 << size_field
        raw = np.frombuffer(reader.read(count * 3), dtype=np.uint8).reshape(count, 3)
        palette = np.zeros((256, 4), dtype=np.uint8)
        palette[:, 3] = 255
        palette[:count, :3] = raw
        return palette

    @staticmethod
    def _read_graphic_control(reader: _Reader) -> _GraphicControl:
        block = reader.sub_blocks()
        if len(block) < 4:
            raise DecodeError("Truncated graphic control extension", offset=reader.pos)
        packed = block[0]
        delay_cs = block[1] | (block[2] << 8)
        return _GraphicControl(
            delay_cs=delay_cs,
            disposal=DisposalMethod.from_code((packed >> 2) & 0x07),
            transparent_index=block[3] if packed & 0x01 else None,
        )

    @staticmethod
    def _read_application(reader: _Reader) -> int | None:
        """Reads an application extension, returning a loop count if any."""
        size = reader.byte()
        identifier = reader.read(size)
        loop_count = None
        while True:
            size = reader.byte()
            if size == 0:
                break
            chunk = reader.read(size)
            if identifier in LOOP_APPLICATIONS and len(chunk) >= 3 and chunk[0] == 1:
                loop_count = chunk[1] | (chunk[2] << 8)
        return loop_count

    def _read_image(
        self,
        reader: _Reader,
        global_palette: np.ndarray | None,
        control: _GraphicControl,
        frame_index: int,
    ) -> _FramePatch:
        offset = reader.pos
        left = reader.u16()
        top = reader.u16()
        width = reader.u16()
        height = reader.u16()
        packed = reader.byte()
        palette = global_palette
        if packed & 0x80:
            palette = self._read_palette(reader, packed & 0x07)
        if palette is None:
            raise DecodeError("Frame has no color table", offset=offset, frame_index=frame_index)
        min_code_size = reader.byte()
        data = reader.sub_blocks()

        pixel_count = width * height
        try:
            decoded = lzw_decode(data, min_code_size, pixel_count)
        except DecodeError as e:
            raise DecodeError(str(e), offset=offset, frame_index=frame_index) from e
        if len(decoded) < pixel_count:
            logger.warning(
                f"Frame {frame_index}: image data truncated "
                f"({len(decoded)} of {pixel_count} pixels)"
            )
            fill = control.transparent_index if control.transparent_index is not None else 0
            decoded = decoded + bytes((fill,)) * (pixel_count - len(decoded))

        indices = np.frombuffer(decoded, dtype=np.uint8).reshape(height, width)
        if packed & 0x40 and height > 1:
            ordered = np.empty_like(indices)
            ordered[interlaced_row_order(height)] = indices
            indices = ordered
        return _FramePatch(
            left=left,
            top=top,
            width=width,
            height=height,
            indices=indices,
            palette=palette,
            transparent_index=control.transparent_index,
        )

    @staticmethod
    def _clip(patch: _FramePatch, width: int, height: int) -> tuple[int, int, int, int]:
        """Returns the patch rectangle clipped to the screen as x, y, x2, y2."""
        x = min(patch.left, width)
        y = min(patch.top, height)
        x2 = min(patch.left + patch.width, width)
        y2 = min(patch.top + patch.height, height)
        return x, y, x2, y2

    @staticmethod
    def _draw(canvas: np.ndarray, patch: _FramePatch, rect: tuple[int, int, int, int]) -> None:
        x, y, x2, y2 = rect
        if x2 <= x or y2 <= y:
            return
        indices = patch.indices[: y2 - y, : x2 - x]
        colors = patch.palette[indices]
        region = canvas[y:y2, x:x2]
        if patch.transparent_index is None:
            region[...] = colors
        else:
            mask = indices != patch.transparent_index
            region[mask] = colors[mask]

    @staticmethod
    def _dispose(
        canvas: np.ndarray,
        disposal: DisposalMethod,
        rect: tuple[int, int, int, int],
        saved: np.ndarray | None,
    ) -> None:
        if disposal == DisposalMethod.RESTORE_BACKGROUND:
            x, y, x2, y2 = rect
            canvas[y:y2, x:x2] = 0
        elif disposal == DisposalMethod.RESTORE_PREVIOUS and saved is not None:
            canvas[...] = saved
