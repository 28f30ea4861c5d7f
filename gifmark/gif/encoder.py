"""GIF encoding of full-canvas RGBA frames.

The :class:`GifEncoder` writes GIF89a files. If all frames together use at
most 256 colors a single exact global color table is written. Otherwise each
frame gets its own local color table which is exact where possible and
quantized with Pillow otherwise.
"""

from __future__ import annotations

import logging
import struct
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable

import numpy as np
import PIL.Image

from ..errors import EncodeError
from ..frame import Frame, GifDocument
from .decoder import TRAILER
from .lzw import lzw_encode

logger = logging.getLogger(__name__)

MIN_QUALITY = 1
MAX_QUALITY = 30
ALPHA_THRESHOLD = 128
"Pixels with a lower alpha value are written as transparent"

MAX_SUB_BLOCK = 255

KEEP_LOOP_COUNT = object()
"Default for loop_count: write the loop count of the encoded document"


@dataclass
class IndexedFrame:
    """A frame converted to palette indices, ready to be written.

    :ivar indices: One palette index per pixel, shape (height, width)
    :ivar palette: RGB palette entries, shape (n, 3)
    :ivar transparent_index: Index of the transparent entry, if any
    :ivar local: Whether the palette is written as local color table
    """

    indices: np.ndarray
    palette: np.ndarray
    transparent_index: int | None
    local: bool


def _pack_rgb(pixels: np.ndarray) -> np.ndarray:
    """Packs the RGB channels of an RGBA array into single uint32 keys."""
    rgb = pixels[..., :3].astype(np.uint32)
    return (rgb[..., 0] << 16) | (rgb[..., 1] << 8) | rgb[..., 2]


def _unpack_rgb(keys: np.ndarray) -> np.ndarray:
    return np.stack(
        [(keys >> 16) & 0xFF, (keys >> 8) & 0xFF, keys & 0xFF], axis=-1
    ).astype(np.uint8)


def _table_size_field(entries: int) -> int:
    """Returns the 3 bit size field for a color table of >= entries colors."""
    bits = max(1, (max(entries, 2) - 1).bit_length())
    return bits - 1


class GifEncoder:
    """Encodes :class:`GifDocument` instances into GIF89a files.

    :param quality: Palette quality from 1 (best, slowest) to 30 (fastest).
        Only relevant for frames with more than 256 colors.
    :param dither: Apply Floyd-Steinberg dithering when quantizing
    :param loop_count: Loop count to write. 0 loops forever, None writes no
        looping extension. By default the document's loop count is used.
    :param num_workers: Number of threads used to quantize frames
    """

    def __init__(
        self,
        quality: int = 10,
        dither: bool = False,
        loop_count: int | None = KEEP_LOOP_COUNT,
        num_workers: int = 1,
    ):
        if not MIN_QUALITY <= quality <= MAX_QUALITY:
            raise EncodeError(
                f"Quality must be between {MIN_QUALITY} and {MAX_QUALITY}, got {quality}"
            )
        self.quality = quality
        self.dither = dither
        self.loop_count = loop_count
        self.num_workers = max(1, num_workers)

    @property
    def palette_size(self) -> int:
        """Number of colors used when a frame has to be quantized"""
        return 256 - 4 * (self.quality - 1)

    def encode(
        self,
        document: GifDocument,
        on_progress: Callable[[float], None] | None = None,
    ) -> bytes:
        """
        Encodes a document.

        :param document: The document to encode
        :param on_progress: Optional callback receiving the fraction of frames
            written so far
        :return: The GIF file content
        """
        frames = document.frames
        if not frames:
            raise EncodeError("Can not encode a GIF without frames")
        for index, frame in enumerate(frames):
            if frame.size != document.size:
                raise EncodeError(
                    f"Frame {index} has size {frame.width}x{frame.height}, "
                    f"expected {document.width}x{document.height}"
                )
        loop_count = document.loop_count if self.loop_count is KEEP_LOOP_COUNT else self.loop_count

        global_palette, indexed = self._index_frames(frames)

        out = bytearray(b"GIF89a")
        packed = 0x70  # 8 bit color resolution
        if global_palette is not None:
            packed |= 0x80 | _table_size_field(len(global_palette))
        out += struct.pack("<HHBBB", document.width, document.height, packed, 0, 0)
        if global_palette is not None:
            out += self._color_table(global_palette)
        if loop_count is not None:
            out += b"\x21\xFF\x0BNETSCAPE2.0\x03\x01"
            out += struct.pack("<H", min(max(loop_count, 0), 0xFFFF))
            out += b"\x00"

        total = len(frames)
        for number, (frame, item) in enumerate(zip(frames, indexed), start=1):
            out += self._graphic_control(frame, item.transparent_index)
            out += self._image(document, item)
            if on_progress is not None:
                on_progress(number / total)
        out.append(TRAILER)
        logger.debug(
            f"Encoded {total} frames, {len(out)} bytes, "
            f"{'global' if global_palette is not None else 'local'} palettes"
        )
        return bytes(out)

    # -------------------------------------------------------------------------
    # Palettes
    # -------------------------------------------------------------------------

    def _index_frames(self, frames: list[Frame]) -> tuple[np.ndarray | None, list[IndexedFrame]]:
        """Converts all frames to indices, preferring one global palette."""
        keys = []
        transparency = False
        for frame in frames:
            opaque = frame.pixels[:, :, 3] >= ALPHA_THRESHOLD
            transparency = transparency or not opaque.all()
            keys.append(np.unique(_pack_rgb(frame.pixels)[opaque]))
        all_keys = np.unique(np.concatenate(keys))
        if len(all_keys) + (1 if transparency else 0) <= 256:
            palette = _unpack_rgb(all_keys)
            transparent_index = len(all_keys) if transparency else None
            if transparency:
                palette = np.vstack([palette, np.zeros((1, 3), dtype=np.uint8)])
            indexed = [
                IndexedFrame(
                    indices=self._map_exact(frame.pixels, all_keys, transparent_index),
                    palette=palette,
                    transparent_index=transparent_index,
                    local=False,
                )
                for frame in frames
            ]
            return palette, indexed

        if self.num_workers > 1 and len(frames) > 1:
            with ThreadPoolExecutor(max_workers=self.num_workers) as executor:
                indexed = list(executor.map(self._index_local, frames, keys))
        else:
            indexed = [self._index_local(frame, k) for frame, k in zip(frames, keys)]
        return None, indexed

    @staticmethod
    def _map_exact(pixels: np.ndarray, keys: np.ndarray, transparent_index: int | None) -> np.ndarray:
        packed = _pack_rgb(pixels)
        indices = np.searchsorted(keys, packed).astype(np.uint8) if len(keys) else \
            np.zeros(packed.shape, dtype=np.uint8)
        if transparent_index is not None:
            indices[pixels[:, :, 3] < ALPHA_THRESHOLD] = transparent_index
        return indices

    def _index_local(self, frame: Frame, keys: np.ndarray) -> IndexedFrame:
        """Builds the local palette of a single frame."""
        pixels = frame.pixels
        transparent = pixels[:, :, 3] < ALPHA_THRESHOLD
        has_transparency = bool(transparent.any())
        capacity = 255 if has_transparency else 256
        if len(keys) <= capacity:
            palette = _unpack_rgb(keys)
            transparent_index = len(keys) if has_transparency else None
            indices = self._map_exact(pixels, keys, transparent_index)
        else:
            colors = min(self.palette_size, capacity)
            palette, indices = self._quantize(pixels, ~transparent, colors)
            transparent_index = len(palette) if has_transparency else None
            if has_transparency:
                indices[transparent] = transparent_index
        if transparent_index is not None:
            palette = np.vstack([palette, np.zeros((1, 3), dtype=np.uint8)])
        return IndexedFrame(
            indices=indices,
            palette=palette,
            transparent_index=transparent_index,
            local=True,
        )

    def _quantize(
        self, pixels: np.ndarray, opaque: np.ndarray, colors: int
    ) -> tuple[np.ndarray, np.ndarray]:
        """
        Reduces a frame to at most ``colors`` colors.

        The palette is computed from the opaque pixels only, afterwards all
        pixels are mapped onto it.

        :return: The RGB palette and the index array
        """
        method = (
            PIL.Image.Quantize.MEDIANCUT
            if self.quality <= 10
            else PIL.Image.Quantize.FASTOCTREE
        )
        samples = np.ascontiguousarray(pixels[opaque][:, :3]).reshape(1, -1, 3)
        palette_image = PIL.Image.fromarray(samples).quantize(
            colors=colors, method=method
        )
        rgb = PIL.Image.fromarray(np.ascontiguousarray(pixels[:, :, :3]))
        dither = PIL.Image.Dither.FLOYDSTEINBERG if self.dither else PIL.Image.Dither.NONE
        mapped = rgb.quantize(palette=palette_image, dither=dither)
        indices = np.array(mapped, dtype=np.uint8)
        raw = np.array(palette_image.getpalette() or [], dtype=np.uint8).reshape(-1, 3)
        # keep only the entries in use, in their original order
        used = np.unique(indices)
        lookup = np.zeros(256, dtype=np.uint8)
        lookup[used] = np.arange(len(used), dtype=np.uint8)
        palette = np.zeros((len(used), 3), dtype=np.uint8)
        known = used[used < len(raw)]
        palette[: len(known)] = raw[known]
        return palette, lookup[indices]

    # -------------------------------------------------------------------------
    # Blocks
    # -------------------------------------------------------------------------

    @staticmethod
    def _color_table(palette: np.ndarray) -> bytes:
        size = 2 << _table_size_field(len(palette))
        table = np.zeros((size, 3), dtype=np.uint8)
        table[: len(palette)] = palette
        return table.tobytes()

    @staticmethod
    def _graphic_control(frame: Frame, transparent_index: int | None) -> bytes:
        packed = (int(frame.disposal) & 0x07) << 2
        if transparent_index is not None:
            packed |= 0x01
        return b"\x21\xF9\x04" + struct.pack(
            "<BHB",
            packed,
            min(frame.delay_cs, 0xFFFF),
            transparent_index if transparent_index is not None else 0,
        ) + b"\x00"

    def _image(self, document: GifDocument, item: IndexedFrame) -> bytes:
        packed = 0
        if item.local:
            packed = 0x80 | _table_size_field(len(item.palette))
        out = bytearray(b"\x2C")
        out += struct.pack("<HHHHB", 0, 0, document.width, document.height, packed)
        if item.local:
            out += self._color_table(item.palette)
        min_code_size = max(2, _table_size_field(len(item.palette)) + 1)
        data = lzw_encode(item.indices.tobytes(), min_code_size)
        out.append(min_code_size)
        for start in range(0, len(data), MAX_SUB_BLOCK):
            chunk = data[start:start + MAX_SUB_BLOCK]
            out.append(len(chunk))
            out += chunk
        out.append(0)
        return bytes(out)
