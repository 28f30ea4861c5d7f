"""
Watermark rendering.

The :class:`WatermarkRenderer` draws a watermark specification once into a
transparent overlay of the target size. The overlay is then composited onto
every frame, so text layout, bitmap scaling and tile placement are only
computed once per animation.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

import numpy as np
import PIL.Image
import PIL.ImageDraw

from ..errors import UnsupportedWatermarkError
from ..font_registry import FontRegistry
from .spec import (
    ImageWatermark,
    TextWatermark,
    TiledWatermark,
    WatermarkAnchor,
    WatermarkSpec,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OverlaySurface:
    """A transparent RGBA layer holding only watermark pixels.

    :ivar pixels: Straight (non-premultiplied) RGBA data, shape (H, W, 4),
        read-only
    """

    pixels: np.ndarray

    def __post_init__(self):
        view = self.pixels.view()
        view.flags.writeable = False
        object.__setattr__(self, "pixels", view)

    @classmethod
    def blank(cls, width: int, height: int) -> OverlaySurface:
        """Creates a fully transparent overlay."""
        return cls(np.zeros((height, width, 4), dtype=np.uint8))

    @property
    def width(self) -> int:
        return self.pixels.shape[1]

    @property
    def height(self) -> int:
        return self.pixels.shape[0]

    @property
    def is_blank(self) -> bool:
        """True if compositing this overlay does not change any pixel."""
        return not self.pixels[:, :, 3].any()


def tile_centers(width: int, height: int, spacing: float) -> list[tuple[float, float]]:
    """
    Returns the cell centers of the tiling grid.

    Cells of size ``spacing`` start half a cell left of and above the canvas,
    the grid extends until it covers the canvas plus a half cell margin.

    :param width: Canvas width
    :param height: Canvas height
    :param spacing: Cell pitch in pixels
    :return: List of (x, y) centers, row by row
    """
    columns = math.ceil(width / spacing) + 1
    rows = math.ceil(height / spacing) + 1
    return [
        (column * spacing, row * spacing)
        for row in range(rows)
        for column in range(columns)
    ]


class WatermarkRenderer:
    """Renders watermark specifications into overlay surfaces.

    :param font_registry: Registry used to resolve text fonts
    """

    def __init__(self, font_registry: type[FontRegistry] = FontRegistry):
        self.font_registry = font_registry

    def build_overlay(self, spec: WatermarkSpec, width: int, height: int) -> OverlaySurface:
        """
        Draws the watermark into a new transparent overlay.

        :param spec: The watermark specification
        :param width: Target width in pixels
        :param height: Target height in pixels
        :return: The overlay. Blank if the watermark is invisible.
        """
        if width < 1 or height < 1:
            raise ValueError(f"Invalid overlay size {width}x{height}")
        if not isinstance(spec, (TextWatermark, ImageWatermark, TiledWatermark)):
            raise UnsupportedWatermarkError(
                f"Unsupported watermark type: {type(spec).__name__}"
            )
        if spec.opacity <= 0.0:
            return OverlaySurface.blank(width, height)

        content = self._content(spec, width)
        if content is None:
            return OverlaySurface.blank(width, height)
        tile = self._finish_tile(content, spec.opacity, spec.rotation)

        canvas = PIL.Image.new("RGBA", (width, height), (0, 0, 0, 0))
        if isinstance(spec, TiledWatermark):
            centers = tile_centers(width, height, spec.spacing)
            for center in centers:
                self._blit(canvas, tile, center)
            logger.debug(f"Tiled watermark: {len(centers)} tiles, pitch {spec.spacing}")
        else:
            center = self._anchor_point(spec, width, height, content.size)
            self._blit(canvas, tile, center)
        return OverlaySurface(np.array(canvas, dtype=np.uint8))

    # -------------------------------------------------------------------------
    # Content
    # -------------------------------------------------------------------------

    def _content(self, spec: WatermarkSpec, canvas_width: int) -> PIL.Image.Image | None:
        """Returns the unrotated watermark content or None if empty."""
        if getattr(spec, "bitmap", None) is not None:
            return self._bitmap_content(spec, canvas_width)
        return self._text_content(spec)

    def _text_content(self, spec: TextWatermark | TiledWatermark) -> PIL.Image.Image | None:
        text = spec.content or ""
        if not text.strip():
            return None
        font = self.font_registry.resolve(spec.font, spec.font_size * spec.scale)
        left, top, right, bottom = font.getbbox(text)
        if right <= left or bottom <= top:
            return None
        mask = PIL.Image.new("L", (right - left, bottom - top), 0)
        PIL.ImageDraw.Draw(mask).text((-left, -top), text, font=font, fill=255)
        coverage = np.asarray(mask, dtype=np.float32) / 255.0
        red, green, blue, alpha = spec.color
        pixels = np.empty((*coverage.shape, 4), dtype=np.uint8)
        pixels[:, :, 0] = red
        pixels[:, :, 1] = green
        pixels[:, :, 2] = blue
        pixels[:, :, 3] = np.rint(coverage * alpha).astype(np.uint8)
        return PIL.Image.fromarray(pixels)

    @staticmethod
    def _bitmap_content(
        spec: ImageWatermark | TiledWatermark, canvas_width: int
    ) -> PIL.Image.Image | None:
        bitmap = spec.bitmap
        if spec.relative_width is not None:
            target_width = canvas_width * spec.relative_width * spec.scale
            factor = target_width / bitmap.width
        else:
            factor = spec.scale
        size = (
            max(0, int(round(bitmap.width * factor))),
            max(0, int(round(bitmap.height * factor))),
        )
        if size[0] == 0 or size[1] == 0:
            return None
        if size == bitmap.size:
            return bitmap.copy()
        return bitmap.resize(size, resample=PIL.Image.Resampling.LANCZOS)

    @staticmethod
    def _finish_tile(content: PIL.Image.Image, opacity: float, rotation: float) -> PIL.Image.Image:
        """Applies opacity and a clockwise rotation to the content."""
        if opacity < 1.0:
            pixels = np.array(content, dtype=np.uint8)
            pixels[:, :, 3] = np.rint(pixels[:, :, 3] * opacity).astype(np.uint8)
            content = PIL.Image.fromarray(pixels)
        if rotation:
            # PIL rotates counter clockwise, the editor clockwise
            content = content.rotate(
                -rotation, resample=PIL.Image.Resampling.BICUBIC, expand=True
            )
        return content

    # -------------------------------------------------------------------------
    # Placement
    # -------------------------------------------------------------------------

    @staticmethod
    def _anchor_point(
        spec: WatermarkSpec, width: int, height: int, content_size: tuple[int, int]
    ) -> tuple[float, float]:
        """Returns the watermark center on the canvas."""
        half_w = content_size[0] / 2
        half_h = content_size[1] / 2
        anchor = spec.anchor
        if anchor == WatermarkAnchor.TOP_LEFT:
            return half_w + spec.margin_x, half_h + spec.margin_y
        if anchor == WatermarkAnchor.TOP_RIGHT:
            return width - half_w - spec.margin_x, half_h + spec.margin_y
        if anchor == WatermarkAnchor.BOTTOM_LEFT:
            return half_w + spec.margin_x, height - half_h - spec.margin_y
        if anchor == WatermarkAnchor.BOTTOM_RIGHT:
            return width - half_w - spec.margin_x, height - half_h - spec.margin_y
        if anchor == WatermarkAnchor.CENTER:
            return width / 2, height / 2
        return spec.position.x / 100.0 * width, spec.position.y / 100.0 * height

    @staticmethod
    def _blit(canvas: PIL.Image.Image, tile: PIL.Image.Image, center: tuple[float, float]) -> None:
        """Alpha composites the tile centered at ``center``, clipped to the canvas."""
        left = int(round(center[0] - tile.width / 2))
        top = int(round(center[1] - tile.height / 2))
        src_left = max(0, -left)
        src_top = max(0, -top)
        src_right = min(tile.width, canvas.width - left)
        src_bottom = min(tile.height, canvas.height - top)
        if src_right <= src_left or src_bottom <= src_top:
            return
        canvas.alpha_composite(
            tile,
            dest=(left + src_left, top + src_top),
            source=(src_left, src_top, src_right, src_bottom),
        )
