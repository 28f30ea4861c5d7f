"""
Tests for the WatermarkRenderer.
"""

import math

import numpy as np
import pytest

from gifmark.errors import UnsupportedWatermarkError
from gifmark.watermark import (
    ImageWatermark,
    OverlaySurface,
    TextWatermark,
    TiledWatermark,
    WatermarkAnchor,
    WatermarkRenderer,
    WatermarkSpec,
    tile_centers,
)


def alpha_box(overlay: OverlaySurface) -> tuple[int, int, int, int]:
    """Returns the bounding box of all visible pixels as x, y, x2, y2."""
    rows = np.flatnonzero(overlay.pixels[:, :, 3].any(axis=1))
    columns = np.flatnonzero(overlay.pixels[:, :, 3].any(axis=0))
    return int(columns[0]), int(rows[0]), int(columns[-1]) + 1, int(rows[-1]) + 1


@pytest.fixture
def renderer():
    return WatermarkRenderer()


class TestTextOverlay:

    def test_centered_text(self, renderer):
        spec = TextWatermark(content="TEST", opacity=1.0, font_size=20)
        overlay = renderer.build_overlay(spec, 200, 100)
        assert overlay.pixels.shape == (100, 200, 4)
        assert not overlay.is_blank
        x, y, x2, y2 = alpha_box(overlay)
        assert abs((x + x2) / 2 - 100) <= 2
        assert abs((y + y2) / 2 - 50) <= 2

    def test_color_and_opacity(self, renderer):
        spec = TextWatermark(content="MMMM", opacity=0.5, font_size=40, color="#00FF00")
        overlay = renderer.build_overlay(spec, 200, 100)
        alpha = overlay.pixels[:, :, 3]
        assert alpha.max() == 128
        visible = overlay.pixels[alpha > 0]
        assert (visible[:, :3] == [0, 255, 0]).all()

    def test_color_alpha_is_combined(self, renderer):
        spec = TextWatermark(content="MMMM", opacity=0.5, font_size=40, color="#0000FF80")
        overlay = renderer.build_overlay(spec, 200, 100)
        assert overlay.pixels[:, :, 3].max() == 64

    def test_position(self, renderer):
        spec = TextWatermark(content="X", opacity=1.0, position={"x": 25, "y": 75})
        x, y, x2, y2 = alpha_box(renderer.build_overlay(spec, 200, 200))
        assert abs((x + x2) / 2 - 50) <= 2
        assert abs((y + y2) / 2 - 150) <= 2

    def test_scale_grows_text(self, renderer):
        small = renderer.build_overlay(TextWatermark(content="TEST", opacity=1.0), 300, 200)
        large = renderer.build_overlay(TextWatermark(content="TEST", opacity=1.0, scale=2), 300, 200)
        small_width = alpha_box(small)[2] - alpha_box(small)[0]
        large_width = alpha_box(large)[2] - alpha_box(large)[0]
        assert large_width > small_width * 1.5

    def test_rotation_turns_text_upright(self, renderer):
        spec = TextWatermark(content="WWWWWW", opacity=1.0, font_size=30, rotation=90)
        x, y, x2, y2 = alpha_box(renderer.build_overlay(spec, 300, 300))
        assert (y2 - y) > (x2 - x)


class TestBlankOverlay:

    def test_zero_opacity(self, renderer):
        spec = TextWatermark(content="TEST", opacity=0.0)
        assert renderer.build_overlay(spec, 50, 40).is_blank

    @pytest.mark.parametrize("content", ["", "   "])
    def test_empty_text(self, renderer, content):
        overlay = renderer.build_overlay(TextWatermark(content=content), 50, 40)
        assert overlay.is_blank
        assert overlay.pixels.shape == (40, 50, 4)

    def test_outside_canvas(self, renderer, red_bitmap):
        spec = ImageWatermark(
            bitmap=red_bitmap,
            opacity=1.0,
            anchor=WatermarkAnchor.BOTTOM_RIGHT,
            margin_x=500,
            margin_y=500,
        )
        assert renderer.build_overlay(spec, 100, 100).is_blank


class TestImageOverlay:

    def test_anchor_top_left(self, renderer, red_bitmap):
        spec = ImageWatermark(
            bitmap=red_bitmap, opacity=1.0, anchor=WatermarkAnchor.TOP_LEFT, margin_x=5, margin_y=7
        )
        overlay = renderer.build_overlay(spec, 50, 50)
        assert alpha_box(overlay) == (5, 7, 15, 17)
        assert (overlay.pixels[7:17, 5:15] == [255, 0, 0, 255]).all()

    @pytest.mark.parametrize(
        "anchor, expected",
        [
            (WatermarkAnchor.TOP_RIGHT, (30, 10, 40, 20)),
            (WatermarkAnchor.BOTTOM_LEFT, (10, 30, 20, 40)),
            (WatermarkAnchor.BOTTOM_RIGHT, (30, 30, 40, 40)),
            (WatermarkAnchor.CENTER, (20, 20, 30, 30)),
        ],
    )
    def test_anchor_presets(self, renderer, red_bitmap, anchor, expected):
        spec = ImageWatermark(bitmap=red_bitmap, opacity=1.0, anchor=anchor, margin_x=10, margin_y=10)
        assert alpha_box(renderer.build_overlay(spec, 50, 50)) == expected

    def test_scale(self, renderer, red_bitmap):
        spec = ImageWatermark(bitmap=red_bitmap, opacity=1.0, scale=2)
        assert alpha_box(renderer.build_overlay(spec, 100, 100)) == (40, 40, 60, 60)

    def test_relative_width(self, renderer, red_bitmap):
        spec = ImageWatermark(bitmap=red_bitmap, opacity=1.0, relative_width=0.5)
        x, y, x2, y2 = alpha_box(renderer.build_overlay(spec, 100, 100))
        assert (x2 - x, y2 - y) == (50, 50)

    def test_rotation_is_clockwise(self, renderer):
        bitmap = np.zeros((10, 20, 4), dtype=np.uint8)
        bitmap[:, :10] = (255, 0, 0, 255)
        bitmap[:, 10:] = (0, 0, 255, 255)
        spec = ImageWatermark(bitmap=bitmap, opacity=1.0, rotation=90)
        overlay = renderer.build_overlay(spec, 100, 100)
        x, y, x2, y2 = alpha_box(overlay)
        assert (x2 - x, y2 - y) == (10, 20)
        # turning clockwise moves the left (red) half to the top
        assert tuple(overlay.pixels[y + 2, x + 5, :3]) == (255, 0, 0)
        assert tuple(overlay.pixels[y2 - 3, x + 5, :3]) == (0, 0, 255)

    def test_partially_visible(self, renderer, red_bitmap):
        spec = ImageWatermark(bitmap=red_bitmap, opacity=1.0, position={"x": 0, "y": 0})
        assert alpha_box(renderer.build_overlay(spec, 50, 50)) == (0, 0, 5, 5)


class TestTiledOverlay:

    def test_tile_centers_cover_canvas(self):
        width, height, spacing = 200, 150, 40
        centers = np.array(tile_centers(width, height, spacing))
        assert len(centers) == (math.ceil(width / spacing) + 1) * (math.ceil(height / spacing) + 1)
        for x, y in [(0, 0), (199, 149), (57, 93), (120, 20)]:
            distance = np.abs(centers - (x, y))
            assert ((distance[:, 0] <= spacing / 2) & (distance[:, 1] <= spacing / 2)).any()

    def test_bitmap_grid(self, renderer):
        bitmap = np.zeros((4, 4, 4), dtype=np.uint8)
        bitmap[...] = (0, 0, 255, 255)
        spec = TiledWatermark(bitmap=bitmap, spacing=20, opacity=1.0)
        overlay = renderer.build_overlay(spec, 100, 100)
        alpha = overlay.pixels[:, :, 3]
        for y in range(0, 100, 20):
            for x in range(0, 100, 20):
                assert alpha[y, x] == 255
        # between the tiles nothing is drawn
        assert alpha[10, 10] == 0
        # the corner tile is cut in half by the canvas border
        assert alpha[0:2, 0:2].all() and not alpha[2:4, 2:4].any()

    def test_position_ignored(self, renderer):
        first = TiledWatermark(content="A", spacing=30, opacity=1.0)
        second = TiledWatermark(content="A", spacing=30, opacity=1.0, position={"x": 10, "y": 10})
        assert np.array_equal(
            renderer.build_overlay(first, 90, 60).pixels,
            renderer.build_overlay(second, 90, 60).pixels,
        )

    def test_text_tiles_cover_canvas(self, renderer):
        spec = TiledWatermark(content="WW", spacing=50, opacity=1.0, font_size=30)
        overlay = renderer.build_overlay(spec, 200, 200)
        alpha = overlay.pixels[:, :, 3]
        for y in range(0, 200, 50):
            for x in range(0, 200, 50):
                assert alpha[max(0, y - 10):y + 10, max(0, x - 10):x + 10].any()


class TestRendererErrors:

    def test_unsupported_spec(self, renderer):
        with pytest.raises(UnsupportedWatermarkError):
            renderer.build_overlay(WatermarkSpec(), 10, 10)

    @pytest.mark.parametrize("size", [(0, 10), (10, 0)])
    def test_invalid_size(self, renderer, size):
        with pytest.raises(ValueError):
            renderer.build_overlay(TextWatermark(content="A"), *size)

    def test_overlay_read_only(self, renderer):
        overlay = renderer.build_overlay(TextWatermark(content="A"), 20, 20)
        with pytest.raises(ValueError):
            overlay.pixels[0, 0, 0] = 1
