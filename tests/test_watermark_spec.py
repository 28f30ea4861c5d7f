"""
Tests for the watermark specification models.
"""

import io

import numpy as np
import PIL.Image
import pytest
from pydantic import ValidationError

from gifmark.errors import UnsupportedWatermarkError
from gifmark.watermark import (
    ImageWatermark,
    TextWatermark,
    TiledWatermark,
    WatermarkAnchor,
    WatermarkSpec,
    parse_color,
)


class TestTextWatermark:

    def test_defaults(self):
        spec = TextWatermark(content="TEST")
        assert spec.variant == "text"
        assert spec.opacity == 0.5
        assert spec.rotation == 0.0
        assert (spec.position.x, spec.position.y) == (50.0, 50.0)
        assert spec.scale == 1.0
        assert spec.anchor == WatermarkAnchor.CUSTOM
        assert spec.margin_x == spec.margin_y == 20
        assert spec.font_size == 24
        assert spec.color == (255, 0, 0, 255)
        assert not spec.is_tiled

    @pytest.mark.parametrize(
        "rotation, expected",
        [(-30, 330.0), (720, 0.0), (45.5, 45.5), (-360, 0.0)],
    )
    def test_rotation_normalized(self, rotation, expected):
        assert TextWatermark(content="A", rotation=rotation).rotation == pytest.approx(expected)

    def test_opacity_range(self):
        with pytest.raises(ValidationError):
            TextWatermark(content="A", opacity=1.5)
        with pytest.raises(ValidationError):
            TextWatermark(content="A", opacity=-0.1)

    def test_position_range(self):
        with pytest.raises(ValidationError):
            TextWatermark(content="A", position={"x": 120, "y": 50})

    def test_positive_sizes(self):
        with pytest.raises(ValidationError):
            TextWatermark(content="A", font_size=0)
        with pytest.raises(ValidationError):
            TextWatermark(content="A", scale=0)

    def test_frozen(self):
        spec = TextWatermark(content="A")
        with pytest.raises(ValidationError):
            spec.opacity = 1.0
        with pytest.raises(ValidationError):
            spec.content = "B"

    def test_camel_case_aliases(self):
        spec = TextWatermark(text="HELLO", fontSize=40, marginX=5)
        assert spec.content == "HELLO"
        assert spec.font_size == 40
        assert spec.margin_x == 5


class TestColors:

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("#FF0000", (255, 0, 0, 255)),
            ("00ff00", (0, 255, 0, 255)),
            ("#0000FF80", (0, 0, 255, 128)),
            ((1, 2, 3), (1, 2, 3, 255)),
            ([1, 2, 3, 4], (1, 2, 3, 4)),
        ],
    )
    def test_parse_color(self, value, expected):
        assert parse_color(value) == expected

    @pytest.mark.parametrize("value", ["#FFF", "zzzzzz", (1, 2), (0, 0, 300), 5])
    def test_invalid_color(self, value):
        with pytest.raises(ValueError):
            parse_color(value)

    def test_spec_color(self):
        assert TextWatermark(content="A", color="#00FF00").color == (0, 255, 0, 255)
        with pytest.raises(ValidationError):
            TextWatermark(content="A", color="red")


class TestImageWatermark:

    def test_bitmap_from_array(self, red_bitmap):
        spec = ImageWatermark(bitmap=red_bitmap)
        assert spec.bitmap.mode == "RGBA"
        assert spec.bitmap.size == (10, 10)

    def test_bitmap_from_bytes(self):
        buffer = io.BytesIO()
        PIL.Image.new("RGB", (7, 3), (0, 0, 255)).save(buffer, format="PNG")
        spec = ImageWatermark(bitmap=buffer.getvalue())
        assert spec.bitmap.size == (7, 3)
        assert spec.bitmap.getpixel((0, 0)) == (0, 0, 255, 255)

    def test_bitmap_is_copied(self, red_bitmap):
        spec = ImageWatermark(bitmap=red_bitmap)
        red_bitmap[...] = 0
        assert spec.bitmap.getpixel((0, 0)) == (255, 0, 0, 255)

    def test_bitmap_required(self):
        with pytest.raises(ValidationError):
            ImageWatermark()
        with pytest.raises(ValidationError):
            ImageWatermark(bitmap=None)

    def test_invalid_bitmap_data(self):
        with pytest.raises(ValidationError):
            ImageWatermark(bitmap=b"not an image")
        with pytest.raises(ValidationError):
            ImageWatermark(bitmap=np.zeros((4, 4), dtype=np.float32))


class TestTiledWatermark:

    def test_text_tiles(self):
        spec = TiledWatermark(content="DRAFT", spacing=80)
        assert spec.is_tiled
        assert spec.bitmap is None

    def test_bitmap_tiles(self, red_bitmap):
        spec = TiledWatermark(bitmap=red_bitmap)
        assert spec.content is None
        assert spec.spacing == 150

    def test_exactly_one_content(self, red_bitmap):
        with pytest.raises(ValidationError):
            TiledWatermark()
        with pytest.raises(ValidationError):
            TiledWatermark(content="A", bitmap=red_bitmap)

    def test_spacing_positive(self):
        with pytest.raises(ValidationError):
            TiledWatermark(content="A", spacing=0)


class TestSerialization:

    def test_text_round_trip(self):
        spec = TextWatermark(
            content="TEST",
            opacity=0.8,
            rotation=-45,
            position={"x": 10, "y": 90},
            font_size=32,
            color="#00FF0080",
        )
        data = spec.to_dict()
        assert data["type"] == "text"
        assert data["text"] == "TEST"
        assert data["fontSize"] == 32
        assert data["color"] == "#00FF0080"
        assert (data["x"], data["y"]) == (10, 90)
        assert data["rotation"] == 315
        assert data["position"] == "custom"
        assert WatermarkSpec.from_dict(data) == spec

    def test_tiled_round_trip(self):
        spec = TiledWatermark(content="X", spacing=60, opacity=0.3)
        data = spec.to_dict()
        assert data["type"] == "tiled"
        assert data["tileSpacing"] == 60
        assert WatermarkSpec.from_dict(data) == spec

    def test_bitmap_not_serialized(self, red_bitmap):
        data = ImageWatermark(bitmap=red_bitmap, relative_width=0.25).to_dict()
        assert "bitmap" not in data
        assert data["relativeWidth"] == 0.25

    def test_ui_settings(self):
        """The settings dictionary of the editor UI is accepted."""
        spec = WatermarkSpec.from_dict({
            "type": "text",
            "text": "Sample",
            "opacity": 0.5,
            "rotation": 0,
            "x": 50,
            "y": 50,
            "fontSize": 24,
            "color": "#FF0000",
            "tileSpacing": 150,
            "position": "bottom-right",
        })
        assert isinstance(spec, TextWatermark)
        assert spec.anchor == WatermarkAnchor.BOTTOM_RIGHT
        assert spec.content == "Sample"

    def test_unknown_type(self):
        with pytest.raises(UnsupportedWatermarkError):
            WatermarkSpec.from_dict({"type": "video"})
        with pytest.raises(UnsupportedWatermarkError):
            WatermarkSpec.from_dict({})

    def test_snapshot_is_independent(self, red_bitmap):
        spec = ImageWatermark(bitmap=red_bitmap)
        snapshot = spec.snapshot()
        spec.bitmap.putpixel((0, 0), (0, 0, 0, 0))
        assert snapshot.bitmap.getpixel((0, 0)) == (255, 0, 0, 255)
