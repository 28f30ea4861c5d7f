"""
Watermark specifications.

A watermark specification is an immutable, validated description of what is
drawn onto every frame. It is one of three variants, selected by the class:

- :class:`TextWatermark`: a single text, positioned and rotated
- :class:`ImageWatermark`: a single bitmap, positioned and rotated
- :class:`TiledWatermark`: text or a bitmap repeated on a grid

Specs serialize to the flat settings dictionary used by the editor UI
(``type``, ``opacity``, ``rotation``, ``x``, ``y``, ``fontSize``,
``tileSpacing`` ...) via :meth:`WatermarkSpec.to_dict` and are restored with
:meth:`WatermarkSpec.from_dict`.
"""

from __future__ import annotations

import io
from enum import Enum
from typing import Any, ClassVar, Dict, Tuple, Type

import numpy as np
import PIL.Image
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)

from ..config import settings
from ..errors import UnsupportedWatermarkError

RGBAColor = Tuple[int, int, int, int]


class WatermarkAnchor(str, Enum):
    """Where a single watermark is placed on the canvas."""

    CUSTOM = "custom"
    TOP_LEFT = "top-left"
    TOP_RIGHT = "top-right"
    BOTTOM_LEFT = "bottom-left"
    BOTTOM_RIGHT = "bottom-right"
    CENTER = "center"


class WatermarkPosition(BaseModel):
    """Watermark center in percent of the canvas size."""

    model_config = ConfigDict(frozen=True)

    x: float = Field(default=50.0, ge=0.0, le=100.0)
    y: float = Field(default=50.0, ge=0.0, le=100.0)


def parse_color(color: Any) -> RGBAColor:
    """
    Parses a color from various formats to an RGBA tuple.

    Accepts:
    - RGB or RGBA tuple/list: (255, 0, 0) or [255, 0, 0, 128]
    - Hex string: '#FF0000', 'FF0000' or '#FF000080'

    :param color: The color definition
    :return: RGBA tuple (0-255)
    """
    if isinstance(color, str):
        hex_str = color.lstrip("#")
        if len(hex_str) not in (6, 8):
            raise ValueError(f"Invalid hex color: {color}")
        values = [int(hex_str[i:i + 2], 16) for i in range(0, len(hex_str), 2)]
    elif isinstance(color, (list, tuple)):
        values = [int(value) for value in color]
    else:
        raise ValueError(f"Invalid color format: {color}")
    if len(values) == 3:
        values.append(255)
    if len(values) != 4 or not all(0 <= value <= 255 for value in values):
        raise ValueError(f"Invalid color: {color}")
    return tuple(values)


def load_bitmap(source: Any) -> PIL.Image.Image | None:
    """
    Converts a watermark bitmap source into a private RGBA Pillow image.

    :param source: Pillow image, numpy array (gray, RGB or RGBA) or encoded
        image bytes
    :return: An RGBA copy, never sharing data with the source
    """
    if source is None:
        return None
    if isinstance(source, PIL.Image.Image):
        return source.convert("RGBA")
    if isinstance(source, np.ndarray):
        if source.dtype != np.uint8:
            raise ValueError("Bitmap arrays must be of type uint8")
        return PIL.Image.fromarray(source).convert("RGBA")
    if isinstance(source, (bytes, bytearray)):
        try:
            image = PIL.Image.open(io.BytesIO(source))
            image.load()
        except PIL.UnidentifiedImageError:
            raise ValueError("Invalid or damaged bitmap data")
        return image.convert("RGBA")
    raise ValueError(f"Unsupported bitmap source: {type(source).__name__}")


class WatermarkSpec(BaseModel):
    """
    Base class for all watermark variants.

    Subclasses set :attr:`variant` and are registered automatically, so
    :meth:`from_dict` can restore them from their ``type`` tag.
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        extra="ignore",
        arbitrary_types_allowed=True,
    )

    variant: ClassVar[str] = "base"

    # Registry of spec classes by variant tag
    _registry: ClassVar[Dict[str, Type["WatermarkSpec"]]] = {}

    opacity: float = Field(default=0.5, ge=0.0, le=1.0)
    rotation: float = Field(default=0.0)
    position: WatermarkPosition = Field(default_factory=WatermarkPosition)
    scale: float = Field(default=1.0, gt=0.0)
    anchor: WatermarkAnchor = Field(default=WatermarkAnchor.CUSTOM)
    margin_x: float = Field(default_factory=lambda: settings.DEFAULT_MARGIN, ge=0.0, alias="marginX")
    margin_y: float = Field(default_factory=lambda: settings.DEFAULT_MARGIN, ge=0.0, alias="marginY")

    def __init_subclass__(cls, **kwargs):
        """Register spec subclass in registry."""
        super().__init_subclass__(**kwargs)
        if cls.variant != "base":
            WatermarkSpec._registry[cls.variant] = cls

    @field_validator("rotation")
    @classmethod
    def _normalize_rotation(cls, value: float) -> float:
        return float(value) % 360.0

    @property
    def is_tiled(self) -> bool:
        """Whether the watermark is repeated across the canvas."""
        return False

    def snapshot(self) -> WatermarkSpec:
        """
        Returns an independent copy, e.g. to decouple a task from later
        changes of a shared bitmap.
        """
        return self.model_copy(deep=True)

    # =========================================================================
    # Serialization (UI settings format)
    # =========================================================================

    def to_dict(self) -> Dict[str, Any]:
        """
        Serializes the watermark to the flat settings format of the editor UI.

        Bitmaps are not serialized.

        :return: Dict with ``type`` tag and camelCase keys
        """
        data = self.model_dump(
            by_alias=True,
            mode="json",
            exclude={"bitmap", "position", "anchor"},
        )
        data["type"] = self.variant
        data["x"] = self.position.x
        data["y"] = self.position.y
        data["position"] = self.anchor.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> WatermarkSpec:
        """
        Reconstructs a spec from its settings dictionary.

        :param data: Dictionary from :meth:`to_dict` or the editor UI
        :return: The spec instance of the class registered for ``type``
        """
        data = dict(data)
        variant = data.pop("type", None) or data.pop("variant", None)
        spec_class = cls._registry.get(variant)
        if spec_class is None:
            raise UnsupportedWatermarkError(f"Unknown watermark type: {variant}")
        if isinstance(data.get("position"), str):
            data["anchor"] = data.pop("position")
        if "x" in data or "y" in data:
            data["position"] = {"x": data.pop("x", 50.0), "y": data.pop("y", 50.0)}
        return spec_class.model_validate(data)


class _TextFields(BaseModel):
    """Fields and validators shared by all text based variants."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    font_size: float = Field(default=24.0, gt=0.0, alias="fontSize")
    color: RGBAColor = Field(default=(255, 0, 0, 255))
    font: str | None = Field(default=None)

    @field_validator("color", mode="before")
    @classmethod
    def _parse_color(cls, value: Any) -> RGBAColor:
        return parse_color(value)

    @field_serializer("color")
    def _serialize_color(self, color: RGBAColor) -> str:
        hex_str = "#" + "".join(f"{value:02X}" for value in color[:3])
        return hex_str if color[3] == 255 else hex_str + f"{color[3]:02X}"


class TextWatermark(WatermarkSpec, _TextFields):
    """
    A single text watermark.

    Example:
        >>> spec = TextWatermark(content="TEST", opacity=1.0, font_size=20)
    """

    variant: ClassVar[str] = "text"

    content: str = Field(default="", alias="text")


class ImageWatermark(WatermarkSpec):
    """
    A single bitmap watermark.

    The bitmap is drawn at its natural size times :attr:`scale`, or at
    ``relative_width`` of the canvas width (times :attr:`scale`) if set.
    """

    variant: ClassVar[str] = "image"

    bitmap: PIL.Image.Image
    relative_width: float | None = Field(default=None, gt=0.0, alias="relativeWidth")

    @field_validator("bitmap", mode="before")
    @classmethod
    def _load_bitmap(cls, value: Any) -> PIL.Image.Image:
        if value is None:
            raise ValueError("An image watermark requires a bitmap")
        return load_bitmap(value)


class TiledWatermark(WatermarkSpec, _TextFields):
    """
    Text or a bitmap repeated on a grid covering the whole canvas.

    Exactly one of ``content`` and ``bitmap`` has to be provided. The
    position and anchor of the base class are ignored.
    """

    variant: ClassVar[str] = "tiled"

    spacing: float = Field(default=150.0, gt=0.0, alias="tileSpacing")
    content: str | None = Field(default=None, alias="text")
    bitmap: PIL.Image.Image | None = Field(default=None)
    relative_width: float | None = Field(default=None, gt=0.0, alias="relativeWidth")

    @field_validator("bitmap", mode="before")
    @classmethod
    def _load_bitmap(cls, value: Any) -> PIL.Image.Image | None:
        return load_bitmap(value)

    @model_validator(mode="after")
    def _check_content(self) -> TiledWatermark:
        if (self.content is None) == (self.bitmap is None):
            raise ValueError("A tiled watermark requires either text content or a bitmap")
        return self

    @property
    def is_tiled(self) -> bool:
        return True


__all__ = [
    "WatermarkSpec",
    "TextWatermark",
    "ImageWatermark",
    "TiledWatermark",
    "WatermarkAnchor",
    "WatermarkPosition",
    "parse_color",
    "load_bitmap",
]
