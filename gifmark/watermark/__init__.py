"""
Watermark specifications, rendering and compositing.
"""

from .spec import (
    WatermarkSpec,
    TextWatermark,
    ImageWatermark,
    TiledWatermark,
    WatermarkAnchor,
    WatermarkPosition,
    parse_color,
    load_bitmap,
)
from .renderer import OverlaySurface, WatermarkRenderer, tile_centers
from .compositor import FrameCompositor

__all__ = [
    "WatermarkSpec",
    "TextWatermark",
    "ImageWatermark",
    "TiledWatermark",
    "WatermarkAnchor",
    "WatermarkPosition",
    "parse_color",
    "load_bitmap",
    "OverlaySurface",
    "WatermarkRenderer",
    "tile_centers",
    "FrameCompositor",
]
