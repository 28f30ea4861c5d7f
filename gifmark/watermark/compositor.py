"""
Alpha compositing of watermark overlays onto frames.
"""

from __future__ import annotations

from typing import Iterable

import numpy as np

from ..frame import Frame
from .renderer import OverlaySurface


class FrameCompositor:
    """Blends an overlay onto frames with the straight alpha "over" operator.

    Only pixels covered by the overlay (alpha > 0) are touched, all other
    pixels are copied unchanged. The input frame is never modified.
    """

    def composite(self, frame: Frame, overlay: OverlaySurface) -> Frame:
        """
        Composites the overlay over a single frame.

        :param frame: The background frame
        :param overlay: The watermark overlay of the same size
        :return: A new frame with the same delay and disposal
        """
        if (overlay.width, overlay.height) != frame.size:
            raise ValueError(
                f"Overlay size {overlay.width}x{overlay.height} does not match "
                f"frame size {frame.width}x{frame.height}"
            )
        result = frame.pixels.copy()
        mask = overlay.pixels[:, :, 3] > 0
        if not mask.any():
            return frame.replace(pixels=result)

        src = overlay.pixels[mask].astype(np.float32) / 255.0
        dst = frame.pixels[mask].astype(np.float32) / 255.0
        src_a = src[:, 3:4]
        dst_a = dst[:, 3:4] * (1.0 - src_a)
        out_a = src_a + dst_a
        # out_a >= src_a > 0 for every masked pixel
        out_c = (src[:, :3] * src_a + dst[:, :3] * dst_a) / out_a

        blended = np.empty((out_c.shape[0], 4), dtype=np.float32)
        blended[:, :3] = out_c
        blended[:, 3:4] = out_a
        result[mask] = np.clip(np.rint(blended * 255.0), 0, 255).astype(np.uint8)
        return frame.replace(pixels=result)

    def composite_all(self, frames: Iterable[Frame], overlay: OverlaySurface) -> list[Frame]:
        """Composites the overlay onto each frame, keeping the order."""
        return [self.composite(frame, overlay) for frame in frames]
