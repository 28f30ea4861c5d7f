# gifmark - FrameSampler
"""
Frame sampling for long animations.

Very long GIFs are reduced to a bounded number of frames before they are
watermarked. The retained frames take over the display time of the frames
they replace, so the total duration of the animation does not change.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .frame import DisposalMethod, Frame

logger = logging.getLogger(__name__)


@dataclass
class FrameSampler:
    """Deterministically reduces a frame sequence to at most ``max_frames``.

    Frames are picked at evenly spaced positions ``i * (N - 1) / (max_frames - 1)``
    (rounded down), so the first and the last frame are always kept.

    :ivar max_frames: The maximum number of frames to keep, at least 2
    """

    max_frames: int

    def __post_init__(self):
        if self.max_frames < 2:
            raise ValueError(f"max_frames must be at least 2, got {self.max_frames}")

    def select_indices(self, frame_count: int) -> list[int]:
        """
        Returns the indices of the frames to keep.

        :param frame_count: The number of frames in the sequence
        :return: Ascending list of frame indices
        """
        if frame_count <= self.max_frames:
            return list(range(frame_count))
        last = frame_count - 1
        steps = self.max_frames - 1
        return [(i * last) // steps for i in range(self.max_frames)]

    def sample(self, frames: list[Frame]) -> list[Frame]:
        """
        Samples a frame sequence.

        Each retained frame's delay becomes the summed delay of itself and of
        the dropped frames up to the next retained one.

        :param frames: The full frame sequence
        :return: The input list if it is short enough, otherwise a new list
            of exactly ``max_frames`` frames
        """
        if len(frames) <= self.max_frames:
            return frames
        indices = self.select_indices(len(frames))
        bounds = indices[1:] + [len(frames)]
        sampled = []
        for start, end in zip(indices, bounds):
            group = frames[start:end]
            disposal = group[0].disposal
            if any(frame.disposal.clears_canvas for frame in group):
                disposal = DisposalMethod.RESTORE_BACKGROUND
            sampled.append(
                group[0].replace(
                    delay_cs=sum(frame.delay_cs for frame in group),
                    disposal=disposal,
                )
            )
        logger.debug(f"Sampled {len(frames)} frames down to {len(sampled)}")
        return sampled
