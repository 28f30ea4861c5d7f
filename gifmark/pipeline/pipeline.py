"""
The watermarking pipeline: decode, sample, render, composite and encode.

Example::

    pipeline = WatermarkPipeline(PipelineConfig(max_frames=100, quality=10))
    spec = TextWatermark(content="(c) 2024", opacity=0.5, rotation=-30)
    result = pipeline.run(gif_bytes, spec, on_progress=print)
"""

from __future__ import annotations

import asyncio
import functools
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any

from ..config import settings
from ..frame import Frame, GifDocument
from ..gif import KEEP_LOOP_COUNT, GifDecoder, GifEncoder
from ..gif.encoder import MAX_QUALITY, MIN_QUALITY
from ..sampler import FrameSampler
from ..watermark import FrameCompositor, OverlaySurface, WatermarkRenderer, WatermarkSpec
from .progress import CancellationToken, ProgressCallback, ProgressTracker, TaskStatus

logger = logging.getLogger(__name__)


@dataclass
class PipelineConfig:
    """Processing options of a :class:`WatermarkPipeline`.

    :param max_frames: Longer animations are sampled down to this many frames
    :param quality: Encoder palette quality, 1 (best) to 30 (fastest)
    :param dither: Dither quantized frames
    :param loop_count: Loop count of the output, by default the source's
    :param num_workers: Threads used to composite and quantize frames
    """

    max_frames: int = 300
    quality: int = 10
    dither: bool = False
    loop_count: Any = KEEP_LOOP_COUNT
    num_workers: int = 1

    def __post_init__(self):
        if not MIN_QUALITY <= self.quality <= MAX_QUALITY:
            raise ValueError(
                f"Quality must be between {MIN_QUALITY} and {MAX_QUALITY}, got {self.quality}"
            )
        if self.max_frames < 2:
            raise ValueError(f"max_frames must be at least 2, got {self.max_frames}")
        if self.num_workers < 1:
            raise ValueError(f"num_workers must be at least 1, got {self.num_workers}")

    @classmethod
    def from_settings(cls, **overrides) -> PipelineConfig:
        """Creates a configuration from the application settings.

        :param overrides: Values replacing the configured defaults
        """
        values = dict(
            max_frames=settings.MAX_FRAMES,
            quality=settings.QUALITY,
            dither=settings.DITHER,
            num_workers=settings.NUM_WORKERS,
        )
        values.update(overrides)
        return cls(**values)


class WatermarkPipeline:
    """Applies a watermark to every frame of an animated GIF.

    The overlay is rendered once per animation and composited onto all
    frames. Progress is reported as :class:`ProgressEvent` instances and the
    run can be cancelled cooperatively through a :class:`CancellationToken`.

    :param config: Processing options, defaults to the application settings
    :param renderer: Renderer used to build overlays
    """

    def __init__(
        self,
        config: PipelineConfig | None = None,
        renderer: WatermarkRenderer | None = None,
    ):
        self.config = config if config is not None else PipelineConfig.from_settings()
        self.decoder = GifDecoder()
        self.sampler = FrameSampler(self.config.max_frames)
        self.renderer = renderer if renderer is not None else WatermarkRenderer()
        self.compositor = FrameCompositor()

    # =========================================================================
    # Public API
    # =========================================================================

    def run(
        self,
        data: bytes,
        spec: WatermarkSpec,
        on_progress: ProgressCallback | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> bytes:
        """
        Watermarks a GIF file.

        :param data: The GIF file content
        :param spec: The watermark to apply
        :param on_progress: Optional receiver of progress events
        :param cancel_token: Optional token to cancel the run
        :return: The watermarked GIF file content
        """
        tracker = ProgressTracker(on_progress)
        token = cancel_token if cancel_token is not None else CancellationToken()
        document = self._decode(data, tracker, token)
        return self._encode_watermarked(document, spec, tracker, token)

    def decode(
        self,
        data: bytes,
        on_progress: ProgressCallback | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> GifDocument:
        """
        Decodes a GIF file, e.g. to watermark it repeatedly with
        :meth:`run_document`.

        :param data: The GIF file content
        :param on_progress: Optional receiver of progress events
        :param cancel_token: Optional token to cancel the run
        :return: The decoded document
        """
        tracker = ProgressTracker(on_progress)
        token = cancel_token if cancel_token is not None else CancellationToken()
        return self._decode(data, tracker, token)

    def run_document(
        self,
        document: GifDocument,
        spec: WatermarkSpec,
        on_progress: ProgressCallback | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> bytes:
        """
        Watermarks an already decoded document and encodes it.

        :param document: The decoded source animation, not modified
        :param spec: The watermark to apply
        :param on_progress: Optional receiver of progress events
        :param cancel_token: Optional token to cancel the run
        :return: The watermarked GIF file content
        """
        tracker = ProgressTracker(on_progress)
        token = cancel_token if cancel_token is not None else CancellationToken()
        return self._encode_watermarked(document, spec, tracker, token)

    def process(
        self,
        document: GifDocument,
        spec: WatermarkSpec,
        on_progress: ProgressCallback | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> GifDocument:
        """
        Samples and watermarks a decoded document without encoding it.

        :param document: The decoded source animation, not modified
        :param spec: The watermark to apply
        :param on_progress: Optional receiver of progress events
        :param cancel_token: Optional token to cancel the run
        :return: A new document holding the watermarked frames
        """
        tracker = ProgressTracker(on_progress)
        token = cancel_token if cancel_token is not None else CancellationToken()
        result = self._watermark(document, spec, tracker, token)
        tracker.finish()
        return result

    async def run_async(
        self,
        data: bytes,
        spec: WatermarkSpec,
        on_progress: ProgressCallback | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> bytes:
        """Runs :meth:`run` on the event loop's default executor."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, functools.partial(self.run, data, spec, on_progress, cancel_token)
        )

    # =========================================================================
    # Stages
    # =========================================================================

    def _decode(self, data: bytes, tracker: ProgressTracker, token: CancellationToken) -> GifDocument:
        token.raise_if_cancelled()
        tracker.start(TaskStatus.DECODING, "Decoding GIF")
        start = time.perf_counter()

        def on_frame(fraction: float) -> None:
            token.raise_if_cancelled()
            tracker.update(fraction, "Decoding GIF")

        document = self.decoder.decode(data, on_progress=on_frame)
        tracker.update(1.0, f"Decoded {document.frame_count} frames")
        logger.debug(
            f"Decoded {document.frame_count} frames of {document.width}x{document.height} "
            f"in {(time.perf_counter() - start) * 1000:.1f}ms"
        )
        return document

    def _watermark(
        self,
        document: GifDocument,
        spec: WatermarkSpec,
        tracker: ProgressTracker,
        token: CancellationToken,
    ) -> GifDocument:
        token.raise_if_cancelled()
        tracker.start(TaskStatus.SAMPLING, "Sampling frames")
        frames = self.sampler.sample(document.frames)
        if len(frames) != document.frame_count:
            logger.info(f"Reduced {document.frame_count} frames to {len(frames)}")

        token.raise_if_cancelled()
        tracker.start(TaskStatus.RENDERING, "Rendering watermark")
        start = time.perf_counter()
        overlay = self.renderer.build_overlay(spec, document.width, document.height)
        tracker.update(1.0, "Rendered watermark")
        logger.debug(f"Rendered overlay in {(time.perf_counter() - start) * 1000:.1f}ms")

        token.raise_if_cancelled()
        tracker.start(TaskStatus.COMPOSITING, "Applying watermark")
        start = time.perf_counter()
        composited = self._composite(frames, overlay, tracker, token)
        logger.debug(
            f"Composited {len(composited)} frames in {(time.perf_counter() - start) * 1000:.1f}ms"
        )
        return document.with_frames(composited)

    def _composite(
        self,
        frames: list[Frame],
        overlay: OverlaySurface,
        tracker: ProgressTracker,
        token: CancellationToken,
    ) -> list[Frame]:
        """Composites all frames, in batches of ``num_workers`` if parallel."""
        total = len(frames)
        workers = max(1, self.config.num_workers)
        if workers == 1 or total < 2:
            result = []
            for index, frame in enumerate(frames):
                token.raise_if_cancelled()
                result.append(self.compositor.composite(frame, overlay))
                tracker.update((index + 1) / total, f"Applied watermark to frame {index + 1}/{total}")
            return result

        result: list[Frame | None] = [None] * total
        with ThreadPoolExecutor(max_workers=workers) as executor:
            for batch_start in range(0, total, workers):
                token.raise_if_cancelled()
                batch = range(batch_start, min(batch_start + workers, total))
                futures = {
                    index: executor.submit(self.compositor.composite, frames[index], overlay)
                    for index in batch
                }
                for index, future in futures.items():
                    result[index] = future.result()
                done = batch[-1] + 1
                tracker.update(done / total, f"Applied watermark to frame {done}/{total}")
        return result

    def _encode_watermarked(
        self,
        document: GifDocument,
        spec: WatermarkSpec,
        tracker: ProgressTracker,
        token: CancellationToken,
    ) -> bytes:
        watermarked = self._watermark(document, spec, tracker, token)

        token.raise_if_cancelled()
        tracker.start(TaskStatus.ENCODING, "Encoding GIF")
        start = time.perf_counter()
        encoder = GifEncoder(
            quality=self.config.quality,
            dither=self.config.dither,
            loop_count=self.config.loop_count,
            num_workers=self.config.num_workers,
        )
        total = watermarked.frame_count

        def on_frame(fraction: float) -> None:
            token.raise_if_cancelled()
            tracker.update(fraction, f"Encoded frame {round(fraction * total)}/{total}")

        data = encoder.encode(watermarked, on_progress=on_frame)
        logger.debug(
            f"Encoded {total} frames to {len(data)} bytes "
            f"in {(time.perf_counter() - start) * 1000:.1f}ms"
        )
        tracker.finish()
        return data
