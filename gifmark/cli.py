# gifmark command line
"""
Watermark an animated GIF from the command line.

Usage:
    # Semi transparent text in the image center
    gifmark input.gif output.gif --text "(c) 2024" --opacity 0.5

    # Logo in the bottom right corner at 20% of the GIF width
    gifmark input.gif output.gif --image logo.png --anchor bottom-right --relative-width 0.2

    # Rotated, repeated text
    gifmark input.gif output.gif --text DRAFT --tiled --spacing 120 --rotation -30
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from .config import settings
from .errors import GifmarkError
from .gif import KEEP_LOOP_COUNT
from .pipeline import PipelineConfig, ProgressEvent, WatermarkPipeline
from .watermark import (
    ImageWatermark,
    TextWatermark,
    TiledWatermark,
    WatermarkAnchor,
    WatermarkSpec,
)

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


def build_parser() -> argparse.ArgumentParser:
    """Creates the argument parser."""
    parser = argparse.ArgumentParser(
        prog="gifmark",
        description="Apply a text or image watermark to every frame of a GIF",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s in.gif out.gif --text "(c) 2024"               # Centered text
  %(prog)s in.gif out.gif --image logo.png --anchor top-left
  %(prog)s in.gif out.gif --text DRAFT --tiled --rotation -30
""",
    )
    parser.add_argument("input", type=Path, help="Source GIF file")
    parser.add_argument("output", type=Path, help="Target GIF file")

    content = parser.add_mutually_exclusive_group(required=True)
    content.add_argument("--text", help="Watermark text")
    content.add_argument("--image", type=Path, help="Watermark image file")

    layout = parser.add_argument_group("watermark")
    layout.add_argument("--tiled", action="store_true", help="Repeat the watermark on a grid")
    layout.add_argument("--spacing", type=float, help="Grid pitch in pixels (default: 150)")
    layout.add_argument("--opacity", type=float, help="Opacity from 0 to 1 (default: 0.5)")
    layout.add_argument("--rotation", type=float, help="Clockwise rotation in degrees")
    layout.add_argument("--x", type=float, help="Horizontal center in percent (default: 50)")
    layout.add_argument("--y", type=float, help="Vertical center in percent (default: 50)")
    layout.add_argument(
        "--anchor",
        choices=[anchor.value for anchor in WatermarkAnchor],
        help="Place the watermark in a corner or the center instead of at --x/--y",
    )
    layout.add_argument("--font-size", type=float, help="Font size in pixels (default: 24)")
    layout.add_argument("--font", help="Font name or font file")
    layout.add_argument("--color", help="Text color as #RRGGBB or #RRGGBBAA")
    layout.add_argument("--scale", type=float, help="Size multiplier (default: 1)")
    layout.add_argument(
        "--relative-width", type=float, help="Image width as fraction of the GIF width"
    )

    output = parser.add_argument_group("output")
    output.add_argument(
        "--max-frames",
        type=int,
        default=settings.MAX_FRAMES,
        help=f"Sample longer GIFs down to this many frames (default: {settings.MAX_FRAMES})",
    )
    output.add_argument(
        "--quality",
        type=int,
        default=settings.QUALITY,
        help=f"Palette quality, 1 (best) to 30 (fastest) (default: {settings.QUALITY})",
    )
    output.add_argument(
        "--dither", action="store_true", default=settings.DITHER, help="Dither reduced palettes"
    )
    output.add_argument(
        "--workers",
        type=int,
        default=settings.NUM_WORKERS,
        help=f"Worker threads (default: {settings.NUM_WORKERS})",
    )
    output.add_argument(
        "--loop", type=int, help="Loop count, 0 loops forever (default: as the source)"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    return parser


def build_spec(args: argparse.Namespace) -> WatermarkSpec:
    """
    Creates the watermark specification from parsed arguments.

    Options which were not given keep the specification's defaults.

    :param args: The parsed command line arguments
    :return: The watermark specification
    """
    values = {
        "opacity": args.opacity,
        "rotation": args.rotation,
        "scale": args.scale,
        "anchor": args.anchor,
    }
    if args.x is not None or args.y is not None:
        values["position"] = {
            "x": args.x if args.x is not None else 50.0,
            "y": args.y if args.y is not None else 50.0,
        }
    text_values = {"font_size": args.font_size, "font": args.font, "color": args.color}
    bitmap = args.image.read_bytes() if args.image is not None else None

    if args.tiled:
        values.update(spacing=args.spacing, relative_width=args.relative_width, **text_values)
        if bitmap is not None:
            values["bitmap"] = bitmap
        else:
            values["content"] = args.text
        spec_class = TiledWatermark
    elif bitmap is not None:
        values.update(bitmap=bitmap, relative_width=args.relative_width)
        spec_class = ImageWatermark
    else:
        values.update(content=args.text, **text_values)
        spec_class = TextWatermark
    return spec_class(**{key: value for key, value in values.items() if value is not None})


def _print_progress(event: ProgressEvent) -> None:
    sys.stderr.write(f"\r{event.stage.value:<12} {event.fraction * 100:5.1f}%  {event.message:<40.40}")
    if event.fraction >= 1.0:
        sys.stderr.write("\n")
    sys.stderr.flush()


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = PipelineConfig(
            max_frames=args.max_frames,
            quality=args.quality,
            dither=args.dither,
            loop_count=args.loop if args.loop is not None else KEEP_LOOP_COUNT,
            num_workers=args.workers,
        )
        spec = build_spec(args)
        data = args.input.read_bytes()
        result = WatermarkPipeline(config).run(data, spec, on_progress=_print_progress)
        args.output.write_bytes(result)
    except KeyboardInterrupt:
        sys.stderr.write("\nInterrupted\n")
        return EXIT_INTERRUPTED
    except (GifmarkError, ValueError, OSError) as e:
        sys.stderr.write(f"\nError: {e}\n")
        logger.debug("Processing failed", exc_info=True)
        return EXIT_FAILURE
    sys.stderr.write(f"Wrote {len(result)} bytes to {args.output}\n")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
