"""Application configuration."""

from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # Sampling
    MAX_FRAMES: int = 300  # Longer GIFs are sampled down to this many frames

    # Encoding
    QUALITY: int = 10  # 1 (best) .. 30 (fastest)
    DITHER: bool = False
    NUM_WORKERS: int = 1  # Threads per task for compositing and quantization

    # Task execution
    MAX_CONCURRENT_TASKS: int = 2  # Each task keeps a whole GIF in memory

    # Watermark defaults
    DEFAULT_FONT: Path | None = None  # Font file used for text watermarks
    DEFAULT_MARGIN: int = 20  # Margin in pixels for corner anchors

    model_config = {"env_prefix": "GIFMARK_"}


settings = Settings()
