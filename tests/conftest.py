"""
Pytest fixtures for gifmark tests
"""

import numpy as np
import pytest

from gif_builder import TEST_COLORS, palette_image, pillow_gif


@pytest.fixture(scope="module")
def ten_frame_gif() -> bytes:
    """
    A 100x100 animation of 10 solid frames in distinct colors, 10 cs each,
    looping forever.

    :return: The GIF data
    """
    indices = np.zeros((100, 100), dtype=np.uint8)
    images = [palette_image(indices, [color]) for color in TEST_COLORS]
    return pillow_gif(images, duration_ms=100, loop=0)


@pytest.fixture(scope="module")
def long_gif() -> bytes:
    """A 32x32 animation of 40 frames, 5 cs each, with a moving bar."""
    images = []
    for index in range(40):
        indices = np.zeros((32, 32), dtype=np.uint8)
        indices[:, index % 32] = 1
        indices[index % 32, :] = 2
        images.append(palette_image(indices, [(0, 0, 255), (255, 255, 0), (0, 255, 0)]))
    return pillow_gif(images, duration_ms=50, loop=0)


@pytest.fixture
def red_bitmap():
    """A 10x10 opaque red RGBA bitmap as numpy array."""
    pixels = np.zeros((10, 10, 4), dtype=np.uint8)
    pixels[...] = (255, 0, 0, 255)
    return pixels
