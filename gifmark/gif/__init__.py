"""
GIF container support: LZW coding, decoding and encoding.
"""

from .decoder import GifDecoder, interlaced_row_order
from .encoder import GifEncoder, KEEP_LOOP_COUNT
from .lzw import lzw_decode, lzw_encode

__all__ = [
    "GifDecoder",
    "GifEncoder",
    "KEEP_LOOP_COUNT",
    "interlaced_row_order",
    "lzw_decode",
    "lzw_encode",
]
