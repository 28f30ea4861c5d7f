"""
Font registry for text watermarks.

This module provides a font registry that:
1. Resolves fonts by registered face name, file path or system font name
2. Falls back to common system fonts and finally Pillow's default font
3. Caches loaded fonts per size for performance
"""

from __future__ import annotations

import copy
import io
import logging
import os
from pathlib import Path
from threading import RLock

import PIL.ImageFont

from .config import settings

logger = logging.getLogger(__name__)

FontType = "PIL.ImageFont.FreeTypeFont | PIL.ImageFont.ImageFont"

SYSTEM_FONT_CANDIDATES = [
    "Arial.ttf",
    "arial.ttf",
    "DejaVuSans.ttf",
    "LiberationSans-Regular.ttf",
    "Helvetica.ttc",
]
"System fonts tried in this order if no font was specified"


class RegisteredFont:
    """
    A registered font contains information about a single available font.

    Upon request it creates Pillow font handles of a given size.
    """

    def __init__(
        self,
        font_face: str,
        path: str | Path | None = None,
        font_data: bytes | None = None,
    ):
        """
        Initialize a registered font.

        :param font_face: The font's face name, e.g. Roboto
        :param path: Path of a TrueType / OpenType file
        :param font_data: Raw font data bytes (alternative to path)
        """
        if path is None and font_data is None:
            raise ValueError("Either path or font_data has to be provided")
        self.font_face = font_face
        self.path = str(path) if path is not None else None
        self.font_data = font_data
        self._cached_fonts: dict[int, PIL.ImageFont.FreeTypeFont] = {}
        self._cache_lock = RLock()

    def get_handle(self, size: int) -> PIL.ImageFont.FreeTypeFont | None:
        """
        Tries to create a font handle for given size.

        :param size: The font's size in pixels
        :return: On success the handle of the font
        """
        with self._cache_lock:
            if size in self._cached_fonts:
                return self._cached_fonts[size]

        font = None
        try:
            if self.font_data is not None:
                font = PIL.ImageFont.truetype(io.BytesIO(self.font_data), size)
            else:
                font = PIL.ImageFont.truetype(self.path, size)
        except OSError as e:
            logger.warning(f"Failed to load font '{self.font_face}': {e}")

        if font is not None:
            with self._cache_lock:
                self._cached_fonts[size] = font
        return font


class FontRegistry:
    """
    Manages all fonts which can be used for text watermarks.

    Provides a simple interface to get fonts by name with automatic
    fallback to system fonts or Pillow's built-in font.
    """

    access_lock = RLock()
    "Multi-thread access lock"
    fonts: dict[str, RegisteredFont] = {}
    "Dictionary of registered fonts"
    _fallback_cache: dict[tuple[str | None, int], FontType] = {}
    "Resolved fonts by (request, size)"

    @classmethod
    def register_font(
        cls,
        font_face: str,
        path: str | Path | None = None,
        font_data: bytes | None = None,
    ) -> None:
        """
        Registers a single font.

        :param font_face: The font's face name, e.g. Roboto
        :param path: Path of the font file
        :param font_data: Raw font data bytes (alternative to path)
        """
        with cls.access_lock:
            if font_face in cls.fonts:
                raise ValueError(f"Font '{font_face}' was already registered")
            cls.fonts[font_face] = RegisteredFont(
                font_face=font_face, path=path, font_data=font_data
            )
            cls._forget_resolved(font_face)

    @classmethod
    def unregister_font(cls, font_face: str) -> None:
        """Removes a registered font."""
        with cls.access_lock:
            cls.fonts.pop(font_face, None)
            cls._forget_resolved(font_face)

    @classmethod
    def _forget_resolved(cls, font_face: str) -> None:
        """Drops cached resolutions of a face name, caller holds the lock."""
        cls._fallback_cache = {
            key: value for key, value in cls._fallback_cache.items()
            if key[0] != font_face
        }

    @classmethod
    def get_font(cls, font_face: str, size: int) -> PIL.ImageFont.FreeTypeFont | None:
        """
        Returns a registered font.

        :param font_face: The font's face
        :param size: The font's size in pixels
        :return: On success the handle of the font
        """
        with cls.access_lock:
            reg_font = cls.fonts.get(font_face)
        if reg_font is None:
            return None
        return reg_font.get_handle(size)

    @classmethod
    def get_fonts(cls) -> dict[str, RegisteredFont]:
        """
        Returns all registered fonts.

        :return: A dictionary of all registered fonts
        """
        with cls.access_lock:
            return copy.copy(cls.fonts)

    @classmethod
    def resolve(cls, font: str | None, size: float) -> FontType:
        """
        Returns a usable font for a text watermark, never None.

        Lookup order: registered face, font file path, system font name,
        the configured default font, common system fonts, Pillow's default.

        :param font: Face name or file path, None for the default font
        :param size: The font size in pixels
        :return: The font handle
        """
        size = max(1, int(round(size)))
        key = (font, size)
        with cls.access_lock:
            if key in cls._fallback_cache:
                return cls._fallback_cache[key]

        handle = None
        if font is not None:
            handle = cls.get_font(font, size)
            if handle is None:
                handle = cls._try_truetype([font], size)
            if handle is None:
                logger.warning(f"Font '{font}' not found, using default font")
        if handle is None and settings.DEFAULT_FONT is not None:
            handle = cls._try_truetype([str(settings.DEFAULT_FONT)], size)
        if handle is None:
            handle = cls._try_truetype(SYSTEM_FONT_CANDIDATES, size)
        if handle is None:
            handle = PIL.ImageFont.load_default(size=size)

        with cls.access_lock:
            cls._fallback_cache[key] = handle
        return handle

    @staticmethod
    def _try_truetype(names: list[str], size: int) -> PIL.ImageFont.FreeTypeFont | None:
        """Try to load a font file, PIL searches the system font paths."""
        for name in names:
            if os.path.sep in name and not os.path.exists(name):
                continue
            try:
                return PIL.ImageFont.truetype(name, size)
            except OSError:
                continue
        return None


__all__ = ["FontRegistry", "RegisteredFont", "SYSTEM_FONT_CANDIDATES"]
