"""
Tests for the FontRegistry.
"""

import logging

import pytest

from gifmark.font_registry import FontRegistry, RegisteredFont


class TestFontRegistry:
    """Tests for FontRegistry class."""

    def test_resolve_default(self):
        """Without a font name a usable font is always returned."""
        font = FontRegistry.resolve(None, 24)
        assert font is not None
        left, top, right, bottom = font.getbbox("Test")
        assert right > left and bottom > top

    def test_resolve_is_cached(self):
        assert FontRegistry.resolve(None, 18) is FontRegistry.resolve(None, 18.2)

    def test_resolve_size(self):
        small = FontRegistry.resolve(None, 12).getbbox("Test")
        large = FontRegistry.resolve(None, 48).getbbox("Test")
        assert large[2] - large[0] > small[2] - small[0]

    def test_unknown_font_falls_back(self, caplog):
        with caplog.at_level(logging.WARNING):
            font = FontRegistry.resolve("NoSuchFontFace", 20)
        assert font is not None
        assert "NoSuchFontFace" in caplog.text

    def test_register_and_unregister(self, tmp_path):
        missing = tmp_path / "missing.ttf"
        FontRegistry.register_font("BrokenFace", path=missing)
        try:
            assert "BrokenFace" in FontRegistry.get_fonts()
            with pytest.raises(ValueError):
                FontRegistry.register_font("BrokenFace", path=missing)
            # the file can not be loaded, resolving falls back
            assert FontRegistry.get_font("BrokenFace", 20) is None
            assert FontRegistry.resolve("BrokenFace", 20) is not None
        finally:
            FontRegistry.unregister_font("BrokenFace")
        assert "BrokenFace" not in FontRegistry.get_fonts()

    def test_register_after_fallback(self, tmp_path, monkeypatch):
        """A face resolved before its registration uses the registered font afterwards."""
        fallback = FontRegistry.resolve("LateFace", 20)
        registered = object()
        monkeypatch.setattr(RegisteredFont, "get_handle", lambda self, size: registered)
        FontRegistry.register_font("LateFace", path=tmp_path / "late.ttf")
        try:
            assert FontRegistry.resolve("LateFace", 20) is registered
            assert fallback is not registered
        finally:
            FontRegistry.unregister_font("LateFace")
        assert FontRegistry.resolve("LateFace", 20) is not registered

    def test_get_nonexistent_font(self):
        assert FontRegistry.get_font("NonExistentFont", 24) is None

    def test_registered_font_requires_source(self):
        with pytest.raises(ValueError):
            RegisteredFont("Empty")
