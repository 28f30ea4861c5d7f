"""
Tests for the command line interface.
"""

import PIL.Image
import pytest

from gifmark.cli import EXIT_FAILURE, EXIT_OK, build_parser, build_spec, main
from gifmark.gif import GifDecoder
from gifmark.watermark import ImageWatermark, TextWatermark, TiledWatermark, WatermarkAnchor


@pytest.fixture
def input_gif(tmp_path, ten_frame_gif):
    path = tmp_path / "input.gif"
    path.write_bytes(ten_frame_gif)
    return path


class TestBuildSpec:

    def test_text(self):
        args = build_parser().parse_args(
            ["in.gif", "out.gif", "--text", "HELLO", "--opacity", "0.8", "--x", "20", "--color", "#00FF00"]
        )
        spec = build_spec(args)
        assert isinstance(spec, TextWatermark)
        assert spec.content == "HELLO"
        assert spec.opacity == 0.8
        assert (spec.position.x, spec.position.y) == (20, 50)
        assert spec.color == (0, 255, 0, 255)

    def test_tiled_text(self):
        args = build_parser().parse_args(
            ["in.gif", "out.gif", "--text", "DRAFT", "--tiled", "--spacing", "80", "--rotation", "-30"]
        )
        spec = build_spec(args)
        assert isinstance(spec, TiledWatermark)
        assert spec.spacing == 80
        assert spec.rotation == 330

    def test_image(self, tmp_path):
        logo = tmp_path / "logo.png"
        PIL.Image.new("RGBA", (8, 4), (0, 0, 255, 255)).save(logo)
        args = build_parser().parse_args(
            ["in.gif", "out.gif", "--image", str(logo), "--anchor", "top-left", "--relative-width", "0.2"]
        )
        spec = build_spec(args)
        assert isinstance(spec, ImageWatermark)
        assert spec.bitmap.size == (8, 4)
        assert spec.anchor == WatermarkAnchor.TOP_LEFT
        assert spec.relative_width == 0.2

    def test_content_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["in.gif", "out.gif"])


class TestMain:

    def test_success(self, input_gif, tmp_path, capsys):
        output = tmp_path / "output.gif"
        code = main([str(input_gif), str(output), "--text", "CLI", "--opacity", "1", "--loop", "2"])
        assert code == EXIT_OK
        document = GifDecoder().decode(output.read_bytes())
        assert document.frame_count == 10
        assert document.loop_count == 2
        assert "done" in capsys.readouterr().err

    def test_missing_input(self, tmp_path):
        code = main([str(tmp_path / "missing.gif"), str(tmp_path / "out.gif"), "--text", "X"])
        assert code == EXIT_FAILURE

    def test_invalid_gif(self, tmp_path):
        broken = tmp_path / "broken.gif"
        broken.write_bytes(b"nothing")
        assert main([str(broken), str(tmp_path / "out.gif"), "--text", "X"]) == EXIT_FAILURE

    def test_invalid_options(self, input_gif, tmp_path):
        output = tmp_path / "out.gif"
        assert main([str(input_gif), str(output), "--text", "X", "--opacity", "3"]) == EXIT_FAILURE
        assert main([str(input_gif), str(output), "--text", "X", "--quality", "99"]) == EXIT_FAILURE
        assert not output.exists()
