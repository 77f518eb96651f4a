"""
Pillow capture surface tests.
"""

import base64
from io import BytesIO

import pytest
from PIL import Image

from src.client.capture import PillowCaptureSurface, PillowCaptureSurfaceFactory


def decode(data_url):
    header, encoded = data_url.split(",", 1)
    return header, Image.open(BytesIO(base64.b64decode(encoded)))


class TestPillowCaptureSurface:

    def test_starts_empty(self):
        surface = PillowCaptureSurface()
        assert surface.is_empty()
        assert surface.stroke_count == 0

    def test_stroke_marks_non_empty_and_notifies(self):
        surface = PillowCaptureSurface()
        calls = []
        surface.add_stroke_end_listener(lambda: calls.append(1))

        surface.draw_stroke([(10, 10), (100, 50)])

        assert not surface.is_empty()
        assert calls == [1]
        assert surface.image.getchannel("A").getbbox() is not None

    def test_single_point_stroke(self):
        surface = PillowCaptureSurface()
        surface.draw_stroke([(20, 20)])
        assert surface.stroke_count == 1

    def test_empty_stroke_ignored(self):
        surface = PillowCaptureSurface()
        calls = []
        surface.add_stroke_end_listener(lambda: calls.append(1))
        surface.draw_stroke([])
        assert surface.is_empty()
        assert calls == []

    def test_clear(self):
        surface = PillowCaptureSurface()
        surface.draw_stroke([(10, 10), (100, 50)])
        surface.clear()
        assert surface.is_empty()
        assert surface.image.getchannel("A").getbbox() is None

    def test_png_data_url(self):
        surface = PillowCaptureSurface(width=300, height=100)
        surface.draw_stroke([(10, 10), (100, 50)])

        header, image = decode(surface.to_data_url())

        assert header == "data:image/png;base64"
        assert image.format == "PNG"
        assert image.size == (300, 100)

    def test_jpeg_data_url_is_flattened(self):
        surface = PillowCaptureSurface()
        surface.draw_stroke([(10, 10), (100, 50)])

        header, image = decode(surface.to_data_url("image/jpeg"))

        assert header == "data:image/jpeg;base64"
        assert image.mode == "RGB"

    def test_unsupported_type(self):
        with pytest.raises(ValueError, match="Unsupported image type"):
            PillowCaptureSurface().to_data_url("image/bmp")


def test_factory_uses_options():
    factory = PillowCaptureSurfaceFactory()
    surface = factory.create(canvas=None, options={"width": 640, "height": 240})
    assert (surface.width, surface.height) == (640, 240)
    assert factory.created == [surface]
