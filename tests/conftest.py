"""
Pytest configuration and shared fixtures for the typesetter tests.

This module provides in-memory images and records, a tiny generated
TrueType font, and a fake HTTP session so no test touches the network.
"""

import io

import pytest
import requests
from fontTools.fontBuilder import FontBuilder
from fontTools.pens.ttGlyphPen import TTGlyphPen
from PIL import Image

from typesetter.caching import FontResourceCache, reset_font_cache
from typesetter.config import FontConfig
from typesetter.models import Bubble, ImageRecord, MaskRegion
from typesetter.rendering import destroy_capture_surface

STYLESHEET_URL = "https://fonts.example.test/css2?family=Noto+Sans+SC"
FONT_URL = "https://fonts.example.test/s/notosanssc/v1/font.ttf"


class FakeResponse:
    def __init__(self, content=b"", status_code=200, headers=None):
        self.content = content
        self.status_code = status_code
        self.headers = headers or {}

    @property
    def text(self):
        return self.content.decode("utf-8")

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


class FakeSession:
    """Serves canned responses by URL and records every request."""

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []

    def get(self, url, headers=None, timeout=None):
        self.calls.append(url)
        route = self.routes.get(url)
        if route is None:
            raise requests.ConnectionError(f"No route for {url}")
        if isinstance(route, Exception):
            raise route
        return route


def _box_glyph():
    pen = TTGlyphPen(None)
    pen.moveTo((100, 0))
    pen.lineTo((100, 700))
    pen.lineTo((500, 700))
    pen.lineTo((500, 0))
    pen.closePath()
    return pen.glyph()


def build_test_font(family="Test Sans"):
    """A minimal TrueType font whose letters are solid boxes."""
    glyph_order = [".notdef", "A", "B", "space"]
    builder = FontBuilder(1000, isTTF=True)
    builder.setupGlyphOrder(glyph_order)
    builder.setupCharacterMap({ord("A"): "A", ord("B"): "B", ord(" "): "space"})
    builder.setupGlyf(
        {
            ".notdef": _box_glyph(),
            "A": _box_glyph(),
            "B": _box_glyph(),
            "space": TTGlyphPen(None).glyph(),
        }
    )
    metrics = {name: (600, 100) for name in glyph_order}
    metrics["space"] = (300, 0)
    builder.setupHorizontalMetrics(metrics)
    builder.setupHorizontalHeader(ascent=800, descent=-200)
    builder.setupNameTable({"familyName": family, "styleName": "Regular"})
    builder.setupOS2(sTypoAscender=800, usWinAscent=800, usWinDescent=200)
    builder.setupPost()
    buffer = io.BytesIO()
    builder.save(buffer)
    return buffer.getvalue()


def stylesheet_for(url, family="Noto Sans SC", weight=700):
    return (
        "/* latin */\n"
        "@font-face {\n"
        f"  font-family: '{family}';\n"
        "  font-style: normal;\n"
        f"  font-weight: {weight};\n"
        "  font-display: swap;\n"
        f"  src: url({url}) format('truetype');\n"
        "}\n"
    )


@pytest.fixture(autouse=True)
def _reset_singletons():
    yield
    reset_font_cache()
    destroy_capture_surface()


@pytest.fixture
def png_bytes():
    """Factory for PNG-encoded solid images."""

    def make(size=(100, 80), color=(255, 255, 255, 255)):
        buffer = io.BytesIO()
        Image.new("RGBA", size, color).save(buffer, format="PNG")
        return buffer.getvalue()

    return make


@pytest.fixture
def make_record(png_bytes):
    """Factory for image records over a solid image."""

    def make(
        record_id="img-1",
        name="page01.jpg",
        size=(100, 80),
        color=(255, 255, 255, 255),
        bubbles=(),
        mask_regions=(),
        **changes,
    ):
        return ImageRecord(
            id=record_id,
            name=name,
            width=size[0],
            height=size[1],
            source=png_bytes(size, color),
            bubbles=tuple(bubbles),
            mask_regions=tuple(mask_regions),
            **changes,
        )

    return make


@pytest.fixture
def bubble():
    def make(bubble_id="b1", x=50, y=50, width=40, height=40, **changes):
        return Bubble(id=bubble_id, x=x, y=y, width=width, height=height, **changes)

    return make


@pytest.fixture
def mask():
    def make(region_id="m1", x=50, y=50, width=20, height=20, **changes):
        return MaskRegion(id=region_id, x=x, y=y, width=width, height=height, **changes)

    return make


@pytest.fixture
def test_font_bytes():
    return build_test_font()


@pytest.fixture
def offline_font_cache():
    """Font cache whose style sheet fetch always fails."""
    session = FakeSession()
    return FontResourceCache(config=FontConfig(stylesheet_url=STYLESHEET_URL), session=session)


@pytest.fixture
def served_font_cache(test_font_bytes):
    """Font cache serving one generated font for Noto Sans SC."""
    session = FakeSession(
        {
            STYLESHEET_URL: FakeResponse(stylesheet_for(FONT_URL).encode("utf-8")),
            FONT_URL: FakeResponse(test_font_bytes, headers={"Content-Type": "font/ttf"}),
        }
    )
    return FontResourceCache(config=FontConfig(stylesheet_url=STYLESHEET_URL), session=session)
