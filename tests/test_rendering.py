"""
Tests for the two render strategies.

Both strategies are run against the same records and must agree on what is
painted where: background shapes, transparent backgrounds, burnt-in fills,
rotation and text.

Tests cover:
- Output format and size
- Background shapes and feathering
- Transparent backgrounds and stroke defaults
- Manually filled mask regions
- Bubble rotation
- Horizontal and vertical text, including turned Latin glyphs
- Letter spacing and line height overrides
- Strategy selection and the shared capture surface
"""

import io

import numpy as np
import pytest
from PIL import Image

from typesetter.config import ExportMethod, ExportOptions
from typesetter.models import TRANSPARENT
from typesetter.rendering import (CaptureRenderer, MeasuredLayoutRenderer,
                                  build_visual_tree, feather_passes,
                                  get_capture_surface, get_renderer,
                                  resolve_bubble_style, resolve_mask_style)
from typesetter.rendering.capture import BubbleNode, FillNode, ImageNode

RED = (255, 0, 0, 255)
GRAY = (128, 128, 128, 255)

STRATEGIES = [MeasuredLayoutRenderer, CaptureRenderer]


def _decode(data):
    image = Image.open(io.BytesIO(data))
    assert image.format == "PNG"
    return image.convert("RGBA")


def _rgb(image, xy):
    return image.getpixel(xy)[:3]


def _dark_pixels(image, box):
    pixels = np.asarray(image.crop(box).convert("RGB")).astype(int)
    return int((pixels.max(axis=2) < 60).sum())


def _ink_box(image):
    pixels = np.asarray(image.convert("RGB")).astype(int)
    ys, xs = np.nonzero(pixels.max(axis=2) < 60)
    assert xs.size, "no text was painted"
    return int(xs.min()), int(ys.min()), int(xs.max()), int(ys.max())


@pytest.fixture(params=STRATEGIES, ids=["canvas", "screenshot"])
def renderer(request, served_font_cache):
    return request.param(font_cache=served_font_cache)


class TestBackgrounds:
    def test_output_matches_record_size(self, renderer, make_record, bubble):
        record = make_record(size=(123, 77), color=RED, bubbles=[bubble()])
        assert _decode(renderer.render(record)).size == (123, 77)

    def test_ellipse_background_is_painted(self, renderer, make_record, bubble):
        record = make_record(size=(200, 100), color=RED, bubbles=[bubble(width=40, height=40)])
        image = _decode(renderer.render(record))
        assert _rgb(image, (100, 50)) == (255, 255, 255)
        assert _rgb(image, (3, 3)) == (255, 0, 0)

    def test_ellipse_leaves_corners_of_box_unpainted(self, renderer, make_record, bubble):
        record = make_record(
            size=(200, 200), color=RED, bubbles=[bubble(width=50, height=50, mask_feather=0)]
        )
        image = _decode(renderer.render(record))
        # Just inside the box corner but outside the inscribed ellipse
        assert _rgb(image, (54, 54)) == (255, 0, 0)

    def test_rectangle_option_default_fills_box(self, renderer, make_record, bubble):
        record = make_record(size=(200, 200), color=RED, bubbles=[bubble(width=50, height=50)])
        options = ExportOptions(default_mask_shape="rectangle", default_mask_feather=0)
        image = _decode(renderer.render(record, options))
        assert _rgb(image, (54, 54)) == (255, 255, 255)

    def test_feather_extends_beyond_the_shape(self, renderer, make_record, bubble):
        record = make_record(
            size=(400, 400),
            color=RED,
            bubbles=[bubble(width=50, height=50, mask_shape="rectangle", mask_feather=100)],
        )
        image = _decode(renderer.render(record))
        # Box edge is at x=100; the shadow reaches a few pixels further out
        r, g, b = _rgb(image, (97, 200))
        assert r == 255 and g > 0 and b > 0

    def test_transparent_background_paints_nothing(self, renderer, make_record, bubble):
        record = make_record(
            size=(120, 120), color=RED, bubbles=[bubble(background_color=TRANSPARENT)]
        )
        image = _decode(renderer.render(record))
        assert _rgb(image, (60, 60)) == (255, 0, 0)

    def test_cleaned_source_is_the_background(self, renderer, make_record, png_bytes):
        record = make_record(
            size=(50, 50),
            color=RED,
            cleaned_source=png_bytes((50, 50), (0, 0, 255, 255)),
        )
        image = _decode(renderer.render(record))
        assert _rgb(image, (25, 25)) == (0, 0, 255)

    def test_rotation_turns_the_shape(self, renderer, make_record, bubble):
        record = make_record(
            size=(200, 200),
            color=RED,
            bubbles=[
                bubble(width=60, height=10, rotation=90, mask_shape="rectangle", mask_feather=0)
            ],
        )
        image = _decode(renderer.render(record))
        assert _rgb(image, (100, 50)) == (255, 255, 255)
        assert _rgb(image, (150, 100)) == (255, 0, 0)


class TestFills:
    def test_cleaned_fill_regions_are_burnt_in(self, renderer, make_record, mask):
        record = make_record(
            size=(100, 100),
            color=RED,
            mask_regions=[
                mask("filled", x=25, y=25, method="fill", is_cleaned=True, fill_color="#00ff00"),
                mask("pending", x=75, y=75, method="fill", is_cleaned=False, fill_color="#00ff00"),
                mask("inpaint", x=25, y=75, method="inpaint", is_cleaned=True),
            ],
        )
        image = _decode(renderer.render(record))
        assert _rgb(image, (25, 25)) == (0, 255, 0)
        assert _rgb(image, (75, 75)) == (255, 0, 0)
        assert _rgb(image, (25, 75)) == (255, 0, 0)


class TestText:
    @pytest.mark.parametrize("vertical", [False, True])
    def test_text_is_painted_inside_the_bubble(self, renderer, make_record, bubble, vertical):
        record = make_record(
            size=(200, 200),
            color=GRAY,
            bubbles=[
                bubble(
                    width=80,
                    height=80,
                    text="AB\nBA",
                    is_vertical=vertical,
                    font_size=5,
                    background_color=TRANSPARENT,
                )
            ],
        )
        image = _decode(renderer.render(record))
        assert _dark_pixels(image, (20, 20, 180, 180)) > 100
        assert _dark_pixels(image, (0, 0, 20, 20)) == 0

    def test_missing_stroke_is_white(self, renderer, make_record, bubble):
        record = make_record(
            size=(200, 200),
            color=GRAY,
            bubbles=[
                bubble(
                    text="A",
                    is_vertical=False,
                    font_size=5,
                    stroke_color=TRANSPARENT,
                    background_color=TRANSPARENT,
                )
            ],
        )
        pixels = np.asarray(_decode(renderer.render(record)).convert("RGB")).astype(int)
        assert int((pixels.min(axis=2) > 230).sum()) > 0

    def test_text_renders_with_fallback_font_offline(self, offline_font_cache, make_record, bubble):
        record = make_record(
            size=(200, 200),
            color=GRAY,
            bubbles=[bubble(text="AB", is_vertical=False, font_size=5, background_color=TRANSPARENT)],
        )
        image = _decode(MeasuredLayoutRenderer(font_cache=offline_font_cache).render(record))
        assert image.size == (200, 200)

    def test_vertical_latin_glyph_is_turned(self, renderer, make_record, bubble):
        def ink_size(vertical):
            record = make_record(
                size=(200, 200),
                color=GRAY,
                bubbles=[
                    bubble(
                        width=80,
                        height=80,
                        text="A",
                        is_vertical=vertical,
                        font_size=10,
                        background_color=TRANSPARENT,
                    )
                ],
            )
            left, top, right, bottom = _ink_box(_decode(renderer.render(record)))
            return right - left, bottom - top

        # The test glyph is a box taller than it is wide
        upright_w, upright_h = ink_size(False)
        assert upright_h > upright_w
        turned_w, turned_h = ink_size(True)
        assert turned_w > turned_h
        assert turned_w == pytest.approx(upright_h, abs=3)


class TestSpacing:
    def _render(self, renderer, make_record, bubble, text, **changes):
        record = make_record(
            size=(200, 200),
            color=GRAY,
            bubbles=[
                bubble(
                    width=90,
                    height=90,
                    text=text,
                    is_vertical=False,
                    font_size=5,
                    background_color=TRANSPARENT,
                    **changes,
                )
            ],
        )
        return _ink_box(_decode(renderer.render(record)))

    def test_letter_spacing_widens_the_line(self, renderer, make_record, bubble):
        left, _, right, _ = self._render(renderer, make_record, bubble, "AB")
        spaced_left, _, spaced_right, _ = self._render(
            renderer, make_record, bubble, "AB", letter_spacing=1.0
        )
        # font px is 20, so one em of spacing adds 20px between the glyphs
        assert (spaced_right - spaced_left) - (right - left) == pytest.approx(20, abs=3)
        assert (spaced_left + spaced_right) / 2 == pytest.approx((left + right) / 2, abs=2)

    def test_line_height_spreads_the_lines(self, renderer, make_record, bubble):
        _, top, _, bottom = self._render(renderer, make_record, bubble, "A\nA")
        _, tall_top, _, tall_bottom = self._render(
            renderer, make_record, bubble, "A\nA", line_height=3.0
        )
        # 1.5 em more pitch between the two lines
        assert (tall_bottom - tall_top) - (bottom - top) == pytest.approx(30, abs=3)


class TestStyleResolution:
    def test_precedence_bubble_then_options_then_defaults(self, bubble):
        options = ExportOptions(default_mask_shape="rounded", default_mask_feather=0)
        assert resolve_mask_style(bubble(), options) == ("rounded", 15.0, 0.0)
        assert resolve_mask_style(bubble(mask_shape="rectangle"), options)[0] == "rectangle"
        assert resolve_mask_style(bubble(), ExportOptions()) == ("ellipse", 15.0, 10.0)

    def test_pixel_geometry(self, bubble):
        style = resolve_bubble_style(bubble(x=25, y=50, width=20, height=10, font_size=2), 1000, 500, ExportOptions())
        assert (style.center_x, style.center_y) == (250, 250)
        assert (style.box_width, style.box_height) == (200, 50)
        assert style.font_px == pytest.approx(40)
        assert style.line_height == pytest.approx(60)
        assert style.blur == pytest.approx(15)
        assert style.spread == pytest.approx(8)

    def test_spacing_overrides(self, bubble):
        style = resolve_bubble_style(
            bubble(font_size=2, line_height=1.1, letter_spacing=0.15), 1000, 500, ExportOptions()
        )
        assert style.line_height == pytest.approx(44)
        assert style.letter_spacing == pytest.approx(6)
        default = resolve_bubble_style(bubble(font_size=2), 1000, 500, ExportOptions())
        assert default.line_height == pytest.approx(60)
        assert default.letter_spacing == 0

    def test_transparent_background_has_no_shadow(self, bubble):
        style = resolve_bubble_style(bubble(background_color=TRANSPARENT), 1000, 500, ExportOptions())
        assert style.background is None
        assert style.shadow_extent == 0

    def test_feather_passes(self):
        passes = feather_passes(8.0, 2.0)
        assert len(passes) == 8
        assert passes[0] == (10.0, pytest.approx(0.15 / 8))
        assert passes[-1] == (3.0, pytest.approx(0.15))
        assert feather_passes(0, 0) == []


class TestStrategies:
    def test_get_renderer_selects_by_method(self, offline_font_cache):
        assert isinstance(get_renderer("canvas", font_cache=offline_font_cache), MeasuredLayoutRenderer)
        assert isinstance(
            get_renderer(ExportMethod.SCREENSHOT, font_cache=offline_font_cache), CaptureRenderer
        )

    def test_visual_tree_paint_order(self, make_record, bubble, mask):
        record = make_record(
            bubbles=[bubble("a"), bubble("b")],
            mask_regions=[mask(method="fill", is_cleaned=True, fill_color="#000000")],
        )
        tree = build_visual_tree(record)
        assert [type(node) for node in tree.nodes] == [ImageNode, FillNode, BubbleNode, BubbleNode]

    def test_capture_surface_is_reused_and_released(self, served_font_cache, make_record):
        renderer = CaptureRenderer(font_cache=served_font_cache)
        renderer.render(make_record(size=(40, 30)))
        surface = get_capture_surface().surface
        renderer.render(make_record(size=(40, 30)))
        assert get_capture_surface().surface is surface

        renderer.render(make_record(size=(41, 30)))
        assert get_capture_surface().size == (41, 30)

        renderer.release()
        assert get_capture_surface().surface is None

    def test_capture_lines_advance_by_shaped_width(self, served_font_cache):
        capture = get_capture_surface()
        capture.install_styles(served_font_cache.get_embedded_css(["Noto Sans SC"]), served_font_cache)
        selector = capture.selector("Noto Sans SC", 700, 20)
        # Each test glyph advances 600 units of a 1000 unit em
        assert selector.char_width("A") == pytest.approx(12.0)
        assert selector.line_width("AB") == pytest.approx(24.0)
