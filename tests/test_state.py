"""
Tests for immutable session state updates.

Tests cover:
- The bubble/mask overlap predicate
- Font scaling and family changes
- Cleanup, fill and restore bookkeeping
- Background color detection
"""

import pytest

from typesetter.models import TRANSPARENT
from typesetter.state import (apply_background_detection, apply_region_restore,
                              fill_regions, mark_regions_cleaned, overlaps,
                              scale_font_sizes, set_font_family)


class TestOverlaps:
    @pytest.mark.parametrize("size", [(0, 0), (10, 0), (0, 10), (30, 40)])
    def test_equal_centers_always_overlap(self, bubble, mask, size):
        assert overlaps(bubble(x=40, y=60), mask(x=40, y=60, width=size[0], height=size[1]))

    def test_edge_of_half_width_overlaps(self, bubble, mask):
        assert overlaps(bubble(x=60, y=50), mask(x=50, y=50, width=20, height=20))

    def test_just_past_half_width_does_not_overlap(self, bubble, mask):
        assert not overlaps(bubble(x=60.001, y=50), mask(x=50, y=50, width=20, height=20))

    def test_just_past_half_height_does_not_overlap(self, bubble, mask):
        assert not overlaps(bubble(x=50, y=39.999), mask(x=50, y=50, width=20, height=20))

    def test_bubble_size_is_ignored(self, bubble, mask):
        big = bubble(x=90, y=50, width=100, height=100)
        assert not overlaps(big, mask(x=50, y=50, width=20, height=20))


class TestFontUpdates:
    def test_scaling_clamps_and_rounds(self, make_record, bubble):
        record = make_record(
            bubbles=[bubble("a", font_size=1.0), bubble("b", font_size=4.0), bubble("c", font_size=0.6)]
        )
        scaled = scale_font_sizes(record, 1.333)
        assert [b.font_size for b in scaled.bubbles] == [1.33, 5.0, 0.8]

        shrunk = scale_font_sizes(record, 0.1)
        assert [b.font_size for b in shrunk.bubbles] == [0.5, 0.5, 0.5]

    def test_scaling_returns_new_record(self, make_record, bubble):
        record = make_record(bubbles=[bubble()])
        scaled = scale_font_sizes(record, 2)
        assert scaled is not record
        assert record.bubbles[0].font_size == 1.0

    def test_set_font_family(self, make_record, bubble):
        record = make_record(bubbles=[bubble("a"), bubble("b", font_family="mashan")])
        updated = set_font_family(record, "kuaile")
        assert {b.font_family for b in updated.bubbles} == {"kuaile"}


class TestCleanup:
    def test_mark_cleaned_makes_overlapping_bubbles_transparent(self, make_record, bubble, mask):
        record = make_record(
            bubbles=[bubble("inside", x=50, y=50), bubble("outside", x=5, y=5)],
            mask_regions=[mask("m1", x=50, y=50), mask("m2", x=5, y=5)],
        )
        updated = mark_regions_cleaned(record, ["m1"], b"cleaned")

        assert updated.cleaned_source == b"cleaned"
        assert updated.find_region("m1").is_cleaned
        assert not updated.find_region("m2").is_cleaned
        inside, outside = updated.bubbles
        assert inside.background_color == TRANSPARENT
        assert inside.auto_detect_background is False
        assert outside.background_color == "#ffffff"
        assert record.bubbles[0].background_color == "#ffffff"

    def test_fill_all_regions(self, make_record, bubble, mask):
        record = make_record(
            bubbles=[bubble(x=20, y=20)],
            mask_regions=[mask("a", x=20, y=20), mask("b", x=80, y=80)],
        )
        updated = fill_regions(record, "#ff0000")
        for region in updated.mask_regions:
            assert (region.method, region.is_cleaned, region.fill_color) == ("fill", True, "#ff0000")
        assert updated.bubbles[0].background_color == TRANSPARENT

    def test_fill_selected_regions(self, make_record, mask):
        record = make_record(mask_regions=[mask("a"), mask("b")])
        updated = fill_regions(record, "#00ff00", ["b"])
        assert updated.find_region("a").method is None
        assert updated.find_region("b").fill_color == "#00ff00"

    def test_restore_marks_region_uncleaned(self, make_record, mask):
        record = make_record(mask_regions=[mask("a", is_cleaned=True)], cleaned_source=b"old")
        updated = apply_region_restore(record, "a", b"restored")
        assert updated.cleaned_source == b"restored"
        assert not updated.find_region("a").is_cleaned

    def test_restore_unknown_region_returns_none(self, make_record, mask):
        record = make_record(mask_regions=[mask("a")])
        assert apply_region_restore(record, "missing", b"restored") is None


class TestBackgroundDetection:
    def test_detects_unless_explicitly_disabled(self, make_record, bubble):
        record = make_record(
            bubbles=[
                bubble("auto"),
                bubble("on", auto_detect_background=True),
                bubble("off", auto_detect_background=False, background_color="#123456"),
            ]
        )
        calls = []

        def detector(source, x, y, width, height):
            calls.append((x, y, width, height))
            return "#abcdef"

        updated = apply_background_detection(record, detector)
        assert [b.background_color for b in updated.bubbles] == ["#abcdef", "#abcdef", "#123456"]
        assert len(calls) == 2

    def test_samples_the_original_source(self, make_record, bubble):
        record = make_record(bubbles=[bubble()], original_source=b"original", cleaned_source=b"clean")
        seen = []
        apply_background_detection(record, lambda source, *geometry: seen.append(source) or "#000000")
        assert seen == [b"original"]

    def test_default_detector_reads_the_image(self, make_record, bubble):
        record = make_record(size=(80, 80), color=(48, 48, 48, 255), bubbles=[bubble(width=20, height=20)])
        updated = apply_background_detection(record)
        assert updated.bubbles[0].background_color == "#303030"
