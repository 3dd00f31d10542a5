"""Tests for aspect-ratio normalisation."""

import pytest

from layerfill.selection.aspect_ratio import (
    SUPPORTED_RATIOS,
    calculate_aspect_ratio_adjustment,
    format_ratio,
    get_closest_supported_ratio,
)


class TestCalculateAdjustment:
    """Tests for calculate_aspect_ratio_adjustment."""

    def test_wide_selection_grows_height(self):
        """1.6:1 snaps to 3:2 by growing height."""
        adj = calculate_aspect_ratio_adjustment(160, 100)

        assert adj.closest_ratio == "3:2"
        assert adj.needs_adjustment
        assert adj.adjusted_width == 160
        assert adj.adjusted_height == 107  # round(160 / 1.5)
        assert adj.height_diff == 7
        assert adj.width_diff == 0

    def test_very_wide_selection(self):
        """3:1 is closest to 21:9, the widest supported ratio."""
        adj = calculate_aspect_ratio_adjustment(300, 100)

        assert adj.closest_ratio == "21:9"
        assert adj.original_ratio == "3.00:1"
        assert adj.adjusted_width == 300
        assert adj.adjusted_height == 129  # round(300 / (21 / 9))

    def test_tall_selection_grows_width(self):
        """0.625 snaps to 2:3 by growing width."""
        adj = calculate_aspect_ratio_adjustment(100, 160)

        assert adj.closest_ratio == "2:3"
        assert adj.adjusted_width == 107  # round(160 * 2 / 3)
        assert adj.adjusted_height == 160

    def test_matching_ratio_unchanged(self):
        adj = calculate_aspect_ratio_adjustment(160, 90)

        assert not adj.needs_adjustment
        assert adj.closest_ratio == "16:9"
        assert adj.original_ratio == "16:9"
        assert (adj.adjusted_width, adj.adjusted_height) == (160, 90)

    def test_within_tolerance_unchanged(self):
        """1:1.005 is within the default 0.01 tolerance of 1:1."""
        adj = calculate_aspect_ratio_adjustment(1005, 1000)
        assert not adj.needs_adjustment

    def test_never_shrinks(self):
        """Adjusted size is never smaller than the input on either axis."""
        for width in range(1, 400, 13):
            for height in range(1, 400, 17):
                adj = calculate_aspect_ratio_adjustment(width, height)
                assert adj.adjusted_width >= width
                assert adj.adjusted_height >= height

    def test_result_is_close_to_named_ratio(self):
        names = {name: w / h for name, w, h in SUPPORTED_RATIOS}
        adj = calculate_aspect_ratio_adjustment(317, 121)
        ratio = adj.adjusted_width / adj.adjusted_height
        assert ratio == pytest.approx(names[adj.closest_ratio], abs=0.02)

    @pytest.mark.parametrize("width,height", [(0, 10), (10, 0), (-5, 10)])
    def test_invalid_dimensions(self, width, height):
        with pytest.raises(ValueError):
            calculate_aspect_ratio_adjustment(width, height)


class TestRatioHelpers:
    def test_closest_supported_ratio(self):
        assert get_closest_supported_ratio(100, 100) == "1:1"
        assert get_closest_supported_ratio(1920, 1080) == "16:9"
        assert get_closest_supported_ratio(1080, 1920) == "9:16"

    def test_format_ratio(self):
        assert format_ratio(1.0) == "1:1"
        assert format_ratio(1.5) == "3:2"
        assert format_ratio(3.0) == "3.00:1"
