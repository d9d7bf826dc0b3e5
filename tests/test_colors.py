"""
Unit tests for colour maps and taxon colouring.
"""

from __future__ import annotations

import pytest

from treefig.attributes import Color
from treefig.colors import TIME_POINT_PALETTE, annotate_taxa, color_map_from_time_points, parse_color_map
from treefig.errors import ColorMapError
from treefig.tree import taxon

RED = Color(255, 0, 0)
BLUE = Color(0, 0, 255)


class TestAnnotateTaxa:
    """Tests for colouring taxa by substring."""

    def test_matching_taxon_is_coloured(self):
        taxa = [taxon("SampleA1"), taxon("SampleB2")]
        coloured = annotate_taxa(taxa, {"A1": RED})

        assert coloured == 1
        assert taxa[0].attributes == {"!color": RED}
        assert "!color" not in taxa[1].attributes

    def test_last_match_wins(self):
        """Should keep the colour of the last matching pattern in map order."""
        first = taxon("SampleA1")
        second = taxon("SampleA1")
        annotate_taxa([first], {"Sample": BLUE, "A1": RED})
        annotate_taxa([second], {"A1": RED, "Sample": BLUE})

        assert first.attributes["!color"] == RED
        assert second.attributes["!color"] == BLUE

    def test_case_sensitive(self):
        tip = taxon("samplea1")
        annotate_taxa([tip], {"A1": RED})

        assert tip.attributes == {}

    def test_other_attributes_are_kept(self):
        tip = taxon("A1")
        tip.attributes["host"] = "human"
        annotate_taxa([tip], {"A1": RED})

        assert tip.attributes == {"host": "human", "!color": RED}


class TestParseColorMap:
    """Tests for the -colors option value."""

    def test_parse(self):
        color_map = parse_color_map(" V704_0026_232:#3333ff , X:0x00FF00 ")

        assert color_map == {"V704_0026_232": Color(0x33, 0x33, 0xFF), "X": Color(0, 255, 0)}
        assert list(color_map) == ["V704_0026_232", "X"]

    def test_missing_colon(self):
        with pytest.raises(ColorMapError, match="Missing :"):
            parse_color_map("A1:#ff0000,nocolon")

    def test_bad_colour(self):
        with pytest.raises(ColorMapError, match="Failed to decode color"):
            parse_color_map("X:#zz")


class TestTimePoints:
    """Tests for colour maps extracted from file names."""

    def test_extract(self):
        """Should skip 'mod' tokens and colour the rest in palette order."""
        color_map = color_map_from_time_points("runs/V704_0026-0232-mod_tree.nwk")

        assert color_map == {"V704_0026": Color(0, 0, 0), "V704_0232": Color(0, 0, 255)}

    def test_no_time_points(self):
        assert color_map_from_time_points("plain_tree.nwk") == {}

    def test_more_points_than_colours(self):
        color_map = color_map_from_time_points("S_1-2-3-4-5-6_tree.nwk")

        assert list(color_map) == ["S_1", "S_2", "S_3", "S_4", "S_5"]
        assert list(color_map.values()) == list(TIME_POINT_PALETTE)

    def test_palette(self):
        assert TIME_POINT_PALETTE[4] == Color(0, 178, 0)
