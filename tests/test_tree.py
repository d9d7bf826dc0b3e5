"""
Unit tests for the Newick grammar, tree traversal and layout.
"""

from __future__ import annotations

import pytest

from treefig.attributes import Color
from treefig.errors import TreeImportError
from treefig.tree import is_leaf, is_node, make_tree


class TestMakeTree:
    """Tests for parsing Newick strings."""

    def test_topology_and_lengths(self):
        """Should build nodes and leaves with branch lengths and annotations."""
        ll = make_tree("((A:1,B:2)[&support=0.95]:0.5,C:3);")

        assert is_node(ll.root)
        inner, c = ll.root.children
        assert is_node(inner) and is_leaf(c)
        assert inner.length == 0.5
        assert inner.traits == {"support": 0.95}
        assert c.name == "C"
        assert c.length == 3.0
        assert [k.name for k in inner.children] == ["A", "B"]

    def test_quoted_labels(self):
        ll = make_tree("('A B':1,'it''s':2);")

        assert [k.name for k in ll.getExternal()] == ["A B", "it's"]

    def test_node_label(self):
        ll = make_tree("((A,B)90:1,C);")

        assert ll.root.children[0].traits["label"] == "90"

    def test_comment_between_colon_and_length(self):
        ll = make_tree("(A:[&rate=2]1.0,B:1.0);")

        tip = ll.root.children[0]
        assert tip.traits == {"rate": 2}
        assert tip.length == 1.0

    def test_apostrophe_in_plain_comment(self):
        """Should end a plain comment at the first ] whatever quotes it holds."""
        ll = make_tree("(A[Bob's tip]:1,B[Al's]:2);")

        assert [k.name for k in ll.getExternal()] == ["A", "B"]
        assert ll.root.children[0].traits == {}
        assert ll.root.children[1].length == 2.0

    def test_bracket_inside_quoted_annotation(self):
        ll = make_tree('(A[&note="a]b"],B);')

        assert ll.root.children[0].traits == {"note": "a]b"}

    def test_unpaired_quote_in_annotation(self):
        ll = make_tree("(A[&note=it's]:1,B:2);")

        assert ll.root.children[0].traits == {"note": "it's"}
        assert ll.root.children[0].length == 1.0

    def test_only_first_tree_is_read(self):
        ll = make_tree("(A,B);(C,D);")

        assert sorted(k.name for k in ll.getExternal()) == ["A", "B"]

    def test_translate_table(self):
        ll = make_tree("(1,2);", translate={"1": "Alpha", "2": "Beta"})

        assert [k.name for k in ll.getExternal()] == ["Alpha", "Beta"]

    def test_taxa_are_shared_between_trees(self):
        """Should reuse the taxon registered under the same name."""
        taxa = {}
        first = make_tree("(A,B);", taxa=taxa)
        second = make_tree("(B,C);", taxa=taxa)

        assert first.root.children[1].taxon is second.root.children[0].taxon
        assert sorted(taxa) == ["A", "B", "C"]

    @pytest.mark.parametrize(
        "newick",
        [
            "(A,B)",
            "((A,B);",
            "(A,B));",
            "(A,,B);",
            "(A:,B);",
            "(A,B[&x=1);",
            "('A,B);",
        ],
    )
    def test_malformed_trees(self, newick):
        with pytest.raises(TreeImportError):
            make_tree(newick)


class TestTraversal:
    """Tests for heights and tip collection."""

    def test_heights(self):
        ll = make_tree("((A:1,B:2):0.5,C:3);")
        tips = ll.traverse_tree()

        assert [k.name for k in tips] == ["A", "B", "C"]
        assert tips[0].height == 1.5
        assert tips[1].height == 2.5
        assert ll.treeHeight == 3.0
        assert ll.root.leaves == {"A", "B", "C"}

    def test_missing_lengths_count_as_zero(self):
        ll = make_tree("((A,B),C);")
        ll.traverse_tree()

        assert ll.treeHeight == 0.0


class TestOrdering:
    """Tests for ordering branches by clade size."""

    def test_increasing(self):
        ll = make_tree("((A,B),C);")
        ll.sortBranches(orderType="increasing")

        assert ll.toString() == "(C,(A,B));"

    def test_decreasing(self):
        ll = make_tree("(C,(A,B));")
        ll.sortBranches(orderType="decreasing")

        assert ll.toString() == "((A,B),C);"

    def test_ties_keep_original_order(self):
        ll = make_tree("((C,D),(A,B));")
        ll.sortBranches()

        assert ll.toString() == "((C,D),(A,B));"

    def test_unknown_order(self):
        ll = make_tree("(A,B);")

        with pytest.raises(ValueError):
            ll.sortBranches(orderType="sideways")


class TestDrawTree:
    """Tests for layout coordinates."""

    def test_coordinates(self):
        """Should stack tips from the top and centre nodes on their children."""
        ll = make_tree("(A:1,B:2);")
        ll.drawTree()
        a, b = ll.root.children

        assert (a.x, a.y) == (1.0, 1.5)
        assert (b.x, b.y) == (2.0, 0.5)
        assert (ll.root.x, ll.root.y) == (0.0, 1.0)


class TestToString:
    """Tests for writing trees back to Newick."""

    def test_round_trip(self):
        newick = "((A:1.0,B:2.0)[&support=0.95]:0.5,C:3.0);"

        assert make_tree(newick).toString() == newick

    def test_tip_annotation(self):
        ll = make_tree("(A:1.0,B:1.0);")
        ll.root.children[0].traits["!color"] = Color(255, 0, 0)

        assert ll.toString() == "(A[&!color=#ff0000]:1.0,B:1.0);"

    def test_quoting(self):
        ll = make_tree("('A B','it''s',C_1);")

        assert ll.toString() == "('A B','it''s',C_1);"

    def test_node_label_before_annotation(self):
        ll = make_tree("((A,B)90[&p=1],C);")

        assert ll.toString() == "((A,B)90[&p=1],C);"
