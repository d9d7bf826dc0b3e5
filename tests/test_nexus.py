"""
Unit tests for format detection, Newick/Nexus import and tree file export.
"""

from __future__ import annotations

import io

import pytest

from treefig.attributes import Color
from treefig.errors import ExportIOError, FormatDetectionError, TreeImportError
from treefig.nexus import collect_taxa, detect_format, loadNewick, loadNexus, loadTrees, writeNewick, writeNexus
from treefig.utils import quote_taxon_name


class TestDetectFormat:
    """Tests for telling Nexus from Newick."""

    @pytest.mark.parametrize("text", ["#NEXUS\n", "#nexus\nbegin trees;", "\n\n   #Nexus\n"])
    def test_nexus(self, text):
        assert detect_format(io.StringIO(text)) == "nexus"

    def test_newick(self):
        assert detect_format(io.StringIO("\n(A,B);\n")) == "newick"

    def test_stream_is_rewound(self):
        """Should leave a stream at its start so it can be read again."""
        stream = io.StringIO("#NEXUS\nbegin trees;\n")
        detect_format(stream)

        assert stream.read() == "#NEXUS\nbegin trees;\n"

    @pytest.mark.parametrize("text", ["", "\n   \n\t\n"])
    def test_empty(self, text):
        with pytest.raises(FormatDetectionError):
            detect_format(io.StringIO(text))

    def test_missing_file(self, tmp_path):
        with pytest.raises(FormatDetectionError, match="missing.tre"):
            detect_format(tmp_path / "missing.tre")

    def test_path(self, nexus_file, newick_file):
        assert detect_format(nexus_file) == "nexus"
        assert detect_format(str(newick_file)) == "newick"


class TestLoadNewick:
    """Tests for reading Newick files."""

    def test_load(self, newick_file):
        trees = loadNewick(newick_file)

        assert len(trees) == 1
        assert trees[0].treeHeight == 3.0

    def test_leading_comment(self):
        trees = loadNewick(io.StringIO("[tree from a run]\n(A,B);"))

        assert [k.name for k in trees[0].getExternal()] == ["A", "B"]

    def test_no_tree(self):
        with pytest.raises(TreeImportError, match="contained no trees"):
            loadNewick(io.StringIO("[only a comment]\n"))


class TestLoadNexus:
    """Tests for reading Nexus files."""

    def test_first_tree_with_translated_taxa(self, nexus_file):
        """Should read only the first tree, naming tips through the translate table."""
        trees, _ = loadNexus(nexus_file)

        assert len(trees) == 1
        ll = trees[0]
        assert ll.name == "tree_1"
        assert ll.rooted is True
        assert [k.name for k in ll.getExternal()] == ["SampleA1", "Sample B", "C_3"]
        assert ll.root.children[0].traits == {"posterior": 0.99}

    def test_taxa_block_annotations(self, nexus_file):
        """Should attach taxlabels annotations to the taxa the tips reference."""
        trees, _ = loadNexus(nexus_file)
        tips = {k.name: k for k in trees[0].getExternal()}

        assert tips["SampleA1"].taxon.attributes == {"!color": Color(255, 0, 0)}
        assert tips["C_3"].taxon.attributes == {}

    def test_figtree_block(self, nexus_file):
        _, settings = loadNexus(nexus_file)

        assert settings == {
            "appearance.branchLineWidth": 2.0,
            "tipLabels.fontSize": 10,
            "trees.orderType": "decreasing",
            "appearance.foregroundColour": Color(0x33, 0x33, 0x33),
        }

    def test_no_figtree_block(self):
        _, settings = loadNexus(io.StringIO("#NEXUS\nbegin trees;\n\ttree t = (A,B);\nend;\n"))

        assert settings == {}

    def test_apostrophes_in_comments(self):
        """Should not pair quotes across separate plain comments."""
        text = "#NEXUS\n[Bob's tree]\nbegin trees;\n\ttree t = (A,B);\nend;\n[Al's note]\n"
        trees, _ = loadNexus(io.StringIO(text))

        assert [k.name for k in trees[0].getExternal()] == ["A", "B"]

    def test_annotated_tree_name(self):
        """Should accept annotations between the tree name and =, as in BEAST tree logs."""
        text = "#NEXUS\nbegin trees;\n\ttree STATE_0 [&lnP=-123.4,posterior=-123.4] = [&R] ((A:1,B:1):1,C:2);\nend;\n"
        trees, _ = loadNexus(io.StringIO(text))

        assert trees[0].name == "STATE_0"
        assert trees[0].rooted is True
        assert [k.name for k in trees[0].getExternal()] == ["A", "B", "C"]

    def test_default_tree_marker(self):
        text = "#NEXUS\nbegin trees;\n\ttree * UNTITLED = [&U] (A,B,C);\nend;\n"
        trees, _ = loadNexus(io.StringIO(text))

        assert trees[0].name == "UNTITLED"
        assert trees[0].rooted is False

    def test_missing_equals(self):
        with pytest.raises(TreeImportError, match="Missing = in tree statement t"):
            loadNexus(io.StringIO("#NEXUS\nbegin trees;\n\ttree t (A,B);\nend;\n"))

    def test_unrooted_tree(self):
        trees, _ = loadNexus(io.StringIO("#NEXUS\nbegin trees;\n\ttree t = [&U] (A,B,C);\nend;\n"))

        assert trees[0].rooted is False

    def test_other_blocks_are_skipped(self):
        text = (
            "#NEXUS\n"
            "begin data;\n\tdimensions ntax=2 nchar=4;\n\tmatrix\n\tA ACGT\n\tB ACGT\n\t;\nend;\n"
            "begin trees;\n\ttree t = (A,B);\nend;\n"
        )
        trees, _ = loadNexus(io.StringIO(text))

        assert [k.name for k in trees[0].getExternal()] == ["A", "B"]

    def test_no_trees(self, empty_nexus_file):
        """Should refuse a file without trees."""
        with pytest.raises(TreeImportError, match="contained no trees"):
            loadNexus(empty_nexus_file)

    def test_unterminated_block(self):
        with pytest.raises(TreeImportError, match="Unterminated TREES block"):
            loadNexus(io.StringIO("#NEXUS\nbegin trees;\n\ttree t = (A,B);\n"))

    def test_malformed_figtree_setting(self):
        with pytest.raises(TreeImportError):
            loadNexus(io.StringIO("#NEXUS\nbegin trees;\n\ttree t = (A,B);\nend;\nbegin figtree;\n\tset nothing;\nend;\n"))


class TestLoadTrees:
    """Tests for loading with format detection."""

    def test_nexus(self, nexus_file):
        trees, settings = loadTrees(nexus_file)

        assert len(trees) == 1
        assert settings["tipLabels.fontSize"] == 10

    def test_newick_has_no_settings(self, newick_file):
        trees, settings = loadTrees(newick_file)

        assert len(trees) == 1
        assert settings == {}


class TestQuoting:
    """Tests for taxon name quoting."""

    @pytest.mark.parametrize(
        "name, expected",
        [
            ("A_1", "A_1"),
            ("V704-0026", "V704-0026"),
            ("A B", "'A B'"),
            ("A'B", "'A''B'"),
            ("A.1", "'A.1'"),
            ("café", "'café'"),
            ("A\n", "'A\n'"),
        ],
    )
    def test_quote(self, name, expected):
        assert quote_taxon_name(name) == expected


class TestWriteNewick:
    """Tests for Newick export."""

    def test_one_tree_per_line(self, newick_file):
        trees = loadNewick(newick_file)
        out = io.StringIO()
        writeNewick(trees, out)

        assert out.getvalue() == "((A:1.0,B:2.0)[&support=0.95]:0.5,C:3.0);\n"

    def test_unwritable_path(self, tmp_path, newick_file):
        trees = loadNewick(newick_file)

        with pytest.raises(ExportIOError):
            writeNewick(trees, tmp_path / "missing" / "out.tre")


class TestWriteNexus:
    """Tests for Nexus export."""

    def test_layout(self, nexus_file):
        """Should write the TAXA, TREES and FIGTREE blocks in order."""
        trees, settings = loadNexus(nexus_file)
        out = io.StringIO()
        writeNexus(trees, out, taxa=collect_taxa(trees), settings=settings)
        text = out.getvalue()

        assert text.splitlines() == [
            "#NEXUS",
            "begin taxa;",
            "\tdimensions ntax=3;",
            "\ttaxlabels",
            "\tSampleA1[&!color=#ff0000]",
            "\t'Sample B'",
            "\tC_3",
            ";",
            "end;",
            "",
            "begin trees;",
            "\ttree tree_1 = [&R] ((SampleA1:0.1,'Sample B':0.2)[&posterior=0.99]:0.05,C_3:0.3);",
            "end;",
            "",
            "begin figtree;",
            "\tset appearance.branchLineWidth=2.0;",
            "\tset tipLabels.fontSize=10;",
            '\tset trees.orderType="decreasing";',
            "\tset appearance.foregroundColour=#333333;",
            "end;",
        ]

    def test_without_settings(self, newick_file):
        trees = loadNewick(newick_file)
        out = io.StringIO()
        writeNexus(trees, out)

        assert "begin figtree;" not in out.getvalue()
        assert "\ttree tree_1 = [&R] ((A:1.0,B:2.0)[&support=0.95]:0.5,C:3.0);" in out.getvalue()

    def test_round_trip(self, tmp_path, nexus_file):
        """Should read back the same taxa annotations, tree and settings."""
        trees, settings = loadNexus(nexus_file)
        path = tmp_path / "copy.nex"
        writeNexus(trees, path, taxa=collect_taxa(trees), settings=settings)

        copied, copied_settings = loadNexus(path)
        assert copied_settings == settings
        assert copied[0].toString() == trees[0].toString()
        assert [t.attributes for t in collect_taxa(copied)] == [t.attributes for t in collect_taxa(trees)]

    def test_source_is_unchanged(self, nexus_file):
        before = nexus_file.read_text()
        loadNexus(nexus_file)

        assert nexus_file.read_text() == before
