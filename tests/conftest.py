"""Shared fixtures: small Newick and Nexus tree files."""

from __future__ import annotations

from pathlib import Path

import matplotlib
import pytest

matplotlib.use("Agg")

NEWICK_TEXT = "((A:1.0,B:2.0)[&support=0.95]:0.5,C:3.0);\n"

NEXUS_TEXT = """#NEXUS
[written by hand]
begin taxa;
	dimensions ntax=3;
	taxlabels
	SampleA1[&!color=#ff0000]
	'Sample B'
	C_3
;
end;

begin trees;
	translate
		1 SampleA1,
		2 'Sample B',
		3 C_3
	;
	tree tree_1 = [&R] ((1:0.1,2:0.2)[&posterior=0.99]:0.05,3:0.3);
	tree tree_2 = [&R] ((1:0.1,3:0.2):0.05,2:0.3);
end;

BEGIN FigTree;
	set appearance.branchLineWidth=2.0;
	set tipLabels.fontSize=10;
	set trees.orderType="decreasing";
	set appearance.foregroundColour=#333333;
END;
"""

NO_TREES_NEXUS = """#NEXUS
begin taxa;
	dimensions ntax=1;
	taxlabels A;
end;
"""


@pytest.fixture
def newick_file(tmp_path: Path) -> Path:
    path = tmp_path / "tree.nwk"
    path.write_text(NEWICK_TEXT)
    return path


@pytest.fixture
def nexus_file(tmp_path: Path) -> Path:
    path = tmp_path / "tree.nex"
    path.write_text(NEXUS_TEXT)
    return path


@pytest.fixture
def empty_nexus_file(tmp_path: Path) -> Path:
    path = tmp_path / "empty.nex"
    path.write_text(NO_TREES_NEXUS)
    return path
