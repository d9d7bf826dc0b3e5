import logging
import re
from collections.abc import Callable
from statistics import mean
from typing import Any, Literal

from matplotlib.axes import Axes
from matplotlib.collections import LineCollection
from typing_extensions import TypeIs

from .attributes import encode_attributes, parse_attributes
from .errors import TreeImportError
from .utils import always_true, initialized_property, quote_taxon_name

logger = logging.getLogger(__name__)

__all__ = [
    "taxon",
    "node",
    "leaf",
    "tree",
    "make_tree",
]

_BRANCH_LENGTH = re.compile(r"[+-]?([0-9]+\.?[0-9]*|\.[0-9]+)([eE][+-]?[0-9]+)?")
_LABEL_STOP = set("()[]:;,") | {" ", "\t", "\n", "\r"}
_NAME_STOP = _LABEL_STOP | {"="}


class taxon:
    """
    A named tip identity.

    Taxa are shared by reference between every tree of one import that mentions the
    same name, so attributes set on a taxon (like ``!color``) are seen by all of them.

    Attributes:
    name (str): Taxon name, unique within the registry it belongs to.
    attributes (dict): Attribute set owned by the taxon, e.g. ``{"!color": Color(255, 0, 0)}``.
    """

    def __init__(self, name: str):
        self.name = name
        self.attributes: dict[str, Any] = {}

    def __repr__(self):
        return "taxon(%r)" % (self.name)


class Branch:
    """Parent class to tree components (nodes and tips)

    Attributes:
        branchType ("leaf" | "node"): Type of branch (defined in subclasses)
        x (float | None): x-coordinate for plotting, assigned in `drawTree()`
        y (float | None): y-coordinate for plotting, assigned in `drawTree()`
        length (float | None): Length of the branch, `None` if the tree string gave none
        height (float): Distance from the root, assigned in `traverse_tree()`
        parent (node | None): Parent node, `None` for the root
        traits (dict): Attributes decoded from the tree string comments
        index (int): Position of the character that defines this object in the tree string
    """

    branchType: Literal["leaf", "node"]

    def __init__(self, branchType: Literal["leaf", "node"]):
        self.branchType = branchType
        self.x: float | None = None
        self.y: float | None = None
        self.length: float | None = None
        self.height: float = 0.0
        self.parent: node | None = None
        self.traits: dict[str, Any] = {}

    @initialized_property
    def index(self) -> int: ...

    def is_node(self) -> bool:
        return isinstance(self, node)

    def is_leaf(self) -> bool:
        return isinstance(self, leaf)


class node(Branch):  ## node class
    """
    An internal vertex of the tree.

    Attributes:
    children (list): Ordered descendant branches, assigned in `make_tree()`.
    leaves (set): Names of descendant tips, assigned in `traverse_tree()`.
    childHeight (float or None): Height of the furthest descendant tip, assigned in `traverse_tree()`.
    """

    def __init__(self):
        super().__init__("node")
        self.children: list[BranchType] = []  ## a list of descendent branches of this node
        self.childHeight: float | None = None  ## the furthest descendant tip of this node
        self.leaves: set[str] = set()  ## is a set of tips that are descended from it


class leaf(Branch):  ## leaf class
    """A tip of the tree; its identity is the shared `taxon` it references."""

    def __init__(self):
        super().__init__("leaf")

    @initialized_property
    def taxon(self) -> taxon: ...

    @property
    def name(self) -> str:
        return self.taxon.name


BranchType = node | leaf


def is_node(obj: BranchType) -> TypeIs[node]:
    return obj.is_node()


def is_leaf(obj: BranchType) -> TypeIs[leaf]:
    return obj.is_leaf()


class tree:  ## tree class
    """
    Represents a phylogenetic tree.

    Attributes:
    cur_node (node or leaf or None): The branch the parser is attached to while building the tree in `make_tree()`.
    root (node or leaf or None): The root of the tree.
    Objects (list): A flat list of all branches (nodes and leaves) in the tree.
    rooted (bool): Whether the tree is rooted (`[&R]`) or unrooted (`[&U]`).
    name (str or None): Tree name from a Nexus `tree NAME = ...` statement.
    treeHeight (float): Distance between the root and the furthest tip.
    """

    def __init__(self):
        self.cur_node: BranchType | None = None
        self.root: BranchType | None = None
        self.Objects: list[BranchType] = []  ## tree objects have a flat list of all branches in them
        self.rooted = True
        self.name: str | None = None
        self.treeHeight: float = 0.0

    def add_node(self, i: int):
        """
        Attaches a new node to the current node.

        Parameters:
        i (int): The index of the new node, representing its position along the tree string.
        """
        new_node = node()  ## new node instance
        new_node.index = i  ## new node's index is the position along the tree string
        if self.root is None:
            self.root = new_node
        else:
            if not (self.cur_node is not None and is_node(self.cur_node)):
                raise TreeImportError(
                    "Attempted to add a child to a tip at character %d. Check if tip names have illegal characters like parentheses or commas."
                    % (i)
                )
            new_node.parent = self.cur_node  ## new node's parent is current node
            self.cur_node.children.append(new_node)  ## new node is a child of current node
        self.cur_node = new_node  ## current node is now new node
        self.Objects.append(new_node)  ## add new node to list of objects in the tree

    def add_leaf(self, i: int, tip: taxon):
        """
        Attaches a new leaf (tip) to the current node.

        Parameters:
        i (int): The index of the new leaf, representing its position along the tree string.
        tip (taxon): The shared taxon the leaf stands for.
        """
        new_leaf = leaf()  ## new instance of leaf object
        new_leaf.index = i  ## index is position along tree string
        new_leaf.taxon = tip
        if self.root is None:
            self.root = new_leaf
        else:
            if not (self.cur_node is not None and is_node(self.cur_node)):
                raise TreeImportError(
                    "Attempted to add a child to a tip at character %d. Check if tip names have illegal characters like parentheses."
                    % (i)
                )
            new_leaf.parent = self.cur_node  ## leaf's parent is current node
            self.cur_node.children.append(new_leaf)  ## assign leaf to parent's children
        self.cur_node = new_leaf  ## current node is now new leaf
        self.Objects.append(new_leaf)  ## add leaf to all objects in the tree

    def traverse_tree(
        self,
        cur_node: BranchType | None = None,
        include_condition: Callable[[BranchType], bool] = is_leaf,
        collect: list | None = None,
    ) -> list[BranchType]:
        """
        Traverse the tree in pre-order, setting heights and descendant tip sets on the way.

        Parameters:
        cur_node (node or None): The starting node for traversal. If None, starts from the root.
        include_condition (function): Decides whether a branch is added to the returned list. Default collects leaves.
        collect (list or None): List the collected branches are appended to.

        Returns:
        list: Branches passing `include_condition` in traversal order.
        """
        if cur_node is None:  ## if no starting point defined - start from root
            if self.root is None:
                raise TreeImportError("Tree has no root")
            cur_node = self.root
            for k in self.getInternal():  ## reset descendant sets if traversing from scratch
                k.leaves = set()
                k.childHeight = None

        if collect is None:
            collect = []

        if cur_node.parent is not None:
            cur_node.height = (cur_node.length or 0.0) + cur_node.parent.height
        else:
            cur_node.height = 0.0  ## root sits at zero

        if include_condition(cur_node):  ## test if interested in cur_node
            collect.append(cur_node)

        if is_leaf(cur_node):
            if cur_node.parent is not None:
                cur_node.parent.leaves.add(cur_node.name)  ## add to parent's list of tips
            else:
                self.treeHeight = cur_node.height

        elif is_node(cur_node):
            for child in cur_node.children:
                self.traverse_tree(cur_node=child, include_condition=include_condition, collect=collect)
            if len(cur_node.children) == 0:
                raise TreeImportError("Tried traversing through hanging node without children. Index: %s" % (cur_node.index))
            cur_node.childHeight = max(
                [(child.childHeight or 0.0) if is_node(child) else child.height for child in cur_node.children]
            )
            if cur_node.parent is not None:
                cur_node.parent.leaves |= cur_node.leaves  ## pass tips seen during traversal to parent
            self.treeHeight = cur_node.childHeight  ## it's the furthest child of the starting node
        return collect

    def sortBranches(self, orderType: Literal["increasing", "decreasing"] = "increasing"):
        """
        Order the children of every node by the number of tips they lead to.

        Parameters:
        orderType (str): "increasing" draws the smallest clades first (at the top), "decreasing" the largest.

        Children with the same number of tips keep their original order. Coordinates are
        recomputed with `drawTree()` afterwards.
        """
        if orderType not in ("increasing", "decreasing"):
            raise ValueError('Unrecognised ordering "%s"' % (orderType))
        self.traverse_tree()

        def func(k):
            return len(k.leaves) if is_node(k) else 1

        for k in self.getInternal():  ## iterate over nodes
            k.children = sorted(k.children, key=func, reverse=orderType == "decreasing")
        self.drawTree()  ## y positions have changed because of sorting

    def drawTree(self, order: list[leaf] | None = None):
        """
        Assign x and y coordinates of each branch in the tree.

        Parameters:
        order (list or None): Tips in the order they are stacked along the vertical tree dimension.
                              If None, uses pre-order traversal order.

        Tips are placed one unit apart with the first tip at the top; nodes sit at the
        mean y position of their children and at their height along x.
        """
        if order is None:
            ## order is a list of tips recovered from a tree traversal to make sure they're plotted in the correct order along the vertical tree dimension
            order = self.traverse_tree()
        else:
            self.traverse_tree()

        for k in self.Objects:  ## reset coordinates for all objects
            k.x = None
            k.y = None

        for y_idx, k in enumerate(order):  ## iterate over tips
            k.x = k.height  ## x position is height
            k.y = len(order) - y_idx - 0.5  ## first tip at the top

        for k in reversed(self.traverse_tree(include_condition=is_node)):  ## post-order: children before parents
            children_y_coords = [q.y for q in k.children if q.y is not None]
            if len(children_y_coords) != len(k.children):
                raise ValueError("Node %s has children that were not drawn" % (k.index))
            k.x = k.height
            k.y = mean(children_y_coords)  ## internal branch is in the middle of the vertical bar

    def plotTree(
        self,
        ax: Axes,
        width: float | Callable[[BranchType], float] = 2,
        colour: Any | Callable[[BranchType], Any] = "k",
        **kwargs,
    ):
        """
        Plot the tree on a given matplotlib axes.

        Each branch is a horizontal line from its parent's x position, and each node
        has a single vertical line joining its first and last child.

        Parameters:
        ax (matplotlib.axes.Axes): The matplotlib axes to plot the tree on.
        width (float or function): The width of the lines. Default sets the width to 2.
        colour (str or function): The color of the lines. Default sets the color to 'k' (black).
        **kwargs: Additional keyword arguments to pass to the LineCollection.

        Returns:
        matplotlib.axes.Axes: The axes with the tree plot added.
        """
        branches = []
        colours = []
        linewidths = []
        for k in self.Objects:  ## iterate over branches
            x = k.x  ## get branch x position
            xp = k.parent.x if k.parent else x  ## get parent x position
            y = k.y  ## get y position

            try:
                colours.append(colour(k)) if callable(colour) else colours.append(colour)
            except KeyError:
                colours.append((0.7, 0.7, 0.7))  ## in case no colour available for branch set it to grey
            linewidths.append(width(k)) if callable(width) else linewidths.append(width)

            branches.append(((xp, y), (x, y)))
            if is_node(k):
                yl, yr = k.children[0].y, k.children[-1].y  ## y positions of first and last child
                branches.append(((x, yl), (x, yr)))
                linewidths.append(linewidths[-1])
                colours.append(colours[-1])

        if "capstyle" not in kwargs:
            kwargs["capstyle"] = "projecting"
        line_segments = LineCollection(branches, lw=linewidths, color=colours, **kwargs)
        ax.add_collection(line_segments)
        return ax

    def getExternal(self, secondFilter: Callable[[leaf], bool] | None = None) -> list[leaf]:
        """All leaves, optionally filtered by `secondFilter`."""
        if secondFilter is None:
            secondFilter = always_true
        return [k for k in self.Objects if is_leaf(k) and secondFilter(k)]

    def getInternal(self, secondFilter: Callable[[node], bool] | None = None) -> list[node]:
        """All internal nodes, optionally filtered by `secondFilter`."""
        if secondFilter is None:
            secondFilter = always_true
        return [k for k in self.Objects if is_node(k) and secondFilter(k)]

    def getTaxa(self) -> list[taxon]:
        """Taxa referenced by the tips of this tree, in traversal order."""
        return [k.taxon for k in self.traverse_tree()]

    def toString(self, cur_node: BranchType | None = None, string_fragment: list[str] | None = None) -> str:
        """
        Output the topology of the tree with branch lengths and annotations as a Newick string.

        Tip names are quoted when they hold anything but word characters and hyphens, node
        labels (trait `label`) are written in front of the node's annotation comment, and the
        remaining traits are encoded as `[&key=value,...]`.

        Parameters:
        cur_node (node or None): The starting point for traversal. Default is None, which starts at the root.
        string_fragment (list or None): A list of strings that comprise the tree string. Default is None.

        Returns:
        str: The tree string, terminated by a semicolon when started from the root.

        Example:
        >>> tree_string = ll.toString()
        """
        if cur_node is None:
            if self.root is None:
                raise ValueError("Cannot write a tree without a root")
            cur_node = self.root
        if string_fragment is None:
            string_fragment = []

        if is_node(cur_node):
            if len(cur_node.children) == 0:
                raise ValueError("Node %s does not have children" % (cur_node.index))
            string_fragment.append("(")
            for c, child in enumerate(cur_node.children):  ## iterate through children of node
                self.toString(cur_node=child, string_fragment=string_fragment)
                if (c + 1) < len(cur_node.children):  ## not done with children, add comma for next iteration
                    string_fragment.append(",")
            string_fragment.append(")")  ## last child, node terminates
            if "label" in cur_node.traits:
                string_fragment.append(quote_taxon_name(str(cur_node.traits["label"])))
            string_fragment.append(encode_attributes(cur_node.traits, exclude={"label"}))
        elif is_leaf(cur_node):
            string_fragment.append(quote_taxon_name(cur_node.name))
            string_fragment.append(encode_attributes(cur_node.traits))

        if cur_node.length is not None:
            string_fragment.append(":%r" % (float(cur_node.length)))  ## end of node, add branch length

        if cur_node == self.root:
            string_fragment.append(";")
            return "".join(string_fragment)
        return ""


def _find_comment_end(data: str, i: int) -> int:
    """
    Index of the `]` closing the comment opened at `data[i]`.

    Plain comments end at the first `]`. Inside `[&...]` annotations quoted strings may
    hold `]`, so they are skipped; a quote without a closing partner is taken literally.
    """
    first = data.find("]", i + 1)
    if first < 0:
        raise TreeImportError("Unterminated comment starting at character %d" % (i))
    if not data[i + 1 : first].lstrip().startswith("&"):
        return first

    j = i + 1
    while j < len(data):
        char = data[j]
        if char in ('"', "'"):
            end = data.find(char, j + 1)
            if end < 0:
                return first
            j = end + 1
            continue
        if char == "]":
            return j
        j += 1
    return first


def _read_label(data: str, i: int, stop: set[str] = _LABEL_STOP) -> tuple[str, int]:
    """Read a tip or node label starting at `data[i]`; returns the label and the index after it."""
    quote = data[i]
    if quote in ("'", '"'):
        chunks = []
        j = i + 1
        while True:
            end = data.find(quote, j)
            if end < 0:
                raise TreeImportError("Unterminated quoted label starting at character %d" % (i))
            chunks.append(data[j:end])
            if data[end + 1 : end + 2] == quote:  ## doubled quote stands for the quote itself
                chunks.append(quote)
                j = end + 2
            else:
                return "".join(chunks), end + 1

    j = i
    while j < len(data) and data[j] not in stop:
        j += 1
    return data[i:j], j


def make_tree(
    data: str,
    ll: tree | None = None,
    taxa: dict[str, taxon] | None = None,
    translate: dict[str, str] | None = None,
) -> tree:
    """
    Parse a Newick tree string and create a tree object.

    Parsing stops at the first semicolon; anything after it is ignored.

    Parameters:
    data (str): The tree string to be parsed.
    ll (tree or None): An instance of a tree object. If None, a new tree object is created. Default is None.
    taxa (dict or None): Registry of taxa by name, shared between trees of one file. Tips reuse
                         the registered taxon of the same name and register new ones.
    translate (dict or None): Nexus translate table mapping tip tokens to taxon names.

    Returns:
    tree: The tree object created from the parsed tree string.

    Raises:
    TreeImportError: If the string is not a well formed tree.
    AttributeParseError: If an annotation comment is malformed.

    Example:
    >>> ll = make_tree("(A:0.1,B:0.2,(C:0.3,D:0.4)[&support=0.9]:0.5);")
    """
    if ll is None:  ## calling without providing a tree object - create one
        ll = tree()
    if taxa is None:
        taxa = {}

    i = 0  ## is an adjustable index along the tree string, it is incremented to advance through the string
    depth = 0
    expect_child = True  ## a label read now starts a new tip
    labelled = False  ## current branch already has its label

    while i < len(data):  ## while there's characters left in the tree string - loop away
        char = data[i]

        if char.isspace():
            i += 1

        elif char == "(":  ## look for new nodes
            if not expect_child:
                raise TreeImportError("Unexpected ( at character %d" % (i))
            logger.debug("%d adding node", i)
            ll.add_node(i)  ## add node to current node in tree ll
            depth += 1
            labelled = False
            i += 1  ## advance in tree string by one character

        elif char == "[":  ## look for comments
            end = _find_comment_end(data, i)
            comment = parse_attributes(data[i : end + 1])
            if ll.cur_node is not None:
                logger.debug("%d comment: %s", i, data[i : end + 1])
                ll.cur_node.traits.update(comment)
            i = end + 1  ## advance in tree string by however many characters it took to encode labels

        elif char == ":":  ## look for branch lengths
            if ll.cur_node is None or expect_child:
                raise TreeImportError("Branch length without a branch at character %d" % (i))
            i += 1
            while i < len(data) and (data[i].isspace() or data[i] == "["):  ## comments may sit between : and the length
                if data[i] == "[":
                    end = _find_comment_end(data, i)
                    ll.cur_node.traits.update(parse_attributes(data[i : end + 1]))
                    i = end + 1
                else:
                    i += 1
            match = _BRANCH_LENGTH.match(data, i)
            if match is None:
                raise TreeImportError("Missing branch length at character %d" % (i))
            ll.cur_node.length = float(match.group())  ## set branch length of current node
            i = match.end()

        elif char in (",", ")"):  ## look for bifurcations or clade ends
            if expect_child or ll.cur_node is None:
                raise TreeImportError("Missing tip label before '%s' at character %d" % (char, i))
            if depth == 0 or ll.cur_node.parent is None:
                raise TreeImportError("Unbalanced parentheses at character %d" % (i))
            ll.cur_node = ll.cur_node.parent
            if char == ")":
                depth -= 1
                expect_child = False
                labelled = False
            else:
                expect_child = True
            i += 1

        elif char == ";":  ## look for string end
            if depth != 0:
                raise TreeImportError("Improperly formatted string: must have matching parentheses")
            if ll.root is None:
                raise TreeImportError("Empty tree string")
            return ll

        else:  ## tip names and node labels
            label, end = _read_label(data, i)
            if expect_child:
                name = label if translate is None else translate.get(label, label)
                if name not in taxa:
                    taxa[name] = taxon(name)
                logger.debug("%d adding leaf %s", i, name)
                ll.add_leaf(i, taxa[name])  ## add tip
                expect_child = False
                labelled = True
            elif not labelled and ll.cur_node is not None and is_node(ll.cur_node):
                logger.debug("%d node label %s", i, label)
                ll.cur_node.traits["label"] = label
                labelled = True
            else:
                raise TreeImportError("Unexpected text %r at character %d" % (label, i))
            i = end

    raise TreeImportError("Improperly formatted string: must end in semicolon")
