"""
Reading and writing Newick and Nexus tree files.

Nexus files are scanned block by block: the ``TAXA`` block registers taxa and their
annotations, the first tree of the ``TREES`` block is built with the Newick grammar of
:func:`treefig.tree.make_tree`, and any ``FIGTREE`` block is read as ``set key=value;``
statements into a settings dictionary.
"""

import logging
import os
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from typing import IO, Any, Literal

from .attributes import encode_attributes, encode_value, parse_attributes, parse_value
from .errors import ExportIOError, FormatDetectionError, TreeImportError
from .tree import _NAME_STOP, _find_comment_end, _read_label, make_tree, taxon, tree
from .utils import quote_taxon_name

logger = logging.getLogger(__name__)

__all__ = [
    "detect_format",
    "loadNewick",
    "loadNexus",
    "loadTrees",
    "writeNewick",
    "writeNexus",
]

TreeSource = str | os.PathLike | IO[str]


def _source_name(source: TreeSource) -> str:
    if isinstance(source, (str, os.PathLike)):
        return os.fspath(source)
    return getattr(source, "name", "<stream>")


def _first_line(handle: IO[str]) -> str | None:
    for line in handle:
        if line.strip():
            return line
    return None


def detect_format(source: TreeSource) -> Literal["nexus", "newick"]:
    """
    Decide whether a tree file is Nexus or Newick from its first non-blank line.

    The probe is disposable: a path is opened and closed again, and a stream is rewound
    to its start, so the caller can read the same source from the beginning.

    Parameters:
    source (str, os.PathLike or file-like): The tree file.

    Returns:
    str: "nexus" if the first non-blank line contains `#NEXUS` (any case), else "newick".

    Raises:
    FormatDetectionError: If the file cannot be opened or has no non-blank line.
    """
    name = _source_name(source)
    if isinstance(source, (str, os.PathLike)):
        try:
            with open(source, "r") as handle:
                line = _first_line(handle)
        except OSError as e:
            raise FormatDetectionError(name, e.strerror or str(e)) from e
    else:
        line = _first_line(source)
        source.seek(0)

    if line is None:
        raise FormatDetectionError(name, "file is empty")

    file_format: Literal["nexus", "newick"] = "nexus" if "#NEXUS" in line.upper() else "newick"
    logger.debug("%s detected as %s", name, file_format)
    return file_format


def _read_text(source: TreeSource) -> str:
    if isinstance(source, (str, os.PathLike)):
        try:
            with open(source, "r") as handle:
                return handle.read()
        except OSError as e:
            raise FormatDetectionError(_source_name(source), e.strerror or str(e)) from e
    return source.read()


def _skip_space(text: str, i: int) -> int:
    """Skip whitespace and comments that carry no annotations."""
    while i < len(text):
        if text[i].isspace():
            i += 1
        elif text[i] == "[" and text[i + 1 : i + 2] != "&":
            i = _find_comment_end(text, i) + 1
        else:
            break
    return i


class _NoMoreBlocks(Exception):
    """End of file reached while looking for the next block."""


class NexusImporter:
    """
    Sequential scanner over the blocks of a Nexus document.

    Attributes:
    text (str): The whole document.
    i (int): Current position in `text`.
    taxa (dict): Registry of taxa by name, shared by every tree read from this document.
    translate (dict or None): Translate table of the current TREES block.
    """

    def __init__(self, text: str, taxa: dict[str, taxon] | None = None):
        self.text = text
        self.i = _skip_space(text, 0)
        self.taxa: dict[str, taxon] = {} if taxa is None else taxa
        self.translate: dict[str, str] | None = None

        if self.text[self.i : self.i + 6].upper() == "#NEXUS":
            self.i += 6

    def read_statement(self) -> str | None:
        """
        Read text up to the next `;` outside quotes and comments.

        Returns:
        str or None: The statement without its semicolon, or None if only whitespace and comments remain.

        Raises:
        TreeImportError: If text remains but is never terminated by a semicolon.
        """
        self.i = _skip_space(self.text, self.i)
        if self.i >= len(self.text):
            return None

        start = self.i
        j = self.i
        while j < len(self.text):
            char = self.text[j]
            if char in ("'", '"'):
                _, j = _read_label(self.text, j)
            elif char == "[":
                j = _find_comment_end(self.text, j) + 1
            elif char == ";":
                self.i = j + 1
                return self.text[start:j]
            else:
                j += 1
        raise TreeImportError("Missing ; after statement starting at character %d" % (start))

    @staticmethod
    def split_command(statement: str) -> tuple[str, str]:
        """Split a statement into its lower-cased first word and the text after it."""
        i = _skip_space(statement, 0)
        j = i
        while j < len(statement) and not statement[j].isspace() and statement[j] not in "=[":
            j += 1
        return statement[i:j].lower(), statement[j:]

    def find_next_block(self) -> str:
        """
        Advance past the next `begin NAME;` and return NAME.

        Raises:
        _NoMoreBlocks: If the document ends first.
        """
        while True:
            statement = self.read_statement()
            if statement is None:
                raise _NoMoreBlocks()
            command, rest = self.split_command(statement)
            if command == "begin":
                rest = rest.strip()
                if rest[:1] in ("'", '"'):
                    name, _ = _read_label(rest, 0)
                else:
                    name = rest
                logger.debug("found block %s", name)
                return name
            logger.debug("skipping statement outside of blocks: %s", command)

    def block_statements(self, block: str) -> Iterable[tuple[str, str, str]]:
        """Yield `(command, rest, statement)` for each statement of the current block, stopping after its `end;`."""
        while True:
            statement = self.read_statement()
            if statement is None:
                raise TreeImportError("Unterminated %s block: missing end;" % (block))
            command, rest = self.split_command(statement)
            if command in ("end", "endblock"):
                return
            yield command, rest, statement

    def skip_block(self, block: str):
        for command, _, _ in self.block_statements(block):
            logger.debug("skipping %s in %s block", command, block)

    def parse_taxa_block(self):
        """Register the taxa listed by `taxlabels`, with any annotations attached to them."""
        for command, rest, _ in self.block_statements("TAXA"):
            if command == "dimensions":
                logger.debug("taxa block dimensions:%s", rest)
            elif command == "taxlabels":
                current = None
                i = _skip_space(rest, 0)
                while i < len(rest):
                    if rest[i] == "[":
                        end = _find_comment_end(rest, i)
                        if current is None:
                            raise TreeImportError("Annotation before any taxon label in taxlabels")
                        current.attributes.update(parse_attributes(rest[i : end + 1]))
                        i = end + 1
                    else:
                        name, i = _read_label(rest, i)
                        if not name:
                            raise TreeImportError("Unexpected %r in taxlabels" % (rest[i]))
                        if name not in self.taxa:
                            self.taxa[name] = taxon(name)
                        current = self.taxa[name]
                    i = _skip_space(rest, i)
                logger.debug("%d taxa registered", len(self.taxa))

    def parse_translate(self, rest: str) -> dict[str, str]:
        """Parse `1 A, 2 'B C', ...` into a token to name mapping."""
        translate = {}
        i = _skip_space(rest, 0)
        while i < len(rest):
            key, i = _read_label(rest, i)
            i = _skip_space(rest, i)
            value, i = _read_label(rest, i)
            if not key or not value:
                raise TreeImportError("Malformed translate table near %r" % (rest[i : i + 20]))
            translate[key] = value
            i = _skip_space(rest, i)
            if i < len(rest):
                if rest[i] != ",":
                    raise TreeImportError("Expected , in translate table near %r" % (rest[i : i + 20]))
                i = _skip_space(rest, i + 1)
        return translate

    @staticmethod
    def _read_tree_comments(rest: str, i: int, ll: tree) -> int:
        """Skip comments in a tree statement, applying `[&R]` and `[&U]` to `ll`."""
        while True:
            while i < len(rest) and rest[i].isspace():
                i += 1
            if rest[i : i + 1] != "[":
                return i
            end = _find_comment_end(rest, i)
            flag = rest[i + 1 : end].strip().upper()
            if flag == "&R":
                ll.rooted = True
            elif flag == "&U":
                ll.rooted = False
            else:
                logger.debug("skipping tree comment %s", rest[i : end + 1])
            i = end + 1

    def parse_tree_statement(self, rest: str) -> tree:
        """
        Build a tree from the text following `tree` in `tree [*] NAME [&...] = [&R] (...)`.

        The `*` default-tree marker is ignored, and so are annotations between the
        name and `=` (BEAST writes the sampled state there) apart from a rooting flag.
        """
        ll = tree()
        i = _skip_space(rest, 0)
        if rest[i : i + 1] == "*":
            i = _skip_space(rest, i + 1)
        name, i = _read_label(rest, i, stop=_NAME_STOP)
        if not name:
            raise TreeImportError("Missing tree name in tree statement")
        ll.name = name

        i = self._read_tree_comments(rest, i, ll)
        if rest[i : i + 1] != "=":
            raise TreeImportError("Missing = in tree statement %s" % (name))
        i = self._read_tree_comments(rest, i + 1, ll)

        logger.debug("building tree %s", name)
        return make_tree(rest[i:] + ";", ll=ll, taxa=self.taxa, translate=self.translate)

    def parse_trees_block(self) -> tree | None:
        """Read the translate table and the first tree of a TREES block, skipping the rest of it."""
        first = None
        self.translate = None
        for command, rest, _ in self.block_statements("TREES"):
            if command == "translate":
                self.translate = self.parse_translate(rest)
                logger.debug("translate table with %d entries", len(self.translate))
            elif command in ("tree", "utree"):
                if first is None:
                    first = self.parse_tree_statement(rest)
                    if command == "utree":
                        first.rooted = False
                else:
                    logger.debug("ignoring further tree in TREES block")
        return first

    def parse_figtree_block(self) -> dict[str, Any]:
        """Read `set key=value;` statements, decoding values with the attribute grammar."""
        settings: dict[str, Any] = {}
        for command, rest, statement in self.block_statements("FIGTREE"):
            if command == "set":
                statement = rest
            key, sep, value = statement.partition("=")
            key = key.strip()
            if not sep or not key:
                raise TreeImportError("Malformed FIGTREE setting: %s" % (statement.strip()))
            settings[key] = parse_value(value)
        logger.debug("FIGTREE block with %d settings", len(settings))
        return settings


def _check_trees(trees: list[tree], name: str):
    if len(trees) == 0:
        raise TreeImportError("This file contained no trees.", suggestion="Check that %s holds a Newick or Nexus tree." % (name))
    for ll in trees:
        ll.traverse_tree()


def loadNewick(source: TreeSource, taxa: dict[str, taxon] | None = None) -> list[tree]:
    """
    Load the first tree of a Newick file.

    Parameters:
    source (str, os.PathLike or file-like): The path to the Newick file or a file-like object containing the tree.
    taxa (dict or None): Taxon registry to share with other imports. Default is a new one.

    Returns:
    list: A list holding the single tree read.

    Raises:
    TreeImportError: If the file holds no tree or the tree string is malformed.

    Example:
    >>> trees = loadNewick("path/to/tree.newick")
    """
    name = _source_name(source)
    text = _read_text(source)
    start = _skip_space(text, 0)

    trees = []
    if start < len(text):
        trees.append(make_tree(text[start:], taxa=taxa))
        logger.debug("Identified tree string in %s", name)
    _check_trees(trees, name)
    return trees


def loadNexus(source: TreeSource, taxa: dict[str, taxon] | None = None) -> tuple[list[tree], dict[str, Any]]:
    """
    Load the first tree of a Nexus file and the settings of its FIGTREE block.

    Parameters:
    source (str, os.PathLike or file-like): The path to the Nexus file or a file-like object containing it.
    taxa (dict or None): Taxon registry to share with other imports. Default is a new one.

    Returns:
    tuple: The list of trees read (one) and the FIGTREE settings (empty if the file has no such block).

    Raises:
    TreeImportError: If the file holds no tree or its syntax is malformed.

    Example:
    >>> trees, settings = loadNexus("path/to/tree.nexus")
    """
    name = _source_name(source)
    importer = NexusImporter(_read_text(source), taxa=taxa)

    trees: list[tree] = []
    settings: dict[str, Any] = {}
    while True:
        try:
            block = importer.find_next_block()
        except _NoMoreBlocks:
            break

        if block.upper() == "TAXA":
            importer.parse_taxa_block()
        elif block.upper() == "TREES":
            ll = importer.parse_trees_block()
            if ll is not None and len(trees) == 0:
                trees.append(ll)
        elif block.upper() == "FIGTREE":
            settings.update(importer.parse_figtree_block())
        else:
            importer.skip_block(block)

    _check_trees(trees, name)
    return trees, settings


def loadTrees(source: TreeSource) -> tuple[list[tree], dict[str, Any]]:
    """
    Detect the format of a tree file and load it.

    Returns:
    tuple: The trees read and the FIGTREE settings (always empty for Newick).
    """
    file_format = detect_format(source)
    if file_format == "nexus":
        return loadNexus(source)
    return loadNewick(source), {}


def collect_taxa(trees: list[tree]) -> list[taxon]:
    """Union of the taxa of all trees, each taxon once, in first-seen order."""
    seen: dict[int, taxon] = {}
    for ll in trees:
        for tip in ll.getTaxa():
            seen.setdefault(id(tip), tip)
    return list(seen.values())


@contextmanager
def _open_for_writing(destination: str | os.PathLike | IO[str]) -> Iterator[IO[str]]:
    """Open a path for writing and close it on exit; a caller's stream is only flushed."""
    if not isinstance(destination, (str, os.PathLike)):
        yield destination
        destination.flush()
        return

    try:
        handle = open(destination, "w")
    except OSError as e:
        raise ExportIOError(os.fspath(destination), e.strerror or str(e)) from e
    with handle:
        yield handle


def writeNewick(trees: list[tree], destination: str | os.PathLike | IO[str]):
    """
    Write trees as Newick, one tree per line, with their annotations.

    Raises:
    ExportIOError: If the file cannot be opened or written.
    """
    name = _source_name(destination)
    try:
        with _open_for_writing(destination) as handle:
            for ll in trees:
                handle.write(ll.toString() + "\n")
    except OSError as e:
        raise ExportIOError(name, e.strerror or str(e)) from e


def writeNexus(
    trees: list[tree],
    destination: str | os.PathLike | IO[str],
    taxa: list[taxon] | None = None,
    settings: dict[str, Any] | None = None,
):
    """
    Write a Nexus document: a TAXA block, a TREES block and a FIGTREE block.

    Parameters:
    trees (list): Trees to write.
    destination (str, os.PathLike or file-like): Output path or text stream.
    taxa (list or None): Taxa for the TAXA block, each written on its own line followed by its
                         encoded attributes. Default is the union of the trees' taxa.
    settings (dict or None): Settings written as `set key=value;` lines of the FIGTREE block.
                             No FIGTREE block is written if None.

    Raises:
    ExportIOError: If the file cannot be opened or written.
    """
    name = _source_name(destination)
    if taxa is None:
        taxa = collect_taxa(trees)

    try:
        with _open_for_writing(destination) as handle:
            handle.write("#NEXUS\n")
            handle.write("begin taxa;\n")
            handle.write("\tdimensions ntax=%d;\n" % (len(taxa)))
            handle.write("\ttaxlabels\n")
            for tip in taxa:
                handle.write("\t%s%s\n" % (quote_taxon_name(tip.name), encode_attributes(tip.attributes)))
            handle.write(";\nend;\n\n")

            handle.write("begin trees;\n")
            for t, ll in enumerate(trees):
                tree_name = quote_taxon_name(ll.name) if ll.name else "tree_%d" % (t + 1)
                handle.write("\ttree %s = [&%s] %s\n" % (tree_name, "R" if ll.rooted else "U", ll.toString()))
            handle.write("end;\n")

            if settings is not None:
                handle.write("\nbegin figtree;\n")
                for key, value in settings.items():
                    if value is None:
                        continue
                    handle.write("\tset %s=%s;\n" % (key, encode_value(value)))
                handle.write("end;\n")
    except OSError as e:
        raise ExportIOError(name, e.strerror or str(e)) from e
