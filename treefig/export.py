"""
The headless export pipeline: import a tree file, colour its taxa, resolve settings,
draw the graphic and write the optional Newick and Nexus companion files.
"""

import logging
import os
import sys
from typing import IO, Any

from .attributes import Color
from .colors import annotate_taxa
from .errors import ExportIOError, GraphicExportError, TreefigError
from .nexus import TreeSource, collect_taxa, loadTrees, writeNewick, writeNexus
from .render import check_graphic_format, compute_height, export_graphic, render_trees
from .settings import default_settings, resolve_settings

logger = logging.getLogger(__name__)

__all__ = [
    "companion_file_name",
    "create_graphic",
    "default_graphic_file_name",
]

NEWICK_SUFFIX = "_newick.tre"
NEXUS_SUFFIX = "_nexus.tre"


def companion_file_name(graphic_file_name: str, suffix: str) -> str:
    """
    Name of a companion tree file: the graphic file name without its last four
    characters (the extension, for three letter extensions) followed by `suffix`.

    Example:
    >>> companion_file_name("out/tree.png", "_newick.tre")
    'out/tree_newick.tre'
    """
    return graphic_file_name[:-4] + suffix


def _write_graphic(figure, graphic_format: str, graphic_file_name: str | None, stdout: IO[bytes] | None):
    if graphic_file_name is None:
        stream = stdout if stdout is not None else sys.stdout.buffer
        export_graphic(figure, graphic_format, stream)
        stream.flush()
        return

    logger.info("Creating %s graphic: %s", graphic_format, graphic_file_name)
    try:
        handle = open(graphic_file_name, "wb")
    except OSError as e:
        raise ExportIOError(graphic_file_name, e.strerror or str(e)) from e
    with handle:
        export_graphic(figure, graphic_format, handle)


def create_graphic(
    graphic_format: str,
    width: int,
    height: int,
    tree_source: TreeSource,
    graphic_file_name: str | None,
    overrides: dict[str, Any] | None = None,
    write_newick: bool = False,
    write_nexus: bool = False,
    color_map: dict[str, Color] | None = None,
    stdout: IO[bytes] | None = None,
) -> dict[str, Any]:
    """
    Turn a tree file into a graphic, plus optional Newick and Nexus companion files.

    Parameters:
    graphic_format (str): One of "PDF", "SVG", "PNG", "JPEG".
    width (int): Width of the graphic in pixels.
    height (int): Requested height in pixels. The graphic is always sized from the
                  number of taxa instead, see `treefig.render.compute_height()`.
    tree_source (str, os.PathLike or file-like): Newick or Nexus input.
    graphic_file_name (str or None): Output path; None writes the graphic to standard output.
    overrides (dict or None): Settings taking precedence over defaults and the FIGTREE block.
    write_newick (bool): Also write `<graphic_file_name minus 4 chars>_newick.tre`.
    write_nexus (bool): Also write `<graphic_file_name minus 4 chars>_nexus.tre`.
    color_map (dict or None): Name pattern to colour map applied to the taxa.
    stdout (binary stream or None): Stream used when `graphic_file_name` is None. Default is `sys.stdout.buffer`.

    Returns:
    dict: The resolved settings the graphic was drawn with.

    Raises:
    UnknownGraphicFormatError: If the graphic format is not supported; nothing is written.
    FormatDetectionError: If the tree file cannot be read.
    TreeImportError: If the tree file holds no tree or is malformed; nothing is written.
    GraphicExportError: If drawing or writing any output fails. Output files closed before
                        the failure are left in place.
    """
    check_graphic_format(graphic_format)

    trees, block_settings = loadTrees(tree_source)

    taxa = collect_taxa(trees)  ## one running set across all trees, coloured once
    if color_map:
        annotate_taxa(taxa, color_map)

    settings = resolve_settings(default_settings(), block_settings, overrides)

    calculated_height = compute_height(len(taxa))
    if calculated_height != height:
        logger.debug("using height %d for %d taxa instead of %d", calculated_height, len(taxa), height)

    try:
        figure = render_trees(trees, settings, width, calculated_height)
        _write_graphic(figure, graphic_format, graphic_file_name, stdout)

        if write_newick:
            if graphic_file_name is not None:
                newick_file_name = companion_file_name(graphic_file_name, NEWICK_SUFFIX)
                logger.info("Creating Newick file: %s", newick_file_name)
                writeNewick(trees, newick_file_name)
            else:
                logger.warning("Can't build Newick file name - make sure graphic file name is provided.")

        if write_nexus:
            if graphic_file_name is not None:
                nexus_file_name = companion_file_name(graphic_file_name, NEXUS_SUFFIX)
                logger.info("Creating Nexus file: %s", nexus_file_name)
                writeNexus(trees, nexus_file_name, taxa=taxa, settings=settings)
            else:
                logger.warning("Can't build Nexus file name - make sure graphic file name is provided.")

    except (TreefigError, OSError, ValueError, TypeError, KeyError, RuntimeError) as e:
        raise GraphicExportError(e) from e

    return settings


def default_graphic_file_name(tree_file_name: str) -> str:
    """Graphic path used when only a tree file is given: the tree file name plus `.svg`."""
    return os.fspath(tree_file_name) + ".svg"
