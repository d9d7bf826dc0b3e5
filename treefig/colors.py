"""
Colouring taxa by name patterns.

A colour map pairs literal substrings with colours. Every taxon whose name contains a
pattern gets that colour as its ``!color`` attribute; when several patterns match, the
one that comes last in the map wins.
"""

import logging
import os
import re
from collections.abc import Iterable

from .attributes import Color
from .errors import ColorMapError
from .tree import taxon

logger = logging.getLogger(__name__)

__all__ = [
    "TIME_POINT_PALETTE",
    "annotate_taxa",
    "parse_color_map",
    "color_map_from_time_points",
]

COLOR_ATTRIBUTE = "!color"

## colours given to successive time points: black, blue, magenta, dark orange, dark green
TIME_POINT_PALETTE = (
    Color(0, 0, 0),
    Color(0, 0, 255),
    Color(255, 0, 255),
    Color(255, 200, 0).darker(),
    Color(0, 255, 0).darker(),
)


def parse_color_map(text: str) -> dict[str, Color]:
    """
    Parse a `-colors` option value such as ``V704_0026_232:#3333ff,V704_0026_512:0x00ff00``.

    Items are separated by commas (surrounding whitespace ignored); the pattern is the
    text before the first colon and the colour the text after it.

    Raises:
    ColorMapError: If an item has no colon or its colour cannot be decoded.
    """
    color_map: dict[str, Color] = {}
    for item in re.split(r"\s*,\s*", text.strip()):
        if ":" not in item:
            raise ColorMapError(item, "Missing : in colors value")
        pattern, colour = item.split(":")[:2]
        try:
            color_map[pattern] = Color.decode(colour)
        except ValueError as e:
            raise ColorMapError(colour, "Failed to decode color") from e
    return color_map


def color_map_from_time_points(file_name: str) -> dict[str, Color]:
    """
    Build a colour map from time points embedded in a tree file name.

    The file name is expected to look like ``<sample>_<t1>-<t2>-..._<rest>``: the hyphen
    delimited tokens after the last underscore before the first hyphen are time points and
    each pattern is the sample prefix followed by one of them. Tokens containing ``mod``
    are skipped, and the remaining ones take the colours of `TIME_POINT_PALETTE` in order;
    time points beyond the palette get no colour.

    Example:
    >>> sorted(color_map_from_time_points("runs/V704_0026-0232-mod_tree.nwk"))
    ['V704_0026', 'V704_0232']
    """
    file_name = os.path.basename(file_name)
    color_map: dict[str, Color] = {}
    first_hyphen = file_name.find("-")
    if first_hyphen <= 0:
        return color_map

    begin = file_name[:first_hyphen].rfind("_") + 1
    name = file_name[:begin]
    time_points = file_name[begin:]
    end = time_points.find("_")
    if end >= 0:
        time_points = time_points[:end]

    cnt = 0
    for point in time_points.split("-"):
        if "mod" in point.lower():
            continue
        if cnt >= len(TIME_POINT_PALETTE):
            logger.warning("No colour left for time point %s in %s", point, file_name)
            continue
        color_map[name + point] = TIME_POINT_PALETTE[cnt]
        cnt += 1
    logger.debug("colours extracted from %s: %s", file_name, color_map)
    return color_map


def annotate_taxa(taxa: Iterable[taxon], color_map: dict[str, Color]) -> int:
    """
    Set the `!color` attribute of every taxon whose name contains a pattern of the map.

    Matching is plain, case sensitive substring containment. Patterns are tried in map
    order, so the last matching pattern decides the colour.

    Returns:
    int: The number of taxa that received a colour.
    """
    coloured = 0
    for tip in taxa:
        matched = False
        for pattern, colour in color_map.items():
            if pattern in tip.name:
                tip.attributes[COLOR_ATTRIBUTE] = colour
                matched = True
        if matched:
            coloured += 1
    logger.debug("%d taxa coloured from %d patterns", coloured, len(color_map))
    return coloured
