"""
Drawing trees with matplotlib and writing the drawing as a graphic file.

The figure is built on a bare `matplotlib.figure.Figure` with the Agg canvas, so no
pyplot state or interactive backend is involved. One pixel is one point (72 dpi),
which keeps label font sizes in step with the fixed 8 pixel tip rows.
"""

import logging
import math
from typing import IO, Any

from matplotlib.backends.backend_agg import FigureCanvasAgg
from matplotlib.figure import Figure

from .attributes import Color, encode_value, is_finite_number
from .colors import COLOR_ATTRIBUTE
from .errors import UnknownGraphicFormatError
from .tree import BranchType, tree

logger = logging.getLogger(__name__)

__all__ = [
    "GRAPHIC_FORMATS",
    "check_graphic_format",
    "compute_height",
    "export_graphic",
    "render_trees",
]

GRAPHIC_FORMATS = {"PDF": "pdf", "SVG": "svg", "PNG": "png", "JPEG": "jpeg"}
DPI = 72
ROW_HEIGHT = 8  ## pixels per tip
TOP_BOTTOM_MARGIN = 46  ## pixels above and below the tips, scale bar included

## names FigTree saves for "colour by the !color annotation"
_USER_COLOUR_ATTRIBUTES = {"User selection", "Default"}


def compute_height(taxon_count: int) -> int:
    """
    Height of the graphic in pixels: one fixed row per taxon plus a fixed margin.

    Example:
    >>> compute_height(10)
    126
    """
    return taxon_count * ROW_HEIGHT + TOP_BOTTOM_MARGIN


def check_graphic_format(graphic_format: str) -> str:
    """Return the matplotlib format name for a graphic format, e.g. "PNG" -> "png"."""
    try:
        return GRAPHIC_FORMATS[graphic_format.upper()]
    except KeyError:
        raise UnknownGraphicFormatError(graphic_format, list(GRAPHIC_FORMATS)) from None


def _as_colour(value: Any, default: tuple[float, float, float]) -> tuple[float, float, float]:
    if isinstance(value, Color):
        return value.to_mpl()
    if isinstance(value, str):
        try:
            return Color.from_hex(value).to_mpl()
        except ValueError:
            pass
    return default


def _colour_attribute(name: Any) -> Any:
    if name in _USER_COLOUR_ATTRIBUTES:
        return COLOR_ATTRIBUTE
    return name


def _format_label(value: Any, digits: int) -> str:
    if is_finite_number(value) and isinstance(value, float):
        return "%.*g" % (digits, value)
    if isinstance(value, (Color, list, tuple)):
        return encode_value(value)
    return str(value)


def _label_value(k: BranchType, attribute: str) -> Any:
    if attribute == "length":
        return k.length
    if attribute == "height":
        return k.height
    return k.traits.get(attribute)


def _scale_range(tree_height: float) -> float:
    """A round scale bar length close to a fifth of the tree height."""
    if tree_height <= 0:
        return 1.0
    target = tree_height / 5.0
    magnitude = 10 ** math.floor(math.log10(target))
    for step in (1, 2, 5, 10):
        if step * magnitude >= target:
            return step * magnitude
    return 10 * magnitude


def render_trees(trees: list[tree], settings: dict[str, Any], width: int, height: int) -> Figure:
    """
    Draw the first tree of `trees` on a new figure of `width` x `height` pixels.

    If `trees.order` is set, every tree has its branches reordered by clade size
    (`trees.orderType`), so the trees are left as viewed for later export.

    Parameters:
    trees (list): Trees to display; the first one is drawn.
    settings (dict): Fully resolved settings, see `treefig.settings`.
    width (int): Width of the graphic in pixels.
    height (int): Height of the graphic in pixels.

    Returns:
    matplotlib.figure.Figure: The drawing, attached to an Agg canvas.
    """
    if settings["trees.order"]:
        for ll in trees:
            ll.sortBranches(orderType=settings["trees.orderType"])

    ll = trees[0]
    ll.drawTree()
    tips = ll.getExternal()

    background = settings["appearance.backgroundColour"]
    foreground = _as_colour(settings["appearance.foregroundColour"], (0.0, 0.0, 0.0))
    fig = Figure(figsize=(width / DPI, height / DPI), dpi=DPI)
    FigureCanvasAgg(fig)
    fig.patch.set_facecolor(_as_colour(background, (1.0, 1.0, 1.0)))

    margin = settings["layout.margin"]
    tip_font = settings["tipLabels.fontSize"]
    label_px = 0.0
    if settings["tipLabels.isShown"] and len(tips) > 0:
        label_px = min(max(len(k.name) for k in tips) * tip_font * 0.6 + 6, width * 0.5)

    left = margin / width
    right = max(1.0 - (margin + label_px) / width, left + 0.05)
    bottom = (TOP_BOTTOM_MARGIN - margin) / height
    top = max(1.0 - margin / height, bottom + 0.05)
    ax = fig.add_axes((left, bottom, right - left, top - bottom))
    ax.set_axis_off()

    branch_attribute = _colour_attribute(settings["appearance.branchColorAttribute"])
    ll.plotTree(
        ax,
        width=settings["appearance.branchLineWidth"],
        colour=lambda k: _as_colour(k.traits.get(branch_attribute), foreground),
    )

    if settings["tipLabels.isShown"]:
        tip_attribute = _colour_attribute(settings["tipLabels.colorAttribute"])
        for k in tips:
            colour = k.taxon.attributes.get(tip_attribute, k.traits.get(tip_attribute))
            ax.annotate(
                k.name,
                xy=(k.x, k.y),
                xytext=(3, 0),
                textcoords="offset points",
                va="center",
                ha="left",
                fontsize=tip_font,
                color=_as_colour(colour, foreground),
                annotation_clip=False,
            )

    if settings["nodeLabels.isShown"]:
        attribute = settings["nodeLabels.displayAttribute"]
        for k in ll.getInternal():
            value = _label_value(k, attribute)
            if value is None:
                continue
            ax.annotate(
                _format_label(value, settings["nodeLabels.significantDigits"]),
                xy=(k.x, k.y),
                xytext=(-2, 0),
                textcoords="offset points",
                va="center",
                ha="right",
                fontsize=settings["nodeLabels.fontSize"],
                color=foreground,
                annotation_clip=False,
            )

    if settings["branchLabels.isShown"]:
        attribute = settings["branchLabels.displayAttribute"]
        for k in ll.Objects:
            value = _label_value(k, attribute)
            if value is None or k.parent is None:
                continue
            ax.annotate(
                _format_label(value, settings["branchLabels.significantDigits"]),
                xy=((k.x + k.parent.x) / 2.0, k.y),
                xytext=(0, 1),
                textcoords="offset points",
                va="bottom",
                ha="center",
                fontsize=settings["branchLabels.fontSize"],
                color=foreground,
                annotation_clip=False,
            )

    x_max = ll.treeHeight if ll.treeHeight > 0 else 1.0
    ax.set_xlim(0, x_max)
    ax.set_ylim(0, max(len(tips), 1))

    if settings["scaleBar.isShown"]:
        scale = settings["scaleBar.scaleRange"]
        if settings["scaleBar.automaticScale"] or not scale or scale <= 0:
            scale = _scale_range(ll.treeHeight)
        sax = fig.add_axes((left, 0.0, right - left, bottom), sharex=ax)
        sax.set_axis_off()
        sax.set_ylim(0, 1)
        sax.plot(
            [0, scale],
            [0.7, 0.7],
            color=foreground,
            lw=settings["scaleBar.lineWidth"],
            solid_capstyle="butt",
        )
        sax.text(
            scale / 2.0,
            0.55,
            "%g" % (scale),
            ha="center",
            va="top",
            fontsize=settings["scaleBar.fontSize"],
            color=foreground,
        )
        sax.set_xlim(0, x_max)

    logger.debug("rendered %d tips on %dx%d pixels", len(tips), width, height)
    return fig


def export_graphic(figure: Figure, graphic_format: str, stream: IO[bytes]):
    """
    Write a figure to a binary stream in one of `GRAPHIC_FORMATS`.

    Raises:
    UnknownGraphicFormatError: If the format is not supported.
    """
    fmt = check_graphic_format(graphic_format)
    figure.savefig(stream, format=fmt, dpi=DPI, facecolor=figure.get_facecolor())
