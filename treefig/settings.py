"""
Settings that drive rendering and export.

Settings are a flat dictionary keyed by dotted paths such as ``trees.order``. Three
layers are merged for every run, later layers overwriting earlier ones key by key:
the built-in defaults, the ``FIGTREE`` block of a Nexus input, and the command line.
"""

import logging
from typing import Any

from .attributes import Color

logger = logging.getLogger(__name__)

__all__ = [
    "default_settings",
    "command_line_settings",
    "resolve_settings",
]

## every option the renderer and the exporters consult, in the order written to FIGTREE blocks
_DEFAULTS: tuple[tuple[str, Any], ...] = (
    ("appearance.backgroundColour", Color(255, 255, 255)),
    ("appearance.foregroundColour", Color(0, 0, 0)),
    ("appearance.branchColorAttribute", "!color"),
    ("appearance.branchLineWidth", 1.0),
    ("branchLabels.isShown", False),
    ("branchLabels.displayAttribute", "length"),
    ("branchLabels.fontSize", 8.0),
    ("branchLabels.significantDigits", 4),
    ("nodeLabels.isShown", False),
    ("nodeLabels.displayAttribute", "label"),
    ("nodeLabels.fontSize", 8.0),
    ("nodeLabels.significantDigits", 4),
    ("tipLabels.isShown", True),
    ("tipLabels.colorAttribute", "!color"),
    ("tipLabels.fontSize", 8.0),
    ("scaleBar.isShown", True),
    ("scaleBar.automaticScale", True),
    ("scaleBar.scaleRange", 0.0),
    ("scaleBar.fontSize", 10.0),
    ("scaleBar.lineWidth", 1.0),
    ("trees.order", False),
    ("trees.orderType", "increasing"),
    ("layout.margin", 10),
)


def default_settings() -> dict[str, Any]:
    """A fresh, fully populated settings dictionary."""
    return dict(_DEFAULTS)


def command_line_settings(avg_seq_length: int | None = None) -> dict[str, Any]:
    """
    The override layer seeded by the command line.

    Branch labels are drawn a little larger and trees are ordered by increasing clade
    size. An average sequence length fixes the scale bar to one substitution per
    sequence, rounded to one significant digit.

    Parameters:
    avg_seq_length (int or None): Average length of the aligned sequences.

    Returns:
    dict: Settings overriding the defaults and the FIGTREE block.

    Example:
    >>> command_line_settings(300)["scaleBar.scaleRange"]
    0.0033
    """
    settings: dict[str, Any] = {
        "branchLabels.fontSize": 9.0,
        "trees.order": True,
        "trees.orderType": "increasing",
    }
    if avg_seq_length is not None:
        if avg_seq_length <= 0:
            raise ValueError("Average sequence length must be positive, got %d" % (avg_seq_length))
        settings["scaleBar.automaticScale"] = False
        settings["scaleBar.scaleRange"] = float("%.1e" % (1.0 / avg_seq_length))
    return settings


_INVALID = object()


def _checked(value: Any, default: Any) -> Any:
    """`value` if it has the type of `default` (hex strings count as colours), else `_INVALID`."""
    if isinstance(default, Color):
        if isinstance(value, Color):
            return value
        if isinstance(value, str):
            try:
                return Color.from_hex(value)
            except ValueError:
                return _INVALID
        return _INVALID
    if isinstance(default, bool):
        return value if isinstance(value, bool) else _INVALID
    if isinstance(default, (int, float)):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return value
        return _INVALID
    if isinstance(default, str):
        return value if isinstance(value, str) else _INVALID
    return value


def resolve_settings(
    defaults: dict[str, Any],
    block: dict[str, Any] | None = None,
    overrides: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Merge the three settings layers into a new dictionary.

    Parameters:
    defaults (dict): Fully populated defaults, see `default_settings()`.
    block (dict or None): Settings read from a Nexus FIGTREE block.
    overrides (dict or None): Caller or command line settings, highest precedence.

    Returns:
    dict: defaults, then block, then overrides; a plain key overwrite with no deletions.
          A value whose type does not match the default of its key is dropped with a
          warning, keeping the value of the layer below.

    Example:
    >>> resolve_settings({"a": 1, "b": 2}, {"b": 3, "c": 4}, {"c": 5})
    {'a': 1, 'b': 3, 'c': 5}
    """
    resolved = dict(defaults)
    for layer, name in ((block, "FIGTREE block"), (overrides, "overrides")):
        if not layer:
            continue
        for key, value in layer.items():
            if key not in defaults:
                logger.debug("%s adds setting %s", name, key)
                resolved[key] = value
                continue
            checked = _checked(value, defaults[key])
            if checked is _INVALID:
                logger.warning("Ignoring %s value %r for %s: expected %s", name, value, key, type(defaults[key]).__name__)
                continue
            resolved[key] = checked
    return resolved
