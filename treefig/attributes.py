"""
Typed attribute values and the ``[&key=value,...]`` annotation grammar.

Attribute values are plain Python objects: numbers (``int``/``float``), ``bool``,
``str``, :class:`Color` and lists of values, nested to any depth. An attribute
set is an ordinary ``dict``; its insertion order is the order keys are written
back out.
"""

import logging
import math
import re
from typing import Any, NamedTuple

from .errors import AttributeParseError

logger = logging.getLogger(__name__)

__all__ = [
    "Color",
    "encode_attributes",
    "encode_value",
    "parse_attributes",
    "parse_value",
]

_INTEGER = re.compile(r"[+-]?[0-9]+$")
_FLOAT = re.compile(r"[+-]?([0-9]+\.?[0-9]*|\.[0-9]+)([eE][+-]?[0-9]+)?$")
_HEX_COLOR = re.compile(r"#([0-9A-Fa-f]{6}|[0-9A-Fa-f]{8})$")
_SPECIAL_FLOATS = {"nan", "inf", "+inf", "-inf", "infinity", "+infinity", "-infinity"}


class Color(NamedTuple):
    """An opaque RGB colour, each channel 0-255."""

    r: int
    g: int
    b: int

    @classmethod
    def from_rgb(cls, value: int) -> "Color":
        value &= 0xFFFFFF  ## alpha byte is dropped
        return cls((value >> 16) & 0xFF, (value >> 8) & 0xFF, value & 0xFF)

    @classmethod
    def from_hex(cls, text: str) -> "Color":
        """Parse ``#RRGGBB`` (or ``#AARRGGBB``, alpha ignored)."""
        match = _HEX_COLOR.match(text.strip())
        if match is None:
            raise ValueError("Not a hex colour: %s" % (text))
        return cls.from_rgb(int(match.group(1), 16))

    @classmethod
    def decode(cls, text: str) -> "Color":
        """
        Decode a colour the way command line colour options are written.

        Accepts ``#`` or ``0x``/``0X`` prefixed hexadecimal, a leading ``0`` for
        octal, and plain decimal integers.

        Raises:
        ValueError: If the text is not a valid integer in any of those notations.
        """
        s = text.strip()
        sign = 1
        if s.startswith("-"):
            sign = -1
            s = s[1:]
        elif s.startswith("+"):
            s = s[1:]

        if s[:2] in ("0x", "0X"):
            value = int(s[2:], 16)
        elif s.startswith("#"):
            value = int(s[1:], 16)
        elif s.startswith("0") and len(s) > 1:
            value = int(s[1:], 8)
        else:
            value = int(s, 10)
        return cls.from_rgb(sign * value)

    @property
    def hex(self) -> str:
        return "#%02x%02x%02x" % (self.r, self.g, self.b)

    def darker(self, factor: float = 0.7) -> "Color":
        return Color(*(max(int(c * factor), 0) for c in self))

    def to_mpl(self) -> tuple[float, float, float]:
        """Colour as a matplotlib RGB tuple of floats."""
        return (self.r / 255.0, self.g / 255.0, self.b / 255.0)


def encode_key(key: str) -> str:
    if " " in key:
        return '"%s"' % (key)
    return key


def encode_value(value: Any) -> str:
    """
    Encode a single attribute value.

    Colours come first since they are tuples, and booleans before numbers since
    ``bool`` is a subclass of ``int``.

    Examples:
    >>> encode_value(Color.decode("0x3333FF"))
    '#3333ff'
    >>> encode_value([[1, 2], [3]])
    '{{1,2},{3}}'
    """
    if isinstance(value, Color):
        return value.hex
    if isinstance(value, str):
        return '"%s"' % (value)
    if isinstance(value, (list, tuple)):
        return "{%s}" % (",".join(encode_value(v) for v in value))
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def encode_attributes(attributes: dict[str, Any], exclude: list[str] | set[str] | None = None) -> str:
    """
    Encode an attribute set as a ``[&key=value,...]`` comment.

    Parameters:
    attributes (dict): The attribute set, written in insertion order.
    exclude (list or None): Additional keys to leave out.

    Returns:
    str: The comment, or an empty string if no key qualifies. Keys starting with
    ``&`` and keys whose value is ``None`` never qualify.
    """
    comment = []
    for key, value in attributes.items():
        if key.startswith("&") or value is None:
            continue
        if exclude is not None and key in exclude:
            continue
        comment.append("%s=%s" % (encode_key(key), encode_value(value)))

    if len(comment) == 0:
        return ""
    return "[&" + ",".join(comment) + "]"


def _convert_token(token: str) -> Any:
    """Turn a bare (unquoted) token into a number, boolean or colour, else leave it a string."""
    if _INTEGER.match(token):
        return int(token)
    if _FLOAT.match(token):
        return float(token)
    lowered = token.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    if lowered in _SPECIAL_FLOATS:
        return float(lowered.replace("infinity", "inf"))
    if _HEX_COLOR.match(token):
        return Color.from_hex(token)
    return token


class _Scanner:
    """Cursor over annotation text; every read method leaves ``i`` after what it consumed."""

    def __init__(self, text: str, start: int = 0):
        self.text = text
        self.i = start

    def at_end(self) -> bool:
        return self.i >= len(self.text)

    def peek(self) -> str:
        return self.text[self.i] if self.i < len(self.text) else ""

    def skip_space(self):
        while self.i < len(self.text) and self.text[self.i].isspace():
            self.i += 1

    def fail(self, reason: str) -> AttributeParseError:
        return AttributeParseError(self.text, self.i, reason)

    def read_quoted(self) -> str:
        quote = self.text[self.i]
        self.i += 1
        chunks = []
        while True:
            end = self.text.find(quote, self.i)
            if end < 0:
                raise self.fail("unterminated string")
            chunks.append(self.text[self.i : end])
            self.i = end + 1
            if self.peek() == quote:  ## doubled quote stands for the quote itself
                chunks.append(quote)
                self.i += 1
            else:
                return "".join(chunks)

    def read_bare(self, stop: str) -> str:
        start = self.i
        while self.i < len(self.text) and self.text[self.i] not in stop:
            self.i += 1
        return self.text[start : self.i].strip()

    def read_key(self) -> str:
        self.skip_space()
        if self.peek() in ('"', "'"):
            return self.read_quoted()
        key = self.read_bare("=,]")
        if not key:
            raise self.fail("missing key")
        return key

    def read_value(self) -> Any:
        self.skip_space()
        char = self.peek()
        if char == "{":
            return self.read_array()
        if char in ('"', "'"):
            return self.read_quoted()
        if char in ("", ",", "}", "]"):
            raise self.fail("missing value")
        token = self.read_bare(",}]{")
        if self.peek() == "{":
            raise self.fail("unexpected {")
        return _convert_token(token)

    def read_array(self) -> list:
        self.i += 1  ## opening brace
        values: list = []
        self.skip_space()
        if self.peek() == "}":
            self.i += 1
            return values

        while True:
            values.append(self.read_value())
            self.skip_space()
            char = self.peek()
            if char == ",":
                self.i += 1
            elif char == "}":
                self.i += 1
                return values
            elif char == "":
                raise self.fail("unbalanced {")
            else:
                raise self.fail("expected , or } in array")


def parse_value(text: str) -> Any:
    """
    Decode a single attribute value, e.g. the right hand side of a FIGTREE ``set`` statement.

    Raises:
    AttributeParseError: If the value is malformed or followed by anything but whitespace.
    """
    scanner = _Scanner(text)
    value = scanner.read_value()
    scanner.skip_space()
    if not scanner.at_end():
        raise scanner.fail("unexpected text after value")
    return value


def parse_attributes(comment: str) -> dict[str, Any]:
    """
    Decode a ``[&key=value,key2={v1,v2}]`` comment into an attribute set.

    The surrounding brackets and the leading ``&`` are optional. Plain comments
    (``[...]`` without ``&``) carry no attributes and decode to an empty set.
    A key given without ``=`` is stored as ``True``.

    Parameters:
    comment (str): The annotation text.

    Returns:
    dict: Attribute keys mapped to values, in the order they appear.

    Raises:
    AttributeParseError: On unbalanced brackets, unterminated strings or missing values.

    Example:
    >>> parse_attributes('[&rate=0.5,"my key"={1,{2,3}},!color=#ff0000]')
    {'rate': 0.5, 'my key': [1, [2, 3]], '!color': Color(r=255, g=0, b=0)}
    """
    scanner = _Scanner(comment.strip())
    bracketed = scanner.peek() == "["
    if bracketed:
        scanner.i += 1
    scanner.skip_space()
    if scanner.peek() == "&":
        scanner.i += 1
    elif bracketed:  ## plain comment
        if not comment.rstrip().endswith("]"):
            raise scanner.fail("missing closing ]")
        return {}

    attributes: dict[str, Any] = {}
    while True:
        scanner.skip_space()
        char = scanner.peek()
        if char == "]" or char == "":
            break

        key = scanner.read_key()
        scanner.skip_space()
        if scanner.peek() == "=":
            scanner.i += 1
            value = scanner.read_value()
        else:
            value = True
        attributes[key] = value
        logger.debug("decoded attribute %s=%r", key, value)

        scanner.skip_space()
        char = scanner.peek()
        if char == ",":
            scanner.i += 1
        elif char == "}":
            raise scanner.fail("unbalanced }")
        elif char not in ("]", ""):
            raise scanner.fail("expected , between attributes")

    if bracketed:
        if scanner.peek() != "]":
            raise scanner.fail("missing closing ]")
        scanner.i += 1
        scanner.skip_space()
    elif scanner.peek() == "]":
        raise scanner.fail("unbalanced ]")

    if not scanner.at_end():
        raise scanner.fail("unexpected text after annotation")
    return attributes


def is_finite_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)
