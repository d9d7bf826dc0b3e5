"""
Exceptions raised by the tree import and graphic export pipeline.

Every error carries a human readable message and an optional suggestion;
the command line prints both and exits with a non-zero status.
"""

from __future__ import annotations


class TreefigError(Exception):
    """Base exception for treefig errors."""

    def __init__(self, message: str, suggestion: str | None = None):
        self.message = message
        self.suggestion = suggestion
        super().__init__(self.full_message)

    @property
    def full_message(self) -> str:
        if self.suggestion:
            return f"{self.message}\n\nSuggestion: {self.suggestion}"
        return self.message


class FormatDetectionError(TreefigError):
    """Raised when a tree file cannot be opened or is empty."""

    def __init__(self, source: str, reason: str):
        super().__init__(
            message=f"Unable to determine tree file format of {source}: {reason}",
            suggestion="Check that the path is correct and that the file is not empty.",
        )
        self.source = source


class TreeImportError(TreefigError):
    """Raised when a tree file contains no trees or has malformed Newick/Nexus syntax."""


class AttributeParseError(TreeImportError):
    """Raised when a [&key=value] annotation or a FIGTREE setting is malformed."""

    def __init__(self, text: str, position: int, reason: str):
        snippet = text[max(0, position - 20) : position + 20]
        super().__init__(
            message=f"Malformed attribute annotation at character {position} ({reason}): {snippet!r}",
        )
        self.text = text
        self.position = position


class UnknownGraphicFormatError(TreefigError):
    """Raised when the requested graphic format is not supported."""

    def __init__(self, graphic_format: str, supported: list[str]):
        super().__init__(
            message=f"Unknown graphic format: {graphic_format}",
            suggestion=f"Use one of: {', '.join(supported)}",
        )
        self.graphic_format = graphic_format


class ExportIOError(TreefigError):
    """Raised when an output stream cannot be opened, written or flushed."""

    def __init__(self, path: str, reason: str):
        super().__init__(message=f"Failed to write {path}: {reason}")
        self.path = path


class ColorMapError(TreefigError):
    """Raised when a -colors option value cannot be decoded."""

    def __init__(self, item: str, reason: str):
        super().__init__(
            message=f"{reason}: {item}",
            suggestion="Should be a comma delimited list of text:color (e.g. V704_0026_232:#3333ff).",
        )
        self.item = item


class GraphicExportError(TreefigError):
    """Wraps any failure raised while rendering or writing output files."""

    def __init__(self, cause: Exception):
        detail = cause.message if isinstance(cause, TreefigError) else str(cause)
        super().__init__(message=f"Error writing graphic file: {detail}")
        self.cause = cause
