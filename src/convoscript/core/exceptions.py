"""Exceptions raised while reading and running conversation scripts."""

from __future__ import annotations


class ScriptError(Exception):
    """Base class for script failures."""


class ParseError(ScriptError):
    """Malformed markup or expression syntax.

    Attributes
    ----------
    position : int | None
        Character offset into the parsed source, when known.
    line, column : int | None
        1-based line and column of the failure, when known.
    """

    def __init__(
        self,
        message: str,
        position: int | None = None,
        line: int | None = None,
        column: int | None = None,
    ):
        self.message = message
        self.position = position
        self.line = line
        self.column = column
        super().__init__(self._format())

    def _format(self) -> str:
        if self.line is not None:
            return f"{self.message} (line {self.line}, column {self.column})"
        if self.position is not None:
            return f"{self.message} (at position {self.position})"
        return self.message


class ScopeLookupError(ScriptError, LookupError):
    """A required binding is missing or does not have the expected shape."""

    def __init__(self, name: str, reason: str | None = None):
        self.name = name
        self.reason = reason
        super().__init__(f"Cannot use binding '{name}': {reason}" if reason else f"'{name}' is not bound")


class UnknownToolError(ScriptError):
    """The model requested a tool absent from the dispatch table."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Tool '{name}' does not exist in the dispatch table")


class ConfigurationError(ScriptError, ValueError):
    """A statement or handler is configured incorrectly."""
