"""Exceptions raised by Plume.

The CLI catches PlumeError and exits non-zero; anything else is a bug.
"""

from __future__ import annotations

from pathlib import Path


class PlumeError(Exception):
    """Base class for all Plume errors."""


class ConfigError(PlumeError):
    """plume.yaml is unreadable, not YAML, or not a mapping."""


class ParseError(PlumeError):
    """A post's front-matter block is missing, malformed or incomplete."""

    def __init__(self, message: str, path: Path | None = None):
        self.path = path
        self.message = message
        super().__init__(f"{path}: {message}" if path else message)


class BuildError(PlumeError):
    """One source file (or generated page) could not be built.

    Attributes:
        source_path: File the error belongs to.
        message: Description without the path prefix.
        original_error: Exception raised while building, if any.
    """

    def __init__(self, source_path: Path, message: str, original_error: Exception | None = None):
        self.source_path = source_path
        self.message = message
        self.original_error = original_error
        super().__init__(f"{source_path}: {message}")


_FRIENDLY_PREFIXES = {
    "UndefinedError": "Undefined variable",
    "TemplateNotFound": "Template not found",
    "TemplateSyntaxError": "Template syntax error",
    "UnicodeDecodeError": "File is not valid UTF-8",
}


def format_error_message(exc: Exception) -> str:
    """One-line description of ``exc`` for build reports.

    >>> format_error_message(KeyError("x"))
    "KeyError: 'x'"
    """
    if isinstance(exc, (ParseError, BuildError)):
        return exc.message
    name = type(exc).__name__
    return f"{_FRIENDLY_PREFIXES.get(name, name)}: {exc}"
