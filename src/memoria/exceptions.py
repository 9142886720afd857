"""
Exception types for the Memoria knowledge base.

Recoverable conditions (malformed front matter, ambiguous references) are
not exceptions; they are reported as warning models in ``memoria.models``.
"""

from pathlib import Path


class MemoriaError(Exception):
    """Base class for all Memoria errors."""


class ParseError(MemoriaError):
    """Raised when a note file cannot be read or decoded.

    Fatal for that file only; a scan records it and moves on.
    """

    def __init__(self, path: Path | str, reason: str):
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"Cannot parse {self.path}: {reason}")


class RootUnavailableError(MemoriaError):
    """Raised when the notes root directory is missing or not a directory."""

    def __init__(self, path: Path | str, reason: str = "directory not found"):
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"Notes root unavailable ({reason}): {self.path}")


class NoteExistsError(MemoriaError):
    """Raised when creating a note whose file already exists."""

    def __init__(self, path: Path | str):
        self.path = Path(path)
        super().__init__(f"Note exists: {self.path}")


class NoteNotFoundError(MemoriaError):
    """Raised when an operation targets a note id absent from the index."""

    def __init__(self, note_id: str):
        self.note_id = note_id
        super().__init__(f"Note not found: {note_id}")


class PathValidationError(MemoriaError):
    """Raised when path validation fails."""


class TitleValidationError(MemoriaError):
    """Raised when title validation fails."""


class ContentValidationError(MemoriaError):
    """Raised when content validation fails."""
