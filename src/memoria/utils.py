"""
Utility functions and compiled regex patterns for the Memoria knowledge base.

Contains note id derivation, timestamp coercion, filename sanitizing,
validation utilities, and pre-compiled patterns.
"""

import os
import re
from datetime import UTC, date, datetime, time
from pathlib import Path
from typing import Any

from .config import Settings
from .exceptions import (
    ContentValidationError,
    PathValidationError,
    TitleValidationError,
)
from .models import NoteId

# Pre-compiled regex patterns for performance
UNSAFE_FILENAME_PATTERN = re.compile(r'[/\\:*?"<>|\s]')
TAG_SPLIT_PATTERN = re.compile(r'[,\s]+')
WORD_PATTERN = re.compile(r'\w+', re.UNICODE)
HEADING_PATTERN = re.compile(r'^#[ \t]+(.+?)(?:[ \t]+#+)?[ \t]*$')
CODE_FENCE_PATTERN = re.compile(r'^\s*(```|~~~)')


# ============== Helper Functions ==============

def normalize_path(path: Path | str) -> Path:
    """Return an absolute, lexically normalized path without touching the filesystem."""
    return Path(os.path.normpath(Path(path).absolute()))


def relative_note_path(path: Path | str, root: Path | str | None) -> Path:
    """Return the path relative to root, or the normalized absolute path outside it."""
    full = normalize_path(path)
    if root is not None:
        try:
            return full.relative_to(normalize_path(root))
        except ValueError:
            pass
    return full


def note_id_for(path: Path | str, root: Path | str | None = None) -> NoteId:
    """Derive the stable note id from a file path.

    The id is the root-relative path with '/' separators, lower-cased, so the
    same file always maps to the same id regardless of how it was spelled.
    """
    rel = relative_note_path(path, root)
    return NoteId(rel.as_posix().lower())


def to_utc(value: Any) -> datetime | None:
    """Coerce a front-matter date/time literal to an aware UTC datetime.

    Accepts datetime, date, and ISO 8601 strings; naive values are taken as UTC.
    Returns None for anything else.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def sanitize_filename(title: str) -> str:
    """Turn a title into a filesystem-safe, lower-cased file stem."""
    return UNSAFE_FILENAME_PATTERN.sub('_', title.strip()).lower()


def is_hidden(rel_path: Path) -> bool:
    """True if any component of a relative path starts with a dot."""
    return any(part.startswith(".") for part in rel_path.parts)


# ============== Security Validation ==============

def validate_path_within_root(path_str: str, root: Path) -> Path:
    """Validate that a path is safely within the notes directory.

    Args:
        path_str: The path string to validate (relative path)
        root: The notes root path

    Returns:
        The validated absolute Path

    Raises:
        PathValidationError: If the path attempts to escape the notes directory
    """
    if not path_str or not path_str.strip():
        raise PathValidationError("Path cannot be empty")

    if ".." in Path(path_str).parts:
        raise PathValidationError("Path traversal detected: '..' is not allowed")

    if Path(path_str).is_absolute() or (len(path_str) > 1 and path_str[1] == ":"):
        raise PathValidationError("Absolute paths are not allowed")

    full_path = (root / path_str).resolve()
    root_resolved = root.resolve()

    try:
        full_path.relative_to(root_resolved)
    except ValueError:
        raise PathValidationError(f"Path escapes notes directory: {path_str}")

    return full_path


def validate_title(title: str, settings: Settings) -> str:
    """Validate and normalize a note title.

    Raises:
        TitleValidationError: If the title is empty, too long or has no usable characters
    """
    if not title or not title.strip():
        raise TitleValidationError("Title cannot be empty")

    title = title.strip()

    if len(title) > settings.max_title_length:
        raise TitleValidationError(f"Title exceeds maximum length of {settings.max_title_length} characters")

    if not sanitize_filename(title).strip("_."):
        raise TitleValidationError("Title does not contain any usable filename characters")

    return title


def validate_content_size(content: str, settings: Settings) -> str:
    """Validate content size.

    Raises:
        ContentValidationError: If the content exceeds size limits
    """
    content_bytes = len(content.encode('utf-8'))

    if content_bytes > settings.max_content_size:
        max_mb = settings.max_content_size / (1024 * 1024)
        actual_mb = content_bytes / (1024 * 1024)
        raise ContentValidationError(
            f"Content size ({actual_mb:.2f}MB) exceeds maximum allowed size ({max_mb}MB)"
        )

    return content
