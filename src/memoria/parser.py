"""
Document parser for the Memoria knowledge base.

Turns raw note bytes into a Note: splits the YAML front matter from the
body, interprets the recognized keys, falls back to the first heading and
filesystem timestamps, and extracts raw references.
"""

from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os
import structlog
import yaml

from .config import Settings
from .config import settings as default_settings
from .exceptions import ParseError
from .models import FileTimes, FrontMatterWarning, Note, ParseResult
from .references import DEFAULT_SYNTAX, ReferenceSyntax, extract_references
from .utils import (
    CODE_FENCE_PATTERN,
    HEADING_PATTERN,
    TAG_SPLIT_PATTERN,
    note_id_for,
    to_utc,
)

logger = structlog.get_logger(__name__)

RECOGNIZED_KEYS = ("title", "tags", "created", "updated")
YAML_DOCUMENT_END = "..."


def split_front_matter(text: str, delimiter: str = "---") -> tuple[str | None, str, str | None]:
    """Split a front matter block from the body.

    Returns:
        (block, body, problem): block is None when the text has no complete
        front matter; problem describes an opened but unterminated block.
    """
    lines = text.splitlines(keepends=True)
    if not lines or lines[0].rstrip() != delimiter:
        return None, text, None

    for index in range(1, len(lines)):
        if lines[index].rstrip() in (delimiter, YAML_DOCUMENT_END):
            block = "".join(lines[1:index])
            body = "".join(lines[index + 1:])
            return block, body, None

    return None, text, "front matter block is never closed"


def load_front_matter(block: str) -> tuple[dict[str, Any] | None, str | None]:
    """Load a YAML front matter block.

    Returns:
        (mapping, problem): mapping is None when the block is unusable.
    """
    try:
        data = yaml.safe_load(block)
    except yaml.YAMLError as e:
        return None, f"invalid YAML: {e}".splitlines()[0]
    except ValueError as e:
        # impossible timestamps such as 2024-02-30 fail in the constructor
        return None, f"invalid YAML value: {e}"

    if data is None:
        return {}, None
    if not isinstance(data, dict):
        return None, f"front matter must be a mapping, got {type(data).__name__}"
    return {str(key): value for key, value in data.items()}, None


def first_heading(body: str) -> str | None:
    """Return the text of the first level-1 heading outside fenced code blocks."""
    in_fence = False
    for line in body.splitlines():
        if CODE_FENCE_PATTERN.match(line):
            in_fence = not in_fence
            continue
        if in_fence:
            continue
        match = HEADING_PATTERN.match(line)
        if match:
            return match.group(1).strip()
    return None


def _coerce_title(value: Any) -> str | None:
    if isinstance(value, (list, dict)):
        raise ValueError("title must be a scalar")
    title = str(value).strip()
    return title or None


def _coerce_tags(value: Any) -> set[str]:
    if isinstance(value, str):
        items: list[Any] = TAG_SPLIT_PATTERN.split(value)
    elif isinstance(value, (list, tuple, set)):
        items = list(value)
    else:
        raise ValueError("tags must be a list of strings")

    tags: set[str] = set()
    for item in items:
        if item is None:
            continue
        if isinstance(item, (list, dict)):
            raise ValueError("tags must be a list of strings")
        tag = str(item).strip().lstrip("#").strip()
        if tag:
            tags.add(tag)
    return tags


def parse_note(
    raw: bytes,
    path: Path | str,
    root: Path | str | None = None,
    file_times: FileTimes | None = None,
    settings: Settings | None = None,
    syntax: ReferenceSyntax = DEFAULT_SYNTAX,
) -> ParseResult:
    """Parse raw file bytes into a note.

    Args:
        raw: File contents
        path: Location of the file, used for the note id and title fallback
        root: Notes root the id is made relative to
        file_times: Filesystem timestamps; the current time is used when omitted
        settings: Size limit and front matter delimiter
        syntax: Reference grammar used on the body

    Returns:
        ParseResult with the note and any front matter warnings

    Raises:
        ParseError: If the file is too large or not valid UTF-8
    """
    settings = settings or default_settings
    path = Path(path)

    if len(raw) > settings.max_file_size:
        raise ParseError(path, f"file exceeds {settings.max_file_size} bytes")

    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ParseError(path, f"invalid UTF-8 at byte {e.start}") from e

    if file_times is None:
        now = datetime.now(UTC)
        file_times = FileTimes(created=now, modified=now, mtime=now.timestamp())

    warnings: list[FrontMatterWarning] = []

    def warn(message: str, key: str | None = None) -> None:
        warnings.append(FrontMatterWarning(path=str(path), message=message, key=key))

    block, body, problem = split_front_matter(text, settings.front_matter_delimiter)
    if problem:
        warn(problem)

    metadata: dict[str, Any] = {}
    if block is not None:
        loaded, problem = load_front_matter(block)
        if problem:
            warn(problem)
        else:
            metadata = loaded or {}

    title: str | None = None
    if metadata.get("title") is not None:
        try:
            title = _coerce_title(metadata["title"])
        except ValueError as e:
            warn(str(e), key="title")

    tags: set[str] = set()
    if metadata.get("tags") is not None:
        try:
            tags = _coerce_tags(metadata["tags"])
        except ValueError as e:
            warn(str(e), key="tags")

    timestamps = {"created": file_times.created, "updated": file_times.modified}
    for key in timestamps:
        if metadata.get(key) is None:
            continue
        value = to_utc(metadata[key])
        if value is None:
            warn(f"{key} is not a date or datetime: {metadata[key]!r}", key=key)
        else:
            timestamps[key] = value

    note = Note(
        id=note_id_for(path, root),
        title=title or first_heading(body) or path.stem,
        tags=tags,
        created_at=timestamps["created"],
        updated_at=timestamps["updated"],
        raw_references=extract_references(body, syntax),
        content=body,
        path=path,
        extra={key: value for key, value in metadata.items() if key not in RECOGNIZED_KEYS},
        mtime=file_times.mtime,
    )

    for warning in warnings:
        logger.warning("front_matter_malformed", path=warning.path, key=warning.key, problem=warning.message)

    return ParseResult(note=note, warnings=warnings)


async def read_note(
    path: Path | str,
    root: Path | str | None = None,
    settings: Settings | None = None,
    syntax: ReferenceSyntax = DEFAULT_SYNTAX,
) -> ParseResult:
    """Read a note file from disk and parse it.

    Raises:
        FileNotFoundError: If the file no longer exists
        ParseError: If the file cannot be read or decoded
    """
    settings = settings or default_settings
    path = Path(path)

    try:
        st = await aiofiles.os.stat(path)
        if st.st_size > settings.max_file_size:
            raise ParseError(path, f"file exceeds {settings.max_file_size} bytes")
        async with aiofiles.open(path, mode="rb") as f:
            raw = await f.read()
    except FileNotFoundError:
        raise
    except IsADirectoryError as e:
        raise ParseError(path, "path is a directory") from e
    except OSError as e:
        raise ParseError(path, e.strerror or str(e)) from e

    return parse_note(raw, path, root=root, file_times=FileTimes.from_stat(st), settings=settings, syntax=syntax)


def format_front_matter(note: Note, delimiter: str = "---") -> str:
    """Render the note's metadata as a front matter block.

    Recognized keys come first, followed by the unknown keys the note carried.
    """
    data: dict[str, Any] = {
        "title": note.title,
        "tags": sorted(note.tags),
        "created": note.created_at.isoformat(),
        "updated": note.updated_at.isoformat(),
    }
    data.update({key: value for key, value in note.extra.items() if key not in RECOGNIZED_KEYS})

    yaml_content = yaml.safe_dump(data, allow_unicode=True, default_flow_style=False, sort_keys=False)
    return f"{delimiter}\n{yaml_content}{delimiter}\n"


def render_note(note: Note, delimiter: str = "---") -> str:
    """Render a complete note file: front matter followed by the body."""
    return format_front_matter(note, delimiter) + note.content
