"""
Pydantic models for the Memoria knowledge base.

Contains the note and link data model, parse and scan results, warnings,
file change events, and query result shapes.
"""

import os
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any, NewType

from pydantic import BaseModel, ConfigDict, Field, model_validator

NoteId = NewType("NoteId", str)


class Note(BaseModel):
    """Model for one Markdown note owned by the index."""

    id: NoteId
    title: str
    tags: set[str] = Field(default_factory=set)
    created_at: datetime
    updated_at: datetime
    raw_references: list[str] = Field(default_factory=list)
    content: str = ""
    path: Path
    extra: dict[str, Any] = Field(default_factory=dict)
    mtime: float = 0.0


class Link(BaseModel):
    """Directed edge from a note to a raw reference, resolved when the target exists."""

    model_config = ConfigDict(frozen=True)

    source: NoteId
    target_ref: str
    resolved: NoteId | None = None


class FileTimes(BaseModel):
    """Filesystem timestamps used when front matter carries none."""

    created: datetime
    modified: datetime
    mtime: float

    @classmethod
    def from_stat(cls, st: os.stat_result) -> "FileTimes":
        # st_birthtime is missing on most Linux filesystems
        birth = getattr(st, "st_birthtime", None) or st.st_ctime
        return cls(
            created=datetime.fromtimestamp(birth, tz=UTC),
            modified=datetime.fromtimestamp(st.st_mtime, tz=UTC),
            mtime=st.st_mtime,
        )


class FrontMatterWarning(BaseModel):
    """Malformed front matter; the note was still produced with fallback values."""

    path: str
    message: str
    key: str | None = None


class AmbiguousReferenceWarning(BaseModel):
    """A reference matched several notes; the most recently updated one was chosen."""

    source: NoteId
    target_ref: str
    candidates: list[NoteId]
    chosen: NoteId


class ParseResult(BaseModel):
    """Model for the outcome of parsing one file."""

    note: Note
    warnings: list[FrontMatterWarning] = Field(default_factory=list)


class ScanFailure(BaseModel):
    """A file that could not be parsed during a scan or event."""

    path: str
    reason: str


class ScanReport(BaseModel):
    """Model for the result of a full scan or a single applied event."""

    root: str
    added: list[NoteId] = Field(default_factory=list)
    updated: list[NoteId] = Field(default_factory=list)
    removed: list[NoteId] = Field(default_factory=list)
    unchanged: int = 0
    errors: list[ScanFailure] = Field(default_factory=list)
    warnings: list[FrontMatterWarning] = Field(default_factory=list)
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return not self.errors


class EventKind(str, Enum):
    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"
    RENAMED = "renamed"


class FileEvent(BaseModel):
    """Model for a filesystem change fed to the synchronizer."""

    model_config = ConfigDict(frozen=True)

    kind: EventKind
    path: Path
    dest_path: Path | None = None

    @model_validator(mode="after")
    def _check_destination(self) -> "FileEvent":
        if self.kind is EventKind.RENAMED and self.dest_path is None:
            raise ValueError("renamed events need a dest_path")
        return self

    @classmethod
    def created(cls, path: Path) -> "FileEvent":
        return cls(kind=EventKind.CREATED, path=path)

    @classmethod
    def modified(cls, path: Path) -> "FileEvent":
        return cls(kind=EventKind.MODIFIED, path=path)

    @classmethod
    def deleted(cls, path: Path) -> "FileEvent":
        return cls(kind=EventKind.DELETED, path=path)

    @classmethod
    def renamed(cls, path: Path, dest_path: Path) -> "FileEvent":
        return cls(kind=EventKind.RENAMED, path=path, dest_path=dest_path)


class GraphNeighbors(BaseModel):
    """Model for the one-hop neighborhood of a note."""

    forward: set[NoteId] = Field(default_factory=set)
    backward: set[NoteId] = Field(default_factory=set)


class KnowledgeBaseStats(BaseModel):
    """Model for aggregate statistics over the index."""

    total_notes: int
    total_tags: int
    total_links: int
    resolved_links: int
    dangling_links: int
    orphan_count: int
    top_tags: list[tuple[str, int]]
    recent_notes: list[NoteId]
