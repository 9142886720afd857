"""
Note writing functions for the Memoria knowledge base.

Contains the NoteWriter, which creates, rewrites, renames and deletes note
files and pushes each change through the synchronizer so the index follows.
"""

from datetime import UTC, datetime
from pathlib import Path

import aiofiles
import aiofiles.os
import structlog
import yaml

from .config import Settings
from .exceptions import NoteExistsError, NoteNotFoundError, ParseError
from .models import FileEvent, Note, NoteId, ScanReport
from .parser import render_note
from .sync import Synchronizer
from .utils import (
    note_id_for,
    sanitize_filename,
    validate_content_size,
    validate_path_within_root,
    validate_title,
)

logger = structlog.get_logger(__name__)


def generate_front_matter(title: str, tags: list[str], created: datetime, delimiter: str = "---") -> str:
    """Generate the front matter block for a new note."""
    front_matter = {
        "title": title,
        "created": created.isoformat(),
        "tags": sorted(set(tags)),
    }

    yaml_content = yaml.safe_dump(front_matter, allow_unicode=True, default_flow_style=False, sort_keys=False)
    return f"{delimiter}\n{yaml_content}{delimiter}\n"


class NoteWriter:
    """Write side of the knowledge base: file changes followed by index updates."""

    def __init__(self, synchronizer: Synchronizer, settings: Settings | None = None):
        self.synchronizer = synchronizer
        self.settings = settings or synchronizer.settings

    @property
    def root(self) -> Path:
        return self.synchronizer.index.root

    def generate_filename(self, title: str) -> str:
        """Generate a filename from a title using the first configured extension."""
        return f"{sanitize_filename(title)}.{self.settings.extensions[0]}"

    def _require(self, note_id: NoteId) -> Note:
        note = self.synchronizer.index.get(note_id)
        if note is None:
            raise NoteNotFoundError(note_id)
        return note

    def _applied(self, report: ScanReport, path: Path) -> Note:
        if report.errors:
            raise ParseError(path, report.errors[0].reason)
        return self._require(note_id_for(path, self.root))

    async def _write(self, path: Path, text: str) -> None:
        try:
            async with aiofiles.open(path, mode="w", encoding="utf-8") as f:
                await f.write(text)
        except OSError as e:
            logger.error("note_write_failed", path=str(path), error=str(e))
            raise

    async def create_note(
        self,
        title: str,
        content: str = "",
        tags: list[str] | None = None,
        folder: str | None = None,
    ) -> Note:
        """Create a new note file and index it.

        Args:
            title: Note title
            content: Markdown body placed under the title heading
            tags: Optional list of tags
            folder: Optional folder relative to the notes root

        Returns:
            The indexed note

        Raises:
            TitleValidationError, ContentValidationError, PathValidationError:
                If the input is rejected
            NoteExistsError: If the target file already exists
        """
        title = validate_title(title, self.settings)
        validate_content_size(content, self.settings)

        folder_path = self.root
        if folder:
            validate_path_within_root(folder, self.root)
            folder_path = self.root / folder
        file_path = folder_path / self.generate_filename(title)

        if file_path.exists():
            raise NoteExistsError(file_path)

        folder_path.mkdir(parents=True, exist_ok=True)
        front_matter = generate_front_matter(
            title, tags or [], datetime.now(UTC), self.settings.front_matter_delimiter
        )
        await self._write(file_path, f"{front_matter}# {title}\n\n{content}")
        logger.info("note_created", path=str(file_path.relative_to(self.root)))

        report = await self.synchronizer.apply_event(FileEvent.created(file_path))
        return self._applied(report, file_path)

    async def update_note(
        self,
        note_id: NoteId,
        content: str | None = None,
        tags: list[str] | None = None,
        title: str | None = None,
    ) -> Note:
        """Rewrite an indexed note with new content, tags or title.

        Fields left as None keep their current value; updated is set to now.
        """
        note = self._require(note_id)
        changes: dict = {"updated_at": datetime.now(UTC)}
        if content is not None:
            changes["content"] = validate_content_size(content, self.settings)
        if tags is not None:
            changes["tags"] = set(tags)
        if title is not None:
            changes["title"] = validate_title(title, self.settings)

        updated = note.model_copy(update=changes)
        await self._write(note.path, render_note(updated, self.settings.front_matter_delimiter))
        logger.info("note_updated", note_id=note_id, fields=sorted(changes))

        report = await self.synchronizer.apply_event(FileEvent.modified(note.path))
        return self._applied(report, note.path)

    async def rename_note(self, note_id: NoteId, new_name: str) -> Note:
        """Move a note file to a new filename in the same folder.

        The note gets a new id; notes referring to it by title keep resolving.
        """
        note = self._require(note_id)
        new_path = note.path.with_name(self.generate_filename(validate_title(new_name, self.settings)))
        if new_path.exists():
            raise NoteExistsError(new_path)

        await aiofiles.os.rename(note.path, new_path)
        logger.info("note_renamed", note_id=note_id, path=str(new_path))

        report = await self.synchronizer.apply_event(FileEvent.renamed(note.path, new_path))
        return self._applied(report, new_path)

    async def delete_note(self, note_id: NoteId) -> None:
        """Delete a note file and drop it from the index."""
        note = self._require(note_id)
        try:
            await aiofiles.os.remove(note.path)
        except FileNotFoundError:
            logger.warning("note_already_deleted", note_id=note_id, path=str(note.path))
        logger.info("note_deleted", note_id=note_id)
        await self.synchronizer.apply_event(FileEvent.deleted(note.path))
