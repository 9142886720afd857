"""
Change synchronizer for the Memoria knowledge base.

Drives a KnowledgeBase from the filesystem: full scans and incremental
create/modify/delete/rename events. File bytes are always read before the
write lock is taken; the lock only covers applying the parsed note.
"""

import asyncio
import time
from pathlib import Path

import aiofiles.os
import structlog

from .config import Settings
from .exceptions import ParseError, RootUnavailableError
from .index import KnowledgeBase
from .models import EventKind, FileEvent, NoteId, ScanFailure, ScanReport
from .parser import read_note
from .references import DEFAULT_SYNTAX, ReferenceSyntax
from .utils import is_hidden, normalize_path, note_id_for, relative_note_path

logger = structlog.get_logger(__name__)


class Synchronizer:
    """Single writer for a KnowledgeBase.

    Operations on one Synchronizer are serialized by an asyncio lock, so
    events are applied one at a time in the order they are awaited.
    """

    def __init__(
        self,
        index: KnowledgeBase,
        settings: Settings | None = None,
        syntax: ReferenceSyntax = DEFAULT_SYNTAX,
    ):
        self.index = index
        self.settings = settings or index.settings
        self.syntax = syntax
        self._write_lock = asyncio.Lock()

    def is_eligible(self, path: Path) -> bool:
        """True if the path names a note file the index should track."""
        if not self.settings.is_note_file(path):
            return False
        if self.settings.skip_hidden and is_hidden(relative_note_path(path, self.index.root)):
            return False
        return True

    def list_note_files(self, root: Path) -> list[Path]:
        """Enumerate eligible note files under root, sorted for a stable scan order."""
        return sorted(
            path
            for path in root.rglob("*")
            if path.is_file() and self.is_eligible(path)
        )

    async def full_scan(self, root: Path | str | None = None, force: bool = False) -> ScanReport:
        """Bring the index in line with every note file under root.

        Files whose mtime matches the indexed note are skipped unless force is
        set. Notes whose files have disappeared are removed at the end.

        Args:
            root: Directory to scan; defaults to the index root
            force: Re-parse every file even when unchanged

        Returns:
            ScanReport with added/updated/removed ids and per-file failures

        Raises:
            RootUnavailableError: If root is missing or not a directory; the
                index is not touched
        """
        root = normalize_path(root or self.index.root)
        if not root.exists():
            raise RootUnavailableError(root)
        if not root.is_dir():
            raise RootUnavailableError(root, "not a directory")

        start_time = time.time()
        report = ScanReport(root=str(root))

        try:
            files = await asyncio.to_thread(self.list_note_files, root)
        except OSError as e:
            raise RootUnavailableError(root, e.strerror or str(e)) from e

        seen: set[NoteId] = set()
        for path in files:
            note_id = note_id_for(path, self.index.root)
            seen.add(note_id)

            existing = self.index.get(note_id)
            if existing is not None and not force:
                try:
                    st = await aiofiles.os.stat(path)
                except FileNotFoundError:
                    seen.discard(note_id)
                    continue
                if st.st_mtime == existing.mtime:
                    report.unchanged += 1
                    continue

            try:
                result = await read_note(path, self.index.root, settings=self.settings, syntax=self.syntax)
            except FileNotFoundError:
                # deleted between listing and reading
                seen.discard(note_id)
                continue
            except ParseError as e:
                logger.warning("note_parse_failed", path=str(path), error=e.reason)
                report.errors.append(ScanFailure(path=str(path), reason=e.reason))
                continue

            async with self._write_lock:
                existed = note_id in self.index
                self.index.insert_or_update(result.note)
            (report.updated if existed else report.added).append(note_id)
            report.warnings.extend(result.warnings)

        async with self._write_lock:
            gone = sorted(
                note.id
                for note in self.index.notes()
                if note.id not in seen and normalize_path(note.path).is_relative_to(root)
            )
            if gone:
                self.index.apply(removals=gone)
        report.removed = gone

        report.duration_ms = round((time.time() - start_time) * 1000, 2)
        logger.info(
            "scan_completed",
            root=str(root),
            note_count=len(self.index),
            added=len(report.added),
            updated=len(report.updated),
            removed=len(report.removed),
            unchanged=report.unchanged,
            failed=len(report.errors),
            duration_ms=report.duration_ms,
        )
        return report

    async def apply_event(self, event: FileEvent) -> ScanReport:
        """Apply one filesystem event to the index.

        A rename removes the old id and inserts the note under its new id in
        one transaction; references to it are re-resolved by title or slug.
        A file that fails to parse leaves the index unchanged.
        """
        report = ScanReport(root=str(self.index.root))

        if event.kind is EventKind.DELETED:
            await self._remove(event.path, report)
        elif event.kind is EventKind.RENAMED:
            await self._rename(event.path, event.dest_path, report)
        else:
            await self._upsert(event.path, report)

        logger.debug(
            "event_applied",
            kind=event.kind.value,
            path=str(event.path),
            added=report.added,
            updated=report.updated,
            removed=report.removed,
            failed=len(report.errors),
        )
        return report

    async def run(self, queue: "asyncio.Queue[FileEvent | None]") -> None:
        """Consume events from queue in arrival order until a None sentinel arrives."""
        while True:
            event = await queue.get()
            try:
                if event is None:
                    return
                await self.apply_event(event)
            except Exception:
                logger.exception("event_apply_failed", file_event=event.model_dump(mode="json") if event else None)
            finally:
                queue.task_done()

    async def _upsert(self, path: Path, report: ScanReport) -> None:
        if not self.is_eligible(path):
            return
        try:
            result = await read_note(path, self.index.root, settings=self.settings, syntax=self.syntax)
        except FileNotFoundError:
            await self._remove(path, report)
            return
        except ParseError as e:
            logger.warning("note_parse_failed", path=str(path), error=e.reason)
            report.errors.append(ScanFailure(path=str(path), reason=e.reason))
            return

        note = result.note
        async with self._write_lock:
            existed = note.id in self.index
            self.index.insert_or_update(note)
        (report.updated if existed else report.added).append(note.id)
        report.warnings.extend(result.warnings)

    async def _remove(self, path: Path, report: ScanReport) -> None:
        note_id = note_id_for(path, self.index.root)
        async with self._write_lock:
            if note_id not in self.index:
                return
            self.index.remove(note_id)
        report.removed.append(note_id)

    async def _rename(self, src: Path, dest: Path | None, report: ScanReport) -> None:
        if dest is None or not self.is_eligible(dest):
            await self._remove(src, report)
            return
        if not self.is_eligible(src):
            await self._upsert(dest, report)
            return

        try:
            result = await read_note(dest, self.index.root, settings=self.settings, syntax=self.syntax)
        except FileNotFoundError:
            await self._remove(src, report)
            return
        except ParseError as e:
            logger.warning("note_parse_failed", path=str(dest), error=e.reason)
            report.errors.append(ScanFailure(path=str(dest), reason=e.reason))
            await self._remove(src, report)
            return

        old_id = note_id_for(src, self.index.root)
        note = result.note
        async with self._write_lock:
            had_old = old_id in self.index
            existed = note.id in self.index
            self.index.replace(old_id, note)

        report.warnings.extend(result.warnings)
        if old_id == note.id:
            report.updated.append(note.id)
            return
        if had_old:
            report.removed.append(old_id)
        (report.updated if existed else report.added).append(note.id)
