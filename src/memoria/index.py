"""
In-memory knowledge base index for Memoria.

Contains the KnowledgeBase class, which owns every note, the tag index and
the forward/backward link graph.

Mutations are computed on a copy of the current state and committed with a
single reference assignment, so a reader holding a snapshot never observes
a half-applied change and a failing mutation leaves the index untouched.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from .config import Settings
from .config import settings as default_settings
from .models import AmbiguousReferenceWarning, Link, Note, NoteId
from .references import lookup_keys, note_keys
from .utils import normalize_path, relative_note_path

logger = structlog.get_logger(__name__)


def _add_member(mapping: dict[str, frozenset[NoteId]], key: str, note_id: NoteId) -> None:
    mapping[key] = mapping.get(key, frozenset()) | {note_id}


def _discard_member(mapping: dict[str, frozenset[NoteId]], key: str, note_id: NoteId) -> None:
    members = mapping.get(key)
    if members is None or note_id not in members:
        return
    remaining = members - {note_id}
    if remaining:
        mapping[key] = remaining
    else:
        del mapping[key]


@dataclass(frozen=True)
class IndexSnapshot:
    """One committed state of the index. Never mutated once published."""

    notes: dict[NoteId, Note] = field(default_factory=dict)
    tag_index: dict[str, frozenset[NoteId]] = field(default_factory=dict)
    forward_links: dict[NoteId, tuple[Link, ...]] = field(default_factory=dict)
    backlinks: dict[NoteId, frozenset[NoteId]] = field(default_factory=dict)
    # note key (title or slug) -> notes answering to it
    keys: dict[str, frozenset[NoteId]] = field(default_factory=dict)
    # lookup key -> notes holding a reference that resolves through it
    referrers: dict[str, frozenset[NoteId]] = field(default_factory=dict)
    ambiguities: dict[tuple[NoteId, str], AmbiguousReferenceWarning] = field(default_factory=dict)

    def copy(self) -> "IndexSnapshot":
        return IndexSnapshot(
            notes=dict(self.notes),
            tag_index=dict(self.tag_index),
            forward_links=dict(self.forward_links),
            backlinks=dict(self.backlinks),
            keys=dict(self.keys),
            referrers=dict(self.referrers),
            ambiguities=dict(self.ambiguities),
        )

    def get(self, note_id: NoteId) -> Note | None:
        return self.notes.get(note_id)

    def all_ids(self) -> set[NoteId]:
        return set(self.notes)

    def tags(self) -> set[str]:
        return set(self.tag_index)

    def by_tag(self, tag: str) -> set[NoteId]:
        return set(self.tag_index.get(tag, ()))

    def backlinks_of(self, note_id: NoteId) -> set[NoteId]:
        return set(self.backlinks.get(note_id, ()))

    def forward_links_of(self, note_id: NoteId) -> list[Link]:
        return list(self.forward_links.get(note_id, ()))


class KnowledgeBase:
    """In-memory index of the notes under one root directory.

    Reference resolution: a raw reference matches a note by case-insensitive
    title first, then by slug against the note's title, file stem and
    root-relative path. When several notes match, the most recently updated
    one wins and the ambiguity is recorded in ``warnings()``.
    """

    def __init__(self, root: Path | str, settings: Settings | None = None):
        self.root = normalize_path(root)
        self.settings = settings or default_settings
        self._extensions = tuple(self.settings.extensions)
        self._state = IndexSnapshot()

    # ============== Read access ==============

    def snapshot(self) -> IndexSnapshot:
        """Return the current committed state."""
        return self._state

    def get(self, note_id: NoteId) -> Note | None:
        return self._state.get(note_id)

    def all_ids(self) -> set[NoteId]:
        return self._state.all_ids()

    def notes(self) -> list[Note]:
        return list(self._state.notes.values())

    def tags(self) -> set[str]:
        return self._state.tags()

    def backlinks_of(self, note_id: NoteId) -> set[NoteId]:
        return self._state.backlinks_of(note_id)

    def forward_links_of(self, note_id: NoteId) -> list[Link]:
        return self._state.forward_links_of(note_id)

    def warnings(self) -> list[AmbiguousReferenceWarning]:
        """Return the ambiguous references present in the current state."""
        return list(self._state.ambiguities.values())

    def __len__(self) -> int:
        return len(self._state.notes)

    def __contains__(self, note_id: object) -> bool:
        return note_id in self._state.notes

    # ============== Mutation ==============

    def insert_or_update(self, note: Note) -> None:
        """Insert a note, replacing any note with the same id, and re-resolve affected links."""
        self.apply(upserts=[note])

    def remove(self, note_id: NoteId) -> None:
        """Remove a note; links pointing to it are downgraded. Absent ids are a no-op."""
        if note_id not in self._state.notes:
            return
        self.apply(removals=[note_id])

    def replace(self, old_id: NoteId, note: Note) -> None:
        """Remove old_id and insert note as one change, as a rename does."""
        self.apply(removals=[old_id], upserts=[note])

    def apply(self, removals: Iterable[NoteId] = (), upserts: Iterable[Note] = ()) -> None:
        """Apply removals then upserts as a single transaction.

        Every note whose references share a lookup key with a removed,
        inserted, or changed note is re-resolved, so the resulting graph does
        not depend on the order notes arrived in.
        """
        by_id = {note.id: note for note in upserts}
        removals = [note_id for note_id in removals if note_id not in by_id]
        state = self._state.copy()
        before = set(state.ambiguities)

        touched: set[str] = set()
        for note_id in [*removals, *by_id]:
            old = state.notes.get(note_id)
            if old is not None:
                touched |= self._detach(state, old)

        for note in by_id.values():
            touched |= self._attach(state, note)

        for note_id in by_id:
            self._link(state, note_id)

        affected: set[NoteId] = set()
        for key in touched:
            affected |= state.referrers.get(key, frozenset())
        for source in sorted(affected - set(by_id)):
            if source in state.notes:
                self._unlink(state, source)
                self._link(state, source)

        self._state = state

        for key in state.ambiguities.keys() - before:
            warning = state.ambiguities[key]
            logger.warning(
                "ambiguous_reference",
                source=warning.source,
                target_ref=warning.target_ref,
                candidates=warning.candidates,
                chosen=warning.chosen,
            )
        logger.debug(
            "index_updated",
            removed=len(removals),
            upserted=len(by_id),
            relinked=len(affected),
            note_count=len(state.notes),
        )

    def _note_keys(self, note: Note) -> set[str]:
        return note_keys(note.title, relative_note_path(note.path, self.root))

    def _detach(self, state: IndexSnapshot, note: Note) -> set[str]:
        """Drop a note and its outgoing edges; returns the keys it answered to."""
        del state.notes[note.id]
        for tag in note.tags:
            _discard_member(state.tag_index, tag, note.id)
        keys = self._note_keys(note)
        for key in keys:
            _discard_member(state.keys, key, note.id)
        self._unlink(state, note.id)
        state.forward_links.pop(note.id, None)
        # incoming edges are rebuilt when their sources are re-resolved
        state.backlinks.pop(note.id, None)
        return keys

    def _attach(self, state: IndexSnapshot, note: Note) -> set[str]:
        state.notes[note.id] = note
        for tag in note.tags:
            _add_member(state.tag_index, tag, note.id)
        keys = self._note_keys(note)
        for key in keys:
            _add_member(state.keys, key, note.id)
        return keys

    def _unlink(self, state: IndexSnapshot, source: NoteId) -> None:
        for link in state.forward_links.get(source, ()):
            if link.resolved is not None:
                _discard_member(state.backlinks, link.resolved, source)
            for key in lookup_keys(link.target_ref, self._extensions):
                if key is not None:
                    _discard_member(state.referrers, key, source)
            state.ambiguities.pop((source, link.target_ref), None)
        state.forward_links[source] = ()

    def _link(self, state: IndexSnapshot, source: NoteId) -> None:
        links: list[Link] = []
        for ref in state.notes[source].raw_references:
            resolved = self._resolve(state, source, ref)
            links.append(Link(source=source, target_ref=ref, resolved=resolved))
            for key in lookup_keys(ref, self._extensions):
                if key is not None:
                    _add_member(state.referrers, key, source)
            if resolved is not None:
                _add_member(state.backlinks, resolved, source)
        state.forward_links[source] = tuple(links)

    def _resolve(self, state: IndexSnapshot, source: NoteId, ref: str) -> NoteId | None:
        title_key, slug_key = lookup_keys(ref, self._extensions)
        candidates = state.keys.get(title_key)
        if not candidates and slug_key is not None:
            candidates = state.keys.get(slug_key)
        if not candidates:
            return None
        if len(candidates) == 1:
            return next(iter(candidates))

        ranked = sorted(candidates, key=lambda i: (-state.notes[i].updated_at.timestamp(), i))
        state.ambiguities[(source, ref)] = AmbiguousReferenceWarning(
            source=source,
            target_ref=ref,
            candidates=sorted(candidates),
            chosen=ranked[0],
        )
        return ranked[0]

    # ============== Consistency ==============

    def verify(self) -> list[str]:
        """Check every index invariant against the current state.

        Returns:
            Human-readable descriptions of violations; empty when consistent
        """
        state = self._state
        problems: list[str] = []

        expected_tags: dict[str, set[NoteId]] = {}
        for note in state.notes.values():
            for tag in note.tags:
                expected_tags.setdefault(tag, set()).add(note.id)
        if {tag: set(ids) for tag, ids in state.tag_index.items()} != expected_tags:
            problems.append("tag index does not match note tags")

        if set(state.forward_links) != set(state.notes):
            problems.append("forward links are not keyed by exactly the indexed notes")

        expected_backlinks: dict[NoteId, set[NoteId]] = {}
        scratch = state.copy()
        for source, links in state.forward_links.items():
            note = state.notes.get(source)
            if note is not None and [link.target_ref for link in links] != note.raw_references:
                problems.append(f"{source}: links do not follow raw references")
            for link in links:
                if link.resolved is None:
                    continue
                if link.resolved not in state.notes:
                    problems.append(f"{source}: link {link.target_ref!r} resolves to missing {link.resolved}")
                expected_backlinks.setdefault(link.resolved, set()).add(source)
                if self._resolve(scratch, source, link.target_ref) != link.resolved:
                    problems.append(f"{source}: link {link.target_ref!r} is stale")
            for link in links:
                if link.resolved is None and self._resolve(scratch, source, link.target_ref) is not None:
                    problems.append(f"{source}: dangling link {link.target_ref!r} now resolves")

        if {target: set(ids) for target, ids in state.backlinks.items()} != expected_backlinks:
            problems.append("backlinks do not mirror resolved forward links")

        return problems


def build_index(root: Path | str, notes: Iterable[Note], settings: Settings | None = None) -> KnowledgeBase:
    """Build an index from already-parsed notes in one transaction."""
    index = KnowledgeBase(root, settings=settings)
    index.apply(upserts=notes)
    return index


def count_tags(tag_index: Mapping[str, frozenset[NoteId]]) -> list[tuple[str, int]]:
    """Return (tag, note count) pairs, most used first, then alphabetical."""
    return sorted(((tag, len(ids)) for tag, ids in tag_index.items()), key=lambda item: (-item[1], item[0]))
