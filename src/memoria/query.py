"""
Search and query functions for the Memoria knowledge base.

Contains the QueryEngine: ranked fuzzy search over titles and content,
tag lookups, one-hop graph neighbors, and aggregate statistics. Every
query reads a single committed index snapshot and never mutates it.
"""

import structlog
from rapidfuzz.distance import OSA

from .config import Settings
from .index import IndexSnapshot, KnowledgeBase, count_tags
from .models import GraphNeighbors, KnowledgeBaseStats, Link, Note, NoteId
from .utils import WORD_PATTERN

logger = structlog.get_logger(__name__)

EXACT_TITLE, TITLE_MATCH, CONTENT_MATCH = 0, 1, 2


def _within(term: str, candidate: str, budget: int) -> bool:
    return OSA.distance(term, candidate, score_cutoff=budget) <= budget


def fuzzy_contains(term: str, text: str, budget: int, whole: bool = False) -> bool:
    """True if some run of words in text is within budget edits of term.

    Runs have as many words as the term. With ``whole`` the entire text is
    tried as well, which lets a short title absorb a missing word.
    """
    if budget <= 0:
        return False
    if whole and _within(term, text, budget):
        return True

    term_words = WORD_PATTERN.findall(term)
    words = WORD_PATTERN.findall(text)
    width = len(term_words)
    if not width or len(words) < width:
        return False
    joined_term = " ".join(term_words)
    return any(_within(joined_term, " ".join(words[i:i + width]), budget) for i in range(len(words) - width + 1))


class QueryEngine:
    """Read-only queries over a KnowledgeBase."""

    def __init__(self, index: KnowledgeBase, settings: Settings | None = None):
        self.index = index
        self.settings = settings or index.settings

    def edit_budget(self, term: str) -> int:
        """Edits tolerated for a term: one per four characters, capped by settings."""
        return min(self.settings.fuzzy_max_distance, len(term) // 4)

    def _tier(self, note: Note, term: str, budget: int) -> int | None:
        title = note.title.lower()
        if title == term:
            return EXACT_TITLE
        if term in title or fuzzy_contains(term, title, budget, whole=True):
            return TITLE_MATCH
        content = note.content.lower()
        if term in content or fuzzy_contains(term, content, budget):
            return CONTENT_MATCH
        return None

    def search(self, term: str, limit: int | None = None) -> list[NoteId]:
        """Search notes by title and content.

        Ranking: exact title match, then title substring or fuzzy match, then
        content match; within a tier newer notes first.

        Args:
            term: Text to look for, case-insensitive
            limit: Maximum results; defaults to settings.max_search_results

        Returns:
            Ranked note ids
        """
        term = " ".join(term.split()).lower()
        if not term:
            return []

        budget = self.edit_budget(term)
        tiers: tuple[list[Note], ...] = ([], [], [])
        for note in self.index.snapshot().notes.values():
            tier = self._tier(note, term, budget)
            if tier is not None:
                tiers[tier].append(note)

        results: list[NoteId] = []
        for bucket in tiers:
            bucket.sort(key=lambda n: (-n.updated_at.timestamp(), n.id))
            results.extend(n.id for n in bucket)

        final_results = results[: limit if limit is not None else self.settings.max_search_results]
        logger.debug("search_completed", term=term, budget=budget, results=len(final_results))
        return final_results

    def by_tag(self, tag: str) -> set[NoteId]:
        """Return the notes carrying a tag; a leading '#' is ignored."""
        return self.index.snapshot().by_tag(tag.strip().lstrip("#"))

    def notes_without_tags(self) -> set[NoteId]:
        return {note.id for note in self.index.snapshot().notes.values() if not note.tags}

    def graph_neighbors(self, note_id: NoteId) -> GraphNeighbors:
        """Return the notes one hop away: resolved forward links and backlinks."""
        snapshot = self.index.snapshot()
        return _neighbors(snapshot, note_id)

    def orphans(self) -> set[NoteId]:
        """Return notes with no resolved outgoing link and no backlink."""
        return _orphans(self.index.snapshot())

    def dangling_references(self) -> list[Link]:
        """Return every unresolved link, grouped by source note."""
        snapshot = self.index.snapshot()
        return [
            link
            for source in sorted(snapshot.forward_links)
            for link in snapshot.forward_links[source]
            if link.resolved is None
        ]

    def stats(self, top: int = 20, recent: int = 10) -> KnowledgeBaseStats:
        """Get statistics about the knowledge base."""
        snapshot = self.index.snapshot()
        links = [link for group in snapshot.forward_links.values() for link in group]
        resolved = sum(1 for link in links if link.resolved is not None)
        newest = sorted(snapshot.notes.values(), key=lambda n: (-n.updated_at.timestamp(), n.id))

        return KnowledgeBaseStats(
            total_notes=len(snapshot.notes),
            total_tags=len(snapshot.tag_index),
            total_links=len(links),
            resolved_links=resolved,
            dangling_links=len(links) - resolved,
            orphan_count=len(_orphans(snapshot)),
            top_tags=count_tags(snapshot.tag_index)[:top],
            recent_notes=[note.id for note in newest[:recent]],
        )


def _neighbors(snapshot: IndexSnapshot, note_id: NoteId) -> GraphNeighbors:
    forward = {link.resolved for link in snapshot.forward_links.get(note_id, ()) if link.resolved is not None}
    return GraphNeighbors(forward=forward, backward=snapshot.backlinks_of(note_id))


def _orphans(snapshot: IndexSnapshot) -> set[NoteId]:
    orphans: set[NoteId] = set()
    for note_id in snapshot.notes:
        neighbors = _neighbors(snapshot, note_id)
        if not neighbors.forward and not neighbors.backward:
            orphans.add(note_id)
    return orphans
