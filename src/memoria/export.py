"""
Exporters for the Memoria knowledge base.

A closed set of output formats, selected by ExportFormat. Each exporter
writes one committed index snapshot into a target directory.
"""

import json
from enum import Enum
from pathlib import Path
from typing import Protocol

import structlog

from .index import IndexSnapshot, KnowledgeBase
from .parser import render_note
from .references import slugify

logger = structlog.get_logger(__name__)


class ExportFormat(str, Enum):
    MARKDOWN = "markdown"
    JSON = "json"


class Exporter(Protocol):
    format: ExportFormat

    def export(self, snapshot: IndexSnapshot, target: Path) -> list[Path]:
        """Write the snapshot under target and return the files written."""
        ...


class MarkdownExporter:
    """Write every note back out as Markdown with normalized front matter."""

    format = ExportFormat.MARKDOWN

    def __init__(self, delimiter: str = "---"):
        self.delimiter = delimiter

    def export(self, snapshot: IndexSnapshot, target: Path) -> list[Path]:
        written: list[Path] = []
        for note_id in sorted(snapshot.notes):
            note = snapshot.notes[note_id]
            rel = Path(note_id)
            if rel.is_absolute():
                rel = Path(slugify(note.title) or note.path.stem).with_suffix(note.path.suffix)
            out = target / rel
            out.parent.mkdir(parents=True, exist_ok=True)
            out.write_text(render_note(note, self.delimiter), encoding="utf-8")
            written.append(out)
        return written


class JsonExporter:
    """Write the notes, their links and backlinks as one JSON document."""

    format = ExportFormat.JSON
    filename = "knowledge-base.json"

    def export(self, snapshot: IndexSnapshot, target: Path) -> list[Path]:
        notes = []
        for note_id in sorted(snapshot.notes):
            data = snapshot.notes[note_id].model_dump(mode="json")
            data["tags"] = sorted(data["tags"])
            data["links"] = [link.model_dump(mode="json") for link in snapshot.forward_links_of(note_id)]
            data["backlinks"] = sorted(snapshot.backlinks_of(note_id))
            notes.append(data)

        document = {
            "notes": notes,
            "tags": {tag: sorted(ids) for tag, ids in sorted(snapshot.tag_index.items())},
        }
        target.mkdir(parents=True, exist_ok=True)
        out = target / self.filename
        out.write_text(json.dumps(document, indent=2, ensure_ascii=False), encoding="utf-8")
        return [out]


EXPORTERS: dict[ExportFormat, type[MarkdownExporter] | type[JsonExporter]] = {
    ExportFormat.MARKDOWN: MarkdownExporter,
    ExportFormat.JSON: JsonExporter,
}


def get_exporter(export_format: ExportFormat | str) -> Exporter:
    """Return the exporter for a format.

    Raises:
        ValueError: If the format is not one of ExportFormat
    """
    return EXPORTERS[ExportFormat(export_format)]()


def export(index: KnowledgeBase, target: Path | str, export_format: ExportFormat | str = ExportFormat.MARKDOWN) -> list[Path]:
    """Export the current index state in the given format."""
    exporter = get_exporter(export_format)
    written = exporter.export(index.snapshot(), Path(target))
    logger.info("export_completed", format=exporter.format.value, target=str(target), files=len(written))
    return written
