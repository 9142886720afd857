# Memoria knowledge base core
#
# Modular package structure:
# - config.py: Settings loaded from MEMORIA_* environment variables
# - logging.py: structlog configuration
# - exceptions.py: Error types
# - models.py: Note, Link, events, reports and warnings
# - utils.py: Note ids, timestamps, filenames and validation
# - references.py: Reference extraction and lookup keys
# - parser.py: Front matter and note parsing
# - index.py: KnowledgeBase, the in-memory index and link graph
# - query.py: QueryEngine for search, tags and graph neighbors
# - sync.py: Synchronizer applying scans and file events
# - watcher.py: watchdog-based live event feed
# - writer.py: NoteWriter for creating and editing note files
# - export.py: Markdown and JSON exporters

from .config import Settings, settings
from .exceptions import (
    MemoriaError,
    NoteExistsError,
    NoteNotFoundError,
    ParseError,
    RootUnavailableError,
)
from .index import KnowledgeBase
from .logging import configure_logging
from .models import (
    AmbiguousReferenceWarning,
    EventKind,
    FileEvent,
    FrontMatterWarning,
    GraphNeighbors,
    Link,
    Note,
    NoteId,
    ScanReport,
)
from .parser import parse_note, read_note
from .query import QueryEngine
from .references import extract_references
from .sync import Synchronizer
from .watcher import FileWatcher
from .writer import NoteWriter

__all__ = [
    "AmbiguousReferenceWarning",
    "EventKind",
    "FileEvent",
    "FileWatcher",
    "FrontMatterWarning",
    "GraphNeighbors",
    "KnowledgeBase",
    "Link",
    "MemoriaError",
    "Note",
    "NoteExistsError",
    "NoteId",
    "NoteNotFoundError",
    "NoteWriter",
    "ParseError",
    "QueryEngine",
    "RootUnavailableError",
    "ScanReport",
    "Settings",
    "Synchronizer",
    "configure_logging",
    "extract_references",
    "parse_note",
    "read_note",
    "settings",
]
