"""
Pytest configuration and fixtures for Memoria tests.
"""

from pathlib import Path

import pytest

from memoria.config import Settings
from memoria.index import KnowledgeBase
from memoria.query import QueryEngine
from memoria.sync import Synchronizer
from memoria.writer import NoteWriter


@pytest.fixture
def settings() -> Settings:
    """Settings independent of the MEMORIA_* environment."""
    return Settings(notes_directory=Path("unused"))


@pytest.fixture
def temp_vault(tmp_path: Path) -> Path:
    """Create a temporary notes directory with test notes."""
    vault_path = tmp_path / "vault"
    vault_path.mkdir()

    (vault_path / "Concepts").mkdir()
    (vault_path / "Sessions").mkdir()
    (vault_path / ".obsidian").mkdir()

    # Note 1: Concept with full front matter
    (vault_path / "Concepts" / "C_Python.md").write_text("""---
title: Python
created: 2024-01-15
updated: 2024-03-01T10:00:00Z
tags:
  - programming
  - language
status: evergreen
---

# Python

Python is a programming language.

See also [[JavaScript]] for comparison.
""", encoding="utf-8")

    # Note 2: Another concept with links, one dangling
    (vault_path / "Concepts" / "C_JavaScript.md").write_text("""---
title: JavaScript
created: 2024-01-16
updated: 2024-02-01
tags: [programming, web]
---

# JavaScript

JavaScript is a web programming language.

It links to [[Python]] and [[Docker]].
""", encoding="utf-8")

    # Note 3: Session note linking by alias and heading
    (vault_path / "Sessions" / "2024-01-20_Session_DevSetup.md").write_text("""---
title: Dev Setup Session
created: 2024-01-20
tags:
  - devops
---

# Development Setup

Today we configured [[Python|the Python language]] for development.
See [[c_javascript#History]] too.
""", encoding="utf-8")

    # Note 4: Note without front matter
    (vault_path / "no_frontmatter.md").write_text("""# Simple Note

This note has no YAML front matter.
Just plain markdown content.
""", encoding="utf-8")

    # Note 5: Note with invalid front matter
    (vault_path / "invalid_frontmatter.md").write_text("""---
title: [invalid yaml
tags: not closed
---

This note has invalid YAML front matter.
""", encoding="utf-8")

    # Hidden folder content is never indexed
    (vault_path / ".obsidian" / "workspace.md").write_text("# Hidden\n", encoding="utf-8")

    # Non-note file
    (vault_path / "Concepts" / "diagram.png").write_bytes(b"\x89PNG\r\n")

    yield vault_path


@pytest.fixture
def index(temp_vault: Path, settings: Settings) -> KnowledgeBase:
    """An empty index rooted at the temp vault."""
    return KnowledgeBase(temp_vault, settings=settings)


@pytest.fixture
def synchronizer(index: KnowledgeBase) -> Synchronizer:
    return Synchronizer(index)


@pytest.fixture
async def scanned(synchronizer: Synchronizer) -> Synchronizer:
    """A synchronizer whose index holds a full scan of the temp vault."""
    await synchronizer.full_scan()
    return synchronizer


@pytest.fixture
def engine(index: KnowledgeBase) -> QueryEngine:
    return QueryEngine(index)


@pytest.fixture
def writer(synchronizer: Synchronizer) -> NoteWriter:
    return NoteWriter(synchronizer)
