"""
Tests for configuration and logging setup.
"""

import json
import logging
from datetime import UTC, datetime
from pathlib import Path

import pytest
import structlog
from structlog.testing import capture_logs

from memoria.config import Settings
from memoria.index import KnowledgeBase
from memoria.logging import _resolve_level, configure_logging
from memoria.models import Note


@pytest.fixture
def reset_structlog():
    yield
    structlog.reset_defaults()


class TestSettings:
    """Tests for Settings."""

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("MEMORIA_FUZZY_MAX_DISTANCE", "1")
        monkeypatch.setenv("MEMORIA_EXTENSIONS", '[".MD", "txt"]')
        monkeypatch.setenv("MEMORIA_LOG_JSON", "true")

        settings = Settings()

        assert settings.fuzzy_max_distance == 1
        assert settings.extensions == ["md", "txt"]
        assert settings.log_json is True

    def test_is_note_file(self):
        settings = Settings()

        assert settings.is_note_file(Path("a/Note.MD"))
        assert settings.is_note_file(Path("b.markdown"))
        assert not settings.is_note_file(Path("c.png"))
        assert not settings.is_note_file(Path("README"))


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_json_output(self, capsys, reset_structlog):
        configure_logging(Settings(log_json=True, log_level="warning"))
        logger = structlog.get_logger("memoria.test")

        logger.info("hidden_event")
        logger.warning("scan_completed", note_count=3)

        [line] = capsys.readouterr().out.splitlines()
        record = json.loads(line)
        assert record["event"] == "scan_completed"
        assert record["note_count"] == 3
        assert record["level"] == "warning"
        assert "timestamp" in record

    def test_resolve_level(self):
        assert _resolve_level("debug") == logging.DEBUG
        assert _resolve_level(logging.ERROR) == logging.ERROR
        with pytest.raises(ValueError):
            _resolve_level("chatty")

    def test_ambiguity_logged_once(self):
        """Test an ambiguous reference is logged when it first appears only."""
        root = Path("/kb")
        stamp = datetime(2024, 1, 1, tzinfo=UTC)

        def note(name, title, refs=()):
            return Note(id=name, title=title, created_at=stamp, updated_at=stamp,
                        raw_references=list(refs), path=root / name)

        kb = KnowledgeBase(root, settings=Settings())
        with capture_logs() as logs:
            kb.apply(upserts=[note("x.md", "Dup"), note("y.md", "Dup"), note("s.md", "S", ["Dup"])])
            kb.insert_or_update(note("t.md", "T"))

        events = [entry for entry in logs if entry["event"] == "ambiguous_reference"]
        assert len(events) == 1
        assert events[0]["chosen"] == "x.md"
        assert events[0]["log_level"] == "warning"
