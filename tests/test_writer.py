"""
Tests for the NoteWriter.
"""

from datetime import UTC, datetime

import pytest
import yaml

from memoria.config import Settings
from memoria.exceptions import (
    ContentValidationError,
    NoteExistsError,
    NoteNotFoundError,
    PathValidationError,
    TitleValidationError,
)
from memoria.writer import NoteWriter, generate_front_matter

PYTHON = "concepts/c_python.md"
JAVASCRIPT = "concepts/c_javascript.md"


class TestGenerateFrontMatter:
    """Tests for generate_front_matter."""

    def test_fields(self):
        text = generate_front_matter("Idea: one", ["b", "a", "b"], datetime(2024, 5, 1, tzinfo=UTC))

        assert text.startswith("---\n")
        assert text.endswith("---\n")
        data = yaml.safe_load(text.split("---\n")[1])
        assert data == {"title": "Idea: one", "created": "2024-05-01T00:00:00+00:00", "tags": ["a", "b"]}


class TestCreateNote:
    """Tests for create_note."""

    async def test_create_indexes_note(self, scanned, writer, temp_vault):
        """Test a new note is written, indexed and linked."""
        note = await writer.create_note("New Idea", "Builds on [[Python]].", tags=["draft"], folder="Concepts")

        assert note.id == "concepts/new_idea.md"
        assert (temp_vault / "Concepts" / "new_idea.md").exists()
        assert note.title == "New Idea"
        assert note.tags == {"draft"}
        assert scanned.index.backlinks_of(PYTHON) >= {note.id}

    async def test_create_makes_folder(self, writer, temp_vault):
        note = await writer.create_note("Deep", folder="Projects/2024")

        assert note.path == temp_vault / "Projects" / "2024" / "deep.md"

    async def test_body_starts_with_title_heading(self, writer, temp_vault):
        await writer.create_note("Heading Check", "Body text.")

        text = (temp_vault / "heading_check.md").read_text(encoding="utf-8")
        assert "\n# Heading Check\n\nBody text." in text

    async def test_duplicate_is_rejected(self, writer):
        await writer.create_note("Twice")

        with pytest.raises(NoteExistsError):
            await writer.create_note("Twice")

    @pytest.mark.parametrize("folder", ["../outside", "/etc", "a/../../b"])
    async def test_folder_must_stay_inside_root(self, writer, folder):
        with pytest.raises(PathValidationError):
            await writer.create_note("Escape", folder=folder)

    @pytest.mark.parametrize("title", ["", "   ", "x" * 201, "///"])
    async def test_bad_titles(self, writer, title):
        with pytest.raises(TitleValidationError):
            await writer.create_note(title)

    async def test_content_size_limit(self, synchronizer):
        writer = NoteWriter(synchronizer, settings=Settings(max_content_size=10))

        with pytest.raises(ContentValidationError):
            await writer.create_note("Big", "x" * 11)


class TestUpdateNote:
    """Tests for update_note."""

    async def test_update_tags_keeps_body_and_extra(self, scanned, writer):
        before = scanned.index.get(PYTHON)

        note = await writer.update_note(PYTHON, tags=["snake"])

        assert note.tags == {"snake"}
        assert note.content == before.content
        assert note.extra == {"status": "evergreen"}
        assert note.updated_at > before.updated_at
        assert scanned.index.tags() >= {"snake"}
        assert PYTHON not in scanned.index.snapshot().by_tag("language")

    async def test_update_content_rewires_links(self, scanned, writer):
        """Test dropping a reference from the body removes the backlink."""
        note = await writer.update_note(PYTHON, content="\nNo more links.\n")

        assert note.raw_references == []
        assert scanned.index.backlinks_of(JAVASCRIPT) == {"sessions/2024-01-20_session_devsetup.md"}

    async def test_retitle_downgrades_title_references(self, scanned, writer):
        """Test references by the old title dangle after a retitle."""
        await writer.update_note(JAVASCRIPT, title="ECMAScript")

        links = scanned.index.forward_links_of(PYTHON)
        assert links[0].target_ref == "JavaScript"
        assert links[0].resolved is None
        assert scanned.index.verify() == []

    async def test_unknown_note(self, scanned, writer):
        with pytest.raises(NoteNotFoundError):
            await writer.update_note("missing.md", content="x")


class TestRenameAndDelete:
    """Tests for rename_note and delete_note."""

    async def test_rename_keeps_incoming_links(self, scanned, writer, temp_vault):
        note = await writer.rename_note(JAVASCRIPT, "JS Renamed")

        assert note.id == "concepts/js_renamed.md"
        assert not (temp_vault / "Concepts" / "C_JavaScript.md").exists()
        assert JAVASCRIPT not in scanned.index
        assert scanned.index.forward_links_of(PYTHON)[0].resolved == note.id

    async def test_rename_onto_existing_file(self, scanned, writer, temp_vault):
        (temp_vault / "Concepts" / "taken.md").write_text("# Taken\n", encoding="utf-8")

        with pytest.raises(NoteExistsError):
            await writer.rename_note(JAVASCRIPT, "Taken")

    async def test_delete(self, scanned, writer, temp_vault):
        await writer.delete_note(PYTHON)

        assert not (temp_vault / "Concepts" / "C_Python.md").exists()
        assert PYTHON not in scanned.index
        assert scanned.index.backlinks_of(PYTHON) == set()
        python_link = scanned.index.forward_links_of(JAVASCRIPT)[0]
        assert python_link.target_ref == "Python"
        assert python_link.resolved is None

    async def test_delete_unknown(self, scanned, writer):
        with pytest.raises(NoteNotFoundError):
            await writer.delete_note("missing.md")
