"""
Reference extraction for the Memoria knowledge base.

Finds note-to-note references in a body and produces the lookup keys the
index resolves them with. Resolution itself needs the whole note set and
lives in ``memoria.index``.
"""

import re
from collections.abc import Iterable
from pathlib import Path

from pydantic import BaseModel, ConfigDict

# [[Target]], [[Target|alias]], [[Target#Heading]], ![[Target]]
WIKILINK_PATTERN = re.compile(r'!?\[\[([^\[\]|#\n]+)(?:#[^\[\]|\n]*)?(?:\|[^\[\]\n]*)?\]\]')
SLUG_SPACE_PATTERN = re.compile(r'[\s_]+')
SLUG_STRIP_PATTERN = re.compile(r'[^\w/-]', re.UNICODE)
SLUG_DASH_PATTERN = re.compile(r'-+')

TITLE_KEY = "title:"
SLUG_KEY = "slug:"


class ReferenceSyntax(BaseModel):
    """Inline reference grammar: the first group of ``pattern`` is the raw target."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    name: str
    pattern: re.Pattern


WIKILINK_SYNTAX = ReferenceSyntax(name="wikilink", pattern=WIKILINK_PATTERN)
DEFAULT_SYNTAX = WIKILINK_SYNTAX


def extract_references(body: str, syntax: ReferenceSyntax = DEFAULT_SYNTAX) -> list[str]:
    """Return raw reference targets in first-occurrence order, each target once."""
    seen: set[str] = set()
    references: list[str] = []
    for match in syntax.pattern.finditer(body):
        target = match.group(1).strip()
        if target and target not in seen:
            seen.add(target)
            references.append(target)
    return references


def slugify(text: str) -> str:
    """Convert text to a slug: lower-case, hyphen-separated, '/' kept between path segments."""
    slug = text.strip().lower().replace("\\", "/")
    slug = SLUG_SPACE_PATTERN.sub("-", slug)
    slug = SLUG_STRIP_PATTERN.sub("", slug)
    slug = SLUG_DASH_PATTERN.sub("-", slug)
    return "/".join(part.strip("-") for part in slug.split("/") if part.strip("-"))


def strip_note_suffix(ref: str, extensions: Iterable[str]) -> str:
    """Drop a trailing note extension from a path-like reference."""
    lowered = ref.lower()
    for ext in extensions:
        if lowered.endswith(f".{ext}"):
            return ref[: -(len(ext) + 1)]
    return ref


def lookup_keys(ref: str, extensions: Iterable[str] = ("md", "markdown")) -> tuple[str, str | None]:
    """Return the (title key, slug key) a raw reference is resolved by.

    The slug key is None when the reference has no sluggable characters.
    """
    title_key = TITLE_KEY + ref.strip().lower()
    slug = slugify(strip_note_suffix(ref.strip(), extensions))
    return title_key, (SLUG_KEY + slug if slug else None)


def note_keys(title: str, rel_path: Path) -> set[str]:
    """Return every key under which a note can be referenced.

    A note answers to its lower-cased title, and to the slug of its title,
    file stem, and root-relative path without suffix.
    """
    keys = {TITLE_KEY + title.strip().lower()}
    for text in (title, rel_path.stem, rel_path.with_suffix("").as_posix()):
        slug = slugify(text)
        if slug:
            keys.add(SLUG_KEY + slug)
    return keys
