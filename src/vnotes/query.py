"""Read-only queries: note listing, version history, text search.

Nothing here takes the store lock. Each call reads the index document in one
pass, which the atomic rename in IndexStore.save makes consistent.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from vnotes.errors import StoreIOError, VersionNotFound
from vnotes.index import IndexStore
from vnotes.versions import VersionRepository
from vnotes.working import WorkingCopyManager

if TYPE_CHECKING:
    from pathlib import Path

    from vnotes.config import NotesConfig
    from vnotes.models import Note

logger = logging.getLogger("vnotes.query")

_EXCERPT_RADIUS = 40


@dataclass
class NoteSummary:
    id: str
    title: str
    latest_version: int
    version_count: int
    path: Path


@dataclass
class VersionInfo:
    number: int
    path: Path
    created_at: str
    latest: bool = False


@dataclass
class SearchHit:
    id: str
    title: str
    version: int
    excerpt: str


def excerpt(text: str, start: int, length: int, radius: int = _EXCERPT_RADIUS) -> str:
    """One-line snippet around text[start:start+length]."""
    lo = max(0, start - radius)
    hi = min(len(text), start + length + radius)
    snippet = re.sub(r"\s+", " ", text[lo:hi]).strip()
    if lo > 0:
        snippet = "…" + snippet
    if hi < len(text):
        snippet += "…"
    return snippet


class QueryLayer:
    def __init__(self, cfg: NotesConfig) -> None:
        self.index = IndexStore(cfg)
        self.versions = VersionRepository(cfg)
        self.working = WorkingCopyManager(cfg, self.versions)

    def _load(self) -> dict[str, Note]:
        """Index as read, plus version files written after its last save (in memory only)."""
        notes = self.index.load()
        for note in notes.values():
            for meta in self.versions.untracked_versions(note):
                note.record_version(meta)
        return notes

    def _sorted_notes(self) -> list[Note]:
        notes = self._load()
        return sorted(notes.values(), key=lambda n: (n.title.lower(), n.slug))

    def list_notes(self) -> list[NoteSummary]:
        return [
            NoteSummary(
                id=note.slug,
                title=note.title,
                latest_version=note.current_version,
                version_count=len(note.versions),
                path=self.working.path_for(note.slug),
            )
            for note in self._sorted_notes()
        ]

    def note_ids(self) -> list[str]:
        return sorted(self.index.load())

    def resolve(self, identifier: str) -> Note:
        self._load()
        return self.index.resolve(identifier)

    def list_versions(self, identifier: str) -> tuple[Note, list[VersionInfo]]:
        """Version files of a note, ascending; timestamps from the index where recorded."""
        note = self.resolve(identifier)
        infos: list[VersionInfo] = []
        for vf in self.versions.list_versions(note.slug):
            meta = note.get_version(vf.number)
            created = meta.created_at if meta and meta.created_at else vf.mtime_iso
            infos.append(VersionInfo(
                number=vf.number,
                path=vf.path,
                created_at=created,
                latest=vf.number == note.current_version,
            ))
        return note, infos

    def search(self, query: str) -> list[SearchHit]:
        """Case-insensitive substring scan over each note's latest version only."""
        pattern = re.compile(re.escape(query), re.IGNORECASE)
        hits: list[SearchHit] = []
        for note in self._sorted_notes():
            if not note.current_version:
                continue
            try:
                text = self.versions.read_text(note.slug, note.current_version)
            except (VersionNotFound, StoreIOError) as exc:
                logger.warning("search: skipping %s: %s", note.slug, exc)
                continue
            match = pattern.search(text)
            if match is None:
                continue
            hits.append(SearchHit(
                id=note.slug,
                title=note.title,
                version=note.current_version,
                excerpt=excerpt(text, match.start(), len(match.group())),
            ))
        return hits
