"""Index store: the single JSON document mapping note ids to their entries.

    store = IndexStore(cfg)
    notes = store.load()              # {slug: Note}
    store.upsert("ideas", note)       # in-memory only
    store.save()                      # backup, then atomic replace

Readers never lock: ``save`` publishes the document with one rename, so a
single ``read_bytes`` always sees either the old or the new index.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from vnotes.errors import AmbiguousTitle, IndexCorrupt, NotFound, StoreIOError
from vnotes.fsutil import atomic_write
from vnotes.models import Note, slugify

if TYPE_CHECKING:
    from collections.abc import Callable

    from vnotes.config import NotesConfig

logger = logging.getLogger("vnotes.index")


class IndexStore:
    """JSON-backed note index."""

    def __init__(self, cfg: NotesConfig) -> None:
        self.path = cfg.index_path
        self.backup_path = cfg.index_backup_path
        self.notes: dict[str, Note] = {}

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> dict[str, Note]:
        """Read the whole document in one pass. Missing file means empty store."""
        if not self.path.exists():
            self.notes = {}
            return self.notes
        try:
            raw = self.path.read_bytes()
        except OSError as exc:
            msg = f"Failed to read {self.path}: {exc}"
            raise StoreIOError(msg) from exc
        self.notes = self._parse(raw)
        return self.notes

    def _parse(self, raw: bytes) -> dict[str, Note]:
        try:
            doc: dict[str, Any] = json.loads(raw)
            entries = doc.get("notes", {})
            notes = {slug: Note.from_dict({**entry, "slug": entry.get("slug", slug)}) for slug, entry in entries.items()}
        except (ValueError, TypeError, KeyError, AttributeError) as exc:
            msg = (
                f"Failed to parse {self.path}: {exc}. "
                f"Run `notes restore-index` to restore {self.backup_path.name}."
            )
            raise IndexCorrupt(msg) from exc
        return notes

    def save(self, notes: dict[str, Note] | None = None) -> None:
        """Durably replace the index. The previous document is kept as index.json.bak."""
        if notes is not None:
            self.notes = notes
        doc = {"notes": {slug: note.to_dict() for slug, note in sorted(self.notes.items())}}
        data = (json.dumps(doc, indent=2) + "\n").encode()
        try:
            if self.path.exists():
                atomic_write(self.backup_path, self.path.read_bytes())
            atomic_write(self.path, data)
        except OSError as exc:
            msg = f"Failed to write {self.path}: {exc}"
            raise StoreIOError(msg) from exc
        logger.debug("index saved: %d notes", len(self.notes))

    def restore_backup(self) -> int:
        """Replace a corrupt index with index.json.bak. Returns the number of notes restored."""
        if not self.backup_path.exists():
            msg = f"No backup at {self.backup_path}"
            raise NotFound(msg)
        try:
            raw = self.backup_path.read_bytes()
        except OSError as exc:
            msg = f"Failed to read {self.backup_path}: {exc}"
            raise StoreIOError(msg) from exc
        notes = self._parse(raw)
        try:
            atomic_write(self.path, raw)
        except OSError as exc:
            msg = f"Failed to write {self.path}: {exc}"
            raise StoreIOError(msg) from exc
        self.notes = notes
        logger.info("index restored from %s (%d notes)", self.backup_path, len(notes))
        return len(notes)

    # ------------------------------------------------------------------
    # In-memory access
    # ------------------------------------------------------------------

    def upsert(self, note_id: str, entry: Note) -> None:
        self.notes[note_id] = entry

    def get(self, note_id: str) -> Note:
        try:
            return self.notes[note_id]
        except KeyError:
            msg = f"Note not found: {note_id}"
            raise NotFound(msg) from None

    def unique_slug(self, title: str, occupied: Callable[[str], bool] | None = None) -> str:
        """slugify(title), suffixed -2, -3, ... until it is unused.

        ``occupied`` reports slugs that are taken outside the index, e.g. files
        left on disk by notes the index no longer lists.
        """
        base = slugify(title)
        slug = base
        counter = 1
        while slug in self.notes or (occupied is not None and occupied(slug)):
            counter += 1
            slug = f"{base}-{counter}"
        return slug

    def resolve(self, identifier: str) -> Note:
        """Exact id, then case-insensitive title, then the slug of the identifier."""
        if identifier in self.notes:
            return self.notes[identifier]

        wanted = identifier.strip().lower()
        by_title = sorted(
            (n for n in self.notes.values() if n.title.lower() == wanted),
            key=lambda n: n.slug,
        )
        if len(by_title) == 1:
            return by_title[0]
        if len(by_title) > 1:
            raise AmbiguousTitle(identifier, [n.slug for n in by_title])

        slug = slugify(identifier)
        if slug in self.notes:
            return self.notes[slug]

        msg = f"Note not found: {identifier}"
        raise NotFound(msg)
