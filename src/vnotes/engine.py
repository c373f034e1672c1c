"""Snapshot engine: every state-changing operation on the store.

Each public method is one transaction under the store lock:

    1. acquire the lock
    2. re-read the index (adopting version files a crashed writer left
       beyond the recorded pointer) and the working copy
    3. write version files / working copies
    4. save the index
    5. release the lock

A version file is always written before the index points at it, so a crash
between 3 and 4 leaves an untracked file that the next transaction adopts.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from vnotes.errors import VersionNotFound
from vnotes.index import IndexStore
from vnotes.locking import StoreLock
from vnotes.models import Note
from vnotes.versions import VersionRepository
from vnotes.working import WorkingCopyManager

if TYPE_CHECKING:
    from pathlib import Path

    from vnotes.config import NotesConfig

logger = logging.getLogger("vnotes.engine")


@dataclass
class RollbackResult:
    path: Path
    restored_from: int
    version: int                       # the new version holding the restored content
    preserved: int | None = None       # version created from unsaved edits, if any


class SnapshotEngine:
    """Store-level transactions shared by the CLI and the watcher."""

    def __init__(self, cfg: NotesConfig, owner: str = "cli") -> None:
        self.cfg = cfg
        self.owner = owner
        self.index = IndexStore(cfg)
        self.versions = VersionRepository(cfg)
        self.working = WorkingCopyManager(cfg, self.versions)
        self.lock = StoreLock(cfg.lock_path, timeout=cfg.lock.timeout, poll=cfg.lock.poll)

    # ------------------------------------------------------------------
    # Transaction helpers
    # ------------------------------------------------------------------

    def _load(self) -> bool:
        """Load the index and adopt untracked version files. Returns True if anything was adopted."""
        self.cfg.ensure_dirs()
        notes = self.index.load()
        healed = False
        for note in notes.values():
            for meta in self.versions.untracked_versions(note):
                logger.warning(
                    "index behind version files: adopting %s v%d", note.slug, meta.version,
                )
                note.record_version(meta)
                healed = True
        return healed

    def reconcile(self) -> bool:
        """Persist any index repair. Returns True if the index was behind."""
        with self.lock.acquire(self.owner):
            healed = self._load()
            if healed:
                self.index.save()
            return healed

    def _slug_on_disk(self, slug: str) -> bool:
        return self.working.path_for(slug).exists() or self.versions.note_dir(slug).exists()

    def _snapshot_locked(self, note: Note) -> int | None:
        self.working.ensure(note)
        content = self.working.read(note.slug)
        if not self.working.is_dirty(note, content):
            return None
        meta = self.versions.write_version(note, content)
        note.record_version(meta)
        return meta.version

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def create_note(self, title: str | None = None) -> Note:
        """Register a note with an empty working copy and no versions."""
        stamp = datetime.now(UTC)
        title = title or f"note-{stamp:%Y%m%d-%H%M%S}"
        with self.lock.acquire(self.owner):
            self._load()
            slug = self.index.unique_slug(title, occupied=self._slug_on_disk)
            self.working.create(slug)
            created = stamp.isoformat()
            note = Note(slug=slug, title=title, created_at=created, updated_at=created)
            self.index.upsert(slug, note)
            self.index.save()
        logger.info("note created: %s (%r)", slug, title)
        return note

    def snapshot(self, note_id: str) -> int | None:
        """Commit the working copy as a new version if it is dirty.

        Returns the new version number, or None if the working copy was clean.
        """
        with self.lock.acquire(self.owner):
            healed = self._load()
            note = self.index.get(note_id)
            number = self._snapshot_locked(note)
            if number is not None or healed:
                self.index.save()
        if number is not None:
            logger.info("snapshot: %s v%d", note_id, number)
        return number

    def snapshot_all(self) -> list[str]:
        """Snapshot every dirty note in one transaction. Returns the slugs updated."""
        updated: list[str] = []
        with self.lock.acquire(self.owner):
            healed = self._load()
            for slug in sorted(self.index.notes):
                if self._snapshot_locked(self.index.notes[slug]) is not None:
                    updated.append(slug)
            if updated or healed:
                self.index.save()
        return updated

    def open_note(self, identifier: str) -> Path:
        """Resolve a note, snapshot pending edits, and return its working copy."""
        with self.lock.acquire(self.owner):
            healed = self._load()
            note = self.index.resolve(identifier)
            number = self._snapshot_locked(note)
            if number is not None or healed:
                self.index.save()
        if number is not None:
            logger.info("snapshot on open: %s v%d", note.slug, number)
        return self.working.path_for(note.slug)

    def rollback(self, identifier: str, version: int | None = None) -> RollbackResult:
        """Append a copy of an earlier version and make it the working copy.

        ``version=None`` means the version before the latest. Unsaved edits in
        the working copy are committed first so they are never lost. History is
        never rewritten: the restored content always lands in a new version.
        """
        with self.lock.acquire(self.owner):
            self._load()
            note = self.index.resolve(identifier)

            target = version if version is not None else note.current_version - 1
            if target < 1 or target > note.current_version or note.get_version(target) is None:
                if version is None:
                    msg = f"No previous version of {note.slug} to roll back to"
                else:
                    msg = f"Version {target} of {note.slug} not found"
                raise VersionNotFound(msg)
            content = self.versions.read_version(note.slug, target)

            preserved = self._snapshot_locked(note)
            if preserved is not None:
                logger.info("rollback preserved unsaved edits: %s v%d", note.slug, preserved)

            meta = self.versions.write_version(note, content)
            note.record_version(meta)
            # Working copy before index: if the save fails, the adopted version
            # matches the working copy and nothing reads as dirty.
            path = self.working.replace_with(note.slug, content)
            self.index.save()

        logger.info("rollback: %s v%d -> v%d", note.slug, target, meta.version)
        return RollbackResult(path=path, restored_from=target, version=meta.version, preserved=preserved)

    def restore_index(self) -> int:
        with self.lock.acquire(self.owner):
            return self.index.restore_backup()

