"""Append-only version repository.

Layout:
    versions/<slug>/0000001.md
    versions/<slug>/0000002.md
    ...

A version file is written once and never touched again. The next number is
taken from the index entry's counter (the caller holds the store lock), not
from a directory scan.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from vnotes.config import NOTE_EXTENSION
from vnotes.errors import StoreIOError, VersionConflict, VersionNotFound
from vnotes.fsutil import create_exclusive, is_temp_file
from vnotes.models import VersionMeta, hash_bytes, now_iso

if TYPE_CHECKING:
    from pathlib import Path

    from vnotes.config import NotesConfig
    from vnotes.models import Note

logger = logging.getLogger("vnotes.versions")

_NUMBER_WIDTH = 7


@dataclass
class VersionFile:
    """A version file found on disk."""

    number: int
    path: Path

    @property
    def mtime_iso(self) -> str:
        return datetime.fromtimestamp(self.path.stat().st_mtime, UTC).isoformat()


class VersionRepository:
    def __init__(self, cfg: NotesConfig) -> None:
        self.root = cfg.root
        self.versions_dir = cfg.versions_dir

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def note_dir(self, note_id: str) -> Path:
        return self.versions_dir / note_id

    def version_path(self, note_id: str, number: int) -> Path:
        return self.note_dir(note_id) / f"{number:0{_NUMBER_WIDTH}d}{NOTE_EXTENSION}"

    def relative_path(self, note_id: str, number: int) -> str:
        return self.version_path(note_id, number).relative_to(self.root).as_posix()

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def write_version(self, note: Note, content: bytes) -> VersionMeta:
        """Write ``content`` as version ``note.current_version + 1``.

        Does not touch the index entry; the caller records the returned meta.
        """
        number = note.current_version + 1
        path = self.version_path(note.slug, number)
        try:
            create_exclusive(path, content)
        except FileExistsError as exc:
            msg = f"Version {number} of {note.slug} already exists at {path}"
            raise VersionConflict(msg) from exc
        except OSError as exc:
            msg = f"Failed to write {path}: {exc}"
            raise StoreIOError(msg) from exc
        logger.info("version written: %s v%d (%d bytes)", note.slug, number, len(content))
        return VersionMeta(
            version=number,
            path=self.relative_path(note.slug, number),
            hash=hash_bytes(content),
            created_at=now_iso(),
        )

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def read_version(self, note_id: str, number: int) -> bytes:
        path = self.version_path(note_id, number)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            msg = f"Version {number} of {note_id} not found"
            raise VersionNotFound(msg) from None
        except OSError as exc:
            msg = f"Failed to read {path}: {exc}"
            raise StoreIOError(msg) from exc

    def read_text(self, note_id: str, number: int) -> str:
        return self.read_version(note_id, number).decode("utf-8", errors="replace")

    def list_versions(self, note_id: str) -> list[VersionFile]:
        """Version files on disk, ascending by number."""
        note_dir = self.note_dir(note_id)
        if not note_dir.is_dir():
            return []
        found: list[VersionFile] = []
        for path in note_dir.iterdir():
            if is_temp_file(path) or path.suffix != NOTE_EXTENSION or not path.stem.isdigit():
                continue
            found.append(VersionFile(number=int(path.stem), path=path))
        return sorted(found, key=lambda v: v.number)

    def untracked_versions(self, note: Note) -> list[VersionMeta]:
        """Version files contiguous beyond the entry's pointer.

        These exist only if a snapshot wrote its file but died before the
        index was saved. The returned metas can be recorded as-is.
        """
        adopted: list[VersionMeta] = []
        number = note.current_version + 1
        path = self.version_path(note.slug, number)
        while path.exists():
            try:
                content = path.read_bytes()
                mtime = VersionFile(number=number, path=path).mtime_iso
            except OSError as exc:
                msg = f"Failed to read {path}: {exc}"
                raise StoreIOError(msg) from exc
            adopted.append(VersionMeta(
                version=number,
                path=self.relative_path(note.slug, number),
                hash=hash_bytes(content),
                created_at=mtime,
            ))
            number += 1
            path = self.version_path(note.slug, number)
        return adopted
