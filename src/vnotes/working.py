"""Working copies: the one editable file per note, files/<slug>.md."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from vnotes.config import NOTE_EXTENSION
from vnotes.errors import StoreIOError
from vnotes.fsutil import atomic_write, is_temp_file
from vnotes.models import hash_bytes

if TYPE_CHECKING:
    from pathlib import Path

    from vnotes.config import NotesConfig
    from vnotes.models import Note
    from vnotes.versions import VersionRepository

logger = logging.getLogger("vnotes.working")


class WorkingCopyManager:
    def __init__(self, cfg: NotesConfig, versions: VersionRepository) -> None:
        self.files_dir = cfg.files_dir
        self.versions = versions

    def path_for(self, note_id: str) -> Path:
        return self.files_dir / f"{note_id}{NOTE_EXTENSION}"

    def note_id_for(self, path: Path) -> str | None:
        """Inverse of path_for; None for anything that is not a working copy."""
        if path.parent != self.files_dir or path.suffix != NOTE_EXTENSION or is_temp_file(path):
            return None
        return path.stem

    def create(self, note_id: str, seed: bytes = b"") -> Path:
        path = self.path_for(note_id)
        self._write(path, seed)
        return path

    def ensure(self, note: Note) -> Path:
        """Recreate a deleted working copy from the latest version (or empty)."""
        path = self.path_for(note.slug)
        if path.exists():
            return path
        seed = b""
        if note.current_version:
            seed = self.versions.read_version(note.slug, note.current_version)
        logger.info("working copy missing, restored: %s", path)
        self._write(path, seed)
        return path

    def read(self, note_id: str) -> bytes:
        path = self.path_for(note_id)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return b""
        except OSError as exc:
            msg = f"Failed to read {path}: {exc}"
            raise StoreIOError(msg) from exc

    def is_dirty(self, note: Note, content: bytes | None = None) -> bool:
        """Working copy differs from the latest version.

        A note with no versions yet is dirty only once it has content.
        """
        if content is None:
            content = self.read(note.slug)
        latest = note.latest
        if latest is None:
            return len(content) > 0
        if latest.hash:
            return hash_bytes(content) != latest.hash
        return content != self.versions.read_version(note.slug, latest.version)

    def replace_with(self, note_id: str, content: bytes) -> Path:
        """Atomically overwrite the working copy."""
        path = self.path_for(note_id)
        self._write(path, content)
        return path

    def _write(self, path: Path, content: bytes) -> None:
        try:
            atomic_write(path, content)
        except OSError as exc:
            msg = f"Failed to write {path}: {exc}"
            raise StoreIOError(msg) from exc
