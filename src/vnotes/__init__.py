"""Versioned note store: plain-file working copies, immutable numbered versions.

Layout (under $NOTES_HOME, default ~/.notes):
    index.json                  # {"notes": {slug: entry}} (single source of truth)
    versions/<slug>/0000001.md  # immutable, append-only
    files/<slug>.md             # the one editable working copy per note
    notes.lock                  # store write lock (flock)
    daemon.pid / daemon.log     # background watcher

Every write (new, open, rollback, daemon snapshot) is a transaction under the
store lock: version file first, working copy next, index last, each published
with an atomic rename. Reads (list, versions, search) take no lock.
"""

from vnotes.config import NotesConfig, load_config
from vnotes.engine import RollbackResult, SnapshotEngine
from vnotes.models import Note, VersionMeta
from vnotes.query import QueryLayer

__all__ = [
    "Note",
    "NotesConfig",
    "QueryLayer",
    "RollbackResult",
    "SnapshotEngine",
    "VersionMeta",
    "load_config",
]
