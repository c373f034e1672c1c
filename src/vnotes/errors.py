"""Error taxonomy for the note store.

Every error carries an ``exit_code`` so the CLI can map it to a process
status without a lookup table. Exit code 2 is left to click usage errors.
"""

from __future__ import annotations


class NotesError(Exception):
    """Base class for all store errors."""

    exit_code = 1


class NotFound(NotesError):
    """A title or id does not resolve to a note."""

    exit_code = 3


class AmbiguousTitle(NotFound):
    """A title matches more than one note."""

    def __init__(self, title: str, candidates: list[str]) -> None:
        self.title = title
        self.candidates = candidates
        super().__init__(f"Multiple notes match title {title!r}: {', '.join(candidates)}")


class VersionNotFound(NotesError):
    exit_code = 4


class IndexCorrupt(NotesError):
    """The persisted index cannot be parsed. Recoverable via `notes restore-index`."""

    exit_code = 5


class StoreIOError(NotesError):
    """Filesystem failure on read, write or rename."""

    exit_code = 6


class Locked(NotesError):
    """The store lock is held elsewhere and the bounded wait ran out."""

    exit_code = 7


class VersionConflict(NotesError):
    """A version file already exists where a new one was about to be written.

    Never expected under correct locking; treat as a bug.
    """

    exit_code = 8


class ConfigError(NotesError):
    exit_code = 9
