"""Store-wide write lock.

Every snapshot transaction, from the CLI or the daemon, runs under an
exclusive ``flock`` on ``notes.lock``. Waiting is bounded: after
``timeout`` seconds the caller gets ``Locked`` with whatever holder record
the current owner left in the file. The kernel releases the lock when the
holding process dies, so a crashed holder never leaves it stuck.
"""

from __future__ import annotations

import contextlib
import fcntl
import json
import logging
import os
import time
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from vnotes.errors import Locked, StoreIOError

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

logger = logging.getLogger("vnotes.locking")


class StoreLock:
    def __init__(self, path: Path, timeout: float = 10.0, poll: float = 0.05) -> None:
        self.path = path
        self.timeout = timeout
        self.poll = poll

    def holder(self) -> dict[str, Any] | None:
        """The last recorded holder, or None if the file is empty or unreadable."""
        try:
            text = self.path.read_text().strip()
            return json.loads(text) if text else None
        except (OSError, ValueError):
            return None

    def _describe_holder(self) -> str:
        info = self.holder()
        if not info:
            return "unknown holder"
        since = info.get("acquired_at", "?")
        age = ""
        with contextlib.suppress(TypeError, ValueError):
            held = (datetime.now(UTC) - datetime.fromisoformat(since)).total_seconds()
            age = f", {held:.1f}s ago"
        return f"pid {info.get('pid', '?')} ({info.get('owner', '?')}) since {since}{age}"

    @contextlib.contextmanager
    def acquire(self, owner: str = "cli", timeout: float | None = None) -> Iterator[None]:
        """Hold the lock for the duration of the block. Released on every exit path."""
        wait = self.timeout if timeout is None else timeout
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            f = self.path.open("a+")
        except OSError as exc:
            msg = f"Failed to open lock {self.path}: {exc}"
            raise StoreIOError(msg) from exc

        try:
            deadline = time.monotonic() + wait
            while True:
                try:
                    fcntl.flock(f, fcntl.LOCK_EX | fcntl.LOCK_NB)
                    break
                except BlockingIOError:
                    if time.monotonic() >= deadline:
                        msg = f"Store is locked by {self._describe_holder()}; gave up after {wait:.1f}s"
                        raise Locked(msg) from None
                    time.sleep(self.poll)

            try:
                f.seek(0)
                f.truncate()
                f.write(json.dumps({
                    "pid": os.getpid(),
                    "owner": owner,
                    "acquired_at": datetime.now(UTC).isoformat(),
                }))
                f.flush()
                logger.debug("lock acquired by %s", owner)
                yield
            finally:
                with contextlib.suppress(OSError):
                    f.seek(0)
                    f.truncate()
                    f.flush()
                fcntl.flock(f, fcntl.LOCK_UN)
                logger.debug("lock released by %s", owner)
        finally:
            f.close()
