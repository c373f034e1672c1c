"""Watcher daemon: turns edits to working copies into snapshots.

Designed to run as a detached background process:
    python -m vnotes.watcher STORE_ROOT

Change events come from a pluggable source (inotify via inotify_simple on
Linux, mtime polling elsewhere) as (note_id, timestamp) pairs and feed a
per-note debounce state machine:

    Idle -> PendingCooldown(first_seen, last_seen) -> Committing -> Idle

A note is committed once it has been quiet for ``cooldown`` seconds, or
``max_delay`` seconds after the first event of a burst, whichever comes
first. Every further event restarts the quiet period. A failed commit goes
back to PendingCooldown with an exponential backoff; it never stops the loop.

SIGTERM/SIGINT stop the loop, SIGHUP reloads notes.toml.
"""

from __future__ import annotations

import logging
import signal
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from vnotes.config import load_config
from vnotes.daemon import hold_pid_file
from vnotes.engine import SnapshotEngine
from vnotes.errors import IndexCorrupt, Locked, NotFound, NotesError, StoreIOError, VersionConflict

if TYPE_CHECKING:
    from collections.abc import Callable

    from vnotes.config import DaemonConfig, NotesConfig
    from vnotes.working import WorkingCopyManager

logger = logging.getLogger("vnotes.watcher")

_MAX_WAIT = 1.0         # longest single blocking read, so signals are noticed promptly
_MIN_WAIT = 0.05

# ---------------------------------------------------------------------------
# Signals
# ---------------------------------------------------------------------------

# Mutable containers so signal handlers and loop can share state without globals.
_stop_state: list[bool] = [False]      # [0] = SIGTERM/SIGINT received
_reload_state: list[bool] = [False]    # [0] = SIGHUP reload requested


class _ReloadRequestedError(Exception):
    """Raised from within the watcher loop to trigger a config reload."""


def _handle_sigterm(signum: int, frame: object) -> None:  # noqa: ARG001
    _stop_state[0] = True
    logger.info("signal %d received, stopping", signum)


def _handle_sighup(signum: int, frame: object) -> None:  # noqa: ARG001
    _reload_state[0] = True
    logger.info("SIGHUP received, config reload requested")


# ---------------------------------------------------------------------------
# Event sources
# ---------------------------------------------------------------------------

@dataclass
class ChangeEvent:
    note_id: str
    at: float


class EventSource(Protocol):
    def read(self, timeout: float) -> list[ChangeEvent]: ...

    def close(self) -> None: ...


class InotifySource:
    """Watch files/ with inotify_simple (Linux)."""

    def __init__(self, working: WorkingCopyManager, clock: Callable[[], float] = time.monotonic) -> None:
        import inotify_simple  # type: ignore[import]

        self.working = working
        self.clock = clock
        self.inotify = inotify_simple.INotify()
        flags = inotify_simple.flags  # type: ignore[attr-defined]
        self.inotify.add_watch(str(working.files_dir), flags.CLOSE_WRITE | flags.MOVED_TO)
        logger.info("inotify watching %s", working.files_dir)

    def read(self, timeout: float) -> list[ChangeEvent]:
        events: list[ChangeEvent] = []
        for event in self.inotify.read(timeout=int(timeout * 1000)):
            if not event.name:
                continue
            note_id = self.working.note_id_for(self.working.files_dir / event.name)
            if note_id is not None:
                events.append(ChangeEvent(note_id, self.clock()))
        return events

    def close(self) -> None:
        self.inotify.close()


class PollingSource:
    """Fallback for macOS/Docker: compare working-copy mtimes every call."""

    def __init__(
        self,
        working: WorkingCopyManager,
        interval: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.working = working
        self.interval = interval
        self.clock = clock
        self.sleep = sleep
        self.seen: dict[str, tuple[int, int]] = self._scan()
        logger.info("polling %s interval=%.1fs", working.files_dir, interval)

    def _scan(self) -> dict[str, tuple[int, int]]:
        found: dict[str, tuple[int, int]] = {}
        if not self.working.files_dir.is_dir():
            return found
        for path in self.working.files_dir.iterdir():
            note_id = self.working.note_id_for(path)
            if note_id is None:
                continue
            try:
                st = path.stat()
            except OSError:
                continue
            found[note_id] = (st.st_mtime_ns, st.st_size)
        return found

    def read(self, timeout: float) -> list[ChangeEvent]:
        self.sleep(min(timeout, self.interval))
        current = self._scan()
        now = self.clock()
        changed = [
            ChangeEvent(note_id, now)
            for note_id, stamp in sorted(current.items())
            if self.seen.get(note_id) != stamp
        ]
        self.seen = current
        return changed

    def close(self) -> None:
        pass


def open_source(working: WorkingCopyManager, cfg: DaemonConfig) -> EventSource:
    try:
        return InotifySource(working)
    except ImportError:
        logger.warning("inotify_simple not available, falling back to polling")
    except OSError:
        logger.exception("inotify unavailable, falling back to polling")
    return PollingSource(working, interval=cfg.poll_interval)


# ---------------------------------------------------------------------------
# Debounce state machine
# ---------------------------------------------------------------------------

IDLE = "idle"
PENDING = "pending"
COMMITTING = "committing"


@dataclass
class _Pending:
    first_seen: float
    last_seen: float
    attempts: int = 0
    not_before: float = 0.0


class Debouncer:
    """Per-note cooldown timers. Pure bookkeeping: the caller supplies the clock."""

    def __init__(self, cfg: DaemonConfig) -> None:
        self.cfg = cfg
        self.pending: dict[str, _Pending] = {}
        self.committing: dict[str, _Pending] = {}

    def state(self, note_id: str) -> str:
        if note_id in self.committing:
            return COMMITTING
        if note_id in self.pending:
            return PENDING
        return IDLE

    def observe(self, note_id: str, at: float) -> None:
        entry = self.pending.get(note_id)
        if entry is None:
            self.pending[note_id] = _Pending(first_seen=at, last_seen=at)
        else:
            entry.last_seen = max(entry.last_seen, at)

    def _due_at(self, entry: _Pending) -> float:
        quiet = entry.last_seen + self.cfg.cooldown
        capped = entry.first_seen + self.cfg.max_delay
        return max(min(quiet, capped), entry.not_before)

    def due(self, now: float) -> list[str]:
        return sorted(nid for nid, entry in self.pending.items() if now >= self._due_at(entry))

    def next_deadline(self) -> float | None:
        if not self.pending:
            return None
        return min(self._due_at(entry) for entry in self.pending.values())

    def begin(self, note_id: str) -> None:
        self.committing[note_id] = self.pending.pop(note_id)

    def succeeded(self, note_id: str) -> None:
        self.committing.pop(note_id, None)

    def failed(self, note_id: str, now: float) -> float:
        """Reschedule after a failed commit. Returns the backoff applied."""
        entry = self.committing.pop(note_id, None) or self.pending.pop(note_id, None)
        attempts = (entry.attempts if entry else 0) + 1
        backoff = min(self.cfg.retry_backoff * 2 ** (attempts - 1), self.cfg.max_retry_backoff)
        self.pending[note_id] = _Pending(
            first_seen=now, last_seen=now, attempts=attempts, not_before=now + backoff,
        )
        return backoff

    def drop(self, note_id: str) -> None:
        self.pending.pop(note_id, None)
        self.committing.pop(note_id, None)


# ---------------------------------------------------------------------------
# Watcher
# ---------------------------------------------------------------------------

class Watcher:
    """Event loop gluing an event source, the debouncer and the snapshot engine."""

    def __init__(
        self,
        cfg: NotesConfig,
        source: EventSource | None = None,
        engine: SnapshotEngine | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.cfg = cfg
        self.engine = engine or SnapshotEngine(cfg, owner="daemon")
        self.source = source
        self.clock = clock
        self.debouncer = Debouncer(cfg.daemon)
        # note_id -> index mtime when auto-snapshotting was suspended
        self.suspended: dict[str, float | None] = {}

    def _index_mtime(self) -> float | None:
        try:
            return self.cfg.index_path.stat().st_mtime
        except OSError:
            return None

    def handle(self, event: ChangeEvent) -> None:
        if event.note_id in self.suspended:
            if self._index_mtime() == self.suspended[event.note_id]:
                logger.debug("ignoring change, snapshots suspended: %s", event.note_id)
                return
            logger.info("index changed, resuming snapshots: %s", event.note_id)
            del self.suspended[event.note_id]
        self.debouncer.observe(event.note_id, event.at)

    def tick(self, now: float | None = None) -> list[str]:
        """Commit every note whose cooldown has elapsed. Returns the notes committed."""
        now = self.clock() if now is None else now
        committed: list[str] = []
        for note_id in self.debouncer.due(now):
            if self._commit(note_id, now):
                committed.append(note_id)
        return committed

    def _commit(self, note_id: str, now: float) -> bool:
        self.debouncer.begin(note_id)
        try:
            number = self.engine.snapshot(note_id)
        except IndexCorrupt:
            logger.exception("index corrupt, suspending snapshots for %s until it is restored", note_id)
            self.debouncer.drop(note_id)
            self.suspended[note_id] = self._index_mtime()
            return False
        except NotFound:
            logger.warning("change to a file with no index entry ignored: %s", note_id)
            self.debouncer.drop(note_id)
            return False
        except (Locked, StoreIOError, VersionConflict) as exc:
            backoff = self.debouncer.failed(note_id, now)
            logger.warning("snapshot failed for %s (%s); retrying in %.1fs", note_id, exc, backoff)
            return False
        except Exception:
            backoff = self.debouncer.failed(note_id, now)
            logger.exception("snapshot failed for %s; retrying in %.1fs", note_id, backoff)
            return False
        self.debouncer.succeeded(note_id)
        if number is None:
            logger.debug("clean, nothing to commit: %s", note_id)
        else:
            logger.info("snapshot committed: %s v%d", note_id, number)
        return True

    def startup(self) -> list[str]:
        """Catch up on edits made while the daemon was not running."""
        try:
            updated = self.engine.snapshot_all()
        except NotesError:
            logger.exception("startup sync failed")
            return []
        if updated:
            logger.info("startup: updated %d note(s): %s", len(updated), ", ".join(updated))
        return updated

    def _wait_time(self) -> float:
        deadline = self.debouncer.next_deadline()
        if deadline is None:
            return _MAX_WAIT
        return min(max(deadline - self.clock(), _MIN_WAIT), _MAX_WAIT)

    def run_forever(self) -> None:
        if self.source is None:
            self.cfg.ensure_dirs()
            self.source = open_source(self.engine.working, self.cfg.daemon)
        self.startup()
        try:
            while not _stop_state[0]:
                for event in self.source.read(self._wait_time()):
                    self.handle(event)
                self.tick()
                if _reload_state[0]:
                    raise _ReloadRequestedError
        finally:
            self.source.close()


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def configure_logging(cfg: NotesConfig) -> None:
    cfg.root.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(name)s %(message)s",
        filename=str(cfg.daemon_log),
    )


def run_from_config(config_root: Path | None = None) -> None:
    """Hold the liveness lock and run the watcher until stopped."""
    if hasattr(signal, "SIGHUP"):
        signal.signal(signal.SIGHUP, _handle_sighup)
    signal.signal(signal.SIGTERM, _handle_sigterm)
    signal.signal(signal.SIGINT, _handle_sigterm)

    cfg = load_config(config_root)
    configure_logging(cfg)
    with hold_pid_file(cfg):
        logger.info("daemon started: root=%s cooldown=%.1fs", cfg.root, cfg.daemon.cooldown)
        while not _stop_state[0]:
            _reload_state[0] = False
            try:
                Watcher(cfg).run_forever()
            except _ReloadRequestedError:
                logger.info("reloading config from %s", cfg.config_path)
                cfg = load_config(cfg.root)
        logger.info("daemon stopped")


if __name__ == "__main__":
    root = Path(sys.argv[1]) if len(sys.argv) > 1 else None
    try:
        run_from_config(root)
    except NotesError as exc:
        logger.error("daemon exiting: %s", exc)
        sys.exit(exc.exit_code)
