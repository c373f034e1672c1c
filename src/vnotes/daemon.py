"""Watcher daemon lifecycle: start, stop, status, auto-start.

The daemon is a detached ``python -m vnotes.watcher ROOT`` process. While it
runs it holds an exclusive flock on ``daemon.pid`` and keeps its pid in the
file; that lock, not the file's existence, is what "running" means. A pid
file left behind by a crashed daemon is unlocked and therefore reads as
stopped. A second daemon for the same root fails to take the lock and exits.
"""

from __future__ import annotations

import contextlib
import fcntl
import os
import signal
import subprocess
import sys
import time
from typing import TYPE_CHECKING

from vnotes.config import HOME_ENV
from vnotes.errors import Locked, StoreIOError

if TYPE_CHECKING:
    from collections.abc import Iterator

    from vnotes.config import NotesConfig

_STOP_WAIT = 5.0


# ---------------------------------------------------------------------------
# Liveness lock (held by the daemon process itself)
# ---------------------------------------------------------------------------

@contextlib.contextmanager
def hold_pid_file(cfg: NotesConfig) -> Iterator[None]:
    """Claim daemon.pid for this process. Raises Locked if another daemon holds it."""
    cfg.root.mkdir(parents=True, exist_ok=True)
    f = cfg.daemon_pid.open("a+")
    try:
        try:
            fcntl.flock(f, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            msg = f"Daemon already running for {cfg.root} (pid {running_pid(cfg)})"
            raise Locked(msg) from None
        f.seek(0)
        f.truncate()
        f.write(str(os.getpid()))
        f.flush()
        try:
            yield
        finally:
            f.seek(0)
            f.truncate()
            f.flush()
            fcntl.flock(f, fcntl.LOCK_UN)
    finally:
        f.close()


def running_pid(cfg: NotesConfig) -> int | None:
    """Pid of the live daemon, or None if nobody holds the liveness lock."""
    if not cfg.daemon_pid.exists():
        return None
    try:
        with cfg.daemon_pid.open() as f:
            try:
                fcntl.flock(f, fcntl.LOCK_SH | fcntl.LOCK_NB)
            except BlockingIOError:
                text = cfg.daemon_pid.read_text().strip()
                return int(text) if text.isdigit() else -1
            fcntl.flock(f, fcntl.LOCK_UN)
            return None
    except OSError:
        return None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def start_daemon(cfg: NotesConfig) -> int:
    """Launch the watcher as a background subprocess. Returns its pid."""
    cfg.ensure_dirs()
    env = {**os.environ, HOME_ENV: str(cfg.root)}
    try:
        with cfg.daemon_log.open("a") as log:
            proc = subprocess.Popen(
                [sys.executable, "-m", "vnotes.watcher", str(cfg.root)],
                stdin=subprocess.DEVNULL,
                stdout=log,
                stderr=log,
                env=env,
                start_new_session=True,
            )
    except OSError as exc:
        msg = f"Failed to start daemon: {exc}"
        raise StoreIOError(msg) from exc
    return proc.pid


def ensure_daemon(cfg: NotesConfig) -> str | None:
    """Start the daemon unless it runs already or auto-start is disabled.

    Returns a status line for display, or None when nothing was done.
    """
    if cfg.daemon_disabled:
        return None
    if running_pid(cfg) is not None:
        return None
    pid = start_daemon(cfg)
    return f"daemon started (pid {pid})"


def daemon_status(cfg: NotesConfig) -> str:
    pid = running_pid(cfg)
    if pid is None:
        return "stopped"
    return f"running (pid {pid})"


def stop_daemon(cfg: NotesConfig, wait: float = _STOP_WAIT) -> str:
    pid = running_pid(cfg)
    if pid is None:
        return "not running"
    if pid <= 0:
        return "running, but pid unknown; stop it manually"
    try:
        os.kill(pid, signal.SIGTERM)
    except ProcessLookupError:
        return "not running"
    deadline = time.monotonic() + wait
    while time.monotonic() < deadline:
        if running_pid(cfg) is None:
            return "stopped"
        time.sleep(0.1)
    return f"stop requested (pid {pid} still running)"
