"""NotesConfig: per-user config for the versioned note store.

Default layout (all relative to the store root, ``$NOTES_HOME`` or ``~/.notes``):

    notes.toml            # optional config
    index.json            # note -> entry mapping (single source of truth)
    index.json.bak        # previous index, copied before every overwrite
    notes.lock            # store write lock (flock) + holder record
    versions/
        <slug>/
            0000001.md    # immutable version files
    files/
        <slug>.md         # editable working copies
    daemon.pid            # watcher pid, flock-held while the daemon is alive
    daemon.log

notes.toml example:

    [daemon]
    cooldown = 30.0        # quiet period before a snapshot is committed
    max_delay = 300.0      # a continuous burst of edits never waits longer than this
    poll_interval = 1.0    # polling fallback interval
    retry_backoff = 5.0    # first retry delay after a failed commit

    [lock]
    timeout = 10.0         # seconds to wait for the store lock before giving up

    [editor]
    command = "subl"       # launched by `notes new` / `notes open` (NOTES_EDITOR overrides)
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from vnotes.errors import ConfigError

_CONFIG_FILENAME = "notes.toml"
_DEFAULT_ROOT = "~/.notes"

HOME_ENV = "NOTES_HOME"
DISABLE_DAEMON_ENV = "NOTES_DISABLE_DAEMON"
EDITOR_ENV = "NOTES_EDITOR"

NOTE_EXTENSION = ".md"


@dataclass
class DaemonConfig:
    cooldown: float = 30.0
    max_delay: float = 300.0
    poll_interval: float = 1.0
    retry_backoff: float = 5.0
    max_retry_backoff: float = 300.0


@dataclass
class LockConfig:
    timeout: float = 10.0
    poll: float = 0.05


@dataclass
class EditorConfig:
    command: str = ""


@dataclass
class NotesConfig:
    """Resolved configuration for a note store."""

    root: Path
    daemon: DaemonConfig = field(default_factory=DaemonConfig)
    lock: LockConfig = field(default_factory=LockConfig)
    editor: EditorConfig = field(default_factory=EditorConfig)
    daemon_disabled: bool = False

    @property
    def index_path(self) -> Path:
        return self.root / "index.json"

    @property
    def index_backup_path(self) -> Path:
        return self.root / "index.json.bak"

    @property
    def versions_dir(self) -> Path:
        return self.root / "versions"

    @property
    def files_dir(self) -> Path:
        return self.root / "files"

    @property
    def lock_path(self) -> Path:
        return self.root / "notes.lock"

    @property
    def daemon_pid(self) -> Path:
        return self.root / "daemon.pid"

    @property
    def daemon_log(self) -> Path:
        return self.root / "daemon.log"

    @property
    def config_path(self) -> Path:
        return self.root / _CONFIG_FILENAME

    def ensure_dirs(self) -> None:
        """Create root, versions/ and files/ if they don't exist."""
        self.root.mkdir(parents=True, exist_ok=True)
        self.versions_dir.mkdir(parents=True, exist_ok=True)
        self.files_dir.mkdir(parents=True, exist_ok=True)


def default_root() -> Path:
    env_root = os.environ.get(HOME_ENV)
    if env_root:
        return Path(env_root).expanduser()
    return Path(_DEFAULT_ROOT).expanduser()


def load_config(root: Path | str | None = None) -> NotesConfig:
    """Resolve the store root and read notes.toml from it if present."""
    root_path = Path(root).expanduser() if root else default_root()
    config_path = root_path / _CONFIG_FILENAME

    raw: dict[str, Any] = {}
    if config_path.exists():
        try:
            with config_path.open("rb") as f:
                raw = tomllib.load(f)
        except tomllib.TOMLDecodeError as exc:
            msg = f"Invalid config {config_path}: {exc}"
            raise ConfigError(msg) from exc

    daemon_section = raw.get("daemon", {})
    lock_section = raw.get("lock", {})
    editor_section = raw.get("editor", {})

    try:
        daemon = DaemonConfig(
            cooldown=float(daemon_section.get("cooldown", 30.0)),
            max_delay=float(daemon_section.get("max_delay", 300.0)),
            poll_interval=float(daemon_section.get("poll_interval", 1.0)),
            retry_backoff=float(daemon_section.get("retry_backoff", 5.0)),
            max_retry_backoff=float(daemon_section.get("max_retry_backoff", 300.0)),
        )
        lock = LockConfig(
            timeout=float(lock_section.get("timeout", 10.0)),
            poll=float(lock_section.get("poll", 0.05)),
        )
    except (TypeError, ValueError) as exc:
        msg = f"Invalid value in {config_path}: {exc}"
        raise ConfigError(msg) from exc

    # NOTES_EDITOR overrides notes.toml
    editor_cmd = os.environ.get(EDITOR_ENV) or str(editor_section.get("command", ""))

    return NotesConfig(
        root=root_path,
        daemon=daemon,
        lock=lock,
        editor=EditorConfig(command=editor_cmd),
        daemon_disabled=DISABLE_DAEMON_ENV in os.environ,
    )
