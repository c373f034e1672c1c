from pathlib import Path

import pytest

from vnotes.config import load_config
from vnotes.errors import ConfigError


def test_defaults_from_notes_home(tmp_path):
    cfg = load_config()
    assert cfg.root == tmp_path / "home"
    assert cfg.index_path == tmp_path / "home" / "index.json"
    assert cfg.versions_dir == tmp_path / "home" / "versions"
    assert cfg.files_dir == tmp_path / "home" / "files"
    assert cfg.daemon_log == tmp_path / "home" / "daemon.log"
    assert cfg.daemon.cooldown == 30.0
    assert cfg.daemon_disabled


def test_default_root_without_env(monkeypatch):
    monkeypatch.delenv("NOTES_HOME")
    monkeypatch.delenv("NOTES_DISABLE_DAEMON")
    cfg = load_config()
    assert cfg.root == Path("~/.notes").expanduser()
    assert not cfg.daemon_disabled


def test_notes_toml(tmp_path):
    root = tmp_path / "store"
    root.mkdir()
    (root / "notes.toml").write_text(
        '[daemon]\ncooldown = 2.5\nmax_delay = 10\n[lock]\ntimeout = 3\n[editor]\ncommand = "subl -n"\n'
    )
    cfg = load_config(root)
    assert cfg.daemon.cooldown == 2.5
    assert cfg.daemon.max_delay == 10.0
    assert cfg.lock.timeout == 3.0
    assert cfg.editor.command == "subl -n"


def test_editor_env_overrides_toml(tmp_path, monkeypatch):
    root = tmp_path / "store"
    root.mkdir()
    (root / "notes.toml").write_text('[editor]\ncommand = "subl"\n')
    monkeypatch.setenv("NOTES_EDITOR", "vim")
    assert load_config(root).editor.command == "vim"


def test_invalid_toml(tmp_path):
    root = tmp_path / "store"
    root.mkdir()
    (root / "notes.toml").write_text("[daemon\n")
    with pytest.raises(ConfigError):
        load_config(root)


def test_invalid_value(tmp_path):
    root = tmp_path / "store"
    root.mkdir()
    (root / "notes.toml").write_text('[daemon]\ncooldown = "soon"\n')
    with pytest.raises(ConfigError):
        load_config(root)
