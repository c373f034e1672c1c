import pytest

from vnotes.config import LockConfig, NotesConfig
from vnotes.engine import SnapshotEngine


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    monkeypatch.setenv("NOTES_DISABLE_DAEMON", "1")
    monkeypatch.setenv("NOTES_HOME", str(tmp_path / "home"))
    monkeypatch.delenv("NOTES_EDITOR", raising=False)


@pytest.fixture
def cfg(tmp_path):
    c = NotesConfig(root=tmp_path / "home", lock=LockConfig(timeout=1.0, poll=0.01), daemon_disabled=True)
    c.ensure_dirs()
    return c


@pytest.fixture
def engine(cfg):
    return SnapshotEngine(cfg)


@pytest.fixture
def edit(engine):
    """Simulate the user saving a working copy in their editor."""
    def _edit(slug, text):
        engine.working.path_for(slug).write_text(text)
    return _edit
