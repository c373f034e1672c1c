import pytest

from vnotes.errors import VersionConflict, VersionNotFound
from vnotes.models import Note, hash_bytes
from vnotes.versions import VersionRepository


@pytest.fixture
def repo(cfg):
    return VersionRepository(cfg)


def test_write_version_uses_index_counter(cfg, repo):
    note = Note(slug="ideas", title="Ideas")
    meta = repo.write_version(note, b"hello")
    assert meta.version == 1
    assert meta.path == "versions/ideas/0000001.md"
    assert meta.hash == hash_bytes(b"hello")
    assert (cfg.root / meta.path).read_bytes() == b"hello"

    note.record_version(meta)
    assert repo.write_version(note, b"hello world").version == 2


def test_write_version_never_overwrites(repo):
    note = Note(slug="ideas", title="Ideas")
    repo.write_version(note, b"first")
    with pytest.raises(VersionConflict):
        repo.write_version(note, b"second")
    assert repo.read_version("ideas", 1) == b"first"


def test_read_missing_version(repo):
    with pytest.raises(VersionNotFound):
        repo.read_version("ideas", 3)


def test_list_versions_ascending_and_ignores_strays(cfg, repo):
    note = Note(slug="ideas", title="Ideas")
    for i in range(12):
        note.record_version(repo.write_version(note, f"v{i + 1}".encode()))
    note_dir = cfg.versions_dir / "ideas"
    (note_dir / ".tmp-abc.tmp").write_text("partial")
    (note_dir / "notes.txt").write_text("stray")

    numbers = [v.number for v in repo.list_versions("ideas")]
    assert numbers == list(range(1, 13))
    assert repo.read_text("ideas", 12) == "v12"


def test_list_versions_unknown_note(repo):
    assert repo.list_versions("nope") == []


def test_untracked_versions(repo):
    note = Note(slug="ideas", title="Ideas")
    note.record_version(repo.write_version(note, b"one"))
    ghost = Note(slug="ideas", title="Ideas", current_version=1)
    repo.write_version(ghost, b"two")

    adopted = repo.untracked_versions(note)
    assert [m.version for m in adopted] == [2]
    assert adopted[0].hash == hash_bytes(b"two")
    assert adopted[0].created_at
