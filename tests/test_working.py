from vnotes.models import Note
from vnotes.versions import VersionRepository
from vnotes.working import WorkingCopyManager


def make(cfg):
    repo = VersionRepository(cfg)
    return repo, WorkingCopyManager(cfg, repo)


def test_path_for_and_back(cfg):
    _, working = make(cfg)
    path = working.path_for("ideas")
    assert path == cfg.files_dir / "ideas.md"
    assert working.note_id_for(path) == "ideas"
    assert working.note_id_for(cfg.files_dir / ".tmp-x.tmp") is None
    assert working.note_id_for(cfg.files_dir / "ideas.txt") is None
    assert working.note_id_for(cfg.root / "ideas.md") is None


def test_new_note_dirty_only_when_non_empty(cfg):
    _, working = make(cfg)
    note = Note(slug="ideas", title="Ideas")
    working.create("ideas")
    assert not working.is_dirty(note)
    working.path_for("ideas").write_text("hello")
    assert working.is_dirty(note)


def test_dirty_against_latest_version(cfg):
    repo, working = make(cfg)
    note = Note(slug="ideas", title="Ideas")
    note.record_version(repo.write_version(note, b"hello"))
    working.replace_with("ideas", b"hello")
    assert not working.is_dirty(note)
    working.path_for("ideas").write_text("hello world")
    assert working.is_dirty(note)


def test_dirty_without_recorded_hash_reads_version(cfg):
    repo, working = make(cfg)
    note = Note(slug="ideas", title="Ideas")
    meta = repo.write_version(note, b"hello")
    meta.hash = ""
    note.record_version(meta)
    assert not working.is_dirty(note, b"hello")
    assert working.is_dirty(note, b"bye")


def test_ensure_restores_deleted_working_copy(cfg):
    repo, working = make(cfg)
    note = Note(slug="ideas", title="Ideas")
    note.record_version(repo.write_version(note, b"kept"))
    path = working.ensure(note)
    assert path.read_bytes() == b"kept"


def test_replace_with_is_atomic(cfg):
    _, working = make(cfg)
    working.create("ideas", b"old")
    working.replace_with("ideas", b"new")
    assert working.read("ideas") == b"new"
    assert [p.name for p in cfg.files_dir.iterdir()] == ["ideas.md"]
