import pytest

from vnotes.errors import NotFound
from vnotes.index import IndexStore
from vnotes.query import QueryLayer, excerpt


@pytest.fixture
def query(cfg):
    return QueryLayer(cfg)


def test_list_notes_sorted_by_title(engine, edit, query):
    engine.create_note("zebra")
    engine.create_note("Apple")
    edit("apple", "x")
    engine.snapshot("apple")

    notes = query.list_notes()
    assert [(n.id, n.latest_version, n.version_count) for n in notes] == [("apple", 1, 1), ("zebra", 0, 0)]
    assert notes[0].path == engine.working.path_for("apple")


def test_list_versions(engine, edit, query):
    engine.create_note("Ideas")
    for text in ("a", "b"):
        edit("ideas", text)
        engine.snapshot("ideas")

    note, infos = query.list_versions("Ideas")
    assert note.slug == "ideas"
    assert [(i.number, i.latest) for i in infos] == [(1, False), (2, True)]
    assert all(i.created_at for i in infos)


def test_list_versions_unknown(query):
    with pytest.raises(NotFound):
        query.list_versions("nothing")


def test_search_is_case_insensitive(engine, edit, query):
    engine.create_note("Ideas")
    engine.create_note("Todo")
    edit("ideas", "alpha Bravo charlie")
    edit("todo", "nothing here")
    engine.snapshot_all()

    hits = query.search("bRAVO")
    assert [(h.id, h.title, h.version) for h in hits] == [("ideas", "Ideas", 1)]
    assert "Bravo" in hits[0].excerpt


def test_search_only_latest_version(engine, edit, query):
    engine.create_note("Ideas")
    edit("ideas", "secret plan")
    engine.snapshot("ideas")
    edit("ideas", "public plan")
    engine.snapshot("ideas")

    assert query.search("secret") == []
    assert [h.id for h in query.search("public")] == ["ideas"]


def test_search_ignores_unsaved_edits(engine, edit, query):
    engine.create_note("Ideas")
    edit("ideas", "not committed")
    assert query.search("committed") == []


def test_excerpt_trims_long_text():
    text = "x" * 100 + " needle\nin the\nhaystack " + "y" * 100
    snippet = excerpt(text, text.index("needle"), len("needle"), radius=10)
    assert snippet.startswith("…")
    assert snippet.endswith("…")
    assert "needle in the" in snippet


def test_queries_see_version_written_before_index_save(engine, edit, query, cfg):
    engine.create_note("Ideas")
    edit("ideas", "one")
    engine.snapshot("ideas")
    note = IndexStore(cfg).load()["ideas"]
    engine.versions.write_version(note, b"two")

    assert query.list_notes()[0].latest_version == 2
    assert [h.version for h in query.search("two")] == [2]
    assert query.search("one") == []
    _, infos = query.list_versions("ideas")
    assert [(i.number, i.latest) for i in infos] == [(1, False), (2, True)]
    assert IndexStore(cfg).load()["ideas"].current_version == 1


def test_search_skips_note_with_missing_version_file(engine, edit, query):
    engine.create_note("Ideas")
    engine.create_note("Todo")
    edit("ideas", "plan a")
    edit("todo", "plan b")
    engine.snapshot_all()
    engine.versions.version_path("ideas", 1).unlink()

    assert [h.id for h in query.search("plan")] == ["todo"]
