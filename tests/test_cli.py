from pathlib import Path

from click.shell_completion import ShellComplete
from click.testing import CliRunner

from vnotes.cli import cli


def run(*args):
    return CliRunner().invoke(cli, list(args))


def last_line(result):
    return result.output.strip().splitlines()[-1]


def test_new_creates_working_file_and_index(tmp_path):
    result = run("new")
    assert result.exit_code == 0, result.output
    working = Path(last_line(result))
    assert working.exists()
    assert working.parent == tmp_path / "home" / "files"
    assert (tmp_path / "home" / "index.json").exists()
    assert (tmp_path / "home" / "versions").is_dir()


def test_ideas_scenario(tmp_path):
    working = Path(last_line(run("new", "Ideas")))
    assert working.read_text() == ""

    working.write_text("hello")
    assert run("open", "Ideas").exit_code == 0
    working.write_text("hello world")
    assert run("open", "Ideas").exit_code == 0

    result = run("rollback", "Ideas")
    assert result.exit_code == 0, result.output
    assert Path(last_line(result)) == working
    assert working.read_text() == "hello"

    versions_dir = tmp_path / "home" / "versions" / "ideas"
    assert sorted(p.name for p in versions_dir.iterdir()) == ["0000001.md", "0000002.md", "0000003.md"]
    assert (versions_dir / "0000003.md").read_text() == "hello"


def test_rollback_with_version_and_draft(tmp_path):
    working = Path(last_line(run("new", "Retro")))
    for text in ("one", "two", "three"):
        working.write_text(text)
        run("open", "Retro")
    working.write_text("draft")

    result = run("rollback", "Retro", "--version", "1")
    assert result.exit_code == 0, result.output
    assert "v4" in result.output

    versions_dir = tmp_path / "home" / "versions" / "retro"
    assert (versions_dir / "0000004.md").read_text() == "draft"
    assert (versions_dir / "0000005.md").read_text() == "one"
    assert working.read_text() == "one"


def test_versions_outputs_history():
    working = Path(last_line(run("new", "Meeting")))
    working.write_text("agenda")
    run("open", "meeting")
    result = run("versions", "Meeting")
    assert result.exit_code == 0
    assert "Versions for Meeting:" in result.output
    assert "v1 @" in result.output
    assert "(latest)" in result.output


def test_search_finds_notes_by_content():
    working = Path(last_line(run("new", "Ideas")))
    working.write_text("alpha bravo")
    run("open", "Ideas")

    result = run("search", "BRAVO")
    assert result.exit_code == 0
    assert "Ideas (id: ideas)" in result.output
    assert run("search", "zulu").output.strip() == "No matches found."


def test_list():
    assert "No notes yet" in run("list").output
    run("new", "Ideas")
    result = run("list")
    assert result.exit_code == 0
    assert "Ideas" in result.output
    assert "ideas" in result.output


def test_ids_hidden_command():
    run("new", "Beta")
    run("new", "Alpha")
    assert run("ids").output.split() == ["alpha", "beta"]


def test_unknown_note_exit_code():
    result = run("open", "missing")
    assert result.exit_code == 3
    assert "Note not found: missing" in result.output


def test_missing_version_exit_code():
    run("new", "Ideas")
    result = run("rollback", "Ideas", "--version", "9")
    assert result.exit_code == 4


def test_new_after_restore_keeps_orphaned_edits(tmp_path):
    run("new", "Ideas")
    todo = Path(last_line(run("new", "Todo")))
    todo.write_text("important unsaved edits")
    (tmp_path / "home" / "index.json").write_text("{not json")
    assert run("restore-index").exit_code == 0

    result = run("new", "Todo")
    assert result.exit_code == 0, result.output
    assert Path(last_line(result)).name == "todo-2.md"
    assert todo.read_text() == "important unsaved edits"


def test_title_arguments_complete_note_ids():
    run("new", "Ideas")
    run("new", "Todo")
    comp = ShellComplete(cli, {}, "notes", "_NOTES_COMPLETE")
    for command in ("open", "versions", "rollback"):
        assert [c.value for c in comp.get_completions([command], "i")] == ["ideas"]
    assert [c.value for c in comp.get_completions(["open"], "")] == ["ideas", "todo"]


def test_corrupt_index_and_restore(tmp_path):
    run("new", "Ideas")
    run("new", "Todo")
    (tmp_path / "home" / "index.json").write_text("{not json")

    result = run("list")
    assert result.exit_code == 5
    assert "restore-index" in result.output

    result = run("restore-index")
    assert result.exit_code == 0, result.output
    assert run("ids").output.split() == ["ideas"]


def test_version_flag():
    result = run("--version")
    assert result.exit_code == 0
    assert "version" in result.output


def test_completions():
    result = run("completions", "bash")
    assert result.exit_code == 0
    assert "_NOTES_COMPLETE" in result.output
    assert run("completions", "tcsh").exit_code == 2


def test_daemon_status_stopped():
    result = run("daemon", "status")
    assert result.exit_code == 0
    assert "Daemon: stopped" in result.output
