"""notes CLI: versioned text notes backed by plain files.

Commands:
    notes new [TITLE]              create a note, print its working file
    notes open TITLE               snapshot pending edits, print the working file
    notes list                     all notes with their latest version
    notes versions TITLE           version history of a note
    notes rollback TITLE [-v N]    restore version N (default: previous) as a new version
    notes search QUERY             case-insensitive search over latest versions
    notes restore-index            replace a corrupt index.json with index.json.bak
    notes daemon run|start|stop|status
    notes completions SHELL        print a shell completion script
"""

from __future__ import annotations

import functools
import logging
import shlex
import shutil
import subprocess
from typing import TYPE_CHECKING, Any

import click

from vnotes.config import NotesConfig, load_config
from vnotes.daemon import daemon_status, ensure_daemon, start_daemon, stop_daemon
from vnotes.engine import SnapshotEngine
from vnotes.errors import NotesError
from vnotes.query import QueryLayer

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

logger = logging.getLogger("vnotes.cli")

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class NotesCLIError(click.ClickException):
    """A store error surfaced with its own exit code."""

    def __init__(self, exc: NotesError) -> None:
        super().__init__(str(exc))
        self.exit_code = exc.exit_code


def _surface_errors(fn: Callable[..., Any]) -> Callable[..., Any]:
    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return fn(*args, **kwargs)
        except NotesError as exc:
            raise NotesCLIError(exc) from exc
    return wrapper


def _load_cfg() -> NotesConfig:
    try:
        return load_config()
    except NotesError as exc:
        raise NotesCLIError(exc) from exc


def _complete_note_ids(ctx: click.Context, param: click.Parameter, incomplete: str) -> list[str]:
    try:
        ids = QueryLayer(load_config()).note_ids()
    except NotesError:
        return []
    return [note_id for note_id in ids if note_id.startswith(incomplete)]


def _autostart(cfg: NotesConfig) -> None:
    try:
        status = ensure_daemon(cfg)
    except NotesError as exc:
        click.echo(f"Warning: {exc}", err=True)
        return
    if status:
        logger.info(status)


def _launch_editor(cfg: NotesConfig, path: Path) -> None:
    if not cfg.editor.command:
        return
    argv = shlex.split(cfg.editor.command)
    if not argv or shutil.which(argv[0]) is None:
        click.echo(f"Warning: editor not found: {cfg.editor.command}", err=True)
        return
    subprocess.Popen(
        [*argv, str(path)],
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        start_new_session=True,
    )


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="vnotes")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging to stderr")
def cli(verbose: bool) -> None:
    """notes: local notes with version history."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(asctime)s %(name)s %(message)s")


# ---------------------------------------------------------------------------
# notes new / open
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("title", required=False)
@_surface_errors
def new(title: str | None) -> None:
    """Create a new note (optional title) and print its working file."""
    cfg = _load_cfg()
    _autostart(cfg)
    engine = SnapshotEngine(cfg)
    note = engine.create_note(title)
    path = engine.working.path_for(note.slug)
    _launch_editor(cfg, path)
    click.echo(str(path))


@cli.command("open")
@click.argument("title", shell_complete=_complete_note_ids)
@_surface_errors
def open_(title: str) -> None:
    """Open a note by title or id, snapshotting any unsaved edits first."""
    cfg = _load_cfg()
    _autostart(cfg)
    path = SnapshotEngine(cfg).open_note(title)
    _launch_editor(cfg, path)
    click.echo(str(path))


# ---------------------------------------------------------------------------
# notes list / versions / search / ids
# ---------------------------------------------------------------------------


@cli.command("list")
@_surface_errors
def list_() -> None:
    """List all notes and their latest versions."""
    from rich.console import Console
    from rich.table import Table

    cfg = _load_cfg()
    _autostart(cfg)
    notes = QueryLayer(cfg).list_notes()
    if not notes:
        click.echo("No notes yet. Run `notes new` to create one.")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Title")
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Versions", justify="right")
    table.add_column("Latest", justify="right")
    table.add_column("Path")
    for note in notes:
        latest = f"v{note.latest_version}" if note.latest_version else "[dim]none[/dim]"
        table.add_row(note.title, note.id, str(note.version_count), latest, str(note.path))
    Console().print(table)


@cli.command()
@click.argument("title", shell_complete=_complete_note_ids)
@_surface_errors
def versions(title: str) -> None:
    """List all versions of a note."""
    cfg = _load_cfg()
    _autostart(cfg)
    note, infos = QueryLayer(cfg).list_versions(title)
    click.echo(f"Versions for {note.title}:")
    if not infos:
        click.echo("  (no versions yet)")
    for info in infos:
        marker = "  (latest)" if info.latest else ""
        click.echo(f"  v{info.number} @ {info.created_at} ({info.path}){marker}")


@cli.command()
@click.argument("query")
@_surface_errors
def search(query: str) -> None:
    """Search the latest version of every note for QUERY (case-insensitive)."""
    cfg = _load_cfg()
    _autostart(cfg)
    hits = QueryLayer(cfg).search(query)
    if not hits:
        click.echo("No matches found.")
        return
    for hit in hits:
        click.echo(f"- {hit.title} (id: {hit.id}) v{hit.version}: {hit.excerpt}")


@cli.command(hidden=True)
@_surface_errors
def ids() -> None:
    """List note ids, one per line (for scripts and custom completions)."""
    for note_id in QueryLayer(_load_cfg()).note_ids():
        click.echo(note_id)


# ---------------------------------------------------------------------------
# notes rollback / restore-index
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("title", shell_complete=_complete_note_ids)
@click.option("-v", "--version", "version", type=click.IntRange(min=1), default=None,
              help="Version to restore (default: the one before the latest)")
@_surface_errors
def rollback(title: str, version: int | None) -> None:
    """Roll back to a specific (or the previous) version.

    The restored content is appended as a new version; unsaved edits are
    committed first.
    """
    cfg = _load_cfg()
    _autostart(cfg)
    result = SnapshotEngine(cfg).rollback(title, version)
    if result.preserved is not None:
        click.echo(f"Unsaved edits kept as v{result.preserved}", err=True)
    click.echo(f"Restored v{result.restored_from} as v{result.version}", err=True)
    click.echo(str(result.path))


@cli.command("restore-index")
@_surface_errors
def restore_index() -> None:
    """Replace index.json with the backup taken before its last overwrite."""
    cfg = _load_cfg()
    n = SnapshotEngine(cfg).restore_index()
    click.echo(f"Restored index from {cfg.index_backup_path} ({n} notes)")


# ---------------------------------------------------------------------------
# notes daemon
# ---------------------------------------------------------------------------


@cli.group()
def daemon() -> None:
    """Control the background snapshot daemon."""


@daemon.command("run")
@_surface_errors
def daemon_run() -> None:
    """Run the watcher in the foreground (logs to daemon.log)."""
    from vnotes.watcher import run_from_config

    cfg = _load_cfg()
    click.echo(f"Watching {cfg.files_dir} (log: {cfg.daemon_log})")
    run_from_config(cfg.root)


@daemon.command("start")
@_surface_errors
def daemon_start() -> None:
    """Start the watcher in the background."""
    cfg = _load_cfg()
    status = daemon_status(cfg)
    if status != "stopped":
        click.echo(f"Daemon already {status}")
        return
    pid = start_daemon(cfg)
    click.echo(f"Daemon started (pid {pid})")


@daemon.command("stop")
@_surface_errors
def daemon_stop() -> None:
    """Stop the background watcher."""
    click.echo(f"Daemon: {stop_daemon(_load_cfg())}")


@daemon.command("status")
@_surface_errors
def daemon_status_cmd() -> None:
    """Show whether the watcher is running."""
    cfg = _load_cfg()
    click.echo(f"Daemon: {daemon_status(cfg)}")
    click.echo(f"Log   : {cfg.daemon_log}")


# ---------------------------------------------------------------------------
# notes completions
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("shell", type=click.Choice(["bash", "zsh", "fish"]))
def completions(shell: str) -> None:
    """Print the completion script for SHELL."""
    from click.shell_completion import get_completion_class

    comp_cls = get_completion_class(shell)
    if comp_cls is None:
        raise click.ClickException(f"Unsupported shell: {shell}")
    comp = comp_cls(cli, {}, "notes", "_NOTES_COMPLETE")
    click.echo(comp.source())


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
