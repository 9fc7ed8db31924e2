"""Rewind CLI entrypoint.

Commands:
- turn: append a conversation turn
- create / write: run an agent edit tool for a turn
- status: show the working set and the checkpoint cursor
- turns: show the conversation history (hidden turns are marked)
- keep / undo / discard / reset: accept or revert working-set entries
- restore / redo / commit: jump to a checkpoint, undo the jump, or commit it
- log: show the session journal
- verify: check the stored checksums of turns and journal events

State lives in a SQLite database (``~/.rewind/rewind.db`` by default) and is
resumed on every invocation.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

import structlog
import typer
from rich.console import Console
from rich.table import Table

from core.errors import EditError
from core.session import ChatSession
from schemas import events as ev
from schemas.file_edit import Role, ToolKind
from tools.config_loader import load_settings

app = typer.Typer(
    add_completion=False, help="Rewind: track agent file edits and restore conversation checkpoints"
)
console = Console()

_LEVELS = {"debug": logging.DEBUG, "info": logging.INFO, "warning": logging.WARNING, "error": logging.ERROR}

DbOption = typer.Option(None, "--db", help="Path to the session database")
ConfigOption = typer.Option(None, "--config", help="YAML or JSON settings file")


def open_session(db: Optional[Path], config: Optional[Path]) -> ChatSession:
    """Load settings (CLI values override the file) and open the session."""
    settings = load_settings(config, db_path=db)
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(_LEVELS[settings.log_level])
    )
    return ChatSession(settings)


def _print_failures(failures: List[ev.PassFailure]) -> None:
    for f in failures:
        console.print(f"[red]failed[/red] {f.path}: {f.error}")


def _print_report(report: ev.CheckpointPassCompleted) -> None:
    console.log(
        f"{report.direction}: processed={len(report.processed)} "
        f"skipped={len(report.skipped)} failed={len(report.failures)}"
    )
    _print_failures(report.failures)


@app.command()
def turn(
    role: Role = typer.Argument(..., help="user or assistant"),
    content: str = typer.Argument("", help="Message text"),
    ref: List[str] = typer.Option([], "--ref", help="Attached reference (repeatable)"),
    db: Optional[Path] = DbOption,
    config: Optional[Path] = ConfigOption,
) -> None:
    """Append a turn; a user turn commits any restored checkpoint first."""
    session = open_session(db, config)
    try:
        t = asyncio.run(session.add_turn(role, content, ref))
    finally:
        session.close()
    console.print(t.id)


def _edit(kind: ToolKind, turn_id: str, path: Path, content: str, db, config) -> None:
    session = open_session(db, config)
    try:
        edit = asyncio.run(session.apply_edit(turn_id, kind, path, content))
    except KeyError:
        console.print(f"[red]Unknown turn {turn_id}.[/red]")
        raise typer.Exit(code=1)
    except EditError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)
    finally:
        session.close()
    console.log(f"{kind.value}: {edit.path}")


@app.command()
def create(
    turn_id: str = typer.Argument(...),
    path: Path = typer.Argument(..., resolve_path=True),
    content: str = typer.Option("", "--content", help="File content"),
    db: Optional[Path] = DbOption,
    config: Optional[Path] = ConfigOption,
) -> None:
    """Create a new file as part of a turn (fails if it exists)."""
    _edit(ToolKind.CREATE_FILE, turn_id, path, content, db, config)


@app.command()
def write(
    turn_id: str = typer.Argument(...),
    path: Path = typer.Argument(..., resolve_path=True),
    content: str = typer.Option(..., "--content", help="New file content"),
    db: Optional[Path] = DbOption,
    config: Optional[Path] = ConfigOption,
) -> None:
    """Replace the content of an existing file as part of a turn."""
    _edit(ToolKind.INSERT_OR_REPLACE, turn_id, path, content, db, config)


@app.command()
def status(db: Optional[Path] = DbOption, config: Optional[Path] = ConfigOption) -> None:
    """Show the working set and the checkpoint cursor."""
    session = open_session(db, config)
    try:
        table = Table(title="Working Set")
        table.add_column("Path", overflow="fold")
        table.add_column("Kind", no_wrap=True)
        table.add_column("Status", no_wrap=True)
        for edit in session.ledger:
            table.add_row(str(edit.path), edit.tool_kind.value, edit.status.value)
        console.print(table)
        pending = session.checkpoints.cursor.pending_message_id
        if pending is not None:
            console.print(f"Checkpoint restored at [bold]{pending}[/bold]")
        draft = session.context
        if draft.text or draft.references:
            console.print(f"Draft: {draft.text}", markup=False)
            for ref in draft.references:
                console.print(f"  ref: {ref}", markup=False)
    finally:
        session.close()


@app.command()
def turns(db: Optional[Path] = DbOption, config: Optional[Path] = ConfigOption) -> None:
    """Show the conversation history."""
    session = open_session(db, config)
    try:
        visible = {t.id for t in session.checkpoints.visible_turns()}
        table = Table(title="Conversation")
        table.add_column("#", justify="right")
        table.add_column("Turn ID")
        table.add_column("Role")
        table.add_column("Content")
        table.add_column("Edits", justify="right")
        for t in session.turns.list_turns():
            marker = "" if t.id in visible else " (hidden)"
            table.add_row(str(t.seq), t.id + marker, t.role.value, t.content, str(len(t.file_edits)))
        console.print(table)
    finally:
        session.close()


def _working_set_op(name: str, paths: List[Path], db, config) -> None:
    session = open_session(db, config)
    try:
        failures = asyncio.run(getattr(session, name)(paths))
    finally:
        session.close()
    _print_failures(failures)
    if failures:
        raise typer.Exit(code=1)


@app.command()
def keep(
    paths: List[Path] = typer.Argument(..., resolve_path=True),
    db: Optional[Path] = DbOption,
    config: Optional[Path] = ConfigOption,
) -> None:
    """Accept pending edits."""
    _working_set_op("keep", paths, db, config)


@app.command()
def undo(
    paths: List[Path] = typer.Argument(..., resolve_path=True),
    db: Optional[Path] = DbOption,
    config: Optional[Path] = ConfigOption,
) -> None:
    """Revert pending edits on disk."""
    _working_set_op("undo", paths, db, config)


@app.command()
def discard(
    paths: List[Path] = typer.Argument(..., resolve_path=True),
    db: Optional[Path] = DbOption,
    config: Optional[Path] = ConfigOption,
) -> None:
    """Revert pending edits and stop tracking them."""
    _working_set_op("discard", paths, db, config)


@app.command()
def reset(db: Optional[Path] = DbOption, config: Optional[Path] = ConfigOption) -> None:
    """Stop tracking every edit; files are left as they are."""
    session = open_session(db, config)
    try:
        asyncio.run(session.reset())
    finally:
        session.close()


@app.command()
def restore(
    turn_id: str = typer.Argument(...),
    yes: bool = typer.Option(False, "--yes", help="Do not ask before rewriting files"),
    db: Optional[Path] = DbOption,
    config: Optional[Path] = ConfigOption,
) -> None:
    """Restore the workspace and the conversation to TURN_ID."""
    session = open_session(db, config)
    try:
        if not yes and session.checkpoints.has_subsequent_file_edits(turn_id):
            typer.confirm("Later turns changed files. Revert them?", abort=True)
        report = asyncio.run(session.restore_checkpoint(turn_id))
    finally:
        session.close()
    if report is None:
        console.print(f"[yellow]Cannot restore to {turn_id}.[/yellow]")
        raise typer.Exit(code=1)
    _print_report(report)


@app.command()
def redo(db: Optional[Path] = DbOption, config: Optional[Path] = ConfigOption) -> None:
    """Undo the restored checkpoint and re-apply the hidden turns' edits."""
    session = open_session(db, config)
    try:
        report = asyncio.run(session.undo_checkpoint())
    finally:
        session.close()
    if report is None:
        console.print("[yellow]No checkpoint restored.[/yellow]")
        raise typer.Exit(code=1)
    _print_report(report)


@app.command()
def commit(db: Optional[Path] = DbOption, config: Optional[Path] = ConfigOption) -> None:
    """Commit the restored checkpoint: delete the hidden turns."""
    session = open_session(db, config)
    try:
        deleted = asyncio.run(session.discard_checkpoint())
    finally:
        session.close()
    console.log(f"Deleted {len(deleted)} turn(s)")


@app.command()
def log(
    limit: int = typer.Option(20, "--limit", min=1, help="Number of events to show"),
    db: Optional[Path] = DbOption,
    config: Optional[Path] = ConfigOption,
) -> None:
    """Show the most recent journal events."""
    session = open_session(db, config)
    try:
        records = session.events.read_all() if session.events is not None else []
    finally:
        session.close()
    table = Table(title="Journal")
    table.add_column("ID", justify="right")
    table.add_column("Type")
    table.add_column("Summary")
    for rec in records[-limit:]:
        if rec.type == "LedgerChanged":
            summary = f"{len(rec.data.get('entries') or [])} entries"
        elif rec.type == "CheckpointStateChanged":
            summary = str(rec.data.get("pending_message_id"))
        elif rec.type == "CheckpointPassCompleted":
            summary = f"{rec.data['direction']} failures={len(rec.data.get('failures') or [])}"
        else:
            summary = ""
        table.add_row(str(rec.id), rec.type, summary)
    console.print(table)


@app.command()
def verify(db: Optional[Path] = DbOption, config: Optional[Path] = ConfigOption) -> None:
    """Check stored checksums; exits 1 when anything was tampered with."""
    session = open_session(db, config)
    try:
        bad_turns = session.turns.verify()
        bad_events = session.events.verify() if session.events is not None else []
    finally:
        session.close()
    for tid in bad_turns:
        console.print(f"[red]checksum mismatch[/red] turn {tid}")
    for eid in bad_events:
        console.print(f"[red]checksum mismatch[/red] event {eid}")
    if bad_turns or bad_events:
        raise typer.Exit(code=1)
    console.print("OK")


def main() -> int:
    """Entry point for `python -m cli.main`."""
    app()
    return 0


if __name__ == "__main__":
    sys.exit(main())
