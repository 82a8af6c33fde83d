"""Thread session CLI commands."""

from __future__ import annotations

from datetime import datetime

import typer
from rich.table import Table

from .core import app, console

sessions_app = typer.Typer(help="Inspect and reset thread sessions")
app.add_typer(sessions_app, name="sessions")


def _load_store():
    from threadbridge.config.loader import load_config
    from threadbridge.session.store import SessionStore

    config = load_config()
    store = SessionStore(config.session_store_path, expiry_ms=config.sessions.expiry_ms)
    store.load()
    return store


def _fmt_ms(value: int) -> str:
    if not value:
        return "-"
    return datetime.fromtimestamp(value / 1000).strftime("%Y-%m-%d %H:%M")


@sessions_app.command("list")
def sessions_list() -> None:
    """List active (non-expired) thread sessions."""
    store = _load_store()
    sessions = store.sessions()
    if not sessions:
        console.print("No active sessions.")
        return

    table = Table(title="Thread Sessions")
    table.add_column("Thread")
    table.add_column("Agent Session")
    table.add_column("Watermark")
    table.add_column("Created")
    for session in sessions:
        table.add_row(
            session.thread_key,
            session.agent_session_id or "-",
            session.last_processed_message_id,
            _fmt_ms(session.created_at),
        )
    console.print(table)


@sessions_app.command("clear")
def sessions_clear(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Drop every thread session; the next mention in each thread starts fresh."""
    store = _load_store()
    if not yes and not typer.confirm(f"Clear {store.active_count} sessions?"):
        raise typer.Exit()
    cleared = store.clear()
    console.print(f"[green]✓[/green] Cleared {cleared} sessions")
