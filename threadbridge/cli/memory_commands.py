"""Memory capture and sync CLI commands."""

from __future__ import annotations

import json
from pathlib import Path

import typer
from rich.table import Table

from .core import app, console, create_sync_templates

memory_app = typer.Typer(help="Inspect captured memories and sync them to life documents")
app.add_typer(memory_app, name="memory")


def _memory_components():
    from threadbridge.app.bootstrap import build_stores
    from threadbridge.config.loader import load_config

    config = load_config()
    _, memory, sync = build_stores(config)
    return config, memory, sync


@memory_app.command("stats")
def memory_stats() -> None:
    """Show memory statistics."""
    _, memory, sync = _memory_components()
    stats = memory.stats()

    console.print("[bold]Memory Statistics[/bold]")
    console.print(f"total: {stats['total']}")
    console.print(f"unsynced: {stats['unsynced']}")
    table = Table(title="By Type")
    table.add_column("Partition")
    table.add_column("Count", justify="right")
    for name, count in stats["byType"].items():
        table.add_row(name, str(count))
    console.print(table)

    console.print(f"\nsync root: {sync.root} ({'ready' if sync.ready else 'marker missing'})")
    for filename, exists in sync.file_status().items():
        console.print(f"  {filename}: {'✓' if exists else '✗'}")


@memory_app.command("unsynced")
def memory_unsynced() -> None:
    """List memories not yet synced to the life documents."""
    _, memory, _ = _memory_components()
    unsynced = memory.unsynced()
    console.print(f"Unsynced memories ({len(unsynced)}):")
    for item in unsynced:
        console.print(f"  [{item.kind}] {item.content[:60]}")


@memory_app.command("test")
def memory_test(
    message: list[str] = typer.Argument(None, help="Message text to run through the triggers"),
) -> None:
    """Run extraction on a message without storing anything."""
    from threadbridge.memory.extractor import extract

    text = " ".join(message or []) or "goal: test the memory extraction system"
    console.print(f"Testing extraction on: {text!r}")
    result = extract(text)

    table = Table(title="Extractions")
    table.add_column("Status")
    table.add_column("Kind")
    table.add_column("Category")
    table.add_column("Confidence", justify="right")
    table.add_column("Content")
    for status, items in (("accepted", result.accepted), ("pending", result.pending)):
        for item in items:
            table.add_row(status, item.kind, item.category, f"{item.confidence:.2f}", item.content)
    console.print(table)


@memory_app.command("sync")
def memory_sync() -> None:
    """Sync unsynced memories into the life documents."""
    _, _, sync = _memory_components()
    result = sync.sync()
    console.print("Sync complete:")
    console.print(f"  Synced: {result.synced}")
    console.print(f"  Skipped: {result.skipped}")
    if result.errors:
        console.print(f"  [red]Errors: {len(result.errors)}[/red]")
        for err in result.errors:
            console.print(f"    - {err}")
        raise typer.Exit(1)


@memory_app.command("export")
def memory_export(
    output: Path | None = typer.Option(None, "--output", "-o", help="Export file path"),
) -> None:
    """Export unsynced memories and stats to JSON."""
    _, _, sync = _memory_components()
    path = sync.export(output)
    data = json.loads(path.read_text(encoding="utf-8"))
    console.print(f"[green]✓[/green] Exported {len(data['memories'])} memories to {path}")


@memory_app.command("init-docs")
def memory_init_docs() -> None:
    """Create the life documents and sync marker under the sync root."""
    config, _, _ = _memory_components()
    root = config.sync_root_path
    create_sync_templates(root)
    console.print(f"[green]✓[/green] Sync root ready at {root}")
