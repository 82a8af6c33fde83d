"""Shared CLI application context and setup helpers."""

from __future__ import annotations

import sys
from pathlib import Path

import typer
from dotenv import load_dotenv
from loguru import logger
from rich.console import Console

from threadbridge import __logo__, __version__

app = typer.Typer(
    name="threadbridge",
    help=f"{__logo__} threadbridge - Slack threads to persistent agent sessions",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool) -> None:
    if value:
        console.print(f"{__logo__} threadbridge v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(None, "--version", "-V", callback=version_callback, is_eager=True),
) -> None:
    """threadbridge - Slack threads to persistent agent sessions."""
    from threadbridge.utils.helpers import get_data_path

    # Precedence: existing env vars > .env file (override=False)
    load_dotenv(get_data_path() / ".env", override=False)


def configure_logging(verbose: bool) -> None:
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "INFO")


def create_sync_templates(root: Path) -> None:
    """Create the life documents the sync step writes into, plus the marker file."""
    templates = {
        "_UPGRADE_FLAG.md": """# Sync Marker

threadbridge appends captured memories to the documents in this directory.
Delete this file to pause syncing.
""",
        "GOALS.md": """# Goals

## Active Goals

<!-- Captured goals are added below. -->
""",
        "LEARNED.md": """# Learned

## Recent Learnings

<!-- Facts and preferences are added below. -->
""",
        "CHALLENGES.md": """# Challenges

## Active Challenges

<!-- Captured challenges are added below. -->
""",
        "IDEAS.md": """# Ideas

## Recent Ideas

<!-- Captured ideas are added below. -->
""",
        "PROJECTS.md": """# Projects

## Active Projects

<!-- Captured projects are added below. -->
""",
    }

    root.mkdir(parents=True, exist_ok=True)
    for filename, content in templates.items():
        file_path = root / filename
        if not file_path.exists():
            file_path.write_text(content, encoding="utf-8")
            console.print(f"  [dim]Created {filename}[/dim]")
