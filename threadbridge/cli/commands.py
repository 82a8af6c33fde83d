"""CLI commands for threadbridge."""

import typer

from threadbridge import __logo__

from . import gateway_commands as _gateway_commands  # noqa: F401
from . import memory_commands as _memory_commands  # noqa: F401
from . import session_commands as _session_commands  # noqa: F401
from .core import app, console, create_sync_templates


@app.command()
def onboard() -> None:
    """Initialize threadbridge configuration and the life-document sync root."""
    from threadbridge.config.loader import get_config_path, save_config
    from threadbridge.config.schema import Config

    config_path = get_config_path()

    if config_path.exists():
        console.print(f"[yellow]Config already exists at {config_path}[/yellow]")
        if not typer.confirm("Overwrite?"):
            raise typer.Exit()

    config = Config()
    save_config(config)
    console.print(f"[green]✓[/green] Created config at {config_path}")

    sync_root = config.sync_root_path
    create_sync_templates(sync_root)
    console.print(f"[green]✓[/green] Created sync root at {sync_root}")

    console.print(f"\n{__logo__} threadbridge is ready!")
    console.print("\nNext steps:")
    console.print(f"  1. Add SLACK_BOT_TOKEN and SLACK_APP_TOKEN to [cyan]{config_path.parent / '.env'}[/cyan]")
    console.print("  2. Run: [cyan]threadbridge gateway[/cyan]")


__all__ = ["app"]

if __name__ == "__main__":
    app()
