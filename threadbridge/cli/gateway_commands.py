"""Gateway process command."""

from __future__ import annotations

import asyncio

import typer

from threadbridge import __logo__

from .core import app, configure_logging, console


@app.command()
def gateway(
    port: int | None = typer.Option(None, "--port", "-p", help="Control API port (overrides config)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
) -> None:
    """Run the Slack listener, agent bridge and control API in the foreground."""
    from threadbridge.agent.claude_cli import AgentInvocationError
    from threadbridge.app.bootstrap import build_runtime
    from threadbridge.config.loader import ConfigError, load_config

    configure_logging(verbose)
    config = load_config()
    if port is not None:
        config.api.port = port

    try:
        runtime = build_runtime(config)
    except (ConfigError, AgentInvocationError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    console.print(f"{__logo__} Starting threadbridge gateway...")
    console.print(f"[green]✓[/green] Sessions loaded: {runtime.sessions.active_count}")
    if runtime.api is not None:
        console.print(f"[green]✓[/green] Control API: http://{config.api.host}:{config.api.port}")
    if runtime.sweeper is not None:
        console.print(f"[green]✓[/green] Thread sweep: every {config.sweep.interval_minutes}m")
    if config.memory.enabled:
        mode = "auto-sync" if config.memory.auto_sync else "capture only"
        console.print(f"[green]✓[/green] Memory: {mode}")

    try:
        asyncio.run(runtime.run())
    except KeyboardInterrupt:
        console.print("\nShutting down...")
