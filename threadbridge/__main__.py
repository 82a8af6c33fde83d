"""Entry point for ``python -m threadbridge``."""

from threadbridge.cli.commands import app

if __name__ == "__main__":
    app()
