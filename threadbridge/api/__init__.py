"""HTTP control surface."""

from threadbridge.api.server import create_app, serve_api

__all__ = ["create_app", "serve_api"]
