"""Web interface for Memory Lane."""

from .server import build_token_authorizer, create_app

__all__ = ["build_token_authorizer", "create_app"]
