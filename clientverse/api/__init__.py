"""HTTP API package."""

from clientverse.api.server import app

__all__ = ["app"]
