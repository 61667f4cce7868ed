"""WordCard HTTP API."""

from wordcard.api.routes import create_router

__all__ = ["create_router"]
