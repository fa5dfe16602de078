"""Shared FastAPI dependencies."""

import secrets
import threading

from fastapi import Request

from .config import settings
from .integrations.cache import CacheService, NullCacheService


class InternalKeyRequired(Exception):
    """Raised when the x-internal-key header is missing or wrong. Handled in main.py."""

    pass


def get_cache(request: Request) -> CacheService:
    """Get the cache service from app state."""
    return getattr(request.app.state, "cache", None) or NullCacheService()


def get_shutdown_event(request: Request) -> threading.Event | None:
    return getattr(request.app.state, "shutdown", None)


def verify_internal_key(request: Request) -> None:
    """Require the shared internal key; fails closed when none is configured."""
    expected = settings.internal_function_key
    provided = request.headers.get("x-internal-key", "")
    if not expected or not secrets.compare_digest(provided.encode(), expected.encode()):
        raise InternalKeyRequired()
