"""API routers for the session health service."""

from . import health, passes, sessions

__all__ = ["health", "passes", "sessions"]
