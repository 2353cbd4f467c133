"""Shared infrastructure used across services."""

from .cache import MISSING, AsyncTTLCache

__all__ = ["MISSING", "AsyncTTLCache"]
