"""Route modules exposed by the API package."""

from . import admin, analytics, ping, tickets

__all__ = ["admin", "analytics", "ping", "tickets"]
