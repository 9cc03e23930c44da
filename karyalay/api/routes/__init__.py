"""API route modules."""

from . import metrics, ping, portal, tickets

__all__ = ["metrics", "ping", "portal", "tickets"]
