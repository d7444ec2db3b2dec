"""
Adapters package for the Mirror Service.

Contains the HTTP transport the sync engine uses to reach the remote
collection. Retries live in the engine; adapters make a single attempt and
map failures to shared errors.
"""

from .http_client import CrudTransport, HttpxTransport, render_params

__all__ = [
    "CrudTransport",
    "HttpxTransport",
    "render_params",
]
