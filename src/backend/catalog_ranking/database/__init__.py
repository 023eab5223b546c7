"""
Session storage package for the catalog ranking service.

Editing sessions live in process memory only; uncommitted edits are never persisted.
"""

from .session_storage import (
    InMemorySessionStorage,
    get_session_storage,
    init_session_storage,
)

__all__ = [
    "InMemorySessionStorage",
    "get_session_storage",
    "init_session_storage",
]
