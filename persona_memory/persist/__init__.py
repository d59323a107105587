"""
Persistence layer for the memory subsystem.

Provides:
- SQLite-backed KV store used by the durable memory store
"""

from .sqlite_store import KVStore

__all__ = [
    "KVStore",
]
