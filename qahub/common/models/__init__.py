"""
Database models package.

Exports the SQLAlchemy models backing the key-value store.
"""

from .base import Base
from .kv_entry import KVEntry

__all__ = [
    "Base",
    "KVEntry",
]
