"""
Key-value store over a single SQL table.

Every operation runs in its own session and commits before returning,
so a completed set() is durable. Database failures surface as
StoreError; a missing key is never an error.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from common.exceptions import StoreError
from common.models import KVEntry

logger = logging.getLogger(__name__)


class KeyValueStore:
    """
    Durable mapping from string key to JSON value.

    Args:
        session_factory: SQLAlchemy session factory bound to the store database
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    @contextmanager
    def _session(self, operation: str, key: Optional[str] = None) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
        except SQLAlchemyError as e:
            session.rollback()
            target = f" for key '{key}'" if key is not None else ""
            logger.error(f"Key-value {operation} failed{target}: {e}")
            raise StoreError(f"Failed to {operation} key-value data") from e
        finally:
            session.close()

    def get(self, key: str, default: Any = None) -> Any:
        """
        Read the value stored under key.

        Args:
            key: Store key
            default: Returned when the key is absent

        Returns:
            The stored JSON value or default
        """
        with self._session("read", key) as session:
            entry = session.get(KVEntry, key)
            if entry is None:
                return default
            return entry.value

    def set(self, key: str, value: Any) -> None:
        """
        Persist value under key, replacing any previous value.

        Args:
            key: Store key
            value: JSON-serializable value

        Raises:
            StoreError: If the write cannot be committed
        """
        with self._session("write", key) as session:
            entry = session.get(KVEntry, key)
            if entry is None:
                session.add(KVEntry(key=key, value=value))
            else:
                entry.value = value
            session.commit()

    def delete(self, key: str) -> bool:
        """Remove key; returns whether it existed."""
        with self._session("delete", key) as session:
            result = session.execute(
                delete(KVEntry).where(KVEntry.key == key)
            )
            session.commit()
            return result.rowcount > 0

    def has(self, key: str) -> bool:
        with self._session("read", key) as session:
            found = session.scalar(
                select(KVEntry.key).where(KVEntry.key == key)
            )
            return found is not None

    def keys(self, prefix: Optional[str] = None) -> list[str]:
        """
        List stored keys.

        Args:
            prefix: Only return keys starting with this string

        Returns:
            list[str]: Matching keys, in key order
        """
        with self._session("list") as session:
            query = select(KVEntry.key).order_by(KVEntry.key)
            keys = list(session.scalars(query))
        if prefix is None:
            return keys
        # Filtered in Python: LIKE would treat "_" in prefixes as a wildcard
        return [key for key in keys if key.startswith(prefix)]

    def clear(self) -> None:
        with self._session("clear") as session:
            session.execute(delete(KVEntry))
            session.commit()
        logger.warning("Key-value store cleared")

    def count(self) -> int:
        with self._session("count") as session:
            return session.scalar(select(func.count()).select_from(KVEntry)) or 0
