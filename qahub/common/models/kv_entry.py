"""
Key-value entry model, the only table of the service.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from .base import Base


class KVEntry(Base):
    """
    One key of the key-value namespace.

    Submission records, pending indices and approved indices all live
    here under their string keys with a JSON value.
    """

    __tablename__ = "kv_store"

    key: Mapped[str] = mapped_column(
        String(255),
        primary_key=True
    )
    value: Mapped[Any] = mapped_column(JSON, nullable=True)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<KVEntry(key={self.key})>"
