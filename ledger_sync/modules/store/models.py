"""
Local Store Models - tables backing the offline collections
"""

from typing import Any

from sqlalchemy import JSON, BigInteger, Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_sync.core.db.base import Base


class DraftRecord(Base):
    """
    Work-in-progress entity snapshot written by the auto-save controller.
    """

    __tablename__ = "drafts"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    type: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    payload: Mapped[Any] = mapped_column(JSON, nullable=False)
    saved_at: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    # Reserved, always written False
    synced: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class SyncQueueRecord(Base):
    """
    One pending remote mutation waiting for the sync engine.
    """

    __tablename__ = "sync_queue"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    operation: Mapped[str] = mapped_column(String(10), nullable=False)
    table: Mapped[str] = mapped_column(String(100), nullable=False)
    data: Mapped[Any] = mapped_column(JSON, nullable=False)
    enqueued_at: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    retries: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class CacheRecord(Base):
    """
    Keyed cached value with an advisory expiry.
    """

    __tablename__ = "cache_entries"

    key: Mapped[str] = mapped_column(String(500), primary_key=True)
    value: Mapped[Any] = mapped_column(JSON, nullable=True)
    cached_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    expires_at: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)


class StoreMeta(Base):
    """Key/value metadata about the store itself (schema version)."""

    __tablename__ = "store_meta"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value: Mapped[str] = mapped_column(String(255), nullable=False)
