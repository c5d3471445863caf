"""SQLAlchemy models for the daily challenge key-value store."""
from datetime import datetime
from sqlalchemy import Column, Integer, Text, DateTime, Index
from dailyguess.db.database import Base


class KeyValueEntry(Base):
    """One key of the key-value store.

    `version` is bumped on every write and backs compare-and-set updates.
    """
    __tablename__ = "kv_entries"

    key = Column(Text, primary_key=True)  # e.g. "daily:2025-09-16:t2_abc"
    value = Column(Text, nullable=False)  # serialized JSON record
    version = Column(Integer, nullable=False, default=1)
    expires_at = Column(DateTime, nullable=True)  # None means no expiry
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index('idx_kv_expires_at', 'expires_at'),
    )
