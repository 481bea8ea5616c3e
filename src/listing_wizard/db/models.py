"""
Key-value record model
"""
from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime, JSON

from .base import Base


def _utcnow():
    return datetime.now(timezone.utc)


class KeyValueRecord(Base):
    """One JSON document per key (project:*, usage:*, subscription:*)"""
    __tablename__ = "kv_records"

    key = Column(String(255), primary_key=True)
    value = Column(JSON, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)
