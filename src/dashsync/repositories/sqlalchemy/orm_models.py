"""SQLAlchemy ORM model definitions."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String, Text

from dashsync.repositories.sqlalchemy.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PreferenceORM(Base):
    """SQLAlchemy model for a durable client preference (key-value)."""

    __tablename__ = "preferences"

    key = Column(String(128), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)
