"""SQLAlchemy implementation of PreferenceRepository."""

from typing import Optional

from sqlalchemy.orm import Session

from dashsync.repositories.sqlalchemy.orm_models import PreferenceORM


class SqlAlchemyPreferenceRepository:
    """SQLAlchemy-backed key-value store for durable client preferences."""

    def __init__(self, db: Session):
        self._db = db

    def get(self, key: str) -> Optional[str]:
        """Get the stored value for key, or None."""
        orm_pref = self._db.get(PreferenceORM, key)
        return orm_pref.value if orm_pref else None

    def set(self, key: str, value: str) -> None:
        """Insert or update the value for key."""
        orm_pref = self._db.get(PreferenceORM, key)
        if orm_pref:
            orm_pref.value = value
        else:
            self._db.add(PreferenceORM(key=key, value=value))
        self._db.commit()

    def delete(self, key: str) -> None:
        """Remove key if present."""
        self._db.query(PreferenceORM).filter(PreferenceORM.key == key).delete()
        self._db.commit()
