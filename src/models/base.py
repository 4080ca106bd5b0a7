"""
Base model classes for the menu catalog store.

- BaseModel: integer id, stable uuid, created/updated timestamps,
  to_dict() and update_from_dict()
- ScopedMixin: business_id column (the catalog scope every import targets)
- NamedMixin: display name plus the normalized name_key that the unique
  indexes are built on
"""

import uuid as uuid_lib
from datetime import datetime
from typing import Any, Dict

from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.orm import declarative_base, validates

from src.utils.datetime_utils import utc_now
from src.utils.name_keys import normalize_name_key

Base = declarative_base()


class ScopedMixin:
    """Adds the catalog scope column. Natural keys are unique per scope."""

    business_id = Column(String(64), nullable=False, index=True)


class NamedMixin:
    """
    Adds name and name_key.

    name_key is kept in sync on every assignment to name, so a lookup by
    normalize_name_key(name) matches regardless of casing and spacing.
    """

    name = Column(String(200), nullable=False)
    name_key = Column(String(200), nullable=False)

    @validates("name")
    def _sync_name_key(self, _key: str, value: str) -> str:
        self.name_key = normalize_name_key(value)
        return value


class BaseModel(Base):
    """
    Abstract base model for catalog entities.

    Attributes:
        id: Store-assigned primary key (what import id maps resolve to)
        uuid: Stable external identifier
        created_at / updated_at: UTC timestamps
    """

    __abstract__ = True

    id = Column(Integer, primary_key=True, autoincrement=True)

    # String form keeps SQLite and PostgreSQL in agreement
    uuid = Column(
        String(36), unique=True, nullable=False, default=lambda: str(uuid_lib.uuid4()), index=True
    )

    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    # Never written by update_from_dict(); an upsert keeps the row's identity
    _PROTECTED_COLUMNS = ("id", "uuid", "created_at", "updated_at", "name_key")

    def to_dict(self, include_relationships: bool = False) -> Dict[str, Any]:
        """
        Column values keyed by column name; datetimes as ISO strings.

        Args:
            include_relationships: Also serialize loaded relationships
        """
        result = {
            column.name: self._serialize(getattr(self, column.name))
            for column in self.__table__.columns
        }

        if include_relationships:
            for rel in self.__mapper__.relationships:
                value = getattr(self, rel.key)
                if value is None:
                    result[rel.key] = None
                elif isinstance(value, list):
                    result[rel.key] = [child.to_dict() for child in value]
                else:
                    result[rel.key] = value.to_dict()

        return result

    @staticmethod
    def _serialize(value: Any) -> Any:
        return value.isoformat() if isinstance(value, datetime) else value

    def update_from_dict(self, data: Dict[str, Any]) -> None:
        """
        Apply the upsert fields in `data` to this row.

        Keys that are not columns are ignored. name_key follows name through
        the validator, so it is never taken from `data` directly.
        """
        for column in self.__table__.columns:
            if column.name in data and column.name not in self._PROTECTED_COLUMNS:
                setattr(self, column.name, data[column.name])

        self.updated_at = utc_now()

    def __repr__(self) -> str:
        name = getattr(self, "name", None)
        if name is None:
            return f"{self.__class__.__name__}(id={self.id})"
        return f"{self.__class__.__name__}(id={self.id}, name='{name}')"
