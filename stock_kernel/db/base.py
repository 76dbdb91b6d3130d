"""
Module: stock_kernel.db.base
Responsibility: Declarative base for every stock table: the UUID primary key,
    the column type map and the audit columns shared by tracked rows.
Architecture position: Kernel > DB.  Lowest import target in the kernel;
    must not import models/, services/, selectors/ or domain/.

Invariants enforced:
    - Every row has a uuid4 primary key, stored as a 36-character string so
      SQLite and PostgreSQL hold identical values.
    - Quantities are whole units: ``int`` maps to Integer, never Numeric.
    - Constraints left unnamed by a model get deterministic names from
      ``NAMING_CONVENTION``; CHECK constraints are always named explicitly.
"""

from datetime import datetime
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Integer, MetaData, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_N_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class UUIDString(TypeDecorator):
    """UUIDs on the Python side, canonical hyphenated strings in the database.

    Strings are accepted on bind and normalised through ``UUID()``, so a
    malformed id fails before it reaches SQL.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return str(value if isinstance(value, UUID) else UUID(str(value)))

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(value)


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)

    type_annotation_map: ClassVar[dict] = {
        datetime: DateTime(timezone=True),
        UUID: UUIDString(),
        int: Integer,
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Rows that record who created them and who touched them last.

    ``updated_at`` / ``updated_by_id`` are audit metadata: the immutability
    listeners let them change even on frozen rows.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(server_default=func.now(), onupdate=func.now())
    created_by_id: Mapped[UUID]
    updated_by_id: Mapped[UUID | None]
