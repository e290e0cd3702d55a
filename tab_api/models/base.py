"""
Base class and AuditMixin for all SQLAlchemy ORM models.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import DateTime, Numeric, String, Uuid
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    """Timezone-aware now, used for python-side timestamp defaults."""
    return datetime.now(timezone.utc)


# Fixed-point currency column type: 10 integer digits, 2 decimals
Money = Numeric(12, 2, asdecimal=True)


class Base(DeclarativeBase):
    """Base class for all models."""

    type_annotation_map = {
        uuid.UUID: Uuid,
        Decimal: Money,
    }


class AuditMixin:
    """
    Mixin providing audit timestamps and actor tracking.

    Fields added:
    - created_at, updated_at: Audit timestamps (UTC)
    - created_by, updated_by: Token subject of the acting staff user

    Timestamps use python-side defaults so rows created in the same
    second still order correctly.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), onupdate=utcnow, nullable=True
    )
    created_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    updated_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    def set_created_by(self, user_id: str | None) -> None:
        """Set created_by on a new entity."""
        self.created_by = user_id

    def set_updated_by(self, user_id: str | None) -> None:
        """Set updated_by fields on entity update."""
        self.updated_by = user_id
        self.updated_at = utcnow()

    def __repr__(self) -> str:
        class_name = self.__class__.__name__
        id_val = getattr(self, "id", None)
        return f"<{class_name}(id={id_val})>"
