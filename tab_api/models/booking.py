"""
Booking Model: time-boxed reservation of a rentable location.

Bookings are written by the scheduling collaborator; the tab engine reads
them to guard location items against double booking.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, Text
from sqlalchemy.orm import Mapped, mapped_column

from tab_shared.config.constants import BookingStatus

from .base import AuditMixin, Base


class Booking(AuditMixin, Base):
    """A location reserved over the half-open window [start_at, end_at)."""

    __tablename__ = "booking"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("tenant.id"), nullable=False, index=True
    )
    branch_id: Mapped[Optional[uuid.UUID]] = mapped_column(ForeignKey("branch.id"))
    customer_id: Mapped[Optional[uuid.UUID]] = mapped_column(ForeignKey("customer.id"))
    location_id: Mapped[uuid.UUID] = mapped_column(nullable=False)
    start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    total: Mapped[Decimal] = mapped_column(default=Decimal("0.00"), nullable=False)
    status: Mapped[str] = mapped_column(Text, default=BookingStatus.PENDING, nullable=False)

    __table_args__ = (
        Index("ix_booking_location_window", "tenant_id", "location_id", "start_at", "end_at"),
    )
