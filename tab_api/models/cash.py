"""
Cash Models: CashRegister, CreditPayment.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from tab_shared.config.constants import RegisterStatus

from .base import AuditMixin, Base, utcnow


class CashRegister(AuditMixin, Base):
    """
    A cash register session for a branch (or tenant-wide when branch is null).

    Per-method totals are filled in at close from the payments recorded
    against the register.
    """

    __tablename__ = "cash_register"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("tenant.id"), nullable=False, index=True
    )
    branch_id: Mapped[Optional[uuid.UUID]] = mapped_column(ForeignKey("branch.id"), index=True)
    status: Mapped[str] = mapped_column(Text, default=RegisterStatus.OPEN, nullable=False)
    opening_float: Mapped[Decimal] = mapped_column(default=Decimal("0.00"), nullable=False)
    closing_float: Mapped[Optional[Decimal]] = mapped_column()
    total_cash: Mapped[Decimal] = mapped_column(default=Decimal("0.00"), nullable=False)
    total_debit: Mapped[Decimal] = mapped_column(default=Decimal("0.00"), nullable=False)
    total_credit: Mapped[Decimal] = mapped_column(default=Decimal("0.00"), nullable=False)
    total_pix: Mapped[Decimal] = mapped_column(default=Decimal("0.00"), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    opened_by: Mapped[Optional[str]] = mapped_column(String(255))
    closed_by: Mapped[Optional[str]] = mapped_column(String(255))
    opened_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        # At most one open register per branch
        Index(
            "uq_cash_register_open_branch",
            "tenant_id",
            "branch_id",
            unique=True,
            postgresql_where=text("status = 'open'"),
            sqlite_where=text("status = 'open'"),
        ),
        Index("ix_cash_register_tenant_status", "tenant_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<CashRegister(id={self.id}, branch={self.branch_id}, status={self.status})>"


class CreditPayment(AuditMixin, Base):
    """Money received against a register for a prepaid top-up."""

    __tablename__ = "credit_payment"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("tenant.id"), nullable=False, index=True
    )
    customer_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("customer.id"), nullable=False, index=True
    )
    cash_register_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("cash_register.id"), nullable=False, index=True
    )
    method: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
