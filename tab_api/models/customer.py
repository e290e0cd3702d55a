"""
Customer Models: Customer, CustomerIdentifier, Transaction.
"""

from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tab_shared.config.constants import TabType

from .base import AuditMixin, Base


class Customer(AuditMixin, Base):
    """
    A venue customer.

    credits: prepaid balance, debited at settlement and raised by top-up.
    credit_limit: post-paid ceiling, checked at settlement, never debited.
    A credit_limit of 0 means no ceiling.
    """

    __tablename__ = "customer"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("tenant.id"), nullable=False, index=True
    )
    branch_id: Mapped[Optional[uuid.UUID]] = mapped_column(ForeignKey("branch.id"))
    name: Mapped[str] = mapped_column(Text, nullable=False)
    credits: Mapped[Decimal] = mapped_column(default=Decimal("0.00"), nullable=False)
    credit_limit: Mapped[Decimal] = mapped_column(default=Decimal("0.00"), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    identifiers: Mapped[list["CustomerIdentifier"]] = relationship(back_populates="customer")

    __table_args__ = (
        CheckConstraint("credits >= 0", name="chk_customer_credits_non_negative"),
        CheckConstraint("credit_limit >= 0", name="chk_customer_credit_limit_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<Customer(id={self.id}, name='{self.name}', credits={self.credits})>"


class CustomerIdentifier(AuditMixin, Base):
    """
    NFC tag, barcode, QR code or manual number that points at a customer.

    tab_type is the settlement policy of tabs opened with this identifier.
    Deactivated (not deleted) when its tab closes.
    """

    __tablename__ = "customer_identifier"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("tenant.id"), nullable=False, index=True
    )
    customer_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("customer.id"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(Text, nullable=False)
    code: Mapped[str] = mapped_column(Text, nullable=False)
    tab_type: Mapped[str] = mapped_column(Text, default=TabType.DEFAULT, nullable=False)
    is_master: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    customer: Mapped["Customer"] = relationship(back_populates="identifiers")

    __table_args__ = (
        # A code points at one customer at a time within a tenant
        Index(
            "uq_identifier_active_code",
            "tenant_id",
            "code",
            unique=True,
            postgresql_where=text("active"),
            sqlite_where=text("active = 1"),
        ),
        Index("ix_identifier_tenant_code", "tenant_id", "code"),
    )

    def __repr__(self) -> str:
        return f"<CustomerIdentifier(id={self.id}, type={self.type}, active={self.active})>"


class Transaction(AuditMixin, Base):
    """
    Append-only financial ledger entry for a customer.
    Rows are never updated or deleted.
    """

    __tablename__ = "customer_transaction"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("tenant.id"), nullable=False, index=True
    )
    branch_id: Mapped[Optional[uuid.UUID]] = mapped_column(ForeignKey("branch.id"))
    customer_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("customer.id"), nullable=False, index=True
    )
    tab_id: Mapped[Optional[uuid.UUID]] = mapped_column(ForeignKey("tab.id"), index=True)
    type: Mapped[str] = mapped_column(Text, nullable=False)  # debit, credit, split
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)

    def __repr__(self) -> str:
        return f"<Transaction(id={self.id}, type={self.type}, amount={self.amount})>"
