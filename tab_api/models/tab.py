"""
Tab Models: Tab, TabItem, TabItemParticipant, TabPayment.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, Text, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tab_shared.config.constants import TabStatus, TabType

from .base import AuditMixin, Base, utcnow

if TYPE_CHECKING:
    from .customer import Customer


class Tab(AuditMixin, Base):
    """
    A running account (comanda) opened against an identifier.

    type is fixed at open time from the identifier's policy.
    Lifecycle: open -> closed (terminal).
    """

    __tablename__ = "tab"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("tenant.id"), nullable=False, index=True
    )
    branch_id: Mapped[Optional[uuid.UUID]] = mapped_column(ForeignKey("branch.id"), index=True)
    customer_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("customer.id"), nullable=False, index=True
    )
    identifier_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("customer_identifier.id")
    )
    identifier_code: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(Text, default=TabType.DEFAULT, nullable=False)
    status: Mapped[str] = mapped_column(Text, default=TabStatus.OPEN, nullable=False, index=True)
    opened_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    customer: Mapped["Customer"] = relationship()
    items: Mapped[list["TabItem"]] = relationship(
        back_populates="tab", order_by="TabItem.line_no"
    )
    payments: Mapped[list["TabPayment"]] = relationship(back_populates="tab")

    __table_args__ = (
        # Exactly one open tab per customer within a tenant
        Index(
            "uq_tab_open_customer",
            "tenant_id",
            "customer_id",
            unique=True,
            postgresql_where=text("status = 'open'"),
            sqlite_where=text("status = 'open'"),
        ),
        Index("ix_tab_tenant_status", "tenant_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<Tab(id={self.id}, customer={self.customer_id}, type={self.type}, status={self.status})>"


class TabItem(AuditMixin, Base):
    """
    A consumption line on a tab. Immutable once written.

    total is the chargeable amount as supplied by the caller.
    line_no gives the creation order used by settlement.
    """

    __tablename__ = "tab_item"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("tenant.id"), nullable=False, index=True
    )
    tab_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("tab.id"), nullable=False, index=True)
    line_no: Mapped[int] = mapped_column(Integer, nullable=False)
    product_id: Mapped[Optional[uuid.UUID]] = mapped_column()
    service_id: Mapped[Optional[uuid.UUID]] = mapped_column()
    location_id: Mapped[Optional[uuid.UUID]] = mapped_column(index=True)
    description: Mapped[Optional[str]] = mapped_column(Text)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(nullable=False)
    total: Mapped[Decimal] = mapped_column(nullable=False)
    start_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    end_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    tab: Mapped["Tab"] = relationship(back_populates="items")
    participants: Mapped[list["TabItemParticipant"]] = relationship(
        back_populates="item",
        order_by="TabItemParticipant.position",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("tab_id", "line_no", name="uq_tab_item_line"),
        CheckConstraint("quantity >= 1", name="chk_tab_item_quantity_positive"),
        CheckConstraint("total > 0", name="chk_tab_item_total_positive"),
    )


class TabItemParticipant(AuditMixin, Base):
    """A customer's share of a location item. position keeps insertion order."""

    __tablename__ = "tab_item_participant"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("tenant.id"), nullable=False, index=True
    )
    tab_item_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("tab_item.id"), nullable=False, index=True
    )
    customer_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("customer.id"), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    item: Mapped["TabItem"] = relationship(back_populates="participants")


class TabPayment(AuditMixin, Base):
    """A payment taken against a register when a credit tab closes."""

    __tablename__ = "tab_payment"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("tenant.id"), nullable=False, index=True
    )
    tab_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("tab.id"), nullable=False, index=True)
    cash_register_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("cash_register.id"), index=True
    )
    method: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)

    tab: Mapped["Tab"] = relationship(back_populates="payments")

    __table_args__ = (
        CheckConstraint("amount > 0", name="chk_tab_payment_amount_positive"),
    )
