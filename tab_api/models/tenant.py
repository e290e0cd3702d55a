"""
Multi-Tenancy Models: Tenant and Branch.

Both are owned by the company-management collaborator; the tab engine only
reads them (plan feature gate, branch scoping).
"""

from __future__ import annotations

import uuid
from typing import Optional

from sqlalchemy import ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tab_shared.config.constants import PlanFeatures

from .base import AuditMixin, Base


class Tenant(AuditMixin, Base):
    """
    A company using the system (top-level tenant).
    All other entities belong to a tenant for complete data isolation.
    """

    __tablename__ = "tenant"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    plan: Mapped[str] = mapped_column(Text, default=PlanFeatures.DEFAULT_PLAN, nullable=False)
    status: Mapped[str] = mapped_column(Text, default="active", nullable=False)

    branches: Mapped[list["Branch"]] = relationship(back_populates="tenant")

    def __repr__(self) -> str:
        return f"<Tenant(id={self.id}, name='{self.name}', plan='{self.plan}')>"


class Branch(AuditMixin, Base):
    """A physical venue of a tenant."""

    __tablename__ = "branch"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("tenant.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    address: Mapped[Optional[str]] = mapped_column(Text)

    tenant: Mapped["Tenant"] = relationship(back_populates="branches")
