"""
Cash Register Domain Service.

Register sessions per branch: open, close with per-method totals, running
totals while open, and history.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from tab_shared.config.constants import PaymentMethod, RegisterStatus
from tab_shared.config.logging import cash_logger as logger
from tab_shared.utils.exceptions import (
    ConflictError,
    DatabaseError,
    InvalidStateError,
    NotFoundError,
)
from tab_shared.utils.money import ZERO, to_decimal
from tab_api.models import CashRegister, TabPayment, utcnow


def empty_totals() -> dict[str, Decimal]:
    """Zero for every payment method, in payload order."""
    return {method: ZERO for method in PaymentMethod.ALL}


class CashRegisterService:
    """Domain service for cash register sessions."""

    def __init__(self, db: Session):
        self._db = db

    # =========================================================================
    # Queries
    # =========================================================================

    def get(self, tenant_id: UUID, register_id: UUID, for_update: bool = False) -> CashRegister:
        """
        Raises:
            NotFoundError: Unknown register (or another tenant's).
        """
        stmt = select(CashRegister).where(
            CashRegister.id == register_id,
            CashRegister.tenant_id == tenant_id,
        )
        if for_update:
            stmt = stmt.with_for_update()
        register = self._db.scalar(stmt)
        if register is None:
            raise NotFoundError("Cash register", register_id)
        return register

    def get_open(self, tenant_id: UUID, branch_id: UUID | None = None) -> CashRegister | None:
        """Open register for the branch, or any open register when no branch is given."""
        stmt = select(CashRegister).where(
            CashRegister.tenant_id == tenant_id,
            CashRegister.status == RegisterStatus.OPEN,
        )
        if branch_id is not None:
            stmt = stmt.where(CashRegister.branch_id == branch_id)
        return self._db.scalar(stmt.order_by(CashRegister.opened_at.desc()).limit(1))

    def find_for_settlement(
        self,
        tenant_id: UUID,
        branch_id: UUID | None,
        for_update: bool = True,
    ) -> CashRegister | None:
        """
        Register that receives payments for a branch.

        Exact branch match first, then a tenant-wide register (no branch).
        Without a branch, any open register of the tenant.
        """
        base = select(CashRegister).where(
            CashRegister.tenant_id == tenant_id,
            CashRegister.status == RegisterStatus.OPEN,
        )
        if for_update:
            base = base.with_for_update()

        if branch_id is None:
            candidates = [base.order_by(CashRegister.opened_at.desc())]
        else:
            candidates = [
                base.where(CashRegister.branch_id == branch_id),
                base.where(CashRegister.branch_id.is_(None)),
            ]

        for stmt in candidates:
            register = self._db.scalar(stmt.limit(1))
            if register is not None:
                return register
        return None

    def totals(self, tenant_id: UUID, register_id: UUID) -> dict[str, Decimal]:
        """Per-method sum of tab payments recorded against the register."""
        rows = self._db.execute(
            select(TabPayment.method, func.sum(TabPayment.amount))
            .where(
                TabPayment.tenant_id == tenant_id,
                TabPayment.cash_register_id == register_id,
            )
            .group_by(TabPayment.method)
        ).all()

        totals = empty_totals()
        for method, amount in rows:
            if method in totals:
                totals[method] = to_decimal(amount)
        return totals

    def current_totals(self, tenant_id: UUID, register_id: UUID) -> dict[str, Decimal]:
        """Running totals of an open register."""
        register = self.get(tenant_id, register_id)
        if register.status != RegisterStatus.OPEN:
            raise InvalidStateError("Cash register", register.status, [RegisterStatus.OPEN])
        return self.totals(tenant_id, register.id)

    def history(
        self,
        tenant_id: UUID,
        start_at: datetime | None = None,
        end_at: datetime | None = None,
        branch_id: UUID | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[CashRegister], int]:
        """Registers opened within [start_at, end_at], newest first. Returns (page, total)."""
        conditions = [CashRegister.tenant_id == tenant_id]
        if start_at is not None:
            conditions.append(CashRegister.opened_at >= start_at)
        if end_at is not None:
            conditions.append(CashRegister.opened_at <= end_at)
        if branch_id is not None:
            conditions.append(CashRegister.branch_id == branch_id)

        total = self._db.scalar(select(func.count(CashRegister.id)).where(*conditions)) or 0
        registers = self._db.scalars(
            select(CashRegister)
            .where(*conditions)
            .order_by(CashRegister.opened_at.desc())
            .offset(offset)
            .limit(limit)
        ).all()
        return list(registers), total

    # =========================================================================
    # Commands
    # =========================================================================

    def open(
        self,
        tenant_id: UUID,
        branch_id: UUID | None,
        opening_float: Decimal,
        notes: str | None = None,
        user_id: str | None = None,
    ) -> CashRegister:
        """
        Open a register session.

        Raises:
            ConflictError: A register is already open for this branch.
        """
        if branch_id is None:
            same_branch = CashRegister.branch_id.is_(None)
        else:
            same_branch = CashRegister.branch_id == branch_id

        existing = self._db.scalar(
            select(CashRegister.id).where(
                CashRegister.tenant_id == tenant_id,
                CashRegister.status == RegisterStatus.OPEN,
                same_branch,
            )
        )
        if existing is not None:
            raise ConflictError(
                "Cash register already open for this branch",
                register_id=str(existing),
                branch_id=str(branch_id) if branch_id else None,
            )

        register = CashRegister(
            tenant_id=tenant_id,
            branch_id=branch_id,
            status=RegisterStatus.OPEN,
            opening_float=to_decimal(opening_float),
            notes=notes,
            opened_by=user_id,
        )
        register.set_created_by(user_id)
        self._db.add(register)
        try:
            self._db.commit()
        except IntegrityError:
            self._db.rollback()
            raise ConflictError("Cash register already open for this branch")
        self._db.refresh(register)

        logger.info(
            "Cash register opened",
            register_id=str(register.id),
            branch_id=str(branch_id) if branch_id else None,
            opening_float=str(register.opening_float),
        )
        return register

    def close(
        self,
        tenant_id: UUID,
        register_id: UUID,
        closing_float: Decimal | None = None,
        notes: str | None = None,
        user_id: str | None = None,
    ) -> tuple[CashRegister, dict[str, Decimal]]:
        """
        Close an open register and store its per-method totals.

        Raises:
            NotFoundError: Unknown register.
            InvalidStateError: Register is not open.
        """
        try:
            register = self.get(tenant_id, register_id, for_update=True)
            if register.status != RegisterStatus.OPEN:
                raise InvalidStateError("Cash register", register.status, [RegisterStatus.OPEN])

            totals = self.totals(tenant_id, register.id)
            register.status = RegisterStatus.CLOSED
            register.total_cash = totals[PaymentMethod.CASH]
            register.total_debit = totals[PaymentMethod.DEBIT]
            register.total_credit = totals[PaymentMethod.CREDIT]
            register.total_pix = totals[PaymentMethod.PIX]
            register.closing_float = (
                to_decimal(closing_float) if closing_float is not None else None
            )
            if notes is not None:
                register.notes = notes
            register.closed_by = user_id
            register.closed_at = utcnow()
            register.set_updated_by(user_id)
            self._db.commit()
        except SQLAlchemyError as e:
            self._db.rollback()
            raise DatabaseError(
                "register close", register_id=str(register_id), error=str(e)
            ) from e
        except Exception:
            self._db.rollback()
            raise
        self._db.refresh(register)

        logger.info(
            "Cash register closed",
            register_id=str(register.id),
            **{f"total_{method}": str(amount) for method, amount in totals.items()},
        )
        return register, totals
