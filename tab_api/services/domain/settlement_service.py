"""
Settlement Domain Service.

Closes a tab: aggregates charges per customer, checks them against the tab's
policy (prepaid balance or credit line plus register payments) and commits
every side effect in a single transaction.

Locking: the tab row, then the charged customers ordered by id, then the
register, all FOR UPDATE. The prepaid debit is a conditional UPDATE so a
concurrent debit can never drive credits negative.
"""

from decimal import Decimal
from typing import Any, Iterable
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from tab_shared.config.constants import TabStatus, TabType, TransactionType
from tab_shared.config.logging import settlement_logger as logger
from tab_shared.config.settings import settings
from tab_shared.utils.exceptions import (
    CustomerNotFoundError,
    DatabaseError,
    InsufficientFundsError,
    InvalidStateError,
    TabNotFoundError,
)
from tab_shared.utils.money import ZERO, money_sum, to_decimal, within_tolerance
from tab_shared.utils.schemas import PaymentInput
from tab_api.models import (
    CashRegister,
    Customer,
    CustomerIdentifier,
    Tab,
    TabItem,
    TabPayment,
    Transaction,
    utcnow,
)
from .cash_register_service import CashRegisterService


def aggregate_charges(primary_customer_id: UUID, items: Iterable[Any]) -> dict[UUID, Decimal]:
    """
    Charge per customer, keyed in first-charged order.

    Location items with participants distribute the stored participant
    amounts; every other item charges its total to the primary customer.
    Items must come in creation order and participants in insertion order.
    """
    charges: dict[UUID, Decimal] = {}
    for item in items:
        if item.location_id is not None and item.participants:
            for participant in item.participants:
                charges[participant.customer_id] = (
                    charges.get(participant.customer_id, ZERO) + to_decimal(participant.amount)
                )
        else:
            charges[primary_customer_id] = (
                charges.get(primary_customer_id, ZERO) + to_decimal(item.total)
            )
    return charges


class SettlementService:
    """Domain service that closes tabs."""

    def __init__(self, db: Session, tolerance: Decimal | None = None):
        self._db = db
        self._tolerance = settings.payment_tolerance if tolerance is None else tolerance

    def close_tab(
        self,
        tenant_id: UUID,
        tab_id: UUID,
        payments: list[PaymentInput] | None = None,
        user_id: str | None = None,
    ) -> dict[str, Any]:
        """
        Settle and close a tab.

        Returns {"id", "status", "charges": [{"customer_id", "amount"}], "total"}.
        Nothing is written unless every check passes.

        Raises:
            TabNotFoundError: Unknown tab.
            InvalidStateError: Tab not open, payments on a prepaid tab, no open
                register, payments missing or not matching the total, or the
                tab was closed concurrently.
            CustomerNotFoundError: A charged customer does not exist.
            InsufficientFundsError: Prepaid credits or credit limit too low.
        """
        payments = payments or []
        try:
            tab = self._db.scalar(
                select(Tab)
                .where(Tab.id == tab_id, Tab.tenant_id == tenant_id)
                .with_for_update()
            )
            if tab is None:
                raise TabNotFoundError(tab_id)
            if tab.status != TabStatus.OPEN:
                raise InvalidStateError("Tab", tab.status, [TabStatus.OPEN], tab_id=str(tab.id))

            items = self._db.scalars(
                select(TabItem)
                .where(TabItem.tab_id == tab.id)
                .order_by(TabItem.line_no)
                .options(selectinload(TabItem.participants))
            ).all()

            charges = aggregate_charges(tab.customer_id, items)
            total = money_sum(charges.values())
            customers = self._lock_customers(tenant_id, tab.customer_id, charges)

            register = None
            if tab.type == TabType.CREDIT:
                register = self._check_credit(tab, total, customers[tab.customer_id], payments)
            else:
                self._check_prepaid(tab, charges, customers, payments)

            self._apply(tab, charges, payments, register, customers, user_id)
            self._db.commit()
        except SQLAlchemyError as e:
            self._db.rollback()
            raise DatabaseError("tab settlement", tab_id=str(tab_id), error=str(e)) from e
        except Exception:
            self._db.rollback()
            raise

        logger.info(
            "Tab closed",
            tab_id=str(tab_id),
            tab_type=tab.type,
            total=str(total),
            customers=len(charges),
            payments=len(payments),
        )
        return {
            "id": tab_id,
            "status": TabStatus.CLOSED,
            "charges": [
                {"customer_id": customer_id, "amount": amount}
                for customer_id, amount in charges.items()
            ],
            "total": total,
        }

    # =========================================================================
    # Validation
    # =========================================================================

    def _lock_customers(
        self,
        tenant_id: UUID,
        primary_customer_id: UUID,
        charges: dict[UUID, Decimal],
    ) -> dict[UUID, Customer]:
        """Lock the primary and every charged customer in id order."""
        wanted = [primary_customer_id, *(cid for cid in charges if cid != primary_customer_id)]
        rows = self._db.scalars(
            select(Customer)
            .where(Customer.tenant_id == tenant_id, Customer.id.in_(wanted))
            .order_by(Customer.id)
            .with_for_update()
        ).all()
        customers = {c.id: c for c in rows}
        for customer_id in wanted:
            if customer_id not in customers:
                raise CustomerNotFoundError(customer_id)
        return customers

    def _check_prepaid(
        self,
        tab: Tab,
        charges: dict[UUID, Decimal],
        customers: dict[UUID, Customer],
        payments: list[PaymentInput],
    ) -> None:
        if payments:
            raise InvalidStateError(
                "Tab",
                reason="payments are not accepted for prepaid tabs",
                tab_id=str(tab.id),
            )
        for customer_id, amount in charges.items():
            customer = customers[customer_id]
            available = to_decimal(customer.credits)
            if available < amount:
                raise InsufficientFundsError(
                    customer_id,
                    amount,
                    available,
                    customer_name=customer.name,
                    tab_id=str(tab.id),
                )

    def _check_credit(
        self,
        tab: Tab,
        total: Decimal,
        primary: Customer,
        payments: list[PaymentInput],
    ) -> CashRegister:
        limit = to_decimal(primary.credit_limit)
        # A zero limit means no ceiling
        if limit > 0 and total > limit:
            raise InsufficientFundsError(
                primary.id,
                total,
                limit,
                kind="credit_limit",
                customer_name=primary.name,
                tab_id=str(tab.id),
            )

        register = CashRegisterService(self._db).find_for_settlement(tab.tenant_id, tab.branch_id)
        if register is None:
            raise InvalidStateError(
                "Cash register",
                reason="no open cash register for this branch",
                tab_id=str(tab.id),
            )

        if not payments:
            raise InvalidStateError(
                "Tab",
                reason="credit tabs require at least one payment",
                tab_id=str(tab.id),
            )
        paid = money_sum(p.amount for p in payments)
        if not within_tolerance(paid, total, self._tolerance):
            raise InvalidStateError(
                "Tab",
                reason=f"payments ({paid}) do not match the total ({total})",
                tab_id=str(tab.id),
            )
        return register

    # =========================================================================
    # Commit
    # =========================================================================

    def _apply(
        self,
        tab: Tab,
        charges: dict[UUID, Decimal],
        payments: list[PaymentInput],
        register: CashRegister | None,
        customers: dict[UUID, Customer],
        user_id: str | None,
    ) -> None:
        description = f"Tab {tab.identifier_code} settlement"

        if tab.type == TabType.PREPAID:
            for customer_id, amount in charges.items():
                result = self._db.execute(
                    update(Customer)
                    .where(
                        Customer.id == customer_id,
                        Customer.tenant_id == tab.tenant_id,
                        Customer.credits >= amount,
                    )
                    .values(credits=Customer.credits - amount)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    # Balance moved between the check and the debit
                    raise InsufficientFundsError(
                        customer_id,
                        amount,
                        to_decimal(customers[customer_id].credits),
                        customer_name=customers[customer_id].name,
                        tab_id=str(tab.id),
                    )
        else:
            for payment in payments:
                row = TabPayment(
                    tenant_id=tab.tenant_id,
                    tab_id=tab.id,
                    cash_register_id=register.id,
                    method=payment.method,
                    amount=payment.amount,
                )
                row.set_created_by(user_id)
                self._db.add(row)

        for customer_id, amount in charges.items():
            entry = Transaction(
                tenant_id=tab.tenant_id,
                branch_id=tab.branch_id,
                customer_id=customer_id,
                tab_id=tab.id,
                type=TransactionType.DEBIT,
                amount=amount,
                description=description,
            )
            entry.set_created_by(user_id)
            self._db.add(entry)

        now = utcnow()
        result = self._db.execute(
            update(Tab)
            .where(Tab.id == tab.id, Tab.status == TabStatus.OPEN)
            .values(status=TabStatus.CLOSED, closed_at=now, updated_at=now, updated_by=user_id)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InvalidStateError("Tab", reason="tab was closed concurrently", tab_id=str(tab.id))

        if tab.identifier_id is not None:
            self._db.execute(
                update(CustomerIdentifier)
                .where(CustomerIdentifier.id == tab.identifier_id)
                .values(active=False, is_master=False, updated_at=now, updated_by=user_id)
                .execution_options(synchronize_session=False)
            )
