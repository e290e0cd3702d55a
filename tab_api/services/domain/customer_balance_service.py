"""
Customer Balance Domain Service.

Prepaid credits are changed in two places only: the settlement debit and
the top-up below.
"""

from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tab_shared.config.constants import TransactionType
from tab_shared.config.logging import customers_logger as logger
from tab_shared.utils.exceptions import CustomerNotFoundError, DatabaseError, InvalidStateError
from tab_shared.utils.money import to_decimal
from tab_api.models import CreditPayment, Customer, Transaction
from .cash_register_service import CashRegisterService


class CustomerBalanceService:
    """Domain service for prepaid balances."""

    def __init__(self, db: Session):
        self._db = db

    def get_customer(self, tenant_id: UUID, customer_id: UUID, for_update: bool = False) -> Customer:
        stmt = select(Customer).where(Customer.id == customer_id, Customer.tenant_id == tenant_id)
        if for_update:
            stmt = stmt.with_for_update()
        customer = self._db.scalar(stmt)
        if customer is None:
            raise CustomerNotFoundError(customer_id)
        return customer

    def get_balance(self, tenant_id: UUID, customer_id: UUID) -> dict[str, Any]:
        customer = self.get_customer(tenant_id, customer_id)
        return {
            "customer_id": customer.id,
            "credits": to_decimal(customer.credits),
            "credit_limit": to_decimal(customer.credit_limit),
        }

    def add_credits(
        self,
        tenant_id: UUID,
        customer_id: UUID,
        amount: Decimal,
        method: str,
        description: str | None = None,
        user_id: str | None = None,
    ) -> dict[str, Any]:
        """
        Top up a customer's prepaid credits against the open register.

        Writes a credit Transaction and a CreditPayment.
        Returns {"id": customer_id, "added", "credits"}.

        Raises:
            CustomerNotFoundError: Unknown customer.
            InvalidStateError: No open cash register.
        """
        amount = to_decimal(amount)
        try:
            customer = self.get_customer(tenant_id, customer_id, for_update=True)

            register = CashRegisterService(self._db).find_for_settlement(
                tenant_id, customer.branch_id
            )
            if register is None:
                raise InvalidStateError(
                    "Cash register",
                    reason="no open cash register",
                    customer_id=str(customer_id),
                )

            self._db.execute(
                update(Customer)
                .where(Customer.id == customer.id)
                .values(credits=Customer.credits + amount)
                .execution_options(synchronize_session=False)
            )

            entry = Transaction(
                tenant_id=tenant_id,
                branch_id=register.branch_id,
                customer_id=customer.id,
                type=TransactionType.CREDIT,
                amount=amount,
                description=description or "Credit added",
            )
            entry.set_created_by(user_id)
            payment = CreditPayment(
                tenant_id=tenant_id,
                customer_id=customer.id,
                cash_register_id=register.id,
                method=method,
                amount=amount,
                description=description or "Prepaid credit",
            )
            payment.set_created_by(user_id)
            self._db.add_all([entry, payment])
            self._db.commit()
        except SQLAlchemyError as e:
            self._db.rollback()
            raise DatabaseError("credit top-up", customer_id=str(customer_id), error=str(e)) from e
        except Exception:
            self._db.rollback()
            raise

        self._db.refresh(customer)
        logger.info(
            "Credits added",
            customer_id=str(customer_id),
            amount=str(amount),
            method=method,
            register_id=str(register.id),
        )
        return {
            "id": customer.id,
            "added": amount,
            "credits": to_decimal(customer.credits),
        }
