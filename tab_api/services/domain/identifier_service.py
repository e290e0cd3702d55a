"""
Identifier Domain Service.

Resolves NFC/barcode/QR/manual codes to customers and links codes to
customers ("activate tag"). Codes are logged masked.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tab_shared.config.constants import TabStatus, TabType
from tab_shared.config.logging import customers_logger as logger, mask_code
from tab_shared.utils.exceptions import (
    ConflictError,
    CustomerNotFoundError,
    IdentifierNotFoundError,
)
from tab_api.models import Customer, CustomerIdentifier, Tab


class IdentifierService:
    """Domain service for customer identifiers."""

    def __init__(self, db: Session):
        self._db = db

    def lookup(
        self, tenant_id: UUID, code: str
    ) -> tuple[CustomerIdentifier | None, Customer | None]:
        """Active identifier and its customer, or (None, None)."""
        row = self._db.execute(
            select(CustomerIdentifier, Customer)
            .join(Customer, Customer.id == CustomerIdentifier.customer_id)
            .where(
                CustomerIdentifier.tenant_id == tenant_id,
                CustomerIdentifier.code == code,
                CustomerIdentifier.active.is_(True),
                Customer.tenant_id == tenant_id,
            )
        ).first()
        if row is None:
            return None, None
        return row[0], row[1]

    def resolve(self, tenant_id: UUID, code: str) -> tuple[CustomerIdentifier, Customer]:
        """
        Active identifier and its customer.

        Raises:
            IdentifierNotFoundError: If no active identifier has the code.
        """
        identifier, customer = self.lookup(tenant_id, code)
        if identifier is None:
            raise IdentifierNotFoundError(tenant_id=str(tenant_id), code=mask_code(code))
        return identifier, customer

    def link(
        self,
        tenant_id: UUID,
        customer_id: UUID,
        identifier_type: str,
        code: str,
        tab_type: str | None = None,
        user_id: str | None = None,
    ) -> tuple[CustomerIdentifier, bool]:
        """
        Link a code to a customer.

        An existing row with the code is re-linked (reactivated as master);
        otherwise a new row is created. Returns (identifier, created).

        Raises:
            CustomerNotFoundError: Unknown customer.
            ConflictError: The identifier still anchors an open tab.
        """
        customer = self._db.scalar(
            select(Customer).where(Customer.id == customer_id, Customer.tenant_id == tenant_id)
        )
        if customer is None:
            raise CustomerNotFoundError(customer_id)

        # Prefer the active row, then the most recently created one
        existing = self._db.scalar(
            select(CustomerIdentifier)
            .where(
                CustomerIdentifier.tenant_id == tenant_id,
                CustomerIdentifier.code == code,
            )
            .order_by(CustomerIdentifier.active.desc(), CustomerIdentifier.created_at.desc())
            .limit(1)
            .with_for_update()
        )

        if existing is not None:
            anchored = self._db.scalar(
                select(Tab.id).where(
                    Tab.tenant_id == tenant_id,
                    Tab.identifier_id == existing.id,
                    Tab.status == TabStatus.OPEN,
                )
            )
            if anchored is not None:
                raise ConflictError(
                    "Identifier is in use by an open tab",
                    tab_id=str(anchored),
                    code=mask_code(code),
                )

            existing.customer_id = customer.id
            existing.type = identifier_type
            existing.tab_type = tab_type or existing.tab_type or TabType.DEFAULT
            existing.active = True
            existing.is_master = True
            existing.set_updated_by(user_id)
            identifier, created = existing, False
        else:
            identifier = CustomerIdentifier(
                tenant_id=tenant_id,
                customer_id=customer.id,
                type=identifier_type,
                code=code,
                tab_type=tab_type or TabType.DEFAULT,
                is_master=True,
                active=True,
            )
            identifier.set_created_by(user_id)
            self._db.add(identifier)
            created = True

        try:
            self._db.commit()
        except IntegrityError:
            # Another request linked the same code first
            self._db.rollback()
            raise ConflictError("Identifier code already in use", code=mask_code(code))
        self._db.refresh(identifier)

        logger.info(
            "Identifier linked",
            identifier_id=str(identifier.id),
            customer_id=str(customer.id),
            code=mask_code(code),
            created=created,
        )
        return identifier, created
