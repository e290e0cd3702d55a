"""
Tab Domain Service.

Tab lifecycle (open, read, list) and the item ledger. Closing lives in
SettlementService.

Lifecycle: open -> closed (terminal). Items may only be added while open.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from tab_shared.config.constants import BookingStatus, TabStatus
from tab_shared.config.logging import tabs_logger as logger, mask_code
from tab_shared.utils.exceptions import (
    DatabaseError,
    InvalidStateError,
    LocationReservedError,
    TabNotFoundError,
)
from tab_shared.utils.schemas import AddItemRequest, as_utc
from tab_api.models import Booking, Tab, TabItem, TabItemParticipant, utcnow
from .identifier_service import IdentifierService


class TabService:
    """Domain service for tabs and their items."""

    def __init__(self, db: Session):
        self._db = db

    # =========================================================================
    # Lookups
    # =========================================================================

    def get(self, tenant_id: UUID, tab_id: UUID, for_update: bool = False) -> Tab:
        """
        Raises:
            TabNotFoundError: Unknown tab (or another tenant's).
        """
        stmt = select(Tab).where(Tab.id == tab_id, Tab.tenant_id == tenant_id)
        if for_update:
            stmt = stmt.with_for_update()
        tab = self._db.scalar(stmt)
        if tab is None:
            raise TabNotFoundError(tab_id)
        return tab

    def require_open_tab(self, tenant_id: UUID, tab_id: UUID, for_update: bool = False) -> Tab:
        """
        Raises:
            TabNotFoundError: Unknown tab.
            InvalidStateError: Tab is not open.
        """
        tab = self.get(tenant_id, tab_id, for_update=for_update)
        if tab.status != TabStatus.OPEN:
            raise InvalidStateError("Tab", tab.status, [TabStatus.OPEN], tab_id=str(tab.id))
        return tab

    def find_open_tab(self, tenant_id: UUID, customer_id: UUID) -> Tab | None:
        return self._db.scalar(
            select(Tab).where(
                Tab.tenant_id == tenant_id,
                Tab.customer_id == customer_id,
                Tab.status == TabStatus.OPEN,
            )
        )

    def get_detail(self, tenant_id: UUID, tab_id: UUID) -> dict:
        """Tab with its items (creation order) and all their participants."""
        tab = self.get(tenant_id, tab_id)
        items = self._db.scalars(
            select(TabItem)
            .where(TabItem.tab_id == tab.id, TabItem.tenant_id == tenant_id)
            .order_by(TabItem.line_no)
        ).all()
        participants = self._db.scalars(
            select(TabItemParticipant)
            .join(TabItem, TabItem.id == TabItemParticipant.tab_item_id)
            .where(TabItem.tab_id == tab.id, TabItemParticipant.tenant_id == tenant_id)
            .order_by(TabItem.line_no, TabItemParticipant.position)
        ).all()
        return {"tab": tab, "items": list(items), "participants": list(participants)}

    def list_tabs(
        self,
        tenant_id: UUID,
        status: str | None = None,
        customer_id: UUID | None = None,
        branch_id: UUID | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Tab], int]:
        """Tabs newest first. Returns (page, total)."""
        conditions = [Tab.tenant_id == tenant_id]
        if status is not None:
            conditions.append(Tab.status == status)
        if customer_id is not None:
            conditions.append(Tab.customer_id == customer_id)
        if branch_id is not None:
            conditions.append(Tab.branch_id == branch_id)

        total = self._db.scalar(select(func.count(Tab.id)).where(*conditions)) or 0
        tabs = self._db.scalars(
            select(Tab)
            .where(*conditions)
            .order_by(Tab.opened_at.desc())
            .offset(offset)
            .limit(limit)
        ).all()
        return list(tabs), total

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def open_tab(
        self,
        tenant_id: UUID,
        code: str,
        branch_id: UUID | None = None,
        user_id: str | None = None,
    ) -> tuple[Tab, bool]:
        """
        Open a tab for the customer behind an identifier.

        Idempotent per customer: if the customer already has an open tab it
        is returned unchanged. Returns (tab, created).

        Raises:
            IdentifierNotFoundError: No active identifier with the code.
        """
        identifier, customer = IdentifierService(self._db).resolve(tenant_id, code)

        existing = self.find_open_tab(tenant_id, customer.id)
        if existing is not None:
            return existing, False

        tab = Tab(
            tenant_id=tenant_id,
            branch_id=branch_id,
            customer_id=customer.id,
            identifier_id=identifier.id,
            identifier_code=identifier.code,
            type=identifier.tab_type,
            status=TabStatus.OPEN,
        )
        tab.set_created_by(user_id)
        self._db.add(tab)
        try:
            self._db.commit()
        except IntegrityError:
            # Lost the race against a concurrent open for the same customer
            self._db.rollback()
            existing = self.find_open_tab(tenant_id, customer.id)
            if existing is None:
                raise
            return existing, False
        self._db.refresh(tab)

        logger.info(
            "Tab opened",
            tab_id=str(tab.id),
            customer_id=str(customer.id),
            tab_type=tab.type,
            code=mask_code(code),
        )
        return tab, True

    # =========================================================================
    # Item ledger
    # =========================================================================

    def find_blocking_bookings(
        self,
        tenant_id: UUID,
        location_id: UUID,
        start_at: datetime,
        end_at: datetime,
    ) -> list[Booking]:
        """Active bookings overlapping the half-open window [start_at, end_at)."""
        return list(
            self._db.scalars(
                select(Booking).where(
                    Booking.tenant_id == tenant_id,
                    Booking.location_id == location_id,
                    Booking.status.in_(BookingStatus.BLOCKING),
                    Booking.start_at < end_at,
                    Booking.end_at > start_at,
                )
            ).all()
        )

    def add_item(
        self,
        tenant_id: UUID,
        body: AddItemRequest,
        user_id: str | None = None,
    ) -> TabItem:
        """
        Append an item to an open tab. total is stored as given.

        Raises:
            TabNotFoundError: Unknown tab.
            InvalidStateError: Tab is not open.
            LocationReservedError: Another customer's booking overlaps the window.
        """
        try:
            # Row lock serializes against a concurrent close
            tab = self.require_open_tab(tenant_id, body.tab_id, for_update=True)

            if body.location_id is not None and body.start_at is not None:
                conflicts = self.find_blocking_bookings(
                    tenant_id, body.location_id, body.start_at, body.end_at
                )
                if any(b.customer_id != tab.customer_id for b in conflicts):
                    raise LocationReservedError(
                        body.location_id,
                        tab_id=str(tab.id),
                        bookings=[str(b.id) for b in conflicts],
                    )

            last_line = self._db.scalar(
                select(func.max(TabItem.line_no)).where(TabItem.tab_id == tab.id)
            )
            item = TabItem(
                tenant_id=tenant_id,
                tab_id=tab.id,
                line_no=(last_line or 0) + 1,
                product_id=body.product_id,
                service_id=body.service_id,
                location_id=body.location_id,
                description=body.description,
                quantity=body.quantity,
                unit_price=body.unit_price,
                total=body.total,
                start_at=body.start_at,
                end_at=body.end_at,
            )
            item.set_created_by(user_id)
            self._db.add(item)
            self._db.commit()
        except SQLAlchemyError as e:
            self._db.rollback()
            raise DatabaseError("add item", tab_id=str(body.tab_id), error=str(e)) from e
        except Exception:
            self._db.rollback()
            raise
        self._db.refresh(item)

        logger.info(
            "Tab item added",
            tab_id=str(tab.id),
            item_id=str(item.id),
            total=str(item.total),
            location_id=str(body.location_id) if body.location_id else None,
        )
        return item

    def current_booking(
        self,
        tenant_id: UUID,
        location_id: UUID,
        at: datetime | None = None,
    ) -> Booking | None:
        """Active booking on the location covering the instant ``at`` (default now)."""
        at = as_utc(at) if at is not None else utcnow()
        return self._db.scalar(
            select(Booking)
            .where(
                Booking.tenant_id == tenant_id,
                Booking.location_id == location_id,
                Booking.status.in_(BookingStatus.BLOCKING),
                Booking.start_at <= at,
                Booking.end_at > at,
            )
            .order_by(Booking.start_at.desc())
            .limit(1)
        )
