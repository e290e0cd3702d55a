"""
Participant Split Service.

Replaces the participant set of a tab item. Amounts are stored as given;
they are not required to add up to the item total.
"""

from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tab_shared.config.constants import PlanFeatures
from tab_shared.config.logging import tabs_logger as logger
from tab_shared.utils.exceptions import CustomerNotFoundError, DatabaseError, NotFoundError
from tab_shared.utils.schemas import ParticipantInput
from tab_api.models import Customer, TabItem, TabItemParticipant
from .plan_features import PlanFeatureService
from .tab_service import TabService


class ParticipantService:
    """Domain service for item participant splits."""

    def __init__(self, db: Session):
        self._db = db

    def set_participants(
        self,
        tenant_id: UUID,
        tab_item_id: UUID,
        participants: list[ParticipantInput],
        user_id: str | None = None,
    ) -> list[ParticipantInput]:
        """
        Delete every participant of the item, then insert the given ones,
        in one transaction. Returns the input.

        Raises:
            FeatureNotAvailableError: Plan lacks account splitting.
            NotFoundError: Unknown item.
            InvalidStateError: Owning tab is not open.
            CustomerNotFoundError: A participant customer is unknown.
        """
        PlanFeatureService(self._db).require_feature(tenant_id, PlanFeatures.ACCOUNT_SPLITTING)

        try:
            item = self._db.scalar(
                select(TabItem).where(TabItem.id == tab_item_id, TabItem.tenant_id == tenant_id)
            )
            if item is None:
                raise NotFoundError("Tab item", tab_item_id)
            TabService(self._db).require_open_tab(tenant_id, item.tab_id, for_update=True)

            customer_ids = {p.customer_id for p in participants}
            if customer_ids:
                known = set(
                    self._db.scalars(
                        select(Customer.id).where(
                            Customer.tenant_id == tenant_id,
                            Customer.id.in_(customer_ids),
                        )
                    ).all()
                )
                for p in participants:
                    if p.customer_id not in known:
                        raise CustomerNotFoundError(p.customer_id)

            self._db.execute(
                delete(TabItemParticipant).where(TabItemParticipant.tab_item_id == item.id)
            )
            for position, p in enumerate(participants):
                row = TabItemParticipant(
                    tenant_id=tenant_id,
                    tab_item_id=item.id,
                    customer_id=p.customer_id,
                    amount=p.amount,
                    position=position,
                )
                row.set_created_by(user_id)
                self._db.add(row)
            self._db.commit()
        except SQLAlchemyError as e:
            self._db.rollback()
            raise DatabaseError(
                "participant update", item_id=str(tab_item_id), error=str(e)
            ) from e
        except Exception:
            self._db.rollback()
            raise

        logger.info(
            "Item participants replaced",
            item_id=str(tab_item_id),
            participants=len(participants),
        )
        return participants
