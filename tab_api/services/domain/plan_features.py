"""
Plan Feature Gate.

Maps a tenant's subscription plan to the features it unlocks. Unknown plans
get no features.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from tab_shared.config.constants import PlanFeatures
from tab_shared.utils.exceptions import FeatureNotAvailableError
from tab_api.models import Tenant


def plan_has_feature(plan: str | None, feature: str) -> bool:
    """True if the plan includes the feature."""
    return feature in PlanFeatures.BY_PLAN.get(plan or PlanFeatures.DEFAULT_PLAN, frozenset())


class PlanFeatureService:
    """Reads the tenant plan and enforces feature availability."""

    def __init__(self, db: Session):
        self._db = db

    def get_plan(self, tenant_id: UUID) -> str:
        plan = self._db.scalar(select(Tenant.plan).where(Tenant.id == tenant_id))
        return plan or PlanFeatures.DEFAULT_PLAN

    def has_feature(self, tenant_id: UUID, feature: str) -> bool:
        return plan_has_feature(self.get_plan(tenant_id), feature)

    def require_feature(self, tenant_id: UUID, feature: str) -> None:
        """
        Raises:
            FeatureNotAvailableError: If the tenant's plan lacks the feature.
        """
        plan = self.get_plan(tenant_id)
        if not plan_has_feature(plan, feature):
            raise FeatureNotAvailableError(feature, plan, tenant_id=str(tenant_id))
