"""
Domain Services.

Services hold the business rules; routers stay thin.

Structure:
    Router (thin controller)
        ↓
    Service (business logic)  ← YOU ARE HERE
        ↓
    Model (entity)

Usage:
    from tab_api.services.domain import SettlementService

    # In router
    result = SettlementService(db).close_tab(tenant_id, body.tab_id, body.payments)
"""

from .cash_register_service import CashRegisterService
from .customer_balance_service import CustomerBalanceService
from .identifier_service import IdentifierService
from .participant_service import ParticipantService
from .plan_features import PlanFeatureService, plan_has_feature
from .settlement_service import SettlementService, aggregate_charges
from .tab_service import TabService

__all__ = [
    "CashRegisterService",
    "CustomerBalanceService",
    "IdentifierService",
    "ParticipantService",
    "PlanFeatureService",
    "plan_has_feature",
    "SettlementService",
    "aggregate_charges",
    "TabService",
]
