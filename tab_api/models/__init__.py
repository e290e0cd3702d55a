"""
ORM models for the tab settlement engine.

Import from here so every table is registered on Base.metadata:
    from tab_api.models import Base, Tab, TabItem, Customer
"""

from .base import AuditMixin, Base, utcnow
from .booking import Booking
from .cash import CashRegister, CreditPayment
from .customer import Customer, CustomerIdentifier, Transaction
from .tab import Tab, TabItem, TabItemParticipant, TabPayment
from .tenant import Branch, Tenant

__all__ = [
    "AuditMixin",
    "Base",
    "utcnow",
    "Tenant",
    "Branch",
    "Customer",
    "CustomerIdentifier",
    "Transaction",
    "Tab",
    "TabItem",
    "TabItemParticipant",
    "TabPayment",
    "CashRegister",
    "CreditPayment",
    "Booking",
]
