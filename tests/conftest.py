"""
Pytest configuration and fixtures for tab API tests.
"""

import os

# Must be set before the application modules read their settings
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["AUTO_CREATE_TABLES"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"

from datetime import datetime, timedelta, timezone
from decimal import Decimal
import uuid

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from tab_api.main import app
from tab_api.models import (
    Base,
    Booking,
    Branch,
    CashRegister,
    Customer,
    CustomerIdentifier,
    Tab,
    TabItem,
    TabItemParticipant,
    Tenant,
)
from tab_shared.config.constants import BookingStatus, TabStatus, TabType
from tab_shared.infrastructure.db import get_db
from tab_shared.security.auth import sign_jwt


# SQLite in-memory database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session():
    """
    Create a fresh database session for each test.
    Uses SQLite in-memory for isolation.
    """
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session):
    """
    Create a test client with database session override.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


# =============================================================================
# Builders
# =============================================================================


def make_customer(db, tenant, name="Customer", credits="0.00", credit_limit="0.00", branch=None):
    customer = Customer(
        tenant_id=tenant.id,
        branch_id=branch.id if branch else None,
        name=name,
        credits=Decimal(credits),
        credit_limit=Decimal(credit_limit),
    )
    db.add(customer)
    db.commit()
    db.refresh(customer)
    return customer


def make_identifier(db, customer, code, tab_type=TabType.PREPAID, identifier_type="nfc", active=True):
    identifier = CustomerIdentifier(
        tenant_id=customer.tenant_id,
        customer_id=customer.id,
        type=identifier_type,
        code=code,
        tab_type=tab_type,
        is_master=True,
        active=active,
    )
    db.add(identifier)
    db.commit()
    db.refresh(identifier)
    return identifier


def make_tab(db, identifier, branch=None):
    tab = Tab(
        tenant_id=identifier.tenant_id,
        branch_id=branch.id if branch else None,
        customer_id=identifier.customer_id,
        identifier_id=identifier.id,
        identifier_code=identifier.code,
        type=identifier.tab_type,
        status=TabStatus.OPEN,
    )
    db.add(tab)
    db.commit()
    db.refresh(tab)
    return tab


def make_item(db, tab, total, location_id=None, participants=(), start_at=None, end_at=None):
    """Insert an item directly; participants is a sequence of (customer_id, amount)."""
    line_no = len(db.query(TabItem).filter(TabItem.tab_id == tab.id).all()) + 1
    item = TabItem(
        tenant_id=tab.tenant_id,
        tab_id=tab.id,
        line_no=line_no,
        location_id=location_id,
        quantity=1,
        unit_price=Decimal(total),
        total=Decimal(total),
        start_at=start_at,
        end_at=end_at,
    )
    db.add(item)
    db.flush()
    for position, (customer_id, amount) in enumerate(participants):
        db.add(
            TabItemParticipant(
                tenant_id=tab.tenant_id,
                tab_item_id=item.id,
                customer_id=customer_id,
                amount=Decimal(amount),
                position=position,
            )
        )
    db.commit()
    db.refresh(item)
    return item


def make_register(db, tenant, branch=None, opening_float="0.00"):
    register = CashRegister(
        tenant_id=tenant.id,
        branch_id=branch.id if branch else None,
        opening_float=Decimal(opening_float),
    )
    db.add(register)
    db.commit()
    db.refresh(register)
    return register


def make_booking(db, tenant, location_id, start_at, end_at, customer=None, status=BookingStatus.PENDING):
    booking = Booking(
        tenant_id=tenant.id,
        customer_id=customer.id if customer else None,
        location_id=location_id,
        start_at=start_at,
        end_at=end_at,
        total=Decimal("100.00"),
        status=status,
    )
    db.add(booking)
    db.commit()
    db.refresh(booking)
    return booking


def utc(hour, minute=0, day=1):
    """Fixed UTC instant on 2030-06-<day>."""
    return datetime(2030, 6, day, hour, minute, tzinfo=timezone.utc)


def bearer(tenant, roles, branch_ids=(), sub="staff-1"):
    token = sign_jwt(
        {
            "sub": sub,
            "tenant_id": str(tenant.id),
            "branch_ids": [str(b) for b in branch_ids],
            "roles": list(roles),
        }
    )
    return {"Authorization": f"Bearer {token}"}


# =============================================================================
# Seed fixtures
# =============================================================================


@pytest.fixture
def seed_tenant(db_session):
    """Tenant on the Prime plan (account splitting enabled)."""
    tenant = Tenant(name="Test Venue", plan="Prime")
    db_session.add(tenant)
    db_session.commit()
    db_session.refresh(tenant)
    return tenant


@pytest.fixture
def free_tenant(db_session):
    """Tenant on the Free plan."""
    tenant = Tenant(name="Free Venue", plan="Free")
    db_session.add(tenant)
    db_session.commit()
    db_session.refresh(tenant)
    return tenant


@pytest.fixture
def seed_branch(db_session, seed_tenant):
    branch = Branch(tenant_id=seed_tenant.id, name="Main Branch", address="1 Test St")
    db_session.add(branch)
    db_session.commit()
    db_session.refresh(branch)
    return branch


@pytest.fixture
def seed_customer(db_session, seed_tenant):
    """Primary customer with 100.00 prepaid credits."""
    return make_customer(db_session, seed_tenant, name="Ana", credits="100.00")


@pytest.fixture
def seed_identifier(db_session, seed_customer):
    """Active prepaid NFC identifier for the primary customer."""
    return make_identifier(db_session, seed_customer, "NFC-0001")


@pytest.fixture
def seed_register(db_session, seed_tenant, seed_branch):
    """Open cash register for the seed branch."""
    return make_register(db_session, seed_tenant, seed_branch)


@pytest.fixture
def location_id():
    return uuid.uuid4()


@pytest.fixture
def auth_headers(seed_tenant):
    """Tenant-wide ADMIN token."""
    return bearer(seed_tenant, ["ADMIN"])


@pytest.fixture
def attendant_headers(seed_tenant):
    """Tenant-wide ATTENDANT token (no cash permissions)."""
    return bearer(seed_tenant, ["ATTENDANT"], sub="staff-2")


@pytest.fixture
def window():
    """A one-hour window."""
    start = utc(14)
    return start, start + timedelta(hours=1)
