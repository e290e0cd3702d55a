"""
Tests for SettlementService (tab close).

Covers charge aggregation, prepaid and credit policies, atomicity of failed
closes and identifier release.
"""

from decimal import Decimal
import uuid

import pytest
from sqlalchemy import select, update
from sqlalchemy.exc import OperationalError

from tab_api.models import Customer, CustomerIdentifier, Tab, TabPayment, Transaction
from tab_api.services.domain import SettlementService, TabService
from tab_shared.config.constants import TabStatus, TabType, TransactionType
from tab_shared.utils.exceptions import (
    CustomerNotFoundError,
    DatabaseError,
    InsufficientFundsError,
    InvalidStateError,
    TabNotFoundError,
)
from tab_shared.utils.schemas import PaymentInput
from tests.conftest import (
    make_customer,
    make_identifier,
    make_item,
    make_register,
    make_tab,
)


def transactions_for(db, tab):
    return db.scalars(
        select(Transaction).where(Transaction.tab_id == tab.id).order_by(Transaction.created_at)
    ).all()


def reload(db, entity):
    db.expire_all()
    return db.get(type(entity), entity.id)


class TestPrepaidClose:
    """Prepaid tabs debit the customers' credits."""

    def test_single_item_debits_primary_customer(self, db_session, seed_tenant):
        customer = make_customer(db_session, seed_tenant, credits="150.00")
        identifier = make_identifier(db_session, customer, "NFC-1000")
        tab = make_tab(db_session, identifier)
        make_item(db_session, tab, "100.00")

        result = SettlementService(db_session).close_tab(seed_tenant.id, tab.id)

        assert result["status"] == TabStatus.CLOSED
        assert result["total"] == Decimal("100.00")
        assert result["charges"] == [{"customer_id": customer.id, "amount": Decimal("100.00")}]

        assert reload(db_session, customer).credits == Decimal("50.00")
        entries = transactions_for(db_session, tab)
        assert len(entries) == 1
        assert entries[0].type == TransactionType.DEBIT
        assert entries[0].amount == Decimal("100.00")
        assert entries[0].customer_id == customer.id

    def test_insufficient_credits_leaves_everything_untouched(self, db_session, seed_tenant):
        customer = make_customer(db_session, seed_tenant, name="Bruno", credits="50.00")
        identifier = make_identifier(db_session, customer, "NFC-1001")
        tab = make_tab(db_session, identifier)
        make_item(db_session, tab, "100.00")

        with pytest.raises(InsufficientFundsError) as exc_info:
            SettlementService(db_session).close_tab(seed_tenant.id, tab.id)

        err = exc_info.value
        assert err.customer_id == customer.id
        assert err.required == Decimal("100.00")
        assert err.available == Decimal("50.00")
        assert err.status_code == 400
        assert "Bruno" in err.detail

        assert reload(db_session, customer).credits == Decimal("50.00")
        assert reload(db_session, tab).status == TabStatus.OPEN
        assert reload(db_session, identifier).active is True
        assert transactions_for(db_session, tab) == []

    def test_exact_balance_closes_to_zero(self, db_session, seed_tenant):
        customer = make_customer(db_session, seed_tenant, credits="80.00")
        tab = make_tab(db_session, make_identifier(db_session, customer, "NFC-1002"))
        make_item(db_session, tab, "30.00")
        make_item(db_session, tab, "50.00")

        result = SettlementService(db_session).close_tab(seed_tenant.id, tab.id)

        assert result["total"] == Decimal("80.00")
        assert reload(db_session, customer).credits == Decimal("0.00")

    def test_payments_rejected_on_prepaid_tab(self, db_session, seed_tenant, seed_register):
        customer = make_customer(db_session, seed_tenant, credits="100.00")
        tab = make_tab(db_session, make_identifier(db_session, customer, "NFC-1003"))
        make_item(db_session, tab, "10.00")

        with pytest.raises(InvalidStateError):
            SettlementService(db_session).close_tab(
                seed_tenant.id,
                tab.id,
                [PaymentInput(method="cash", amount=Decimal("10.00"))],
            )

        assert reload(db_session, customer).credits == Decimal("100.00")
        assert reload(db_session, tab).status == TabStatus.OPEN

    def test_one_underfunded_participant_aborts_whole_close(
        self, db_session, seed_tenant, location_id
    ):
        primary = make_customer(db_session, seed_tenant, name="Primary", credits="500.00")
        rich = make_customer(db_session, seed_tenant, name="Rich", credits="500.00")
        poor = make_customer(db_session, seed_tenant, name="Poor", credits="10.00")
        tab = make_tab(db_session, make_identifier(db_session, primary, "NFC-1004"))
        make_item(db_session, tab, "25.00")
        make_item(
            db_session,
            tab,
            "100.00",
            location_id=location_id,
            participants=[(rich.id, "60.00"), (poor.id, "40.00")],
        )

        with pytest.raises(InsufficientFundsError) as exc_info:
            SettlementService(db_session).close_tab(seed_tenant.id, tab.id)

        assert exc_info.value.customer_id == poor.id
        assert reload(db_session, primary).credits == Decimal("500.00")
        assert reload(db_session, rich).credits == Decimal("500.00")
        assert reload(db_session, poor).credits == Decimal("10.00")
        assert reload(db_session, tab).status == TabStatus.OPEN
        assert transactions_for(db_session, tab) == []

    def test_empty_prepaid_tab_closes_with_zero_total(self, db_session, seed_tenant, seed_identifier):
        tab = make_tab(db_session, seed_identifier)

        result = SettlementService(db_session).close_tab(seed_tenant.id, tab.id)

        assert result["total"] == Decimal("0.00")
        assert result["charges"] == []
        assert reload(db_session, tab).status == TabStatus.CLOSED


class TestChargeDistribution:
    """Location items with participants bill the participants."""

    def test_location_item_split_between_participants(self, db_session, seed_tenant, location_id):
        primary = make_customer(db_session, seed_tenant, name="Primary", credits="0.00")
        first = make_customer(db_session, seed_tenant, name="First", credits="100.00")
        second = make_customer(db_session, seed_tenant, name="Second", credits="100.00")
        tab = make_tab(db_session, make_identifier(db_session, primary, "NFC-2000"))
        make_item(
            db_session,
            tab,
            "100.00",
            location_id=location_id,
            participants=[(first.id, "60.00"), (second.id, "40.00")],
        )

        result = SettlementService(db_session).close_tab(seed_tenant.id, tab.id)

        assert result["charges"] == [
            {"customer_id": first.id, "amount": Decimal("60.00")},
            {"customer_id": second.id, "amount": Decimal("40.00")},
        ]
        assert result["total"] == Decimal("100.00")
        assert reload(db_session, primary).credits == Decimal("0.00")
        assert reload(db_session, first).credits == Decimal("40.00")
        assert reload(db_session, second).credits == Decimal("60.00")
        assert {t.customer_id for t in transactions_for(db_session, tab)} == {first.id, second.id}

    def test_charges_follow_first_charged_order(self, db_session, seed_tenant, location_id):
        primary = make_customer(db_session, seed_tenant, name="Primary", credits="100.00")
        guest = make_customer(db_session, seed_tenant, name="Guest", credits="100.00")
        tab = make_tab(db_session, make_identifier(db_session, primary, "NFC-2001"))
        make_item(
            db_session,
            tab,
            "50.00",
            location_id=location_id,
            participants=[(guest.id, "30.00"), (primary.id, "20.00")],
        )
        make_item(db_session, tab, "15.00")

        result = SettlementService(db_session).close_tab(seed_tenant.id, tab.id)

        assert result["charges"] == [
            {"customer_id": guest.id, "amount": Decimal("30.00")},
            {"customer_id": primary.id, "amount": Decimal("35.00")},
        ]
        assert result["total"] == Decimal("65.00")

    def test_participants_on_non_location_item_are_ignored(self, db_session, seed_tenant):
        primary = make_customer(db_session, seed_tenant, name="Primary", credits="100.00")
        guest = make_customer(db_session, seed_tenant, name="Guest", credits="100.00")
        tab = make_tab(db_session, make_identifier(db_session, primary, "NFC-2002"))
        make_item(db_session, tab, "40.00", participants=[(guest.id, "40.00")])

        result = SettlementService(db_session).close_tab(seed_tenant.id, tab.id)

        assert result["charges"] == [{"customer_id": primary.id, "amount": Decimal("40.00")}]
        assert reload(db_session, guest).credits == Decimal("100.00")

    def test_missing_participant_customer_aborts(self, db_session, seed_tenant, location_id):
        primary = make_customer(db_session, seed_tenant, credits="100.00")
        ghost_id = uuid.uuid4()
        tab = make_tab(db_session, make_identifier(db_session, primary, "NFC-2003"))
        make_item(
            db_session,
            tab,
            "20.00",
            location_id=location_id,
            participants=[(ghost_id, "20.00")],
        )

        with pytest.raises(CustomerNotFoundError) as exc_info:
            SettlementService(db_session).close_tab(seed_tenant.id, tab.id)

        assert str(ghost_id) in exc_info.value.detail
        assert reload(db_session, tab).status == TabStatus.OPEN
        assert reload(db_session, primary).credits == Decimal("100.00")


class TestCreditClose:
    """Credit tabs are paid at the register and checked against the limit."""

    def _credit_tab(self, db, tenant, branch, limit="500.00", code="QR-3000"):
        customer = make_customer(db, tenant, name="Carla", credits="0.00", credit_limit=limit)
        identifier = make_identifier(db, customer, code, tab_type=TabType.CREDIT)
        return customer, identifier, make_tab(db, identifier, branch=branch)

    def test_paid_in_cash_records_payment(self, db_session, seed_tenant, seed_branch, seed_register):
        customer, _, tab = self._credit_tab(db_session, seed_tenant, seed_branch)
        make_item(db_session, tab, "200.00")

        result = SettlementService(db_session).close_tab(
            seed_tenant.id,
            tab.id,
            [PaymentInput(method="cash", amount=Decimal("200.00"))],
        )

        assert result["total"] == Decimal("200.00")
        payments = db_session.scalars(select(TabPayment).where(TabPayment.tab_id == tab.id)).all()
        assert len(payments) == 1
        assert payments[0].method == "cash"
        assert payments[0].amount == Decimal("200.00")
        assert payments[0].cash_register_id == seed_register.id

        customer = reload(db_session, customer)
        assert customer.credits == Decimal("0.00")
        assert customer.credit_limit == Decimal("500.00")
        entries = transactions_for(db_session, tab)
        assert [(e.type, e.amount) for e in entries] == [(TransactionType.DEBIT, Decimal("200.00"))]

    def test_split_payment_methods(self, db_session, seed_tenant, seed_branch, seed_register):
        _, _, tab = self._credit_tab(db_session, seed_tenant, seed_branch)
        make_item(db_session, tab, "120.00")

        SettlementService(db_session).close_tab(
            seed_tenant.id,
            tab.id,
            [
                PaymentInput(method="pix", amount=Decimal("100.00")),
                PaymentInput(method="debit", amount=Decimal("20.00")),
            ],
        )

        methods = sorted(
            (p.method, p.amount)
            for p in db_session.scalars(select(TabPayment).where(TabPayment.tab_id == tab.id))
        )
        assert methods == [("debit", Decimal("20.00")), ("pix", Decimal("100.00"))]

    def test_payment_mismatch_is_invalid_state(self, db_session, seed_tenant, seed_branch, seed_register):
        _, _, tab = self._credit_tab(db_session, seed_tenant, seed_branch)
        make_item(db_session, tab, "200.00")

        with pytest.raises(InvalidStateError):
            SettlementService(db_session).close_tab(
                seed_tenant.id,
                tab.id,
                [PaymentInput(method="cash", amount=Decimal("150.00"))],
            )

        assert reload(db_session, tab).status == TabStatus.OPEN
        assert db_session.scalars(select(TabPayment)).all() == []

    def test_payment_within_tolerance_is_accepted(self, db_session, seed_tenant, seed_branch, seed_register):
        _, _, tab = self._credit_tab(db_session, seed_tenant, seed_branch)
        make_item(db_session, tab, "10.00")

        result = SettlementService(db_session).close_tab(
            seed_tenant.id,
            tab.id,
            [PaymentInput(method="cash", amount=Decimal("9.99"))],
        )

        assert result["status"] == TabStatus.CLOSED

    def test_custom_tolerance(self, db_session, seed_tenant, seed_branch, seed_register):
        _, _, tab = self._credit_tab(db_session, seed_tenant, seed_branch)
        make_item(db_session, tab, "10.00")

        with pytest.raises(InvalidStateError):
            SettlementService(db_session, tolerance=Decimal("0.00")).close_tab(
                seed_tenant.id,
                tab.id,
                [PaymentInput(method="cash", amount=Decimal("9.99"))],
            )

    def test_no_payments_is_invalid_state(self, db_session, seed_tenant, seed_branch, seed_register):
        _, _, tab = self._credit_tab(db_session, seed_tenant, seed_branch)
        make_item(db_session, tab, "10.00")

        with pytest.raises(InvalidStateError):
            SettlementService(db_session).close_tab(seed_tenant.id, tab.id, [])

    def test_no_open_register_is_invalid_state(self, db_session, seed_tenant, seed_branch):
        _, _, tab = self._credit_tab(db_session, seed_tenant, seed_branch)
        make_item(db_session, tab, "10.00")

        with pytest.raises(InvalidStateError) as exc_info:
            SettlementService(db_session).close_tab(
                seed_tenant.id,
                tab.id,
                [PaymentInput(method="cash", amount=Decimal("10.00"))],
            )

        assert "register" in exc_info.value.detail.lower()
        assert reload(db_session, tab).status == TabStatus.OPEN

    def test_tenant_wide_register_is_used_when_branch_has_none(self, db_session, seed_tenant, seed_branch):
        tenant_register = make_register(db_session, seed_tenant, branch=None)
        _, _, tab = self._credit_tab(db_session, seed_tenant, seed_branch)
        make_item(db_session, tab, "10.00")

        SettlementService(db_session).close_tab(
            seed_tenant.id,
            tab.id,
            [PaymentInput(method="cash", amount=Decimal("10.00"))],
        )

        payment = db_session.scalar(select(TabPayment).where(TabPayment.tab_id == tab.id))
        assert payment.cash_register_id == tenant_register.id

    def test_credit_limit_exceeded(self, db_session, seed_tenant, seed_branch, seed_register):
        customer, _, tab = self._credit_tab(db_session, seed_tenant, seed_branch, limit="100.00")
        make_item(db_session, tab, "150.00")

        with pytest.raises(InsufficientFundsError) as exc_info:
            SettlementService(db_session).close_tab(
                seed_tenant.id,
                tab.id,
                [PaymentInput(method="cash", amount=Decimal("150.00"))],
            )

        assert exc_info.value.kind == "credit_limit"
        assert exc_info.value.customer_id == customer.id
        assert exc_info.value.available == Decimal("100.00")
        assert reload(db_session, tab).status == TabStatus.OPEN

    def test_zero_credit_limit_means_unlimited(self, db_session, seed_tenant, seed_branch, seed_register):
        _, _, tab = self._credit_tab(db_session, seed_tenant, seed_branch, limit="0.00")
        make_item(db_session, tab, "9999.00")

        result = SettlementService(db_session).close_tab(
            seed_tenant.id,
            tab.id,
            [PaymentInput(method="credit", amount=Decimal("9999.00"))],
        )

        assert result["total"] == Decimal("9999.00")


class TestCloseGuards:
    """State and identity guards."""

    def test_unknown_tab(self, db_session, seed_tenant):
        with pytest.raises(TabNotFoundError):
            SettlementService(db_session).close_tab(seed_tenant.id, uuid.uuid4())

    def test_other_tenant_tab_is_not_found(self, db_session, seed_tenant, free_tenant, seed_identifier):
        tab = make_tab(db_session, seed_identifier)

        with pytest.raises(TabNotFoundError):
            SettlementService(db_session).close_tab(free_tenant.id, tab.id)

    def test_second_close_is_invalid_state(self, db_session, seed_tenant, seed_identifier):
        tab = make_tab(db_session, seed_identifier)
        make_item(db_session, tab, "10.00")
        service = SettlementService(db_session)
        service.close_tab(seed_tenant.id, tab.id)

        with pytest.raises(InvalidStateError):
            service.close_tab(seed_tenant.id, tab.id)

        # Debited once only
        assert reload(db_session, seed_identifier.customer).credits == Decimal("90.00")

    def test_commit_failure_is_database_error(
        self, db_session, seed_tenant, seed_identifier, monkeypatch
    ):
        tab = make_tab(db_session, seed_identifier)
        make_item(db_session, tab, "10.00")

        def failing_commit():
            raise OperationalError("COMMIT", {}, Exception("connection lost"))

        monkeypatch.setattr(db_session, "commit", failing_commit)

        with pytest.raises(DatabaseError) as exc:
            SettlementService(db_session).close_tab(seed_tenant.id, tab.id)
        assert exc.value.status_code == 500

        assert reload(db_session, tab).status == TabStatus.OPEN
        assert reload(db_session, seed_identifier.customer).credits == Decimal("100.00")


class TestConcurrentWriteGuards:
    """Conditional updates catch state that moved after the checks passed."""

    def test_debit_fails_when_balance_dropped_after_check(
        self, db_session, seed_tenant, seed_identifier, monkeypatch
    ):
        tab = make_tab(db_session, seed_identifier)
        make_item(db_session, tab, "150.00")
        # Let the up-front balance check pass so only the guarded debit remains
        monkeypatch.setattr(SettlementService, "_check_prepaid", lambda self, *args: None)

        with pytest.raises(InsufficientFundsError) as exc_info:
            SettlementService(db_session).close_tab(seed_tenant.id, tab.id)

        assert exc_info.value.customer_id == seed_identifier.customer_id
        assert reload(db_session, tab).status == TabStatus.OPEN
        assert reload(db_session, seed_identifier.customer).credits == Decimal("100.00")
        assert reload(db_session, seed_identifier).active is True
        assert transactions_for(db_session, tab) == []

    def test_tab_closed_by_another_request_after_lock(
        self, db_session, seed_tenant, seed_branch, seed_register, monkeypatch
    ):
        customer = make_customer(db_session, seed_tenant, credit_limit="500.00")
        identifier = make_identifier(db_session, customer, "QR-4000", tab_type=TabType.CREDIT)
        tab = make_tab(db_session, identifier, branch=seed_branch)
        make_item(db_session, tab, "40.00")
        check_credit = SettlementService._check_credit

        def close_elsewhere(self, tab, *args):
            register = check_credit(self, tab, *args)
            self._db.execute(
                update(Tab)
                .where(Tab.id == tab.id)
                .values(status=TabStatus.CLOSED)
                .execution_options(synchronize_session=False)
            )
            return register

        monkeypatch.setattr(SettlementService, "_check_credit", close_elsewhere)

        with pytest.raises(InvalidStateError) as exc_info:
            SettlementService(db_session).close_tab(
                seed_tenant.id,
                tab.id,
                [PaymentInput(method="cash", amount=Decimal("40.00"))],
            )

        assert "closed concurrently" in exc_info.value.detail
        assert reload(db_session, tab).status == TabStatus.OPEN
        assert transactions_for(db_session, tab) == []
        assert db_session.scalars(select(TabPayment).where(TabPayment.tab_id == tab.id)).all() == []
        assert reload(db_session, identifier).active is True


class TestIdentifierRelease:
    """Closing frees the identifier code."""

    def test_identifier_deactivated_on_close(self, db_session, seed_tenant, seed_identifier):
        tab = make_tab(db_session, seed_identifier)

        SettlementService(db_session).close_tab(seed_tenant.id, tab.id)

        identifier = reload(db_session, seed_identifier)
        assert identifier.active is False
        assert identifier.is_master is False

    def test_closed_tab_code_can_open_for_another_customer(
        self, db_session, seed_tenant, seed_identifier
    ):
        from tab_api.services.domain import IdentifierService

        tab = make_tab(db_session, seed_identifier)
        SettlementService(db_session).close_tab(seed_tenant.id, tab.id)

        other = make_customer(db_session, seed_tenant, name="Other", credits="10.00")
        IdentifierService(db_session).link(seed_tenant.id, other.id, "nfc", "NFC-0001")
        new_tab, created = TabService(db_session).open_tab(seed_tenant.id, "NFC-0001")

        assert created is True
        assert new_tab.customer_id == other.id
        assert new_tab.id != tab.id
