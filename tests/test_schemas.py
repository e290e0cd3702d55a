"""
Tests for request validation and money parsing.
"""

from datetime import datetime, timezone
from decimal import Decimal
import uuid

import pytest
from pydantic import ValidationError

from tab_shared.utils.money import exact_cents, money_sum, to_decimal, within_tolerance
from tab_shared.utils.schemas import (
    AddCreditsRequest,
    AddItemRequest,
    CloseTabRequest,
    OpenTabRequest,
    ParticipantInput,
    PaymentInput,
)


def item(**overrides):
    data = {"tabId": str(uuid.uuid4()), "quantity": 1, "unitPrice": "10.00", "total": "10.00"}
    data.update(overrides)
    return data


class TestAddItemRequest:

    def test_valid_item(self):
        request = AddItemRequest.model_validate(item(unitPrice=12.5, total="12.5"))

        assert request.unit_price == Decimal("12.50")
        assert request.total == Decimal("12.50")

    @pytest.mark.parametrize(
        "overrides",
        [
            {"quantity": 0},
            {"unitPrice": "0"},
            {"total": "-1.00"},
            {"total": "abc"},
            {"unitPrice": "0.004"},
            {"total": "0.004"},
            {"total": "10.001"},
        ],
    )
    def test_rejects_invalid_amounts(self, overrides):
        with pytest.raises(ValidationError):
            AddItemRequest.model_validate(item(**overrides))

    def test_quantity_defaults_to_one(self):
        data = item()
        del data["quantity"]

        assert AddItemRequest.model_validate(data).quantity == 1

    def test_trailing_zeros_are_not_extra_places(self):
        assert AddItemRequest.model_validate(item(total="10.000")).total == Decimal("10.00")

    def test_window_must_come_together(self):
        with pytest.raises(ValidationError):
            AddItemRequest.model_validate(item(startAt="2030-06-01T10:00:00Z"))

    def test_window_end_after_start(self):
        with pytest.raises(ValidationError):
            AddItemRequest.model_validate(
                item(startAt="2030-06-01T10:00:00Z", endAt="2030-06-01T10:00:00Z")
            )

    def test_window_normalized_to_utc(self):
        request = AddItemRequest.model_validate(
            item(startAt="2030-06-01T10:00:00-03:00", endAt="2030-06-01T11:00:00")
        )

        assert request.start_at == datetime(2030, 6, 1, 13, 0, tzinfo=timezone.utc)
        # Naive values are taken as UTC
        assert request.end_at == datetime(2030, 6, 1, 11, 0, tzinfo=timezone.utc)


class TestOtherRequests:

    def test_open_strips_identifier(self):
        assert OpenTabRequest.model_validate({"identifier": "  NFC-1 "}).identifier == "NFC-1"

    def test_close_payments_optional(self):
        request = CloseTabRequest.model_validate({"tabId": str(uuid.uuid4())})

        assert request.payments is None


class TestMoney:

    def test_float_goes_through_str(self):
        assert to_decimal(0.1 + 0.2) == Decimal("0.30")

    def test_rounds_half_up(self):
        assert to_decimal("2.345") == Decimal("2.35")

    def test_none_is_zero(self):
        assert to_decimal(None) == Decimal("0.00")

    @pytest.mark.parametrize("value", ["NaN", "Infinity", "x"])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            to_decimal(value)

    def test_sum_and_tolerance(self):
        assert money_sum([Decimal("0.10"), Decimal("0.20")]) == Decimal("0.30")
        assert within_tolerance(Decimal("10.00"), Decimal("9.99"), Decimal("0.01"))
        assert not within_tolerance(Decimal("10.00"), Decimal("9.98"), Decimal("0.01"))

    def test_exact_cents(self):
        assert exact_cents(Decimal("7.5")) == Decimal("7.50")
        with pytest.raises(ValueError):
            exact_cents(Decimal("0.004"))


class TestSubCentAmounts:
    """Amounts below one cent are rejected instead of rounded to zero."""

    def test_payment_amount(self):
        with pytest.raises(ValidationError):
            PaymentInput.model_validate({"method": "pix", "amount": "0.004"})

    def test_top_up_amount(self):
        with pytest.raises(ValidationError):
            AddCreditsRequest.model_validate({"amount": "0.004", "paymentMethod": "cash"})

    @pytest.mark.parametrize("amount", ["0", "0.00", "0.004"])
    def test_participant_amount_must_be_positive(self, amount):
        with pytest.raises(ValidationError):
            ParticipantInput.model_validate({"customerId": str(uuid.uuid4()), "amount": amount})
