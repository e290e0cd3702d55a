"""
Shared Pydantic schemas used across the application.

JSON bodies are camelCase (``tabId``, ``unitPrice``); Python attributes stay
snake_case. Amounts are ``Decimal`` and serialize as strings.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Annotated, Literal
from uuid import UUID

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from tab_shared.config.constants import Limits
from tab_shared.utils.money import exact_cents


# =============================================================================
# Common Types
# =============================================================================

TabTypeLiteral = Literal["prepaid", "credit"]
TabStatusLiteral = Literal["open", "closed"]
IdentifierTypeLiteral = Literal["nfc", "barcode", "qr", "manual"]
PaymentMethodLiteral = Literal["cash", "debit", "credit", "pix"]
RegisterStatusLiteral = Literal["open", "closed"]

# Currency amount in cents; sub-cent precision is rejected, never rounded
Amount = Annotated[Decimal, AfterValidator(exact_cents)]


def as_utc(value: datetime | None) -> datetime | None:
    """Normalize a datetime to UTC. Naive values are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class CamelModel(BaseModel):
    """Base model: camelCase aliases, accepts snake_case and ORM objects."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class PaginationOutput(CamelModel):
    """Pagination metadata returned by list endpoints."""

    limit: int
    offset: int
    page: int
    total: int | None = None
    pages: int | None = None
    has_next: bool | None = None
    has_prev: bool | None = None


# =============================================================================
# Tab Schemas
# =============================================================================


class OpenTabRequest(CamelModel):
    """Open (or fetch the open) tab for the customer behind an identifier."""

    branch_id: UUID | None = None
    identifier: str = Field(
        min_length=Limits.MIN_IDENTIFIER_LENGTH,
        max_length=Limits.MAX_IDENTIFIER_LENGTH,
    )

    @field_validator("identifier")
    @classmethod
    def strip_identifier(cls, v: str) -> str:
        v = v.strip()
        if len(v) < Limits.MIN_IDENTIFIER_LENGTH:
            raise ValueError("identifier is too short")
        return v


class TabOutput(CamelModel):
    """Tab header."""

    id: UUID
    tenant_id: UUID
    branch_id: UUID | None = None
    customer_id: UUID
    identifier_id: UUID | None = None
    identifier_code: str
    type: TabTypeLiteral
    status: TabStatusLiteral
    opened_at: datetime
    closed_at: datetime | None = None


class TabListResponse(CamelModel):
    data: list[TabOutput]
    pagination: PaginationOutput


class AddItemRequest(CamelModel):
    """
    A consumption line. ``total`` is the chargeable amount and is stored as
    given; it is not recomputed from quantity and unit price.
    """

    tab_id: UUID
    product_id: UUID | None = None
    service_id: UUID | None = None
    location_id: UUID | None = None
    description: str | None = Field(default=None, max_length=Limits.MAX_DESCRIPTION_LENGTH)
    quantity: int = Field(default=1, ge=Limits.MIN_QUANTITY, le=Limits.MAX_QUANTITY)
    unit_price: Amount = Field(gt=0)
    total: Amount = Field(gt=0)
    start_at: datetime | None = None
    end_at: datetime | None = None

    @field_validator("start_at", "end_at")
    @classmethod
    def normalize_utc(cls, v: datetime | None) -> datetime | None:
        return as_utc(v)

    @model_validator(mode="after")
    def check_window(self) -> "AddItemRequest":
        if (self.start_at is None) != (self.end_at is None):
            raise ValueError("startAt and endAt must be provided together")
        if self.start_at is not None and self.end_at <= self.start_at:
            raise ValueError("endAt must be after startAt")
        return self


class TabItemOutput(CamelModel):
    id: UUID
    tab_id: UUID
    line_no: int
    product_id: UUID | None = None
    service_id: UUID | None = None
    location_id: UUID | None = None
    description: str | None = None
    quantity: int
    unit_price: Decimal
    total: Decimal
    start_at: datetime | None = None
    end_at: datetime | None = None
    created_at: datetime


class ParticipantInput(CamelModel):
    customer_id: UUID
    amount: Amount = Field(gt=0)


class SetParticipantsRequest(CamelModel):
    """Replace the full participant set of an item."""

    tab_item_id: UUID
    participants: list[ParticipantInput] = Field(max_length=Limits.MAX_PARTICIPANTS)


class SetParticipantsResponse(CamelModel):
    tab_item_id: UUID
    participants: list[ParticipantInput]


class ParticipantOutput(CamelModel):
    id: UUID
    tab_item_id: UUID
    customer_id: UUID
    amount: Decimal


class TabDetailOutput(CamelModel):
    tab: TabOutput
    items: list[TabItemOutput]
    participants: list[ParticipantOutput]


class PaymentInput(CamelModel):
    method: PaymentMethodLiteral
    amount: Amount = Field(gt=0)


class CloseTabRequest(CamelModel):
    tab_id: UUID
    payments: list[PaymentInput] | None = None


class ChargeOutput(CamelModel):
    customer_id: UUID
    amount: Decimal


class CloseTabResponse(CamelModel):
    id: UUID
    status: TabStatusLiteral
    charges: list[ChargeOutput]
    total: Decimal


class BookingOutput(CamelModel):
    id: UUID
    branch_id: UUID | None = None
    customer_id: UUID | None = None
    location_id: UUID
    start_at: datetime
    end_at: datetime
    total: Decimal
    status: str


class BookingResponse(CamelModel):
    data: BookingOutput | None = None


# =============================================================================
# Cash Register Schemas
# =============================================================================


class RegisterTotals(CamelModel):
    """Per-method totals of the payments recorded against a register."""

    cash: Decimal = Decimal("0.00")
    debit: Decimal = Decimal("0.00")
    credit: Decimal = Decimal("0.00")
    pix: Decimal = Decimal("0.00")


class CashRegisterOutput(CamelModel):
    id: UUID
    tenant_id: UUID
    branch_id: UUID | None = None
    status: RegisterStatusLiteral
    opening_float: Decimal
    closing_float: Decimal | None = None
    total_cash: Decimal
    total_debit: Decimal
    total_credit: Decimal
    total_pix: Decimal
    notes: str | None = None
    opened_by: str | None = None
    closed_by: str | None = None
    opened_at: datetime
    closed_at: datetime | None = None


class RegisterWithTotals(CamelModel):
    data: CashRegisterOutput | None = None
    totals: RegisterTotals


class RegisterHistoryResponse(CamelModel):
    data: list[CashRegisterOutput]
    pagination: PaginationOutput


class OpenRegisterRequest(CamelModel):
    branch_id: UUID | None = None
    opening_float: Amount = Field(default=Decimal("0.00"), ge=0)
    notes: str | None = Field(default=None, max_length=Limits.MAX_NOTES_LENGTH)


class CloseRegisterRequest(CamelModel):
    cash_register_id: UUID
    closing_float: Amount | None = Field(default=None, ge=0)
    notes: str | None = Field(default=None, max_length=Limits.MAX_NOTES_LENGTH)


# =============================================================================
# Customer Schemas
# =============================================================================


class CustomerOutput(CamelModel):
    id: UUID
    branch_id: UUID | None = None
    name: str
    credits: Decimal
    credit_limit: Decimal
    active: bool


class IdentifierOutput(CamelModel):
    id: UUID
    customer_id: UUID
    type: IdentifierTypeLiteral
    code: str
    tab_type: TabTypeLiteral
    is_master: bool
    active: bool


class LinkIdentifierRequest(CamelModel):
    """Link (or re-link) an identifier code to a customer."""

    type: IdentifierTypeLiteral
    code: str = Field(
        min_length=Limits.MIN_IDENTIFIER_LENGTH,
        max_length=Limits.MAX_IDENTIFIER_LENGTH,
    )
    tab_type: TabTypeLiteral | None = None

    @field_validator("code")
    @classmethod
    def strip_code(cls, v: str) -> str:
        v = v.strip()
        if len(v) < Limits.MIN_IDENTIFIER_LENGTH:
            raise ValueError("code is too short")
        return v


class IdentifierLookupResponse(CamelModel):
    identifier: str
    data: CustomerOutput | None = None
    identifier_data: IdentifierOutput | None = None


class AddCreditsRequest(CamelModel):
    amount: Amount = Field(gt=0)
    payment_method: PaymentMethodLiteral
    description: str | None = Field(default=None, max_length=Limits.MAX_DESCRIPTION_LENGTH)


class AddCreditsResponse(CamelModel):
    id: UUID
    added: Decimal
    credits: Decimal


class BalanceOutput(CamelModel):
    customer_id: UUID
    credits: Decimal
    credit_limit: Decimal
