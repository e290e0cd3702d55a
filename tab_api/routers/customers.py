"""
Customers router.
Identifier linking and lookup, prepaid top-up and balances.
"""

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from tab_shared.infrastructure.db import get_db
from tab_shared.utils.schemas import (
    AddCreditsRequest,
    AddCreditsResponse,
    BalanceOutput,
    IdentifierLookupResponse,
    IdentifierOutput,
    LinkIdentifierRequest,
)
from tab_api.routers._common import cash_context, get_user_id, staff_context
from tab_api.services.domain import CustomerBalanceService, IdentifierService


router = APIRouter(prefix="/api/customers", tags=["customers"])


@router.post(
    "/{customer_id}/identifiers",
    response_model=IdentifierOutput,
    status_code=status.HTTP_201_CREATED,
)
def link_identifier(
    customer_id: UUID,
    body: LinkIdentifierRequest,
    response: Response,
    db: Session = Depends(get_db),
    ctx: dict[str, Any] = Depends(staff_context),
) -> Any:
    """Link an identifier code to a customer (201 new, 200 re-linked)."""
    identifier, created = IdentifierService(db).link(
        ctx["tenant_id"],
        customer_id,
        body.type,
        body.code,
        tab_type=body.tab_type,
        user_id=get_user_id(ctx),
    )
    if not created:
        response.status_code = status.HTTP_200_OK
    return identifier


@router.get("/by-identifier/{code}", response_model=IdentifierLookupResponse)
def get_by_identifier(
    code: str,
    db: Session = Depends(get_db),
    ctx: dict[str, Any] = Depends(staff_context),
) -> dict[str, Any]:
    """Customer and identifier for an active code, or nulls."""
    identifier, customer = IdentifierService(db).lookup(ctx["tenant_id"], code)
    return {"identifier": code, "data": customer, "identifier_data": identifier}


@router.post("/{customer_id}/credits", response_model=AddCreditsResponse)
def add_credits(
    customer_id: UUID,
    body: AddCreditsRequest,
    db: Session = Depends(get_db),
    ctx: dict[str, Any] = Depends(cash_context),
) -> dict[str, Any]:
    """Top up prepaid credits against the open register."""
    return CustomerBalanceService(db).add_credits(
        ctx["tenant_id"],
        customer_id,
        body.amount,
        body.payment_method,
        description=body.description,
        user_id=get_user_id(ctx),
    )


@router.get("/{customer_id}/balance", response_model=BalanceOutput)
def get_balance(
    customer_id: UUID,
    db: Session = Depends(get_db),
    ctx: dict[str, Any] = Depends(staff_context),
) -> dict[str, Any]:
    """Prepaid credits and credit limit."""
    return CustomerBalanceService(db).get_balance(ctx["tenant_id"], customer_id)
