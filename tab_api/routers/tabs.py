"""
Tabs router.
Opens tabs, records items and participant splits, and closes (settles) tabs.
"""

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.orm import Session

from tab_shared.config.settings import settings
from tab_shared.infrastructure.db import get_db
from tab_shared.security.auth import require_branch
from tab_shared.security.rate_limit import limiter
from tab_shared.utils.schemas import (
    AddItemRequest,
    BookingResponse,
    CloseTabRequest,
    CloseTabResponse,
    OpenTabRequest,
    SetParticipantsRequest,
    SetParticipantsResponse,
    TabDetailOutput,
    TabItemOutput,
    TabListResponse,
    TabOutput,
    TabStatusLiteral,
)
from tab_api.routers._common import Pagination, get_pagination, get_user_id, staff_context
from tab_api.services.domain import ParticipantService, SettlementService, TabService


router = APIRouter(prefix="/api/tabs", tags=["tabs"])


@router.get("", response_model=TabListResponse)
def list_tabs(
    status_filter: TabStatusLiteral | None = Query(default=None, alias="status"),
    customer_id: UUID | None = Query(default=None, alias="customerId"),
    branch_id: UUID | None = Query(default=None, alias="branchId"),
    pagination: Pagination = Depends(get_pagination),
    db: Session = Depends(get_db),
    ctx: dict[str, Any] = Depends(staff_context),
) -> dict[str, Any]:
    """List tabs, newest first."""
    require_branch(ctx, branch_id)
    tabs, total = TabService(db).list_tabs(
        ctx["tenant_id"],
        status=status_filter,
        customer_id=customer_id,
        branch_id=branch_id,
        limit=pagination.limit,
        offset=pagination.offset,
    )
    return {"data": tabs, "pagination": pagination.to_dict(total=total)}


@router.post("/open", response_model=TabOutput, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.open_rate_limit)
def open_tab(
    request: Request,
    response: Response,
    body: OpenTabRequest,
    db: Session = Depends(get_db),
    ctx: dict[str, Any] = Depends(staff_context),
) -> Any:
    """
    Open a tab for the customer behind an identifier.

    201 when a tab is created, 200 when the customer's open tab is returned.
    """
    require_branch(ctx, body.branch_id)
    tab, created = TabService(db).open_tab(
        ctx["tenant_id"],
        body.identifier,
        branch_id=body.branch_id,
        user_id=get_user_id(ctx),
    )
    if not created:
        response.status_code = status.HTTP_200_OK
    return tab


@router.get("/locations/{location_id}/booking", response_model=BookingResponse)
def get_location_booking(
    location_id: UUID,
    db: Session = Depends(get_db),
    ctx: dict[str, Any] = Depends(staff_context),
) -> dict[str, Any]:
    """Booking currently holding the location, if any."""
    booking = TabService(db).current_booking(ctx["tenant_id"], location_id)
    return {"data": booking}


@router.get("/{tab_id}", response_model=TabDetailOutput)
def get_tab(
    tab_id: UUID,
    db: Session = Depends(get_db),
    ctx: dict[str, Any] = Depends(staff_context),
) -> dict[str, Any]:
    """Tab with its items and participants."""
    return TabService(db).get_detail(ctx["tenant_id"], tab_id)


@router.post("/items", response_model=TabItemOutput, status_code=status.HTTP_201_CREATED)
def add_item(
    body: AddItemRequest,
    db: Session = Depends(get_db),
    ctx: dict[str, Any] = Depends(staff_context),
) -> Any:
    """Add an item to an open tab."""
    return TabService(db).add_item(ctx["tenant_id"], body, user_id=get_user_id(ctx))


@router.post("/items/participants", response_model=SetParticipantsResponse)
def set_item_participants(
    body: SetParticipantsRequest,
    db: Session = Depends(get_db),
    ctx: dict[str, Any] = Depends(staff_context),
) -> dict[str, Any]:
    """Replace the participants of an item (account splitting plans only)."""
    participants = ParticipantService(db).set_participants(
        ctx["tenant_id"],
        body.tab_item_id,
        body.participants,
        user_id=get_user_id(ctx),
    )
    return {"tab_item_id": body.tab_item_id, "participants": participants}


@router.post("/close", response_model=CloseTabResponse)
@limiter.limit(settings.close_rate_limit)
def close_tab(
    request: Request,
    body: CloseTabRequest,
    db: Session = Depends(get_db),
    ctx: dict[str, Any] = Depends(staff_context),
) -> dict[str, Any]:
    """Settle and close a tab."""
    return SettlementService(db).close_tab(
        ctx["tenant_id"],
        body.tab_id,
        body.payments,
        user_id=get_user_id(ctx),
    )
