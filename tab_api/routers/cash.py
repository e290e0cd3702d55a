"""
Cash register router.
Opens and closes register sessions and reports per-method totals.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from tab_shared.config.settings import settings
from tab_shared.infrastructure.db import get_db
from tab_shared.security.auth import require_branch
from tab_shared.security.rate_limit import limiter
from tab_shared.utils.schemas import (
    CashRegisterOutput,
    CloseRegisterRequest,
    OpenRegisterRequest,
    RegisterHistoryResponse,
    RegisterTotals,
    RegisterWithTotals,
    as_utc,
)
from tab_api.routers._common import Pagination, cash_context, get_pagination, get_user_id
from tab_api.services.domain import CashRegisterService
from tab_api.services.domain.cash_register_service import empty_totals


router = APIRouter(prefix="/api/cash", tags=["cash"])


@router.get("/open", response_model=RegisterWithTotals)
def get_open_register(
    branch_id: UUID | None = Query(default=None, alias="branchId"),
    db: Session = Depends(get_db),
    ctx: dict[str, Any] = Depends(cash_context),
) -> dict[str, Any]:
    """Open register for the branch with its running totals."""
    require_branch(ctx, branch_id)
    service = CashRegisterService(db)
    register = service.get_open(ctx["tenant_id"], branch_id)
    if register is None:
        return {"data": None, "totals": empty_totals()}
    return {"data": register, "totals": service.totals(ctx["tenant_id"], register.id)}


@router.post("/open", response_model=CashRegisterOutput, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.open_rate_limit)
def open_register(
    request: Request,
    body: OpenRegisterRequest,
    db: Session = Depends(get_db),
    ctx: dict[str, Any] = Depends(cash_context),
) -> Any:
    """Open a register session for a branch."""
    require_branch(ctx, body.branch_id)
    return CashRegisterService(db).open(
        ctx["tenant_id"],
        body.branch_id,
        body.opening_float,
        notes=body.notes,
        user_id=get_user_id(ctx),
    )


@router.post("/close", response_model=RegisterWithTotals)
@limiter.limit(settings.close_rate_limit)
def close_register(
    request: Request,
    body: CloseRegisterRequest,
    db: Session = Depends(get_db),
    ctx: dict[str, Any] = Depends(cash_context),
) -> dict[str, Any]:
    """Close a register and store its per-method totals."""
    service = CashRegisterService(db)
    require_branch(ctx, service.get(ctx["tenant_id"], body.cash_register_id).branch_id)
    register, totals = service.close(
        ctx["tenant_id"],
        body.cash_register_id,
        closing_float=body.closing_float,
        notes=body.notes,
        user_id=get_user_id(ctx),
    )
    return {"data": register, "totals": totals}


@router.get("/history", response_model=RegisterHistoryResponse)
def register_history(
    start_at: datetime | None = Query(default=None, alias="startAt"),
    end_at: datetime | None = Query(default=None, alias="endAt"),
    branch_id: UUID | None = Query(default=None, alias="branchId"),
    pagination: Pagination = Depends(get_pagination),
    db: Session = Depends(get_db),
    ctx: dict[str, Any] = Depends(cash_context),
) -> dict[str, Any]:
    """Register sessions opened in the date range, newest first."""
    require_branch(ctx, branch_id)
    registers, total = CashRegisterService(db).history(
        ctx["tenant_id"],
        start_at=as_utc(start_at),
        end_at=as_utc(end_at),
        branch_id=branch_id,
        limit=pagination.limit,
        offset=pagination.offset,
    )
    return {"data": registers, "pagination": pagination.to_dict(total=total)}


@router.get("/{register_id}/totals", response_model=RegisterTotals)
def register_totals(
    register_id: UUID,
    db: Session = Depends(get_db),
    ctx: dict[str, Any] = Depends(cash_context),
) -> dict[str, Any]:
    """Running per-method totals of an open register."""
    return CashRegisterService(db).current_totals(ctx["tenant_id"], register_id)
