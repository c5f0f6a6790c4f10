"""
projecthub/routes_budget.py

Budget endpoints: status, updates, expenses, alerts and the expense ledger.

Security guarantees:
- All endpoints require authentication (require_auth_context)
- Role capabilities gate each endpoint (budget:view, budget:manage, expense:log)
- Project access is decided by authz.authorize() after the project is loaded:
  cross-organization requests are denied before any role is considered
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Body, Depends, Header, Path

from projecthub import budget_service
from projecthub.auth_context import AuthContext, get_db
from projecthub.authz import Capability
from projecthub.db import DbConnection
from projecthub.dependencies import require_capability
from projecthub.schemas_budget import BudgetUpdateRequest, ExpenseCreateRequest, ExpenseReverseRequest

router = APIRouter(
    prefix="/api/budget",
    tags=["budget"],
)


@router.get("/project/{project_id}")
def get_project_budget(
    project_id: int = Path(..., ge=1),
    ctx: AuthContext = Depends(require_capability(Capability.BUDGET_VIEW)),
    conn: DbConnection = Depends(get_db),
) -> dict:
    """Budget and derived status; manager, team leader or admin of the project."""
    data = budget_service.get_budget_status(conn, ctx, project_id)
    return {"success": True, "data": data}


@router.put("/project/{project_id}")
def update_project_budget(
    request: BudgetUpdateRequest,
    project_id: int = Path(..., ge=1),
    ctx: AuthContext = Depends(require_capability(Capability.BUDGET_MANAGE)),
    conn: DbConnection = Depends(get_db),
) -> dict:
    """
    Update planned, spent, currency and/or alertThreshold.

    Raises:
        403: actor is not the project manager or an admin of its organization
        409: spent was changed by another request since it was read
    """
    data = budget_service.update_budget(conn, ctx, project_id, request.changes())
    return {"success": True, "message": "Budget updated successfully", "data": data}


@router.post("/expense")
def log_expense(
    request: ExpenseCreateRequest,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key", max_length=200),
    ctx: AuthContext = Depends(require_capability(Capability.EXPENSE_LOG)),
    conn: DbConnection = Depends(get_db),
) -> dict:
    """
    Log an expense. Retrying with the same Idempotency-Key returns the
    original result without adding the amount again.
    """
    data = budget_service.record_expense(
        conn,
        ctx,
        request.project_id,
        request.amount,
        description=request.description,
        idempotency_key=idempotency_key,
        currency=request.currency,
    )
    replayed = data.pop("replayed")
    message = "Expense already recorded" if replayed else "Expense logged successfully"
    return {"success": True, "message": message, "data": data}


@router.get("/alerts")
def get_budget_alerts(
    ctx: AuthContext = Depends(require_capability(Capability.BUDGET_VIEW)),
    conn: DbConnection = Depends(get_db),
) -> dict:
    data = budget_service.list_alerts(conn, ctx)
    return {"success": True, "data": data}


@router.get("/project/{project_id}/expenses")
def list_project_expenses(
    project_id: int = Path(..., ge=1),
    ctx: AuthContext = Depends(require_capability(Capability.BUDGET_VIEW)),
    conn: DbConnection = Depends(get_db),
) -> dict:
    data = budget_service.list_expenses(conn, ctx, project_id)
    return {"success": True, "data": data}


@router.post("/expense/{expense_id}/reverse")
def reverse_expense(
    expense_id: int = Path(..., ge=1),
    request: Optional[ExpenseReverseRequest] = Body(None),
    ctx: AuthContext = Depends(require_capability(Capability.BUDGET_MANAGE)),
    conn: DbConnection = Depends(get_db),
) -> dict:
    reason = request.reason if request else None
    data = budget_service.reverse_expense(conn, ctx, expense_id, reason)
    return {"success": True, "message": "Expense reversed successfully", "data": data}
