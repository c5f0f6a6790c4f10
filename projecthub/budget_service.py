"""
projecthub/budget_service.py

Budget read path and budget mutations for the /api/budget routes.

Each function loads the project, authorizes the actor against it (organization
boundary first, then the project relation), performs the read or ledger
mutation, and returns plain dicts ready for the JSON envelope. Status is
recomputed from the stored row on every call; nothing is cached.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from projecthub import config, ledger
from projecthub.auth_context import AuthContext
from projecthub.authz import Action, require_project_action
from projecthub.budget import (
    MAX_MINOR_UNITS,
    SEVERITY_ORDER,
    BudgetLevel,
    alert_message,
    alert_payload,
    from_minor_units,
    to_minor_units,
)
from projecthub.db import DbConnection, execute_query, fetch_all, fetch_one, transaction
from projecthub.errors import NotFoundError, ValidationError
from projecthub.models import ADMIN_ROLES, Project, UserRole
from projecthub.tenant import assert_rows_scoped, require_organization_id


def load_project(conn: DbConnection, project_id: int) -> Project:
    """Fetch a project by id regardless of organization; callers authorize."""
    row = fetch_one(conn, "SELECT * FROM projects WHERE id = :id", {"id": project_id})
    if not row:
        raise NotFoundError("Project not found")
    return Project.from_row(row)


def _budget_payload(project: Project) -> Dict[str, Any]:
    return {
        "budget": project.budget.to_dict(),
        "status": project.budget.status().to_dict(),
    }


# ============================================================================
# Reads
# ============================================================================

def get_budget_status(conn: DbConnection, actor: AuthContext, project_id: int) -> Dict[str, Any]:
    project = load_project(conn, project_id)
    require_project_action(actor, project, Action.BUDGET_VIEW)

    return {
        "project": {"_id": project.id, "name": project.name},
        **_budget_payload(project),
    }


def list_alerts(conn: DbConnection, actor: AuthContext) -> Dict[str, Any]:
    """
    Alerting projects visible to the actor, most severe first.

    Visibility:
        admins           - every non-archived project in the organization
        project managers - projects they manage
        everyone else    - projects they manage, lead, or are a member of
    """
    org_id = require_organization_id(actor.organization_id)
    query = """
        SELECT p.*, m.first_name AS manager_first_name, m.last_name AS manager_last_name,
               m.email AS manager_email
        FROM projects p
        LEFT JOIN users m ON m.id = p.manager_id
        WHERE p.organization_id = :org AND p.is_archived = 0
    """
    params: Dict[str, Any] = {"org": org_id}

    if actor.role in ADMIN_ROLES:
        pass
    elif actor.role == UserRole.project_manager.value:
        query += " AND p.manager_id = :uid"
        params["uid"] = actor.user_id
    else:
        query += """
            AND (p.manager_id = :uid OR p.team_leader_id = :uid
                 OR p.id IN (SELECT pm.project_id FROM project_members pm WHERE pm.user_id = :uid))
        """
        params["uid"] = actor.user_id

    rows = fetch_all(conn, query + " ORDER BY p.id", params)
    assert_rows_scoped(rows, org_id, "budget_alerts")

    alerts: List[Dict[str, Any]] = []
    for row in rows:
        project = Project.from_row(row)
        status = project.budget.status()
        if not status.is_alert:
            continue

        manager_name = f"{row.get('manager_first_name') or ''} {row.get('manager_last_name') or ''}".strip()
        alerts.append({
            "project": {
                "_id": project.id,
                "name": project.name,
                "manager": {"_id": project.manager_id, "name": manager_name or row.get("manager_email")},
            },
            "budget": {
                "planned": float(status.planned),
                "spent": float(status.spent),
                "remaining": float(status.remaining),
                "percentage": float(status.percentage),
            },
            "alert": {
                "status": status.status,
                "threshold": status.alert_threshold,
                "message": alert_message(status),
            },
        })

    alerts.sort(key=lambda a: (SEVERITY_ORDER[a["alert"]["status"]], -a["budget"]["percentage"]))

    summary = {
        "total": len(alerts),
        "critical": sum(1 for a in alerts if a["alert"]["status"] == BudgetLevel.CRITICAL.value),
        "warning": sum(1 for a in alerts if a["alert"]["status"] == BudgetLevel.WARNING.value),
        "caution": sum(1 for a in alerts if a["alert"]["status"] == BudgetLevel.CAUTION.value),
    }

    if config.IS_DEV:
        print(f"[BUDGET] Alerts for user_id={actor.user_id}: {summary}")

    return {"alerts": alerts, "summary": summary}


def list_expenses(conn: DbConnection, actor: AuthContext, project_id: int) -> Dict[str, Any]:
    project = load_project(conn, project_id)
    require_project_action(actor, project, Action.BUDGET_VIEW)

    entries = ledger.list_entries(conn, project.id)
    return {
        "project": {"_id": project.id, "name": project.name},
        "entries": [entry.to_dict() for entry in entries],
        "ledgerTotal": float(from_minor_units(ledger.ledger_total(conn, project.id))),
        "spent": float(from_minor_units(project.budget.spent_cents)),
    }


# ============================================================================
# Mutations
# ============================================================================

def update_budget(
    conn: DbConnection,
    actor: AuthContext,
    project_id: int,
    changes: Dict[str, Any],
) -> Dict[str, Any]:
    """
    Apply a partial budget update. Keys: planned, spent, currency, alert_threshold.

    A spent override goes through the ledger as a compare-and-swap adjustment.
    It shares one transaction with the other fields, so the update applies
    entirely or not at all.
    """
    project = load_project(conn, project_id)
    require_project_action(actor, project, Action.BUDGET_MANAGE)

    assignments = []
    params: Dict[str, Any] = {"id": project.id}
    if changes.get("planned") is not None:
        planned_cents = to_minor_units(changes["planned"])
        if planned_cents < 0:
            raise ValidationError.for_field("planned", "Planned budget cannot be negative")
        if planned_cents > MAX_MINOR_UNITS:
            raise ValidationError.for_field("planned", "Planned budget is too large")
        assignments.append("budget_planned_cents = :planned")
        params["planned"] = planned_cents
    if changes.get("currency") is not None:
        assignments.append("budget_currency = :currency")
        params["currency"] = getattr(changes["currency"], "value", changes["currency"])
    if changes.get("alert_threshold") is not None:
        assignments.append("budget_alert_threshold = :threshold")
        params["threshold"] = int(changes["alert_threshold"])

    with transaction(conn):
        if changes.get("spent") is not None:
            ledger.apply_spent_change(conn, project, changes["spent"], actor.user_id,
                                      reason="Manual spent correction")
        if assignments:
            execute_query(
                conn,
                f"""
                UPDATE projects
                SET {', '.join(assignments)},
                    budget_version = budget_version + 1,
                    updated_at = CURRENT_TIMESTAMP
                WHERE id = :id
                """,
                params,
            )

    project = load_project(conn, project_id)
    if config.IS_DEV:
        print(f"[BUDGET] Budget updated: project_id={project.id}, by user_id={actor.user_id}, "
              f"fields={sorted(k for k, v in changes.items() if v is not None)}")

    return _budget_payload(project)


def record_expense(
    conn: DbConnection,
    actor: AuthContext,
    project_id: int,
    amount: Any,
    description: Optional[str] = None,
    idempotency_key: Optional[str] = None,
    currency: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Log an expense and return the refreshed budget, its status, and an alert
    block when the project is at or above its alert threshold.
    """
    project = load_project(conn, project_id)
    require_project_action(actor, project, Action.EXPENSE_LOG)

    currency = getattr(currency, "value", currency)
    if currency and currency != project.budget.currency.value:
        raise ValidationError.for_field(
            "currency", f"Project budget is tracked in {project.budget.currency.value}"
        )

    entry, replayed = ledger.log_expense(
        conn, project, amount, description, actor.user_id, idempotency_key=idempotency_key
    )

    project = load_project(conn, project_id)
    status = project.budget.status()
    if status.is_alert:
        print(f"[BUDGET] Alert: project_id={project.id} at {status.percentage}% ({status.status})")

    return {
        "budget": project.budget.to_dict(),
        "status": status.to_dict(),
        "alert": alert_payload(status) if status.is_alert else None,
        "expense": entry.to_dict(),
        "replayed": replayed,
    }


def reverse_expense(
    conn: DbConnection,
    actor: AuthContext,
    expense_id: int,
    reason: Optional[str] = None,
) -> Dict[str, Any]:
    entry = ledger.get_entry(conn, expense_id)
    if entry is None:
        raise NotFoundError("Expense not found")

    project = load_project(conn, entry.project_id)
    require_project_action(actor, project, Action.BUDGET_MANAGE)

    reversal = ledger.reverse_expense(conn, project, expense_id, actor.user_id, reason)
    project = load_project(conn, project.id)

    return {
        **_budget_payload(project),
        "reversal": reversal.to_dict(),
    }
