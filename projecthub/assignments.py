"""
projecthub/assignments.py

Capacity-guarded staffing flows for project managers.

Every capacity check is folded into the statement that mutates, e.g.

    INSERT INTO project_members ... SELECT ... WHERE (active count) < max_projects
    UPDATE projects SET team_leader_id = ... WHERE ... AND (led count) < 1

so two concurrent requests can never both pass the check and both write.
When the statement touches no row, the counts are read again only to pick
the error message.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from projecthub import config
from projecthub.auth_context import AuthContext
from projecthub.authz import Action, require_project_action
from projecthub.budget import MAX_MINOR_UNITS, to_minor_units
from projecthub.budget_service import load_project
from projecthub.capacity import (
    ACTIVE_PROJECT_STATUSES,
    ASSIGNMENT_PROJECT,
    ASSIGNMENT_TEAM_LEADER,
    TEAM_LEADER_MAX_PROJECTS,
    can_assign,
    is_active_status,
    utilization_percentage,
)
from projecthub.db import (
    DbConnection,
    execute_query,
    fetch_all,
    fetch_one,
    fetch_scalar,
    insert_returning_id,
    is_integrity_error,
    transaction,
)
from projecthub.errors import CapacityExceededError, NotFoundError, ValidationError
from projecthub.models import ADMIN_ROLES, ASSIGNABLE_ROLES, Project, ProjectStatus
from projecthub.tenant import assert_rows_scoped, require_organization_id

_ACTIVE_SQL = "(" + ", ".join(f"'{s}'" for s in ACTIVE_PROJECT_STATUSES) + ")"

# Active projects a user is staffed on (as team leader or member)
_ASSIGNED_COUNT_SQL = f"""
    (SELECT COUNT(*) FROM projects ap
     WHERE (ap.team_leader_id = :uid
            OR ap.id IN (SELECT pm.project_id FROM project_members pm WHERE pm.user_id = :uid))
       AND ap.status IN {_ACTIVE_SQL}
       AND ap.id <> :exclude_id)
"""

_LED_COUNT_SQL = f"""
    (SELECT COUNT(*) FROM projects lp
     WHERE lp.team_leader_id = :uid
       AND lp.status IN {_ACTIVE_SQL}
       AND lp.id <> :exclude_id)
"""

_MANAGED_COUNT_SQL = f"""
    (SELECT COUNT(*) FROM projects mp
     WHERE mp.manager_id = :manager_id
       AND mp.status IN {_ACTIVE_SQL}
       AND mp.id <> :exclude_id)
"""

_USER_MAX_SQL = "(SELECT max_projects FROM users WHERE id = :uid)"
_MANAGER_MAX_SQL = "(SELECT max_projects FROM users WHERE id = :manager_id)"


# ============================================================================
# Counts
# ============================================================================

def count_managed_active(conn: DbConnection, manager_id: int, exclude_project_id: int = 0) -> int:
    return int(fetch_scalar(
        conn, f"SELECT {_MANAGED_COUNT_SQL}",
        {"manager_id": manager_id, "exclude_id": exclude_project_id},
    ) or 0)


def count_led_active(conn: DbConnection, user_id: int, exclude_project_id: int = 0) -> int:
    return int(fetch_scalar(
        conn, f"SELECT {_LED_COUNT_SQL}", {"uid": user_id, "exclude_id": exclude_project_id}
    ) or 0)


def count_assigned_active(conn: DbConnection, user_id: int, exclude_project_id: int = 0) -> int:
    return int(fetch_scalar(
        conn, f"SELECT {_ASSIGNED_COUNT_SQL}", {"uid": user_id, "exclude_id": exclude_project_id}
    ) or 0)


def _load_user(conn: DbConnection, user_id: int) -> Optional[Dict[str, Any]]:
    return fetch_one(
        conn,
        """
        SELECT id, organization_id, email, first_name, last_name, role, max_projects, is_active
        FROM users WHERE id = :id
        """,
        {"id": user_id},
    )


def _display_name(user: Dict[str, Any]) -> str:
    full = f"{user.get('first_name') or ''} {user.get('last_name') or ''}".strip()
    return full or user["email"]


def _load_assignable_user(conn: DbConnection, actor: AuthContext, user_id: int, label: str) -> Dict[str, Any]:
    """Same-organization, active member/team_leader user, else 404."""
    user = _load_user(conn, user_id)
    if (
        not user
        or user["organization_id"] != actor.organization_id
        or user["role"] not in ASSIGNABLE_ROLES
        or not user["is_active"]
    ):
        raise NotFoundError(f"{label} not found or is not a valid team member")
    return user


def _project_members(conn: DbConnection, project_id: int) -> List[Dict[str, Any]]:
    rows = fetch_all(
        conn,
        """
        SELECT u.id, u.email, u.first_name, u.last_name, pm.role, pm.joined_at
        FROM project_members pm
        JOIN users u ON u.id = pm.user_id
        WHERE pm.project_id = :project_id
        ORDER BY pm.id
        """,
        {"project_id": project_id},
    )
    return [
        {"_id": r["id"], "name": _display_name(r), "email": r["email"], "role": r["role"],
         "joinedAt": str(r["joined_at"]) if r.get("joined_at") is not None else None}
        for r in rows
    ]


def project_payload(conn: DbConnection, project: Project) -> Dict[str, Any]:
    return {
        **project.summary(),
        "description": project.description,
        "priority": project.priority.value,
        "startDate": project.start_date,
        "endDate": project.end_date,
        "budget": project.budget.to_dict(),
        "budgetStatus": project.budget.status().to_dict(),
        "members": _project_members(conn, project.id),
    }


# ============================================================================
# PM capacity
# ============================================================================

def pm_capacity(conn: DbConnection, user: AuthContext) -> Dict[str, Any]:
    active = count_managed_active(conn, user.user_id)
    check = can_assign(user.max_projects, ASSIGNMENT_PROJECT, active)
    return {
        "name": user.name,
        "maxProjects": check.max_projects,
        "activeProjects": active,
        "availableSlots": check.available_slots,
        "canTakeMore": check.allowed,
        "utilizationPercentage": float(utilization_percentage(active, check.max_projects)),
    }


def _manager_capacity_error(conn: DbConnection, manager_id: int, exclude_project_id: int = 0) -> CapacityExceededError:
    manager = _load_user(conn, manager_id) or {}
    max_projects = manager.get("max_projects") or 0
    active = count_managed_active(conn, manager_id, exclude_project_id)
    print(f"[CAPACITY] Manager at capacity: manager_id={manager_id}, active={active}, max={max_projects}")
    return CapacityExceededError(
        f"Project manager has reached maximum project capacity ({max_projects} projects)"
    )


def _member_capacity_error(conn: DbConnection, user: Dict[str, Any], exclude_project_id: int = 0) -> CapacityExceededError:
    current = count_assigned_active(conn, user["id"], exclude_project_id)
    print(f"[CAPACITY] User at capacity: user_id={user['id']}, active={current}, max={user['max_projects']}")
    return CapacityExceededError(
        f"User has reached maximum project capacity ({user['max_projects']} projects)"
    )


def _team_leader_error(conn: DbConnection, user: Dict[str, Any], exclude_project_id: int = 0) -> CapacityExceededError:
    """Team leader limit when that is what failed, else the project capacity error."""
    led = count_led_active(conn, user["id"], exclude_project_id)
    if not can_assign(user["max_projects"], ASSIGNMENT_TEAM_LEADER, led).allowed:
        print(f"[CAPACITY] Team leader limit: user_id={user['id']}, led_active={led}")
        return CapacityExceededError(
            f"User is already a team leader in another project (max {TEAM_LEADER_MAX_PROJECTS})"
        )
    return _member_capacity_error(conn, user, exclude_project_id)


# ============================================================================
# Guarded statements (run inside the caller's transaction)
# ============================================================================

def _guarded_set_team_leader(conn: DbConnection, project_id: int, user: Dict[str, Any]) -> None:
    result = execute_query(
        conn,
        f"""
        UPDATE projects
        SET team_leader_id = :uid, updated_at = CURRENT_TIMESTAMP
        WHERE id = :project_id
          AND {_LED_COUNT_SQL} < :tl_max
          AND {_ASSIGNED_COUNT_SQL} < {_USER_MAX_SQL}
        """,
        {"uid": user["id"], "project_id": project_id, "exclude_id": project_id,
         "tl_max": TEAM_LEADER_MAX_PROJECTS},
    )
    if result.rowcount:
        execute_query(
            conn,
            "DELETE FROM project_members WHERE project_id = :project_id AND user_id = :uid",
            {"project_id": project_id, "uid": user["id"]},
        )
        return

    raise _team_leader_error(conn, user, project_id)


def _guarded_add_member(conn: DbConnection, project_id: int, user: Dict[str, Any]) -> None:
    try:
        member_id = insert_returning_id(
            conn,
            f"""
            INSERT INTO project_members (project_id, user_id, role)
            SELECT :project_id, :uid, 'member'
            WHERE {_ASSIGNED_COUNT_SQL} < {_USER_MAX_SQL}
            """,
            {"project_id": project_id, "uid": user["id"], "exclude_id": 0},
        )
    except Exception as e:
        if is_integrity_error(e):
            raise ValidationError("User is already part of this project")
        raise
    if member_id is None:
        raise _member_capacity_error(conn, user)


# ============================================================================
# Project lifecycle
# ============================================================================

def create_project(conn: DbConnection, actor: AuthContext, data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Create a project managed by the actor, optionally staffing it.

    The manager capacity guard applies when the project starts in an active
    status. Team leader and members each pass their own guard; any failure
    rolls the whole creation back.
    """
    org_id = require_organization_id(actor.organization_id)
    status = getattr(data.get("status"), "value", data.get("status")) or ProjectStatus.planning.value
    priority = getattr(data.get("priority"), "value", data.get("priority")) or "medium"
    currency = getattr(data.get("currency"), "value", data.get("currency")) or config.DEFAULT_CURRENCY
    threshold = data.get("alert_threshold")
    if threshold is None:
        threshold = config.DEFAULT_ALERT_THRESHOLD

    planned_cents = to_minor_units(data.get("planned") or 0)
    if planned_cents < 0:
        raise ValidationError.for_field("planned", "Planned budget cannot be negative")
    if planned_cents > MAX_MINOR_UNITS:
        raise ValidationError.for_field("planned", "Planned budget is too large")

    team_leader = None
    if data.get("team_leader_id"):
        team_leader = _load_assignable_user(conn, actor, data["team_leader_id"], "Team leader")
    members = [
        _load_assignable_user(conn, actor, member_id, "Member")
        for member_id in dict.fromkeys(data.get("member_ids") or [])
        if not team_leader or member_id != team_leader["id"]
    ]

    guard = f"WHERE {_MANAGED_COUNT_SQL} < {_MANAGER_MAX_SQL}" if is_active_status(status) else ""
    with transaction(conn):
        project_id = insert_returning_id(
            conn,
            f"""
            INSERT INTO projects
                (organization_id, name, description, manager_id, status, priority, start_date, end_date,
                 budget_planned_cents, budget_spent_cents, budget_currency, budget_alert_threshold)
            SELECT :org, :name, :description, :manager_id, :status, :priority, :start_date, :end_date,
                   :planned, 0, :currency, :threshold
            {guard}
            """,
            {
                "org": org_id,
                "name": data["name"],
                "description": data.get("description"),
                "manager_id": actor.user_id,
                "status": status,
                "priority": priority,
                "start_date": data.get("start_date"),
                "end_date": data.get("end_date"),
                "planned": planned_cents,
                "currency": currency,
                "threshold": int(threshold),
                "exclude_id": 0,
            },
        )
        if project_id is None:
            raise _manager_capacity_error(conn, actor.user_id)

        if team_leader:
            _guarded_set_team_leader(conn, project_id, team_leader)
        for member in members:
            _guarded_add_member(conn, project_id, member)

    project = load_project(conn, project_id)
    if config.IS_DEV:
        print(f"[CAPACITY] Project created: project_id={project_id}, manager_id={actor.user_id}, "
              f"team_leader={team_leader['id'] if team_leader else None}, members={len(members)}")
    return project_payload(conn, project)


def _reactivation_error(conn: DbConnection, project: Project) -> CapacityExceededError:
    """Name the first person on the project who has no room for it."""
    manager = _load_user(conn, project.manager_id) or {}
    managed = count_managed_active(conn, project.manager_id, project.id)
    if not can_assign(manager.get("max_projects") or 0, ASSIGNMENT_PROJECT, managed).allowed:
        return _manager_capacity_error(conn, project.manager_id, project.id)

    if project.team_leader_id:
        leader = _load_user(conn, project.team_leader_id)
        if leader:
            led = count_led_active(conn, leader["id"], project.id)
            assigned = count_assigned_active(conn, leader["id"], project.id)
            if (not can_assign(leader["max_projects"], ASSIGNMENT_TEAM_LEADER, led).allowed
                    or not can_assign(leader["max_projects"], ASSIGNMENT_PROJECT, assigned).allowed):
                return _team_leader_error(conn, leader, project.id)

    member_ids = fetch_all(
        conn,
        "SELECT user_id FROM project_members WHERE project_id = :project_id ORDER BY id",
        {"project_id": project.id},
    )
    for row in member_ids:
        member = _load_user(conn, row["user_id"])
        if member and count_assigned_active(conn, member["id"], project.id) >= member["max_projects"]:
            return _member_capacity_error(conn, member, project.id)

    return _manager_capacity_error(conn, project.manager_id, project.id)


def update_project_status(conn: DbConnection, actor: AuthContext, project_id: int, status: str) -> Dict[str, Any]:
    """
    Change a project's status.

    Moving a completed or cancelled project back to an active status counts
    against everyone on it again, so the update is guarded on the manager's
    capacity, the team leader's limits and every member's capacity.
    """
    project = load_project(conn, project_id)
    require_project_action(actor, project, Action.PROJECT_UPDATE)
    status = getattr(status, "value", status)

    reactivating = is_active_status(status) and not is_active_status(project.status.value)
    params: Dict[str, Any] = {"status": status, "project_id": project.id,
                              "manager_id": project.manager_id, "exclude_id": project.id}
    guard = ""
    if reactivating:
        guard = f"""
            AND {_MANAGED_COUNT_SQL} < {_MANAGER_MAX_SQL}
            AND NOT EXISTS (
                SELECT 1 FROM project_members m JOIN users mu ON mu.id = m.user_id
                WHERE m.project_id = :project_id
                  AND {_ASSIGNED_COUNT_SQL.replace(':uid', 'm.user_id')} >= mu.max_projects)
        """
        if project.team_leader_id:
            guard += f"""
            AND {_LED_COUNT_SQL} < :tl_max
            AND {_ASSIGNED_COUNT_SQL} < {_USER_MAX_SQL}
            """
            params.update(uid=project.team_leader_id, tl_max=TEAM_LEADER_MAX_PROJECTS)

    with transaction(conn):
        result = execute_query(
            conn,
            f"""
            UPDATE projects SET status = :status, updated_at = CURRENT_TIMESTAMP
            WHERE id = :project_id {guard}
            """,
            params,
        )
        if result.rowcount == 0:
            raise _reactivation_error(conn, project)

    if config.IS_DEV:
        print(f"[CAPACITY] Project status: project_id={project.id}, {project.status.value} -> {status}")
    return project_payload(conn, load_project(conn, project.id))


def set_team_leader(conn: DbConnection, actor: AuthContext, project_id: int, user_id: Optional[int]) -> Dict[str, Any]:
    project = load_project(conn, project_id)
    require_project_action(actor, project, Action.TEAM_ASSIGN)

    if user_id is None:
        with transaction(conn):
            execute_query(
                conn,
                "UPDATE projects SET team_leader_id = NULL, updated_at = CURRENT_TIMESTAMP WHERE id = :id",
                {"id": project.id},
            )
        return project_payload(conn, load_project(conn, project.id))

    user = _load_assignable_user(conn, actor, user_id, "Team leader")
    if project.team_leader_id != user["id"]:
        with transaction(conn):
            _guarded_set_team_leader(conn, project.id, user)
        if config.IS_DEV:
            print(f"[CAPACITY] Team leader set: project_id={project.id}, user_id={user['id']}")

    return project_payload(conn, load_project(conn, project.id))


def add_member(conn: DbConnection, actor: AuthContext, project_id: int, user_id: int) -> Dict[str, Any]:
    project = load_project(conn, project_id)
    require_project_action(actor, project, Action.TEAM_ASSIGN)
    user = _load_assignable_user(conn, actor, user_id, "User")

    already = fetch_scalar(
        conn,
        "SELECT COUNT(*) FROM project_members WHERE project_id = :project_id AND user_id = :uid",
        {"project_id": project.id, "uid": user["id"]},
    )
    if already or project.team_leader_id == user["id"]:
        raise ValidationError("User is already part of this project")

    with transaction(conn):
        _guarded_add_member(conn, project.id, user)

    if config.IS_DEV:
        print(f"[CAPACITY] Member added: project_id={project.id}, user_id={user['id']}")
    return project_payload(conn, load_project(conn, project.id))


def remove_member(conn: DbConnection, actor: AuthContext, project_id: int, user_id: int) -> Dict[str, Any]:
    project = load_project(conn, project_id)
    require_project_action(actor, project, Action.TEAM_ASSIGN)

    with transaction(conn):
        result = execute_query(
            conn,
            "DELETE FROM project_members WHERE project_id = :project_id AND user_id = :uid",
            {"project_id": project.id, "uid": user_id},
        )
        if result.rowcount == 0:
            raise NotFoundError("User is not a member of this project")

    return project_payload(conn, load_project(conn, project.id))


# ============================================================================
# Listings
# ============================================================================

def _staffable_users(conn: DbConnection, org_id: int) -> List[Dict[str, Any]]:
    rows = fetch_all(
        conn,
        f"""
        SELECT u.id, u.organization_id, u.email, u.first_name, u.last_name, u.role, u.max_projects,
               {_ASSIGNED_COUNT_SQL.replace(':uid', 'u.id')} AS active_projects,
               {_LED_COUNT_SQL.replace(':uid', 'u.id')} AS led_projects
        FROM users u
        WHERE u.organization_id = :org AND u.is_active = 1
          AND u.role IN ('member', 'team_leader')
        ORDER BY u.id
        """,
        {"org": org_id, "exclude_id": 0},
    )
    assert_rows_scoped(rows, org_id, "staffable_users")
    return rows


def available_team_leaders(conn: DbConnection, actor: AuthContext) -> List[Dict[str, Any]]:
    """Users who lead no active project and still have a free project slot."""
    org_id = require_organization_id(actor.organization_id)
    result = []
    for row in _staffable_users(conn, org_id):
        tl = can_assign(row["max_projects"], ASSIGNMENT_TEAM_LEADER, row["led_projects"])
        total = can_assign(row["max_projects"], ASSIGNMENT_PROJECT, row["active_projects"])
        if tl.allowed and total.allowed:
            result.append({
                "_id": row["id"],
                "name": _display_name(row),
                "email": row["email"],
                "role": row["role"],
                "currentProjects": row["active_projects"],
                "capacity": total.to_dict(),
            })
    return result


def available_members(conn: DbConnection, actor: AuthContext) -> List[Dict[str, Any]]:
    org_id = require_organization_id(actor.organization_id)
    result = []
    for row in _staffable_users(conn, org_id):
        check = can_assign(row["max_projects"], ASSIGNMENT_PROJECT, row["active_projects"])
        if check.allowed:
            result.append({
                "_id": row["id"],
                "name": _display_name(row),
                "email": row["email"],
                "role": row["role"],
                "currentProjects": row["active_projects"],
                "capacity": check.to_dict(),
            })
    return result


def list_managed_projects(conn: DbConnection, actor: AuthContext) -> List[Dict[str, Any]]:
    """The actor's managed projects; admins see every project in the organization."""
    org_id = require_organization_id(actor.organization_id)
    query = "SELECT * FROM projects WHERE organization_id = :org AND is_archived = 0"
    params: Dict[str, Any] = {"org": org_id}
    if actor.role not in ADMIN_ROLES:
        query += " AND manager_id = :uid"
        params["uid"] = actor.user_id

    rows = fetch_all(conn, query + " ORDER BY id", params)
    assert_rows_scoped(rows, org_id, "managed_projects")
    return [project_payload(conn, Project.from_row(row)) for row in rows]
