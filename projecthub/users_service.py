"""
projecthub/users_service.py

Organization signup, login, and user administration (roles and capacity).
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from projecthub import config
from projecthub.assignments import count_assigned_active, count_managed_active
from projecthub.auth_context import AuthContext, create_access_token, hash_password, verify_password
from projecthub.authz import require_same_organization
from projecthub.capacity import default_max_projects, validate_max_projects
from projecthub.db import DbConnection, execute_query, fetch_all, fetch_one, insert_returning_id, is_integrity_error, transaction
from projecthub.errors import AuthenticationError, AuthorizationError, ConflictError, NotFoundError, ValidationError
from projecthub.models import ASSIGNABLE_ROLES, MANAGER_ROLES, User, UserRole
from projecthub.rbac import role_at_least
from projecthub.tenant import assert_rows_scoped, require_organization_id

_USER_COLUMNS = "id, organization_id, email, first_name, last_name, role, max_projects, is_active, created_at"


def _user_from_row(row: Dict[str, Any]) -> User:
    data = dict(row)
    data["is_active"] = bool(data.get("is_active"))
    if data.get("created_at") is not None:
        data["created_at"] = str(data["created_at"])
    return User(**data)


def _active_count(conn: DbConnection, user: User) -> int:
    if user.role.value in ASSIGNABLE_ROLES:
        return count_assigned_active(conn, user.id)
    return count_managed_active(conn, user.id)


def user_payload(conn: DbConnection, user: User) -> Dict[str, Any]:
    payload = user.public_dict()
    payload["capacity"]["activeProjects"] = _active_count(conn, user)
    return payload


def get_user(conn: DbConnection, user_id: int) -> User:
    row = fetch_one(conn, f"SELECT {_USER_COLUMNS} FROM users WHERE id = :id", {"id": user_id})
    if not row:
        raise NotFoundError("User not found")
    return _user_from_row(row)


def _insert_user(
    conn: DbConnection,
    organization_id: int,
    email: str,
    password: str,
    first_name: Optional[str],
    last_name: Optional[str],
    role: str,
    max_projects: int,
) -> int:
    try:
        return insert_returning_id(
            conn,
            """
            INSERT INTO users (organization_id, email, password_hash, first_name, last_name, role, max_projects)
            VALUES (:org, :email, :password_hash, :first_name, :last_name, :role, :max_projects)
            """,
            {
                "org": organization_id,
                "email": email.strip().lower(),
                "password_hash": hash_password(password),
                "first_name": first_name,
                "last_name": last_name,
                "role": role,
                "max_projects": max_projects,
            },
        )
    except Exception as e:
        if is_integrity_error(e):
            raise ConflictError("A user with this email already exists")
        raise


# ============================================================================
# Auth flows
# ============================================================================

def register_organization(conn: DbConnection, data: Dict[str, Any]) -> Dict[str, Any]:
    """Create an organization and its first admin user; returns a token."""
    with transaction(conn):
        org_id = insert_returning_id(
            conn, "INSERT INTO organizations (name) VALUES (:name)", {"name": data["organization_name"]}
        )
        user_id = _insert_user(
            conn, org_id, data["email"], data["password"],
            data.get("first_name"), data.get("last_name"),
            UserRole.admin.value, default_max_projects(UserRole.admin.value),
        )

    print(f"[AUTH] Organization registered: organization_id={org_id}, admin user_id={user_id}")
    user = get_user(conn, user_id)
    return {
        "token": create_access_token(user.id, user.organization_id),
        "user": user.public_dict(),
        "organization": {"_id": org_id, "name": data["organization_name"]},
    }


def authenticate(conn: DbConnection, email: str, password: str) -> Dict[str, Any]:
    row = fetch_one(
        conn,
        f"SELECT {_USER_COLUMNS}, password_hash FROM users WHERE email = :email",
        {"email": email.strip().lower()},
    )
    if not row or not verify_password(password, row.get("password_hash")):
        print(f"[AUTH] Failed login for email={email.strip().lower()}")
        raise AuthenticationError("Invalid email or password")
    if not row["is_active"]:
        print(f"[AUTH] Inactive user login attempt: user_id={row['id']}")
        raise AuthenticationError("Account inactive")

    user = _user_from_row(row)
    if config.IS_DEV:
        print(f"[AUTH] Login: user_id={user.id}, organization_id={user.organization_id}")
    return {
        "token": create_access_token(user.id, user.organization_id),
        "user": user.public_dict(),
    }


# ============================================================================
# Administration
# ============================================================================

def _check_grantable(actor: AuthContext, role: str) -> None:
    if not role_at_least(actor.role, role):
        print(f"[AUTHZ] Denied: user_id={actor.user_id} (role={actor.role}) cannot grant role={role}")
        raise AuthorizationError(f"Not authorized to assign the {role} role")


def _check_role_fits_load(conn: DbConnection, user: User, role: str) -> None:
    """Refuse a role change that would leave the user over the new role's limit."""
    if role not in MANAGER_ROLES:
        managed = count_managed_active(conn, user.id)
        if managed:
            raise ValidationError.for_field(
                "role",
                f"Cannot change role. User has {managed} active project(s) as project manager. "
                f"Reassign them first.",
            )

    active = _active_count(conn, user)
    limit = default_max_projects(role)
    if active > limit:
        raise ValidationError.for_field(
            "role",
            f"Cannot change role. User has {active} active project(s), more than the {role} limit of {limit}.",
        )


def list_users(conn: DbConnection, actor: AuthContext) -> List[Dict[str, Any]]:
    org_id = require_organization_id(actor.organization_id)
    rows = fetch_all(
        conn,
        f"SELECT {_USER_COLUMNS} FROM users WHERE organization_id = :org ORDER BY id",
        {"org": org_id},
    )
    assert_rows_scoped(rows, org_id, "list_users")
    return [user_payload(conn, _user_from_row(row)) for row in rows]


def create_user(conn: DbConnection, actor: AuthContext, data: Dict[str, Any]) -> Dict[str, Any]:
    """Add a user to the actor's organization. max_projects defaults by role."""
    role = getattr(data.get("role"), "value", data.get("role")) or UserRole.member.value
    _check_grantable(actor, role)

    max_projects = data.get("max_projects")
    if max_projects is None:
        max_projects = default_max_projects(role)
    error = validate_max_projects(role, max_projects)
    if error:
        raise ValidationError.for_field("maxProjects", error)

    with transaction(conn):
        user_id = _insert_user(
            conn, actor.organization_id, data["email"], data["password"],
            data.get("first_name"), data.get("last_name"), role, max_projects,
        )

    if config.IS_DEV:
        print(f"[AUTH] User created: user_id={user_id}, role={role}, by user_id={actor.user_id}")
    return user_payload(conn, get_user(conn, user_id))


def set_user_role(conn: DbConnection, actor: AuthContext, user_id: int, role: str) -> Dict[str, Any]:
    """Change a user's role and reset max_projects to the new role's default."""
    role = getattr(role, "value", role)
    user = get_user(conn, user_id)
    require_same_organization(actor, user.organization_id, f"user:{user_id}")
    _check_grantable(actor, role)
    _check_grantable(actor, user.role.value)

    if user.id == actor.user_id and role != user.role.value:
        raise ValidationError("You cannot change your own role")

    if role != user.role.value:
        _check_role_fits_load(conn, user, role)

    with transaction(conn):
        execute_query(
            conn,
            "UPDATE users SET role = :role, max_projects = :max_projects WHERE id = :id",
            {"role": role, "max_projects": default_max_projects(role), "id": user.id},
        )

    print(f"[AUTHZ] Role changed: user_id={user.id}, {user.role.value} -> {role}, by user_id={actor.user_id}")
    return user_payload(conn, get_user(conn, user.id))


def set_user_capacity(conn: DbConnection, actor: AuthContext, user_id: int, max_projects: int) -> Dict[str, Any]:
    user = get_user(conn, user_id)
    require_same_organization(actor, user.organization_id, f"user:{user_id}")

    error = validate_max_projects(user.role.value, max_projects)
    if error:
        raise ValidationError.for_field("maxProjects", error)

    active = _active_count(conn, user)
    if max_projects < active:
        raise ValidationError.for_field(
            "maxProjects",
            f"Cannot set capacity to {max_projects}. User has {active} active projects.",
        )

    with transaction(conn):
        execute_query(
            conn,
            "UPDATE users SET max_projects = :max_projects WHERE id = :id",
            {"max_projects": max_projects, "id": user.id},
        )

    if config.IS_DEV:
        print(f"[CAPACITY] Capacity updated: user_id={user.id}, max_projects={max_projects}")
    return user_payload(conn, get_user(conn, user.id))
