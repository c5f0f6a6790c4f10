"""
projecthub/authz.py

Project-level authorization (backend-enforced).

Single source of truth for "may this user touch this project?". Two layers:

1. Capabilities: what a role may do at all (role -> capability set, see rbac.py).
2. Relations: how the actor relates to a specific project
   (admin role, project manager, team leader). Each action lists the
   relations that grant it.

The organization boundary is checked before any relation: an actor from a
different organization is denied whatever their role, super_admin included.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Set

from projecthub import config
from projecthub.errors import AuthorizationError
from projecthub.models import ADMIN_ROLES


# ============================================================================
# Capability-Based Authorization
# ============================================================================

class Capability(str, Enum):
    """Role-level capabilities, checked before any project is loaded."""

    BUDGET_VIEW = "budget:view"
    BUDGET_MANAGE = "budget:manage"
    EXPENSE_LOG = "expense:log"

    PROJECT_CREATE = "project:create"
    PROJECT_VIEW = "project:view"

    CAPACITY_VIEW = "capacity:view"
    TEAM_ASSIGN = "team:assign"

    USERS_MANAGE = "users:manage"


# ============================================================================
# Project Actions and Relations
# ============================================================================

class Action(str, Enum):
    BUDGET_VIEW = "budget:view"
    BUDGET_MANAGE = "budget:manage"
    EXPENSE_LOG = "expense:log"
    TEAM_ASSIGN = "team:assign"
    PROJECT_UPDATE = "project:update"


class Relation(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    TEAM_LEADER = "team_leader"


ACTION_RELATIONS: Dict[Action, FrozenSet[Relation]] = {
    Action.BUDGET_VIEW: frozenset({Relation.ADMIN, Relation.MANAGER, Relation.TEAM_LEADER}),
    Action.EXPENSE_LOG: frozenset({Relation.ADMIN, Relation.MANAGER, Relation.TEAM_LEADER}),
    Action.BUDGET_MANAGE: frozenset({Relation.ADMIN, Relation.MANAGER}),
    Action.TEAM_ASSIGN: frozenset({Relation.ADMIN, Relation.MANAGER}),
    Action.PROJECT_UPDATE: frozenset({Relation.ADMIN, Relation.MANAGER}),
}

DENIED_MESSAGES: Dict[Action, str] = {
    Action.BUDGET_VIEW: "Not authorized to view this budget",
    Action.EXPENSE_LOG: "Not authorized to log expenses for this project",
    Action.BUDGET_MANAGE: "Not authorized to update this budget",
    Action.TEAM_ASSIGN: "Not authorized to manage this project's team",
    Action.PROJECT_UPDATE: "Not authorized to update this project",
}


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str
    action: Action
    relations: FrozenSet[Relation] = field(default_factory=frozenset)


def _get(obj: Any, key: str) -> Any:
    """Read an attribute from an AuthContext/model or a plain row dict."""
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, key, None)


def actor_relations(actor: Any, project: Any) -> Set[Relation]:
    """
    Relations the actor holds on the project. Ignores organization; callers
    must check the boundary first (authorize() does).
    """
    relations: Set[Relation] = set()
    user_id = _get(actor, "user_id") or _get(actor, "id")

    if _get(actor, "role") in ADMIN_ROLES:
        relations.add(Relation.ADMIN)
    if user_id is not None and _get(project, "manager_id") == user_id:
        relations.add(Relation.MANAGER)
    if user_id is not None and _get(project, "team_leader_id") == user_id:
        relations.add(Relation.TEAM_LEADER)
    return relations


def authorize(actor: Any, project: Any, action: Action) -> Decision:
    """
    Decide whether actor may perform action on project.

    Args:
        actor: AuthContext (or dict with user_id/id, organization_id, role)
        project: Project model or project row dict
        action: The Action being attempted

    Returns:
        Decision. Never raises; use enforce() to turn a denial into a 403.
    """
    actor_org = _get(actor, "organization_id")
    project_org = _get(project, "organization_id")

    if actor_org is None or actor_org != project_org:
        return Decision(
            allowed=False,
            reason=f"cross-organization access (actor org={actor_org}, resource org={project_org})",
            action=action,
        )

    relations = frozenset(actor_relations(actor, project))
    granting = relations & ACTION_RELATIONS[action]
    if granting:
        return Decision(
            allowed=True,
            reason=f"granted via {', '.join(sorted(r.value for r in granting))}",
            action=action,
            relations=relations,
        )

    return Decision(
        allowed=False,
        reason=f"no qualifying relation (has {sorted(r.value for r in relations) or 'none'})",
        action=action,
        relations=relations,
    )


def enforce(decision: Decision, actor: Any = None, resource: str = "") -> None:
    """Raise AuthorizationError for a denied Decision."""
    user_id = _get(actor, "user_id") if actor is not None else None
    if not decision.allowed:
        print(f"[AUTHZ] Denied: action={decision.action.value}, user_id={user_id}, "
              f"resource={resource or 'unknown'}, reason={decision.reason}")
        raise AuthorizationError(DENIED_MESSAGES[decision.action])

    if config.IS_DEV:
        print(f"[AUTHZ] Granted: action={decision.action.value}, user_id={user_id}, "
              f"resource={resource or 'unknown'}, {decision.reason}")


def require_project_action(actor: Any, project: Any, action: Action) -> Decision:
    """authorize() + enforce() in one call; returns the granting Decision."""
    decision = authorize(actor, project, action)
    enforce(decision, actor, resource=f"project:{_get(project, 'id')}")
    return decision


def require_same_organization(actor: Any, organization_id: Optional[int], resource: str = "") -> None:
    """Organization boundary for non-project resources (users)."""
    actor_org = _get(actor, "organization_id")
    if actor_org is None or actor_org != organization_id:
        print(f"[AUTHZ] Denied: cross-organization access, user_id={_get(actor, 'user_id')}, "
              f"actor_org={actor_org}, resource={resource or 'unknown'} org={organization_id}")
        raise AuthorizationError("Not authorized to access this resource")
