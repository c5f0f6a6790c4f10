"""
projecthub/rbac.py

Role-Based Access Control (RBAC): which capabilities each role carries.

Capabilities gate endpoints before any project is loaded. Per-project rules
(manager / team leader relations) live in authz.authorize().

Pure Python logic - no FastAPI imports, no database access.
"""

from typing import Set

from projecthub.authz import Capability
from projecthub.models import UserRole


# ============================================================================
# Role to Capabilities Mapping
# ============================================================================

_ADMIN_CAPABILITIES: Set[str] = {
    Capability.BUDGET_VIEW,
    Capability.BUDGET_MANAGE,
    Capability.EXPENSE_LOG,
    Capability.PROJECT_CREATE,
    Capability.PROJECT_VIEW,
    Capability.CAPACITY_VIEW,
    Capability.TEAM_ASSIGN,
    Capability.USERS_MANAGE,
}

ROLE_CAPABILITIES: dict[str, Set[str]] = {
    UserRole.super_admin.value: set(_ADMIN_CAPABILITIES),
    UserRole.admin.value: set(_ADMIN_CAPABILITIES),
    UserRole.project_manager.value: {
        # Everything on their own projects, no user administration
        Capability.BUDGET_VIEW,
        Capability.BUDGET_MANAGE,
        Capability.EXPENSE_LOG,
        Capability.PROJECT_CREATE,
        Capability.PROJECT_VIEW,
        Capability.CAPACITY_VIEW,
        Capability.TEAM_ASSIGN,
    },
    UserRole.team_leader.value: {
        # Can read budgets and log spend on the project they lead
        Capability.BUDGET_VIEW,
        Capability.EXPENSE_LOG,
        Capability.PROJECT_VIEW,
    },
    UserRole.member.value: {
        Capability.BUDGET_VIEW,
        Capability.EXPENSE_LOG,
        Capability.PROJECT_VIEW,
    },
    UserRole.client.value: {
        Capability.PROJECT_VIEW,
    },
    UserRole.guest.value: set(),
}


def effective_capabilities(role: str) -> Set[str]:
    """
    Capabilities for a role. Unknown roles get none.

    Returns plain strings so the result can be compared against either
    Capability members or raw "budget:view" style values.
    """
    role_lower = role.lower() if role else ""
    return {str(cap.value) if isinstance(cap, Capability) else cap
            for cap in ROLE_CAPABILITIES.get(role_lower, set())}


def has_capability(role: str, capability: str) -> bool:
    if isinstance(capability, Capability):
        capability = capability.value
    return capability in effective_capabilities(role)


# ============================================================================
# Role Hierarchy Helpers
# ============================================================================

ROLE_HIERARCHY = {
    UserRole.super_admin.value: 7,
    UserRole.admin.value: 6,
    UserRole.project_manager.value: 5,
    UserRole.team_leader.value: 4,
    UserRole.member.value: 3,
    UserRole.client.value: 2,
    UserRole.guest.value: 1,
}


def role_level(role: str) -> int:
    """Numeric level for a role (higher = more privileged), 0 if unknown."""
    return ROLE_HIERARCHY.get(role.lower() if role else "", 0)


def role_at_least(user_role: str, required_role: str) -> bool:
    """
    Check if user_role meets or exceeds required_role in hierarchy.

    Example:
        role_at_least("admin", "project_manager") -> True
        role_at_least("member", "admin") -> False
    """
    return role_level(user_role) >= role_level(required_role)
