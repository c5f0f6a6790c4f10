"""
projecthub/capacity.py

Capacity checker for project staffing.

Answers "can this user take one more assignment?" from a stored ceiling and
a count of the user's active projects. Read-only: callers enforce the result
(assignments.py folds the same condition into the mutating SQL statement).

Pure Python logic - no FastAPI imports, no database access.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional

from projecthub import config
from projecthub.budget import HUNDRED, ZERO, round_percentage
from projecthub.models import ProjectStatus, UserRole

# A user can lead at most one active project at a time. Not stored per user.
TEAM_LEADER_MAX_PROJECTS = 1

ASSIGNMENT_PROJECT = "project"
ASSIGNMENT_TEAM_LEADER = "team_leader"

# Statuses that count against capacity
ACTIVE_PROJECT_STATUSES = (
    ProjectStatus.planning.value,
    ProjectStatus.active.value,
    ProjectStatus.on_hold.value,
)


def is_active_status(status: Optional[str]) -> bool:
    return status in ACTIVE_PROJECT_STATUSES


# ============================================================================
# Role defaults and ceilings
# ============================================================================

_MEMBER_ROLES = {UserRole.member.value, UserRole.team_leader.value}
_MANAGER_ROLES = {
    UserRole.project_manager.value,
    UserRole.admin.value,
    UserRole.super_admin.value,
}


def default_max_projects(role: str) -> int:
    """Initial max_projects for a newly created user (or after a role change)."""
    if role in _MEMBER_ROLES:
        return config.MEMBER_DEFAULT_MAX_PROJECTS
    if role in _MANAGER_ROLES:
        return config.PM_DEFAULT_MAX_PROJECTS
    return 0


def max_projects_ceiling(role: str) -> int:
    """Highest max_projects an administrator may configure for the role."""
    if role in _MEMBER_ROLES:
        return config.MEMBER_MAX_PROJECTS_LIMIT
    if role in _MANAGER_ROLES:
        return config.PM_MAX_PROJECTS_LIMIT
    return 0


def validate_max_projects(role: str, value: int) -> Optional[str]:
    """
    Check a requested max_projects against the role ceiling.

    Returns:
        None when valid, otherwise the error message to show
    """
    ceiling = max_projects_ceiling(role)
    if value < 0:
        return "Max projects cannot be negative"
    if value > ceiling:
        if role in _MEMBER_ROLES:
            return f"Team members can have at most {ceiling} concurrent projects"
        if role in _MANAGER_ROLES:
            return f"Project managers can have at most {ceiling} concurrent projects"
        return f"Role {role} cannot be assigned to projects"
    return None


# ============================================================================
# Capacity check
# ============================================================================

@dataclass(frozen=True)
class CapacityCheck:
    allowed: bool
    available_slots: int
    max_projects: int
    current: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "availableSlots": self.available_slots,
            "maxProjects": self.max_projects,
            "current": self.current,
        }


def can_assign(
    max_projects: int,
    assignment: str,
    current_active_count: int,
) -> CapacityCheck:
    """
    Decide whether one more assignment fits.

    Args:
        max_projects: User's stored ceiling (used for "project" assignments)
        assignment: "project" or "team_leader"
        current_active_count: Active projects already counted for this assignment kind

    Returns:
        CapacityCheck. For "team_leader" the ceiling is TEAM_LEADER_MAX_PROJECTS
        regardless of max_projects.
    """
    if assignment == ASSIGNMENT_TEAM_LEADER:
        ceiling = TEAM_LEADER_MAX_PROJECTS
    elif assignment == ASSIGNMENT_PROJECT:
        ceiling = int(max_projects or 0)
    else:
        raise ValueError(f"Unknown assignment kind: {assignment}")

    current = int(current_active_count or 0)
    return CapacityCheck(
        allowed=current < ceiling,
        available_slots=max(0, ceiling - current),
        max_projects=ceiling,
        current=current,
    )


def utilization_percentage(active: int, max_projects: int) -> Decimal:
    """Share of capacity in use, one decimal; 0 when the user has no capacity."""
    if not max_projects or max_projects <= 0:
        return round_percentage(ZERO)
    return round_percentage(Decimal(active) / Decimal(max_projects) * HUNDRED)
