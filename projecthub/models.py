from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from projecthub.budget import BudgetStatus, compute_budget_status, from_minor_units


# Enums
class UserRole(str, Enum):
    super_admin = "super_admin"
    admin = "admin"
    project_manager = "project_manager"
    team_leader = "team_leader"
    member = "member"
    client = "client"
    guest = "guest"


ADMIN_ROLES = {UserRole.super_admin.value, UserRole.admin.value}
MANAGER_ROLES = {UserRole.project_manager.value} | ADMIN_ROLES
# Roles that can be staffed on a project as team leader or member
ASSIGNABLE_ROLES = {UserRole.member.value, UserRole.team_leader.value}


class ProjectStatus(str, Enum):
    planning = "planning"
    active = "active"
    on_hold = "on_hold"
    completed = "completed"
    cancelled = "cancelled"


class ProjectPriority(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"
    urgent = "urgent"


class Currency(str, Enum):
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"
    INR = "INR"
    LKR = "LKR"
    AUD = "AUD"
    CAD = "CAD"


class ExpenseKind(str, Enum):
    expense = "expense"
    adjustment = "adjustment"
    reversal = "reversal"


# Models
class User(BaseModel):
    id: Optional[int] = None
    organization_id: int
    email: str
    password_hash: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: UserRole = UserRole.member
    max_projects: int = 4
    is_active: bool = True
    created_at: Optional[str] = None

    @property
    def name(self) -> str:
        full = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return full or self.email

    def public_dict(self) -> Dict[str, Any]:
        return {
            "_id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role.value,
            "isActive": self.is_active,
            "capacity": {"maxProjects": self.max_projects},
        }


class ProjectBudget(BaseModel):
    """Budget columns embedded in the project row; amounts in minor units."""
    planned_cents: int = 0
    spent_cents: int = 0
    currency: Currency = Currency.USD
    alert_threshold: int = Field(80, ge=0, le=100)
    version: int = 0

    def status(self) -> BudgetStatus:
        return compute_budget_status(
            from_minor_units(self.planned_cents),
            from_minor_units(self.spent_cents),
            self.alert_threshold,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "planned": float(from_minor_units(self.planned_cents)),
            "spent": float(from_minor_units(self.spent_cents)),
            "currency": self.currency.value,
            "alertThreshold": self.alert_threshold,
            "version": self.version,
        }


class Project(BaseModel):
    id: int
    organization_id: int
    name: str
    description: Optional[str] = None
    manager_id: int
    team_leader_id: Optional[int] = None
    status: ProjectStatus = ProjectStatus.planning
    priority: ProjectPriority = ProjectPriority.medium
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    is_archived: bool = False
    budget: ProjectBudget = Field(default_factory=ProjectBudget)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Project":
        """Build from a projects table row (flat budget_* columns)."""
        return cls(
            id=row["id"],
            organization_id=row["organization_id"],
            name=row["name"],
            description=row.get("description"),
            manager_id=row["manager_id"],
            team_leader_id=row.get("team_leader_id"),
            status=row.get("status") or ProjectStatus.planning.value,
            priority=row.get("priority") or ProjectPriority.medium.value,
            start_date=row.get("start_date"),
            end_date=row.get("end_date"),
            is_archived=bool(row.get("is_archived")),
            budget=ProjectBudget(
                planned_cents=row.get("budget_planned_cents") or 0,
                spent_cents=row.get("budget_spent_cents") or 0,
                currency=row.get("budget_currency") or Currency.USD.value,
                alert_threshold=row["budget_alert_threshold"] if row.get("budget_alert_threshold") is not None else 80,
                version=row.get("budget_version") or 0,
            ),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    def summary(self) -> Dict[str, Any]:
        return {
            "_id": self.id,
            "name": self.name,
            "status": self.status.value,
            "managerId": self.manager_id,
            "teamLeaderId": self.team_leader_id,
        }


class ExpenseEntry(BaseModel):
    id: int
    organization_id: int
    project_id: int
    kind: ExpenseKind
    amount_cents: int
    description: Optional[str] = None
    actor_id: Optional[int] = None
    reverses_id: Optional[int] = None
    idempotency_key: Optional[str] = None
    created_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "_id": self.id,
            "projectId": self.project_id,
            "kind": self.kind.value,
            "amount": float(from_minor_units(self.amount_cents)),
            "description": self.description,
            "actorId": self.actor_id,
            "reversesId": self.reverses_id,
            "date": self.created_at,
        }
