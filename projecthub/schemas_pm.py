"""
projecthub/schemas_pm.py

Pydantic schemas for project-manager endpoints (projects and staffing).
"""

from __future__ import annotations

from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from projecthub.budget import MAX_AMOUNT
from projecthub.models import Currency, ProjectPriority, ProjectStatus


class ProjectBudgetInput(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    planned: Decimal = Field(Decimal("0"), ge=0, le=MAX_AMOUNT)
    currency: Currency = Currency.USD
    alert_threshold: int = Field(80, alias="alertThreshold", ge=0, le=100)


class ProjectCreateRequest(BaseModel):
    """New project; the caller becomes its manager. spent always starts at 0."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    status: ProjectStatus = ProjectStatus.planning
    priority: ProjectPriority = ProjectPriority.medium
    start_date: Optional[str] = Field(None, alias="startDate")
    end_date: Optional[str] = Field(None, alias="endDate")
    budget: ProjectBudgetInput = Field(default_factory=ProjectBudgetInput)
    team_leader_id: Optional[int] = Field(None, alias="teamLeader")
    member_ids: List[int] = Field(default_factory=list, alias="teamMembers")

    @field_validator("name", mode="before")
    @classmethod
    def trim_name(cls, v):
        if isinstance(v, str):
            return v.strip()
        return v

    def to_data(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "start_date": self.start_date,
            "end_date": self.end_date,
            "planned": self.budget.planned,
            "currency": self.budget.currency,
            "alert_threshold": self.budget.alert_threshold,
            "team_leader_id": self.team_leader_id,
            "member_ids": self.member_ids,
        }


class ProjectStatusRequest(BaseModel):
    status: ProjectStatus


class TeamLeaderRequest(BaseModel):
    """teamLeaderId null removes the current team leader."""
    model_config = ConfigDict(populate_by_name=True)

    team_leader_id: Optional[int] = Field(..., alias="teamLeaderId")


class MemberAddRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: int = Field(..., alias="userId")
