"""
projecthub/schemas_budget.py

Pydantic schemas for the budget endpoints.
Request bodies use the web client's camelCase keys; Python code reads snake_case.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from projecthub.budget import MAX_AMOUNT
from projecthub.models import Currency


class BudgetUpdateRequest(BaseModel):
    """Partial update; omitted fields are left unchanged."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    planned: Optional[Decimal] = Field(None, ge=0, le=MAX_AMOUNT, description="Planned budget amount")
    spent: Optional[Decimal] = Field(None, ge=0, le=MAX_AMOUNT, description="Overwrite the spent total (recorded as an adjustment)")
    currency: Optional[Currency] = Field(None, description="Display currency")
    alert_threshold: Optional[int] = Field(None, alias="alertThreshold", ge=0, le=100)

    def changes(self) -> dict:
        return {
            "planned": self.planned,
            "spent": self.spent,
            "currency": self.currency,
            "alert_threshold": self.alert_threshold,
        }


class ExpenseCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    project_id: int = Field(..., alias="projectId")
    amount: Decimal = Field(..., ge=Decimal("0.01"), le=MAX_AMOUNT, description="Amount spent, at least 0.01")
    description: Optional[str] = Field(None, max_length=500)
    currency: Optional[Currency] = Field(None, description="Must match the project currency when given")

    @field_validator("description", mode="before")
    @classmethod
    def trim_description(cls, v):
        if isinstance(v, str):
            return v.strip() or None
        return v


class ExpenseReverseRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)
