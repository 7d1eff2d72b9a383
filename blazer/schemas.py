"""Pydantic request/response schemas for the TrueBlazer venture API."""
from __future__ import annotations

from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from blazer.utils import as_utc


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------------
# Ventures
# ---------------------------------------------------------------------------


class VentureOut(BaseModel):
    id: str
    user_id: str
    idea_id: str | None = None
    name: str
    status: str
    venture_state: str
    commitment_window_days: int | None = None
    commitment_start_at: str | None = None
    commitment_end_at: str | None = None
    success_metric: str | None = None
    metadata: dict[str, Any] = {}
    version: int
    created_at: str | None = None
    updated_at: str | None = None


class CommitmentIn(BaseModel):
    commitment_window_days: int | None = None
    commitment_start_at: datetime | None = None
    commitment_end_at: datetime | None = None
    success_metric: str | None = None

    @field_validator("commitment_start_at", "commitment_end_at")
    @classmethod
    def to_utc(cls, v: datetime | None) -> datetime | None:
        return as_utc(v)


class TransitionRequest(_CamelModel):
    target_state: str = Field(alias="targetState")
    commitment: CommitmentIn | None = Field(None, alias="commitmentData")


class TransitionResponse(BaseModel):
    success: bool
    venture: VentureOut


class DecisionRequest(_CamelModel):
    """Body of ``POST venture-review-decision``; fields are checked by the handler."""
    venture_id: str | None = Field(None, alias="ventureId")
    action: str | None = None
    reason: str | None = None


class DecisionResponse(BaseModel):
    success: bool
    venture: VentureOut
    action: str


class ErrorOut(BaseModel):
    error: str
    code: str


class PermissionsOut(BaseModel):
    can_generate_tasks: bool
    can_generate_execution_advice: bool
    can_edit_idea_fundamentals: bool
    can_access_ideation_tools: bool


class GuardsOut(BaseModel):
    task_generation: str | None = None
    execution_advice: str | None = None
    idea_edit: str | None = None
    ideation_access: str | None = None


class VentureStateOut(BaseModel):
    active_venture: VentureOut | None = None
    venture_state: str
    permissions: PermissionsOut
    guards: GuardsOut


# ---------------------------------------------------------------------------
# Ideas
# ---------------------------------------------------------------------------


class IdeaCreate(BaseModel):
    title: str
    description: str = ""

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("title must not be blank")
        return v


class IdeaUpdate(BaseModel):
    title: str | None = None
    description: str | None = None


class IdeaOut(BaseModel):
    id: str
    user_id: str
    title: str
    description: str
    status: str


class NorthStarOut(BaseModel):
    idea_id: str | None = None
    idea_title: str | None = None
    venture: VentureOut | None = None
    needs_repair: bool = False


class NorthStarRepairOut(BaseModel):
    idea_id: str
    venture: VentureOut
    venture_created: bool


# ---------------------------------------------------------------------------
# Execution tracking
# ---------------------------------------------------------------------------


class DailyTaskItem(BaseModel):
    title: str
    completed: bool = False


class DailyTasksCreate(BaseModel):
    task_date: date | None = None
    tasks: list[str] = Field(min_length=1)


class DailyTasksOut(BaseModel):
    venture_id: str
    task_date: date
    tasks: list[DailyTaskItem]


class CheckinCreate(BaseModel):
    checkin_date: date | None = None
    completion_status: Literal["yes", "partial", "no"]
    explanation: str | None = None
    reflection: str | None = None


class CheckinOut(BaseModel):
    id: int
    checkin_date: date
    completion_status: str
    explanation: str | None = None
    reflection: str | None = None


class ReviewStatsOut(BaseModel):
    total_days: int
    days_with_tasks: int
    total_tasks: int
    tasks_completed: int
    completion_rate: float
    checkin_days: int
    checkin_rate: float
    yes_count: int
    partial_count: int
    no_count: int
    recent_checkins: list[CheckinOut] = []


# ---------------------------------------------------------------------------
# Navigation
# ---------------------------------------------------------------------------


class NavigationOut(BaseModel):
    path: str
    venture_state: str | None = None
    allowed: bool
    is_ideation: bool
    redirect_to: str
    locked_message: str | None = None
    allowed_sections: list[str]
    hidden_sections: list[str]
