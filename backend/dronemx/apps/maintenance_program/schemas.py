from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from ..accounts.models import UserRoleEnum
from ..fleet.models import ComponentTypeEnum
from .models import PriorityEnum, ScheduleStatusEnum, TriggerTypeEnum


# ---------------- PROGRAMS / TRIGGERS ----------------


class TriggerCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    trigger_type: TriggerTypeEnum
    interval_value: float = Field(gt=0)
    anchor_date: Optional[date] = None
    applicable_component_type: Optional[ComponentTypeEnum] = None
    applicable_location: Optional[str] = None
    priority: PriorityEnum = PriorityEnum.MEDIUM
    required_role: UserRoleEnum = UserRoleEnum.MECHANIC
    is_rii: bool = False
    is_active: bool = True


class ProgramCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    aircraft_model: str = Field(min_length=1, max_length=100)
    description: Optional[str] = None
    is_default: bool = False
    triggers: List[TriggerCreate] = Field(default_factory=list)


class TriggerRead(BaseModel):
    id: str
    program_id: str
    name: str
    trigger_type: TriggerTypeEnum
    interval_value: float
    anchor_date: Optional[date] = None
    applicable_component_type: Optional[ComponentTypeEnum] = None
    applicable_location: Optional[str] = None
    priority: PriorityEnum
    required_role: UserRoleEnum
    is_rii: bool
    is_active: bool

    class Config:
        from_attributes = True


# ---------------- SCHEDULES ----------------


class ScheduleRead(BaseModel):
    id: str
    aircraft_id: str
    trigger_id: str
    program_id: str
    status: ScheduleStatusEnum
    due_date: Optional[datetime] = None
    due_at_value: Optional[float] = None
    last_completed_at: Optional[datetime] = None
    last_completed_at_value: Optional[float] = None
    tracked_component_id: Optional[str] = None
    assigned_to_user_id: Optional[str] = None
    work_order_id: Optional[str] = None
    skip_reason: Optional[str] = None
    is_active: bool

    class Config:
        from_attributes = True


class DueScheduleRead(BaseModel):
    """One row of the due list, projected at `as_of`; nothing is persisted."""

    schedule_id: str
    aircraft_id: str
    trigger_id: str
    trigger_name: str
    trigger_type: TriggerTypeEnum
    priority: PriorityEnum
    is_rii: bool
    status: ScheduleStatusEnum
    due_date: Optional[datetime] = None
    due_at_value: Optional[float] = None
    current_value: Optional[float] = None
    remaining_value: Optional[float] = None
    remaining_days: Optional[int] = None
    percentage_used: Optional[float] = None
    tracked_component_id: Optional[str] = None
    work_order_id: Optional[str] = None
    as_of: datetime
