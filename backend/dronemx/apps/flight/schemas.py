from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from .models import PilotReportSeverityEnum, PilotReportStatusEnum


class PilotReportCreate(BaseModel):
    aircraft_id: str
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    severity: PilotReportSeverityEnum = PilotReportSeverityEnum.MEDIUM
    is_aog: bool = False
    reported_by_user_id: Optional[str] = None
    reported_at: Optional[datetime] = None


class PilotReportRead(BaseModel):
    id: str
    aircraft_id: str
    title: str
    description: Optional[str] = None
    severity: PilotReportSeverityEnum
    status: PilotReportStatusEnum
    is_aog: bool
    reported_at: datetime
    resolved_at: Optional[datetime] = None
    resolution_notes: Optional[str] = None

    class Config:
        from_attributes = True
