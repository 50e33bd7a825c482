# backend/dronemx/apps/crs/schemas.py

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from .models import ReleaseScopeEnum, ReleaseStatusEnum


class ReleaseCreate(BaseModel):
    """
    Request to certify an aircraft (or one completed work order) for service.

    `conditions` is mandatory when the aircraft projects as CONDITIONAL and
    is recorded verbatim on the certificate.
    """

    aircraft_id: str
    released_by_user_id: str
    maintenance_carried_out: str = Field(min_length=1)
    work_order_id: Optional[str] = None
    conditions: Optional[str] = None


class ReleaseRead(BaseModel):
    id: str
    release_serial: str
    aircraft_id: str
    work_order_id: Optional[str] = None
    scope: ReleaseScopeEnum
    status: ReleaseStatusEnum
    maintenance_carried_out: str
    conditions: Optional[str] = None
    aircraft_flight_hours: float
    aircraft_flight_cycles: int
    released_by_user_id: str
    issued_at: datetime
    signature_hash: str
    is_valid: bool
    superseded_by_id: Optional[str] = None
    superseded_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ReleaseCheck(BaseModel):
    """Pre-issue diagnostics: blockers stop issue, warnings are informational."""

    can_issue: bool
    blockers: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
