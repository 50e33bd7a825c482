"""
Pydantic schemas for the fleet app.

Scope:
- Aircraft and component master data.
- Installation segments and a component's full history.
- Usage ledger entries.
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .models import AircraftStatusEnum, ComponentStatusEnum, ComponentTypeEnum


# ---------------- AIRCRAFT ----------------


class AircraftCreate(BaseModel):
    registration_number: str = Field(min_length=1, max_length=32)
    serial_number: str = Field(min_length=1, max_length=64)
    model: str = Field(min_length=1, max_length=100)
    manufacturer: Optional[str] = None
    total_flight_hours: float = Field(default=0.0, ge=0)
    total_flight_cycles: int = Field(default=0, ge=0)


class AircraftRead(BaseModel):
    id: str
    registration_number: str
    serial_number: str
    model: str
    manufacturer: Optional[str] = None
    status: AircraftStatusEnum
    total_flight_hours: float
    total_flight_cycles: int
    last_flight_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ---------------- COMPONENTS ----------------


class ComponentCreate(BaseModel):
    """
    A new component. Opening totals let parts with prior service history
    (e.g. a used motor bought in) enter the ledger with their real usage.
    """

    serial_number: str = Field(min_length=1, max_length=64)
    part_number: str = Field(min_length=1, max_length=64)
    component_type: ComponentTypeEnum
    manufacturer: Optional[str] = None
    description: Optional[str] = None

    total_flight_hours: float = Field(default=0.0, ge=0)
    total_flight_cycles: int = Field(default=0, ge=0)
    battery_cycles: int = Field(default=0, ge=0)

    is_life_limited: bool = False
    max_flight_hours: Optional[float] = Field(default=None, gt=0)
    max_cycles: Optional[int] = Field(default=None, gt=0)


class ComponentRead(BaseModel):
    id: str
    serial_number: str
    part_number: str
    component_type: ComponentTypeEnum
    manufacturer: Optional[str] = None
    total_flight_hours: float
    total_flight_cycles: int
    battery_cycles: int
    is_life_limited: bool
    max_flight_hours: Optional[float] = None
    max_cycles: Optional[int] = None
    status: ComponentStatusEnum
    is_airworthy: bool

    class Config:
        from_attributes = True


# ---------------- INSTALLATION SEGMENTS ----------------


class InstallationRead(BaseModel):
    id: str
    component_id: str
    aircraft_id: str
    location: str
    inherited_flight_hours: float
    inherited_flight_cycles: int
    inherited_battery_cycles: int
    accumulated_flight_hours: float
    accumulated_flight_cycles: int
    accumulated_battery_cycles: int
    installed_at: datetime
    installed_by_user_id: Optional[str] = None
    install_notes: Optional[str] = None
    removed_at: Optional[datetime] = None
    removed_by_user_id: Optional[str] = None
    remove_notes: Optional[str] = None

    class Config:
        from_attributes = True


class UsageTotals(BaseModel):
    flight_hours: float = 0.0
    flight_cycles: int = 0
    battery_cycles: int = 0


class ComponentHistoryRead(BaseModel):
    component: ComponentRead
    current_installation: Optional[InstallationRead] = None
    segments: List[InstallationRead] = Field(default_factory=list)
    totals_from_segments: UsageTotals
    is_consistent: bool


# ---------------- USAGE ----------------


class UsageEntryRead(BaseModel):
    id: str
    aircraft_id: str
    occurred_at: datetime
    flight_hours: float
    flight_cycles: int
    battery_cycles_by_location: Optional[Dict[str, int]] = None
    total_flight_hours_after: float
    total_flight_cycles_after: int
    source_reference: Optional[str] = None

    class Config:
        from_attributes = True
