# backend/dronemx/apps/fleet/usage.py
#
# Usage accumulator: applies a flight-usage delta to an aircraft, every open
# installation segment on it and each mounted component, records a ledger
# entry, then re-evaluates the aircraft's maintenance schedules. All of it
# commits together or not at all.

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Mapping, Optional

from sqlalchemy.orm import Session

from ...database import unit_of_work
from ...errors import TemporalError, ValidationError
from ...utils.timeutils import as_utc, utcnow
from ..maintenance_program import service as schedule_service
from . import models
from . import services as fleet_services

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UsageDelta:
    """Usage flown since the last report. Battery cycles are keyed by location."""

    hours: float = 0.0
    cycles: int = 0
    battery_cycles_by_location: Mapping[str, int] = field(default_factory=dict)


def _validate_delta(delta: UsageDelta) -> Dict[str, int]:
    if delta.hours is None or not math.isfinite(delta.hours) or delta.hours < 0:
        raise ValidationError(
            "Flight hours must be a finite, non-negative number.", entity_type="usage", field="hours"
        )
    if delta.cycles is None or not math.isfinite(delta.cycles) or delta.cycles < 0:
        raise ValidationError(
            "Flight cycles must be a finite, non-negative number.", entity_type="usage", field="cycles"
        )
    battery: Dict[str, int] = {}
    for location, count in (delta.battery_cycles_by_location or {}).items():
        key = (location or "").strip()
        if not key:
            raise ValidationError(
                "Battery location is required.",
                entity_type="usage",
                field="battery_cycles_by_location",
            )
        if count is None or not math.isfinite(count) or count < 0:
            raise ValidationError(
                f"Battery cycles for {key} cannot be negative.",
                entity_type="usage",
                field="battery_cycles_by_location",
            )
        battery[key] = int(count)
    return battery


def apply_usage(
    db: Session,
    *,
    aircraft_id: str,
    delta: UsageDelta,
    at: Optional[datetime] = None,
    recorded_by_user_id: Optional[str] = None,
    source_reference: Optional[str] = None,
) -> models.AircraftUsageEntry:
    battery = _validate_delta(delta)
    at = as_utc(at) or utcnow()

    with unit_of_work(db, operation="apply_usage"):
        aircraft = fleet_services.lock_aircraft(db, aircraft_id)
        if aircraft.status == models.AircraftStatusEnum.RETIRED:
            raise ValidationError(
                f"Aircraft {aircraft.registration_number} is retired.",
                entity_type="aircraft",
                entity_id=aircraft.id,
                field="status",
            )

        segments = fleet_services.open_installations_for_aircraft(db, aircraft.id)
        fleet_services.lock_components(db, [segment.component_id for segment in segments])

        for segment in segments:
            if at < as_utc(segment.installed_at):
                raise TemporalError(
                    "Usage is dated before a mounted component's installation.",
                    entity_type="component_installation",
                    entity_id=segment.id,
                    field="at",
                )

        by_location = {segment.location: segment for segment in segments}
        for location in battery:
            segment = by_location.get(location)
            if segment is None or segment.component.component_type != models.ComponentTypeEnum.BATTERY:
                raise ValidationError(
                    f"No battery installed at {location}.",
                    entity_type="aircraft",
                    entity_id=aircraft.id,
                    field="battery_cycles_by_location",
                )

        hours = float(delta.hours)
        cycles = int(delta.cycles)

        aircraft.total_flight_hours = (aircraft.total_flight_hours or 0.0) + hours
        aircraft.total_flight_cycles = (aircraft.total_flight_cycles or 0) + cycles
        if aircraft.last_flight_at is None or at > as_utc(aircraft.last_flight_at):
            aircraft.last_flight_at = at

        for segment in segments:
            component = segment.component
            battery_cycles = battery.get(segment.location, 0)
            segment.accumulated_flight_hours = (segment.accumulated_flight_hours or 0.0) + hours
            segment.accumulated_flight_cycles = (segment.accumulated_flight_cycles or 0) + cycles
            segment.accumulated_battery_cycles = (segment.accumulated_battery_cycles or 0) + battery_cycles
            component.total_flight_hours = (component.total_flight_hours or 0.0) + hours
            component.total_flight_cycles = (component.total_flight_cycles or 0) + cycles
            component.battery_cycles = (component.battery_cycles or 0) + battery_cycles

        entry = models.AircraftUsageEntry(
            aircraft_id=aircraft.id,
            occurred_at=at,
            flight_hours=hours,
            flight_cycles=cycles,
            battery_cycles_by_location=battery or None,
            total_flight_hours_after=aircraft.total_flight_hours,
            total_flight_cycles_after=aircraft.total_flight_cycles,
            recorded_by_user_id=recorded_by_user_id,
            source_reference=source_reference,
        )
        db.add(entry)
        db.flush()

        schedule_service.refresh_aircraft_schedules(db, aircraft.id, now=at)

    logger.info(
        "Usage applied",
        extra={
            "aircraft_id": aircraft_id,
            "flight_hours": hours,
            "flight_cycles": cycles,
            "components": len(segments),
        },
    )
    return entry


def usage_entries(db: Session, aircraft_id: str) -> list[models.AircraftUsageEntry]:
    fleet_services.get_aircraft(db, aircraft_id)
    return (
        db.query(models.AircraftUsageEntry)
        .filter(models.AircraftUsageEntry.aircraft_id == aircraft_id)
        .order_by(models.AircraftUsageEntry.occurred_at.asc(), models.AircraftUsageEntry.id.asc())
        .all()
    )
