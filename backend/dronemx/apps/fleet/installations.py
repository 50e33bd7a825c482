# backend/dronemx/apps/fleet/installations.py
#
# Installation ledger.
#
# A component's whereabouts are an append-only chain of installation
# segments. Installing opens a segment and snapshots the component's
# lifetime totals into it; removing closes it. Closed segments are frozen
# (see models._guard_closed_segment) apart from notes.
#
# Conservation: first segment's inherited totals plus every segment's
# accumulated usage equals the component's lifetime totals.

from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from ...database import unit_of_work
from ...errors import ConflictError, NotFoundError, TemporalError, ValidationError
from ...utils.timeutils import as_utc, utcnow
from ..audit import services as audit_services
from ..maintenance_program import service as schedule_service
from . import models, schemas
from . import services as fleet_services

logger = logging.getLogger(__name__)

_HOURS_TOLERANCE = 1e-6


def _segment_payload(segment: models.ComponentInstallation) -> dict:
    return {
        "component_id": segment.component_id,
        "aircraft_id": segment.aircraft_id,
        "location": segment.location,
        "installed_at": segment.installed_at,
        "removed_at": segment.removed_at,
        "inherited_flight_hours": segment.inherited_flight_hours,
        "inherited_flight_cycles": segment.inherited_flight_cycles,
        "inherited_battery_cycles": segment.inherited_battery_cycles,
        "accumulated_flight_hours": segment.accumulated_flight_hours,
        "accumulated_flight_cycles": segment.accumulated_flight_cycles,
        "accumulated_battery_cycles": segment.accumulated_battery_cycles,
    }


def _last_removal(db: Session, component_id: str) -> Optional[datetime]:
    segment = (
        db.query(models.ComponentInstallation)
        .filter(
            models.ComponentInstallation.component_id == component_id,
            models.ComponentInstallation.removed_at.isnot(None),
        )
        .order_by(models.ComponentInstallation.removed_at.desc())
        .first()
    )
    return as_utc(segment.removed_at) if segment else None


def _normalise_location(location: Optional[str]) -> str:
    cleaned = (location or "").strip()
    if not cleaned:
        raise ValidationError(
            "Installation location is required.",
            entity_type="component_installation",
            field="location",
        )
    return cleaned


def _install(
    db: Session,
    aircraft: models.Aircraft,
    component: models.Component,
    *,
    location: str,
    at: datetime,
    installed_by_user_id: Optional[str],
    notes: Optional[str],
) -> models.ComponentInstallation:
    if component.is_terminal:
        raise ValidationError(
            f"Component {component.serial_number} is {component.status.value} and cannot be installed.",
            entity_type="component",
            entity_id=component.id,
            field="status",
        )
    if not component.is_airworthy:
        raise ValidationError(
            f"Component {component.serial_number} is flagged not airworthy.",
            entity_type="component",
            entity_id=component.id,
            field="is_airworthy",
        )
    if aircraft.status == models.AircraftStatusEnum.RETIRED:
        raise ValidationError(
            f"Aircraft {aircraft.registration_number} is retired.",
            entity_type="aircraft",
            entity_id=aircraft.id,
            field="status",
        )

    current = fleet_services._current_segment(db, component.id)
    if current is not None:
        raise ConflictError(
            f"Component {component.serial_number} is already installed on aircraft {current.aircraft_id}.",
            entity_type="component",
            entity_id=component.id,
            field="component_id",
        )
    occupant = (
        db.query(models.ComponentInstallation)
        .filter(
            models.ComponentInstallation.aircraft_id == aircraft.id,
            models.ComponentInstallation.location == location,
            models.ComponentInstallation.removed_at.is_(None),
        )
        .one_or_none()
    )
    if occupant is not None:
        raise ConflictError(
            f"Location {location} on {aircraft.registration_number} holds component {occupant.component_id}.",
            entity_type="aircraft",
            entity_id=aircraft.id,
            field="location",
        )

    last_removed = _last_removal(db, component.id)
    if last_removed is not None and at < last_removed:
        raise TemporalError(
            "Installation precedes the component's last removal.",
            entity_type="component",
            entity_id=component.id,
            field="at",
        )

    segment = models.ComponentInstallation(
        component_id=component.id,
        aircraft_id=aircraft.id,
        location=location,
        inherited_flight_hours=component.total_flight_hours or 0.0,
        inherited_flight_cycles=component.total_flight_cycles or 0,
        inherited_battery_cycles=component.battery_cycles or 0,
        accumulated_flight_hours=0.0,
        accumulated_flight_cycles=0,
        accumulated_battery_cycles=0,
        installed_at=at,
        installed_by_user_id=installed_by_user_id,
        install_notes=notes,
    )
    db.add(segment)
    component.status = models.ComponentStatusEnum.IN_USE
    db.flush()

    audit_services.log_event(
        db,
        actor_user_id=installed_by_user_id,
        entity_type="component_installation",
        entity_id=segment.id,
        action="install",
        after=_segment_payload(segment),
        occurred_at=at,
        critical=True,
    )
    logger.info(
        "Component installed",
        extra={"component_id": component.id, "aircraft_id": aircraft.id, "location": location},
    )
    schedule_service.refresh_aircraft_schedules(db, aircraft.id, now=at)
    return segment


def _remove(
    db: Session,
    segment: models.ComponentInstallation,
    *,
    at: datetime,
    removed_by_user_id: Optional[str],
    notes: Optional[str],
) -> models.ComponentInstallation:
    if at < as_utc(segment.installed_at):
        raise TemporalError(
            "Removal precedes installation.",
            entity_type="component_installation",
            entity_id=segment.id,
            field="at",
        )
    before = _segment_payload(segment)
    segment.removed_at = at
    segment.removed_by_user_id = removed_by_user_id
    segment.remove_notes = notes
    db.flush()

    audit_services.log_event(
        db,
        actor_user_id=removed_by_user_id,
        entity_type="component_installation",
        entity_id=segment.id,
        action="remove",
        before=before,
        after=_segment_payload(segment),
        occurred_at=at,
        critical=True,
    )
    logger.info(
        "Component removed",
        extra={"component_id": segment.component_id, "aircraft_id": segment.aircraft_id, "location": segment.location},
    )
    schedule_service.refresh_aircraft_schedules(db, segment.aircraft_id, now=at)
    return segment


def _open_segment_or_404(db: Session, component_id: str) -> models.ComponentInstallation:
    segment = fleet_services._current_segment(db, component_id)
    if segment is None:
        raise NotFoundError(
            f"Component {component_id} is not installed.",
            entity_type="component",
            entity_id=component_id,
            field="component_id",
        )
    return segment


# ---------------------------------------------------------------------------
# Public operations
# ---------------------------------------------------------------------------


def install(
    db: Session,
    *,
    component_id: str,
    aircraft_id: str,
    location: str,
    at: Optional[datetime] = None,
    installed_by_user_id: Optional[str] = None,
    notes: Optional[str] = None,
) -> models.ComponentInstallation:
    location = _normalise_location(location)
    at = as_utc(at) or utcnow()
    with unit_of_work(db, operation="install_component"):
        aircraft = fleet_services.lock_aircraft(db, aircraft_id)
        component = fleet_services.lock_component(db, component_id)
        segment = _install(
            db,
            aircraft,
            component,
            location=location,
            at=at,
            installed_by_user_id=installed_by_user_id,
            notes=notes,
        )
    return segment


def remove(
    db: Session,
    *,
    component_id: str,
    at: Optional[datetime] = None,
    removed_by_user_id: Optional[str] = None,
    notes: Optional[str] = None,
) -> models.ComponentInstallation:
    """Close the component's open segment. Its status is left as it was."""
    at = as_utc(at) or utcnow()
    with unit_of_work(db, operation="remove_component"):
        aircraft_id = _open_segment_or_404(db, component_id).aircraft_id
        fleet_services.lock_aircraft(db, aircraft_id)
        fleet_services.lock_component(db, component_id)
        segment = _open_segment_or_404(db, component_id)
        _remove(db, segment, at=at, removed_by_user_id=removed_by_user_id, notes=notes)
    return segment


def transfer(
    db: Session,
    *,
    component_id: str,
    to_aircraft_id: str,
    location: str,
    at: Optional[datetime] = None,
    moved_by_user_id: Optional[str] = None,
    notes: Optional[str] = None,
) -> models.ComponentInstallation:
    """Remove and reinstall in one transaction; either both happen or neither."""
    location = _normalise_location(location)
    at = as_utc(at) or utcnow()
    with unit_of_work(db, operation="transfer_component"):
        from_aircraft_id = _open_segment_or_404(db, component_id).aircraft_id
        locked = {
            aircraft_id: fleet_services.lock_aircraft(db, aircraft_id)
            for aircraft_id in sorted({from_aircraft_id, to_aircraft_id})
        }
        component = fleet_services.lock_component(db, component_id)
        _remove(
            db,
            _open_segment_or_404(db, component_id),
            at=at,
            removed_by_user_id=moved_by_user_id,
            notes=notes,
        )
        segment = _install(
            db,
            locked[to_aircraft_id],
            component,
            location=location,
            at=at,
            installed_by_user_id=moved_by_user_id,
            notes=notes,
        )
    return segment


def annotate_segment(
    db: Session,
    segment_id: str,
    *,
    install_notes: Optional[str] = None,
    remove_notes: Optional[str] = None,
    actor_user_id: Optional[str] = None,
) -> models.ComponentInstallation:
    with unit_of_work(db, operation="annotate_segment"):
        segment = db.get(models.ComponentInstallation, segment_id)
        if segment is None:
            raise NotFoundError(
                f"Installation segment {segment_id} not found.",
                entity_type="component_installation",
                entity_id=segment_id,
            )
        before = {"install_notes": segment.install_notes, "remove_notes": segment.remove_notes}
        if install_notes is not None:
            segment.install_notes = install_notes
        if remove_notes is not None:
            segment.remove_notes = remove_notes
        audit_services.log_event(
            db,
            actor_user_id=actor_user_id,
            entity_type="component_installation",
            entity_id=segment.id,
            action="annotate",
            before=before,
            after={"install_notes": segment.install_notes, "remove_notes": segment.remove_notes},
        )
    return segment


# ---------------------------------------------------------------------------
# Read queries
# ---------------------------------------------------------------------------


def current_installation(db: Session, component_id: str) -> Optional[models.ComponentInstallation]:
    return fleet_services._current_segment(db, component_id)


def history(db: Session, component_id: str) -> List[models.ComponentInstallation]:
    fleet_services.get_component(db, component_id)
    return (
        db.query(models.ComponentInstallation)
        .filter(models.ComponentInstallation.component_id == component_id)
        .order_by(models.ComponentInstallation.installed_at.asc(), models.ComponentInstallation.id.asc())
        .all()
    )


def lifetime_from_segments(segments: Iterable[models.ComponentInstallation]) -> schemas.UsageTotals:
    ordered = list(segments)
    if not ordered:
        return schemas.UsageTotals()
    first = ordered[0]
    return schemas.UsageTotals(
        flight_hours=(first.inherited_flight_hours or 0.0)
        + sum(segment.accumulated_flight_hours or 0.0 for segment in ordered),
        flight_cycles=(first.inherited_flight_cycles or 0)
        + sum(segment.accumulated_flight_cycles or 0 for segment in ordered),
        battery_cycles=(first.inherited_battery_cycles or 0)
        + sum(segment.accumulated_battery_cycles or 0 for segment in ordered),
    )


def _chain_is_consistent(segments: List[models.ComponentInstallation]) -> bool:
    for previous, current in zip(segments, segments[1:]):
        if previous.removed_at is None:
            return False
        if not math.isclose(
            current.inherited_flight_hours,
            previous.inherited_flight_hours + previous.accumulated_flight_hours,
            abs_tol=_HOURS_TOLERANCE,
        ):
            return False
        if current.inherited_flight_cycles != previous.inherited_flight_cycles + previous.accumulated_flight_cycles:
            return False
        if current.inherited_battery_cycles != previous.inherited_battery_cycles + previous.accumulated_battery_cycles:
            return False
    return True


def component_history(db: Session, component_id: str) -> schemas.ComponentHistoryRead:
    component = fleet_services.get_component(db, component_id)
    segments = history(db, component_id)
    current = next((segment for segment in segments if segment.removed_at is None), None)

    if segments:
        totals = lifetime_from_segments(segments)
        consistent = (
            _chain_is_consistent(segments)
            and math.isclose(totals.flight_hours, component.total_flight_hours or 0.0, abs_tol=_HOURS_TOLERANCE)
            and totals.flight_cycles == (component.total_flight_cycles or 0)
            and totals.battery_cycles == (component.battery_cycles or 0)
        )
    else:
        totals = schemas.UsageTotals(
            flight_hours=component.total_flight_hours or 0.0,
            flight_cycles=component.total_flight_cycles or 0,
            battery_cycles=component.battery_cycles or 0,
        )
        consistent = True

    return schemas.ComponentHistoryRead(
        component=schemas.ComponentRead.model_validate(component),
        current_installation=schemas.InstallationRead.model_validate(current) if current else None,
        segments=[schemas.InstallationRead.model_validate(segment) for segment in segments],
        totals_from_segments=totals,
        is_consistent=consistent,
    )
