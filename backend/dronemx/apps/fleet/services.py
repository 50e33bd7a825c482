from __future__ import annotations

import logging
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from ...database import unit_of_work
from ...errors import ConflictError, NotFoundError, ValidationError
from ..audit import services as audit_services
from . import models, schemas

logger = logging.getLogger(__name__)


# Status moves outside install/remove. IN_USE is only reached by installing.
COMPONENT_STATUS_TRANSITIONS = {
    models.ComponentStatusEnum.NEW: {
        models.ComponentStatusEnum.REPAIR,
        models.ComponentStatusEnum.SCRAPPED,
        models.ComponentStatusEnum.LOST,
    },
    models.ComponentStatusEnum.IN_USE: {
        models.ComponentStatusEnum.REPAIR,
        models.ComponentStatusEnum.SCRAPPED,
        models.ComponentStatusEnum.LOST,
    },
    models.ComponentStatusEnum.REPAIR: {
        models.ComponentStatusEnum.SCRAPPED,
        models.ComponentStatusEnum.LOST,
    },
    models.ComponentStatusEnum.SCRAPPED: set(),
    models.ComponentStatusEnum.LOST: set(),
}


# ---------------------------------------------------------------------------
# Lookups and row locks
# ---------------------------------------------------------------------------


def get_aircraft(db: Session, aircraft_id: str) -> models.Aircraft:
    aircraft = db.get(models.Aircraft, aircraft_id)
    if aircraft is None:
        raise NotFoundError(f"Aircraft {aircraft_id} not found.", entity_type="aircraft", entity_id=aircraft_id)
    return aircraft


def get_component(db: Session, component_id: str) -> models.Component:
    component = db.get(models.Component, component_id)
    if component is None:
        raise NotFoundError(f"Component {component_id} not found.", entity_type="component", entity_id=component_id)
    return component


def lock_aircraft(db: Session, aircraft_id: str) -> models.Aircraft:
    """
    SELECT ... FOR UPDATE on one aircraft row.

    Lock order across the package is aircraft first, then components by id.
    """
    aircraft = (
        db.query(models.Aircraft)
        .filter(models.Aircraft.id == aircraft_id)
        .populate_existing()
        .with_for_update()
        .one_or_none()
    )
    if aircraft is None:
        raise NotFoundError(f"Aircraft {aircraft_id} not found.", entity_type="aircraft", entity_id=aircraft_id)
    return aircraft


def lock_components(db: Session, component_ids: Iterable[str]) -> list[models.Component]:
    ids = sorted(set(component_ids))
    if not ids:
        return []
    components = (
        db.query(models.Component)
        .filter(models.Component.id.in_(ids))
        .order_by(models.Component.id.asc())
        .populate_existing()
        .with_for_update()
        .all()
    )
    found = {component.id for component in components}
    missing = [component_id for component_id in ids if component_id not in found]
    if missing:
        raise NotFoundError(f"Component {missing[0]} not found.", entity_type="component", entity_id=missing[0])
    return components


def lock_component(db: Session, component_id: str) -> models.Component:
    return lock_components(db, [component_id])[0]


def open_installations_for_aircraft(db: Session, aircraft_id: str) -> list[models.ComponentInstallation]:
    return (
        db.query(models.ComponentInstallation)
        .filter(
            models.ComponentInstallation.aircraft_id == aircraft_id,
            models.ComponentInstallation.removed_at.is_(None),
        )
        .order_by(models.ComponentInstallation.location.asc())
        .all()
    )


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


def create_aircraft(db: Session, data: schemas.AircraftCreate) -> models.Aircraft:
    with unit_of_work(db, operation="create_aircraft"):
        clash = (
            db.query(models.Aircraft)
            .filter(
                (models.Aircraft.registration_number == data.registration_number)
                | (models.Aircraft.serial_number == data.serial_number)
            )
            .first()
        )
        if clash:
            field = (
                "registration_number"
                if clash.registration_number == data.registration_number
                else "serial_number"
            )
            raise ConflictError(
                f"Aircraft with this {field.replace('_', ' ')} already exists.",
                entity_type="aircraft",
                entity_id=clash.id,
                field=field,
            )
        aircraft = models.Aircraft(**data.model_dump())
        db.add(aircraft)
        db.flush()
    logger.info("Aircraft registered", extra={"aircraft_id": aircraft.id, "registration": aircraft.registration_number})
    return aircraft


def create_component(db: Session, data: schemas.ComponentCreate) -> models.Component:
    if data.is_life_limited and data.max_flight_hours is None and data.max_cycles is None:
        raise ValidationError(
            "Life-limited components need max_flight_hours or max_cycles.",
            entity_type="component",
            field="max_flight_hours",
        )
    if data.battery_cycles and data.component_type != models.ComponentTypeEnum.BATTERY:
        raise ValidationError(
            "Only BATTERY components carry battery cycles.",
            entity_type="component",
            field="battery_cycles",
        )
    with unit_of_work(db, operation="create_component"):
        clash = (
            db.query(models.Component)
            .filter(models.Component.serial_number == data.serial_number)
            .first()
        )
        if clash:
            raise ConflictError(
                f"Component serial {data.serial_number} already exists.",
                entity_type="component",
                entity_id=clash.id,
                field="serial_number",
            )
        component = models.Component(**data.model_dump())
        db.add(component)
        db.flush()
    logger.info("Component registered", extra={"component_id": component.id, "serial": component.serial_number})
    return component


# ---------------------------------------------------------------------------
# Status / airworthiness flags
# ---------------------------------------------------------------------------


def _current_segment(db: Session, component_id: str) -> Optional[models.ComponentInstallation]:
    return (
        db.query(models.ComponentInstallation)
        .filter(
            models.ComponentInstallation.component_id == component_id,
            models.ComponentInstallation.removed_at.is_(None),
        )
        .one_or_none()
    )


def change_component_status(
    db: Session,
    *,
    component_id: str,
    new_status: models.ComponentStatusEnum,
    actor_user_id: Optional[str] = None,
    reason: Optional[str] = None,
) -> models.Component:
    with unit_of_work(db, operation="change_component_status"):
        component = lock_component(db, component_id)
        previous = component.status
        if previous == new_status:
            return component
        if new_status == models.ComponentStatusEnum.IN_USE:
            raise ValidationError(
                "Components only enter IN_USE by being installed.",
                entity_type="component",
                entity_id=component_id,
                field="status",
            )
        if new_status not in COMPONENT_STATUS_TRANSITIONS[previous]:
            raise ValidationError(
                f"Invalid component status transition {previous.value} -> {new_status.value}.",
                entity_type="component",
                entity_id=component_id,
                field="status",
            )
        if _current_segment(db, component_id) is not None:
            raise ConflictError(
                "Remove the component from its aircraft before changing its status.",
                entity_type="component",
                entity_id=component_id,
                field="status",
            )
        component.status = new_status
        if new_status in models.TERMINAL_COMPONENT_STATUSES:
            component.is_airworthy = False
        audit_services.log_event(
            db,
            actor_user_id=actor_user_id,
            entity_type="component",
            entity_id=component.id,
            action="status_change",
            before={"status": previous},
            after={"status": new_status, "reason": reason},
            critical=True,
        )
    return component


def set_component_airworthiness(
    db: Session,
    *,
    component_id: str,
    is_airworthy: bool,
    actor_user_id: Optional[str] = None,
    reason: Optional[str] = None,
) -> models.Component:
    with unit_of_work(db, operation="set_component_airworthiness"):
        component = lock_component(db, component_id)
        if component.is_airworthy == is_airworthy:
            return component
        if is_airworthy and component.is_terminal:
            raise ValidationError(
                f"A {component.status.value} component cannot be returned to service.",
                entity_type="component",
                entity_id=component_id,
                field="is_airworthy",
            )
        component.is_airworthy = is_airworthy
        audit_services.log_event(
            db,
            actor_user_id=actor_user_id,
            entity_type="component",
            entity_id=component.id,
            action="airworthiness_change",
            before={"is_airworthy": not is_airworthy},
            after={"is_airworthy": is_airworthy, "reason": reason},
            critical=True,
        )
    return component
