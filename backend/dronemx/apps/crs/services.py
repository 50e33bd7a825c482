# backend/dronemx/apps/crs/services.py
#
# Certificates of release to service.
#
# Issue flow (one transaction, aircraft row locked):
#   1) releaser holds INSPECTOR, work order (if any) COMPLETED
#   2) airworthiness projected at `at`: GROUNDED blocks, CONDITIONAL needs conditions
#   3) prior valid record superseded, new record written with its signature hash

from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from ...database import unit_of_work
from ...utils.timeutils import as_utc, utcnow
from ..airworthiness.schemas import AirworthinessStatusEnum
from ..audit import services as audit_services
from ..fleet import services as fleet_services
from . import models, schemas, utils
from .validation import validate_release

logger = logging.getLogger(__name__)


def current_release(db: Session, aircraft_id: str) -> Optional[models.ReleaseRecord]:
    return (
        db.query(models.ReleaseRecord)
        .filter(
            models.ReleaseRecord.aircraft_id == aircraft_id,
            models.ReleaseRecord.is_valid.is_(True),
        )
        .one_or_none()
    )


def release_history(db: Session, aircraft_id: str) -> List[models.ReleaseRecord]:
    fleet_services.get_aircraft(db, aircraft_id)
    return (
        db.query(models.ReleaseRecord)
        .filter(models.ReleaseRecord.aircraft_id == aircraft_id)
        .order_by(models.ReleaseRecord.issued_at.asc(), models.ReleaseRecord.release_serial.asc())
        .all()
    )


def issue_release(
    db: Session,
    payload: schemas.ReleaseCreate,
    *,
    at: Optional[datetime] = None,
) -> models.ReleaseRecord:
    at = as_utc(at) or utcnow()
    with unit_of_work(db, operation="issue_release"):
        fleet_services.lock_aircraft(db, payload.aircraft_id)
        context = validate_release(db, payload, at=at)
        aircraft = context.aircraft

        scope = models.ReleaseScopeEnum.WORK_ORDER if context.work_order else models.ReleaseScopeEnum.AIRCRAFT
        status = (
            models.ReleaseStatusEnum.CONDITIONAL
            if context.report.status == AirworthinessStatusEnum.CONDITIONAL
            else models.ReleaseStatusEnum.FULL
        )
        serial = utils.generate_release_serial(db, scope, at.date())

        previous = current_release(db, aircraft.id)
        if previous is not None:
            previous.is_valid = False
            previous.superseded_at = at
            db.flush()

        record = models.ReleaseRecord(
            release_serial=serial,
            aircraft_id=aircraft.id,
            work_order_id=context.work_order.id if context.work_order else None,
            scope=scope,
            status=status,
            maintenance_carried_out=payload.maintenance_carried_out,
            conditions=(payload.conditions or "").strip() or None,
            aircraft_flight_hours=aircraft.total_flight_hours or 0.0,
            aircraft_flight_cycles=aircraft.total_flight_cycles or 0,
            released_by_user_id=payload.released_by_user_id,
            issued_at=at,
        )
        record.signature_hash = utils.signature_hash(
            {
                "release_serial": serial,
                "aircraft_id": aircraft.id,
                "work_order_id": record.work_order_id,
                "status": status.value,
                "conditions": record.conditions,
                "maintenance_carried_out": record.maintenance_carried_out,
                "aircraft_flight_hours": record.aircraft_flight_hours,
                "aircraft_flight_cycles": record.aircraft_flight_cycles,
                "released_by_user_id": record.released_by_user_id,
                "issued_at": at.isoformat(),
            }
        )
        db.add(record)
        db.flush()

        if previous is not None:
            previous.superseded_by_id = record.id

        audit_services.log_event(
            db,
            actor_user_id=payload.released_by_user_id,
            entity_type="release_record",
            entity_id=record.id,
            action="issue",
            after={
                "release_serial": serial,
                "status": status,
                "scope": scope,
                "supersedes": previous.id if previous else None,
            },
            occurred_at=at,
            metadata={"warnings": context.warnings} if context.warnings else None,
            critical=True,
        )

    logger.info(
        "Release issued",
        extra={"aircraft_id": aircraft.id, "release_serial": serial, "release_status": status.value},
    )
    return record
