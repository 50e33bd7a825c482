from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from ...database import unit_of_work
from ...errors import ConflictError, NotFoundError, TemporalError, ValidationError
from ...utils.timeutils import as_utc, utcnow
from ..audit import services as audit_services
from ..fleet import services as fleet_services
from ..maintenance_program.models import PriorityEnum
from ..work import models as work_models
from ..work import services as work_services
from . import models, schemas

logger = logging.getLogger(__name__)


PILOT_REPORT_TRANSITIONS = {
    models.PilotReportStatusEnum.OPEN: {
        models.PilotReportStatusEnum.ACKNOWLEDGED,
        models.PilotReportStatusEnum.INVESTIGATING,
        models.PilotReportStatusEnum.WORK_ORDER_CREATED,
        models.PilotReportStatusEnum.RESOLVED,
        models.PilotReportStatusEnum.CANCELLED,
    },
    models.PilotReportStatusEnum.ACKNOWLEDGED: {
        models.PilotReportStatusEnum.INVESTIGATING,
        models.PilotReportStatusEnum.WORK_ORDER_CREATED,
        models.PilotReportStatusEnum.RESOLVED,
        models.PilotReportStatusEnum.CANCELLED,
    },
    models.PilotReportStatusEnum.INVESTIGATING: {
        models.PilotReportStatusEnum.WORK_ORDER_CREATED,
        models.PilotReportStatusEnum.RESOLVED,
        models.PilotReportStatusEnum.CANCELLED,
    },
    models.PilotReportStatusEnum.WORK_ORDER_CREATED: {
        models.PilotReportStatusEnum.RESOLVED,
    },
    models.PilotReportStatusEnum.RESOLVED: set(),
    models.PilotReportStatusEnum.CANCELLED: set(),
}

_SEVERITY_TO_PRIORITY = {
    models.PilotReportSeverityEnum.LOW: PriorityEnum.LOW,
    models.PilotReportSeverityEnum.MEDIUM: PriorityEnum.MEDIUM,
    models.PilotReportSeverityEnum.HIGH: PriorityEnum.HIGH,
    models.PilotReportSeverityEnum.CRITICAL: PriorityEnum.CRITICAL,
}


def get_pilot_report(db: Session, report_id: str) -> models.PilotReport:
    report = db.get(models.PilotReport, report_id)
    if report is None:
        raise NotFoundError(f"Pilot report {report_id} not found.", entity_type="pilot_report", entity_id=report_id)
    return report


def _move(
    db: Session,
    report: models.PilotReport,
    new_status: models.PilotReportStatusEnum,
    *,
    actor_user_id: Optional[str],
    at: datetime,
) -> None:
    if new_status not in PILOT_REPORT_TRANSITIONS[report.status]:
        raise ConflictError(
            f"Invalid pilot report transition {report.status.value} -> {new_status.value}.",
            entity_type="pilot_report",
            entity_id=report.id,
            field="status",
        )
    if as_utc(at) < as_utc(report.reported_at):
        raise TemporalError(
            "Pilot report cannot change status before it was reported.",
            entity_type="pilot_report",
            entity_id=report.id,
            field="at",
        )
    previous = report.status
    report.status = new_status
    audit_services.log_event(
        db,
        actor_user_id=actor_user_id,
        entity_type="pilot_report",
        entity_id=report.id,
        action="status_change",
        before={"status": previous},
        after={"status": new_status},
        occurred_at=at,
        critical=True,
    )


def file_pilot_report(db: Session, data: schemas.PilotReportCreate) -> models.PilotReport:
    with unit_of_work(db, operation="file_pilot_report"):
        aircraft = fleet_services.get_aircraft(db, data.aircraft_id)
        report = models.PilotReport(
            aircraft_id=aircraft.id,
            reported_by_user_id=data.reported_by_user_id,
            title=data.title,
            description=data.description,
            severity=data.severity,
            is_aog=data.is_aog or data.severity == models.PilotReportSeverityEnum.CRITICAL,
            reported_at=data.reported_at or utcnow(),
        )
        db.add(report)
        db.flush()
        audit_services.log_event(
            db,
            actor_user_id=data.reported_by_user_id,
            entity_type="pilot_report",
            entity_id=report.id,
            action="create",
            after={"severity": report.severity, "is_aog": report.is_aog, "aircraft_id": aircraft.id},
            occurred_at=report.reported_at,
            critical=True,
        )
    if report.is_grounding:
        logger.warning(
            "Grounding pilot report filed",
            extra={"pilot_report_id": report.id, "aircraft_id": report.aircraft_id},
        )
    return report


def acknowledge_pilot_report(
    db: Session,
    *,
    report_id: str,
    actor_user_id: Optional[str] = None,
    at: Optional[datetime] = None,
) -> models.PilotReport:
    with unit_of_work(db, operation="acknowledge_pilot_report"):
        report = get_pilot_report(db, report_id)
        _move(db, report, models.PilotReportStatusEnum.ACKNOWLEDGED, actor_user_id=actor_user_id, at=at or utcnow())
    return report


def raise_work_order(
    db: Session,
    *,
    report_id: str,
    actor_user_id: Optional[str] = None,
    at: Optional[datetime] = None,
) -> work_models.WorkOrder:
    at = at or utcnow()
    with unit_of_work(db, operation="raise_pilot_report_work_order"):
        report = get_pilot_report(db, report_id)
        _move(db, report, models.PilotReportStatusEnum.WORK_ORDER_CREATED, actor_user_id=actor_user_id, at=at)
        work_order = work_services.create_work_order(
            db,
            aircraft_id=report.aircraft_id,
            title=f"PIREP: {report.title}",
            description=report.description,
            at=at,
            created_by_user_id=actor_user_id,
            pilot_report_id=report.id,
            work_order_type=work_models.WorkOrderTypeEnum.UNSCHEDULED,
            priority=_SEVERITY_TO_PRIORITY[report.severity],
        )
    return work_order


def resolve_pilot_report(
    db: Session,
    *,
    report_id: str,
    resolution_notes: str,
    resolved_by_user_id: str,
    at: Optional[datetime] = None,
) -> models.PilotReport:
    if not (resolution_notes or "").strip():
        raise ValidationError(
            "Resolution notes are required.",
            entity_type="pilot_report",
            entity_id=report_id,
            field="resolution_notes",
        )
    at = at or utcnow()
    with unit_of_work(db, operation="resolve_pilot_report"):
        report = get_pilot_report(db, report_id)
        pending = (
            db.query(work_models.WorkOrder)
            .filter(
                work_models.WorkOrder.pilot_report_id == report.id,
                work_models.WorkOrder.status.in_(list(work_models.ACTIVE_WORK_ORDER_STATUSES)),
            )
            .first()
        )
        if pending is not None:
            raise ConflictError(
                "Close the rectification work order before resolving the report.",
                entity_type="pilot_report",
                entity_id=report.id,
                field="work_order_id",
            )
        _move(db, report, models.PilotReportStatusEnum.RESOLVED, actor_user_id=resolved_by_user_id, at=at)
        report.resolved_at = at
        report.resolved_by_user_id = resolved_by_user_id
        report.resolution_notes = resolution_notes.strip()
    return report


def cancel_pilot_report(
    db: Session,
    *,
    report_id: str,
    actor_user_id: Optional[str] = None,
    at: Optional[datetime] = None,
) -> models.PilotReport:
    with unit_of_work(db, operation="cancel_pilot_report"):
        report = get_pilot_report(db, report_id)
        _move(db, report, models.PilotReportStatusEnum.CANCELLED, actor_user_id=actor_user_id, at=at or utcnow())
    return report


def list_unresolved_pilot_reports(db: Session, aircraft_id: str) -> List[models.PilotReport]:
    return (
        db.query(models.PilotReport)
        .filter(
            models.PilotReport.aircraft_id == aircraft_id,
            models.PilotReport.status.in_(list(models.UNRESOLVED_PILOT_REPORT_STATUSES)),
        )
        .order_by(models.PilotReport.reported_at.asc())
        .all()
    )
