# backend/dronemx/apps/crs/validation.py

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from ...errors import ConflictError, CoreError, TemporalError, ValidationError
from ...utils.timeutils import as_utc
from ..accounts import services as accounts_services
from ..accounts.models import UserRoleEnum
from ..airworthiness import services as airworthiness_services
from ..airworthiness.schemas import AirworthinessReport, AirworthinessStatusEnum, FindingSeverityEnum
from ..fleet import models as fleet_models
from ..fleet import services as fleet_services
from ..work import models as work_models
from ..work import services as work_services
from . import schemas as crs_schemas


@dataclass
class ReleaseContext:
    """
    Everything the issuer needs once validation has passed.

    Warnings never block; they are carried onto the audit event.
    """

    aircraft: fleet_models.Aircraft
    report: AirworthinessReport
    work_order: Optional[work_models.WorkOrder] = None
    warnings: List[str] = field(default_factory=list)


def _check_work_order(
    db: Session,
    payload: crs_schemas.ReleaseCreate,
    at: datetime,
) -> Optional[work_models.WorkOrder]:
    if not payload.work_order_id:
        return None
    work_order = work_services.get_work_order(db, payload.work_order_id)
    if work_order.aircraft_id != payload.aircraft_id:
        raise ValidationError(
            f"Work order {work_order.order_number} belongs to another aircraft.",
            entity_type="work_order",
            entity_id=work_order.id,
            field="work_order_id",
        )
    if work_order.status != work_models.WorkOrderStatusEnum.COMPLETED:
        raise ConflictError(
            f"Work order {work_order.order_number} is {work_order.status.value}, not COMPLETED.",
            entity_type="work_order",
            entity_id=work_order.id,
            field="status",
        )
    if as_utc(at) < as_utc(work_order.completed_at):
        raise TemporalError(
            "Release precedes the work order's completion.",
            entity_type="work_order",
            entity_id=work_order.id,
            field="at",
        )
    return work_order


def _check_airworthiness(report: AirworthinessReport, conditions: Optional[str]) -> List[str]:
    if report.status == AirworthinessStatusEnum.GROUNDED:
        grounding = report.grounding_findings
        raise ConflictError(
            f"Aircraft is grounded: {grounding[0].message}",
            entity_type="aircraft",
            entity_id=report.entity_id,
            field="airworthiness",
            detail=[finding.model_dump(mode="json") for finding in grounding],
            code="aircraft_grounded",
        )
    if report.status == AirworthinessStatusEnum.CONDITIONAL and not (conditions or "").strip():
        raise ValidationError(
            "Aircraft has outstanding items; a conditional release must state its conditions.",
            entity_type="release_record",
            field="conditions",
        )
    return [
        finding.message
        for finding in report.findings
        if finding.severity != FindingSeverityEnum.GROUNDING
    ]


def validate_release(
    db: Session,
    payload: crs_schemas.ReleaseCreate,
    *,
    at: datetime,
) -> ReleaseContext:
    """Raise the first blocking problem, or return the validated context."""
    accounts_services.require_role(
        db,
        payload.released_by_user_id,
        UserRoleEnum.INSPECTOR,
        field="released_by_user_id",
    )
    aircraft = fleet_services.get_aircraft(db, payload.aircraft_id)
    work_order = _check_work_order(db, payload, at)
    report = airworthiness_services.aircraft_airworthiness(db, aircraft.id, as_of=at)
    warnings = _check_airworthiness(report, payload.conditions)
    return ReleaseContext(aircraft=aircraft, report=report, work_order=work_order, warnings=warnings)


def preview_release(
    db: Session,
    payload: crs_schemas.ReleaseCreate,
    *,
    at: datetime,
) -> crs_schemas.ReleaseCheck:
    """Diagnostics for a prospective release; nothing is written."""
    try:
        context = validate_release(db, payload, at=at)
    except CoreError as exc:
        return crs_schemas.ReleaseCheck(can_issue=False, blockers=[exc.message])
    return crs_schemas.ReleaseCheck(can_issue=True, warnings=context.warnings)
