from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...database import unit_of_work
from ...errors import ConflictError, NotFoundError, TemporalError, ValidationError
from ...utils.identifiers import generate_reference
from ...utils.timeutils import as_utc, utcnow
from ..audit import services as audit_services
from ..maintenance_program.models import PriorityEnum
from . import models

logger = logging.getLogger(__name__)


WORK_ORDER_TRANSITIONS = {
    models.WorkOrderStatusEnum.OPEN: {
        models.WorkOrderStatusEnum.IN_PROGRESS,
        models.WorkOrderStatusEnum.COMPLETED,
        models.WorkOrderStatusEnum.CANCELLED,
    },
    models.WorkOrderStatusEnum.IN_PROGRESS: {
        models.WorkOrderStatusEnum.COMPLETED,
        models.WorkOrderStatusEnum.CANCELLED,
    },
    models.WorkOrderStatusEnum.COMPLETED: set(),
    models.WorkOrderStatusEnum.CANCELLED: set(),
}


def _ensure_valid_work_order_transition(
    work_order: models.WorkOrder,
    new_status: models.WorkOrderStatusEnum,
) -> None:
    allowed = WORK_ORDER_TRANSITIONS.get(work_order.status, set())
    if new_status not in allowed:
        raise ConflictError(
            f"Invalid work order transition {work_order.status.value} -> {new_status.value}.",
            entity_type="work_order",
            entity_id=work_order.id,
            field="status",
        )


def get_work_order(db: Session, work_order_id: str) -> models.WorkOrder:
    work_order = db.get(models.WorkOrder, work_order_id)
    if work_order is None:
        raise NotFoundError(
            f"Work order {work_order_id} not found.",
            entity_type="work_order",
            entity_id=work_order_id,
        )
    return work_order


def active_work_order_for_schedule(db: Session, schedule_id: str) -> Optional[models.WorkOrder]:
    return (
        db.query(models.WorkOrder)
        .filter(
            models.WorkOrder.schedule_id == schedule_id,
            models.WorkOrder.status.in_(list(models.ACTIVE_WORK_ORDER_STATUSES)),
        )
        .order_by(models.WorkOrder.opened_at.desc())
        .first()
    )


def create_work_order(
    db: Session,
    *,
    aircraft_id: str,
    title: str,
    at: datetime,
    created_by_user_id: Optional[str] = None,
    schedule_id: Optional[str] = None,
    pilot_report_id: Optional[str] = None,
    work_order_type: models.WorkOrderTypeEnum = models.WorkOrderTypeEnum.SCHEDULED,
    priority: PriorityEnum = PriorityEnum.MEDIUM,
    description: Optional[str] = None,
) -> models.WorkOrder:
    """Add an OPEN work order to the current transaction; the caller commits."""
    work_order = models.WorkOrder(
        order_number=generate_reference("WO", at),
        aircraft_id=aircraft_id,
        schedule_id=schedule_id,
        pilot_report_id=pilot_report_id,
        work_order_type=work_order_type,
        status=models.WorkOrderStatusEnum.OPEN,
        priority=priority,
        title=title,
        description=description,
        created_by_user_id=created_by_user_id,
        opened_at=at,
    )
    db.add(work_order)
    db.flush()
    audit_services.log_event(
        db,
        actor_user_id=created_by_user_id,
        entity_type="work_order",
        entity_id=work_order.id,
        action="create",
        after={
            "order_number": work_order.order_number,
            "aircraft_id": aircraft_id,
            "schedule_id": schedule_id,
            "status": work_order.status,
        },
        occurred_at=at,
        critical=True,
    )
    logger.info(
        "Work order opened",
        extra={"work_order_id": work_order.id, "aircraft_id": aircraft_id, "schedule_id": schedule_id},
    )
    return work_order


def set_work_order_status(
    db: Session,
    work_order: models.WorkOrder,
    new_status: models.WorkOrderStatusEnum,
    *,
    at: datetime,
    actor_user_id: Optional[str] = None,
    reason: Optional[str] = None,
) -> models.WorkOrder:
    """Apply one status move inside the current transaction; the caller commits."""
    _ensure_valid_work_order_transition(work_order, new_status)
    if as_utc(at) < as_utc(work_order.opened_at):
        raise TemporalError(
            "Work order status cannot change before the order was opened.",
            entity_type="work_order",
            entity_id=work_order.id,
            field="at",
        )
    previous = work_order.status
    work_order.status = new_status
    if new_status == models.WorkOrderStatusEnum.IN_PROGRESS:
        work_order.started_at = at
    elif new_status == models.WorkOrderStatusEnum.COMPLETED:
        work_order.completed_at = at
    elif new_status == models.WorkOrderStatusEnum.CANCELLED:
        work_order.cancelled_at = at
        work_order.cancel_reason = reason
    audit_services.log_event(
        db,
        actor_user_id=actor_user_id,
        entity_type="work_order",
        entity_id=work_order.id,
        action="status_change",
        before={"status": previous},
        after={"status": new_status, "reason": reason},
        occurred_at=at,
        critical=True,
    )
    return work_order


def start_work_order(
    db: Session,
    *,
    work_order_id: str,
    actor_user_id: Optional[str] = None,
    at: Optional[datetime] = None,
) -> models.WorkOrder:
    at = at or utcnow()
    with unit_of_work(db, operation="start_work_order"):
        work_order = get_work_order(db, work_order_id)
        set_work_order_status(
            db,
            work_order,
            models.WorkOrderStatusEnum.IN_PROGRESS,
            at=at,
            actor_user_id=actor_user_id,
        )
    return work_order


def close_unscheduled_work_order(
    db: Session,
    *,
    work_order_id: str,
    performed_by_user_id: str,
    at: Optional[datetime] = None,
) -> models.WorkOrder:
    """Complete a defect or inspection order. Schedule-linked orders close through their schedule."""
    at = at or utcnow()
    with unit_of_work(db, operation="close_work_order"):
        work_order = get_work_order(db, work_order_id)
        if work_order.schedule_id:
            raise ValidationError(
                "Work order belongs to a maintenance schedule; complete it through the schedule.",
                entity_type="work_order",
                entity_id=work_order.id,
                field="schedule_id",
            )
        work_order.performed_by_user_id = performed_by_user_id
        set_work_order_status(
            db,
            work_order,
            models.WorkOrderStatusEnum.COMPLETED,
            at=at,
            actor_user_id=performed_by_user_id,
        )
    return work_order
