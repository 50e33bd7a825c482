# backend/dronemx/apps/maintenance_program/service.py
#
# Maintenance schedule state machine.
#
# Responsibilities:
# - Create programs and attach them to aircraft (one schedule per trigger).
# - Re-evaluate schedules against current usage / time and advance
#   SCHEDULED -> DUE -> OVERDUE (or straight to OVERDUE when one step
#   crosses both thresholds).
# - Operator actions: open work order (IN_PROGRESS), complete (COMPLETED ->
#   fresh due point -> SCHEDULED), skip, assign, deactivate / reactivate.
# - Read-only due list projected at an arbitrary instant.
#
# Every status change goes through workflow.apply_transition, which runs the
# registered guards (single active work order, performer role, RII sign-off,
# skip reason) and writes the audit event.

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from ...database import unit_of_work
from ...errors import ConflictError, NotFoundError, TemporalError, ValidationError
from ...utils.timeutils import as_utc, utcnow
from ..accounts import services as account_services
from ..accounts.models import UserRoleEnum
from ..audit import services as audit_services
from ..fleet import models as fleet_models
from ..fleet import services as fleet_services
from ..work import models as work_models
from ..work import services as work_services
from ..workflow import apply_transition
from . import models, schemas
from .triggers import LastCompletion, TriggerEvaluation, UsageSnapshot, evaluate, most_urgent

logger = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes", "on"}

_STATUS_ORDER = {
    models.ScheduleStatusEnum.OVERDUE: 0,
    models.ScheduleStatusEnum.DUE: 1,
    models.ScheduleStatusEnum.IN_PROGRESS: 2,
    models.ScheduleStatusEnum.SKIPPED: 3,
    models.ScheduleStatusEnum.SCHEDULED: 4,
    models.ScheduleStatusEnum.SUSPENDED: 5,
}

_PRIORITY_ORDER = {
    models.PriorityEnum.CRITICAL: 0,
    models.PriorityEnum.HIGH: 1,
    models.PriorityEnum.MEDIUM: 2,
    models.PriorityEnum.LOW: 3,
}


def inspector_role_required() -> bool:
    """RII policy: must the independent inspector also hold the INSPECTOR role?"""
    return os.getenv("RII_INSPECTOR_ROLE_REQUIRED", "true").strip().lower() in _TRUTHY


# ---------------------------------------------------------------------------
# Programs
# ---------------------------------------------------------------------------


def _validate_trigger(data: schemas.TriggerCreate) -> None:
    if data.trigger_type == models.TriggerTypeEnum.CALENDAR_DATE:
        if data.anchor_date is None:
            raise ValidationError(
                "CALENDAR_DATE triggers need an anchor_date.",
                entity_type="maintenance_trigger",
                field="anchor_date",
            )
        if data.interval_value != int(data.interval_value):
            raise ValidationError(
                "CALENDAR_DATE recurrence is a whole number of years.",
                entity_type="maintenance_trigger",
                field="interval_value",
            )
    elif data.anchor_date is not None:
        raise ValidationError(
            "anchor_date only applies to CALENDAR_DATE triggers.",
            entity_type="maintenance_trigger",
            field="anchor_date",
        )
    if (
        data.trigger_type == models.TriggerTypeEnum.BATTERY_CYCLES
        and data.applicable_component_type not in (None, fleet_models.ComponentTypeEnum.BATTERY)
    ):
        raise ValidationError(
            "BATTERY_CYCLES triggers can only be scoped to BATTERY components.",
            entity_type="maintenance_trigger",
            field="applicable_component_type",
        )


def create_program(
    db: Session,
    data: schemas.ProgramCreate,
    *,
    created_by_user_id: Optional[str] = None,
) -> models.MaintenanceProgram:
    for trigger in data.triggers:
        _validate_trigger(trigger)

    with unit_of_work(db, operation="create_program"):
        clash = (
            db.query(models.MaintenanceProgram)
            .filter(
                models.MaintenanceProgram.aircraft_model == data.aircraft_model,
                models.MaintenanceProgram.name == data.name,
            )
            .first()
        )
        if clash:
            raise ConflictError(
                f"Program {data.name} already exists for {data.aircraft_model}.",
                entity_type="maintenance_program",
                entity_id=clash.id,
                field="name",
            )
        if data.is_default:
            (
                db.query(models.MaintenanceProgram)
                .filter(
                    models.MaintenanceProgram.aircraft_model == data.aircraft_model,
                    models.MaintenanceProgram.is_default.is_(True),
                )
                .update({models.MaintenanceProgram.is_default: False}, synchronize_session="fetch")
            )
        program = models.MaintenanceProgram(
            name=data.name,
            aircraft_model=data.aircraft_model,
            description=data.description,
            is_default=data.is_default,
            created_by_user_id=created_by_user_id,
        )
        program.triggers = [models.MaintenanceTrigger(**trigger.model_dump()) for trigger in data.triggers]
        db.add(program)
        db.flush()
        audit_services.log_event(
            db,
            actor_user_id=created_by_user_id,
            entity_type="maintenance_program",
            entity_id=program.id,
            action="create",
            after={"name": program.name, "aircraft_model": program.aircraft_model, "triggers": len(program.triggers)},
        )
    return program


def get_program(db: Session, program_id: str) -> models.MaintenanceProgram:
    program = db.get(models.MaintenanceProgram, program_id)
    if program is None:
        raise NotFoundError(
            f"Maintenance program {program_id} not found.",
            entity_type="maintenance_program",
            entity_id=program_id,
        )
    return program


def get_schedule(db: Session, schedule_id: str) -> models.MaintenanceSchedule:
    schedule = db.get(models.MaintenanceSchedule, schedule_id)
    if schedule is None:
        raise NotFoundError(
            f"Maintenance schedule {schedule_id} not found.",
            entity_type="maintenance_schedule",
            entity_id=schedule_id,
        )
    return schedule


def _lock_schedule(db: Session, schedule_id: str) -> models.MaintenanceSchedule:
    """Aircraft row first, then the schedule row."""
    schedule = get_schedule(db, schedule_id)
    fleet_services.lock_aircraft(db, schedule.aircraft_id)
    return (
        db.query(models.MaintenanceSchedule)
        .filter(models.MaintenanceSchedule.id == schedule_id)
        .populate_existing()
        .with_for_update(of=models.MaintenanceSchedule)
        .one()
    )


def _attach(
    db: Session,
    aircraft: fleet_models.Aircraft,
    program: models.MaintenanceProgram,
    *,
    at: datetime,
    actor_user_id: Optional[str],
) -> List[models.MaintenanceSchedule]:
    if not program.is_active:
        raise ValidationError(
            f"Maintenance program {program.id} is inactive.",
            entity_type="maintenance_program",
            entity_id=program.id,
            field="is_active",
        )
    if program.aircraft_model != aircraft.model:
        raise ValidationError(
            f"Program is for {program.aircraft_model}, aircraft is a {aircraft.model}.",
            entity_type="maintenance_program",
            entity_id=program.id,
            field="aircraft_model",
        )

    existing = {
        schedule.trigger_id: schedule
        for schedule in db.query(models.MaintenanceSchedule)
        .filter(models.MaintenanceSchedule.aircraft_id == aircraft.id)
        .all()
    }
    created = 0
    for trigger in program.triggers:
        if not trigger.is_active or trigger.id in existing:
            continue
        schedule = models.MaintenanceSchedule(
            aircraft_id=aircraft.id,
            trigger_id=trigger.id,
            program_id=program.id,
            status=models.ScheduleStatusEnum.SCHEDULED,
            attached_at=at,
        )
        db.add(schedule)
        existing[trigger.id] = schedule
        created += 1
    db.flush()

    if created:
        audit_services.log_event(
            db,
            actor_user_id=actor_user_id,
            entity_type="aircraft",
            entity_id=aircraft.id,
            action="program_attached",
            after={"program_id": program.id, "schedules_created": created},
            occurred_at=at,
            critical=True,
        )
        logger.info(
            "Maintenance program attached",
            extra={"aircraft_id": aircraft.id, "program_id": program.id, "schedules_created": created},
        )

    refresh_aircraft_schedules(db, aircraft.id, now=at)
    return [existing[trigger.id] for trigger in program.triggers if trigger.id in existing]


def attach_program(
    db: Session,
    *,
    aircraft_id: str,
    program_id: str,
    at: Optional[datetime] = None,
    actor_user_id: Optional[str] = None,
) -> List[models.MaintenanceSchedule]:
    """Create one schedule per active trigger; attaching twice is a no-op."""
    at = at or utcnow()
    with unit_of_work(db, operation="attach_program"):
        aircraft = fleet_services.lock_aircraft(db, aircraft_id)
        program = get_program(db, program_id)
        schedules = _attach(db, aircraft, program, at=at, actor_user_id=actor_user_id)
    return schedules


def attach_default_program(
    db: Session,
    *,
    aircraft_id: str,
    at: Optional[datetime] = None,
    actor_user_id: Optional[str] = None,
) -> List[models.MaintenanceSchedule]:
    at = at or utcnow()
    with unit_of_work(db, operation="attach_default_program"):
        aircraft = fleet_services.lock_aircraft(db, aircraft_id)
        program = (
            db.query(models.MaintenanceProgram)
            .filter(
                models.MaintenanceProgram.aircraft_model == aircraft.model,
                models.MaintenanceProgram.is_default.is_(True),
                models.MaintenanceProgram.is_active.is_(True),
            )
            .first()
        )
        if program is None:
            raise NotFoundError(
                f"No default maintenance program for model {aircraft.model}.",
                entity_type="maintenance_program",
                field="aircraft_model",
            )
        schedules = _attach(db, aircraft, program, at=at, actor_user_id=actor_user_id)
    return schedules


# ---------------------------------------------------------------------------
# Projection (read-only)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ScheduleProjection:
    status: models.ScheduleStatusEnum
    evaluation: Optional[TriggerEvaluation] = None
    tracked_component_id: Optional[str] = None
    last_completion: Optional[LastCompletion] = None


_SUSPENDED = ScheduleProjection(status=models.ScheduleStatusEnum.SUSPENDED)


def _component_last_completion(
    db: Session,
    schedule: models.MaintenanceSchedule,
    segment: fleet_models.ComponentInstallation,
) -> LastCompletion:
    # Baselines follow the component, so its record may come from another aircraft.
    record = (
        db.query(models.MaintenanceRecord)
        .filter(
            models.MaintenanceRecord.trigger_id == schedule.trigger_id,
            models.MaintenanceRecord.component_id == segment.component_id,
        )
        .order_by(models.MaintenanceRecord.performed_at.desc())
        .first()
    )
    attached_at = as_utc(schedule.attached_at)
    installed_at = as_utc(segment.installed_at)
    baseline_at = max(attached_at, installed_at)
    if record is None:
        return LastCompletion(baseline_at=baseline_at)
    return LastCompletion(
        at=as_utc(record.performed_at),
        value=record.value_at_completion,
        baseline_at=baseline_at,
    )


def project_schedule(
    db: Session,
    schedule: models.MaintenanceSchedule,
    *,
    now: datetime,
    installations: Optional[Iterable[fleet_models.ComponentInstallation]] = None,
) -> ScheduleProjection:
    """
    Where the schedule stands at `now`, without changing anything.

    Aircraft-level triggers read the aircraft totals. Component-scoped
    triggers evaluate every matching installed component and follow the
    most urgent one; with none installed the schedule has no due point
    and projects as SUSPENDED.
    """
    trigger = schedule.trigger
    if not trigger.is_active:
        return _SUSPENDED

    if not trigger.is_component_scoped:
        aircraft = schedule.aircraft
        snapshot = UsageSnapshot(
            as_of=now,
            flight_hours=aircraft.total_flight_hours or 0.0,
            flight_cycles=aircraft.total_flight_cycles or 0,
        )
        last = LastCompletion(
            at=as_utc(schedule.last_completed_at),
            value=schedule.last_completed_at_value,
            baseline_at=as_utc(schedule.attached_at),
        )
        evaluation = evaluate(trigger, snapshot, last)
        return ScheduleProjection(status=evaluation.status, evaluation=evaluation, last_completion=last)

    if installations is None:
        installations = fleet_services.open_installations_for_aircraft(db, schedule.aircraft_id)
    matching = [
        segment
        for segment in installations
        if segment.removed_at is None and trigger.matches(segment.component.component_type, segment.location)
    ]
    if not matching:
        return _SUSPENDED

    candidates: dict[str, tuple[TriggerEvaluation, LastCompletion]] = {}
    for segment in matching:
        component = segment.component
        last = _component_last_completion(db, schedule, segment)
        snapshot = UsageSnapshot(
            as_of=now,
            flight_hours=component.total_flight_hours or 0.0,
            flight_cycles=component.total_flight_cycles or 0,
            battery_cycles=component.battery_cycles or 0,
            component_id=component.id,
        )
        candidates[component.id] = (evaluate(trigger, snapshot, last), last)

    chosen = most_urgent(item[0] for item in candidates.values())
    evaluation, last = candidates[chosen.component_id]
    return ScheduleProjection(
        status=evaluation.status,
        evaluation=evaluation,
        tracked_component_id=chosen.component_id,
        last_completion=last,
    )


# ---------------------------------------------------------------------------
# Evaluation (writes; caller owns the transaction)
# ---------------------------------------------------------------------------


def _same_instant(left: Optional[datetime], right: Optional[datetime]) -> bool:
    return as_utc(left) == as_utc(right)


def _transition(
    db: Session,
    schedule: models.MaintenanceSchedule,
    to_status: models.ScheduleStatusEnum,
    *,
    at: datetime,
    actor_user_id: Optional[str] = None,
    after_obj: Optional[dict] = None,
) -> None:
    from_status = schedule.status
    after = {"id": schedule.id, "aircraft_id": schedule.aircraft_id, "trigger_id": schedule.trigger_id}
    after.update(after_obj or {})
    apply_transition(
        db,
        actor_user_id=actor_user_id,
        entity_type="maintenance_schedule",
        entity_id=schedule.id,
        from_state=from_status,
        to_state=to_status,
        before_obj={
            "id": schedule.id,
            "due_date": schedule.due_date,
            "due_at_value": schedule.due_at_value,
        },
        after_obj=after,
        occurred_at=at,
    )
    schedule.status = to_status
    logger.info(
        "Schedule %s -> %s",
        from_status.value,
        to_status.value,
        extra={"schedule_id": schedule.id, "aircraft_id": schedule.aircraft_id},
    )


def evaluate_schedule(
    db: Session,
    schedule: models.MaintenanceSchedule,
    *,
    now: datetime,
    installations: Optional[Iterable[fleet_models.ComponentInstallation]] = None,
) -> bool:
    """
    Bring one schedule in line with its projection at `now`.

    Returns True when anything was written. Running it again with the same
    inputs writes nothing. Inactive and IN_PROGRESS schedules are left alone.
    """
    if not schedule.is_active or schedule.status == models.ScheduleStatusEnum.IN_PROGRESS:
        return False

    projection = project_schedule(db, schedule, now=now, installations=installations)
    changed = False

    if projection.status == models.ScheduleStatusEnum.SUSPENDED:
        due_date, due_at_value = None, None
    else:
        due_date = projection.evaluation.due.due_date
        due_at_value = projection.evaluation.due.due_at_value

    if schedule.trigger.is_component_scoped and schedule.tracked_component_id != projection.tracked_component_id:
        # Reseed from the newly tracked component's own history.
        schedule.tracked_component_id = projection.tracked_component_id
        last = projection.last_completion or LastCompletion()
        schedule.last_completed_at = last.at
        schedule.last_completed_at_value = last.value
        changed = True

    if not _same_instant(schedule.due_date, due_date):
        schedule.due_date = due_date
        changed = True
    if schedule.due_at_value != due_at_value:
        schedule.due_at_value = due_at_value
        changed = True

    if schedule.status != projection.status:
        _transition(
            db,
            schedule,
            projection.status,
            at=now,
            after_obj={"due_date": due_date, "due_at_value": due_at_value},
        )
        if schedule.skip_reason and projection.status != models.ScheduleStatusEnum.SKIPPED:
            schedule.skip_reason = None
        changed = True

    if changed:
        schedule.last_evaluated_at = now
    return changed


def refresh_aircraft_schedules(
    db: Session,
    aircraft_id: str,
    *,
    now: datetime,
) -> List[models.MaintenanceSchedule]:
    """Re-evaluate every active schedule of one aircraft inside the caller's transaction."""
    db.flush()
    installations = fleet_services.open_installations_for_aircraft(db, aircraft_id)
    schedules = (
        db.query(models.MaintenanceSchedule)
        .filter(
            models.MaintenanceSchedule.aircraft_id == aircraft_id,
            models.MaintenanceSchedule.is_active.is_(True),
        )
        .order_by(models.MaintenanceSchedule.id.asc())
        .all()
    )
    for schedule in schedules:
        evaluate_schedule(db, schedule, now=now, installations=installations)
    db.flush()
    return schedules


def reevaluate_aircraft(
    db: Session,
    aircraft_id: str,
    *,
    now: Optional[datetime] = None,
) -> List[models.MaintenanceSchedule]:
    now = now or utcnow()
    with unit_of_work(db, operation="reevaluate_aircraft"):
        fleet_services.lock_aircraft(db, aircraft_id)
        schedules = refresh_aircraft_schedules(db, aircraft_id, now=now)
    return schedules


def set_trigger_active(
    db: Session,
    *,
    trigger_id: str,
    is_active: bool,
    now: Optional[datetime] = None,
    actor_user_id: Optional[str] = None,
) -> models.MaintenanceTrigger:
    """Toggle a trigger and re-evaluate every aircraft that schedules it."""
    now = now or utcnow()
    with unit_of_work(db, operation="set_trigger_active"):
        trigger = db.get(models.MaintenanceTrigger, trigger_id)
        if trigger is None:
            raise NotFoundError(
                f"Maintenance trigger {trigger_id} not found.",
                entity_type="maintenance_trigger",
                entity_id=trigger_id,
            )
        if trigger.is_active == is_active:
            return trigger
        trigger.is_active = is_active
        audit_services.log_event(
            db,
            actor_user_id=actor_user_id,
            entity_type="maintenance_trigger",
            entity_id=trigger.id,
            action="activate" if is_active else "deactivate",
            occurred_at=now,
            critical=True,
        )
        aircraft_ids = sorted(
            {
                row[0]
                for row in db.query(models.MaintenanceSchedule.aircraft_id)
                .filter(models.MaintenanceSchedule.trigger_id == trigger.id)
                .all()
            }
        )
        for aircraft_id in aircraft_ids:
            fleet_services.lock_aircraft(db, aircraft_id)
            refresh_aircraft_schedules(db, aircraft_id, now=now)
    return trigger


# ---------------------------------------------------------------------------
# Operator actions
# ---------------------------------------------------------------------------


def _ensure_not_before(schedule: models.MaintenanceSchedule, at: datetime, reference: Optional[datetime], field: str) -> None:
    if reference is not None and as_utc(at) < as_utc(reference):
        raise TemporalError(
            f"Timestamp precedes the schedule's {field}.",
            entity_type="maintenance_schedule",
            entity_id=schedule.id,
            field=field,
        )


def open_work_order(
    db: Session,
    *,
    schedule_id: str,
    created_by_user_id: Optional[str] = None,
    at: Optional[datetime] = None,
    title: Optional[str] = None,
) -> work_models.WorkOrder:
    """DUE / OVERDUE -> IN_PROGRESS with a new work order linked to the schedule."""
    at = at or utcnow()
    with unit_of_work(db, operation="open_work_order"):
        schedule = _lock_schedule(db, schedule_id)
        if not schedule.is_active:
            raise ValidationError(
                "Schedule is deactivated.",
                entity_type="maintenance_schedule",
                entity_id=schedule.id,
                field="is_active",
            )
        _ensure_not_before(schedule, at, schedule.attached_at, "attached_at")
        refresh_aircraft_schedules(db, schedule.aircraft_id, now=at)

        trigger = schedule.trigger
        _transition(
            db,
            schedule,
            models.ScheduleStatusEnum.IN_PROGRESS,
            at=at,
            actor_user_id=created_by_user_id,
        )
        work_order = work_services.create_work_order(
            db,
            aircraft_id=schedule.aircraft_id,
            title=title or trigger.name,
            description=trigger.description,
            at=at,
            created_by_user_id=created_by_user_id,
            schedule_id=schedule.id,
            priority=trigger.priority,
        )
        schedule.work_order_id = work_order.id
        schedule.skip_reason = None
    return work_order


def _completion_value(
    trigger: models.MaintenanceTrigger,
    aircraft: fleet_models.Aircraft,
    component: Optional[fleet_models.Component],
) -> Optional[float]:
    if trigger.trigger_type not in models.USAGE_TRIGGER_TYPES:
        return None
    source = component if component is not None else aircraft
    if trigger.trigger_type == models.TriggerTypeEnum.FLIGHT_HOURS:
        return float(source.total_flight_hours or 0)
    if trigger.trigger_type == models.TriggerTypeEnum.FLIGHT_CYCLES:
        return float(source.total_flight_cycles or 0)
    return float(getattr(source, "battery_cycles", 0) or 0)


def complete_work_order(
    db: Session,
    *,
    work_order_id: str,
    performed_by_user_id: str,
    inspected_by_user_id: Optional[str] = None,
    at: Optional[datetime] = None,
    notes: Optional[str] = None,
    require_inspector_role: Optional[bool] = None,
) -> models.MaintenanceSchedule:
    """
    IN_PROGRESS -> COMPLETED -> SCHEDULED for the schedule behind a work order.

    Records the completion (one MaintenanceRecord per covered component for
    component-scoped triggers), closes the work order and recomputes the due
    point from the new baseline. RII triggers need a second, distinct
    signer; whether that signer must also hold the INSPECTOR role follows
    `require_inspector_role`, defaulting to RII_INSPECTOR_ROLE_REQUIRED.
    """
    at = at or utcnow()
    if require_inspector_role is None:
        require_inspector_role = inspector_role_required()

    with unit_of_work(db, operation="complete_work_order"):
        work_order = work_services.get_work_order(db, work_order_id)
        if not work_order.schedule_id:
            raise ValidationError(
                "Work order is not linked to a maintenance schedule.",
                entity_type="work_order",
                entity_id=work_order.id,
                field="schedule_id",
            )
        schedule = _lock_schedule(db, work_order.schedule_id)
        aircraft = schedule.aircraft
        if not work_order.is_active:
            raise ConflictError(
                f"Work order is already {work_order.status.value}.",
                entity_type="work_order",
                entity_id=work_order.id,
                field="status",
            )
        if schedule.work_order_id != work_order.id:
            raise ConflictError(
                "Work order is not the schedule's active work order.",
                entity_type="maintenance_schedule",
                entity_id=schedule.id,
                field="work_order_id",
            )
        if as_utc(at) < as_utc(work_order.opened_at):
            raise TemporalError(
                "Completion precedes the work order's opening.",
                entity_type="work_order",
                entity_id=work_order.id,
                field="at",
            )

        performer = account_services.get_user(db, performed_by_user_id, field="performed_by_user_id")
        inspector = (
            account_services.get_user(db, inspected_by_user_id, field="inspected_by_user_id")
            if inspected_by_user_id
            else None
        )
        trigger = schedule.trigger

        _transition(
            db,
            schedule,
            models.ScheduleStatusEnum.COMPLETED,
            at=at,
            actor_user_id=performer.id,
            after_obj={
                "performed_by_user_id": performer.id if performer.is_active else None,
                "performer_role": performer.role,
                "required_role": trigger.required_role,
                "is_rii": trigger.is_rii,
                "inspected_by_user_id": inspector.id if inspector and inspector.is_active else None,
                "inspector_role": inspector.role if inspector else None,
                "inspector_role_required": require_inspector_role,
                "work_order_id": work_order.id,
            },
        )

        covered: List[Optional[fleet_models.Component]] = [None]
        if trigger.is_component_scoped:
            segments = fleet_services.open_installations_for_aircraft(db, aircraft.id)
            matching = [
                segment.component
                for segment in segments
                if trigger.matches(segment.component.component_type, segment.location)
            ]
            if matching:
                covered = matching

        tracked_value: Optional[float] = None
        for component in covered:
            value = _completion_value(trigger, aircraft, component)
            db.add(
                models.MaintenanceRecord(
                    schedule_id=schedule.id,
                    trigger_id=trigger.id,
                    aircraft_id=aircraft.id,
                    component_id=component.id if component is not None else None,
                    work_order_id=work_order.id,
                    performed_at=at,
                    performed_by_user_id=performer.id,
                    inspected_by_user_id=inspector.id if inspector else None,
                    value_at_completion=value,
                    aircraft_flight_hours=aircraft.total_flight_hours or 0.0,
                    aircraft_flight_cycles=aircraft.total_flight_cycles or 0,
                    notes=notes,
                )
            )
            if component is None or component.id == schedule.tracked_component_id or tracked_value is None:
                tracked_value = value

        schedule.last_completed_at = at
        schedule.last_completed_at_value = tracked_value
        schedule.skip_reason = None

        work_order.performed_by_user_id = performer.id
        work_order.inspected_by_user_id = inspector.id if inspector else None
        work_services.set_work_order_status(
            db,
            work_order,
            work_models.WorkOrderStatusEnum.COMPLETED,
            at=at,
            actor_user_id=performer.id,
        )

        previous_due = schedule.due_at_value
        _transition(db, schedule, models.ScheduleStatusEnum.SCHEDULED, at=at, actor_user_id=performer.id)
        db.flush()
        evaluate_schedule(db, schedule, now=at)

    logger.info(
        "Maintenance completed",
        extra={
            "schedule_id": schedule.id,
            "work_order_id": work_order.id,
            "previous_due_at_value": previous_due,
            "due_at_value": schedule.due_at_value,
            "due_date": schedule.due_date.isoformat() if schedule.due_date else None,
        },
    )
    return schedule


def skip_schedule(
    db: Session,
    *,
    schedule_id: str,
    reason: str,
    actor_user_id: Optional[str] = None,
    at: Optional[datetime] = None,
) -> models.MaintenanceSchedule:
    """IN_PROGRESS -> SKIPPED; cancels the active work order. Reason is mandatory."""
    at = at or utcnow()
    with unit_of_work(db, operation="skip_schedule"):
        schedule = _lock_schedule(db, schedule_id)
        _transition(
            db,
            schedule,
            models.ScheduleStatusEnum.SKIPPED,
            at=at,
            actor_user_id=actor_user_id,
            after_obj={"skip_reason": (reason or "").strip() or None},
        )
        work_order = work_services.active_work_order_for_schedule(db, schedule.id)
        if work_order is not None:
            work_services.set_work_order_status(
                db,
                work_order,
                work_models.WorkOrderStatusEnum.CANCELLED,
                at=at,
                actor_user_id=actor_user_id,
                reason=reason,
            )
        schedule.skip_reason = reason.strip()
    return schedule


def assign_schedule(
    db: Session,
    *,
    schedule_id: str,
    assignee_user_id: Optional[str],
    actor_user_id: Optional[str] = None,
) -> models.MaintenanceSchedule:
    with unit_of_work(db, operation="assign_schedule"):
        schedule = get_schedule(db, schedule_id)
        if assignee_user_id is not None:
            account_services.require_role(
                db,
                assignee_user_id,
                UserRoleEnum(schedule.trigger.required_role),
                field="assignee_user_id",
            )
        previous = schedule.assigned_to_user_id
        schedule.assigned_to_user_id = assignee_user_id
        audit_services.log_event(
            db,
            actor_user_id=actor_user_id,
            entity_type="maintenance_schedule",
            entity_id=schedule.id,
            action="assign",
            before={"assigned_to_user_id": previous},
            after={"assigned_to_user_id": assignee_user_id},
        )
    return schedule


def deactivate_schedule(
    db: Session,
    *,
    schedule_id: str,
    actor_user_id: Optional[str] = None,
    at: Optional[datetime] = None,
) -> models.MaintenanceSchedule:
    """Soft delete: the schedule keeps its state but is no longer evaluated."""
    at = at or utcnow()
    with unit_of_work(db, operation="deactivate_schedule"):
        schedule = _lock_schedule(db, schedule_id)
        if not schedule.is_active:
            return schedule
        schedule.is_active = False
        schedule.deactivated_at = at
        audit_services.log_event(
            db,
            actor_user_id=actor_user_id,
            entity_type="maintenance_schedule",
            entity_id=schedule.id,
            action="deactivate",
            before={"is_active": True, "status": schedule.status},
            after={"is_active": False},
            occurred_at=at,
            critical=True,
        )
    return schedule


def reactivate_schedule(
    db: Session,
    *,
    schedule_id: str,
    actor_user_id: Optional[str] = None,
    at: Optional[datetime] = None,
) -> models.MaintenanceSchedule:
    at = at or utcnow()
    with unit_of_work(db, operation="reactivate_schedule"):
        schedule = _lock_schedule(db, schedule_id)
        if schedule.is_active:
            return schedule
        schedule.is_active = True
        schedule.deactivated_at = None
        audit_services.log_event(
            db,
            actor_user_id=actor_user_id,
            entity_type="maintenance_schedule",
            entity_id=schedule.id,
            action="reactivate",
            before={"is_active": False},
            after={"is_active": True},
            occurred_at=at,
            critical=True,
        )
        db.flush()
        evaluate_schedule(db, schedule, now=at)
    return schedule


# ---------------------------------------------------------------------------
# Read queries
# ---------------------------------------------------------------------------


def list_schedules(db: Session, aircraft_id: str, *, include_inactive: bool = False) -> List[models.MaintenanceSchedule]:
    query = db.query(models.MaintenanceSchedule).filter(models.MaintenanceSchedule.aircraft_id == aircraft_id)
    if not include_inactive:
        query = query.filter(models.MaintenanceSchedule.is_active.is_(True))
    return query.order_by(models.MaintenanceSchedule.created_at.asc(), models.MaintenanceSchedule.id.asc()).all()


def _due_row(
    schedule: models.MaintenanceSchedule,
    status: models.ScheduleStatusEnum,
    evaluation: Optional[TriggerEvaluation],
    tracked_component_id: Optional[str],
    as_of: datetime,
) -> schemas.DueScheduleRead:
    trigger = schedule.trigger
    return schemas.DueScheduleRead(
        schedule_id=schedule.id,
        aircraft_id=schedule.aircraft_id,
        trigger_id=trigger.id,
        trigger_name=trigger.name,
        trigger_type=trigger.trigger_type,
        priority=trigger.priority,
        is_rii=trigger.is_rii,
        status=status,
        due_date=evaluation.due.due_date if evaluation else as_utc(schedule.due_date),
        due_at_value=evaluation.due.due_at_value if evaluation else schedule.due_at_value,
        current_value=evaluation.current_value if evaluation else None,
        remaining_value=evaluation.remaining_value if evaluation else None,
        remaining_days=evaluation.remaining_days if evaluation else None,
        percentage_used=evaluation.percentage_used if evaluation else None,
        tracked_component_id=tracked_component_id,
        work_order_id=schedule.work_order_id,
        as_of=as_of,
    )


def project_aircraft_schedules(
    db: Session,
    aircraft_id: str,
    *,
    as_of: datetime,
) -> List[schemas.DueScheduleRead]:
    """Every active schedule of an aircraft as it stands at `as_of`."""
    installations = fleet_services.open_installations_for_aircraft(db, aircraft_id)
    rows: List[schemas.DueScheduleRead] = []
    for schedule in list_schedules(db, aircraft_id):
        if schedule.status == models.ScheduleStatusEnum.IN_PROGRESS:
            rows.append(_due_row(schedule, schedule.status, None, schedule.tracked_component_id, as_of))
            continue
        projection = project_schedule(db, schedule, now=as_of, installations=installations)
        rows.append(
            _due_row(schedule, projection.status, projection.evaluation, projection.tracked_component_id, as_of)
        )
    rows.sort(key=lambda row: (_STATUS_ORDER[row.status], _PRIORITY_ORDER[row.priority], row.schedule_id))
    return rows


def due_schedules(
    db: Session,
    aircraft_id: str,
    as_of: Optional[datetime] = None,
    *,
    include_upcoming: bool = False,
) -> List[schemas.DueScheduleRead]:
    """
    Schedules that need attention at `as_of` (DUE, OVERDUE, IN_PROGRESS),
    most urgent first. Pure projection: nothing is written.
    """
    as_of = as_utc(as_of) or utcnow()
    fleet_services.get_aircraft(db, aircraft_id)
    rows = project_aircraft_schedules(db, aircraft_id, as_of=as_of)
    if include_upcoming:
        return [row for row in rows if row.status != models.ScheduleStatusEnum.SUSPENDED]
    return [row for row in rows if row.status in models.OUTSTANDING_STATUSES]
