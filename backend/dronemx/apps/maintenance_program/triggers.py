"""
Trigger evaluation.

Pure functions: given a trigger, a usage snapshot and the last completion,
compute the next due point and where the snapshot stands against it. Nothing
here touches the database, so the same inputs always give the same answer
and the functions can be run on read paths without locking.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, Optional, Protocol

from ...errors import ValidationError
from ...utils.timeutils import add_years, as_utc, start_of_day
from .models import ScheduleStatusEnum, TriggerTypeEnum

# Float usage totals are compared with this tolerance so 49.9 + 0.1 reaches 50.
VALUE_TOLERANCE = 1e-9


class TriggerLike(Protocol):
    trigger_type: TriggerTypeEnum
    interval_value: float
    anchor_date: Optional[date]


@dataclass(frozen=True)
class UsageSnapshot:
    """Usage at `as_of`, either an aircraft's totals or one component's lifetime totals."""

    as_of: datetime
    flight_hours: float = 0.0
    flight_cycles: float = 0.0
    battery_cycles: float = 0.0
    component_id: Optional[str] = None

    def value_for(self, trigger_type: TriggerTypeEnum) -> Optional[float]:
        if trigger_type == TriggerTypeEnum.FLIGHT_HOURS:
            return float(self.flight_hours or 0)
        if trigger_type == TriggerTypeEnum.FLIGHT_CYCLES:
            return float(self.flight_cycles or 0)
        if trigger_type == TriggerTypeEnum.BATTERY_CYCLES:
            return float(self.battery_cycles or 0)
        return None


@dataclass(frozen=True)
class LastCompletion:
    at: Optional[datetime] = None
    value: Optional[float] = None
    # Start of the first calendar interval when there is no completion yet.
    baseline_at: Optional[datetime] = None


@dataclass(frozen=True)
class DuePoint:
    due_date: Optional[datetime] = None
    due_at_value: Optional[float] = None


@dataclass(frozen=True)
class TriggerEvaluation:
    due: DuePoint
    status: ScheduleStatusEnum
    current_value: Optional[float]
    remaining_value: Optional[float]
    remaining_days: Optional[int]
    percentage_used: float
    component_id: Optional[str] = None

    @property
    def urgency(self) -> tuple[int, float]:
        """Sort key: overdue before due before scheduled, then least remaining."""
        rank = {
            ScheduleStatusEnum.OVERDUE: 0,
            ScheduleStatusEnum.DUE: 1,
        }.get(self.status, 2)
        if self.remaining_value is not None:
            return rank, self.remaining_value
        if self.remaining_days is not None:
            return rank, float(self.remaining_days)
        return rank, math.inf


def _calendar_date_due(trigger: TriggerLike, last: LastCompletion) -> datetime:
    if trigger.anchor_date is None:
        raise ValidationError(
            "CALENDAR_DATE triggers need an anchor_date.",
            entity_type="maintenance_trigger",
            entity_id=getattr(trigger, "id", None),
            field="anchor_date",
        )
    step = max(1, int(trigger.interval_value))
    due = start_of_day(trigger.anchor_date)
    completed_at = as_utc(last.at)
    if completed_at is None:
        return due
    # A completed occurrence rolls forward; a passed, incomplete one stays put.
    while due <= completed_at:
        due = add_years(due, step)
    return due


def next_due(trigger: TriggerLike, snapshot: UsageSnapshot, last: LastCompletion) -> DuePoint:
    trigger_type = TriggerTypeEnum(trigger.trigger_type)
    interval = float(trigger.interval_value)
    if interval <= 0:
        raise ValidationError(
            "Trigger interval must be positive.",
            entity_type="maintenance_trigger",
            entity_id=getattr(trigger, "id", None),
            field="interval_value",
        )

    if trigger_type == TriggerTypeEnum.CALENDAR_DAYS:
        base = as_utc(last.at) or as_utc(last.baseline_at)
        if base is None:
            raise ValidationError(
                "Calendar trigger has neither a completion nor an attach time.",
                entity_type="maintenance_trigger",
                entity_id=getattr(trigger, "id", None),
                field="attached_at",
            )
        return DuePoint(due_date=base + timedelta(days=interval))

    if trigger_type == TriggerTypeEnum.CALENDAR_DATE:
        return DuePoint(due_date=_calendar_date_due(trigger, last))

    baseline = float(last.value or 0)
    return DuePoint(due_at_value=baseline + interval)


def classify(due: DuePoint, snapshot: UsageSnapshot, trigger_type: TriggerTypeEnum) -> ScheduleStatusEnum:
    """
    Zero grace: reaching the due point is DUE, passing it is OVERDUE.

    Calendar due points compare by UTC day, so the whole due day is DUE.
    """
    if due.due_at_value is not None:
        current = snapshot.value_for(TriggerTypeEnum(trigger_type)) or 0.0
        if current > due.due_at_value + VALUE_TOLERANCE:
            return ScheduleStatusEnum.OVERDUE
        if current >= due.due_at_value - VALUE_TOLERANCE:
            return ScheduleStatusEnum.DUE
        return ScheduleStatusEnum.SCHEDULED

    if due.due_date is not None:
        today = as_utc(snapshot.as_of).date()
        due_day = as_utc(due.due_date).date()
        if today > due_day:
            return ScheduleStatusEnum.OVERDUE
        if today == due_day:
            return ScheduleStatusEnum.DUE
        return ScheduleStatusEnum.SCHEDULED

    return ScheduleStatusEnum.SUSPENDED


def evaluate(trigger: TriggerLike, snapshot: UsageSnapshot, last: LastCompletion) -> TriggerEvaluation:
    trigger_type = TriggerTypeEnum(trigger.trigger_type)
    due = next_due(trigger, snapshot, last)
    status = classify(due, snapshot, trigger_type)
    interval = float(trigger.interval_value)

    current_value: Optional[float] = None
    remaining_value: Optional[float] = None
    remaining_days: Optional[int] = None
    percentage_used = 0.0

    if due.due_at_value is not None:
        current_value = snapshot.value_for(trigger_type)
        remaining_value = due.due_at_value - (current_value or 0.0)
        used = (current_value or 0.0) - (due.due_at_value - interval)
        percentage_used = min(100.0, max(0.0, used / interval * 100.0))
    elif due.due_date is not None:
        as_of = as_utc(snapshot.as_of)
        due_date = as_utc(due.due_date)
        remaining_days = (due_date.date() - as_of.date()).days
        if trigger_type == TriggerTypeEnum.CALENDAR_DAYS:
            window_start = due_date - timedelta(days=interval)
        else:
            window_start = add_years(due_date, -max(1, int(interval)))
        elapsed = as_of - window_start
        percentage_used = min(100.0, max(0.0, elapsed / (due_date - window_start) * 100.0))

    return TriggerEvaluation(
        due=due,
        status=status,
        current_value=current_value,
        remaining_value=remaining_value,
        remaining_days=remaining_days,
        percentage_used=percentage_used,
        component_id=snapshot.component_id,
    )


def most_urgent(evaluations: Iterable[TriggerEvaluation]) -> Optional[TriggerEvaluation]:
    candidates = list(evaluations)
    if not candidates:
        return None
    return min(candidates, key=lambda item: (item.urgency, item.component_id or ""))
