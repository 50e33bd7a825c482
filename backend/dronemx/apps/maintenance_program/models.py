# backend/dronemx/apps/maintenance_program/models.py
#
# ORM models for the maintenance program module:
# - MaintenanceProgram   : named template bound to an aircraft model.
# - MaintenanceTrigger   : one recurring obligation inside a program.
# - MaintenanceSchedule  : live due-tracking record per (aircraft, trigger).
# - MaintenanceRecord    : permanent history row written on each completion.
#
# Uses non-native enums and timezone-aware UTC timestamps throughout.

from __future__ import annotations

import enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum as SQLEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from ...database import Base
from ...utils.identifiers import generate_uuid7
from ...utils.timeutils import utcnow
from ..accounts.models import UserRoleEnum
from ..fleet.models import ComponentTypeEnum


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class TriggerTypeEnum(str, enum.Enum):
    CALENDAR_DAYS = "CALENDAR_DAYS"      # every N days
    FLIGHT_HOURS = "FLIGHT_HOURS"        # every N flight hours
    FLIGHT_CYCLES = "FLIGHT_CYCLES"      # every N take-off/landing cycles
    BATTERY_CYCLES = "BATTERY_CYCLES"    # every N charge cycles of a battery
    CALENDAR_DATE = "CALENDAR_DATE"      # fixed date, recurring every N years


USAGE_TRIGGER_TYPES = frozenset(
    {TriggerTypeEnum.FLIGHT_HOURS, TriggerTypeEnum.FLIGHT_CYCLES, TriggerTypeEnum.BATTERY_CYCLES}
)
CALENDAR_TRIGGER_TYPES = frozenset({TriggerTypeEnum.CALENDAR_DAYS, TriggerTypeEnum.CALENDAR_DATE})


class PriorityEnum(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class ScheduleStatusEnum(str, enum.Enum):
    SCHEDULED = "SCHEDULED"      # due point not reached
    DUE = "DUE"                  # due point reached exactly
    OVERDUE = "OVERDUE"          # due point exceeded
    IN_PROGRESS = "IN_PROGRESS"  # work order open against the schedule
    COMPLETED = "COMPLETED"      # transient; reset to SCHEDULED with a new due point
    SKIPPED = "SKIPPED"          # operator skipped this due cycle
    SUSPENDED = "SUSPENDED"      # no due point: trigger inactive or no scoped component installed


OUTSTANDING_STATUSES = frozenset(
    {ScheduleStatusEnum.DUE, ScheduleStatusEnum.OVERDUE, ScheduleStatusEnum.IN_PROGRESS}
)


# ---------------------------------------------------------------------------
# MaintenanceProgram
# ---------------------------------------------------------------------------


class MaintenanceProgram(Base):
    __tablename__ = "maintenance_programs"
    __table_args__ = (
        UniqueConstraint("aircraft_model", "name", name="uq_maintenance_programs_model_name"),
        Index("ix_maintenance_programs_model_default", "aircraft_model", "is_default"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    aircraft_model = Column(String(100), nullable=False, index=True)
    is_default = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    created_by_user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    triggers = relationship(
        "MaintenanceTrigger",
        back_populates="program",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="MaintenanceTrigger.created_at",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<MaintenanceProgram id={self.id} name={self.name} model={self.aircraft_model}>"


# ---------------------------------------------------------------------------
# MaintenanceTrigger
# ---------------------------------------------------------------------------


class MaintenanceTrigger(Base):
    """
    A recurring maintenance obligation.

    Without a scope the trigger follows the aircraft's own totals. With a
    component type and/or location scope it follows the matching installed
    component's lifetime totals instead. BATTERY_CYCLES triggers are always
    component-scoped (to BATTERY when no type is given).

    For CALENDAR_DATE, `anchor_date` is the configured date and
    `interval_value` the recurrence in whole years.
    """

    __tablename__ = "maintenance_triggers"
    __table_args__ = (
        CheckConstraint("interval_value > 0", name="ck_maintenance_triggers_interval_pos"),
        Index("ix_maintenance_triggers_program_active", "program_id", "is_active"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    program_id = Column(
        String(36),
        ForeignKey("maintenance_programs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    trigger_type = Column(
        SQLEnum(TriggerTypeEnum, name="maintenance_trigger_type_enum", native_enum=False),
        nullable=False,
    )
    interval_value = Column(Float, nullable=False)
    anchor_date = Column(Date, nullable=True)

    applicable_component_type = Column(
        SQLEnum(ComponentTypeEnum, name="trigger_component_type_enum", native_enum=False),
        nullable=True,
    )
    applicable_location = Column(String(64), nullable=True)

    priority = Column(
        SQLEnum(PriorityEnum, name="maintenance_priority_enum", native_enum=False),
        nullable=False,
        default=PriorityEnum.MEDIUM,
    )
    required_role = Column(
        SQLEnum(UserRoleEnum, name="trigger_required_role_enum", native_enum=False),
        nullable=False,
        default=UserRoleEnum.MECHANIC,
    )
    is_rii = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    program = relationship("MaintenanceProgram", back_populates="triggers")

    @property
    def scope_component_type(self) -> ComponentTypeEnum | None:
        if self.applicable_component_type is not None:
            return self.applicable_component_type
        if self.trigger_type == TriggerTypeEnum.BATTERY_CYCLES:
            return ComponentTypeEnum.BATTERY
        return None

    @property
    def is_component_scoped(self) -> bool:
        return self.scope_component_type is not None or bool(self.applicable_location)

    def matches(self, component_type: ComponentTypeEnum, location: str) -> bool:
        scope_type = self.scope_component_type
        if scope_type is not None and component_type != scope_type:
            return False
        if self.applicable_location and location != self.applicable_location:
            return False
        return True

    def __repr__(self) -> str:
        return f"<MaintenanceTrigger id={self.id} name={self.name} type={self.trigger_type} every={self.interval_value}>"


# ---------------------------------------------------------------------------
# MaintenanceSchedule
# ---------------------------------------------------------------------------


class MaintenanceSchedule(Base):
    """
    Due-tracking record for one trigger on one aircraft.

    Reused across due cycles: completion writes the last-completed values
    and resets the record to SCHEDULED with a fresh due point. `is_active`
    is a soft-delete flag that freezes evaluation.
    """

    __tablename__ = "maintenance_schedules"
    __table_args__ = (
        UniqueConstraint("aircraft_id", "trigger_id", name="uq_maintenance_schedules_aircraft_trigger"),
        Index("ix_maintenance_schedules_aircraft_status", "aircraft_id", "status"),
        Index("ix_maintenance_schedules_due_date", "aircraft_id", "due_date"),
        CheckConstraint(
            "last_completed_at_value IS NULL OR last_completed_at_value >= 0",
            name="ck_maintenance_schedules_last_value_nonneg",
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    aircraft_id = Column(
        String(36),
        ForeignKey("aircraft.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    trigger_id = Column(
        String(36),
        ForeignKey("maintenance_triggers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    program_id = Column(
        String(36),
        ForeignKey("maintenance_programs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    status = Column(
        SQLEnum(ScheduleStatusEnum, name="maintenance_schedule_status_enum", native_enum=False),
        nullable=False,
        default=ScheduleStatusEnum.SCHEDULED,
        index=True,
    )

    due_date = Column(DateTime(timezone=True), nullable=True)
    due_at_value = Column(Float, nullable=True)

    last_completed_at = Column(DateTime(timezone=True), nullable=True)
    last_completed_at_value = Column(Float, nullable=True)

    # Component whose lifetime totals drive a component-scoped trigger
    tracked_component_id = Column(
        String(36),
        ForeignKey("components.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    attached_at = Column(DateTime(timezone=True), nullable=False)
    last_evaluated_at = Column(DateTime(timezone=True), nullable=True)

    assigned_to_user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    work_order_id = Column(
        String(36),
        ForeignKey("work_orders.id", ondelete="SET NULL", use_alter=True),
        nullable=True,
        index=True,
    )
    skip_reason = Column(Text, nullable=True)

    is_active = Column(Boolean, nullable=False, default=True, index=True)
    deactivated_at = Column(DateTime(timezone=True), nullable=True)

    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    trigger = relationship("MaintenanceTrigger", lazy="joined")
    aircraft = relationship("Aircraft", lazy="joined")

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<MaintenanceSchedule id={self.id} aircraft={self.aircraft_id} "
            f"trigger={self.trigger_id} status={self.status}>"
        )


# ---------------------------------------------------------------------------
# MaintenanceRecord
# ---------------------------------------------------------------------------


class MaintenanceRecord(Base):
    """
    Completed maintenance. Component-scoped completions write one row per
    covered component, which is where a component's per-trigger baseline
    is read from after it moves to another aircraft.
    """

    __tablename__ = "maintenance_records"
    __table_args__ = (
        Index("ix_maintenance_records_trigger_component", "trigger_id", "component_id", "performed_at"),
        Index("ix_maintenance_records_aircraft_time", "aircraft_id", "performed_at"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    schedule_id = Column(
        String(36),
        ForeignKey("maintenance_schedules.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    trigger_id = Column(
        String(36),
        ForeignKey("maintenance_triggers.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    aircraft_id = Column(String(36), ForeignKey("aircraft.id", ondelete="RESTRICT"), nullable=False)
    component_id = Column(String(36), ForeignKey("components.id", ondelete="RESTRICT"), nullable=True)
    work_order_id = Column(String(36), ForeignKey("work_orders.id", ondelete="SET NULL"), nullable=True)

    performed_at = Column(DateTime(timezone=True), nullable=False)
    performed_by_user_id = Column(String(36), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    inspected_by_user_id = Column(String(36), ForeignKey("users.id", ondelete="RESTRICT"), nullable=True)

    value_at_completion = Column(Float, nullable=True)
    aircraft_flight_hours = Column(Float, nullable=False)
    aircraft_flight_cycles = Column(Integer, nullable=False)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<MaintenanceRecord id={self.id} trigger={self.trigger_id} component={self.component_id}>"
