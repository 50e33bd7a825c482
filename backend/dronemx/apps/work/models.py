# backend/dronemx/apps/work/models.py
#
# Work orders as seen by the maintenance core: the execution record a
# schedule spawns when maintenance starts. Task cards, parts and labour
# booking live outside this package.

from __future__ import annotations

import enum

from sqlalchemy import (
    Column,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from ...database import Base
from ...utils.identifiers import generate_uuid7
from ...utils.timeutils import utcnow
from ..maintenance_program.models import PriorityEnum


class WorkOrderStatusEnum(str, enum.Enum):
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


ACTIVE_WORK_ORDER_STATUSES = frozenset({WorkOrderStatusEnum.OPEN, WorkOrderStatusEnum.IN_PROGRESS})


class WorkOrderTypeEnum(str, enum.Enum):
    SCHEDULED = "SCHEDULED"      # raised from a maintenance schedule
    UNSCHEDULED = "UNSCHEDULED"  # defect / PIREP rectification
    INSPECTION = "INSPECTION"


class WorkOrder(Base):
    __tablename__ = "work_orders"
    __table_args__ = (
        Index("ix_work_orders_aircraft_status", "aircraft_id", "status"),
        Index("ix_work_orders_schedule_status", "schedule_id", "status"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    order_number = Column(String(32), nullable=False, unique=True, index=True)
    aircraft_id = Column(
        String(36),
        ForeignKey("aircraft.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    schedule_id = Column(
        String(36),
        ForeignKey("maintenance_schedules.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    pilot_report_id = Column(
        String(36),
        ForeignKey("pilot_reports.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    work_order_type = Column(
        SQLEnum(WorkOrderTypeEnum, name="work_order_type_enum", native_enum=False),
        nullable=False,
        default=WorkOrderTypeEnum.SCHEDULED,
    )
    status = Column(
        SQLEnum(WorkOrderStatusEnum, name="work_order_status_enum", native_enum=False),
        nullable=False,
        default=WorkOrderStatusEnum.OPEN,
        index=True,
    )
    priority = Column(
        SQLEnum(PriorityEnum, name="work_order_priority_enum", native_enum=False),
        nullable=False,
        default=PriorityEnum.MEDIUM,
    )
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    created_by_user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    performed_by_user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    inspected_by_user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    opened_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancel_reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    aircraft = relationship("Aircraft", lazy="joined")

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_WORK_ORDER_STATUSES

    def __repr__(self) -> str:
        return f"<WorkOrder id={self.id} number={self.order_number} status={self.status}>"
