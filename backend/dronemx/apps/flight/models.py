# backend/dronemx/apps/flight/models.py
#
# Pilot reports (PIREPs): defects and observations raised by flight crew.
# The maintenance core reads severity, AOG flag and status only.

from __future__ import annotations

import enum

from sqlalchemy import Boolean, Column, DateTime, Enum as SQLEnum, ForeignKey, Index, String, Text
from sqlalchemy.orm import relationship

from ...database import Base
from ...utils.identifiers import generate_uuid7
from ...utils.timeutils import utcnow


class PilotReportSeverityEnum(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class PilotReportStatusEnum(str, enum.Enum):
    OPEN = "OPEN"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    INVESTIGATING = "INVESTIGATING"
    WORK_ORDER_CREATED = "WORK_ORDER_CREATED"
    RESOLVED = "RESOLVED"
    CANCELLED = "CANCELLED"


UNRESOLVED_PILOT_REPORT_STATUSES = frozenset(
    {
        PilotReportStatusEnum.OPEN,
        PilotReportStatusEnum.ACKNOWLEDGED,
        PilotReportStatusEnum.INVESTIGATING,
        PilotReportStatusEnum.WORK_ORDER_CREATED,
    }
)


class PilotReport(Base):
    __tablename__ = "pilot_reports"
    __table_args__ = (
        Index("ix_pilot_reports_aircraft_status", "aircraft_id", "status"),
        Index("ix_pilot_reports_severity", "severity"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    aircraft_id = Column(
        String(36),
        ForeignKey("aircraft.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    reported_by_user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    severity = Column(
        SQLEnum(PilotReportSeverityEnum, name="pilot_report_severity_enum", native_enum=False),
        nullable=False,
        default=PilotReportSeverityEnum.MEDIUM,
    )
    status = Column(
        SQLEnum(PilotReportStatusEnum, name="pilot_report_status_enum", native_enum=False),
        nullable=False,
        default=PilotReportStatusEnum.OPEN,
        index=True,
    )
    is_aog = Column(Boolean, nullable=False, default=False)

    reported_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    resolved_by_user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    resolution_notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    aircraft = relationship("Aircraft", lazy="joined")

    @property
    def is_unresolved(self) -> bool:
        return self.status in UNRESOLVED_PILOT_REPORT_STATUSES

    @property
    def is_grounding(self) -> bool:
        return self.is_unresolved and (self.is_aog or self.severity == PilotReportSeverityEnum.CRITICAL)

    def __repr__(self) -> str:
        return f"<PilotReport id={self.id} aircraft={self.aircraft_id} severity={self.severity} status={self.status}>"
