# backend/dronemx/apps/crs/models.py
from __future__ import annotations

import enum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum as SQLEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    event,
    inspect,
    text,
)
from sqlalchemy.orm import relationship

from ...database import Base
from ...errors import ValidationError
from ...utils.identifiers import generate_uuid7
from ...utils.timeutils import utcnow


class ReleaseScopeEnum(str, enum.Enum):
    AIRCRAFT = "AIRCRAFT"      # whole aircraft returned to service
    WORK_ORDER = "WORK_ORDER"  # release of one completed work order


class ReleaseStatusEnum(str, enum.Enum):
    FULL = "FULL"
    CONDITIONAL = "CONDITIONAL"


class ReleaseRecord(Base):
    """
    Certificate of release to service.

    Chain:
      Aircraft -> (optional) WorkOrder -> ReleaseRecord

    Notes:
    - Records are compliance artifacts: never deleted, never edited. A newer
      record supersedes the previous valid one for the same aircraft.
    - At most one valid record per aircraft (partial unique index).
    """

    __tablename__ = "release_records"
    __table_args__ = (
        Index("ix_release_records_aircraft_issued", "aircraft_id", "issued_at"),
        Index(
            "uq_release_records_valid_per_aircraft",
            "aircraft_id",
            unique=True,
            sqlite_where=text("is_valid = 1"),
            postgresql_where=text("is_valid"),
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    release_serial = Column(String(32), nullable=False, unique=True, index=True)

    aircraft_id = Column(
        String(36),
        ForeignKey("aircraft.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    work_order_id = Column(
        String(36),
        ForeignKey("work_orders.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )

    scope = Column(
        SQLEnum(ReleaseScopeEnum, name="release_scope_enum", native_enum=False),
        nullable=False,
        default=ReleaseScopeEnum.AIRCRAFT,
    )
    status = Column(
        SQLEnum(ReleaseStatusEnum, name="release_status_enum", native_enum=False),
        nullable=False,
    )
    maintenance_carried_out = Column(Text, nullable=False)
    conditions = Column(Text, nullable=True)

    # Aircraft snapshot at release
    aircraft_flight_hours = Column(Float, nullable=False)
    aircraft_flight_cycles = Column(Integer, nullable=False)

    released_by_user_id = Column(String(36), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    issued_at = Column(DateTime(timezone=True), nullable=False, index=True)
    signature_hash = Column(String(64), nullable=False)

    is_valid = Column(Boolean, nullable=False, default=True, index=True)
    superseded_by_id = Column(String(36), ForeignKey("release_records.id", ondelete="SET NULL"), nullable=True)
    superseded_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    aircraft = relationship("Aircraft", lazy="joined")

    def __repr__(self) -> str:
        return f"<ReleaseRecord id={self.id} serial={self.release_serial} aircraft={self.aircraft_id} valid={self.is_valid}>"


# Supersession is the only change an issued record accepts.
SUPERSESSION_FIELDS = frozenset({"is_valid", "superseded_by_id", "superseded_at"})


@event.listens_for(ReleaseRecord, "before_update")
def _guard_issued_release(mapper, connection, target: ReleaseRecord) -> None:
    state = inspect(target)
    changed = {
        attr.key
        for attr in state.attrs
        if attr.key in mapper.column_attrs and attr.history.has_changes()
    }
    frozen = changed - SUPERSESSION_FIELDS
    if frozen:
        raise ValidationError(
            "Issued release records are immutable.",
            entity_type="release_record",
            entity_id=target.id,
            field=sorted(frozen)[0],
        )
