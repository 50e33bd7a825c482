# backend/dronemx/apps/fleet/models.py
#
# ORM models for the fleet module:
# - Aircraft                : airframe master record and cumulative usage.
# - Component               : physical part with lifetime totals and life limits.
# - ComponentInstallation   : one continuous mounting period (installation segment).
# - AircraftUsageEntry      : ledger row per applied flight-usage delta.
#
# Components carry no aircraft column; the open installation segment is the
# only link between a component and the aircraft it sits on.

from __future__ import annotations

import enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum as SQLEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
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


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class AircraftStatusEnum(str, enum.Enum):
    AVAILABLE = "AVAILABLE"
    IN_MAINTENANCE = "IN_MAINTENANCE"
    AOG = "AOG"
    RETIRED = "RETIRED"


class ComponentTypeEnum(str, enum.Enum):
    MOTOR = "MOTOR"
    PROPELLER = "PROPELLER"
    BATTERY = "BATTERY"
    ESC = "ESC"
    FLIGHT_CONTROLLER = "FLIGHT_CONTROLLER"
    GPS = "GPS"
    CAMERA = "CAMERA"
    GIMBAL = "GIMBAL"
    LANDING_GEAR = "LANDING_GEAR"
    OTHER = "OTHER"


class ComponentStatusEnum(str, enum.Enum):
    NEW = "NEW"
    IN_USE = "IN_USE"
    REPAIR = "REPAIR"
    SCRAPPED = "SCRAPPED"  # terminal
    LOST = "LOST"          # terminal


TERMINAL_COMPONENT_STATUSES = frozenset({ComponentStatusEnum.SCRAPPED, ComponentStatusEnum.LOST})


# ---------------------------------------------------------------------------
# Aircraft
# ---------------------------------------------------------------------------


class Aircraft(Base):
    __tablename__ = "aircraft"
    __table_args__ = (
        CheckConstraint("total_flight_hours >= 0", name="ck_aircraft_hours_nonneg"),
        CheckConstraint("total_flight_cycles >= 0", name="ck_aircraft_cycles_nonneg"),
        Index("ix_aircraft_model_status", "model", "status"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    registration_number = Column(String(32), nullable=False, unique=True, index=True)
    serial_number = Column(String(64), nullable=False, unique=True, index=True)
    model = Column(String(100), nullable=False, index=True)
    manufacturer = Column(String(100), nullable=True)

    status = Column(
        SQLEnum(AircraftStatusEnum, name="aircraft_status_enum", native_enum=False),
        nullable=False,
        default=AircraftStatusEnum.AVAILABLE,
        index=True,
    )

    total_flight_hours = Column(Float, nullable=False, default=0.0)
    total_flight_cycles = Column(Integer, nullable=False, default=0)
    last_flight_at = Column(DateTime(timezone=True), nullable=True)

    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    installations = relationship(
        "ComponentInstallation",
        back_populates="aircraft",
        order_by="ComponentInstallation.installed_at",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    def open_installations(self) -> list["ComponentInstallation"]:
        return [segment for segment in self.installations if segment.removed_at is None]

    def __repr__(self) -> str:
        return f"<Aircraft id={self.id} reg={self.registration_number} hours={self.total_flight_hours}>"


# ---------------------------------------------------------------------------
# Component
# ---------------------------------------------------------------------------


class Component(Base):
    """
    A physical part tracked across aircraft.

    Lifetime totals only ever grow. They are the first segment's inherited
    values plus everything accumulated across all of its segments.
    """

    __tablename__ = "components"
    __table_args__ = (
        CheckConstraint("total_flight_hours >= 0", name="ck_components_hours_nonneg"),
        CheckConstraint("total_flight_cycles >= 0", name="ck_components_cycles_nonneg"),
        CheckConstraint("battery_cycles >= 0", name="ck_components_battery_cycles_nonneg"),
        CheckConstraint("max_flight_hours IS NULL OR max_flight_hours > 0", name="ck_components_max_hours_pos"),
        CheckConstraint("max_cycles IS NULL OR max_cycles > 0", name="ck_components_max_cycles_pos"),
        Index("ix_components_type_status", "component_type", "status"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    serial_number = Column(String(64), nullable=False, unique=True, index=True)
    part_number = Column(String(64), nullable=False, index=True)
    component_type = Column(
        SQLEnum(ComponentTypeEnum, name="component_type_enum", native_enum=False),
        nullable=False,
        index=True,
    )
    manufacturer = Column(String(100), nullable=True)
    description = Column(String(255), nullable=True)

    total_flight_hours = Column(Float, nullable=False, default=0.0)
    total_flight_cycles = Column(Integer, nullable=False, default=0)
    battery_cycles = Column(Integer, nullable=False, default=0)

    # Life-limited part (LLP) ceilings
    is_life_limited = Column(Boolean, nullable=False, default=False)
    max_flight_hours = Column(Float, nullable=True)
    max_cycles = Column(Integer, nullable=True)

    status = Column(
        SQLEnum(ComponentStatusEnum, name="component_status_enum", native_enum=False),
        nullable=False,
        default=ComponentStatusEnum.NEW,
        index=True,
    )
    is_airworthy = Column(Boolean, nullable=False, default=True)

    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    installations = relationship(
        "ComponentInstallation",
        back_populates="component",
        order_by="ComponentInstallation.installed_at",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_COMPONENT_STATUSES

    def exceeded_limits(self) -> list[str]:
        """Names of the life limits this component has gone past (strictly)."""
        if not self.is_life_limited:
            return []
        exceeded = []
        if self.max_flight_hours is not None and (self.total_flight_hours or 0) > self.max_flight_hours:
            exceeded.append("max_flight_hours")
        if self.max_cycles is not None and (self.total_flight_cycles or 0) > self.max_cycles:
            exceeded.append("max_cycles")
        return exceeded

    def __repr__(self) -> str:
        return f"<Component id={self.id} serial={self.serial_number} type={self.component_type}>"


# ---------------------------------------------------------------------------
# ComponentInstallation – installation segment
# ---------------------------------------------------------------------------


class ComponentInstallation(Base):
    """
    One continuous period a component spends mounted at one location on one
    aircraft. `removed_at IS NULL` marks the open segment.

    Partial unique indexes keep at most one open segment per component and
    per (aircraft, location), so a racing second install fails at flush time
    even if both transactions passed the service-level checks.
    """

    __tablename__ = "component_installations"
    __table_args__ = (
        Index(
            "uq_component_installations_open_component",
            "component_id",
            unique=True,
            sqlite_where=text("removed_at IS NULL"),
            postgresql_where=text("removed_at IS NULL"),
        ),
        Index(
            "uq_component_installations_open_location",
            "aircraft_id",
            "location",
            unique=True,
            sqlite_where=text("removed_at IS NULL"),
            postgresql_where=text("removed_at IS NULL"),
        ),
        Index("ix_component_installations_component_time", "component_id", "installed_at"),
        Index("ix_component_installations_aircraft_open", "aircraft_id", "removed_at"),
        CheckConstraint("inherited_flight_hours >= 0", name="ck_ci_inherited_hours_nonneg"),
        CheckConstraint("inherited_flight_cycles >= 0", name="ck_ci_inherited_cycles_nonneg"),
        CheckConstraint("inherited_battery_cycles >= 0", name="ck_ci_inherited_battery_nonneg"),
        CheckConstraint("accumulated_flight_hours >= 0", name="ck_ci_accumulated_hours_nonneg"),
        CheckConstraint("accumulated_flight_cycles >= 0", name="ck_ci_accumulated_cycles_nonneg"),
        CheckConstraint("accumulated_battery_cycles >= 0", name="ck_ci_accumulated_battery_nonneg"),
        CheckConstraint("removed_at IS NULL OR removed_at >= installed_at", name="ck_ci_removed_after_installed"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    component_id = Column(
        String(36),
        ForeignKey("components.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    aircraft_id = Column(
        String(36),
        ForeignKey("aircraft.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    location = Column(String(64), nullable=False)

    # Component lifetime totals at mount time
    inherited_flight_hours = Column(Float, nullable=False, default=0.0)
    inherited_flight_cycles = Column(Integer, nullable=False, default=0)
    inherited_battery_cycles = Column(Integer, nullable=False, default=0)

    # Usage flown while mounted
    accumulated_flight_hours = Column(Float, nullable=False, default=0.0)
    accumulated_flight_cycles = Column(Integer, nullable=False, default=0)
    accumulated_battery_cycles = Column(Integer, nullable=False, default=0)

    installed_at = Column(DateTime(timezone=True), nullable=False)
    installed_by_user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    install_notes = Column(Text, nullable=True)

    removed_at = Column(DateTime(timezone=True), nullable=True, index=True)
    removed_by_user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    remove_notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    component = relationship("Component", back_populates="installations", lazy="joined")
    aircraft = relationship("Aircraft", back_populates="installations", lazy="joined")

    @property
    def is_open(self) -> bool:
        return self.removed_at is None

    def __repr__(self) -> str:
        state = "open" if self.removed_at is None else "closed"
        return (
            f"<ComponentInstallation id={self.id} component={self.component_id} "
            f"aircraft={self.aircraft_id} location={self.location} {state}>"
        )


# Closed segments only accept note annotations.
SEGMENT_ANNOTATION_FIELDS = frozenset({"install_notes", "remove_notes"})


@event.listens_for(ComponentInstallation, "before_update")
def _guard_closed_segment(mapper, connection, target: ComponentInstallation) -> None:
    state = inspect(target)
    removed_history = state.attrs.removed_at.history
    if target.removed_at is None:
        return
    # The removal itself (open -> closed) is the last allowed structural change.
    # A loaded open segment reports its previous value as deleted=[None].
    if removed_history.added and all(value is None for value in removed_history.deleted):
        return
    changed = {
        attr.key
        for attr in state.attrs
        if attr.key in mapper.column_attrs and attr.history.has_changes()
    }
    frozen = changed - SEGMENT_ANNOTATION_FIELDS
    if frozen:
        raise ValidationError(
            "Closed installation segments are immutable except for notes.",
            entity_type="component_installation",
            entity_id=target.id,
            field=sorted(frozen)[0],
        )


# ---------------------------------------------------------------------------
# AircraftUsageEntry – applied usage deltas
# ---------------------------------------------------------------------------


class AircraftUsageEntry(Base):
    __tablename__ = "aircraft_usage_entries"
    __table_args__ = (
        CheckConstraint("flight_hours >= 0", name="ck_usage_entries_hours_nonneg"),
        CheckConstraint("flight_cycles >= 0", name="ck_usage_entries_cycles_nonneg"),
        Index("ix_usage_entries_aircraft_time", "aircraft_id", "occurred_at"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    aircraft_id = Column(
        String(36),
        ForeignKey("aircraft.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    occurred_at = Column(DateTime(timezone=True), nullable=False)
    flight_hours = Column(Float, nullable=False, default=0.0)
    flight_cycles = Column(Integer, nullable=False, default=0)
    battery_cycles_by_location = Column(JSON, nullable=True)

    # Aircraft totals after this entry was applied
    total_flight_hours_after = Column(Float, nullable=False)
    total_flight_cycles_after = Column(Integer, nullable=False)

    recorded_by_user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    source_reference = Column(String(128), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return (
            f"<AircraftUsageEntry id={self.id} aircraft={self.aircraft_id} "
            f"hours={self.flight_hours} cycles={self.flight_cycles}>"
        )
