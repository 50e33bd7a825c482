from __future__ import annotations

from datetime import timedelta

import pytest

from dronemx.apps.fleet import installations
from dronemx.apps.fleet import models as fleet_models
from dronemx.apps.fleet import schemas as fleet_schemas
from dronemx.apps.fleet import services as fleet_services
from dronemx.apps.fleet import usage
from dronemx.apps.fleet.usage import UsageDelta, apply_usage
from dronemx.database import unit_of_work
from dronemx.errors import ConflictError, TemporalError, ValidationError


@pytest.fixture()
def quad(db_session, make_aircraft, make_component, t0):
    aircraft = make_aircraft()
    motor = make_component()
    battery = make_component(fleet_models.ComponentTypeEnum.BATTERY)
    installations.install(db_session, component_id=motor.id, aircraft_id=aircraft.id, location="M1", at=t0)
    installations.install(db_session, component_id=battery.id, aircraft_id=aircraft.id, location="B1", at=t0)
    return aircraft, motor, battery


def test_usage_reaches_aircraft_segments_and_components(db_session, quad, t0):
    aircraft, motor, battery = quad

    entry = apply_usage(
        db_session,
        aircraft_id=aircraft.id,
        delta=UsageDelta(hours=0.4, cycles=1, battery_cycles_by_location={"B1": 1}),
        at=t0 + timedelta(hours=1),
        source_reference="FLT-0001",
    )

    assert entry.total_flight_hours_after == pytest.approx(0.4)
    assert entry.total_flight_cycles_after == 1
    assert aircraft.total_flight_hours == pytest.approx(0.4)
    assert aircraft.last_flight_at is not None

    assert motor.total_flight_hours == pytest.approx(0.4)
    assert motor.battery_cycles == 0
    assert battery.total_flight_cycles == 1
    assert battery.battery_cycles == 1

    battery_segment = installations.current_installation(db_session, battery.id)
    assert battery_segment.accumulated_battery_cycles == 1
    assert battery_segment.accumulated_flight_hours == pytest.approx(0.4)


def test_usage_entries_accumulate_in_order(db_session, quad, t0):
    aircraft, _, _ = quad
    for n in range(1, 4):
        apply_usage(
            db_session,
            aircraft_id=aircraft.id,
            delta=UsageDelta(hours=0.1, cycles=1),
            at=t0 + timedelta(hours=n),
        )

    entries = usage.usage_entries(db_session, aircraft.id)
    assert [entry.total_flight_cycles_after for entry in entries] == [1, 2, 3]
    # 0.1 three times is not exactly 0.3 in binary floating point
    assert entries[-1].total_flight_hours_after == pytest.approx(0.3)


def test_negative_usage_is_rejected(db_session, quad, t0):
    aircraft, _, _ = quad
    with pytest.raises(ValidationError):
        apply_usage(db_session, aircraft_id=aircraft.id, delta=UsageDelta(hours=-1.0), at=t0)
    with pytest.raises(ValidationError):
        apply_usage(
            db_session,
            aircraft_id=aircraft.id,
            delta=UsageDelta(battery_cycles_by_location={"B1": -2}),
            at=t0,
        )
    assert usage.usage_entries(db_session, aircraft.id) == []


@pytest.mark.parametrize(
    "delta, field_name",
    [
        (UsageDelta(hours=float("nan")), "hours"),
        (UsageDelta(hours=float("inf")), "hours"),
        (UsageDelta(cycles=float("nan")), "cycles"),
        (UsageDelta(battery_cycles_by_location={"B1": float("nan")}), "battery_cycles_by_location"),
    ],
)
def test_non_finite_usage_is_a_validation_error(db_session, quad, t0, delta, field_name):
    aircraft, _, _ = quad
    with pytest.raises(ValidationError) as exc:
        apply_usage(db_session, aircraft_id=aircraft.id, delta=delta, at=t0)
    assert not isinstance(exc.value, ConflictError)
    assert exc.value.field == field_name

    db_session.refresh(aircraft)
    assert aircraft.total_flight_hours == pytest.approx(0.0)
    assert usage.usage_entries(db_session, aircraft.id) == []


def test_battery_cycles_need_a_battery_at_the_location(db_session, quad, t0):
    aircraft, motor, _ = quad

    with pytest.raises(ValidationError):
        apply_usage(
            db_session,
            aircraft_id=aircraft.id,
            delta=UsageDelta(hours=1.0, cycles=1, battery_cycles_by_location={"M1": 1}),
            at=t0 + timedelta(hours=1),
        )
    with pytest.raises(ValidationError):
        apply_usage(
            db_session,
            aircraft_id=aircraft.id,
            delta=UsageDelta(hours=1.0, cycles=1, battery_cycles_by_location={"B9": 1}),
            at=t0 + timedelta(hours=1),
        )

    db_session.refresh(aircraft)
    db_session.refresh(motor)
    assert aircraft.total_flight_hours == pytest.approx(0.0)
    assert motor.total_flight_hours == pytest.approx(0.0)


def test_usage_cannot_predate_mounted_component(db_session, quad, t0):
    aircraft, _, _ = quad
    with pytest.raises(TemporalError):
        apply_usage(db_session, aircraft_id=aircraft.id, delta=UsageDelta(hours=1.0), at=t0 - timedelta(minutes=1))


def test_retired_aircraft_takes_no_usage(db_session, make_aircraft, t0):
    aircraft = make_aircraft()
    aircraft.status = fleet_models.AircraftStatusEnum.RETIRED
    db_session.commit()

    with pytest.raises(ValidationError):
        apply_usage(db_session, aircraft_id=aircraft.id, delta=UsageDelta(hours=1.0), at=t0)


def test_failed_schedule_refresh_rolls_back_usage(db_session, quad, t0, monkeypatch):
    aircraft, motor, _ = quad

    def _boom(*args, **kwargs):
        raise RuntimeError("evaluation failed")

    monkeypatch.setattr(usage.schedule_service, "refresh_aircraft_schedules", _boom)

    with pytest.raises(RuntimeError):
        apply_usage(db_session, aircraft_id=aircraft.id, delta=UsageDelta(hours=2.0, cycles=1), at=t0 + timedelta(hours=1))

    db_session.refresh(aircraft)
    db_session.refresh(motor)
    assert aircraft.total_flight_hours == pytest.approx(0.0)
    assert motor.total_flight_hours == pytest.approx(0.0)
    assert installations.current_installation(db_session, motor.id).accumulated_flight_hours == pytest.approx(0.0)
    assert usage.usage_entries(db_session, aircraft.id) == []


def test_stale_aircraft_write_raises_conflict(file_session_factory, t0):
    writer = file_session_factory()
    stale = file_session_factory()
    try:
        aircraft = fleet_services.create_aircraft(
            writer,
            fleet_schemas.AircraftCreate(registration_number="5Y-RACE", serial_number="AC-RACE", model="QX-4"),
        )
        stale_copy = stale.get(fleet_models.Aircraft, aircraft.id)
        assert stale_copy.version == 1

        apply_usage(writer, aircraft_id=aircraft.id, delta=UsageDelta(hours=1.0, cycles=1), at=t0)

        with pytest.raises(ConflictError):
            with unit_of_work(stale, operation="edit_aircraft"):
                stale_copy.manufacturer = "Stale Writes Ltd"

        writer.refresh(aircraft)
        assert aircraft.manufacturer is None
        assert aircraft.total_flight_hours == pytest.approx(1.0)
    finally:
        writer.close()
        stale.close()
