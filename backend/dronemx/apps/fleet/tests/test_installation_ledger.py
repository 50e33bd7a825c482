from __future__ import annotations

from datetime import timedelta

import pytest

from dronemx.apps.audit import services as audit_services
from dronemx.apps.fleet import installations
from dronemx.apps.fleet import models as fleet_models
from dronemx.apps.fleet import services as fleet_services
from dronemx.apps.fleet.usage import UsageDelta, apply_usage
from dronemx.database import unit_of_work
from dronemx.errors import ConflictError, NotFoundError, TemporalError, ValidationError


def test_lifetime_totals_follow_component_across_aircraft(db_session, make_aircraft, make_component, t0):
    first = make_aircraft()
    second = make_aircraft()
    motor = make_component()

    installations.install(db_session, component_id=motor.id, aircraft_id=first.id, location="M1", at=t0)
    apply_usage(db_session, aircraft_id=first.id, delta=UsageDelta(hours=10.0, cycles=4), at=t0 + timedelta(hours=1))
    installations.remove(db_session, component_id=motor.id, at=t0 + timedelta(hours=2))
    installations.install(
        db_session,
        component_id=motor.id,
        aircraft_id=second.id,
        location="M3",
        at=t0 + timedelta(hours=3),
    )
    apply_usage(db_session, aircraft_id=second.id, delta=UsageDelta(hours=5.0, cycles=2), at=t0 + timedelta(hours=4))

    db_session.refresh(motor)
    assert motor.total_flight_hours == pytest.approx(15.0)
    assert motor.total_flight_cycles == 6

    segments = installations.history(db_session, motor.id)
    assert [segment.aircraft_id for segment in segments] == [first.id, second.id]
    assert segments[0].inherited_flight_hours == pytest.approx(0.0)
    assert segments[0].accumulated_flight_hours == pytest.approx(10.0)
    assert segments[1].inherited_flight_hours == pytest.approx(10.0)
    assert segments[1].inherited_flight_cycles == 4
    assert segments[1].accumulated_flight_hours == pytest.approx(5.0)

    totals = installations.lifetime_from_segments(segments)
    assert totals.flight_hours == pytest.approx(15.0)
    assert totals.flight_cycles == 6

    db_session.refresh(second)
    assert second.total_flight_hours == pytest.approx(5.0)

    report = installations.component_history(db_session, motor.id)
    assert report.is_consistent is True
    assert report.current_installation.aircraft_id == second.id
    assert len(report.segments) == 2


def test_opening_totals_are_inherited_on_first_install(db_session, make_aircraft, make_component, t0):
    aircraft = make_aircraft()
    motor = make_component(total_flight_hours=120.5, total_flight_cycles=300)

    segment = installations.install(db_session, component_id=motor.id, aircraft_id=aircraft.id, location="M1", at=t0)

    assert segment.inherited_flight_hours == pytest.approx(120.5)
    assert segment.inherited_flight_cycles == 300
    assert motor.status == fleet_models.ComponentStatusEnum.IN_USE
    assert installations.component_history(db_session, motor.id).is_consistent is True


def test_component_cannot_hold_two_open_segments(db_session, make_aircraft, make_component, t0):
    first = make_aircraft()
    second = make_aircraft()
    motor = make_component()
    installations.install(db_session, component_id=motor.id, aircraft_id=first.id, location="M1", at=t0)

    with pytest.raises(ConflictError):
        installations.install(
            db_session,
            component_id=motor.id,
            aircraft_id=second.id,
            location="M1",
            at=t0 + timedelta(minutes=5),
        )

    assert installations.current_installation(db_session, motor.id).aircraft_id == first.id
    assert len(installations.history(db_session, motor.id)) == 1


def test_location_cannot_hold_two_components(db_session, make_aircraft, make_component, t0):
    aircraft = make_aircraft()
    motor = make_component()
    spare = make_component()
    installations.install(db_session, component_id=motor.id, aircraft_id=aircraft.id, location="M1", at=t0)

    with pytest.raises(ConflictError) as exc:
        installations.install(
            db_session,
            component_id=spare.id,
            aircraft_id=aircraft.id,
            location=" M1 ",
            at=t0 + timedelta(minutes=1),
        )
    assert exc.value.field == "location"
    assert installations.current_installation(db_session, spare.id) is None


def test_open_segment_index_rejects_racing_insert(db_session, make_aircraft, make_component, t0):
    aircraft = make_aircraft()
    motor = make_component()
    installations.install(db_session, component_id=motor.id, aircraft_id=aircraft.id, location="M1", at=t0)

    with pytest.raises(ConflictError):
        with unit_of_work(db_session, operation="racing_install"):
            db_session.add(
                fleet_models.ComponentInstallation(
                    component_id=motor.id,
                    aircraft_id=aircraft.id,
                    location="M2",
                    installed_at=t0,
                )
            )

    assert len(installations.history(db_session, motor.id)) == 1


def test_removal_cannot_precede_installation(db_session, make_aircraft, make_component, t0):
    aircraft = make_aircraft()
    motor = make_component()
    installations.install(db_session, component_id=motor.id, aircraft_id=aircraft.id, location="M1", at=t0)

    with pytest.raises(TemporalError):
        installations.remove(db_session, component_id=motor.id, at=t0 - timedelta(seconds=1))

    assert installations.current_installation(db_session, motor.id) is not None


def test_reinstall_cannot_precede_last_removal(db_session, make_aircraft, make_component, t0):
    aircraft = make_aircraft()
    motor = make_component()
    installations.install(db_session, component_id=motor.id, aircraft_id=aircraft.id, location="M1", at=t0)
    installations.remove(db_session, component_id=motor.id, at=t0 + timedelta(hours=2))

    with pytest.raises(TemporalError):
        installations.install(
            db_session,
            component_id=motor.id,
            aircraft_id=aircraft.id,
            location="M1",
            at=t0 + timedelta(hours=1),
        )


def test_remove_without_open_segment_is_not_found(db_session, make_component, t0):
    motor = make_component()
    with pytest.raises(NotFoundError):
        installations.remove(db_session, component_id=motor.id, at=t0)


def test_terminal_or_unairworthy_components_cannot_be_installed(db_session, make_aircraft, make_component, t0):
    aircraft = make_aircraft()
    scrapped = make_component()
    grounded = make_component()
    fleet_services.change_component_status(
        db_session,
        component_id=scrapped.id,
        new_status=fleet_models.ComponentStatusEnum.SCRAPPED,
        reason="crash damage",
    )
    fleet_services.set_component_airworthiness(db_session, component_id=grounded.id, is_airworthy=False)

    with pytest.raises(ValidationError):
        installations.install(db_session, component_id=scrapped.id, aircraft_id=aircraft.id, location="M1", at=t0)
    with pytest.raises(ValidationError):
        installations.install(db_session, component_id=grounded.id, aircraft_id=aircraft.id, location="M1", at=t0)
    with pytest.raises(ValidationError):
        installations.install(db_session, component_id=grounded.id, aircraft_id=aircraft.id, location="  ", at=t0)


def test_installed_component_status_cannot_be_changed(db_session, make_aircraft, make_component, t0):
    aircraft = make_aircraft()
    motor = make_component()
    installations.install(db_session, component_id=motor.id, aircraft_id=aircraft.id, location="M1", at=t0)

    with pytest.raises(ConflictError):
        fleet_services.change_component_status(
            db_session,
            component_id=motor.id,
            new_status=fleet_models.ComponentStatusEnum.REPAIR,
        )


def test_remove_closes_a_freshly_loaded_segment(db_session, make_aircraft, make_component, t0):
    aircraft = make_aircraft()
    motor = make_component()
    installations.install(db_session, component_id=motor.id, aircraft_id=aircraft.id, location="M1", at=t0)
    db_session.expunge_all()

    segment = installations.remove(db_session, component_id=motor.id, at=t0 + timedelta(hours=1))

    db_session.expunge_all()
    [closed] = installations.history(db_session, motor.id)
    assert closed.id == segment.id
    assert closed.removed_at is not None
    assert fleet_services.open_installations_for_aircraft(db_session, aircraft.id) == []


def test_closed_segment_is_frozen_except_notes(db_session, make_aircraft, make_component, t0):
    aircraft = make_aircraft()
    motor = make_component()
    installations.install(db_session, component_id=motor.id, aircraft_id=aircraft.id, location="M1", at=t0)
    segment = installations.remove(db_session, component_id=motor.id, at=t0 + timedelta(hours=1))

    with pytest.raises(ValidationError):
        with unit_of_work(db_session, operation="tamper"):
            segment.accumulated_flight_hours = 99.0

    db_session.refresh(segment)
    assert segment.accumulated_flight_hours == pytest.approx(0.0)

    annotated = installations.annotate_segment(db_session, segment.id, remove_notes="bearing noise on removal")
    assert annotated.remove_notes == "bearing noise on removal"

    actions = [event.action for event in audit_services.list_audit_events(db_session, entity_id=segment.id)]
    assert sorted(actions) == ["annotate", "install", "remove"]


def test_transfer_closes_and_opens_in_one_step(db_session, make_aircraft, make_component, t0):
    first = make_aircraft()
    second = make_aircraft()
    motor = make_component()
    installations.install(db_session, component_id=motor.id, aircraft_id=first.id, location="M1", at=t0)
    apply_usage(db_session, aircraft_id=first.id, delta=UsageDelta(hours=3.5, cycles=1), at=t0 + timedelta(hours=1))

    moved_at = t0 + timedelta(hours=2)
    segment = installations.transfer(
        db_session,
        component_id=motor.id,
        to_aircraft_id=second.id,
        location="M2",
        at=moved_at,
    )

    assert segment.aircraft_id == second.id
    assert segment.inherited_flight_hours == pytest.approx(3.5)
    segments = installations.history(db_session, motor.id)
    assert len(segments) == 2
    assert segments[0].removed_at is not None
    assert installations.component_history(db_session, motor.id).is_consistent is True


def test_failed_transfer_leaves_component_where_it_was(db_session, make_aircraft, make_component, t0):
    first = make_aircraft()
    second = make_aircraft()
    motor = make_component()
    blocker = make_component()
    installations.install(db_session, component_id=motor.id, aircraft_id=first.id, location="M1", at=t0)
    installations.install(db_session, component_id=blocker.id, aircraft_id=second.id, location="M1", at=t0)

    with pytest.raises(ConflictError):
        installations.transfer(
            db_session,
            component_id=motor.id,
            to_aircraft_id=second.id,
            location="M1",
            at=t0 + timedelta(hours=1),
        )

    current = installations.current_installation(db_session, motor.id)
    assert current is not None
    assert current.aircraft_id == first.id
    assert current.removed_at is None
