from __future__ import annotations

from datetime import timedelta

import pytest

from dronemx.apps.accounts.models import UserRoleEnum
from dronemx.apps.audit import services as audit_services
from dronemx.apps.crs import models as crs_models
from dronemx.apps.crs import schemas as crs_schemas
from dronemx.apps.crs import services as crs_services
from dronemx.apps.crs import utils as crs_utils
from dronemx.apps.crs.validation import preview_release
from dronemx.apps.fleet.usage import UsageDelta, apply_usage
from dronemx.apps.flight import schemas as flight_schemas
from dronemx.apps.flight import services as flight_services
from dronemx.apps.flight.models import PilotReportSeverityEnum
from dronemx.apps.maintenance_program import service as program_service
from dronemx.apps.maintenance_program.models import TriggerTypeEnum
from dronemx.database import unit_of_work
from dronemx.errors import AuthorizationError, ConflictError, TemporalError, ValidationError


def _release(aircraft, inspector, **overrides):
    data = {
        "aircraft_id": aircraft.id,
        "released_by_user_id": inspector.id,
        "maintenance_carried_out": "Daily inspection carried out, no defects found.",
    }
    data.update(overrides)
    return crs_schemas.ReleaseCreate(**data)


def _file_report(db, aircraft, t0, severity):
    return flight_services.file_pilot_report(
        db,
        flight_schemas.PilotReportCreate(
            aircraft_id=aircraft.id,
            title="GPS dropout in hover",
            severity=severity,
            reported_at=t0,
        ),
    )


@pytest.fixture()
def inspector(make_user):
    return make_user(UserRoleEnum.INSPECTOR)


@pytest.fixture()
def completed_work_order(db_session, make_aircraft, make_program, make_user, t0):
    """A 50h check taken through open and complete on a freshly flown aircraft."""
    aircraft = make_aircraft()
    mechanic = make_user()
    program = make_program(
        {"name": "50h airframe check", "trigger_type": TriggerTypeEnum.FLIGHT_HOURS, "interval_value": 50.0}
    )
    [schedule] = program_service.attach_program(db_session, aircraft_id=aircraft.id, program_id=program.id, at=t0)
    apply_usage(db_session, aircraft_id=aircraft.id, delta=UsageDelta(hours=50.0, cycles=25), at=t0 + timedelta(hours=1))
    work_order = program_service.open_work_order(
        db_session,
        schedule_id=schedule.id,
        created_by_user_id=mechanic.id,
        at=t0 + timedelta(hours=2),
    )
    program_service.complete_work_order(
        db_session,
        work_order_id=work_order.id,
        performed_by_user_id=mechanic.id,
        at=t0 + timedelta(hours=3),
    )
    return aircraft, work_order


def test_issue_release_snapshots_the_aircraft(db_session, make_aircraft, inspector, t0):
    aircraft = make_aircraft()
    apply_usage(db_session, aircraft_id=aircraft.id, delta=UsageDelta(hours=12.5, cycles=9), at=t0)

    record = crs_services.issue_release(db_session, _release(aircraft, inspector), at=t0 + timedelta(hours=1))

    assert record.release_serial == "26R0001"
    assert record.scope == crs_models.ReleaseScopeEnum.AIRCRAFT
    assert record.status == crs_models.ReleaseStatusEnum.FULL
    assert record.aircraft_flight_hours == pytest.approx(12.5)
    assert record.aircraft_flight_cycles == 9
    assert record.is_valid is True
    assert len(record.signature_hash) == 64
    assert crs_services.current_release(db_session, aircraft.id).id == record.id

    [event] = audit_services.list_audit_events(db_session, entity_type="release_record", entity_id=record.id)
    assert event.action == "issue"
    assert event.after["supersedes"] is None


def test_new_release_supersedes_the_previous_one(db_session, make_aircraft, inspector, t0):
    aircraft = make_aircraft()
    first = crs_services.issue_release(db_session, _release(aircraft, inspector), at=t0)
    second = crs_services.issue_release(
        db_session,
        _release(aircraft, inspector, maintenance_carried_out="Propellers replaced."),
        at=t0 + timedelta(days=1),
    )

    db_session.refresh(first)
    assert first.is_valid is False
    assert first.superseded_by_id == second.id
    assert first.superseded_at is not None
    assert second.is_valid is True
    assert second.release_serial == "26R0002"

    assert crs_services.current_release(db_session, aircraft.id).id == second.id
    assert [record.id for record in crs_services.release_history(db_session, aircraft.id)] == [first.id, second.id]


def test_grounded_aircraft_cannot_be_released(db_session, make_aircraft, inspector, t0):
    aircraft = make_aircraft()
    _file_report(db_session, aircraft, t0, PilotReportSeverityEnum.CRITICAL)

    with pytest.raises(ConflictError) as exc:
        crs_services.issue_release(db_session, _release(aircraft, inspector), at=t0 + timedelta(hours=1))

    assert exc.value.code == "aircraft_grounded"
    assert exc.value.detail[0]["kind"] == "pilot_report_open"
    assert crs_services.release_history(db_session, aircraft.id) == []


def test_conditional_release_must_state_conditions(db_session, make_aircraft, inspector, t0):
    aircraft = make_aircraft()
    _file_report(db_session, aircraft, t0, PilotReportSeverityEnum.MEDIUM)

    with pytest.raises(ValidationError) as exc:
        crs_services.issue_release(db_session, _release(aircraft, inspector), at=t0 + timedelta(hours=1))
    assert exc.value.field == "conditions"

    record = crs_services.issue_release(
        db_session,
        _release(aircraft, inspector, conditions="  Day VFR only until GPS module is replaced.  "),
        at=t0 + timedelta(hours=1),
    )
    assert record.status == crs_models.ReleaseStatusEnum.CONDITIONAL
    assert record.conditions == "Day VFR only until GPS module is replaced."


def test_releaser_needs_inspector_authority(db_session, make_aircraft, make_user, t0):
    aircraft = make_aircraft()
    mechanic = make_user(UserRoleEnum.MECHANIC)
    manager = make_user(UserRoleEnum.MANAGER)

    with pytest.raises(AuthorizationError) as exc:
        crs_services.issue_release(db_session, _release(aircraft, mechanic), at=t0)
    assert exc.value.field == "released_by_user_id"

    record = crs_services.issue_release(db_session, _release(aircraft, manager), at=t0)
    assert record.released_by_user_id == manager.id


def test_work_order_release_needs_a_completed_order(db_session, make_aircraft, make_program, make_user, inspector, t0):
    aircraft = make_aircraft()
    mechanic = make_user()
    program = make_program(
        {"name": "50h airframe check", "trigger_type": TriggerTypeEnum.FLIGHT_HOURS, "interval_value": 50.0}
    )
    [schedule] = program_service.attach_program(db_session, aircraft_id=aircraft.id, program_id=program.id, at=t0)
    apply_usage(db_session, aircraft_id=aircraft.id, delta=UsageDelta(hours=50.0), at=t0 + timedelta(hours=1))
    work_order = program_service.open_work_order(
        db_session,
        schedule_id=schedule.id,
        created_by_user_id=mechanic.id,
        at=t0 + timedelta(hours=2),
    )

    with pytest.raises(ConflictError) as exc:
        crs_services.issue_release(
            db_session,
            _release(aircraft, inspector, work_order_id=work_order.id),
            at=t0 + timedelta(hours=3),
        )
    assert exc.value.field == "status"


def test_work_order_release(db_session, completed_work_order, inspector, t0):
    aircraft, work_order = completed_work_order

    record = crs_services.issue_release(
        db_session,
        _release(aircraft, inspector, work_order_id=work_order.id, maintenance_carried_out="50h check completed."),
        at=t0 + timedelta(hours=4),
    )

    assert record.scope == crs_models.ReleaseScopeEnum.WORK_ORDER
    assert record.work_order_id == work_order.id
    assert record.release_serial == "26W0001"


def test_work_order_release_cannot_precede_completion(db_session, completed_work_order, inspector, t0):
    aircraft, work_order = completed_work_order

    with pytest.raises(TemporalError):
        crs_services.issue_release(
            db_session,
            _release(aircraft, inspector, work_order_id=work_order.id),
            at=t0 + timedelta(hours=2, minutes=30),
        )


def test_work_order_must_belong_to_the_released_aircraft(
    db_session, completed_work_order, make_aircraft, inspector, t0
):
    _, work_order = completed_work_order
    other = make_aircraft()

    with pytest.raises(ValidationError) as exc:
        crs_services.issue_release(
            db_session,
            _release(other, inspector, work_order_id=work_order.id),
            at=t0 + timedelta(hours=4),
        )
    assert exc.value.field == "work_order_id"


def test_issued_record_is_immutable(db_session, make_aircraft, inspector, t0):
    aircraft = make_aircraft()
    record = crs_services.issue_release(db_session, _release(aircraft, inspector), at=t0)

    with pytest.raises(ValidationError):
        with unit_of_work(db_session, operation="edit_release"):
            record.maintenance_carried_out = "Something else entirely."

    db_session.refresh(record)
    assert record.maintenance_carried_out == "Daily inspection carried out, no defects found."


def test_preview_reports_blockers_without_writing(db_session, make_aircraft, inspector, t0):
    aircraft = make_aircraft()
    clean = preview_release(db_session, _release(aircraft, inspector), at=t0)
    assert clean.can_issue is True
    assert clean.blockers == []

    _file_report(db_session, aircraft, t0, PilotReportSeverityEnum.CRITICAL)
    blocked = preview_release(db_session, _release(aircraft, inspector), at=t0 + timedelta(hours=1))
    assert blocked.can_issue is False
    assert "grounded" in blocked.blockers[0]
    assert crs_services.release_history(db_session, aircraft.id) == []


def test_serials_run_per_year_and_scope(db_session, make_aircraft, inspector, t0):
    aircraft = make_aircraft()
    crs_services.issue_release(db_session, _release(aircraft, inspector), at=t0)

    assert crs_utils.generate_release_serial(db_session, crs_models.ReleaseScopeEnum.AIRCRAFT, t0.date()) == "26R0002"
    assert crs_utils.generate_release_serial(db_session, crs_models.ReleaseScopeEnum.WORK_ORDER, t0.date()) == "26W0001"
    next_year = t0.date().replace(year=2027)
    assert crs_utils.generate_release_serial(db_session, crs_models.ReleaseScopeEnum.AIRCRAFT, next_year) == "27R0001"


def test_signature_hash_is_order_independent():
    assert crs_utils.signature_hash({"a": 1, "b": "x"}) == crs_utils.signature_hash({"b": "x", "a": 1})
    assert crs_utils.signature_hash({"a": 1}) != crs_utils.signature_hash({"a": 2})
