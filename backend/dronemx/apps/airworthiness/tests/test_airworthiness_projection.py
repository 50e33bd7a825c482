from __future__ import annotations

from datetime import timedelta

import pytest

from dronemx.apps.airworthiness import services as airworthiness_services
from dronemx.apps.airworthiness.schemas import AirworthinessStatusEnum, FindingSeverityEnum
from dronemx.apps.fleet import installations
from dronemx.apps.fleet import models as fleet_models
from dronemx.apps.fleet.usage import UsageDelta, apply_usage
from dronemx.apps.flight import schemas as flight_schemas
from dronemx.apps.flight import services as flight_services
from dronemx.apps.flight.models import PilotReportSeverityEnum
from dronemx.apps.maintenance_program import service as program_service
from dronemx.apps.maintenance_program.models import PriorityEnum, TriggerTypeEnum


def _hours_trigger(priority, **extra):
    trigger = {
        "name": f"50h {priority.value.lower()} check",
        "trigger_type": TriggerTypeEnum.FLIGHT_HOURS,
        "interval_value": 50.0,
        "priority": priority,
    }
    trigger.update(extra)
    return trigger


def _kinds(report):
    return sorted(finding.kind for finding in report.findings)


def test_clean_aircraft_is_fully_airworthy(db_session, make_aircraft, make_program, t0):
    aircraft = make_aircraft()
    program = make_program(_hours_trigger(PriorityEnum.CRITICAL))
    program_service.attach_program(db_session, aircraft_id=aircraft.id, program_id=program.id, at=t0)

    report = airworthiness_services.aircraft_airworthiness(db_session, aircraft.id, as_of=t0 + timedelta(hours=1))

    assert report.status == AirworthinessStatusEnum.FULL
    assert report.is_airworthy is True
    assert report.findings == []


def test_overdue_critical_schedule_grounds_the_aircraft(db_session, make_aircraft, make_program, t0):
    aircraft = make_aircraft()
    program = make_program(
        _hours_trigger(PriorityEnum.CRITICAL),
        {
            "name": "annual registration",
            "trigger_type": TriggerTypeEnum.CALENDAR_DAYS,
            "interval_value": 365,
            "priority": PriorityEnum.LOW,
        },
    )
    program_service.attach_program(db_session, aircraft_id=aircraft.id, program_id=program.id, at=t0)
    apply_usage(db_session, aircraft_id=aircraft.id, delta=UsageDelta(hours=51.0, cycles=40), at=t0 + timedelta(hours=1))

    report = airworthiness_services.aircraft_airworthiness(db_session, aircraft.id, as_of=t0 + timedelta(hours=2))

    assert report.status == AirworthinessStatusEnum.GROUNDED
    assert report.is_airworthy is False
    assert [finding.kind for finding in report.grounding_findings] == ["schedule_overdue"]


def test_due_critical_schedule_is_conditional_not_grounding(db_session, make_aircraft, make_program, t0):
    aircraft = make_aircraft()
    program = make_program(_hours_trigger(PriorityEnum.CRITICAL))
    program_service.attach_program(db_session, aircraft_id=aircraft.id, program_id=program.id, at=t0)
    apply_usage(db_session, aircraft_id=aircraft.id, delta=UsageDelta(hours=50.0), at=t0 + timedelta(hours=1))

    report = airworthiness_services.aircraft_airworthiness(db_session, aircraft.id, as_of=t0 + timedelta(hours=2))

    assert report.status == AirworthinessStatusEnum.CONDITIONAL


@pytest.mark.parametrize(
    "priority, is_rii, expected",
    [
        (PriorityEnum.HIGH, False, AirworthinessStatusEnum.CONDITIONAL),
        (PriorityEnum.MEDIUM, False, AirworthinessStatusEnum.CONDITIONAL),
        (PriorityEnum.LOW, False, AirworthinessStatusEnum.FULL),
        (PriorityEnum.MEDIUM, True, AirworthinessStatusEnum.GROUNDED),
    ],
)
def test_overdue_schedule_severity_follows_priority(
    db_session, make_aircraft, make_program, t0, priority, is_rii, expected
):
    aircraft = make_aircraft()
    program = make_program(_hours_trigger(priority, is_rii=is_rii))
    program_service.attach_program(db_session, aircraft_id=aircraft.id, program_id=program.id, at=t0)
    apply_usage(db_session, aircraft_id=aircraft.id, delta=UsageDelta(hours=60.0), at=t0 + timedelta(hours=1))

    report = airworthiness_services.aircraft_airworthiness(db_session, aircraft.id, as_of=t0 + timedelta(hours=2))

    assert report.status == expected
    assert _kinds(report) == ["schedule_overdue"]


def test_calendar_items_are_projected_at_as_of(db_session, make_aircraft, make_program, t0):
    aircraft = make_aircraft()
    program = make_program(
        {
            "name": "30 day airframe inspection",
            "trigger_type": TriggerTypeEnum.CALENDAR_DAYS,
            "interval_value": 30,
            "priority": PriorityEnum.CRITICAL,
        }
    )
    program_service.attach_program(db_session, aircraft_id=aircraft.id, program_id=program.id, at=t0)

    now = airworthiness_services.aircraft_airworthiness(db_session, aircraft.id, as_of=t0 + timedelta(days=1))
    later = airworthiness_services.aircraft_airworthiness(db_session, aircraft.id, as_of=t0 + timedelta(days=31))

    assert now.status == AirworthinessStatusEnum.FULL
    assert later.status == AirworthinessStatusEnum.GROUNDED


def test_life_limited_part_grounds_only_past_its_limit(db_session, make_aircraft, make_component, t0):
    aircraft = make_aircraft()
    motor = make_component(is_life_limited=True, max_flight_hours=100.0, total_flight_hours=99.0)
    installations.install(db_session, component_id=motor.id, aircraft_id=aircraft.id, location="M1", at=t0)

    apply_usage(db_session, aircraft_id=aircraft.id, delta=UsageDelta(hours=1.0), at=t0 + timedelta(hours=1))
    at_limit = airworthiness_services.aircraft_airworthiness(db_session, aircraft.id, as_of=t0 + timedelta(hours=1))
    assert at_limit.status == AirworthinessStatusEnum.FULL

    apply_usage(db_session, aircraft_id=aircraft.id, delta=UsageDelta(hours=0.5), at=t0 + timedelta(hours=2))
    past_limit = airworthiness_services.aircraft_airworthiness(db_session, aircraft.id, as_of=t0 + timedelta(hours=2))
    assert past_limit.status == AirworthinessStatusEnum.GROUNDED
    assert past_limit.grounding_findings[0].entity_id == motor.id
    assert past_limit.grounding_findings[0].kind == "life_limit_exceeded"

    component_report = airworthiness_services.component_airworthiness(db_session, motor.id, as_of=t0 + timedelta(hours=2))
    assert component_report.status == AirworthinessStatusEnum.GROUNDED
    assert component_report.aircraft_id == aircraft.id


def test_removed_llp_no_longer_grounds_the_aircraft(db_session, make_aircraft, make_component, t0):
    aircraft = make_aircraft()
    motor = make_component(is_life_limited=True, max_cycles=10, total_flight_cycles=10)
    installations.install(db_session, component_id=motor.id, aircraft_id=aircraft.id, location="M1", at=t0)
    apply_usage(db_session, aircraft_id=aircraft.id, delta=UsageDelta(hours=0.2, cycles=1), at=t0 + timedelta(hours=1))
    assert (
        airworthiness_services.aircraft_airworthiness(db_session, aircraft.id, as_of=t0 + timedelta(hours=1)).status
        == AirworthinessStatusEnum.GROUNDED
    )

    installations.remove(db_session, component_id=motor.id, at=t0 + timedelta(hours=2))

    report = airworthiness_services.aircraft_airworthiness(db_session, aircraft.id, as_of=t0 + timedelta(hours=3))
    assert report.status == AirworthinessStatusEnum.FULL
    assert airworthiness_services.component_airworthiness(db_session, motor.id).status == AirworthinessStatusEnum.GROUNDED


def test_installed_component_flagged_unairworthy_grounds(db_session, make_aircraft, make_component, t0):
    aircraft = make_aircraft()
    camera = make_component(fleet_models.ComponentTypeEnum.CAMERA)
    installations.install(db_session, component_id=camera.id, aircraft_id=aircraft.id, location="PAYLOAD", at=t0)

    camera.is_airworthy = False
    db_session.commit()

    report = airworthiness_services.aircraft_airworthiness(db_session, aircraft.id, as_of=t0 + timedelta(hours=1))
    assert report.status == AirworthinessStatusEnum.GROUNDED
    assert _kinds(report) == ["component_unairworthy"]


@pytest.mark.parametrize(
    "severity, is_aog, expected",
    [
        (PilotReportSeverityEnum.CRITICAL, False, AirworthinessStatusEnum.GROUNDED),
        (PilotReportSeverityEnum.LOW, True, AirworthinessStatusEnum.GROUNDED),
        (PilotReportSeverityEnum.HIGH, False, AirworthinessStatusEnum.CONDITIONAL),
        (PilotReportSeverityEnum.LOW, False, AirworthinessStatusEnum.FULL),
    ],
)
def test_unresolved_pilot_reports(db_session, make_aircraft, make_user, t0, severity, is_aog, expected):
    aircraft = make_aircraft()
    pilot = make_user()
    report = flight_services.file_pilot_report(
        db_session,
        flight_schemas.PilotReportCreate(
            aircraft_id=aircraft.id,
            title="Vibration on climb",
            severity=severity,
            is_aog=is_aog,
            reported_by_user_id=pilot.id,
            reported_at=t0,
        ),
    )

    status = airworthiness_services.aircraft_airworthiness(db_session, aircraft.id, as_of=t0 + timedelta(hours=1))
    assert status.status == expected
    assert status.findings[0].entity_id == report.id


def test_resolved_grounding_report_releases_the_aircraft(db_session, make_aircraft, make_user, t0):
    aircraft = make_aircraft()
    inspector = make_user()
    report = flight_services.file_pilot_report(
        db_session,
        flight_schemas.PilotReportCreate(
            aircraft_id=aircraft.id,
            title="Motor 3 stopped in flight",
            severity=PilotReportSeverityEnum.CRITICAL,
            reported_at=t0,
        ),
    )
    assert (
        airworthiness_services.aircraft_airworthiness(db_session, aircraft.id, as_of=t0).status
        == AirworthinessStatusEnum.GROUNDED
    )

    flight_services.resolve_pilot_report(
        db_session,
        report_id=report.id,
        resolution_notes="ESC replaced, ground run satisfactory",
        resolved_by_user_id=inspector.id,
        at=t0 + timedelta(hours=4),
    )

    released = airworthiness_services.aircraft_airworthiness(db_session, aircraft.id, as_of=t0 + timedelta(hours=5))
    assert released.status == AirworthinessStatusEnum.FULL


def test_aog_aircraft_is_grounded(db_session, make_aircraft, t0):
    aircraft = make_aircraft()
    aircraft.status = fleet_models.AircraftStatusEnum.AOG
    db_session.commit()

    report = airworthiness_services.aircraft_airworthiness(db_session, aircraft.id, as_of=t0)
    assert report.status == AirworthinessStatusEnum.GROUNDED
    assert report.findings[0].severity == FindingSeverityEnum.GROUNDING
