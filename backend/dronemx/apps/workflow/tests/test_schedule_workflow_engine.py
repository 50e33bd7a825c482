from __future__ import annotations

import pytest

from dronemx.apps.audit import services as audit_services
from dronemx.apps.maintenance_program import service as program_service
from dronemx.apps.maintenance_program.models import TriggerTypeEnum
from dronemx.apps.work import services as work_services
from dronemx.apps.workflow import TransitionError, apply_transition
from dronemx.apps.workflow.engine import _raise_for_failures
from dronemx.database import unit_of_work
from dronemx.errors import AuthorizationError, ConflictError, ValidationError


def _move(db, from_state, to_state, *, before=None, after=None, entity_type="maintenance_schedule"):
    apply_transition(
        db,
        actor_user_id=None,
        entity_type=entity_type,
        entity_id="sched-1",
        from_state=from_state,
        to_state=to_state,
        before_obj=before,
        after_obj=after,
    )


def test_unknown_entity_type_is_rejected(db_session):
    with pytest.raises(TransitionError) as exc:
        _move(db_session, "DRAFT", "ACTIVE", entity_type="task_card")
    assert exc.value.field == "entity_type"


@pytest.mark.parametrize(
    "from_state, to_state",
    [
        ("SCHEDULED", "IN_PROGRESS"),
        ("SCHEDULED", "COMPLETED"),
        ("COMPLETED", "DUE"),
        ("IN_PROGRESS", "SCHEDULED"),
        ("SUSPENDED", "IN_PROGRESS"),
    ],
)
def test_unregistered_transition_is_rejected(db_session, from_state, to_state):
    with pytest.raises(TransitionError) as exc:
        _move(db_session, from_state, to_state)
    assert isinstance(exc.value, ConflictError)
    assert exc.value.code == "invalid_transition"


def test_evaluation_moves_write_a_transition_event(db_session, t0):
    apply_transition(
        db_session,
        actor_user_id=None,
        entity_type="maintenance_schedule",
        entity_id="sched-1",
        from_state="SCHEDULED",
        to_state="DUE",
        before_obj={"due_at_value": 50.0},
        after_obj={"due_at_value": 50.0, "status": "ignored"},
        occurred_at=t0,
    )
    db_session.commit()

    [event] = audit_services.list_audit_events(db_session, entity_id="sched-1", action="transition")
    assert event.before == {"status": "SCHEDULED", "due_at_value": 50.0}
    assert event.after == {"status": "DUE", "due_at_value": 50.0}
    assert event.metadata_json == {"workflow": "maintenance_schedule"}


def test_completion_requires_a_qualified_performer(db_session):
    with pytest.raises(AuthorizationError) as exc:
        _move(
            db_session,
            "IN_PROGRESS",
            "COMPLETED",
            after={"performed_by_user_id": "u-1", "performer_role": "PILOT", "required_role": "MECHANIC"},
        )
    assert exc.value.field == "performed_by_user_id"

    with pytest.raises(AuthorizationError):
        _move(db_session, "IN_PROGRESS", "COMPLETED", after={"required_role": "MECHANIC"})


def test_rii_completion_requires_independent_inspector(db_session):
    base = {
        "performed_by_user_id": "u-1",
        "performer_role": "MECHANIC",
        "required_role": "MECHANIC",
        "is_rii": True,
        "inspector_role_required": True,
    }

    with pytest.raises(AuthorizationError) as exc:
        _move(db_session, "IN_PROGRESS", "COMPLETED", after=dict(base, inspected_by_user_id="u-1"))
    assert exc.value.field == "inspected_by_user_id"

    with pytest.raises(AuthorizationError):
        _move(
            db_session,
            "IN_PROGRESS",
            "COMPLETED",
            after=dict(base, inspected_by_user_id="u-2", inspector_role="MECHANIC"),
        )

    _move(
        db_session,
        "IN_PROGRESS",
        "COMPLETED",
        after=dict(base, inspected_by_user_id="u-2", inspector_role="MECHANIC", inspector_role_required=False),
    )


def test_skip_requires_a_reason(db_session):
    with pytest.raises(ValidationError) as exc:
        _move(db_session, "IN_PROGRESS", "SKIPPED", after={"skip_reason": "   "})
    assert exc.value.field == "skip_reason"

    _move(db_session, "IN_PROGRESS", "SKIPPED", after={"skip_reason": "Aircraft sold before check"})


def test_second_active_work_order_is_a_conflict(db_session, make_aircraft, make_program, t0):
    aircraft = make_aircraft()
    program = make_program(
        {"name": "50h check", "trigger_type": TriggerTypeEnum.FLIGHT_HOURS, "interval_value": 50.0}
    )
    [schedule] = program_service.attach_program(db_session, aircraft_id=aircraft.id, program_id=program.id, at=t0)
    with unit_of_work(db_session, operation="seed_work_order"):
        work_services.create_work_order(
            db_session,
            aircraft_id=aircraft.id,
            schedule_id=schedule.id,
            title="50h check",
            at=t0,
        )

    with pytest.raises(ConflictError) as exc:
        _move(db_session, "DUE", "IN_PROGRESS", before={"id": schedule.id})
    assert not isinstance(exc.value, TransitionError)
    assert exc.value.code == "missing_requirements"

    with pytest.raises(ValidationError):
        _move(db_session, "DUE", "IN_PROGRESS", before={"id": None})


def test_authorization_failures_outrank_validation_failures():
    failures = [
        {"field": "skip_reason", "reason": "reason required", "kind": "validation"},
        {"field": "performed_by_user_id", "reason": "performer sign-off required", "kind": "authorization"},
    ]

    with pytest.raises(AuthorizationError) as exc:
        _raise_for_failures("maintenance_schedule", "sched-1", failures)

    assert exc.value.message == "performer sign-off required"
    assert exc.value.detail == [{"field": "performed_by_user_id", "reason": "performer sign-off required"}]
