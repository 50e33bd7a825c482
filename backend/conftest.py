from __future__ import annotations

import os
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parent
sys.path.append(str(ROOT))

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["DATABASE_WRITE_URL"] = "sqlite+pysqlite:///:memory:"

from dronemx.database import Base  # noqa: E402
from dronemx.apps.accounts import models as account_models  # noqa: E402
from dronemx.apps.accounts import services as account_services  # noqa: E402
from dronemx.apps.audit import models as audit_models  # noqa: E402,F401
from dronemx.apps.crs import models as crs_models  # noqa: E402,F401
from dronemx.apps.fleet import models as fleet_models  # noqa: E402
from dronemx.apps.fleet import schemas as fleet_schemas  # noqa: E402
from dronemx.apps.fleet import services as fleet_services  # noqa: E402
from dronemx.apps.flight import models as flight_models  # noqa: E402,F401
from dronemx.apps.maintenance_program import models as program_models  # noqa: E402,F401
from dronemx.apps.maintenance_program import schemas as program_schemas  # noqa: E402
from dronemx.apps.maintenance_program import service as program_service  # noqa: E402
from dronemx.apps.work import models as work_models  # noqa: E402,F401

T0 = datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)


def _session_factory(engine):
    Base.metadata.create_all(bind=engine)
    return sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )


@pytest.fixture()
def db_session():
    engine = create_engine("sqlite+pysqlite:///:memory:")
    TestingSession = _session_factory(engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture()
def file_session_factory(tmp_path):
    """Two sessions on one file database, for optimistic-lock races."""
    engine = create_engine(f"sqlite+pysqlite:///{tmp_path / 'dronemx.db'}")
    TestingSession = _session_factory(engine)
    yield TestingSession
    engine.dispose()


@pytest.fixture()
def t0() -> datetime:
    return T0


@pytest.fixture()
def make_user(db_session):
    counter = {"n": 0}

    def _make(role=account_models.UserRoleEnum.MECHANIC, *, name=None):
        counter["n"] += 1
        label = name or f"{role.value.lower()}{counter['n']}"
        return account_services.create_user(
            db_session,
            email=f"{label}@example.com",
            full_name=label.title(),
            role=role,
        )

    return _make


@pytest.fixture()
def make_aircraft(db_session):
    counter = {"n": 0}

    def _make(model="QX-4", **overrides):
        counter["n"] += 1
        data = {
            "registration_number": f"5Y-D{counter['n']:02d}",
            "serial_number": f"AC-{counter['n']:04d}",
            "model": model,
        }
        data.update(overrides)
        return fleet_services.create_aircraft(db_session, fleet_schemas.AircraftCreate(**data))

    return _make


@pytest.fixture()
def make_component(db_session):
    counter = {"n": 0}

    def _make(component_type=fleet_models.ComponentTypeEnum.MOTOR, **overrides):
        counter["n"] += 1
        data = {
            "serial_number": f"{component_type.value[:3]}-{counter['n']:04d}",
            "part_number": f"PN-{component_type.value}",
            "component_type": component_type,
        }
        data.update(overrides)
        return fleet_services.create_component(db_session, fleet_schemas.ComponentCreate(**data))

    return _make


@pytest.fixture()
def make_program(db_session):
    counter = {"n": 0}

    def _make(*triggers, model="QX-4", is_default=False):
        counter["n"] += 1
        return program_service.create_program(
            db_session,
            program_schemas.ProgramCreate(
                name=f"Program {counter['n']}",
                aircraft_model=model,
                is_default=is_default,
                triggers=[program_schemas.TriggerCreate(**trigger) for trigger in triggers],
            ),
        )

    return _make


@pytest.fixture()
def schedule_for():
    def _find(schedules, trigger_name):
        for schedule in schedules:
            if schedule.trigger.name == trigger_name:
                return schedule
        raise AssertionError(f"no schedule for trigger {trigger_name}")

    return _find

