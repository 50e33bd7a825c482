# backend/dronemx/__init__.py
"""
Import ORM models from each app so that:

- Alembic and Base.metadata.create_all() see all tables.
- The package exposes a clear surface.

The actual model classes are kept in dronemx/apps/*/models.py.
"""

from .apps.accounts import models as accounts_models                        # users / roles
from .apps.audit import models as audit_models                              # audit trail
from .apps.fleet import models as fleet_models                              # aircraft, components, segments, usage
from .apps.maintenance_program import models as maintenance_program_models  # programs, triggers, schedules
from .apps.work import models as work_models                                # work orders
from .apps.flight import models as flight_models                            # pilot reports
from .apps.crs import models as crs_models                                  # release records

__all__ = [
    "accounts_models",
    "audit_models",
    "fleet_models",
    "maintenance_program_models",
    "work_models",
    "flight_models",
    "crs_models",
]
