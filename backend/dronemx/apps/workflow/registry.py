from __future__ import annotations

from .guards import (
    guard_performer_role,
    guard_rii_signoff,
    guard_single_active_work_order,
    guard_skip_reason,
)

# Evaluation moves (SCHEDULED/DUE/OVERDUE/SUSPENDED among themselves) carry
# no guards; operator moves into and out of IN_PROGRESS do.
WORKFLOWS = {
    "maintenance_schedule": {
        "transitions": {
            "SCHEDULED": {
                "DUE": [],
                "OVERDUE": [],
                "SUSPENDED": [],
            },
            "DUE": {
                "SCHEDULED": [],
                "OVERDUE": [],
                "SUSPENDED": [],
                "IN_PROGRESS": [guard_single_active_work_order],
            },
            "OVERDUE": {
                "SCHEDULED": [],
                "DUE": [],
                "SUSPENDED": [],
                "IN_PROGRESS": [guard_single_active_work_order],
            },
            "IN_PROGRESS": {
                "COMPLETED": [guard_performer_role, guard_rii_signoff],
                "SKIPPED": [guard_skip_reason],
            },
            "COMPLETED": {
                "SCHEDULED": [],
            },
            "SKIPPED": {
                "SCHEDULED": [],
                "DUE": [],
                "OVERDUE": [],
                "SUSPENDED": [],
            },
            "SUSPENDED": {
                "SCHEDULED": [],
                "DUE": [],
                "OVERDUE": [],
            },
        }
    },
}
