from __future__ import annotations

from typing import Any, Dict, List

from sqlalchemy.orm import Session

from ..accounts.models import UserRoleEnum, role_satisfies
from ..work import models as work_models

# Each failure is {"field", "reason", "kind"}; kind is one of
# "authorization", "validation" or "conflict" and selects the error raised.
GuardResult = List[Dict[str, str]]


def _get_value(obj: Any, key: str) -> Any:
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, key, None)


def guard_single_active_work_order(
    db: Session,
    *,
    before_obj: Any,
    after_obj: Any,
    from_state: str,
    to_state: str,
) -> GuardResult:
    schedule_id = _get_value(before_obj, "id")
    if not schedule_id:
        return [{"field": "id", "reason": "schedule id required", "kind": "validation"}]
    active = (
        db.query(work_models.WorkOrder.id)
        .filter(
            work_models.WorkOrder.schedule_id == schedule_id,
            work_models.WorkOrder.status.in_(list(work_models.ACTIVE_WORK_ORDER_STATUSES)),
        )
        .first()
    )
    if active is not None:
        return [
            {
                "field": "work_order_id",
                "reason": f"schedule already has active work order {active[0]}",
                "kind": "conflict",
            }
        ]
    return []


def guard_performer_role(
    db: Session,
    *,
    before_obj: Any,
    after_obj: Any,
    from_state: str,
    to_state: str,
) -> GuardResult:
    performer_id = _get_value(after_obj, "performed_by_user_id")
    if not performer_id:
        return [{"field": "performed_by_user_id", "reason": "performer sign-off required", "kind": "authorization"}]
    required = _get_value(after_obj, "required_role")
    if not role_satisfies(_get_value(after_obj, "performer_role"), required):
        return [
            {
                "field": "performed_by_user_id",
                "reason": f"performer must hold the {UserRoleEnum(required).value} role",
                "kind": "authorization",
            }
        ]
    return []


def guard_rii_signoff(
    db: Session,
    *,
    before_obj: Any,
    after_obj: Any,
    from_state: str,
    to_state: str,
) -> GuardResult:
    if not _get_value(after_obj, "is_rii"):
        return []
    performer_id = _get_value(after_obj, "performed_by_user_id")
    inspector_id = _get_value(after_obj, "inspected_by_user_id")
    if not inspector_id:
        return [{"field": "inspected_by_user_id", "reason": "independent inspector sign-off required", "kind": "authorization"}]
    if inspector_id == performer_id:
        return [{"field": "inspected_by_user_id", "reason": "inspector must differ from performer", "kind": "authorization"}]
    if _get_value(after_obj, "inspector_role_required") and not role_satisfies(
        _get_value(after_obj, "inspector_role"), UserRoleEnum.INSPECTOR
    ):
        return [
            {
                "field": "inspected_by_user_id",
                "reason": "inspector must hold the INSPECTOR role",
                "kind": "authorization",
            }
        ]
    return []


def guard_skip_reason(
    db: Session,
    *,
    before_obj: Any,
    after_obj: Any,
    from_state: str,
    to_state: str,
) -> GuardResult:
    reason = _get_value(after_obj, "skip_reason")
    if not reason or not str(reason).strip():
        return [{"field": "skip_reason", "reason": "reason required to skip", "kind": "validation"}]
    return []
