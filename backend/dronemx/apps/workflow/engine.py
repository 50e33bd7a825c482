from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ...errors import AuthorizationError, ConflictError, CoreError, ValidationError
from ..audit import services as audit_services
from .registry import WORKFLOWS


class TransitionError(ConflictError):
    """The requested state change is not allowed from the current state."""

    code = "invalid_transition"


_FAILURE_KINDS = (
    ("authorization", AuthorizationError),
    ("validation", ValidationError),
    ("conflict", ConflictError),
)


def _state(value: Any) -> str:
    return str(getattr(value, "value", value))


def _raise_for_failures(entity_type: str, entity_id: str, failures: List[Dict[str, str]]) -> None:
    kinds = {failure.get("kind", "conflict") for failure in failures}
    for kind, error_cls in _FAILURE_KINDS:
        if kind in kinds:
            selected = [failure for failure in failures if failure.get("kind", "conflict") == kind]
            first = selected[0]
            raise error_cls(
                first["reason"],
                entity_type=entity_type,
                entity_id=entity_id,
                field=first.get("field"),
                detail=[{"field": item["field"], "reason": item["reason"]} for item in selected],
                code="missing_requirements" if error_cls is ConflictError else None,
            )
    raise CoreError("Transition requirements not met.", entity_type=entity_type, entity_id=entity_id, detail=failures)


def apply_transition(
    db: Session,
    *,
    actor_user_id: Optional[str],
    entity_type: str,
    entity_id: str,
    from_state: Any,
    to_state: Any,
    before_obj: Any,
    after_obj: Any,
    occurred_at: Optional[datetime] = None,
    correlation_id: Optional[str] = None,
    critical: bool = True,
) -> None:
    """
    Check a registered transition, run its guards and write the audit event.

    The caller mutates the entity; this only decides whether it may.
    """
    from_key = _state(from_state)
    to_key = _state(to_state)

    workflow = WORKFLOWS.get(entity_type)
    if not workflow:
        raise TransitionError(
            f"No workflow registered for {entity_type}.",
            entity_type=entity_type,
            entity_id=entity_id,
            field="entity_type",
        )

    allowed = workflow.get("transitions", {}).get(from_key, {})
    guards = allowed.get(to_key)
    if guards is None:
        raise TransitionError(
            f"Cannot transition from {from_key} to {to_key}.",
            entity_type=entity_type,
            entity_id=entity_id,
            field="status",
            detail=[{"field": "status", "reason": f"Cannot transition from {from_key} to {to_key}"}],
        )

    failures: List[Dict[str, str]] = []
    for guard in guards:
        failures.extend(
            guard(
                db,
                before_obj=before_obj,
                after_obj=after_obj,
                from_state=from_key,
                to_state=to_key,
            )
        )
    if failures:
        _raise_for_failures(entity_type, entity_id, failures)

    before_payload: Dict[str, Any] = {"status": from_key}
    after_payload: Dict[str, Any] = {"status": to_key}
    if isinstance(before_obj, dict):
        before_payload.update(before_obj)
        before_payload["status"] = from_key
    if isinstance(after_obj, dict):
        after_payload.update(after_obj)
        after_payload["status"] = to_key

    audit_services.log_event(
        db,
        actor_user_id=actor_user_id,
        entity_type=entity_type,
        entity_id=entity_id,
        action="transition",
        before=before_payload,
        after=after_payload,
        occurred_at=occurred_at,
        correlation_id=correlation_id,
        metadata={"workflow": entity_type},
        critical=critical,
    )
