# backend/dronemx/errors.py
"""
Typed failures raised by the maintenance core.

Every error carries the entity it concerns and, where relevant, the
offending field so the calling layer can render a precise message.
`to_http_exception` is the single place where these are translated into
FastAPI responses.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status


class CoreError(Exception):
    code = "core_error"
    http_status = status.HTTP_400_BAD_REQUEST

    def __init__(
        self,
        message: str,
        *,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        field: Optional[str] = None,
        detail: Optional[List[Dict[str, str]]] = None,
        code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.field = field
        self.detail = detail or []
        if code:
            self.code = code

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.entity_type:
            payload["entity_type"] = self.entity_type
        if self.entity_id:
            payload["entity_id"] = self.entity_id
        if self.field:
            payload["field"] = self.field
        if self.detail:
            payload["detail"] = list(self.detail)
        return payload

    def __repr__(self) -> str:
        return f"<{type(self).__name__} code={self.code} entity={self.entity_type}:{self.entity_id}>"


class ValidationError(CoreError):
    """Malformed or out-of-range input. Never worth retrying."""

    code = "validation_error"
    http_status = status.HTTP_422_UNPROCESSABLE_CONTENT


class ConflictError(CoreError):
    """Concurrent mutation or a uniqueness rule (open segment, active work order)."""

    code = "conflict"
    http_status = status.HTTP_409_CONFLICT


class NotFoundError(CoreError):
    code = "not_found"
    http_status = status.HTTP_404_NOT_FOUND


class TemporalError(CoreError):
    """Timestamps out of order, e.g. a removal before the install."""

    code = "temporal_error"
    http_status = status.HTTP_422_UNPROCESSABLE_CONTENT


class AuthorizationError(CoreError):
    """Role or RII sign-off requirement not met."""

    code = "authorization_error"
    http_status = status.HTTP_403_FORBIDDEN


def to_http_exception(exc: CoreError) -> HTTPException:
    return HTTPException(status_code=exc.http_status, detail=exc.to_dict())
