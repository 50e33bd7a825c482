from __future__ import annotations

from typing import Optional

from sqlalchemy.orm import Session

from ...errors import AuthorizationError, ConflictError, NotFoundError
from . import models


def create_user(
    db: Session,
    *,
    email: str,
    full_name: str,
    role: models.UserRoleEnum = models.UserRoleEnum.MECHANIC,
) -> models.User:
    normalized = email.strip().lower()
    existing = db.query(models.User).filter(models.User.email == normalized).first()
    if existing:
        raise ConflictError(
            f"User {normalized} already exists.",
            entity_type="user",
            entity_id=existing.id,
            field="email",
        )
    user = models.User(email=normalized, full_name=full_name, role=role)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def get_user(db: Session, user_id: Optional[str], *, field: str = "user_id") -> models.User:
    if not user_id:
        raise NotFoundError("User reference is required.", entity_type="user", field=field)
    user = db.get(models.User, user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found.", entity_type="user", entity_id=user_id, field=field)
    return user


def require_role(
    db: Session,
    user_id: Optional[str],
    required: models.UserRoleEnum,
    *,
    field: str = "user_id",
) -> models.User:
    user = get_user(db, user_id, field=field)
    if not user.has_role(required):
        raise AuthorizationError(
            f"User {user.id} ({user.role.value}) lacks the {required.value} role.",
            entity_type="user",
            entity_id=user.id,
            field=field,
        )
    return user
