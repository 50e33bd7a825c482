# backend/dronemx/apps/accounts/models.py
#
# Users as far as the maintenance core needs them: identity plus a single
# ranked role used for performer / inspector / releaser checks.
# Authentication lives outside this package.

from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Enum as SQLEnum, String

from ...database import Base
from ...utils.identifiers import generate_uuid7


class UserRoleEnum(str, enum.Enum):
    """Roles in ascending order of authority."""

    PILOT = "PILOT"
    MECHANIC = "MECHANIC"
    INSPECTOR = "INSPECTOR"
    MANAGER = "MANAGER"
    ADMIN = "ADMIN"


ROLE_RANK = {
    UserRoleEnum.PILOT: 0,
    UserRoleEnum.MECHANIC: 1,
    UserRoleEnum.INSPECTOR: 2,
    UserRoleEnum.MANAGER: 3,
    UserRoleEnum.ADMIN: 4,
}


def role_satisfies(role: UserRoleEnum | str | None, required: UserRoleEnum | str | None) -> bool:
    if required is None:
        return True
    if role is None:
        return False
    return ROLE_RANK[UserRoleEnum(role)] >= ROLE_RANK[UserRoleEnum(required)]


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    full_name = Column(String(255), nullable=False)
    role = Column(
        SQLEnum(UserRoleEnum, name="user_role_enum", native_enum=False),
        nullable=False,
        default=UserRoleEnum.MECHANIC,
        index=True,
    )
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def has_role(self, required: UserRoleEnum | str | None) -> bool:
        return self.is_active and role_satisfies(self.role, required)

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email} role={self.role}>"
