from __future__ import annotations

from collections.abc import Sequence
from enum import Enum
from typing import Protocol

from src.core.config import get_settings
from src.domain.models import User


class Role(str, Enum):
    TA_STAFF = "ta_staff"
    HR_STAFF = "hr_staff"
    MANAGER = "manager"
    ADMIN = "admin"

    @classmethod
    def contains(cls, value: str) -> bool:
        return value in {role.value for role in cls}


class TalentEditPolicy(Protocol):
    """Decides whether an actor may mutate a talent's record."""

    async def can_edit(self, actor: User, talent_id: int) -> bool: ...


class RoleTalentEditPolicy:
    """Grant edit rights by role, optionally limited to the talents an actor manages.

    Admins may edit any talent. Other editor roles may edit a talent only when
    the actor carries no ``managed_talent_ids`` restriction or the talent is in it.
    """

    def __init__(self, editor_roles: Sequence[str] | None = None) -> None:
        settings = get_settings()
        roles = tuple(editor_roles) if editor_roles is not None else settings.editor_roles

        invalid_roles = [role for role in roles if not Role.contains(role)]
        if invalid_roles:
            joined_roles = ", ".join(invalid_roles)
            raise ValueError(f"Unsupported role(s) requested: {joined_roles}")

        self.editor_roles = frozenset(roles)

    async def can_edit(self, actor: User, talent_id: int) -> bool:
        if Role.ADMIN.value in actor.roles:
            return True
        if not self.editor_roles.intersection(actor.roles):
            return False
        if actor.managed_talent_ids is None:
            return True
        return talent_id in actor.managed_talent_ids


class TalentEditForbiddenError(Exception):
    """Raised when the actor lacks edit rights on the talent record."""

    def __init__(self, actor_id: str, talent_id: int):
        super().__init__(f"User {actor_id} may not edit talent {talent_id}")
        self.actor_id = actor_id
        self.talent_id = talent_id


async def ensure_can_edit(policy: TalentEditPolicy, actor: User | None, talent_id: int) -> None:
    """Raise ``TalentEditForbiddenError`` unless ``actor`` may edit the talent.

    ``actor=None`` means the permission layer already authorized the call.
    """
    if actor is None:
        return
    if not await policy.can_edit(actor, talent_id):
        raise TalentEditForbiddenError(actor.user_id, talent_id)
