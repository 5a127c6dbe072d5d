from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .errors import PermissionDenied


class AccessLevel(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    EDITOR = "editor"
    VIEWER = "viewer"


EDIT_LEVELS = frozenset({AccessLevel.OWNER, AccessLevel.ADMIN, AccessLevel.EDITOR})


@dataclass(frozen=True)
class ProjectAccess:
    """What the upstream access layer decided about a caller on one project."""

    level: AccessLevel
    user_id: Optional[str] = None

    @property
    def can_edit(self) -> bool:
        return self.level in EDIT_LEVELS

    @classmethod
    def parse(cls, role: Optional[str], user_id: Optional[str] = None) -> Optional["ProjectAccess"]:
        if not role:
            return None
        try:
            return cls(level=AccessLevel(role.strip().lower()), user_id=user_id)
        except ValueError:
            return None


def require_view(access: Optional[ProjectAccess]) -> ProjectAccess:
    if access is None:
        raise PermissionDenied("no access to this project")
    return access


def require_edit(access: Optional[ProjectAccess]) -> ProjectAccess:
    if access is None:
        raise PermissionDenied("no access to this project")
    if not access.can_edit:
        raise PermissionDenied(f"{access.level.value} cannot edit the schedule")
    return access
