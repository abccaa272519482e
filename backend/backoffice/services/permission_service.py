# Overview: Role-based permission checks.

from __future__ import annotations

import logging

from ..models import User
from ..permissions import DEFAULT_ROLE_PERMISSIONS


logger = logging.getLogger(__name__)


class PermissionDeniedError(Exception):
    """Raised when user lacks required permission."""
    pass


def get_user_permissions(user: User) -> set[str]:
    """Permission codes held by the user's role. Unknown roles hold none."""
    if user is None or user.is_deleted:
        return set()
    return set(DEFAULT_ROLE_PERMISSIONS.get(user.role, ()))


def user_has_permission(user: User, permission_code: str) -> bool:
    return permission_code in get_user_permissions(user)


def require_permission(user: User, permission_code: str, *, resource: str | None = None) -> None:
    """
    Raise PermissionDeniedError unless `user` holds `permission_code`.

    Denials are logged; grants are not.
    """
    if user_has_permission(user, permission_code):
        return
    logger.warning(
        "Permission denied: user=%s role=%s permission=%s resource=%s",
        getattr(user, "id", None),
        getattr(user, "role", None),
        permission_code,
        resource,
    )
    raise PermissionDeniedError(f"Missing permission: {permission_code}")
