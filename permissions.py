"""
Permission Normalizer

Computes the role and permission map to persist for a user from the
requested update and the user's stored state.

Rules, in order:
- ``admin``/``administrator`` in any case becomes ``Administrator`` with every
  flag granted; permissions sent alongside are ignored.
- Any other role is stored capitalised as free text, and supplied permissions
  are merged flag by flag: explicit value, else stored value, else default.
- A permissions-only update merges the same way and leaves the role alone.
- A user who is already Administrator and is not being demoted keeps every flag.

Demoting an Administrator does not clear the flags that were granted while the
user was Administrator; they stay until changed explicitly.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Tuple

PERMISSION_FLAGS: Tuple[str, ...] = (
    "dashboard",
    "leads",
    "calendar",
    "email",
    "settings",
    "inventory",
    "favorites",
    "mls",
)

DEFAULT_PERMISSIONS: Dict[str, bool] = {flag: False for flag in PERMISSION_FLAGS}
ADMIN_PERMISSIONS: Dict[str, bool] = {flag: True for flag in PERMISSION_FLAGS}

ADMINISTRATOR = "Administrator"
_ADMIN_ALIASES = {"admin", "administrator"}


@dataclass(frozen=True)
class Role:
    name: str
    is_administrator: bool = False

    @classmethod
    def parse(cls, raw: str) -> "Role":
        lowered = raw.strip().lower()
        if lowered in _ADMIN_ALIASES:
            return cls(ADMINISTRATOR, is_administrator=True)
        return cls(lowered[:1].upper() + lowered[1:])


def merge_permissions(
    explicit: Optional[Mapping[str, Optional[bool]]],
    previous: Optional[Mapping[str, Optional[bool]]],
    default: Mapping[str, bool] = DEFAULT_PERMISSIONS,
) -> Dict[str, bool]:
    explicit = explicit or {}
    previous = previous or {}
    merged = {}
    for flag in PERMISSION_FLAGS:
        value = explicit.get(flag)
        if value is None:
            value = previous.get(flag)
        if value is None:
            value = default[flag]
        merged[flag] = bool(value)
    return merged


def is_administrator(role: Optional[str]) -> bool:
    return bool(role) and Role.parse(role).is_administrator


def normalize_user_update(
    update_role: Optional[str],
    update_permissions: Optional[Mapping[str, Optional[bool]]],
    current_role: Optional[str] = None,
    current_permissions: Optional[Mapping[str, Optional[bool]]] = None,
) -> Tuple[Optional[str], Optional[Dict[str, bool]]]:
    """Return ``(role, permissions)`` to persist; ``None`` leaves a field untouched."""
    if update_role:
        role = Role.parse(update_role)
        if role.is_administrator:
            return role.name, dict(ADMIN_PERMISSIONS)
        permissions = None
        if update_permissions is not None:
            permissions = merge_permissions(update_permissions, current_permissions)
        return role.name, permissions

    if is_administrator(current_role):
        return None, dict(ADMIN_PERMISSIONS)

    if update_permissions is not None:
        return None, merge_permissions(update_permissions, current_permissions)

    return None, None


def effective_permissions(role: Optional[str], permissions: Optional[Mapping[str, Optional[bool]]]) -> Dict[str, bool]:
    """Permissions a stored user actually holds."""
    if is_administrator(role):
        return dict(ADMIN_PERMISSIONS)
    return merge_permissions(None, permissions)
