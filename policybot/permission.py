"""Repository permission levels."""

from __future__ import annotations

import enum
from collections.abc import Mapping


class Permission(enum.IntEnum):
    """A repository permission level, ordered from least to most access."""

    NONE = 0
    READ = 1
    TRIAGE = 2
    WRITE = 3
    MAINTAIN = 4
    ADMIN = 5

    def __str__(self) -> str:
        return self.name.lower()


def parse_permission(s: str) -> Permission:
    """Parse a permission name, ignoring case.

    Raises ValueError if the name is not a known permission.
    """
    try:
        return Permission[s.upper()]
    except KeyError:
        raise ValueError(f"invalid permission: {s}") from None


def parse_permission_map(m: Mapping[str, bool]) -> Permission:
    """Return the highest permission set in a map of permission flags."""
    if m.get("admin"):
        return Permission.ADMIN
    if m.get("maintain"):
        return Permission.MAINTAIN
    if m.get("write") or m.get("push"):
        return Permission.WRITE
    if m.get("triage"):
        return Permission.TRIAGE
    if m.get("read") or m.get("pull"):
        return Permission.READ
    return Permission.NONE