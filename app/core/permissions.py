"""Ownership rule shared by the client gate and the store's row policy."""

from __future__ import annotations

ADMIN_ROLE = "admin"


def can_mutate(principal_id: str | None, owner_id: str | None, is_elevated: bool) -> bool:
    """Return True when ``principal_id`` may update or delete a record owned by ``owner_id``.

    Elevated principals may touch any record; everybody else only their own.
    An anonymous principal never matches, even against an ownerless record.
    """

    if is_elevated:
        return True
    if not principal_id:
        return False
    return principal_id == owner_id
