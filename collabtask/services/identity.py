from __future__ import annotations

from typing import Any

from collabtask.domain.errors import NotFoundError
from collabtask.infra.stores import UserDirectory


def resolve_assignee_email(directory: UserDirectory, email: str | None) -> str | None:
    """Map an assignee email to a user id.

    ``None`` or a blank email means "unassigned" and resolves to ``None``.
    An email with no matching user raises ``NotFoundError``.
    """
    if email is None or not email.strip():
        return None
    user = directory.find_by_email(email)
    if user is None:
        raise NotFoundError(f"no user found with email: {email.strip()}")
    return user.id


def ensure_user_exists(directory: UserDirectory, user_id: str | None) -> str | None:
    if user_id is None:
        return None
    if directory.get_by_id(user_id) is None:
        raise NotFoundError("user not found")
    return user_id


def user_summary(directory: UserDirectory, user_id: str) -> dict[str, Any]:
    user = directory.get_by_id(user_id)
    return {
        "id": user_id,
        "full_name": user.full_name if user is not None else "Unknown",
        "email": user.email if user is not None else "unknown@example.com",
    }
