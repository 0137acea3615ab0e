"""Task permission resolution.

Three tiers decide what an identity may do with a task:

* owner: the task's creator or its assigned user, allowed every action;
* team share: the highest ``view``/``edit``/``full`` grant among the teams
  the identity belongs to that the task is shared with;
* nothing: no access at all.

Everything here is pure; callers load shares and memberships and decide
whether a denial should be raised.
"""

from __future__ import annotations

from collections.abc import Collection, Iterable
from dataclasses import dataclass
from enum import IntEnum, StrEnum

from collabtask.domain.models import SharedTask, SharePermission, Task


class PermissionLevel(IntEnum):
    NONE = 0
    VIEW = 1
    EDIT = 2
    FULL = 3
    OWNER = 4

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def from_share(cls, permission: SharePermission | str) -> PermissionLevel:
        return _SHARE_LEVELS[SharePermission(permission)]


_SHARE_LEVELS: dict[SharePermission, PermissionLevel] = {
    SharePermission.VIEW: PermissionLevel.VIEW,
    SharePermission.EDIT: PermissionLevel.EDIT,
    SharePermission.FULL: PermissionLevel.FULL,
}


class TaskAction(StrEnum):
    VIEW = "view"
    EDIT = "edit"
    DELETE = "delete"


REQUIRED_LEVEL: dict[TaskAction, PermissionLevel] = {
    TaskAction.VIEW: PermissionLevel.VIEW,
    TaskAction.EDIT: PermissionLevel.EDIT,
    TaskAction.DELETE: PermissionLevel.FULL,
}


@dataclass(frozen=True)
class AuthorizationDecision:
    action: TaskAction
    level: PermissionLevel

    @property
    def allowed(self) -> bool:
        return authorize(self.level, self.action)

    @property
    def required(self) -> PermissionLevel:
        return REQUIRED_LEVEL[self.action]


def is_owner(task: Task, user_id: str) -> bool:
    return user_id in {task.created_by, task.assigned_user}


def resolve_permission_level(
    task: Task,
    user_id: str,
    shares: Iterable[SharedTask],
    member_team_ids: Collection[str],
) -> PermissionLevel:
    if is_owner(task, user_id):
        return PermissionLevel.OWNER
    level = PermissionLevel.NONE
    for share in shares:
        if share.task_id != task.id or share.team_id not in member_team_ids:
            continue
        level = max(level, PermissionLevel.from_share(share.permissions))
    return level


def authorize(level: PermissionLevel, action: TaskAction | str) -> bool:
    return level >= REQUIRED_LEVEL[TaskAction(action)]


def decide(
    task: Task,
    user_id: str,
    action: TaskAction | str,
    shares: Iterable[SharedTask],
    member_team_ids: Collection[str],
) -> AuthorizationDecision:
    level = resolve_permission_level(task, user_id, shares, member_team_ids)
    return AuthorizationDecision(action=TaskAction(action), level=level)


def denial_message(decision: AuthorizationDecision) -> str:
    if decision.level == PermissionLevel.NONE:
        return f"you are not authorized to {decision.action.value} this task"
    if decision.action == TaskAction.DELETE:
        return (
            f"you have {decision.level.label} permission; "
            "full permission required to delete this task"
        )
    return (
        f"you have {decision.level.label} permission; "
        f"{decision.required.label} permission or higher required"
    )
