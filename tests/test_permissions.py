from __future__ import annotations

import pytest

from collabtask.domain.models import SharedTask, SharePermission, Task
from collabtask.domain.permissions import (
    PermissionLevel,
    TaskAction,
    authorize,
    decide,
    denial_message,
    resolve_permission_level,
)


def _task(**overrides: object) -> Task:
    values: dict[str, object] = {"id": "task-1", "title": "Write report", "created_by": "alice"}
    values.update(overrides)
    return Task(**values)


def _share(team_id: str, permission: SharePermission, task_id: str = "task-1") -> SharedTask:
    return SharedTask(task_id=task_id, team_id=team_id, permissions=permission, shared_by="alice")


def test_level_is_highest_share_among_member_teams() -> None:
    shares = [
        _share("team-a", SharePermission.VIEW),
        _share("team-b", SharePermission.FULL),
        _share("team-c", SharePermission.EDIT),
    ]
    level = resolve_permission_level(_task(), "bob", shares, {"team-a", "team-c"})
    assert level == PermissionLevel.EDIT

    level = resolve_permission_level(_task(), "bob", shares, {"team-a", "team-b", "team-c"})
    assert level == PermissionLevel.FULL


def test_shares_of_other_tasks_and_foreign_teams_are_ignored() -> None:
    shares = [
        _share("team-a", SharePermission.FULL, task_id="task-2"),
        _share("team-z", SharePermission.FULL),
    ]
    assert resolve_permission_level(_task(), "bob", shares, {"team-a"}) == PermissionLevel.NONE


@pytest.mark.parametrize("owner_field", ["created_by", "assigned_user"])
def test_owner_is_authorized_for_everything_despite_view_share(owner_field: str) -> None:
    task = _task(created_by="alice", assigned_user="carol")
    user_id = task.created_by if owner_field == "created_by" else "carol"
    shares = [_share("team-a", SharePermission.VIEW)]

    for action in TaskAction:
        decision = decide(task, user_id, action, shares, {"team-a"})
        assert decision.level == PermissionLevel.OWNER
        assert decision.allowed


def test_action_thresholds() -> None:
    assert authorize(PermissionLevel.VIEW, TaskAction.VIEW)
    assert not authorize(PermissionLevel.VIEW, TaskAction.EDIT)
    assert authorize(PermissionLevel.EDIT, "edit")
    assert not authorize(PermissionLevel.EDIT, TaskAction.DELETE)
    assert authorize(PermissionLevel.FULL, TaskAction.DELETE)
    assert not authorize(PermissionLevel.NONE, TaskAction.VIEW)


def test_denial_messages_distinguish_no_access_from_insufficient_level() -> None:
    task = _task()
    no_access = decide(task, "bob", TaskAction.EDIT, [], set())
    assert denial_message(no_access) == "you are not authorized to edit this task"

    view_only = decide(task, "bob", TaskAction.EDIT, [_share("team-a", SharePermission.VIEW)], {"team-a"})
    assert not view_only.allowed
    assert denial_message(view_only) == "you have view permission; edit permission or higher required"

    edit_delete = decide(task, "bob", TaskAction.DELETE, [_share("team-a", SharePermission.EDIT)], {"team-a"})
    assert denial_message(edit_delete) == "you have edit permission; full permission required to delete this task"
