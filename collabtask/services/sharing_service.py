from __future__ import annotations

import logging

from collabtask.domain.errors import ConflictError, ForbiddenError, NotFoundError
from collabtask.domain.models import SharedTask, SharePermission, Task
from collabtask.domain.permissions import is_owner
from collabtask.infra.audit import ActionLogger
from collabtask.infra.events import (
    TASK_PERMISSIONS_UPDATED,
    TASK_SHARED,
    TASK_UNSHARED,
    EventNotifier,
    event_bus,
)
from collabtask.infra.sql_stores import SqlShareStore, SqlTaskStore, SqlTeamStore
from collabtask.infra.stores import ShareStore, TaskStore, TeamStore

logger = logging.getLogger(__name__)


class SharingService:
    def __init__(
        self,
        *,
        shares: ShareStore | None = None,
        teams: TeamStore | None = None,
        tasks: TaskStore | None = None,
        notifier: EventNotifier | None = None,
        actions: ActionLogger | None = None,
    ) -> None:
        self._shares = shares if shares is not None else SqlShareStore()
        self._teams = teams if teams is not None else SqlTeamStore()
        self._tasks = tasks if tasks is not None else SqlTaskStore()
        self._notifier = notifier if notifier is not None else event_bus
        self._actions = actions if actions is not None else ActionLogger(self._notifier)

    def _get_task(self, task_id: str) -> Task:
        task = self._tasks.load(task_id)
        if task is None:
            raise NotFoundError("task not found")
        return task

    def _ensure_task_creator(self, task: Task, user_id: str, message: str) -> None:
        if task.created_by != user_id:
            raise ForbiddenError(message)

    def share_task(
        self,
        task_id: str,
        team_id: str,
        user_id: str,
        permissions: SharePermission = SharePermission.EDIT,
    ) -> SharedTask:
        task = self._get_task(task_id)
        self._ensure_task_creator(task, user_id, "only the task creator can share this task")
        team = self._teams.get_by_id(team_id)
        if team is None:
            raise NotFoundError("team not found")
        if not self._teams.is_member(team_id, user_id):
            raise ForbiddenError("you must be a member of the team to share tasks with it")
        if self._shares.get_share(task_id, team_id) is not None:
            raise ConflictError("task is already shared with this team")

        share = self._shares.create_share(
            SharedTask(task_id=task_id, team_id=team_id, permissions=permissions, shared_by=user_id)
        )
        logger.info("task %s shared with team %s as %s", task_id, team_id, share.permissions)
        self._notifier.emit(
            TASK_SHARED,
            {
                "task_id": task_id,
                "team_id": team_id,
                "shared_by": user_id,
                "permissions": SharePermission(share.permissions).value,
            },
            actor_id=user_id,
        )
        self._actions.log(user_id, task_id, "shared_with_team", {"team_name": team.name})
        return share

    def unshare_task(self, task_id: str, team_id: str, user_id: str) -> SharedTask:
        task = self._get_task(task_id)
        self._ensure_task_creator(task, user_id, "only the task creator can unshare this task")
        removed = self._shares.delete_share(task_id, team_id)
        if removed is None:
            raise NotFoundError("task is not shared with this team")
        self._notifier.emit(TASK_UNSHARED, {"task_id": task_id, "team_id": team_id}, actor_id=user_id)
        self._actions.log(user_id, task_id, "unshared_from_team", {"team_id": team_id})
        return removed

    def update_permissions(
        self,
        task_id: str,
        team_id: str,
        user_id: str,
        permissions: SharePermission,
    ) -> SharedTask:
        task = self._get_task(task_id)
        self._ensure_task_creator(task, user_id, "only the task creator can update permissions")
        updated = self._shares.update_permissions(task_id, team_id, permissions)
        if updated is None:
            raise NotFoundError("task is not shared with this team")
        self._notifier.emit(
            TASK_PERMISSIONS_UPDATED,
            {"task_id": task_id, "team_id": team_id, "permissions": SharePermission(permissions).value},
            actor_id=user_id,
        )
        self._actions.log(
            user_id,
            task_id,
            "permissions_updated",
            {"team_id": team_id, "permissions": SharePermission(permissions).value},
        )
        return updated

    def team_tasks(self, team_id: str, user_id: str) -> list[SharedTask]:
        if not self._teams.is_member(team_id, user_id):
            raise ForbiddenError("you must be a member of the team to view its tasks")
        return self._shares.get_shares_for_team(team_id)

    def task_teams(self, task_id: str, user_id: str) -> list[SharedTask]:
        task = self._get_task(task_id)
        if not is_owner(task, user_id):
            raise ForbiddenError("you don't have access to this task")
        return self._shares.get_shares_for_task(task_id)
