from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from collabtask.domain.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from collabtask.domain.models import (
    TASK_FIELD_DEFAULTS,
    SharedWithRead,
    Task,
    TaskConflictPayload,
    TaskCreate,
    TaskUpdate,
    ensure_utc,
    now_utc,
    task_snapshot,
)
from collabtask.domain.permissions import PermissionLevel, TaskAction, is_owner
from collabtask.infra.audit import ActionLogger
from collabtask.infra.events import (
    TASK_ASSIGNED,
    TASK_CONFLICT,
    TASK_CREATED,
    TASK_DELETED,
    TASK_UPDATED,
    EventNotifier,
    event_bus,
)
from collabtask.infra.sql_stores import SqlShareStore, SqlTaskStore, SqlTeamStore, SqlUserDirectory
from collabtask.infra.stores import ShareStore, StaleWriteError, TaskStore, TeamStore, UserDirectory
from collabtask.services.authorization_service import TaskAuthorizationService
from collabtask.services.conflict_resolution import (
    NON_NULL_FIELDS,
    ConflictStrategy,
    build_resolution_patch,
    parse_strategy,
)
from collabtask.services.identity import ensure_user_exists, resolve_assignee_email, user_summary
from collabtask.services.smart_assign import SmartAssignmentSelector

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SmartAssignResult:
    task: Task
    note: str


class TaskService:
    def __init__(
        self,
        *,
        tasks: TaskStore | None = None,
        teams: TeamStore | None = None,
        shares: ShareStore | None = None,
        users: UserDirectory | None = None,
        notifier: EventNotifier | None = None,
        actions: ActionLogger | None = None,
    ) -> None:
        self._tasks = tasks if tasks is not None else SqlTaskStore()
        self._teams = teams if teams is not None else SqlTeamStore()
        self._shares = shares if shares is not None else SqlShareStore()
        self._users = users if users is not None else SqlUserDirectory()
        self._notifier = notifier if notifier is not None else event_bus
        self._actions = actions if actions is not None else ActionLogger(self._notifier)
        self._authz = TaskAuthorizationService(teams=self._teams, shares=self._shares)
        self._selector = SmartAssignmentSelector(self._tasks)

    def _get_task(self, task_id: str) -> Task:
        task = self._tasks.load(task_id)
        if task is None:
            raise NotFoundError("task not found")
        return task

    def _conflict(self, current: Task, actor_id: str, client_version: int | None) -> ConflictError:
        modifier = self._users.get_by_id(current.updated_by) if current.updated_by else None
        modifier_name = modifier.full_name if modifier is not None else "another user"
        self._notifier.emit(
            TASK_CONFLICT,
            {
                "task_id": current.id,
                "conflicted_by": actor_id,
                "server_task": task_snapshot(current),
                "message": f"task has been modified by {modifier_name}",
            },
            actor_id=actor_id,
        )
        logger.warning(
            "conflict on task %s by %s: server version %s, client version %s",
            current.id,
            actor_id,
            current.version,
            client_version,
        )
        client_label = client_version if client_version is not None else "unknown"
        return ConflictError(
            f"conflict detected: server version {current.version}, client version {client_label}",
            server_task=current,
            client_version=client_version,
        )

    def _commit(
        self,
        task: Task,
        patch: dict[str, Any],
        actor_id: str,
        *,
        client_version: int | None = None,
    ) -> Task:
        changes = dict(patch)
        changes["version"] = task.version + 1
        changes["last_modified"] = now_utc()
        changes["updated_by"] = actor_id
        try:
            updated = self._tasks.write(task.id, changes, expected_version=task.version)
        except StaleWriteError as exc:
            current = self._tasks.load(task.id)
            if current is None:
                raise NotFoundError("task not found during update") from exc
            raise self._conflict(current, actor_id, client_version) from exc
        if updated is None:
            raise NotFoundError("task not found during update")
        return updated

    def _is_stale(self, current: Task, payload: TaskUpdate, actor_id: str) -> bool:
        if payload.version is not None:
            return payload.version < current.version
        if payload.last_modified is None:
            return False
        return (
            ensure_utc(payload.last_modified) < ensure_utc(current.last_modified)
            and current.updated_by != actor_id
        )

    def create(self, payload: TaskCreate, actor_id: str) -> Task:
        assigned_user = ensure_user_exists(self._users, payload.assigned_user)
        if payload.assignee_email is not None and payload.assignee_email.strip():
            assigned_user = resolve_assignee_email(self._users, payload.assignee_email)
        now = now_utc()
        task = Task(
            title=payload.title,
            description=payload.description,
            status=payload.status,
            priority=payload.priority,
            due_date=payload.due_date,
            created_by=actor_id,
            assigned_user=assigned_user,
            version=1,
            last_modified=now,
            updated_by=actor_id,
            created_at=now,
        )
        created = self._tasks.create(task)
        self._notifier.emit(TASK_CREATED, task_snapshot(created), actor_id=actor_id)
        self._actions.log(actor_id, created.id, "created")
        return created

    def get_task(self, task_id: str, actor_id: str) -> Task:
        task = self._get_task(task_id)
        self._authz.require(task, actor_id, TaskAction.VIEW)
        return task

    def permission_level(self, task_id: str, actor_id: str) -> PermissionLevel:
        return self._authz.resolve(self._get_task(task_id), actor_id)

    def list_tasks(self, actor_id: str) -> list[Task]:
        personal = self._tasks.find_for_user(actor_id)
        shared_ids: list[str] = []
        for team in self._teams.get_teams_for_member(actor_id):
            shared_ids.extend(share.task_id for share in self._shares.get_shares_for_team(team.id))
        shared = self._tasks.find_by_ids(shared_ids)

        seen: set[str] = set()
        result: list[Task] = []
        for task in [*personal, *shared]:
            if task.id in seen:
                continue
            seen.add(task.id)
            result.append(task)
        return result

    def shared_with(self, tasks: list[Task]) -> dict[str, list[SharedWithRead]]:
        team_names: dict[str, str | None] = {}
        result: dict[str, list[SharedWithRead]] = {}
        for task in tasks:
            entries: list[SharedWithRead] = []
            for share in self._shares.get_shares_for_task(task.id):
                if share.team_id not in team_names:
                    team = self._teams.get_by_id(share.team_id)
                    team_names[share.team_id] = team.name if team is not None else None
                entries.append(
                    SharedWithRead(
                        team_id=share.team_id,
                        team_name=team_names[share.team_id],
                        permissions=share.permissions,
                        shared_by=share.shared_by,
                        shared_at=share.shared_at,
                    )
                )
            result[task.id] = entries
        return result

    def count_tasks(self, actor_id: str) -> int:
        return len(self.list_tasks(actor_id))

    def search_tasks(
        self,
        actor_id: str,
        *,
        status: str | None = None,
        priority: str | None = None,
        text: str | None = None,
    ) -> list[Task]:
        needle = text.strip().lower() if text else None
        rows: list[Task] = []
        for task in self.list_tasks(actor_id):
            if status and task.status.lower() != status.lower():
                continue
            if priority and task.priority.lower() != priority.lower():
                continue
            if needle:
                haystack = f"{task.title or ''} {task.description or ''}".lower()
                if needle not in haystack:
                    continue
            rows.append(task)
        return rows

    def update(self, task_id: str, payload: TaskUpdate, actor_id: str) -> Task:
        current = self._get_task(task_id)
        self._authz.require(current, actor_id, TaskAction.EDIT)

        if self._is_stale(current, payload, actor_id):
            raise self._conflict(current, actor_id, payload.version)

        present = payload.model_fields_set & set(TASK_FIELD_DEFAULTS)
        patch = {
            key: value
            for key, value in payload.model_dump(include=present).items()
            if not (key in NON_NULL_FIELDS and value is None)
        }
        if "assignee_email" in payload.model_fields_set:
            patch["assigned_user"] = resolve_assignee_email(self._users, payload.assignee_email)

        updated = self._commit(current, patch, actor_id, client_version=payload.version)
        logger.info("task %s updated to version %s by %s", updated.id, updated.version, actor_id)
        self._notifier.emit(TASK_UPDATED, task_snapshot(updated), actor_id=actor_id)
        self._actions.log(actor_id, updated.id, "updated")
        return updated

    def delete(self, task_id: str, actor_id: str) -> Task:
        current = self._get_task(task_id)
        self._authz.require(current, actor_id, TaskAction.DELETE)
        if not self._tasks.delete(task_id):
            raise NotFoundError("task not found")
        logger.info("task %s deleted by %s", task_id, actor_id)
        self._notifier.emit(
            TASK_DELETED,
            {"task_id": task_id, "deleted_by": user_summary(self._users, actor_id)},
            actor_id=actor_id,
        )
        self._actions.log(actor_id, task_id, "deleted")
        return current

    def _apply_assignment(
        self,
        current: Task,
        assignee_id: str,
        actor_id: str,
        metadata: dict[str, Any],
    ) -> Task:
        updated = self._commit(current, {"assigned_user": assignee_id}, actor_id)
        self._notifier.emit(
            TASK_ASSIGNED,
            {
                "task_id": updated.id,
                "previous_assignee": current.assigned_user,
                "assigned_user": user_summary(self._users, assignee_id),
                "assigned_by": user_summary(self._users, actor_id),
            },
            actor_id=actor_id,
        )
        self._notifier.emit(TASK_UPDATED, task_snapshot(updated), actor_id=actor_id)
        self._actions.log(actor_id, updated.id, "assigned", metadata)
        return updated

    def assign(self, task_id: str, assignee_id: str, actor_id: str) -> Task:
        current = self._get_task(task_id)
        if not is_owner(current, actor_id):
            raise ForbiddenError(
                "only the task owner can reassign this task",
                action=TaskAction.EDIT,
                held_level=self._authz.resolve(current, actor_id),
            )
        ensure_user_exists(self._users, assignee_id)
        return self._apply_assignment(current, assignee_id, actor_id, {"assigned_to": assignee_id})

    def smart_assign(self, task_id: str, requester_id: str, team_id: str | None) -> SmartAssignResult:
        if not team_id:
            raise BadRequestError("team_id is required for smart assignment")
        current = self._get_task(task_id)
        if current.created_by != requester_id:
            raise ForbiddenError(
                "only the task creator can use smart assign",
                action=TaskAction.EDIT,
                held_level=self._authz.resolve(current, requester_id),
            )
        team = self._teams.get_by_id(team_id)
        if team is None:
            raise NotFoundError("team not found")
        member_ids = self._teams.get_member_ids(team_id)
        if requester_id not in member_ids:
            raise ForbiddenError(
                "you must be a member of the team to assign tasks to it",
                action=TaskAction.EDIT,
                held_level=self._authz.resolve(current, requester_id),
            )

        choice = self._selector.choose(member_ids, requester_id)
        metadata: dict[str, Any] = {"assigned_to": choice.assignee_id, "team_id": team_id}
        if choice.fallback:
            metadata["fallback"] = True
        else:
            metadata["active_task_count"] = choice.active_count
        updated = self._apply_assignment(current, choice.assignee_id, requester_id, metadata)
        logger.info(
            "smart-assigned task %s to %s in team %s (fallback=%s)",
            task_id,
            choice.assignee_id,
            team_id,
            choice.fallback,
        )
        return SmartAssignResult(task=updated, note=choice.note)

    def resolve_conflict(
        self,
        task_id: str,
        actor_id: str,
        strategy: ConflictStrategy | str,
        client_task: TaskConflictPayload,
    ) -> Task:
        current = self._get_task(task_id)
        self._authz.require(current, actor_id, TaskAction.EDIT)
        resolved_strategy = parse_strategy(strategy)

        patch = build_resolution_patch(resolved_strategy, current, client_task)
        if "assignee_email" in client_task.model_fields_set:
            patch["assigned_user"] = resolve_assignee_email(self._users, client_task.assignee_email)
        elif "assigned_user" in client_task.model_fields_set:
            patch["assigned_user"] = ensure_user_exists(self._users, client_task.assigned_user)

        updated = self._commit(current, patch, actor_id)
        self._notifier.emit(TASK_UPDATED, task_snapshot(updated), actor_id=actor_id)
        self._actions.log(
            actor_id,
            updated.id,
            "conflict_resolved",
            {
                "strategy": resolved_strategy.value,
                "previous_version": current.version,
                "new_version": updated.version,
            },
        )
        return updated
