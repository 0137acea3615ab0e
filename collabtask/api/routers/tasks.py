from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status

from collabtask.api.deps import get_current_user_id, handle_error
from collabtask.domain.errors import CollabError
from collabtask.domain.models import (
    ActionLogRead,
    SmartAssignRead,
    SmartAssignRequest,
    SharedWithRead,
    Task,
    TaskAssignRequest,
    TaskConflictResolveRequest,
    TaskCountRead,
    TaskCreate,
    TaskDetailRead,
    TaskRead,
    TaskUpdate,
)
from collabtask.infra.audit import ActionLogger
from collabtask.services.task_service import TaskService

router = APIRouter()


def get_task_service() -> TaskService:
    return TaskService()


def get_action_logger() -> ActionLogger:
    return ActionLogger()


CurrentUser = Annotated[str, Depends(get_current_user_id)]
Service = Annotated[TaskService, Depends(get_task_service)]


def _detail(task: Task, shared_with: list[SharedWithRead]) -> TaskDetailRead:
    payload = TaskRead.model_validate(task).model_dump()
    payload["shared_with"] = shared_with
    return TaskDetailRead.model_validate(payload)


@router.post("", response_model=TaskRead, status_code=status.HTTP_201_CREATED)
def create_task(payload: TaskCreate, user_id: CurrentUser, service: Service) -> TaskRead:
    try:
        return TaskRead.model_validate(service.create(payload, user_id))
    except CollabError as exc:
        handle_error(exc)


@router.get("", response_model=list[TaskDetailRead])
def list_tasks(user_id: CurrentUser, service: Service) -> list[TaskDetailRead]:
    rows = service.list_tasks(user_id)
    shared = service.shared_with(rows)
    return [_detail(task, shared.get(task.id, [])) for task in rows]


@router.get("/count", response_model=TaskCountRead)
def count_tasks(user_id: CurrentUser, service: Service) -> TaskCountRead:
    return TaskCountRead(total=service.count_tasks(user_id))


@router.get("/search", response_model=list[TaskRead])
def search_tasks(
    user_id: CurrentUser,
    service: Service,
    task_status: Annotated[str | None, Query(alias="status")] = None,
    priority: str | None = None,
    q: str | None = None,
) -> list[TaskRead]:
    rows = service.search_tasks(user_id, status=task_status, priority=priority, text=q)
    return [TaskRead.model_validate(task) for task in rows]


@router.get("/actions/recent", response_model=list[ActionLogRead])
def recent_actions(
    _user_id: CurrentUser,
    actions: Annotated[ActionLogger, Depends(get_action_logger)],
    limit: Annotated[int | None, Query(ge=1, le=200)] = None,
) -> list[ActionLogRead]:
    return [ActionLogRead.model_validate(row) for row in actions.recent(limit)]


@router.get("/{task_id}", response_model=TaskDetailRead)
def get_task(task_id: str, user_id: CurrentUser, service: Service) -> TaskDetailRead:
    try:
        task = service.get_task(task_id, user_id)
    except CollabError as exc:
        handle_error(exc)
    return _detail(task, service.shared_with([task]).get(task.id, []))


@router.put("/{task_id}", response_model=TaskRead)
def update_task(task_id: str, payload: TaskUpdate, user_id: CurrentUser, service: Service) -> TaskRead:
    try:
        return TaskRead.model_validate(service.update(task_id, payload, user_id))
    except CollabError as exc:
        handle_error(exc)


@router.delete("/{task_id}", response_model=TaskRead)
def delete_task(task_id: str, user_id: CurrentUser, service: Service) -> TaskRead:
    try:
        return TaskRead.model_validate(service.delete(task_id, user_id))
    except CollabError as exc:
        handle_error(exc)


@router.post("/{task_id}/assign", response_model=TaskRead)
def assign_task(
    task_id: str,
    payload: TaskAssignRequest,
    user_id: CurrentUser,
    service: Service,
) -> TaskRead:
    try:
        return TaskRead.model_validate(service.assign(task_id, payload.assignee_id, user_id))
    except CollabError as exc:
        handle_error(exc)


@router.post("/{task_id}/smart-assign", response_model=SmartAssignRead)
def smart_assign_task(
    task_id: str,
    payload: SmartAssignRequest,
    user_id: CurrentUser,
    service: Service,
) -> SmartAssignRead:
    try:
        result = service.smart_assign(task_id, user_id, payload.team_id)
    except CollabError as exc:
        handle_error(exc)
    return SmartAssignRead(task=TaskRead.model_validate(result.task), note=result.note)


@router.post("/{task_id}/resolve-conflict", response_model=TaskRead)
def resolve_conflict(
    task_id: str,
    payload: TaskConflictResolveRequest,
    user_id: CurrentUser,
    service: Service,
) -> TaskRead:
    try:
        row = service.resolve_conflict(task_id, user_id, payload.strategy, payload.client_task)
        return TaskRead.model_validate(row)
    except CollabError as exc:
        handle_error(exc)


@router.get("/{task_id}/actions", response_model=list[ActionLogRead])
def task_actions(
    task_id: str,
    user_id: CurrentUser,
    service: Service,
    actions: Annotated[ActionLogger, Depends(get_action_logger)],
) -> list[ActionLogRead]:
    try:
        service.get_task(task_id, user_id)
    except CollabError as exc:
        handle_error(exc)
    return [ActionLogRead.model_validate(row) for row in actions.for_task(task_id)]
