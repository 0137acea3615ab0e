from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, status

from collabtask.api.deps import get_current_user_id, handle_error
from collabtask.domain.errors import CollabError
from collabtask.domain.models import (
    AttachmentCreate,
    AttachmentRead,
    CommentCreate,
    CommentRead,
    SubtaskCreate,
    SubtaskRead,
    SubtaskUpdate,
)
from collabtask.services.task_items_service import AttachmentService, CommentService, SubtaskService

router = APIRouter()


def get_subtask_service() -> SubtaskService:
    return SubtaskService()


def get_comment_service() -> CommentService:
    return CommentService()


def get_attachment_service() -> AttachmentService:
    return AttachmentService()


CurrentUser = Annotated[str, Depends(get_current_user_id)]
Subtasks = Annotated[SubtaskService, Depends(get_subtask_service)]
Comments = Annotated[CommentService, Depends(get_comment_service)]
Attachments = Annotated[AttachmentService, Depends(get_attachment_service)]


@router.post(
    "/tasks/{task_id}/subtasks",
    response_model=SubtaskRead,
    status_code=status.HTTP_201_CREATED,
)
def add_subtask(task_id: str, payload: SubtaskCreate, user_id: CurrentUser, service: Subtasks) -> SubtaskRead:
    try:
        return SubtaskRead.model_validate(service.add_subtask(task_id, payload, user_id))
    except CollabError as exc:
        handle_error(exc)


@router.get("/tasks/{task_id}/subtasks", response_model=list[SubtaskRead])
def list_subtasks(task_id: str, user_id: CurrentUser, service: Subtasks) -> list[SubtaskRead]:
    try:
        rows = service.list_subtasks(task_id, user_id)
    except CollabError as exc:
        handle_error(exc)
    return [SubtaskRead.model_validate(row) for row in rows]


@router.put("/subtasks/{subtask_id}", response_model=SubtaskRead)
def update_subtask(
    subtask_id: str,
    payload: SubtaskUpdate,
    user_id: CurrentUser,
    service: Subtasks,
) -> SubtaskRead:
    try:
        return SubtaskRead.model_validate(service.update_subtask(subtask_id, payload, user_id))
    except CollabError as exc:
        handle_error(exc)


@router.delete("/subtasks/{subtask_id}", response_model=SubtaskRead)
def delete_subtask(subtask_id: str, user_id: CurrentUser, service: Subtasks) -> SubtaskRead:
    try:
        return SubtaskRead.model_validate(service.delete_subtask(subtask_id, user_id))
    except CollabError as exc:
        handle_error(exc)


@router.post(
    "/tasks/{task_id}/comments",
    response_model=CommentRead,
    status_code=status.HTTP_201_CREATED,
)
def add_comment(task_id: str, payload: CommentCreate, user_id: CurrentUser, service: Comments) -> CommentRead:
    try:
        return CommentRead.model_validate(service.add_comment(task_id, payload, user_id))
    except CollabError as exc:
        handle_error(exc)


@router.get("/tasks/{task_id}/comments", response_model=list[CommentRead])
def list_comments(task_id: str, user_id: CurrentUser, service: Comments) -> list[CommentRead]:
    try:
        rows = service.list_comments(task_id, user_id)
    except CollabError as exc:
        handle_error(exc)
    return [CommentRead.model_validate(row) for row in rows]


@router.delete("/comments/{comment_id}", response_model=CommentRead)
def remove_comment(comment_id: str, user_id: CurrentUser, service: Comments) -> CommentRead:
    try:
        return CommentRead.model_validate(service.remove_comment(comment_id, user_id))
    except CollabError as exc:
        handle_error(exc)


@router.post(
    "/tasks/{task_id}/attachments",
    response_model=AttachmentRead,
    status_code=status.HTTP_201_CREATED,
)
def add_attachment(
    task_id: str,
    payload: AttachmentCreate,
    user_id: CurrentUser,
    service: Attachments,
) -> AttachmentRead:
    try:
        return AttachmentRead.model_validate(service.add_attachment(task_id, payload, user_id))
    except CollabError as exc:
        handle_error(exc)


@router.get("/tasks/{task_id}/attachments", response_model=list[AttachmentRead])
def list_attachments(task_id: str, user_id: CurrentUser, service: Attachments) -> list[AttachmentRead]:
    try:
        rows = service.list_attachments(task_id, user_id)
    except CollabError as exc:
        handle_error(exc)
    return [AttachmentRead.model_validate(row) for row in rows]


@router.delete("/tasks/{task_id}/attachments/{public_id}", response_model=AttachmentRead)
def remove_attachment(
    task_id: str,
    public_id: str,
    user_id: CurrentUser,
    service: Attachments,
) -> AttachmentRead:
    try:
        return AttachmentRead.model_validate(service.remove_attachment(task_id, public_id, user_id))
    except CollabError as exc:
        handle_error(exc)
