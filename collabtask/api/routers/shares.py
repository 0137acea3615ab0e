from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, status

from collabtask.api.deps import get_current_user_id, handle_error
from collabtask.domain.errors import CollabError
from collabtask.domain.models import ShareCreate, SharedTaskRead, SharePermissionsUpdate
from collabtask.services.sharing_service import SharingService

router = APIRouter()


def get_sharing_service() -> SharingService:
    return SharingService()


CurrentUser = Annotated[str, Depends(get_current_user_id)]
Service = Annotated[SharingService, Depends(get_sharing_service)]


@router.post("", response_model=SharedTaskRead, status_code=status.HTTP_201_CREATED)
def share_task(payload: ShareCreate, user_id: CurrentUser, service: Service) -> SharedTaskRead:
    try:
        row = service.share_task(payload.task_id, payload.team_id, user_id, payload.permissions)
        return SharedTaskRead.model_validate(row)
    except CollabError as exc:
        handle_error(exc)


@router.delete("/{task_id}/teams/{team_id}", response_model=SharedTaskRead)
def unshare_task(task_id: str, team_id: str, user_id: CurrentUser, service: Service) -> SharedTaskRead:
    try:
        return SharedTaskRead.model_validate(service.unshare_task(task_id, team_id, user_id))
    except CollabError as exc:
        handle_error(exc)


@router.put("/{task_id}/teams/{team_id}", response_model=SharedTaskRead)
def update_share_permissions(
    task_id: str,
    team_id: str,
    payload: SharePermissionsUpdate,
    user_id: CurrentUser,
    service: Service,
) -> SharedTaskRead:
    try:
        row = service.update_permissions(task_id, team_id, user_id, payload.permissions)
        return SharedTaskRead.model_validate(row)
    except CollabError as exc:
        handle_error(exc)


@router.get("/{task_id}/teams", response_model=list[SharedTaskRead])
def task_teams(task_id: str, user_id: CurrentUser, service: Service) -> list[SharedTaskRead]:
    try:
        rows = service.task_teams(task_id, user_id)
    except CollabError as exc:
        handle_error(exc)
    return [SharedTaskRead.model_validate(row) for row in rows]
