from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, status

from collabtask.api.deps import get_current_user_id, handle_error
from collabtask.domain.errors import CollabError
from collabtask.domain.models import SharedTaskRead, TeamCreate, TeamInviteRequest, TeamRead, TeamUpdate
from collabtask.services.sharing_service import SharingService
from collabtask.services.team_service import TeamService

router = APIRouter()


def get_team_service() -> TeamService:
    return TeamService()


def get_sharing_service() -> SharingService:
    return SharingService()


CurrentUser = Annotated[str, Depends(get_current_user_id)]
Service = Annotated[TeamService, Depends(get_team_service)]


@router.post("", response_model=TeamRead, status_code=status.HTTP_201_CREATED)
def create_team(payload: TeamCreate, user_id: CurrentUser, service: Service) -> TeamRead:
    return service.to_read(service.create_team(user_id, payload))


@router.get("/my-teams", response_model=list[TeamRead])
def my_teams(user_id: CurrentUser, service: Service) -> list[TeamRead]:
    return [service.to_read(team) for team in service.list_my_teams(user_id)]


@router.get("/{team_id}", response_model=TeamRead)
def get_team(team_id: str, user_id: CurrentUser, service: Service) -> TeamRead:
    try:
        return service.to_read(service.get_team(team_id, user_id))
    except CollabError as exc:
        handle_error(exc)


@router.put("/{team_id}", response_model=TeamRead)
def update_team(team_id: str, payload: TeamUpdate, user_id: CurrentUser, service: Service) -> TeamRead:
    try:
        return service.to_read(service.update_team(team_id, payload, user_id))
    except CollabError as exc:
        handle_error(exc)


@router.delete("/{team_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_team(team_id: str, user_id: CurrentUser, service: Service) -> None:
    try:
        service.delete_team(team_id, user_id)
    except CollabError as exc:
        handle_error(exc)


@router.post("/{team_id}/invite", response_model=TeamRead)
def invite_member(
    team_id: str,
    payload: TeamInviteRequest,
    user_id: CurrentUser,
    service: Service,
) -> TeamRead:
    try:
        return service.to_read(service.invite_member(team_id, user_id, payload.email))
    except CollabError as exc:
        handle_error(exc)


@router.delete("/{team_id}/members/{member_id}", response_model=TeamRead)
def remove_member(team_id: str, member_id: str, user_id: CurrentUser, service: Service) -> TeamRead:
    try:
        return service.to_read(service.remove_member(team_id, member_id, user_id))
    except CollabError as exc:
        handle_error(exc)


@router.post("/{team_id}/leave", response_model=TeamRead)
def leave_team(team_id: str, user_id: CurrentUser, service: Service) -> TeamRead:
    try:
        return service.to_read(service.leave_team(team_id, user_id))
    except CollabError as exc:
        handle_error(exc)


@router.get("/{team_id}/tasks", response_model=list[SharedTaskRead])
def team_tasks(
    team_id: str,
    user_id: CurrentUser,
    sharing: Annotated[SharingService, Depends(get_sharing_service)],
) -> list[SharedTaskRead]:
    try:
        rows = sharing.team_tasks(team_id, user_id)
    except CollabError as exc:
        handle_error(exc)
    return [SharedTaskRead.model_validate(row) for row in rows]
