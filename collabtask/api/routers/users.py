from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, status

from collabtask.api.deps import get_current_user_id, handle_error
from collabtask.domain.errors import CollabError
from collabtask.domain.models import DevLoginRequest, TokenResponse, UserCreate, UserRead
from collabtask.infra.auth import create_access_token
from collabtask.services.user_service import UserService

router = APIRouter()


def get_user_service() -> UserService:
    return UserService()


CurrentUser = Annotated[str, Depends(get_current_user_id)]
Service = Annotated[UserService, Depends(get_user_service)]


@router.post("", response_model=UserRead, status_code=status.HTTP_201_CREATED)
def register_user(payload: UserCreate, service: Service) -> UserRead:
    try:
        return UserRead.model_validate(service.register(payload))
    except CollabError as exc:
        handle_error(exc)


@router.post("/dev-login", response_model=TokenResponse)
def dev_login(payload: DevLoginRequest, service: Service) -> TokenResponse:
    try:
        user = service.find_by_email(payload.email)
    except CollabError as exc:
        handle_error(exc)
    return TokenResponse(access_token=create_access_token(user_id=user.id))


@router.get("/me", response_model=UserRead)
def current_user(user_id: CurrentUser, service: Service) -> UserRead:
    try:
        return UserRead.model_validate(service.get_user(user_id))
    except CollabError as exc:
        handle_error(exc)
