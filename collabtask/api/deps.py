from __future__ import annotations

from typing import NoReturn

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer

from collabtask.domain.errors import (
    BadRequestError,
    CollabError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
)
from collabtask.infra.auth import decode_access_token

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/users/dev-login")

_STATUS_BY_ERROR: tuple[tuple[type[CollabError], int], ...] = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ForbiddenError, status.HTTP_403_FORBIDDEN),
    (BadRequestError, status.HTTP_400_BAD_REQUEST),
    (ConflictError, status.HTTP_409_CONFLICT),
)


def get_current_user_id(
    request: Request,
    token: str = Depends(oauth2_scheme),
) -> str:
    try:
        claims = decode_access_token(token)
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
        ) from exc
    request.state.claims = claims
    return str(claims["sub"])


def handle_error(exc: CollabError) -> NoReturn:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            raise HTTPException(status_code=status_code, detail=exc.to_detail()) from exc
    raise exc
