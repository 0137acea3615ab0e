from __future__ import annotations

import logging

from collabtask.domain.errors import BadRequestError, NotFoundError
from collabtask.domain.models import User, UserCreate
from collabtask.infra.sql_stores import SqlUserDirectory
from collabtask.infra.stores import UserDirectory

logger = logging.getLogger(__name__)


class UserService:
    def __init__(self, *, users: UserDirectory | None = None) -> None:
        self._users = users if users is not None else SqlUserDirectory()

    def register(self, payload: UserCreate) -> User:
        email = payload.email.strip()
        if "@" not in email:
            raise BadRequestError("invalid email address")
        user = self._users.create(User(email=email, full_name=payload.full_name.strip()))
        logger.info("registered user %s", user.id)
        return user

    def get_user(self, user_id: str) -> User:
        user = self._users.get_by_id(user_id)
        if user is None:
            raise NotFoundError("user not found")
        return user

    def find_by_email(self, email: str) -> User:
        user = self._users.find_by_email(email)
        if user is None:
            raise NotFoundError(f"no user found with email: {email.strip()}")
        return user
