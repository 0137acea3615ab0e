"""Storage interfaces consumed by the services.

The services only talk to these protocols; ``collabtask.infra.sql_stores``
provides the SQLModel-backed implementations used by the API.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol

from collabtask.domain.models import (
    Attachment,
    Comment,
    SharedTask,
    SharePermission,
    Subtask,
    Task,
    Team,
    User,
)


class StaleWriteError(Exception):
    """A compare-and-swap write found a different version than expected."""

    def __init__(self, task_id: str, expected_version: int) -> None:
        super().__init__(f"task {task_id} is no longer at version {expected_version}")
        self.task_id = task_id
        self.expected_version = expected_version


class TaskStore(Protocol):
    def load(self, task_id: str) -> Task | None: ...

    def create(self, task: Task) -> Task: ...

    def write(
        self,
        task_id: str,
        patch: dict[str, Any],
        *,
        expected_version: int | None = None,
    ) -> Task | None: ...

    def delete(self, task_id: str) -> bool: ...

    def count_active(self, user_id: str) -> int: ...

    def find_by_ids(self, task_ids: Sequence[str]) -> list[Task]: ...

    def find_for_user(self, user_id: str) -> list[Task]: ...


class TeamStore(Protocol):
    def get_by_id(self, team_id: str) -> Team | None: ...

    def get_member_ids(self, team_id: str) -> list[str]: ...

    def get_teams_for_member(self, user_id: str) -> list[Team]: ...

    def is_member(self, team_id: str, user_id: str) -> bool: ...

    def create(self, team: Team) -> Team: ...

    def add_member(self, team_id: str, user_id: str) -> bool: ...

    def remove_member(self, team_id: str, user_id: str) -> bool: ...

    def update_details(self, team_id: str, changes: dict[str, Any]) -> Team | None: ...

    def delete(self, team_id: str) -> bool: ...


class ShareStore(Protocol):
    def get_shares_for_task(self, task_id: str) -> list[SharedTask]: ...

    def get_shares_for_team(self, team_id: str) -> list[SharedTask]: ...

    def get_share(self, task_id: str, team_id: str) -> SharedTask | None: ...

    def create_share(self, share: SharedTask) -> SharedTask: ...

    def upsert_share(
        self,
        task_id: str,
        team_id: str,
        permissions: SharePermission,
        shared_by: str,
    ) -> SharedTask: ...

    def update_permissions(
        self,
        task_id: str,
        team_id: str,
        permissions: SharePermission,
    ) -> SharedTask | None: ...

    def delete_share(self, task_id: str, team_id: str) -> SharedTask | None: ...


class UserDirectory(Protocol):
    def find_by_email(self, email: str) -> User | None: ...

    def get_by_id(self, user_id: str) -> User | None: ...

    def create(self, user: User) -> User: ...


class SubtaskStore(Protocol):
    def create(self, subtask: Subtask) -> Subtask: ...

    def get(self, subtask_id: str) -> Subtask | None: ...

    def update(self, subtask_id: str, changes: dict[str, Any]) -> Subtask | None: ...

    def delete(self, subtask_id: str) -> Subtask | None: ...

    def list_for_task(self, task_id: str) -> list[Subtask]: ...


class CommentStore(Protocol):
    def create(self, comment: Comment) -> Comment: ...

    def get(self, comment_id: str) -> Comment | None: ...

    def delete(self, comment_id: str) -> Comment | None: ...

    def list_for_task(self, task_id: str) -> list[Comment]: ...


class AttachmentStore(Protocol):
    def create(self, attachment: Attachment) -> Attachment: ...

    def find(self, task_id: str, public_id: str) -> Attachment | None: ...

    def delete(self, attachment_id: str) -> Attachment | None: ...

    def list_for_task(self, task_id: str) -> list[Attachment]: ...
