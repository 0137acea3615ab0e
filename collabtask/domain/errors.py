from __future__ import annotations

from typing import Any, ClassVar

from collabtask.domain.models import Task, task_snapshot
from collabtask.domain.permissions import PermissionLevel, TaskAction


class CollabError(Exception):
    kind: ClassVar[str] = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_detail(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": self.message}


class NotFoundError(CollabError):
    kind = "not_found"


class BadRequestError(CollabError):
    kind = "bad_request"


class ForbiddenError(CollabError):
    kind = "forbidden"

    def __init__(
        self,
        message: str,
        *,
        action: TaskAction | None = None,
        held_level: PermissionLevel = PermissionLevel.NONE,
    ) -> None:
        super().__init__(message)
        self.action = action
        self.held_level = held_level

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail["action"] = self.action.value if self.action is not None else None
        detail["held_level"] = self.held_level.label
        return detail


class ConflictError(CollabError):
    kind = "conflict"

    def __init__(
        self,
        message: str,
        *,
        server_task: Task | None = None,
        client_version: int | None = None,
    ) -> None:
        super().__init__(message)
        self.server_task = server_task
        self.client_version = client_version

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        if self.server_task is not None:
            detail["server_task"] = task_snapshot(self.server_task)
            detail["server_version"] = self.server_task.version
            detail["client_version"] = self.client_version
        return detail
