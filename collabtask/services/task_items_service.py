"""Subtasks, comments and attachments hanging off a parent task.

Each is authorized against the parent task: adding needs ``edit``,
listing needs ``view``, and removing needs ``edit`` for the item's own
author but ``delete`` (full) for anyone else's item.
"""

from __future__ import annotations

from collabtask.domain.errors import NotFoundError
from collabtask.domain.models import (
    Attachment,
    AttachmentCreate,
    AttachmentRead,
    Comment,
    CommentCreate,
    CommentRead,
    Subtask,
    SubtaskCreate,
    SubtaskRead,
    SubtaskUpdate,
    Task,
)
from collabtask.domain.permissions import TaskAction
from collabtask.infra.audit import ActionLogger
from collabtask.infra.events import (
    ATTACHMENT_ADDED,
    ATTACHMENT_DELETED,
    COMMENT_ADDED,
    COMMENT_DELETED,
    SUBTASK_ADDED,
    SUBTASK_DELETED,
    SUBTASK_UPDATED,
    EventNotifier,
    event_bus,
)
from collabtask.infra.sql_stores import (
    SqlAttachmentStore,
    SqlCommentStore,
    SqlShareStore,
    SqlSubtaskStore,
    SqlTaskStore,
    SqlTeamStore,
)
from collabtask.infra.stores import AttachmentStore, CommentStore, ShareStore, SubtaskStore, TaskStore, TeamStore
from collabtask.services.authorization_service import TaskAuthorizationService


class _ParentTaskService:
    def __init__(
        self,
        *,
        tasks: TaskStore | None = None,
        teams: TeamStore | None = None,
        shares: ShareStore | None = None,
        notifier: EventNotifier | None = None,
        actions: ActionLogger | None = None,
    ) -> None:
        self._tasks = tasks if tasks is not None else SqlTaskStore()
        self._notifier = notifier if notifier is not None else event_bus
        self._actions = actions if actions is not None else ActionLogger(self._notifier)
        self._authz = TaskAuthorizationService(
            teams=teams if teams is not None else SqlTeamStore(),
            shares=shares if shares is not None else SqlShareStore(),
        )

    def _parent(self, task_id: str, message: str = "parent task not found") -> Task:
        task = self._tasks.load(task_id)
        if task is None:
            raise NotFoundError(message)
        return task

    def _require_removal(self, task: Task, user_id: str, author_id: str) -> None:
        action = TaskAction.EDIT if author_id == user_id else TaskAction.DELETE
        self._authz.require(task, user_id, action)


class SubtaskService(_ParentTaskService):
    def __init__(self, *, subtasks: SubtaskStore | None = None, **kwargs: object) -> None:
        super().__init__(**kwargs)  # type: ignore[arg-type]
        self._subtasks = subtasks if subtasks is not None else SqlSubtaskStore()

    def _get_subtask(self, subtask_id: str) -> Subtask:
        subtask = self._subtasks.get(subtask_id)
        if subtask is None:
            raise NotFoundError("subtask not found")
        return subtask

    def add_subtask(self, task_id: str, payload: SubtaskCreate, user_id: str) -> Subtask:
        parent = self._parent(task_id)
        self._authz.require(parent, user_id, TaskAction.EDIT)
        created = self._subtasks.create(
            Subtask(
                parent_task_id=task_id,
                title=payload.title,
                is_completed=payload.is_completed,
                created_by=user_id,
            )
        )
        self._notifier.emit(
            SUBTASK_ADDED,
            SubtaskRead.model_validate(created).model_dump(mode="json"),
            actor_id=user_id,
        )
        self._actions.log(user_id, task_id, "subtask_added", {"subtask_title": created.title})
        return created

    def update_subtask(self, subtask_id: str, payload: SubtaskUpdate, user_id: str) -> Subtask:
        current = self._get_subtask(subtask_id)
        parent = self._parent(current.parent_task_id)
        self._authz.require(parent, user_id, TaskAction.EDIT)
        changes = {key: value for key, value in payload.model_dump(exclude_unset=True).items() if value is not None}
        updated = self._subtasks.update(subtask_id, changes)
        if updated is None:
            raise NotFoundError("subtask not found")
        self._notifier.emit(
            SUBTASK_UPDATED,
            SubtaskRead.model_validate(updated).model_dump(mode="json"),
            actor_id=user_id,
        )
        self._actions.log(user_id, updated.parent_task_id, "subtask_updated")
        return updated

    def delete_subtask(self, subtask_id: str, user_id: str) -> Subtask:
        current = self._get_subtask(subtask_id)
        parent = self._parent(current.parent_task_id)
        self._require_removal(parent, user_id, current.created_by)
        deleted = self._subtasks.delete(subtask_id)
        if deleted is None:
            raise NotFoundError("subtask not found")
        self._notifier.emit(
            SUBTASK_DELETED,
            {"subtask_id": subtask_id, "parent_task_id": deleted.parent_task_id},
            actor_id=user_id,
        )
        self._actions.log(user_id, deleted.parent_task_id, "subtask_deleted")
        return deleted

    def list_subtasks(self, task_id: str, user_id: str) -> list[Subtask]:
        parent = self._parent(task_id)
        self._authz.require(parent, user_id, TaskAction.VIEW)
        return self._subtasks.list_for_task(task_id)


class CommentService(_ParentTaskService):
    def __init__(self, *, comments: CommentStore | None = None, **kwargs: object) -> None:
        super().__init__(**kwargs)  # type: ignore[arg-type]
        self._comments = comments if comments is not None else SqlCommentStore()

    def add_comment(self, task_id: str, payload: CommentCreate, user_id: str) -> Comment:
        task = self._parent(task_id, "task not found")
        self._authz.require(task, user_id, TaskAction.EDIT)
        created = self._comments.create(Comment(task_id=task_id, user_id=user_id, comment=payload.comment))
        self._notifier.emit(
            COMMENT_ADDED,
            CommentRead.model_validate(created).model_dump(mode="json"),
            actor_id=user_id,
        )
        self._actions.log(user_id, task_id, "comment_added", {"comment_text": created.comment})
        return created

    def remove_comment(self, comment_id: str, user_id: str) -> Comment:
        comment = self._comments.get(comment_id)
        if comment is None:
            raise NotFoundError("comment not found")
        task = self._parent(comment.task_id, "task not found")
        self._require_removal(task, user_id, comment.user_id)
        deleted = self._comments.delete(comment_id)
        if deleted is None:
            raise NotFoundError("comment not found")
        self._notifier.emit(
            COMMENT_DELETED,
            {"comment_id": comment_id, "task_id": deleted.task_id},
            actor_id=user_id,
        )
        self._actions.log(user_id, deleted.task_id, "comment_deleted")
        return deleted

    def list_comments(self, task_id: str, user_id: str) -> list[Comment]:
        task = self._parent(task_id, "task not found")
        self._authz.require(task, user_id, TaskAction.VIEW)
        return self._comments.list_for_task(task_id)


class AttachmentService(_ParentTaskService):
    def __init__(self, *, attachments: AttachmentStore | None = None, **kwargs: object) -> None:
        super().__init__(**kwargs)  # type: ignore[arg-type]
        self._attachments = attachments if attachments is not None else SqlAttachmentStore()

    def add_attachment(self, task_id: str, payload: AttachmentCreate, user_id: str) -> Attachment:
        task = self._parent(task_id, "task not found")
        self._authz.require(task, user_id, TaskAction.EDIT)
        created = self._attachments.create(
            Attachment(
                task_id=task_id,
                filename=payload.filename,
                file_url=payload.file_url,
                public_id=payload.public_id,
                uploaded_by=user_id,
            )
        )
        self._notifier.emit(
            ATTACHMENT_ADDED,
            {"task_id": task_id, "attachment": AttachmentRead.model_validate(created).model_dump(mode="json")},
            actor_id=user_id,
        )
        self._actions.log(user_id, task_id, "attachment_added", {"filename": created.filename})
        return created

    def remove_attachment(self, task_id: str, public_id: str, user_id: str) -> Attachment:
        task = self._parent(task_id, "task not found")
        attachment = self._attachments.find(task_id, public_id)
        if attachment is None:
            raise NotFoundError("attachment not found")
        self._require_removal(task, user_id, attachment.uploaded_by)
        deleted = self._attachments.delete(attachment.id)
        if deleted is None:
            raise NotFoundError("attachment not found")
        self._notifier.emit(
            ATTACHMENT_DELETED,
            {"task_id": task_id, "public_id": public_id},
            actor_id=user_id,
        )
        self._actions.log(user_id, task_id, "attachment_deleted")
        return deleted

    def list_attachments(self, task_id: str, user_id: str) -> list[Attachment]:
        task = self._parent(task_id, "task not found")
        self._authz.require(task, user_id, TaskAction.VIEW)
        return self._attachments.list_for_task(task_id)
