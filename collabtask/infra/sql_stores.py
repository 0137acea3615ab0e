from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from sqlalchemy import func, or_, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from collabtask.domain.errors import ConflictError
from collabtask.domain.models import (
    Attachment,
    Comment,
    SharedTask,
    SharePermission,
    Subtask,
    Task,
    Team,
    TeamMember,
    User,
    is_active_status,
    now_utc,
)
from collabtask.infra.db import get_engine
from collabtask.infra.stores import StaleWriteError


class _SqlStore:
    def _session(self) -> Session:
        return Session(get_engine(), expire_on_commit=False)


class SqlTaskStore(_SqlStore):
    def load(self, task_id: str) -> Task | None:
        with self._session() as session:
            return session.get(Task, task_id)

    def create(self, task: Task) -> Task:
        with self._session() as session:
            session.add(task)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise ConflictError("task create conflict") from exc
            session.refresh(task)
            return task

    def write(
        self,
        task_id: str,
        patch: dict[str, Any],
        *,
        expected_version: int | None = None,
    ) -> Task | None:
        with self._session() as session:
            statement = update(Task).where(col(Task.id) == task_id)
            if expected_version is not None:
                statement = statement.where(col(Task.version) == expected_version)
            result = session.connection().execute(statement.values(**patch))
            if result.rowcount == 0:
                session.rollback()
                if session.get(Task, task_id) is None or expected_version is None:
                    return None
                raise StaleWriteError(task_id, expected_version)
            session.commit()
            return session.get(Task, task_id)

    def delete(self, task_id: str) -> bool:
        with self._session() as session:
            row = session.get(Task, task_id)
            if row is None:
                return False
            for model, column in (
                (SharedTask, SharedTask.task_id),
                (Subtask, Subtask.parent_task_id),
                (Comment, Comment.task_id),
                (Attachment, Attachment.task_id),
            ):
                for child in session.exec(select(model).where(column == task_id)).all():
                    session.delete(child)
            session.delete(row)
            session.commit()
            return True

    def count_active(self, user_id: str) -> int:
        with self._session() as session:
            rows = session.exec(select(Task.status).where(Task.assigned_user == user_id)).all()
        return sum(1 for status in rows if is_active_status(status))

    def find_by_ids(self, task_ids: Sequence[str]) -> list[Task]:
        if not task_ids:
            return []
        with self._session() as session:
            return list(session.exec(select(Task).where(col(Task.id).in_(list(task_ids)))).all())

    def find_for_user(self, user_id: str) -> list[Task]:
        with self._session() as session:
            statement = (
                select(Task)
                .where(or_(col(Task.created_by) == user_id, col(Task.assigned_user) == user_id))
                .order_by(col(Task.created_at))
            )
            return list(session.exec(statement).all())


class SqlTeamStore(_SqlStore):
    def get_by_id(self, team_id: str) -> Team | None:
        with self._session() as session:
            return session.get(Team, team_id)

    def get_member_ids(self, team_id: str) -> list[str]:
        with self._session() as session:
            statement = (
                select(TeamMember.user_id)
                .where(TeamMember.team_id == team_id)
                .order_by(col(TeamMember.position))
            )
            return list(session.exec(statement).all())

    def get_teams_for_member(self, user_id: str) -> list[Team]:
        with self._session() as session:
            statement = (
                select(Team)
                .join(TeamMember, col(TeamMember.team_id) == col(Team.id))
                .where(TeamMember.user_id == user_id)
                .order_by(col(Team.created_at))
            )
            return list(session.exec(statement).all())

    def is_member(self, team_id: str, user_id: str) -> bool:
        with self._session() as session:
            return session.get(TeamMember, (team_id, user_id)) is not None

    def create(self, team: Team) -> Team:
        with self._session() as session:
            session.add(team)
            session.add(TeamMember(team_id=team.id, user_id=team.created_by, position=0))
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise ConflictError("team create conflict") from exc
            session.refresh(team)
            return team

    def add_member(self, team_id: str, user_id: str) -> bool:
        with self._session() as session:
            if session.get(TeamMember, (team_id, user_id)) is not None:
                return False
            last_position = session.exec(
                select(func.max(TeamMember.position)).where(TeamMember.team_id == team_id)
            ).one()
            position = 0 if last_position is None else int(last_position) + 1
            session.add(TeamMember(team_id=team_id, user_id=user_id, position=position))
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise ConflictError("team member conflict") from exc
            return True

    def remove_member(self, team_id: str, user_id: str) -> bool:
        with self._session() as session:
            row = session.get(TeamMember, (team_id, user_id))
            if row is None:
                return False
            session.delete(row)
            session.commit()
            return True

    def update_details(self, team_id: str, changes: dict[str, Any]) -> Team | None:
        with self._session() as session:
            row = session.get(Team, team_id)
            if row is None:
                return None
            for key, value in changes.items():
                setattr(row, key, value)
            row.updated_at = now_utc()
            session.add(row)
            session.commit()
            session.refresh(row)
            return row

    def delete(self, team_id: str) -> bool:
        with self._session() as session:
            row = session.get(Team, team_id)
            if row is None:
                return False
            for share in session.exec(select(SharedTask).where(SharedTask.team_id == team_id)).all():
                session.delete(share)
            for member in session.exec(select(TeamMember).where(TeamMember.team_id == team_id)).all():
                session.delete(member)
            session.flush()
            session.delete(row)
            session.commit()
            return True


class SqlShareStore(_SqlStore):
    def get_shares_for_task(self, task_id: str) -> list[SharedTask]:
        with self._session() as session:
            statement = (
                select(SharedTask)
                .where(SharedTask.task_id == task_id)
                .order_by(col(SharedTask.shared_at))
            )
            return list(session.exec(statement).all())

    def get_shares_for_team(self, team_id: str) -> list[SharedTask]:
        with self._session() as session:
            statement = (
                select(SharedTask)
                .where(SharedTask.team_id == team_id)
                .order_by(col(SharedTask.shared_at))
            )
            return list(session.exec(statement).all())

    def _find(self, session: Session, task_id: str, team_id: str) -> SharedTask | None:
        return session.exec(
            select(SharedTask)
            .where(SharedTask.task_id == task_id)
            .where(SharedTask.team_id == team_id)
        ).first()

    def get_share(self, task_id: str, team_id: str) -> SharedTask | None:
        with self._session() as session:
            return self._find(session, task_id, team_id)

    def create_share(self, share: SharedTask) -> SharedTask:
        with self._session() as session:
            session.add(share)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise ConflictError("task is already shared with this team") from exc
            session.refresh(share)
            return share

    def upsert_share(
        self,
        task_id: str,
        team_id: str,
        permissions: SharePermission,
        shared_by: str,
    ) -> SharedTask:
        with self._session() as session:
            row = self._find(session, task_id, team_id)
            if row is None:
                row = SharedTask(task_id=task_id, team_id=team_id, permissions=permissions, shared_by=shared_by)
            else:
                row.permissions = permissions
            session.add(row)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise ConflictError("task is already shared with this team") from exc
            session.refresh(row)
            return row

    def update_permissions(
        self,
        task_id: str,
        team_id: str,
        permissions: SharePermission,
    ) -> SharedTask | None:
        with self._session() as session:
            row = self._find(session, task_id, team_id)
            if row is None:
                return None
            row.permissions = permissions
            session.add(row)
            session.commit()
            session.refresh(row)
            return row

    def delete_share(self, task_id: str, team_id: str) -> SharedTask | None:
        with self._session() as session:
            row = self._find(session, task_id, team_id)
            if row is None:
                return None
            session.delete(row)
            session.commit()
            return row


class SqlUserDirectory(_SqlStore):
    def find_by_email(self, email: str) -> User | None:
        normalized = email.strip().lower()
        with self._session() as session:
            return session.exec(select(User).where(func.lower(User.email) == normalized)).first()

    def get_by_id(self, user_id: str) -> User | None:
        with self._session() as session:
            return session.get(User, user_id)

    def create(self, user: User) -> User:
        user.email = user.email.strip().lower()
        with self._session() as session:
            session.add(user)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise ConflictError("email already registered") from exc
            session.refresh(user)
            return user


class SqlSubtaskStore(_SqlStore):
    def create(self, subtask: Subtask) -> Subtask:
        with self._session() as session:
            session.add(subtask)
            session.commit()
            session.refresh(subtask)
            return subtask

    def get(self, subtask_id: str) -> Subtask | None:
        with self._session() as session:
            return session.get(Subtask, subtask_id)

    def update(self, subtask_id: str, changes: dict[str, Any]) -> Subtask | None:
        with self._session() as session:
            row = session.get(Subtask, subtask_id)
            if row is None:
                return None
            for key, value in changes.items():
                setattr(row, key, value)
            row.updated_at = now_utc()
            session.add(row)
            session.commit()
            session.refresh(row)
            return row

    def delete(self, subtask_id: str) -> Subtask | None:
        with self._session() as session:
            row = session.get(Subtask, subtask_id)
            if row is None:
                return None
            session.delete(row)
            session.commit()
            return row

    def list_for_task(self, task_id: str) -> list[Subtask]:
        with self._session() as session:
            statement = (
                select(Subtask)
                .where(Subtask.parent_task_id == task_id)
                .order_by(col(Subtask.created_at))
            )
            return list(session.exec(statement).all())


class SqlCommentStore(_SqlStore):
    def create(self, comment: Comment) -> Comment:
        with self._session() as session:
            session.add(comment)
            session.commit()
            session.refresh(comment)
            return comment

    def get(self, comment_id: str) -> Comment | None:
        with self._session() as session:
            return session.get(Comment, comment_id)

    def delete(self, comment_id: str) -> Comment | None:
        with self._session() as session:
            row = session.get(Comment, comment_id)
            if row is None:
                return None
            session.delete(row)
            session.commit()
            return row

    def list_for_task(self, task_id: str) -> list[Comment]:
        with self._session() as session:
            statement = (
                select(Comment)
                .where(Comment.task_id == task_id)
                .order_by(col(Comment.created_at))
            )
            return list(session.exec(statement).all())


class SqlAttachmentStore(_SqlStore):
    def create(self, attachment: Attachment) -> Attachment:
        with self._session() as session:
            session.add(attachment)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise ConflictError("attachment already exists on this task") from exc
            session.refresh(attachment)
            return attachment

    def find(self, task_id: str, public_id: str) -> Attachment | None:
        with self._session() as session:
            return session.exec(
                select(Attachment)
                .where(Attachment.task_id == task_id)
                .where(Attachment.public_id == public_id)
            ).first()

    def delete(self, attachment_id: str) -> Attachment | None:
        with self._session() as session:
            row = session.get(Attachment, attachment_id)
            if row is None:
                return None
            session.delete(row)
            session.commit()
            return row

    def list_for_task(self, task_id: str) -> list[Attachment]:
        with self._session() as session:
            statement = (
                select(Attachment)
                .where(Attachment.task_id == task_id)
                .order_by(col(Attachment.uploaded_at))
            )
            return list(session.exec(statement).all())
