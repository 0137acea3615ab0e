from __future__ import annotations

from datetime import timedelta
from pathlib import Path
from typing import Any

import pytest
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine, select

from collabtask.domain.errors import ConflictError, ForbiddenError, NotFoundError
from collabtask.domain.models import (
    ActionLog,
    Comment,
    CommentCreate,
    EventEnvelope,
    SharedTask,
    SharePermission,
    Task,
    TaskCreate,
    TaskUpdate,
    TeamCreate,
    User,
)
from collabtask.domain.permissions import PermissionLevel, TaskAction
from collabtask.infra import db
from collabtask.infra.events import EventBus
from collabtask.infra.sql_stores import SqlTaskStore, SqlUserDirectory
from collabtask.services.authorization_service import TaskAuthorizationService
from collabtask.services.sharing_service import SharingService
from collabtask.services.task_items_service import CommentService
from collabtask.services.task_service import TaskService
from collabtask.services.team_service import TeamService


@pytest.fixture()
def test_engine(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Engine:
    engine = create_engine(
        f"sqlite:///{tmp_path / 'task_service_test.db'}",
        connect_args={"check_same_thread": False},
    )
    SQLModel.metadata.create_all(engine)
    monkeypatch.setattr(db, "engine", engine)
    return engine


@pytest.fixture()
def bus(test_engine: Engine) -> EventBus:
    return EventBus()


@pytest.fixture()
def seen(bus: EventBus) -> list[EventEnvelope]:
    events: list[EventEnvelope] = []
    bus.subscribe("*", events.append)
    return events


def _user(email: str, name: str) -> User:
    return SqlUserDirectory().create(User(email=email, full_name=name))


def _event_types(events: list[EventEnvelope]) -> list[str]:
    return [item.event_type for item in events]


def _shared_task(bus: EventBus, owner: User, member: User, permission: SharePermission) -> Task:
    tasks = TaskService(notifier=bus)
    teams = TeamService(notifier=bus)
    sharing = SharingService(notifier=bus)
    task = tasks.create(TaskCreate(title="Quarterly report"), owner.id)
    team = teams.create_team(owner.id, TeamCreate(name="Ops"))
    teams.invite_member(team.id, owner.id, member.email)
    sharing.share_task(task.id, team.id, owner.id, permission)
    return task


def test_create_then_owner_update_bumps_version(bus: EventBus, seen: list[EventEnvelope]) -> None:
    alice = _user("alice@example.com", "Alice")
    service = TaskService(notifier=bus)

    task = service.create(TaskCreate(title="Draft", priority="high"), alice.id)
    assert task.version == 1
    assert task.status == "todo"

    updated = service.update(task.id, TaskUpdate(title="Final", version=1), alice.id)
    assert updated.version == 2
    assert updated.title == "Final"
    assert updated.priority == "high"
    assert updated.updated_by == alice.id
    assert "taskCreated" in _event_types(seen)
    assert "taskUpdated" in _event_types(seen)

    with Session(db.engine) as session:
        actions = session.exec(select(ActionLog).where(ActionLog.task_id == task.id)).all()
    assert {row.action_type for row in actions} == {"created", "updated"}


def test_stale_version_raises_conflict_with_server_state(bus: EventBus, seen: list[EventEnvelope]) -> None:
    alice = _user("alice@example.com", "Alice")
    service = TaskService(notifier=bus)
    task = service.create(TaskCreate(title="Draft"), alice.id)
    service.update(task.id, TaskUpdate(description="first pass", version=1), alice.id)

    with pytest.raises(ConflictError) as exc_info:
        service.update(task.id, TaskUpdate(title="late edit", version=1), alice.id)

    detail = exc_info.value.to_detail()
    assert detail["kind"] == "conflict"
    assert detail["server_version"] == 2
    assert detail["client_version"] == 1
    assert detail["server_task"]["description"] == "first pass"
    assert SqlTaskStore().load(task.id).version == 2  # type: ignore[union-attr]

    conflict_events = [item for item in seen if item.event_type == "taskConflict"]
    assert len(conflict_events) == 1
    assert conflict_events[0].payload["conflicted_by"] == alice.id


def test_last_modified_fallback_detects_edit_by_other_user(bus: EventBus) -> None:
    alice = _user("alice@example.com", "Alice")
    bob = _user("bob@example.com", "Bob")
    task = _shared_task(bus, alice, bob, SharePermission.EDIT)
    service = TaskService(notifier=bus)
    seen_at = task.last_modified

    service.update(task.id, TaskUpdate(title="Alice edit"), alice.id)

    with pytest.raises(ConflictError):
        service.update(
            task.id,
            TaskUpdate(title="Bob edit", last_modified=seen_at - timedelta(seconds=1)),
            bob.id,
        )


def test_view_share_cannot_edit(bus: EventBus) -> None:
    alice = _user("alice@example.com", "Alice")
    bob = _user("bob@example.com", "Bob")
    task = _shared_task(bus, alice, bob, SharePermission.VIEW)
    service = TaskService(notifier=bus)

    assert service.get_task(task.id, bob.id).id == task.id
    with pytest.raises(ForbiddenError) as exc_info:
        service.update(task.id, TaskUpdate(title="nope"), bob.id)
    assert exc_info.value.held_level == PermissionLevel.VIEW
    assert exc_info.value.action == TaskAction.EDIT
    assert "view permission" in exc_info.value.message

    authz = TaskAuthorizationService()
    assert authz.authorize(task, bob.id, TaskAction.VIEW)
    assert not authz.authorize(task, bob.id, "edit")


def test_edit_share_delete_is_rejected_naming_held_level(bus: EventBus) -> None:
    alice = _user("alice@example.com", "Alice")
    bob = _user("bob@example.com", "Bob")
    task = _shared_task(bus, alice, bob, SharePermission.EDIT)

    with pytest.raises(ForbiddenError) as exc_info:
        TaskService(notifier=bus).delete(task.id, bob.id)
    assert exc_info.value.message == "you have edit permission; full permission required to delete this task"
    assert exc_info.value.to_detail()["held_level"] == "edit"
    assert SqlTaskStore().load(task.id) is not None


def test_outsider_delete_gets_generic_denial(bus: EventBus) -> None:
    alice = _user("alice@example.com", "Alice")
    mallory = _user("mallory@example.com", "Mallory")
    service = TaskService(notifier=bus)
    task = service.create(TaskCreate(title="Private"), alice.id)

    with pytest.raises(ForbiddenError) as exc_info:
        service.delete(task.id, mallory.id)
    assert exc_info.value.message == "you are not authorized to delete this task"
    assert exc_info.value.held_level == PermissionLevel.NONE


def test_full_share_delete_cascades_children(bus: EventBus, seen: list[EventEnvelope]) -> None:
    alice = _user("alice@example.com", "Alice")
    bob = _user("bob@example.com", "Bob")
    task = _shared_task(bus, alice, bob, SharePermission.FULL)
    CommentService(notifier=bus).add_comment(task.id, CommentCreate(comment="looks good"), alice.id)

    TaskService(notifier=bus).delete(task.id, bob.id)

    with Session(db.engine) as session:
        assert session.get(Task, task.id) is None
        assert session.exec(select(SharedTask).where(SharedTask.task_id == task.id)).all() == []
        assert session.exec(select(Comment).where(Comment.task_id == task.id)).all() == []
    deleted = [item for item in seen if item.event_type == "taskDeleted"]
    assert deleted[0].payload["deleted_by"]["email"] == "bob@example.com"


def test_assigned_user_is_owner(bus: EventBus) -> None:
    alice = _user("alice@example.com", "Alice")
    carol = _user("carol@example.com", "Carol")
    service = TaskService(notifier=bus)
    task = service.create(TaskCreate(title="Handoff", assignee_email="Carol@Example.com "), alice.id)
    assert task.assigned_user == carol.id

    assert service.permission_level(task.id, carol.id) == PermissionLevel.OWNER
    service.delete(task.id, carol.id)
    assert SqlTaskStore().load(task.id) is None


def test_assignee_email_rules_on_update(bus: EventBus) -> None:
    alice = _user("alice@example.com", "Alice")
    carol = _user("carol@example.com", "Carol")
    service = TaskService(notifier=bus)
    task = service.create(TaskCreate(title="Route", assignee_email="carol@example.com"), alice.id)
    assert task.assigned_user == carol.id

    with pytest.raises(NotFoundError):
        service.update(task.id, TaskUpdate(assignee_email="ghost@example.com"), alice.id)
    assert SqlTaskStore().load(task.id).assigned_user == carol.id  # type: ignore[union-attr]

    cleared = service.update(task.id, TaskUpdate(assignee_email=""), alice.id)
    assert cleared.assigned_user is None

    with pytest.raises(NotFoundError):
        service.create(TaskCreate(title="Orphan", assignee_email="ghost@example.com"), alice.id)


def test_missing_task_is_not_found(bus: EventBus) -> None:
    alice = _user("alice@example.com", "Alice")
    service = TaskService(notifier=bus)
    with pytest.raises(NotFoundError):
        service.update("missing", TaskUpdate(title="x"), alice.id)
    with pytest.raises(NotFoundError):
        service.delete("missing", alice.id)


class _RacingTaskStore(SqlTaskStore):
    """Lets another writer win between the engine's load and its write."""

    def __init__(self) -> None:
        self.raced = False

    def write(self, task_id: str, patch: dict[str, Any], *, expected_version: int | None = None) -> Task | None:
        if not self.raced:
            self.raced = True
            current = self.load(task_id)
            assert current is not None
            super().write(
                task_id,
                {"title": "concurrent", "version": current.version + 1, "updated_by": "someone-else"},
                expected_version=current.version,
            )
        return super().write(task_id, patch, expected_version=expected_version)


def test_concurrent_write_between_check_and_write_is_a_conflict(
    bus: EventBus,
    seen: list[EventEnvelope],
) -> None:
    alice = _user("alice@example.com", "Alice")
    task = TaskService(notifier=bus).create(TaskCreate(title="Race"), alice.id)
    service = TaskService(tasks=_RacingTaskStore(), notifier=bus)

    with pytest.raises(ConflictError) as exc_info:
        service.update(task.id, TaskUpdate(title="mine", version=1), alice.id)

    assert exc_info.value.server_task is not None
    assert exc_info.value.server_task.title == "concurrent"
    current = SqlTaskStore().load(task.id)
    assert current is not None
    assert current.version == 2
    assert current.title == "concurrent"
    assert "taskConflict" in _event_types(seen)


def test_assign_is_owner_only(bus: EventBus, seen: list[EventEnvelope]) -> None:
    alice = _user("alice@example.com", "Alice")
    bob = _user("bob@example.com", "Bob")
    carol = _user("carol@example.com", "Carol")
    task = _shared_task(bus, alice, bob, SharePermission.FULL)
    service = TaskService(notifier=bus)

    with pytest.raises(ForbiddenError) as exc_info:
        service.assign(task.id, carol.id, bob.id)
    assert exc_info.value.held_level == PermissionLevel.FULL

    assigned = service.assign(task.id, carol.id, alice.id)
    assert assigned.assigned_user == carol.id
    assert assigned.version == 2
    types = _event_types(seen)
    assert "taskAssigned" in types
    assert types[types.index("taskAssigned") + 1] == "taskUpdated"


def test_list_count_and_search_cover_shared_tasks(bus: EventBus) -> None:
    alice = _user("alice@example.com", "Alice")
    bob = _user("bob@example.com", "Bob")
    shared = _shared_task(bus, alice, bob, SharePermission.VIEW)
    service = TaskService(notifier=bus)
    own = service.create(TaskCreate(title="Bob's own", status="done"), bob.id)
    service.create(TaskCreate(title="Alice private"), alice.id)

    visible = service.list_tasks(bob.id)
    assert [task.id for task in visible] == [own.id, shared.id]
    assert service.count_tasks(bob.id) == 2
    assert [task.id for task in service.search_tasks(bob.id, status="DONE")] == [own.id]
    assert [task.id for task in service.search_tasks(bob.id, text="quarterly")] == [shared.id]

    summary = service.shared_with([shared])[shared.id]
    assert summary[0].team_name == "Ops"
    assert summary[0].permissions == SharePermission.VIEW


def test_blank_search_filters_are_ignored(bus: EventBus) -> None:
    alice = _user("alice@example.com", "Alice")
    service = TaskService(notifier=bus)
    first = service.create(TaskCreate(title="One", status="done"), alice.id)
    second = service.create(TaskCreate(title="Two", priority="low"), alice.id)

    rows = service.search_tasks(alice.id, status="", priority="", text="")
    assert {task.id for task in rows} == {first.id, second.id}
    assert [task.id for task in service.search_tasks(alice.id, status="", priority="low")] == [second.id]
