from __future__ import annotations

from pathlib import Path

import pytest
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine

from collabtask.domain.errors import ConflictError, ForbiddenError, NotFoundError
from collabtask.domain.models import (
    AttachmentCreate,
    CommentCreate,
    EventEnvelope,
    SharePermission,
    SubtaskCreate,
    SubtaskUpdate,
    Task,
    TaskCreate,
    TeamCreate,
    User,
)
from collabtask.infra import db
from collabtask.infra.events import EventBus
from collabtask.infra.sql_stores import SqlUserDirectory
from collabtask.services.sharing_service import SharingService
from collabtask.services.task_items_service import AttachmentService, CommentService, SubtaskService
from collabtask.services.task_service import TaskService
from collabtask.services.team_service import TeamService


@pytest.fixture()
def test_engine(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Engine:
    engine = create_engine(
        f"sqlite:///{tmp_path / 'task_items_test.db'}",
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


def _setup(bus: EventBus, permission: SharePermission) -> tuple[User, User, Task]:
    users = SqlUserDirectory()
    alice = users.create(User(email="alice@example.com", full_name="Alice"))
    bob = users.create(User(email="bob@example.com", full_name="Bob"))
    teams = TeamService(notifier=bus)
    team = teams.create_team(alice.id, TeamCreate(name="Crew"))
    teams.invite_member(team.id, alice.id, bob.email)
    task = TaskService(notifier=bus).create(TaskCreate(title="Parent"), alice.id)
    SharingService(notifier=bus).share_task(task.id, team.id, alice.id, permission)
    return alice, bob, task


def test_subtask_flow_with_edit_share(bus: EventBus, seen: list[EventEnvelope]) -> None:
    alice, bob, task = _setup(bus, SharePermission.EDIT)
    service = SubtaskService(notifier=bus)

    own = service.add_subtask(task.id, SubtaskCreate(title="bob step"), bob.id)
    owners = service.add_subtask(task.id, SubtaskCreate(title="alice step"), alice.id)
    updated = service.update_subtask(own.id, SubtaskUpdate(is_completed=True), bob.id)
    assert updated.is_completed
    assert updated.title == "bob step"
    assert [row.id for row in service.list_subtasks(task.id, bob.id)] == [own.id, owners.id]

    service.delete_subtask(own.id, bob.id)
    with pytest.raises(ForbiddenError) as exc_info:
        service.delete_subtask(owners.id, bob.id)
    assert exc_info.value.held_level.label == "edit"
    service.delete_subtask(owners.id, alice.id)

    with pytest.raises(NotFoundError):
        service.add_subtask("missing", SubtaskCreate(title="x"), alice.id)
    types = [item.event_type for item in seen]
    for expected in ("subtaskAdded", "subtaskUpdated", "subtaskDeleted"):
        assert expected in types


def test_view_share_can_list_but_not_add(bus: EventBus) -> None:
    alice, bob, task = _setup(bus, SharePermission.VIEW)
    subtasks = SubtaskService(notifier=bus)
    comments = CommentService(notifier=bus)

    subtasks.add_subtask(task.id, SubtaskCreate(title="step"), alice.id)
    assert len(subtasks.list_subtasks(task.id, bob.id)) == 1
    with pytest.raises(ForbiddenError):
        subtasks.add_subtask(task.id, SubtaskCreate(title="mine"), bob.id)
    with pytest.raises(ForbiddenError):
        comments.add_comment(task.id, CommentCreate(comment="hi"), bob.id)
    assert comments.list_comments(task.id, bob.id) == []


def test_comment_removal_rules(bus: EventBus, seen: list[EventEnvelope]) -> None:
    alice, bob, task = _setup(bus, SharePermission.EDIT)
    service = CommentService(notifier=bus)

    from_alice = service.add_comment(task.id, CommentCreate(comment="kickoff"), alice.id)
    from_bob = service.add_comment(task.id, CommentCreate(comment="on it"), bob.id)

    with pytest.raises(ForbiddenError):
        service.remove_comment(from_alice.id, bob.id)
    service.remove_comment(from_bob.id, bob.id)
    service.remove_comment(from_alice.id, alice.id)
    with pytest.raises(NotFoundError):
        service.remove_comment(from_alice.id, alice.id)

    added = [item for item in seen if item.event_type == "commentAdded"]
    assert added[0].payload["comment"] == "kickoff"


def test_attachment_metadata_flow(bus: EventBus) -> None:
    alice, bob, task = _setup(bus, SharePermission.FULL)
    service = AttachmentService(notifier=bus)
    payload = AttachmentCreate(filename="spec.pdf", file_url="https://files.example.com/spec.pdf", public_id="att-1")

    created = service.add_attachment(task.id, payload, alice.id)
    assert created.uploaded_by == alice.id
    with pytest.raises(ConflictError):
        service.add_attachment(task.id, payload, alice.id)
    assert [row.public_id for row in service.list_attachments(task.id, bob.id)] == ["att-1"]

    service.remove_attachment(task.id, "att-1", bob.id)
    assert service.list_attachments(task.id, alice.id) == []
    with pytest.raises(NotFoundError):
        service.remove_attachment(task.id, "att-1", alice.id)
