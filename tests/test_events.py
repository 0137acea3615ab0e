from __future__ import annotations

from pathlib import Path

import pytest
from sqlmodel import Session, SQLModel, create_engine, select

from collabtask.domain.models import ActionLog, EventEnvelope, EventRecord
from collabtask.infra import db
from collabtask.infra.audit import ActionLogger
from collabtask.infra.events import EventBus


def test_event_bus_publish_and_subscribe() -> None:
    engine = create_engine("sqlite:///:memory:")
    SQLModel.metadata.create_all(engine)

    bus = EventBus()
    seen: list[str] = []
    everything: list[str] = []

    def handler(event: EventEnvelope) -> None:
        seen.append(event.event_id)

    event = EventEnvelope(
        event_type="taskCreated",
        actor_id="alice",
        payload={"id": "task-1"},
    )
    bus.subscribe("taskCreated", handler)
    bus.subscribe("*", lambda item: everything.append(item.event_type))

    with Session(engine) as session:
        bus.publish(event, session=session)
        session.commit()

    with Session(engine) as session:
        stored = session.exec(select(EventRecord)).all()

    assert len(stored) == 1
    assert stored[0].event_id == event.event_id
    assert seen == [event.event_id]
    assert everything == ["taskCreated"]

    bus.unsubscribe("taskCreated", handler)
    with Session(engine) as session:
        bus.publish(EventEnvelope(event_type="taskCreated", payload={}), session=session)
    assert seen == [event.event_id]


def test_action_logger_persists_and_emits(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    engine = create_engine(
        f"sqlite:///{tmp_path / 'events_test.db'}",
        connect_args={"check_same_thread": False},
    )
    SQLModel.metadata.create_all(engine)
    monkeypatch.setattr(db, "engine", engine)

    bus = EventBus()
    logged: list[EventEnvelope] = []
    bus.subscribe("actionLogged", logged.append)
    actions = ActionLogger(bus)

    first = actions.log("alice", "task-1", "created")
    second = actions.log("bob", "task-1", "updated", {"field": "title"})
    actions.log("bob", None, "team_created")

    assert [row.id for row in actions.for_task("task-1")] == [first.id, second.id]
    recent = actions.recent(limit=2)
    assert [row.action_type for row in recent] == ["team_created", "updated"]
    assert logged[1].payload["detail"] == {"field": "title"}
    assert logged[1].actor_id == "bob"

    with Session(engine) as session:
        assert len(session.exec(select(ActionLog)).all()) == 3
        assert len(session.exec(select(EventRecord)).all()) == 3
