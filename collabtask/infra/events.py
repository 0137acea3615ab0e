from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from typing import Any, Protocol

from sqlmodel import Session

from collabtask.domain.models import EventEnvelope, EventRecord
from collabtask.infra.db import get_engine

logger = logging.getLogger(__name__)

EventHandler = Callable[[EventEnvelope], None]

TASK_CREATED = "taskCreated"
TASK_UPDATED = "taskUpdated"
TASK_DELETED = "taskDeleted"
TASK_ASSIGNED = "taskAssigned"
TASK_CONFLICT = "taskConflict"
SUBTASK_ADDED = "subtaskAdded"
SUBTASK_UPDATED = "subtaskUpdated"
SUBTASK_DELETED = "subtaskDeleted"
COMMENT_ADDED = "commentAdded"
COMMENT_DELETED = "commentDeleted"
ATTACHMENT_ADDED = "attachmentAdded"
ATTACHMENT_DELETED = "attachmentDeleted"
TASK_SHARED = "taskShared"
TASK_UNSHARED = "taskUnshared"
TASK_PERMISSIONS_UPDATED = "taskPermissionsUpdated"
MEMBER_INVITED = "memberInvited"
MEMBER_REMOVED = "memberRemoved"
MEMBER_LEFT = "memberLeft"
TEAM_CREATED = "teamCreated"
TEAM_UPDATED = "teamUpdated"
TEAM_DELETED = "teamDeleted"
ACTION_LOGGED = "actionLogged"


class EventNotifier(Protocol):
    def emit(self, event_type: str, payload: dict[str, Any], actor_id: str | None = None) -> EventEnvelope: ...


class EventBus:
    def __init__(self) -> None:
        self._subscribers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        logger.debug("subscribing handler to %s", event_type)
        self._subscribers[event_type].append(handler)

    def unsubscribe(self, event_type: str, handler: EventHandler) -> None:
        if event_type in self._subscribers and handler in self._subscribers[event_type]:
            self._subscribers[event_type].remove(handler)

    def publish(self, event: EventEnvelope, session: Session | None = None) -> None:
        should_commit = session is None
        if session is None:
            session = Session(get_engine())
        try:
            record = EventRecord(
                event_id=event.event_id,
                event_type=event.event_type,
                ts=event.ts,
                actor_id=event.actor_id,
                payload=event.payload,
            )
            session.add(record)
            if should_commit:
                session.commit()
        finally:
            if should_commit:
                session.close()

        handlers = [*self._subscribers.get(event.event_type, []), *self._subscribers.get("*", [])]
        for handler in handlers:
            handler(event)

    def emit(self, event_type: str, payload: dict[str, Any], actor_id: str | None = None) -> EventEnvelope:
        event = EventEnvelope(
            event_type=event_type,
            actor_id=actor_id,
            payload=payload,
        )
        self.publish(event)
        return event


event_bus = EventBus()
