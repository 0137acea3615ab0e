from __future__ import annotations

import logging
import os
from typing import Any

from sqlmodel import Session, col, select

from collabtask.domain.models import ActionLog, ActionLogRead
from collabtask.infra.db import get_engine
from collabtask.infra.events import ACTION_LOGGED, EventNotifier, event_bus

logger = logging.getLogger(__name__)

ACTION_LOG_RECENT_LIMIT = int(os.getenv("ACTION_LOG_RECENT_LIMIT", "20"))


class ActionLogger:
    def __init__(self, notifier: EventNotifier | None = None) -> None:
        self._notifier = notifier if notifier is not None else event_bus

    def _session(self) -> Session:
        return Session(get_engine(), expire_on_commit=False)

    def log(
        self,
        actor_id: str,
        task_id: str | None,
        action_type: str,
        metadata: dict[str, Any] | None = None,
    ) -> ActionLog:
        row = ActionLog(
            actor_id=actor_id,
            task_id=task_id,
            action_type=action_type,
            detail=metadata or {},
        )
        with self._session() as session:
            session.add(row)
            session.commit()
            session.refresh(row)
        logger.info("action %s by %s on task %s", action_type, actor_id, task_id)
        self._notifier.emit(
            ACTION_LOGGED,
            ActionLogRead.model_validate(row).model_dump(mode="json"),
            actor_id=actor_id,
        )
        return row

    def recent(self, limit: int | None = None) -> list[ActionLog]:
        with self._session() as session:
            statement = (
                select(ActionLog)
                .order_by(col(ActionLog.ts).desc())
                .limit(limit or ACTION_LOG_RECENT_LIMIT)
            )
            return list(session.exec(statement).all())

    def for_task(self, task_id: str) -> list[ActionLog]:
        with self._session() as session:
            statement = (
                select(ActionLog)
                .where(ActionLog.task_id == task_id)
                .order_by(col(ActionLog.ts))
            )
            return list(session.exec(statement).all())
