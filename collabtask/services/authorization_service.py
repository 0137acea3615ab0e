from __future__ import annotations

import logging

from collabtask.domain.errors import ForbiddenError
from collabtask.domain.models import Task
from collabtask.domain.permissions import (
    AuthorizationDecision,
    PermissionLevel,
    TaskAction,
    decide,
    denial_message,
    is_owner,
)
from collabtask.infra.sql_stores import SqlShareStore, SqlTeamStore
from collabtask.infra.stores import ShareStore, TeamStore

logger = logging.getLogger(__name__)


class TaskAuthorizationService:
    def __init__(
        self,
        *,
        teams: TeamStore | None = None,
        shares: ShareStore | None = None,
    ) -> None:
        self._teams = teams if teams is not None else SqlTeamStore()
        self._shares = shares if shares is not None else SqlShareStore()

    def check(self, task: Task, user_id: str, action: TaskAction | str) -> AuthorizationDecision:
        if is_owner(task, user_id):
            return AuthorizationDecision(action=TaskAction(action), level=PermissionLevel.OWNER)
        # Memberships and shares are re-read on every decision.
        member_team_ids = {team.id for team in self._teams.get_teams_for_member(user_id)}
        shares = self._shares.get_shares_for_task(task.id)
        return decide(task, user_id, action, shares, member_team_ids)

    def resolve(self, task: Task, user_id: str) -> PermissionLevel:
        return self.check(task, user_id, TaskAction.VIEW).level

    def authorize(self, task: Task, user_id: str, action: TaskAction | str) -> bool:
        return self.check(task, user_id, action).allowed

    def require(self, task: Task, user_id: str, action: TaskAction | str) -> PermissionLevel:
        decision = self.check(task, user_id, action)
        if not decision.allowed:
            logger.warning(
                "denied %s on task %s for %s holding %s",
                decision.action.value,
                task.id,
                user_id,
                decision.level.label,
            )
            raise ForbiddenError(
                denial_message(decision),
                action=decision.action,
                held_level=decision.level,
            )
        return decision.level
