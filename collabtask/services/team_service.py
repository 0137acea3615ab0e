from __future__ import annotations

import logging
from typing import Any

from collabtask.domain.errors import BadRequestError, ForbiddenError, NotFoundError
from collabtask.domain.models import Team, TeamCreate, TeamRead, TeamUpdate
from collabtask.infra.audit import ActionLogger
from collabtask.infra.events import (
    MEMBER_INVITED,
    MEMBER_LEFT,
    MEMBER_REMOVED,
    TEAM_CREATED,
    TEAM_DELETED,
    TEAM_UPDATED,
    EventNotifier,
    event_bus,
)
from collabtask.infra.sql_stores import SqlTeamStore, SqlUserDirectory
from collabtask.infra.stores import TeamStore, UserDirectory
from collabtask.services.identity import user_summary

logger = logging.getLogger(__name__)


class TeamService:
    def __init__(
        self,
        *,
        teams: TeamStore | None = None,
        users: UserDirectory | None = None,
        notifier: EventNotifier | None = None,
        actions: ActionLogger | None = None,
    ) -> None:
        self._teams = teams if teams is not None else SqlTeamStore()
        self._users = users if users is not None else SqlUserDirectory()
        self._notifier = notifier if notifier is not None else event_bus
        self._actions = actions if actions is not None else ActionLogger(self._notifier)

    def _get_team(self, team_id: str) -> Team:
        team = self._teams.get_by_id(team_id)
        if team is None:
            raise NotFoundError("team not found")
        return team

    def _ensure_creator(self, team: Team, user_id: str, message: str) -> None:
        if team.created_by != user_id:
            raise ForbiddenError(message)

    def to_read(self, team: Team) -> TeamRead:
        payload = team.model_dump()
        payload["members"] = self._teams.get_member_ids(team.id)
        return TeamRead.model_validate(payload)

    def _snapshot(self, team: Team) -> dict[str, Any]:
        return self.to_read(team).model_dump(mode="json")

    def create_team(self, user_id: str, payload: TeamCreate) -> Team:
        team = self._teams.create(
            Team(name=payload.name, description=payload.description, created_by=user_id)
        )
        self._notifier.emit(TEAM_CREATED, self._snapshot(team), actor_id=user_id)
        self._actions.log(user_id, None, "team_created", {"team_name": team.name})
        return team

    def invite_member(self, team_id: str, inviter_id: str, email: str) -> Team:
        team = self._get_team(team_id)
        self._ensure_creator(team, inviter_id, "you are not authorized to invite members to this team")
        user = self._users.find_by_email(email)
        if user is None:
            raise NotFoundError("user with this email doesn't exist")
        self._teams.add_member(team_id, user.id)
        self._notifier.emit(
            MEMBER_INVITED,
            {
                "team_id": team_id,
                "member": user_summary(self._users, user.id),
                "invited_by": user_summary(self._users, inviter_id),
            },
            actor_id=inviter_id,
        )
        self._actions.log(inviter_id, None, "member_invited", {"invited_email": user.email, "team_id": team_id})
        return team

    def remove_member(self, team_id: str, user_id: str, requester_id: str) -> Team:
        team = self._get_team(team_id)
        self._ensure_creator(team, requester_id, "only the team creator can remove members")
        if team.created_by == user_id:
            raise BadRequestError("cannot remove the team creator")
        if not self._teams.remove_member(team_id, user_id):
            raise NotFoundError("user is not a member of this team")
        self._notifier.emit(
            MEMBER_REMOVED,
            {"team_id": team_id, "user_id": user_id, "removed_by": user_summary(self._users, requester_id)},
            actor_id=requester_id,
        )
        self._actions.log(requester_id, None, "member_removed", {"removed_user_id": user_id, "team_id": team_id})
        return team

    def leave_team(self, team_id: str, user_id: str) -> Team:
        team = self._get_team(team_id)
        if team.created_by == user_id:
            raise BadRequestError("team creator cannot leave the team; delete the team instead")
        if not self._teams.is_member(team_id, user_id):
            raise BadRequestError("you are not a member of this team")
        self._teams.remove_member(team_id, user_id)
        self._actions.log(user_id, None, "left_team", {"team_name": team.name})
        self._notifier.emit(MEMBER_LEFT, {"team_id": team_id, "user_id": user_id}, actor_id=user_id)
        return team

    def get_team(self, team_id: str, user_id: str) -> Team:
        team = self._get_team(team_id)
        if not self._teams.is_member(team_id, user_id):
            raise ForbiddenError("you are not authorized to view this team")
        return team

    def list_my_teams(self, user_id: str) -> list[Team]:
        return self._teams.get_teams_for_member(user_id)

    def update_team(self, team_id: str, payload: TeamUpdate, user_id: str) -> Team:
        team = self._get_team(team_id)
        self._ensure_creator(team, user_id, "only the team creator can update team details")
        changes: dict[str, Any] = {}
        if payload.name:
            changes["name"] = payload.name
        if "description" in payload.model_fields_set:
            changes["description"] = payload.description
        updated = self._teams.update_details(team_id, changes)
        if updated is None:
            raise NotFoundError("team not found")
        snapshot = self._snapshot(updated)
        snapshot["updated_by"] = user_summary(self._users, user_id)
        self._notifier.emit(TEAM_UPDATED, snapshot, actor_id=user_id)
        self._actions.log(user_id, None, "team_updated", {"team_name": updated.name})
        return updated

    def delete_team(self, team_id: str, user_id: str) -> None:
        team = self._get_team(team_id)
        self._ensure_creator(team, user_id, "only the team creator can delete this team")
        if not self._teams.delete(team_id):
            raise NotFoundError("team not found")
        logger.info("team %s deleted by %s", team_id, user_id)
        self._notifier.emit(
            TEAM_DELETED,
            {"team_id": team_id, "deleted_by": user_summary(self._users, user_id)},
            actor_id=user_id,
        )
        self._actions.log(user_id, None, "team_deleted", {"team_name": team.name})
