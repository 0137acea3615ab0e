"""Load-balancing choice of a team member for a task.

Candidates are the team members other than the requester, in team join
order. The candidate with the strictly lowest count of active assigned
tasks wins; on a tie the earlier candidate is kept, so the outcome is
deterministic for a given membership order.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from collabtask.infra.stores import TaskStore

FALLBACK_NOTE = "No team members available. Task assigned to creator."


@dataclass(frozen=True)
class CandidateLoad:
    user_id: str
    active_count: int


@dataclass(frozen=True)
class SmartAssignChoice:
    assignee_id: str
    active_count: int | None
    fallback: bool

    @property
    def note(self) -> str:
        if self.fallback:
            return FALLBACK_NOTE
        return f"Task assigned to team member with {self.active_count} active tasks"


def candidate_pool(member_ids: Sequence[str], requester_id: str) -> list[str]:
    return [member_id for member_id in member_ids if member_id != requester_id]


def select_least_loaded(loads: Sequence[CandidateLoad]) -> CandidateLoad | None:
    chosen: CandidateLoad | None = None
    for load in loads:
        if chosen is None or load.active_count < chosen.active_count:
            chosen = load
    return chosen


class SmartAssignmentSelector:
    def __init__(self, tasks: TaskStore) -> None:
        self._tasks = tasks

    def measure(self, candidate_ids: Sequence[str]) -> list[CandidateLoad]:
        return [
            CandidateLoad(user_id=candidate_id, active_count=self._tasks.count_active(candidate_id))
            for candidate_id in candidate_ids
        ]

    def choose(self, member_ids: Sequence[str], requester_id: str) -> SmartAssignChoice:
        pool = candidate_pool(member_ids, requester_id)
        winner = select_least_loaded(self.measure(pool))
        if winner is None:
            return SmartAssignChoice(assignee_id=requester_id, active_count=None, fallback=True)
        return SmartAssignChoice(
            assignee_id=winner.user_id,
            active_count=winner.active_count,
            fallback=False,
        )
