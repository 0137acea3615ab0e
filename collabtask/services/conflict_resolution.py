from __future__ import annotations

from enum import StrEnum
from typing import Any

from collabtask.domain.errors import BadRequestError
from collabtask.domain.models import TASK_FIELD_DEFAULTS, Task, TaskConflictPayload

CLIENT_FIELDS: tuple[str, ...] = tuple(TASK_FIELD_DEFAULTS)
NON_NULL_FIELDS = frozenset({"status", "priority"})


class ConflictStrategy(StrEnum):
    OVERWRITE = "overwrite"
    MERGE = "merge"


def parse_strategy(value: ConflictStrategy | str) -> ConflictStrategy:
    try:
        return ConflictStrategy(value)
    except ValueError as exc:
        raise BadRequestError("invalid resolution strategy; use 'overwrite' or 'merge'") from exc


def client_fields(client_task: TaskConflictPayload) -> dict[str, Any]:
    present = client_task.model_fields_set & set(CLIENT_FIELDS)
    values = client_task.model_dump(include=present)
    return {
        key: value
        for key, value in values.items()
        if not (key in NON_NULL_FIELDS and value is None)
    }


def build_overwrite_patch(client_task: TaskConflictPayload) -> dict[str, Any]:
    patch = dict(TASK_FIELD_DEFAULTS)
    patch.update(client_fields(client_task))
    return patch


def build_merge_patch(current: Task, client_task: TaskConflictPayload) -> dict[str, Any]:
    patch = {field: getattr(current, field) for field in CLIENT_FIELDS}
    patch.update(client_fields(client_task))
    return patch


def build_resolution_patch(
    strategy: ConflictStrategy,
    current: Task,
    client_task: TaskConflictPayload,
) -> dict[str, Any]:
    if strategy == ConflictStrategy.OVERWRITE:
        return build_overwrite_patch(client_task)
    return build_merge_patch(current, client_task)
