"""
Planning helpers for the two multi-row mutations of the app.

Both functions are pure: they compute what has to change and leave the
actual writes (and the transaction around them) to the store.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Sequence

from taskflow.models import SubTaskUpdate


RECONCILE_APPEND = "append"
RECONCILE_REPLACE = "replace"
RECONCILE_POLICIES = (RECONCILE_APPEND, RECONCILE_REPLACE)


class InvalidSubtaskError(ValueError):
    """An update referenced a sub-task id that does not belong to the task."""

    def __init__(self, subtask_ids: Sequence[str]):
        self.subtask_ids = list(subtask_ids)
        super().__init__(
            f"Unknown sub-task id(s) for this task: {', '.join(self.subtask_ids)}"
        )


@dataclass
class SubtaskSyncPlan:
    to_delete: List[str] = field(default_factory=list)
    to_update: List[SubTaskUpdate] = field(default_factory=list)
    to_create: List[SubTaskUpdate] = field(default_factory=list)


def plan_subtask_sync(
    existing_ids: Iterable[str], incoming: Sequence[SubTaskUpdate]
) -> SubtaskSyncPlan:
    """
    Diff the stored sub-task ids of a task against a full replacement list.

    Ids missing from ``incoming`` are deleted, ids present in both are
    updated in place and entries without an id are created.
    """
    existing = list(existing_ids)
    existing_set = set(existing)
    plan = SubtaskSyncPlan()

    unknown = [s.id for s in incoming if s.id is not None and s.id not in existing_set]
    if unknown:
        raise InvalidSubtaskError(unknown)

    kept = set()
    for item in incoming:
        if item.id is None:
            plan.to_create.append(item)
        else:
            kept.add(item.id)
            plan.to_update.append(item)

    plan.to_delete = [sid for sid in existing if sid not in kept]
    return plan


def normalize_title(title: str) -> str:
    return re.sub(r"\s+", " ", title).strip().casefold()


@dataclass
class ReconcilePlan:
    delete_ids: List[str] = field(default_factory=list)
    create: List[Any] = field(default_factory=list)
    skipped: int = 0


def plan_reconciliation(
    existing: Sequence[Any], incoming: Sequence[Any], policy: str = RECONCILE_APPEND
) -> ReconcilePlan:
    """
    Merge freshly generated suggestions into the ones stored for a note.

    ``existing`` items need ``id``, ``title`` and ``is_added``; ``incoming``
    items need ``title``. Accepted suggestions are never deleted nor
    duplicated under either policy.
    """
    if policy not in RECONCILE_POLICIES:
        raise ValueError(f"Unknown reconciliation policy: {policy}")

    plan = ReconcilePlan()
    if policy == RECONCILE_REPLACE:
        plan.delete_ids = [s.id for s in existing if not s.is_added]
        seen = {normalize_title(s.title) for s in existing if s.is_added}
    else:
        seen = {normalize_title(s.title) for s in existing}

    for item in incoming:
        key = normalize_title(item.title)
        if key in seen:
            plan.skipped += 1
            continue
        seen.add(key)
        plan.create.append(item)
    return plan
