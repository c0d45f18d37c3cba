from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Any, Mapping

from lifequest.codec import objective_from_doc, subtask_from_doc
from lifequest.constants import DIFFICULTIES, objective_xp_for
from lifequest.errors import ValidationError
from lifequest.models import Objective, Subtask


@dataclass(frozen=True)
class ObjectiveBook:
    objectives: dict[str, Objective] = field(default_factory=dict)
    subtasks: dict[str, tuple[Subtask, ...]] = field(default_factory=dict)

    def get(self, objective_id: str) -> Objective:
        objective = self.objectives.get(objective_id)
        if objective is None:
            raise ValidationError(f"unknown objective: {objective_id}")
        return objective

    def subtasks_for(self, objective_id: str) -> tuple[Subtask, ...]:
        return self.subtasks.get(objective_id, ())

    def current(self) -> Objective | None:
        for objective in self.objectives.values():
            if objective.is_current:
                return objective
        return None

    def completed_count(self) -> int:
        return sum(1 for o in self.objectives.values() if o.is_completed)


@dataclass(frozen=True)
class SubtaskToggle:
    objective: Objective
    subtask: Subtask
    completed: bool
    xp: int
    gold: int


@dataclass(frozen=True)
class Removal:
    objective: Objective
    subtasks: tuple[Subtask, ...]


def _with_objective(book: ObjectiveBook, objective: Objective) -> ObjectiveBook:
    objectives = dict(book.objectives)
    objectives[objective.id] = objective
    return replace(book, objectives=objectives)


def _with_subtasks(book: ObjectiveBook, objective_id: str, subtasks: tuple[Subtask, ...]) -> ObjectiveBook:
    mapping = dict(book.subtasks)
    mapping[objective_id] = subtasks
    return replace(book, subtasks=mapping)


def _require_open(objective: Objective) -> None:
    if objective.is_completed:
        raise ValidationError(f"objective {objective.id} is already completed")


def _validate_difficulty(difficulty: str) -> str:
    for known in DIFFICULTIES:
        if known.lower() == difficulty.strip().lower():
            return known
    raise ValidationError(f"difficulty must be one of {', '.join(DIFFICULTIES)}")


def _non_negative(name: str, value: int) -> int:
    if value < 0:
        raise ValidationError(f"{name} must be >= 0")
    return value


def create_objective(
    book: ObjectiveBook,
    objective_id: str,
    name: str,
    description: str = "",
    difficulty: str = "Normal",
    total_progress: int = 100,
    created_at: datetime | None = None,
    tuning: dict[str, int] | None = None,
) -> tuple[ObjectiveBook, Objective]:
    clean_name = name.strip()
    if not clean_name:
        raise ValidationError("objective name must not be empty")
    if total_progress <= 0:
        raise ValidationError("total_progress must be positive")
    if objective_id in book.objectives:
        raise ValidationError(f"objective {objective_id} already exists")
    level = _validate_difficulty(difficulty)
    objective = Objective(
        id=objective_id,
        name=clean_name,
        description=description.strip(),
        difficulty=level,
        xp_reward=objective_xp_for(level, tuning=tuning),
        total_progress=total_progress,
        created_at=created_at,
    )
    return _with_subtasks(_with_objective(book, objective), objective_id, ()), objective


def update_objective(
    book: ObjectiveBook,
    objective_id: str,
    name: str | None = None,
    description: str | None = None,
    difficulty: str | None = None,
    total_progress: int | None = None,
) -> tuple[ObjectiveBook, Objective]:
    objective = book.get(objective_id)
    _require_open(objective)
    updates: dict[str, Any] = {}
    if name is not None:
        if not name.strip():
            raise ValidationError("objective name must not be empty")
        updates["name"] = name.strip()
    if description is not None:
        updates["description"] = description.strip()
    if difficulty is not None:
        # xp_reward was fixed when the objective was created.
        updates["difficulty"] = _validate_difficulty(difficulty)
    if total_progress is not None:
        if total_progress <= 0:
            raise ValidationError("total_progress must be positive")
        updates["total_progress"] = total_progress
        updates["current_progress"] = min(objective.current_progress, total_progress)
    updated = replace(objective, **updates)
    return _with_objective(book, updated), updated


def select_current(
    book: ObjectiveBook,
    objective_id: str,
    selected_at: datetime | None = None,
) -> tuple[ObjectiveBook, list[Objective]]:
    """Make one objective current and clear the flag everywhere else.

    Returns the objectives whose ``is_current`` flag changed (the selected one
    is always included so its ``selected_at`` is persisted).
    """
    chosen = book.get(objective_id)
    _require_open(chosen)
    objectives: dict[str, Objective] = {}
    changed: list[Objective] = []
    for oid, objective in book.objectives.items():
        if oid == objective_id:
            updated = replace(objective, is_current=True, selected_at=selected_at or objective.selected_at)
            changed.append(updated)
        elif objective.is_current:
            updated = replace(objective, is_current=False)
            changed.append(updated)
        else:
            updated = objective
        objectives[oid] = updated
    return replace(book, objectives=objectives), changed


def repair_current(book: ObjectiveBook) -> tuple[ObjectiveBook, list[Objective]]:
    """Restore the at-most-one-current invariant; returns objectives that were cleared."""
    flagged = [o for o in book.objectives.values() if o.is_current]
    keeper: Objective | None = None
    for objective in flagged:
        if objective.is_completed:
            continue
        if keeper is None:
            keeper = objective
            continue
        if objective.selected_at is not None and (
            keeper.selected_at is None or objective.selected_at > keeper.selected_at
        ):
            keeper = objective
    cleared = [replace(o, is_current=False) for o in flagged if keeper is None or o.id != keeper.id]
    if not cleared:
        return book, []
    objectives = dict(book.objectives)
    for objective in cleared:
        objectives[objective.id] = objective
    return replace(book, objectives=objectives), cleared


def add_subtask(
    book: ObjectiveBook,
    subtask_id: str,
    text: str,
    xp_reward: int = 0,
    gold_reward: int = 0,
    progress_contribution: int = 0,
    due_date: date | None = None,
    is_punishment: bool = False,
) -> tuple[ObjectiveBook, Subtask]:
    current = book.current()
    if current is None:
        raise ValidationError("select a current objective before adding subtasks")
    _require_open(current)
    clean = text.strip()
    if not clean:
        raise ValidationError("subtask text must not be empty")
    _non_negative("xp_reward", xp_reward)
    _non_negative("gold_reward", gold_reward)
    _non_negative("progress_contribution", progress_contribution)
    if is_punishment:
        xp_reward = gold_reward = progress_contribution = 0
    subtask = Subtask(
        id=subtask_id,
        objective_id=current.id,
        text=clean,
        xp_reward=xp_reward,
        gold_reward=gold_reward,
        progress_contribution=progress_contribution,
        due_date=due_date,
        is_punishment=is_punishment,
    )
    return _with_subtasks(book, current.id, book.subtasks_for(current.id) + (subtask,)), subtask


def _find_subtask(book: ObjectiveBook, objective_id: str, subtask_id: str) -> tuple[int, Subtask]:
    for idx, subtask in enumerate(book.subtasks_for(objective_id)):
        if subtask.id == subtask_id:
            return idx, subtask
    raise ValidationError(f"unknown subtask: {subtask_id}")


def toggle_subtask(book: ObjectiveBook, objective_id: str, subtask_id: str) -> tuple[ObjectiveBook, SubtaskToggle]:
    objective = book.get(objective_id)
    _require_open(objective)
    idx, subtask = _find_subtask(book, objective_id, subtask_id)

    if not subtask.is_completed:
        progress = min(objective.current_progress + subtask.progress_contribution, objective.total_progress)
        xp, gold = subtask.xp_reward, subtask.gold_reward
        toggled = replace(subtask, is_completed=True, granted_xp=xp, granted_gold=gold)
    else:
        progress = max(objective.current_progress - subtask.progress_contribution, 0)
        # Undo reverses what was actually granted, not the current reward fields.
        xp, gold = subtask.granted_xp, subtask.granted_gold
        toggled = replace(subtask, is_completed=False, granted_xp=0, granted_gold=0)

    updated = replace(objective, current_progress=progress)
    subtasks = list(book.subtasks_for(objective_id))
    subtasks[idx] = toggled
    next_book = _with_subtasks(_with_objective(book, updated), objective_id, tuple(subtasks))
    return next_book, SubtaskToggle(
        objective=updated,
        subtask=toggled,
        completed=toggled.is_completed,
        xp=xp,
        gold=gold,
    )


def delete_subtask(book: ObjectiveBook, objective_id: str, subtask_id: str) -> tuple[ObjectiveBook, Subtask]:
    _require_open(book.get(objective_id))
    idx, subtask = _find_subtask(book, objective_id, subtask_id)
    subtasks = list(book.subtasks_for(objective_id))
    del subtasks[idx]
    return _with_subtasks(book, objective_id, tuple(subtasks)), subtask


def complete_objective(book: ObjectiveBook, objective_id: str) -> tuple[ObjectiveBook, Removal]:
    objective = book.get(objective_id)
    _require_open(objective)
    if objective.current_progress < objective.total_progress:
        raise ValidationError(
            f"objective progress {objective.current_progress}/{objective.total_progress} is not complete"
        )
    completed = replace(objective, is_completed=True, is_current=False)
    removed = book.subtasks_for(objective_id)
    subtasks = dict(book.subtasks)
    subtasks.pop(objective_id, None)
    next_book = replace(_with_objective(book, completed), subtasks=subtasks)
    return next_book, Removal(objective=completed, subtasks=removed)


def delete_objective(book: ObjectiveBook, objective_id: str) -> tuple[ObjectiveBook, Removal]:
    objective = book.get(objective_id)
    objectives = dict(book.objectives)
    del objectives[objective_id]
    subtasks = dict(book.subtasks)
    removed = subtasks.pop(objective_id, ())
    return ObjectiveBook(objectives=objectives, subtasks=subtasks), Removal(objective=objective, subtasks=removed)


def apply_objectives_snapshot(book: ObjectiveBook, docs: Mapping[str, Mapping[str, Any]]) -> ObjectiveBook:
    """Replace the objective set with a full collection snapshot, keeping known subtasks.

    The result may hold several current objectives; callers run ``repair_current``.
    """
    objectives = {oid: objective_from_doc(oid, doc) for oid, doc in docs.items()}
    subtasks = {oid: book.subtasks_for(oid) for oid, o in objectives.items() if not o.is_completed}
    return ObjectiveBook(objectives=objectives, subtasks=subtasks)


def apply_subtasks_snapshot(
    book: ObjectiveBook,
    objective_id: str,
    docs: Mapping[str, Mapping[str, Any]],
) -> ObjectiveBook:
    if objective_id not in book.objectives:
        return book
    subtasks = tuple(subtask_from_doc(objective_id, sid, doc) for sid, doc in docs.items())
    return _with_subtasks(book, objective_id, subtasks)
