from __future__ import annotations

from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from lifequest.errors import ValidationError
from lifequest.objectives import (
    ObjectiveBook,
    add_subtask,
    apply_objectives_snapshot,
    apply_subtasks_snapshot,
    complete_objective,
    create_objective,
    delete_objective,
    delete_subtask,
    repair_current,
    select_current,
    toggle_subtask,
    update_objective,
)


def _dt(y: int, m: int, d: int, h: int = 10, minute: int = 0) -> datetime:
    return datetime(y, m, d, h, minute, tzinfo=ZoneInfo("Europe/Oslo"))


def _book_with_current(total: int = 100) -> ObjectiveBook:
    book, _ = create_objective(ObjectiveBook(), "o1", "Run a marathon", difficulty="Hard", total_progress=total)
    book, _ = select_current(book, "o1", selected_at=_dt(2026, 2, 1))
    return book


def test_create_objective_validates_and_fixes_reward() -> None:
    book, objective = create_objective(ObjectiveBook(), "o1", "  Learn Rust ", difficulty="epic")
    assert objective.name == "Learn Rust"
    assert objective.difficulty == "Epic"
    assert objective.xp_reward == 500
    assert book.subtasks_for("o1") == ()

    with pytest.raises(ValidationError):
        create_objective(ObjectiveBook(), "o2", "   ")
    with pytest.raises(ValidationError):
        create_objective(ObjectiveBook(), "o2", "x", total_progress=0)
    with pytest.raises(ValidationError):
        create_objective(ObjectiveBook(), "o2", "x", difficulty="Legendary")
    with pytest.raises(ValidationError):
        create_objective(book, "o1", "dup")


def test_update_keeps_reward_and_clamps_progress() -> None:
    book = _book_with_current()
    book, _ = add_subtask(book, "s1", "long run", progress_contribution=80)
    book, _ = toggle_subtask(book, "o1", "s1")
    book, updated = update_objective(book, "o1", difficulty="Easy", total_progress=50)
    assert updated.xp_reward == 200
    assert updated.difficulty == "Easy"
    assert updated.current_progress == 50


def test_select_current_is_exclusive() -> None:
    book = _book_with_current()
    book, _ = create_objective(book, "o2", "Read 12 books")
    book, changed = select_current(book, "o2", selected_at=_dt(2026, 2, 2))
    assert {o.id for o in changed} == {"o1", "o2"}
    assert [o.id for o in book.objectives.values() if o.is_current] == ["o2"]
    assert book.current().selected_at == _dt(2026, 2, 2)


def test_repair_keeps_latest_selection() -> None:
    docs = {
        "a": {"name": "A", "isCurrent": True, "selectedAt": _dt(2026, 2, 1).isoformat()},
        "b": {"name": "B", "isCurrent": True, "selectedAt": _dt(2026, 2, 3).isoformat()},
        "c": {"name": "C", "isCurrent": True, "isCompleted": True},
    }
    book = apply_objectives_snapshot(ObjectiveBook(), docs)
    repaired, cleared = repair_current(book)
    assert repaired.current().id == "b"
    assert {o.id for o in cleared} == {"a", "c"}
    assert repair_current(repaired) == (repaired, [])


def test_add_subtask_requires_current_objective() -> None:
    book, _ = create_objective(ObjectiveBook(), "o1", "Unselected")
    with pytest.raises(ValidationError):
        add_subtask(book, "s1", "step")


def test_punishment_subtask_carries_no_reward() -> None:
    book, subtask = add_subtask(_book_with_current(), "s1", "no sugar", xp_reward=30, gold_reward=5,
                                progress_contribution=10, is_punishment=True)
    assert (subtask.xp_reward, subtask.gold_reward, subtask.progress_contribution) == (0, 0, 0)
    book, toggle = toggle_subtask(book, "o1", "s1")
    assert toggle.xp == 0
    assert book.get("o1").current_progress == 0


def test_double_toggle_round_trip() -> None:
    book, _ = add_subtask(_book_with_current(), "s1", "interval run", xp_reward=20, gold_reward=10,
                          progress_contribution=30)
    once, first = toggle_subtask(book, "o1", "s1")
    undone, undo = toggle_subtask(once, "o1", "s1")
    again, second = toggle_subtask(undone, "o1", "s1")

    assert undo.completed is False
    assert (undo.xp, undo.gold) == (20, 10)
    assert undone.get("o1").current_progress == 0
    assert again.get("o1").current_progress == once.get("o1").current_progress == 30
    assert (second.xp, second.gold) == (first.xp, first.gold)


def test_undo_reverts_granted_amounts() -> None:
    book, _ = add_subtask(_book_with_current(), "s1", "step", xp_reward=20, gold_reward=10)
    book, _ = toggle_subtask(book, "o1", "s1")
    # A later snapshot edits the reward fields of the completed subtask.
    book = apply_subtasks_snapshot(
        book,
        "o1",
        {"s1": {"text": "step", "xpReward": 99, "goldReward": 99, "isCompleted": True, "grantedXp": 20, "grantedGold": 10}},
    )
    _, undo = toggle_subtask(book, "o1", "s1")
    assert (undo.xp, undo.gold) == (20, 10)


def test_progress_is_clamped_both_ways() -> None:
    book = _book_with_current(total=100)
    book, _ = add_subtask(book, "s1", "a", progress_contribution=70)
    book, _ = add_subtask(book, "s2", "b", progress_contribution=70)
    book, _ = toggle_subtask(book, "o1", "s1")
    book, _ = toggle_subtask(book, "o1", "s2")
    assert book.get("o1").current_progress == 100
    book, _ = toggle_subtask(book, "o1", "s1")
    assert book.get("o1").current_progress == 30
    book, _ = toggle_subtask(book, "o1", "s2")
    assert book.get("o1").current_progress == 0


def test_objective_scenario_complete_and_cascade() -> None:
    book = _book_with_current(total=100)
    book, _ = add_subtask(book, "s1", "first", xp_reward=20, gold_reward=10, progress_contribution=60)
    book, toggle = toggle_subtask(book, "o1", "s1")
    assert book.get("o1").current_progress == 60
    assert (toggle.xp, toggle.gold) == (20, 10)

    with pytest.raises(ValidationError):
        complete_objective(book, "o1")

    book, _ = add_subtask(book, "s2", "second", progress_contribution=50)
    book, _ = toggle_subtask(book, "o1", "s2")
    assert book.get("o1").current_progress == 100

    book, removal = complete_objective(book, "o1")
    assert removal.objective.is_completed is True
    assert removal.objective.is_current is False
    assert removal.objective.xp_reward == 200
    assert {s.id for s in removal.subtasks} == {"s1", "s2"}
    assert book.subtasks_for("o1") == ()
    assert book.completed_count() == 1

    with pytest.raises(ValidationError):
        complete_objective(book, "o1")


def test_delete_subtask_and_objective() -> None:
    book, _ = add_subtask(_book_with_current(), "s1", "a")
    book, _ = add_subtask(book, "s2", "b")
    book, removed = delete_subtask(book, "o1", "s1")
    assert removed.id == "s1"
    assert [s.id for s in book.subtasks_for("o1")] == ["s2"]

    book, removal = delete_objective(book, "o1")
    assert "o1" not in book.objectives
    assert [s.id for s in removal.subtasks] == ["s2"]
    with pytest.raises(ValidationError):
        delete_objective(book, "o1")


def test_snapshot_for_unknown_objective_is_ignored() -> None:
    book = _book_with_current()
    assert apply_subtasks_snapshot(book, "ghost", {"s": {"text": "x"}}) is book
