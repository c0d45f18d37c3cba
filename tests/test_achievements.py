from __future__ import annotations

import pytest

from lifequest import achievements
from lifequest.models import PlayerStats
from lifequest.objectives import ObjectiveBook, apply_objectives_snapshot


def _book(completed: int) -> ObjectiveBook:
    docs = {f"o{i}": {"name": f"Q{i}", "isCompleted": True} for i in range(completed)}
    docs["open"] = {"name": "Open"}
    return apply_objectives_snapshot(ObjectiveBook(), docs)


def test_objective_trigger_counts_completed_only() -> None:
    assert achievements.scan(PlayerStats(), _book(0), achievements.TRIGGER_OBJECTIVES) == []
    assert achievements.scan(PlayerStats(), _book(1), achievements.TRIGGER_OBJECTIVES) == ["first_quest"]
    assert achievements.scan(PlayerStats(), _book(5), achievements.TRIGGER_OBJECTIVES) == [
        "first_quest",
        "quest_hunter",
    ]


def test_scan_is_idempotent() -> None:
    stats = PlayerStats(level=10)
    first = achievements.scan(stats, ObjectiveBook(), achievements.TRIGGER_LEVEL)
    assert first == ["level_5", "level_10"]
    unlocked = PlayerStats(level=10, achievements=frozenset(first))
    assert achievements.scan(unlocked, ObjectiveBook(), achievements.TRIGGER_LEVEL) == []


def test_value_overrides_counter() -> None:
    stats = PlayerStats(current_streak=1)
    assert achievements.scan(stats, ObjectiveBook(), achievements.TRIGGER_STREAK, value=7) == ["streak_3", "streak_7"]


def test_other_triggers_do_not_leak() -> None:
    stats = PlayerStats(pomodoro_count=30, daily_desire_count=1)
    assert achievements.scan(stats, ObjectiveBook(), achievements.TRIGGER_POMODORO) == ["pomodoro_1", "pomodoro_25"]
    assert achievements.scan(stats, ObjectiveBook(), achievements.TRIGGER_DAILY_DESIRE) == ["desire_1"]


def test_unknown_trigger_is_rejected() -> None:
    with pytest.raises(ValueError):
        achievements.scan(PlayerStats(), ObjectiveBook(), "unknown")


def test_progress_caps_at_threshold() -> None:
    stats = PlayerStats(pomodoro_count=30, achievements=frozenset({"pomodoro_1"}))
    rows = {p.achievement.id: p for p in achievements.progress(stats, ObjectiveBook())}
    assert rows["pomodoro_1"].unlocked is True
    assert rows["pomodoro_1"].current == 1
    assert rows["pomodoro_25"].current == 25
    assert rows["pomodoro_25"].unlocked is False
    assert len(rows) == len(achievements.ACHIEVEMENTS)


def test_get_achievement() -> None:
    assert achievements.get_achievement("streak_30").threshold == 30
    assert achievements.get_achievement("nope") is None
