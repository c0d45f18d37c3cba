from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, timezone
from typing import Any, Mapping

from lifequest.models import DailyDesire, Objective, PlayerStats, SatisfactionEntry, Subtask

STATS_FIELDS = {
    "level": "level",
    "xp": "xp",
    "xpToNextLevel": "xp_to_next_level",
    "gold": "gold",
    "vitality": "vitality",
    "maxVitality": "max_vitality",
    "currentSatisfaction": "current_satisfaction",
    "satisfactionHistory": "satisfaction_history",
    "lastDailyRewardClaim": "last_daily_reward_claim",
    "currentStreak": "current_streak",
    "lastStreakDate": "last_streak_date",
    "achievements": "achievements",
    "hasCompletedTutorial": "has_completed_tutorial",
    "pomodoroCount": "pomodoro_count",
    "dailyDesireCount": "daily_desire_count",
}


def _int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _parse_date(value: Any) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def _parse_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value))
        except ValueError:
            return None
    # Timestamps without an offset are read as UTC so they compare with aware clocks.
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _history_from_doc(raw: Any) -> tuple[SatisfactionEntry, ...]:
    if not isinstance(raw, list):
        return ()
    entries: list[SatisfactionEntry] = []
    for item in raw:
        if not isinstance(item, Mapping):
            continue
        day = _parse_date(item.get("date"))
        if day is None:
            continue
        entries.append(SatisfactionEntry(day=day, value=min(max(0, _int(item.get("value"), 0)), 100)))
    entries.sort(key=lambda e: e.day)
    return tuple(entries)


def _stats_field_to_doc(name: str, stats: PlayerStats) -> Any:
    value = getattr(stats, name)
    if name == "satisfaction_history":
        return [{"date": e.day.isoformat(), "value": e.value} for e in value]
    if name == "achievements":
        return sorted(value)
    if name in ("last_daily_reward_claim", "last_streak_date"):
        return _iso(value)
    return value


def stats_to_doc(stats: PlayerStats) -> dict[str, Any]:
    return {key: _stats_field_to_doc(attr, stats) for key, attr in STATS_FIELDS.items()}


def stats_from_doc(doc: Mapping[str, Any], base: PlayerStats | None = None) -> PlayerStats:
    """Overlay the document's fields onto ``base``; keys it lacks keep their base value."""
    current = base or PlayerStats()
    updates: dict[str, Any] = {}
    for key, attr in STATS_FIELDS.items():
        if key not in doc:
            continue
        raw = doc[key]
        if attr == "satisfaction_history":
            updates[attr] = _history_from_doc(raw)
        elif attr == "achievements":
            updates[attr] = frozenset(str(a) for a in raw) if isinstance(raw, (list, tuple, set, frozenset)) else frozenset()
        elif attr == "last_daily_reward_claim":
            updates[attr] = _parse_datetime(raw)
        elif attr == "last_streak_date":
            updates[attr] = _parse_date(raw)
        elif attr == "has_completed_tutorial":
            updates[attr] = bool(raw)
        else:
            updates[attr] = _int(raw, getattr(current, attr))
    return _within_bounds(replace(current, **updates))


def _within_bounds(stats: PlayerStats) -> PlayerStats:
    """Clamp decoded counters into their valid ranges.

    ``xp`` may still reach ``xp_to_next_level``; the reducer carries that
    overflow through the level loop.
    """
    max_vitality = max(1, stats.max_vitality)
    return replace(
        stats,
        level=max(1, stats.level),
        xp=max(0, stats.xp),
        xp_to_next_level=max(1, stats.xp_to_next_level),
        gold=max(0, stats.gold),
        max_vitality=max_vitality,
        vitality=min(max(0, stats.vitality), max_vitality),
        current_satisfaction=min(max(0, stats.current_satisfaction), 100),
        current_streak=max(0, stats.current_streak),
        pomodoro_count=max(0, stats.pomodoro_count),
        daily_desire_count=max(0, stats.daily_desire_count),
    )


def stats_diff(old: PlayerStats, new: PlayerStats) -> dict[str, Any]:
    diff: dict[str, Any] = {}
    for key, attr in STATS_FIELDS.items():
        if getattr(old, attr) != getattr(new, attr):
            diff[key] = _stats_field_to_doc(attr, new)
    return diff


def objective_to_doc(objective: Objective) -> dict[str, Any]:
    return {
        "name": objective.name,
        "description": objective.description,
        "difficulty": objective.difficulty,
        "xpReward": objective.xp_reward,
        "totalProgress": objective.total_progress,
        "currentProgress": objective.current_progress,
        "isCurrent": objective.is_current,
        "isCompleted": objective.is_completed,
        "createdAt": _iso(objective.created_at),
        "selectedAt": _iso(objective.selected_at),
    }


def objective_from_doc(objective_id: str, doc: Mapping[str, Any]) -> Objective:
    total = max(1, _int(doc.get("totalProgress"), 100))
    current = min(max(0, _int(doc.get("currentProgress"), 0)), total)
    return Objective(
        id=objective_id,
        name=str(doc.get("name", "")),
        description=str(doc.get("description", "") or ""),
        difficulty=str(doc.get("difficulty", "Normal")),
        xp_reward=max(0, _int(doc.get("xpReward"), 0)),
        total_progress=total,
        current_progress=current,
        is_current=bool(doc.get("isCurrent", False)),
        is_completed=bool(doc.get("isCompleted", False)),
        created_at=_parse_datetime(doc.get("createdAt")),
        selected_at=_parse_datetime(doc.get("selectedAt")),
    )


def subtask_to_doc(subtask: Subtask) -> dict[str, Any]:
    return {
        "text": subtask.text,
        "xpReward": subtask.xp_reward,
        "goldReward": subtask.gold_reward,
        "progressContribution": subtask.progress_contribution,
        "isCompleted": subtask.is_completed,
        "dueDate": _iso(subtask.due_date),
        "isPunishment": subtask.is_punishment,
        "grantedXp": subtask.granted_xp,
        "grantedGold": subtask.granted_gold,
    }


def subtask_from_doc(objective_id: str, subtask_id: str, doc: Mapping[str, Any]) -> Subtask:
    return Subtask(
        id=subtask_id,
        objective_id=objective_id,
        text=str(doc.get("text", "")),
        xp_reward=max(0, _int(doc.get("xpReward"), 0)),
        gold_reward=max(0, _int(doc.get("goldReward"), 0)),
        progress_contribution=max(0, _int(doc.get("progressContribution"), 0)),
        is_completed=bool(doc.get("isCompleted", False)),
        due_date=_parse_date(doc.get("dueDate")),
        is_punishment=bool(doc.get("isPunishment", False)),
        granted_xp=max(0, _int(doc.get("grantedXp"), 0)),
        granted_gold=max(0, _int(doc.get("grantedGold"), 0)),
    )


def desire_to_doc(desire: DailyDesire) -> dict[str, Any]:
    return {
        "text": desire.text,
        "xpReward": desire.xp_reward,
        "goldReward": desire.gold_reward,
        "timeLimitMinutes": desire.time_limit_minutes,
        "date": desire.day.isoformat(),
        "completed": desire.completed,
    }


def desire_from_doc(doc: Mapping[str, Any]) -> DailyDesire | None:
    day = _parse_date(doc.get("date"))
    text = str(doc.get("text", "")).strip()
    if day is None or not text:
        return None
    return DailyDesire(
        text=text,
        xp_reward=max(0, _int(doc.get("xpReward"), 0)),
        gold_reward=max(0, _int(doc.get("goldReward"), 0)),
        time_limit_minutes=max(0, _int(doc.get("timeLimitMinutes"), 0)),
        day=day,
        completed=bool(doc.get("completed", False)),
    )
