from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime


@dataclass(frozen=True)
class SatisfactionEntry:
    day: date
    value: int


@dataclass(frozen=True)
class PlayerStats:
    level: int = 1
    xp: int = 0
    xp_to_next_level: int = 100
    gold: int = 0
    vitality: int = 100
    max_vitality: int = 100
    current_satisfaction: int = 50
    satisfaction_history: tuple[SatisfactionEntry, ...] = ()
    last_daily_reward_claim: datetime | None = None
    current_streak: int = 0
    last_streak_date: date | None = None
    achievements: frozenset[str] = field(default_factory=frozenset)
    has_completed_tutorial: bool = False
    pomodoro_count: int = 0
    daily_desire_count: int = 0


@dataclass(frozen=True)
class Objective:
    id: str
    name: str
    description: str
    difficulty: str
    xp_reward: int
    total_progress: int
    current_progress: int = 0
    is_current: bool = False
    is_completed: bool = False
    created_at: datetime | None = None
    selected_at: datetime | None = None


@dataclass(frozen=True)
class Subtask:
    id: str
    objective_id: str
    text: str
    xp_reward: int = 0
    gold_reward: int = 0
    progress_contribution: int = 0
    is_completed: bool = False
    due_date: date | None = None
    is_punishment: bool = False
    granted_xp: int = 0
    granted_gold: int = 0


@dataclass(frozen=True)
class DailyDesire:
    text: str
    xp_reward: int
    gold_reward: int
    time_limit_minutes: int
    day: date
    completed: bool = False


@dataclass(frozen=True)
class Achievement:
    id: str
    name: str
    description: str
    trigger_type: str
    threshold: int
