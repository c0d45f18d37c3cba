from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Mapping, Union


@dataclass(frozen=True)
class GrantXp:
    amount: int


@dataclass(frozen=True)
class DeductXp:
    amount: int


@dataclass(frozen=True)
class AdjustCurrency:
    amount: int


@dataclass(frozen=True)
class AdjustVitality:
    amount: int


@dataclass(frozen=True)
class RecordSatisfaction:
    value: int
    day: date


@dataclass(frozen=True)
class TickStreak:
    day: date


@dataclass(frozen=True)
class ClaimDailyReward:
    now: datetime


@dataclass(frozen=True)
class GrantReward:
    xp: int
    gold: int


@dataclass(frozen=True)
class RevertReward:
    xp: int
    gold: int


@dataclass(frozen=True)
class FinishPomodoro:
    day: date


@dataclass(frozen=True)
class ClaimDailyDesire:
    xp: int
    gold: int
    day: date


@dataclass(frozen=True)
class CompleteTutorial:
    pass


@dataclass(frozen=True)
class UnlockAchievements:
    ids: frozenset[str]


@dataclass(frozen=True)
class ApplySnapshot:
    """Stats document fields pushed by the store; absent keys are left alone."""

    fields: Mapping[str, Any] = field(default_factory=dict)


Event = Union[
    GrantXp,
    DeductXp,
    AdjustCurrency,
    AdjustVitality,
    RecordSatisfaction,
    TickStreak,
    ClaimDailyReward,
    GrantReward,
    RevertReward,
    FinishPomodoro,
    ClaimDailyDesire,
    CompleteTutorial,
    UnlockAchievements,
    ApplySnapshot,
]
