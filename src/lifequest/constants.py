from __future__ import annotations

from typing import Any

DIFFICULTIES = ("Easy", "Normal", "Hard", "Epic")

DEFAULT_TUNING: dict[str, int] = {
    "objective_xp_easy": 50,
    "objective_xp_normal": 100,
    "objective_xp_hard": 200,
    "objective_xp_epic": 500,
    "level_curve_numerator": 3,
    "level_curve_denominator": 2,
    "daily_reward_xp": 25,
    "daily_reward_gold": 50,
    "pomodoro_xp": 10,
    "pomodoro_gold": 5,
    "pomodoro_vitality_cost": 5,
    "satisfaction_history_limit": 30,
    "desire_xp": 15,
    "desire_gold": 10,
    "desire_time_limit_minutes": 30,
}

INITIAL_PLAYER_STATS: dict[str, Any] = {
    "level": 1,
    "xp": 0,
    "xpToNextLevel": 100,
    "gold": 0,
    "vitality": 100,
    "maxVitality": 100,
    "currentSatisfaction": 50,
    "satisfactionHistory": [],
    "lastDailyRewardClaim": None,
    "currentStreak": 0,
    "lastStreakDate": None,
    "achievements": [],
    "hasCompletedTutorial": False,
    "pomodoroCount": 0,
    "dailyDesireCount": 0,
}


def effective_tuning(tuning: dict[str, int] | None = None) -> dict[str, int]:
    if not tuning:
        return dict(DEFAULT_TUNING)
    merged = dict(DEFAULT_TUNING)
    merged.update(tuning)
    return merged


def objective_xp_for(difficulty: str, tuning: dict[str, int] | None = None) -> int:
    cfg = effective_tuning(tuning)
    key = f"objective_xp_{difficulty.lower()}"
    return max(0, int(cfg.get(key, cfg["objective_xp_normal"])))


FALLBACK_DESIRES: tuple[str, ...] = (
    "Take a slow walk outside without your phone",
    "Brew your favourite tea or coffee and enjoy it sitting down",
    "Listen to one album start to finish",
    "Read a chapter of a book just for fun",
    "Stretch for ten minutes to calm music",
    "Cook yourself a small treat",
)
