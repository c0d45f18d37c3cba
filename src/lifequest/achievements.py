from __future__ import annotations

from dataclasses import dataclass

from lifequest.models import Achievement, PlayerStats
from lifequest.objectives import ObjectiveBook

TRIGGER_OBJECTIVES = "objectives_completed"
TRIGGER_LEVEL = "level"
TRIGGER_STREAK = "streak"
TRIGGER_POMODORO = "pomodoro"
TRIGGER_DAILY_DESIRE = "daily_desire"

TRIGGER_TYPES = (
    TRIGGER_OBJECTIVES,
    TRIGGER_LEVEL,
    TRIGGER_STREAK,
    TRIGGER_POMODORO,
    TRIGGER_DAILY_DESIRE,
)

ACHIEVEMENTS: tuple[Achievement, ...] = (
    Achievement("first_quest", "First Quest", "Complete your first objective", TRIGGER_OBJECTIVES, 1),
    Achievement("quest_hunter", "Quest Hunter", "Complete 5 objectives", TRIGGER_OBJECTIVES, 5),
    Achievement("legend_of_quests", "Legend of Quests", "Complete 20 objectives", TRIGGER_OBJECTIVES, 20),
    Achievement("level_5", "Rising Hero", "Reach level 5", TRIGGER_LEVEL, 5),
    Achievement("level_10", "Seasoned Hero", "Reach level 10", TRIGGER_LEVEL, 10),
    Achievement("level_25", "Living Legend", "Reach level 25", TRIGGER_LEVEL, 25),
    Achievement("streak_3", "Warming Up", "Keep a 3-day streak", TRIGGER_STREAK, 3),
    Achievement("streak_7", "Week Warrior", "Keep a 7-day streak", TRIGGER_STREAK, 7),
    Achievement("streak_30", "Month Master", "Keep a 30-day streak", TRIGGER_STREAK, 30),
    Achievement("pomodoro_1", "Tomato Timer", "Finish your first pomodoro", TRIGGER_POMODORO, 1),
    Achievement("pomodoro_25", "Focus Farmer", "Finish 25 pomodoros", TRIGGER_POMODORO, 25),
    Achievement("desire_1", "Treat Yourself", "Claim your first daily desire", TRIGGER_DAILY_DESIRE, 1),
    Achievement("desire_10", "Desire Collector", "Claim 10 daily desires", TRIGGER_DAILY_DESIRE, 10),
)


@dataclass(frozen=True)
class AchievementProgress:
    achievement: Achievement
    current: int
    unlocked: bool


def counter_for(trigger_type: str, stats: PlayerStats, book: ObjectiveBook, value: int | None = None) -> int:
    if trigger_type == TRIGGER_OBJECTIVES:
        return book.completed_count()
    if trigger_type == TRIGGER_LEVEL:
        return stats.level if value is None else value
    if trigger_type == TRIGGER_STREAK:
        return stats.current_streak if value is None else value
    if trigger_type == TRIGGER_POMODORO:
        return stats.pomodoro_count
    if trigger_type == TRIGGER_DAILY_DESIRE:
        return stats.daily_desire_count
    return 0


def scan(
    stats: PlayerStats,
    book: ObjectiveBook,
    trigger_type: str,
    value: int | None = None,
    table: tuple[Achievement, ...] = ACHIEVEMENTS,
) -> list[str]:
    """Return ids newly unlocked by ``trigger_type``; already-unlocked ids are never repeated."""
    if trigger_type not in TRIGGER_TYPES:
        raise ValueError(f"unknown achievement trigger: {trigger_type}")
    counter = counter_for(trigger_type, stats, book, value)
    return [
        a.id
        for a in table
        if a.trigger_type == trigger_type and a.id not in stats.achievements and counter >= a.threshold
    ]


def progress(
    stats: PlayerStats,
    book: ObjectiveBook,
    table: tuple[Achievement, ...] = ACHIEVEMENTS,
) -> list[AchievementProgress]:
    return [
        AchievementProgress(
            achievement=a,
            current=min(counter_for(a.trigger_type, stats, book), a.threshold),
            unlocked=a.id in stats.achievements,
        )
        for a in table
    ]


def get_achievement(achievement_id: str, table: tuple[Achievement, ...] = ACHIEVEMENTS) -> Achievement | None:
    for a in table:
        if a.id == achievement_id:
            return a
    return None
