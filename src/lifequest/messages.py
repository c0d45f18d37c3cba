from __future__ import annotations

from datetime import timedelta

from lifequest.achievements import get_achievement
from lifequest.time_utils import format_remaining


def level_up_message(level: int) -> str:
    return f"⬆️ Level up! You reached level {level}."


def achievement_message(achievement_id: str) -> str:
    achievement = get_achievement(achievement_id)
    name = achievement.name if achievement else achievement_id
    return f"🏆 Achievement unlocked: {name}"


def needs_rest_message() -> str:
    return "😴 Your vitality is empty. Take a break and rest."


def cooldown_message(remaining: timedelta) -> str:
    return f"⏳ Daily reward available again in {format_remaining(remaining)}."


def daily_reward_message(xp: int, gold: int) -> str:
    return f"🎁 Daily reward claimed: +{xp} XP, +{gold} gold."


def streak_message(streak: int) -> str:
    if streak == 1:
        return "🔥 Streak started: day 1."
    return f"🔥 Streak: {streak} days in a row."


def outcome_notices(
    level_ups: tuple[int, ...],
    unlocked: tuple[str, ...],
    needs_rest: bool,
    streak: int | None = None,
) -> list[str]:
    notices = [level_up_message(level) for level in level_ups]
    if streak is not None:
        notices.append(streak_message(streak))
    notices.extend(achievement_message(a) for a in unlocked)
    if needs_rest:
        notices.append(needs_rest_message())
    return notices
