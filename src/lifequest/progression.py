from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from typing import Any, Mapping

from lifequest.codec import stats_from_doc
from lifequest.constants import effective_tuning
from lifequest.events import (
    AdjustCurrency,
    AdjustVitality,
    ApplySnapshot,
    ClaimDailyDesire,
    ClaimDailyReward,
    CompleteTutorial,
    DeductXp,
    Event,
    FinishPomodoro,
    GrantReward,
    GrantXp,
    RecordSatisfaction,
    RevertReward,
    TickStreak,
    UnlockAchievements,
)
from lifequest.models import PlayerStats, SatisfactionEntry
from lifequest.time_utils import previous_day, reward_cooldown_remaining


@dataclass(frozen=True)
class Transition:
    stats: PlayerStats
    level_ups: tuple[int, ...] = ()
    needs_rest: bool = False
    streak_changed: bool = False
    cooldown_remaining: timedelta | None = None
    reward_claimed: bool = False


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def next_threshold(xp_to_next_level: int, tuning: dict[str, int] | None = None) -> int:
    if xp_to_next_level <= 0:
        return 1
    cfg = effective_tuning(tuning)
    num = max(1, int(cfg["level_curve_numerator"]))
    den = max(1, int(cfg["level_curve_denominator"]))
    return max(xp_to_next_level, (xp_to_next_level * num) // den)


def grant_xp(stats: PlayerStats, amount: int, tuning: dict[str, int] | None = None) -> Transition:
    if amount < 0:
        return deduct_xp(stats, -amount)
    xp = stats.xp + amount
    level = stats.level
    threshold = max(1, stats.xp_to_next_level)
    reached: list[int] = []
    while xp >= threshold:
        xp -= threshold
        level += 1
        threshold = next_threshold(threshold, tuning=tuning)
        reached.append(level)
    return Transition(
        stats=replace(stats, xp=xp, level=level, xp_to_next_level=threshold),
        level_ups=tuple(reached),
    )


def deduct_xp(stats: PlayerStats, amount: int) -> Transition:
    # Level is a ratchet: deductions only eat into the current level's xp.
    return Transition(stats=replace(stats, xp=max(0, stats.xp - abs(amount))))


def adjust_currency(stats: PlayerStats, amount: int) -> Transition:
    return Transition(stats=replace(stats, gold=max(0, stats.gold + amount)))


def adjust_vitality(stats: PlayerStats, amount: int) -> Transition:
    vitality = _clamp(stats.vitality + amount, 0, stats.max_vitality)
    return Transition(stats=replace(stats, vitality=vitality), needs_rest=vitality == 0)


def record_satisfaction(
    stats: PlayerStats,
    value: int,
    day: date,
    tuning: dict[str, int] | None = None,
) -> Transition:
    cfg = effective_tuning(tuning)
    limit = max(1, int(cfg["satisfaction_history_limit"]))
    clamped = _clamp(value, 0, 100)
    history = [e for e in stats.satisfaction_history if e.day != day]
    history.append(SatisfactionEntry(day=day, value=clamped))
    history.sort(key=lambda e: e.day)
    return Transition(
        stats=replace(
            stats,
            current_satisfaction=clamped,
            satisfaction_history=tuple(history[-limit:]),
        )
    )


def evaluate_streak(stats: PlayerStats, today: date) -> Transition:
    if stats.last_streak_date == today:
        return Transition(stats=stats)
    if stats.last_streak_date == previous_day(today):
        streak = stats.current_streak + 1
    else:
        streak = 1
    return Transition(
        stats=replace(stats, current_streak=streak, last_streak_date=today),
        streak_changed=True,
    )


def claim_daily_reward(
    stats: PlayerStats,
    now: datetime,
    tuning: dict[str, int] | None = None,
) -> Transition:
    remaining = reward_cooldown_remaining(stats.last_daily_reward_claim, now)
    if remaining > timedelta(0):
        return Transition(stats=stats, cooldown_remaining=remaining)
    cfg = effective_tuning(tuning)
    granted = grant_reward(stats, int(cfg["daily_reward_xp"]), int(cfg["daily_reward_gold"]), tuning=tuning)
    return replace(
        granted,
        stats=replace(granted.stats, last_daily_reward_claim=now),
        cooldown_remaining=timedelta(0),
        reward_claimed=True,
    )


def grant_reward(
    stats: PlayerStats,
    xp: int,
    gold: int,
    tuning: dict[str, int] | None = None,
) -> Transition:
    leveled = grant_xp(stats, xp, tuning=tuning)
    paid = adjust_currency(leveled.stats, gold)
    return replace(leveled, stats=paid.stats)


def revert_reward(stats: PlayerStats, xp: int, gold: int) -> Transition:
    return Transition(stats=adjust_currency(deduct_xp(stats, xp).stats, -gold).stats)


def finish_pomodoro(
    stats: PlayerStats,
    day: date,
    tuning: dict[str, int] | None = None,
) -> Transition:
    cfg = effective_tuning(tuning)
    rewarded = grant_reward(stats, int(cfg["pomodoro_xp"]), int(cfg["pomodoro_gold"]), tuning=tuning)
    counted = replace(rewarded.stats, pomodoro_count=rewarded.stats.pomodoro_count + 1)
    tired = adjust_vitality(counted, -int(cfg["pomodoro_vitality_cost"]))
    streak = evaluate_streak(tired.stats, day)
    return Transition(
        stats=streak.stats,
        level_ups=rewarded.level_ups,
        needs_rest=tired.needs_rest,
        streak_changed=streak.streak_changed,
    )


def claim_daily_desire(
    stats: PlayerStats,
    xp: int,
    gold: int,
    day: date,
    tuning: dict[str, int] | None = None,
) -> Transition:
    rewarded = grant_reward(stats, xp, gold, tuning=tuning)
    counted = replace(rewarded.stats, daily_desire_count=rewarded.stats.daily_desire_count + 1)
    streak = evaluate_streak(counted, day)
    return Transition(stats=streak.stats, level_ups=rewarded.level_ups, streak_changed=streak.streak_changed)


def apply_snapshot(
    stats: PlayerStats,
    fields: Mapping[str, Any],
    tuning: dict[str, int] | None = None,
) -> Transition:
    snapshot = stats_from_doc(fields, base=stats)
    if snapshot.xp < snapshot.xp_to_next_level:
        return Transition(stats=snapshot)
    # Carry stored overflow through the level loop so xp < xp_to_next_level holds again.
    return grant_xp(replace(snapshot, xp=0), snapshot.xp, tuning=tuning)


def apply(stats: PlayerStats, event: Event, tuning: dict[str, int] | None = None) -> Transition:
    if isinstance(event, GrantXp):
        return grant_xp(stats, event.amount, tuning=tuning)
    if isinstance(event, DeductXp):
        return deduct_xp(stats, event.amount)
    if isinstance(event, AdjustCurrency):
        return adjust_currency(stats, event.amount)
    if isinstance(event, AdjustVitality):
        return adjust_vitality(stats, event.amount)
    if isinstance(event, RecordSatisfaction):
        return record_satisfaction(stats, event.value, event.day, tuning=tuning)
    if isinstance(event, TickStreak):
        return evaluate_streak(stats, event.day)
    if isinstance(event, ClaimDailyReward):
        return claim_daily_reward(stats, event.now, tuning=tuning)
    if isinstance(event, GrantReward):
        return grant_reward(stats, event.xp, event.gold, tuning=tuning)
    if isinstance(event, RevertReward):
        return revert_reward(stats, event.xp, event.gold)
    if isinstance(event, FinishPomodoro):
        return finish_pomodoro(stats, event.day, tuning=tuning)
    if isinstance(event, ClaimDailyDesire):
        return claim_daily_desire(stats, event.xp, event.gold, event.day, tuning=tuning)
    if isinstance(event, CompleteTutorial):
        return Transition(stats=replace(stats, has_completed_tutorial=True))
    if isinstance(event, UnlockAchievements):
        return Transition(stats=replace(stats, achievements=stats.achievements | event.ids))
    if isinstance(event, ApplySnapshot):
        return apply_snapshot(stats, event.fields, tuning=tuning)
    raise TypeError(f"unsupported event: {type(event).__name__}")
