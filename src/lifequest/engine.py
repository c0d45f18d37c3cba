from __future__ import annotations

import asyncio
import logging
import random
import secrets
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from datetime import date, timedelta

from lifequest import achievements
from lifequest.advisor import SubtaskSuggestion, advise, generate_desire, objective_image, suggest_subtasks
from lifequest.codec import desire_from_doc
from lifequest.constants import FALLBACK_DESIRES, effective_tuning
from lifequest.desires import DailyDesireGate, claim
from lifequest.document_store import Document, DocumentStore
from lifequest.errors import ExternalServiceError, NotReadyError, StoreWriteError
from lifequest.events import (
    AdjustVitality,
    ApplySnapshot,
    ClaimDailyDesire,
    ClaimDailyReward,
    CompleteTutorial,
    Event,
    FinishPomodoro,
    GrantReward,
    RecordSatisfaction,
    RevertReward,
    TickStreak,
    UnlockAchievements,
)
from lifequest.generation import GenerationService
from lifequest.models import DailyDesire, Objective, PlayerStats, Subtask
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
from lifequest.progression import apply
from lifequest.sync import SyncAdapter
from lifequest.time_utils import DEFAULT_TZ, Clock, SystemClock, local_day

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActionOutcome:
    stats: PlayerStats
    level_ups: tuple[int, ...] = ()
    unlocked: tuple[str, ...] = ()
    needs_rest: bool = False
    streak_changed: bool = False
    cooldown_remaining: timedelta | None = None
    reward_claimed: bool = False
    objective: Objective | None = None
    subtask: Subtask | None = None


def _new_id() -> str:
    return secrets.token_hex(10)


class ProgressionEngine:
    """Single-actor façade: every state change, local or inbound, goes through ``apply``."""

    def __init__(
        self,
        store: DocumentStore,
        user_id: str,
        clock: Clock | None = None,
        tz_name: str = DEFAULT_TZ,
        tuning: dict[str, int] | None = None,
        generator: GenerationService | None = None,
        id_factory: Callable[[], str] = _new_id,
        rng: random.Random | None = None,
    ) -> None:
        self.user_id = user_id
        self.sync = SyncAdapter(store, user_id)
        self.clock = clock or SystemClock(tz_name)
        self.tz_name = tz_name
        self.tuning = effective_tuning(tuning)
        self.generator = generator
        self._new_id = id_factory
        self._rng = rng or random.Random()
        self._stats: PlayerStats | None = None
        self._book = ObjectiveBook()
        self._desire: DailyDesire | None = None
        self._gate = DailyDesireGate(self._make_desire)

    # -- lifecycle ---------------------------------------------------------

    @property
    def ready(self) -> bool:
        return self._stats is not None

    @property
    def stats(self) -> PlayerStats:
        if self._stats is None:
            raise NotReadyError("engine has not been started")
        return self._stats

    @property
    def book(self) -> ObjectiveBook:
        self._require_ready()
        return self._book

    @property
    def desire(self) -> DailyDesire | None:
        return self._desire

    def _require_ready(self) -> None:
        if self._stats is None:
            raise NotReadyError("engine has not been started")

    def today(self) -> date:
        return local_day(self.clock.now(), self.tz_name)

    async def start(self, listen: bool = True) -> None:
        stats_doc = await self.sync.load_stats()
        self._stats = apply(PlayerStats(), ApplySnapshot(stats_doc), tuning=self.tuning).stats

        objectives, subtasks = await self.sync.load_objectives()
        book = apply_objectives_snapshot(ObjectiveBook(), objectives)
        for oid, docs in subtasks.items():
            book = apply_subtasks_snapshot(book, oid, docs)
        self._book = await self._repair(book)

        desire_doc = await self.sync.load_desire()
        self._desire = desire_from_doc(desire_doc) if desire_doc else None

        logger.info(
            "engine started user_id=%s level=%s objectives=%s",
            self.user_id,
            self._stats.level,
            len(self._book.objectives),
        )
        if listen:
            self.sync.listen(self.handle_stats_snapshot, self.handle_objectives_snapshot, self.handle_subtasks_snapshot)

    async def stop(self) -> None:
        await self.sync.close()

    # -- reducer pipeline --------------------------------------------------

    def _dispatch(self, events: list[Event], triggers: tuple[str, ...] = ()) -> ActionOutcome:
        stats = self.stats
        level_ups: list[int] = []
        needs_rest = False
        streak_changed = False
        cooldown: timedelta | None = None
        reward_claimed = False
        for event in events:
            transition = apply(stats, event, tuning=self.tuning)
            stats = transition.stats
            level_ups.extend(transition.level_ups)
            needs_rest = needs_rest or transition.needs_rest
            streak_changed = streak_changed or transition.streak_changed
            reward_claimed = reward_claimed or transition.reward_claimed
            if transition.cooldown_remaining is not None:
                cooldown = transition.cooldown_remaining

        unlocked: list[str] = []
        scans: list[tuple[str, int | None]] = [(achievements.TRIGGER_LEVEL, lvl) for lvl in level_ups]
        if streak_changed:
            scans.append((achievements.TRIGGER_STREAK, stats.current_streak))
        scans.extend((t, None) for t in triggers)
        for trigger, value in scans:
            for aid in achievements.scan(stats, self._book, trigger, value):
                if aid not in unlocked:
                    unlocked.append(aid)
        if unlocked:
            stats = apply(stats, UnlockAchievements(frozenset(unlocked)), tuning=self.tuning).stats
            logger.info("achievements unlocked user_id=%s ids=%s", self.user_id, ",".join(unlocked))
        for lvl in level_ups:
            logger.info("level up user_id=%s level=%s", self.user_id, lvl)

        self._stats = stats
        return ActionOutcome(
            stats=stats,
            level_ups=tuple(level_ups),
            unlocked=tuple(unlocked),
            needs_rest=needs_rest,
            streak_changed=streak_changed,
            cooldown_remaining=cooldown,
            reward_claimed=reward_claimed,
        )

    async def _persist(self, *writes: Awaitable[None]) -> None:
        results = await asyncio.gather(*writes, return_exceptions=True)
        errors = [r for r in results if isinstance(r, BaseException)]
        if not errors:
            return
        for err in errors:
            if not isinstance(err, StoreWriteError):
                raise err
        paths = tuple(p for err in errors for p in err.paths)  # type: ignore[attr-defined]
        raise StoreWriteError(f"failed to persist {len(paths)} document(s)", paths) from errors[0]

    async def _repair(self, book: ObjectiveBook) -> ObjectiveBook:
        repaired, cleared = repair_current(book)
        if cleared:
            logger.warning(
                "repairing current objective user_id=%s cleared=%s",
                self.user_id,
                ",".join(o.id for o in cleared),
            )
            self._book = repaired
            try:
                await self.sync.push_objectives(cleared, fields=("isCurrent",))
            except StoreWriteError:
                logger.warning("current objective repair not persisted user_id=%s", self.user_id, exc_info=True)
        return repaired

    # -- inbound snapshots -------------------------------------------------

    async def handle_stats_snapshot(self, doc: Document | None) -> None:
        if doc is None:
            logger.info("player stats missing in store, recreating user_id=%s", self.user_id)
            doc = await self.sync.load_stats()
            self._stats = apply(PlayerStats(), ApplySnapshot(doc), tuning=self.tuning).stats
            return
        self._stats = apply(self.stats, ApplySnapshot(doc), tuning=self.tuning).stats

    async def handle_objectives_snapshot(self, docs: dict[str, Document]) -> None:
        self._book = await self._repair(apply_objectives_snapshot(self.book, docs))

    async def handle_subtasks_snapshot(self, objective_id: str, docs: dict[str, Document]) -> None:
        self._book = apply_subtasks_snapshot(self.book, objective_id, docs)

    # -- objectives --------------------------------------------------------

    async def create_objective(
        self,
        name: str,
        description: str = "",
        difficulty: str = "Normal",
        total_progress: int = 100,
    ) -> Objective:
        self._require_ready()
        book, objective = create_objective(
            self._book,
            self._new_id(),
            name,
            description=description,
            difficulty=difficulty,
            total_progress=total_progress,
            created_at=self.clock.now(),
            tuning=self.tuning,
        )
        self._book = book
        logger.info("objective created user_id=%s objective_id=%s", self.user_id, objective.id)
        await self.sync.create_objective(objective)
        return objective

    async def update_objective(
        self,
        objective_id: str,
        name: str | None = None,
        description: str | None = None,
        difficulty: str | None = None,
        total_progress: int | None = None,
    ) -> Objective:
        self._require_ready()
        book, objective = update_objective(
            self._book,
            objective_id,
            name=name,
            description=description,
            difficulty=difficulty,
            total_progress=total_progress,
        )
        self._book = book
        await self.sync.push_objectives(
            [objective],
            fields=("name", "description", "difficulty", "totalProgress", "currentProgress"),
        )
        return objective

    async def select_objective(self, objective_id: str) -> list[Objective]:
        self._require_ready()
        book, changed = select_current(self._book, objective_id, selected_at=self.clock.now())
        self._book = book
        logger.info("objective selected user_id=%s objective_id=%s", self.user_id, objective_id)
        await self.sync.push_objectives(changed, fields=("isCurrent", "selectedAt"))
        return changed

    async def complete_objective(self, objective_id: str) -> ActionOutcome:
        self._require_ready()
        book, removal = complete_objective(self._book, objective_id)
        old = self.stats
        self._book = book
        reward = removal.objective.xp_reward
        outcome = self._dispatch(
            [GrantReward(reward, reward * 2), TickStreak(self.today())],
            triggers=(achievements.TRIGGER_OBJECTIVES,),
        )
        logger.info("objective completed user_id=%s objective_id=%s xp=%s", self.user_id, objective_id, reward)
        await self._persist(
            self.sync.push_objectives([removal.objective], fields=("isCompleted", "isCurrent")),
            self.sync.delete_subtasks(removal.subtasks),
            self.sync.push_stats(old, outcome.stats),
        )
        return replace(outcome, objective=removal.objective)

    async def delete_objective(self, objective_id: str) -> Objective:
        self._require_ready()
        book, removal = delete_objective(self._book, objective_id)
        self._book = book
        logger.info(
            "objective deleted user_id=%s objective_id=%s subtasks=%s",
            self.user_id,
            objective_id,
            len(removal.subtasks),
        )
        await self.sync.delete_objective(objective_id, removal.subtasks)
        return removal.objective

    # -- subtasks ----------------------------------------------------------

    async def add_subtask(
        self,
        text: str,
        xp_reward: int = 0,
        gold_reward: int = 0,
        progress_contribution: int = 0,
        due_date: date | None = None,
        is_punishment: bool = False,
    ) -> Subtask:
        self._require_ready()
        book, subtask = add_subtask(
            self._book,
            self._new_id(),
            text,
            xp_reward=xp_reward,
            gold_reward=gold_reward,
            progress_contribution=progress_contribution,
            due_date=due_date,
            is_punishment=is_punishment,
        )
        self._book = book
        await self.sync.create_subtask(subtask)
        return subtask

    async def toggle_subtask(self, objective_id: str, subtask_id: str) -> ActionOutcome:
        self._require_ready()
        book, toggle = toggle_subtask(self._book, objective_id, subtask_id)
        old = self.stats
        self._book = book
        if toggle.completed:
            events: list[Event] = [GrantReward(toggle.xp, toggle.gold), TickStreak(self.today())]
        else:
            events = [RevertReward(toggle.xp, toggle.gold)]
        outcome = self._dispatch(events)
        await self._persist(
            self.sync.push_subtask(toggle.subtask),
            self.sync.push_objectives([toggle.objective], fields=("currentProgress",)),
            self.sync.push_stats(old, outcome.stats),
        )
        return replace(outcome, objective=toggle.objective, subtask=toggle.subtask)

    async def delete_subtask(self, objective_id: str, subtask_id: str) -> Subtask:
        self._require_ready()
        book, subtask = delete_subtask(self._book, objective_id, subtask_id)
        self._book = book
        await self.sync.delete_subtasks([subtask])
        return subtask

    # -- ledger actions ----------------------------------------------------

    async def _apply_and_push(self, events: list[Event], triggers: tuple[str, ...] = ()) -> ActionOutcome:
        old = self.stats
        outcome = self._dispatch(events, triggers=triggers)
        await self.sync.push_stats(old, outcome.stats)
        return outcome

    async def claim_daily_reward(self) -> ActionOutcome:
        self._require_ready()
        outcome = await self._apply_and_push([ClaimDailyReward(self.clock.now())])
        if outcome.reward_claimed:
            logger.info("daily reward claimed user_id=%s", self.user_id)
        return outcome

    async def finish_pomodoro(self) -> ActionOutcome:
        self._require_ready()
        return await self._apply_and_push([FinishPomodoro(self.today())], triggers=(achievements.TRIGGER_POMODORO,))

    async def record_satisfaction(self, value: int) -> ActionOutcome:
        self._require_ready()
        return await self._apply_and_push([RecordSatisfaction(value, self.today())])

    async def change_vitality(self, amount: int) -> ActionOutcome:
        self._require_ready()
        return await self._apply_and_push([AdjustVitality(amount)])

    async def complete_tutorial(self) -> ActionOutcome:
        self._require_ready()
        return await self._apply_and_push([CompleteTutorial()])

    # -- daily desire ------------------------------------------------------

    async def _make_desire(self, today: date) -> DailyDesire:
        if self.generator is None:
            text = self._rng.choice(FALLBACK_DESIRES)
            return DailyDesire(
                text=text,
                xp_reward=int(self.tuning["desire_xp"]),
                gold_reward=int(self.tuning["desire_gold"]),
                time_limit_minutes=int(self.tuning["desire_time_limit_minutes"]),
                day=today,
            )
        return await generate_desire(self.generator, today, tuning=self.tuning)

    async def daily_desire(self) -> DailyDesire:
        self._require_ready()
        today = self.today()
        try:
            desire = await self._gate.get(self._desire, today)
        except ExternalServiceError:
            logger.warning("daily desire generation failed user_id=%s", self.user_id, exc_info=True)
            raise
        if self._desire is not None and self._desire.day == today:
            return self._desire
        self._desire = desire
        await self.sync.push_desire(desire)
        return desire

    async def claim_daily_desire(self) -> ActionOutcome:
        self._require_ready()
        today = self.today()
        claimed = claim(self._desire, today)
        self._desire = claimed
        old = self.stats
        outcome = self._dispatch(
            [ClaimDailyDesire(claimed.xp_reward, claimed.gold_reward, today)],
            triggers=(achievements.TRIGGER_DAILY_DESIRE,),
        )
        await self._persist(self.sync.push_desire(claimed), self.sync.push_stats(old, outcome.stats))
        return outcome

    # -- generation features -----------------------------------------------

    def _require_generator(self) -> GenerationService:
        if self.generator is None:
            raise ExternalServiceError("generation service is not configured")
        return self.generator

    async def suggest_subtasks(self, objective_id: str | None = None) -> list[SubtaskSuggestion]:
        self._require_ready()
        objective = self._book.get(objective_id) if objective_id else self._book.current()
        if objective is None:
            raise ExternalServiceError("no objective to plan for")
        try:
            return await suggest_subtasks(self._require_generator(), objective)
        except ExternalServiceError:
            logger.warning("subtask suggestion failed user_id=%s", self.user_id, exc_info=True)
            raise

    async def advice(self) -> str:
        self._require_ready()
        try:
            return await advise(self._require_generator(), self.stats, self._book.current())
        except ExternalServiceError:
            logger.warning("advice generation failed user_id=%s", self.user_id, exc_info=True)
            raise

    async def objective_image(self, objective_id: str) -> bytes:
        self._require_ready()
        objective = self._book.get(objective_id)
        try:
            return await objective_image(self._require_generator(), objective)
        except ExternalServiceError:
            logger.warning("image generation failed user_id=%s", self.user_id, exc_info=True)
            raise
