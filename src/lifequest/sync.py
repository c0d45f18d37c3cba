from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from lifequest.codec import (
    desire_to_doc,
    objective_to_doc,
    stats_diff,
    stats_to_doc,
    subtask_to_doc,
)
from lifequest.constants import INITIAL_PLAYER_STATS
from lifequest.document_store import (
    Document,
    DocumentStore,
    desire_path,
    objective_path,
    objectives_path,
    stats_path,
    subtask_path,
    subtasks_path,
)
from lifequest.errors import StoreWriteError
from lifequest.models import DailyDesire, Objective, PlayerStats, Subtask

logger = logging.getLogger(__name__)

StatsListener = Callable[[Document | None], Awaitable[None]]
CollectionListener = Callable[[dict[str, Document]], Awaitable[None]]
SubtaskListener = Callable[[str, dict[str, Document]], Awaitable[None]]


class SyncAdapter:
    """Pushes local mutations as merge-writes and relays store snapshots back."""

    def __init__(self, store: DocumentStore, user_id: str) -> None:
        self.store = store
        self.user_id = user_id
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._on_subtasks: SubtaskListener | None = None

    async def _run_writes(self, writes: Iterable[tuple[str, Awaitable[None]]]) -> None:
        pending = list(writes)
        if not pending:
            return
        results = await asyncio.gather(*(w for _, w in pending), return_exceptions=True)
        failed: list[str] = []
        for (path, _), result in zip(pending, results):
            if isinstance(result, BaseException):
                logger.warning("store write failed path=%s", path, exc_info=result)
                failed.append(path)
        if failed:
            raise StoreWriteError(f"{len(failed)} of {len(pending)} store writes failed", tuple(failed))

    async def load_stats(self) -> Document:
        path = stats_path(self.user_id)
        doc = await self.store.get(path)
        if doc is not None:
            return doc
        logger.info("creating player stats user_id=%s", self.user_id)
        await self._run_writes([(path, self.store.create(path, dict(INITIAL_PLAYER_STATS)))])
        return dict(INITIAL_PLAYER_STATS)

    async def load_objectives(self) -> tuple[dict[str, Document], dict[str, dict[str, Document]]]:
        objectives = await self.store.list(objectives_path(self.user_id))
        subtasks: dict[str, dict[str, Document]] = {}
        for oid in objectives:
            subtasks[oid] = await self.store.list(subtasks_path(self.user_id, oid))
        return objectives, subtasks

    async def load_desire(self) -> Document | None:
        return await self.store.get(desire_path(self.user_id))

    async def push_stats(self, old: PlayerStats | None, new: PlayerStats) -> None:
        fields = stats_to_doc(new) if old is None else stats_diff(old, new)
        if not fields:
            return
        path = stats_path(self.user_id)
        await self._run_writes([(path, self.store.merge_write(path, fields))])

    async def create_objective(self, objective: Objective) -> None:
        path = objective_path(self.user_id, objective.id)
        await self._run_writes([(path, self.store.create(path, objective_to_doc(objective)))])

    async def push_objectives(self, objectives: Iterable[Objective], fields: tuple[str, ...] | None = None) -> None:
        """Merge-write each objective independently; a partial failure reports every failed path."""
        writes: list[tuple[str, Awaitable[None]]] = []
        for objective in objectives:
            doc = objective_to_doc(objective)
            if fields is not None:
                doc = {k: v for k, v in doc.items() if k in fields}
            path = objective_path(self.user_id, objective.id)
            writes.append((path, self.store.merge_write(path, doc)))
        await self._run_writes(writes)

    async def create_subtask(self, subtask: Subtask) -> None:
        path = subtask_path(self.user_id, subtask.objective_id, subtask.id)
        await self._run_writes([(path, self.store.create(path, subtask_to_doc(subtask)))])

    async def push_subtask(self, subtask: Subtask) -> None:
        path = subtask_path(self.user_id, subtask.objective_id, subtask.id)
        doc = subtask_to_doc(subtask)
        fields = {k: doc[k] for k in ("isCompleted", "grantedXp", "grantedGold")}
        await self._run_writes([(path, self.store.merge_write(path, fields))])

    async def delete_subtasks(self, subtasks: Iterable[Subtask]) -> None:
        writes = []
        for subtask in subtasks:
            path = subtask_path(self.user_id, subtask.objective_id, subtask.id)
            writes.append((path, self.store.delete(path)))
        await self._run_writes(writes)

    async def delete_objective(self, objective_id: str, subtasks: Iterable[Subtask]) -> None:
        # Children go first so a failure never leaves orphaned subtasks behind.
        await self.delete_subtasks(subtasks)
        path = objective_path(self.user_id, objective_id)
        await self._run_writes([(path, self.store.delete(path))])

    async def push_desire(self, desire: DailyDesire) -> None:
        path = desire_path(self.user_id)
        await self._run_writes([(path, self.store.merge_write(path, desire_to_doc(desire)))])

    def listen(
        self,
        on_stats: StatsListener,
        on_objectives: CollectionListener,
        on_subtasks: SubtaskListener,
    ) -> None:
        self._on_subtasks = on_subtasks
        self._spawn(stats_path(self.user_id), on_stats)
        self._spawn(objectives_path(self.user_id), self._objectives_relay(on_objectives))

    def _objectives_relay(self, on_objectives: CollectionListener) -> CollectionListener:
        async def relay(docs: dict[str, Document]) -> None:
            await on_objectives(docs)
            self._track_subtask_streams(docs)

        return relay

    def _track_subtask_streams(self, docs: dict[str, Document]) -> None:
        wanted = {subtasks_path(self.user_id, oid): oid for oid, doc in docs.items() if not doc.get("isCompleted")}
        for path in [p for p in self._tasks if p.endswith("/subtasks") and p not in wanted]:
            self._tasks.pop(path).cancel()
        for path, oid in wanted.items():
            if path in self._tasks:
                continue
            self._spawn(path, self._subtask_relay(oid))

    def _subtask_relay(self, objective_id: str) -> CollectionListener:
        async def relay(docs: dict[str, Document]) -> None:
            if self._on_subtasks is not None:
                await self._on_subtasks(objective_id, docs)

        return relay

    def _spawn(self, path: str, callback: Callable[[Any], Awaitable[None]]) -> None:
        async def pump() -> None:
            async for snapshot in self.store.subscribe(path):
                try:
                    await callback(snapshot)
                except Exception:
                    logger.warning("snapshot handler failed path=%s", path, exc_info=True)

        self._tasks[path] = asyncio.create_task(pump())

    def listening_paths(self) -> list[str]:
        return sorted(self._tasks)

    async def close(self) -> None:
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
