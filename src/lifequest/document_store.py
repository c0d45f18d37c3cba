from __future__ import annotations

import asyncio
import copy
from typing import Any, AsyncIterator, Protocol

Document = dict[str, Any]


def stats_path(user_id: str) -> str:
    return f"users/{user_id}/playerStats/main"


def objectives_path(user_id: str) -> str:
    return f"users/{user_id}/objectives"


def objective_path(user_id: str, objective_id: str) -> str:
    return f"{objectives_path(user_id)}/{objective_id}"


def subtasks_path(user_id: str, objective_id: str) -> str:
    return f"{objective_path(user_id, objective_id)}/subtasks"


def subtask_path(user_id: str, objective_id: str, subtask_id: str) -> str:
    return f"{subtasks_path(user_id, objective_id)}/{subtask_id}"


def desire_path(user_id: str) -> str:
    return f"users/{user_id}/dailyDesire/current"


def parent_of(path: str) -> str:
    return path.rsplit("/", 1)[0]


def is_collection(path: str) -> bool:
    # users/{u}/objectives has an odd number of segments; documents are even.
    return len(path.strip("/").split("/")) % 2 == 1


class DocumentStore(Protocol):
    async def create(self, path: str, fields: Document) -> None: ...

    async def merge_write(self, path: str, fields: Document) -> None: ...

    async def delete(self, path: str) -> None: ...

    async def get(self, path: str) -> Document | None: ...

    async def list(self, collection: str) -> dict[str, Document]: ...

    def subscribe(self, path: str) -> AsyncIterator[Any]: ...


class SnapshotHub:
    """Fan-out of full snapshots to subscribers of a document or a collection path."""

    def __init__(self) -> None:
        self._queues: dict[str, list[asyncio.Queue[Any]]] = {}

    async def _snapshot(self, path: str) -> Any:
        if is_collection(path):
            return await self.list(path)  # type: ignore[attr-defined]
        return await self.get(path)  # type: ignore[attr-defined]

    async def _notify(self, path: str) -> None:
        for target in (path, parent_of(path)):
            queues = self._queues.get(target)
            if not queues:
                continue
            snapshot = await self._snapshot(target)
            for queue in queues:
                queue.put_nowait(copy.deepcopy(snapshot))

    async def subscribe(self, path: str) -> AsyncIterator[Any]:
        queue: asyncio.Queue[Any] = asyncio.Queue()
        self._queues.setdefault(path, []).append(queue)
        try:
            yield await self._snapshot(path)
            while True:
                yield await queue.get()
        finally:
            self._queues[path].remove(queue)
            if not self._queues[path]:
                del self._queues[path]

    def subscriber_count(self, path: str) -> int:
        return len(self._queues.get(path, []))


class MemoryDocumentStore(SnapshotHub):
    def __init__(self, fail_paths: set[str] | None = None) -> None:
        super().__init__()
        self._docs: dict[str, Document] = {}
        self.fail_paths: set[str] = set(fail_paths or ())
        self.writes: list[tuple[str, str, Document]] = []

    def _check(self, path: str) -> None:
        if path in self.fail_paths:
            raise ConnectionError(f"store unavailable for {path}")

    async def create(self, path: str, fields: Document) -> None:
        self._check(path)
        self._docs[path] = copy.deepcopy(fields)
        self.writes.append(("create", path, copy.deepcopy(fields)))
        await self._notify(path)

    async def merge_write(self, path: str, fields: Document) -> None:
        self._check(path)
        doc = self._docs.setdefault(path, {})
        doc.update(copy.deepcopy(fields))
        self.writes.append(("merge", path, copy.deepcopy(fields)))
        await self._notify(path)

    async def delete(self, path: str) -> None:
        self._check(path)
        self._docs.pop(path, None)
        self.writes.append(("delete", path, {}))
        await self._notify(path)

    async def get(self, path: str) -> Document | None:
        doc = self._docs.get(path)
        return copy.deepcopy(doc) if doc is not None else None

    async def list(self, collection: str) -> dict[str, Document]:
        prefix = collection.rstrip("/") + "/"
        out: dict[str, Document] = {}
        for path, doc in self._docs.items():
            if not path.startswith(prefix):
                continue
            rest = path[len(prefix):]
            if "/" in rest:
                continue
            out[rest] = copy.deepcopy(doc)
        return out
