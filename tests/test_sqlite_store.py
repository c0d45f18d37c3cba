from __future__ import annotations

import asyncio
import sqlite3
from typing import Any

from lifequest.document_store import objective_path, objectives_path, stats_path
from lifequest.sqlite_store import SqliteDocumentStore

USER = "u1"


def test_create_merge_and_delete(tmp_path) -> None:
    async def run() -> tuple[Any, Any]:
        store = SqliteDocumentStore(tmp_path / "data" / "lq.db")
        await store.create(stats_path(USER), {"gold": 1, "xp": 5})
        await store.merge_write(stats_path(USER), {"gold": 9})
        merged = await store.get(stats_path(USER))
        await store.delete(stats_path(USER))
        return merged, await store.get(stats_path(USER))

    merged, gone = asyncio.run(run())
    assert merged == {"gold": 9, "xp": 5}
    assert gone is None


def test_list_returns_direct_children_in_insert_order(tmp_path) -> None:
    async def run() -> dict[str, Any]:
        store = SqliteDocumentStore(tmp_path / "lq.db")
        await store.create(objective_path(USER, "b"), {"name": "B"})
        await store.create(objective_path(USER, "a"), {"name": "A"})
        await store.create(f"{objective_path(USER, 'a')}/subtasks/s1", {"text": "nested"})
        return await store.list(objectives_path(USER))

    docs = asyncio.run(run())
    assert list(docs) == ["b", "a"]
    assert docs["a"] == {"name": "A"}


def test_data_survives_reopen_and_migrations_run_once(tmp_path) -> None:
    path = tmp_path / "lq.db"

    async def write() -> None:
        await SqliteDocumentStore(path).create(stats_path(USER), {"level": 3})

    async def read() -> Any:
        return await SqliteDocumentStore(path).get(stats_path(USER))

    asyncio.run(write())
    assert asyncio.run(read()) == {"level": 3}
    with sqlite3.connect(path) as conn:
        versions = [row[0] for row in conn.execute("SELECT version FROM schema_migrations")]
    assert versions == [1]


def test_subscribe_yields_current_then_updates(tmp_path) -> None:
    async def run() -> list[Any]:
        store = SqliteDocumentStore(tmp_path / "lq.db")
        await store.create(stats_path(USER), {"gold": 1})
        seen: list[Any] = []
        stream = store.subscribe(stats_path(USER))
        seen.append(await stream.__anext__())
        await store.merge_write(stats_path(USER), {"gold": 2})
        seen.append(await stream.__anext__())
        await stream.aclose()
        assert store.subscriber_count(stats_path(USER)) == 0
        return seen

    assert asyncio.run(run()) == [{"gold": 1}, {"gold": 2}]
