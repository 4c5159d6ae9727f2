"""
Concurrency controller.

Two mechanisms:
- keyed asyncio locks that serialize work on the same node inside one
  process (link runs, edits) without serializing unrelated nodes
- optimistic version checks, re-validated inside a store transaction,
  which catch conflicting writers from other processes as well
"""

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import TypeVar

from linkgraph.core.graph_store.base import GraphSession, GraphStore
from linkgraph.models.node import Node
from linkgraph.utils.datetime_utils import utc_now
from linkgraph.utils.exceptions import EditConflict, NotFoundError
from linkgraph.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class KeyedLocks:
    """
    Registry of per-key asyncio locks.

    Entries are dropped once no task holds or waits on them, so the
    registry stays proportional to in-flight work.
    """

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    @asynccontextmanager
    async def acquire(self, *keys: str) -> AsyncIterator[None]:
        """Hold the locks for all `keys`, taken in sorted order to avoid deadlock."""
        ordered = sorted(set(keys))
        for key in ordered:
            self._waiters[key] = self._waiters.get(key, 0) + 1
            self._locks.setdefault(key, asyncio.Lock())

        acquired: list[str] = []
        try:
            for key in ordered:
                await self._locks[key].acquire()
                acquired.append(key)
            yield
        finally:
            for key in reversed(acquired):
                self._locks[key].release()
            for key in ordered:
                self._waiters[key] -= 1
                if self._waiters[key] == 0:
                    del self._waiters[key]
                    del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)

    def locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()


class ConcurrencyController:
    """Coordinates node edits and edge transactions against the store."""

    def __init__(self, store: GraphStore):
        self.store = store
        self.node_locks = KeyedLocks()

    def node_lock(self, *node_ids: str):
        """In-process lock on one or more nodes."""
        return self.node_locks.acquire(*node_ids)

    async def check_version(self, node_id: str, expected_version: int) -> Node:
        """
        Cheap pre-check before slow work (embedding) is started.

        Raises:
            NotFoundError: Node missing or deleted
            EditConflict: Stored version differs
        """
        current = await self.store.reader.get_node(node_id)
        if current is None or not current.is_active:
            raise NotFoundError(f"Node {node_id} not found", {"node_id": node_id})
        if current.version != expected_version:
            raise EditConflict(node_id, expected_version, current)
        return current

    async def versioned_write(
        self,
        node_id: str,
        expected_version: int,
        apply: Callable[[Node], Node],
    ) -> Node:
        """
        Apply `apply(current)` and store it as version `expected_version + 1`.

        The version is re-checked inside the transaction; the first writer
        wins and later writers holding the same version get EditConflict
        with the stored node.

        Args:
            node_id: Node to edit
            expected_version: Version the caller read
            apply: Pure function producing the new node from the current one

        Returns:
            The stored node

        Raises:
            NotFoundError: Node missing or deleted
            EditConflict: Stored version differs from `expected_version`
        """
        async with self.store.transaction() as session:
            current = await session.get_node(node_id)
            if current is None or not current.is_active:
                raise NotFoundError(f"Node {node_id} not found", {"node_id": node_id})
            if current.version != expected_version:
                self._log_conflict(node_id, expected_version, current)
                raise EditConflict(node_id, expected_version, current)

            updated = apply(current).model_copy(
                update={"version": current.version + 1, "updated_at": utc_now()}
            )
            written = await session.update_node_versioned(updated, expected_version)
            if not written:
                current = await session.get_node(node_id)
                if current is None:
                    raise NotFoundError(f"Node {node_id} not found", {"node_id": node_id})
                self._log_conflict(node_id, expected_version, current)
                raise EditConflict(node_id, expected_version, current)

        return updated

    async def in_transaction(self, work: Callable[[GraphSession], Awaitable[T]]) -> T:
        """Run `work(session)` inside one store transaction."""
        async with self.store.transaction() as session:
            return await work(session)

    @staticmethod
    def _log_conflict(node_id: str, expected_version: int, current: Node | None) -> None:
        logger.warning(
            f"Edit conflict on node {node_id}",
            extra={
                "node_id": node_id,
                "expected_version": expected_version,
                "current_version": current.version if current else None,
            },
        )
