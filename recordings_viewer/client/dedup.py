import asyncio
import logging
from typing import Awaitable, Callable, Dict, Hashable, Optional, TypeVar

logger = logging.getLogger("recordings_viewer.client.dedup")

T = TypeVar("T")


class RequestDeduplicator:
    """
    Map from resource key to an in-flight or completed fetch.

    `fetch(key, factory)` starts the coroutine from `factory` only the first time `key`
    is seen; later callers await the same task. Failed fetches are dropped from the map
    so the next call retries. `reset()` forgets everything (one view mount = one cycle).
    """

    def __init__(self):
        self._tasks: Dict[Hashable, asyncio.Task] = {}

    def __contains__(self, key: Hashable) -> bool:
        return key in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

    def result(self, key: Hashable) -> Optional[T]:
        task = self._tasks.get(key)
        if task is None or not task.done() or task.cancelled() or task.exception() is not None:
            return None
        return task.result()

    async def fetch(self, key: Hashable, factory: Callable[[], Awaitable[T]]) -> T:
        task = self._tasks.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._tasks[key] = task
            task.add_done_callback(lambda t, k=key: self._on_done(k, t))
        return await asyncio.shield(task)

    def _on_done(self, key: Hashable, task: asyncio.Task) -> None:
        if task.cancelled() or task.exception() is not None:
            if self._tasks.get(key) is task:
                del self._tasks[key]
            if not task.cancelled():
                logger.warning(f"[dedup] fetch for {key!r} failed: {task.exception()}")

    def forget(self, key: Hashable) -> None:
        self._tasks.pop(key, None)

    def reset(self) -> None:
        for task in self._tasks.values():
            if not task.done():
                task.cancel()
        self._tasks.clear()
