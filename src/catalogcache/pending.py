from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Coroutine


class PendingFetches:
    """In-flight fetch tracker: at most one task per cache key.

    ``register`` is synchronous, so two callers asking for the same key in the
    same loop iteration always see the same task. A task removes itself when it
    settles, success or failure, unless the key has since been re-registered.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, asyncio.Task[Any]] = {}

    def get(self, key: str) -> asyncio.Task[Any] | None:
        return self._tasks.get(key)

    def register(self, key: str, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        if key in self._tasks:
            coro.close()
            raise RuntimeError(f"fetch already pending for {key!r}")
        task = asyncio.get_running_loop().create_task(coro, name=f"fetch:{key}")
        self._tasks[key] = task
        task.add_done_callback(lambda t: self._settled(key, t))
        return task

    def _settled(self, key: str, task: asyncio.Task[Any]) -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]

    def forget_all(self) -> None:
        """Drop every registration without cancelling the running tasks.

        Callers already awaiting a task still get its result; new callers
        register a fresh fetch.
        """
        self._tasks.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)
