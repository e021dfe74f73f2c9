from __future__ import annotations

import asyncio
import contextlib
import inspect
from collections.abc import Awaitable, Callable
from typing import Any

from libs.common.logging import get_logger

logger = get_logger("deepagent_client.background")


class BackgroundTaskGroup:
    """기다리지 않고 띄우는 작업을 추적해요.

    실패는 호출자에게 올라가지 않고 `background_task_failed` 로그 한 곳으로 모여요.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()

    def spawn(self, coro: Awaitable[Any], *, name: str, **context: Any) -> asyncio.Task[Any]:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(lambda done: self._on_done(done, name, context))
        return task

    def notify(self, callback: Callable[[], Any] | None, *, name: str) -> None:
        """동기·비동기 콜백을 모두 받아서 기다리지 않고 실행해요."""
        if callback is None:
            return
        self.spawn(_invoke(callback), name=name)

    @property
    def pending_count(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """지금까지 띄운 작업과, 그 작업이 띄운 작업까지 모두 끝날 때까지 기다려요."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        for task in list(self._tasks):
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await task
        self._tasks.clear()

    def _on_done(self, task: asyncio.Task[Any], name: str, context: dict[str, Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("background_task_failed", task=name, error=str(exc), **context)


async def _invoke(callback: Callable[[], Any]) -> None:
    result = callback()
    if inspect.isawaitable(result):
        await result
