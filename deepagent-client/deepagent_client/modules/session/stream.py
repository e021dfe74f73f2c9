from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from deepagent_client.app.models import RunRequest
from deepagent_client.app.sse import StreamEvent
from deepagent_client.app.turns import Turn, parse_turns
from deepagent_client.modules.session.contracts import RunStreamProtocol
from libs.common.errors import ValidationError
from libs.common.logging import get_logger

logger = get_logger("deepagent_client.thread_stream")

INTERRUPT_KEY = "__interrupt__"


def extract_state_interrupt(state: Mapping[str, Any]) -> Any:
    """스레드 상태에서 활성 인터럽트를 찾아요. 없으면 None이에요."""
    interrupts = state.get("interrupts")
    if isinstance(interrupts, list) and interrupts:
        return interrupts[0]
    tasks = state.get("tasks")
    if isinstance(tasks, list):
        for task in tasks:
            if not isinstance(task, Mapping):
                continue
            task_interrupts = task.get("interrupts")
            if isinstance(task_interrupts, list) and task_interrupts:
                return task_interrupts[0]
    return None


class ThreadStream:
    """한 스레드에 대한 라이브 구독이에요.

    런타임이 보내는 `values` 배치는 매번 권위 있는 전체 상태라서 이어 붙이지 않고 통째로 바꿔요.
    """

    def __init__(
        self,
        *,
        runtime: RunStreamProtocol,
        thread_id: str | None,
        thread_metadata: Callable[[], dict[str, Any]],
        on_thread_id: Callable[[str], None],
        on_change: Callable[[], None] | None = None,
    ) -> None:
        self._runtime = runtime
        self.thread_id = thread_id
        self._thread_metadata = thread_metadata
        self._on_thread_id = on_thread_id
        self._on_change = on_change
        self.turns: list[Turn] = []
        self.interrupt: Any = None
        self.values: dict[str, Any] = {}
        self.run_id: str | None = None
        self.is_loading = False
        self.is_thread_loading = False
        self.error: str | None = None
        self._run_task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._run_task is not None and not self._run_task.done()

    async def load(self) -> None:
        if self.thread_id is None:
            return
        self.is_thread_loading = True
        self._notify()
        try:
            state = await self._runtime.get_thread_state(self.thread_id)
        except Exception as exc:
            logger.warning("thread_state_load_failed", thread_id=self.thread_id, error=str(exc))
            self.error = str(exc)
        else:
            values = state.get("values")
            self.values = dict(values) if isinstance(values, Mapping) else {}
            self.turns = parse_turns(self.values.get("messages"))
            self.interrupt = extract_state_interrupt(state)
        finally:
            self.is_thread_loading = False
            self._notify()

    async def submit(self, request: RunRequest, *, optimistic_turns: Sequence[Turn] | None = None) -> None:
        """실행을 시작해요. 스트림 소비는 백그라운드에서 진행되고 호출자는 기다리지 않아요."""
        if self.is_running:
            raise ValidationError("이 스레드에서 이미 실행이 진행 중이에요.")

        if optimistic_turns is not None:
            self.turns = list(optimistic_turns)
        self.is_loading = True
        self.error = None
        self._notify()

        if self.thread_id is None:
            try:
                thread = await self._runtime.create_thread(self._thread_metadata())
            except Exception as exc:
                logger.warning("thread_create_failed", error=str(exc))
                self.error = str(exc)
                self.is_loading = False
                self._notify()
                return
            self.thread_id = thread.thread_id
            logger.info("thread_created", thread_id=thread.thread_id)
            self._on_thread_id(thread.thread_id)

        logger.info("run_started", thread_id=self.thread_id, command=request.is_command())
        self._run_task = asyncio.create_task(self._consume(self.thread_id, request))

    async def stop(self) -> None:
        """진행 중인 실행을 취소해요. 원격 취소는 best-effort예요."""
        await self._cancel_local()
        if self.thread_id is not None and self.run_id is not None:
            try:
                await self._runtime.cancel_run(self.thread_id, self.run_id)
            except Exception as exc:
                logger.warning("run_cancel_failed", thread_id=self.thread_id, run_id=self.run_id, error=str(exc))
        self.is_loading = False
        self._notify()

    async def close(self) -> None:
        """로컬 구독만 끊어요. 원격 실행은 그대로 둬요."""
        self._on_change = None
        await self._cancel_local()

    async def wait_idle(self) -> None:
        task = self._run_task
        if task is None:
            return
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _cancel_local(self) -> None:
        task = self._run_task
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _consume(self, thread_id: str, request: RunRequest) -> None:
        acknowledged = False
        try:
            async for event in self._runtime.stream_run(thread_id, request):
                if not acknowledged:
                    acknowledged = True
                    # 새 실행이 수락되면 이전 인터럽트는 무효예요. 이번 실행의 `__interrupt__`만 다시 설정해요.
                    self.interrupt = None
                self._apply(event)
                self._notify()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("run_stream_failed", thread_id=thread_id, error=str(exc))
            self.error = str(exc)
        finally:
            self.is_loading = False
            self._notify()

    def _apply(self, event: StreamEvent) -> None:
        data = event.data
        if event.event == "metadata" and isinstance(data, Mapping):
            run_id = data.get("run_id")
            if isinstance(run_id, str) and run_id:
                self.run_id = run_id
        elif event.event == "values" and isinstance(data, Mapping):
            self.values = dict(data)
            self.turns = parse_turns(data.get("messages"))
            if INTERRUPT_KEY in data:
                self.interrupt = data[INTERRUPT_KEY] or None
        elif event.event == "updates" and isinstance(data, Mapping):
            if INTERRUPT_KEY in data:
                self.interrupt = data[INTERRUPT_KEY] or None
        elif event.event == "error":
            message = data.get("message") if isinstance(data, Mapping) else data
            self.error = str(message)
            logger.warning("run_stream_error_event", thread_id=self.thread_id, error=self.error)

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change()
