"""대화 세션의 조립 지점이에요.

라이브 스레드 구독 하나를 소유하고 전송·재개·계속·종료·중지를 노출해요. 에이전트 해석,
타임라인 상관, 인터럽트 해석, 아티팩트 동기화를 여기서 엮어요.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from deepagent_client.app.background import BackgroundTaskGroup
from deepagent_client.app.models import ArtifactFile, RunRequest
from deepagent_client.app.turns import Turn, build_human_turn
from deepagent_client.modules.agents.resolver import AgentSelection
from deepagent_client.modules.artifacts.sync import SideChannelSync
from deepagent_client.modules.session.context import SessionContext
from deepagent_client.modules.session.contracts import RunStreamProtocol
from deepagent_client.modules.session.stream import ThreadStream
from deepagent_client.modules.timeline import (
    ActionRequest,
    CorrelatedTurn,
    ReviewConfig,
    correlate,
    last_tool_call,
    resolve_interrupt,
)
from libs.common.errors import DomainError, ValidationError
from libs.common.logging import get_logger
from libs.contracts.models import AgentDescriptor, UploadedArtifact

logger = get_logger("deepagent_client.conversation_session")

TOOLS_NODE = "tools"
TASK_TOOL_NAME = "task"
END_NODE = "__end__"


@dataclass(slots=True, frozen=True)
class SessionView:
    """렌더링 쪽으로 올려 보내는 표시 모델이에요."""

    thread_id: str | None
    records: tuple[CorrelatedTurn, ...]
    interrupt: Any
    action_requests: dict[str, ActionRequest]
    review_configs: dict[str, ReviewConfig]
    agent: AgentDescriptor | None
    is_loading: bool
    is_thread_loading: bool
    values: dict[str, Any] = field(default_factory=dict)
    error: str | None = None


class ConversationSession:
    def __init__(
        self,
        *,
        runtime: RunStreamProtocol,
        context: SessionContext,
        agent_selection: AgentSelection,
        side_channel: SideChannelSync,
        background: BackgroundTaskGroup,
        recursion_limit: int,
        on_history_changed: Callable[[], Any] | None = None,
        on_update: Callable[[SessionView], None] | None = None,
        on_alert: Callable[[str], Any] | None = None,
    ) -> None:
        self._runtime = runtime
        self._context = context
        self._agent_selection = agent_selection
        self._side_channel = side_channel
        self._background = background
        self._recursion_limit = recursion_limit
        self._on_history_changed = on_history_changed
        self._on_update = on_update
        self._on_alert = on_alert
        self._stream = self._new_stream(context.thread_id)

    @property
    def context(self) -> SessionContext:
        return self._context

    @property
    def stream(self) -> ThreadStream:
        return self._stream

    def view(self) -> SessionView:
        stream = self._stream
        lookup = resolve_interrupt(stream.interrupt)
        return SessionView(
            thread_id=stream.thread_id,
            records=tuple(correlate(stream.turns, stream.interrupt)),
            interrupt=stream.interrupt,
            action_requests=lookup.action_requests,
            review_configs=lookup.review_configs,
            agent=self._context.agent,
            is_loading=stream.is_loading,
            is_thread_loading=stream.is_thread_loading,
            values=dict(stream.values),
            error=stream.error,
        )

    async def start(self) -> None:
        await self._agent_selection.refresh()
        thread_id = self._context.thread_id
        if thread_id is not None:
            await self._stream.load()
            self._background.spawn(
                self._agent_selection.sync_with_thread(thread_id),
                name="thread_agent_sync",
                thread_id=thread_id,
            )

    async def submit(self, text: str, files: Sequence[ArtifactFile] = ()) -> bool:
        """파일을 먼저 올리고 메시지를 보내요.

        업로드가 실패하면 사용자에게 알리고, 텍스트가 있으면 텍스트만 보내요.
        첨부만 있었다면 아무것도 보내지 않아요. 실제로 보냈으면 True예요.
        """
        message_text = text.strip()
        if not message_text and not files:
            return False
        self._ensure_ready()

        artifacts: list[UploadedArtifact] = []
        if files:
            try:
                artifacts = await self._side_channel.upload(files)
            except Exception as exc:
                logger.warning(
                    "artifact_upload_failed",
                    file_count=len(files),
                    status_code=getattr(exc, "status_code", None),
                    error=str(exc),
                )
                alert_text = exc.message if isinstance(exc, DomainError) else f"이미지 업로드에 실패했어요: {exc}"
                self._alert(alert_text)
                if not message_text:
                    return False
                await self.send(message_text)
                return True

        await self.send(message_text, artifacts)
        return True

    async def send(self, text: str, artifacts: Sequence[UploadedArtifact] = ()) -> None:
        agent = self._ensure_ready()
        turn = build_human_turn(text, artifacts)
        # 스레드 id는 전송 전에 읽어요. 없으면 아티팩트는 스레드 생성 때까지 대기해요.
        self._side_channel.attach(self._context.thread_id, artifacts)
        request = RunRequest(
            assistant_id=agent.assistant_id,
            input={"messages": [turn.to_wire()]},
            config=self._build_config(),
        )
        await self._stream.submit(request, optimistic_turns=[*self._stream.turns, turn])
        self._history_changed()

    async def resume(self, value: Any) -> None:
        agent = self._ensure_ready()
        await self._stream.submit(RunRequest(assistant_id=agent.assistant_id, command={"resume": value}))
        self._history_changed()

    async def continue_run(self, has_task_tool_call: bool | None = None) -> None:
        """새 Turn 없이 다시 실행해요. 직전 단계가 task 도구였으면 도구 실행 뒤에 멈춰요."""
        agent = self._ensure_ready()
        if has_task_tool_call is None:
            call = last_tool_call(correlate(self._stream.turns, self._stream.interrupt))
            has_task_tool_call = call is not None and call.name == TASK_TOOL_NAME
        request = RunRequest(
            assistant_id=agent.assistant_id,
            config=self._build_config(),
            **_tool_pause(after=has_task_tool_call),
        )
        await self._stream.submit(request)
        self._history_changed()

    async def run_single_step(
        self,
        turns: Sequence[Turn],
        *,
        checkpoint: dict[str, Any] | None = None,
        rerunning_subagent: bool = False,
        optimistic_turns: Sequence[Turn] | None = None,
    ) -> None:
        agent = self._ensure_ready()
        if checkpoint is not None:
            request = RunRequest(
                assistant_id=agent.assistant_id,
                config=self._build_config(),
                checkpoint=checkpoint,
                **_tool_pause(after=rerunning_subagent),
            )
            await self._stream.submit(request, optimistic_turns=optimistic_turns)
            return

        request = RunRequest(
            assistant_id=agent.assistant_id,
            input={"messages": [turn.to_wire() for turn in turns]},
            config=self._build_config(),
            **_tool_pause(after=False),
        )
        await self._stream.submit(request)

    async def mark_resolved(self) -> None:
        agent = self._ensure_ready()
        await self._stream.submit(
            RunRequest(assistant_id=agent.assistant_id, command={"goto": END_NODE, "update": None})
        )
        self._history_changed()

    async def stop(self) -> None:
        await self._stream.stop()

    async def switch_thread(self, thread_id: str | None) -> None:
        """현재 구독을 통째로 버리고 새 스레드를 구독해요."""
        if thread_id == self._stream.thread_id:
            return
        await self._stream.close()
        self._context.set_thread_id(thread_id)
        self._stream = self._new_stream(thread_id)
        self._emit_update()
        if thread_id is None:
            return
        await self._stream.load()
        self._background.spawn(
            self._agent_selection.sync_with_thread(thread_id),
            name="thread_agent_sync",
            thread_id=thread_id,
        )

    async def select_agent(self, logical_id: str) -> None:
        """선택을 즉시 바꾸고 스레드를 비운 뒤, 해석은 백그라운드에서 해요."""
        self._context.select_agent(logical_id)
        await self.switch_thread(None)
        self._background.spawn(self._agent_selection.refresh(), name="agent_refresh", agent_id=logical_id)

    def update_runtime_options(self, **changes: Any) -> None:
        self._context.update_runtime_options(**changes)

    async def wait_idle(self) -> None:
        await self._stream.wait_idle()
        await self._background.drain()

    async def aclose(self) -> None:
        await self._stream.close()
        await self._background.aclose()

    def _new_stream(self, thread_id: str | None) -> ThreadStream:
        return ThreadStream(
            runtime=self._runtime,
            thread_id=thread_id,
            thread_metadata=self._new_thread_metadata,
            on_thread_id=self._on_thread_created,
            on_change=self._emit_update,
        )

    def _new_thread_metadata(self) -> dict[str, Any]:
        agent = self._context.agent
        if agent is None:
            return {}
        return {"assistant_id": agent.assistant_id, "graph_id": agent.graph_id}

    def _on_thread_created(self, thread_id: str) -> None:
        self._context.set_thread_id(thread_id)
        self._side_channel.on_thread_id(thread_id)
        self._history_changed()

    def _ensure_ready(self) -> AgentDescriptor:
        agent = self._context.agent
        if agent is None:
            raise ValidationError("에이전트가 아직 준비되지 않았어요.")
        if self._stream.is_running:
            raise ValidationError("이 스레드에서 이미 실행이 진행 중이에요.")
        return agent

    def _build_config(self) -> dict[str, Any]:
        agent = self._context.agent
        agent_config = dict(agent.config) if agent is not None else {}
        configurable = dict(agent_config.get("configurable") or {})
        configurable.update(self._context.runtime_options.as_configurable())
        config: dict[str, Any] = {**agent_config, "recursion_limit": self._recursion_limit}
        if configurable:
            config["configurable"] = configurable
        return config

    def _history_changed(self) -> None:
        self._background.notify(self._on_history_changed, name="history_changed")

    def _alert(self, message: str) -> None:
        on_alert = self._on_alert
        if on_alert is None:
            return
        self._background.notify(lambda: on_alert(message), name="alert")

    def _emit_update(self) -> None:
        if self._on_update is not None:
            self._on_update(self.view())


def _tool_pause(*, after: bool) -> dict[str, list[str]]:
    if after:
        return {"interrupt_after": [TOOLS_NODE]}
    return {"interrupt_before": [TOOLS_NODE]}
