from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator, Callable, Mapping, Sequence
from typing import Any

import pytest
from deepagent_client.app.background import BackgroundTaskGroup
from deepagent_client.app.models import ArtifactFile, RunRequest
from deepagent_client.app.sse import StreamEvent
from deepagent_client.modules.agents.resolver import AgentSelection, AssistantResolver
from deepagent_client.modules.artifacts.sync import SideChannelSync
from deepagent_client.modules.session.context import SessionContext
from deepagent_client.modules.session.service import ConversationSession

from libs.common.errors import NotFoundError, UploadFailedError
from libs.contracts.models import AgentDescriptor, RuntimeOptions, ThreadRecord, UploadedArtifact

RESEARCH_AGENT = AgentDescriptor(
    assistant_id="6f1c2a9e-0000-4000-8000-000000000001",
    graph_id="research",
    name="research",
    config={"configurable": {"temperature": 0}},
    metadata={"created_by": "system"},
)
CHAT_AGENT = AgentDescriptor(
    assistant_id="6f1c2a9e-0000-4000-8000-000000000002",
    graph_id="chat",
    name="chat",
    metadata={"created_by": "system"},
)


def human(turn_id: str, text: str) -> dict[str, Any]:
    return {"id": turn_id, "type": "human", "content": text}


def ai(turn_id: str, text: str = "", tool_calls: list[dict[str, Any]] | None = None) -> dict[str, Any]:
    return {"id": turn_id, "type": "ai", "content": text, "tool_calls": tool_calls or []}


def tool(turn_id: str, tool_call_id: str, text: str) -> dict[str, Any]:
    return {"id": turn_id, "type": "tool", "content": text, "tool_call_id": tool_call_id}


class FakeRuntime:
    """프로토콜을 모두 구현한 인메모리 런타임이에요. 실행 스트림은 미리 적어 둔 이벤트를 내보내요."""

    def __init__(self) -> None:
        self.assistants: dict[str, AgentDescriptor] = {
            RESEARCH_AGENT.assistant_id: RESEARCH_AGENT,
            CHAT_AGENT.assistant_id: CHAT_AGENT,
        }
        self.search_results: dict[str, list[AgentDescriptor]] = {
            "research": [RESEARCH_AGENT],
            "chat": [CHAT_AGENT],
        }
        self.search_errors: dict[str, Exception] = {}
        self.search_gates: dict[str, asyncio.Event] = {}
        self.threads: dict[str, dict[str, Any]] = {}
        self.states: dict[str, dict[str, Any]] = {}
        self.scripts: list[list[StreamEvent]] = []
        self.hold: asyncio.Event | None = None
        self.run_requests: list[tuple[str, RunRequest]] = []
        self.patch_calls: list[tuple[str, dict[str, Any]]] = []
        self.cancelled: list[tuple[str, str]] = []
        self.patch_error: Exception | None = None

    async def get_assistant(self, assistant_id: str) -> AgentDescriptor:
        await asyncio.sleep(0)
        agent = self.assistants.get(assistant_id)
        if agent is None:
            raise NotFoundError()
        return agent

    async def search_assistants(
        self,
        *,
        graph_id: str,
        limit: int,
        metadata: Mapping[str, Any] | None = None,
    ) -> list[AgentDescriptor]:
        del limit, metadata
        await asyncio.sleep(0)
        gate = self.search_gates.get(graph_id)
        if gate is not None:
            await gate.wait()
        if graph_id in self.search_errors:
            raise self.search_errors[graph_id]
        return list(self.search_results.get(graph_id, []))

    async def create_thread(self, metadata: Mapping[str, Any] | None = None) -> ThreadRecord:
        thread_id = f"thread-{len(self.threads) + 1}"
        self.threads[thread_id] = dict(metadata or {})
        return ThreadRecord(thread_id=thread_id, metadata=self.threads[thread_id])

    async def get_thread(self, thread_id: str) -> ThreadRecord:
        await asyncio.sleep(0)
        if thread_id not in self.threads:
            raise NotFoundError()
        return ThreadRecord(thread_id=thread_id, metadata=dict(self.threads[thread_id]))

    async def patch_thread(self, thread_id: str, metadata: Mapping[str, Any]) -> ThreadRecord:
        await asyncio.sleep(0)
        if self.patch_error is not None:
            raise self.patch_error
        self.patch_calls.append((thread_id, dict(metadata)))
        self.threads[thread_id] = dict(metadata)
        return ThreadRecord(thread_id=thread_id, metadata=dict(metadata))

    async def get_thread_state(self, thread_id: str) -> dict[str, Any]:
        return self.states.get(thread_id, {"values": {}})

    async def stream_run(self, thread_id: str, request: RunRequest) -> AsyncIterator[StreamEvent]:
        self.run_requests.append((thread_id, request))
        run_id = f"run-{len(self.run_requests)}"
        events = self.scripts.pop(0) if self.scripts else []
        yield StreamEvent(event="metadata", data={"run_id": run_id})
        if self.hold is not None:
            await self.hold.wait()
        for event in events:
            yield event

    async def cancel_run(self, thread_id: str, run_id: str) -> None:
        self.cancelled.append((thread_id, run_id))


class FakeUploader:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.uploaded: list[str] = []

    async def upload(self, files: Sequence[ArtifactFile]) -> list[UploadedArtifact]:
        if self.error is not None:
            raise self.error
        artifacts: list[UploadedArtifact] = []
        for file in files:
            self.uploaded.append(file.filename)
            doc_id = f"doc-{len(self.uploaded)}"
            artifacts.append(
                UploadedArtifact(
                    doc_id=doc_id,
                    storage_url=f"https://storage.test/{file.filename}",
                    storage_path=f"uploads/{file.filename}",
                )
            )
        return artifacts


class SessionHarness:
    def __init__(
        self,
        runtime: FakeRuntime,
        uploader: FakeUploader,
        *,
        thread_id: str | None = None,
        patch_delay_seconds: float = 0.0,
    ) -> None:
        self.runtime = runtime
        self.uploader = uploader
        self.background = BackgroundTaskGroup()
        self.history_changes = 0
        self.alerts: list[str] = []
        self.updates = 0
        self.context = SessionContext(
            selected_agent_id="research",
            thread_id=thread_id,
            runtime_options=RuntimeOptions(model_name="openai:gpt-4o", selected_tools=["think_tool"]),
        )
        self.agent_selection = AgentSelection(
            resolver=AssistantResolver(runtime, fallback_id="research"),
            directory=runtime,
            threads=runtime,
            context=self.context,
            available_agents=["research", "chat"],
        )
        self.side_channel = SideChannelSync(
            threads=runtime,
            uploader=uploader,
            background=self.background,
            patch_delay_seconds=patch_delay_seconds,
            metadata_key="uploaded_images",
        )
        self.session = ConversationSession(
            runtime=runtime,
            context=self.context,
            agent_selection=self.agent_selection,
            side_channel=self.side_channel,
            background=self.background,
            recursion_limit=100,
            on_history_changed=self._on_history_changed,
            on_update=self._on_update,
            on_alert=self.alerts.append,
        )

    def _on_history_changed(self) -> None:
        self.history_changes += 1

    def _on_update(self, view: Any) -> None:
        del view
        self.updates += 1


@pytest.fixture
def runtime() -> FakeRuntime:
    """테스트마다 새로 만드는 인메모리 런타임이에요."""
    return FakeRuntime()


@pytest.fixture
def uploader() -> FakeUploader:
    return FakeUploader()


@pytest.fixture
def failing_uploader() -> FakeUploader:
    """항상 503으로 실패하는 업로더예요."""
    return FakeUploader(error=UploadFailedError(503, "Service Unavailable"))


@pytest.fixture
def make_harness(runtime: FakeRuntime, uploader: FakeUploader) -> Callable[..., SessionHarness]:
    def _make(**kwargs: Any) -> SessionHarness:
        kwargs.setdefault("uploader", uploader)
        target_uploader = kwargs.pop("uploader")
        return SessionHarness(runtime, target_uploader, **kwargs)

    return _make


async def wait_until(predicate: Callable[[], bool], *, timeout_seconds: float = 2.0) -> None:
    deadline = time.monotonic() + timeout_seconds
    while time.monotonic() < deadline:
        if predicate():
            return
        await asyncio.sleep(0.01)
    raise AssertionError("조건이 시간 안에 충족되지 않았어요.")
