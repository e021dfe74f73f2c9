"""논리 에이전트 id(UUID 또는 그래프 이름)를 실제 어시스턴트로 풀어요.

해석은 절대 예외를 던지지 않아요. 실패하면 요청한 id를 그대로 쓰는 플레이스홀더를 돌려줘서
에이전트 메타데이터 때문에 UI가 멈추지 않게 해요.
"""

from __future__ import annotations

import re
from collections.abc import Sequence

from deepagent_client.modules.session.context import SessionContext
from deepagent_client.modules.session.contracts import (
    AgentDirectoryProtocol,
    ThreadMetadataProtocol,
)
from libs.common.errors import is_not_found
from libs.common.logging import get_logger
from libs.contracts.models import AgentDescriptor

logger = get_logger("deepagent_client.assistant_resolver")

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)
SYSTEM_DEFAULT_METADATA = {"created_by": "system"}


def is_uuid(value: str) -> bool:
    return bool(UUID_PATTERN.match(value))


def is_system_default(agent: AgentDescriptor) -> bool:
    return agent.metadata.get("created_by") == SYSTEM_DEFAULT_METADATA["created_by"]


class AssistantResolver:
    def __init__(
        self,
        directory: AgentDirectoryProtocol,
        *,
        fallback_id: str,
        search_limit: int = 100,
    ) -> None:
        self._directory = directory
        self._fallback_id = fallback_id
        self._search_limit = search_limit

    async def resolve(self, logical_id: str) -> AgentDescriptor:
        target = logical_id.strip() or self._fallback_id
        if is_uuid(target):
            return await self._resolve_by_id(target)
        return await self._resolve_by_graph(target)

    async def _resolve_by_id(self, assistant_id: str) -> AgentDescriptor:
        try:
            return await self._directory.get_assistant(assistant_id)
        except Exception as exc:
            logger.error(
                "assistant_fetch_failed",
                assistant_id=assistant_id,
                status_code=getattr(exc, "status_code", None),
                error=str(exc),
            )
            return AgentDescriptor.placeholder(assistant_id)

    async def _resolve_by_graph(self, graph_id: str) -> AgentDescriptor:
        try:
            candidates = await self._directory.search_assistants(
                graph_id=graph_id,
                limit=self._search_limit,
                metadata=SYSTEM_DEFAULT_METADATA,
            )
        except Exception as exc:
            if is_not_found(exc):
                logger.warning(
                    "assistant_graph_not_found",
                    graph_id=graph_id,
                    hint=f"그래프 `{graph_id}`가 런타임에 없어요. 그래프 등록 여부와 서버 재시작을 확인해 주세요.",
                )
            else:
                logger.error("assistant_search_failed", graph_id=graph_id, error=str(exc))
            return AgentDescriptor.placeholder(graph_id)

        for candidate in candidates:
            if is_system_default(candidate):
                return candidate

        logger.error("assistant_default_missing", graph_id=graph_id, candidates=len(candidates))
        return AgentDescriptor.placeholder(graph_id)


class AgentSelection:
    """세션이 고른 에이전트를 관리하고, 스레드가 드러낸 에이전트에 맞춰 다시 해석해요.

    선택 id는 마지막 쓰기가 이겨요. 해석이 끝났을 때 선택이 이미 바뀌었으면 결과를 버려요.
    """

    def __init__(
        self,
        *,
        resolver: AssistantResolver,
        directory: AgentDirectoryProtocol,
        threads: ThreadMetadataProtocol,
        context: SessionContext,
        available_agents: Sequence[str] = (),
    ) -> None:
        self._resolver = resolver
        self._directory = directory
        self._threads = threads
        self._context = context
        self._available_agents = frozenset(available_agents)

    async def select(self, logical_id: str) -> AgentDescriptor | None:
        self._context.select_agent(logical_id)
        return await self.refresh()

    async def refresh(self) -> AgentDescriptor | None:
        requested = self._context.selected_agent_id
        descriptor = await self._resolver.resolve(requested)
        if self._context.selected_agent_id != requested:
            logger.debug(
                "stale_agent_resolution_dropped",
                requested=requested,
                current=self._context.selected_agent_id,
            )
            return None
        self._context.set_agent(descriptor)
        return descriptor

    async def sync_with_thread(self, thread_id: str) -> None:
        """스레드의 실제 에이전트가 현재 선택과 다르면 선택을 바꾸고 다시 해석해요."""
        try:
            thread = await self._threads.get_thread(thread_id)
        except Exception as exc:
            logger.error("thread_load_failed", thread_id=thread_id, error=str(exc))
            return

        backing_id = thread.backing_agent_id()
        if not backing_id or self._context.thread_id != thread_id:
            return

        if not is_uuid(backing_id):
            if self._is_switchable(backing_id):
                await self.select(backing_id)
            return

        try:
            agent = await self._directory.get_assistant(backing_id)
        except Exception as exc:
            logger.error("thread_assistant_fetch_failed", thread_id=thread_id, assistant_id=backing_id, error=str(exc))
            return

        if self._context.thread_id != thread_id or not self._is_switchable(agent.graph_id):
            return
        self._context.select_agent(agent.graph_id)
        self._context.set_agent(agent)

    def _is_switchable(self, graph_id: str) -> bool:
        if self._available_agents and graph_id not in self._available_agents:
            return False
        return graph_id != self._context.selected_agent_id
