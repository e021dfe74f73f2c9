from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from libs.contracts.models import AgentDescriptor, RuntimeOptions

ThreadListener = Callable[[str | None], None]
AgentListener = Callable[[AgentDescriptor], None]


@dataclass(slots=True)
class SessionContext:
    """세션 전역 상태예요. 각 컴포넌트에 참조로 넘기고, 변경은 콜백으로 알려요."""

    selected_agent_id: str
    thread_id: str | None = None
    agent: AgentDescriptor | None = None
    runtime_options: RuntimeOptions = field(default_factory=RuntimeOptions)
    _thread_listeners: list[ThreadListener] = field(default_factory=list)
    _agent_listeners: list[AgentListener] = field(default_factory=list)

    def on_thread_change(self, listener: ThreadListener) -> None:
        self._thread_listeners.append(listener)

    def on_agent_change(self, listener: AgentListener) -> None:
        self._agent_listeners.append(listener)

    def set_thread_id(self, thread_id: str | None) -> None:
        if thread_id == self.thread_id:
            return
        self.thread_id = thread_id
        for listener in list(self._thread_listeners):
            listener(thread_id)

    def select_agent(self, logical_id: str) -> None:
        self.selected_agent_id = logical_id

    def set_agent(self, agent: AgentDescriptor) -> None:
        self.agent = agent
        for listener in list(self._agent_listeners):
            listener(agent)

    def update_runtime_options(self, **changes: Any) -> RuntimeOptions:
        self.runtime_options = self.runtime_options.model_copy(update=changes)
        return self.runtime_options
