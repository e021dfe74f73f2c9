from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class AgentDescriptor(BaseModel):
    """스레드를 처리하는 에이전트의 실제 정체예요."""

    model_config = ConfigDict(extra="ignore")

    assistant_id: str = Field(min_length=1)
    graph_id: str
    name: str = ""
    config: dict[str, Any] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)
    version: int = 1
    created_at: str | None = None
    updated_at: str | None = None
    is_placeholder: bool = False

    @classmethod
    def placeholder(cls, logical_id: str) -> "AgentDescriptor":
        return cls(
            assistant_id=logical_id,
            graph_id=logical_id,
            name=logical_id,
            is_placeholder=True,
        )


class ThreadRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    thread_id: str = Field(min_length=1)
    metadata: dict[str, Any] | None = None
    status: str | None = None
    assistant_id: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    def backing_agent_id(self) -> str | None:
        metadata = self.metadata or {}
        value = metadata.get("assistant_id")
        if isinstance(value, str) and value:
            return value
        return self.assistant_id or None


class UploadedArtifact(BaseModel):
    doc_id: str = Field(min_length=1)
    storage_url: str
    storage_path: str


class RuntimeOptions(BaseModel):
    """세션 단위 실행 옵션이에요. 설정되지 않은 값은 전송하지 않아요."""

    model_name: str | None = None
    selected_tools: list[str] | None = None
    selected_subagents: list[str] | None = None
    subagent_model_name: str | None = None
    subagent_selected_tools: list[str] | None = None

    def as_configurable(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)
