from __future__ import annotations

from collections.abc import AsyncIterator, Mapping, Sequence
from typing import Any, Protocol

from deepagent_client.app.models import ArtifactFile, RunRequest
from deepagent_client.app.sse import StreamEvent
from libs.contracts.models import AgentDescriptor, ThreadRecord, UploadedArtifact


class AgentDirectoryProtocol(Protocol):
    async def get_assistant(self, assistant_id: str) -> AgentDescriptor: ...

    async def search_assistants(
        self,
        *,
        graph_id: str,
        limit: int,
        metadata: Mapping[str, Any] | None = None,
    ) -> list[AgentDescriptor]: ...


class ThreadMetadataProtocol(Protocol):
    async def get_thread(self, thread_id: str) -> ThreadRecord: ...

    async def patch_thread(self, thread_id: str, metadata: Mapping[str, Any]) -> ThreadRecord: ...


class RunStreamProtocol(Protocol):
    async def create_thread(self, metadata: Mapping[str, Any] | None = None) -> ThreadRecord: ...

    async def get_thread_state(self, thread_id: str) -> dict[str, Any]: ...

    def stream_run(self, thread_id: str, request: RunRequest) -> AsyncIterator[StreamEvent]: ...

    async def cancel_run(self, thread_id: str, run_id: str) -> None: ...


class ArtifactUploaderProtocol(Protocol):
    async def upload(self, files: Sequence[ArtifactFile]) -> list[UploadedArtifact]: ...
