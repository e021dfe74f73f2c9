"""업로드된 아티팩트를 스레드 메타데이터에 붙여요.

스레드가 이미 있으면 잠깐 기다렸다가 패치하고, 아직 없으면 대기 목록에 쌓아 두었다가
스레드 id가 배정되는 순간 한 번에 내보내요. 모든 패치는 best-effort라서 실패해도
메시지 전송 경로에는 영향을 주지 않아요.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from deepagent_client.app.background import BackgroundTaskGroup
from deepagent_client.app.models import ArtifactFile
from deepagent_client.modules.session.contracts import (
    ArtifactUploaderProtocol,
    ThreadMetadataProtocol,
)
from libs.common.logging import get_logger
from libs.contracts.models import UploadedArtifact

logger = get_logger("deepagent_client.side_channel_sync")

ARTIFACT_ID_KEY = "doc_id"


@dataclass(slots=True, frozen=True)
class PendingArtifact:
    artifact_id: str
    storage_path: str

    @classmethod
    def from_uploaded(cls, artifact: UploadedArtifact) -> "PendingArtifact":
        return cls(artifact_id=artifact.doc_id, storage_path=artifact.storage_path)

    def to_metadata_entry(self) -> dict[str, Any]:
        return {ARTIFACT_ID_KEY: self.artifact_id, "storage_path": self.storage_path}


def merge_artifact_metadata(
    metadata: Mapping[str, Any] | None,
    artifacts: Sequence[PendingArtifact],
    *,
    key: str,
) -> dict[str, Any]:
    """기존 메타데이터 전체에 아티팩트 목록을 id 기준으로 합쳐요.

    같은 id는 새 항목으로 덮어쓰고 나머지는 순서대로 보존해요. 같은 목록을 두 번 합쳐도
    결과가 같아요.
    """
    merged_metadata = dict(metadata or {})
    existing = merged_metadata.get(key)
    entries: list[Any] = list(existing) if isinstance(existing, list) else []

    positions: dict[str, int] = {}
    for index, entry in enumerate(entries):
        if isinstance(entry, Mapping) and isinstance(entry.get(ARTIFACT_ID_KEY), str):
            positions[entry[ARTIFACT_ID_KEY]] = index

    for artifact in artifacts:
        new_entry = artifact.to_metadata_entry()
        position = positions.get(artifact.artifact_id)
        if position is None:
            positions[artifact.artifact_id] = len(entries)
            entries.append(new_entry)
        else:
            entries[position] = new_entry

    merged_metadata[key] = entries
    return merged_metadata


class SideChannelSync:
    def __init__(
        self,
        *,
        threads: ThreadMetadataProtocol,
        uploader: ArtifactUploaderProtocol,
        background: BackgroundTaskGroup,
        patch_delay_seconds: float,
        metadata_key: str,
    ) -> None:
        self._threads = threads
        self._uploader = uploader
        self._background = background
        self._patch_delay_seconds = patch_delay_seconds
        self._metadata_key = metadata_key
        self._pending: list[PendingArtifact] = []
        # 같은 스레드에 대한 읽기-병합-쓰기는 순서대로 실행해요.
        self._thread_locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    @property
    def pending(self) -> tuple[PendingArtifact, ...]:
        return tuple(self._pending)

    async def upload(self, files: Sequence[ArtifactFile]) -> list[UploadedArtifact]:
        """업로드 실패는 그대로 올려요. 사용자에게 알릴지는 호출자가 정해요."""
        return await self._uploader.upload(files)

    def attach(self, thread_id: str | None, artifacts: Sequence[UploadedArtifact]) -> None:
        if not artifacts:
            return
        references = [PendingArtifact.from_uploaded(artifact) for artifact in artifacts]
        if thread_id is None:
            self._pending.extend(references)
            logger.info("artifacts_pending_thread", count=len(references), pending=len(self._pending))
            return
        self._background.spawn(
            self._patch_after_delay(thread_id, references),
            name="artifact_patch",
            thread_id=thread_id,
        )

    def on_thread_id(self, thread_id: str | None) -> None:
        """스레드 id 배정 이벤트예요. 대기 목록은 디스패치 시점에 바로 비워요."""
        if thread_id is None or not self._pending:
            return
        references, self._pending = self._pending, []
        logger.info("artifacts_flush", thread_id=thread_id, count=len(references))
        self._background.spawn(
            self.patch_thread_artifacts(thread_id, references),
            name="artifact_flush",
            thread_id=thread_id,
        )

    async def _patch_after_delay(self, thread_id: str, references: Sequence[PendingArtifact]) -> None:
        await asyncio.sleep(self._patch_delay_seconds)
        await self.patch_thread_artifacts(thread_id, references)

    @property
    def locked_thread_count(self) -> int:
        return len(self._thread_locks)

    async def patch_thread_artifacts(self, thread_id: str, references: Sequence[PendingArtifact]) -> bool:
        lock = self._thread_locks.setdefault(thread_id, asyncio.Lock())
        self._lock_users[thread_id] = self._lock_users.get(thread_id, 0) + 1
        try:
            async with lock:
                applied = await self._merge_and_patch(thread_id, references)
        finally:
            self._release_thread_lock(thread_id)
        return applied

    async def _merge_and_patch(self, thread_id: str, references: Sequence[PendingArtifact]) -> bool:
        try:
            thread = await self._threads.get_thread(thread_id)
            merged = merge_artifact_metadata(thread.metadata, references, key=self._metadata_key)
            await self._threads.patch_thread(thread_id, merged)
        except Exception as exc:
            logger.warning(
                "artifact_patch_failed",
                thread_id=thread_id,
                artifact_ids=[reference.artifact_id for reference in references],
                status_code=getattr(exc, "status_code", None),
                error=str(exc),
            )
            return False

        logger.info("artifact_patch_applied", thread_id=thread_id, count=len(references))
        return True

    def _release_thread_lock(self, thread_id: str) -> None:
        # 대기 중인 패치가 남아 있으면 같은 락을 계속 써야 해요.
        remaining = self._lock_users.get(thread_id, 1) - 1
        if remaining > 0:
            self._lock_users[thread_id] = remaining
            return
        self._lock_users.pop(thread_id, None)
        self._thread_locks.pop(thread_id, None)
