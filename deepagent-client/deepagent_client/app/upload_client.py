from __future__ import annotations

import asyncio
from collections.abc import Sequence

import httpx

from deepagent_client.app.models import ArtifactFile
from libs.common.errors import UploadFailedError
from libs.contracts.models import UploadedArtifact


class UploadClient:
    def __init__(
        self,
        *,
        base_url: str,
        upload_path: str,
        token: str,
        timeout_seconds: float,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._upload_path = upload_path
        self._token = token
        self._timeout = timeout_seconds
        self._client = httpx.AsyncClient(timeout=self._timeout, transport=transport)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def upload(self, files: Sequence[ArtifactFile]) -> list[UploadedArtifact]:
        """파일을 동시에 업로드해요. 하나라도 실패하면 전체가 실패해요."""
        if not files:
            return []
        if not self._base_url or not self._token:
            raise UploadFailedError(None, "배포 주소 또는 인증 토큰이 설정되지 않았어요.")
        return list(await asyncio.gather(*(self._upload_one(file) for file in files)))

    async def _upload_one(self, file: ArtifactFile) -> UploadedArtifact:
        try:
            response = await self._client.post(
                f"{self._base_url}{self._upload_path}",
                headers={"Authorization": f"Bearer {self._token}"},
                files={"file": (file.filename, file.content, file.content_type)},
            )
        except httpx.HTTPError as exc:
            raise UploadFailedError(None, str(exc) or "네트워크 오류") from exc

        if response.status_code >= 400:
            raise UploadFailedError(response.status_code, response.text)

        try:
            data = response.json()
        except ValueError as exc:
            raise UploadFailedError(response.status_code, "응답이 JSON이 아니에요.") from exc
        if not isinstance(data, dict):
            raise UploadFailedError(response.status_code, "응답 형식이 올바르지 않아요.")

        doc_id = data.get("doc_id")
        storage_url = data.get("storage_url")
        storage_path = data.get("storage_path")
        if not isinstance(doc_id, str) or not doc_id or not isinstance(storage_url, str) or not isinstance(storage_path, str):
            raise UploadFailedError(response.status_code, "응답에 doc_id / storage_url / storage_path가 없어요.")
        return UploadedArtifact(doc_id=doc_id, storage_url=storage_url, storage_path=storage_path)
