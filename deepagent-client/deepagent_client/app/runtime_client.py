from __future__ import annotations

from collections.abc import AsyncIterator, Mapping
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from deepagent_client.app.models import RunRequest
from deepagent_client.app.sse import StreamEvent, iter_sse_events
from libs.common.errors import (
    AuthenticationError,
    ConfigurationError,
    NotFoundError,
    UpstreamRequestError,
    UpstreamTransientError,
)
from libs.common.retry import retry_async
from libs.contracts.models import AgentDescriptor, ThreadRecord

ModelT = TypeVar("ModelT", bound=BaseModel)


class RuntimeClient:
    """원격 에이전트 런타임 REST API 클라이언트예요."""

    def __init__(
        self,
        *,
        base_url: str,
        token: str,
        api_key: str,
        auth_scheme: str,
        timeout_seconds: float,
        stream_timeout_seconds: float,
        retries: int = 0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._api_key = api_key
        self._auth_scheme = auth_scheme
        self._timeout = timeout_seconds
        self._stream_timeout = stream_timeout_seconds
        self._retries = retries
        self._client = httpx.AsyncClient(timeout=self._timeout, transport=transport)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def get_assistant(self, assistant_id: str) -> AgentDescriptor:
        data = await self._get_json(f"/assistants/{assistant_id}")
        return _parse_model(AgentDescriptor, data, "assistant")

    async def search_assistants(
        self,
        *,
        graph_id: str,
        limit: int,
        metadata: Mapping[str, Any] | None = None,
    ) -> list[AgentDescriptor]:
        payload: dict[str, Any] = {"graph_id": graph_id, "limit": limit}
        if metadata:
            payload["metadata"] = dict(metadata)
        data = await self._request_json("POST", "/assistants/search", payload)
        if not isinstance(data, list):
            raise UpstreamTransientError("어시스턴트 검색 응답 형식이 올바르지 않아요.")
        return [_parse_model(AgentDescriptor, item, "assistant") for item in data]

    async def create_thread(self, metadata: Mapping[str, Any] | None = None) -> ThreadRecord:
        data = await self._request_json("POST", "/threads", {"metadata": dict(metadata or {})})
        return _parse_model(ThreadRecord, data, "thread")

    async def get_thread(self, thread_id: str) -> ThreadRecord:
        data = await self._get_json(f"/threads/{thread_id}")
        return _parse_model(ThreadRecord, data, "thread")

    async def patch_thread(self, thread_id: str, metadata: Mapping[str, Any]) -> ThreadRecord:
        data = await self._request_json("PATCH", f"/threads/{thread_id}", {"metadata": dict(metadata)})
        return _parse_model(ThreadRecord, data, "thread")

    async def get_thread_state(self, thread_id: str) -> dict[str, Any]:
        data = await self._get_json(f"/threads/{thread_id}/state")
        if not isinstance(data, dict):
            raise UpstreamTransientError("스레드 상태 응답 형식이 올바르지 않아요.")
        return data

    async def stream_run(self, thread_id: str, request: RunRequest) -> AsyncIterator[StreamEvent]:
        """실행을 시작하고 SSE 이벤트를 도착 순서대로 내보내요."""
        self._require_base_url()
        timeout = httpx.Timeout(self._timeout, read=self._stream_timeout)
        try:
            async with self._client.stream(
                "POST",
                f"{self._base_url}/threads/{thread_id}/runs/stream",
                json=request.to_payload(),
                headers=self._build_headers(accept_stream=True),
                timeout=timeout,
            ) as response:
                if response.status_code >= 400:
                    await response.aread()
                    _raise_for_status(response, "실행 스트림")
                async for event in iter_sse_events(response.aiter_lines()):
                    yield event
        except httpx.TimeoutException as exc:
            raise UpstreamTransientError("실행 스트림이 시간 초과됐어요.") from exc
        except httpx.HTTPError as exc:
            raise UpstreamTransientError("실행 스트림 연결이 끊겼어요.") from exc

    async def cancel_run(self, thread_id: str, run_id: str) -> None:
        await self._request_json("POST", f"/threads/{thread_id}/runs/{run_id}/cancel", {})

    def _build_headers(self, *, accept_stream: bool = False) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if accept_stream:
            headers["Accept"] = "text/event-stream"
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        if self._api_key:
            headers["x-api-key"] = self._api_key
        if self._auth_scheme:
            headers["x-auth-scheme"] = self._auth_scheme
        return headers

    def _require_base_url(self) -> None:
        if not self._base_url:
            raise ConfigurationError("런타임 배포 주소가 설정되지 않았어요.")

    async def _get_json(self, path: str) -> Any:
        return await retry_async(
            lambda: self._request_json("GET", path),
            retries=self._retries,
            base_delay_seconds=0.3,
            max_delay_seconds=3.0,
        )

    async def _request_json(
        self,
        method: str,
        path: str,
        payload: Mapping[str, Any] | None = None,
    ) -> Any:
        self._require_base_url()
        request_kwargs: dict[str, Any] = {
            "method": method,
            "url": f"{self._base_url}{path}",
            "headers": self._build_headers(),
        }
        if method.upper() != "GET":
            request_kwargs["json"] = dict(payload or {})
        try:
            response = await self._client.request(**request_kwargs)
        except httpx.TimeoutException as exc:
            raise UpstreamTransientError("런타임 API 요청이 시간 초과됐어요.") from exc
        except httpx.HTTPError as exc:
            raise UpstreamTransientError("런타임 API 연결에 실패했어요.") from exc

        _raise_for_status(response, f"{method.upper()} {path}")
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamTransientError("런타임 API 응답이 JSON이 아니에요.") from exc


def _raise_for_status(response: httpx.Response, context: str) -> None:
    status = response.status_code
    if status < 400:
        return
    if status == 404:
        raise NotFoundError(f"런타임에서 대상을 찾지 못했어요: {context}")
    if status in (401, 403):
        raise AuthenticationError(f"런타임 인증에 실패했어요: {context}", status_code=status)
    if status >= 500:
        raise UpstreamTransientError(f"런타임 서버 오류가 발생했어요: {context}", status_code=status)
    raise UpstreamRequestError(status, f"런타임이 요청을 거절했어요 ({status}): {context} {response.text[:200]}")


def _parse_model(model: type[ModelT], data: Any, label: str) -> ModelT:
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        raise UpstreamTransientError(f"{label} 응답 형식이 올바르지 않아요.") from exc
