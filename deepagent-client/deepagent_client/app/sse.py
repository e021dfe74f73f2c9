from __future__ import annotations

import json
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any


@dataclass(slots=True, frozen=True)
class StreamEvent:
    event: str
    data: Any


def _decode(data_lines: list[str]) -> Any:
    raw = "\n".join(data_lines)
    if not raw:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


async def iter_sse_events(lines: AsyncIterator[str]) -> AsyncIterator[StreamEvent]:
    """`text/event-stream` 줄 단위 입력을 이벤트로 묶어요.

    빈 줄에서 이벤트 하나를 내보내고, `data:` 값은 JSON이면 디코딩해요.
    주석 줄(`:`)과 `id:` / `retry:` 필드는 무시해요.
    """
    event_name = "message"
    data_lines: list[str] = []

    async for line in lines:
        line = line.rstrip("\r")
        if not line:
            if data_lines:
                yield StreamEvent(event=event_name, data=_decode(data_lines))
            event_name = "message"
            data_lines = []
            continue

        if line.startswith(":"):
            continue

        field_name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]

        if field_name == "event":
            event_name = value or "message"
        elif field_name == "data":
            data_lines.append(value)

    if data_lines:
        yield StreamEvent(event=event_name, data=_decode(data_lines))
