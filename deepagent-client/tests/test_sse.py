from __future__ import annotations

from collections.abc import AsyncIterator

import pytest
from deepagent_client.app.sse import StreamEvent, iter_sse_events


async def _lines(*lines: str) -> AsyncIterator[str]:
    for line in lines:
        yield line


async def _collect(*lines: str) -> list[StreamEvent]:
    return [event async for event in iter_sse_events(_lines(*lines))]


@pytest.mark.asyncio
async def test_events_are_split_on_blank_lines_and_json_decoded() -> None:
    events = await _collect(
        "event: metadata",
        'data: {"run_id": "r1"}',
        "",
        "event: values",
        'data: {"messages": [1, 2]}',
        "",
    )

    assert events == [
        StreamEvent(event="metadata", data={"run_id": "r1"}),
        StreamEvent(event="values", data={"messages": [1, 2]}),
    ]


@pytest.mark.asyncio
async def test_multiline_data_is_joined_before_decoding() -> None:
    events = await _collect("event: values", 'data: {"a":', "data: 1}", "")

    assert events == [StreamEvent(event="values", data={"a": 1})]


@pytest.mark.asyncio
async def test_comments_ids_and_retry_fields_are_ignored() -> None:
    events = await _collect(": ping", "id: 7", "retry: 1000", "event: error", "data: boom\r", "")

    assert events == [StreamEvent(event="error", data="boom")]


@pytest.mark.asyncio
async def test_trailing_event_without_blank_line_is_flushed() -> None:
    events = await _collect("data: [1]")

    assert events == [StreamEvent(event="message", data=[1])]


@pytest.mark.asyncio
async def test_blank_lines_without_data_emit_nothing() -> None:
    assert await _collect("", "event: values", "", "") == []
