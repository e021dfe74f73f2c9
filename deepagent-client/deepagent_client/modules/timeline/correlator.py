"""평평한 Turn 목록을 (Turn, 도구 호출 목록) 레코드로 접어요.

매 호출마다 처음부터 다시 계산해요. Turn 목록 외에는 아무 상태도 남기지 않으므로
같은 입력이면 항상 같은 결과가 나와요.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from deepagent_client.app.turns import Turn, TurnRole, text_content
from libs.common.logging import get_logger

logger = get_logger("deepagent_client.correlator")

UNKNOWN_TOOL_NAME = "unknown"


class ToolCallStatus(str, Enum):
    PENDING = "pending"
    INTERRUPTED = "interrupted"
    COMPLETED = "completed"


class ToolCallSource(str, Enum):
    """assistant Turn에서 도구 호출을 어디서 읽었는지 나타내요. 선언 순서가 우선순위예요."""

    PROVIDER_NATIVE = "provider_native"
    NORMALIZED = "normalized"
    CONTENT_BLOCKS = "content_blocks"
    NONE = "none"


@dataclass(slots=True, frozen=True)
class ToolCallRequests:
    source: ToolCallSource
    items: tuple[dict[str, Any], ...] = ()


@dataclass(slots=True, frozen=True)
class ToolCallRecord:
    id: str
    name: str
    args: Any
    status: ToolCallStatus
    result: str | None = None


@dataclass(slots=True, frozen=True)
class CorrelatedTurn:
    turn: Turn
    tool_calls: tuple[ToolCallRecord, ...] = ()
    show_separator: bool = False


@dataclass(slots=True)
class _Slot:
    turn: Turn
    tool_calls: list[ToolCallRecord] = field(default_factory=list)


def select_tool_call_requests(turn: Turn) -> ToolCallRequests:
    """비어 있지 않은 첫 번째 소스를 골라요.

    1. `additional_kwargs.tool_calls` (프로바이더 원본)
    2. `tool_calls` (정규화 목록, 이름이 빈 항목 제외)
    3. 본문의 `tool_use` 블록
    """
    native = turn.additional_kwargs.get("tool_calls")
    if isinstance(native, list):
        items = tuple(item for item in native if isinstance(item, dict))
        if items:
            return ToolCallRequests(ToolCallSource.PROVIDER_NATIVE, items)

    normalized = tuple(item for item in turn.tool_calls if item.get("name") != "")
    if normalized:
        return ToolCallRequests(ToolCallSource.NORMALIZED, normalized)

    if isinstance(turn.content, list):
        blocks = tuple(block for block in turn.content if block.get("type") == "tool_use")
        if blocks:
            return ToolCallRequests(ToolCallSource.CONTENT_BLOCKS, blocks)

    return ToolCallRequests(ToolCallSource.NONE)


def _first_truthy(*values: Any) -> Any:
    for value in values:
        if value:
            return value
    return None


def _decode_arguments(value: Any) -> Any:
    # OpenAI 형식은 arguments를 JSON 문자열로 보내요.
    if isinstance(value, str):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value
    return value


def normalize_tool_call(
    raw: dict[str, Any],
    *,
    owner_id: str,
    index: int,
    status: ToolCallStatus,
) -> ToolCallRecord:
    function = raw.get("function")
    function = function if isinstance(function, dict) else {}

    name = _first_truthy(function.get("name"), raw.get("name"), raw.get("type"))
    args = _first_truthy(function.get("arguments"), raw.get("args"), raw.get("input"))
    call_id = raw.get("id")

    return ToolCallRecord(
        id=call_id if isinstance(call_id, str) and call_id else f"{owner_id}-tool-{index}",
        name=name if isinstance(name, str) else UNKNOWN_TOOL_NAME,
        args=_decode_arguments(args) if args is not None else {},
        status=status,
    )


def correlate(turns: Sequence[Turn], interrupt: Any = None) -> list[CorrelatedTurn]:
    """human / assistant Turn마다 레코드 하나를 만들고 tool Turn으로 호출을 완료 처리해요."""
    initial_status = ToolCallStatus.INTERRUPTED if interrupt else ToolCallStatus.PENDING
    slots: dict[str, _Slot] = {}

    for turn in turns:
        if turn.role is TurnRole.ASSISTANT:
            requests = select_tool_call_requests(turn)
            slots[turn.id] = _Slot(
                turn=turn,
                tool_calls=[
                    normalize_tool_call(raw, owner_id=turn.id, index=index, status=initial_status)
                    for index, raw in enumerate(requests.items)
                ],
            )
        elif turn.role is TurnRole.TOOL:
            if turn.tool_call_id is None:
                continue
            if not _complete_tool_call(slots, turn):
                logger.debug("orphaned_tool_result", turn_id=turn.id, tool_call_id=turn.tool_call_id)
        elif turn.role is TurnRole.HUMAN:
            slots[turn.id] = _Slot(turn=turn)

    records: list[CorrelatedTurn] = []
    previous_role: TurnRole | None = None
    for slot in slots.values():
        records.append(
            CorrelatedTurn(
                turn=slot.turn,
                tool_calls=tuple(slot.tool_calls),
                show_separator=slot.turn.role is not previous_role,
            )
        )
        previous_role = slot.turn.role
    return records


def _complete_tool_call(slots: dict[str, _Slot], tool_turn: Turn) -> bool:
    for slot in slots.values():
        for index, call in enumerate(slot.tool_calls):
            if call.id != tool_turn.tool_call_id:
                continue
            slot.tool_calls[index] = replace(
                call,
                status=ToolCallStatus.COMPLETED,
                result=text_content(tool_turn),
            )
            return True
    return False


def last_tool_call(records: Sequence[CorrelatedTurn]) -> ToolCallRecord | None:
    """가장 최근 assistant 레코드의 마지막 도구 호출이에요."""
    for record in reversed(records):
        if record.turn.role is TurnRole.ASSISTANT and record.tool_calls:
            return record.tool_calls[-1]
    return None
