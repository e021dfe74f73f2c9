"""런타임 메시지를 불변 Turn으로 변환하고, 보낼 human Turn을 만들어요.

런타임은 `human` / `ai` / `tool` 타입을 쓰지만 내부에서는 `TurnRole`로 통일해요.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from libs.contracts.models import UploadedArtifact


class TurnRole(str, Enum):
    HUMAN = "human"
    ASSISTANT = "assistant"
    TOOL = "tool"
    SYSTEM = "system"


_WIRE_ROLES: dict[str, TurnRole] = {
    "human": TurnRole.HUMAN,
    "user": TurnRole.HUMAN,
    "ai": TurnRole.ASSISTANT,
    "assistant": TurnRole.ASSISTANT,
    "AIMessageChunk": TurnRole.ASSISTANT,
    "tool": TurnRole.TOOL,
    "system": TurnRole.SYSTEM,
}

_ROLE_TO_WIRE: dict[TurnRole, str] = {
    TurnRole.HUMAN: "human",
    TurnRole.ASSISTANT: "ai",
    TurnRole.TOOL: "tool",
    TurnRole.SYSTEM: "system",
}


@dataclass(slots=True, frozen=True)
class Turn:
    id: str
    role: TurnRole
    content: str | list[dict[str, Any]]
    additional_kwargs: dict[str, Any] = field(default_factory=dict)
    tool_calls: list[dict[str, Any]] = field(default_factory=list)
    tool_call_id: str | None = None
    name: str | None = None

    def to_wire(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "type": _ROLE_TO_WIRE[self.role],
            "content": self.content,
        }
        if self.additional_kwargs:
            payload["additional_kwargs"] = self.additional_kwargs
        if self.tool_calls:
            payload["tool_calls"] = self.tool_calls
        if self.tool_call_id is not None:
            payload["tool_call_id"] = self.tool_call_id
        if self.name is not None:
            payload["name"] = self.name
        return payload


def parse_turn(raw: Mapping[str, Any], *, index: int) -> Turn | None:
    """런타임 메시지 하나를 Turn으로 바꿔요. 알 수 없는 타입이면 None이에요."""
    type_value = raw.get("type") or raw.get("role")
    role = _WIRE_ROLES.get(type_value) if isinstance(type_value, str) else None
    if role is None:
        return None

    id_value = raw.get("id")
    turn_id = id_value if isinstance(id_value, str) and id_value else f"turn-{index}"

    content_value = raw.get("content")
    if isinstance(content_value, list):
        content: str | list[dict[str, Any]] = [
            block if isinstance(block, dict) else {"type": "text", "text": str(block)}
            for block in content_value
        ]
    elif isinstance(content_value, str):
        content = content_value
    else:
        content = ""

    kwargs_value = raw.get("additional_kwargs")
    tool_calls_value = raw.get("tool_calls")
    tool_call_id_value = raw.get("tool_call_id")
    name_value = raw.get("name")
    return Turn(
        id=turn_id,
        role=role,
        content=content,
        additional_kwargs=dict(kwargs_value) if isinstance(kwargs_value, Mapping) else {},
        tool_calls=[item for item in tool_calls_value if isinstance(item, dict)]
        if isinstance(tool_calls_value, list)
        else [],
        tool_call_id=tool_call_id_value if isinstance(tool_call_id_value, str) and tool_call_id_value else None,
        name=name_value if isinstance(name_value, str) else None,
    )


def parse_turns(raw_messages: object) -> list[Turn]:
    if not isinstance(raw_messages, list):
        return []
    turns: list[Turn] = []
    for index, raw in enumerate(raw_messages):
        if not isinstance(raw, Mapping):
            continue
        turn = parse_turn(raw, index=index)
        if turn is not None:
            turns.append(turn)
    return turns


def text_content(turn: Turn) -> str:
    """Turn 본문에서 텍스트만 뽑아요. 이미지 같은 비텍스트 파트는 건너뛰어요."""
    if isinstance(turn.content, str):
        return turn.content
    parts: list[str] = []
    for block in turn.content:
        if block.get("type") == "text" and isinstance(block.get("text"), str):
            parts.append(block["text"])
    return "".join(parts)


def build_human_turn(
    text: str,
    artifacts: Sequence[UploadedArtifact] = (),
    *,
    turn_id: str | None = None,
) -> Turn:
    """보낼 human Turn을 만들어요.

    첨부가 없으면 순수 텍스트, 있으면 텍스트 파트와 이미지 참조 파트를 섞은 본문이에요.
    첨부 메타데이터(`doc_id`, `storage_path`)는 `additional_kwargs.uploaded_images`에 실어요.
    """
    new_id = turn_id or str(uuid.uuid4())
    if not artifacts:
        return Turn(id=new_id, role=TurnRole.HUMAN, content=text)

    parts: list[dict[str, Any]] = []
    if text.strip():
        parts.append({"type": "text", "text": text})
    for artifact in artifacts:
        parts.append({"type": "image_url", "image_url": {"url": artifact.storage_url}})

    return Turn(
        id=new_id,
        role=TurnRole.HUMAN,
        content=parts,
        additional_kwargs={
            "uploaded_images": [
                {"doc_id": artifact.doc_id, "storage_path": artifact.storage_path}
                for artifact in artifacts
            ]
        },
    )
