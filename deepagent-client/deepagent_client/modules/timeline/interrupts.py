from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True, frozen=True)
class ActionRequest:
    name: str
    args: dict[str, Any] = field(default_factory=dict)
    description: str | None = None


@dataclass(slots=True, frozen=True)
class ReviewConfig:
    action_name: str
    allowed_decisions: tuple[str, ...] = ()
    args_schema: dict[str, Any] | None = None


@dataclass(slots=True, frozen=True)
class InterruptLookup:
    action_requests: dict[str, ActionRequest] = field(default_factory=dict)
    review_configs: dict[str, ReviewConfig] = field(default_factory=dict)


def _unwrap(interrupt: Any) -> Mapping[str, Any] | None:
    # 런타임은 인터럽트를 목록이나 {"value": ...} 래퍼로 보내기도 해요.
    if isinstance(interrupt, list):
        interrupt = interrupt[0] if interrupt else None
    if isinstance(interrupt, Mapping) and isinstance(interrupt.get("value"), Mapping):
        return interrupt["value"]
    if isinstance(interrupt, Mapping):
        return interrupt
    return None


def resolve_interrupt(interrupt: Any) -> InterruptLookup:
    """인터럽트 값을 이름별 조회 맵 두 개로 풀어요. 없거나 형식이 틀리면 빈 맵이에요."""
    value = _unwrap(interrupt)
    if value is None:
        return InterruptLookup()

    action_requests: dict[str, ActionRequest] = {}
    raw_requests = value.get("action_requests")
    if isinstance(raw_requests, list):
        for item in raw_requests:
            if not isinstance(item, Mapping):
                continue
            name = item.get("name")
            if not isinstance(name, str) or not name:
                continue
            args = item.get("args")
            description = item.get("description")
            action_requests[name] = ActionRequest(
                name=name,
                args=dict(args) if isinstance(args, Mapping) else {},
                description=description if isinstance(description, str) else None,
            )

    review_configs: dict[str, ReviewConfig] = {}
    raw_configs = value.get("review_configs")
    if isinstance(raw_configs, list):
        for item in raw_configs:
            if not isinstance(item, Mapping):
                continue
            action_name = item.get("action_name", item.get("actionName"))
            if not isinstance(action_name, str) or not action_name:
                continue
            decisions = item.get("allowed_decisions")
            schema = item.get("args_schema")
            review_configs[action_name] = ReviewConfig(
                action_name=action_name,
                allowed_decisions=tuple(d for d in decisions if isinstance(d, str))
                if isinstance(decisions, list)
                else (),
                args_schema=dict(schema) if isinstance(schema, Mapping) else None,
            )

    return InterruptLookup(action_requests=action_requests, review_configs=review_configs)
