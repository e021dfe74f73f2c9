from __future__ import annotations

from deepagent_client.modules.timeline.correlator import (
    CorrelatedTurn,
    ToolCallRecord,
    ToolCallSource,
    ToolCallStatus,
    correlate,
    last_tool_call,
    select_tool_call_requests,
)
from deepagent_client.modules.timeline.interrupts import (
    ActionRequest,
    InterruptLookup,
    ReviewConfig,
    resolve_interrupt,
)

__all__ = [
    "ActionRequest",
    "CorrelatedTurn",
    "InterruptLookup",
    "ReviewConfig",
    "ToolCallRecord",
    "ToolCallSource",
    "ToolCallStatus",
    "correlate",
    "last_tool_call",
    "resolve_interrupt",
    "select_tool_call_requests",
]
