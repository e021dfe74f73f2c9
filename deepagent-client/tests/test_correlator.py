from __future__ import annotations

from conftest import ai, human, tool
from deepagent_client.app.turns import TurnRole, parse_turns
from deepagent_client.modules.timeline.correlator import (
    ToolCallSource,
    ToolCallStatus,
    correlate,
    last_tool_call,
    select_tool_call_requests,
)
from structlog.testing import capture_logs


def test_correlate_single_tool_call_completed_by_tool_turn() -> None:
    turns = parse_turns(
        [
            human("h1", "서울 날씨 알려줘"),
            ai("a1", tool_calls=[{"id": "c1", "name": "search", "args": {"q": "서울 날씨"}}]),
            tool("t1", "c1", "맑음"),
            ai("a2", "서울은 맑아요."),
        ]
    )

    records = correlate(turns)

    assert [record.turn.id for record in records] == ["h1", "a1", "a2"]
    call = records[1].tool_calls[0]
    assert call.id == "c1"
    assert call.name == "search"
    assert call.args == {"q": "서울 날씨"}
    assert call.status is ToolCallStatus.COMPLETED
    assert call.result == "맑음"
    assert records[2].tool_calls == ()


def test_correlate_marks_unanswered_calls_pending_or_interrupted() -> None:
    turns = parse_turns([ai("a1", tool_calls=[{"id": "c1", "name": "write_file", "args": {}}])])

    assert correlate(turns)[0].tool_calls[0].status is ToolCallStatus.PENDING
    interrupted = correlate(turns, interrupt={"value": {"action_requests": []}})
    assert interrupted[0].tool_calls[0].status is ToolCallStatus.INTERRUPTED


def test_correlate_is_deterministic_for_same_input() -> None:
    raw = [
        human("h1", "안녕"),
        ai("a1", tool_calls=[{"name": "search", "args": {}}, {"name": "fetch", "args": {}}]),
        tool("t1", "a1-tool-1", "본문"),
    ]

    first = correlate(parse_turns(raw))
    second = correlate(parse_turns(raw))

    assert first == second
    assert [call.id for call in first[1].tool_calls] == ["a1-tool-0", "a1-tool-1"]
    assert first[1].tool_calls[1].status is ToolCallStatus.COMPLETED


def test_provider_native_calls_take_precedence_over_normalized_list() -> None:
    turn = parse_turns(
        [
            {
                "id": "a1",
                "type": "ai",
                "content": "",
                "additional_kwargs": {
                    "tool_calls": [
                        {
                            "id": "call_1",
                            "type": "function",
                            "function": {"name": "search", "arguments": '{"q": "파이썬"}'},
                        }
                    ]
                },
                "tool_calls": [{"id": "other", "name": "ignored", "args": {}}],
            }
        ]
    )[0]

    requests = select_tool_call_requests(turn)
    records = correlate([turn])

    assert requests.source is ToolCallSource.PROVIDER_NATIVE
    call = records[0].tool_calls[0]
    assert call.id == "call_1"
    assert call.name == "search"
    assert call.args == {"q": "파이썬"}


def test_normalized_list_filters_empty_names_before_falling_back_to_content_blocks() -> None:
    turn = parse_turns(
        [
            {
                "id": "a1",
                "type": "ai",
                "content": [
                    {"type": "text", "text": "찾아볼게요"},
                    {"type": "tool_use", "id": "toolu_1", "name": "grep", "input": {"pattern": "async def"}},
                ],
                "tool_calls": [{"id": "blank", "name": "", "args": {}}],
            }
        ]
    )[0]

    requests = select_tool_call_requests(turn)
    call = correlate([turn])[0].tool_calls[0]

    assert requests.source is ToolCallSource.CONTENT_BLOCKS
    assert call.id == "toolu_1"
    assert call.name == "grep"
    assert call.args == {"pattern": "async def"}


def test_turn_without_any_tool_call_source_has_no_calls() -> None:
    turn = parse_turns([ai("a1", "그냥 답변이에요.")])[0]

    assert select_tool_call_requests(turn).source is ToolCallSource.NONE
    assert correlate([turn])[0].tool_calls == ()


def test_missing_name_and_args_fall_back_to_defaults() -> None:
    turn = parse_turns([ai("a1", tool_calls=[{"id": "c1", "name": "x"}])])[0]
    native = parse_turns(
        [{"id": "a2", "type": "ai", "content": "", "additional_kwargs": {"tool_calls": [{"id": "c2"}]}}]
    )[0]

    assert correlate([turn])[0].tool_calls[0].args == {}
    assert correlate([native])[0].tool_calls[0].name == "unknown"


def test_orphaned_tool_result_is_dropped_and_logged() -> None:
    turns = parse_turns([human("h1", "안녕"), tool("t1", "missing", "결과")])

    with capture_logs() as logs:
        records = correlate(turns)

    assert [record.turn.id for record in records] == ["h1"]
    assert any(entry["event"] == "orphaned_tool_result" for entry in logs)


def test_separator_shown_only_when_role_changes() -> None:
    turns = parse_turns(
        [
            human("h1", "첫 질문"),
            ai("a1", "첫 답"),
            ai("a2", "이어서"),
            human("h2", "다음 질문"),
        ]
    )

    separators = [record.show_separator for record in correlate(turns)]

    assert separators == [True, True, False, True]


def test_tool_turns_do_not_break_assistant_grouping() -> None:
    turns = parse_turns(
        [
            ai("a1", tool_calls=[{"id": "c1", "name": "search", "args": {}}]),
            tool("t1", "c1", "결과"),
            ai("a2", "정리했어요."),
        ]
    )

    records = correlate(turns)

    assert [record.turn.role for record in records] == [TurnRole.ASSISTANT, TurnRole.ASSISTANT]
    assert records[1].show_separator is False


def test_last_tool_call_returns_latest_assistant_call() -> None:
    records = correlate(
        parse_turns(
            [
                ai("a1", tool_calls=[{"id": "c1", "name": "search", "args": {}}]),
                tool("t1", "c1", "결과"),
                ai("a2", tool_calls=[{"id": "c2", "name": "task", "args": {"description": "조사"}}]),
                ai("a3", "정리 중이에요."),
            ]
        )
    )

    call = last_tool_call(records)

    assert call is not None
    assert call.name == "task"
    assert last_tool_call(correlate(parse_turns([human("h1", "안녕")]))) is None
