from __future__ import annotations

import argparse
import asyncio
import json
import sys
from collections.abc import Sequence

from deepagent_client.app.models import ArtifactFile
from deepagent_client.app.settings import settings
from deepagent_client.app.turns import text_content
from deepagent_client.bootstrap import build_runtime_components
from deepagent_client.modules.session.context import SessionContext
from deepagent_client.modules.session.service import SessionView
from libs.common.logging import configure_logging


def _render(view: SessionView) -> str:
    lines: list[str] = []
    for record in view.records:
        if record.show_separator:
            lines.append(f"[{record.turn.role.value}]")
        body = text_content(record.turn)
        if body:
            lines.append(body)
        for call in record.tool_calls:
            suffix = f" -> {call.result}" if call.result is not None else ""
            lines.append(f"  * {call.name} ({call.status.value}){suffix}")
    for name in view.action_requests:
        lines.append(f"! 승인 대기: {name}")
    if view.thread_id:
        lines.append(f"thread: {view.thread_id}")
    return "\n".join(lines)


def _watch_context(context: SessionContext, notices: list[str]) -> None:
    """스레드와 에이전트가 바뀔 때마다 안내 문구를 쌓아요."""
    context.on_thread_change(
        lambda thread_id: notices.append(f"스레드: {thread_id}" if thread_id else "스레드: (새 대화)")
    )
    context.on_agent_change(
        lambda agent: notices.append(
            f"에이전트: {agent.name or agent.graph_id}" + (" (확인 안 됨)" if agent.is_placeholder else "")
        )
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="deepagent-client")
    parser.add_argument("message", nargs="?", default="", help="보낼 메시지예요.")
    parser.add_argument("--thread", default=None, help="이어서 대화할 스레드 id예요.")
    parser.add_argument("--agent", default=None, help="에이전트 id 또는 그래프 이름이에요.")
    parser.add_argument("--image", action="append", default=[], help="첨부할 이미지 경로예요. 여러 번 쓸 수 있어요.")
    parser.add_argument("--resume", default=None, help="인터럽트에 돌려줄 JSON 값이에요.")
    return parser


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = _build_parser()
    args = parser.parse_args(argv)
    args.resume_value = None
    if args.resume is not None:
        try:
            args.resume_value = json.loads(args.resume)
        except json.JSONDecodeError as exc:
            parser.error(f"--resume 값이 올바른 JSON이 아니에요: {exc.msg} (위치 {exc.pos})")
    return args


async def _run(args: argparse.Namespace) -> int:
    alerts: list[str] = []
    notices: list[str] = []
    components = build_runtime_components(settings, thread_id=args.thread, on_alert=alerts.append)
    session = components.session
    _watch_context(components.context, notices)
    try:
        if args.agent:
            components.context.select_agent(args.agent)
        await session.start()

        if args.resume is not None:
            await session.resume(args.resume_value)
            sent = True
        else:
            files = [ArtifactFile.from_path(path) for path in args.image]
            sent = await session.submit(args.message, files)
        await session.wait_idle()

        for line in [*notices, *alerts]:
            print(line, file=sys.stderr)
        print(_render(session.view()))
        return 0 if sent else 1
    finally:
        await components.aclose()


def main() -> None:
    args = _parse_args()
    configure_logging(settings.log_level, json_output=settings.log_json, service_name=settings.service_name)
    raise SystemExit(asyncio.run(_run(args)))
