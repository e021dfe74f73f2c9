from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from deepagent_client.app.background import BackgroundTaskGroup
from deepagent_client.app.runtime_client import RuntimeClient
from deepagent_client.app.settings import Settings
from deepagent_client.app.upload_client import UploadClient
from deepagent_client.modules.agents.resolver import AgentSelection, AssistantResolver
from deepagent_client.modules.artifacts.sync import SideChannelSync
from deepagent_client.modules.session.context import SessionContext
from deepagent_client.modules.session.service import ConversationSession, SessionView
from libs.contracts.models import RuntimeOptions


@dataclass(slots=True)
class RuntimeComponents:
    runtime_client: RuntimeClient
    upload_client: UploadClient
    background: BackgroundTaskGroup
    context: SessionContext
    resolver: AssistantResolver
    agent_selection: AgentSelection
    side_channel: SideChannelSync
    session: ConversationSession

    async def aclose(self) -> None:
        await self.session.aclose()
        await self.runtime_client.aclose()
        await self.upload_client.aclose()


def build_runtime_components(
    settings: Settings,
    *,
    thread_id: str | None = None,
    on_history_changed: Callable[[], Any] | None = None,
    on_update: Callable[[SessionView], None] | None = None,
    on_alert: Callable[[str], Any] | None = None,
) -> RuntimeComponents:
    runtime_client = RuntimeClient(
        base_url=settings.deployment_url,
        token=settings.auth_token,
        api_key=settings.langsmith_api_key,
        auth_scheme=settings.auth_scheme,
        timeout_seconds=settings.request_timeout_seconds,
        stream_timeout_seconds=settings.stream_timeout_seconds,
        retries=settings.request_retries,
    )
    upload_client = UploadClient(
        base_url=settings.deployment_url,
        upload_path=settings.upload_path,
        token=settings.auth_token,
        timeout_seconds=settings.request_timeout_seconds,
    )
    background = BackgroundTaskGroup()

    context = SessionContext(
        selected_agent_id=settings.assistant_id,
        thread_id=thread_id,
        runtime_options=RuntimeOptions(
            model_name=settings.default_model_name,
            selected_tools=list(settings.default_selected_tools),
            selected_subagents=list(settings.default_selected_subagents),
        ),
    )
    resolver = AssistantResolver(
        runtime_client,
        fallback_id=settings.assistant_id,
        search_limit=settings.assistant_search_limit,
    )
    agent_selection = AgentSelection(
        resolver=resolver,
        directory=runtime_client,
        threads=runtime_client,
        context=context,
        available_agents=settings.available_agents,
    )
    side_channel = SideChannelSync(
        threads=runtime_client,
        uploader=upload_client,
        background=background,
        patch_delay_seconds=settings.artifact_patch_delay_seconds,
        metadata_key=settings.artifact_metadata_key,
    )
    session = ConversationSession(
        runtime=runtime_client,
        context=context,
        agent_selection=agent_selection,
        side_channel=side_channel,
        background=background,
        recursion_limit=settings.recursion_limit,
        on_history_changed=on_history_changed,
        on_update=on_update,
        on_alert=on_alert,
    )

    return RuntimeComponents(
        runtime_client=runtime_client,
        upload_client=upload_client,
        background=background,
        context=context,
        resolver=resolver,
        agent_selection=agent_selection,
        side_channel=side_channel,
        session=session,
    )
