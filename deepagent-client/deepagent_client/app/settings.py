from __future__ import annotations

from typing import Annotated

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _split_csv(value: object) -> object:
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return value


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="DAC_",
        extra="ignore",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    service_name: str = "deepagent-client"
    deployment_url: str = "http://localhost:2024"
    assistant_id: str = "research"
    auth_token: str = ""
    langsmith_api_key: str = ""
    auth_scheme: str = "langsmith"
    # CSV 문자열 또는 리스트 모두 허용해요. 비어 있으면 모든 그래프 이름을 허용해요.
    available_agents: Annotated[list[str], NoDecode] = Field(default_factory=lambda: ["research", "chat"])

    request_timeout_seconds: float = 10.0
    stream_timeout_seconds: float = 300.0
    request_retries: int = 2
    assistant_search_limit: int = 100
    recursion_limit: int = 100

    artifact_patch_delay_seconds: float = 1.0
    artifact_metadata_key: str = "uploaded_images"
    upload_path: str = "/api/v1/upload-image"

    default_model_name: str = "openai:gpt-4o"
    default_selected_tools: Annotated[list[str], NoDecode] = Field(default_factory=lambda: ["tavily_search", "think_tool"])
    default_selected_subagents: Annotated[list[str], NoDecode] = Field(default_factory=lambda: ["research-agent"])

    log_level: str = "INFO"
    log_json: bool = False

    @field_validator(
        "available_agents",
        "default_selected_tools",
        "default_selected_subagents",
        mode="before",
    )
    @classmethod
    def _parse_csv_lists(cls, value: object) -> object:
        """환경변수에서 CSV 문자열로 들어온 경우 리스트로 변환해요."""
        return _split_csv(value)

    @model_validator(mode="after")
    def _warn_missing_token(self) -> "Settings":
        """인증 토큰 없이 원격 런타임에 붙으면 경고를 남겨요."""
        import logging
        _log = logging.getLogger("deepagent_client.settings")
        if not self.auth_token:
            _log.warning("DAC_AUTH_TOKEN이 비어 있어요. 업로드와 런타임 호출이 거절될 수 있어요.")
        return self


settings = Settings()
