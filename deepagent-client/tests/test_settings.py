from __future__ import annotations

import pytest
from deepagent_client.app.settings import Settings


def test_csv_env_values_are_split_into_lists(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DAC_AVAILABLE_AGENTS", "research, chat ,, coder")
    monkeypatch.setenv("DAC_DEFAULT_SELECTED_TOOLS", "think_tool")
    monkeypatch.setenv("DAC_AUTH_TOKEN", "token")

    loaded = Settings(_env_file=None)

    assert loaded.available_agents == ["research", "chat", "coder"]
    assert loaded.default_selected_tools == ["think_tool"]


def test_defaults_point_at_local_runtime(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("DAC_DEPLOYMENT_URL", raising=False)
    monkeypatch.delenv("DAC_ASSISTANT_ID", raising=False)

    loaded = Settings(_env_file=None)

    assert loaded.deployment_url == "http://localhost:2024"
    assert loaded.assistant_id == "research"
    assert loaded.artifact_metadata_key == "uploaded_images"
    assert loaded.upload_path == "/api/v1/upload-image"


def test_list_values_pass_through_unchanged() -> None:
    loaded = Settings(_env_file=None, available_agents=["a", "b"], auth_token="token")

    assert loaded.available_agents == ["a", "b"]
