from __future__ import annotations

import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

STREAM_MODES = ["values", "updates"]


class RunRequest(BaseModel):
    assistant_id: str = Field(min_length=1)
    input: dict[str, Any] | None = None
    config: dict[str, Any] = Field(default_factory=dict)
    command: dict[str, Any] | None = None
    interrupt_before: list[str] | None = None
    interrupt_after: list[str] | None = None
    checkpoint: dict[str, Any] | None = None
    stream_mode: list[str] = Field(default_factory=lambda: list(STREAM_MODES))

    def is_command(self) -> bool:
        return self.command is not None

    def to_payload(self) -> dict[str, Any]:
        # 최상위 None만 빼요. command 안의 `update: None`은 그대로 보내야 해요.
        return {key: value for key, value in self.model_dump().items() if value is not None}


@dataclass(slots=True, frozen=True)
class ArtifactFile:
    filename: str
    content: bytes
    content_type: str

    @classmethod
    def from_path(cls, path: str | Path) -> "ArtifactFile":
        file_path = Path(path)
        guessed, _ = mimetypes.guess_type(file_path.name)
        return cls(
            filename=file_path.name,
            content=file_path.read_bytes(),
            content_type=guessed or "application/octet-stream",
        )
