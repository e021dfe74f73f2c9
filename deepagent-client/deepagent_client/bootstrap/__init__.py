from __future__ import annotations

from deepagent_client.bootstrap.container import RuntimeComponents, build_runtime_components

__all__ = [
    "RuntimeComponents",
    "build_runtime_components",
]
