"""
Provider kinds and the single capability table every component reads from.

Any behaviour that differs per provider (base URL, auth header, streaming
support) belongs in PROVIDER_CAPABILITIES rather than in scattered
if/else branches.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Mapping


class ProviderKind(str, Enum):
    IFLOW = "iflow"
    ANTIGRAVITY = "antigravity"
    QWEN_CODE = "qwen_code"
    CODEX = "codex"
    COPILOT = "copilot"
    GEMINI_CLI = "gemini_cli"
    KIRO = "kiro"
    NVIDIA_NIM = "nvidia_nim"
    OLLAMA_CLOUD = "ollama_cloud"
    OPENROUTER = "openrouter"

    @classmethod
    def parse(cls, value: str) -> "ProviderKind | None":
        normalized = value.strip().lower().replace("-", "_")
        try:
            return cls(normalized)
        except ValueError:
            return None


@dataclass(frozen=True)
class ProviderCapability:
    kind: ProviderKind
    display_name: str
    base_url: str
    chat_path: str = "/chat/completions"
    auth_header: str = "Authorization"
    auth_scheme: str | None = "Bearer"
    supports_streaming: bool = True
    extra_headers: Mapping[str, str] = field(default_factory=dict)

    @property
    def chat_url(self) -> str:
        return self.base_url.rstrip("/") + self.chat_path


PROVIDER_CAPABILITIES: dict[ProviderKind, ProviderCapability] = {
    ProviderKind.IFLOW: ProviderCapability(
        kind=ProviderKind.IFLOW,
        display_name="iFlow",
        base_url="https://apis.iflow.cn/v1",
    ),
    ProviderKind.ANTIGRAVITY: ProviderCapability(
        kind=ProviderKind.ANTIGRAVITY,
        display_name="Antigravity",
        base_url="https://cloudcode-pa.googleapis.com/v1",
    ),
    ProviderKind.QWEN_CODE: ProviderCapability(
        kind=ProviderKind.QWEN_CODE,
        display_name="Qwen Code",
        base_url="https://portal.qwen.ai/v1",
    ),
    ProviderKind.CODEX: ProviderCapability(
        kind=ProviderKind.CODEX,
        display_name="Codex",
        base_url="https://chatgpt.com/backend-api/codex",
    ),
    ProviderKind.COPILOT: ProviderCapability(
        kind=ProviderKind.COPILOT,
        display_name="GitHub Copilot",
        base_url="https://api.githubcopilot.com",
        extra_headers={"Copilot-Integration-Id": "vscode-chat"},
    ),
    ProviderKind.GEMINI_CLI: ProviderCapability(
        kind=ProviderKind.GEMINI_CLI,
        display_name="Gemini CLI",
        base_url="https://cloudcode-pa.googleapis.com/v1",
    ),
    ProviderKind.KIRO: ProviderCapability(
        kind=ProviderKind.KIRO,
        display_name="Kiro",
        base_url="https://q.us-east-1.amazonaws.com",
        supports_streaming=False,
    ),
    ProviderKind.NVIDIA_NIM: ProviderCapability(
        kind=ProviderKind.NVIDIA_NIM,
        display_name="NVIDIA NIM",
        base_url="https://integrate.api.nvidia.com/v1",
    ),
    ProviderKind.OLLAMA_CLOUD: ProviderCapability(
        kind=ProviderKind.OLLAMA_CLOUD,
        display_name="Ollama Cloud",
        base_url="https://ollama.com/v1",
    ),
    ProviderKind.OPENROUTER: ProviderCapability(
        kind=ProviderKind.OPENROUTER,
        display_name="OpenRouter",
        base_url="https://openrouter.ai/api/v1",
    ),
}

if set(PROVIDER_CAPABILITIES) != set(ProviderKind):  # pragma: no cover
    raise RuntimeError("PROVIDER_CAPABILITIES must cover every ProviderKind")


def get_capability(
    kind: ProviderKind, *, base_url_overrides: Mapping[str, str] | None = None
) -> ProviderCapability:
    capability = PROVIDER_CAPABILITIES[kind]
    if base_url_overrides and base_url_overrides.get(kind.value):
        return replace(capability, base_url=base_url_overrides[kind.value])
    return capability


__all__ = ["PROVIDER_CAPABILITIES", "ProviderCapability", "ProviderKind", "get_capability"]
