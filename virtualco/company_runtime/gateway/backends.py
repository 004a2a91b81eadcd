"""Model -> backend routing table and per-backend connection defaults."""

from __future__ import annotations

from dataclasses import dataclass, field

from virtualco.company_runtime.models.enums import Backend

MODEL_BACKEND_MAP: dict[str, Backend] = {
    # Anthropic
    "claude-opus-4": Backend.ANTHROPIC,
    "claude-sonnet-4": Backend.ANTHROPIC,
    "claude-opus-4-20250514": Backend.ANTHROPIC,
    "claude-sonnet-4-20250514": Backend.ANTHROPIC,
    "claude-3-5-sonnet-20241022": Backend.ANTHROPIC,
    "claude-3-opus-20240229": Backend.ANTHROPIC,
    # Claude Code CLI
    "claude-code": Backend.CLAUDE_CODE,
    "cc": Backend.CLAUDE_CODE,
    # OpenAI
    "codex": Backend.OPENAI,
    "gpt-4": Backend.OPENAI,
    "gpt-4-turbo": Backend.OPENAI,
    "gpt-4o": Backend.OPENAI,
    "o1": Backend.OPENAI,
    "o1-mini": Backend.OPENAI,
    # Claude models served through OpenAI-compatible gateways
    "claude-opus-4-5-20251101": Backend.OPENAI,
    "claude-4-5-opus-thinking": Backend.OPENAI,
    # Zhipu GLM
    "glm-4": Backend.GLM,
    "glm-4.7": Backend.GLM,
    # OpenRouter
    "openrouter": Backend.OPENROUTER,
}

_MODEL_ALIASES: dict[str, str] = {
    "claude-opus-4": "claude-opus-4-20250514",
    "claude-sonnet-4": "claude-sonnet-4-20250514",
    "codex": "gpt-4-turbo",
    "gpt-4": "gpt-4-turbo",
}

# Backends that talk to the active profile URL and may stand in for each other.
NETWORK_BACKENDS: frozenset[Backend] = frozenset({Backend.ANTHROPIC, Backend.OPENAI})


@dataclass(frozen=True)
class BackendConfig:
    base_url: str
    api_key_env: str
    headers: dict[str, str] = field(default_factory=dict)
    uses_profile: bool = False
    """Whether the active profile's URL / key override the defaults."""


BACKEND_CONFIGS: dict[Backend, BackendConfig] = {
    Backend.ANTHROPIC: BackendConfig(
        base_url="https://api.anthropic.com/v1",
        api_key_env="ANTHROPIC_API_KEY",  # noqa: S106
        headers={"anthropic-version": "2023-06-01"},
        uses_profile=True,
    ),
    Backend.OPENAI: BackendConfig(
        base_url="https://api.openai.com/v1",
        api_key_env="OPENAI_API_KEY",  # noqa: S106
        uses_profile=True,
    ),
    Backend.OPENROUTER: BackendConfig(
        base_url="https://openrouter.ai/api/v1",
        api_key_env="OPENROUTER_API_KEY",  # noqa: S106
        headers={"HTTP-Referer": "https://github.com/virtualco/virtualco", "X-Title": "VirtualCo Runtime"},
    ),
    Backend.GLM: BackendConfig(
        base_url="https://open.bigmodel.cn/api/paas/v4",
        api_key_env="GLM_API_KEY",  # noqa: S106
    ),
}


def get_model_backend(model: str) -> Backend:
    """Backend for *model*; unknown ids default to Anthropic."""
    return MODEL_BACKEND_MAP.get(model, Backend.ANTHROPIC)


def normalize_model(model: str) -> str:
    """Expand short aliases into the concrete model ids the APIs accept."""
    return _MODEL_ALIASES.get(model, model)


def get_supported_models() -> list[str]:
    return list(MODEL_BACKEND_MAP)


def other_network_backend(backend: Backend) -> Backend | None:
    """The alternate wire convention for protocol fallback."""
    if backend == Backend.ANTHROPIC:
        return Backend.OPENAI
    if backend == Backend.OPENAI:
        return Backend.ANTHROPIC
    return None
