"""LLM gateway: backend routing, wire conventions and protocol fallback."""

from virtualco.company_runtime.gateway.backends import (
    BACKEND_CONFIGS,
    MODEL_BACKEND_MAP,
    get_model_backend,
    get_supported_models,
    normalize_model,
)
from virtualco.company_runtime.gateway.claude_code import ClaudeCodeBackend
from virtualco.company_runtime.gateway.client import LLMGateway, ProtocolCache
from virtualco.company_runtime.gateway.errors import (
    GatewayConfigError,
    GatewayConnectionError,
    GatewayError,
    GatewayHTTPError,
)
from virtualco.company_runtime.gateway.profile import (
    Profile,
    ProfileProvider,
    SettingsProfileProvider,
    StaticProfileProvider,
)

__all__ = [
    "BACKEND_CONFIGS",
    "MODEL_BACKEND_MAP",
    "ClaudeCodeBackend",
    "GatewayConfigError",
    "GatewayConnectionError",
    "GatewayError",
    "GatewayHTTPError",
    "LLMGateway",
    "Profile",
    "ProfileProvider",
    "ProtocolCache",
    "SettingsProfileProvider",
    "StaticProfileProvider",
    "get_model_backend",
    "get_supported_models",
    "normalize_model",
]
