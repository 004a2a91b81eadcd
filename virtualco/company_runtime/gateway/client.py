"""LLM gateway: one normalized call surface over every backend.

Protocol fallback
-----------------
Custom profile URLs (proxies, OneAPI-style aggregators) often speak a
different wire convention than the model name suggests.  When a call to a
profile URL fails with an error *response* (not a transport failure) other
than 401, the gateway retries once with the other network convention.  The
convention that succeeds is remembered per base URL in ``ProtocolCache`` and
tried first on later calls.
"""

from __future__ import annotations

import os

import httpx
from loguru import logger

from virtualco.company_runtime.gateway import anthropic, openai
from virtualco.company_runtime.gateway.backends import (
    BACKEND_CONFIGS,
    NETWORK_BACKENDS,
    get_model_backend,
    other_network_backend,
)
from virtualco.company_runtime.gateway.claude_code import ClaudeCodeBackend
from virtualco.company_runtime.gateway.errors import GatewayConfigError, GatewayHTTPError
from virtualco.company_runtime.gateway.profile import Profile, ProfileProvider, StaticProfileProvider
from virtualco.company_runtime.models.enums import Backend
from virtualco.company_runtime.models.llm import DeltaCallback, LLMRequest, LLMResponse


class ProtocolCache:
    """Base URL -> the network convention that last succeeded against it."""

    def __init__(self) -> None:
        self._by_url: dict[str, Backend] = {}

    def get(self, base_url: str) -> Backend | None:
        return self._by_url.get(base_url)

    def remember(self, base_url: str, backend: Backend) -> None:
        self._by_url[base_url] = backend

    def __len__(self) -> int:
        return len(self._by_url)


class LLMGateway:
    """Routes ``LLMRequest`` objects to the backend their model maps to.

    The underlying ``httpx.AsyncClient`` is created lazily and shared by
    every network backend; close it with ``aclose()``.
    """

    def __init__(
        self,
        profiles: ProfileProvider | None = None,
        *,
        timeout: float = 120.0,
        claude_code: ClaudeCodeBackend | None = None,
        http_client: httpx.AsyncClient | None = None,
        protocol_cache: ProtocolCache | None = None,
    ) -> None:
        self._profiles = profiles or StaticProfileProvider()
        self._timeout = timeout
        self._claude_code = claude_code or ClaudeCodeBackend()
        self._client = http_client
        self._owns_client = http_client is None
        self.protocol_cache = protocol_cache or ProtocolCache()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self._timeout), follow_redirects=True)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    # -- Public API ------------------------------------------------------------

    async def call(self, request: LLMRequest, on_delta: DeltaCallback | None = None) -> LLMResponse:
        profile = self._profiles.get_active_profile()
        profile_url = profile.url if profile else None

        target = get_model_backend(request.model)
        if profile_url and target in NETWORK_BACKENDS:
            cached = self.protocol_cache.get(profile_url)
            if cached is not None and cached != target:
                logger.debug("Using cached {} convention for {}", cached, profile_url)
                target = cached

        try:
            response = await self._execute(target, request, profile, on_delta)
        except GatewayHTTPError as e:
            retry = other_network_backend(target) if profile_url and not e.is_auth_error else None
            if retry is None:
                raise
            logger.warning("[Auto-Switch] {} convention failed ({}), trying {}", target, e.status_code, retry)
            response = await self._execute(retry, request, profile, on_delta)
            logger.info("[Auto-Switch] Success! Switching protocol for {} to {}", profile_url, retry)
            self.protocol_cache.remember(profile_url, retry)
            return response

        if profile_url and target in NETWORK_BACKENDS:
            self.protocol_cache.remember(profile_url, target)
        return response

    def is_model_available(self, model: str) -> bool:
        """Whether credentials exist for the backend *model* routes to."""
        backend = get_model_backend(model)
        if backend == Backend.CLAUDE_CODE:
            return True
        return self._resolve_api_key(backend, self._profiles.get_active_profile()) is not None

    # -- Dispatch --------------------------------------------------------------

    async def _execute(
        self,
        backend: Backend,
        request: LLMRequest,
        profile: Profile | None,
        on_delta: DeltaCallback | None,
    ) -> LLMResponse:
        if backend == Backend.CLAUDE_CODE:
            return await self._claude_code.call(request)

        config = BACKEND_CONFIGS.get(backend)
        if config is None:
            msg = f"Unsupported model backend: {backend}"
            raise GatewayConfigError(msg)

        api_key = self._resolve_api_key(backend, profile)
        if api_key is None:
            msg = f"{backend} API key not configured. Add a profile or set {config.api_key_env}"
            raise GatewayConfigError(msg)

        client = self._ensure_client()
        custom_url = profile.url if (profile and profile.url and config.uses_profile) else None
        logger.debug("LLM call: model={} backend={} stream={}", request.model, backend, request.stream)

        match backend:
            case Backend.ANTHROPIC:
                return await anthropic.call(
                    client,
                    request,
                    base_url=custom_url or config.base_url,
                    api_key=api_key,
                    extra_headers=config.headers,
                    timeout=self._timeout,
                    on_delta=on_delta,
                )
            case Backend.OPENAI:
                return await openai.call(
                    client,
                    request,
                    base_url=openai.ensure_v1(custom_url) if custom_url else config.base_url,
                    api_key=api_key,
                    extra_headers=config.headers,
                    timeout=self._timeout,
                    on_delta=on_delta,
                )
            case _:
                # GLM and OpenRouter: chat completions against their fixed URL, model id untouched.
                return await openai.call(
                    client,
                    request,
                    base_url=config.base_url,
                    api_key=api_key,
                    extra_headers=config.headers,
                    timeout=self._timeout,
                    on_delta=on_delta,
                    model=request.model,
                )

    @staticmethod
    def _resolve_api_key(backend: Backend, profile: Profile | None) -> str | None:
        config = BACKEND_CONFIGS.get(backend)
        if config is None:
            return None
        if config.uses_profile and profile and profile.api_key:
            return profile.api_key
        return os.environ.get(config.api_key_env) or None
