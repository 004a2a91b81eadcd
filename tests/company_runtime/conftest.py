"""Shared fixtures for company-runtime HTTP tests."""

from __future__ import annotations

from collections.abc import AsyncIterator

import pytest
from httpx import ASGITransport, AsyncClient

from virtualco.company_runtime.app import app
from virtualco.company_runtime.runtime import CompanyRuntime


@pytest.fixture
async def runtime(settings, store, bus, llm) -> AsyncIterator[CompanyRuntime]:
    runtime = CompanyRuntime(settings, store, llm=llm, bus=bus)
    yield runtime
    await runtime.shutdown(timeout=2.0)


@pytest.fixture
async def client(runtime: CompanyRuntime) -> AsyncIterator[AsyncClient]:
    """Async HTTP client wired to the app with a scripted-LLM runtime.

    The app lifespan does NOT run under ``ASGITransport``, so the runtime is
    set on ``app.state`` directly.
    """
    app.state.runtime = runtime

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.state.runtime = None
