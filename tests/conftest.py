"""Shared test fixtures.

Every test gets an isolated runtime: an in-memory snapshot backend, a fresh
event bus and a scripted LLM client.  Nothing touches the network or a real
model; the ``bash`` tool runs in a temporary directory.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable, Iterator

import pytest

from virtualco.company_runtime.context import RuntimeContext
from virtualco.company_runtime.events import EventBus
from virtualco.company_runtime.managers.company import CompanyService
from virtualco.company_runtime.models.events import CompanyEvent
from virtualco.company_runtime.models.llm import DeltaCallback, LLMRequest, LLMResponse
from virtualco.company_runtime.registry import RunnerRegistry
from virtualco.company_runtime.settings import VirtualCoSettings, _get_settings_cached
from virtualco.company_runtime.store.company import CompanyStore
from virtualco.company_runtime.store.memory import MemorySnapshotBackend

Handler = Callable[[LLMRequest], LLMResponse]


class ScriptedLLM:
    """LLM client stub: answers every request through *handler* and records it."""

    def __init__(self, handler: Handler | None = None) -> None:
        self.handler: Handler = handler or (lambda _request: LLMResponse())
        self.requests: list[LLMRequest] = []

    async def call(self, request: LLMRequest, on_delta: DeltaCallback | None = None) -> LLMResponse:
        self.requests.append(request.model_copy(deep=True))
        # Yield once so concurrent runners interleave the way a real network call would.
        await asyncio.sleep(0)
        return self.handler(request)


async def _wait_until(predicate: Callable[[], bool], timeout: float = 3.0) -> None:
    """Poll *predicate* until it holds; fail the test after *timeout* seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail("condition not reached before timeout")
        await asyncio.sleep(0.01)


@pytest.fixture(autouse=True)
def _clean_settings_cache() -> Iterator[None]:
    """Each test re-reads VIRTUALCO_* env vars."""
    _get_settings_cached.cache_clear()
    yield
    _get_settings_cached.cache_clear()


@pytest.fixture
def set_env(monkeypatch: pytest.MonkeyPatch) -> Callable[[str, str], None]:
    """Set an env var for the test and invalidate the settings cache."""

    def _set(key: str, value: str) -> None:
        monkeypatch.setenv(key, value)
        _get_settings_cached.cache_clear()

    return _set


@pytest.fixture
def settings(tmp_path) -> VirtualCoSettings:
    return VirtualCoSettings(
        _env_file=None,
        state_store="memory",
        data_root=str(tmp_path / "data"),
        flush_delay=0.01,
        bash_workdir=str(tmp_path),
        bash_timeout=5.0,
    )


@pytest.fixture
def backend() -> MemorySnapshotBackend:
    return MemorySnapshotBackend()


@pytest.fixture
def store(backend: MemorySnapshotBackend, settings: VirtualCoSettings) -> Iterator[CompanyStore]:
    store = CompanyStore(backend, flush_delay=settings.flush_delay, default_model=settings.default_model)
    yield store
    # Cancels any pending debounce timer before the loop closes.
    store.flush_now()


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def events(bus: EventBus) -> list[CompanyEvent]:
    """Every event published on the bus during the test, in order."""
    received: list[CompanyEvent] = []
    bus.subscribe(received.append)
    return received


@pytest.fixture
def llm() -> ScriptedLLM:
    return ScriptedLLM()


@pytest.fixture
def ctx(store: CompanyStore, bus: EventBus, llm: ScriptedLLM, settings: VirtualCoSettings) -> RuntimeContext:
    return RuntimeContext(store=store, bus=bus, llm=llm, settings=settings)


@pytest.fixture
async def registry(ctx: RuntimeContext) -> AsyncIterator[RunnerRegistry]:
    registry = RunnerRegistry(ctx)
    yield registry
    registry.begin_shutdown()
    registry.stop_all()
    if not await registry.wait_until_drained(timeout=2.0):
        await registry.cancel_all()


@pytest.fixture
def company(ctx: RuntimeContext, registry: RunnerRegistry) -> CompanyService:
    return CompanyService(ctx, registry)


@pytest.fixture
def wait_until() -> Callable[..., object]:
    """``await wait_until(lambda: ...)`` polls until the condition holds."""
    return _wait_until
