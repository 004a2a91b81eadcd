"""Composition root.

``CompanyRuntime`` builds the event bus, gateway, registry and company
service around an already-open ``CompanyStore``.  The FastAPI lifespan and
the tests each create their own instance; nothing here is a module global.
"""

from __future__ import annotations

from loguru import logger

from virtualco.company_runtime.context import LLMClient, RuntimeContext
from virtualco.company_runtime.events import EventBus
from virtualco.company_runtime.execution.prompt import PromptWriter, write_role_prompts
from virtualco.company_runtime.gateway import ClaudeCodeBackend, LLMGateway, SettingsProfileProvider
from virtualco.company_runtime.managers.company import CompanyService
from virtualco.company_runtime.registry import RunnerRegistry
from virtualco.company_runtime.settings import VirtualCoSettings
from virtualco.company_runtime.store.base import SnapshotBackend
from virtualco.company_runtime.store.company import CompanyStore
from virtualco.company_runtime.store.local import LocalSnapshotBackend
from virtualco.company_runtime.store.memory import MemorySnapshotBackend


def create_snapshot_backend(settings: VirtualCoSettings) -> SnapshotBackend:
    """Create the snapshot backend selected by ``state_store``."""
    if settings.state_store == "memory":
        return MemorySnapshotBackend()
    if settings.state_store == "s3":
        from virtualco.company_runtime.store.s3 import S3SnapshotBackend

        if not settings.s3_bucket:
            msg = "VIRTUALCO_S3_BUCKET is required when VIRTUALCO_STATE_STORE=s3"
            raise ValueError(msg)
        return S3SnapshotBackend(
            bucket=settings.s3_bucket,
            endpoint_url=settings.s3_endpoint,
            access_key=settings.s3_access_key,
            secret_key=settings.s3_secret_key.get_secret_value() if settings.s3_secret_key else None,
            prefix=settings.data_prefix,
            region=settings.s3_region,
            path_style=settings.s3_path_style,
        )
    return LocalSnapshotBackend(settings.data_root, prefix=settings.data_prefix)


def create_gateway(settings: VirtualCoSettings) -> LLMGateway:
    return LLMGateway(
        SettingsProfileProvider(settings),
        timeout=settings.llm_timeout,
        claude_code=ClaudeCodeBackend(command=settings.claude_command, timeout=settings.cli_timeout),
    )


class CompanyRuntime:
    def __init__(
        self,
        settings: VirtualCoSettings,
        store: CompanyStore,
        *,
        llm: LLMClient | None = None,
        bus: EventBus | None = None,
        prompt_writer: PromptWriter = write_role_prompts,
    ) -> None:
        self.settings = settings
        self.store = store
        self.bus = bus or EventBus()
        self.llm = llm or create_gateway(settings)
        self.context = RuntimeContext(store=store, bus=self.bus, llm=self.llm, settings=settings)
        self.registry = RunnerRegistry(self.context)
        self.company = CompanyService(self.context, self.registry, prompt_writer=prompt_writer)

    async def shutdown(self, timeout: float | None = None) -> None:
        """Stop every runner, wait for in-flight cycles, then release the gateway."""
        timeout = self.settings.graceful_shutdown_timeout if timeout is None else timeout
        self.registry.begin_shutdown()
        stopped = self.registry.stop_all()
        if stopped:
            logger.info("Waiting for {} runners to finish (timeout={}s)...", stopped, timeout)
        if not await self.registry.wait_until_drained(timeout=timeout):
            await self.registry.cancel_all()

        if isinstance(self.llm, LLMGateway):
            await self.llm.aclose()
