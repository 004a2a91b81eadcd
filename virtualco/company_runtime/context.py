"""Shared runtime context.

One ``RuntimeContext`` is built by the composition root and handed to the
registry, every runner and every tool executor.  Nothing in it is global:
tests build a fresh context per case.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from virtualco.company_runtime.events import EventBus
    from virtualco.company_runtime.models.llm import DeltaCallback, LLMRequest, LLMResponse
    from virtualco.company_runtime.settings import VirtualCoSettings
    from virtualco.company_runtime.store.company import CompanyStore


class LLMClient(Protocol):
    """What runners need from the gateway (``LLMGateway`` or a test stub)."""

    async def call(self, request: LLMRequest, on_delta: DeltaCallback | None = None) -> LLMResponse: ...


@dataclass
class RuntimeContext:
    store: CompanyStore
    bus: EventBus
    llm: LLMClient
    settings: VirtualCoSettings
