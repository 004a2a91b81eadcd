"""FastAPI dependency injection for the company runtime.

Usage in route handlers::

    @router.get("/things")
    async def list_things(company: Company) -> list[Thing]:
        ...

Every dependency reads ``request.app.state.runtime`` (set by the lifespan,
or directly by tests) and raises HTTP 503 while it is not available.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from virtualco.company_runtime.events import EventBus
from virtualco.company_runtime.managers.company import CompanyService
from virtualco.company_runtime.registry import RunnerRegistry
from virtualco.company_runtime.runtime import CompanyRuntime


def get_runtime(request: Request) -> CompanyRuntime:
    runtime: CompanyRuntime | None = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Company runtime is not initialised.",
        )
    return runtime


def get_company(runtime: Annotated[CompanyRuntime, Depends(get_runtime)]) -> CompanyService:
    return runtime.company


def get_registry(runtime: Annotated[CompanyRuntime, Depends(get_runtime)]) -> RunnerRegistry:
    return runtime.registry


def get_bus(runtime: Annotated[CompanyRuntime, Depends(get_runtime)]) -> EventBus:
    return runtime.bus


# -- Annotated type aliases for concise route signatures ---------------------

Company = Annotated[CompanyService, Depends(get_company)]
"""Annotated dependency: the company lifecycle service."""

Registry = Annotated[RunnerRegistry, Depends(get_registry)]
"""Annotated dependency: the in-process runner registry."""

Bus = Annotated[EventBus, Depends(get_bus)]
"""Annotated dependency: the runtime event bus."""
