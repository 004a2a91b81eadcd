"""Agent endpoints: runner status and model catalogue."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Query, status

from virtualco.company_runtime.deps import Company, Registry
from virtualco.company_runtime.gateway import get_model_backend, get_supported_models
from virtualco.company_runtime.models.api import ActiveAgentResponse
from virtualco.company_runtime.models.entities import Agent
from virtualco.company_runtime.registry import AgentNotFoundError

router = APIRouter(prefix="/agents", tags=["agents"])


@router.get("/active", response_model=list[ActiveAgentResponse])
async def list_active_agents(
    registry: Registry,
    workspace_id: str | None = Query(None, description="Only runners of this workspace."),
) -> list[dict[str, Any]]:
    """Agents that currently have a runner in this process."""
    return registry.active_agents(workspace_id)


@router.get("/models")
async def list_models() -> list[dict[str, str]]:
    """Known model ids and the backend each one routes to."""
    return [{"model": m, "backend": get_model_backend(m)} for m in get_supported_models()]


@router.get("/{agent_id}/get", response_model=Agent)
async def get_agent(agent_id: str, company: Company) -> Agent:
    """Get a single agent, including its last stored transcript."""
    try:
        return company.get_agent(agent_id)
    except AgentNotFoundError:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=f"Agent '{agent_id}' not found.") from None
