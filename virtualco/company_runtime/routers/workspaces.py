"""Workspace (company) endpoints (RPC-style).

Thin HTTP adapter -- delegates to ``CompanyService``.  All write operations
use POST; reads use GET.
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query, status
from fastapi.responses import PlainTextResponse

from virtualco.company_runtime.deps import Company
from virtualco.company_runtime.managers.company import (
    LaunchResult,
    OrgNode,
    WorkspaceArchivedError,
    WorkspaceNotFoundError,
    render_org_chart,
)
from virtualco.company_runtime.models.api import (
    LaunchRequest,
    ResumeResponse,
    SendMessageRequest,
    WorkspaceDetailResponse,
)
from virtualco.company_runtime.models.entities import Message, Workspace
from virtualco.company_runtime.registry import AgentNotFoundError, ShuttingDownError

router = APIRouter(prefix="/workspaces", tags=["workspaces"])


def _not_found(workspace_id: str) -> HTTPException:
    return HTTPException(status.HTTP_404_NOT_FOUND, detail=f"Workspace '{workspace_id}' not found.")


@router.get("/list", response_model=list[Workspace])
async def list_workspaces(company: Company) -> list[Workspace]:
    """List all workspaces, newest first."""
    return sorted(company.list_workspaces(), key=lambda w: w.created_at, reverse=True)


@router.post("/launch", response_model=LaunchResult, status_code=status.HTTP_201_CREATED)
async def launch_company(body: LaunchRequest, company: Company) -> LaunchResult:
    """Launch a company from a planner structure and start its runners."""
    try:
        return company.launch(body.task_description, body.structure, body.prompts)
    except ShuttingDownError:
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, detail="Runtime is shutting down.") from None


@router.get("/{workspace_id}/get", response_model=WorkspaceDetailResponse)
async def get_workspace(workspace_id: str, company: Company) -> WorkspaceDetailResponse:
    """Get a workspace with its agents and groups."""
    try:
        return WorkspaceDetailResponse(
            workspace=company.get_workspace(workspace_id),
            agents=company.list_agents(workspace_id),
            groups=company.list_groups(workspace_id),
        )
    except WorkspaceNotFoundError:
        raise _not_found(workspace_id) from None


@router.get("/{workspace_id}/org", response_model=list[OrgNode])
async def get_org_chart(workspace_id: str, company: Company) -> list[OrgNode]:
    """Agent hierarchy as a tree rooted at the Human agent."""
    try:
        return company.org_chart(workspace_id)
    except WorkspaceNotFoundError:
        raise _not_found(workspace_id) from None


@router.get("/{workspace_id}/org/text", response_class=PlainTextResponse)
async def get_org_chart_text(workspace_id: str, company: Company) -> str:
    """Agent hierarchy rendered as an ASCII tree."""
    try:
        return render_org_chart(company.org_chart(workspace_id))
    except WorkspaceNotFoundError:
        raise _not_found(workspace_id) from None


@router.post("/{workspace_id}/messages/send", response_model=Message, status_code=status.HTTP_201_CREATED)
async def send_message(workspace_id: str, body: SendMessageRequest, company: Company) -> Message:
    """Send a private message from the Human to an agent."""
    try:
        return company.send_user_message(workspace_id, body.target_agent_id, body.content)
    except WorkspaceNotFoundError:
        raise _not_found(workspace_id) from None
    except AgentNotFoundError:
        raise HTTPException(
            status.HTTP_404_NOT_FOUND,
            detail=f"Agent '{body.target_agent_id}' not found in workspace '{workspace_id}'.",
        ) from None


@router.post("/{workspace_id}/shutdown", response_model=Workspace)
async def shutdown_workspace(workspace_id: str, company: Company) -> Workspace:
    """Stop every runner of the workspace and archive it."""
    try:
        return company.shutdown(workspace_id)
    except WorkspaceNotFoundError:
        raise _not_found(workspace_id) from None


@router.post("/{workspace_id}/resume", response_model=ResumeResponse)
async def resume_workspace(workspace_id: str, company: Company) -> ResumeResponse:
    """Restart the runners of an active workspace."""
    try:
        started = company.resume(workspace_id)
    except WorkspaceNotFoundError:
        raise _not_found(workspace_id) from None
    except WorkspaceArchivedError as exc:
        raise HTTPException(status.HTTP_409_CONFLICT, detail=str(exc)) from None
    except ShuttingDownError:
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, detail="Runtime is shutting down.") from None
    return ResumeResponse(workspace_id=workspace_id, started=started)


@router.get("/{workspace_id}/messages", response_model=list[Message])
async def get_workspace_messages(
    workspace_id: str,
    company: Company,
    limit: int = Query(50, ge=1, le=500, description="Most recent messages per group."),
) -> list[Message]:
    """Recent messages across every group of the workspace, oldest first."""
    try:
        groups = company.list_groups(workspace_id)
    except WorkspaceNotFoundError:
        raise _not_found(workspace_id) from None
    messages = [m for g in groups for m in company.get_group_messages(g.id, limit)]
    return sorted(messages, key=lambda m: m.created_at)


@router.post("/{workspace_id}/delete", status_code=status.HTTP_204_NO_CONTENT)
async def delete_workspace(workspace_id: str, company: Company) -> None:
    """Stop the workspace's runners and delete it with everything it owns."""
    try:
        company.delete(workspace_id)
    except WorkspaceNotFoundError:
        raise _not_found(workspace_id) from None
