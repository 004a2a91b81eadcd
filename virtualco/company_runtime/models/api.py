"""API request / response schemas for the HTTP surface.

Entities (``Workspace``, ``Agent``, ``Group``, ``Message``) are returned
as-is; these schemas only cover request bodies and composite responses.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from virtualco.company_runtime.models.entities import Agent, Group, Workspace
from virtualco.company_runtime.models.structure import CompanyStructure


class LaunchRequest(BaseModel):
    """Input for launching a company from a planner structure."""

    task_description: str
    structure: CompanyStructure
    prompts: dict[str, str] | None = Field(
        default=None,
        description="Blueprint id -> system prompt.  Generated from the structure when omitted.",
    )


class SendMessageRequest(BaseModel):
    target_agent_id: str
    content: str = Field(min_length=1)


class BroadcastRequest(BaseModel):
    content: str = Field(min_length=1)
    sender_id: str | None = Field(default=None, description="Defaults to the workspace's Human agent.")


class WorkspaceDetailResponse(BaseModel):
    workspace: Workspace
    agents: list[Agent]
    groups: list[Group]


class ResumeResponse(BaseModel):
    workspace_id: str
    started: list[str]


class ActiveAgentResponse(BaseModel):
    id: str
    role: str
    status: str
    state: str
    is_running: bool
