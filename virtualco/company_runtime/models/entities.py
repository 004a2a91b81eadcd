"""Company entities held by the store.

Entities never reference each other directly: relationships are by id and
resolved through store lookups.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from virtualco.company_runtime.models.enums import AgentStatus, MessageType, WorkspaceStatus
from virtualco.company_runtime.models.llm import Turn

HUMAN_ROLE = "Human"
HUMAN_ROLE_KEY = "human"
HUMAN_MODEL = "none"


def _now() -> datetime:
    return datetime.now(tz=UTC)


def normalize_role_key(role: str) -> str:
    """``"Backend Developer"`` -> ``"backend-developer"``."""
    return re.sub(r"\s+", "-", role.strip().lower())


# -- Workspace ---------------------------------------------------------------


class Workspace(BaseModel):
    """One company instance."""

    id: str
    name: str
    task_description: str = ""
    company_structure: dict[str, Any] = Field(default_factory=dict)
    status: WorkspaceStatus = WorkspaceStatus.ACTIVE
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


# -- Agent -------------------------------------------------------------------


class AgentCreate(BaseModel):
    """Fields accepted by ``CompanyStore.create_agent``."""

    role: str
    role_key: str | None = None
    model: str | None = None
    parent_id: str | None = None
    system_prompt: str = ""
    responsibilities: list[str] = Field(default_factory=list)
    can_delegate: bool = False
    can_approve: bool = False


class Agent(BaseModel):
    id: str
    workspace_id: str
    role: str
    role_key: str
    model: str
    parent_id: str | None = None
    system_prompt: str = ""
    responsibilities: list[str] = Field(default_factory=list)
    can_delegate: bool = False
    can_approve: bool = False
    status: AgentStatus = AgentStatus.IDLE
    llm_history: list[Turn] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_now)

    @property
    def is_human(self) -> bool:
        return self.role_key == HUMAN_ROLE_KEY


# -- Group -------------------------------------------------------------------


class Group(BaseModel):
    """A chat channel.  Two distinct members = the canonical P2P channel."""

    id: str
    workspace_id: str
    name: str
    member_ids: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_now)

    @property
    def is_p2p(self) -> bool:
        return len(self.member_ids) == 2


# -- Message -----------------------------------------------------------------


class Message(BaseModel):
    id: str
    group_id: str
    sender_id: str
    content: str
    type: MessageType = MessageType.TEXT
    created_at: datetime = Field(default_factory=_now)
