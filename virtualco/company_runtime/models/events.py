"""Notification events published on the company event bus.

Each variant is a typed model tagged by ``kind``.  ``CompanyEvent`` is the
discriminated union subscribers match on::

    match event:
        case MessageCreated(group_id=gid, content=text):
            ...
        case AgentDone(summary=summary):
            ...
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal

from pydantic import BaseModel, Field, TypeAdapter

from virtualco.company_runtime.models.enums import EventKind


class _EventBase(BaseModel):
    timestamp: datetime = Field(default_factory=datetime.now)


class AgentStarted(_EventBase):
    kind: Literal[EventKind.AGENT_STARTED] = EventKind.AGENT_STARTED
    agent_id: str
    role: str


class AgentStopped(_EventBase):
    kind: Literal[EventKind.AGENT_STOPPED] = EventKind.AGENT_STOPPED
    agent_id: str


class AgentCreated(_EventBase):
    kind: Literal[EventKind.AGENT_CREATED] = EventKind.AGENT_CREATED
    agent_id: str
    role: str
    parent_id: str | None = None


class AgentDone(_EventBase):
    kind: Literal[EventKind.AGENT_DONE] = EventKind.AGENT_DONE
    agent_id: str
    role: str
    summary: str


class MessageCreated(_EventBase):
    kind: Literal[EventKind.MESSAGE_CREATED] = EventKind.MESSAGE_CREATED
    group_id: str
    agent_id: str
    content: str
    message_id: str | None = None
    target_id: str | None = None
    """Set for direct (P2P) sends: the recipient agent."""


class GroupCreated(_EventBase):
    kind: Literal[EventKind.GROUP_CREATED] = EventKind.GROUP_CREATED
    group_id: str
    name: str
    member_ids: list[str] = Field(default_factory=list)


CompanyEvent = Annotated[
    AgentStarted | AgentStopped | AgentCreated | AgentDone | MessageCreated | GroupCreated,
    Field(discriminator="kind"),
]

CompanyEventAdapter: TypeAdapter[CompanyEvent] = TypeAdapter(CompanyEvent)
