"""Data models for the company runtime."""

from virtualco.company_runtime.models.entities import (
    Agent,
    AgentCreate,
    Group,
    Message,
    Workspace,
)
from virtualco.company_runtime.models.enums import (
    AgentStatus,
    Backend,
    DeltaType,
    EventKind,
    MessageType,
    RunnerState,
    TurnRole,
    WorkspaceStatus,
)
from virtualco.company_runtime.models.events import (
    AgentCreated,
    AgentDone,
    AgentStarted,
    AgentStopped,
    CompanyEvent,
    GroupCreated,
    MessageCreated,
)
from virtualco.company_runtime.models.llm import (
    DeltaCallback,
    LLMRequest,
    LLMResponse,
    StreamDelta,
    ToolCall,
    ToolSpec,
    Turn,
)
from virtualco.company_runtime.models.structure import AgentBlueprint, CompanyStructure

__all__ = [
    # Entities
    "Agent",
    "AgentBlueprint",
    "AgentCreate",
    # Events
    "AgentCreated",
    "AgentDone",
    "AgentStarted",
    # Enums
    "AgentStatus",
    "AgentStopped",
    "Backend",
    "CompanyEvent",
    "CompanyStructure",
    "DeltaCallback",
    "DeltaType",
    "EventKind",
    "Group",
    "GroupCreated",
    # LLM
    "LLMRequest",
    "LLMResponse",
    "Message",
    "MessageCreated",
    "MessageType",
    "RunnerState",
    "StreamDelta",
    "ToolCall",
    "ToolSpec",
    "Turn",
    "TurnRole",
    "Workspace",
    "WorkspaceStatus",
]
