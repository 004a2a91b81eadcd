"""Shared enumerations used across the company runtime."""

from __future__ import annotations

from enum import StrEnum

# -- Workspace ---------------------------------------------------------------


class WorkspaceStatus(StrEnum):
    ACTIVE = "active"
    ARCHIVED = "archived"


# -- Agent -------------------------------------------------------------------


class AgentStatus(StrEnum):
    """Durable agent status persisted in the store."""

    IDLE = "idle"
    BUSY = "busy"
    ERROR = "error"


class RunnerState(StrEnum):
    """In-process lifecycle of an agent runner (never persisted)."""

    CREATED = "created"
    IDLE = "idle"
    BUSY = "busy"
    ERROR = "error"
    STOPPED = "stopped"


# -- Messages ----------------------------------------------------------------


class MessageType(StrEnum):
    TEXT = "text"
    SYSTEM = "system"


# -- LLM ---------------------------------------------------------------------


class TurnRole(StrEnum):
    """Role tag of a transcript turn."""

    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class Backend(StrEnum):
    """LLM backend conventions understood by the gateway."""

    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    CLAUDE_CODE = "claude-code"
    GLM = "glm"
    OPENROUTER = "openrouter"


class DeltaType(StrEnum):
    """Incremental frame kinds passed to streaming callbacks."""

    TEXT_DELTA = "text_delta"
    TOOL_DELTA = "tool_delta"
    DONE = "done"


# -- Events ------------------------------------------------------------------


class EventKind(StrEnum):
    """Notification kinds published on the event bus."""

    AGENT_STARTED = "agent.started"
    AGENT_STOPPED = "agent.stopped"
    AGENT_CREATED = "agent.created"
    AGENT_DONE = "agent.done"
    MESSAGE_CREATED = "message.created"
    GROUP_CREATED = "group.created"
