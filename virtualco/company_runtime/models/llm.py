"""Backend-neutral LLM request / response models.

Transcripts are stored as a list of ``Turn`` objects.  The gateway converts
them to each backend's wire shape on the way out and normalizes responses
back into ``LLMResponse`` on the way in.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, Field

from virtualco.company_runtime.models.enums import DeltaType, TurnRole


class ToolCall(BaseModel):
    """A structured action request emitted by the model."""

    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class Turn(BaseModel):
    """One transcript entry.

    - user / assistant text: ``content`` only
    - tool request: assistant turn with ``tool_calls``
    - tool result: ``role=tool`` with ``tool_call_id`` and the JSON result as ``content``
    """

    role: TurnRole
    content: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    tool_call_id: str | None = None

    @classmethod
    def user(cls, content: str) -> Turn:
        return cls(role=TurnRole.USER, content=content)

    @classmethod
    def assistant(cls, content: str) -> Turn:
        return cls(role=TurnRole.ASSISTANT, content=content)

    @classmethod
    def tool_request(cls, tool_calls: list[ToolCall], content: str = "") -> Turn:
        return cls(role=TurnRole.ASSISTANT, content=content, tool_calls=tool_calls)

    @classmethod
    def tool_result(cls, tool_call_id: str, content: str) -> Turn:
        return cls(role=TurnRole.TOOL, content=content, tool_call_id=tool_call_id)


class ToolSpec(BaseModel):
    """Declarative tool definition (JSON-schema parameters)."""

    name: str
    description: str
    parameters: dict[str, Any] = Field(default_factory=lambda: {"type": "object", "properties": {}})


class LLMRequest(BaseModel):
    model: str
    system_prompt: str = ""
    messages: list[Turn] = Field(default_factory=list)
    tools: list[ToolSpec] = Field(default_factory=list)
    max_tokens: int = 4096
    stream: bool = False


class LLMResponse(BaseModel):
    """Normalized model output, identical for every backend."""

    content: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    stop_reason: str = "end_turn"
    error: str | None = None
    """Set when a subprocess backend failed; content is empty in that case."""


class StreamDelta(BaseModel):
    type: DeltaType
    content: str = ""


DeltaCallback = Callable[[StreamDelta], None]
"""Receives incremental frames while a streaming call is in flight."""
