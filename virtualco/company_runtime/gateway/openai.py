"""OpenAI chat-completions convention (also spoken by GLM and OpenRouter).

Tools are declared as ``{"type": "function", "function": {...}}``; tool-call
arguments travel as JSON strings and tool results as ``role="tool"``
messages.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Any

import httpx

from virtualco.company_runtime.gateway.backends import normalize_model
from virtualco.company_runtime.gateway.errors import GatewayError
from virtualco.company_runtime.gateway.transport import (
    loads_arguments,
    parse_sse_event,
    post_json,
    stream_sse_data,
)
from virtualco.company_runtime.models.enums import DeltaType, TurnRole
from virtualco.company_runtime.models.llm import (
    DeltaCallback,
    LLMRequest,
    LLMResponse,
    StreamDelta,
    ToolCall,
    ToolSpec,
    Turn,
)


def completions_url(base_url: str) -> str:
    return f"{base_url.rstrip('/')}/chat/completions"


def ensure_v1(base_url: str) -> str:
    """Custom OpenAI-compatible URLs are assumed to serve under ``/v1``."""
    base = base_url.rstrip("/")
    return base if base.endswith("/v1") else f"{base}/v1"


def format_tool(tool: ToolSpec) -> dict[str, Any]:
    return {
        "type": "function",
        "function": {"name": tool.name, "description": tool.description, "parameters": tool.parameters},
    }


def to_wire_messages(system_prompt: str, turns: list[Turn]) -> list[dict[str, Any]]:
    messages: list[dict[str, Any]] = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})

    for turn in turns:
        if turn.role == TurnRole.TOOL:
            messages.append({"role": "tool", "tool_call_id": turn.tool_call_id, "content": turn.content})
        elif turn.tool_calls:
            messages.append({
                "role": "assistant",
                "content": turn.content or None,
                "tool_calls": [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {"name": call.name, "arguments": json.dumps(call.arguments)},
                    }
                    for call in turn.tool_calls
                ],
            })
        else:
            messages.append({"role": turn.role.value, "content": turn.content})
    return messages


def build_payload(request: LLMRequest, *, model: str | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "model": model or normalize_model(request.model),
        "messages": to_wire_messages(request.system_prompt, request.messages),
        "max_tokens": request.max_tokens,
    }
    if request.tools:
        payload["tools"] = [format_tool(t) for t in request.tools]
    if request.stream:
        payload["stream"] = True
    return payload


def parse_response(data: dict[str, Any]) -> LLMResponse:
    choices = data.get("choices") or []
    if not choices:
        msg = "No response choices returned by chat completions endpoint"
        raise GatewayError(msg)

    choice = choices[0]
    message = choice.get("message") or {}
    tool_calls = [
        ToolCall(
            id=tc.get("id", ""),
            name=(tc.get("function") or {}).get("name", ""),
            arguments=loads_arguments((tc.get("function") or {}).get("arguments")),
        )
        for tc in message.get("tool_calls") or []
    ]
    return LLMResponse(
        content=message.get("content") or "",
        tool_calls=tool_calls,
        stop_reason=choice.get("finish_reason") or "stop",
    )


async def read_stream(frames: AsyncIterator[str], on_delta: DeltaCallback | None = None) -> LLMResponse:
    """Aggregate chat-completion SSE chunks; tool calls accumulate by ``index``."""
    content = ""
    finish_reason: str | None = None
    tools: dict[int, dict[str, str]] = {}

    def emit(kind: DeltaType, text: str = "") -> None:
        if on_delta is not None:
            on_delta(StreamDelta(type=kind, content=text))

    async for data in frames:
        if data == "[DONE]":
            emit(DeltaType.DONE)
            continue
        event = parse_sse_event(data)
        if event is None:
            continue

        choices = event.get("choices") or [{}]
        choice = choices[0]
        finish_reason = choice.get("finish_reason") or finish_reason
        delta = choice.get("delta") or {}

        if delta.get("content"):
            content += delta["content"]
            emit(DeltaType.TEXT_DELTA, delta["content"])

        for tc in delta.get("tool_calls") or []:
            index = tc.get("index")
            if index is None:
                continue
            entry = tools.setdefault(index, {"id": "", "name": "", "buf": ""})
            function = tc.get("function") or {}
            if tc.get("id"):
                entry["id"] = tc["id"]
            if function.get("name"):
                entry["name"] = function["name"]
            if function.get("arguments"):
                entry["buf"] += function["arguments"]
                emit(DeltaType.TOOL_DELTA, function["arguments"])

    tool_calls = [
        ToolCall(id=entry["id"], name=entry["name"], arguments=loads_arguments(entry["buf"]))
        for _, entry in sorted(tools.items())
    ]
    if finish_reason is None:
        finish_reason = "tool_calls" if tool_calls else "stop"
    return LLMResponse(content=content, tool_calls=tool_calls, stop_reason=finish_reason)


async def call(
    client: httpx.AsyncClient,
    request: LLMRequest,
    *,
    base_url: str,
    api_key: str,
    extra_headers: dict[str, str],
    timeout: float,
    on_delta: DeltaCallback | None = None,
    model: str | None = None,
) -> LLMResponse:
    url = completions_url(base_url)
    headers = {"Content-Type": "application/json", "Authorization": f"Bearer {api_key}", **extra_headers}
    payload = build_payload(request, model=model)

    if request.stream:
        return await read_stream(stream_sse_data(client, url, payload, headers, timeout), on_delta)
    return parse_response(await post_json(client, url, payload, headers, timeout))
