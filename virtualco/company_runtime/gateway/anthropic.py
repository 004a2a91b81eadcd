"""Anthropic Messages API convention.

Tools are declared with ``input_schema``; tool requests come back as
``tool_use`` content blocks and tool results go out as ``tool_result`` blocks
inside a user message.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

import httpx

from virtualco.company_runtime.gateway.backends import normalize_model
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


def messages_url(base_url: str) -> str:
    base = base_url.rstrip("/")
    if base.endswith("/v1"):
        return f"{base}/messages"
    return f"{base}/v1/messages"


def format_tool(tool: ToolSpec) -> dict[str, Any]:
    return {"name": tool.name, "description": tool.description, "input_schema": tool.parameters}


def to_wire_messages(turns: list[Turn]) -> list[dict[str, Any]]:
    """Convert transcript turns to Messages API entries.

    Consecutive tool results are merged into a single user message so the
    API sees one ``tool_result`` block per preceding ``tool_use`` block.
    """
    messages: list[dict[str, Any]] = []
    for turn in turns:
        if turn.role == TurnRole.TOOL:
            block = {"type": "tool_result", "tool_use_id": turn.tool_call_id, "content": turn.content}
            last = messages[-1] if messages else None
            if last is not None and last["role"] == "user" and _is_tool_result_list(last["content"]):
                last["content"].append(block)
            else:
                messages.append({"role": "user", "content": [block]})
        elif turn.tool_calls:
            blocks: list[dict[str, Any]] = []
            if turn.content:
                blocks.append({"type": "text", "text": turn.content})
            blocks.extend(
                {"type": "tool_use", "id": call.id, "name": call.name, "input": call.arguments}
                for call in turn.tool_calls
            )
            messages.append({"role": "assistant", "content": blocks})
        else:
            messages.append({"role": turn.role.value, "content": turn.content})
    return messages


def _is_tool_result_list(content: Any) -> bool:
    return isinstance(content, list) and all(b.get("type") == "tool_result" for b in content)


def build_payload(request: LLMRequest) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "model": normalize_model(request.model),
        "max_tokens": request.max_tokens,
        "messages": to_wire_messages(request.messages),
    }
    if request.system_prompt:
        payload["system"] = request.system_prompt
    if request.tools:
        payload["tools"] = [format_tool(t) for t in request.tools]
    if request.stream:
        payload["stream"] = True
    return payload


def parse_response(data: dict[str, Any]) -> LLMResponse:
    content = ""
    tool_calls: list[ToolCall] = []
    for block in data.get("content") or []:
        if block.get("type") == "text":
            content += block.get("text", "")
        elif block.get("type") == "tool_use":
            tool_calls.append(ToolCall(id=block["id"], name=block["name"], arguments=block.get("input") or {}))
    return LLMResponse(content=content, tool_calls=tool_calls, stop_reason=data.get("stop_reason") or "end_turn")


async def read_stream(frames: AsyncIterator[str], on_delta: DeltaCallback | None = None) -> LLMResponse:
    """Aggregate Messages API SSE frames into one response.

    Tool input arrives as ``input_json_delta`` fragments keyed by block
    index; each block's buffer is parsed when the block stops.
    """
    content = ""
    stop_reason: str | None = None
    tools: dict[int, dict[str, Any]] = {}

    def emit(kind: DeltaType, text: str = "") -> None:
        if on_delta is not None:
            on_delta(StreamDelta(type=kind, content=text))

    async for data in frames:
        event = parse_sse_event(data)
        if event is None:
            continue

        match event.get("type"):
            case "content_block_start":
                block = event.get("content_block") or {}
                if block.get("type") == "tool_use":
                    tools[event.get("index", len(tools))] = {"id": block["id"], "name": block["name"], "buf": ""}
            case "content_block_delta":
                delta = event.get("delta") or {}
                if delta.get("type") == "text_delta":
                    content += delta.get("text", "")
                    emit(DeltaType.TEXT_DELTA, delta.get("text", ""))
                elif delta.get("type") == "input_json_delta":
                    partial = delta.get("partial_json", "")
                    entry = tools.get(event.get("index", -1))
                    if entry is not None:
                        entry["buf"] += partial
                    emit(DeltaType.TOOL_DELTA, partial)
            case "message_delta":
                stop_reason = (event.get("delta") or {}).get("stop_reason") or stop_reason
            case "message_stop":
                emit(DeltaType.DONE)

    tool_calls = [
        ToolCall(id=entry["id"], name=entry["name"], arguments=loads_arguments(entry["buf"]))
        for _, entry in sorted(tools.items())
    ]
    if stop_reason is None:
        stop_reason = "tool_use" if tool_calls else "end_turn"
    return LLMResponse(content=content, tool_calls=tool_calls, stop_reason=stop_reason)


async def call(
    client: httpx.AsyncClient,
    request: LLMRequest,
    *,
    base_url: str,
    api_key: str,
    extra_headers: dict[str, str],
    timeout: float,
    on_delta: DeltaCallback | None = None,
) -> LLMResponse:
    url = messages_url(base_url)
    headers = {"Content-Type": "application/json", "x-api-key": api_key, **extra_headers}
    payload = build_payload(request)

    if request.stream:
        return await read_stream(stream_sse_data(client, url, payload, headers, timeout), on_delta)
    return parse_response(await post_json(client, url, payload, headers, timeout))
