"""LLM gateway tests.

Network backends run against ``httpx.MockTransport``; the Claude Code CLI
backend runs against a patched ``asyncio.create_subprocess_exec``.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Callable
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from virtualco.company_runtime.gateway import (
    ClaudeCodeBackend,
    GatewayConfigError,
    GatewayConnectionError,
    GatewayHTTPError,
    LLMGateway,
    Profile,
    SettingsProfileProvider,
    StaticProfileProvider,
    get_model_backend,
    normalize_model,
)
from virtualco.company_runtime.gateway import anthropic, openai
from virtualco.company_runtime.gateway.claude_code import parse_output
from virtualco.company_runtime.models.enums import Backend, DeltaType
from virtualco.company_runtime.models.llm import LLMRequest, StreamDelta, ToolCall, ToolSpec, Turn

PROXY_URL = "https://proxy.example.com"

ANTHROPIC_OK = {
    "content": [
        {"type": "text", "text": "Let me check."},
        {"type": "tool_use", "id": "tu_1", "name": "list_agents", "input": {}},
    ],
    "stop_reason": "tool_use",
}

OPENAI_OK = {
    "choices": [
        {
            "message": {
                "content": None,
                "tool_calls": [
                    {"id": "call_1", "type": "function", "function": {"name": "send", "arguments": '{"to": "a1"}'}}
                ],
            },
            "finish_reason": "tool_calls",
        }
    ]
}


def _request(model: str = "claude-sonnet-4", **kwargs) -> LLMRequest:
    return LLMRequest(model=model, system_prompt="You are the CEO.", messages=[Turn.user("[Human]: hi")], **kwargs)


def _gateway(handler: Callable[[httpx.Request], httpx.Response], profile: Profile | None = None) -> LLMGateway:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return LLMGateway(StaticProfileProvider(profile), http_client=client)


async def _frames(*items: dict | str) -> AsyncIterator[str]:
    for item in items:
        yield item if isinstance(item, str) else json.dumps(item)


# -- Routing -------------------------------------------------------------------


@pytest.mark.parametrize(
    ("model", "backend"),
    [
        ("claude-opus-4", Backend.ANTHROPIC),
        ("gpt-4o", Backend.OPENAI),
        ("claude-4-5-opus-thinking", Backend.OPENAI),
        ("cc", Backend.CLAUDE_CODE),
        ("glm-4.7", Backend.GLM),
        ("openrouter", Backend.OPENROUTER),
        ("some-new-model", Backend.ANTHROPIC),
    ],
)
def test_model_routing(model: str, backend: Backend) -> None:
    assert get_model_backend(model) == backend


def test_model_aliases() -> None:
    assert normalize_model("claude-opus-4") == "claude-opus-4-20250514"
    assert normalize_model("codex") == "gpt-4-turbo"
    assert normalize_model("glm-4") == "glm-4"


def test_is_model_available(monkeypatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("GLM_API_KEY", raising=False)
    gateway = LLMGateway()

    assert gateway.is_model_available("cc")
    assert not gateway.is_model_available("gpt-4o")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    assert gateway.is_model_available("gpt-4o")

    profiled = LLMGateway(StaticProfileProvider(Profile(name="p", api_key="k")))
    assert profiled.is_model_available("claude-opus-4")
    assert not profiled.is_model_available("glm-4")


def test_settings_profile_provider(settings) -> None:
    assert SettingsProfileProvider(settings).get_active_profile() is None

    settings.profile_url = PROXY_URL
    profile = SettingsProfileProvider(settings).get_active_profile()
    assert profile.url == PROXY_URL
    assert profile.api_key is None


# -- Wire formats --------------------------------------------------------------


def test_anthropic_url_and_payload() -> None:
    assert anthropic.messages_url("https://api.anthropic.com/v1") == "https://api.anthropic.com/v1/messages"
    assert anthropic.messages_url(PROXY_URL + "/") == PROXY_URL + "/v1/messages"

    call = ToolCall(id="tu_1", name="self")
    request = LLMRequest(
        model="claude-opus-4",
        system_prompt="sys",
        messages=[
            Turn.user("hi"),
            Turn.tool_request([call, ToolCall(id="tu_2", name="list_agents")], content="Checking"),
            Turn.tool_result("tu_1", '{"id": "a"}'),
            Turn.tool_result("tu_2", "[]"),
        ],
        tools=[ToolSpec(name="self", description="Who am I")],
    )
    payload = anthropic.build_payload(request)

    assert payload["model"] == "claude-opus-4-20250514"
    assert payload["system"] == "sys"
    assert payload["tools"][0]["input_schema"] == {"type": "object", "properties": {}}
    assert payload["messages"][1]["content"][0] == {"type": "text", "text": "Checking"}
    assert payload["messages"][1]["content"][1]["type"] == "tool_use"
    # Both results are merged into one user message.
    assert len(payload["messages"]) == 3
    assert [b["tool_use_id"] for b in payload["messages"][2]["content"]] == ["tu_1", "tu_2"]
    assert "stream" not in payload


def test_openai_payload() -> None:
    request = LLMRequest(
        model="gpt-4",
        system_prompt="sys",
        messages=[
            Turn.user("hi"),
            Turn.tool_request([ToolCall(id="c1", name="send", arguments={"to": "x"})]),
            Turn.tool_result("c1", '{"status": "sent"}'),
        ],
        tools=[ToolSpec(name="send", description="Send")],
        stream=True,
    )
    payload = openai.build_payload(request)

    assert payload["model"] == "gpt-4-turbo"
    assert payload["messages"][0] == {"role": "system", "content": "sys"}
    assistant = payload["messages"][2]
    assert assistant["content"] is None
    assert json.loads(assistant["tool_calls"][0]["function"]["arguments"]) == {"to": "x"}
    assert payload["messages"][3] == {"role": "tool", "tool_call_id": "c1", "content": '{"status": "sent"}'}
    assert payload["tools"][0]["type"] == "function"
    assert payload["stream"] is True

    assert openai.ensure_v1(PROXY_URL) == PROXY_URL + "/v1"
    assert openai.ensure_v1(PROXY_URL + "/v1/") == PROXY_URL + "/v1"


def test_parse_responses() -> None:
    response = anthropic.parse_response(ANTHROPIC_OK)
    assert response.content == "Let me check."
    assert response.tool_calls == [ToolCall(id="tu_1", name="list_agents")]
    assert response.stop_reason == "tool_use"

    response = openai.parse_response(OPENAI_OK)
    assert response.content == ""
    assert response.tool_calls == [ToolCall(id="call_1", name="send", arguments={"to": "a1"})]

    malformed = {"choices": [{"message": {"tool_calls": [{"id": "c", "function": {"name": "x", "arguments": "{"}}]}}]}
    assert openai.parse_response(malformed).tool_calls[0].arguments == {}


# -- Streaming -----------------------------------------------------------------


async def test_anthropic_stream_accumulates_tool_input() -> None:
    deltas: list[StreamDelta] = []
    response = await anthropic.read_stream(
        _frames(
            {"type": "message_start"},
            {"type": "content_block_start", "index": 0, "content_block": {"type": "text"}},
            {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "On it"}},
            {"type": "content_block_start", "index": 1, "content_block": {"type": "tool_use", "id": "t", "name": "send"}},
            {"type": "content_block_delta", "index": 1, "delta": {"type": "input_json_delta", "partial_json": '{"to":'}},
            {"type": "content_block_delta", "index": 1, "delta": {"type": "input_json_delta", "partial_json": ' "a"}'}},
            {"type": "content_block_stop", "index": 1},
            {"type": "message_delta", "delta": {"stop_reason": "tool_use"}},
            "not json",
            {"type": "message_stop"},
        ),
        deltas.append,
    )

    assert response.content == "On it"
    assert response.tool_calls == [ToolCall(id="t", name="send", arguments={"to": "a"})]
    assert response.stop_reason == "tool_use"
    assert [d.type for d in deltas] == [
        DeltaType.TEXT_DELTA,
        DeltaType.TOOL_DELTA,
        DeltaType.TOOL_DELTA,
        DeltaType.DONE,
    ]


async def test_openai_stream_accumulates_by_index() -> None:
    def chunk(delta: dict, finish: str | None = None) -> dict:
        return {"choices": [{"delta": delta, "finish_reason": finish}]}

    response = await openai.read_stream(
        _frames(
            chunk({"content": "Hi "}),
            chunk({"content": "there"}),
            chunk({"tool_calls": [{"index": 0, "id": "c0", "function": {"name": "bash", "arguments": ""}}]}),
            chunk({"tool_calls": [{"index": 1, "id": "c1", "function": {"name": "self", "arguments": "{}"}}]}),
            chunk({"tool_calls": [{"index": 0, "function": {"arguments": '{"command": '}}]}),
            chunk({"tool_calls": [{"index": 0, "function": {"arguments": '"ls"}'}}]}, finish="tool_calls"),
            "[DONE]",
        )
    )

    assert response.content == "Hi there"
    assert response.tool_calls == [
        ToolCall(id="c0", name="bash", arguments={"command": "ls"}),
        ToolCall(id="c1", name="self"),
    ]
    assert response.stop_reason == "tool_calls"


async def test_streaming_call_through_gateway() -> None:
    body = "\n".join(
        [
            'data: {"choices": [{"delta": {"content": "streamed"}}]}',
            "",
            "data: [DONE]",
            "",
        ]
    )

    def handler(request: httpx.Request) -> httpx.Response:
        assert json.loads(request.content)["stream"] is True
        return httpx.Response(200, text=body, headers={"content-type": "text/event-stream"})

    gateway = _gateway(handler, Profile(name="p", api_key="k"))
    deltas: list[StreamDelta] = []
    response = await gateway.call(_request("gpt-4o", stream=True), deltas.append)

    assert response.content == "streamed"
    assert deltas[-1].type == DeltaType.DONE


# -- Gateway dispatch ----------------------------------------------------------


async def test_default_anthropic_call(monkeypatch) -> None:
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant")
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=ANTHROPIC_OK)

    response = await _gateway(handler).call(_request())

    assert response.tool_calls[0].name == "list_agents"
    assert str(seen[0].url) == "https://api.anthropic.com/v1/messages"
    assert seen[0].headers["x-api-key"] == "sk-ant"
    assert seen[0].headers["anthropic-version"] == "2023-06-01"


async def test_glm_uses_fixed_url_and_raw_model(monkeypatch) -> None:
    monkeypatch.setenv("GLM_API_KEY", "glm-key")
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"choices": [{"message": {"content": "ok"}, "finish_reason": "stop"}]})

    # The profile URL is ignored for GLM.
    response = await _gateway(handler, Profile(name="p", url=PROXY_URL, api_key="k")).call(_request("glm-4.7"))

    assert response.content == "ok"
    assert str(seen[0].url) == "https://open.bigmodel.cn/api/paas/v4/chat/completions"
    assert seen[0].headers["authorization"] == "Bearer glm-key"
    assert json.loads(seen[0].content)["model"] == "glm-4.7"


async def test_missing_api_key(monkeypatch) -> None:
    monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
    gateway = _gateway(lambda _request: httpx.Response(200, json={}))

    with pytest.raises(GatewayConfigError, match="OPENROUTER_API_KEY"):
        await gateway.call(_request("openrouter"))


async def test_connection_error_is_not_retried() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        raise httpx.ConnectError("refused", request=request)

    gateway = _gateway(handler, Profile(name="p", url=PROXY_URL, api_key="k"))

    with pytest.raises(GatewayConnectionError):
        await gateway.call(_request())
    assert len(calls) == 1


# -- Protocol fallback ---------------------------------------------------------


async def test_fallback_to_openai_is_remembered() -> None:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.path)
        if request.url.path == "/v1/messages":
            return httpx.Response(404, text="Not Found")
        return httpx.Response(200, json=OPENAI_OK)

    gateway = _gateway(handler, Profile(name="p", url=PROXY_URL, api_key="k"))

    response = await gateway.call(_request())
    assert response.tool_calls[0].name == "send"
    assert seen == ["/v1/messages", "/v1/chat/completions"]
    assert gateway.protocol_cache.get(PROXY_URL) == Backend.OPENAI

    await gateway.call(_request())
    assert seen[2:] == ["/v1/chat/completions"]


async def test_fallback_to_anthropic() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/chat/completions"):
            return httpx.Response(400, text="unknown endpoint")
        assert request.headers["x-api-key"] == "k"
        return httpx.Response(200, json=ANTHROPIC_OK)

    gateway = _gateway(handler, Profile(name="p", url=PROXY_URL, api_key="k"))

    response = await gateway.call(_request("gpt-4o"))
    assert response.content == "Let me check."
    assert gateway.protocol_cache.get(PROXY_URL) == Backend.ANTHROPIC


async def test_auth_error_is_not_retried() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(401, text="bad key")

    gateway = _gateway(handler, Profile(name="p", url=PROXY_URL, api_key="k"))

    with pytest.raises(GatewayHTTPError) as exc_info:
        await gateway.call(_request())
    assert exc_info.value.status_code == 401
    assert len(calls) == 1
    assert len(gateway.protocol_cache) == 0


async def test_no_fallback_without_profile_url(monkeypatch) -> None:
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant")
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(500, text="overloaded")

    with pytest.raises(GatewayHTTPError):
        await _gateway(handler).call(_request())
    assert len(calls) == 1


async def test_both_conventions_failing_raises_second_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        status = 404 if request.url.path.endswith("/messages") else 502
        return httpx.Response(status, text="nope")

    gateway = _gateway(handler, Profile(name="p", url=PROXY_URL, api_key="k"))

    with pytest.raises(GatewayHTTPError) as exc_info:
        await gateway.call(_request())
    assert exc_info.value.status_code == 502
    assert gateway.protocol_cache.get(PROXY_URL) is None


# -- Claude Code CLI -----------------------------------------------------------


def _fake_process(stdout: bytes, stderr: bytes = b"", returncode: int = 0) -> MagicMock:
    process = MagicMock()
    process.communicate = AsyncMock(return_value=(stdout, stderr))
    process.wait = AsyncMock(return_value=returncode)
    process.returncode = returncode
    return process


def test_parse_output() -> None:
    assert parse_output('{"result": "done"}') == "done"
    assert parse_output('{"message": "hello"}') == "hello"
    assert parse_output("plain text") == "plain text"
    assert parse_output("[1, 2]") == "[1, 2]"


async def test_claude_code_call() -> None:
    backend = ClaudeCodeBackend(command="claude", timeout=5)
    process = _fake_process(b'{"result": "Shipped it."}')

    with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=process)) as spawn:
        response = await backend.call(_request("cc"))

    assert response.content == "Shipped it."
    assert response.error is None
    args = spawn.call_args.args
    assert args[:3] == ("claude", "-p", "[Human]: hi")
    assert args[-2:] == ("--append-system-prompt", "You are the CEO.")


async def test_claude_code_failure_is_reported_not_raised() -> None:
    backend = ClaudeCodeBackend()

    with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=_fake_process(b"", b"boom", 2))):
        response = await backend.call(_request("cc"))
    assert response.content == ""
    assert "exited with code 2" in response.error

    with patch("asyncio.create_subprocess_exec", AsyncMock(side_effect=FileNotFoundError("claude"))):
        response = await backend.call(_request("cc"))
    assert response.error.startswith("Failed to call Claude Code")


async def test_claude_code_cancel_kills_process() -> None:
    backend = ClaudeCodeBackend(timeout=60)
    process = MagicMock()
    process.returncode = None
    process.wait = AsyncMock(return_value=-9)

    async def never_finishes():
        await asyncio.Event().wait()

    process.communicate = never_finishes

    with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=process)):
        task = asyncio.create_task(backend.call(_request("cc")))
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    process.kill.assert_called_once_with()
    process.wait.assert_awaited_once()


async def test_gateway_routes_to_claude_code() -> None:
    cli = MagicMock(spec=ClaudeCodeBackend)
    cli.call = AsyncMock(return_value=openai.parse_response(OPENAI_OK))
    gateway = LLMGateway(claude_code=cli)

    await gateway.call(_request("claude-code"))
    cli.call.assert_awaited_once()
