"""httpx helpers shared by the network backends.

Both helpers translate httpx failures into the gateway hierarchy: an error
status becomes ``GatewayHTTPError``; anything that never produced a response
becomes ``GatewayConnectionError``.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Any

import httpx
from loguru import logger

from virtualco.company_runtime.gateway.errors import GatewayConnectionError, GatewayHTTPError

_ERROR_BODY_LIMIT = 500


async def post_json(
    client: httpx.AsyncClient,
    url: str,
    payload: dict[str, Any],
    headers: dict[str, str],
    timeout: float,
) -> dict[str, Any]:
    try:
        response = await client.post(url, json=payload, headers=headers, timeout=timeout)
    except httpx.TimeoutException as e:
        raise GatewayConnectionError(f"Timed out after {timeout}s calling {url}") from e
    except httpx.TransportError as e:
        raise GatewayConnectionError(f"Failed to reach {url}: {e}") from e

    if response.status_code >= 400:
        body = response.text[:_ERROR_BODY_LIMIT]
        logger.warning("LLM API error {} from {}: {}", response.status_code, url, body)
        raise GatewayHTTPError(response.status_code, body, url)

    return response.json()


async def stream_sse_data(
    client: httpx.AsyncClient,
    url: str,
    payload: dict[str, Any],
    headers: dict[str, str],
    timeout: float,
) -> AsyncIterator[str]:
    """Yield the ``data:`` payload of every SSE line (``[DONE]`` included)."""
    try:
        async with client.stream("POST", url, json=payload, headers=headers, timeout=timeout) as response:
            if response.status_code >= 400:
                body = (await response.aread()).decode(errors="replace")[:_ERROR_BODY_LIMIT]
                logger.warning("LLM API error {} from {}: {}", response.status_code, url, body)
                raise GatewayHTTPError(response.status_code, body, url)

            async for line in response.aiter_lines():
                if line.startswith("data:"):
                    yield line[5:].strip()
    except httpx.TimeoutException as e:
        raise GatewayConnectionError(f"Timed out after {timeout}s streaming from {url}") from e
    except httpx.TransportError as e:
        raise GatewayConnectionError(f"Failed to stream from {url}: {e}") from e


def parse_sse_event(data: str) -> dict[str, Any] | None:
    """Decode one SSE data payload; ``None`` for ``[DONE]`` and unparseable frames."""
    if not data or data == "[DONE]":
        return None
    try:
        event = json.loads(data)
    except json.JSONDecodeError:
        return None
    return event if isinstance(event, dict) else None


def loads_arguments(raw: str | None) -> dict[str, Any]:
    """Parse a tool-call argument string; malformed JSON yields ``{}``."""
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Discarding malformed tool arguments: {}", raw[:200])
        return {}
    return value if isinstance(value, dict) else {}
