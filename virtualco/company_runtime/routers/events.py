"""Server-sent event stream of company events.

Each event is sent with its ``kind`` as the SSE event name and the JSON
serialized model as data.  The stream ends when the client disconnects or
the server signals shutdown through ``AppStatus.should_exit``.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import aclosing

from fastapi import APIRouter, Query
from sse_starlette.sse import EventSourceResponse

from virtualco.company_runtime.deps import Bus
from virtualco.company_runtime.events import EventBus
from virtualco.company_runtime.models.enums import EventKind

router = APIRouter(prefix="/events", tags=["events"])


async def _event_stream(bus: EventBus, kinds: set[EventKind] | None) -> AsyncIterator[dict[str, str]]:
    async with aclosing(bus.listen()) as stream:
        async for event in stream:
            if kinds and event.kind not in kinds:
                continue
            yield {"event": str(event.kind), "data": event.model_dump_json()}


@router.get("/stream")
async def stream_events(
    bus: Bus,
    kind: list[EventKind] | None = Query(None, description="Only forward these event kinds."),
) -> EventSourceResponse:
    """Subscribe to company events as an SSE stream."""
    return EventSourceResponse(_event_stream(bus, set(kind) if kind else None))
