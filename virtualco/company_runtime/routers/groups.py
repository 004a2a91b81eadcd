"""Group chat endpoints (RPC-style)."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query, status

from virtualco.company_runtime.deps import Company
from virtualco.company_runtime.managers.company import GroupNotFoundError
from virtualco.company_runtime.models.api import BroadcastRequest
from virtualco.company_runtime.models.entities import Message
from virtualco.company_runtime.registry import AgentNotFoundError

router = APIRouter(prefix="/groups", tags=["groups"])


@router.post("/{group_id}/broadcast", response_model=Message, status_code=status.HTTP_201_CREATED)
async def broadcast(group_id: str, body: BroadcastRequest, company: Company) -> Message:
    """Post a message to a group and wake every other member."""
    try:
        return company.broadcast(group_id, body.content, body.sender_id)
    except GroupNotFoundError:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=f"Group '{group_id}' not found.") from None
    except AgentNotFoundError:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=f"Sender '{body.sender_id}' not found.") from None


@router.get("/{group_id}/messages", response_model=list[Message])
async def get_messages(
    group_id: str,
    company: Company,
    limit: int = Query(50, ge=1, le=500, description="Number of most recent messages."),
) -> list[Message]:
    """Most recent messages of a group, oldest first."""
    try:
        return company.get_group_messages(group_id, limit)
    except GroupNotFoundError:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=f"Group '{group_id}' not found.") from None
