"""Planner output consumed by the launch flow.

The planner itself lives outside the runtime; it hands over a
``CompanyStructure`` whose agent ids are local to the document.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class AgentBlueprint(BaseModel):
    id: str = Field(description="Structure-local id, referenced by parent_id")
    role: str
    role_key: str | None = None
    model: str | None = None
    parent_id: str | None = None
    responsibilities: list[str] = Field(default_factory=list)
    can_delegate: bool = False
    can_approve: bool = False


class CompanyStructure(BaseModel):
    name: str | None = None
    agents: list[AgentBlueprint] = Field(default_factory=list)

    def get(self, blueprint_id: str) -> AgentBlueprint | None:
        return next((a for a in self.agents if a.id == blueprint_id), None)
