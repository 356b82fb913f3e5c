"""
Pydantic schemas for the team hierarchy API.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class TeamTreeNode(BaseModel):
    id: str
    name: Optional[str] = None
    role: Optional[str] = None
    group: Optional[str] = None
    parentId: Optional[str] = None
    createdAt: Optional[float] = None
    displayMedia: list[str] = Field(default_factory=list)
    primaryMedia: str
    children: list[TeamTreeNode] = Field(default_factory=list)


TeamTreeNode.model_rebuild()


class TeamTreeResponse(BaseModel):
    data: list[TeamTreeNode]


class TeamSubtreeResponse(BaseModel):
    data: TeamTreeNode


class CreateTeamNodeResponse(BaseModel):
    message: str
    id: str


class UpdateTeamNodeResponse(BaseModel):
    success: bool
    message: str
    data: TeamTreeNode
