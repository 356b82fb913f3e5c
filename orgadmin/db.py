"""
Persistence for team hierarchy nodes: SQLAlchemy and an in-memory test implementation.

Nodes are stored flat, each with a back-reference to its parent. Nothing
here enforces acyclicity or cascades deletes; children of a removed node
simply point at an id that no longer exists.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional, Protocol

from sqlalchemy import JSON, Column, Float, String, create_engine, select
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from orgadmin.media import normalize_stored_value

MUTABLE_FIELDS = ("name", "role", "group", "parent_id", "media_refs")


@dataclass
class HierarchyNode:
    id: str
    name: Optional[str] = None
    role: Optional[str] = None
    group: Optional[str] = None
    parent_id: Optional[str] = None
    # Raw stored value; may still be a legacy shape on read.
    media_refs: Any = field(default_factory=list)
    created_at: float = field(default_factory=lambda: time.time())
    updated_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "role": self.role,
            "group": self.group,
            "parent_id": self.parent_id,
            "media_refs": self.media_refs,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


class HierarchyStore(Protocol):
    """Interface for hierarchy node persistence."""

    async def find_by_id(self, node_id: str) -> Optional[HierarchyNode]:
        ...

    async def find_children(self, parent_id: str) -> list[HierarchyNode]:
        ...

    async def create(
        self,
        *,
        name: Optional[str] = None,
        role: Optional[str] = None,
        group: Optional[str] = None,
        parent_id: Optional[str] = None,
        media_refs: Any = None,
    ) -> HierarchyNode:
        ...

    async def upsert(self, node: HierarchyNode) -> HierarchyNode:
        ...

    async def update_fields(
        self, node_id: str, fields: dict
    ) -> Optional[HierarchyNode]:
        ...


def _check_fields(fields: dict) -> dict:
    unknown = set(fields) - set(MUTABLE_FIELDS)
    if unknown:
        raise ValueError(f"Unknown node fields: {sorted(unknown)}")
    cleaned = dict(fields)
    if "media_refs" in cleaned:
        cleaned["media_refs"] = normalize_stored_value(cleaned["media_refs"])
    if "parent_id" in cleaned and not cleaned["parent_id"]:
        cleaned["parent_id"] = None
    return cleaned


class InMemoryHierarchyStore:
    """Simple in-memory store for development and tests."""

    def __init__(self):
        self.nodes: Dict[str, HierarchyNode] = {}

    def seed(self, node: HierarchyNode) -> HierarchyNode:
        """Insert a node verbatim, legacy media shapes included (tests only)."""
        self.nodes[node.id] = node
        return node

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.nodes.clear()

    async def find_by_id(self, node_id: str) -> Optional[HierarchyNode]:
        node = self.nodes.get(node_id)
        return replace(node) if node else None

    async def find_children(self, parent_id: str) -> list[HierarchyNode]:
        # sorted() is stable, so equal timestamps keep insertion order.
        children = [n for n in self.nodes.values() if n.parent_id == parent_id]
        return [replace(n) for n in sorted(children, key=lambda n: n.created_at)]

    async def create(
        self,
        *,
        name: Optional[str] = None,
        role: Optional[str] = None,
        group: Optional[str] = None,
        parent_id: Optional[str] = None,
        media_refs: Any = None,
    ) -> HierarchyNode:
        node = HierarchyNode(
            id=uuid.uuid4().hex,
            name=name,
            role=role,
            group=group,
            parent_id=parent_id or None,
            media_refs=media_refs,
        )
        return await self.upsert(node)

    async def upsert(self, node: HierarchyNode) -> HierarchyNode:
        stored = replace(
            node,
            parent_id=node.parent_id or None,
            media_refs=normalize_stored_value(node.media_refs),
            updated_at=time.time(),
        )
        existing = self.nodes.get(node.id)
        if existing:
            stored.created_at = existing.created_at
        self.nodes[node.id] = stored
        return replace(stored)

    async def update_fields(
        self, node_id: str, fields: dict
    ) -> Optional[HierarchyNode]:
        cleaned = _check_fields(fields)
        node = self.nodes.get(node_id)
        if not node:
            return None
        for name, value in cleaned.items():
            setattr(node, name, value)
        node.updated_at = time.time()
        return replace(node)


class SqlHierarchyStore:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).

    The ORM is synchronous; each call runs in a worker thread so the event
    loop keeps serving other requests while the database answers.
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlHierarchyStore")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    def _to_node(self, row: "TeamNodeRow") -> HierarchyNode:
        return HierarchyNode(
            id=row.id,
            name=row.name,
            role=row.role,
            group=row.group_name,
            parent_id=row.parent_id,
            media_refs=row.media_refs,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def _find_by_id(self, node_id: str) -> Optional[HierarchyNode]:
        with self.Session() as session:
            row = session.get(TeamNodeRow, node_id)
            return self._to_node(row) if row else None

    def _find_children(self, parent_id: str) -> list[HierarchyNode]:
        with self.Session() as session:
            stmt = (
                select(TeamNodeRow)
                .where(TeamNodeRow.parent_id == parent_id)
                .order_by(TeamNodeRow.created_at.asc(), TeamNodeRow.id.asc())
            )
            return [self._to_node(row) for row in session.execute(stmt).scalars()]

    def _upsert(self, node: HierarchyNode) -> HierarchyNode:
        now = time.time()
        with self.Session() as session:
            row = session.get(TeamNodeRow, node.id)
            if row is None:
                row = TeamNodeRow(id=node.id, created_at=node.created_at)
                session.add(row)
            row.name = node.name
            row.role = node.role
            row.group_name = node.group
            row.parent_id = node.parent_id or None
            row.media_refs = normalize_stored_value(node.media_refs)
            row.updated_at = now
            session.commit()
            session.refresh(row)
            return self._to_node(row)

    def _update_fields(self, node_id: str, fields: dict) -> Optional[HierarchyNode]:
        with self.Session() as session:
            row = session.get(TeamNodeRow, node_id)
            if not row:
                return None
            for name, value in fields.items():
                setattr(row, "group_name" if name == "group" else name, value)
            row.updated_at = time.time()
            session.commit()
            session.refresh(row)
            return self._to_node(row)

    async def find_by_id(self, node_id: str) -> Optional[HierarchyNode]:
        return await asyncio.to_thread(self._find_by_id, node_id)

    async def find_children(self, parent_id: str) -> list[HierarchyNode]:
        return await asyncio.to_thread(self._find_children, parent_id)

    async def create(
        self,
        *,
        name: Optional[str] = None,
        role: Optional[str] = None,
        group: Optional[str] = None,
        parent_id: Optional[str] = None,
        media_refs: Any = None,
    ) -> HierarchyNode:
        node = HierarchyNode(
            id=uuid.uuid4().hex,
            name=name,
            role=role,
            group=group,
            parent_id=parent_id or None,
            media_refs=media_refs,
        )
        return await self.upsert(node)

    async def upsert(self, node: HierarchyNode) -> HierarchyNode:
        return await asyncio.to_thread(self._upsert, node)

    async def update_fields(
        self, node_id: str, fields: dict
    ) -> Optional[HierarchyNode]:
        cleaned = _check_fields(fields)
        return await asyncio.to_thread(self._update_fields, node_id, cleaned)


Base = declarative_base()


class TeamNodeRow(Base):
    __tablename__ = "team_nodes"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=True)
    role = Column(String, nullable=True)
    group_name = Column("group", String, nullable=True)
    parent_id = Column(String, nullable=True, index=True)
    media_refs = Column(JSON, nullable=True)
    created_at = Column(Float, nullable=False, index=True)
    updated_at = Column(Float, nullable=False)
