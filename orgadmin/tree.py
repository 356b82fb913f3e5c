"""
Reconstruct team hierarchy subtrees from flat node records.

The store acts as the arena: every level re-reads nodes by id and lists
children by parent id, so no parent/child object graph is kept between
requests. Sibling subtrees are built concurrently; each child build runs
as its own task, so deep trees do not grow the Python call stack.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from orgadmin.db import HierarchyNode, HierarchyStore
from orgadmin.errors import NodeNotFound, TreeBuildTimeout
from orgadmin.media import MediaReferenceResolver

logger = logging.getLogger(__name__)


@dataclass
class TreeNode:
    id: str
    name: Optional[str]
    role: Optional[str]
    group: Optional[str]
    parent_id: Optional[str]
    created_at: Optional[float]
    display_media: list[str]
    primary_media: str
    children: list["TreeNode"] = field(default_factory=list)

    def _fields(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "role": self.role,
            "group": self.group,
            "parentId": self.parent_id,
            "createdAt": self.created_at,
            "displayMedia": list(self.display_media),
            "primaryMedia": self.primary_media,
            "children": [],
        }

    def as_dict(self) -> dict:
        # Explicit stack: trees may be deeper than the interpreter recursion limit.
        root = self._fields()
        stack = [(self, root)]
        while stack:
            node, out = stack.pop()
            for child in node.children:
                child_out = child._fields()
                out["children"].append(child_out)
                stack.append((child, child_out))
        return root

    def count(self) -> int:
        total = 0
        stack = [self]
        while stack:
            node = stack.pop()
            total += 1
            stack.extend(node.children)
        return total


class TreeBuilder:
    def __init__(
        self,
        store: HierarchyStore,
        resolver: MediaReferenceResolver,
        *,
        default_media_url: str,
        timeout: Optional[float] = None,
    ):
        self.store = store
        self.resolver = resolver
        self.default_media_url = default_media_url
        self.timeout = timeout

    async def build_tree(self, node_id: str) -> TreeNode:
        """
        Build the subtree rooted at ``node_id``.

        Raises NodeNotFound if the root does not exist and TreeBuildTimeout
        if the whole build takes longer than the configured bound.
        """
        try:
            tree = await asyncio.wait_for(self.build(node_id), timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            raise TreeBuildTimeout(node_id, self.timeout) from exc
        if tree is None:
            raise NodeNotFound(node_id)
        return tree

    async def build(
        self, node_id: str, ancestors: frozenset[str] = frozenset()
    ) -> Optional[TreeNode]:
        """Build one subtree; None when the node no longer exists."""
        node = await self.store.find_by_id(node_id)
        if node is None:
            if ancestors:
                logger.warning("Dropping missing team node %s from tree", node_id)
            return None

        media_urls, children = await asyncio.gather(
            self._resolve_media(node),
            self.store.find_children(node_id),
        )

        path = ancestors | {node_id}
        child_builds = []
        for child in children:
            if child.id in path:
                logger.warning(
                    "Cycle detected: team node %s is an ancestor of %s; skipping",
                    child.id,
                    node_id,
                )
                continue
            child_builds.append(self.build(child.id, path))

        # gather() returns results in submission order, not completion order.
        subtrees = await asyncio.gather(*child_builds)
        return self._assemble(
            node, media_urls, [tree for tree in subtrees if tree is not None]
        )

    async def build_node(self, node: HierarchyNode) -> TreeNode:
        """A single node with media resolved and no children."""
        return self._assemble(node, await self._resolve_media(node), [])

    async def _resolve_media(self, node: HierarchyNode) -> list[str]:
        urls = await self.resolver.resolve_all(node.media_refs)
        return [url for url in urls if url]

    def _assemble(
        self, node: HierarchyNode, media_urls: list[str], children: list[TreeNode]
    ) -> TreeNode:
        return TreeNode(
            id=node.id,
            name=node.name,
            role=node.role,
            group=node.group,
            parent_id=node.parent_id,
            created_at=node.created_at,
            display_media=media_urls,
            primary_media=media_urls[0] if media_urls else self.default_media_url,
            children=children,
        )
