"""
Create and update operations for team nodes.

Media replacement follows a fixed order: upload the new object, persist
the record pointing only at the new key, then delete the superseded
objects. A failed upload leaves the record untouched; a failed delete
leaves an unreferenced object behind and is only logged.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from orgadmin.db import HierarchyNode, HierarchyStore
from orgadmin.errors import (
    InvalidParent,
    MediaTooLarge,
    NodeNotFound,
    StorageWriteError,
    UnsupportedMediaType,
)
from orgadmin.media import normalize_stored_value
from orgadmin.storage import StorageClient

logger = logging.getLogger(__name__)

DEFAULT_ALLOWED_TYPES = frozenset({"image/jpeg", "image/png", "image/webp", "image/gif"})


@dataclass
class MediaUpload:
    data: bytes
    content_type: str
    filename: Optional[str] = None


@dataclass
class NodeFields:
    """Field values for create/update. Unset (None) fields are left alone on update."""

    name: Optional[str] = None
    role: Optional[str] = None
    group: Optional[str] = None
    # "" means "detach to root" on update.
    parent_id: Optional[str] = None

    def changes(self) -> dict:
        return {
            key: value
            for key, value in (
                ("name", self.name),
                ("role", self.role),
                ("group", self.group),
                ("parent_id", self.parent_id),
            )
            if value is not None
        }


class HierarchyAdminOps:
    def __init__(
        self,
        store: HierarchyStore,
        storage: StorageClient,
        *,
        media_folder: str = "team_profiles",
        allowed_types: Iterable[str] = DEFAULT_ALLOWED_TYPES,
        max_upload_bytes: int = 10 * 1024 * 1024,
    ):
        self.store = store
        self.storage = storage
        self.media_folder = media_folder
        self.allowed_types = frozenset(allowed_types)
        self.max_upload_bytes = max_upload_bytes

    def validate_upload(self, media: MediaUpload) -> None:
        if media.content_type not in self.allowed_types:
            raise UnsupportedMediaType(media.content_type)
        if len(media.data) > self.max_upload_bytes:
            raise MediaTooLarge(len(media.data), self.max_upload_bytes)

    async def _upload(self, media: MediaUpload, metadata: dict) -> str:
        try:
            return await asyncio.to_thread(
                self.storage.put,
                media.data,
                media.content_type,
                folder=self.media_folder,
                filename=media.filename,
                metadata=metadata,
            )
        except Exception as exc:
            logger.exception("Upload of team media failed")
            raise StorageWriteError("Failed to store uploaded media") from exc

    async def _delete_quietly(self, keys: Iterable[str], context: str) -> None:
        for key in keys:
            if key.startswith(("http://", "https://")):
                continue
            try:
                await asyncio.to_thread(self.storage.delete, key)
            except Exception:
                logger.warning(
                    "Failed to delete superseded media %s (%s)", key, context, exc_info=True
                )

    async def _check_parent(self, node_id: Optional[str], parent_id: str) -> None:
        """Parent must exist and must not sit below ``node_id``."""
        if node_id is not None and parent_id == node_id:
            raise InvalidParent("A team node cannot be its own parent")
        parent = await self.store.find_by_id(parent_id)
        if parent is None:
            raise InvalidParent(f"Parent team node not found: {parent_id}")
        if node_id is None:
            return
        seen = {parent_id}
        current = parent
        while current.parent_id:
            if current.parent_id == node_id:
                raise InvalidParent(
                    "A team node cannot be moved under one of its descendants"
                )
            if current.parent_id in seen:
                # Pre-existing cycle above the new parent; it does not involve node_id.
                break
            seen.add(current.parent_id)
            current = await self.store.find_by_id(current.parent_id)
            if current is None:
                break

    async def create(
        self, fields: NodeFields, media: Optional[MediaUpload] = None
    ) -> str:
        """Create a node and return its id. Media, if any, is uploaded first."""
        if fields.parent_id:
            await self._check_parent(None, fields.parent_id)
        media_refs: list[str] = []
        if media is not None:
            self.validate_upload(media)
            media_refs.append(await self._upload(media, {"entity": "team"}))
        node = await self.store.create(
            name=fields.name,
            role=fields.role,
            group=fields.group,
            parent_id=fields.parent_id or None,
            media_refs=media_refs,
        )
        logger.info("Created team node %s (parent=%s)", node.id, node.parent_id)
        return node.id

    async def update(
        self,
        node_id: str,
        fields: NodeFields,
        media: Optional[MediaUpload] = None,
    ) -> HierarchyNode:
        """
        Apply a partial update, replacing the node's media when ``media`` is given.

        Raises NodeNotFound, InvalidParent, UnsupportedMediaType, MediaTooLarge
        or StorageWriteError; none of these leave the record modified.
        """
        existing = await self.store.find_by_id(node_id)
        if existing is None:
            raise NodeNotFound(node_id)

        changes = fields.changes()
        if changes.get("parent_id"):
            await self._check_parent(node_id, changes["parent_id"])

        superseded: list[str] = []
        new_key: Optional[str] = None
        if media is not None:
            self.validate_upload(media)
            superseded = normalize_stored_value(existing.media_refs)
            new_key = await self._upload(
                media, {"entity": "team_profiles", "id": node_id}
            )
            changes["media_refs"] = [new_key]

        if not changes:
            return existing

        updated = await self.store.update_fields(node_id, changes)
        if updated is None:
            # Node vanished between read and write; the new object is unreferenced.
            if new_key:
                await self._delete_quietly([new_key], f"orphaned upload for {node_id}")
            raise NodeNotFound(node_id)

        if superseded:
            await self._delete_quietly(
                [key for key in superseded if key != new_key],
                f"update of {node_id}",
            )
        logger.info("Updated team node %s (%s)", node_id, ", ".join(sorted(changes)))
        return updated
