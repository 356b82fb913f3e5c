"""
Exceptions raised by the team hierarchy core.

Read paths never raise for bad stored data (orphans, undecodable media);
those cases are logged and dropped where they occur. Only the conditions
below reach the caller.
"""

from __future__ import annotations


class OrgAdminError(Exception):
    """Base class for errors surfaced to API callers."""


class NodeNotFound(OrgAdminError):
    def __init__(self, node_id: str):
        super().__init__(f"Team node not found: {node_id}")
        self.node_id = node_id


class InvalidParent(OrgAdminError):
    """Requested parent is missing, the node itself, or one of its descendants."""


class UnsupportedMediaType(OrgAdminError):
    def __init__(self, content_type: str | None):
        super().__init__(f"Unsupported media type: {content_type}")
        self.content_type = content_type


class MediaTooLarge(OrgAdminError):
    def __init__(self, size: int, limit: int):
        super().__init__(f"Upload of {size} bytes exceeds limit of {limit} bytes")
        self.size = size
        self.limit = limit


class StorageWriteError(OrgAdminError):
    """Upload to object storage failed; no record was modified."""


class TreeBuildTimeout(OrgAdminError):
    def __init__(self, node_id: str, timeout: float):
        super().__init__(f"Building tree for {node_id} exceeded {timeout}s")
        self.node_id = node_id
        self.timeout = timeout
