"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

from orgadmin.admin import HierarchyAdminOps
from orgadmin.config import get_settings
from orgadmin.db import HierarchyStore, InMemoryHierarchyStore, SqlHierarchyStore
from orgadmin.media import MediaReferenceResolver
from orgadmin.storage import InMemoryStorageClient, S3StorageClient, StorageClient
from orgadmin.tree import TreeBuilder

_hierarchy_store: HierarchyStore | None = None
_storage_client: StorageClient | None = None


def get_hierarchy_store() -> HierarchyStore:
    """
    Return a singleton store so in-memory state persists across requests.
    """
    global _hierarchy_store
    if _hierarchy_store:
        return _hierarchy_store

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.database_url:
        _hierarchy_store = InMemoryHierarchyStore()
    else:
        _hierarchy_store = SqlHierarchyStore(settings.database_url)
    return _hierarchy_store


def get_storage_client() -> StorageClient:
    global _storage_client
    if _storage_client:
        return _storage_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.s3_bucket:
        _storage_client = InMemoryStorageClient()
    else:
        _storage_client = S3StorageClient(
            bucket=settings.s3_bucket,
            region=settings.aws_region or "",
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
            endpoint=settings.s3_endpoint,
            acl=settings.s3_object_acl,
            public_base=settings.s3_public_base,
        )
    return _storage_client


def get_media_resolver() -> MediaReferenceResolver:
    settings = get_settings()
    return MediaReferenceResolver(
        get_storage_client(),
        use_public_urls=settings.use_public_urls,
        signed_url_ttl=settings.s3_signed_url_ttl,
    )


def get_tree_builder() -> TreeBuilder:
    settings = get_settings()
    return TreeBuilder(
        get_hierarchy_store(),
        get_media_resolver(),
        default_media_url=settings.default_media_url,
        timeout=settings.tree_build_timeout_seconds,
    )


def get_admin_ops() -> HierarchyAdminOps:
    settings = get_settings()
    return HierarchyAdminOps(
        get_hierarchy_store(),
        get_storage_client(),
        media_folder=settings.team_media_folder,
        allowed_types=settings.allowed_image_types,
        max_upload_bytes=settings.max_upload_bytes,
    )
