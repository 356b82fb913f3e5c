"""
Storage abstraction for S3 object storage and in-memory testing.
"""

from __future__ import annotations

import os
import uuid
from dataclasses import dataclass, field
from typing import Optional, Protocol
from urllib.parse import quote

import boto3
from botocore.config import Config


class StorageClient(Protocol):
    """Defines the operations the API needs from object storage."""

    def put(
        self,
        data: bytes,
        content_type: str,
        *,
        folder: Optional[str] = None,
        filename: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> str:
        ...

    def delete(self, key: str) -> None:
        ...

    def signed_url(self, key: str, expires_in: int = 900) -> str:
        ...

    def public_url(self, key: str) -> str:
        ...


def make_key(folder: Optional[str], filename: Optional[str]) -> str:
    """Build a fresh object key, keeping the upload's file extension."""
    ext = os.path.splitext(filename)[1] if filename else ""
    name = f"{uuid.uuid4()}{ext}"
    return f"{folder}/{name}" if folder else name


@dataclass
class InMemoryStorageClient:
    """Test double for storage interactions."""

    base_url: str = "https://example.test/storage"
    stored_objects: dict = field(default_factory=dict)

    def put(
        self,
        data: bytes,
        content_type: str,
        *,
        folder: Optional[str] = None,
        filename: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> str:
        key = make_key(folder, filename)
        self.stored_objects[key] = {
            "body": bytes(data),
            "content_type": content_type,
            "metadata": dict(metadata or {}),
        }
        return key

    def delete(self, key: str) -> None:
        if not key:
            return
        self.stored_objects.pop(key, None)

    def signed_url(self, key: str, expires_in: int = 900) -> str:
        return f"{self.base_url}/{key}?op=get&expires={expires_in}"

    def public_url(self, key: str) -> str:
        return f"{self.base_url}/{key}"

    def reset(self) -> None:
        self.stored_objects.clear()


@dataclass
class S3StorageClient:
    """
    boto3-backed client for AWS S3 or any S3-compatible endpoint.
    """

    bucket: str
    region: str
    access_key_id: str
    secret_access_key: str
    endpoint: Optional[str] = None
    acl: str = "private"
    public_base: Optional[str] = None

    def __post_init__(self):
        config = Config(signature_version="s3v4")
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint or None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id or None,
            aws_secret_access_key=self.secret_access_key or None,
            config=config,
        )

    def put(
        self,
        data: bytes,
        content_type: str,
        *,
        folder: Optional[str] = None,
        filename: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> str:
        key = make_key(folder, filename)
        self._client.put_object(
            Bucket=self.bucket,
            Key=key,
            Body=data,
            ContentType=content_type,
            ACL=self.acl,
            Metadata={k: str(v) for k, v in (metadata or {}).items()},
        )
        return key

    def delete(self, key: str) -> None:
        # S3 DeleteObject succeeds for keys that are already gone.
        if not key:
            return
        self._client.delete_object(Bucket=self.bucket, Key=key)

    def signed_url(self, key: str, expires_in: int = 900) -> str:
        return self._client.generate_presigned_url(
            ClientMethod="get_object",
            Params={"Bucket": self.bucket, "Key": key},
            ExpiresIn=expires_in,
        )

    def public_url(self, key: str) -> str:
        # Only readable if the object was uploaded with a public-read ACL.
        path = quote(key)
        if self.public_base:
            return f"{self.public_base.rstrip('/')}/{path}"
        if not self.region:
            return f"https://{self.bucket}.s3.amazonaws.com/{path}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{path}"
