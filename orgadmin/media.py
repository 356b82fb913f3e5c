"""
Media reference handling for team nodes.

Stored media references have taken several shapes over time: an array of
object keys (current), a single path string, a raw binary blob, a
base64-encoded path, or the JSON dump of a binary blob. Everything is
mapped to an ordered list of string keys here, and nowhere else.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
from typing import Any, Optional, Sequence

from orgadmin.storage import StorageClient

logger = logging.getLogger(__name__)

DEFAULT_SIGNED_URL_TTL = 900


def _looks_like_path(value: str) -> bool:
    return (
        "/" in value
        or "\\" in value
        or value.startswith("http")
    )


def _decode_text(raw: bytes) -> Optional[str]:
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        return None


def _normalize_string(value: str) -> list[str]:
    value = value.strip()
    if not value:
        return []
    if _looks_like_path(value):
        return [value]
    try:
        decoded = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        logger.warning("Discarding undecodable media reference %r", value[:64])
        return []
    text = _decode_text(decoded)
    if text is None:
        logger.warning("Discarding non-text base64 media reference %r", value[:64])
        return []
    text = text.strip()
    if not text or not _looks_like_path(text):
        logger.warning("Discarding base64 media reference without a path %r", value[:64])
        return []
    return [text]


def _buffer_payload(raw: dict) -> Optional[bytes]:
    # JSON form of a binary value: {"type": "Buffer", "data": [104, 105, ...]}
    if raw.get("type") != "Buffer" or not isinstance(raw.get("data"), list):
        return None
    try:
        return bytes(raw["data"])
    except (TypeError, ValueError):
        return None


def normalize_stored_value(raw: Any) -> list[str]:
    """
    Map any stored media representation to an ordered list of keys.

    Never raises: values that cannot produce a key contribute nothing.
    """
    if raw is None:
        return []
    if isinstance(raw, str):
        return _normalize_string(raw)
    if isinstance(raw, (bytes, bytearray, memoryview)):
        text = _decode_text(bytes(raw))
        if text is None:
            logger.warning("Discarding binary media reference that is not UTF-8")
            return []
        return _normalize_string(text)
    if isinstance(raw, dict):
        payload = _buffer_payload(raw)
        if payload is None:
            logger.warning("Discarding unrecognised media reference object")
            return []
        return normalize_stored_value(payload)
    if isinstance(raw, (list, tuple)):
        keys: list[str] = []
        for item in raw:
            if isinstance(item, str):
                # Array entries are already keys; no path sniffing.
                if item.strip():
                    keys.append(item.strip())
            elif item is not None:
                keys.extend(normalize_stored_value(item))
        return keys
    logger.warning("Discarding media reference of type %s", type(raw).__name__)
    return []


class MediaReferenceResolver:
    """Turns stored media references into URLs a client can load."""

    def __init__(
        self,
        storage: StorageClient,
        *,
        use_public_urls: bool = False,
        signed_url_ttl: int = DEFAULT_SIGNED_URL_TTL,
    ):
        self.storage = storage
        self.use_public_urls = use_public_urls
        self.signed_url_ttl = signed_url_ttl

    async def resolve_key_to_url(self, key: Any) -> Optional[str]:
        """Return a URL for ``key``, or None if it is empty or cannot be resolved."""
        if not isinstance(key, str):
            return None
        key = key.strip()
        if not key:
            return None
        if key.startswith(("http://", "https://")):
            return key
        try:
            if self.use_public_urls:
                return self.storage.public_url(key)
            return await asyncio.to_thread(
                self.storage.signed_url, key, self.signed_url_ttl
            )
        except Exception:
            logger.warning("Failed to resolve media URL for %s", key, exc_info=True)
            return None

    async def resolve_all(self, raw: Any) -> list[Optional[str]]:
        """
        Resolve every key in a stored value, keeping input order.

        A key that fails to resolve yields None at its position.
        """
        keys: Sequence[str] = normalize_stored_value(raw)
        if not keys:
            return []
        return list(
            await asyncio.gather(*(self.resolve_key_to_url(key) for key in keys))
        )
