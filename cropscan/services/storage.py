"""Image persistence behind a small ``BlobStore`` interface.

Three backends exist: local disk (served as static files), S3-compatible
object storage via aioboto3, and an in-memory dict used by tests and local
development. ``BLOB_BACKEND`` selects one.
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from asyncio import Lock
from contextlib import AbstractAsyncContextManager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol
from uuid import uuid4

import aioboto3
from botocore.exceptions import BotoCoreError, ClientError

from cropscan.config import Settings
from cropscan.errors import PersistenceError

logger = logging.getLogger("storage")

_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
}


def extension_for(content_type: str) -> str:
    return _EXTENSIONS.get(content_type, ".jpg")


def build_object_name(
    purpose: str,
    user_id: int,
    content_type: str,
    now: datetime | None = None,
) -> str:
    """``diag_42_20261019101500123456_1a2b3c4d.png`` style names."""
    ts = (now or datetime.now(timezone.utc)).strftime("%Y%m%d%H%M%S%f")
    return f"{purpose}_{user_id}_{ts}_{uuid4().hex[:8]}{extension_for(content_type)}"


class BlobStore(Protocol):
    async def put(
        self, data: bytes, content_type: str, *, user_id: int, purpose: str = "diag"
    ) -> str: ...

    async def delete(self, url: str) -> None: ...


class MemoryBlobStore:
    """Keeps objects in a dict keyed by their URL."""

    def __init__(self) -> None:
        self.objects: dict[str, tuple[bytes, str]] = {}

    async def put(
        self, data: bytes, content_type: str, *, user_id: int, purpose: str = "diag"
    ) -> str:
        url = f"memory://{build_object_name(purpose, user_id, content_type)}"
        self.objects[url] = (bytes(data), content_type)
        return url

    async def delete(self, url: str) -> None:
        self.objects.pop(url, None)


class LocalBlobStore:
    """Writes files under ``root`` and returns URLs under ``url_prefix``."""

    def __init__(self, root: str | os.PathLike[str], url_prefix: str) -> None:
        self.root = Path(root)
        self.url_prefix = url_prefix.rstrip("/")

    async def put(
        self, data: bytes, content_type: str, *, user_id: int, purpose: str = "diag"
    ) -> str:
        name = build_object_name(purpose, user_id, content_type)
        try:
            await asyncio.to_thread(self._write_atomic, name, data)
        except OSError as exc:
            logger.exception("Local image write failed: %s", exc)
            raise PersistenceError("Image upload failed") from exc
        return f"{self.url_prefix}/{name}"

    def _write_atomic(self, name: str, data: bytes) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.root, prefix=".tmp-", suffix=".part")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_path, self.root / name)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    def path_for(self, url: str) -> Path | None:
        prefix = f"{self.url_prefix}/"
        if not url.startswith(prefix):
            return None
        name = url[len(prefix):]
        if not name or "/" in name or name.startswith("."):
            return None
        return self.root / name

    async def delete(self, url: str) -> None:
        path = self.path_for(url)
        if path is None:
            logger.warning("Refusing to delete foreign URL %s", url)
            return
        try:
            await asyncio.to_thread(path.unlink, missing_ok=True)
        except OSError as exc:
            logger.exception("Local image delete failed: %s", exc)
            raise PersistenceError("Image delete failed") from exc


class S3BlobStore:
    """S3-compatible storage with a lazily created, cached aioboto3 client."""

    def __init__(self, cfg: Settings) -> None:
        self.bucket = cfg.s3_bucket
        self.endpoint = cfg.s3_endpoint
        self.region = cfg.s3_region
        self.access_key = cfg.s3_access_key
        self.secret_key = cfg.s3_secret_key
        self.public_url = cfg.s3_public_url
        self._client_ctx: AbstractAsyncContextManager[Any] | None = None
        self._client: Any = None
        self._client_lock = Lock()

    async def _make_client(self) -> Any:
        session = aioboto3.Session()
        client_ctx = session.client(
            "s3",
            endpoint_url=self.endpoint,
            region_name=self.region,
            aws_access_key_id=self.access_key,
            aws_secret_access_key=self.secret_key,
        )
        try:
            client = await client_ctx.__aenter__()
        except Exception as exc:
            try:
                await client_ctx.__aexit__(None, None, None)
            except Exception:  # pragma: no cover - best effort cleanup
                logger.exception("Failed to close S3 client after failed entry")
            logger.exception("Failed to create S3 client: %s", exc)
            raise
        self._client_ctx = client_ctx
        return client

    async def get_client(self) -> Any:
        """Return a cached client, creating it if needed."""
        if self._client is not None:
            return self._client

        async with self._client_lock:
            if self._client is None:
                self._client = await self._make_client()
            return self._client

    async def close(self) -> None:
        if self._client_ctx is not None:
            try:
                await self._client_ctx.__aexit__(None, None, None)
            except Exception:  # pragma: no cover - best effort cleanup
                logger.exception("Failed to close S3 client")
        self._client = None
        self._client_ctx = None

    def public_url_for(self, key: str) -> str:
        if self.public_url:
            return f"{self.public_url.rstrip('/')}/{key}"
        if self.endpoint:
            return f"{self.endpoint.rstrip('/')}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    def key_for(self, url: str) -> str | None:
        prefix = self.public_url_for("")
        if url.startswith(prefix):
            return url[len(prefix):] or None
        return None

    async def put(
        self, data: bytes, content_type: str, *, user_id: int, purpose: str = "diag"
    ) -> str:
        key = f"{purpose}/{build_object_name(purpose, user_id, content_type)}"
        try:
            client = await self.get_client()
            await client.put_object(
                Bucket=self.bucket, Key=key, Body=data, ContentType=content_type
            )
        except (BotoCoreError, ClientError) as exc:
            logger.exception("S3 upload failed: %s", exc)
            raise PersistenceError("Image upload failed") from exc
        return self.public_url_for(key)

    async def delete(self, url: str) -> None:
        key = self.key_for(url)
        if key is None:
            logger.warning("Refusing to delete foreign URL %s", url)
            return
        try:
            client = await self.get_client()
            await client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            logger.exception("S3 delete failed: %s", exc)
            raise PersistenceError("Image delete failed") from exc


_store: BlobStore | None = None


def build_blob_store(cfg: Settings) -> BlobStore:
    backend = cfg.blob_backend.strip().lower()
    if backend == "s3":
        return S3BlobStore(cfg)
    if backend == "memory":
        return MemoryBlobStore()
    if backend == "local":
        return LocalBlobStore(cfg.upload_dir, cfg.upload_url_prefix)
    raise ValueError(f"Unknown BLOB_BACKEND: {cfg.blob_backend!r}")


async def init_storage(cfg: Settings) -> BlobStore:
    """Build the configured store, closing any previous one."""
    global _store
    await close_storage()
    _store = build_blob_store(cfg)
    return _store


async def close_storage() -> None:
    global _store
    if isinstance(_store, S3BlobStore):
        await _store.close()
    _store = None


def get_blob_store() -> BlobStore:
    if _store is None:
        raise RuntimeError("Storage not initialized")
    return _store
