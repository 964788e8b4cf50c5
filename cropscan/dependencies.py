from __future__ import annotations

import logging

import redis.asyncio as redis
from redis.exceptions import RedisError
from fastapi import Depends, Header, Request

from cropscan.config import Settings
from cropscan.errors import (
    AuthError,
    RateLimitedError,
    ServiceUnavailableError,
    UpgradeRequiredError,
)
from cropscan.services.inference import InferenceClient, get_inference_client
from cropscan.services.pipeline import DiagnosisPipeline
from cropscan.services.storage import BlobStore, get_blob_store

settings = Settings()
redis_client = redis.from_url(settings.redis_url, encoding="utf-8", decode_responses=True)


logger = logging.getLogger(__name__)


async def require_api_headers(
    x_api_key: str | None = Header(None, alias="X-API-Key"),
    x_api_ver: str | None = Header(None, alias="X-API-Ver"),
    x_user_id: int | None = Header(None, alias="X-User-ID"),
) -> int:
    if x_api_ver is None:
        raise UpgradeRequiredError("Missing API version")

    if x_api_ver != "v1":
        raise UpgradeRequiredError("Invalid API version")

    if x_api_key != settings.api_key:
        raise AuthError("Invalid API key")

    if x_user_id is None:
        raise AuthError("Missing user ID")

    return x_user_id


async def rate_limit(request: Request, user_id: int = Depends(require_api_headers)) -> int:
    """Throttle requests by IP and user via Redis."""
    client_host = request.client.host if request.client else ""
    ip = client_host
    xff = request.headers.get("X-Forwarded-For")
    if xff and client_host in settings.trusted_proxies:
        forwarded = [h.strip() for h in xff.split(",") if h.strip()]
        proxies = forwarded[1:] + [client_host]
        if forwarded and all(p in settings.trusted_proxies for p in proxies):
            ip = forwarded[0]
    ip_key = f"rate:ip:{ip}"
    user_key = f"rate:user:{user_id}"

    try:
        pipe = redis_client.pipeline()
        pipe.incr(ip_key)
        pipe.expire(ip_key, 60)
        pipe.incr(user_key)
        pipe.expire(user_key, 60)
        ip_count, _, user_count, _ = await pipe.execute()
    except RedisError as exc:
        logger.exception("Redis unavailable for rate limiting: %s", exc)
        raise ServiceUnavailableError("Rate limiter unavailable") from exc
    if (
        ip_count > settings.rate_limit_ip_per_min
        or user_count > settings.rate_limit_user_per_min
    ):
        raise RateLimitedError("Rate limit exceeded")

    return user_id


def get_logger() -> logging.Logger:
    return logging.getLogger("cropscan.diagnosis")


def get_inference() -> InferenceClient:
    return get_inference_client()


def get_storage() -> BlobStore:
    return get_blob_store()


def get_pipeline(
    inference: InferenceClient = Depends(get_inference),
    blob_store: BlobStore = Depends(get_storage),
    log: logging.Logger = Depends(get_logger),
) -> DiagnosisPipeline:
    return DiagnosisPipeline(
        inference=inference,
        blob_store=blob_store,
        logger=log,
        max_upload_bytes=settings.max_upload_bytes,
    )
