"""Image-to-diagnosis orchestration.

Order of work: validate the upload, resolve the farm, call the model, parse
its reply, store the image, insert the record. The image is only written once
the model produced a usable diagnosis, so failed calls leave nothing behind.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import UploadFile

from cropscan import db as db_module
from cropscan.config import MAX_UPLOAD_BYTES
from cropscan.errors import (
    ApiError,
    ClientDisconnectedError,
    UpstreamParseError,
    UpstreamTimeoutError,
    ValidationError,
)
from cropscan.metrics import (
    ai_parse_failure_total,
    diag_created_total,
    diag_latency_seconds,
    diag_requests_total,
    diag_validation_reject_total,
    inference_timeout_total,
)
from cropscan.models import Diagnostic
from cropscan.services.diagnostics import create_diagnostic
from cropscan.services.farms import parse_farm_ref, resolve_farm_id
from cropscan.services.inference import InferenceClient, InferenceResult
from cropscan.services.parser import ParseFailure, parse_model_output
from cropscan.services.storage import BlobStore
from cropscan.services.validation import ValidatedUpload, read_upload

DisconnectCheck = Callable[[], Awaitable[bool]]


class DiagnosisPipeline:
    def __init__(
        self,
        *,
        inference: InferenceClient,
        blob_store: BlobStore,
        logger: logging.Logger,
        max_upload_bytes: int = MAX_UPLOAD_BYTES,
        poll_interval: float = 0.25,
    ) -> None:
        self.inference = inference
        self.blob_store = blob_store
        self.logger = logger
        self.max_upload_bytes = max_upload_bytes
        self.poll_interval = poll_interval

    async def run(
        self,
        *,
        user_id: int,
        upload: UploadFile | str | None,
        farm_ref: Any = None,
        is_disconnected: DisconnectCheck | None = None,
    ) -> Diagnostic:
        try:
            validated = await read_upload(upload, self.max_upload_bytes)
        except ValidationError:
            diag_validation_reject_total.inc()
            raise

        farm_id = parse_farm_ref(farm_ref)
        resolved_farm_id = await db_module.run_in_session(
            resolve_farm_id, user_id=user_id, farm_id=farm_id
        )

        diag_requests_total.inc()
        start = time.perf_counter()
        try:
            return await self._diagnose(
                user_id, resolved_farm_id, validated, is_disconnected
            )
        finally:
            diag_latency_seconds.observe(time.perf_counter() - start)

    async def _diagnose(
        self,
        user_id: int,
        farm_id: int,
        upload: ValidatedUpload,
        is_disconnected: DisconnectCheck | None,
    ) -> Diagnostic:
        context: dict[str, Any] = {"user_id": user_id, "farm_id": farm_id}
        try:
            result = await self._infer(upload, is_disconnected)
        except UpstreamTimeoutError:
            inference_timeout_total.inc()
            self.logger.warning(
                "diagnosis.inference_timeout", extra={"context": context}
            )
            raise
        except ClientDisconnectedError:
            self.logger.info(
                "diagnosis.client_disconnected", extra={"context": context}
            )
            raise

        parsed = parse_model_output(result.text)
        if isinstance(parsed, ParseFailure):
            ai_parse_failure_total.inc()
            self.logger.error(
                "diagnosis.parse_failed",
                extra={
                    "context": context
                    | {"reason": parsed.reason, "raw_len": len(parsed.raw)}
                },
            )
            raise UpstreamParseError(parsed.reason, parsed.raw)

        image_url = await self.blob_store.put(
            upload.data, upload.content_type, user_id=user_id
        )
        try:
            record = await db_module.run_in_session(
                create_diagnostic,
                farm_id=farm_id,
                image_url=image_url,
                payload=parsed,
                model_version=result.model_version,
            )
        except ApiError:
            await self._discard_image(image_url)
            raise

        diag_created_total.inc()
        self.logger.info(
            "diagnosis.created",
            extra={"context": context | {"diagnostic_id": record.id}},
        )
        return record

    async def _infer(
        self, upload: ValidatedUpload, is_disconnected: DisconnectCheck | None
    ) -> InferenceResult:
        """Await the model while watching for the client going away."""
        task = asyncio.ensure_future(
            self.inference.diagnose(upload.data, upload.content_type)
        )
        try:
            while True:
                done, _ = await asyncio.wait({task}, timeout=self.poll_interval)
                if task in done:
                    return task.result()
                if is_disconnected is not None and await is_disconnected():
                    raise ClientDisconnectedError("Client disconnected")
        finally:
            if not task.done():
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)

    async def _discard_image(self, image_url: str) -> None:
        try:
            await self.blob_store.delete(image_url)
        except ApiError:
            self.logger.warning("Orphaned image left at %s", image_url)
