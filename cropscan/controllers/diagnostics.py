from __future__ import annotations

import logging
from datetime import datetime
from typing import List

from fastapi import APIRouter, Depends, File, Form, Request, Response, UploadFile
from pydantic import BaseModel, ConfigDict, Field

from cropscan import db as db_module
from cropscan.dependencies import (
    get_logger,
    get_pipeline,
    get_storage,
    rate_limit,
    settings,
)
from cropscan.errors import (
    ApiError,
    ErrorResponse,
    ParseFailureResponse,
    UnknownError,
)
from cropscan.models import CropStatus, Diagnostic, Severity, as_utc
from cropscan.services.diagnostics import delete_diagnostic, get_diagnostic
from cropscan.services.history import get_history, get_scan_counts, parse_period
from cropscan.services.pipeline import DiagnosisPipeline
from cropscan.services.storage import BlobStore

logger = logging.getLogger(__name__)

OPTIONAL_FILE = File(None)

router = APIRouter()


class DiagnosticOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    disease: str
    confidence: int
    severity: Severity
    crop: str
    status: CropStatus
    treatment: str
    prevention: str
    image_url: str = Field(alias="imageUrl")
    created_at: datetime = Field(alias="createdAt")

    @classmethod
    def from_record(cls, record: Diagnostic) -> "DiagnosticOut":
        return cls(
            id=record.id,
            disease=record.disease,
            confidence=record.confidence,
            severity=record.severity,
            crop=record.crop or "Unknown",
            status=record.status,
            treatment=record.treatment or "",
            prevention=record.prevention or "",
            image_url=record.image_url,
            created_at=as_utc(record.created_at),
        )


class DiagnosticDetail(DiagnosticOut):
    farm_id: int = Field(alias="farmId")
    model_version: str = Field(alias="modelVersion")

    @classmethod
    def from_record(cls, record: Diagnostic) -> "DiagnosticDetail":
        base = DiagnosticOut.from_record(record).model_dump()
        return cls(
            **base, farm_id=record.farm_id, model_version=record.model_version
        )


class ScanStats(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    scans_today: int = Field(alias="scansToday")
    total_scans: int = Field(alias="totalScans")


@router.post(
    "/diagnostics",
    response_model=DiagnosticOut,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        502: {"model": ParseFailureResponse},
    },
)
async def create_diagnostic(
    request: Request,
    user_id: int = Depends(rate_limit),
    file: UploadFile | str | None = OPTIONAL_FILE,
    farm_id: str | None = Form(None, alias="farmId"),
    pipeline: DiagnosisPipeline = Depends(get_pipeline),
    log: logging.Logger = Depends(get_logger),
):
    try:
        record = await pipeline.run(
            user_id=user_id,
            upload=file,
            farm_ref=farm_id,
            is_disconnected=request.is_disconnected,
        )
    except ApiError:
        raise
    except Exception as exc:
        log.exception(
            "diagnosis.unexpected_error",
            extra={"context": {"user_id": user_id, "farm_ref": farm_id}},
        )
        raise UnknownError("Diagnosis failed") from exc
    return DiagnosticOut.from_record(record)


@router.get(
    "/diagnostics",
    response_model=List[DiagnosticOut],
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}},
)
async def list_diagnostic_history(
    period: str | None = None,
    user_id: int = Depends(rate_limit),
):
    window = parse_period(period)
    rows = await db_module.run_in_session(
        get_history, user_id=user_id, period=window, limit=settings.history_limit
    )
    return [DiagnosticOut.from_record(r) for r in rows]


@router.get(
    "/diagnostics/stats",
    response_model=ScanStats,
    responses={401: {"model": ErrorResponse}},
)
async def diagnostic_stats(user_id: int = Depends(rate_limit)):
    today, total = await db_module.run_in_session(get_scan_counts, user_id=user_id)
    return ScanStats(scans_today=today, total_scans=total)


@router.get(
    "/diagnostics/{diagnostic_id}",
    response_model=DiagnosticDetail,
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def get_diagnostic_detail(diagnostic_id: int, user_id: int = Depends(rate_limit)):
    record = await db_module.run_in_session(
        get_diagnostic, diagnostic_id=diagnostic_id, user_id=user_id
    )
    return DiagnosticDetail.from_record(record)


@router.delete(
    "/diagnostics/{diagnostic_id}",
    status_code=204,
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def remove_diagnostic(
    diagnostic_id: int,
    user_id: int = Depends(rate_limit),
    blob_store: BlobStore = Depends(get_storage),
):
    record = await db_module.run_in_session(
        delete_diagnostic, diagnostic_id=diagnostic_id, user_id=user_id
    )
    try:
        await blob_store.delete(record.image_url)
    except ApiError:
        logger.warning("Image %s kept after deleting diagnostic %s", record.image_url, record.id)
    return Response(status_code=204)
