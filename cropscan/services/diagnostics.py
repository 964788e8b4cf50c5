from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from cropscan.errors import NotFoundError
from cropscan.models import Diagnostic, Farm
from cropscan.services.parser import DiagnosticPayload

HISTORY_LIMIT = 50


def create_diagnostic(
    db: Session,
    *,
    farm_id: int,
    image_url: str,
    payload: DiagnosticPayload,
    model_version: str,
) -> Diagnostic:
    """Persist a parsed diagnosis for ``farm_id``."""
    record = Diagnostic(
        farm_id=farm_id,
        image_url=image_url,
        disease=payload.disease,
        confidence=payload.confidence,
        severity=payload.severity,
        status=payload.status,
        crop=payload.crop,
        treatment=payload.treatment,
        prevention=payload.prevention,
        model_version=model_version,
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def list_diagnostics(
    db: Session,
    farm_ids: Sequence[int],
    *,
    since: datetime | None = None,
    limit: int = HISTORY_LIMIT,
) -> list[Diagnostic]:
    if not farm_ids or limit <= 0:
        return []
    query = select(Diagnostic).where(Diagnostic.farm_id.in_(list(farm_ids)))
    if since is not None:
        query = query.where(Diagnostic.created_at >= since)
    query = query.order_by(Diagnostic.created_at.desc(), Diagnostic.id.desc()).limit(limit)
    return list(db.execute(query).scalars())


def count_diagnostics(
    db: Session,
    farm_ids: Sequence[int],
    *,
    since: datetime | None = None,
) -> int:
    if not farm_ids:
        return 0
    query = select(func.count(Diagnostic.id)).where(
        Diagnostic.farm_id.in_(list(farm_ids))
    )
    if since is not None:
        query = query.where(Diagnostic.created_at >= since)
    return int(db.execute(query).scalar_one())


def get_diagnostic(db: Session, *, diagnostic_id: int, user_id: int) -> Diagnostic:
    """Return a record only if its farm belongs to ``user_id``."""
    record = db.execute(
        select(Diagnostic)
        .join(Farm, Farm.id == Diagnostic.farm_id)
        .where(Diagnostic.id == diagnostic_id, Farm.user_id == user_id)
    ).scalar_one_or_none()
    if record is None:
        raise NotFoundError("Diagnostic not found")
    return record


def delete_diagnostic(db: Session, *, diagnostic_id: int, user_id: int) -> Diagnostic:
    """Delete a record after checking ownership; returns the deleted row.

    Missing and foreign records both raise NotFoundError so callers cannot
    probe ids belonging to other tenants.
    """
    record = get_diagnostic(db, diagnostic_id=diagnostic_id, user_id=user_id)
    db.execute(delete(Diagnostic).where(Diagnostic.id == record.id))
    db.commit()
    return record
