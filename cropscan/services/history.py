from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum

from sqlalchemy.orm import Session

from cropscan.errors import ErrorCode, ValidationError
from cropscan.models import Diagnostic
from cropscan.services.diagnostics import HISTORY_LIMIT, count_diagnostics, list_diagnostics
from cropscan.services.farms import list_farm_ids


class HistoryPeriod(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"
    ALL = "all"


# Rolling windows measured back from "now", not calendar boundaries
_WINDOWS = {
    HistoryPeriod.DAY: timedelta(hours=24),
    HistoryPeriod.WEEK: timedelta(days=7),
    HistoryPeriod.MONTH: timedelta(days=30),
    HistoryPeriod.YEAR: timedelta(days=365),
}


def parse_period(value: str | None) -> HistoryPeriod:
    if value is None or not value.strip():
        return HistoryPeriod.ALL
    try:
        return HistoryPeriod(value.strip().lower())
    except ValueError as exc:
        raise ValidationError(
            "period must be one of day, week, month, year, all",
            ErrorCode.INVALID_PERIOD,
        ) from exc


def window_start(period: HistoryPeriod, now: datetime | None = None) -> datetime | None:
    window = _WINDOWS.get(period)
    if window is None:
        return None
    return (now or datetime.now(timezone.utc)) - window


def get_history(
    db: Session,
    *,
    user_id: int,
    period: HistoryPeriod = HistoryPeriod.ALL,
    now: datetime | None = None,
    limit: int = HISTORY_LIMIT,
) -> list[Diagnostic]:
    """Newest-first diagnostics across every farm of ``user_id``."""
    farm_ids = list_farm_ids(db, user_id=user_id)
    if not farm_ids:
        return []
    return list_diagnostics(
        db, farm_ids, since=window_start(period, now), limit=limit
    )


def get_scan_counts(
    db: Session, *, user_id: int, now: datetime | None = None
) -> tuple[int, int]:
    """Return (last 24h, all time) diagnostic counts for the dashboard."""
    farm_ids = list_farm_ids(db, user_id=user_id)
    if not farm_ids:
        return 0, 0
    today = count_diagnostics(
        db, farm_ids, since=window_start(HistoryPeriod.DAY, now)
    )
    return today, count_diagnostics(db, farm_ids)
