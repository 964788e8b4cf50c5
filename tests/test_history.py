from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from cropscan.db import SessionLocal
from cropscan.errors import ErrorCode, ValidationError
from cropscan.services.diagnostics import count_diagnostics, list_diagnostics
from cropscan.services.history import (
    HistoryPeriod,
    get_history,
    get_scan_counts,
    parse_period,
    window_start,
)
from tests.utils.auth import build_auth_headers

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "period, delta",
    [
        (HistoryPeriod.DAY, timedelta(hours=24)),
        (HistoryPeriod.WEEK, timedelta(days=7)),
        (HistoryPeriod.MONTH, timedelta(days=30)),
        (HistoryPeriod.YEAR, timedelta(days=365)),
    ],
)
def test_windows_are_rolling(period, delta):
    assert window_start(period, NOW) == NOW - delta


def test_all_has_no_lower_bound():
    assert window_start(HistoryPeriod.ALL, NOW) is None


def test_parse_period():
    assert parse_period(None) is HistoryPeriod.ALL
    assert parse_period("") is HistoryPeriod.ALL
    assert parse_period("Week") is HistoryPeriod.WEEK
    with pytest.raises(ValidationError) as exc:
        parse_period("fortnight")
    assert exc.value.code == ErrorCode.INVALID_PERIOD


def _seed_ages(make_farm, make_diagnostic, user_id=1):
    farm = make_farm(user_id)
    ages = {
        "hour": timedelta(hours=1),
        "two_days": timedelta(days=2),
        "two_weeks": timedelta(days=14),
        "two_months": timedelta(days=60),
        "two_years": timedelta(days=730),
    }
    ids = {
        name: make_diagnostic(farm, created_at=NOW - age, disease=name)
        for name, age in ages.items()
    }
    return farm, ids


@pytest.mark.parametrize(
    "period, expected",
    [
        (HistoryPeriod.DAY, ["hour"]),
        (HistoryPeriod.WEEK, ["hour", "two_days"]),
        (HistoryPeriod.MONTH, ["hour", "two_days", "two_weeks"]),
        (HistoryPeriod.YEAR, ["hour", "two_days", "two_weeks", "two_months"]),
        (HistoryPeriod.ALL, ["hour", "two_days", "two_weeks", "two_months", "two_years"]),
    ],
)
def test_history_filters_by_window(make_farm, make_diagnostic, period, expected):
    _seed_ages(make_farm, make_diagnostic)
    with SessionLocal() as db:
        rows = get_history(db, user_id=1, period=period, now=NOW)
    assert [r.disease for r in rows] == expected


def test_history_aggregates_all_user_farms(make_farm, make_diagnostic):
    a = make_farm(1, "A")
    b = make_farm(1, "B")
    foreign = make_farm(2, "Foreign")
    make_diagnostic(a, created_at=NOW - timedelta(hours=3), disease="a")
    make_diagnostic(b, created_at=NOW - timedelta(hours=2), disease="b")
    make_diagnostic(foreign, created_at=NOW - timedelta(hours=1), disease="foreign")
    with SessionLocal() as db:
        rows = get_history(db, user_id=1, period=HistoryPeriod.ALL, now=NOW)
    assert [r.disease for r in rows] == ["b", "a"]


def test_history_without_farms_is_empty(make_farm, make_diagnostic):
    make_diagnostic(make_farm(2))
    with SessionLocal() as db:
        assert get_history(db, user_id=1) == []


def test_history_is_capped_and_newest_first(make_farm, make_diagnostic):
    farm = make_farm(1)
    for i in range(55):
        make_diagnostic(farm, created_at=NOW - timedelta(minutes=i), disease=f"d{i}")
    with SessionLocal() as db:
        rows = get_history(db, user_id=1, now=NOW)
    assert len(rows) == 50
    assert rows[0].disease == "d0"
    assert rows[-1].disease == "d49"


def test_same_timestamp_orders_by_id(make_farm, make_diagnostic):
    farm = make_farm(1)
    first = make_diagnostic(farm, created_at=NOW)
    second = make_diagnostic(farm, created_at=NOW)
    with SessionLocal() as db:
        rows = list_diagnostics(db, [farm])
    assert [r.id for r in rows] == [second, first]


def test_list_with_no_farm_ids_is_empty():
    with SessionLocal() as db:
        assert list_diagnostics(db, []) == []
        assert count_diagnostics(db, []) == 0


def test_scan_counts(make_farm, make_diagnostic):
    farm, _ = _seed_ages(make_farm, make_diagnostic)
    with SessionLocal() as db:
        assert get_scan_counts(db, user_id=1, now=NOW) == (1, 5)
        assert get_scan_counts(db, user_id=9, now=NOW) == (0, 0)


def test_history_endpoint_rejects_unknown_period(client):
    resp = client.get("/v1/diagnostics?period=decade", headers=build_auth_headers(1))
    assert resp.status_code == 400
    assert resp.json()["code"] == "INVALID_PERIOD"


def test_history_endpoint_without_farms(client):
    resp = client.get("/v1/diagnostics?period=week", headers=build_auth_headers(77))
    assert resp.status_code == 200
    assert resp.json() == []


def test_history_endpoint_is_idempotent(client, make_farm, make_diagnostic):
    farm = make_farm(1)
    now = datetime.now(timezone.utc)
    for i in range(3):
        make_diagnostic(farm, created_at=now - timedelta(hours=i + 1))
    first = client.get("/v1/diagnostics?period=week", headers=build_auth_headers(1))
    second = client.get("/v1/diagnostics?period=week", headers=build_auth_headers(1))
    assert first.status_code == second.status_code == 200
    assert len(first.json()) == 3
    assert first.json() == second.json()
