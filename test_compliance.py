"""
Compliance aggregation over stored presence records.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from models.presence_record import PresenceRecord
from services.compliance import summarize, summarize_records

DAY = datetime(2025, 6, 2, 9, 0, tzinfo=timezone.utc)


def _record(minutes_after: int, is_within, interval: float = 15, employee_id: str = "emp-1"):
    return PresenceRecord(
        employee_id=employee_id,
        timestamp=DAY + timedelta(minutes=minutes_after),
        latitude=None if is_within is None else 38.99,
        longitude=None if is_within is None else -76.94,
        is_within_geofence=is_within,
        distance_meters=None if is_within is None else 10.0,
        geofence_name="Head Office",
        interval_minutes=interval,
        error="timeout" if is_within is None else None,
    )


def test_no_records_is_all_zero():
    summary = summarize_records([])
    assert summary.total_hours == 0
    assert summary.compliance_percentage == 0
    assert summary.breach_count == 0
    assert summary.record_count == 0


def test_percentage_and_breaches():
    records = [_record(i * 15, within) for i, within in enumerate([True, True, True, False])]
    summary = summarize_records(records)
    assert summary.record_count == 4
    assert summary.breach_count == 1
    assert summary.compliance_percentage == pytest.approx(75.0)
    assert summary.total_hours == pytest.approx(1.0)


def test_gap_records_are_not_checks():
    records = [_record(0, True), _record(15, None), _record(30, False), _record(45, None)]
    summary = summarize_records(records)
    assert summary.record_count == 2
    assert summary.gap_count == 2
    assert summary.breach_count == 1
    assert summary.compliance_percentage == pytest.approx(50.0)
    assert summary.total_hours == pytest.approx(0.5)


def test_only_gaps_is_zero_compliance():
    summary = summarize_records([_record(0, None), _record(15, None)])
    assert summary.record_count == 0
    assert summary.gap_count == 2
    assert summary.compliance_percentage == 0


def test_hours_use_each_records_interval():
    # Two sessions with different intervals in the same range
    records = [_record(0, True, interval=30), _record(30, True, interval=30), _record(60, True, interval=5)]
    assert summarize_records(records).total_hours == pytest.approx(65 / 60)


def test_summary_respects_inclusive_range(local_store, store):
    for minutes, within in [(0, True), (15, False), (30, True), (45, True), (60, False)]:
        local_store.append_presence_record(_record(minutes, within))
    local_store.append_presence_record(_record(15, False, employee_id="emp-2"))

    async def scenario():
        # Both ends inclusive: the 15 and 45 minute records are on the edges
        summary = await summarize(
            store, "emp-1", DAY + timedelta(minutes=15), DAY + timedelta(minutes=45)
        )
        assert summary.record_count == 3
        assert summary.breach_count == 1
        assert summary.compliance_percentage == pytest.approx(200 / 3)

        everything = await summarize(store, "emp-1", DAY - timedelta(days=1), DAY + timedelta(days=1))
        assert everything.record_count == 5
        assert everything.breach_count == 2

        empty = await summarize(store, "emp-1", DAY + timedelta(days=3), DAY + timedelta(days=4))
        assert empty.record_count == 0

    asyncio.run(scenario())


def test_naive_range_is_treated_as_utc(local_store, store):
    local_store.append_presence_record(_record(0, True))

    async def scenario():
        naive_start = DAY.replace(tzinfo=None)
        summary = await summarize(store, "emp-1", naive_start, naive_start + timedelta(hours=1))
        assert summary.record_count == 1

    asyncio.run(scenario())


def test_reversed_range_is_rejected(store):
    async def scenario():
        with pytest.raises(ValueError):
            await summarize(store, "emp-1", DAY, DAY - timedelta(minutes=1))

    asyncio.run(scenario())


def test_utc_formatting_helpers():
    from utils.datetime_helpers import format_utc_datetime, start_of_utc_day

    naive = datetime(2025, 6, 7, 13, 25, 39)
    eastern = datetime(2025, 6, 7, 9, 25, 39, tzinfo=timezone(timedelta(hours=-4)))
    assert format_utc_datetime(naive) == "2025-06-07T13:25:39Z"
    assert format_utc_datetime(eastern) == "2025-06-07T13:25:39Z"
    assert format_utc_datetime(None) is None
    assert start_of_utc_day(eastern) == datetime(2025, 6, 7, tzinfo=timezone.utc)
