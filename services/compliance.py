from datetime import datetime
from typing import Iterable

from models.coordinate import ComplianceSummary
from models.presence_record import PresenceRecord
from utils.datetime_helpers import ensure_utc


def summarize_records(records: Iterable[PresenceRecord]) -> ComplianceSummary:
    """
    Reduce presence records to a ComplianceSummary.

    Gap records (no position could be classified) are not checks: they are
    counted in gap_count only. Each classified record stands for the
    tracking interval it was produced with, so total_hours is the sum of
    those intervals. No records yields an all-zero summary.
    """
    record_count = 0
    breach_count = 0
    gap_count = 0
    tracked_minutes = 0.0

    for record in records:
        if record.is_gap:
            gap_count += 1
            continue
        record_count += 1
        tracked_minutes += record.interval_minutes
        if not record.is_within_geofence:
            breach_count += 1

    if record_count == 0:
        return ComplianceSummary(gap_count=gap_count)

    return ComplianceSummary(
        total_hours=tracked_minutes / 60,
        compliance_percentage=100 * (record_count - breach_count) / record_count,
        breach_count=breach_count,
        record_count=record_count,
        gap_count=gap_count,
    )


async def summarize(
    store, employee_id: str, start_date: datetime, end_date: datetime
) -> ComplianceSummary:
    start_date, end_date = ensure_utc(start_date), ensure_utc(end_date)
    if end_date < start_date:
        raise ValueError("end_date must not be before start_date")
    # The store hands back a fresh list, so appends during the read are not seen
    records = await store.load_presence_records(employee_id, start_date, end_date)
    return summarize_records(records)
