#!/usr/bin/env python3
"""Script to print one employee's presence compliance, day by day."""

import argparse
import os
import sys
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from rich.console import Console
from rich.table import Table

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.exceptions import PersistenceError
from db.session import engine
from services.compliance import summarize_records
from services.persistence import LocalStore
from utils.datetime_helpers import ensure_utc

console = Console()


def parse_args():
    parser = argparse.ArgumentParser(description="Presence compliance report for one employee")
    parser.add_argument("employee_id")
    parser.add_argument("--days", type=int, default=7, help="How many days back to report")
    parser.add_argument("--tz", default="America/New_York", help="Timezone used to split days")
    return parser.parse_args()


def _row(label, summary):
    return (
        label,
        str(summary.record_count),
        str(summary.breach_count),
        str(summary.gap_count),
        f"{summary.total_hours:.2f}",
        f"{summary.compliance_percentage:.1f}%",
    )


def main():
    args = parse_args()
    tz = ZoneInfo(args.tz)

    end = datetime.now(timezone.utc)
    start = end - timedelta(days=args.days)
    try:
        records = LocalStore(engine).load_presence_records(args.employee_id, start, end)
    except PersistenceError as e:
        console.print(f"[bold red]Database error occurred:[/bold red] {e}")
        sys.exit(1)

    if not records:
        console.print(f"[yellow]No presence records for {args.employee_id} in the last {args.days} day(s).[/yellow]")
        return

    # Group by local calendar day
    by_day = {}
    for record in records:
        day = ensure_utc(record.timestamp).astimezone(tz).date()
        by_day.setdefault(day, []).append(record)

    table = Table(title=f"[bold green]Compliance for {args.employee_id} ({args.tz})[/bold green]")
    for col in ("Date", "Checks", "Breaches", "Gaps", "Hours", "Compliant"):
        table.add_column(col, justify="left" if col == "Date" else "right")

    for day in sorted(by_day):
        table.add_row(*_row(day.isoformat(), summarize_records(by_day[day])))
    table.add_section()
    table.add_row(*_row("[bold]Total[/bold]", summarize_records(records)))

    console.print(table)


if __name__ == "__main__":
    main()
