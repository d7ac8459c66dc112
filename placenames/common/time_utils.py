"""UTC-focused helpers for run metadata."""

from __future__ import annotations

from datetime import date, datetime, timezone


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def generate_run_id() -> str:
    # Sortable by start time.
    return utc_now().strftime("run-%Y%m%dT%H%M%S%fZ")


def parse_run_date(value: str | None) -> str:
    if not value:
        return utc_now().date().isoformat()
    return date.fromisoformat(value).isoformat()


def utc_timestamp_iso() -> str:
    return utc_now().isoformat(timespec="milliseconds")
