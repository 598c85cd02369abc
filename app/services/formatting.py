"""Text and link helpers shared by the notification builders."""
from __future__ import annotations

from datetime import date, datetime, time

from app.config import settings


def _coerce_date(value: date | datetime | str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _format_time(value: time | str) -> str:
    if isinstance(value, time):
        return value.strftime("%H:%M")
    return str(value)[:5]


def format_event_date_time(event_date: date | datetime | str, start_time: time | str | None = None) -> str:
    """Render ``"Monday, 2 March 2026 at 11:00"``; the time clause is dropped when unknown."""

    day = _coerce_date(event_date)
    date_str = f"{day:%A}, {day.day} {day:%B} {day.year}"
    if start_time:
        return f"{date_str} at {_format_time(start_time)}"
    return date_str


def build_app_url(path: str) -> str:
    """Join the configured application base URL and an app route."""

    base = settings.APP_BASE_URL.rstrip("/")
    if not path.startswith("/"):
        path = f"/{path}"
    return f"{base}{path}"


def location_clause(location_name: str | None) -> str:
    return f" at {location_name}" if location_name else ""
