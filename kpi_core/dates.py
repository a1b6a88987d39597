from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

DATE_FORMAT_DOTS = "DD.MM.YYYY"
DATE_FORMAT_SLASHES = "MM/DD/YYYY"

_PATTERNS = {
    DATE_FORMAT_DOTS: (re.compile(r"^(\d{1,2})\.(\d{1,2})\.(\d{4})$"), ("day", "month", "year")),
    DATE_FORMAT_SLASHES: (re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$"), ("month", "day", "year")),
}
_ISO_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")

WeekId = int


@dataclass(frozen=True, order=True)
class IsoWeek:
    iso_year: int
    iso_week: int

    @property
    def week_id(self) -> WeekId:
        return week_id(self.iso_year, self.iso_week)

    @property
    def key(self) -> str:
        return f"{self.iso_year}-W{self.iso_week:02d}"


def parse_local_date(raw: object, fmt: str = DATE_FORMAT_DOTS) -> Optional[date]:
    """Parse a spreadsheet date cell in the given format; None when it does not fit."""
    if fmt not in _PATTERNS:
        raise ValueError(f"unsupported date format: {fmt}")
    if raw is None:
        return None
    pattern, order = _PATTERNS[fmt]
    match = pattern.match(str(raw).strip())
    if not match:
        return None
    parts = dict(zip(order, (int(g) for g in match.groups())))
    try:
        return date(parts["year"], parts["month"], parts["day"])
    except ValueError:
        return None


def format_calendar_date(value: date) -> str:
    return f"{value.year:04d}-{value.month:02d}-{value.day:02d}"


def parse_calendar_date(value: str) -> Optional[date]:
    match = _ISO_DATE.match(str(value).strip())
    if not match:
        return None
    try:
        return date(*(int(g) for g in match.groups()))
    except ValueError:
        return None


def iso_week_of(value: date) -> IsoWeek:
    # Shift to the Thursday of the same Monday-based week; its year is the ISO year.
    thursday = value + timedelta(days=3 - value.weekday())
    day_of_year = (thursday - date(thursday.year, 1, 1)).days + 1
    return IsoWeek(thursday.year, (day_of_year + 6) // 7)


def week_id(iso_year: int, iso_week: int) -> WeekId:
    return iso_year * 100 + iso_week


def split_week_id(value: WeekId) -> IsoWeek:
    return IsoWeek(value // 100, value % 100)


def is_valid_week_id(value: WeekId) -> bool:
    iso_year, iso_week = divmod(int(value), 100)
    if iso_year < 1 or not 1 <= iso_week <= 53:
        return False
    # Dec 28th always lies in the last ISO week of its year.
    return iso_week <= iso_week_of(date(iso_year, 12, 28)).iso_week


def current_week_id(today: date) -> WeekId:
    return iso_week_of(today).week_id


def coerce_query_date(value: object) -> Optional[date]:
    """Accept YYYY-MM-DD or a full ISO timestamp, keeping only the calendar day."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value or "").strip()
    if not text:
        return None
    parsed = parse_calendar_date(text[:10]) if len(text) >= 10 else None
    if parsed is None:
        return None
    if len(text) > 10:
        try:
            return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
        except ValueError:
            return None
    return parsed
