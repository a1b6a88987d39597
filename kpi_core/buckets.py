from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from kpi_core.aggregate import DailyRecord
from kpi_core.dates import IsoWeek, iso_week_of

Number = Union[int, float]


@dataclass(frozen=True)
class DayEntry:
    date: date
    sums: Tuple[float, ...]


@dataclass(frozen=True)
class WeekBucket:
    iso_year: int
    iso_week: int
    start_date: date
    end_date: date
    sums: Tuple[float, ...]
    days: Tuple[DayEntry, ...]

    @property
    def iso(self) -> IsoWeek:
        return IsoWeek(self.iso_year, self.iso_week)

    @property
    def week_id(self) -> int:
        return self.iso.week_id

    @property
    def key(self) -> str:
        return self.iso.key


def round_half_up(value: object, ndigits: int = 0) -> Optional[float]:
    if value is None:
        return None
    q = Decimal(10) ** -ndigits
    return float(Decimal(str(value)).quantize(q, rounding=ROUND_HALF_UP))


def display_number(value: float) -> Number:
    """Integral sums stay integers (5.0 -> 5); anything else is rounded to 2 places."""
    value = float(value)
    if value.is_integer():
        return int(value)
    return round_half_up(value, 2)


def _fit(values: Sequence[float], width: int) -> List[float]:
    out = [float(v) for v in values[:width]]
    return out + [0.0] * (width - len(out))


class _Running:
    def __init__(self, iso: IsoWeek, first: date, width: int):
        self.iso = iso
        self.start = first
        self.end = first
        self.sums = [0.0] * width
        self.days: List[DayEntry] = []

    def freeze(self) -> WeekBucket:
        return WeekBucket(
            iso_year=self.iso.iso_year,
            iso_week=self.iso.iso_week,
            start_date=self.start,
            end_date=self.end,
            sums=tuple(self.sums),
            days=tuple(self.days),
        )


def bucket(
    records: Iterable[DailyRecord],
    column_count: int,
    source_order: Optional[Sequence[str]] = None,
) -> List[WeekBucket]:
    """Group day records into ISO weeks.

    `records` are expected sorted ascending by date. Each day keeps its own
    merged vector inside the week, and week sums are plain running float
    additions of those vectors.
    """
    running: Dict[IsoWeek, _Running] = {}
    for record in records:
        iso = iso_week_of(record.date)
        week = running.get(iso)
        if week is None:
            week = _Running(iso, record.date, column_count)
            running[iso] = week
        if record.date < week.start:
            week.start = record.date
        if record.date > week.end:
            week.end = record.date

        day_values = _fit(record.merged(source_order), column_count)
        week.days.append(DayEntry(date=record.date, sums=tuple(day_values)))
        for i, value in enumerate(day_values):
            week.sums[i] += value

    return [running[iso].freeze() for iso in sorted(running)]
