from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import date
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import pandas as pd

from kpi_core.dates import DATE_FORMAT_DOTS, format_calendar_date, parse_local_date
from kpi_core.projection import Cell, ProjectedTable

_NUMBER_PREFIX = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


@dataclass(frozen=True)
class DailyRecord:
    date: date
    per_source_sums: Mapping[str, Tuple[float, ...]]

    def merged(self, source_order: Optional[Sequence[str]] = None) -> Tuple[float, ...]:
        """Concatenate the per-source vectors, in `source_order` or insertion order."""
        order = list(source_order) if source_order is not None else list(self.per_source_sums)
        out: List[float] = []
        for name in order:
            out.extend(self.per_source_sums.get(name, ()))
        return tuple(out)


def parse_number(value: object) -> float:
    """Locale-tolerant cell parse: '5,5' -> 5.5, blanks and junk -> 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        out = float(value)
    else:
        text = str(value).strip().replace(",", ".", 1)
        match = _NUMBER_PREFIX.match(text)
        if not match:
            return 0.0
        out = float(match.group(0))
    return out if math.isfinite(out) else 0.0


def value_width(table: ProjectedTable) -> int:
    """Numeric columns in a projected table (everything after the date column)."""
    return max(len(table.headers) - 1, 0)


def _pad(row: Sequence[Cell], width: int) -> List[Cell]:
    cells = list(row[:width])
    return cells + [""] * (width - len(cells))


def _source_daily(table: ProjectedTable, fmt: str) -> Dict[date, List[float]]:
    width = value_width(table)
    kept: List[Tuple[date, List[Cell]]] = []
    for row in table.rows:
        day = parse_local_date(row[0] if len(row) else "", fmt)
        if day is not None:
            kept.append((day, _pad(row, width + 1)[1:]))
    if not kept:
        return {}
    by_key = {format_calendar_date(d): d for d, _ in kept}
    if width == 0:
        return {by_key[k]: [] for k in sorted(by_key)}
    values = pd.DataFrame([cells for _, cells in kept], dtype=object).apply(lambda col: col.map(parse_number)).astype(float)
    keys = pd.Series([format_calendar_date(d) for d, _ in kept], index=values.index)
    sums = values.groupby(keys, sort=True).sum()
    return {by_key[str(k)]: [float(x) for x in row] for k, row in zip(sums.index, sums.to_numpy())}


def aggregate(tables: Iterable[ProjectedTable], date_formats: Optional[Mapping[str, str]] = None) -> List[DailyRecord]:
    """Sum every source's rows per calendar day, merged across sources by date.

    Rows whose date cell does not parse are dropped. Records come back sorted
    ascending by date.
    """
    tables = list(tables)
    formats = date_formats or {}
    widths: Dict[str, int] = {}
    for table in tables:
        widths.setdefault(table.source_name, value_width(table))

    merged: Dict[date, Dict[str, List[float]]] = {}
    for table in tables:
        fmt = formats.get(table.source_name, DATE_FORMAT_DOTS)
        for day, sums in _source_daily(table, fmt).items():
            per_source = merged.get(day)
            if per_source is None:
                per_source = {name: [0.0] * width for name, width in widths.items()}
                merged[day] = per_source
            acc = per_source[table.source_name]
            for i, value in enumerate(sums[: len(acc)]):
                acc[i] += value

    return [
        DailyRecord(date=day, per_source_sums={name: tuple(v) for name, v in merged[day].items()})
        for day in sorted(merged)
    ]
