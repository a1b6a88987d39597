from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import pandas as pd

from kpi_core.buckets import round_half_up
from kpi_core.dates import parse_calendar_date

Field = Union[str, int]


def _field_key(field: Field) -> str:
    return str(field)


def _column_index(field: Field, header_labels: Sequence[str]) -> Optional[int]:
    if isinstance(field, bool):
        return None
    if isinstance(field, int):
        return field if 0 <= field < len(header_labels) else None
    try:
        return list(header_labels).index(field)
    except ValueError:
        return None


def days_frame(tab: Mapping[str, Any]) -> pd.DataFrame:
    """One row per day across all weeks of a tab, columns 0..n-1 plus `date`."""
    width = len(tab.get("headerLabels") or [])
    rows: List[Dict[Any, Any]] = []
    for week in tab.get("weeks") or []:
        for day in week.get("days") or []:
            day_date = parse_calendar_date(day.get("date", ""))
            if day_date is None:
                continue
            sums = list(day.get("sums") or [])
            row: Dict[Any, Any] = {i: float(sums[i]) if i < len(sums) else 0.0 for i in range(width)}
            row["date"] = day_date
            rows.append(row)
    return pd.DataFrame(rows, columns=["date", *range(width)])


def summarize_period(tab: Mapping[str, Any], start: date, end: date, fields: Sequence[Field]) -> Dict[str, float]:
    """Sum the named fields over days within [start, end], inclusive.

    Fields are header labels or column indices; unresolved fields sum to 0.
    A reversed range is swapped. Totals are rounded to 2 decimals.
    """
    if start > end:
        start, end = end, start
    header_labels = list(tab.get("headerLabels") or [])
    result: Dict[str, float] = {_field_key(f): 0.0 for f in fields}

    frame = days_frame(tab)
    if frame.empty:
        return result
    in_range = frame[(frame["date"] >= start) & (frame["date"] <= end)]
    if in_range.empty:
        return result

    totals = in_range.drop(columns=["date"]).sum(numeric_only=True)
    for f in fields:
        idx = _column_index(f, header_labels)
        if idx is None:
            continue
        result[_field_key(f)] += float(totals.get(idx, 0.0))

    return {k: round_half_up(v, 2) for k, v in result.items()}
