from __future__ import annotations

import enum
import math
from typing import Callable, List, Optional, Sequence

from kpi_core.buckets import WeekBucket, display_number
from kpi_core.columns import ColumnKind, split_part, strip_source_prefix
from kpi_core.dates import WeekId


class StatusBand(str, enum.Enum):
    RED = "red"
    ORANGE = "orange"
    YELLOW = "yellow"
    GREEN = "green"
    OVER = "over"

    @property
    def rank(self) -> int:
        return _BAND_ORDER.index(self)


_BAND_ORDER = [StatusBand.RED, StatusBand.ORANGE, StatusBand.YELLOW, StatusBand.GREEN, StatusBand.OVER]

GoalResolver = Callable[[str, WeekId], Optional[float]]


def status_from_ratio(ratio: float) -> Optional[StatusBand]:
    if ratio is None or not math.isfinite(ratio):
        return None
    if ratio < 0.30:
        return StatusBand.RED
    if ratio < 0.60:
        return StatusBand.ORANGE
    if ratio < 0.80:
        return StatusBand.YELLOW
    if ratio <= 1.00:
        return StatusBand.GREEN
    return StatusBand.OVER


def status_for(actual: float, goal: Optional[float]) -> Optional[StatusBand]:
    if goal is None:
        return None
    try:
        goal = float(goal)
    except (TypeError, ValueError):
        return None
    if goal == 0 or not math.isfinite(goal):
        return None
    return status_from_ratio(float(actual) / goal)


def goal_key_from_header(label: str) -> Optional[str]:
    """Base label eligible for goal lookup, or None for part columns."""
    kind, name = split_part(strip_source_prefix(label))
    if kind is not ColumnKind.BASE or not name:
        return None
    return name


def classify(
    bucket: WeekBucket,
    header_labels: Sequence[str],
    resolve_goal: GoalResolver,
    now_week: WeekId,
) -> List[Optional[StatusBand]]:
    if bucket.week_id > now_week:
        return [None] * len(header_labels)

    out: List[Optional[StatusBand]] = []
    for i, label in enumerate(header_labels):
        key = goal_key_from_header(label)
        if key is None:
            out.append(None)
            continue
        actual = display_number(bucket.sums[i]) if i < len(bucket.sums) else 0
        out.append(status_for(actual, resolve_goal(key, bucket.week_id)))
    return out
