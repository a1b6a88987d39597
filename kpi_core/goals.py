from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional

from kpi_core.dates import WeekId


@dataclass(frozen=True)
class GoalSet:
    from_week: WeekId
    to_week: Optional[WeekId] = None
    goals: Mapping[str, float] = field(default_factory=dict)

    def covers(self, week: WeekId) -> bool:
        return week >= self.from_week and (self.to_week is None or week <= self.to_week)


DEFAULT_GOAL_SETS: List[GoalSet] = [
    GoalSet(
        from_week=202530,
        to_week=202552,
        goals={
            "Connections": 200,
            "Posts": 5,
            "Comments": 25,
            "LI_Erstnachricht": 75,
            "LI_FollowUp": 75,
            "UW_Proposals": 25,
        },
    ),
    GoalSet(
        from_week=202601,
        goals={
            "Connections": 300,
            "Posts": 10,
            "Comments": 40,
            "LI_Erstnachricht": 100,
            "LI_FollowUp": 100,
            "UW_Proposals": 30,
        },
    ),
]


class GoalBook:
    """Ordered, date-ranged weekly goals; the first set covering a week wins."""

    def __init__(self, goal_sets: Iterable[GoalSet], status_columns: Optional[Iterable[str]] = None):
        self.goal_sets: List[GoalSet] = list(goal_sets)
        self.status_columns = frozenset(status_columns) if status_columns is not None else None

    def set_for_week(self, week: WeekId) -> Optional[GoalSet]:
        for goal_set in self.goal_sets:
            if goal_set.covers(week):
                return goal_set
        return None

    def goals_for_week(self, week: WeekId) -> Dict[str, float]:
        goal_set = self.set_for_week(week)
        return dict(goal_set.goals) if goal_set is not None else {}

    def is_goal_key(self, name: str) -> bool:
        if self.status_columns is not None and name not in self.status_columns:
            return False
        return any(name in s.goals for s in self.goal_sets)

    def resolve_goal(self, name: str, week: WeekId) -> Optional[float]:
        if not self.is_goal_key(name):
            return None
        goal_set = self.set_for_week(week)
        if goal_set is None:
            return None
        value = goal_set.goals.get(name)
        try:
            value = float(value) if value is not None else None
        except (TypeError, ValueError):
            return None
        if value is None or not math.isfinite(value):
            return None
        return value
