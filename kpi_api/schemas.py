from __future__ import annotations

from typing import Any, List, Optional, Union

from pydantic import BaseModel, Field


class SummaryRequestModel(BaseModel):
    start: Optional[str] = None
    end: Optional[str] = None
    # validated by the summary route
    fields: Optional[Any] = None
    tab: str = "Merged"
    force: bool = False


class PeriodModel(BaseModel):
    start: str
    end: str


class SummaryResponse(BaseModel):
    tab: str
    period: PeriodModel
    fields: List[Union[int, str]]
    summary: dict
    generatedAt: Optional[str] = None


class GoalsResponse(BaseModel):
    week: int
    weekKey: str
    goals: dict = Field(default_factory=dict)
