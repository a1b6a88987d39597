# Shared pytest fixtures
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List

import pytest

from kpi_core.config import Settings
from kpi_core.errors import UpstreamError
from kpi_core.service import DashboardContext
from kpi_core.sources import ValueRange


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSheets:
    """Stands in for SheetsClient; counts calls and can be told to fail."""

    def __init__(self, value_ranges: List[ValueRange], revenue: List[List[Any]] | None = None):
        self.value_ranges = value_ranges
        self.revenue = revenue or [["2025", "Umsatz", "Retainer p.M"], ["Jan", 1000, 64]]
        self.fail = False
        self.batch_calls = 0
        self.value_calls: List[tuple] = []

    def batch_get(self, spreadsheet_id: str, ranges: List[str]) -> List[ValueRange]:
        self.batch_calls += 1
        if self.fail:
            raise UpstreamError("Google Sheets error [429]: quota exceeded")
        return list(self.value_ranges)

    def get_values(self, spreadsheet_id: str, a1_range: str, **kwargs) -> ValueRange:
        self.value_calls.append((spreadsheet_id, a1_range, kwargs))
        if self.fail:
            raise UpstreamError("Google Sheets error [503]: backend error")
        return ValueRange(range=f"{a1_range}!A1:C13", values=self.revenue)


class FakeNotion:
    def __init__(self, pages: List[Dict[str, Any]]):
        self.pages = pages
        self.calls = 0

    def query_database(self, database_id: str) -> List[Dict[str, Any]]:
        self.calls += 1
        return list(self.pages)


@pytest.fixture()
def content_values() -> List[List[Any]]:
    return [
        ["Datum", "Connections", "J_Connections", "A_Connections", "Posts", "Comments", "J Comments", "A-Comments", "Likes", "Notes"],
        ["05.01.2026", "50", "30", "20", "1", "5", "3", "2", "10", ""],
        ["06.01.2026", "60,5", "30", "30,5", "2", "6", "", "", "12", "x"],
        ["06.01.2026", "10", "", "", "", "", "", "", "", ""],
        ["kein Datum", "999", "", "", "", "", "", "", "", ""],
        ["12.01.2026", "40", "40"],
        ["20.01.2026", "500", "", "", "", "", "", "", "", ""],
    ]


@pytest.fixture()
def outreach_values() -> List[List[Any]]:
    return [
        ["Datum", "LI_Erstnachricht", "LI_FollowUp", "J_FollowUp", "A_FollowUp", "Calls", "Mails", "Meetings", "Skip I", "Skip J", "UW_Proposals"],
        ["05.01.2026", 20, 10, 6, 4, 1, 2, 0, "ignored", "ignored", 3],
        ["13.01.2026", 30, 15, 10, 5, 0, 1, 1, "ignored", "ignored", 2],
    ]


@pytest.fixture()
def value_ranges(content_values, outreach_values) -> List[ValueRange]:
    return [
        ValueRange(range="Content!A1:K1000", values=content_values),
        ValueRange(range="Outreach!A1:K1000", values=outreach_values),
        ValueRange(range="Termine!A1:K1000", values=[["Datum"], ["08.01.2026"]]),
    ]


@pytest.fixture()
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def fake_sheets(value_ranges) -> FakeSheets:
    return FakeSheets(value_ranges)


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        outreach_spreadsheet_id="outreach-sheet",
        kpi_numbers_sheets={"2025": "kpi-2025"},
        revenue_sheets={"2025": "rev-2025"},
        notion_db_id="db-1",
        notion_secret="secret",
        fresh_ttl_ms=60_000,
        stale_ttl_ms=600_000,
    )


@pytest.fixture()
def fixed_now() -> datetime:
    # Wednesday of ISO week 2026-W03
    return datetime(2026, 1, 14, 9, 30, tzinfo=timezone.utc)


@pytest.fixture()
def context(settings, fake_sheets, fake_clock, fixed_now) -> DashboardContext:
    return DashboardContext(
        settings,
        sheets=fake_sheets,
        notion=FakeNotion([]),
        clock=fake_clock,
        now=lambda: fixed_now,
    )
