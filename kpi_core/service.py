from __future__ import annotations

import asyncio
import logging
import time
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, Optional
from zoneinfo import ZoneInfo

from kpi_core.cache import Clock, ReadThroughCache
from kpi_core.config import Settings
from kpi_core.errors import ConfigurationError
from kpi_core.kanban import summarize_cards
from kpi_core.payload import build_outreach_payload
from kpi_core.sources import NotionClient, SheetsClient

logger = logging.getLogger(__name__)

REVENUE_RANGE = "Revenue"
OUTREACH_KEY = "outreach"
VIDEOS_KEY = "videos"


class DashboardContext:
    """Everything request handlers need: settings, upstream clients and caches.

    One instance per application; tests build their own with fake clients and
    a controllable clock.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        sheets: Optional[SheetsClient] = None,
        notion: Optional[NotionClient] = None,
        clock: Clock = time.monotonic,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.settings = settings
        self._sheets = sheets
        self._notion = notion
        self._now = now or (lambda: datetime.now(timezone.utc))
        self.outreach_cache: ReadThroughCache[Dict[str, Any]] = ReadThroughCache(
            settings.fresh_ttl_ms, settings.stale_ttl_ms, clock=clock, name="outreach"
        )
        self.revenue_cache: ReadThroughCache[Dict[str, Any]] = ReadThroughCache(
            settings.fresh_ttl_ms, settings.stale_ttl_ms, clock=clock, name="revenue"
        )
        self.videos_cache: ReadThroughCache[Dict[str, Any]] = ReadThroughCache(
            settings.fresh_ttl_ms, settings.stale_ttl_ms, clock=clock, name="videos"
        )

    # ---------------- clients ----------------
    def sheets(self) -> SheetsClient:
        if self._sheets is None:
            self._sheets = SheetsClient.from_service_account(self.settings.service_account_key)
        return self._sheets

    def notion(self) -> NotionClient:
        if not self.settings.notion_db_id or not self.settings.notion_secret:
            raise ConfigurationError("Missing NOTION_VIDEOS_DB_ID or NOTION_SECRET")
        if self._notion is None:
            self._notion = NotionClient(self.settings.notion_secret)
        return self._notion

    # ---------------- time ----------------
    def now(self) -> datetime:
        return self._now()

    def today(self) -> date:
        return self.now().astimezone(ZoneInfo(self.settings.timezone)).date()

    # ---------------- cached datasets ----------------
    async def outreach_payload(self, *, force: bool = False) -> Dict[str, Any]:
        spreadsheet_id = self.settings.outreach_sheet()
        sheets = self.sheets()
        dashboard = self.settings.dashboard
        ranges = [s.a1_range for s in dashboard.sources]

        async def fetch() -> Dict[str, Any]:
            value_ranges = await asyncio.to_thread(sheets.batch_get, spreadsheet_id, ranges)
            return build_outreach_payload(value_ranges, dashboard, self.today(), self.now())

        return await self.outreach_cache.get(OUTREACH_KEY, fetch, force=force)

    async def revenue_values(self, year: str, *, force: bool = False) -> Dict[str, Any]:
        spreadsheet_id = self.settings.kpi_numbers_sheet(year)
        sheets = self.sheets()

        async def fetch() -> Dict[str, Any]:
            vr = await asyncio.to_thread(
                sheets.get_values,
                spreadsheet_id,
                REVENUE_RANGE,
                value_render_option="UNFORMATTED_VALUE",
                date_time_render_option="SERIAL_NUMBER",
            )
            return {"range": REVENUE_RANGE, "values": vr.values}

        return await self.revenue_cache.get(str(year), fetch, force=force)

    async def video_stats(self, *, force: bool = False) -> Dict[str, Any]:
        notion = self.notion()
        database_id = self.settings.notion_db_id

        async def fetch() -> Dict[str, Any]:
            pages = await asyncio.to_thread(notion.query_database, database_id)
            return summarize_cards(pages)

        return await self.videos_cache.get(VIDEOS_KEY, fetch, force=force)
