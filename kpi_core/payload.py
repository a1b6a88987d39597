from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from kpi_core.aggregate import aggregate
from kpi_core.buckets import WeekBucket, bucket, display_number
from kpi_core.columns import describe_columns
from kpi_core.config import DashboardConfig, SourceModel
from kpi_core.dates import WeekId, current_week_id, format_calendar_date
from kpi_core.errors import UpstreamError
from kpi_core.goals import GoalBook
from kpi_core.projection import ProjectedTable, RawTable, project
from kpi_core.sources import ValueRange
from kpi_core.status import classify

MERGED_TAB = "Merged"


def week_out(week: WeekBucket, header_labels: Sequence[str], goals: GoalBook, now_week: WeekId) -> Dict[str, Any]:
    statuses = classify(week, header_labels, goals.resolve_goal, now_week)
    return {
        "weekKey": week.key,
        "isoYear": week.iso_year,
        "isoWeek": week.iso_week,
        "startDate": format_calendar_date(week.start_date),
        "endDate": format_calendar_date(week.end_date),
        "sums": [display_number(v) for v in week.sums],
        "days": [
            {"date": format_calendar_date(d.date), "sums": [display_number(v) for v in d.sums]}
            for d in week.days
        ],
        "statuses": [s.value if s is not None else None for s in statuses],
    }


def build_tab(
    tab_name: str,
    source_range: str,
    tables: Sequence[ProjectedTable],
    sources: Sequence[SourceModel],
    dashboard: DashboardConfig,
    now_week: WeekId,
    *,
    prefix_labels: bool = True,
) -> Dict[str, Any]:
    header_labels: List[str] = []
    for table in tables:
        names = [str(h) for h in table.headers[1:]]
        header_labels.extend(f"{table.source_name}:{h}" if prefix_labels else h for h in names)

    weeks: List[Dict[str, Any]] = []
    if header_labels:
        formats = {s.name: s.date_format for s in sources}
        records = aggregate(tables, formats)
        order = [t.source_name for t in tables]
        for week in bucket(records, len(header_labels), order):
            weeks.append(week_out(week, header_labels, dashboard.goals, now_week))

    return {
        "tabName": tab_name,
        "sourceRange": source_range,
        "headerLabels": header_labels,
        "columns": [c.as_dict() for c in describe_columns(header_labels, dashboard.aliases)],
        "weeks": weeks,
    }


def project_sources(value_ranges: Iterable[ValueRange], sources: Sequence[SourceModel]) -> Dict[str, ProjectedTable]:
    """Pair value ranges with sources by request order and project each one.

    batchGet answers in request order; the returned range may name another tab.
    """
    value_ranges = list(value_ranges)
    if len(value_ranges) != len(sources):
        raise UpstreamError(f"expected {len(sources)} value ranges, got {len(value_ranges)}")
    projected: Dict[str, ProjectedTable] = {}
    for source, vr in zip(sources, value_ranges):
        raw = RawTable.from_values(source.name, vr.values, vr.range or source.a1_range)
        projected[source.name] = project(raw, {source.name: source.columns})
    return projected


def build_outreach_payload(
    value_ranges: Iterable[ValueRange],
    dashboard: DashboardConfig,
    today: date,
    generated_at: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Project, aggregate, bucket and classify the configured tabs."""
    now_week = current_week_id(today)
    projected = project_sources(value_ranges, dashboard.sources)

    merged_sources = dashboard.merged_sources
    merged_tables = [projected[s.name] for s in merged_sources]
    tabs = [
        build_tab(
            MERGED_TAB,
            " | ".join(t.source_range for t in merged_tables),
            merged_tables,
            merged_sources,
            dashboard,
            now_week,
        )
    ]
    for source in dashboard.standalone_sources:
        table = projected[source.name]
        tabs.append(build_tab(source.name, table.source_range, [table], [source], dashboard, now_week, prefix_labels=False))

    stamp = generated_at or datetime.now(timezone.utc)
    return {"tabs": tabs, "generatedAt": stamp.isoformat().replace("+00:00", "Z")}


def find_tab(payload: Mapping[str, Any], tab_name: str) -> Optional[Dict[str, Any]]:
    for tab in payload.get("tabs") or []:
        if tab.get("tabName") == tab_name:
            return tab
    return None
