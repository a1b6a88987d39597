from __future__ import annotations

from typing import Any, Dict, Mapping

import altair as alt
import pandas as pd

alt.data_transformers.disable_max_rows()

STATUS_COLORS = {
    "red": "#dc2626",
    "orange": "#ea580c",
    "yellow": "#ca8a04",
    "green": "#16a34a",
    "over": "#2563eb",
    "none": "#94a3b8",
}


def to_vega_spec(chart: alt.Chart) -> Dict[str, Any]:
    """Convert an Altair chart into a Vega-Lite spec dict (JSON-serializable)."""
    return chart.to_dict()


def weekly_frame(tab: Mapping[str, Any], column: int) -> pd.DataFrame:
    rows = []
    for week in tab.get("weeks") or []:
        sums = week.get("sums") or []
        statuses = week.get("statuses") or []
        rows.append(
            {
                "week": week.get("weekKey"),
                "start": week.get("startDate"),
                "end": week.get("endDate"),
                "value": float(sums[column]) if column < len(sums) else 0.0,
                "status": (statuses[column] if column < len(statuses) else None) or "none",
            }
        )
    return pd.DataFrame(rows, columns=["week", "start", "end", "value", "status"])


def weekly_chart(tab: Mapping[str, Any], column: int) -> Dict[str, Any]:
    """Bar chart of one column's weekly sums, colored by status band."""
    label = (tab.get("headerLabels") or [])[column]
    df = weekly_frame(tab, column)
    domain = list(STATUS_COLORS)
    bars = (
        alt.Chart(df)
        .mark_bar()
        .encode(
            x=alt.X("week:O", title="ISO Week", sort=None, axis=alt.Axis(grid=False)),
            y=alt.Y("value:Q", title=label, axis=alt.Axis(gridDash=[4, 4], domain=False, ticks=False)),
            color=alt.Color(
                "status:N",
                title="Status",
                scale=alt.Scale(domain=domain, range=[STATUS_COLORS[k] for k in domain]),
            ),
            tooltip=["week", "start", "end", alt.Tooltip("value:Q", format=",.2f"), "status"],
        )
        .properties(height=260)
    )
    return to_vega_spec(bars)
