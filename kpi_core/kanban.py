from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from kpi_core.sources import custom_id, status_name

MOCK_STATS: Dict[str, Any] = {
    "total": 4,
    "byStatus": {"Draft": 1, "Editing": 1, "Published": 2},
    "itemsByStatus": {"Draft": ["101"], "Editing": ["102"], "Published": ["103", "104"]},
    "lastUpdated": None,
}


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def summarize_cards(pages: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    """Count kanban cards per status and collect their ids."""
    by_status: Dict[str, int] = {}
    items_by_status: Dict[str, List[str]] = {}
    last_edited: Optional[datetime] = None
    for page in pages:
        status = status_name(page)
        by_status[status] = by_status.get(status, 0) + 1
        items_by_status.setdefault(status, []).append(custom_id(page))
        ts = _parse_ts(page.get("last_edited_time") or page.get("created_time"))
        if ts is not None and (last_edited is None or ts > last_edited):
            last_edited = ts
    return {
        "total": sum(by_status.values()),
        "byStatus": by_status,
        "itemsByStatus": items_by_status,
        "lastUpdated": last_edited.astimezone(timezone.utc).isoformat().replace("+00:00", "Z") if last_edited else None,
    }
