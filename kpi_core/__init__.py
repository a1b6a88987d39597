"""Core (UI-agnostic) KPI dashboard logic.

This package contains:
- date parsing and ISO week helpers
- column projection and per-day aggregation of spreadsheet rows
- ISO week bucketing and goal/status classification
- the read-through cache that fronts the upstream sources
- upstream clients (Google Sheets, Notion) and the payload builder
- chart helpers (Altair -> Vega-Lite spec dict)
"""
