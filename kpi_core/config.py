from __future__ import annotations

import math
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from kpi_core.dates import DATE_FORMAT_DOTS, DATE_FORMAT_SLASHES, is_valid_week_id
from kpi_core.errors import ConfigurationError
from kpi_core.goals import DEFAULT_GOAL_SETS, GoalBook, GoalSet

DEFAULT_FRESH_TTL_MS = 60_000
DEFAULT_STALE_TTL_MS = 10 * 60_000
DEFAULT_TIMEZONE = "Europe/Vienna"
DEFAULT_CORS_ORIGINS = ("http://localhost:3000", "http://127.0.0.1:3000")

_KPI_NUMBERS_ENV = re.compile(r"^GOOGLE_SHEETS_KPI_NUMBERS_(\d{4})_ID$")
_REV_ENV = re.compile(r"^GOOGLE_SHEETS_REV_(\d{4})_SPREADSHEET_ID$")


# ---------------- Dashboard config (YAML) ----------------
class SourceModel(BaseModel):
    name: str
    range: Optional[str] = None
    columns: List[int] = Field(default_factory=list)
    date_format: str = DATE_FORMAT_DOTS
    merge: bool = True

    @field_validator("columns")
    @classmethod
    def _non_negative(cls, value: List[int]) -> List[int]:
        if any(i < 0 for i in value):
            raise ValueError("column indices must be >= 0")
        return value

    @field_validator("date_format")
    @classmethod
    def _known_format(cls, value: str) -> str:
        if value not in (DATE_FORMAT_DOTS, DATE_FORMAT_SLASHES):
            raise ValueError(f"date_format must be {DATE_FORMAT_DOTS} or {DATE_FORMAT_SLASHES}")
        return value

    @property
    def a1_range(self) -> str:
        return self.range or f"{self.name}!A1:K"


class GoalSetModel(BaseModel):
    from_week: int
    to_week: Optional[int] = None
    goals: Dict[str, float] = Field(default_factory=dict)

    @field_validator("goals")
    @classmethod
    def _finite_goals(cls, value: Dict[str, float]) -> Dict[str, float]:
        for name, goal in value.items():
            if not math.isfinite(goal) or goal < 0:
                raise ValueError(f"goal for {name!r} must be a finite, non-negative number")
        return value

    @model_validator(mode="after")
    def _valid_range(self) -> "GoalSetModel":
        if not is_valid_week_id(self.from_week):
            raise ValueError(f"from_week {self.from_week} is not a YYYYWW week id")
        if self.to_week is not None:
            if not is_valid_week_id(self.to_week):
                raise ValueError(f"to_week {self.to_week} is not a YYYYWW week id")
            if self.to_week < self.from_week:
                raise ValueError("to_week must not be before from_week")
        return self


class DashboardConfigModel(BaseModel):
    sources: List[SourceModel] = Field(default_factory=list)
    goal_sets: List[GoalSetModel] = Field(default_factory=list)
    status_columns: Optional[List[str]] = None
    aliases: Dict[str, List[str]] = Field(default_factory=dict)


DEFAULT_SOURCES: List[SourceModel] = [
    SourceModel(name="Content", range="Content!A1:K", columns=[0, 1, 2, 3, 4, 5, 6, 7, 8, 9]),
    # K holds UW_Proposals; I and J are left out.
    SourceModel(name="Outreach", range="Outreach!A1:K", columns=[0, 1, 2, 3, 4, 5, 6, 7, 10]),
    SourceModel(name="Termine", range="Termine!A1:K", columns=[0], merge=False),
]

DEFAULT_ALIASES: Dict[str, List[str]] = {
    "FollowUp": ["LI_FollowUp"],
    "Erstnachricht": ["LI_Erstnachricht"],
    "Proposals": ["UW_Proposals"],
}


@dataclass(frozen=True)
class DashboardConfig:
    sources: List[SourceModel]
    goals: GoalBook
    aliases: Mapping[str, List[str]] = field(default_factory=dict)

    @property
    def merged_sources(self) -> List[SourceModel]:
        return [s for s in self.sources if s.merge]

    @property
    def standalone_sources(self) -> List[SourceModel]:
        return [s for s in self.sources if not s.merge]

    def source(self, name: str) -> Optional[SourceModel]:
        for s in self.sources:
            if s.name == name:
                return s
        return None


def default_dashboard_config() -> DashboardConfig:
    return DashboardConfig(
        sources=list(DEFAULT_SOURCES),
        goals=GoalBook(DEFAULT_GOAL_SETS),
        aliases=dict(DEFAULT_ALIASES),
    )


def dashboard_config_from_dict(data: Mapping[str, object]) -> DashboardConfig:
    try:
        model = DashboardConfigModel.model_validate(data or {})
    except ValidationError as exc:
        raise ConfigurationError(f"dashboard config validation failed: {exc}") from exc

    defaults = default_dashboard_config()
    goal_sets = [GoalSet(from_week=g.from_week, to_week=g.to_week, goals=dict(g.goals)) for g in model.goal_sets]
    return DashboardConfig(
        sources=model.sources or defaults.sources,
        goals=GoalBook(goal_sets or defaults.goals.goal_sets, status_columns=model.status_columns),
        aliases=model.aliases if "aliases" in (data or {}) else defaults.aliases,
    )


def load_dashboard_config(path: Optional[Path]) -> DashboardConfig:
    if path is None:
        return default_dashboard_config()
    if not path.exists():
        raise ConfigurationError(f"dashboard config not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"invalid yaml: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"dashboard config must be a mapping: {path}")
    return dashboard_config_from_dict(data)


# ---------------- Process settings (environment) ----------------
@dataclass(frozen=True)
class Settings:
    outreach_spreadsheet_id: Optional[str] = None
    kpi_numbers_sheets: Mapping[str, str] = field(default_factory=dict)
    revenue_sheets: Mapping[str, str] = field(default_factory=dict)
    service_account_key: Optional[str] = None
    notion_db_id: Optional[str] = None
    notion_secret: Optional[str] = None
    fresh_ttl_ms: int = DEFAULT_FRESH_TTL_MS
    stale_ttl_ms: int = DEFAULT_STALE_TTL_MS
    timezone: str = DEFAULT_TIMEZONE
    log_level: str = "INFO"
    cors_origins: tuple = DEFAULT_CORS_ORIGINS
    dashboard: DashboardConfig = field(default_factory=default_dashboard_config)

    def kpi_numbers_sheet(self, year: str) -> str:
        sheet_id = self.kpi_numbers_sheets.get(str(year))
        if not sheet_id:
            raise ConfigurationError(f"Missing sheet ID for year {year}")
        return sheet_id

    def outreach_sheet(self) -> str:
        if not self.outreach_spreadsheet_id:
            raise ConfigurationError("Missing sheet ID: GOOGLE_SHEETS_OUTREACH_SPREADSHEET_ID")
        return self.outreach_spreadsheet_id

    def sheet_link_id(self, doc: str, year: str) -> Optional[str]:
        docs = {"outreach": self.kpi_numbers_sheets, "rev": self.revenue_sheets}
        return (docs.get(doc) or {}).get(str(year))


def cors_origins_from_env(environ: Mapping[str, str]) -> tuple:
    origins = tuple(o.strip() for o in (environ.get("CORS_ORIGINS") or "").split(",") if o.strip())
    return origins or DEFAULT_CORS_ORIGINS


def _int_env(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = (environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc


def _by_year(environ: Mapping[str, str], pattern: re.Pattern) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for name, value in environ.items():
        match = pattern.match(name)
        if match and value:
            out[match.group(1)] = value
    return out


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    env = os.environ if environ is None else environ
    fresh = _int_env(env, "FRESH_TTL_MS", DEFAULT_FRESH_TTL_MS)
    stale = _int_env(env, "STALE_TTL_MS", DEFAULT_STALE_TTL_MS)
    if fresh < 0 or stale < fresh:
        raise ConfigurationError("cache TTLs must satisfy 0 <= FRESH_TTL_MS <= STALE_TTL_MS")

    tz_name = (env.get("KPI_TIMEZONE") or DEFAULT_TIMEZONE).strip()
    try:
        ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigurationError(f"unknown KPI_TIMEZONE: {tz_name}") from exc

    config_path = (env.get("KPI_DASHBOARD_CONFIG") or "").strip()
    return Settings(
        outreach_spreadsheet_id=env.get("GOOGLE_SHEETS_OUTREACH_SPREADSHEET_ID") or None,
        kpi_numbers_sheets=_by_year(env, _KPI_NUMBERS_ENV),
        revenue_sheets=_by_year(env, _REV_ENV),
        service_account_key=env.get("SERVICE_ACCOUNT_KEY") or None,
        notion_db_id=env.get("NOTION_VIDEOS_DB_ID") or None,
        notion_secret=env.get("NOTION_SECRET") or None,
        fresh_ttl_ms=fresh,
        stale_ttl_ms=stale,
        timezone=tz_name,
        log_level=(env.get("LOG_LEVEL") or "INFO").strip().upper(),
        cors_origins=cors_origins_from_env(env),
        dashboard=load_dashboard_config(Path(config_path) if config_path else None),
    )
