from __future__ import annotations

import logging
import math
import os
from typing import List, Optional, Union

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse, Response

from kpi_api.schemas import GoalsResponse, PeriodModel, SummaryRequestModel, SummaryResponse
from kpi_core.charts import weekly_chart
from kpi_core.config import cors_origins_from_env, load_settings
from kpi_core.dates import coerce_query_date, current_week_id, is_valid_week_id, split_week_id
from kpi_core.errors import ConfigurationError, DashboardError, QueryValidationError, TabNotFoundError, UpstreamError
from kpi_core.kanban import MOCK_STATS
from kpi_core.log import setup_logging
from kpi_core.payload import MERGED_TAB, find_tab
from kpi_core.service import DashboardContext
from kpi_core.summarize import summarize_period

logger = logging.getLogger(__name__)
router = APIRouter()

NO_STORE = {"Cache-Control": "no-store"}
STATUS_BY_ERROR = {
    QueryValidationError: 400,
    TabNotFoundError: 404,
    ConfigurationError: 500,
    UpstreamError: 502,
}
SUMMARY_REQUIRED = "Required: start, end, fields[]"


def get_context(request: Request) -> DashboardContext:
    ctx = getattr(request.app.state, "context", None)
    if ctx is None:
        settings = load_settings()
        setup_logging(settings.log_level)
        ctx = DashboardContext(settings)
        request.app.state.context = ctx
    return ctx


def _json(data: object, status_code: int = 200) -> JSONResponse:
    """Return JSON with NaN and infinities encoded as null."""

    def _safe_float(value: float) -> Optional[float]:
        return value if math.isfinite(value) else None

    return JSONResponse(
        status_code=status_code,
        headers=NO_STORE,
        content=jsonable_encoder(data, custom_encoder={float: _safe_float}),
    )


def _failure(exc: Exception, what: str) -> JSONResponse:
    status = 500
    for cls, code in STATUS_BY_ERROR.items():
        if isinstance(exc, cls):
            status = code
            break
    if isinstance(exc, ConfigurationError):
        logger.error("%s failed: %s", what, exc)
    elif status >= 500:
        logger.error("%s failed", what, exc_info=exc)
    return JSONResponse(status_code=status, content={"error": str(exc), "type": type(exc).__name__}, headers=NO_STORE)


async def _invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    where = ".".join(str(p) for p in first.get("loc", ()) if p != "body") or "request"
    return _failure(QueryValidationError(f"Invalid {where}: {first.get('msg', 'malformed input')}"), request.url.path)


def _summary_fields(raw: object) -> List[Union[int, str]]:
    if not isinstance(raw, list) or not raw:
        raise QueryValidationError(SUMMARY_REQUIRED)
    for field in raw:
        if isinstance(field, bool) or not isinstance(field, (int, str)):
            raise QueryValidationError(f"fields must be header labels or column indices, got {field!r}")
    return raw


@router.get("/outreach")
async def outreach(force: bool = Query(default=False), ctx: DashboardContext = Depends(get_context)):
    try:
        return _json(await ctx.outreach_payload(force=force))
    except Exception as exc:
        return _failure(exc, "outreach")


@router.post("/outreach/summary")
async def outreach_summary(body: SummaryRequestModel, ctx: DashboardContext = Depends(get_context)):
    try:
        if not body.start or not body.end:
            raise QueryValidationError(SUMMARY_REQUIRED)
        fields = _summary_fields(body.fields)
        start = coerce_query_date(body.start)
        end = coerce_query_date(body.end)
        if start is None or end is None:
            raise QueryValidationError("start and end must be YYYY-MM-DD dates")

        payload = await ctx.outreach_payload(force=body.force)
        tab = find_tab(payload, body.tab)
        if tab is None:
            raise TabNotFoundError(f"Tab not found: {body.tab}")
        summary = summarize_period(tab, start, end, fields)
        out = SummaryResponse(
            tab=body.tab,
            period=PeriodModel(start=body.start, end=body.end),
            fields=fields,
            summary=summary,
            generatedAt=payload.get("generatedAt"),
        )
        return _json(out.model_dump())
    except Exception as exc:
        return _failure(exc, "outreach_summary")


@router.get("/outreach/chart")
async def outreach_chart(
    field: str = Query(...),
    tab: str = Query(default=MERGED_TAB),
    force: bool = Query(default=False),
    ctx: DashboardContext = Depends(get_context),
):
    try:
        payload = await ctx.outreach_payload(force=force)
        tab_agg = find_tab(payload, tab)
        if tab_agg is None:
            raise TabNotFoundError(f"Tab not found: {tab}")
        labels = tab_agg.get("headerLabels") or []
        if field in labels:
            column = labels.index(field)
        elif field.isdigit() and int(field) < len(labels):
            column = int(field)
        else:
            raise QueryValidationError(f"Unknown field: {field}")
        return _json(weekly_chart(tab_agg, column))
    except Exception as exc:
        return _failure(exc, "outreach_chart")


@router.get("/revenue")
async def revenue(
    year: Optional[str] = Query(default=None),
    force: bool = Query(default=False),
    ctx: DashboardContext = Depends(get_context),
):
    try:
        year = (year or str(ctx.today().year)).strip()
        if not (len(year) == 4 and year.isdigit()):
            raise QueryValidationError(f"Invalid year: {year}")
        return _json(await ctx.revenue_values(year, force=force))
    except Exception as exc:
        return _failure(exc, "revenue")


@router.get("/videos/stats")
async def video_stats(
    mock: Optional[str] = Query(default=None),
    force: bool = Query(default=False),
    ctx: DashboardContext = Depends(get_context),
):
    if mock:
        return _json({**MOCK_STATS, "lastUpdated": ctx.now().isoformat()})
    try:
        return _json(await ctx.video_stats(force=force))
    except Exception as exc:
        return _failure(exc, "video_stats")


@router.get("/sheet-link")
def sheet_link(
    doc: Optional[str] = Query(default=None),
    year: Optional[str] = Query(default=None),
    ctx: DashboardContext = Depends(get_context),
):
    sheet_id = ctx.settings.sheet_link_id(doc or "", year or str(ctx.today().year)) if doc else None
    if not sheet_id:
        return Response("Not found", status_code=404)
    return RedirectResponse(f"https://docs.google.com/spreadsheets/d/{sheet_id}/edit", status_code=302)


@router.get("/meta/goals")
def meta_goals(week: Optional[int] = Query(default=None), ctx: DashboardContext = Depends(get_context)):
    try:
        week_id = week if week is not None else current_week_id(ctx.today())
        if not is_valid_week_id(week_id):
            raise QueryValidationError(f"Invalid week id: {week_id}")
        goals = ctx.settings.dashboard.goals.goals_for_week(week_id)
        out = GoalsResponse(week=week_id, weekKey=split_week_id(week_id).key, goals=goals)
        return _json(out.model_dump())
    except Exception as exc:
        return _failure(exc, "meta_goals")


def create_app(context: Optional[DashboardContext] = None) -> FastAPI:
    app = FastAPI(title="KPI Dashboard API", version="0.1.0")
    app.state.context = context
    origins = list(context.settings.cors_origins) if context is not None else list(cors_origins_from_env(os.environ))
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)
    app.add_exception_handler(DashboardError, lambda request, exc: _failure(exc, request.url.path))
    app.add_exception_handler(RequestValidationError, _invalid_request)
    return app


app = create_app()
