from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from .analytics import ALL_DEPARTMENTS, filter_leaderboard, top_dimensions
from .categories import CategoryConfig, UnknownCategory, all_categories, get_category
from .config import settings
from .loader import load_category_analytics, load_faculty_activities
from .repo import RecordSource, RecordSourceError, build_record_source
from .reports import build_overview, build_recent_feed, count_faculty_modules
from .schemas import (
    ActivityItem,
    AnalyticsResult,
    CategoryOut,
    FacultyModuleCounts,
    OverviewStats,
    RecentActivityFeed,
)


logger = logging.getLogger("facultyboard.app")
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

app = FastAPI(title="Faculty Activity Analytics", version="0.1.0")
source = build_record_source(settings)


def get_source() -> RecordSource:
    return source


def resolve_category(category: str) -> CategoryConfig:
    try:
        return get_category(category)
    except UnknownCategory:
        raise HTTPException(status_code=404, detail=f"unknown category: {category}")


@app.on_event("startup")
async def on_startup() -> None:
    if settings.environment != "test" and settings.database_url:
        try:
            await source.connect()
        except Exception:
            # Pool is created lazily on the first query
            logger.exception("Database connect failed at startup")
    logger.info(
        "App startup: env=%s supabase_url=%s database=%s",
        settings.environment,
        bool(settings.supabase_url),
        bool(settings.database_url),
    )


@app.on_event("shutdown")
async def on_shutdown() -> None:
    await source.disconnect()


@app.exception_handler(RecordSourceError)
async def record_source_error_handler(request: Request, exc: RecordSourceError):
    logger.error("Record source failure on %s: %s", request.url.path, exc)
    return JSONResponse(
        {"detail": "record source unavailable", "table": exc.table, "error": exc.result.error},
        status_code=502,
    )


@app.get("/api/config")
async def get_config():
    return {
        "config_version": settings.config_version,
        "monthly_bucket_limit": settings.monthly_bucket_limit,
        "top_dimension_limit": settings.top_dimension_limit,
        "recent_feed_size": settings.recent_feed_size,
    }


@app.get("/api/categories", response_model=List[CategoryOut])
async def list_categories():
    return [c.describe() for c in all_categories()]


@app.get("/api/analytics/{category}", response_model=AnalyticsResult)
async def get_analytics(
    category: str,
    department: str = Query(ALL_DEPARTMENTS),
    search: Optional[str] = Query(None),
    top: Optional[int] = Query(None, ge=1),
    source: RecordSource = Depends(get_source),
):
    config = resolve_category(category)
    result = await load_category_analytics(source, config, department)
    result.dimensions = top_dimensions(result.dimensions, top)
    if search:
        result.leaderboard = filter_leaderboard(result.leaderboard, search)
    return result


@app.get("/api/analytics/{category}/faculty/{faculty_id}", response_model=List[ActivityItem])
async def get_faculty_activities(category: str, faculty_id: str, source: RecordSource = Depends(get_source)):
    config = resolve_category(category)
    return await load_faculty_activities(source, config, faculty_id)


@app.get("/api/reports/recent", response_model=RecentActivityFeed)
async def get_recent_activity(source: RecordSource = Depends(get_source)):
    return await build_recent_feed(source)


@app.get("/api/reports/overview", response_model=OverviewStats)
async def get_overview(source: RecordSource = Depends(get_source)):
    return await build_overview(source)


@app.get("/api/faculty/{user_id}/counts", response_model=FacultyModuleCounts)
async def get_faculty_counts(user_id: str, source: RecordSource = Depends(get_source)):
    return await count_faculty_modules(source, user_id)
