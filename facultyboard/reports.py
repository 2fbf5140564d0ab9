from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import pandas as pd

from .categories import FEED_DATE_FIELD, PROFILES_TABLE, CategoryConfig, all_categories, get_category, parse_activity_date, parse_amount
from .config import settings
from .repo import Filter, RecordSource
from .schemas import FacultyModuleCounts, FetchResult, OverviewStats, RecentActivity, RecentActivityFeed


logger = logging.getLogger("facultyboard.reports")

UNKNOWN_FACULTY = "Unknown Faculty"

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _timestamp(value: Any) -> datetime:
    """Sort key for created_at values; unparseable values sort last."""
    if value is None:
        return _EPOCH
    ts = pd.to_datetime(value, utc=True, errors="coerce")
    if pd.isna(ts):
        return _EPOCH
    return ts.to_pydatetime()


def merge_recent(
    batches: Sequence[Tuple[CategoryConfig, FetchResult]],
    size: Optional[int] = None,
) -> Tuple[List[RecentActivity], List[str]]:
    size = settings.recent_feed_size if size is None else size
    merged: List[RecentActivity] = []
    failed: List[str] = []
    for category, res in batches:
        if res.failed:
            failed.append(category.key)
            continue
        for row in res.rows:
            merged.append(
                RecentActivity(
                    type=category.label,
                    category=category.key,
                    id=None if row.get("id") is None else str(row.get("id")),
                    user_id=None if row.get("user_id") is None else str(row.get("user_id")),
                    created_at=None if row.get(FEED_DATE_FIELD) is None else str(row.get(FEED_DATE_FIELD)),
                    title=category.get_title(row),
                )
            )
    merged.sort(key=lambda a: _timestamp(a.created_at), reverse=True)
    return merged[:size], failed


async def resolve_faculty_names(source: RecordSource, user_ids: Sequence[str]) -> Dict[str, str]:
    ids = list(dict.fromkeys(u for u in user_ids if u))
    if not ids:
        return {}
    res = await source.fetch_collection(
        PROFILES_TABLE,
        select="id,full_name",
        filters=[Filter("id", "in", ids)],
    )
    if res.failed:
        logger.warning("Faculty name lookup failed: %s", res.error)
        return {}
    return {str(p.get("id")): p.get("full_name") or UNKNOWN_FACULTY for p in res.rows}


async def build_recent_feed(
    source: RecordSource,
    *,
    per_category: Optional[int] = None,
    size: Optional[int] = None,
) -> RecentActivityFeed:
    per_category = settings.recent_per_category if per_category is None else per_category
    categories = all_categories()
    results = await asyncio.gather(
        *[
            source.fetch_collection(
                c.table,
                select=c.feed_columns,
                order_by=FEED_DATE_FIELD,
                descending=True,
                limit=per_category,
            )
            for c in categories
        ]
    )
    items, failed = merge_recent(list(zip(categories, results)), size)
    if failed:
        logger.warning("Recent feed skipped categories: %s", ", ".join(failed))

    names = await resolve_faculty_names(source, [a.user_id for a in items if a.user_id])
    for item in items:
        item.faculty = names.get(item.user_id or "", UNKNOWN_FACULTY)
    return RecentActivityFeed(items=items, failed_categories=failed)


def active_on(rows: Sequence[Mapping[str, Any]], today: date) -> int:
    count = 0
    for row in rows:
        start = parse_activity_date(row.get("duration_from"))
        end = parse_activity_date(row.get("duration_to"))
        if start is not None and end is not None and start <= today <= end:
            count += 1
    return count


def total_amount(rows: Sequence[Mapping[str, Any]], field_name: str) -> float:
    return sum(parse_amount(row.get(field_name)) for row in rows)


async def build_overview(source: RecordSource, *, today: Optional[date] = None) -> OverviewStats:
    today = today or date.today()
    publications = get_category("publications")
    projects = get_category("projects")
    faculty_res, pubs_res, projects_res = await asyncio.gather(
        source.count_rows(PROFILES_TABLE),
        source.count_rows(
            publications.table,
            filters=[
                Filter(FEED_DATE_FIELD, "gte", f"{today.year}-01-01"),
                Filter(FEED_DATE_FIELD, "lt", f"{today.year + 1}-01-01"),
            ],
        ),
        source.fetch_collection(projects.table, select=f"id,duration_from,duration_to,{projects.amount_field}"),
    )
    stats = OverviewStats()
    for res in (faculty_res, pubs_res, projects_res):
        if res.failed:
            stats.failed_sources.append(res.table)
    if not faculty_res.failed:
        stats.faculty_count = faculty_res.count or 0
    if not pubs_res.failed:
        stats.publications_this_year = pubs_res.count or 0
    if not projects_res.failed:
        stats.active_projects = active_on(projects_res.rows, today)
        stats.total_funding = total_amount(projects_res.rows, projects.amount_field or "funded_amount")
    if stats.failed_sources:
        logger.warning("Overview incomplete, failed sources: %s", ", ".join(stats.failed_sources))
    return stats


async def count_faculty_modules(source: RecordSource, user_id: str) -> FacultyModuleCounts:
    categories = all_categories()
    results = await asyncio.gather(
        *[source.count_rows(c.table, filters=[Filter("user_id", "eq", user_id)]) for c in categories]
    )
    out = FacultyModuleCounts(user_id=user_id)
    for category, res in zip(categories, results):
        if res.failed:
            out.failed_categories.append(category.key)
            continue
        out.counts[category.key] = res.count or 0
    return out
