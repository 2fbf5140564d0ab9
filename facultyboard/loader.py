from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import List, Optional

from .analytics import ALL_DEPARTMENTS, compute_analytics
from .categories import PROFILE_COLUMNS, PROFILES_TABLE, CategoryConfig
from .repo import Filter, RecordSource, require
from .schemas import ActivityItem, AnalyticsResult


logger = logging.getLogger("facultyboard.loader")


async def load_category_analytics(
    source: RecordSource,
    category: CategoryConfig,
    department: str = ALL_DEPARTMENTS,
    *,
    today: Optional[date] = None,
) -> AnalyticsResult:
    faculty_res, activity_res = await asyncio.gather(
        source.fetch_collection(PROFILES_TABLE, select=PROFILE_COLUMNS),
        source.fetch_collection(category.table, order_by=category.date_field, descending=True),
    )
    require(faculty_res)
    require(activity_res)
    logger.info(
        "Loaded %s: faculties=%d activities=%d department=%s",
        category.key,
        len(faculty_res.rows),
        len(activity_res.rows),
        department,
    )
    return compute_analytics(category, faculty_res.rows, activity_res.rows, department, today=today)


async def load_faculty_activities(source: RecordSource, category: CategoryConfig, faculty_id: str) -> List[ActivityItem]:
    order_by, descending = category.listing_order
    res = require(
        await source.fetch_collection(
            category.table,
            filters=[Filter("user_id", "eq", faculty_id)],
            order_by=order_by,
            descending=descending,
        )
    )
    items: List[ActivityItem] = []
    for row in res.rows:
        details = {name: category.get_dimension(row, name) for name in category.dimension_fields}
        details.update({name: row.get(name) for name in category.detail_fields})
        if category.amount_field:
            details[category.amount_field] = category.get_amount(row)
        items.append(
            ActivityItem(
                id=None if row.get("id") is None else str(row.get("id")),
                title=category.get_title(row),
                activity_date=category.get_date(row),
                artifact_url=category.get_artifact(row),
                details=details,
            )
        )
    return items


class DashboardController:
    """Holds the analytics shown by one category dashboard.

    Every department change starts a new generation and cancels the load still
    in flight. A load that finishes after a newer one started is dropped, so a
    slow response for an old filter never replaces the current view.
    """

    def __init__(self, source: RecordSource, category: CategoryConfig) -> None:
        self._source = source
        self._category = category
        self._generation = 0
        self._task: Optional[asyncio.Task] = None
        self.department: str = ALL_DEPARTMENTS
        self.result: Optional[AnalyticsResult] = None

    @property
    def generation(self) -> int:
        return self._generation

    async def select_department(self, department: str = ALL_DEPARTMENTS) -> Optional[AnalyticsResult]:
        self._generation += 1
        generation = self._generation
        if self._task is not None and not self._task.done():
            self._task.cancel()
        task = asyncio.ensure_future(load_category_analytics(self._source, self._category, department))
        self._task = task
        try:
            result = await task
        except asyncio.CancelledError:
            if generation != self._generation:
                logger.info("Dropped superseded %s load for department=%s", self._category.key, department)
                return None
            raise
        if generation != self._generation:
            logger.info("Discarded stale %s result for department=%s", self._category.key, department)
            return None
        self.department = department
        self.result = result
        return result
