from __future__ import annotations

import json
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

import pandas as pd

from .categories import CategoryConfig
from .config import settings
from .schemas import (
    AnalyticsResult,
    ArtifactStats,
    DepartmentRollup,
    DesignationRollup,
    DimensionBreakdown,
    FacultyLeaderboardEntry,
    FacultyProfile,
    TimeBucket,
)


ALL_DEPARTMENTS = "all"
UNKNOWN_LABEL = "Unknown"

_FRAME_COLUMNS = ["user_id", "activity_date", "has_artifact", "amount"]


def format_average(total: int, count: int) -> str:
    # Half-up on the exact binary value, one decimal place
    if count <= 0:
        return "0"
    value = Decimal(total / count).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
    return f"{value:.1f}"


def _as_profiles(faculties: Iterable[Any]) -> List[FacultyProfile]:
    out: List[FacultyProfile] = []
    for f in faculties:
        if isinstance(f, FacultyProfile):
            out.append(f)
        else:
            data = dict(f)
            data["id"] = str(data.get("id"))
            out.append(FacultyProfile(**data))
    return out


def _label(value: Optional[str]) -> str:
    return value or UNKNOWN_LABEL


def _user_key(row: Mapping[str, Any]) -> Optional[str]:
    user_id = row.get("user_id")
    return None if user_id is None else str(user_id)


def _activity_frame(category: CategoryConfig, activities: Sequence[Mapping[str, Any]]) -> pd.DataFrame:
    records = [
        {
            "user_id": _user_key(row),
            "activity_date": category.get_date(row),
            "has_artifact": category.has_artifact(row),
            "amount": category.get_amount(row),
        }
        for row in activities
    ]
    frame = pd.DataFrame.from_records(records, columns=_FRAME_COLUMNS)
    # Ordinal and year come from the parsed dates, not datetime64, so years
    # outside the nanosecond range still bucket
    dates = [d if isinstance(d, date) else None for d in frame["activity_date"]]
    frame["activity_date"] = pd.Series(dates, index=frame.index, dtype=object)
    frame["ordinal"] = pd.Series([d.toordinal() if d else None for d in dates], index=frame.index, dtype="float64")
    frame["year"] = pd.Series([d.year if d else None for d in dates], index=frame.index, dtype="float64")
    frame["has_artifact"] = frame["has_artifact"].astype(bool)
    frame["amount"] = pd.to_numeric(frame["amount"], errors="coerce").fillna(0.0)
    return frame


def filter_faculties(faculties: Sequence[FacultyProfile], selected_department: str) -> List[FacultyProfile]:
    if selected_department == ALL_DEPARTMENTS:
        return list(faculties)
    if selected_department == UNKNOWN_LABEL:
        return [f for f in faculties if _label(f.department) == UNKNOWN_LABEL]
    return [f for f in faculties if f.department == selected_department]


def list_departments(faculties: Sequence[FacultyProfile]) -> List[str]:
    seen: Dict[str, None] = {}
    for f in faculties:
        if f.department:
            seen.setdefault(f.department, None)
    return list(seen)


# -----------------------------
# Rollups (complete faculty list)
# -----------------------------

def _rollup_counts(faculties: Sequence[FacultyProfile], frame: pd.DataFrame, attribute: str):
    people = pd.DataFrame.from_records(
        [{"id": f.id, "group": _label(getattr(f, attribute))} for f in faculties],
        columns=["id", "group"],
    )
    faculty_counts = people.groupby("group", sort=False).size()
    # Duplicate profile ids would double-count activities
    members = people.drop_duplicates(subset="id")
    joined = members.merge(frame[["user_id"]], left_on="id", right_on="user_id", how="inner")
    activity_counts = joined.groupby("group", sort=False).size()
    for group, faculty_count in faculty_counts.items():
        yield str(group), int(activity_counts.get(group, 0)), int(faculty_count)


def department_rollups(faculties: Sequence[FacultyProfile], frame: pd.DataFrame) -> List[DepartmentRollup]:
    return [
        DepartmentRollup(
            department=group,
            activity_count=activities,
            faculty_count=faculty_count,
            avg_per_faculty=format_average(activities, faculty_count),
        )
        for group, activities, faculty_count in _rollup_counts(faculties, frame, "department")
    ]


def designation_rollups(faculties: Sequence[FacultyProfile], frame: pd.DataFrame) -> List[DesignationRollup]:
    return [
        DesignationRollup(designation=group, activity_count=activities, faculty_count=faculty_count)
        for group, activities, faculty_count in _rollup_counts(faculties, frame, "designation")
    ]


# -----------------------------
# Time buckets
# -----------------------------

def _month_key(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


def _month_label(key: str) -> str:
    year, month = key.split("-")
    return f"{date(2000, int(month), 1):%b} {int(year)}"


def monthly_buckets(frame: pd.DataFrame, limit: Optional[int] = None) -> List[TimeBucket]:
    limit = settings.monthly_bucket_limit if limit is None else limit
    dated = frame.loc[frame["ordinal"].notna(), "activity_date"]
    counts = dated.map(_month_key).value_counts().sort_index()
    if limit > 0:
        counts = counts.tail(limit)
    return [
        TimeBucket(period_key=str(key), period_label=_month_label(str(key)), count=int(count))
        for key, count in counts.items()
    ]


def yearly_buckets(frame: pd.DataFrame) -> List[TimeBucket]:
    counts = frame["year"].dropna().astype(int).value_counts().sort_index()
    return [
        TimeBucket(period_key=str(int(year)), period_label=str(int(year)), count=int(count))
        for year, count in counts.items()
    ]


# -----------------------------
# Dimension breakdowns
# -----------------------------

def _group_key(value: Any) -> Any:
    # JSON arrays and objects are grouped by their canonical text
    if isinstance(value, (list, dict)):
        return ("json", json.dumps(value, sort_keys=True, default=str))
    return value


def dimension_breakdown(
    category: CategoryConfig,
    activities: Sequence[Mapping[str, Any]],
    field_name: str,
) -> List[DimensionBreakdown]:
    counts: Dict[Any, int] = {}
    totals: Dict[Any, float] = {}
    shown: Dict[Any, Any] = {}
    for row in activities:
        value = category.get_dimension(row, field_name)
        key = _group_key(value)
        shown.setdefault(key, value)
        counts[key] = counts.get(key, 0) + 1
        if category.amount_field:
            totals[key] = totals.get(key, 0.0) + (category.get_amount(row) or 0.0)
    ordered = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return [
        DimensionBreakdown(
            value=shown[key],
            count=count,
            total_amount=totals.get(key) if category.amount_field else None,
        )
        for key, count in ordered
    ]


def top_dimensions(
    dimensions: Mapping[str, List[DimensionBreakdown]], limit: Optional[int] = None
) -> Dict[str, List[DimensionBreakdown]]:
    limit = settings.top_dimension_limit if limit is None else limit
    return {name: values[:limit] for name, values in dimensions.items()}


def artifact_stats(frame: pd.DataFrame) -> ArtifactStats:
    with_artifact = int(frame["has_artifact"].sum())
    return ArtifactStats(
        with_artifact=with_artifact,
        without_artifact=len(frame) - with_artifact,
        total=len(frame),
    )


# -----------------------------
# Leaderboard
# -----------------------------

def _faculty_stats(frame: pd.DataFrame, today: date, window_years: int) -> pd.DataFrame:
    scoped = frame.loc[frame["user_id"].notna()].copy()
    scoped["recent"] = scoped["year"] >= today.year - window_years
    return scoped.groupby("user_id").agg(
        activity_count=("has_artifact", "size"),
        recent_count=("recent", "sum"),
        artifact_count=("has_artifact", "sum"),
        latest=("ordinal", "max"),
        total_amount=("amount", "sum"),
    )


def leaderboard(
    category: CategoryConfig,
    faculties: Sequence[FacultyProfile],
    frame: pd.DataFrame,
    today: date,
    window_years: Optional[int] = None,
) -> List[FacultyLeaderboardEntry]:
    """Rank faculty by activity count.

    Counts are taken against the whole activity set, not the department
    filtered one: a faculty member's own records do not depend on the filter.
    Equal counts are ordered by faculty id.
    """
    window_years = settings.recent_window_years if window_years is None else window_years
    stats = _faculty_stats(frame, today, window_years)
    entries: List[FacultyLeaderboardEntry] = []
    for faculty in faculties:
        entry = FacultyLeaderboardEntry(**faculty.dict(), display_name=faculty.name_or_email())
        if faculty.id in stats.index:
            row = stats.loc[faculty.id]
            entry.activity_count = int(row["activity_count"])
            entry.recent_count = int(row["recent_count"])
            entry.artifact_count = int(row["artifact_count"])
            latest = row["latest"]
            entry.latest_activity_date = date.fromordinal(int(latest)) if pd.notna(latest) else None
            if category.amount_field:
                entry.total_amount = float(row["total_amount"])
        elif category.amount_field:
            entry.total_amount = 0.0
        entries.append(entry)
    return sorted(entries, key=lambda e: (-e.activity_count, e.id))


def filter_leaderboard(entries: Sequence[FacultyLeaderboardEntry], search: Optional[str]) -> List[FacultyLeaderboardEntry]:
    term = (search or "").strip().lower()
    if not term:
        return list(entries)
    return [e for e in entries if term in (e.full_name or e.email or "").lower()]


# -----------------------------
# Entry point
# -----------------------------

def compute_analytics(
    category: CategoryConfig,
    faculties: Sequence[Any],
    activities: Sequence[Mapping[str, Any]],
    selected_department: str = ALL_DEPARTMENTS,
    *,
    today: Optional[date] = None,
) -> AnalyticsResult:
    profiles = [p for p in _as_profiles(faculties) if category.includes_faculty(p.designation)]
    if not profiles:
        return AnalyticsResult.no_data(category.key, selected_department)
    today = today or date.today()

    scoped = filter_faculties(profiles, selected_department)
    member_ids = {f.id for f in scoped}

    frame = _activity_frame(category, activities)
    in_scope = frame.loc[frame["user_id"].isin(list(member_ids))]
    scoped_rows = [row for row in activities if _user_key(row) in member_ids]

    board = leaderboard(category, scoped, frame, today)

    return AnalyticsResult(
        category=category.key,
        department=selected_department,
        has_data=True,
        departments=list_departments(profiles),
        total_activities=len(in_scope),
        total_faculty=len(scoped),
        avg_activities_per_faculty=format_average(len(in_scope), len(scoped)),
        active_faculty_count=sum(1 for e in board if e.activity_count > 0),
        department_rollups=department_rollups(profiles, frame),
        designation_rollups=designation_rollups(profiles, frame),
        monthly_trends=monthly_buckets(in_scope),
        yearly_trends=yearly_buckets(in_scope),
        dimensions={name: dimension_breakdown(category, scoped_rows, name) for name in category.dimension_fields},
        artifact_stats=artifact_stats(in_scope) if category.artifact_field else None,
        leaderboard=board,
    )
