from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


# Inbound rows
class FacultyProfile(BaseModel):
    id: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    department: Optional[str] = None
    designation: Optional[str] = None

    def name_or_email(self) -> str:
        return self.full_name or self.email or "Unknown"


# Record source boundary
class FetchResult(BaseModel):
    table: str
    status: Literal["ok", "empty", "error"]
    rows: List[Dict[str, Any]] = Field(default_factory=list)
    count: Optional[int] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, table: str, rows: List[Dict[str, Any]], count: Optional[int] = None) -> "FetchResult":
        empty = not rows if count is None else count == 0
        return cls(table=table, status="empty" if empty else "ok", rows=rows, count=count)

    @classmethod
    def failure(cls, table: str, error: str) -> "FetchResult":
        return cls(table=table, status="error", error=error)

    @property
    def failed(self) -> bool:
        return self.status == "error"


# Analytics outputs
class DepartmentRollup(BaseModel):
    department: str
    activity_count: int
    faculty_count: int
    avg_per_faculty: str


class DesignationRollup(BaseModel):
    designation: str
    activity_count: int
    faculty_count: int


class TimeBucket(BaseModel):
    period_key: str
    period_label: str
    count: int


class DimensionBreakdown(BaseModel):
    value: Any = None
    count: int
    total_amount: Optional[float] = None


class ArtifactStats(BaseModel):
    with_artifact: int
    without_artifact: int
    total: int


class FacultyLeaderboardEntry(FacultyProfile):
    display_name: str
    activity_count: int = 0
    recent_count: int = 0
    artifact_count: int = 0
    latest_activity_date: Optional[date] = None
    total_amount: Optional[float] = None


class AnalyticsResult(BaseModel):
    category: str
    department: str
    has_data: bool = True
    departments: List[str] = Field(default_factory=list)
    total_activities: int = 0
    total_faculty: int = 0
    avg_activities_per_faculty: str = "0"
    active_faculty_count: int = 0
    department_rollups: List[DepartmentRollup] = Field(default_factory=list)
    designation_rollups: List[DesignationRollup] = Field(default_factory=list)
    monthly_trends: List[TimeBucket] = Field(default_factory=list)
    yearly_trends: List[TimeBucket] = Field(default_factory=list)
    dimensions: Dict[str, List[DimensionBreakdown]] = Field(default_factory=dict)
    artifact_stats: Optional[ArtifactStats] = None
    leaderboard: List[FacultyLeaderboardEntry] = Field(default_factory=list)

    @classmethod
    def no_data(cls, category: str, department: str) -> "AnalyticsResult":
        return cls(category=category, department=department, has_data=False)


class ActivityItem(BaseModel):
    id: Optional[str] = None
    title: Optional[str] = None
    activity_date: Optional[date] = None
    artifact_url: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)


# Reports
class RecentActivity(BaseModel):
    type: str
    category: str
    id: Optional[str] = None
    user_id: Optional[str] = None
    created_at: Optional[str] = None
    title: Optional[str] = None
    faculty: str = "Unknown Faculty"


class RecentActivityFeed(BaseModel):
    items: List[RecentActivity] = Field(default_factory=list)
    failed_categories: List[str] = Field(default_factory=list)


class OverviewStats(BaseModel):
    faculty_count: int = 0
    publications_this_year: int = 0
    active_projects: int = 0
    total_funding: float = 0.0
    failed_sources: List[str] = Field(default_factory=list)


class FacultyModuleCounts(BaseModel):
    user_id: str
    counts: Dict[str, int] = Field(default_factory=dict)
    failed_categories: List[str] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return sum(self.counts.values())


class CategoryOut(BaseModel):
    key: str
    table: str
    label: str
    title_field: str
    date_field: str
    dimension_fields: List[str]
    artifact_field: Optional[str] = None
    amount_field: Optional[str] = None
    excluded_designations: List[str] = []
