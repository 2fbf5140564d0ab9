from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .schemas import CategoryOut


PROFILES_TABLE = "profiles"
PROFILE_COLUMNS = "id,email,full_name,department,designation"
FEED_DATE_FIELD = "created_at"


class UnknownCategory(KeyError):
    pass


def parse_activity_date(value: Any) -> Optional[date]:
    """Calendar date of a row value: ISO strings, dates and datetimes.

    Only the leading ``YYYY-MM-DD`` of a string is read, so timestamps keep
    the date they were written with instead of being shifted to local time.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if len(text) < 10:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def parse_amount(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return 0.0
    if amount != amount:  # NaN
        return 0.0
    return amount


@dataclass(frozen=True)
class CategoryConfig:
    key: str
    table: str
    label: str
    title_field: str
    date_field: str
    dimension_fields: Tuple[str, ...] = ()
    artifact_field: Optional[str] = None
    amount_field: Optional[str] = None
    order_field: Optional[str] = None
    order_descending: bool = True
    detail_fields: Tuple[str, ...] = field(default=())
    # Profiles with these designations are left out of the faculty set
    excluded_designations: Tuple[str, ...] = ()

    def get_title(self, row: Mapping[str, Any]) -> Optional[str]:
        return row.get(self.title_field)

    def get_date(self, row: Mapping[str, Any]) -> Optional[date]:
        return parse_activity_date(row.get(self.date_field))

    def get_dimension(self, row: Mapping[str, Any], name: str) -> Any:
        return row.get(name)

    def get_artifact(self, row: Mapping[str, Any]) -> Optional[str]:
        if not self.artifact_field:
            return None
        return row.get(self.artifact_field) or None

    def has_artifact(self, row: Mapping[str, Any]) -> bool:
        return self.get_artifact(row) is not None

    def get_amount(self, row: Mapping[str, Any]) -> Optional[float]:
        if not self.amount_field:
            return None
        return parse_amount(row.get(self.amount_field))

    @property
    def listing_order(self) -> Tuple[str, bool]:
        return (self.order_field or self.date_field, self.order_descending)

    @property
    def feed_columns(self) -> str:
        return f"id,user_id,{FEED_DATE_FIELD},{self.title_field}"

    def includes_faculty(self, designation: Optional[str]) -> bool:
        return designation not in self.excluded_designations

    def describe(self) -> CategoryOut:
        return CategoryOut(
            key=self.key,
            table=self.table,
            label=self.label,
            title_field=self.title_field,
            date_field=self.date_field,
            dimension_fields=list(self.dimension_fields),
            artifact_field=self.artifact_field,
            amount_field=self.amount_field,
            excluded_designations=list(self.excluded_designations),
        )


CATEGORIES: Dict[str, CategoryConfig] = {
    c.key: c
    for c in [
        CategoryConfig(
            key="fdp",
            table="fdp_certifications",
            label="FDP",
            title_field="title",
            date_field="duration_from",
            dimension_fields=("organizer",),
            artifact_field="certificate_url",
            detail_fields=("duration_to",),
            excluded_designations=("HOD",),
        ),
        CategoryConfig(
            key="publications",
            table="publications",
            label="Publication",
            title_field="paper_title",
            date_field="created_at",
            dimension_fields=("index_type", "journal_conference_name"),
            artifact_field="publication_url",
            detail_fields=("doi", "paper_number"),
        ),
        CategoryConfig(
            key="projects",
            table="projects",
            label="Project",
            title_field="title",
            date_field="created_at",
            dimension_fields=("funding_agency",),
            artifact_field="sanction_letter_url",
            amount_field="funded_amount",
            detail_fields=("duration_from", "duration_to"),
        ),
        CategoryConfig(
            key="awards",
            table="awards",
            label="Award",
            title_field="title",
            date_field="date_awarded",
            dimension_fields=("issuing_body",),
            artifact_field="certificate_url",
        ),
        CategoryConfig(
            key="patents",
            table="patents",
            label="Patent",
            title_field="title",
            date_field="created_at",
            dimension_fields=("status",),
            artifact_field="document_url",
        ),
        CategoryConfig(
            key="memberships",
            table="memberships",
            label="Membership",
            title_field="professional_body_name",
            date_field="created_at",
            dimension_fields=("professional_body_name",),
            artifact_field="certificate_url",
            detail_fields=("membership_id", "expiry_date"),
        ),
        CategoryConfig(
            key="student_projects",
            table="student_projects",
            label="Student Project",
            title_field="project_title",
            date_field="created_at",
            dimension_fields=("project_type", "status"),
            detail_fields=("semester", "students_involved"),
        ),
        CategoryConfig(
            key="teaching_materials",
            table="teaching_materials",
            label="Teaching Material",
            title_field="title",
            date_field="created_at",
            dimension_fields=("material_type",),
            artifact_field="file_url",
            detail_fields=("course_code", "course_name"),
        ),
        CategoryConfig(
            key="timetable",
            table="timetables",
            label="Timetable",
            title_field="course",
            date_field="created_at",
            dimension_fields=("course_code", "semester"),
            order_field="day_order",
            order_descending=False,
            detail_fields=("section", "day_order", "time_slot", "room", "credits"),
        ),
        CategoryConfig(
            key="workshops",
            table="workshops",
            label="Workshop",
            title_field="event_name",
            date_field="duration_from",
            dimension_fields=("organizer",),
            artifact_field="certificate_url",
            detail_fields=("duration_to",),
        ),
    ]
}


def get_category(key: str) -> CategoryConfig:
    try:
        return CATEGORIES[key]
    except KeyError:
        raise UnknownCategory(key) from None


def all_categories() -> List[CategoryConfig]:
    return list(CATEGORIES.values())
