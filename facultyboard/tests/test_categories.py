from datetime import date, datetime

import pytest

from facultyboard.categories import CATEGORIES, UnknownCategory, get_category, parse_activity_date, parse_amount


def test_ten_categories_are_configured():
    assert len(CATEGORIES) == 10
    tables = {c.table for c in CATEGORIES.values()}
    assert "fdp_certifications" in tables
    assert "timetables" in tables


def test_unknown_category_raises_key_error():
    with pytest.raises(UnknownCategory):
        get_category("grants")
    with pytest.raises(KeyError):
        get_category("grants")


def test_parse_activity_date_reads_leading_iso_date():
    assert parse_activity_date("2024-03-01") == date(2024, 3, 1)
    assert parse_activity_date("2024-12-31T23:30:00-05:00") == date(2024, 12, 31)
    assert parse_activity_date(datetime(2023, 1, 2, 3, 4)) == date(2023, 1, 2)
    assert parse_activity_date(date(2022, 5, 6)) == date(2022, 5, 6)
    assert parse_activity_date(None) is None
    assert parse_activity_date("2024-13-01") is None
    assert parse_activity_date("2024") is None


def test_parse_amount_falls_back_to_zero():
    assert parse_amount("12.5") == 12.5
    assert parse_amount(3) == 3.0
    assert parse_amount(None) == 0.0
    assert parse_amount("n/a") == 0.0
    assert parse_amount(float("nan")) == 0.0


def test_accessors_follow_the_category_fields():
    awards = get_category("awards")
    row = {
        "title": "Best Paper",
        "issuing_body": "IEEE",
        "date_awarded": "2024-04-02",
        "created_at": "2024-05-01T00:00:00Z",
        "certificate_url": "",
    }
    assert awards.get_title(row) == "Best Paper"
    assert awards.get_date(row) == date(2024, 4, 2)
    assert awards.get_dimension(row, "issuing_body") == "IEEE"
    assert awards.get_artifact(row) is None
    assert awards.has_artifact({**row, "certificate_url": "https://x/cert.pdf"})
    assert awards.get_amount(row) is None
    assert awards.feed_columns == "id,user_id,created_at,title"


def test_timetable_lists_by_day_order():
    timetable = get_category("timetable")
    assert timetable.listing_order == ("day_order", False)
    assert timetable.artifact_field is None
    assert get_category("workshops").listing_order == ("duration_from", True)


def test_describe_exposes_configuration():
    out = get_category("projects").describe()
    assert out.table == "projects"
    assert out.amount_field == "funded_amount"
    assert out.dimension_fields == ["funding_agency"]


def test_fdp_excludes_hod_designation():
    fdp = get_category("fdp")
    assert fdp.describe().excluded_designations == ["HOD"]
    assert not fdp.includes_faculty("HOD")
    assert fdp.includes_faculty("Professor")
    assert fdp.includes_faculty(None)
    assert get_category("publications").includes_faculty("HOD")
