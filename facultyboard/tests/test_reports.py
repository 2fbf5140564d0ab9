import asyncio
from datetime import date

from facultyboard.categories import get_category
from facultyboard.reports import build_overview, build_recent_feed, count_faculty_modules, merge_recent
from facultyboard.schemas import FetchResult
from facultyboard.tests.fakes import InMemoryRecordSource


def make_tables():
    return {
        "profiles": [
            {"id": "f1", "full_name": "Asha Rao", "email": "asha@uni.edu", "department": "CS"},
            {"id": "f2", "full_name": None, "email": "ravi@uni.edu", "department": "EE"},
        ],
        "publications": [
            {"id": "p1", "user_id": "f1", "paper_title": "Graphs", "created_at": "2025-03-01T09:00:00+00:00"},
            {"id": "p2", "user_id": "f1", "paper_title": "Trees", "created_at": "2024-01-01T09:00:00+00:00"},
            {"id": "p3", "user_id": "f2", "paper_title": "Old", "created_at": "2019-01-01T09:00:00+00:00"},
        ],
        "awards": [
            {"id": "w1", "user_id": "f2", "title": "Teaching Award", "created_at": "2025-04-01T09:00:00+00:00"},
        ],
        "workshops": [
            {"id": "k1", "user_id": "ghost", "event_name": "ML Bootcamp", "created_at": "2025-05-01T09:00:00+00:00"},
        ],
        "timetables": [
            {"id": "t1", "user_id": "f1", "course": "Algorithms", "created_at": "2025-01-15T09:00:00+00:00"},
        ],
        "memberships": [
            {"id": "m1", "user_id": "f1", "professional_body_name": "IEEE", "created_at": "2024-06-01T09:00:00+00:00"},
        ],
        "projects": [
            {
                "id": "r1",
                "user_id": "f1",
                "title": "Smart Grid",
                "created_at": "2023-01-01T00:00:00+00:00",
                "duration_from": "2024-01-01",
                "duration_to": "2026-12-31",
                "funded_amount": 250000,
            },
            {
                "id": "r2",
                "user_id": "f2",
                "title": "Robotics",
                "created_at": "2022-01-01T00:00:00+00:00",
                "duration_from": "2020-01-01",
                "duration_to": "2021-12-31",
                "funded_amount": "100000.50",
            },
        ],
    }


def test_recent_feed_merges_newest_rows_across_categories():
    source = InMemoryRecordSource(make_tables())
    feed = asyncio.run(build_recent_feed(source))

    assert [(a.type, a.title) for a in feed.items] == [
        ("Workshop", "ML Bootcamp"),
        ("Award", "Teaching Award"),
        ("Publication", "Graphs"),
        ("Timetable", "Algorithms"),
        ("Membership", "IEEE"),
    ]
    assert [a.faculty for a in feed.items] == [
        "Unknown Faculty",
        "Unknown Faculty",
        "Asha Rao",
        "Asha Rao",
        "Asha Rao",
    ]
    assert feed.failed_categories == []

    # Newest two per category, then one batched profile lookup
    category_fetches = [c for c in source.calls if c[1] != "profiles"]
    assert len(category_fetches) == 10
    profile_calls = [c for c in source.calls if c[1] == "profiles"]
    assert len(profile_calls) == 1


def test_recent_feed_tolerates_failed_categories():
    source = InMemoryRecordSource(make_tables(), failing=["awards", "workshops"])
    feed = asyncio.run(build_recent_feed(source, size=3))
    assert feed.failed_categories == ["awards", "workshops"]
    assert [a.title for a in feed.items] == ["Graphs", "Algorithms", "IEEE"]


def test_name_lookup_failure_falls_back_to_placeholder():
    source = InMemoryRecordSource(make_tables(), failing=["profiles"])
    feed = asyncio.run(build_recent_feed(source))
    assert len(feed.items) == 5
    assert {a.faculty for a in feed.items} == {"Unknown Faculty"}


def test_merge_recent_orders_by_timestamp():
    publications = get_category("publications")
    patents = get_category("patents")
    batches = [
        (publications, FetchResult.success("publications", [
            {"id": "1", "user_id": "f1", "paper_title": "A", "created_at": "2024-01-01T10:00:00Z"},
            {"id": "2", "user_id": "f1", "paper_title": "B", "created_at": None},
        ])),
        (patents, FetchResult.success("patents", [
            {"id": "3", "user_id": "f2", "title": "C", "created_at": "2024-01-01T12:00:00+02:00"},
            {"id": "4", "user_id": "f2", "title": "D", "created_at": "2024-01-01"},
        ])),
    ]
    items, failed = merge_recent(batches, 10)
    assert failed == []
    assert [a.title for a in items] == ["A", "C", "D", "B"]


def test_overview_counts():
    source = InMemoryRecordSource(make_tables())
    stats = asyncio.run(build_overview(source, today=date(2025, 6, 1)))
    assert stats.faculty_count == 2
    assert stats.publications_this_year == 1
    assert stats.active_projects == 1
    assert stats.total_funding == 350000.5
    assert stats.failed_sources == []


def test_overview_reports_failed_sources():
    source = InMemoryRecordSource(make_tables(), failing=["projects"])
    stats = asyncio.run(build_overview(source, today=date(2025, 6, 1)))
    assert stats.failed_sources == ["projects"]
    assert stats.total_funding == 0.0
    assert stats.faculty_count == 2


def test_faculty_module_counts():
    source = InMemoryRecordSource(make_tables(), failing=["patents"])
    out = asyncio.run(count_faculty_modules(source, "f1"))
    assert out.counts["publications"] == 2
    assert out.counts["projects"] == 1
    assert out.counts["awards"] == 0
    assert "patents" not in out.counts
    assert out.failed_categories == ["patents"]
    assert out.total == 5


def test_merge_recent_reads_any_fraction_length():
    publications = get_category("publications")
    patents = get_category("patents")
    batches = [
        (patents, FetchResult.success("patents", [
            {"id": "1", "user_id": "f2", "title": "OLD", "created_at": "2020-01-01T00:00:00+00:00"},
        ])),
        (publications, FetchResult.success("publications", [
            {"id": "2", "user_id": "f1", "paper_title": "NEW", "created_at": "2025-05-01T10:00:00.12345+00:00"},
            {"id": "3", "user_id": "f1", "paper_title": "MID", "created_at": "2023-02-01T08:30:00.1+00:00"},
        ])),
    ]
    items, _ = merge_recent(batches, 10)
    assert [a.title for a in items] == ["NEW", "MID", "OLD"]
