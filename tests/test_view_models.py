from datetime import date, datetime

import pytest

from domain import Event, Module, Note, RecurrenceRule
from recurrence import expand_all
from view_models import (
    build_calendar,
    build_dashboard,
    calendar_view,
    day_view,
    list_view,
    module_overview,
    month_view,
    notes_sidebar,
    serialize_event,
    week_view,
)


class StaticCollections:
    def __init__(self, events, modules=(), notes=()):
        self.events = list(events)
        self.modules = list(modules)
        self.notes = list(notes)

    def expanded(self, window_start, window_end):
        return expand_all(self.events, window_start, window_end)


def ev(event_id, start, end, **kwargs):
    return Event(id=event_id, title=event_id, start=start, end=end, **kwargs)


def test_day_view_slots_events_by_hour_with_columns():
    events = [
        ev("a", datetime(2024, 6, 10, 10, 0), datetime(2024, 6, 10, 11, 0)),
        ev("b", datetime(2024, 6, 10, 10, 30), datetime(2024, 6, 10, 11, 30)),
        ev("other-day", datetime(2024, 6, 11, 10, 0), datetime(2024, 6, 11, 11, 0)),
    ]
    view = day_view(events, date(2024, 6, 10), date(2024, 6, 10))

    assert view["is_today"] is True
    assert len(view["hours"]) == 24
    ten = view["hours"][10]["events"]
    assert [(e["event"]["id"], e["column"], e["total_columns"]) for e in ten] == [("a", 0, 2), ("b", 1, 2)]
    assert all(not slot["events"] for slot in view["hours"] if slot["hour"] != 10)


def test_week_view_starts_on_sunday():
    view = week_view([], date(2024, 6, 12), date(2024, 6, 12))
    assert view["week_start"] == "2024-06-09"
    assert [d["date"] for d in view["days"]][-1] == "2024-06-15"
    assert [d["is_today"] for d in view["days"]].count(True) == 1


def test_month_view_grid_marks_month_and_current_week():
    events = [ev("x", datetime(2024, 6, 3, 9), datetime(2024, 6, 3, 10))]
    view = month_view(events, date(2024, 6, 20), date(2024, 6, 4))

    assert view["month"] == "2024-06"
    assert all(len(week) == 7 for week in view["weeks"])
    first = view["weeks"][0][0]
    assert first["date"] == "2024-05-26" and first["in_month"] is False
    cells = {cell["date"]: cell for week in view["weeks"] for cell in week}
    assert [e["id"] for e in cells["2024-06-03"]["events"]] == ["x"]
    assert cells["2024-06-04"]["is_today"] is True
    assert cells["2024-06-08"]["in_current_week"] is True
    assert cells["2024-06-09"]["in_current_week"] is False


def test_list_view_skips_empty_sections():
    now = datetime(2024, 6, 10, 8)
    events = [ev("soon", datetime(2024, 6, 11, 9), datetime(2024, 6, 11, 10))]
    view = list_view(events, now)
    assert [s["key"] for s in view["sections"]] == ["tomorrow"]
    assert view["sections"][0]["label"] == "Tomorrow"


def test_module_overview_lists_others_last():
    now = datetime(2024, 6, 10, 8)
    modules = [Module(id="1", name="Chemistry", code="CH101")]
    events = [
        ev("lab", datetime(2024, 6, 12, 9), datetime(2024, 6, 12, 10), module_id="1"),
        ev("loose", datetime(2024, 6, 12, 9), datetime(2024, 6, 12, 10), module_id="deleted"),
    ]
    overview = module_overview(events, modules, now)

    assert overview[0]["module"]["code"] == "CH101"
    assert overview[0]["upcoming_count"] == 1
    assert overview[-1]["label"] == "Others"
    assert [e["id"] for e in overview[-1]["events"]] == ["loose"]


def test_notes_sidebar_filters_and_counts():
    modules = [Module(id="1", name="Biology")]
    notes = [Note(id="n1", title="Cells", module_id="1"), Note(id="n2", title="Todo")]
    sidebar = notes_sidebar(notes, modules, query="cell")

    assert sidebar["query"] == "cell"
    assert sidebar["sections"][0]["count"] == 1
    assert [n["id"] for n in sidebar["sections"][0]["notes"]] == ["n1"]
    assert sidebar["sections"][1]["notes"] == []
    assert sidebar["sections"][1]["count"] == 1


def test_calendar_view_rejects_unknown_view():
    with pytest.raises(ValueError):
        calendar_view("year", [], date(2024, 1, 1), datetime(2024, 1, 1))


def test_build_dashboard_expands_templates():
    template = ev(
        "5",
        datetime(2024, 6, 3, 9),
        datetime(2024, 6, 3, 10),
        recurrence=RecurrenceRule(frequency="weekly", days_of_week=[1]),
    )
    collections = StaticCollections([template], modules=[Module(id="m", name="Art")])
    now = datetime(2024, 6, 10, 8)
    dashboard = build_dashboard(collections, date(2024, 6, 10), now)

    assert [e["id"] for e in dashboard["events"]] == ["5_1"]
    assert dashboard["events"][0]["is_recurring_instance"] is True
    assert dashboard["list"]["sections"][0]["key"] == "today"
    assert dashboard["modules"][-1]["label"] == "Others"


def test_build_calendar_reports_window():
    collections = StaticCollections([])
    payload = build_calendar(collections, "month", date(2024, 6, 15), datetime(2024, 6, 15, 9))
    assert payload["view"] == "month"
    assert payload["window"]["start"] == "2024-05-26T00:00:00"


def test_serialize_event_includes_recurrence():
    event = ev(
        "9",
        datetime(2024, 1, 1, 9),
        datetime(2024, 1, 1, 10),
        recurrence=RecurrenceRule(frequency="monthly", count=2, end_date=None),
    )
    data = serialize_event(event)
    assert data["start"] == "2024-01-01T09:00:00"
    assert data["recurrence"]["frequency"] == "monthly"
    assert data["recurrence"]["count"] == 2
