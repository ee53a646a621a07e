from datetime import date, datetime

import pytest

from domain import Event, RecurrenceRule
from services.validation_service import (
    normalize_id,
    parse_bool,
    parse_datetime_value,
    parse_days_of_week,
    parse_event_payload,
    parse_module_payload,
    parse_recurrence,
    validate_credentials,
)


def test_parse_bool_and_ids():
    assert parse_bool("yes") is True
    assert parse_bool(None, True) is True
    assert normalize_id(" 7 ") == "7"
    assert normalize_id("null") is None


def test_parse_days_of_week_dedupes_and_drops_invalid():
    assert parse_days_of_week("3,1,1,9,x") == [1, 3]
    assert parse_days_of_week([6, "0"]) == [0, 6]


def test_parse_datetime_value_drops_offsets():
    assert parse_datetime_value("2024-01-05T09:30:00Z") == datetime(2024, 1, 5, 9, 30)
    assert parse_datetime_value("2024-01-05") == datetime(2024, 1, 5)
    assert parse_datetime_value("soon") is None


def test_parse_recurrence_rejects_count_with_end_date():
    with pytest.raises(ValueError):
        parse_recurrence({"frequency": "daily", "count": 3, "end_date": "2024-02-01"})
    with pytest.raises(ValueError):
        parse_recurrence({"frequency": "hourly"})
    with pytest.raises(ValueError):
        parse_recurrence({"frequency": "daily", "interval": 0})


def test_parse_recurrence_keeps_frequency_specific_fields():
    rule = parse_recurrence({"frequency": "monthly", "day_of_month": 15, "days_of_week": [1]})
    assert rule.day_of_month == 15
    assert rule.days_of_week == []
    assert parse_recurrence(None) is None


def test_event_payload_requires_title_and_ordered_times():
    with pytest.raises(ValueError):
        parse_event_payload({"title": " ", "start": "2024-01-01T09:00", "end": "2024-01-01T10:00"})
    with pytest.raises(ValueError):
        parse_event_payload({"title": "Gym", "start": "2024-01-01T10:00", "end": "2024-01-01T10:00"})


def test_weekly_event_without_days_defaults_to_start_weekday():
    event = parse_event_payload({
        "title": "Gym",
        "start": "2024-01-03T18:00",
        "end": "2024-01-03T19:00",
        "category": "WORK",
        "priority": "urgent",
        "recurrence": {"frequency": "weekly"},
    })
    assert event.recurrence.days_of_week == [3]
    assert event.category == "work"
    assert event.priority == "medium"


def test_partial_update_keeps_existing_values():
    existing = Event(
        id="4",
        title="Lecture",
        start=datetime(2024, 1, 1, 9),
        end=datetime(2024, 1, 1, 10),
        recurrence=RecurrenceRule(frequency="daily", end_date=date(2024, 2, 1)),
        links=["https://a.example"],
    )
    event = parse_event_payload({"title": "Seminar"}, existing=existing)

    assert event.id == "4"
    assert event.title == "Seminar"
    assert event.start == existing.start
    assert event.recurrence is existing.recurrence
    assert event.links == ["https://a.example"]


def test_module_payload_defaults_color():
    module = parse_module_payload({"name": " Algebra ", "code": "MA1"})
    assert module.name == "Algebra"
    assert module.color == "#3b82f6"
    with pytest.raises(ValueError):
        parse_module_payload({"name": ""})


def test_validate_credentials():
    assert validate_credentials(" Ada@Example.com ", "long-enough") == "ada@example.com"
    with pytest.raises(ValueError):
        validate_credentials("not-an-email", "long-enough")
    with pytest.raises(ValueError):
        validate_credentials("ada@example.com", "short")
