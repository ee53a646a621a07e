"""Bucketing, grouping and layout helpers over already-expanded events."""
from datetime import datetime, time, timedelta

from domain import sunday_weekday


def _day_of(value):
    return value.date() if isinstance(value, datetime) else value


def _midnight(value):
    return datetime.combine(_day_of(value), time.min)


def _by_start(events):
    return sorted(events, key=lambda e: e.start)


def start_of_week(moment):
    """Sunday 00:00 of the week containing ``moment``."""
    day = _day_of(moment)
    return datetime.combine(day - timedelta(days=sunday_weekday(day)), time.min)


def events_on_day(events, day):
    """Events starting on the same calendar day as ``day``, in input order."""
    target = _day_of(day)
    return [e for e in events if e.start.date() == target]


def events_from_week_start(events, now):
    """Events starting on/after the Sunday that opens the week of ``now``."""
    boundary = start_of_week(now)
    return [e for e in events if e.start >= boundary]


def bucket_by_recency(events, now):
    """
    Split upcoming events into today/tomorrow/this_week/later.

    Boundaries are local midnights: today is [D, D+1), tomorrow [D+1, D+2),
    this_week [D+2, D+7) and later everything from D+7 on. Events that start
    before today are not placed in any bucket.
    """
    today = _midnight(now)
    tomorrow = today + timedelta(days=1)
    after_tomorrow = today + timedelta(days=2)
    next_week = today + timedelta(days=7)

    buckets = {'today': [], 'tomorrow': [], 'this_week': [], 'later': []}
    for event in _by_start(events):
        start = event.start
        if start < today:
            continue
        if start < tomorrow:
            buckets['today'].append(event)
        elif start < after_tomorrow:
            buckets['tomorrow'].append(event)
        elif start < next_week:
            buckets['this_week'].append(event)
        else:
            buckets['later'].append(event)
    return buckets


def group_by_module(events, modules, upcoming_only=False, now=None):
    """
    Group events under their module id; ``None`` collects events with no
    module or with a module that no longer exists.

    Every known module gets a key even when it has no events. With
    ``upcoming_only`` a group keeps only incomplete events that start after
    ``now``.
    """
    if upcoming_only and now is None:
        raise ValueError("now is required when upcoming_only is set")
    groups = {m.id: [] for m in modules}
    groups[None] = []
    for event in _by_start(events):
        if upcoming_only and (event.completed or event.start <= now):
            continue
        key = event.module_id if event.module_id in groups else None
        groups[key].append(event)
    return groups


def pack_overlaps(events):
    """
    Assign side-by-side columns to events whose [start, end) ranges overlap.

    Events are sorted by start, grouped by chained overlap, and each event
    takes the lowest column that is free at its start. ``total_columns`` is
    the number of columns its group needed, which equals the group's peak
    concurrency.
    """
    ordered = sorted(events, key=lambda e: (e.start, e.end))
    placed = []
    group = []
    column_ends = []
    group_end = None

    def close_group():
        for entry in group:
            entry['total_columns'] = len(column_ends)
        placed.extend(group)

    for event in ordered:
        end = max(event.end, event.start)
        if group and event.start >= group_end:
            close_group()
            group, column_ends, group_end = [], [], None

        column = next((idx for idx, col_end in enumerate(column_ends) if col_end <= event.start), None)
        if column is None:
            column = len(column_ends)
            column_ends.append(end)
        else:
            column_ends[column] = end
        group.append({'event': event, 'column': column, 'total_columns': 1})
        group_end = end if group_end is None else max(group_end, end)

    if group:
        close_group()
    return placed


def note_matches(note, query):
    needle = (query or '').strip().lower()
    if not needle:
        return True
    return needle in (note.title or '').lower() or needle in (note.content or '').lower()


def group_notes_by_module(notes, modules, query=None):
    """Notes grouped per module for the sidebar; ``None`` holds notes without a known module."""
    groups = {m.id: [] for m in modules}
    groups[None] = []
    for note in notes:
        if not note_matches(note, query):
            continue
        key = note.module_id if note.module_id in groups else None
        groups[key].append(note)
    return groups


def count_notes_by_module(notes, modules):
    counts = {m.id: 0 for m in modules}
    counts[None] = 0
    for note in notes:
        key = note.module_id if note.module_id in counts else None
        counts[key] += 1
    return counts


def is_today(day, now):
    return _day_of(day) == _day_of(now)


def days_between(start_day, end_day):
    """Inclusive list of dates from ``start_day`` to ``end_day``."""
    current = _day_of(start_day)
    last = _day_of(end_day)
    days = []
    while current <= last:
        days.append(current)
        current += timedelta(days=1)
    return days

