"""JSON-ready view models for the day, week, month, list, module and notes screens."""
from datetime import datetime, timedelta

from aggregation import (
    bucket_by_recency,
    count_notes_by_module,
    days_between,
    events_from_week_start,
    events_on_day,
    group_by_module,
    group_notes_by_module,
    is_today,
    pack_overlaps,
    start_of_week,
)
from recurrence import DEFAULT_HORIZON_MONTHS, default_window


LIST_SECTIONS = (
    ('today', 'Today'),
    ('tomorrow', 'Tomorrow'),
    ('this_week', 'This Week'),
    ('later', 'Later'),
)
OTHERS_LABEL = 'Others'


def _iso(value):
    return value.isoformat() if value else None


def serialize_event(event):
    return {
        'id': event.id,
        'title': event.title,
        'description': event.description,
        'start': _iso(event.start),
        'end': _iso(event.end),
        'category': event.category,
        'module_id': event.module_id,
        'completed': event.completed,
        'priority': event.priority,
        'recurrence': event.recurrence.to_dict() if event.recurrence else None,
        'is_recurring_instance': event.is_recurring_instance,
        'links': list(event.links),
        'notes': event.notes,
        'reminders': list(event.reminders),
    }


def serialize_module(module):
    return {'id': module.id, 'name': module.name, 'code': module.code, 'color': module.color}


def serialize_note(note):
    return {
        'id': note.id,
        'title': note.title,
        'content': note.content,
        'module_id': note.module_id,
        'created_at': _iso(note.created_at),
        'updated_at': _iso(note.updated_at),
    }


def _serialize_placed(entry):
    return {
        'event': serialize_event(entry['event']),
        'column': entry['column'],
        'total_columns': entry['total_columns'],
    }


def hour_slots(day_events):
    """24 slots; each holds the events starting in that hour, packed into columns."""
    by_hour = {}
    for event in day_events:
        by_hour.setdefault(event.start.hour, []).append(event)
    return [
        {'hour': hour, 'events': [_serialize_placed(p) for p in pack_overlaps(by_hour.get(hour, []))]}
        for hour in range(24)
    ]


def day_view(events, day, today):
    day_events = events_on_day(events, day)
    return {
        'view': 'day',
        'date': day.isoformat(),
        'is_today': is_today(day, today),
        'hours': hour_slots(day_events),
    }


def week_view(events, reference, today):
    week_start = start_of_week(reference).date()
    days = []
    for offset in range(7):
        day = week_start + timedelta(days=offset)
        days.append({
            'date': day.isoformat(),
            'is_today': is_today(day, today),
            'hours': hour_slots(events_on_day(events, day)),
        })
    return {'view': 'week', 'week_start': week_start.isoformat(), 'days': days}


def _month_end(day):
    next_month = (day.replace(day=28) + timedelta(days=4)).replace(day=1)
    return next_month - timedelta(days=1)


def month_view(events, reference, today):
    """Sunday-first weeks covering the month of ``reference``."""
    month_start = reference.replace(day=1)
    month_end = _month_end(month_start)
    grid_start = start_of_week(month_start).date()
    grid_end = start_of_week(month_end).date() + timedelta(days=6)
    current_week_start = start_of_week(today).date()
    current_week_end = current_week_start + timedelta(days=6)

    weeks = []
    week = []
    for day in days_between(grid_start, grid_end):
        week.append({
            'date': day.isoformat(),
            'in_month': day.month == month_start.month,
            'is_today': is_today(day, today),
            'in_current_week': current_week_start <= day <= current_week_end,
            'events': [serialize_event(e) for e in sorted(events_on_day(events, day), key=lambda e: e.start)],
        })
        if len(week) == 7:
            weeks.append(week)
            week = []
    return {'view': 'month', 'month': month_start.strftime('%Y-%m'), 'weeks': weeks}


def list_view(events, now):
    buckets = bucket_by_recency(events, now)
    sections = []
    for key, label in LIST_SECTIONS:
        if buckets[key]:
            sections.append({'key': key, 'label': label, 'events': [serialize_event(e) for e in buckets[key]]})
    return {'view': 'list', 'sections': sections}


def module_overview(events, modules, now):
    """Upcoming incomplete work per module, with an Others bucket at the end."""
    groups = group_by_module(events, modules, upcoming_only=True, now=now)
    overview = []
    for module in modules:
        upcoming = groups.get(module.id, [])
        overview.append({
            'module': serialize_module(module),
            'upcoming_count': len(upcoming),
            'events': [serialize_event(e) for e in upcoming],
        })
    others = groups[None]
    overview.append({
        'module': None,
        'label': OTHERS_LABEL,
        'upcoming_count': len(others),
        'events': [serialize_event(e) for e in others],
    })
    return overview


def notes_sidebar(notes, modules, query=None):
    groups = group_notes_by_module(notes, modules, query=query)
    counts = count_notes_by_module(notes, modules)
    sections = [
        {
            'module': serialize_module(module),
            'count': counts[module.id],
            'notes': [serialize_note(n) for n in groups[module.id]],
        }
        for module in modules
    ]
    sections.append({
        'module': None,
        'label': OTHERS_LABEL,
        'count': counts[None],
        'notes': [serialize_note(n) for n in groups[None]],
    })
    return {'query': (query or '').strip(), 'sections': sections}


def calendar_view(view, events, selected, now):
    """Dispatch to the requested calendar view; ``selected`` is a date."""
    today = now.date() if isinstance(now, datetime) else now
    if view == 'day':
        return day_view(events, selected, today)
    if view == 'week':
        return week_view(events, selected, today)
    if view == 'month':
        return month_view(events, selected, today)
    if view == 'list':
        return list_view(events, now)
    raise ValueError(f"Unknown calendar view: {view!r}")


def build_dashboard(collections, selected, now, horizon_months=DEFAULT_HORIZON_MONTHS):
    """
    Selected-day schedule, upcoming list and module overview for one user,
    computed from a fresh expansion of the user's templates.
    """
    window_start, window_end = default_window(selected, now=now, horizon_months=horizon_months)
    events = collections.expanded(window_start, window_end)
    selected_events = sorted(events_on_day(events, selected), key=lambda e: e.start)
    return {
        'selected_date': selected.isoformat(),
        'events': [serialize_event(e) for e in selected_events],
        'list': list_view(events_from_week_start(events, now), now),
        'modules': module_overview(events, collections.modules, now),
        'generated_at': now.isoformat(),
    }


def build_calendar(collections, view, selected, now, horizon_months=DEFAULT_HORIZON_MONTHS):
    window_start, window_end = default_window(selected, now=now, horizon_months=horizon_months)
    events = collections.expanded(window_start, window_end)
    payload = calendar_view(view, events, selected, now)
    payload['window'] = {'start': window_start.isoformat(), 'end': window_end.isoformat()}
    return payload
