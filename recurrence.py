"""
Expansion of recurring event templates into concrete occurrences.

Everything here is a pure function over in-memory events: nothing is stored,
nothing is mutated, and the same inputs always give the same occurrences.
"""
import calendar
import logging
from dataclasses import replace
from datetime import date, datetime, time, timedelta

from domain import FREQUENCIES, sunday_weekday

logger = logging.getLogger(__name__)

MAX_OCCURRENCES = 5000
MAX_ITERATIONS = 50000
DEFAULT_HORIZON_MONTHS = 3


def add_months(moment, months):
    """Shift by calendar months, clamping to the last day of the target month."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    _, last_dom = calendar.monthrange(year, month)
    return moment.replace(year=year, month=month, day=min(moment.day, last_dom))


def _as_datetime(value, end_of_day=False):
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.max if end_of_day else time.min)
    raise ValueError(f"Expected a date or datetime, got {value!r}")


def _shifted(start, frequency, units):
    if frequency == "daily":
        return start + timedelta(days=units)
    if frequency == "weekly":
        return start + timedelta(weeks=units)
    if frequency == "monthly":
        return add_months(start, units)
    return add_months(start, units * 12)


def _occurrence(template, sequence, start, duration):
    return replace(
        template,
        id=f"{template.id}_{sequence}",
        start=start,
        end=start + duration,
        is_recurring_instance=True,
        links=list(template.links),
        reminders=list(template.reminders),
    )


def _normalize_days(raw_days):
    days = set()
    for value in raw_days or []:
        try:
            day = int(value)
        except (TypeError, ValueError):
            continue
        if 0 <= day <= 6:
            days.add(day)
    return days


def _hit_cap(template, occurrences, iterations):
    if len(occurrences) >= MAX_OCCURRENCES or iterations >= MAX_ITERATIONS:
        logger.warning(
            "Recurrence expansion for event %s stopped at safety cap (%s occurrences, %s iterations)",
            template.id, len(occurrences), iterations,
        )
        return True
    return False


def _first_step(start, frequency, interval, window_start):
    """A step index whose cursor is on or before ``window_start``."""
    if window_start <= start:
        return 0
    if frequency in ("daily", "weekly"):
        unit_days = 1 if frequency == "daily" else 7
        return (window_start - start).days // (unit_days * interval)
    months = (window_start.year - start.year) * 12 + window_start.month - start.month
    if frequency == "yearly":
        months //= 12
    # One step back so month-end clamping can never overshoot the window.
    return max(months // interval - 1, 0)


def _expand_stepped(template, rule, frequency, interval, until, window_start, window_end):
    duration = template.end - template.start
    occurrences = []
    emitted = 0
    iterations = 0
    step = _first_step(template.start, frequency, interval, window_start)
    cursor = _shifted(template.start, frequency, step * interval)
    while ((until is None or cursor <= until)
           and (rule.count is None or emitted < rule.count)
           and cursor <= window_end):
        if cursor >= window_start:
            occurrences.append(_occurrence(template, step, cursor, duration))
            emitted += 1
        step += 1
        iterations += 1
        if _hit_cap(template, occurrences, iterations):
            break
        # Always shift from the original start so month-end clamping never drifts.
        cursor = _shifted(template.start, frequency, step * interval)
    return occurrences


def _expand_weekdays(template, rule, days, interval, until, window_start, window_end):
    # count is deliberately not consulted on this path; see DESIGN.md.
    duration = template.end - template.start
    anchor_week = template.start.date() - timedelta(days=sunday_weekday(template.start))
    occurrences = []
    sequence = 0
    iterations = 0
    cursor = template.start
    while (until is None or cursor <= until) and cursor <= window_end:
        if sunday_weekday(cursor) in days:
            weeks_since = (cursor.date() - anchor_week).days // 7
            if weeks_since % interval == 0:
                if cursor >= window_start:
                    occurrences.append(_occurrence(template, sequence, cursor, duration))
                sequence += 1
        if cursor >= window_start:
            iterations += 1
            if _hit_cap(template, occurrences, iterations):
                break
        cursor += timedelta(days=1)
    return occurrences


def expand(template, window_start, window_end):
    """
    Produce the occurrences of ``template`` whose start lies in
    [window_start, window_end].

    A template without a recurrence rule is returned as-is, wrapped in a list.
    Bare dates are widened to whole days (midnight to end of day).
    """
    if template is None:
        raise ValueError("A template event is required")
    rule = template.recurrence
    if rule is None:
        return [template]
    if template.start is None or template.end is None:
        raise ValueError(f"Recurring event {template.id} is missing start or end")

    frequency = (rule.frequency or "").lower()
    if frequency not in FREQUENCIES:
        raise ValueError(f"Unknown recurrence frequency: {rule.frequency!r}")

    window_start = _as_datetime(window_start)
    window_end = _as_datetime(window_end, end_of_day=True)
    if window_end < window_start:
        raise ValueError("window_end must be on/after window_start")

    try:
        interval = max(int(rule.interval or 1), 1)
    except (TypeError, ValueError):
        interval = 1
    until = _as_datetime(rule.end_date, end_of_day=True) if rule.end_date else None

    days = _normalize_days(rule.days_of_week) if frequency == "weekly" else set()
    if days:
        return _expand_weekdays(template, rule, days, interval, until, window_start, window_end)
    return _expand_stepped(template, rule, frequency, interval, until, window_start, window_end)


def expand_all(events, window_start, window_end):
    """Expand every template in ``events``; singletons and stored instances pass through."""
    expanded = []
    for event in events:
        if event.is_template:
            expanded.extend(expand(event, window_start, window_end))
        else:
            expanded.append(event)
    return sorted(expanded, key=lambda e: e.start)


def default_window(selected, now=None, horizon_months=DEFAULT_HORIZON_MONTHS):
    """
    Window the calendar needs around ``selected``: from the Sunday before the
    first of its month (or the current week's Sunday, if earlier) to
    ``horizon_months`` past the selected day.
    """
    selected_day = selected.date() if isinstance(selected, datetime) else selected
    month_start = selected_day.replace(day=1)
    start_day = month_start - timedelta(days=sunday_weekday(month_start))
    if now is not None:
        now_day = now.date() if isinstance(now, datetime) else now
        start_day = min(start_day, now_day - timedelta(days=sunday_weekday(now_day)))
    end_day = add_months(selected_day, max(int(horizon_months or 0), 0))
    return datetime.combine(start_day, time.min), datetime.combine(end_day, time.max)
