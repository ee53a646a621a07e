import re
from datetime import date, datetime, time

import domain


EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def parse_bool(value, default=False):
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ["1", "true", "yes", "on"]


def parse_days_of_week(raw):
    """Weekday indices (0=Sunday..6=Saturday) from a list or comma string."""
    if raw is None:
        return []
    if isinstance(raw, list):
        values = raw
    else:
        values = str(raw).split(",")
    days = []
    for val in values:
        try:
            day = int(val)
        except (TypeError, ValueError):
            continue
        if 0 <= day <= 6:
            days.append(day)
    return sorted(set(days))


def parse_day_value(raw):
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    try:
        return datetime.strptime(str(raw), "%Y-%m-%d").date()
    except (TypeError, ValueError):
        return None


def parse_datetime_value(raw):
    """Accept ISO datetimes (naive local wall-clock); offsets are dropped."""
    if isinstance(raw, datetime):
        return raw.replace(tzinfo=None)
    if not raw:
        return None
    text = str(raw).strip()
    if text.endswith("Z"):
        text = text[:-1]
    try:
        return datetime.fromisoformat(text).replace(tzinfo=None)
    except ValueError:
        day = parse_day_value(text)
        return datetime.combine(day, time.min) if day else None


def parse_optional_int(raw, field_name, minimum=None, maximum=None):
    if raw is None or raw == "":
        return None
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ValueError(f"{field_name} must be an integer")
    if minimum is not None and value < minimum:
        raise ValueError(f"{field_name} must be at least {minimum}")
    if maximum is not None and value > maximum:
        raise ValueError(f"{field_name} must be at most {maximum}")
    return value


def normalize_choice(raw, allowed, default):
    value = str(raw or "").strip().lower()
    return value if value in allowed else default


def normalize_id(raw):
    if raw is None:
        return None
    value = str(raw).strip()
    if not value or value.lower() in ("none", "null"):
        return None
    return value


def normalize_string_list(raw):
    if not raw:
        return []
    if isinstance(raw, list):
        return [str(v).strip() for v in raw if str(v).strip()]
    return [v.strip() for v in str(raw).split(",") if v.strip()]


def parse_recurrence(raw):
    """Build a RecurrenceRule from a request payload; None when not recurring."""
    if not raw:
        return None
    if not isinstance(raw, dict):
        raise ValueError("recurrence must be an object")
    frequency = str(raw.get("frequency") or "").strip().lower()
    if frequency not in domain.FREQUENCIES:
        raise ValueError("recurrence.frequency must be one of daily, weekly, monthly, yearly")
    interval = parse_optional_int(raw.get("interval"), "recurrence.interval", minimum=1) or 1
    count = parse_optional_int(raw.get("count"), "recurrence.count", minimum=1)
    end_date = None
    if raw.get("end_date"):
        end_date = parse_day_value(str(raw.get("end_date"))[:10])
        if not end_date:
            raise ValueError("Invalid recurrence.end_date")
    if count is not None and end_date is not None:
        raise ValueError("Provide either recurrence.count or recurrence.end_date, not both")
    days_of_week = parse_days_of_week(raw.get("days_of_week")) if frequency == "weekly" else []
    day_of_month = None
    if frequency == "monthly":
        day_of_month = parse_optional_int(raw.get("day_of_month"), "recurrence.day_of_month", 1, 31)
    month_of_year = None
    if frequency == "yearly":
        month_of_year = parse_optional_int(raw.get("month_of_year"), "recurrence.month_of_year", 1, 12)
    return domain.RecurrenceRule(
        frequency=frequency,
        interval=interval,
        count=count,
        end_date=end_date,
        days_of_week=days_of_week,
        day_of_month=day_of_month,
        month_of_year=month_of_year,
    )


def parse_event_payload(data, existing=None):
    """
    Validate an event create/update payload into a domain Event.

    With ``existing`` the payload is a partial update; missing keys keep the
    existing values.
    """
    data = data or {}
    base = existing or domain.Event(id="", title="", start=None, end=None)

    title = (data.get("title") if "title" in data else base.title) or ""
    title = title.strip()
    if not title:
        raise ValueError("Title is required")

    start = parse_datetime_value(data["start"]) if "start" in data else base.start
    end = parse_datetime_value(data["end"]) if "end" in data else base.end
    if not start or not end:
        raise ValueError("Valid start and end are required")
    if end <= start:
        raise ValueError("end must be after start")

    if "recurrence" in data:
        recurrence = parse_recurrence(data.get("recurrence"))
        if recurrence and recurrence.frequency == "weekly" and not recurrence.days_of_week:
            recurrence.days_of_week = [domain.sunday_weekday(start)]
    else:
        recurrence = base.recurrence

    return domain.Event(
        id=base.id,
        title=title,
        description=(data.get("description") if "description" in data else base.description) or "",
        start=start,
        end=end,
        category=normalize_choice(data.get("category", base.category), domain.CATEGORIES, "personal"),
        module_id=normalize_id(data["module_id"]) if "module_id" in data else base.module_id,
        completed=parse_bool(data.get("completed"), base.completed),
        priority=normalize_choice(data.get("priority", base.priority), domain.PRIORITIES, "medium"),
        recurrence=recurrence,
        is_recurring_instance=base.is_recurring_instance,
        links=normalize_string_list(data["links"]) if "links" in data else list(base.links),
        notes=(data.get("notes") if "notes" in data else base.notes) or "",
        reminders=normalize_string_list(data["reminders"]) if "reminders" in data else list(base.reminders),
    )


def parse_module_payload(data, existing=None):
    data = data or {}
    name = (data.get("name") if "name" in data else getattr(existing, "name", "")) or ""
    name = name.strip()
    if not name:
        raise ValueError("Module name is required")
    code = (data.get("code") if "code" in data else getattr(existing, "code", "")) or ""
    color = (data.get("color") if "color" in data else getattr(existing, "color", None)) or domain.DEFAULT_MODULE_COLOR
    return domain.Module(id=getattr(existing, "id", ""), name=name, code=code.strip(), color=color.strip())


def validate_credentials(email, password):
    email = (email or "").strip().lower()
    if not EMAIL_PATTERN.match(email):
        raise ValueError("A valid email is required")
    if len(password or "") < 8:
        raise ValueError("Password must be at least 8 characters")
    return email
