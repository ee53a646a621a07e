from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional, Union


FREQUENCIES = ("daily", "weekly", "monthly", "yearly")
CATEGORIES = ("personal", "work", "school", "other")
PRIORITIES = ("low", "medium", "high")
DEFAULT_MODULE_COLOR = "#3b82f6"
UNTITLED_NOTE = "Untitled"


def sunday_weekday(moment: Union[date, datetime]) -> int:
    """Weekday index with 0=Sunday..6=Saturday."""
    return (moment.weekday() + 1) % 7


@dataclass
class RecurrenceRule:
    frequency: str
    interval: int = 1
    count: Optional[int] = None
    end_date: Optional[Union[date, datetime]] = None
    days_of_week: List[int] = field(default_factory=list)
    day_of_month: Optional[int] = None
    month_of_year: Optional[int] = None

    def to_dict(self):
        return {
            "frequency": self.frequency,
            "interval": self.interval,
            "count": self.count,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "days_of_week": list(self.days_of_week),
            "day_of_month": self.day_of_month,
            "month_of_year": self.month_of_year,
        }


@dataclass
class Event:
    id: str
    title: str
    start: datetime
    end: datetime
    description: str = ""
    category: str = "personal"
    module_id: Optional[str] = None
    completed: bool = False
    priority: str = "medium"
    recurrence: Optional[RecurrenceRule] = None
    is_recurring_instance: bool = False
    links: List[str] = field(default_factory=list)
    notes: str = ""
    reminders: List[str] = field(default_factory=list)

    @property
    def is_template(self) -> bool:
        return self.recurrence is not None and not self.is_recurring_instance

    @property
    def template_id(self) -> str:
        """Stored id backing this event; occurrences map back to their template."""
        if self.is_recurring_instance and "_" in self.id:
            return self.id.rsplit("_", 1)[0]
        return self.id


@dataclass
class Module:
    id: str
    name: str
    code: str = ""
    color: str = DEFAULT_MODULE_COLOR


@dataclass
class Note:
    id: str
    title: str = UNTITLED_NOTE
    content: str = ""
    module_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class SessionUser:
    """Identity handed to gateways once the auth boundary has validated it."""
    id: str
    email: str
    display_name: str = ""

    @classmethod
    def from_record(cls, record) -> "SessionUser":
        user_id = getattr(record, "id", None)
        email = (getattr(record, "email", None) or "").strip()
        if user_id is None or not email:
            raise ValueError("User record is missing id or email")
        display_name = (getattr(record, "display_name", None) or "").strip()
        return cls(id=str(user_id), email=email, display_name=display_name or email.split("@")[0])
