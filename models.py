from flask_sqlalchemy import SQLAlchemy
from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash
from datetime import datetime

import domain
from services.validation_service import parse_days_of_week

db = SQLAlchemy()


class User(UserMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False)
    display_name = db.Column(db.String(120), nullable=True)
    password_hash = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    # Relationships
    modules = db.relationship('Module', backref='owner', lazy=True, cascade="all, delete-orphan")
    events = db.relationship('Event', backref='owner', lazy=True, cascade="all, delete-orphan")
    notes = db.relationship('Note', backref='owner', lazy=True, cascade="all, delete-orphan")

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)


class Module(db.Model):
    """Course/project a user files events and notes under."""
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    name = db.Column(db.String(150), nullable=False)
    code = db.Column(db.String(30), nullable=False, default='')
    color = db.Column(db.String(20), nullable=False, default=domain.DEFAULT_MODULE_COLOR)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_domain(self):
        return domain.Module(id=str(self.id), name=self.name, code=self.code or '', color=self.color or domain.DEFAULT_MODULE_COLOR)

    def apply(self, module):
        self.name = module.name
        self.code = module.code
        self.color = module.color


class Event(db.Model):
    """
    Calendar entry. A row with a recurrence_frequency is a template; its
    occurrences are generated on read and never stored.
    All datetimes are naive local wall-clock values.
    """
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    start_time = db.Column(db.DateTime, nullable=False)
    end_time = db.Column(db.DateTime, nullable=False)
    category = db.Column(db.String(20), default='personal')  # personal | work | school | other
    module_id = db.Column(db.Integer, db.ForeignKey('module.id'), nullable=True)
    completed = db.Column(db.Boolean, default=False)
    priority = db.Column(db.String(10), default='medium')  # low | medium | high
    links = db.Column(db.JSON, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    reminders = db.Column(db.JSON, nullable=True)
    recurrence_frequency = db.Column(db.String(10), nullable=True)  # daily | weekly | monthly | yearly
    recurrence_interval = db.Column(db.Integer, default=1)
    recurrence_count = db.Column(db.Integer, nullable=True)
    recurrence_end_date = db.Column(db.Date, nullable=True)
    recurrence_days_of_week = db.Column(db.String(20), nullable=True)  # comma-separated, 0=Sunday
    recurrence_day_of_month = db.Column(db.Integer, nullable=True)
    recurrence_month_of_year = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def recurrence_rule(self):
        if not self.recurrence_frequency:
            return None
        return domain.RecurrenceRule(
            frequency=self.recurrence_frequency,
            interval=self.recurrence_interval or 1,
            count=self.recurrence_count,
            end_date=self.recurrence_end_date,
            days_of_week=parse_days_of_week(self.recurrence_days_of_week),
            day_of_month=self.recurrence_day_of_month,
            month_of_year=self.recurrence_month_of_year,
        )

    def to_domain(self):
        return domain.Event(
            id=str(self.id),
            title=self.title,
            description=self.description or '',
            start=self.start_time,
            end=self.end_time,
            category=self.category or 'personal',
            module_id=str(self.module_id) if self.module_id else None,
            completed=bool(self.completed),
            priority=self.priority or 'medium',
            recurrence=self.recurrence_rule(),
            links=list(self.links or []),
            notes=self.notes or '',
            reminders=list(self.reminders or []),
        )

    def apply(self, event):
        self.title = event.title
        self.description = event.description
        self.start_time = event.start
        self.end_time = event.end
        self.category = event.category
        self.module_id = int(event.module_id) if event.module_id else None
        self.completed = bool(event.completed)
        self.priority = event.priority
        self.links = list(event.links)
        self.notes = event.notes
        self.reminders = list(event.reminders)
        rule = event.recurrence
        self.recurrence_frequency = rule.frequency if rule else None
        self.recurrence_interval = rule.interval if rule else 1
        self.recurrence_count = rule.count if rule else None
        end_date = rule.end_date if rule else None
        self.recurrence_end_date = end_date.date() if isinstance(end_date, datetime) else end_date
        self.recurrence_days_of_week = ','.join(str(d) for d in rule.days_of_week) if rule and rule.days_of_week else None
        self.recurrence_day_of_month = rule.day_of_month if rule else None
        self.recurrence_month_of_year = rule.month_of_year if rule else None


class Note(db.Model):
    """Markdown note owned by a user, optionally filed under a module."""
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    module_id = db.Column(db.Integer, db.ForeignKey('module.id'), nullable=True)
    title = db.Column(db.String(150), nullable=False, default=domain.UNTITLED_NOTE)
    content = db.Column(db.Text, nullable=True)  # Stored as markdown
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_domain(self):
        return domain.Note(
            id=str(self.id),
            title=self.title,
            content=self.content or '',
            module_id=str(self.module_id) if self.module_id else None,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    def apply(self, note):
        self.title = (note.title or '').strip() or domain.UNTITLED_NOTE
        self.content = note.content
        self.module_id = int(note.module_id) if note.module_id else None
        self.updated_at = datetime.utcnow()
