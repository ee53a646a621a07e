from dataclasses import replace
from datetime import date, datetime

import pytest

from crud_gateway import DataStore, DataStoreError, MutationError, NotFoundError, SqlDataStore, UserCollections
from domain import Event, Module, Note, RecurrenceRule, SessionUser
from models import db, User


class MemoryStore(DataStore):
    """In-memory store; set ``fail`` to make the next mutation raise it."""

    def __init__(self, events=(), modules=(), notes=()):
        self.events = {e.id: e for e in events}
        self.modules = {m.id: m for m in modules}
        self.notes = {n.id: n for n in notes}
        self.next_id = 100
        self.fail = None

    def _check(self):
        if self.fail is not None:
            raise self.fail

    def _new_id(self):
        self.next_id += 1
        return str(self.next_id)

    def list_events(self, user_id):
        return list(self.events.values())

    def list_modules(self, user_id):
        return list(self.modules.values())

    def list_notes(self, user_id):
        return list(self.notes.values())

    def create_event(self, user_id, event):
        self._check()
        stored = replace(event, id=self._new_id())
        self.events[stored.id] = stored
        return stored

    def update_event(self, user_id, event):
        self._check()
        if event.id not in self.events:
            raise NotFoundError(event.id)
        self.events[event.id] = event
        return event

    def delete_event(self, user_id, event_id):
        self._check()
        self.events.pop(event_id)

    def create_module(self, user_id, module):
        self._check()
        stored = replace(module, id=self._new_id())
        self.modules[stored.id] = stored
        return stored

    def update_module(self, user_id, module):
        self._check()
        self.modules[module.id] = module
        return module

    def delete_module(self, user_id, module_id):
        self._check()
        self.modules.pop(module_id)

    def create_note(self, user_id, note):
        self._check()
        stored = replace(note, id=self._new_id())
        self.notes[stored.id] = stored
        return stored

    def update_note(self, user_id, note):
        self._check()
        self.notes[note.id] = note
        return note

    def delete_note(self, user_id, note_id):
        self._check()
        self.notes.pop(note_id)


USER = SessionUser(id="1", email="ada@example.com", display_name="Ada")


def lecture(event_id="1", **kwargs):
    return Event(id=event_id, title="Lecture", start=datetime(2024, 1, 1, 9), end=datetime(2024, 1, 1, 10), **kwargs)


def make_collections(**kwargs):
    return UserCollections(USER, MemoryStore(**kwargs)).refresh()


def test_add_event_reconciles_tentative_id():
    collections = make_collections()
    stored = collections.add_event(lecture(event_id=""))

    assert stored.id == "101"
    assert [e.id for e in collections.events] == ["101"]


def test_failed_add_restores_snapshot():
    collections = make_collections(events=[lecture()])
    collections.store.fail = DataStoreError("disk full")

    with pytest.raises(MutationError) as excinfo:
        collections.add_event(lecture(event_id=""))

    assert excinfo.value.status == 500
    assert str(excinfo.value) == "There was an error adding your event."
    assert [e.id for e in collections.events] == ["1"]


def test_unexpected_failure_restores_and_propagates():
    collections = make_collections(notes=[Note(id="5", title="Draft")])
    collections.store.fail = KeyError("boom")

    with pytest.raises(KeyError):
        collections.delete_note("5")
    assert [n.id for n in collections.notes] == ["5"]


def test_update_missing_event_is_not_found():
    collections = make_collections()
    with pytest.raises(MutationError) as excinfo:
        collections.update_event(lecture(event_id="42"))
    assert excinfo.value.status == 404


def test_editing_an_occurrence_updates_the_series():
    rule = RecurrenceRule(frequency="daily", count=5)
    collections = make_collections(events=[lecture(recurrence=rule)])
    occurrence = collections.expanded(date(2024, 1, 1), date(2024, 1, 31))[2]

    stored = collections.update_event(replace(occurrence, title="Seminar"))

    assert stored.id == "1"
    assert stored.title == "Seminar"
    assert stored.start == datetime(2024, 1, 1, 9)
    assert stored.recurrence == rule
    assert not stored.is_recurring_instance


def test_completing_an_occurrence_stays_local():
    collections = make_collections(events=[lecture(recurrence=RecurrenceRule(frequency="daily", count=3))])

    assert collections.set_completed("1_1", True) is None
    expanded = {e.id: e.completed for e in collections.expanded(date(2024, 1, 1), date(2024, 1, 31))}
    assert expanded == {"1_0": False, "1_1": True, "1_2": False}
    assert collections.store.events["1"].completed is False


def test_completing_a_stored_event_persists():
    collections = make_collections(events=[lecture()])
    stored = collections.set_completed("1", True)
    assert stored.completed is True
    assert collections.store.events["1"].completed is True


def test_unknown_event_completion_is_not_found():
    collections = make_collections()
    with pytest.raises(MutationError) as excinfo:
        collections.set_completed("77", True)
    assert excinfo.value.status == 404


def test_deleting_an_occurrence_is_rejected():
    collections = make_collections(events=[lecture(recurrence=RecurrenceRule(frequency="daily"))])
    with pytest.raises(MutationError) as excinfo:
        collections.delete_event("1_3")
    assert excinfo.value.status == 400
    assert [e.id for e in collections.events] == ["1"]


def test_deleting_a_template_clears_its_local_completions():
    collections = make_collections(events=[lecture(recurrence=RecurrenceRule(frequency="daily"))])
    collections.set_completed("1_0", True)
    collections.delete_event("1")
    assert collections.events == []
    assert collections.local_completions == {}


def test_failed_template_delete_keeps_local_completions():
    collections = make_collections(events=[lecture(recurrence=RecurrenceRule(frequency="daily"))])
    collections.set_completed("1_1", True)
    collections.store.fail = DataStoreError("connection reset")

    with pytest.raises(MutationError):
        collections.delete_event("1")

    assert [e.id for e in collections.events] == ["1"]
    assert collections.local_completions == {"1_1": True}


def test_completing_an_occurrence_of_a_missing_series_is_not_found():
    collections = make_collections(events=[lecture()])
    for bogus in ("abc_9", "1_0", "_3", "1_x"):
        with pytest.raises(MutationError) as excinfo:
            collections.set_completed(bogus, True)
        assert excinfo.value.status == 404
    assert collections.local_completions == {}


def test_delete_module_dissociates_events_and_notes():
    collections = make_collections(
        modules=[Module(id="m1", name="Maths")],
        events=[lecture(module_id="m1")],
        notes=[Note(id="n1", module_id="m1")],
    )
    collections.delete_module("m1")

    assert collections.modules == []
    assert collections.events[0].module_id is None
    assert collections.notes[0].module_id is None


def test_failed_module_delete_keeps_associations():
    collections = make_collections(modules=[Module(id="m1", name="Maths")], events=[lecture(module_id="m1")])
    collections.store.fail = DataStoreError("offline")

    with pytest.raises(MutationError):
        collections.delete_module("m1")
    assert [m.id for m in collections.modules] == ["m1"]
    assert collections.events[0].module_id == "m1"


def test_modules_are_kept_sorted_by_name():
    collections = make_collections(modules=[Module(id="m1", name="Maths")])
    collections.add_module(Module(id="", name="Art"))
    assert [m.name for m in collections.modules] == ["Art", "Maths"]


def test_saved_note_moves_to_front():
    collections = make_collections(notes=[Note(id="1", title="A"), Note(id="2", title="B")])
    collections.save_note(Note(id="2", title="B2"))
    assert [n.title for n in collections.notes] == ["B2", "A"]


def test_sql_store_round_trip_and_module_dissociation(app):
    with app.app_context():
        user = User(email="grace@example.com")
        user.set_password("long-enough")
        db.session.add(user)
        db.session.commit()
        store = SqlDataStore()
        module = store.create_module(user.id, Module(id="", name="Compilers", code="CS301"))
        event = store.create_event(
            user.id,
            lecture(
                event_id="",
                module_id=module.id,
                recurrence=RecurrenceRule(frequency="weekly", days_of_week=[1, 3], end_date=date(2024, 2, 1)),
                links=["https://example.com"],
            ),
        )
        note = store.create_note(user.id, Note(id="", title="  ", module_id=module.id))

        assert event.recurrence.days_of_week == [1, 3]
        assert event.recurrence.end_date == date(2024, 2, 1)
        assert note.title == "Untitled"

        store.delete_module(user.id, module.id)
        assert store.list_modules(user.id) == []
        assert store.list_events(user.id)[0].module_id is None
        assert store.list_notes(user.id)[0].module_id is None


def test_sql_store_scopes_rows_to_owner(app):
    with app.app_context():
        owner = User(email="owner@example.com")
        owner.set_password("long-enough")
        other = User(email="other@example.com")
        other.set_password("long-enough")
        db.session.add_all([owner, other])
        db.session.commit()
        store = SqlDataStore()
        event = store.create_event(owner.id, lecture(event_id=""))

        with pytest.raises(NotFoundError):
            store.delete_event(other.id, event.id)
        assert len(store.list_events(owner.id)) == 1
