"""
CRUD gateway between request handlers and the relational store.

`SqlDataStore` is the storage side: plain list/create/update/delete calls
scoped to one user. `UserCollections` owns one user's in-memory events,
modules and notes and applies every mutation optimistically: the local
collections change first, the store is called, and the tentative entity is
either reconciled with the stored one or the pre-mutation snapshot is put
back.
"""
import logging
import threading
import uuid
from dataclasses import replace

from sqlalchemy.exc import SQLAlchemyError

import models
import recurrence
from models import db

logger = logging.getLogger(__name__)

TEMP_ID_PREFIX = "tmp-"


class DataStoreError(RuntimeError):
    """The store rejected or failed a call; the session has been rolled back."""


class NotFoundError(DataStoreError):
    pass


class MutationError(RuntimeError):
    """Human-readable failure of an optimistic mutation, after local rollback."""

    def __init__(self, message, status=500):
        super().__init__(message)
        self.status = status


def _row_id(entity_id):
    try:
        return int(entity_id)
    except (TypeError, ValueError):
        return None


class DataStore:
    """Storage contract used by UserCollections. Mutations return the stored entity."""

    def list_events(self, user_id):
        raise NotImplementedError

    def list_modules(self, user_id):
        raise NotImplementedError

    def list_notes(self, user_id):
        raise NotImplementedError

    def create_event(self, user_id, event):
        raise NotImplementedError

    def update_event(self, user_id, event):
        raise NotImplementedError

    def delete_event(self, user_id, event_id):
        raise NotImplementedError

    def create_module(self, user_id, module):
        raise NotImplementedError

    def update_module(self, user_id, module):
        raise NotImplementedError

    def delete_module(self, user_id, module_id):
        raise NotImplementedError

    def create_note(self, user_id, note):
        raise NotImplementedError

    def update_note(self, user_id, note):
        raise NotImplementedError

    def delete_note(self, user_id, note_id):
        raise NotImplementedError


class SqlDataStore(DataStore):
    """DataStore on the Flask-SQLAlchemy models. Needs an app context."""

    def __init__(self, session=None):
        self.session = session or db.session

    def _commit(self, action):
        try:
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.warning("Store failed to %s: %s", action, exc)
            raise DataStoreError(f"Could not {action}") from exc

    def _owned(self, model, user_id, entity_id):
        row_id = _row_id(entity_id)
        row = None
        if row_id is not None:
            row = model.query.filter_by(id=row_id, user_id=int(user_id)).first()
        if row is None:
            raise NotFoundError(f"{model.__name__} {entity_id} not found")
        return row

    def _create(self, model, user_id, entity, action):
        row = model(user_id=int(user_id))
        row.apply(entity)
        self.session.add(row)
        self._commit(action)
        return row.to_domain()

    def _update(self, model, user_id, entity, action):
        row = self._owned(model, user_id, entity.id)
        row.apply(entity)
        self._commit(action)
        return row.to_domain()

    def _delete(self, model, user_id, entity_id, action):
        row = self._owned(model, user_id, entity_id)
        self.session.delete(row)
        self._commit(action)

    def list_events(self, user_id):
        rows = models.Event.query.filter_by(user_id=int(user_id)).order_by(models.Event.start_time.asc()).all()
        return [r.to_domain() for r in rows]

    def list_modules(self, user_id):
        rows = models.Module.query.filter_by(user_id=int(user_id)).order_by(models.Module.name.asc()).all()
        return [r.to_domain() for r in rows]

    def list_notes(self, user_id):
        rows = models.Note.query.filter_by(user_id=int(user_id)).order_by(models.Note.updated_at.desc()).all()
        return [r.to_domain() for r in rows]

    def create_event(self, user_id, event):
        return self._create(models.Event, user_id, event, "create event")

    def update_event(self, user_id, event):
        return self._update(models.Event, user_id, event, "update event")

    def delete_event(self, user_id, event_id):
        self._delete(models.Event, user_id, event_id, "delete event")

    def create_module(self, user_id, module):
        return self._create(models.Module, user_id, module, "create module")

    def update_module(self, user_id, module):
        return self._update(models.Module, user_id, module, "update module")

    def delete_module(self, user_id, module_id):
        row = self._owned(models.Module, user_id, module_id)
        # Dissociate, never cascade: events and notes outlive their module.
        for model in (models.Event, models.Note):
            for owned in model.query.filter_by(user_id=int(user_id), module_id=row.id).all():
                owned.module_id = None
        self.session.delete(row)
        self._commit("delete module")

    def create_note(self, user_id, note):
        return self._create(models.Note, user_id, note, "create note")

    def update_note(self, user_id, note):
        return self._update(models.Note, user_id, note, "update note")

    def delete_note(self, user_id, note_id):
        self._delete(models.Note, user_id, note_id, "delete note")


class UserCollections:
    """Authoritative in-memory events/modules/notes for one signed-in user."""

    def __init__(self, user, store):
        self.user = user
        self.store = store
        self.events = []
        self.modules = []
        self.notes = []
        # Completion flags for generated occurrences live only here.
        self.local_completions = {}
        self._lock = threading.RLock()

    def refresh(self):
        with self._lock:
            self.events = self.store.list_events(self.user.id)
            self.modules = self.store.list_modules(self.user.id)
            self.notes = self.store.list_notes(self.user.id)
        return self

    def expanded(self, window_start, window_end):
        """Stored singletons plus template occurrences inside the window."""
        with self._lock:
            events = list(self.events)
            overrides = dict(self.local_completions)
        occurrences = recurrence.expand_all(events, window_start, window_end)
        return [
            replace(e, completed=overrides[e.id]) if e.id in overrides else e
            for e in occurrences
        ]

    def find_event(self, event_id):
        return next((e for e in self.events if e.id == str(event_id)), None)

    def find_module(self, module_id):
        return next((m for m in self.modules if m.id == str(module_id)), None)

    def find_note(self, note_id):
        return next((n for n in self.notes if n.id == str(note_id)), None)

    # -- optimistic protocol -------------------------------------------------

    def _snapshot(self):
        return list(self.events), list(self.modules), list(self.notes), dict(self.local_completions)

    def _restore(self, snapshot):
        events, modules, notes, completions = snapshot
        self.events, self.modules, self.notes = list(events), list(modules), list(notes)
        self.local_completions = dict(completions)

    def _mutate(self, apply_local, remote, reconcile, failure_message):
        with self._lock:
            snapshot = self._snapshot()
            pending = apply_local()
            try:
                stored = remote()
            except NotFoundError as exc:
                self._restore(snapshot)
                raise MutationError(failure_message, status=404) from exc
            except DataStoreError as exc:
                self._restore(snapshot)
                raise MutationError(failure_message) from exc
            except Exception:
                self._restore(snapshot)
                raise
            reconcile(pending, stored)
            return stored

    @staticmethod
    def _swap(items, old_id, new_item):
        return [new_item if item.id == old_id else item for item in items]

    # -- events --------------------------------------------------------------

    def add_event(self, event):
        def apply_local():
            tentative = replace(event, id=f"{TEMP_ID_PREFIX}{uuid.uuid4().hex}")
            self.events = self.events + [tentative]
            return tentative

        def reconcile(tentative, stored):
            self.events = self._swap(self.events, tentative.id, stored)

        return self._mutate(
            apply_local,
            lambda: self.store.create_event(self.user.id, event),
            reconcile,
            "There was an error adding your event.",
        )

    def update_event(self, event):
        """
        Persist an edited event. Edits to a generated occurrence apply to its
        series: descriptive fields go to the template, the template keeps its
        own start and end.
        """
        target = event
        if event.is_recurring_instance:
            template = self.find_event(event.template_id)
            if template is None:
                raise MutationError("Recurring event not found", status=404)
            target = replace(
                event,
                id=template.id,
                start=template.start,
                end=template.end,
                recurrence=template.recurrence,
                is_recurring_instance=False,
                completed=template.completed,
            )
        elif self.find_event(event.id) is None:
            raise MutationError("Event not found", status=404)

        def apply_local():
            self.events = self._swap(self.events, target.id, target)
            return target

        def reconcile(tentative, stored):
            self.events = self._swap(self.events, tentative.id, stored)

        return self._mutate(
            apply_local,
            lambda: self.store.update_event(self.user.id, target),
            reconcile,
            "There was an error updating your event.",
        )

    def set_completed(self, event_id, completed):
        """Toggle completion; generated occurrences only change locally."""
        event_id = str(event_id)
        stored = self.find_event(event_id)
        if stored is None:
            template_id, _, sequence = event_id.rpartition("_")
            template = self.find_event(template_id) if template_id else None
            if template is None or not template.is_template or not sequence.isdigit():
                raise MutationError("Event not found", status=404)
            with self._lock:
                self.local_completions[event_id] = bool(completed)
            return None
        return self.update_event(replace(stored, completed=bool(completed)))

    def delete_event(self, event_id):
        event_id = str(event_id)
        if self.find_event(event_id) is None:
            if "_" in event_id:
                raise MutationError("Delete the recurring event itself to remove its occurrences", status=400)
            raise MutationError("Event not found", status=404)

        def apply_local():
            self.events = [e for e in self.events if e.id != event_id]
            prefix = f"{event_id}_"
            self.local_completions = {k: v for k, v in self.local_completions.items() if not k.startswith(prefix)}
            return event_id

        return self._mutate(
            apply_local,
            lambda: self.store.delete_event(self.user.id, event_id),
            lambda pending, stored: None,
            "There was an error deleting your event.",
        )

    # -- modules -------------------------------------------------------------

    def add_module(self, module):
        def apply_local():
            tentative = replace(module, id=f"{TEMP_ID_PREFIX}{uuid.uuid4().hex}")
            self.modules = self.modules + [tentative]
            return tentative

        def reconcile(tentative, stored):
            self.modules = sorted(self._swap(self.modules, tentative.id, stored), key=lambda m: m.name)

        return self._mutate(
            apply_local,
            lambda: self.store.create_module(self.user.id, module),
            reconcile,
            "There was an error adding your module.",
        )

    def update_module(self, module):
        if self.find_module(module.id) is None:
            raise MutationError("Module not found", status=404)

        def apply_local():
            self.modules = self._swap(self.modules, module.id, module)
            return module

        def reconcile(tentative, stored):
            self.modules = self._swap(self.modules, tentative.id, stored)

        return self._mutate(
            apply_local,
            lambda: self.store.update_module(self.user.id, module),
            reconcile,
            "There was an error updating your module.",
        )

    def delete_module(self, module_id):
        module_id = str(module_id)
        if self.find_module(module_id) is None:
            raise MutationError("Module not found", status=404)

        def apply_local():
            self.modules = [m for m in self.modules if m.id != module_id]
            self.events = [replace(e, module_id=None) if e.module_id == module_id else e for e in self.events]
            self.notes = [replace(n, module_id=None) if n.module_id == module_id else n for n in self.notes]
            return module_id

        return self._mutate(
            apply_local,
            lambda: self.store.delete_module(self.user.id, module_id),
            lambda pending, stored: None,
            "There was an error deleting your module.",
        )

    # -- notes ---------------------------------------------------------------

    def add_note(self, note):
        def apply_local():
            tentative = replace(note, id=f"{TEMP_ID_PREFIX}{uuid.uuid4().hex}")
            self.notes = [tentative] + self.notes
            return tentative

        def reconcile(tentative, stored):
            self.notes = self._swap(self.notes, tentative.id, stored)

        return self._mutate(
            apply_local,
            lambda: self.store.create_note(self.user.id, note),
            reconcile,
            "There was an error creating your note.",
        )

    def save_note(self, note):
        if self.find_note(note.id) is None:
            raise MutationError("Note not found", status=404)

        def apply_local():
            self.notes = [note] + [n for n in self.notes if n.id != note.id]
            return note

        def reconcile(tentative, stored):
            self.notes = self._swap(self.notes, tentative.id, stored)

        return self._mutate(
            apply_local,
            lambda: self.store.update_note(self.user.id, note),
            reconcile,
            "There was an error saving your note.",
        )

    def delete_note(self, note_id):
        note_id = str(note_id)
        if self.find_note(note_id) is None:
            raise MutationError("Note not found", status=404)

        def apply_local():
            self.notes = [n for n in self.notes if n.id != note_id]
            return note_id

        return self._mutate(
            apply_local,
            lambda: self.store.delete_note(self.user.id, note_id),
            lambda pending, stored: None,
            "There was an error deleting your note.",
        )
