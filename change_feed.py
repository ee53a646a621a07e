"""
Change notifications for a user's rows, and the consumer that keeps each
signed-in user's collections and dashboard view model current.

Commits publish "table X changed for user Y" on a `ChangeFeed`; the
`ViewRefresher` reacts by re-running fetch -> expand -> aggregate. When a
scheduler is available the refresh runs as a coalesced background job, so a
burst of changes for one user collapses into a single refresh.
"""
import logging
import threading

from flask import current_app, has_app_context
from sqlalchemy import event as sa_event

from background_jobs import now_local, run_in_app_context
from crud_gateway import SqlDataStore, UserCollections
from models import db
from view_models import build_dashboard

logger = logging.getLogger(__name__)

TRACKED_TABLES = {'event': 'events', 'module': 'modules', 'note': 'notes'}
_PENDING_KEY = 'aetas_pending_changes'
_hooks_installed = False


class ChangeFeed:
    """Thread-safe publish/subscribe keyed by (table, user_id). Payload-free."""

    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers = {}

    def subscribe(self, table, user_id, callback):
        key = (table, str(user_id))
        with self._lock:
            self._subscribers.setdefault(key, []).append(callback)

        def unsubscribe():
            with self._lock:
                callbacks = self._subscribers.get(key, [])
                if callback in callbacks:
                    callbacks.remove(callback)
                if not callbacks:
                    self._subscribers.pop(key, None)

        return unsubscribe

    def subscriber_count(self, table, user_id):
        with self._lock:
            return len(self._subscribers.get((table, str(user_id)), []))

    def publish(self, table, user_id):
        with self._lock:
            callbacks = list(self._subscribers.get((table, str(user_id)), []))
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Change callback failed for %s/%s", table, user_id)
        return len(callbacks)


def _collect_changes(session, flush_context):
    pending = session.info.setdefault(_PENDING_KEY, set())
    for obj in list(session.new) + list(session.dirty) + list(session.deleted):
        table = TRACKED_TABLES.get(getattr(obj, '__tablename__', None))
        user_id = getattr(obj, 'user_id', None)
        if table and user_id is not None:
            pending.add((table, str(user_id)))


def _publish_changes(session):
    pending = session.info.pop(_PENDING_KEY, set())
    if not pending or not has_app_context():
        return
    feed = current_app.extensions.get('change_feed')
    if feed is None:
        return
    for table, user_id in sorted(pending):
        feed.publish(table, user_id)


def _discard_changes(session, *args):
    session.info.pop(_PENDING_KEY, None)


def install_session_hooks():
    """Publish tracked-table changes after each successful commit."""
    global _hooks_installed
    if _hooks_installed:
        return
    sa_event.listen(db.session, 'after_flush', _collect_changes)
    sa_event.listen(db.session, 'after_commit', _publish_changes)
    sa_event.listen(db.session, 'after_rollback', _discard_changes)
    _hooks_installed = True


class ViewRefresher:
    """
    Keeps one UserCollections per signed-in user and the latest dashboard for
    each. Sessions are opened on login and closed on logout.
    """

    def __init__(self, app, feed, scheduler=None, store_factory=SqlDataStore):
        self.app = app
        self.feed = feed
        self.scheduler = scheduler
        self.store_factory = store_factory
        self._lock = threading.RLock()
        self._collections = {}
        self._unsubscribe = {}
        self._stale = set()
        self._latest = {}

    def open(self, user):
        with self._lock:
            if user.id in self._collections:
                return self._collections[user.id]
            collections = UserCollections(user, self.store_factory()).refresh()
            self._collections[user.id] = collections
            self._unsubscribe[user.id] = [
                self.feed.subscribe(table, user.id, lambda uid=user.id: self.notify(uid))
                for table in TRACKED_TABLES.values()
            ]
            return collections

    def close(self, user_id):
        with self._lock:
            for unsubscribe in self._unsubscribe.pop(user_id, []):
                unsubscribe()
            self._collections.pop(user_id, None)
            self._latest.pop(user_id, None)
            self._stale.discard(user_id)

    def is_open(self, user_id):
        with self._lock:
            return user_id in self._collections

    def collections_for(self, user):
        """The user's collections, re-fetched first if a change is pending."""
        collections = self.open(user)
        with self._lock:
            stale = user.id in self._stale
        if stale:
            self.refresh(user.id)
        return collections

    def notify(self, user_id):
        with self._lock:
            self._stale.add(user_id)
        if self.scheduler is not None and self.scheduler.running:
            # One job id per user: a newer change replaces a refresh not yet run.
            self.scheduler.add_job(
                run_in_app_context,
                'date',
                args=[self.app, self.refresh, (user_id,)],
                kwargs={'on_error': lambda exc: logger.warning("View refresh for user %s failed: %s", user_id, exc)},
                id=f"refresh_{user_id}",
                replace_existing=True,
            )

    def refresh(self, user_id):
        with self._lock:
            collections = self._collections.get(user_id)
            self._stale.discard(user_id)
        if collections is None:
            return None
        collections.refresh()
        now = now_local(self.app.config.get('DEFAULT_TIMEZONE'))
        dashboard = build_dashboard(
            collections,
            now.date(),
            now,
            horizon_months=self.app.config.get('RECURRENCE_HORIZON_MONTHS', 3),
        )
        with self._lock:
            self._latest[user_id] = dashboard
        return dashboard

    def latest(self, user_id):
        with self._lock:
            return self._latest.get(user_id)
