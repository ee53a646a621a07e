"""Calendar and event route handlers."""
from dataclasses import replace

from flask import current_app, g, jsonify, request

from background_jobs import now_local
from crud_gateway import MutationError
from services.validation_service import parse_bool, parse_day_value, parse_event_payload
from view_models import build_calendar, build_dashboard, serialize_event

CALENDAR_VIEWS = ('day', 'week', 'month', 'list')


def _collections():
    return current_app.extensions['view_refresher'].collections_for(g.session_user)


def _now():
    return now_local(current_app.config.get('DEFAULT_TIMEZONE', 'UTC'))


def _horizon():
    return current_app.config.get('RECURRENCE_HORIZON_MONTHS', 3)


def _selected_day(now):
    raw = request.args.get('date')
    if not raw:
        return now.date()
    return parse_day_value(raw)


def _mutation_failed(exc):
    current_app.logger.warning("Event mutation failed for user %s: %s", g.session_user.id, exc)
    return jsonify({'error': str(exc)}), exc.status


def _check_module(collections, event):
    if event.module_id and collections.find_module(event.module_id) is None:
        raise ValueError('Module not found')


def calendar():
    view = (request.args.get('view') or 'day').strip().lower()
    if view not in CALENDAR_VIEWS:
        return jsonify({'error': f"view must be one of {', '.join(CALENDAR_VIEWS)}"}), 400
    now = _now()
    selected = _selected_day(now)
    if not selected:
        return jsonify({'error': 'Invalid date'}), 400
    return jsonify(build_calendar(_collections(), view, selected, now, horizon_months=_horizon()))


def dashboard():
    now = _now()
    selected = _selected_day(now)
    if not selected:
        return jsonify({'error': 'Invalid date'}), 400
    return jsonify(build_dashboard(_collections(), selected, now, horizon_months=_horizon()))


def create_event():
    collections = _collections()
    data = request.get_json(silent=True) or {}
    try:
        event = parse_event_payload(data)
        _check_module(collections, event)
    except ValueError as exc:
        return jsonify({'error': str(exc)}), 400
    try:
        stored = collections.add_event(event)
    except MutationError as exc:
        return _mutation_failed(exc)
    return jsonify(serialize_event(stored)), 201


def _editable_base(collections, event_id):
    """Stored event, or a generated occurrence standing in for its template."""
    stored = collections.find_event(event_id)
    if stored is not None:
        return stored
    if '_' in event_id:
        template = collections.find_event(event_id.rsplit('_', 1)[0])
        if template is not None and template.is_template:
            return replace(template, id=event_id, is_recurring_instance=True)
    return None


def event_detail(event_id):
    collections = _collections()

    if request.method == 'DELETE':
        try:
            collections.delete_event(event_id)
        except MutationError as exc:
            return _mutation_failed(exc)
        return '', 204

    base = _editable_base(collections, event_id)
    if base is None:
        return jsonify({'error': 'Event not found'}), 404
    data = request.get_json(silent=True) or {}
    try:
        event = parse_event_payload(data, existing=base)
        _check_module(collections, event)
    except ValueError as exc:
        return jsonify({'error': str(exc)}), 400
    try:
        stored = collections.update_event(event)
    except MutationError as exc:
        return _mutation_failed(exc)
    return jsonify(serialize_event(stored))


def complete_event(event_id):
    data = request.get_json(silent=True) or {}
    completed = parse_bool(data.get('completed'), True)
    try:
        stored = _collections().set_completed(event_id, completed)
    except MutationError as exc:
        return _mutation_failed(exc)
    return jsonify({'id': event_id, 'completed': completed, 'persisted': stored is not None})
