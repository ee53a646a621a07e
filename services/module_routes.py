"""Module (course/project) route handlers."""
from flask import current_app, g, jsonify, request

from background_jobs import now_local
from crud_gateway import MutationError
from recurrence import default_window
from services.validation_service import parse_module_payload
from view_models import module_overview, serialize_module


def _collections():
    return current_app.extensions['view_refresher'].collections_for(g.session_user)


def _mutation_failed(exc):
    current_app.logger.warning("Module mutation failed for user %s: %s", g.session_user.id, exc)
    return jsonify({'error': str(exc)}), exc.status


def handle_modules():
    """List or create modules for the current user."""
    collections = _collections()

    if request.method == 'POST':
        try:
            module = parse_module_payload(request.get_json(silent=True) or {})
        except ValueError as exc:
            return jsonify({'error': str(exc)}), 400
        try:
            stored = collections.add_module(module)
        except MutationError as exc:
            return _mutation_failed(exc)
        return jsonify(serialize_module(stored)), 201

    return jsonify([serialize_module(m) for m in collections.modules])


def handle_module(module_id):
    collections = _collections()

    if request.method == 'DELETE':
        try:
            collections.delete_module(module_id)
        except MutationError as exc:
            return _mutation_failed(exc)
        return '', 204

    existing = collections.find_module(module_id)
    if existing is None:
        return jsonify({'error': 'Module not found'}), 404
    try:
        module = parse_module_payload(request.get_json(silent=True) or {}, existing=existing)
    except ValueError as exc:
        return jsonify({'error': str(exc)}), 400
    try:
        stored = collections.update_module(module)
    except MutationError as exc:
        return _mutation_failed(exc)
    return jsonify(serialize_module(stored))


def modules_overview():
    """Upcoming incomplete events per module, Others last."""
    collections = _collections()
    now = now_local(current_app.config.get('DEFAULT_TIMEZONE', 'UTC'))
    window_start, window_end = default_window(
        now.date(), now=now, horizon_months=current_app.config.get('RECURRENCE_HORIZON_MONTHS', 3)
    )
    events = collections.expanded(window_start, window_end)
    return jsonify({'modules': module_overview(events, collections.modules, now)})
