"""Sign-up, login/logout and settings routes, plus the session lookup the guard uses."""
from flask import current_app, g, jsonify, request, session

from domain import SessionUser
from models import db, User
from services.validation_service import validate_credentials


def get_current_user():
    """Validated SessionUser for the browser session, or None."""
    user_id = session.get('user_id')
    if not user_id:
        return None
    try:
        record = db.session.get(User, int(user_id))
    except (TypeError, ValueError):
        record = None
    if record is None:
        session.pop('user_id', None)
        return None
    try:
        return SessionUser.from_record(record)
    except ValueError as exc:
        current_app.logger.warning("Rejected session for user %s: %s", user_id, exc)
        session.pop('user_id', None)
        return None


def _refresher():
    return current_app.extensions['view_refresher']


def _start_session(record):
    session['user_id'] = record.id
    session.permanent = True
    user = SessionUser.from_record(record)
    _refresher().open(user)
    return user


def _user_payload(user):
    return {'id': user.id, 'email': user.email, 'display_name': user.display_name}


def signup():
    data = request.get_json(silent=True) or {}
    try:
        email = validate_credentials(data.get('email'), data.get('password'))
    except ValueError as exc:
        return jsonify({'error': str(exc)}), 400

    if User.query.filter_by(email=email).first():
        return jsonify({'error': 'Email already registered'}), 400

    record = User(email=email, display_name=(data.get('display_name') or '').strip() or None)
    record.set_password(data['password'])
    db.session.add(record)
    db.session.commit()
    user = _start_session(record)
    current_app.logger.info("New account created for user %s", user.id)
    return jsonify({'success': True, 'user': _user_payload(user)}), 201


def login():
    data = request.get_json(silent=True) or {}
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''
    record = User.query.filter_by(email=email).first() if email else None
    if not record or not record.check_password(password):
        return jsonify({'error': 'Invalid email or password'}), 401
    user = _start_session(record)
    return jsonify({'success': True, 'user': _user_payload(user)})


def logout():
    user = g.get('session_user')
    if user:
        _refresher().close(user.id)
    session.pop('user_id', None)
    return jsonify({'success': True})


def current_user_info():
    user = g.session_user
    return jsonify({'user': _user_payload(user)})


def update_settings():
    """Update profile settings (display name)."""
    user = g.session_user
    data = request.get_json(silent=True) or {}
    display_name = (data.get('display_name') or '').strip()
    if not display_name:
        return jsonify({'error': 'Display name is required'}), 400
    record = db.get_or_404(User, int(user.id))
    record.display_name = display_name
    db.session.commit()
    return jsonify({'success': True, 'user': _user_payload(SessionUser.from_record(record))})
