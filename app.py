import logging
import os

from dotenv import load_dotenv
from flask import Flask, g, jsonify, redirect, request, send_from_directory, url_for

load_dotenv()

from background_jobs import start_scheduler
from change_feed import ChangeFeed, ViewRefresher, install_session_hooks
from models import db
from services import ai_routes, auth_routes, calendar_routes, module_routes, notes_routes, page_routes
from storage_service import DEFAULT_MAX_UPLOAD_BYTES, ImageStorage

PUBLIC_ENDPOINTS = {'login', 'signup', 'static', 'uploaded_file'}
AUTH_ENDPOINTS = {'login', 'signup'}

ROUTES = (
    # Session
    ('/api/signup', 'signup', auth_routes.signup, ['POST']),
    ('/api/login', 'login', auth_routes.login, ['POST']),
    ('/api/logout', 'logout', auth_routes.logout, ['POST']),
    ('/api/current-user', 'current_user_info', auth_routes.current_user_info, ['GET']),
    ('/api/settings', 'update_settings', auth_routes.update_settings, ['PUT']),
    ('/api/navigation', 'navigation', page_routes.navigation, ['GET']),
    # Calendar
    ('/api/dashboard', 'dashboard', calendar_routes.dashboard, ['GET']),
    ('/api/calendar', 'calendar', calendar_routes.calendar, ['GET']),
    ('/api/events', 'create_event', calendar_routes.create_event, ['POST']),
    ('/api/events/<event_id>', 'event_detail', calendar_routes.event_detail, ['PUT', 'DELETE']),
    ('/api/events/<event_id>/complete', 'complete_event', calendar_routes.complete_event, ['POST']),
    # Modules
    ('/api/modules', 'handle_modules', module_routes.handle_modules, ['GET', 'POST']),
    ('/api/modules/overview', 'modules_overview', module_routes.modules_overview, ['GET']),
    ('/api/modules/<module_id>', 'handle_module', module_routes.handle_module, ['PUT', 'DELETE']),
    # Notes
    ('/api/notes', 'handle_notes', notes_routes.handle_notes, ['GET', 'POST']),
    ('/api/notes/images', 'upload_note_image', notes_routes.upload_note_image, ['POST']),
    ('/api/notes/ask', 'ask_notes', ai_routes.ask_notes, ['POST']),
    ('/api/notes/<note_id>', 'handle_note', notes_routes.handle_note, ['GET', 'PUT', 'DELETE']),
    # Einstein
    ('/api/einstein', 'einstein_chat', ai_routes.einstein_chat, ['POST']),
)


def _load_config(app):
    app.config['SQLALCHEMY_DATABASE_URI'] = os.environ.get('SQLALCHEMY_DATABASE_URI', 'sqlite:///aetas.db')
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY', 'dev-secret-key-change-in-production')
    app.config['PERMANENT_SESSION_LIFETIME'] = 365 * 24 * 60 * 60  # 1 year in seconds
    app.config['DEFAULT_TIMEZONE'] = os.environ.get('DEFAULT_TIMEZONE', 'UTC')
    app.config['AI_API_KEY'] = os.environ.get('AI_API_KEY') or os.environ.get('GROQ_API_KEY')
    app.config['AI_BASE_URL'] = os.environ.get('AI_BASE_URL')
    app.config['AI_MODEL'] = os.environ.get('AI_MODEL')
    app.config['AI_TIMEOUT'] = os.environ.get('AI_TIMEOUT')
    app.config['UPLOAD_FOLDER'] = os.environ.get('UPLOAD_FOLDER', os.path.join(app.instance_path, 'uploads'))
    app.config['MAX_UPLOAD_BYTES'] = int(os.environ.get('MAX_UPLOAD_BYTES', DEFAULT_MAX_UPLOAD_BYTES))
    app.config['RECURRENCE_HORIZON_MONTHS'] = int(os.environ.get('RECURRENCE_HORIZON_MONTHS', 3))
    app.config['ENABLE_BACKGROUND_JOBS'] = os.environ.get('ENABLE_BACKGROUND_JOBS', '1')
    app.config['LOG_LEVEL'] = os.environ.get('LOG_LEVEL', 'INFO')


def _register_routes(app):
    for rule, endpoint, view, methods in ROUTES:
        app.add_url_rule(rule, endpoint, view, methods=methods)

    @app.route('/uploads/<path:filename>')
    def uploaded_file(filename):
        return send_from_directory(app.config['UPLOAD_FOLDER'], filename)

    @app.before_request
    def require_session():
        """Resolve the signed-in user; unauthenticated API calls stop here."""
        g.session_user = auth_routes.get_current_user()
        endpoint = request.endpoint
        if endpoint is None:
            return None
        if g.session_user is None and endpoint not in PUBLIC_ENDPOINTS:
            return jsonify({'error': 'Not signed in'}), 401
        if g.session_user is not None and endpoint in AUTH_ENDPOINTS:
            return redirect(url_for('dashboard'))
        return None

    @app.errorhandler(404)
    def not_found(exc):
        return jsonify({'error': 'Not found'}), 404

    @app.errorhandler(500)
    def server_error(exc):
        app.logger.error("Unhandled error on %s: %s", request.path, exc)
        return jsonify({'error': 'Internal server error'}), 500


def create_app(test_config=None):
    app = Flask(__name__)
    _load_config(app)
    if test_config:
        app.config.update(test_config)
    app.logger.setLevel(getattr(logging, str(app.config['LOG_LEVEL']).upper(), logging.INFO))

    db.init_app(app)
    install_session_hooks()
    with app.app_context():
        db.create_all()

    feed = ChangeFeed()
    scheduler = start_scheduler(app)
    app.extensions['change_feed'] = feed
    app.extensions['view_refresher'] = ViewRefresher(app, feed, scheduler=scheduler)
    app.extensions['image_storage'] = ImageStorage(app.config['UPLOAD_FOLDER'], max_bytes=app.config['MAX_UPLOAD_BYTES'])
    app.extensions['scheduler'] = scheduler

    _register_routes(app)
    return app


if __name__ == '__main__':
    create_app().run(host='0.0.0.0', debug=True)
