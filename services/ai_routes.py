"""Einstein chat and notes-search endpoints."""
from flask import current_app, g, jsonify, request

from services.ai_gateway import AIServiceError, ai_settings, ask_einstein, search_notes


def _ai_kwargs():
    # extensions['ai_client'] overrides the OpenAI client built from settings
    return {
        'settings': ai_settings(current_app.config),
        'client': current_app.extensions.get('ai_client'),
    }


def einstein_chat():
    data = request.get_json(silent=True) or {}
    try:
        response = ask_einstein(data.get('message'), **_ai_kwargs())
    except ValueError as exc:
        return jsonify({'error': str(exc)}), 400
    except AIServiceError as exc:
        current_app.logger.error("Einstein chat failed for user %s: %s", g.session_user.id, exc)
        return jsonify({'error': str(exc)}), 502
    return jsonify({'response': response})


def ask_notes():
    """Answer a question using every note the user has."""
    data = request.get_json(silent=True) or {}
    collections = current_app.extensions['view_refresher'].collections_for(g.session_user)
    try:
        response = search_notes(data.get('query'), collections.notes, collections.modules, **_ai_kwargs())
    except ValueError as exc:
        return jsonify({'error': str(exc)}), 400
    except AIServiceError as exc:
        current_app.logger.error("Notes search failed for user %s: %s", g.session_user.id, exc)
        return jsonify({'error': str(exc)}), 502
    return jsonify({'response': response})
