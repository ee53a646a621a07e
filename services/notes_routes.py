"""Notes workspace route handlers: CRUD, sidebar search and image attachments."""
import os
from dataclasses import replace

from flask import current_app, g, jsonify, request

import domain
from crud_gateway import MutationError
from services.validation_service import normalize_id
from storage_service import markdown_image
from view_models import notes_sidebar, serialize_note


def _collections():
    return current_app.extensions['view_refresher'].collections_for(g.session_user)


def _mutation_failed(exc):
    current_app.logger.warning("Note mutation failed for user %s: %s", g.session_user.id, exc)
    return jsonify({'error': str(exc)}), exc.status


def _module_id(collections, data, default=None):
    if 'module_id' not in data:
        return default
    module_id = normalize_id(data.get('module_id'))
    if module_id and collections.find_module(module_id) is None:
        raise ValueError('Module not found')
    return module_id


def handle_notes():
    """Sidebar listing (optionally searched with ?q=) or create a note."""
    collections = _collections()

    if request.method == 'POST':
        data = request.get_json(silent=True) or {}
        try:
            module_id = _module_id(collections, data)
        except ValueError as exc:
            return jsonify({'error': str(exc)}), 400
        note = domain.Note(
            id='',
            title=(data.get('title') or '').strip() or domain.UNTITLED_NOTE,
            content=data.get('content') or '',
            module_id=module_id,
        )
        try:
            stored = collections.add_note(note)
        except MutationError as exc:
            return _mutation_failed(exc)
        return jsonify(serialize_note(stored)), 201

    return jsonify(notes_sidebar(collections.notes, collections.modules, query=request.args.get('q')))


def handle_note(note_id):
    """CRUD operations for a single note."""
    collections = _collections()
    note = collections.find_note(note_id)
    if note is None:
        return jsonify({'error': 'Note not found'}), 404

    if request.method == 'DELETE':
        try:
            collections.delete_note(note_id)
        except MutationError as exc:
            return _mutation_failed(exc)
        return '', 204

    if request.method == 'PUT':
        data = request.get_json(silent=True) or {}
        try:
            module_id = _module_id(collections, data, default=note.module_id)
        except ValueError as exc:
            return jsonify({'error': str(exc)}), 400
        title = data.get('title', note.title)
        edited = replace(
            note,
            title=(title or '').strip() or domain.UNTITLED_NOTE,
            content=data.get('content', note.content) or '',
            module_id=module_id,
        )
        try:
            stored = collections.save_note(edited)
        except MutationError as exc:
            return _mutation_failed(exc)
        return jsonify(serialize_note(stored))

    return jsonify(serialize_note(note))


def upload_note_image():
    """Store an image attachment and return its URL plus a markdown snippet."""
    file = request.files.get('file')
    if not file or not file.filename:
        return jsonify({'error': 'No file uploaded'}), 400
    filename = os.path.basename(file.filename)
    storage = current_app.extensions['image_storage']
    try:
        url = storage.upload(file.read(), file.mimetype, filename=filename)
    except ValueError as exc:
        return jsonify({'error': str(exc)}), 400
    except RuntimeError as exc:
        current_app.logger.error("Image upload failed for user %s: %s", g.session_user.id, exc)
        return jsonify({'error': str(exc)}), 500
    return jsonify({'url': url, 'markdown': markdown_image(filename, url)}), 201
