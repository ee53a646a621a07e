"""Navigation shell data for the signed-in sidebar."""
from flask import g, jsonify, request

NAV_ITEMS = (
    ('dashboard', 'Dashboard', '/'),
    ('calendar', 'Calendar', '/calendar'),
    ('notes', 'Notes', '/notes'),
    ('einstein', 'Einstein', '/einstein'),
    ('settings', 'Settings', '/settings'),
)


def _active_key(path):
    path = (path or '/').rstrip('/') or '/'
    for key, _label, href in NAV_ITEMS:
        if href == '/':
            if path == '/':
                return key
        elif path == href or path.startswith(href + '/'):
            return key
    return None


def build_navigation(path):
    active = _active_key(path)
    return [
        {'key': key, 'label': label, 'href': href, 'active': key == active}
        for key, label, href in NAV_ITEMS
    ]


def navigation():
    """Sidebar entries; ?path= marks the active one."""
    user = g.session_user
    return jsonify({
        'user': {'id': user.id, 'email': user.email, 'display_name': user.display_name},
        'items': build_navigation(request.args.get('path')),
    })
