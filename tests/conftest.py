from types import SimpleNamespace

import pytest

from app import create_app
from models import db


class FakeCompletions:
    def __init__(self, owner):
        self.owner = owner

    def create(self, **kwargs):
        self.owner.calls.append(kwargs)
        if self.owner.error is not None:
            raise self.owner.error
        message = SimpleNamespace(content=self.owner.reply)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class FakeAIClient:
    """Stands in for the OpenAI client: records calls, returns a canned reply."""

    def __init__(self, reply="**Answer**", error=None):
        self.reply = reply
        self.error = error
        self.calls = []
        self.chat = SimpleNamespace(completions=FakeCompletions(self))


@pytest.fixture
def ai_client():
    return FakeAIClient()


@pytest.fixture
def app(tmp_path, ai_client):
    app = create_app({
        'TESTING': True,
        'SECRET_KEY': 'test-secret',
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'ENABLE_BACKGROUND_JOBS': '0',
        'UPLOAD_FOLDER': str(tmp_path / 'uploads'),
        'MAX_UPLOAD_BYTES': 1024,
        'AI_API_KEY': 'test-key',
    })
    app.extensions['ai_client'] = ai_client
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_client(client):
    response = client.post('/api/signup', json={
        'email': 'ada@example.com',
        'password': 'correct-horse',
        'display_name': 'Ada',
    })
    assert response.status_code == 201
    return client
