import pytest
from teamchat import create_app
from teamchat.extensions import db, socketio
from teamchat.models import User, Principal
from teamchat.services import RealtimeBroadcaster


class TestingConfig:
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SOCKETIO_ASYNC_MODE = 'threading'
    LOG_LEVEL = 'WARNING'


class RecordingBroadcaster(RealtimeBroadcaster):
    # Keeps published events in memory; can be switched to fail

    def __init__(self):
        self.events = []
        self.fail = False

    def publish(self, project_id, event_kind, payload):
        if self.fail:
            raise RuntimeError('socket layer down')
        self.events.append((str(project_id), event_kind, payload))

    def kinds(self):
        return [kind for _, kind, _ in self.events]


def seed(app):
    # Users u1, u2, u3 and project P1 owned by 'owner' with members u1 and u2.
    # u3 belongs to no project.
    with app.app_context():
        db.session.add_all([
            User(id='owner', name='Olga', email='olga@example.com'),
            User(id='u1', name='Alice', email='alice@example.com'),
            User(id='u2', name='Bob', email='bob@example.com'),
            User(id='u3', name='Carol', email='carol@example.com'),
        ])
        db.session.commit()
        app.extensions['teamchat'].oracle.update('P1', 'owner', ['u1', 'u2'])


@pytest.fixture
def broadcaster():
    return RecordingBroadcaster()


@pytest.fixture
def app(broadcaster):
    app = create_app(TestingConfig, broadcaster=broadcaster)
    seed(app)
    yield app
    with app.app_context():
        db.drop_all()


@pytest.fixture
def live_app():
    # App wired to the real Socket.IO broadcaster
    app = create_app(TestingConfig)
    seed(app)
    yield app
    with app.app_context():
        db.drop_all()


@pytest.fixture
def ctx(app):
    with app.app_context():
        yield
        db.session.remove()


@pytest.fixture
def chat(app, ctx):
    return app.extensions['teamchat']


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def socket_client_factory(live_app):
    clients = []

    def make(user_id=None):
        headers = {'X-User-Id': user_id} if user_id else None
        c = socketio.test_client(live_app, headers=headers)
        clients.append(c)
        return c

    yield make
    for c in clients:
        if c.is_connected():
            c.disconnect()


def as_user(user_id, role='member'):
    return {'X-User-Id': user_id, 'X-User-Role': role}


OWNER = Principal('owner')
U1 = Principal('u1')
U2 = Principal('u2')
U3 = Principal('u3')
SERVICE = Principal('project-service', 'service')
