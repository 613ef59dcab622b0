import pytest
from teamchat import _build_chat
from teamchat.services import SocketIOBroadcaster, NullBroadcaster


class FakeSocketIO:
    # Records emits; background tasks are queued until run_tasks()

    def __init__(self, fail=False):
        self.emitted = []
        self.tasks = []
        self.fail = fail

    def emit(self, event, data, room=None):
        if self.fail:
            raise ConnectionError('message queue unreachable')
        self.emitted.append((event, data, room))

    def start_background_task(self, target, *args):
        self.tasks.append((target, args))

    def run_tasks(self):
        for target, args in self.tasks:
            target(*args)
        self.tasks = []


def test_inline_publish_emits_to_project_channel():
    sio = FakeSocketIO()
    SocketIOBroadcaster(sio).publish('P1', 'message-deleted', {'messageId': 7})
    [(event, data, room)] = sio.emitted
    assert (event, room) == ('message-deleted', 'project-P1')
    assert data['messageId'] == 7
    assert data['projectId'] == 'P1'
    assert 'timestamp' in data


def test_background_publish_returns_before_emitting():
    sio = FakeSocketIO()
    SocketIOBroadcaster(sio, background=True).publish('P1', 'message-sent', {'messageId': 1})
    assert sio.emitted == []
    assert len(sio.tasks) == 1

    sio.run_tasks()
    assert [e[0] for e in sio.emitted] == ['message-sent']


def test_background_emit_failure_is_logged(caplog):
    sio = FakeSocketIO(fail=True)
    SocketIOBroadcaster(sio, background=True).publish('P1', 'message-sent', {'messageId': 1})
    sio.run_tasks()
    assert '[BROADCAST] Failed to emit message-sent' in caplog.text


def test_inline_emit_failure_propagates():
    broadcaster = SocketIOBroadcaster(FakeSocketIO(fail=True))
    with pytest.raises(ConnectionError):
        broadcaster.publish('P1', 'message-sent', {'messageId': 1})


@pytest.mark.parametrize('broadcaster', [SocketIOBroadcaster(FakeSocketIO()), NullBroadcaster()])
def test_unknown_event_kind_is_rejected(broadcaster):
    with pytest.raises(ValueError):
        broadcaster.publish('P1', 'message-exploded', {})


def test_message_queue_enables_background_publish(app):
    app.config['SOCKETIO_MESSAGE_QUEUE'] = 'redis://localhost:6379/0'
    chat = _build_chat(app, None, None, None)
    assert chat.broadcaster.background is True
