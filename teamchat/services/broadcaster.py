# Realtime fan-out of room events to connected Socket.IO clients

import logging
from teamchat.functions.clock import utcnow, iso

logger = logging.getLogger(__name__)

MESSAGE_SENT = 'message-sent'
MESSAGE_EDITED = 'message-edited'
MESSAGE_DELETED = 'message-deleted'
REACTION_CHANGED = 'reaction-changed'

EVENT_KINDS = (MESSAGE_SENT, MESSAGE_EDITED, MESSAGE_DELETED, REACTION_CHANGED)


def channel_name(project_id):
    # Socket.IO room shared by every client watching a project's chat
    return f'project-{project_id}'


class RealtimeBroadcaster:
    # Best-effort, at-most-once delivery; nothing is persisted or replayed

    def publish(self, project_id, event_kind, payload):
        raise NotImplementedError


class SocketIOBroadcaster(RealtimeBroadcaster):
    # With background=True the emit runs in a Socket.IO background task, so a
    # message queue round trip never delays the HTTP response

    def __init__(self, socketio, background=False):
        self.socketio = socketio
        self.background = background

    def publish(self, project_id, event_kind, payload):
        if event_kind not in EVENT_KINDS:
            raise ValueError(f'Unknown chat event: {event_kind}')
        body = dict(payload)
        body.setdefault('projectId', str(project_id))
        body['timestamp'] = iso(utcnow())
        channel = channel_name(project_id)
        if self.background:
            self.socketio.start_background_task(self._emit, event_kind, body, channel)
        else:
            self._emit(event_kind, body, channel)

    def _emit(self, event_kind, body, channel):
        try:
            self.socketio.emit(event_kind, body, room=channel)
        except Exception:
            if not self.background:
                raise
            # Nobody is left to report to once detached from the request
            logger.warning('[BROADCAST] Failed to emit %s to %s', event_kind, channel, exc_info=True)
            return
        logger.debug('[BROADCAST] %s -> %s', event_kind, channel)


class NullBroadcaster(RealtimeBroadcaster):

    def publish(self, project_id, event_kind, payload):
        if event_kind not in EVENT_KINDS:
            raise ValueError(f'Unknown chat event: {event_kind}')
