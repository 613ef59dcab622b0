# Socket.IO event handlers: project rooms, presence, typing indicators and
# socket-driven chat actions. Chat actions go through the same ChatFacade as
# the REST routes, so their broadcasts reach the rooms joined here.

import logging
import threading
from flask import request, current_app
from flask_socketio import join_room, leave_room, emit
from flask_login import current_user
from teamchat.extensions import socketio
from teamchat.functions.clock import utcnow, iso
from teamchat.services.broadcaster import channel_name
from teamchat.services.errors import ChatError

logger = logging.getLogger(__name__)

# sid -> {'user_id': ..., 'projects': set(), 'typing': set()}
_sessions = {}
_sessions_lock = threading.Lock()


def online_users(project_id):
    with _sessions_lock:
        return sorted({s['user_id'] for s in _sessions.values() if project_id in s['projects']})


def _session():
    return _sessions.get(request.sid)


def _project_id(data):
    project_id = (data or {}).get('projectId') if isinstance(data, dict) else None
    if not project_id:
        emit('error', {'message': 'Project ID is required'})
        return None
    return str(project_id)


def _chat():
    return current_app.extensions['teamchat']


def _message_id(data):
    message_id = data.get('messageId') if isinstance(data, dict) else None
    try:
        return int(message_id)
    except (TypeError, ValueError):
        emit('error', {'message': 'Message ID is required'})
        return None


def _stopped_typing(user_id, project_id):
    socketio.emit('user-stopped-typing', {
        'userId': user_id,
        'projectId': project_id,
        'timestamp': iso(utcnow())
    }, room=channel_name(project_id))


def _broadcast_online(project_id):
    socketio.emit('online-users', {
        'projectId': project_id,
        'users': online_users(project_id)
    }, room=channel_name(project_id))


@socketio.on('connect')
def on_connect(auth=None):
    # Refuse connections without an authenticated principal
    if not current_user.is_authenticated:
        logger.info('[SOCKET CONNECT] Rejected unauthenticated connection')
        return False
    with _sessions_lock:
        _sessions[request.sid] = {'user_id': current_user.id, 'projects': set(), 'typing': set()}
    logger.info('[SOCKET CONNECT] User %s connected (%s)', current_user.id, request.sid)


@socketio.on('disconnect')
def on_disconnect(reason=None):
    with _sessions_lock:
        session = _sessions.pop(request.sid, None)
    if not session:
        return
    logger.info('[SOCKET DISCONNECT] User %s disconnected (%s)', session['user_id'], reason)
    for project_id in session['typing']:
        _stopped_typing(session['user_id'], project_id)
    for project_id in session['projects']:
        socketio.emit('user-left', {
            'userId': session['user_id'],
            'projectId': project_id,
            'timestamp': iso(utcnow())
        }, room=channel_name(project_id))
        _broadcast_online(project_id)


@socketio.on('join-project')
def on_join_project(data):
    # Join the project channel after the chat membership check
    project_id = _project_id(data)
    if project_id is None:
        return

    try:
        room = _chat().open_room(current_user, project_id)
    except ChatError as e:
        emit('error', {'message': e.message})
        return

    channel = channel_name(project_id)
    join_room(channel)
    with _sessions_lock:
        session = _session()
        if session is not None:
            session['projects'].add(project_id)
    logger.info('[SOCKET JOIN] User %s joined %s', current_user.id, channel)

    emit('user-joined', {
        'userId': current_user.id,
        'projectId': project_id,
        'timestamp': iso(utcnow())
    }, room=channel, include_self=False)
    emit('joined-project', {
        'projectId': project_id,
        'roomId': room.id,
        'onlineUsers': online_users(project_id),
        'timestamp': iso(utcnow())
    })
    _broadcast_online(project_id)


@socketio.on('leave-project')
def on_leave_project(data):
    project_id = _project_id(data)
    if project_id is None:
        return

    channel = channel_name(project_id)
    leave_room(channel)
    with _sessions_lock:
        session = _session()
        if session is not None:
            session['projects'].discard(project_id)
            session['typing'].discard(project_id)
    logger.info('[SOCKET LEAVE] User %s left %s', current_user.id, channel)

    emit('user-left', {
        'userId': current_user.id,
        'projectId': project_id,
        'timestamp': iso(utcnow())
    }, room=channel)
    emit('left-project', {'projectId': project_id})
    _broadcast_online(project_id)


def _set_typing(data, typing):
    project_id = (data or {}).get('projectId') if isinstance(data, dict) else None
    if not project_id:
        return
    project_id = str(project_id)
    with _sessions_lock:
        session = _session()
        if session is None or project_id not in session['projects']:
            return
        if typing:
            session['typing'].add(project_id)
        else:
            session['typing'].discard(project_id)

    emit('user-typing' if typing else 'user-stopped-typing', {
        'userId': current_user.id,
        'projectId': project_id,
        'timestamp': iso(utcnow())
    }, room=channel_name(project_id), include_self=False)


@socketio.on('typing')
def on_typing(data):
    _set_typing(data, True)


@socketio.on('stop-typing')
def on_stop_typing(data):
    _set_typing(data, False)


@socketio.on('get-online-users')
def on_get_online_users(data):
    project_id = _project_id(data)
    if project_id is None:
        return
    emit('online-users', {'projectId': project_id, 'users': online_users(project_id)})


# --- CHAT ACTIONS ---
# Each handler acknowledges with the same body as the matching REST route;
# the broadcaster fans the change out to the project channel.

@socketio.on('send-message')
def on_send_message(data):
    project_id = _project_id(data)
    if project_id is None:
        return

    try:
        message = _chat().send_message(
            current_user, project_id,
            text=data.get('text'),
            attachments=data.get('attachments'),
            reply_to=data.get('replyTo')
        )
    except ChatError as e:
        emit('error', {'message': e.message})
        return

    # Sending ends the sender's typing indicator
    with _sessions_lock:
        session = _session()
        was_typing = session is not None and project_id in session['typing']
        if was_typing:
            session['typing'].discard(project_id)
    if was_typing:
        _stopped_typing(current_user.id, project_id)
    return {'success': True, 'message': message}


@socketio.on('edit-message')
def on_edit_message(data):
    message_id = _message_id(data)
    if message_id is None:
        return
    try:
        message = _chat().edit_message(current_user, message_id, data.get('text'))
    except ChatError as e:
        emit('error', {'message': e.message})
        return
    return {'success': True, 'message': message}


@socketio.on('delete-message')
def on_delete_message(data):
    message_id = _message_id(data)
    if message_id is None:
        return
    try:
        _chat().delete_message(current_user, message_id)
    except ChatError as e:
        emit('error', {'message': e.message})
        return
    return {'success': True, 'messageId': message_id}


@socketio.on('add-reaction')
def on_add_reaction(data):
    # Same toggle semantics as the REST reaction route
    message_id = _message_id(data)
    if message_id is None:
        return
    try:
        result = _chat().toggle_reaction(current_user, message_id, data.get('emoji'))
    except ChatError as e:
        emit('error', {'message': e.message})
        return
    return {'success': True, 'action': result['action'], 'reactions': result['reactions']}


@socketio.on('mark-messages-read')
def on_mark_messages_read(data):
    project_id = _project_id(data)
    if project_id is None:
        return
    try:
        marked = _chat().mark_all_read(current_user, project_id)
    except ChatError as e:
        emit('error', {'message': e.message})
        return
    logger.info('[SOCKET READ] User %s marked %d messages read in project %s',
                current_user.id, marked, project_id)
    emit('messages-marked-read', {
        'projectId': project_id,
        'marked': marked,
        'timestamp': iso(utcnow())
    })
