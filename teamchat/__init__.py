# Flask application factory

import logging
from flask import Flask, jsonify, request, current_app
from werkzeug.exceptions import HTTPException
from teamchat.extensions import db, socketio, login_manager


def create_app(config=None, broadcaster=None, oracle=None, user_lookup=None):
    # Create and configure Flask application.
    # Collaborators can be injected; defaults are the SQL mirrors and Socket.IO.
    flask_app = Flask(__name__)

    # Load config: settings module first, then the optional override object
    flask_app.config.from_object('config')
    if config:
        flask_app.config.from_object(config)

    _configure_logging(flask_app)

    # Socket handlers must be imported before socketio.init_app: handlers
    # declared before the first init_app are queued and re-attached to the
    # server of every app built afterwards
    import teamchat.sockets  # noqa

    # Initialize extensions
    db.init_app(flask_app)
    socketio.init_app(
        flask_app,
        async_mode=flask_app.config.get('SOCKETIO_ASYNC_MODE'),
        message_queue=flask_app.config.get('SOCKETIO_MESSAGE_QUEUE')
    )
    login_manager.init_app(flask_app)

    @login_manager.request_loader
    def load_principal(req):
        # Authentication happens upstream; the gateway forwards the principal
        from teamchat.models import Principal
        user_id = (req.headers.get(current_app.config['AUTH_USER_HEADER']) or '').strip()
        if not user_id:
            return None
        return Principal(user_id, req.headers.get(current_app.config['AUTH_ROLE_HEADER']))

    @login_manager.unauthorized_handler
    def _unauthorized():
        return jsonify({'success': False, 'error': 'Unauthorized'}), 401

    _register_error_handlers(flask_app)

    # Register blueprints
    from teamchat.routes import chat_bp
    flask_app.register_blueprint(chat_bp)

    # Create database tables
    with flask_app.app_context():
        db.create_all()

    flask_app.extensions['teamchat'] = _build_chat(flask_app, broadcaster, oracle, user_lookup)
    return flask_app


def _build_chat(flask_app, broadcaster, oracle, user_lookup):
    # Wire the chat services together
    from teamchat.services import (
        ChatFacade, ChatRoomRegistry, MessageStore, UnreadTracker,
        SocketIOBroadcaster, SqlMembershipOracle, SqlUserLookup
    )
    cfg = flask_app.config
    user_lookup = user_lookup or SqlUserLookup()
    rooms = ChatRoomRegistry(
        allow_attachments=cfg['CHAT_DEFAULT_ALLOW_ATTACHMENTS'],
        max_attachment_bytes=cfg['CHAT_DEFAULT_MAX_ATTACHMENT_BYTES'],
        attachment_kinds=cfg['CHAT_DEFAULT_ATTACHMENT_KINDS']
    )
    messages = MessageStore(
        rooms, user_lookup,
        max_text_length=cfg['CHAT_MAX_TEXT_LENGTH'],
        max_attachments=cfg['CHAT_MAX_ATTACHMENTS'],
        max_emoji_length=cfg['CHAT_MAX_EMOJI_LENGTH'],
        url_prefixes=cfg['ATTACHMENT_URL_PREFIXES'],
        deleted_placeholder=cfg['CHAT_DELETED_PLACEHOLDER']
    )
    return ChatFacade(
        messages, rooms, UnreadTracker(rooms),
        broadcaster or SocketIOBroadcaster(socketio, background=bool(cfg.get('SOCKETIO_MESSAGE_QUEUE'))),
        oracle or SqlMembershipOracle(),
        user_lookup,
        default_page_size=cfg['CHAT_DEFAULT_PAGE_SIZE'],
        max_page_size=cfg['CHAT_MAX_PAGE_SIZE'],
        sync_roles=cfg['MEMBERSHIP_SYNC_ROLES']
    )


def _configure_logging(flask_app):
    level = getattr(logging, str(flask_app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    logging.basicConfig(level=level, format='%(asctime)s %(levelname)s [%(name)s] %(message)s')
    logging.getLogger('teamchat').setLevel(level)


def _register_error_handlers(flask_app):
    from teamchat.services.errors import ChatError

    @flask_app.errorhandler(ChatError)
    def _chat_error(e):
        flask_app.logger.info('[CHAT ERROR] %s %s -> %s: %s',
                              request.method, request.path, e.status_code, e.message)
        return jsonify(e.to_dict()), e.status_code

    @flask_app.errorhandler(HTTPException)
    def _http_error(e):
        return jsonify({'success': False, 'error': e.description}), e.code
