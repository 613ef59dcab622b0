# Flask extensions initialization
# Helps avoid circular imports by initializing extensions without app context

from flask_sqlalchemy import SQLAlchemy
from flask_socketio import SocketIO
from flask_login import LoginManager

db = SQLAlchemy()
# async_mode and message_queue come from the app config in init_app
socketio = SocketIO(
    cors_allowed_origins='*',
    ping_timeout=60,
    ping_interval=25,
    manage_transports=True,
    path='socket.io',
    engineio_logger=False,
    socketio_logger=False
)
login_manager = LoginManager()
