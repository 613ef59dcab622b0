# Entry point for the TeamChat service

import logging
from teamchat import create_app
from teamchat.extensions import socketio

app = create_app()

if __name__ == '__main__':
    logging.getLogger('teamchat').info('[SERVER STARTUP] Starting TeamChat on port 5000')
    socketio.run(app, host='0.0.0.0', port=5000, debug=False)
