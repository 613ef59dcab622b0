# Socket.IO handlers are registered on import

from teamchat.sockets import events  # noqa: F401
