# Services package

from teamchat.services.errors import (
    ChatError, ValidationError, ForbiddenError, NotFoundError, ConflictError
)
from teamchat.services.collaborators import (
    MembershipOracle, UserLookup, SqlMembershipOracle, SqlUserLookup
)
from teamchat.services.broadcaster import (
    RealtimeBroadcaster, SocketIOBroadcaster, NullBroadcaster, EVENT_KINDS, channel_name
)
from teamchat.services.rooms import ChatRoomRegistry
from teamchat.services.messages import MessageStore
from teamchat.services.unread import UnreadTracker
from teamchat.services.facade import ChatFacade

__all__ = [
    'ChatError', 'ValidationError', 'ForbiddenError', 'NotFoundError', 'ConflictError',
    'MembershipOracle', 'UserLookup', 'SqlMembershipOracle', 'SqlUserLookup',
    'RealtimeBroadcaster', 'SocketIOBroadcaster', 'NullBroadcaster', 'EVENT_KINDS', 'channel_name',
    'ChatRoomRegistry', 'MessageStore', 'UnreadTracker', 'ChatFacade'
]
