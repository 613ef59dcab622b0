# Models package
# Import all models here for convenience

from teamchat.models.user import User, Principal
from teamchat.models.project import ProjectMembership
from teamchat.models.chat import ChatRoom, Participant
from teamchat.models.content import Message, Attachment, MessageReaction, ReadMessage

__all__ = [
    'User', 'Principal',
    'ProjectMembership',
    'ChatRoom', 'Participant',
    'Message', 'Attachment', 'MessageReaction', 'ReadMessage'
]
