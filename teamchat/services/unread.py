# Unread message counts, derived from message and participant state

from sqlalchemy import func, select
from teamchat.extensions import db
from teamchat.models import Message, ReadMessage


class UnreadTracker:
    # Read-side only; keeps no state of its own

    def __init__(self, registry):
        self.registry = registry

    def unread_count(self, room_id, user_id):
        # Non-deleted messages from other senders newer than the participant's
        # last read mark and without a read receipt. Served by the
        # (room_id, created_at, id) index on message.
        user_id = str(user_id)
        participant = self.registry.participant(room_id, user_id)
        last_read_at = participant.last_read_at if participant is not None else None

        receipt = select(ReadMessage.id).where(
            ReadMessage.message_id == Message.id,
            ReadMessage.user_id == user_id,
        ).exists()
        query = db.session.query(func.count(Message.id)).filter(
            Message.room_id == room_id,
            Message.deleted.is_(False),
            Message.sender_id != user_id,
            ~receipt,
        )
        if last_read_at is not None:
            query = query.filter(Message.created_at > last_read_at)
        return query.scalar() or 0
