# Chat-related models: rooms and participants

from teamchat.extensions import db
from teamchat.functions.clock import utcnow


class ChatRoom(db.Model):
    # One chat room per project; never hard-deleted, archived instead
    __tablename__ = 'chat_room'

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.String(64), nullable=False, unique=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    # Denormalized preview pointer and counter (see ChatRoomRegistry)
    last_message_id = db.Column(db.Integer, nullable=True)
    last_message_at = db.Column(db.DateTime, nullable=True, index=True)
    message_count = db.Column(db.Integer, nullable=False, default=0)

    is_archived = db.Column(db.Boolean, nullable=False, default=False, index=True)
    archived_at = db.Column(db.DateTime, nullable=True)

    # Attachment policy enforced by MessageStore at write time
    allow_attachments = db.Column(db.Boolean, nullable=False, default=True)
    max_attachment_bytes = db.Column(db.Integer, nullable=False, default=10 * 1024 * 1024)
    allowed_attachment_kinds = db.Column(db.Text, nullable=False, default='')  # comma-separated
    mute_notifications = db.Column(db.Boolean, nullable=False, default=False)

    # Relationships
    participants = db.relationship(
        'Participant', backref='room', lazy=True,
        order_by='Participant.id', cascade='all, delete-orphan'
    )

    @property
    def attachment_kinds(self):
        return [k.strip() for k in (self.allowed_attachment_kinds or '').split(',') if k.strip()]

    def settings(self):
        return {
            'allowAttachments': self.allow_attachments,
            'maxAttachmentBytes': self.max_attachment_bytes,
            'allowedAttachmentKinds': self.attachment_kinds,
            'muteNotifications': self.mute_notifications,
        }


class Participant(db.Model):
    # Room participation; rows are deactivated, never removed
    __tablename__ = 'chat_participant'
    __table_args__ = (
        db.UniqueConstraint('room_id', 'user_id', name='uq_participant_room_user'),
        db.Index('ix_participant_user_active', 'user_id', 'is_active'),
    )

    id = db.Column(db.Integer, primary_key=True)
    room_id = db.Column(db.Integer, db.ForeignKey('chat_room.id'), nullable=False)
    user_id = db.Column(db.String(64), nullable=False)
    joined_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    left_at = db.Column(db.DateTime, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    last_read_at = db.Column(db.DateTime, nullable=True)
