# Content-related models: messages, attachments, reactions, read receipts

from teamchat.extensions import db
from teamchat.functions.clock import utcnow


class Message(db.Model):
    # Chat message. The integer id doubles as the insertion sequence that
    # breaks ties between equal created_at values.
    __tablename__ = 'message'
    __table_args__ = (
        db.Index('ix_message_room_created', 'room_id', 'created_at', 'id'),
    )

    id = db.Column(db.Integer, primary_key=True)
    room_id = db.Column(db.Integer, db.ForeignKey('chat_room.id'), nullable=False)
    sender_id = db.Column(db.String(64), nullable=False, index=True)
    text = db.Column(db.Text, nullable=False, default='')
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    edited = db.Column(db.Boolean, nullable=False, default=False)
    edited_at = db.Column(db.DateTime, nullable=True)

    # Soft delete marker
    deleted = db.Column(db.Boolean, nullable=False, default=False)
    deleted_at = db.Column(db.DateTime, nullable=True)
    deleted_by = db.Column(db.String(64), nullable=True)

    # Reply target (self-referential FK, always within the same room)
    reply_to_id = db.Column(db.Integer, db.ForeignKey('message.id'), nullable=True)

    # Relationships
    attachments = db.relationship(
        'Attachment', backref='message', lazy=True,
        order_by='Attachment.position', cascade='all, delete-orphan'
    )
    reactions = db.relationship(
        'MessageReaction', backref='message', lazy=True,
        order_by='MessageReaction.id', cascade='all, delete-orphan'
    )
    read_by = db.relationship(
        'ReadMessage', backref='message', lazy=True,
        order_by='ReadMessage.id', cascade='all, delete-orphan'
    )
    reply_to = db.relationship('Message', remote_side=[id], lazy=True)


class Attachment(db.Model):
    # File attached to a message; the file itself lives in external storage
    __tablename__ = 'message_attachment'

    id = db.Column(db.Integer, primary_key=True)
    message_id = db.Column(db.Integer, db.ForeignKey('message.id'), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)
    url = db.Column(db.String(500), nullable=False)
    filename = db.Column(db.String(200), nullable=False)
    kind = db.Column(db.String(20), nullable=False, default='other')  # image, document, video, audio, other
    size_bytes = db.Column(db.Integer, nullable=True)


class MessageReaction(db.Model):
    # At most one active reaction per user per message
    __tablename__ = 'message_reaction'
    __table_args__ = (
        db.UniqueConstraint('message_id', 'user_id', name='uq_reaction_message_user'),
    )

    id = db.Column(db.Integer, primary_key=True)
    message_id = db.Column(db.Integer, db.ForeignKey('message.id'), nullable=False, index=True)
    user_id = db.Column(db.String(64), nullable=False)
    emoji = db.Column(db.String(50), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)


class ReadMessage(db.Model):
    # Per-message read receipt
    __tablename__ = 'read_message'
    __table_args__ = (
        db.UniqueConstraint('message_id', 'user_id', name='uq_read_message_user'),
    )

    id = db.Column(db.Integer, primary_key=True)
    message_id = db.Column(db.Integer, db.ForeignKey('message.id'), nullable=False, index=True)
    user_id = db.Column(db.String(64), nullable=False)
    read_at = db.Column(db.DateTime, default=utcnow, nullable=False)
