# Message store: send, edit, soft-delete, reactions, read receipts, pagination

import logging
import math
from sqlalchemy import insert, literal, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload
from teamchat.extensions import db
from teamchat.models import Message, Attachment, MessageReaction, ReadMessage
from teamchat.functions import (
    ATTACHMENT_KINDS, utcnow, iso, normalize_text, snippet,
    guess_attachment_kind, clean_filename, has_allowed_prefix
)
from teamchat.services.errors import ValidationError, ForbiddenError, NotFoundError, ConflictError

logger = logging.getLogger(__name__)

# Optimistic retries for operations racing on a unique constraint
MAX_RETRIES = 3


class MessageStore:
    # Sole writer of Message rows and their attachments, reactions and receipts.
    # Room settings are read through the registry; sender profiles for read
    # models come from the injected user lookup.

    def __init__(self, registry, user_lookup, max_text_length=5000, max_attachments=10,
                 max_emoji_length=50, url_prefixes=('/uploads/', 'https://', 'http://'),
                 deleted_placeholder='[Message deleted]'):
        self.registry = registry
        self.user_lookup = user_lookup
        self.max_text_length = max_text_length
        self.max_attachments = max_attachments
        self.max_emoji_length = max_emoji_length
        self.url_prefixes = tuple(url_prefixes)
        self.deleted_placeholder = deleted_placeholder

    def get(self, message_id):
        message = db.session.get(Message, message_id)
        if message is None:
            raise NotFoundError('Message not found')
        return message

    # --- writes ---

    def send(self, room_id, sender_id, text=None, attachments=None, reply_to=None):
        room = self.registry.get(room_id)

        text = normalize_text(self._require_str(text))
        if len(text) > self.max_text_length:
            raise ValidationError(f'Message cannot exceed {self.max_text_length} characters')
        cleaned = self._clean_attachments(room, attachments)
        if not text and not cleaned:
            raise ValidationError('Message must have text or attachments')

        reply_target = self._reply_target(room.id, reply_to) if reply_to is not None else None

        message = Message(
            room_id=room.id,
            sender_id=str(sender_id),
            text=text,
            created_at=utcnow(),
            reply_to_id=reply_target.id if reply_target else None,
        )
        for position, item in enumerate(cleaned):
            message.attachments.append(Attachment(position=position, **item))
        db.session.add(message)
        db.session.commit()
        return message

    def edit(self, message_id, editor_id, new_text):
        message = self.get(message_id)
        if message.sender_id != str(editor_id):
            raise ForbiddenError('You can only edit your own messages')
        if message.deleted:
            raise ConflictError('Cannot edit a deleted message')

        text = normalize_text(self._require_str(new_text))
        if not text:
            raise ValidationError('Message text is required')
        if len(text) > self.max_text_length:
            raise ValidationError(f'Message cannot exceed {self.max_text_length} characters')

        # Conditional update so an edit racing a delete cannot resurrect content
        updated = Message.query.filter_by(id=message.id, deleted=False).update({
            Message.text: text,
            Message.edited: True,
            Message.edited_at: utcnow(),
        }, synchronize_session=False)
        db.session.commit()
        if not updated:
            raise ConflictError('Cannot edit a deleted message')
        return self.get(message.id)

    def soft_delete(self, message_id, deleter_id):
        # Returns True when this call performed the deletion
        message = self.get(message_id)
        if message.sender_id != str(deleter_id):
            raise ForbiddenError('You can only delete your own messages')
        if message.deleted:
            return False

        updated = Message.query.filter_by(id=message.id, deleted=False).update({
            Message.deleted: True,
            Message.deleted_at: utcnow(),
            Message.deleted_by: str(deleter_id),
        }, synchronize_session=False)
        db.session.commit()
        return bool(updated)

    def toggle_reaction(self, message_id, user_id, emoji):
        # Add, remove (same emoji) or replace (different emoji) the user's reaction
        if not isinstance(emoji, str) or not emoji.strip():
            raise ValidationError('Emoji is required')
        emoji = emoji.strip()
        if len(emoji) > self.max_emoji_length:
            raise ValidationError('Emoji is too long')
        message = self.get(message_id)
        user_id = str(user_id)

        for _ in range(MAX_RETRIES):
            try:
                action = self._apply_reaction(message.id, user_id, emoji)
            except IntegrityError:
                action = None
            if action is None:
                db.session.rollback()
                continue
            db.session.commit()
            return action, self.reactions(message.id)

        raise ConflictError('Reaction changed concurrently, please retry')

    def _apply_reaction(self, message_id, user_id, emoji):
        existing = MessageReaction.query.filter_by(message_id=message_id, user_id=user_id).first()
        if existing is None:
            db.session.add(MessageReaction(
                message_id=message_id, user_id=user_id, emoji=emoji, created_at=utcnow()
            ))
            db.session.flush()
            return 'added'

        # Compare-and-swap on the emoji we just read
        current = MessageReaction.query.filter_by(id=existing.id, emoji=existing.emoji)
        if existing.emoji == emoji:
            return 'removed' if current.delete(synchronize_session=False) else None
        changed = current.update({
            MessageReaction.emoji: emoji,
            MessageReaction.created_at: utcnow(),
        }, synchronize_session=False)
        return 'replaced' if changed else None

    def mark_read(self, message_id, user_id):
        # Returns True when a new receipt was written
        message = self.get(message_id)
        user_id = str(user_id)
        if ReadMessage.query.filter_by(message_id=message.id, user_id=user_id).first():
            return False
        db.session.add(ReadMessage(message_id=message.id, user_id=user_id, read_at=utcnow()))
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            return False
        return True

    def mark_all_read(self, room_id, user_id):
        # Insert receipts for every unread, non-deleted message of other senders
        user_id = str(user_id)
        for _ in range(MAX_RETRIES):
            already_read = select(ReadMessage.id).where(
                ReadMessage.message_id == Message.id,
                ReadMessage.user_id == user_id,
            ).exists()
            unread = select(
                Message.id,
                literal(user_id, type_=db.String),
                literal(utcnow(), type_=db.DateTime),
            ).where(
                Message.room_id == room_id,
                Message.deleted.is_(False),
                Message.sender_id != user_id,
                ~already_read,
            )
            stmt = insert(ReadMessage).from_select(['message_id', 'user_id', 'read_at'], unread)
            try:
                result = db.session.execute(stmt)
                db.session.commit()
            except IntegrityError:
                # A concurrent mark_read inserted one of the rows
                db.session.rollback()
                continue
            return max(result.rowcount or 0, 0)

        raise ConflictError('Read receipts changed concurrently, please retry')

    # --- reads ---

    def paginate(self, room_id, page=1, page_size=50, include_deleted=False):
        # Page 1 holds the newest messages; items are returned oldest first
        if page < 1 or page_size < 1:
            raise ValidationError('page and limit must be positive')

        query = Message.query.filter(Message.room_id == room_id)
        if not include_deleted:
            query = query.filter(Message.deleted.is_(False))
        total = query.count()

        items = query.options(
            selectinload(Message.attachments),
            selectinload(Message.reactions),
            selectinload(Message.read_by),
            selectinload(Message.reply_to),
        ).order_by(
            Message.created_at.desc(), Message.id.desc()
        ).offset((page - 1) * page_size).limit(page_size).all()
        items.reverse()

        return {
            'items': items,
            'total': total,
            'page': page,
            'pageSize': page_size,
            'pages': math.ceil(total / page_size) if total else 0,
            'hasNext': page * page_size < total,
            'hasPrev': page > 1,
        }

    def reactions(self, message_id):
        rows = MessageReaction.query.filter_by(message_id=message_id).order_by(MessageReaction.id).all()
        return [self._reaction_view(r) for r in rows]

    def safe_view(self, message, requesting_user_id, profiles=None):
        # Read model; deleted messages keep their shape but lose their content
        if profiles is None:
            profiles = self.user_lookup.resolve(self._referenced_users([message]))
        sender_id = message.sender_id
        requesting_user_id = str(requesting_user_id) if requesting_user_id is not None else None
        view = {
            'id': message.id,
            'roomId': message.room_id,
            'senderId': sender_id,
            'sender': profiles.get(sender_id, {'id': sender_id}),
            'createdAt': iso(message.created_at),
            'edited': message.edited,
            'editedAt': iso(message.edited_at),
            'deleted': message.deleted,
            'replyTo': self._reply_preview(message),
            'reactions': [self._reaction_view(r) for r in message.reactions],
            'readBy': [{'userId': r.user_id, 'readAt': iso(r.read_at)} for r in message.read_by],
            'readByMe': any(r.user_id == requesting_user_id for r in message.read_by),
        }

        if message.deleted:
            # Content is redacted; reactions and receipts stay visible
            view.update({
                'text': self.deleted_placeholder,
                'attachments': [],
                'deletedAt': iso(message.deleted_at),
            })
            return view

        view.update({
            'text': message.text,
            'attachments': [
                {
                    'url': a.url,
                    'filename': a.filename,
                    'kind': a.kind,
                    'sizeBytes': a.size_bytes,
                }
                for a in message.attachments
            ],
        })
        return view

    def views(self, messages, requesting_user_id):
        # Resolve every referenced user in one lookup
        profiles = self.user_lookup.resolve(self._referenced_users(messages))
        return [self.safe_view(m, requesting_user_id, profiles) for m in messages]

    # --- helpers ---

    def _require_str(self, text):
        if text is not None and not isinstance(text, str):
            raise ValidationError('text must be a string')
        return text

    def _referenced_users(self, messages):
        ids = set()
        for m in messages:
            ids.add(m.sender_id)
            if m.reply_to is not None:
                ids.add(m.reply_to.sender_id)
        return ids

    def _reply_preview(self, message):
        target = message.reply_to
        if target is None:
            return None
        return {
            'id': target.id,
            'senderId': target.sender_id,
            'snippet': self.deleted_placeholder if target.deleted else snippet(target.text, 200),
        }

    def _reaction_view(self, reaction):
        return {
            'userId': reaction.user_id,
            'emoji': reaction.emoji,
            'createdAt': iso(reaction.created_at),
        }

    def _reply_target(self, room_id, reply_to):
        # Accepts an id or a {'id': ...} object
        if isinstance(reply_to, dict):
            reply_to = reply_to.get('id')
        try:
            target_id = int(reply_to)
        except (TypeError, ValueError):
            raise NotFoundError('Reply target not found')
        target = db.session.get(Message, target_id)
        if target is None or target.room_id != room_id:
            raise NotFoundError('Reply target not found')
        return target

    def _clean_attachments(self, room, attachments):
        if not attachments:
            return []
        if not isinstance(attachments, list):
            raise ValidationError('attachments must be a list')
        if len(attachments) > self.max_attachments:
            raise ValidationError(f'Maximum {self.max_attachments} attachments allowed per message')
        if not room.allow_attachments:
            raise ValidationError('Attachments are disabled in this chat')

        allowed_kinds = room.attachment_kinds
        cleaned = []
        for number, item in enumerate(attachments, start=1):
            if not isinstance(item, dict):
                raise ValidationError(f'Attachment {number} must be an object')

            url = item.get('url')
            if not has_allowed_prefix(url, self.url_prefixes) or len(url) > 500:
                raise ValidationError(f'Attachment {number} has an invalid url')

            filename = clean_filename(item.get('filename'))
            if not filename:
                raise ValidationError(f'Attachment {number} requires a filename')

            kind = item.get('kind') or guess_attachment_kind(filename)
            if kind not in ATTACHMENT_KINDS:
                raise ValidationError(f'Attachment {number} has an unknown kind: {kind}')
            if kind not in allowed_kinds:
                raise ValidationError(f'{kind} attachments are not allowed in this chat')

            size = item.get('sizeBytes')
            if size is not None:
                if isinstance(size, bool) or not isinstance(size, int) or size < 0:
                    raise ValidationError(f'Attachment {number} has an invalid size')
                if size > room.max_attachment_bytes:
                    raise ValidationError(
                        f'Attachment {number} exceeds the {room.max_attachment_bytes} byte limit'
                    )

            cleaned.append({
                'url': url,
                'filename': filename[:200],
                'kind': kind,
                'size_bytes': size,
            })
        return cleaned
