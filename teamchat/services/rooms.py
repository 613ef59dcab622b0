# Chat room registry: rooms, participants, last-message pointer, counters

import logging
import math
from sqlalchemy import case, or_
from sqlalchemy.exc import IntegrityError
from teamchat.extensions import db
from teamchat.models import ChatRoom, Participant
from teamchat.functions.clock import utcnow, iso
from teamchat.services.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class ChatRoomRegistry:
    # Sole writer of ChatRoom and Participant rows.
    # Counter and pointer updates are single conditional UPDATE statements;
    # room creation relies on the unique project_id constraint.

    def __init__(self, allow_attachments=True, max_attachment_bytes=10 * 1024 * 1024,
                 attachment_kinds=('image', 'document', 'video', 'audio')):
        self.allow_attachments = allow_attachments
        self.max_attachment_bytes = max_attachment_bytes
        self.attachment_kinds = list(attachment_kinds)

    # --- lookups ---

    def get(self, room_id):
        room = db.session.get(ChatRoom, room_id)
        if room is None:
            raise NotFoundError('Chat not found')
        return room

    def find_by_project(self, project_id):
        return ChatRoom.query.filter_by(project_id=str(project_id)).first()

    def participant(self, room_id, user_id):
        return Participant.query.filter_by(room_id=room_id, user_id=str(user_id)).first()

    def is_participant(self, room_id, user_id):
        return Participant.query.filter_by(
            room_id=room_id, user_id=str(user_id), is_active=True
        ).first() is not None

    # --- lifecycle ---

    def get_or_create(self, project_id):
        project_id = str(project_id)
        room = self.find_by_project(project_id)
        if room is not None:
            return room

        room = ChatRoom(
            project_id=project_id,
            allow_attachments=self.allow_attachments,
            max_attachment_bytes=self.max_attachment_bytes,
            allowed_attachment_kinds=','.join(self.attachment_kinds),
        )
        db.session.add(room)
        try:
            db.session.commit()
        except IntegrityError:
            # Another caller created the room first
            db.session.rollback()
            room = self.find_by_project(project_id)
            if room is None:
                raise
            logger.debug('[CHAT ROOM] Lost creation race for project %s, using room %s', project_id, room.id)
            return room

        logger.info('[CHAT ROOM] Created room %s for project %s', room.id, project_id)
        return room

    def add_participant(self, room_id, user_id):
        user_id = str(user_id)
        existing = self.participant(room_id, user_id)
        if existing is not None:
            if not existing.is_active:
                self._reactivate(room_id, user_id)
            return

        db.session.add(Participant(room_id=room_id, user_id=user_id, joined_at=utcnow(), is_active=True))
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            # Inserted concurrently; make sure it ends up active
            self._reactivate(room_id, user_id)
            return
        logger.info('[CHAT ROOM] User %s joined room %s', user_id, room_id)

    def _reactivate(self, room_id, user_id):
        updated = Participant.query.filter_by(
            room_id=room_id, user_id=user_id, is_active=False
        ).update({
            Participant.is_active: True,
            Participant.joined_at: utcnow(),
            Participant.left_at: None,
        }, synchronize_session=False)
        db.session.commit()
        if updated:
            logger.info('[CHAT ROOM] User %s rejoined room %s', user_id, room_id)

    def remove_participant(self, room_id, user_id):
        updated = Participant.query.filter_by(
            room_id=room_id, user_id=str(user_id), is_active=True
        ).update({
            Participant.is_active: False,
            Participant.left_at: utcnow(),
        }, synchronize_session=False)
        db.session.commit()
        if updated:
            logger.info('[CHAT ROOM] User %s left room %s', user_id, room_id)

    def update_last_read(self, room_id, user_id, read_at=None):
        # No-op for users without a participant row
        Participant.query.filter_by(room_id=room_id, user_id=str(user_id)).update(
            {Participant.last_read_at: read_at or utcnow()}, synchronize_session=False
        )
        db.session.commit()

    # --- bookkeeping ---

    def record_new_message(self, room_id, message_id, message_at):
        # Never move the pointer back to an older message
        newer = or_(ChatRoom.last_message_at.is_(None), ChatRoom.last_message_at <= message_at)
        ChatRoom.query.filter_by(id=room_id).update({
            ChatRoom.message_count: ChatRoom.message_count + 1,
            ChatRoom.last_message_id: case((newer, message_id), else_=ChatRoom.last_message_id),
            ChatRoom.last_message_at: case((newer, message_at), else_=ChatRoom.last_message_at),
        }, synchronize_session=False)
        db.session.commit()

    def record_message_removed(self, room_id):
        # The last-message pointer is intentionally left as is
        ChatRoom.query.filter(
            ChatRoom.id == room_id, ChatRoom.message_count > 0
        ).update({ChatRoom.message_count: ChatRoom.message_count - 1}, synchronize_session=False)
        db.session.commit()

    def archive(self, room_id):
        self.get(room_id)
        ChatRoom.query.filter_by(id=room_id, is_archived=False).update({
            ChatRoom.is_archived: True,
            ChatRoom.archived_at: utcnow(),
        }, synchronize_session=False)
        db.session.commit()
        return self.get(room_id)

    def unarchive(self, room_id):
        self.get(room_id)
        ChatRoom.query.filter_by(id=room_id, is_archived=True).update({
            ChatRoom.is_archived: False,
            ChatRoom.archived_at: None,
        }, synchronize_session=False)
        db.session.commit()
        return self.get(room_id)

    def sync_participants_with_project(self, project_id, current_member_ids):
        # Reconcile participants against the authoritative project member list
        members = {str(m) for m in current_member_ids}
        room = self.get_or_create(project_id)

        for user_id in sorted(members):
            if not self.is_participant(room.id, user_id):
                self.add_participant(room.id, user_id)

        stale = [
            p.user_id for p in Participant.query.filter_by(room_id=room.id, is_active=True)
            if p.user_id not in members
        ]
        for user_id in stale:
            self.remove_participant(room.id, user_id)

        logger.info('[CHAT ROOM] Synced room %s with project %s: %d members, %d removed',
                    room.id, project_id, len(members), len(stale))
        return self.get(room.id)

    # --- queries ---

    def list_for_user(self, user_id, page=1, page_size=20):
        if page < 1 or page_size < 1:
            raise ValidationError('page and limit must be positive')
        query = ChatRoom.query.join(Participant, Participant.room_id == ChatRoom.id).filter(
            Participant.user_id == str(user_id),
            Participant.is_active.is_(True),
            ChatRoom.is_archived.is_(False),
        )
        total = query.count()
        rooms = query.order_by(
            ChatRoom.last_message_at.desc().nullslast(), ChatRoom.id.desc()
        ).offset((page - 1) * page_size).limit(page_size).all()
        return {
            'items': rooms,
            'total': total,
            'page': page,
            'pageSize': page_size,
            'pages': math.ceil(total / page_size) if total else 0,
            'hasNext': page * page_size < total,
            'hasPrev': page > 1,
        }

    def describe(self, room, profiles=None):
        # Room metadata read model
        profiles = profiles or {}
        return {
            'id': room.id,
            'projectId': room.project_id,
            'createdAt': iso(room.created_at),
            'participants': [
                {
                    'userId': p.user_id,
                    'user': profiles.get(p.user_id, {'id': p.user_id}),
                    'joinedAt': iso(p.joined_at),
                    'leftAt': iso(p.left_at),
                    'isActive': p.is_active,
                    'lastReadAt': iso(p.last_read_at),
                }
                for p in room.participants
            ],
            'activeParticipantsCount': sum(1 for p in room.participants if p.is_active),
            'lastMessageId': room.last_message_id,
            'lastMessageAt': iso(room.last_message_at),
            'messageCount': room.message_count,
            'isArchived': room.is_archived,
            'archivedAt': iso(room.archived_at),
            'settings': room.settings(),
        }
