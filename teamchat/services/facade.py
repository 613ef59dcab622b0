# Chat facade: the only entry point used by HTTP routes and socket handlers

import logging
from sqlalchemy.exc import SQLAlchemyError
from teamchat.extensions import db
from teamchat.services.broadcaster import (
    MESSAGE_SENT, MESSAGE_EDITED, MESSAGE_DELETED, REACTION_CHANGED
)
from teamchat.services.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class ChatFacade:
    # Orchestrates the chat stores for one request.
    # Mutating calls run in a fixed order: membership check, message store
    # write, registry bookkeeping, broadcast. Only the first two can fail the
    # call; bookkeeping and broadcast failures are logged.
    # The project owner always counts as a participant; their participant row
    # is created the first time they touch the room.

    def __init__(self, messages, rooms, unread, broadcaster, oracle, user_lookup,
                 default_page_size=50, max_page_size=100, sync_roles=('admin', 'service')):
        self.messages = messages
        self.rooms = rooms
        self.unread = unread
        self.broadcaster = broadcaster
        self.oracle = oracle
        self.user_lookup = user_lookup
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size
        self.sync_roles = tuple(sync_roles)

    # --- membership ---

    def _is_owner(self, project_id, user_id):
        owner = self.oracle.project_owner(project_id)
        return owner is not None and str(owner) == str(user_id)

    def _open_room(self, project_id, user_id, auto_join=False):
        # auto_join admits project members who have no participant row yet
        project_id = str(project_id)
        room = self.rooms.find_by_project(project_id)
        if room is not None and self.rooms.is_participant(room.id, user_id):
            return room

        entitled = self._is_owner(project_id, user_id) or (
            auto_join and self.oracle.is_project_member(project_id, user_id)
        )
        if not entitled:
            raise ForbiddenError('Access denied. You are not a participant of this project chat')

        if room is None:
            room = self.rooms.get_or_create(project_id)
        self.rooms.add_participant(room.id, user_id)
        return room

    def _message_room(self, message_id, user_id):
        message = self.messages.get(message_id)
        room = self.rooms.get(message.room_id)
        if not self.rooms.is_participant(room.id, user_id):
            if not self._is_owner(room.project_id, user_id):
                raise ForbiddenError('Access denied. You are not a participant of this project chat')
            self.rooms.add_participant(room.id, user_id)
        return message, room

    # --- best-effort steps ---

    def _bookkeeping(self, action, fn, *args):
        try:
            fn(*args)
        except SQLAlchemyError:
            db.session.rollback()
            logger.warning('[CHAT CONSISTENCY] %s failed for %s; room metadata is stale',
                           action, args, exc_info=True)

    def _publish(self, project_id, event_kind, payload):
        try:
            self.broadcaster.publish(project_id, event_kind, payload)
        except Exception:
            logger.warning('[BROADCAST] Failed to publish %s for project %s',
                           event_kind, project_id, exc_info=True)

    def _page_size(self, limit):
        if limit is None:
            return self.default_page_size
        return min(limit, self.max_page_size)

    # --- operations ---

    def get_messages(self, principal, project_id, page=1, limit=None, include_deleted=False):
        room = self._open_room(project_id, principal.id, auto_join=True)
        result = self.messages.paginate(room.id, page, self._page_size(limit), include_deleted)
        result['items'] = self.messages.views(result['items'], principal.id)
        result['roomId'] = room.id
        return result

    def send_message(self, principal, project_id, text=None, attachments=None, reply_to=None):
        room = self._open_room(project_id, principal.id, auto_join=True)
        if room.is_archived:
            raise ConflictError('This chat is archived')

        message = self.messages.send(room.id, principal.id, text, attachments, reply_to)
        self._bookkeeping('record new message', self.rooms.record_new_message,
                          room.id, message.id, message.created_at)

        view = self.messages.safe_view(message, principal.id)
        self._publish(room.project_id, MESSAGE_SENT, {
            'messageId': message.id, 'projectId': room.project_id, 'message': view
        })
        logger.info('[CHAT SEND] User %s sent message %s in project %s',
                    principal.id, message.id, room.project_id)
        return view

    def edit_message(self, principal, message_id, text):
        message, room = self._message_room(message_id, principal.id)
        message = self.messages.edit(message.id, principal.id, text)

        view = self.messages.safe_view(message, principal.id)
        self._publish(room.project_id, MESSAGE_EDITED, {
            'messageId': message.id, 'projectId': room.project_id, 'message': view
        })
        logger.info('[CHAT EDIT] User %s edited message %s', principal.id, message.id)
        return view

    def delete_message(self, principal, message_id):
        message, room = self._message_room(message_id, principal.id)
        if not self.messages.soft_delete(message.id, principal.id):
            # Already deleted; nothing to count or announce
            return {'messageId': message.id, 'deleted': True}

        self._bookkeeping('record message removed', self.rooms.record_message_removed, room.id)
        self._publish(room.project_id, MESSAGE_DELETED, {
            'messageId': message.id, 'projectId': room.project_id
        })
        logger.info('[CHAT DELETE] User %s deleted message %s', principal.id, message.id)
        return {'messageId': message.id, 'deleted': True}

    def toggle_reaction(self, principal, message_id, emoji):
        message, room = self._message_room(message_id, principal.id)
        action, reactions = self.messages.toggle_reaction(message.id, principal.id, emoji)

        payload = {
            'messageId': message.id,
            'projectId': room.project_id,
            'userId': principal.id,
            'emoji': emoji.strip(),
            'action': action,
            'reactions': reactions,
        }
        self._publish(room.project_id, REACTION_CHANGED, payload)
        return payload

    def mark_message_read(self, principal, message_id):
        message, _ = self._message_room(message_id, principal.id)
        return self.messages.mark_read(message.id, principal.id)

    def mark_all_read(self, principal, project_id):
        room = self._open_room(project_id, principal.id)
        marked = self.messages.mark_all_read(room.id, principal.id)
        self._bookkeeping('update last read', self.rooms.update_last_read, room.id, principal.id)
        return marked

    def unread_count(self, principal, project_id):
        room = self._open_room(project_id, principal.id)
        return self.unread.unread_count(room.id, principal.id)

    def room_info(self, principal, project_id):
        room = self._open_room(project_id, principal.id)
        return self._describe(room, principal.id)

    def list_rooms(self, principal, page=1, limit=None):
        result = self.rooms.list_for_user(principal.id, page, self._page_size(limit))
        result['items'] = [self._describe(room, principal.id) for room in result['items']]
        return result

    def open_room(self, principal, project_id):
        # Socket joins count as opening the chat
        return self._open_room(project_id, principal.id, auto_join=True)

    def archive_room(self, principal, project_id):
        room = self._owned_room(principal, project_id)
        room = self.rooms.archive(room.id)
        logger.info('[CHAT ROOM] Project %s chat archived by %s', project_id, principal.id)
        return self._describe(room, principal.id)

    def unarchive_room(self, principal, project_id):
        room = self._owned_room(principal, project_id)
        room = self.rooms.unarchive(room.id)
        logger.info('[CHAT ROOM] Project %s chat unarchived by %s', project_id, principal.id)
        return self._describe(room, principal.id)

    def sync_project_members(self, principal, project_id, owner_id, member_ids):
        # Push-based membership sync from the project service
        if principal.role not in self.sync_roles:
            raise ForbiddenError('Only the project service can sync chat members')
        if not isinstance(member_ids, list) or not all(isinstance(m, (str, int)) for m in member_ids):
            raise ValidationError('memberIds must be a list of user ids')
        if owner_id is not None and not isinstance(owner_id, (str, int)):
            raise ValidationError('ownerId must be a user id')

        members = [str(m) for m in member_ids]
        if owner_id is not None:
            members.append(str(owner_id))
        self.oracle.update(project_id, owner_id, member_ids)
        room = self.rooms.sync_participants_with_project(project_id, members)
        return self.rooms.describe(room, self.user_lookup.resolve(p.user_id for p in room.participants))

    # --- read models ---

    def _owned_room(self, principal, project_id):
        room = self.rooms.find_by_project(project_id)
        if room is None:
            raise NotFoundError('Chat not found')
        if not self._is_owner(project_id, principal.id):
            raise ForbiddenError('Only the project owner can change the chat state')
        return room

    def _describe(self, room, user_id):
        info = self.rooms.describe(room, self.user_lookup.resolve(p.user_id for p in room.participants))
        info['unreadCount'] = self.unread.unread_count(room.id, user_id)
        info['lastMessage'] = None
        if room.last_message_id is not None:
            try:
                last = self.messages.get(room.last_message_id)
            except NotFoundError:
                last = None
            if last is not None:
                info['lastMessage'] = self.messages.safe_view(last, user_id)
        return info
