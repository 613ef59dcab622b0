from datetime import datetime
import pytest
from teamchat.extensions import db
from teamchat.services import ValidationError, ForbiddenError, NotFoundError, ConflictError
from conftest import U1, U2


@pytest.fixture
def room(chat):
    room = chat.open_room(U1, 'P1')
    chat.open_room(U2, 'P1')
    return room


@pytest.fixture
def store(chat):
    return chat.messages


def test_send_normalizes_text(store, room):
    message = store.send(room.id, 'u1', '\n\n  hello\n  world  \n\n')
    assert message.text == 'hello\n  world'
    assert message.edited is False
    assert message.deleted is False


def test_send_requires_text_or_attachment(store, room):
    with pytest.raises(ValidationError):
        store.send(room.id, 'u1', '   ')
    with pytest.raises(ValidationError):
        store.send(room.id, 'u1', None, [])


def test_send_text_length_limit(store, room):
    assert store.send(room.id, 'u1', 'x' * 5000).text == 'x' * 5000
    with pytest.raises(ValidationError):
        store.send(room.id, 'u1', 'x' * 5001)


def test_send_attachment_only_infers_kind(store, room):
    message = store.send(room.id, 'u1', attachments=[
        {'url': '/uploads/files/spec.pdf', 'filename': 'spec.pdf', 'sizeBytes': 2048},
        {'url': 'https://cdn.example.com/a.png', 'filename': 'a.png', 'kind': 'image'},
    ])
    assert message.text == ''
    assert [a.kind for a in message.attachments] == ['document', 'image']
    assert [a.position for a in message.attachments] == [0, 1]


def test_send_attachment_count_limit(store, room):
    attachments = [{'url': f'/uploads/f{i}.png', 'filename': f'f{i}.png'} for i in range(11)]
    with pytest.raises(ValidationError):
        store.send(room.id, 'u1', 'too many', attachments)
    assert store.send(room.id, 'u1', 'ok', attachments[:10]).attachments[9].filename == 'f9.png'


@pytest.mark.parametrize('attachment', [
    {'url': 'ftp://example.com/a.png', 'filename': 'a.png'},
    {'url': '/uploads/a.png'},
    {'url': '/uploads/a.bin', 'filename': 'a.bin'},
    {'url': '/uploads/a.png', 'filename': 'a.png', 'kind': 'hologram'},
    {'url': '/uploads/a.png', 'filename': 'a.png', 'sizeBytes': 10 * 1024 * 1024 + 1},
    {'url': '/uploads/a.png', 'filename': 'a.png', 'sizeBytes': -1},
    'not-an-object',
])
def test_send_rejects_attachments_violating_room_policy(store, room, attachment):
    with pytest.raises(ValidationError):
        store.send(room.id, 'u1', 'file', [attachment])


def test_send_rejects_attachments_when_room_disallows_them(store, room):
    room.allow_attachments = False
    db.session.commit()
    with pytest.raises(ValidationError):
        store.send(room.id, 'u1', 'file', [{'url': '/uploads/a.png', 'filename': 'a.png'}])


def test_reply_must_resolve_in_same_room(store, room, chat):
    original = store.send(room.id, 'u1', 'question')
    reply = store.send(room.id, 'u2', 'answer', reply_to=original.id)
    assert reply.reply_to_id == original.id
    assert store.send(room.id, 'u2', 'again', reply_to={'id': original.id}).reply_to_id == original.id

    with pytest.raises(NotFoundError):
        store.send(room.id, 'u2', 'lost', reply_to=999999)
    with pytest.raises(NotFoundError):
        store.send(room.id, 'u2', 'lost', reply_to='abc')

    other_room = chat.rooms.get_or_create('P2')
    with pytest.raises(NotFoundError):
        store.send(other_room.id, 'u1', 'cross room', reply_to=original.id)


def test_edit_sets_flags(store, room):
    message = store.send(room.id, 'u1', 'draft')
    edited = store.edit(message.id, 'u1', 'final')
    assert edited.text == 'final'
    assert edited.edited is True
    assert edited.edited_at is not None


def test_edit_is_sender_only(store, room):
    message = store.send(room.id, 'u1', 'mine')
    with pytest.raises(ForbiddenError):
        store.edit(message.id, 'u2', 'yours now')


def test_edit_requires_text(store, room):
    message = store.send(room.id, 'u1', 'mine')
    with pytest.raises(ValidationError):
        store.edit(message.id, 'u1', '  ')
    with pytest.raises(ValidationError):
        store.edit(message.id, 'u1', 'y' * 5001)


def test_edit_unknown_message(store, room):
    with pytest.raises(NotFoundError):
        store.edit(424242, 'u1', 'ghost')


def test_edit_then_delete_then_edit_conflicts(store, room):
    message = store.send(room.id, 'u1', 'hello')
    assert store.edit(message.id, 'u1', 'hello again').edited is True
    assert store.soft_delete(message.id, 'u1') is True
    with pytest.raises(ConflictError):
        store.edit(message.id, 'u1', 'too late')


def test_soft_delete_is_sender_only_and_idempotent(store, room):
    message = store.send(room.id, 'u1', 'oops')
    with pytest.raises(ForbiddenError):
        store.soft_delete(message.id, 'u2')
    assert store.soft_delete(message.id, 'u1') is True
    assert store.soft_delete(message.id, 'u1') is False
    deleted = store.get(message.id)
    assert deleted.deleted is True
    assert deleted.deleted_by == 'u1'
    assert deleted.text == 'oops'


def test_reaction_same_emoji_is_self_inverse(store, room):
    message = store.send(room.id, 'u1', 'react to me')
    before = store.reactions(message.id)
    action, reactions = store.toggle_reaction(message.id, 'u2', '👍')
    assert action == 'added'
    assert [(r['userId'], r['emoji']) for r in reactions] == [('u2', '👍')]
    action, reactions = store.toggle_reaction(message.id, 'u2', '👍')
    assert action == 'removed'
    assert reactions == before


def test_reaction_different_emoji_replaces(store, room):
    message = store.send(room.id, 'u1', 'react to me')
    store.toggle_reaction(message.id, 'u2', '👍')
    action, reactions = store.toggle_reaction(message.id, 'u2', '🎉')
    assert action == 'replaced'
    assert [(r['userId'], r['emoji']) for r in reactions] == [('u2', '🎉')]


def test_reactions_are_isolated_per_user(store, room):
    message = store.send(room.id, 'u1', 'team update')
    store.toggle_reaction(message.id, 'u1', '👍')
    _, reactions = store.toggle_reaction(message.id, 'u2', '👍')
    assert sorted(r['userId'] for r in reactions) == ['u1', 'u2']

    _, reactions = store.toggle_reaction(message.id, 'u1', '👍')
    assert [(r['userId'], r['emoji']) for r in reactions] == [('u2', '👍')]


def test_reaction_requires_emoji(store, room):
    message = store.send(room.id, 'u1', 'hi')
    with pytest.raises(ValidationError):
        store.toggle_reaction(message.id, 'u2', '')
    with pytest.raises(ValidationError):
        store.toggle_reaction(message.id, 'u2', None)


def test_reactions_allowed_on_deleted_message(store, room):
    message = store.send(room.id, 'u1', 'gone soon')
    store.soft_delete(message.id, 'u1')
    action, _ = store.toggle_reaction(message.id, 'u2', '😢')
    assert action == 'added'


def test_mark_read_is_idempotent(store, room):
    message = store.send(room.id, 'u1', 'read me')
    assert store.mark_read(message.id, 'u2') is True
    assert store.mark_read(message.id, 'u2') is False
    assert [r.user_id for r in store.get(message.id).read_by] == ['u2']


def test_mark_all_read_skips_own_deleted_and_already_read(store, room):
    first = store.send(room.id, 'u1', 'one')
    store.send(room.id, 'u1', 'two')
    gone = store.send(room.id, 'u1', 'three')
    store.send(room.id, 'u2', 'my own')
    store.soft_delete(gone.id, 'u1')
    store.mark_read(first.id, 'u2')

    assert store.mark_all_read(room.id, 'u2') == 1
    assert store.mark_all_read(room.id, 'u2') == 0


def test_paginate_newest_page_first_oldest_first_within(store, room):
    for i in range(5):
        store.send(room.id, 'u1', f'm{i}')
    page1 = store.paginate(room.id, 1, 2)
    assert [m.text for m in page1['items']] == ['m3', 'm4']
    assert page1['total'] == 5
    assert page1['pages'] == 3
    assert page1['hasNext'] is True and page1['hasPrev'] is False
    page3 = store.paginate(room.id, 3, 2)
    assert [m.text for m in page3['items']] == ['m0']
    assert page3['hasNext'] is False and page3['hasPrev'] is True


def test_paginate_rejects_bad_arguments(store, room):
    with pytest.raises(ValidationError):
        store.paginate(room.id, 0, 10)
    with pytest.raises(ValidationError):
        store.paginate(room.id, 1, 0)


@pytest.mark.parametrize('page_size', [1, 2, 3, 4, 7, 50])
def test_pages_concatenate_to_total_order(store, room, monkeypatch, page_size):
    # Identical timestamps force the insertion-sequence tie-break
    fixed = datetime(2026, 1, 1, 12, 0, 0)
    monkeypatch.setattr('teamchat.services.messages.utcnow', lambda: fixed)
    sent = [store.send(room.id, 'u1' if i % 2 else 'u2', f'm{i}').id for i in range(7)]
    store.soft_delete(sent[3], 'u1')
    expected = [mid for mid in sent if mid != sent[3]]

    first = store.paginate(room.id, 1, page_size)
    collected = []
    for page in range(first['pages'], 0, -1):
        collected.extend(m.id for m in store.paginate(room.id, page, page_size)['items'])
    assert collected == expected
    assert first['total'] == len(expected)


def test_safe_view_redacts_deleted_message(store, room):
    original = store.send(room.id, 'u1', 'secret', [{'url': '/uploads/s.png', 'filename': 's.png'}])
    reply = store.send(room.id, 'u2', 'what was that?', reply_to=original.id)
    store.toggle_reaction(original.id, 'u2', '👀')
    store.soft_delete(original.id, 'u1')

    visible = store.paginate(room.id, 1, 50)
    assert [m.id for m in visible['items']] == [reply.id]
    assert visible['total'] == 1

    everything = store.paginate(room.id, 1, 50, include_deleted=True)
    assert everything['total'] == 2
    views = store.views(everything['items'], 'u2')
    redacted, reply_view = views
    assert redacted['id'] == original.id
    assert redacted['senderId'] == 'u1'
    assert redacted['sender']['name'] == 'Alice'
    assert redacted['text'] == '[Message deleted]'
    assert redacted['attachments'] == []
    assert [(r['userId'], r['emoji']) for r in redacted['reactions']] == [('u2', '👀')]
    assert redacted['readByMe'] is False
    assert redacted['deleted'] is True
    assert redacted['createdAt'] is not None
    assert reply_view['replyTo'] == {'id': original.id, 'senderId': 'u1', 'snippet': '[Message deleted]'}


def test_safe_view_resolves_sender_profile(store, room):
    message = store.send(room.id, 'u1', 'hello\nsecond line')
    store.mark_read(message.id, 'u2')
    view = store.safe_view(store.get(message.id), 'u2')
    assert view['sender'] == {
        'id': 'u1', 'name': 'Alice', 'email': 'alice@example.com', 'avatarUrl': None
    }
    assert view['readByMe'] is True
    assert view['readBy'][0]['userId'] == 'u2'
    assert view['replyTo'] is None


def test_safe_view_unknown_sender_falls_back_to_id(store, room):
    message = store.send(room.id, 'ghost', 'boo')
    view = store.safe_view(message, 'u1')
    assert view['sender'] == {'id': 'ghost', 'name': None, 'email': None, 'avatarUrl': None}


def test_deleted_view_keeps_reactions_and_receipts(store, room):
    message = store.send(room.id, 'u1', 'short lived')
    store.soft_delete(message.id, 'u1')
    store.toggle_reaction(message.id, 'u2', '😢')
    store.mark_read(message.id, 'u2')

    view = store.safe_view(store.get(message.id), 'u2')
    assert view['text'] == '[Message deleted]'
    assert view['attachments'] == []
    assert [r['emoji'] for r in view['reactions']] == ['😢']
    assert [r['userId'] for r in view['readBy']] == ['u2']
    assert view['readByMe'] is True
    live = store.safe_view(store.send(room.id, 'u1', 'still here'), 'u2')
    assert set(view) - {'deletedAt'} == set(live)


@pytest.mark.parametrize('text', [123, ['hi'], {'text': 'hi'}, True])
def test_send_rejects_non_string_text(store, room, text):
    with pytest.raises(ValidationError):
        store.send(room.id, 'u1', text, [{'url': '/uploads/a.png', 'filename': 'a.png'}])


def test_edit_rejects_non_string_text(store, room):
    message = store.send(room.id, 'u1', 'mine')
    with pytest.raises(ValidationError):
        store.edit(message.id, 'u1', 42)
    assert store.get(message.id).text == 'mine'
