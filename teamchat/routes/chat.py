# Chat API routes (messages, reactions, read state, room info)

from flask import Blueprint, request, jsonify, current_app
from flask_login import login_required, current_user
from teamchat.services.errors import ValidationError

chat_bp = Blueprint('chat', __name__, url_prefix='/chat')


# Helper functions
def get_chat():
    # ChatFacade built by the app factory
    return current_app.extensions['teamchat']


def json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


def page_args():
    page = request.args.get('page', 1, type=int)
    limit = request.args.get('limit', current_app.config['CHAT_DEFAULT_PAGE_SIZE'], type=int)
    return page, limit


def pagination(result):
    return {
        'total': result['total'],
        'page': result['page'],
        'pageSize': result['pageSize'],
        'pages': result['pages'],
        'hasNext': result['hasNext'],
        'hasPrev': result['hasPrev'],
    }


# --- ROOMS ---

@chat_bp.route('/rooms', methods=['GET'])
@login_required
def list_rooms():
    # Rooms the caller actively participates in, most recent activity first
    page, limit = page_args()
    result = get_chat().list_rooms(current_user, page, limit)
    return jsonify({'success': True, 'rooms': result['items'], 'pagination': pagination(result)})


@chat_bp.route('/rooms/<project_id>', methods=['GET'])
@login_required
def get_messages(project_id):
    # Paginated messages, page 1 = newest
    page, limit = page_args()
    include_deleted = request.args.get('includeDeleted', 'false').lower() in ('1', 'true', 'yes')
    result = get_chat().get_messages(current_user, project_id, page, limit, include_deleted)
    return jsonify({
        'success': True,
        'roomId': result['roomId'],
        'messages': result['items'],
        'pagination': pagination(result)
    })


@chat_bp.route('/rooms/<project_id>/messages', methods=['POST'])
@login_required
def send_message(project_id):
    data = json_body()
    message = get_chat().send_message(
        current_user, project_id,
        text=data.get('text'),
        attachments=data.get('attachments'),
        reply_to=data.get('replyTo')
    )
    return jsonify({'success': True, 'message': message}), 201


@chat_bp.route('/rooms/<project_id>/unread', methods=['GET'])
@login_required
def unread_count(project_id):
    count = get_chat().unread_count(current_user, project_id)
    return jsonify({'success': True, 'unreadCount': count})


@chat_bp.route('/rooms/<project_id>/read', methods=['POST'])
@login_required
def mark_all_read(project_id):
    marked = get_chat().mark_all_read(current_user, project_id)
    return jsonify({'success': True, 'marked': marked})


@chat_bp.route('/rooms/<project_id>/info', methods=['GET'])
@login_required
def room_info(project_id):
    return jsonify({'success': True, 'chat': get_chat().room_info(current_user, project_id)})


@chat_bp.route('/rooms/<project_id>/archive', methods=['POST'])
@login_required
def archive_room(project_id):
    return jsonify({'success': True, 'chat': get_chat().archive_room(current_user, project_id)})


@chat_bp.route('/rooms/<project_id>/unarchive', methods=['POST'])
@login_required
def unarchive_room(project_id):
    return jsonify({'success': True, 'chat': get_chat().unarchive_room(current_user, project_id)})


@chat_bp.route('/rooms/<project_id>/members', methods=['PUT'])
@login_required
def sync_members(project_id):
    # Called by the project service whenever membership changes
    data = json_body()
    chat = get_chat().sync_project_members(
        current_user, project_id, data.get('ownerId'), data.get('memberIds')
    )
    return jsonify({'success': True, 'chat': chat})


# --- MESSAGE ACTIONS ---

@chat_bp.route('/messages/<int:message_id>', methods=['PUT'])
@login_required
def edit_message(message_id):
    data = json_body()
    message = get_chat().edit_message(current_user, message_id, data.get('text'))
    return jsonify({'success': True, 'message': message})


@chat_bp.route('/messages/<int:message_id>', methods=['DELETE'])
@login_required
def delete_message(message_id):
    get_chat().delete_message(current_user, message_id)
    return jsonify({'success': True, 'messageId': message_id})


@chat_bp.route('/messages/<int:message_id>/reactions', methods=['POST'])
@login_required
def toggle_reaction(message_id):
    # Add, replace or remove the caller's reaction
    data = json_body()
    result = get_chat().toggle_reaction(current_user, message_id, data.get('emoji'))
    return jsonify({'success': True, 'action': result['action'], 'reactions': result['reactions']})


@chat_bp.route('/messages/<int:message_id>/read', methods=['POST'])
@login_required
def mark_message_read(message_id):
    marked = get_chat().mark_message_read(current_user, message_id)
    return jsonify({'success': True, 'marked': marked})
