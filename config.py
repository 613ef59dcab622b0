# Configuration file for the TeamChat service

import json
import os

# Try to load configuration from `config.json` located next to this file
# (or the path in TEAMCHAT_CONFIG). If the file is missing or a key is
# absent, fall back to the defaults below.
_BASE_DIR = os.path.dirname(os.path.abspath(__file__))
_JSON_PATH = os.environ.get('TEAMCHAT_CONFIG', os.path.join(_BASE_DIR, 'config.json'))

# Defaults
_defaults = {
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///teamchat.db',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'SECRET_KEY': 'change_me_teamchat',
    'SOCKETIO_ASYNC_MODE': 'eventlet',
    'SOCKETIO_MESSAGE_QUEUE': None,
    'LOG_LEVEL': 'INFO',

    # Principal headers set by the authenticating gateway
    'AUTH_USER_HEADER': 'X-User-Id',
    'AUTH_ROLE_HEADER': 'X-User-Role',
    'MEMBERSHIP_SYNC_ROLES': ['admin', 'service'],

    # Message limits
    'CHAT_MAX_TEXT_LENGTH': 5000,
    'CHAT_MAX_ATTACHMENTS': 10,
    'CHAT_MAX_EMOJI_LENGTH': 50,
    'CHAT_DEFAULT_PAGE_SIZE': 50,
    'CHAT_MAX_PAGE_SIZE': 100,
    'CHAT_DELETED_PLACEHOLDER': '[Message deleted]',

    # Room settings applied to newly created rooms
    'CHAT_DEFAULT_ALLOW_ATTACHMENTS': True,
    'CHAT_DEFAULT_MAX_ATTACHMENT_BYTES': 10 * 1024 * 1024,
    'CHAT_DEFAULT_ATTACHMENT_KINDS': ['image', 'document', 'video', 'audio'],

    # Attachments are uploaded elsewhere; only these URL shapes are accepted
    'ATTACHMENT_URL_PREFIXES': ['/uploads/', 'https://', 'http://'],
    'IMAGE_EXTENSIONS': ['png', 'jpg', 'jpeg', 'gif', 'webp', 'svg'],
    'AUDIO_EXTENSIONS': ['mp3', 'ogg', 'flac', 'wav', 'm4a'],
    'VIDEO_EXTENSIONS': ['mp4', 'webm', 'mov', 'avi', 'mkv'],
    'DOCUMENT_EXTENSIONS': [
        'pdf', 'txt', 'md', 'doc', 'docx', 'xls', 'xlsx', 'ppt', 'pptx',
        'csv', 'json', 'xml', 'odt', 'rtf'
    ],
}

_cfg = {}
try:
    with open(_JSON_PATH, 'r', encoding='utf-8') as f:
        _cfg = json.load(f) or {}
except FileNotFoundError:
    # No config.json present, we'll use defaults
    _cfg = {}
except ValueError as e:
    raise RuntimeError(f'Invalid configuration file {_JSON_PATH}: {e}') from e


# Helper to get value from JSON or defaults
def _get(key):
    return _cfg.get(key, _defaults.get(key))


# Database
SQLALCHEMY_DATABASE_URI = _get('SQLALCHEMY_DATABASE_URI')
SQLALCHEMY_TRACK_MODIFICATIONS = _get('SQLALCHEMY_TRACK_MODIFICATIONS')

# Security
SECRET_KEY = _get('SECRET_KEY')
AUTH_USER_HEADER = _get('AUTH_USER_HEADER')
AUTH_ROLE_HEADER = _get('AUTH_ROLE_HEADER')
MEMBERSHIP_SYNC_ROLES = list(_get('MEMBERSHIP_SYNC_ROLES') or [])

# Realtime
SOCKETIO_ASYNC_MODE = _get('SOCKETIO_ASYNC_MODE')
SOCKETIO_MESSAGE_QUEUE = _get('SOCKETIO_MESSAGE_QUEUE')

# Logging
LOG_LEVEL = _get('LOG_LEVEL')

# Chat limits
CHAT_MAX_TEXT_LENGTH = int(_get('CHAT_MAX_TEXT_LENGTH'))
CHAT_MAX_ATTACHMENTS = int(_get('CHAT_MAX_ATTACHMENTS'))
CHAT_MAX_EMOJI_LENGTH = int(_get('CHAT_MAX_EMOJI_LENGTH'))
CHAT_DEFAULT_PAGE_SIZE = int(_get('CHAT_DEFAULT_PAGE_SIZE'))
CHAT_MAX_PAGE_SIZE = int(_get('CHAT_MAX_PAGE_SIZE'))
CHAT_DELETED_PLACEHOLDER = _get('CHAT_DELETED_PLACEHOLDER')

# Room defaults
CHAT_DEFAULT_ALLOW_ATTACHMENTS = bool(_get('CHAT_DEFAULT_ALLOW_ATTACHMENTS'))
CHAT_DEFAULT_MAX_ATTACHMENT_BYTES = int(_get('CHAT_DEFAULT_MAX_ATTACHMENT_BYTES'))
CHAT_DEFAULT_ATTACHMENT_KINDS = list(_get('CHAT_DEFAULT_ATTACHMENT_KINDS') or [])

# Attachments (store extension groups as sets for quick membership checks)
ATTACHMENT_URL_PREFIXES = tuple(_get('ATTACHMENT_URL_PREFIXES') or [])
IMAGE_EXTENSIONS = set(_get('IMAGE_EXTENSIONS') or [])
AUDIO_EXTENSIONS = set(_get('AUDIO_EXTENSIONS') or [])
VIDEO_EXTENSIONS = set(_get('VIDEO_EXTENSIONS') or [])
DOCUMENT_EXTENSIONS = set(_get('DOCUMENT_EXTENSIONS') or [])
