# Functions package

from teamchat.functions.clock import utcnow, iso
from teamchat.functions.text import normalize_text, snippet
from teamchat.functions.files import (
    ATTACHMENT_KINDS, guess_attachment_kind, clean_filename, has_allowed_prefix,
    is_image_file, is_audio_file, is_video_file, is_document_file
)

__all__ = [
    'utcnow', 'iso',
    'normalize_text', 'snippet',
    'ATTACHMENT_KINDS', 'guess_attachment_kind', 'clean_filename', 'has_allowed_prefix',
    'is_image_file', 'is_audio_file', 'is_video_file', 'is_document_file'
]
