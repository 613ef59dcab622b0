# Attachment file helpers

from werkzeug.utils import secure_filename
from config import IMAGE_EXTENSIONS, AUDIO_EXTENSIONS, VIDEO_EXTENSIONS, DOCUMENT_EXTENSIONS

ATTACHMENT_KINDS = ('image', 'document', 'video', 'audio', 'other')


def file_extension(filename):
    if not filename or '.' not in filename:
        return ''
    return filename.rsplit('.', 1)[1].lower()


def is_image_file(filename):
    return file_extension(filename) in IMAGE_EXTENSIONS


def is_audio_file(filename):
    return file_extension(filename) in AUDIO_EXTENSIONS


def is_video_file(filename):
    return file_extension(filename) in VIDEO_EXTENSIONS


def is_document_file(filename):
    return file_extension(filename) in DOCUMENT_EXTENSIONS


def guess_attachment_kind(filename):
    # Infer the attachment kind from the extension when the client omits it
    if is_image_file(filename):
        return 'image'
    if is_audio_file(filename):
        return 'audio'
    if is_video_file(filename):
        return 'video'
    if is_document_file(filename):
        return 'document'
    return 'other'


def clean_filename(filename):
    # Sanitize a client-supplied display filename; None if nothing usable remains
    if not filename or not isinstance(filename, str):
        return None
    cleaned = secure_filename(filename)
    return cleaned or None


def has_allowed_prefix(url, prefixes):
    return isinstance(url, str) and any(url.startswith(p) for p in prefixes)
