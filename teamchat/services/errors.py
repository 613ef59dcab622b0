# Chat error taxonomy. Each error maps to one HTTP status.


class ChatError(Exception):
    status_code = 400

    def __init__(self, message):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {'success': False, 'error': self.message}


class ValidationError(ChatError):
    # Malformed input: size/count/required-field violations
    status_code = 400


class ForbiddenError(ChatError):
    # Caller lacks membership or ownership of the resource
    status_code = 403


class NotFoundError(ChatError):
    # Room, message or reply target absent
    status_code = 404


class ConflictError(ChatError):
    # Operation incompatible with the current state
    status_code = 409
