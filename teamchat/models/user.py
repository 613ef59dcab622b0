# User-related models

from flask_login import UserMixin
from teamchat.extensions import db


class User(db.Model):
    # Read-only user directory used to decorate message views.
    # Rows are written by the account service, never by chat code.
    id = db.Column(db.String(64), primary_key=True)
    name = db.Column(db.String(150), nullable=True)
    email = db.Column(db.String(254), nullable=True)
    avatar_url = db.Column(db.String(300), nullable=True)


class Principal(UserMixin):
    # Authenticated caller as handed over by the gateway (not persisted)

    def __init__(self, user_id, role='member'):
        self.id = str(user_id)
        self.role = role or 'member'

    def __repr__(self):
        return f'<Principal {self.id} ({self.role})>'
