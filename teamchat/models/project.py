# Mirror of project membership pushed by the project service

from teamchat.functions.clock import utcnow
from teamchat.extensions import db


class ProjectMembership(db.Model):
    # One row per (project, user); role is 'owner' or 'member'
    __tablename__ = 'project_membership'
    __table_args__ = (
        db.UniqueConstraint('project_id', 'user_id', name='uq_project_membership'),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.String(64), nullable=False, index=True)
    user_id = db.Column(db.String(64), nullable=False)
    role = db.Column(db.String(20), nullable=False, default='member')
    synced_at = db.Column(db.DateTime, default=utcnow)
