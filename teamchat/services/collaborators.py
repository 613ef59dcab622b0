# External collaborators consumed by the chat services.
# The base classes define the interface; the Sql* classes answer from
# mirror tables that the owning services keep up to date.

from teamchat.extensions import db
from teamchat.models import ProjectMembership, User
from teamchat.functions.clock import utcnow


class MembershipOracle:
    # Answers project-level membership questions

    def project_owner(self, project_id):
        raise NotImplementedError

    def is_project_member(self, project_id, user_id):
        raise NotImplementedError

    def update(self, project_id, owner_id, member_ids):
        raise NotImplementedError


class UserLookup:
    # Resolves user ids to display profiles for read models

    def resolve(self, user_ids):
        raise NotImplementedError


class SqlMembershipOracle(MembershipOracle):

    def project_owner(self, project_id):
        row = ProjectMembership.query.filter_by(project_id=str(project_id), role='owner').first()
        return row.user_id if row else None

    def is_project_member(self, project_id, user_id):
        # The owner counts as a member
        row = ProjectMembership.query.filter_by(
            project_id=str(project_id), user_id=str(user_id)
        ).first()
        return row is not None

    def update(self, project_id, owner_id, member_ids):
        # Replace the mirrored membership of one project
        project_id = str(project_id)
        wanted = {str(m): 'member' for m in member_ids}
        if owner_id is not None:
            wanted[str(owner_id)] = 'owner'

        existing = {row.user_id: row for row in ProjectMembership.query.filter_by(project_id=project_id)}
        for user_id, row in existing.items():
            if user_id not in wanted:
                db.session.delete(row)
            else:
                row.role = wanted[user_id]
                row.synced_at = utcnow()
        for user_id, role in wanted.items():
            if user_id not in existing:
                db.session.add(ProjectMembership(project_id=project_id, user_id=user_id, role=role))
        db.session.commit()


class SqlUserLookup(UserLookup):

    def resolve(self, user_ids):
        ids = {str(u) for u in user_ids if u is not None}
        profiles = {uid: {'id': uid, 'name': None, 'email': None, 'avatarUrl': None} for uid in ids}
        if not ids:
            return profiles
        for user in User.query.filter(User.id.in_(ids)).all():
            profiles[user.id] = {
                'id': user.id,
                'name': user.name,
                'email': user.email,
                'avatarUrl': user.avatar_url,
            }
        return profiles
