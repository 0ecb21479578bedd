from datetime import datetime
from flask_sqlalchemy import SQLAlchemy
from flask_login import UserMixin

from shared.roles import PlatformRole, HackathonRoleType

db = SQLAlchemy()


def _isoformat(value):
    return value.isoformat() if value else None


class Organization(db.Model):
    __tablename__ = 'organizations'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    domain = db.Column(db.String(200), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    users = db.relationship('User', back_populates='organization')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
        }


class User(UserMixin, db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(200), unique=True, nullable=False, index=True)
    role = db.Column(db.String(30), nullable=False, default=PlatformRole.USER.value)
    expertise = db.Column(db.String(200), nullable=True)
    organization_id = db.Column(db.Integer, db.ForeignKey('organizations.id'), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    organization = db.relationship('Organization', back_populates='users')

    def get_id(self):
        """Return the user ID for Flask-Login session management."""
        return str(self.id)

    @property
    def platform_role(self) -> PlatformRole:
        try:
            return PlatformRole(self.role)
        except ValueError:
            return PlatformRole.USER

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
        }


class Hackathon(db.Model):
    __tablename__ = 'hackathons'

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=False, default='')
    organization_id = db.Column(db.Integer, db.ForeignKey('organizations.id'), nullable=False, index=True)
    created_by_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    minimum_team_size = db.Column(db.Integer, nullable=False, default=1)
    maximum_team_size = db.Column(db.Integer, nullable=False, default=5)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    organization = db.relationship('Organization')
    created_by = db.relationship('User', foreign_keys=[created_by_id])
    rounds = db.relationship('Round', back_populates='hackathon',
                             cascade='all, delete-orphan', order_by='Round.position')
    teams = db.relationship('Team', back_populates='hackathon')

    __table_args__ = (
        db.CheckConstraint('minimum_team_size >= 1', name='minimum_team_size_positive'),
        db.CheckConstraint('minimum_team_size <= maximum_team_size', name='team_size_bounds'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'organization': self.organization.to_dict() if self.organization else None,
            'created_by': self.created_by.to_dict() if self.created_by else None,
            'is_active': self.is_active,
            'minimum_team_size': self.minimum_team_size,
            'maximum_team_size': self.maximum_team_size,
            'rounds': [r.to_dict() for r in self.rounds],
            'team_count': len(self.teams),
            'created_at': _isoformat(self.created_at),
        }


class Round(db.Model):
    __tablename__ = 'rounds'

    id = db.Column(db.Integer, primary_key=True)
    hackathon_id = db.Column(db.Integer, db.ForeignKey('hackathons.id'), nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=False, default='')
    start_date = db.Column(db.DateTime, nullable=True)
    end_date = db.Column(db.DateTime, nullable=True)
    is_active = db.Column(db.Boolean, default=True)
    hide_scores = db.Column(db.Boolean, default=False)  # Scores hidden in public standings

    hackathon = db.relationship('Hackathon', back_populates='rounds')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'start_date': _isoformat(self.start_date),
            'end_date': _isoformat(self.end_date),
            'is_active': self.is_active,
            'hide_scores': self.hide_scores,
        }


class Idea(db.Model):
    __tablename__ = 'ideas'

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=False, default='')
    organization_id = db.Column(db.Integer, db.ForeignKey('organizations.id'), nullable=False)
    submitter_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    is_public = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    submitter = db.relationship('User')

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'is_public': self.is_public,
            'submitter': self.submitter.to_dict() if self.submitter else None,
            'created_at': _isoformat(self.created_at),
        }


class Team(db.Model):
    __tablename__ = 'teams'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    idea_id = db.Column(db.Integer, db.ForeignKey('ideas.id'), nullable=False)
    leader_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    mentor_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    organization_id = db.Column(db.Integer, db.ForeignKey('organizations.id'), nullable=False)
    hackathon_id = db.Column(db.Integer, db.ForeignKey('hackathons.id'), nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    idea = db.relationship('Idea')
    leader = db.relationship('User', foreign_keys=[leader_id])
    mentor = db.relationship('User', foreign_keys=[mentor_id])
    organization = db.relationship('Organization')
    hackathon = db.relationship('Hackathon', back_populates='teams')
    memberships = db.relationship('TeamMember', back_populates='team',
                                  cascade='all, delete-orphan', order_by='TeamMember.id')

    @property
    def members(self):
        return [m.user for m in self.memberships]

    @property
    def member_ids(self):
        return [m.user_id for m in self.memberships]

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'idea': self.idea.to_dict() if self.idea else None,
            'members': [u.to_dict() for u in self.members],
            'leader': self.leader.to_dict() if self.leader else None,
            'mentor': self.mentor.to_dict() if self.mentor else None,
            'hackathon': {'id': self.hackathon.id, 'title': self.hackathon.title} if self.hackathon else None,
            'organization': self.organization.to_dict() if self.organization else None,
            'created_at': _isoformat(self.created_at),
            'updated_at': _isoformat(self.updated_at),
        }


class TeamMember(db.Model):
    __tablename__ = 'team_members'

    id = db.Column(db.Integer, primary_key=True)
    team_id = db.Column(db.Integer, db.ForeignKey('teams.id'), nullable=False, index=True)
    hackathon_id = db.Column(db.Integer, db.ForeignKey('hackathons.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)

    team = db.relationship('Team', back_populates='memberships')
    user = db.relationship('User')

    # A user belongs to at most one team per hackathon
    __table_args__ = (
        db.UniqueConstraint('hackathon_id', 'user_id', name='unique_member_per_hackathon'),
    )


class HackathonRole(db.Model):
    __tablename__ = 'hackathon_roles'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    hackathon_id = db.Column(db.Integer, db.ForeignKey('hackathons.id'), nullable=False, index=True)
    role = db.Column(db.String(20), nullable=False)
    assigned_by_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = db.relationship('User', foreign_keys=[user_id])
    assigned_by = db.relationship('User', foreign_keys=[assigned_by_id])

    __table_args__ = (
        db.UniqueConstraint('user_id', 'hackathon_id', name='unique_role_per_hackathon'),
    )

    @property
    def role_type(self) -> HackathonRoleType:
        return HackathonRoleType(self.role)

    @staticmethod
    def find(user_id: int, hackathon_id: int) -> 'HackathonRole':
        return HackathonRole.query.filter_by(user_id=user_id, hackathon_id=hackathon_id).first()

    @staticmethod
    def role_for(user_id: int, hackathon_id: int):
        """The user's role type in a hackathon, or None."""
        existing = HackathonRole.find(user_id, hackathon_id)
        return existing.role_type if existing else None

    def to_dict(self):
        return {
            'id': self.id,
            'user': self.user.to_dict() if self.user else None,
            'hackathon_id': self.hackathon_id,
            'role': self.role,
            'assigned_by': self.assigned_by.to_dict() if self.assigned_by else None,
            'created_at': _isoformat(self.created_at),
        }
