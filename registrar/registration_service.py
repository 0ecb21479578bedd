import logging
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError

from .hackathon_registry import load_hackathon
from .models import db, Hackathon, Idea, Team, TeamMember, User
from .role_manager import RoleManager
from shared.errors import (
    AccessDeniedError,
    ConflictError,
    NotFoundError,
    ValidationError,
    already_registered,
    invalid_team_size,
)
from shared.events import EventType
from shared.pubsub import EventSink, publish_safely
from shared.roles import can_edit_team, can_withdraw_team, is_privileged
from shared.validation import normalize_member_ids, parse_id

logger = logging.getLogger(__name__)


class TeamRegistrationService:
    """
    Single authority for team registrations in a hackathon:
    - Register, update and withdraw teams
    - Enforce team size bounds and one-team-per-hackathon membership
    - Keep participant roles in sync with team membership
    - Publish team lifecycle events to the organization
    """

    def __init__(self, event_sink: EventSink = None, role_manager: RoleManager = None):
        self.events = event_sink
        self.roles = role_manager or RoleManager(event_sink)

    # ==================== Commands ====================

    def register(
        self,
        hackathon_id: int,
        user: User,
        team_name: str,
        idea_id,
        member_ids: list = None
    ) -> Team:
        """Register a new team led by the requesting user."""
        member_ids = normalize_member_ids(member_ids, user.id)
        hackathon, idea = self._validate(hackathon_id, user, team_name, idea_id, member_ids)

        team = Team(
            name=team_name,
            idea_id=idea.id,
            leader_id=user.id,
            organization_id=hackathon.organization_id,
            hackathon_id=hackathon.id
        )
        team.memberships = self._memberships(hackathon, member_ids)
        db.session.add(team)
        self._commit_membership()

        logger.info("Team %s registered for hackathon %s by user %s", team.id, hackathon.id, user.id)

        self.roles.sync_participants(hackathon.id, member_ids, assigned_by=user.id)
        self._emit(team.organization_id, EventType.TEAM_CREATED, team.to_dict())
        return team

    def update(
        self,
        hackathon_id: int,
        team_id: int,
        user: User,
        team_name: str,
        idea_id,
        member_ids: list = None
    ) -> Team:
        """Replace a team's name, idea and members. The leader stays unchanged."""
        team = self._load_team(hackathon_id, team_id, user)

        hackathon_role = self.roles.role_of(user.id, team.hackathon_id)
        if not can_edit_team(user.id, team.leader_id, user.role, hackathon_role):
            raise AccessDeniedError('Only the team leader or an organizer can edit this team')

        # Normalized around the leader, not the requester as in register:
        # an organizer editing the team is not added to it
        member_ids = normalize_member_ids(member_ids, team.leader_id)
        hackathon, idea = self._validate(hackathon_id, user, team_name, idea_id, member_ids,
                                         exclude_team_id=team.id)

        team.name = team_name
        team.idea_id = idea.id
        team.memberships.clear()
        db.session.flush()
        team.memberships.extend(self._memberships(hackathon, member_ids))
        self._commit_membership()

        logger.info("Team %s updated by user %s", team.id, user.id)

        # Members removed by the update keep their participant role until withdrawal
        self.roles.sync_participants(hackathon.id, member_ids, assigned_by=user.id)
        self._emit(team.organization_id, EventType.TEAM_UPDATED, team.to_dict())
        return team

    def withdraw(self, hackathon_id: int, team_id: int, user: User) -> dict:
        """Delete a team and the participant roles of its members. Returns the team snapshot."""
        team = self._load_team(hackathon_id, team_id, user)

        hackathon_role = self.roles.role_of(user.id, team.hackathon_id)
        if not can_withdraw_team(user.id, team.member_ids, user.role, hackathon_role):
            raise AccessDeniedError('Only team members or an organizer can withdraw this team')

        snapshot = team.to_dict()
        released = self.roles.release_participants(team.hackathon_id, team.member_ids)

        self._emit(team.organization_id, EventType.TEAM_DELETED, snapshot)

        db.session.delete(team)
        db.session.commit()

        logger.info("Team %s withdrawn by user %s (%d participant roles removed)",
                    team_id, user.id, released)
        return snapshot

    # ==================== Queries ====================

    def get_teams(self, hackathon_id: int, user: User, privileged_only: bool = False) -> List[Team]:
        """List teams of a hackathon, newest first."""
        hackathon = load_hackathon(hackathon_id, user)

        if privileged_only and not is_privileged(user.role, self.roles.role_of(user.id, hackathon.id)):
            raise AccessDeniedError('Only organizers can list registered teams')

        return Team.query.filter_by(hackathon_id=hackathon.id).order_by(
            Team.created_at.desc(), Team.id.desc()
        ).all()

    def get_my_team(self, hackathon_id: int, user: User) -> Team:
        team = Team.query.join(Team.memberships).filter(
            TeamMember.hackathon_id == hackathon_id,
            TeamMember.user_id == user.id
        ).first()

        if not team:
            raise NotFoundError('Team not found')
        return team

    def get_my_teams(self, user: User) -> List[Team]:
        return Team.query.join(Team.memberships).filter(
            TeamMember.user_id == user.id
        ).order_by(Team.created_at.desc(), Team.id.desc()).all()

    # ==================== Helpers ====================

    def _validate(
        self,
        hackathon_id: int,
        user: User,
        team_name: str,
        idea_id,
        member_ids: List[int],
        exclude_team_id: Optional[int] = None
    ) -> Tuple[Hackathon, Idea]:
        """Run the registration checks in order; each failure is a distinct error."""
        idea_pk = parse_id(idea_id)
        if not team_name or not isinstance(team_name, str) or idea_pk is None or not member_ids:
            raise ValidationError('Validation failed', 'Team name, ideaId, and members are required.')

        hackathon = load_hackathon(hackathon_id, user)

        if not hackathon.is_active:
            raise ConflictError('Registration closed', 'This hackathon is not accepting registrations.')

        if not hackathon.minimum_team_size <= len(member_ids) <= hackathon.maximum_team_size:
            raise invalid_team_size(hackathon.minimum_team_size, hackathon.maximum_team_size)

        idea = db.session.get(Idea, idea_pk)
        if not idea or idea.organization_id != hackathon.organization_id:
            raise NotFoundError('Idea not found')

        users = User.query.filter(User.id.in_(member_ids)).all()
        known = {u.id for u in users if u.organization_id == hackathon.organization_id}
        unknown = [m for m in member_ids if m not in known]
        if unknown:
            raise ValidationError('Validation failed', f'Unknown team members: {unknown}')

        conflict = TeamMember.query.filter(
            TeamMember.hackathon_id == hackathon.id,
            TeamMember.user_id.in_(member_ids)
        )
        if exclude_team_id is not None:
            conflict = conflict.filter(TeamMember.team_id != exclude_team_id)
        if conflict.first():
            raise already_registered()

        return hackathon, idea

    def _load_team(self, hackathon_id: int, team_id: int, user: User) -> Team:
        team = db.session.get(Team, team_id)
        if not team:
            raise NotFoundError('Team not found')

        if team.hackathon_id != hackathon_id:
            raise ValidationError('Mismatched hackathon', 'Team does not belong to this hackathon.')

        if team.organization_id != user.organization_id:
            raise AccessDeniedError('Access denied to this hackathon')
        return team

    @staticmethod
    def _memberships(hackathon: Hackathon, member_ids: List[int]) -> List[TeamMember]:
        return [TeamMember(hackathon_id=hackathon.id, user_id=m) for m in member_ids]

    @staticmethod
    def _commit_membership():
        """Commit team and member rows; the (hackathon, user) constraint decides concurrent races."""
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            logger.warning("Concurrent registration detected, membership constraint rejected the team")
            raise already_registered()

    def _emit(self, organization_id: int, kind: EventType, team: dict):
        publish_safely(self.events, organization_id, kind, {'team': team})
