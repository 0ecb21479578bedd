import logging
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .hackathon_registry import load_hackathon
from .models import db, HackathonRole, User
from shared.errors import AccessDeniedError, NotFoundError, ValidationError
from shared.events import EventType
from shared.pubsub import EventSink, publish_safely
from shared.roles import (
    HackathonRoleType,
    can_manage_roles,
    can_view_members,
    parse_hackathon_role,
)
from shared.validation import parse_id

logger = logging.getLogger(__name__)


class RoleManager:
    """
    Manages HackathonRole records.

    Two writers share the table: team registration maintains the participant
    projection, organizers assign organizer/judge/mentor roles explicitly.
    Participant sync never touches a row that already exists, so it cannot
    downgrade a role assigned by an organizer.
    """

    def __init__(self, event_sink: EventSink = None):
        self.events = event_sink

    def role_of(self, user_id: int, hackathon_id: int) -> Optional[HackathonRoleType]:
        return HackathonRole.role_for(user_id, hackathon_id)

    # ==================== Participant projection ====================

    def ensure_participant(self, user_id: int, hackathon_id: int, assigned_by: int = None) -> bool:
        """Insert a participant role if the user has no role yet. Returns True if inserted."""
        if HackathonRole.find(user_id, hackathon_id):
            return False

        db.session.add(HackathonRole(
            user_id=user_id,
            hackathon_id=hackathon_id,
            role=HackathonRoleType.PARTICIPANT.value,
            assigned_by_id=assigned_by
        ))
        try:
            db.session.commit()
        except IntegrityError:
            # Another request created a role for this pair in the meantime
            db.session.rollback()
            logger.info("Role already exists for user %s in hackathon %s", user_id, hackathon_id)
            return False
        except SQLAlchemyError:
            # Team rows are already committed at this point
            db.session.rollback()
            logger.exception("Could not assign participant role to user %s in hackathon %s",
                             user_id, hackathon_id)
            return False
        return True

    def sync_participants(self, hackathon_id: int, user_ids: Iterable[int], assigned_by: int = None) -> int:
        inserted = 0
        for user_id in user_ids:
            if self.ensure_participant(user_id, hackathon_id, assigned_by):
                inserted += 1
        logger.debug("Participant roles inserted for hackathon %s: %d", hackathon_id, inserted)
        return inserted

    def release_participants(self, hackathon_id: int, user_ids: Iterable[int]) -> int:
        """
        Stage deletion of participant roles for the given users.
        Other role types are kept. The caller commits.
        """
        user_ids = list(user_ids)
        if not user_ids:
            return 0

        roles = HackathonRole.query.filter(
            HackathonRole.hackathon_id == hackathon_id,
            HackathonRole.user_id.in_(user_ids),
            HackathonRole.role == HackathonRoleType.PARTICIPANT.value
        ).all()

        for role in roles:
            db.session.delete(role)
        return len(roles)

    # ==================== Explicit assignment ====================

    def _require_manager(self, hackathon_id: int, user):
        hackathon = load_hackathon(hackathon_id, user)
        if not can_manage_roles(user.role, self.role_of(user.id, hackathon.id)):
            raise AccessDeniedError('Only organizers can manage hackathon roles')
        return hackathon

    def assign_role(self, hackathon_id: int, user, target_user_id, role) -> Tuple[HackathonRole, bool]:
        """Assign or change a user's role. Returns (role, created)."""
        if target_user_id is None or role is None:
            raise ValidationError('User ID and role are required')
        role_type = parse_hackathon_role(role)
        if role_type is None:
            raise ValidationError(
                'Invalid role',
                'Role must be one of: ' + ', '.join(r.value for r in HackathonRoleType)
            )

        hackathon = self._require_manager(hackathon_id, user)

        target_id = parse_id(target_user_id)
        target = db.session.get(User, target_id) if target_id else None
        if not target:
            raise NotFoundError('User not found')
        if target.organization_id != hackathon.organization_id:
            raise AccessDeniedError('User must belong to the same organization')

        existing = HackathonRole.find(target.id, hackathon.id)
        created = existing is None
        if created:
            existing = HackathonRole(user_id=target.id, hackathon_id=hackathon.id)
            db.session.add(existing)

        existing.role = role_type.value
        existing.assigned_by_id = user.id
        db.session.commit()

        logger.info("User %s is now %s in hackathon %s", target.id, role_type.value, hackathon.id)
        publish_safely(self.events, hackathon.organization_id, EventType.ROLE_ASSIGNED, {
            'hackathon_id': hackathon.id,
            'user_id': target.id,
            'role': existing.to_dict()
        })
        return existing, created

    def remove_role(self, hackathon_id: int, user, target_user_id: int) -> HackathonRoleType:
        hackathon = self._require_manager(hackathon_id, user)

        existing = HackathonRole.find(target_user_id, hackathon.id)
        if not existing:
            raise NotFoundError('Role assignment not found')

        removed = existing.role_type
        db.session.delete(existing)
        db.session.commit()

        publish_safely(self.events, hackathon.organization_id, EventType.ROLE_REMOVED, {
            'hackathon_id': hackathon.id,
            'user_id': target_user_id,
            'role': removed.value
        })
        return removed

    # ==================== Queries ====================

    def get_members(self, hackathon_id: int, user) -> List[HackathonRole]:
        hackathon = load_hackathon(hackathon_id, user)
        if not can_view_members(user.role, self.role_of(user.id, hackathon.id)):
            raise AccessDeniedError('You are not a member of this hackathon')

        return HackathonRole.query.filter_by(hackathon_id=hackathon.id).order_by(
            HackathonRole.created_at.desc(), HackathonRole.id.desc()
        ).all()

    @staticmethod
    def group_by_role(roles: Iterable[HackathonRole]) -> Dict[str, list]:
        grouped = {r.value: [] for r in HackathonRoleType}
        for role in roles:
            grouped[role.role].append(role.to_dict())
        return grouped

    def get_my_role(self, hackathon_id: int, user) -> Optional[HackathonRole]:
        hackathon = load_hackathon(hackathon_id, user)
        return HackathonRole.find(user.id, hackathon.id)
