import logging
from datetime import datetime, timezone
from typing import List, Optional

from flask import current_app

from .models import db, Hackathon, HackathonRole, Round
from shared.errors import AccessDeniedError, NotFoundError, ValidationError
from shared.events import EventType
from shared.pubsub import EventSink, publish_safely
from shared.roles import HackathonRoleType, can_create_hackathon, is_privileged
from shared.validation import parse_id

logger = logging.getLogger(__name__)


def load_hackathon(hackathon_id: int, user) -> Hackathon:
    """Fetch a hackathon, enforcing that it belongs to the caller's organization."""
    hackathon = db.session.get(Hackathon, hackathon_id)
    if not hackathon:
        raise NotFoundError('Hackathon not found')
    if hackathon.organization_id != user.organization_id:
        raise AccessDeniedError('Access denied to this hackathon')
    return hackathon


def _team_size(value, default: int, field: str) -> int:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError('Validation failed', f'{field} must be an integer')
    return value


def _check_bounds(minimum: int, maximum: int):
    if minimum < 1 or minimum > maximum:
        raise ValidationError(
            'Validation failed',
            f'Team size bounds must satisfy 1 <= minimum <= maximum (got {minimum} and {maximum})'
        )


def _parse_date(value, field: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        raise ValidationError('Validation failed', f'{field} is not an ISO 8601 date')
    # Stored naive, in UTC
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


class HackathonRegistry:
    """
    Manages hackathon records:
    - Create hackathons with their rounds
    - List/get hackathons within the caller's organization
    - Open and close team registration
    """

    def __init__(self, event_sink: EventSink = None):
        self.events = event_sink

    def create_hackathon(
        self,
        user,
        title: str,
        description: str,
        minimum_team_size: int = None,
        maximum_team_size: int = None,
        is_active: bool = True,
        rounds: list = None
    ) -> Hackathon:
        """Create a hackathon; the creator becomes its organizer."""
        if not can_create_hackathon(user.role):
            raise AccessDeniedError('Only hackathon creators can create hackathons')

        if not title or not description:
            raise ValidationError('Validation failed', 'Title and description are required')

        minimum = _team_size(minimum_team_size,
                             current_app.config.get('DEFAULT_MINIMUM_TEAM_SIZE', 1),
                             'minimum_team_size')
        maximum = _team_size(maximum_team_size,
                             current_app.config.get('DEFAULT_MAXIMUM_TEAM_SIZE', 5),
                             'maximum_team_size')
        _check_bounds(minimum, maximum)

        hackathon = Hackathon(
            title=title,
            description=description,
            organization_id=user.organization_id,
            created_by_id=user.id,
            is_active=bool(is_active),
            minimum_team_size=minimum,
            maximum_team_size=maximum
        )
        hackathon.rounds = self._build_rounds(rounds or [])

        db.session.add(hackathon)
        db.session.flush()

        db.session.add(HackathonRole(
            user_id=user.id,
            hackathon_id=hackathon.id,
            role=HackathonRoleType.ORGANIZER.value,
            assigned_by_id=user.id
        ))
        db.session.commit()

        logger.info("Hackathon %s created by user %s", hackathon.id, user.id)
        publish_safely(self.events, hackathon.organization_id, EventType.HACKATHON_CREATED,
                       {'hackathon': hackathon.to_dict()})
        return hackathon

    def _build_rounds(self, rounds: list, existing: List[Round] = None) -> List[Round]:
        """
        Build the ordered round list. Entries whose id matches one of the
        existing rounds update that round; the others create new rounds.
        """
        if not isinstance(rounds, list):
            raise ValidationError('Validation failed', 'rounds must be a list')

        by_id = {r.id: r for r in existing or []}
        built = []
        for position, data in enumerate(rounds):
            if not isinstance(data, dict) or not data.get('name'):
                raise ValidationError('Validation failed', 'Every round needs a name')

            round_ = by_id.pop(parse_id(data.get('id')), None) or Round()
            round_.position = position
            round_.name = data['name']
            round_.description = data.get('description') or ''
            round_.start_date = _parse_date(data.get('start_date'), 'start_date')
            round_.end_date = _parse_date(data.get('end_date'), 'end_date')
            round_.is_active = data.get('is_active', True)
            round_.hide_scores = data.get('hide_scores', False)
            built.append(round_)
        return built

    def get_hackathon(self, hackathon_id: int, user) -> Hackathon:
        return load_hackathon(hackathon_id, user)

    def list_hackathons(
        self,
        user,
        active_only: bool = False,
        limit: int = 50,
        offset: int = 0
    ) -> List[Hackathon]:
        """List hackathons of the caller's organization, newest first."""
        query = Hackathon.query.filter_by(organization_id=user.organization_id)

        if active_only:
            query = query.filter_by(is_active=True)

        query = query.order_by(Hackathon.created_at.desc(), Hackathon.id.desc())
        return query.offset(offset).limit(limit).all()

    def _load_for_organizer(self, hackathon_id: int, user, action: str) -> Hackathon:
        hackathon = load_hackathon(hackathon_id, user)
        if not is_privileged(user.role, HackathonRole.role_for(user.id, hackathon.id)):
            raise AccessDeniedError(f'Only organizers can {action}')
        return hackathon

    def update_hackathon(
        self,
        hackathon_id: int,
        user,
        title: str = None,
        description: str = None,
        is_active: bool = None,
        minimum_team_size: int = None,
        maximum_team_size: int = None,
        rounds: list = None
    ) -> Hackathon:
        """
        Update the given fields of a hackathon. None leaves a field unchanged.
        A rounds list replaces the rounds: entries carrying the id of an
        existing round update it, rounds left out are deleted.
        Existing teams are not re-checked against new team size bounds.
        """
        hackathon = self._load_for_organizer(hackathon_id, user, 'edit this hackathon')

        if title is not None and not title:
            raise ValidationError('Validation failed', 'Title cannot be empty')
        if description is not None and not description:
            raise ValidationError('Validation failed', 'Description cannot be empty')

        minimum = _team_size(minimum_team_size, hackathon.minimum_team_size, 'minimum_team_size')
        maximum = _team_size(maximum_team_size, hackathon.maximum_team_size, 'maximum_team_size')
        _check_bounds(minimum, maximum)

        try:
            if rounds is not None:
                hackathon.rounds = self._build_rounds(rounds, existing=list(hackathon.rounds))
        except ValidationError:
            db.session.rollback()
            raise

        if title is not None:
            hackathon.title = title
        if description is not None:
            hackathon.description = description
        if is_active is not None:
            hackathon.is_active = bool(is_active)
        hackathon.minimum_team_size = minimum
        hackathon.maximum_team_size = maximum
        db.session.commit()

        logger.info("Hackathon %s updated by user %s", hackathon.id, user.id)
        publish_safely(self.events, hackathon.organization_id, EventType.HACKATHON_UPDATED,
                       {'hackathon': hackathon.to_dict()})
        return hackathon

    def set_registration_open(self, hackathon_id: int, user, is_active: bool) -> Hackathon:
        hackathon = self._load_for_organizer(hackathon_id, user, 'open or close registration')

        hackathon.is_active = is_active
        db.session.commit()

        logger.info("Registration for hackathon %s %s", hackathon.id, 'opened' if is_active else 'closed')
        publish_safely(self.events, hackathon.organization_id, EventType.HACKATHON_UPDATED,
                       {'hackathon': hackathon.to_dict()})
        return hackathon
