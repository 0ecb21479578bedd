import logging
from typing import List

from .models import db, Idea, Team
from shared.errors import AccessDeniedError, ConflictError, NotFoundError, ValidationError
from shared.validation import parse_id

logger = logging.getLogger(__name__)


def _idea_fields(title, description, is_public):
    if not title or not description:
        raise ValidationError('Validation failed', 'Title and description are required')
    if not isinstance(is_public, bool):
        raise ValidationError('Validation failed', 'isPublic must be true or false')


class IdeaRegistry:
    """
    Ideas that teams register with. Ideas belong to the submitter's
    organization; only the submitter may edit or delete them.
    """

    def submit_idea(self, user, title: str, description: str, is_public: bool = True) -> Idea:
        _idea_fields(title, description, is_public)

        idea = Idea(
            title=title,
            description=description,
            is_public=is_public,
            organization_id=user.organization_id,
            submitter_id=user.id
        )
        db.session.add(idea)
        db.session.commit()

        logger.info("Idea %s submitted by user %s", idea.id, user.id)
        return idea

    def get_public_ideas(self, user) -> List[Idea]:
        return Idea.query.filter_by(
            organization_id=user.organization_id,
            is_public=True
        ).order_by(Idea.created_at.desc(), Idea.id.desc()).all()

    def get_my_ideas(self, user) -> List[Idea]:
        return Idea.query.filter_by(
            organization_id=user.organization_id,
            submitter_id=user.id
        ).order_by(Idea.created_at.desc(), Idea.id.desc()).all()

    def _load_own_idea(self, idea_id, user) -> Idea:
        idea_pk = parse_id(idea_id)
        idea = db.session.get(Idea, idea_pk) if idea_pk else None
        if not idea or idea.organization_id != user.organization_id:
            raise NotFoundError('Idea not found')
        if idea.submitter_id != user.id:
            raise AccessDeniedError('Only the submitter can change this idea')
        return idea

    def update_idea(self, idea_id, user, title: str, description: str, is_public: bool) -> Idea:
        idea = self._load_own_idea(idea_id, user)
        _idea_fields(title, description, is_public)

        idea.title = title
        idea.description = description
        idea.is_public = is_public
        db.session.commit()

        logger.info("Idea %s updated by user %s", idea.id, user.id)
        return idea

    def delete_idea(self, idea_id, user):
        idea = self._load_own_idea(idea_id, user)

        if Team.query.filter_by(idea_id=idea.id).first():
            raise ConflictError('Idea in use', 'A registered team is working on this idea.')

        db.session.delete(idea)
        db.session.commit()
        logger.info("Idea %s deleted by user %s", idea_id, user.id)
