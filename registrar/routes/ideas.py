from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required

bp = Blueprint('ideas', __name__)


def _is_public(data: dict):
    return data.get('is_public', data.get('isPublic', True))


@bp.route('/ideas/submit', methods=['POST'])
@login_required
def submit_idea():
    data = request.get_json(silent=True) or {}
    idea = current_app.ideas.submit_idea(
        current_user,
        title=data.get('title'),
        description=data.get('description'),
        is_public=_is_public(data)
    )
    return jsonify({'message': 'Idea submitted', 'idea': idea.to_dict()}), 201


@bp.route('/ideas/public-ideas')
@login_required
def get_public_ideas():
    ideas = current_app.ideas.get_public_ideas(current_user)
    return jsonify({'ideas': [i.to_dict() for i in ideas], 'total': len(ideas)})


@bp.route('/ideas/my')
@login_required
def get_my_ideas():
    ideas = current_app.ideas.get_my_ideas(current_user)
    return jsonify({'ideas': [i.to_dict() for i in ideas], 'total': len(ideas)})


@bp.route('/ideas/<int:idea_id>', methods=['PUT'])
@login_required
def edit_idea(idea_id):
    data = request.get_json(silent=True) or {}
    idea = current_app.ideas.update_idea(
        idea_id,
        current_user,
        title=data.get('title'),
        description=data.get('description'),
        is_public=_is_public(data)
    )
    return jsonify({'message': 'Idea updated', 'idea': idea.to_dict()})


@bp.route('/ideas/<int:idea_id>', methods=['DELETE'])
@login_required
def delete_idea(idea_id):
    current_app.ideas.delete_idea(idea_id, current_user)
    return jsonify({'message': 'Idea deleted'})
