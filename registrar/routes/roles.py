from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required

bp = Blueprint('roles', __name__)


@bp.route('/hackathons/<int:hackathon_id>/roles', methods=['POST'])
@login_required
def assign_role(hackathon_id):
    data = request.get_json(silent=True) or {}
    role, created = current_app.roles.assign_role(
        hackathon_id,
        current_user,
        data.get('user_id', data.get('userId')),
        data.get('role')
    )

    if created:
        return jsonify({'message': 'Role assigned', 'role': role.to_dict()}), 201
    return jsonify({'message': 'Role updated', 'role': role.to_dict()})


@bp.route('/hackathons/<int:hackathon_id>/roles/<int:user_id>', methods=['DELETE'])
@login_required
def remove_role(hackathon_id, user_id):
    removed = current_app.roles.remove_role(hackathon_id, current_user, user_id)
    return jsonify({'message': 'Role removed', 'role': removed.value})


@bp.route('/hackathons/<int:hackathon_id>/members')
@login_required
def get_members(hackathon_id):
    roles = current_app.roles.get_members(hackathon_id, current_user)
    return jsonify({
        'members': [r.to_dict() for r in roles],
        'members_by_role': current_app.roles.group_by_role(roles),
        'total': len(roles)
    })


@bp.route('/hackathons/<int:hackathon_id>/my-role')
@login_required
def get_my_role(hackathon_id):
    role = current_app.roles.get_my_role(hackathon_id, current_user)
    if not role:
        return jsonify({'has_role': False, 'role': None, 'role_id': None})

    return jsonify({'has_role': True, 'role': role.role, 'role_id': role.id})
