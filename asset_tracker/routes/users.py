# asset_tracker/routes/users.py
from flask import Blueprint, jsonify
from flask_login import current_user

from asset_tracker.models import Role
from asset_tracker.routes import json_body
from asset_tracker.security import roles_required
from asset_tracker.services.directory import change_role, require_user

users_bp = Blueprint('users', __name__, url_prefix='/api/users')


@users_bp.route('/<int:user_id>', methods=['GET'])
@roles_required(Role.SUPER_ADMIN, Role.ASSET_MANAGER, Role.DEPT_HEAD, Role.AUDITOR)
def get_user(user_id):
    return jsonify(require_user(user_id).to_dict())


@users_bp.route('/<int:user_id>/role', methods=['PATCH'])
@roles_required(Role.SUPER_ADMIN)
def update_role(user_id):
    user = change_role(user_id, json_body().get('role'), actor_id=current_user.id)
    return jsonify(user.to_dict())
