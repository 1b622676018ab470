# asset_tracker/routes/categories.py
from flask import Blueprint, jsonify
from flask_login import login_required, current_user

from asset_tracker.models import Role
from asset_tracker.routes import json_body
from asset_tracker.security import roles_required
from asset_tracker.services.directory import create_category, list_categories

categories_bp = Blueprint('categories', __name__, url_prefix='/api/categories')


@categories_bp.route('', methods=['GET'])
@login_required
def get_categories():
    return jsonify([c.to_dict() for c in list_categories()])


@categories_bp.route('', methods=['POST'])
@roles_required(Role.SUPER_ADMIN, Role.ASSET_MANAGER)
def add_category():
    category = create_category(json_body(), actor_id=current_user.id)
    return jsonify(category.to_dict()), 201
