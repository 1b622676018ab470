# asset_tracker/routes/assignments.py
from flask import jsonify, request
from flask_login import login_required, current_user

from asset_tracker.errors import ForbiddenError
from asset_tracker.models import Role
from asset_tracker.routes import assignments_bp as bp, json_body, page_payload
from asset_tracker.security import roles_required
from asset_tracker.services.assignments import AssignmentManager
from asset_tracker.services.filters import AssignmentFilter, Page
from asset_tracker.services.validation import parse_bool, parse_id

manager = AssignmentManager()

MANAGERS = (Role.SUPER_ADMIN, Role.ASSET_MANAGER)
OVERSIGHT = (Role.SUPER_ADMIN, Role.ASSET_MANAGER, Role.DEPT_HEAD, Role.AUDITOR)


@bp.route('', methods=['POST'])
@roles_required(*MANAGERS)
def create_assignment():
    data = json_body()
    assignment = manager.assign(
        parse_id(data.get('asset_id'), 'asset_id'),
        parse_id(data.get('assigned_to_user_id'), 'assigned_to_user_id'),
        current_user.id,
        data,
    )
    return jsonify(assignment.to_dict()), 201


@bp.route('', methods=['GET'])
@roles_required(*OVERSIGHT)
def list_assignments():
    result = manager.list(AssignmentFilter.from_args(request.args), Page.from_args(request.args))
    return jsonify(page_payload(result))


@bp.route('/statistics', methods=['GET'])
@roles_required(*OVERSIGHT)
def assignment_statistics():
    return jsonify(manager.statistics())


@bp.route('/active', methods=['GET'])
@roles_required(*OVERSIGHT)
def active_assignments():
    return jsonify([a.to_dict() for a in manager.active()])


@bp.route('/user/<int:user_id>', methods=['GET'])
@login_required
def user_assignments(user_id):
    if user_id != current_user.id and not current_user.has_role(*OVERSIGHT):
        raise ForbiddenError('You can only view your own assignments')
    is_active = parse_bool(request.args.get('is_active'), 'is_active')
    return jsonify([a.to_dict() for a in manager.for_user(user_id, is_active)])


@bp.route('/<int:assignment_id>', methods=['GET'])
@login_required
def get_assignment(assignment_id):
    return jsonify(manager.get(assignment_id).to_dict())


@bp.route('/<int:assignment_id>/return', methods=['PATCH'])
@roles_required(*MANAGERS)
def return_assignment(assignment_id):
    assignment = manager.return_asset(assignment_id, json_body(), current_user.id)
    return jsonify(assignment.to_dict())
