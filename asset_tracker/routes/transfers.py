# asset_tracker/routes/transfers.py
from flask import jsonify, request
from flask_login import current_user

from asset_tracker.models import Role
from asset_tracker.routes import transfers_bp as bp, json_body, page_payload
from asset_tracker.security import roles_required
from asset_tracker.services.filters import Page, TransferFilter
from asset_tracker.services.transfers import TransferWorkflow
from asset_tracker.services.validation import parse_id

workflow = TransferWorkflow()

REQUESTERS = (Role.SUPER_ADMIN, Role.ASSET_MANAGER, Role.DEPT_HEAD)
READERS = REQUESTERS + (Role.AUDITOR,)


@bp.route('', methods=['POST'])
@roles_required(*REQUESTERS)
def request_transfer():
    data = json_body()
    transfer = workflow.request_transfer(
        parse_id(data.get('asset_id'), 'asset_id'),
        parse_id(data.get('to_user_id'), 'to_user_id'),
        current_user.id,
        from_user_id=parse_id(data.get('from_user_id'), 'from_user_id', required=False),
        reason=data.get('transfer_reason'),
    )
    return jsonify(transfer.to_dict()), 201


@bp.route('', methods=['GET'])
@roles_required(*READERS)
def list_transfers():
    result = workflow.list(TransferFilter.from_args(request.args), Page.from_args(request.args))
    return jsonify(page_payload(result))


@bp.route('/statistics', methods=['GET'])
@roles_required(*READERS)
def transfer_statistics():
    return jsonify(workflow.statistics())


@bp.route('/pending', methods=['GET'])
@roles_required(*REQUESTERS)
def pending_transfers():
    return jsonify([t.to_dict() for t in workflow.pending()])


@bp.route('/<int:transfer_id>', methods=['GET'])
@roles_required(*READERS)
def get_transfer(transfer_id):
    return jsonify(workflow.get(transfer_id).to_dict())


@bp.route('/<int:transfer_id>/approve/manager', methods=['PATCH'])
@roles_required(Role.SUPER_ADMIN, Role.DEPT_HEAD)
def approve_by_manager(transfer_id):
    transfer = workflow.approve_by_manager(transfer_id, current_user.id, json_body().get('notes'))
    return jsonify(transfer.to_dict())


@bp.route('/<int:transfer_id>/approve/admin', methods=['PATCH'])
@roles_required(Role.SUPER_ADMIN, Role.ASSET_MANAGER)
def approve_by_admin(transfer_id):
    transfer = workflow.approve_by_admin(transfer_id, current_user.id, json_body().get('notes'))
    return jsonify(transfer.to_dict())


@bp.route('/<int:transfer_id>/reject', methods=['PATCH'])
@roles_required(*REQUESTERS)
def reject_transfer(transfer_id):
    transfer = workflow.reject(transfer_id, current_user.id, json_body().get('rejection_reason'))
    return jsonify(transfer.to_dict())
