# asset_tracker/routes/assets.py
from flask import jsonify, request, Response
from flask_login import login_required, current_user

from asset_tracker.models import Role
from asset_tracker.qr import qr_png
from asset_tracker.routes import assets_bp as bp, json_body, page_payload
from asset_tracker.security import roles_required
from asset_tracker.services.assets import AssetRegistry
from asset_tracker.services.audit import AuditRecorder
from asset_tracker.services.filters import AssetFilter, Page

registry = AssetRegistry()

MANAGERS = (Role.SUPER_ADMIN, Role.ASSET_MANAGER)


@bp.route('', methods=['POST'])
@roles_required(*MANAGERS)
def create_asset():
    asset = registry.create(json_body(), actor_id=current_user.id)
    return jsonify(asset.to_dict()), 201


@bp.route('', methods=['GET'])
@login_required
def list_assets():
    result = registry.list(AssetFilter.from_args(request.args), Page.from_args(request.args))
    return jsonify(page_payload(result))


@bp.route('/statistics', methods=['GET'])
@login_required
def asset_statistics():
    return jsonify(registry.statistics())


@bp.route('/tag/<asset_tag>', methods=['GET'])
@login_required
def get_asset_by_tag(asset_tag):
    return jsonify(registry.find_by_tag(asset_tag).to_dict())


@bp.route('/<int:asset_id>', methods=['GET'])
@login_required
def get_asset(asset_id):
    asset = registry.get(asset_id)
    data = asset.to_dict()
    active = asset.active_assignment
    data['current_assignment'] = active.to_dict(include_relations=False) if active else None
    data['category'] = asset.category.to_dict() if asset.category else None
    return jsonify(data)


@bp.route('/<int:asset_id>/history', methods=['GET'])
@login_required
def asset_history(asset_id):
    return jsonify(registry.history(asset_id))


@bp.route('/<int:asset_id>/audit', methods=['GET'])
@roles_required(Role.SUPER_ADMIN, Role.ASSET_MANAGER, Role.AUDITOR)
def asset_audit_trail(asset_id):
    asset = registry.get(asset_id)
    return jsonify([entry.to_dict() for entry in AuditRecorder().for_entity('Asset', asset.id)])


@bp.route('/<int:asset_id>/qr', methods=['GET'])
@login_required
def get_asset_qr(asset_id):
    asset = registry.get(asset_id)
    png = qr_png(f'asset:{asset.asset_tag}')
    return Response(png, mimetype='image/png',
                    headers={'Content-Disposition': f'inline; filename={asset.asset_tag}.png'})


@bp.route('/<int:asset_id>', methods=['PATCH'])
@roles_required(*MANAGERS)
def update_asset(asset_id):
    asset = registry.update(asset_id, json_body(), actor_id=current_user.id)
    return jsonify(asset.to_dict())


@bp.route('/<int:asset_id>/status', methods=['PATCH'])
@roles_required(*MANAGERS)
def update_asset_status(asset_id):
    asset = registry.update_status(asset_id, json_body().get('status'), actor_id=current_user.id)
    return jsonify(asset.to_dict())


@bp.route('/<int:asset_id>', methods=['DELETE'])
@roles_required(Role.SUPER_ADMIN)
def delete_asset(asset_id):
    registry.soft_delete(asset_id, actor_id=current_user.id)
    return jsonify({'message': 'Asset deleted successfully'})
