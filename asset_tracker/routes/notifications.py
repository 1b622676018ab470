# asset_tracker/routes/notifications.py
from flask import Blueprint, jsonify, request
from flask_login import login_required, current_user

from asset_tracker.services.notifications import NotificationDispatcher
from asset_tracker.services.validation import parse_bool

notifications_bp = Blueprint('notifications', __name__, url_prefix='/api/notifications')
dispatcher = NotificationDispatcher()


@notifications_bp.route('', methods=['GET'])
@login_required
def list_notifications():
    unread_only = parse_bool(request.args.get('unread'), 'unread') or False
    return jsonify([n.to_dict() for n in dispatcher.for_user(current_user.id, unread_only)])


@notifications_bp.route('/<int:notification_id>/read', methods=['PATCH'])
@login_required
def mark_notification_read(notification_id):
    return jsonify(dispatcher.mark_read(notification_id, current_user.id).to_dict())
