from flask import has_request_context, request

from asset_tracker import db
from asset_tracker.logger import get_logger
from asset_tracker.models import AuditLog, AuditAction, match_enum

logger = get_logger(__name__)


class AuditRecorder:
    """Append-only writer for the audit trail."""

    def record(self, entity_type, entity_id, action, actor_user_id=None, before=None, after=None):
        try:
            entry = AuditLog(
                entity_type=entity_type,
                entity_id=entity_id,
                action=match_enum(AuditAction, action).value,
                user_id=actor_user_id,
                changes={'before': before, 'after': after},
            )
            if has_request_context():
                entry.ip_address = request.remote_addr
                entry.user_agent = (request.user_agent.string or '')[:256] or None
            db.session.add(entry)
            db.session.commit()
            return entry
        except Exception:
            db.session.rollback()
            logger.exception('Failed to record audit entry for %s %s', entity_type, entity_id)
            return None

    def for_entity(self, entity_type, entity_id):
        return (AuditLog.query
                .filter_by(entity_type=entity_type, entity_id=entity_id)
                .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
                .all())


def record_entity_change(sender, **payload):
    AuditRecorder().record(**payload)
