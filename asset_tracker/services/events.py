"""
Post-commit domain events.

Services record events while a transaction is open; they are parked on the
SQLAlchemy session and only sent through the blinker signals below once the
transaction commits. A rollback drops them.

    entity_changed  -> audit recorder
    workflow_event  -> notification dispatcher
"""
from blinker import Namespace

from asset_tracker.logger import get_logger

logger = get_logger(__name__)

_signals = Namespace()

entity_changed = _signals.signal('entity-changed')
workflow_event = _signals.signal('workflow-event')

PENDING_KEY = 'asset_tracker.pending_events'


def _queue(session):
    return session.info.setdefault(PENDING_KEY, [])


def record_change(session, entity_type, entity_id, action, actor_user_id=None, before=None, after=None):
    _queue(session).append((entity_changed, {
        'entity_type': entity_type,
        'entity_id': entity_id,
        'action': action,
        'actor_user_id': actor_user_id,
        'before': before,
        'after': after,
    }))


def notify(session, user_id, type, title, message, data=None):
    if user_id is None:
        return
    _queue(session).append((workflow_event, {
        'user_id': user_id,
        'type': type,
        'title': title,
        'message': message,
        'data': data or {},
    }))


def discard_pending(session):
    dropped = session.info.pop(PENDING_KEY, [])
    if dropped:
        logger.debug('Dropped %d unpublished event(s) after rollback', len(dropped))


def publish_pending(session):
    """Send queued events. A failing subscriber never reaches the caller."""
    pending = session.info.pop(PENDING_KEY, [])
    for signal, payload in pending:
        try:
            signal.send(signal.name, **payload)
        except Exception:
            logger.exception('Subscriber failed for %s event %s', signal.name, payload)
