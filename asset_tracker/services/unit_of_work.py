from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError

from asset_tracker import db
from asset_tracker.errors import ConflictError
from asset_tracker.logger import get_logger
from asset_tracker.services import events

logger = get_logger(__name__)


@contextmanager
def transaction(conflict_message=None):
    """Run a block of writes as one commit.

    Every write in the block lands or none does. A unique-index violation
    becomes ConflictError. Events recorded inside the block are published
    only after the commit succeeds.
    """
    session = db.session
    try:
        yield session
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        events.discard_pending(session)
        logger.warning('Integrity violation, transaction rolled back: %s', exc.orig)
        raise ConflictError(conflict_message or 'Conflicting record already exists')
    except Exception:
        session.rollback()
        events.discard_pending(session)
        raise
    events.publish_pending(session)
