from flask import current_app
from flask_mail import Message

from asset_tracker import db, mail
from asset_tracker.clock import utcnow
from asset_tracker.errors import NotFoundError
from asset_tracker.logger import get_logger
from asset_tracker.models import Notification, NotificationChannel, User

logger = get_logger(__name__)


def send_notification_email(user, notification):
    msg = Message(notification.title,
                  sender=current_app.config['MAIL_DEFAULT_SENDER'],
                  recipients=[user.email])
    msg.body = f'''Dear {user.full_name},

{notification.message}

Please log in to the asset management system to view the details.

Thank you,
Asset Management
'''
    mail.send(msg)


class NotificationDispatcher:

    def notify(self, user_id, type, title, message, data=None):
        """Store an in-app notification and mail it when a server is configured.

        Delivery problems are logged and swallowed; the caller's work is
        already committed.
        """
        try:
            user = db.session.get(User, user_id)
            if user is None:
                logger.warning('Notification %s skipped: user %s not found', type, user_id)
                return None
            notification = Notification(user_id=user_id, type=type, title=title,
                                        message=message, data=data or {},
                                        channel=NotificationChannel.IN_APP.value,
                                        sent_at=utcnow())
            db.session.add(notification)
            db.session.commit()
        except Exception:
            db.session.rollback()
            logger.exception('Failed to store notification %s for user %s', type, user_id)
            return None

        if current_app.config.get('MAIL_SERVER'):
            try:
                send_notification_email(user, notification)
            except Exception:
                logger.exception('Failed to email notification %s to user %s', type, user_id)
        return notification

    def for_user(self, user_id, unread_only=False):
        query = Notification.query.filter_by(user_id=user_id)
        if unread_only:
            query = query.filter_by(is_read=False)
        return query.order_by(Notification.created_at.desc(), Notification.id.desc()).all()

    def mark_read(self, notification_id, user_id):
        notification = Notification.query.filter_by(id=notification_id, user_id=user_id).first()
        if notification is None:
            raise NotFoundError('Notification not found')
        notification.is_read = True
        db.session.commit()
        return notification


def dispatch_workflow_event(sender, **payload):
    NotificationDispatcher().notify(**payload)
