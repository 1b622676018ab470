# asset_tracker/models/__init__.py
from asset_tracker import db

# Import models after db
from .user import User, Role, RefreshToken
from .category import Category
from .asset import Asset, AssetStatus, Condition, DAMAGING_CONDITIONS, match_enum, normalize_tag
from .assignment import AssetAssignment
from .transfer import AssetTransfer, TransferStatus, IN_FLIGHT_STATUSES
from .audit_log import AuditLog, AuditAction
from .notification import Notification, NotificationChannel

__all__ = ['User', 'Role', 'RefreshToken', 'Category', 'Asset', 'AssetStatus', 'Condition',
    'DAMAGING_CONDITIONS', 'match_enum', 'normalize_tag', 'AssetAssignment', 'AssetTransfer',
    'TransferStatus', 'IN_FLIGHT_STATUSES', 'AuditLog', 'AuditAction', 'Notification',
    'NotificationChannel']
