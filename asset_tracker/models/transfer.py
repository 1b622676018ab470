# asset_tracker/models/transfer.py
from enum import Enum

from asset_tracker import db
from asset_tracker.clock import utcnow


class TransferStatus(Enum):
    PENDING = "pending"
    MANAGER_APPROVED = "manager_approved"
    ADMIN_APPROVED = "admin_approved"  # declared, never entered
    COMPLETED = "completed"
    REJECTED = "rejected"


# Requests still waiting for a decision
IN_FLIGHT_STATUSES = (TransferStatus.PENDING.value, TransferStatus.MANAGER_APPROVED.value)


def _iso(value):
    return value.isoformat() if value is not None else None


def _summary(user):
    return user.summary() if user is not None else None


class AssetTransfer(db.Model):
    __tablename__ = 'asset_transfers'
    __table_args__ = (
        # One in-flight request per asset
        db.Index('uq_asset_transfers_in_flight_asset', 'asset_id', unique=True,
                 sqlite_where=db.text("status IN ('pending', 'manager_approved')"),
                 postgresql_where=db.text("status IN ('pending', 'manager_approved')")),
    )

    id = db.Column(db.Integer, primary_key=True)
    asset_id = db.Column(db.Integer, db.ForeignKey('assets.id'), nullable=False, index=True)
    from_user_id = db.Column(db.Integer, db.ForeignKey('users.id'))  # None means from inventory
    to_user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    transfer_reason = db.Column(db.Text)
    status = db.Column(db.String(20), nullable=False, default=TransferStatus.PENDING.value, index=True)

    requested_by_user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    requested_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    manager_approver_id = db.Column(db.Integer, db.ForeignKey('users.id'))
    manager_approved_at = db.Column(db.DateTime)
    manager_notes = db.Column(db.Text)

    admin_approver_id = db.Column(db.Integer, db.ForeignKey('users.id'))
    admin_approved_at = db.Column(db.DateTime)
    admin_notes = db.Column(db.Text)
    completed_at = db.Column(db.DateTime)

    rejected_by_user_id = db.Column(db.Integer, db.ForeignKey('users.id'))
    rejected_at = db.Column(db.DateTime)
    rejection_reason = db.Column(db.Text)

    from_user = db.relationship('User', foreign_keys=[from_user_id])
    to_user = db.relationship('User', foreign_keys=[to_user_id])
    requested_by = db.relationship('User', foreign_keys=[requested_by_user_id])
    manager_approver = db.relationship('User', foreign_keys=[manager_approver_id])
    admin_approver = db.relationship('User', foreign_keys=[admin_approver_id])
    rejected_by = db.relationship('User', foreign_keys=[rejected_by_user_id])

    @classmethod
    def in_flight_for(cls, asset_id):
        return cls.query.filter(cls.asset_id == asset_id,
                                cls.status.in_(IN_FLIGHT_STATUSES)).first()

    def to_dict(self, include_relations=True):
        data = {
            'id': self.id,
            'asset_id': self.asset_id,
            'from_user_id': self.from_user_id,
            'to_user_id': self.to_user_id,
            'transfer_reason': self.transfer_reason,
            'status': self.status,
            'requested_by_user_id': self.requested_by_user_id,
            'requested_at': _iso(self.requested_at),
            'manager_approver_id': self.manager_approver_id,
            'manager_approved_at': _iso(self.manager_approved_at),
            'manager_notes': self.manager_notes,
            'admin_approver_id': self.admin_approver_id,
            'admin_approved_at': _iso(self.admin_approved_at),
            'admin_notes': self.admin_notes,
            'completed_at': _iso(self.completed_at),
            'rejected_by_user_id': self.rejected_by_user_id,
            'rejected_at': _iso(self.rejected_at),
            'rejection_reason': self.rejection_reason,
        }
        if include_relations:
            data.update({
                'asset': self.asset.summary() if self.asset else None,
                'from_user': _summary(self.from_user),
                'to_user': _summary(self.to_user),
                'requested_by': _summary(self.requested_by),
                'manager_approver': _summary(self.manager_approver),
                'admin_approver': _summary(self.admin_approver),
                'rejected_by': _summary(self.rejected_by),
            })
        return data

    def __repr__(self):
        return f'<AssetTransfer {self.id} asset={self.asset_id} {self.status}>'
