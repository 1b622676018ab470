# asset_tracker/models/assignment.py
from asset_tracker import db
from asset_tracker.clock import utcnow


def _iso(value):
    return value.isoformat() if value is not None else None


class AssetAssignment(db.Model):
    """Custody record linking one asset to its holder. Closed rows are history."""
    __tablename__ = 'asset_assignments'
    __table_args__ = (
        # At most one open custody record per asset
        db.Index('uq_asset_assignments_active_asset', 'asset_id', unique=True,
                 sqlite_where=db.text('is_active = 1'),
                 postgresql_where=db.text('is_active')),
    )

    id = db.Column(db.Integer, primary_key=True)
    asset_id = db.Column(db.Integer, db.ForeignKey('assets.id'), nullable=False, index=True)
    assigned_to_user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    assigned_by_user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    assigned_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    expected_return_date = db.Column(db.Date)

    assign_condition = db.Column(db.String(20))
    assign_condition_rating = db.Column(db.Integer)
    assign_notes = db.Column(db.Text)
    assign_signature_url = db.Column(db.Text)
    assign_signature_hash = db.Column(db.String(64))

    returned_at = db.Column(db.DateTime)
    returned_to_user_id = db.Column(db.Integer, db.ForeignKey('users.id'))
    return_condition = db.Column(db.String(20))
    return_condition_rating = db.Column(db.Integer)
    return_photo_urls = db.Column(db.JSON)
    return_notes = db.Column(db.Text)
    return_signature_url = db.Column(db.Text)
    return_signature_hash = db.Column(db.String(64))

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    assigned_to = db.relationship('User', foreign_keys=[assigned_to_user_id])
    assigned_by = db.relationship('User', foreign_keys=[assigned_by_user_id])
    returned_to = db.relationship('User', foreign_keys=[returned_to_user_id])

    @classmethod
    def active_for(cls, asset_id):
        return cls.query.filter_by(asset_id=asset_id, is_active=True).first()

    @property
    def is_overdue(self):
        return (self.is_active and self.expected_return_date is not None
                and self.expected_return_date < utcnow().date())

    def to_dict(self, include_relations=True):
        data = {
            'id': self.id,
            'asset_id': self.asset_id,
            'assigned_to_user_id': self.assigned_to_user_id,
            'assigned_by_user_id': self.assigned_by_user_id,
            'assigned_at': _iso(self.assigned_at),
            'expected_return_date': _iso(self.expected_return_date),
            'assign_condition': self.assign_condition,
            'assign_condition_rating': self.assign_condition_rating,
            'assign_notes': self.assign_notes,
            'assign_signature_url': self.assign_signature_url,
            'assign_signature_hash': self.assign_signature_hash,
            'returned_at': _iso(self.returned_at),
            'returned_to_user_id': self.returned_to_user_id,
            'return_condition': self.return_condition,
            'return_condition_rating': self.return_condition_rating,
            'return_photo_urls': self.return_photo_urls or [],
            'return_notes': self.return_notes,
            'return_signature_url': self.return_signature_url,
            'return_signature_hash': self.return_signature_hash,
            'is_active': self.is_active,
            'is_overdue': self.is_overdue,
        }
        if include_relations:
            data['asset'] = self.asset.summary() if self.asset else None
            data['assigned_to'] = self.assigned_to.summary() if self.assigned_to else None
            data['assigned_by'] = self.assigned_by.summary() if self.assigned_by else None
            data['returned_to'] = self.returned_to.summary() if self.returned_to else None
        return data

    def __repr__(self):
        state = 'active' if self.is_active else 'closed'
        return f'<AssetAssignment asset={self.asset_id} user={self.assigned_to_user_id} ({state})>'
