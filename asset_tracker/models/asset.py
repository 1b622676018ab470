# asset_tracker/models/asset.py
from enum import Enum

from asset_tracker import db
from asset_tracker.clock import utcnow


class AssetStatus(Enum):
    AVAILABLE = "available"
    ASSIGNED = "assigned"
    MAINTENANCE = "maintenance"
    DAMAGED = "damaged"
    RETIRED = "retired"


class Condition(Enum):
    EXCELLENT = "Excellent"
    GOOD = "Good"
    FAIR = "Fair"
    POOR = "Poor"
    DAMAGED = "Damaged"


# Return conditions that send an asset to the damaged pool
DAMAGING_CONDITIONS = {Condition.DAMAGED.value, Condition.POOR.value}


def match_enum(enum_cls, value):
    """Resolve an enum member from a member, its value or its name, case-insensitively."""
    if isinstance(value, enum_cls):
        return value
    text = str(value).strip().lower()
    try:
        return next(m for m in enum_cls if m.value.lower() == text or m.name.lower() == text)
    except StopIteration:
        raise ValueError(f"Invalid {enum_cls.__name__}: {value}")


def normalize_tag(asset_tag):
    return str(asset_tag).strip().upper()


def _money(value):
    return str(value) if value is not None else None


def _iso(value):
    return value.isoformat() if value is not None else None


class Asset(db.Model):
    __tablename__ = 'assets'
    __table_args__ = (
        # Live rows only; reuse of retired identifiers is decided by the registry
        db.Index('uq_assets_live_asset_tag', 'asset_tag', unique=True,
                 sqlite_where=db.text('deleted_at IS NULL'),
                 postgresql_where=db.text('deleted_at IS NULL')),
        db.Index('uq_assets_live_serial_number', 'serial_number', unique=True,
                 sqlite_where=db.text('deleted_at IS NULL AND serial_number IS NOT NULL'),
                 postgresql_where=db.text('deleted_at IS NULL AND serial_number IS NOT NULL')),
    )

    id = db.Column(db.Integer, primary_key=True)
    asset_tag = db.Column(db.String(50), nullable=False)
    serial_number = db.Column(db.String(100))
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    model = db.Column(db.String(100))
    manufacturer = db.Column(db.String(100))
    category_id = db.Column(db.Integer, db.ForeignKey('categories.id'))
    location = db.Column(db.String(100))
    vendor = db.Column(db.String(100))
    status = db.Column(db.String(20), nullable=False, default=AssetStatus.AVAILABLE.value)

    purchase_date = db.Column(db.Date)
    purchase_cost = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    currency = db.Column(db.String(3), nullable=False, default='USD')
    current_value = db.Column(db.Numeric(12, 2))
    salvage_value = db.Column(db.Numeric(12, 2))

    warranty_end_date = db.Column(db.Date)
    warranty_details = db.Column(db.String(255))
    invoice_number = db.Column(db.String(100))
    notes = db.Column(db.Text)
    custom_fields = db.Column(db.JSON)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    deleted_at = db.Column(db.DateTime)

    assignments = db.relationship('AssetAssignment', backref='asset', lazy=True,
                                  order_by='AssetAssignment.assigned_at.desc()')
    transfers = db.relationship('AssetTransfer', backref='asset', lazy=True,
                                order_by='AssetTransfer.requested_at.desc()')

    def __init__(self, asset_tag, name, status=None, **kwargs):
        super().__init__(name=name, **kwargs)

        # Standardize asset tag (e.g., uppercase, remove extra spaces)
        self.asset_tag = normalize_tag(asset_tag)
        if self.serial_number is not None:
            self.serial_number = str(self.serial_number).strip() or None

        # New assets enter inventory unless a non-custody status is given
        if status:
            self.status = match_enum(AssetStatus, status).value
        else:
            self.status = AssetStatus.AVAILABLE.value
        if self.status == AssetStatus.ASSIGNED.value:
            raise ValueError("An asset can only become assigned through an assignment")

        self.custom_fields = self.custom_fields or {}

    @property
    def is_deleted(self):
        return self.deleted_at is not None

    @property
    def active_assignment(self):
        from .assignment import AssetAssignment
        return AssetAssignment.active_for(self.id)

    def summary(self):
        return {
            'id': self.id,
            'asset_tag': self.asset_tag,
            'name': self.name,
            'serial_number': self.serial_number,
            'status': self.status,
        }

    def to_dict(self):
        data = self.summary()
        data.update({
            'description': self.description,
            'model': self.model,
            'manufacturer': self.manufacturer,
            'category_id': self.category_id,
            'location': self.location,
            'vendor': self.vendor,
            'purchase_date': _iso(self.purchase_date),
            'purchase_cost': _money(self.purchase_cost),
            'currency': self.currency,
            'current_value': _money(self.current_value),
            'salvage_value': _money(self.salvage_value),
            'warranty_end_date': _iso(self.warranty_end_date),
            'warranty_details': self.warranty_details,
            'invoice_number': self.invoice_number,
            'notes': self.notes,
            'custom_fields': self.custom_fields or {},
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
            'deleted_at': _iso(self.deleted_at),
        })
        return data

    def __repr__(self):
        return f'<Asset {self.asset_tag}: {self.name} ({self.status})>'
