from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from asset_tracker import db
from asset_tracker.clock import today, utcnow
from asset_tracker.errors import BadRequestError, ConflictError, NotFoundError, ValidationError
from asset_tracker.logger import get_logger
from asset_tracker.models import Asset, AssetAssignment, AssetStatus, normalize_tag
from asset_tracker.services import events, valuation
from asset_tracker.services.directory import require_category
from asset_tracker.services.filters import AssetFilter, paginate
from asset_tracker.services.unit_of_work import transaction
from asset_tracker.services.validation import (
    clean_text, parse_date, parse_decimal, parse_enum, parse_id, require_fields,
)

logger = get_logger(__name__)

ENTITY = 'Asset'

TEXT_FIELDS = ('name', 'description', 'model', 'manufacturer', 'location', 'vendor',
               'warranty_details', 'invoice_number', 'notes')
MONEY_FIELDS = ('purchase_cost', 'current_value', 'salvage_value')
DATE_FIELDS = ('purchase_date', 'warranty_end_date')
VALUATION_INPUTS = ('purchase_cost', 'purchase_date', 'salvage_value', 'category_id')

WARRANTY_WINDOW_DAYS = 30


def _parse_fields(data):
    """Pick the writable asset fields out of a request payload."""
    fields = {}
    for name in TEXT_FIELDS:
        if name in data:
            fields[name] = clean_text(data[name], name, required=(name == 'name'))
    for name in MONEY_FIELDS:
        if name in data:
            fields[name] = parse_decimal(data[name], name)
    for name in DATE_FIELDS:
        if name in data:
            fields[name] = parse_date(data[name], name)
    if 'asset_tag' in data:
        tag = clean_text(data['asset_tag'], 'asset_tag', required=True)
        fields['asset_tag'] = normalize_tag(tag)
    if 'serial_number' in data:
        fields['serial_number'] = clean_text(data['serial_number'], 'serial_number')
    if 'category_id' in data:
        fields['category_id'] = parse_id(data['category_id'], 'category_id', required=False)
    if 'currency' in data:
        currency = clean_text(data['currency'], 'currency', required=True)
        if len(currency) != 3:
            raise ValidationError('currency must be a 3-letter code', field='currency')
        fields['currency'] = currency.upper()
    if 'custom_fields' in data:
        if data['custom_fields'] is not None and not isinstance(data['custom_fields'], dict):
            raise ValidationError('custom_fields must be an object', field='custom_fields')
        fields['custom_fields'] = data['custom_fields'] or {}
    return fields


class AssetRegistry:
    """Owns the asset table: identity, descriptive data, status and valuation."""

    def _identifier_taken(self, column, value, exclude_id=None):
        query = Asset.query.filter(column == value)
        if current_app.config.get('RETIRED_IDENTIFIERS_REUSABLE'):
            query = query.filter(Asset.deleted_at.is_(None))
        if exclude_id is not None:
            query = query.filter(Asset.id != exclude_id)
        return db.session.query(query.exists()).scalar()

    def _check_identifiers(self, asset_tag=None, serial_number=None, exclude_id=None):
        if asset_tag and self._identifier_taken(Asset.asset_tag, asset_tag, exclude_id):
            logger.info('Refused asset tag %s: already exists', asset_tag)
            raise ConflictError('Asset tag already exists', asset_tag=asset_tag)
        if serial_number and self._identifier_taken(Asset.serial_number, serial_number, exclude_id):
            logger.info('Refused serial number %s: already exists', serial_number)
            raise ConflictError('Serial number already exists', serial_number=serial_number)

    def create(self, data, actor_id=None):
        require_fields(data, 'asset_tag', 'name')
        fields = _parse_fields(data)
        status = data.get('status')
        if status:
            status = parse_enum(AssetStatus, status, 'status')
            if status == AssetStatus.ASSIGNED:
                raise BadRequestError('New assets cannot be created as assigned; create an assignment instead')

        category = require_category(fields['category_id']) if fields.get('category_id') else None
        self._check_identifiers(fields['asset_tag'], fields.get('serial_number'))

        asset_tag = fields.pop('asset_tag')
        name = fields.pop('name')
        if fields.get('purchase_cost') is None:
            fields['purchase_cost'] = Decimal(0)
        asset = Asset(asset_tag, name, status=status.value if status else None, **fields)
        if fields.get('current_value') is None:
            asset.current_value = valuation.value_for(asset, category)

        with transaction('Asset tag or serial number already exists') as session:
            session.add(asset)
            session.flush()
            events.record_change(session, ENTITY, asset.id, 'create', actor_id, after=asset.to_dict())

        logger.info('Created asset %s (%s)', asset.id, asset.asset_tag)
        return asset

    def get(self, asset_id):
        asset = Asset.query.filter_by(id=asset_id, deleted_at=None).first()
        if asset is None:
            raise NotFoundError('Asset not found', asset_id=asset_id)
        return asset

    def find_by_tag(self, asset_tag):
        asset = Asset.query.filter_by(asset_tag=normalize_tag(asset_tag), deleted_at=None).first()
        if asset is None:
            raise NotFoundError('Asset not found', asset_tag=asset_tag)
        return asset

    def list(self, filters=None, page=None):
        filters = filters or AssetFilter()
        query = Asset.query.filter(*filters.to_criteria())
        return paginate(query, page, AssetFilter.SORTABLE, 'created_at')

    def update(self, asset_id, data, actor_id=None):
        asset = self.get(asset_id)
        if 'status' in data:
            raise BadRequestError('Asset status cannot be changed here; use the status endpoint')
        fields = _parse_fields(data)

        category_id = fields.get('category_id', asset.category_id)
        category = require_category(category_id) if category_id else None

        new_tag = fields.get('asset_tag')
        new_serial = fields.get('serial_number')
        self._check_identifiers(
            new_tag if new_tag and new_tag != asset.asset_tag else None,
            new_serial if new_serial and new_serial != asset.serial_number else None,
            exclude_id=asset.id,
        )

        before = asset.to_dict()
        for name, value in fields.items():
            setattr(asset, name, value)
        if asset.purchase_cost is None:
            asset.purchase_cost = Decimal(0)
        if 'current_value' not in fields and any(name in fields for name in VALUATION_INPUTS):
            asset.current_value = valuation.value_for(asset, category)

        with transaction('Asset tag or serial number already exists') as session:
            session.flush()
            events.record_change(session, ENTITY, asset.id, 'update', actor_id,
                                 before=before, after=asset.to_dict())

        logger.info('Updated asset %s', asset.id)
        return asset

    def update_status(self, asset_id, new_status, actor_id=None):
        if new_status in (None, ''):
            raise ValidationError('status is required', field='status')
        target = parse_enum(AssetStatus, new_status, 'status')
        asset = self.get(asset_id)
        active = AssetAssignment.active_for(asset.id)

        if target == AssetStatus.ASSIGNED and active is None:
            raise BadRequestError('Cannot mark as assigned without active assignment')
        if target != AssetStatus.ASSIGNED and active is not None:
            raise BadRequestError('Asset has an active assignment; return it before changing status',
                                  assignment_id=active.id)

        previous = asset.status
        if previous == target.value:
            return asset

        asset.status = target.value
        with transaction() as session:
            events.record_change(session, ENTITY, asset.id, 'update', actor_id,
                                 before={'status': previous}, after={'status': target.value})

        logger.info('Asset %s status %s -> %s', asset.id, previous, target.value)
        return asset

    def soft_delete(self, asset_id, actor_id=None):
        asset = self.get(asset_id)
        if AssetAssignment.active_for(asset.id) is not None:
            logger.info('Refused delete of asset %s: active assignment', asset.id)
            raise BadRequestError('Cannot delete asset with active assignments')

        before = asset.to_dict()
        asset.deleted_at = utcnow()
        asset.status = AssetStatus.RETIRED.value
        with transaction() as session:
            events.record_change(session, ENTITY, asset.id, 'delete', actor_id,
                                 before=before, after=asset.to_dict())

        logger.info('Soft-deleted asset %s (%s)', asset.id, asset.asset_tag)
        return asset

    def history(self, asset_id):
        asset = self.get(asset_id)
        data = asset.summary()
        data['assignments'] = [a.to_dict(include_relations=False) | {
            'assigned_to': a.assigned_to.summary() if a.assigned_to else None,
        } for a in asset.assignments]
        data['transfers'] = [t.to_dict(include_relations=False) for t in asset.transfers]
        return data

    def statistics(self):
        live = Asset.deleted_at.is_(None)
        by_status = {status.value: 0 for status in AssetStatus}
        rows = db.session.query(Asset.status, func.count(Asset.id)).filter(live).group_by(Asset.status).all()
        for status, count in rows:
            by_status[status] = count

        total_value = db.session.query(func.coalesce(func.sum(Asset.current_value), 0)).filter(live).scalar()
        start = today()
        expiring = AssetFilter(warranty_expiring_in_days=WARRANTY_WINDOW_DAYS).to_criteria(on=start)
        return {
            'total': sum(by_status.values()),
            'by_status': by_status,
            'total_value': str(Decimal(str(total_value)).quantize(Decimal('0.01'))),
            'warranty_expiring_30_days': Asset.query.filter(*expiring).count(),
        }
