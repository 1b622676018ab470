"""
List filters and paging.

Each filter has one optional field per dimension. ``from_args`` parses query
string values; ``to_criteria`` turns the set fields into SQLAlchemy predicates
without touching the session.
"""
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from flask import current_app
from sqlalchemy import or_

from asset_tracker.clock import as_datetime, today
from asset_tracker.errors import ValidationError
from asset_tracker.models import Asset, AssetAssignment, AssetTransfer, AssetStatus, TransferStatus
from asset_tracker.services.validation import parse_bool, parse_date, parse_enum, parse_id, parse_int


@dataclass
class Page:
    page: int = 1
    limit: int = 20
    sort_by: Optional[str] = None
    sort_order: str = 'desc'

    @classmethod
    def from_args(cls, args):
        config = current_app.config
        sort_order = (args.get('sort_order') or 'desc').lower()
        if sort_order not in ('asc', 'desc'):
            raise ValidationError('sort_order must be asc or desc', field='sort_order')
        return cls(
            page=parse_int(args.get('page'), 'page', default=1, minimum=1),
            limit=parse_int(args.get('limit'), 'limit', default=config['DEFAULT_PAGE_SIZE'],
                            minimum=1, maximum=config['MAX_PAGE_SIZE']),
            sort_by=args.get('sort_by') or None,
            sort_order=sort_order,
        )


def paginate(query, page, sortable, default_sort):
    """Apply a whitelisted sort and return one page as a plain dict."""
    page = page or Page()
    column = sortable.get(page.sort_by or default_sort)
    if column is None:
        raise ValidationError(f'Cannot sort by {page.sort_by}', field='sort_by', allowed=sorted(sortable))
    ordering = column.asc() if page.sort_order == 'asc' else column.desc()
    result = query.order_by(ordering).paginate(page=page.page, per_page=page.limit, error_out=False)
    return {
        'items': result.items,
        'total': result.total,
        'page': page.page,
        'limit': page.limit,
        'pages': result.pages,
    }


@dataclass
class AssetFilter:
    search: Optional[str] = None
    category_id: Optional[int] = None
    status: Optional[AssetStatus] = None
    location: Optional[str] = None
    vendor: Optional[str] = None
    purchase_date_from: Optional[date] = None
    purchase_date_to: Optional[date] = None
    warranty_expiring_in_days: Optional[int] = None

    SORTABLE = {
        'created_at': Asset.created_at,
        'asset_tag': Asset.asset_tag,
        'name': Asset.name,
        'status': Asset.status,
        'purchase_date': Asset.purchase_date,
        'purchase_cost': Asset.purchase_cost,
        'current_value': Asset.current_value,
        'warranty_end_date': Asset.warranty_end_date,
    }

    @classmethod
    def from_args(cls, args):
        status = args.get('status')
        return cls(
            search=(args.get('search') or '').strip() or None,
            category_id=parse_id(args.get('category_id'), 'category_id', required=False),
            status=parse_enum(AssetStatus, status, 'status') if status else None,
            location=args.get('location') or None,
            vendor=args.get('vendor') or None,
            purchase_date_from=parse_date(args.get('purchase_date_from'), 'purchase_date_from'),
            purchase_date_to=parse_date(args.get('purchase_date_to'), 'purchase_date_to'),
            warranty_expiring_in_days=parse_int(args.get('warranty_expiring_in_days'),
                                                'warranty_expiring_in_days', minimum=0),
        )

    def to_criteria(self, on=None):
        on = on or today()
        criteria = [Asset.deleted_at.is_(None)]
        if self.search:
            pattern = f'%{self.search}%'
            criteria.append(or_(Asset.name.ilike(pattern),
                                Asset.asset_tag.ilike(pattern),
                                Asset.serial_number.ilike(pattern),
                                Asset.model.ilike(pattern),
                                Asset.manufacturer.ilike(pattern)))
        if self.category_id is not None:
            criteria.append(Asset.category_id == self.category_id)
        if self.status is not None:
            criteria.append(Asset.status == self.status.value)
        if self.location:
            criteria.append(Asset.location.ilike(f'%{self.location}%'))
        if self.vendor:
            criteria.append(Asset.vendor.ilike(f'%{self.vendor}%'))
        if self.purchase_date_from:
            criteria.append(Asset.purchase_date >= self.purchase_date_from)
        if self.purchase_date_to:
            criteria.append(Asset.purchase_date <= self.purchase_date_to)
        if self.warranty_expiring_in_days is not None:
            criteria.append(Asset.warranty_end_date >= on)
            criteria.append(Asset.warranty_end_date <= on + timedelta(days=self.warranty_expiring_in_days))
        return criteria


@dataclass
class AssignmentFilter:
    asset_id: Optional[int] = None
    assigned_to_user_id: Optional[int] = None
    is_active: Optional[bool] = None
    assigned_from: Optional[date] = None
    assigned_to: Optional[date] = None

    SORTABLE = {
        'assigned_at': AssetAssignment.assigned_at,
        'returned_at': AssetAssignment.returned_at,
        'expected_return_date': AssetAssignment.expected_return_date,
    }

    @classmethod
    def from_args(cls, args):
        return cls(
            asset_id=parse_id(args.get('asset_id'), 'asset_id', required=False),
            assigned_to_user_id=parse_id(args.get('user_id'), 'user_id', required=False),
            is_active=parse_bool(args.get('is_active'), 'is_active'),
            assigned_from=parse_date(args.get('date_from'), 'date_from'),
            assigned_to=parse_date(args.get('date_to'), 'date_to'),
        )

    def to_criteria(self):
        criteria = []
        if self.asset_id is not None:
            criteria.append(AssetAssignment.asset_id == self.asset_id)
        if self.assigned_to_user_id is not None:
            criteria.append(AssetAssignment.assigned_to_user_id == self.assigned_to_user_id)
        if self.is_active is not None:
            criteria.append(AssetAssignment.is_active == self.is_active)
        if self.assigned_from:
            criteria.append(AssetAssignment.assigned_at >= as_datetime(self.assigned_from))
        if self.assigned_to:
            criteria.append(AssetAssignment.assigned_at < as_datetime(self.assigned_to + timedelta(days=1)))
        return criteria


@dataclass
class TransferFilter:
    asset_id: Optional[int] = None
    status: Optional[TransferStatus] = None
    from_user_id: Optional[int] = None
    to_user_id: Optional[int] = None
    requested_by_user_id: Optional[int] = None
    requested_from: Optional[date] = None
    requested_to: Optional[date] = None

    SORTABLE = {
        'requested_at': AssetTransfer.requested_at,
        'status': AssetTransfer.status,
        'completed_at': AssetTransfer.completed_at,
    }

    @classmethod
    def from_args(cls, args):
        status = args.get('status')
        return cls(
            asset_id=parse_id(args.get('asset_id'), 'asset_id', required=False),
            status=parse_enum(TransferStatus, status, 'status') if status else None,
            from_user_id=parse_id(args.get('from_user_id'), 'from_user_id', required=False),
            to_user_id=parse_id(args.get('to_user_id'), 'to_user_id', required=False),
            requested_by_user_id=parse_id(args.get('requested_by_user_id'), 'requested_by_user_id',
                                          required=False),
            requested_from=parse_date(args.get('date_from'), 'date_from'),
            requested_to=parse_date(args.get('date_to'), 'date_to'),
        )

    def to_criteria(self):
        criteria = []
        if self.asset_id is not None:
            criteria.append(AssetTransfer.asset_id == self.asset_id)
        if self.status is not None:
            criteria.append(AssetTransfer.status == self.status.value)
        if self.from_user_id is not None:
            criteria.append(AssetTransfer.from_user_id == self.from_user_id)
        if self.to_user_id is not None:
            criteria.append(AssetTransfer.to_user_id == self.to_user_id)
        if self.requested_by_user_id is not None:
            criteria.append(AssetTransfer.requested_by_user_id == self.requested_by_user_id)
        if self.requested_from:
            criteria.append(AssetTransfer.requested_at >= as_datetime(self.requested_from))
        if self.requested_to:
            criteria.append(AssetTransfer.requested_at < as_datetime(self.requested_to + timedelta(days=1)))
        return criteria
