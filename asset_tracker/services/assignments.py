import hashlib

from sqlalchemy import func

from asset_tracker import db
from asset_tracker.clock import today, utcnow
from asset_tracker.errors import BadRequestError, ConflictError, NotFoundError, ValidationError
from asset_tracker.logger import get_logger
from asset_tracker.models import Asset, AssetAssignment, AssetStatus, Condition, DAMAGING_CONDITIONS
from asset_tracker.services import events
from asset_tracker.services.assets import AssetRegistry
from asset_tracker.services.directory import require_user
from asset_tracker.services.filters import AssignmentFilter, paginate
from asset_tracker.services.unit_of_work import transaction
from asset_tracker.services.validation import clean_text, parse_date, parse_enum, parse_rating

logger = get_logger(__name__)

ENTITY = 'AssetAssignment'


def signature_hash(signature):
    if not signature:
        return None
    return hashlib.sha256(signature.encode('utf-8')).hexdigest()


def close_assignment(session, assignment, returned_to_user_id, **values):
    """Flip an open assignment to closed, only if nobody else closed it first."""
    now = utcnow()
    values.update({'is_active': False, 'returned_at': now, 'returned_to_user_id': returned_to_user_id})
    updated = (session.query(AssetAssignment)
               .filter_by(id=assignment.id, is_active=True)
               .update(values, synchronize_session='fetch'))
    if updated != 1:
        raise BadRequestError('Assignment is already returned', assignment_id=assignment.id)
    return now


class AssignmentManager:
    """Opens and closes custody records and keeps the asset status in step."""

    def __init__(self, registry=None):
        self.registry = registry or AssetRegistry()

    def assign(self, asset_id, to_user_id, by_user_id, condition_info):
        condition = parse_enum(Condition, condition_info.get('assign_condition'), 'assign_condition')
        rating = parse_rating(condition_info.get('assign_condition_rating'), 'assign_condition_rating')
        expected_return = parse_date(condition_info.get('expected_return_date'), 'expected_return_date')
        notes = clean_text(condition_info.get('assign_notes'), 'assign_notes')
        signature = clean_text(condition_info.get('assign_signature'), 'assign_signature')

        asset = self.registry.get(asset_id)
        if asset.status != AssetStatus.AVAILABLE.value:
            logger.info('Refused assignment of asset %s: status %s', asset.id, asset.status)
            raise BadRequestError(
                f'Asset is not available for assignment. Current status: {asset.status}',
                status=asset.status)
        if AssetAssignment.active_for(asset.id) is not None:
            raise ConflictError('Asset is already assigned to another user')
        holder = require_user(to_user_id)

        assignment = AssetAssignment(
            asset_id=asset.id,
            assigned_to_user_id=holder.id,
            assigned_by_user_id=by_user_id,
            assigned_at=utcnow(),
            expected_return_date=expected_return,
            assign_condition=condition.value,
            assign_condition_rating=rating,
            assign_notes=notes,
            assign_signature_url=signature,
            assign_signature_hash=signature_hash(signature),
            is_active=True,
        )
        with transaction('Asset is already assigned to another user') as session:
            session.add(assignment)
            asset.status = AssetStatus.ASSIGNED.value
            session.flush()
            events.record_change(session, ENTITY, assignment.id, 'create', by_user_id,
                                 after=assignment.to_dict(include_relations=False))
            events.record_change(session, 'Asset', asset.id, 'update', by_user_id,
                                 before={'status': AssetStatus.AVAILABLE.value},
                                 after={'status': AssetStatus.ASSIGNED.value})
            events.notify(session, holder.id, 'assignment-created', 'New asset assigned',
                          f'You have been assigned asset {asset.asset_tag} ({asset.name}).',
                          {'assignment_id': assignment.id, 'asset_id': asset.id})

        logger.info('Assigned asset %s to user %s (assignment %s)', asset.id, holder.id, assignment.id)
        return assignment

    def return_asset(self, assignment_id, return_info, returned_by_user_id):
        assignment = self.get(assignment_id)
        if not assignment.is_active:
            raise BadRequestError('Assignment is already returned', assignment_id=assignment.id)

        condition = parse_enum(Condition, return_info.get('return_condition'), 'return_condition')
        rating = parse_rating(return_info.get('return_condition_rating'), 'return_condition_rating')
        photos = return_info.get('return_photo_urls')
        if not isinstance(photos, list) or not photos:
            raise ValidationError('At least one return photo is required', field='return_photo_urls')
        if not all(isinstance(p, str) and p.strip() for p in photos):
            raise ValidationError('return_photo_urls must be a list of strings', field='return_photo_urls')
        notes = clean_text(return_info.get('return_notes'), 'return_notes')
        signature = clean_text(return_info.get('return_signature'), 'return_signature')

        asset = db.session.get(Asset, assignment.asset_id)
        previous_status = asset.status
        new_status = (AssetStatus.DAMAGED if condition.value in DAMAGING_CONDITIONS
                      else AssetStatus.AVAILABLE)

        with transaction() as session:
            close_assignment(
                session, assignment, returned_by_user_id,
                return_condition=condition.value,
                return_condition_rating=rating,
                return_photo_urls=photos,
                return_notes=notes,
                return_signature_url=signature,
                return_signature_hash=signature_hash(signature),
            )
            asset.status = new_status.value
            events.record_change(session, ENTITY, assignment.id, 'update', returned_by_user_id,
                                 before={'is_active': True},
                                 after={'is_active': False, 'return_condition': condition.value})
            events.record_change(session, 'Asset', asset.id, 'update', returned_by_user_id,
                                 before={'status': previous_status}, after={'status': new_status.value})

        logger.info('Returned assignment %s; asset %s is now %s', assignment.id, asset.id, new_status.value)
        return assignment

    def get(self, assignment_id):
        assignment = db.session.get(AssetAssignment, assignment_id)
        if assignment is None:
            raise NotFoundError('Assignment not found', assignment_id=assignment_id)
        return assignment

    def list(self, filters=None, page=None):
        filters = filters or AssignmentFilter()
        query = AssetAssignment.query.filter(*filters.to_criteria())
        return paginate(query, page, AssignmentFilter.SORTABLE, 'assigned_at')

    def active(self):
        return (AssetAssignment.query.filter_by(is_active=True)
                .order_by(AssetAssignment.assigned_at.desc()).all())

    def for_user(self, user_id, is_active=None):
        query = AssetAssignment.query.filter_by(assigned_to_user_id=user_id)
        if is_active is not None:
            query = query.filter_by(is_active=is_active)
        return query.order_by(AssetAssignment.assigned_at.desc()).all()

    def statistics(self):
        total = db.session.query(func.count(AssetAssignment.id)).scalar()
        active = AssetAssignment.query.filter_by(is_active=True).count()
        overdue = (AssetAssignment.query
                   .filter_by(is_active=True)
                   .filter(AssetAssignment.expected_return_date.isnot(None),
                           AssetAssignment.expected_return_date < today())
                   .count())
        return {
            'total': total,
            'active': active,
            'returned': total - active,
            'overdue': overdue,
        }
