"""
Two-stage custody transfer workflow.

    pending --manager--> manager_approved --admin--> completed
       |                        |
       +------> rejected <------+

Completion swaps the custody record and the asset status in the same commit
as the transfer status change.
"""
from flask import current_app
from sqlalchemy import func

from asset_tracker import db
from asset_tracker.clock import utcnow
from asset_tracker.errors import BadRequestError, ConflictError, NotFoundError, ValidationError
from asset_tracker.logger import get_logger
from asset_tracker.models import (
    AssetAssignment, AssetStatus, AssetTransfer, IN_FLIGHT_STATUSES, TransferStatus,
)
from asset_tracker.services import events
from asset_tracker.services.assets import AssetRegistry
from asset_tracker.services.assignments import close_assignment
from asset_tracker.services.directory import require_user
from asset_tracker.services.filters import TransferFilter, paginate
from asset_tracker.services.unit_of_work import transaction
from asset_tracker.services.validation import clean_text

logger = get_logger(__name__)

ENTITY = 'AssetTransfer'
DUPLICATE_REQUEST = 'There is already a pending transfer request for this asset'


class TransferStateMachine:
    PENDING = TransferStatus.PENDING.value
    MANAGER_APPROVED = TransferStatus.MANAGER_APPROVED.value
    COMPLETED = TransferStatus.COMPLETED.value
    REJECTED = TransferStatus.REJECTED.value

    TERMINAL_STATES = {COMPLETED, REJECTED}

    # from_status -> allowed to_status values; forward only
    TRANSITIONS = {
        PENDING: {MANAGER_APPROVED, REJECTED},
        MANAGER_APPROVED: {COMPLETED, REJECTED},
    }

    @classmethod
    def can_transition(cls, from_status, to_status):
        if from_status in cls.TERMINAL_STATES:
            return False
        return to_status in cls.TRANSITIONS.get(from_status, set())

    @classmethod
    def validate_transition(cls, from_status, to_status):
        if cls.can_transition(from_status, to_status):
            return
        if to_status == cls.MANAGER_APPROVED:
            message = f'Cannot approve transfer with status: {from_status}'
        elif to_status == cls.COMPLETED:
            message = f'Transfer must be manager approved first. Current status: {from_status}'
        elif to_status == cls.REJECTED and from_status == cls.COMPLETED:
            message = 'Cannot reject a completed transfer'
        elif to_status == cls.REJECTED and from_status == cls.REJECTED:
            message = 'Transfer is already rejected'
        else:
            message = f'Invalid transfer status transition: {from_status} -> {to_status}'
        raise BadRequestError(message, status=from_status, requested=to_status)

    @classmethod
    def get_allowed_transitions(cls, from_status):
        if from_status in cls.TERMINAL_STATES:
            return set()
        return cls.TRANSITIONS.get(from_status, set())


class TransferWorkflow:

    def __init__(self, registry=None):
        self.registry = registry or AssetRegistry()

    def _advance(self, session, transfer, to_status, **values):
        """Move the transfer on, provided its status is still the one we validated."""
        from_status = transfer.status
        TransferStateMachine.validate_transition(from_status, to_status)
        values['status'] = to_status
        updated = (session.query(AssetTransfer)
                   .filter_by(id=transfer.id, status=from_status)
                   .update(values, synchronize_session='fetch'))
        if updated != 1:
            # Lost a race; report against the status that won
            session.refresh(transfer)
            TransferStateMachine.validate_transition(transfer.status, to_status)
            raise ConflictError('Transfer was modified concurrently', transfer_id=transfer.id)
        return from_status

    def request_transfer(self, asset_id, to_user_id, requested_by_user_id, from_user_id=None, reason=None):
        reason = clean_text(reason, 'transfer_reason')
        asset = self.registry.get(asset_id)
        active = AssetAssignment.active_for(asset.id)

        if from_user_id is not None:
            require_user(from_user_id, 'From user not found')
            if active is not None and active.assigned_to_user_id != from_user_id:
                logger.info('Refused transfer of asset %s: user %s is not the holder', asset.id, from_user_id)
                raise BadRequestError('Asset is not currently assigned to the specified from user',
                                      holder_id=active.assigned_to_user_id)
        recipient = require_user(to_user_id, 'To user not found')

        if AssetTransfer.in_flight_for(asset.id) is not None:
            logger.info('Refused transfer of asset %s: request already in flight', asset.id)
            raise BadRequestError(DUPLICATE_REQUEST)

        transfer = AssetTransfer(
            asset_id=asset.id,
            from_user_id=from_user_id,
            to_user_id=recipient.id,
            requested_by_user_id=requested_by_user_id,
            requested_at=utcnow(),
            transfer_reason=reason,
            status=TransferStatus.PENDING.value,
        )
        with transaction(DUPLICATE_REQUEST) as session:
            session.add(transfer)
            session.flush()
            events.record_change(session, ENTITY, transfer.id, 'create', requested_by_user_id,
                                 after=transfer.to_dict(include_relations=False))
            message = f'A transfer of asset {asset.asset_tag} ({asset.name}) has been requested.'
            data = {'transfer_id': transfer.id, 'asset_id': asset.id}
            events.notify(session, recipient.id, 'transfer-requested', 'Asset transfer requested', message, data)
            holder_id = active.assigned_to_user_id if active is not None else from_user_id
            if holder_id is not None and holder_id != recipient.id:
                events.notify(session, holder_id, 'transfer-requested', 'Asset transfer requested', message, data)

        logger.info('Transfer %s requested for asset %s to user %s', transfer.id, asset.id, recipient.id)
        return transfer

    def approve_by_manager(self, transfer_id, manager_id, notes=None):
        transfer = self.get(transfer_id)
        notes = clean_text(notes, 'notes')
        with transaction() as session:
            previous = self._advance(session, transfer, TransferStatus.MANAGER_APPROVED.value,
                                     manager_approver_id=manager_id,
                                     manager_approved_at=utcnow(),
                                     manager_notes=notes)
            events.record_change(session, ENTITY, transfer.id, 'update', manager_id,
                                 before={'status': previous},
                                 after={'status': TransferStatus.MANAGER_APPROVED.value})
            events.notify(session, transfer.requested_by_user_id, 'transfer-approved',
                          'Transfer approved by manager',
                          f'Transfer request {transfer.id} was approved by a manager and awaits admin approval.',
                          {'transfer_id': transfer.id, 'asset_id': transfer.asset_id, 'stage': 'manager'})

        logger.info('Transfer %s approved by manager %s', transfer.id, manager_id)
        return transfer

    def approve_by_admin(self, transfer_id, admin_id, notes=None):
        transfer = self.get(transfer_id)
        notes = clean_text(notes, 'notes')
        TransferStateMachine.validate_transition(transfer.status, TransferStatus.COMPLETED.value)
        asset = self.registry.get(transfer.asset_id)
        require_user(transfer.to_user_id, 'To user not found')

        config = current_app.config
        previous_holder_id = None
        with transaction('Asset is already assigned to another user') as session:
            now = utcnow()
            self._advance(session, transfer, TransferStatus.COMPLETED.value,
                          admin_approver_id=admin_id,
                          admin_approved_at=now,
                          admin_notes=notes,
                          completed_at=now)

            current = AssetAssignment.active_for(asset.id)
            if current is not None:
                previous_holder_id = current.assigned_to_user_id
                close_assignment(session, current, admin_id)
                # Closed row must reach the database before the new active one
                session.flush()

            assignment = AssetAssignment(
                asset_id=asset.id,
                assigned_to_user_id=transfer.to_user_id,
                assigned_by_user_id=admin_id,
                assigned_at=now,
                assign_condition=config['TRANSFER_DEFAULT_CONDITION'],
                assign_condition_rating=config['TRANSFER_DEFAULT_CONDITION_RATING'],
                assign_notes=f'Transferred via request {transfer.id}',
                is_active=True,
            )
            session.add(assignment)
            previous_status = asset.status
            asset.status = AssetStatus.ASSIGNED.value
            session.flush()

            events.record_change(session, ENTITY, transfer.id, 'update', admin_id,
                                 before={'status': TransferStatus.MANAGER_APPROVED.value},
                                 after={'status': TransferStatus.COMPLETED.value})
            if current is not None:
                events.record_change(session, 'AssetAssignment', current.id, 'update', admin_id,
                                     before={'is_active': True}, after={'is_active': False})
            events.record_change(session, 'AssetAssignment', assignment.id, 'create', admin_id,
                                 after=assignment.to_dict(include_relations=False))
            events.record_change(session, 'Asset', asset.id, 'update', admin_id,
                                 before={'status': previous_status}, after={'status': asset.status})

            message = f'Transfer of asset {asset.asset_tag} ({asset.name}) has been completed.'
            data = {'transfer_id': transfer.id, 'asset_id': asset.id, 'stage': 'admin'}
            recipients = []
            for user_id in (transfer.requested_by_user_id, transfer.to_user_id, previous_holder_id):
                if user_id is not None and user_id not in recipients:
                    recipients.append(user_id)
            for user_id in recipients:
                events.notify(session, user_id, 'transfer-approved', 'Transfer completed', message, data)

        logger.info('Transfer %s completed by admin %s: asset %s now held by user %s (previous holder %s)',
                    transfer.id, admin_id, asset.id, transfer.to_user_id, previous_holder_id)
        return transfer

    def reject(self, transfer_id, rejected_by_user_id, reason):
        transfer = self.get(transfer_id)
        TransferStateMachine.validate_transition(transfer.status, TransferStatus.REJECTED.value)
        reason = clean_text(reason, 'rejection_reason')
        if not reason:
            raise ValidationError('A rejection reason is required', field='rejection_reason')

        with transaction() as session:
            previous = self._advance(session, transfer, TransferStatus.REJECTED.value,
                                     rejected_by_user_id=rejected_by_user_id,
                                     rejected_at=utcnow(),
                                     rejection_reason=reason)
            events.record_change(session, ENTITY, transfer.id, 'update', rejected_by_user_id,
                                 before={'status': previous},
                                 after={'status': TransferStatus.REJECTED.value, 'rejection_reason': reason})
            events.notify(session, transfer.requested_by_user_id, 'transfer-rejected', 'Transfer rejected',
                          f'Transfer request {transfer.id} was rejected: {reason}',
                          {'transfer_id': transfer.id, 'asset_id': transfer.asset_id})

        logger.info('Transfer %s rejected by user %s', transfer.id, rejected_by_user_id)
        return transfer

    def get(self, transfer_id):
        transfer = db.session.get(AssetTransfer, transfer_id)
        if transfer is None:
            raise NotFoundError('Transfer not found', transfer_id=transfer_id)
        return transfer

    def list(self, filters=None, page=None):
        filters = filters or TransferFilter()
        query = AssetTransfer.query.filter(*filters.to_criteria())
        return paginate(query, page, TransferFilter.SORTABLE, 'requested_at')

    def pending(self):
        return (AssetTransfer.query
                .filter(AssetTransfer.status.in_(IN_FLIGHT_STATUSES))
                .order_by(AssetTransfer.requested_at.asc(), AssetTransfer.id.asc())
                .all())

    def statistics(self):
        counts = {status.value: 0 for status in TransferStatus}
        rows = (db.session.query(AssetTransfer.status, func.count(AssetTransfer.id))
                .group_by(AssetTransfer.status).all())
        for status, count in rows:
            counts[status] = count
        return {
            'total': sum(counts.values()),
            'pending': counts[TransferStatus.PENDING.value],
            'manager_approved': counts[TransferStatus.MANAGER_APPROVED.value],
            'completed': counts[TransferStatus.COMPLETED.value],
            'rejected': counts[TransferStatus.REJECTED.value],
            'awaiting_action': sum(counts[s] for s in IN_FLIGHT_STATUSES),
        }
