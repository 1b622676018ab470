import pytest
from sqlalchemy import update

from asset_tracker import db
from asset_tracker.errors import BadRequestError, ConflictError, NotFoundError, ValidationError
from asset_tracker.models import Asset, AssetAssignment, AssetTransfer, Notification
from asset_tracker.services import transfers as transfers_module
from asset_tracker.services.assets import AssetRegistry
from asset_tracker.services.assignments import AssignmentManager
from asset_tracker.services.transfers import TransferStateMachine, TransferWorkflow
from asset_tracker.services.unit_of_work import transaction
from tests.conftest import make_asset

workflow = TransferWorkflow()
assignments = AssignmentManager()

GOOD = {'assign_condition': 'Good', 'assign_condition_rating': 4}


@pytest.fixture
def held_asset(ctx, users):
    """LAP-001 assigned to the first employee"""
    asset = make_asset()
    assignment = assignments.assign(asset.id, users.employee, users.asset_manager, GOOD)
    return asset.id, assignment.id


def test_state_machine_is_forward_only():
    sm = TransferStateMachine
    assert sm.can_transition('pending', 'manager_approved')
    assert sm.can_transition('pending', 'rejected')
    assert sm.can_transition('manager_approved', 'completed')
    assert not sm.can_transition('pending', 'completed')
    assert not sm.can_transition('manager_approved', 'pending')
    assert not sm.can_transition('completed', 'rejected')
    assert not sm.can_transition('rejected', 'pending')
    assert not sm.can_transition('pending', 'admin_approved')
    assert sm.get_allowed_transitions('completed') == set()


def test_full_transfer_moves_custody(ctx, users, held_asset):
    asset_id, old_assignment_id = held_asset
    transfer = workflow.request_transfer(asset_id, users.other_employee, users.dept_head,
                                         from_user_id=users.employee, reason='Team change')
    assert transfer.status == 'pending'
    assert AssetAssignment.active_for(asset_id).id == old_assignment_id

    workflow.approve_by_manager(transfer.id, users.dept_head, notes='fine')
    assert transfer.status == 'manager_approved'
    assert transfer.manager_approver_id == users.dept_head
    assert transfer.manager_approved_at is not None

    workflow.approve_by_admin(transfer.id, users.asset_manager, notes='done')
    assert transfer.status == 'completed'
    assert transfer.admin_approver_id == users.asset_manager
    assert transfer.completed_at is not None

    old = db.session.get(AssetAssignment, old_assignment_id)
    assert not old.is_active
    assert old.returned_to_user_id == users.asset_manager
    assert old.return_condition is None

    new = AssetAssignment.active_for(asset_id)
    assert new.assigned_to_user_id == users.other_employee
    assert new.assigned_by_user_id == users.asset_manager
    assert new.assign_condition == 'Good'
    assert new.assign_condition_rating == 4
    assert new.assign_notes == f'Transferred via request {transfer.id}'
    assert db.session.get(Asset, asset_id).status == 'assigned'


def test_transfer_from_inventory(ctx, users):
    asset = make_asset()
    transfer = workflow.request_transfer(asset.id, users.employee, users.dept_head)
    assert transfer.from_user_id is None
    workflow.approve_by_manager(transfer.id, users.dept_head)
    workflow.approve_by_admin(transfer.id, users.admin)

    assert AssetAssignment.query.filter_by(asset_id=asset.id).count() == 1
    assert AssetAssignment.active_for(asset.id).assigned_to_user_id == users.employee
    assert db.session.get(Asset, asset.id).status == 'assigned'


def test_double_manager_approval_fails(ctx, users, held_asset):
    asset_id, _ = held_asset
    transfer = workflow.request_transfer(asset_id, users.other_employee, users.dept_head)
    workflow.approve_by_manager(transfer.id, users.dept_head)
    with pytest.raises(BadRequestError, match='Cannot approve transfer with status: manager_approved'):
        workflow.approve_by_manager(transfer.id, users.dept_head)
    assert transfer.status == 'manager_approved'


def test_admin_approval_requires_manager_approval(ctx, users, held_asset):
    asset_id, old_assignment_id = held_asset
    transfer = workflow.request_transfer(asset_id, users.other_employee, users.dept_head)
    with pytest.raises(BadRequestError, match='Transfer must be manager approved first. Current status: pending'):
        workflow.approve_by_admin(transfer.id, users.asset_manager)
    assert transfer.status == 'pending'
    assert AssetAssignment.active_for(asset_id).id == old_assignment_id


def test_wrong_from_user_fails(ctx, users, held_asset):
    asset_id, _ = held_asset
    with pytest.raises(BadRequestError, match='not currently assigned to the specified from user'):
        workflow.request_transfer(asset_id, users.admin, users.dept_head, from_user_id=users.other_employee)
    assert AssetTransfer.query.count() == 0


def test_missing_parties(ctx, users, held_asset):
    asset_id, _ = held_asset
    with pytest.raises(NotFoundError, match='Asset not found'):
        workflow.request_transfer(999, users.other_employee, users.dept_head)
    with pytest.raises(NotFoundError, match='From user not found'):
        workflow.request_transfer(asset_id, users.other_employee, users.dept_head, from_user_id=999)
    with pytest.raises(NotFoundError, match='To user not found'):
        workflow.request_transfer(asset_id, 999, users.dept_head)
    with pytest.raises(NotFoundError, match='Transfer not found'):
        workflow.approve_by_manager(999, users.dept_head)


def test_one_in_flight_transfer_per_asset(ctx, users, held_asset):
    asset_id, _ = held_asset
    first = workflow.request_transfer(asset_id, users.other_employee, users.dept_head)
    with pytest.raises(BadRequestError, match='already a pending transfer request'):
        workflow.request_transfer(asset_id, users.admin, users.dept_head)

    workflow.approve_by_manager(first.id, users.dept_head)
    with pytest.raises(BadRequestError):
        workflow.request_transfer(asset_id, users.admin, users.dept_head)

    workflow.reject(first.id, users.asset_manager, 'Budget freeze')
    second = workflow.request_transfer(asset_id, users.admin, users.dept_head)
    assert second.status == 'pending'


def test_database_rejects_second_in_flight_transfer(ctx, users, held_asset):
    asset_id, _ = held_asset
    workflow.request_transfer(asset_id, users.other_employee, users.dept_head)
    with pytest.raises(ConflictError):
        with transaction() as session:
            session.add(AssetTransfer(asset_id=asset_id, to_user_id=users.admin,
                                      requested_by_user_id=users.dept_head, status='manager_approved'))
    assert AssetTransfer.query.count() == 1


def test_reject_rules(ctx, users, held_asset):
    asset_id, old_assignment_id = held_asset
    transfer = workflow.request_transfer(asset_id, users.other_employee, users.dept_head)
    with pytest.raises(ValidationError):
        workflow.reject(transfer.id, users.dept_head, '  ')

    workflow.reject(transfer.id, users.dept_head, 'Not needed')
    assert transfer.status == 'rejected'
    assert transfer.rejected_by_user_id == users.dept_head
    assert transfer.rejection_reason == 'Not needed'
    assert AssetAssignment.active_for(asset_id).id == old_assignment_id

    with pytest.raises(BadRequestError, match='Transfer is already rejected'):
        workflow.reject(transfer.id, users.dept_head, 'again')
    with pytest.raises(BadRequestError, match='Cannot approve transfer with status: rejected'):
        workflow.approve_by_manager(transfer.id, users.dept_head)

    completed = workflow.request_transfer(asset_id, users.other_employee, users.dept_head)
    workflow.approve_by_manager(completed.id, users.dept_head)
    workflow.approve_by_admin(completed.id, users.admin)
    with pytest.raises(BadRequestError, match='Cannot reject a completed transfer'):
        workflow.reject(completed.id, users.dept_head, 'too late')


def test_admin_approval_rolls_back_every_write_on_failure(ctx, users, held_asset, monkeypatch):
    asset_id, old_assignment_id = held_asset
    transfer = workflow.request_transfer(asset_id, users.other_employee, users.dept_head)
    workflow.approve_by_manager(transfer.id, users.dept_head)

    def explode(*args, **kwargs):
        raise RuntimeError('storage failure')

    monkeypatch.setattr(transfers_module.events, 'record_change', explode)
    with pytest.raises(RuntimeError):
        workflow.approve_by_admin(transfer.id, users.asset_manager)
    monkeypatch.undo()

    assert db.session.get(AssetTransfer, transfer.id).status == 'manager_approved'
    assert AssetAssignment.active_for(asset_id).id == old_assignment_id
    assert AssetAssignment.query.filter_by(asset_id=asset_id).count() == 1
    assert db.session.get(Asset, asset_id).status == 'assigned'


def test_stale_status_is_caught_at_write(ctx, users, held_asset):
    asset_id, _ = held_asset
    transfer = workflow.request_transfer(asset_id, users.other_employee, users.dept_head)
    assert transfer.status == 'pending'

    # Another request rejects it after our read but before our write
    db.session.execute(
        update(AssetTransfer)
        .where(AssetTransfer.id == transfer.id)
        .values(status='rejected')
        .execution_options(synchronize_session=False)
    )
    assert transfer.status == 'pending'
    with pytest.raises(BadRequestError, match='Cannot approve transfer with status: rejected'):
        workflow.approve_by_manager(transfer.id, users.dept_head)


def test_soft_deleted_asset_cannot_complete(ctx, users):
    asset = make_asset()
    transfer = workflow.request_transfer(asset.id, users.employee, users.dept_head)
    workflow.approve_by_manager(transfer.id, users.dept_head)
    AssetRegistry().soft_delete(asset.id)
    with pytest.raises(NotFoundError, match='Asset not found'):
        workflow.approve_by_admin(transfer.id, users.admin)
    assert db.session.get(AssetTransfer, transfer.id).status == 'manager_approved'


def test_notifications_follow_the_workflow(ctx, users, held_asset):
    asset_id, _ = held_asset
    transfer = workflow.request_transfer(asset_id, users.other_employee, users.dept_head)
    kinds = {(n.user_id, n.type) for n in Notification.query.filter_by(type='transfer-requested')}
    assert kinds == {(users.other_employee, 'transfer-requested'), (users.employee, 'transfer-requested')}

    workflow.approve_by_manager(transfer.id, users.dept_head)
    workflow.approve_by_admin(transfer.id, users.asset_manager)
    approved = {n.user_id for n in Notification.query.filter_by(type='transfer-approved')}
    assert approved == {users.dept_head, users.other_employee, users.employee}


def test_pending_and_statistics(ctx, users):
    a = make_asset(asset_tag='LAP-001')
    b = make_asset(asset_tag='LAP-002')
    c = make_asset(asset_tag='LAP-003')
    t1 = workflow.request_transfer(a.id, users.employee, users.dept_head)
    t2 = workflow.request_transfer(b.id, users.employee, users.dept_head)
    t3 = workflow.request_transfer(c.id, users.employee, users.dept_head)
    workflow.approve_by_manager(t2.id, users.dept_head)
    workflow.reject(t3.id, users.dept_head, 'no')

    assert [t.id for t in workflow.pending()] == [t1.id, t2.id]
    assert workflow.statistics() == {
        'total': 3, 'pending': 1, 'manager_approved': 1, 'completed': 0,
        'rejected': 1, 'awaiting_action': 2,
    }
