import csv
import io
from datetime import timedelta

from openpyxl import Workbook

from asset_tracker.clock import as_datetime
from asset_tracker.errors import ValidationError
from asset_tracker.models import Asset, AssetAssignment, AssetTransfer, AuditLog, User

CSV = 'csv'
XLSX = 'xlsx'
FORMATS = (CSV, XLSX)
# Audit log report keeps the newest rows only
AUDIT_REPORT_LIMIT = 1000

MIMETYPES = {
    CSV: 'text/csv',
    XLSX: 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
}


def _name(user):
    return user.full_name if user is not None else ''


def _cell(value):
    if value is None:
        return ''
    if hasattr(value, 'isoformat'):
        return value.isoformat()
    return value if isinstance(value, (int, float, str)) else str(value)


def _between(column, date_from, date_to):
    criteria = []
    if date_from:
        criteria.append(column >= as_datetime(date_from))
    if date_to:
        criteria.append(column < as_datetime(date_to + timedelta(days=1)))
    return criteria


def asset_register(date_from=None, date_to=None):
    headers = ['Asset Tag', 'Name', 'Serial Number', 'Category', 'Status', 'Location', 'Vendor',
               'Purchase Date', 'Purchase Cost', 'Current Value', 'Currency', 'Warranty End',
               'Assigned To']
    query = Asset.query.filter(Asset.deleted_at.is_(None))
    if date_from:
        query = query.filter(Asset.purchase_date >= date_from)
    if date_to:
        query = query.filter(Asset.purchase_date <= date_to)
    rows = []
    for asset in query.order_by(Asset.asset_tag.asc()).all():
        active = asset.active_assignment
        rows.append([
            asset.asset_tag, asset.name, asset.serial_number,
            asset.category.name if asset.category else '',
            asset.status, asset.location, asset.vendor, asset.purchase_date,
            asset.purchase_cost, asset.current_value, asset.currency, asset.warranty_end_date,
            _name(active.assigned_to) if active else '',
        ])
    return 'asset_register', headers, rows


def assignment_report(date_from=None, date_to=None):
    headers = ['Asset Tag', 'Asset Name', 'Assigned To', 'Assigned By', 'Assigned At',
               'Expected Return', 'Assign Condition', 'Returned At', 'Return Condition', 'Active']
    query = AssetAssignment.query.filter(*_between(AssetAssignment.assigned_at, date_from, date_to))
    rows = []
    for a in query.order_by(AssetAssignment.assigned_at.desc()).all():
        rows.append([
            a.asset.asset_tag, a.asset.name, _name(a.assigned_to), _name(a.assigned_by),
            a.assigned_at, a.expected_return_date, a.assign_condition, a.returned_at,
            a.return_condition, 'Yes' if a.is_active else 'No',
        ])
    return 'assignments', headers, rows


def transfer_report(date_from=None, date_to=None):
    headers = ['Transfer ID', 'Asset Tag', 'From', 'To', 'Requested By', 'Requested At', 'Status',
               'Manager Approved At', 'Completed At', 'Rejected At', 'Rejection Reason']
    query = AssetTransfer.query.filter(*_between(AssetTransfer.requested_at, date_from, date_to))
    rows = []
    for t in query.order_by(AssetTransfer.requested_at.desc()).all():
        rows.append([
            t.id, t.asset.asset_tag, _name(t.from_user) or 'Inventory', _name(t.to_user),
            _name(t.requested_by), t.requested_at, t.status, t.manager_approved_at,
            t.completed_at, t.rejected_at, t.rejection_reason,
        ])
    return 'transfers', headers, rows


def user_report(date_from=None, date_to=None):
    headers = ['Email', 'First Name', 'Last Name', 'Phone', 'Department', 'Role', 'Active',
               'MFA Enabled', 'Created At']
    query = User.query.filter(User.deleted_at.is_(None), *_between(User.created_at, date_from, date_to))
    rows = []
    for u in query.order_by(User.created_at.desc(), User.id.desc()).all():
        rows.append([
            u.email, u.first_name, u.last_name, u.phone, u.department, u.role,
            'Yes' if u.is_active else 'No', 'Yes' if u.is_mfa_enabled else 'No', u.created_at.date(),
        ])
    return 'users', headers, rows


def audit_log_report(date_from=None, date_to=None):
    headers = ['Entity Type', 'Entity ID', 'Action', 'User', 'IP Address', 'Created At']
    query = AuditLog.query.filter(*_between(AuditLog.created_at, date_from, date_to))
    rows = []
    for log in (query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
                .limit(AUDIT_REPORT_LIMIT).all()):
        rows.append([
            log.entity_type, log.entity_id, log.action, _name(log.user) or 'System',
            log.ip_address, log.created_at,
        ])
    return 'audit_logs', headers, rows


REPORTS = {
    'assets': asset_register,
    'assignments': assignment_report,
    'transfers': transfer_report,
    'users': user_report,
    'audit-logs': audit_log_report,
}


def render_csv(headers, rows):
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(headers)
    for row in rows:
        writer.writerow([_cell(v) for v in row])
    return output.getvalue().encode('utf-8')


def render_xlsx(title, headers, rows):
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = title[:31]
    sheet.append(headers)
    for row in rows:
        sheet.append([_cell(v) for v in row])
    output = io.BytesIO()
    workbook.save(output)
    return output.getvalue()


def build_report(kind, fmt=CSV, date_from=None, date_to=None):
    """Return (filename, mimetype, payload bytes) for one of the REPORTS."""
    if kind not in REPORTS:
        raise ValidationError(f'Unknown report: {kind}', allowed=sorted(REPORTS))
    fmt = (fmt or CSV).lower()
    if fmt not in FORMATS:
        raise ValidationError('format must be csv or xlsx', field='format', allowed=list(FORMATS))
    if date_from and date_to and date_from > date_to:
        raise ValidationError('date_from must not be after date_to', field='date_from')

    title, headers, rows = REPORTS[kind](date_from, date_to)
    if fmt == XLSX:
        payload = render_xlsx(title, headers, rows)
    else:
        payload = render_csv(headers, rows)
    return f'{title}.{fmt}', MIMETYPES[fmt], payload
