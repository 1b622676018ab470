# asset_tracker/routes/reports.py
from flask import Blueprint, make_response, request
from flask_login import current_user

from asset_tracker.errors import ForbiddenError
from asset_tracker.models import Role
from asset_tracker.security import roles_required
from asset_tracker.services.reports import build_report
from asset_tracker.services.validation import parse_date

reports_bp = Blueprint('reports', __name__, url_prefix='/api/reports')

# People and audit reports are not for asset managers
RESTRICTED = {'users', 'audit-logs'}
COMPLIANCE = (Role.SUPER_ADMIN, Role.AUDITOR)


@reports_bp.route('/<kind>', methods=['GET'])
@roles_required(Role.SUPER_ADMIN, Role.ASSET_MANAGER, Role.AUDITOR)
def download_report(kind):
    if kind in RESTRICTED and not current_user.has_role(*COMPLIANCE):
        raise ForbiddenError(required_roles=list(COMPLIANCE))
    filename, mimetype, payload = build_report(
        kind,
        request.args.get('format'),
        parse_date(request.args.get('date_from'), 'date_from'),
        parse_date(request.args.get('date_to'), 'date_to'),
    )
    response = make_response(payload)
    response.headers["Content-Disposition"] = f"attachment; filename={filename}"
    response.headers["Content-type"] = mimetype
    return response
