import csv
import io

from openpyxl import load_workbook


def create_asset(client, headers, tag='LAP-001', **fields):
    payload = {'asset_tag': tag, 'name': 'ThinkPad X1', 'purchase_cost': '1200.00'}
    payload.update(fields)
    return client.post('/api/assets', json=payload, headers=headers)


def assign(client, headers, asset_id, user_id):
    return client.post('/api/assignments', headers=headers, json={
        'asset_id': asset_id, 'assigned_to_user_id': user_id,
        'assign_condition': 'Excellent', 'assign_condition_rating': 5,
    })


def test_health(client):
    assert client.get('/api/health').json == {'status': 'ok'}


def test_authentication_required(client):
    response = client.get('/api/assets')
    assert response.status_code == 401
    assert response.json['error']['code'] == 'UNAUTHORIZED'


def test_role_checks(client, users, auth_headers):
    response = create_asset(client, auth_headers(users.employee))
    assert response.status_code == 403
    assert response.json['error']['code'] == 'FORBIDDEN'

    assert client.get('/api/assignments', headers=auth_headers(users.employee)).status_code == 403
    assert client.get('/api/assignments', headers=auth_headers(users.auditor)).status_code == 200
    assert client.get('/api/transfers/pending', headers=auth_headers(users.auditor)).status_code == 403
    assert client.get('/api/transfers', headers=auth_headers(users.auditor)).status_code == 200
    assert client.get('/api/reports/assets', headers=auth_headers(users.dept_head)).status_code == 403


def test_asset_crud_over_http(client, users, auth_headers):
    manager = auth_headers(users.asset_manager)
    created = create_asset(client, manager, serial_number='SN-1')
    assert created.status_code == 201
    asset_id = created.json['id']
    assert created.json['status'] == 'available'

    assert create_asset(client, manager).json['error']['code'] == 'CONFLICT'

    listing = client.get('/api/assets?search=thinkpad&limit=5', headers=auth_headers(users.employee))
    assert listing.status_code == 200
    assert listing.json['meta']['total'] == 1
    assert listing.json['data'][0]['asset_tag'] == 'LAP-001'

    patched = client.patch(f'/api/assets/{asset_id}', headers=manager, json={'location': 'HQ'})
    assert patched.json['location'] == 'HQ'

    status = client.patch(f'/api/assets/{asset_id}/status', headers=manager, json={'status': 'assigned'})
    assert status.status_code == 400
    assert status.json['error']['code'] == 'BAD_REQUEST'

    trail = client.get(f'/api/assets/{asset_id}/audit', headers=auth_headers(users.auditor))
    assert [entry['action'] for entry in trail.json] == ['update', 'create']
    assert trail.json[0]['changes']['after']['location'] == 'HQ'
    assert client.get(f'/api/assets/{asset_id}/audit', headers=auth_headers(users.employee)).status_code == 403

    assert client.delete(f'/api/assets/{asset_id}', headers=manager).status_code == 403
    assert client.delete(f'/api/assets/{asset_id}', headers=auth_headers(users.admin)).status_code == 200
    missing = client.get(f'/api/assets/{asset_id}', headers=manager)
    assert missing.status_code == 404
    assert missing.json['error']['code'] == 'NOT_FOUND'


def test_bad_query_parameters(client, users, auth_headers):
    headers = auth_headers(users.employee)
    assert client.get('/api/assets?status=lost', headers=headers).status_code == 400
    assert client.get('/api/assets?limit=1000', headers=headers).status_code == 400
    assert client.get('/api/assets?sort_by=secret', headers=headers).status_code == 400


def test_asset_qr_code(client, users, auth_headers):
    asset_id = create_asset(client, auth_headers(users.asset_manager)).json['id']
    response = client.get(f'/api/assets/{asset_id}/qr', headers=auth_headers(users.employee))
    assert response.status_code == 200
    assert response.mimetype == 'image/png'
    assert response.data.startswith(b'\x89PNG')


def test_assignment_lifecycle_over_http(client, users, auth_headers):
    manager = auth_headers(users.asset_manager)
    asset_id = create_asset(client, manager).json['id']

    created = assign(client, manager, asset_id, users.employee)
    assert created.status_code == 201
    assignment_id = created.json['id']
    assert created.json['assigned_to']['id'] == users.employee

    assert assign(client, manager, asset_id, users.other_employee).status_code == 400

    own = client.get(f'/api/assignments/user/{users.employee}', headers=auth_headers(users.employee))
    assert [a['id'] for a in own.json] == [assignment_id]
    other = client.get(f'/api/assignments/user/{users.employee}', headers=auth_headers(users.other_employee))
    assert other.status_code == 403

    no_photos = client.patch(f'/api/assignments/{assignment_id}/return', headers=manager, json={
        'return_condition': 'Good', 'return_condition_rating': 4, 'return_photo_urls': []})
    assert no_photos.status_code == 400

    returned = client.patch(f'/api/assignments/{assignment_id}/return', headers=manager, json={
        'return_condition': 'Damaged', 'return_condition_rating': 2, 'return_photo_urls': ['crack.png']})
    assert returned.status_code == 200
    assert returned.json['is_active'] is False

    asset = client.get(f'/api/assets/{asset_id}', headers=manager).json
    assert asset['status'] == 'damaged'
    assert asset['current_assignment'] is None

    stats = client.get('/api/assignments/statistics', headers=manager).json
    assert stats == {'total': 1, 'active': 0, 'returned': 1, 'overdue': 0}


def test_transfer_workflow_over_http(client, users, auth_headers):
    manager = auth_headers(users.asset_manager)
    dept_head = auth_headers(users.dept_head)
    asset_id = create_asset(client, manager).json['id']
    assign(client, manager, asset_id, users.employee)

    requested = client.post('/api/transfers', headers=dept_head, json={
        'asset_id': asset_id, 'from_user_id': users.employee, 'to_user_id': users.other_employee,
        'transfer_reason': 'Moving teams'})
    assert requested.status_code == 201
    transfer_id = requested.json['id']

    duplicate = client.post('/api/transfers', headers=dept_head, json={
        'asset_id': asset_id, 'to_user_id': users.admin})
    assert duplicate.status_code == 400

    early = client.patch(f'/api/transfers/{transfer_id}/approve/admin', headers=manager, json={})
    assert early.status_code == 400

    assert client.patch(f'/api/transfers/{transfer_id}/approve/manager', headers=manager).status_code == 403
    approved = client.patch(f'/api/transfers/{transfer_id}/approve/manager', headers=dept_head,
                            json={'notes': 'ok'})
    assert approved.json['status'] == 'manager_approved'

    completed = client.patch(f'/api/transfers/{transfer_id}/approve/admin', headers=manager, json={})
    assert completed.status_code == 200
    assert completed.json['status'] == 'completed'

    holder = client.get(f'/api/assignments/user/{users.other_employee}',
                        headers=auth_headers(users.other_employee)).json
    assert holder[0]['assign_notes'] == f'Transferred via request {transfer_id}'

    stats = client.get('/api/transfers/statistics', headers=auth_headers(users.auditor)).json
    assert stats['completed'] == 1
    assert stats['awaiting_action'] == 0

    reject = client.patch(f'/api/transfers/{transfer_id}/reject', headers=dept_head,
                          json={'rejection_reason': 'late'})
    assert reject.status_code == 400
    assert reject.json['error']['message'] == 'Cannot reject a completed transfer'


def test_notifications_endpoint(client, users, auth_headers):
    manager = auth_headers(users.asset_manager)
    employee = auth_headers(users.employee)
    asset_id = create_asset(client, manager).json['id']
    assign(client, manager, asset_id, users.employee)

    inbox = client.get('/api/notifications', headers=employee).json
    assert len(inbox) == 1
    assert inbox[0]['type'] == 'assignment-created'

    read = client.patch(f"/api/notifications/{inbox[0]['id']}/read", headers=employee)
    assert read.json['is_read'] is True
    assert client.get('/api/notifications?unread=true', headers=employee).json == []
    assert client.patch(f"/api/notifications/{inbox[0]['id']}/read", headers=manager).status_code == 404


def test_reports_download(client, users, auth_headers):
    manager = auth_headers(users.asset_manager)
    asset_id = create_asset(client, manager).json['id']
    assign(client, manager, asset_id, users.employee)

    response = client.get('/api/reports/assets?format=csv', headers=auth_headers(users.auditor))
    assert response.status_code == 200
    assert 'attachment; filename=asset_register.csv' in response.headers['Content-Disposition']
    rows = list(csv.reader(io.StringIO(response.data.decode('utf-8'))))
    assert rows[0][0] == 'Asset Tag'
    assert rows[1][0] == 'LAP-001'
    assert rows[1][-1] == 'Alice Employee'

    response = client.get('/api/reports/assignments?format=xlsx', headers=manager)
    assert response.status_code == 200
    sheet = load_workbook(io.BytesIO(response.data)).active
    assert sheet.cell(row=2, column=1).value == 'LAP-001'

    assert client.get('/api/reports/assets?format=pdf', headers=manager).status_code == 400
    assert client.get('/api/reports/unknown', headers=manager).status_code == 400


def test_categories_and_roles(client, users, auth_headers):
    created = client.post('/api/categories', headers=auth_headers(users.asset_manager), json={
        'name': 'Laptops', 'code': 'lap', 'depreciation_rate': '20', 'useful_life_years': 5})
    assert created.status_code == 201
    assert created.json['code'] == 'LAP'
    assert client.get('/api/categories', headers=auth_headers(users.employee)).json[0]['name'] == 'Laptops'

    forbidden = client.patch(f'/api/users/{users.employee}/role', headers=auth_headers(users.asset_manager),
                             json={'role': 'AUDITOR'})
    assert forbidden.status_code == 403
    changed = client.patch(f'/api/users/{users.employee}/role', headers=auth_headers(users.admin),
                           json={'role': 'AUDITOR'})
    assert changed.json['role'] == 'AUDITOR'
    invalid = client.patch(f'/api/users/{users.employee}/role', headers=auth_headers(users.admin),
                           json={'role': 'OVERLORD'})
    assert invalid.status_code == 400


def test_asset_register_filters_on_purchase_date(client, users, auth_headers):
    manager = auth_headers(users.asset_manager)
    create_asset(client, manager, tag='LAP-OLD', purchase_date='2023-01-10')
    create_asset(client, manager, tag='LAP-NEW', purchase_date='2024-06-01')

    response = client.get('/api/reports/assets?date_from=2024-01-01&date_to=2024-06-01', headers=manager)
    rows = list(csv.reader(io.StringIO(response.data.decode('utf-8'))))
    assert [row[0] for row in rows[1:]] == ['LAP-NEW']


def test_user_and_audit_log_reports(client, users, auth_headers):
    manager = auth_headers(users.asset_manager)
    auditor = auth_headers(users.auditor)
    asset_id = create_asset(client, manager).json['id']

    assert client.get('/api/reports/users', headers=manager).status_code == 403
    assert client.get('/api/reports/audit-logs', headers=manager).status_code == 403

    response = client.get('/api/reports/users?format=csv', headers=auditor)
    assert response.status_code == 200
    assert 'filename=users.csv' in response.headers['Content-Disposition']
    rows = list(csv.reader(io.StringIO(response.data.decode('utf-8'))))
    assert rows[0][:3] == ['Email', 'First Name', 'Last Name']
    assert 'employee@example.com' in {row[0] for row in rows[1:]}
    assert len(rows) == 7

    response = client.get('/api/reports/audit-logs?format=csv', headers=auth_headers(users.admin))
    assert response.status_code == 200
    rows = list(csv.reader(io.StringIO(response.data.decode('utf-8'))))
    assert rows[0] == ['Entity Type', 'Entity ID', 'Action', 'User', 'IP Address', 'Created At']
    assert ['Asset', str(asset_id), 'create', 'Test AssetManager'] in [row[:4] for row in rows[1:]]

    response = client.get('/api/reports/audit-logs?format=xlsx', headers=auditor)
    sheet = load_workbook(io.BytesIO(response.data)).active
    assert sheet.cell(row=1, column=1).value == 'Entity Type'


def test_non_string_text_fields_are_rejected(client, users, auth_headers):
    manager = auth_headers(users.asset_manager)
    dept_head = auth_headers(users.dept_head)
    asset_id = create_asset(client, manager).json['id']

    def assert_rejected(response, field):
        assert response.status_code == 400
        assert response.json['error']['code'] == 'VALIDATION_ERROR'
        assert response.json['error']['details']['field'] == field

    base = {'asset_id': asset_id, 'assigned_to_user_id': users.employee,
            'assign_condition': 'Good', 'assign_condition_rating': 4}
    assert_rejected(client.post('/api/assignments', headers=manager,
                                json=dict(base, assign_notes={'x': 1})), 'assign_notes')
    assert_rejected(client.post('/api/assignments', headers=manager,
                                json=dict(base, assign_signature=['png'])), 'assign_signature')

    assignment_id = client.post('/api/assignments', headers=manager, json=base).json['id']
    assert_rejected(client.patch(f'/api/assignments/{assignment_id}/return', headers=manager, json={
        'return_condition': 'Good', 'return_condition_rating': 4, 'return_photo_urls': ['a.png'],
        'return_notes': ['scratched']}), 'return_notes')

    assert_rejected(client.post('/api/transfers', headers=dept_head, json={
        'asset_id': asset_id, 'to_user_id': users.other_employee, 'transfer_reason': {'k': 'v'}}),
        'transfer_reason')

    transfer_id = client.post('/api/transfers', headers=dept_head, json={
        'asset_id': asset_id, 'to_user_id': users.other_employee}).json['id']
    assert_rejected(client.patch(f'/api/transfers/{transfer_id}/approve/manager', headers=dept_head,
                                 json={'notes': {'x': 1}}), 'notes')
    assert_rejected(client.patch(f'/api/transfers/{transfer_id}/reject', headers=dept_head,
                                 json={'rejection_reason': ['a']}), 'rejection_reason')

    client.patch(f'/api/transfers/{transfer_id}/approve/manager', headers=dept_head)
    assert_rejected(client.patch(f'/api/transfers/{transfer_id}/approve/admin', headers=manager,
                                 json={'notes': 42}), 'notes')

    transfer = client.get(f'/api/transfers/{transfer_id}', headers=manager).json
    assert transfer['status'] == 'manager_approved'
