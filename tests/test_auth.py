import pyotp

from asset_tracker import db
from asset_tracker.models import RefreshToken, User
from tests.conftest import PASSWORD


def login(client, email, password=PASSWORD, **extra):
    return client.post('/api/auth/login', json=dict(email=email, password=password, **extra))


def test_register_and_login(client):
    response = client.post('/api/auth/register', json={
        'email': 'New.Hire@Example.com',
        'password': PASSWORD,
        'first_name': 'New',
        'last_name': 'Hire',
    })
    assert response.status_code == 201
    assert response.json['user']['email'] == 'new.hire@example.com'
    assert response.json['user']['role'] == 'EMPLOYEE'
    assert 'password_hash' not in response.json['user']

    response = login(client, 'new.hire@example.com')
    assert response.status_code == 200
    assert response.json['token_type'] == 'Bearer'

    me = client.get('/api/auth/me', headers={'Authorization': f"Bearer {response.json['access_token']}"})
    assert me.status_code == 200
    assert me.json['email'] == 'new.hire@example.com'


def test_register_rejects_duplicates_and_weak_passwords(client, users):
    response = client.post('/api/auth/register', json={
        'email': 'employee@example.com', 'password': PASSWORD, 'first_name': 'A', 'last_name': 'B'})
    assert response.status_code == 409
    assert response.json['error']['code'] == 'CONFLICT'

    response = client.post('/api/auth/register', json={
        'email': 'weak@example.com', 'password': 'password', 'first_name': 'A', 'last_name': 'B'})
    assert response.status_code == 400
    assert response.json['error']['code'] == 'VALIDATION_ERROR'


def test_login_failures(client, app, users):
    response = login(client, 'employee@example.com', 'wrong')
    assert response.status_code == 401
    assert response.json['error']['code'] == 'UNAUTHORIZED'

    with app.app_context():
        db.session.get(User, users.employee).is_active = False
        db.session.commit()
    response = login(client, 'employee@example.com')
    assert response.status_code == 401
    assert response.json['error']['message'] == 'Account is inactive'


def test_refresh_rotates_and_logout_revokes(client, app, users):
    tokens = login(client, 'employee@example.com').json

    rotated = client.post('/api/auth/refresh', json={'refresh_token': tokens['refresh_token']})
    assert rotated.status_code == 200
    assert rotated.json['refresh_token'] != tokens['refresh_token']

    reused = client.post('/api/auth/refresh', json={'refresh_token': tokens['refresh_token']})
    assert reused.status_code == 401
    assert reused.json['error']['message'] == 'Token has been revoked'

    client.post('/api/auth/logout', json={'refresh_token': rotated.json['refresh_token']})
    after_logout = client.post('/api/auth/refresh', json={'refresh_token': rotated.json['refresh_token']})
    assert after_logout.status_code == 401

    with app.app_context():
        assert RefreshToken.query.filter(RefreshToken.revoked_at.is_(None)).count() == 0


def test_access_token_cannot_refresh(client, users):
    tokens = login(client, 'employee@example.com').json
    response = client.post('/api/auth/refresh', json={'refresh_token': tokens['access_token']})
    assert response.status_code == 401


def test_invalid_bearer_token_is_unauthorized(client):
    response = client.get('/api/auth/me', headers={'Authorization': 'Bearer not-a-token'})
    assert response.status_code == 401


def test_mfa_enrolment_and_login(client, users, auth_headers):
    headers = auth_headers(users.employee)

    setup = client.post('/api/auth/mfa/setup', headers=headers)
    assert setup.status_code == 200
    assert setup.json['qr_code'].startswith('data:image/png;base64,')
    totp = pyotp.TOTP(setup.json['secret'])

    bad = client.post('/api/auth/mfa/verify', headers=headers, json={'code': '000000'})
    assert bad.status_code == 400 or totp.verify('000000', valid_window=2)

    verified = client.post('/api/auth/mfa/verify', headers=headers, json={'code': totp.now()})
    assert verified.status_code == 200
    backup_codes = verified.json['backup_codes']
    assert len(backup_codes) == 10

    challenge = login(client, 'employee@example.com')
    assert challenge.status_code == 200
    assert challenge.json == {'requires_mfa': True, 'message': 'MFA code required'}

    assert login(client, 'employee@example.com', mfa_code=totp.now()).status_code == 200

    # Backup codes work once
    assert login(client, 'employee@example.com', mfa_code=backup_codes[0]).status_code == 200
    assert login(client, 'employee@example.com', mfa_code=backup_codes[0]).status_code == 401

    disabled = client.post('/api/auth/mfa/disable', headers=headers, json={'code': totp.now()})
    assert disabled.status_code == 200
    assert 'access_token' in login(client, 'employee@example.com').json
