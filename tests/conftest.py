"""
Pytest fixtures: an app on in-memory SQLite, one user per role, and helpers
for bearer-token requests.
"""
from types import SimpleNamespace

import pytest

from asset_tracker import create_app, db
from asset_tracker.config import TestingConfig
from asset_tracker.models import Category, Role, User
from asset_tracker.security import encode_token

PASSWORD = 'SecurePass@123'


@pytest.fixture
def app():
    """Create Flask application for testing"""
    app = create_app(TestingConfig)
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Create Flask test client"""
    return app.test_client()


@pytest.fixture
def ctx(app, users):
    """Application context for calling services directly, opened after seeding"""
    with app.app_context():
        yield app


def make_user(role=Role.EMPLOYEE, email=None, first_name='Test', last_name=None, **kwargs):
    user = User(
        email=email or f'{role.lower()}@example.com',
        first_name=first_name,
        last_name=last_name or role.title().replace('_', ''),
        role=role,
        **kwargs,
    )
    user.set_password(PASSWORD)
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def users(app):
    """Ids of one user per role plus a second employee"""
    with app.app_context():
        ids = {
            'admin': make_user(Role.SUPER_ADMIN).id,
            'asset_manager': make_user(Role.ASSET_MANAGER).id,
            'dept_head': make_user(Role.DEPT_HEAD).id,
            'auditor': make_user(Role.AUDITOR).id,
            'employee': make_user(Role.EMPLOYEE, first_name='Alice').id,
            'other_employee': make_user(Role.EMPLOYEE, email='bob@example.com', first_name='Bob').id,
        }
    return SimpleNamespace(**ids)


@pytest.fixture
def auth_headers(app):
    """Build an Authorization header for a user id"""
    def build(user_id):
        with app.app_context():
            token, _ = encode_token(db.session.get(User, user_id))
        return {'Authorization': f'Bearer {token}'}
    return build


def make_category(code='LAPTOP', depreciation_rate=20, useful_life_years=5, salvage_value=100):
    category = Category(name=code.title(), code=code, depreciation_rate=depreciation_rate,
                        useful_life_years=useful_life_years, salvage_value=salvage_value)
    db.session.add(category)
    db.session.commit()
    return category


def make_asset(asset_tag='LAP-001', name='ThinkPad X1', **fields):
    from asset_tracker.services.assets import AssetRegistry
    data = {'asset_tag': asset_tag, 'name': name, 'purchase_cost': '1000.00'}
    data.update(fields)
    return AssetRegistry().create(data)
