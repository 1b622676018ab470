from asset_tracker import db
from asset_tracker.errors import ConflictError, NotFoundError, ValidationError
from asset_tracker.models import Category, Role, User
from asset_tracker.services import events
from asset_tracker.services.unit_of_work import transaction
from asset_tracker.services.validation import clean_text, parse_decimal, parse_int, require_fields


def find_user(user_id):
    if user_id is None:
        return None
    return db.session.get(User, user_id)


def require_user(user_id, message='User not found'):
    # Deactivated users stay valid parties; deleted ones do not
    user = find_user(user_id)
    if user is None or user.is_deleted:
        raise NotFoundError(message, user_id=user_id)
    return user


def find_category(category_id):
    if category_id is None:
        return None
    return db.session.get(Category, category_id)


def require_category(category_id):
    category = find_category(category_id)
    if category is None:
        raise NotFoundError('Category not found', category_id=category_id)
    return category


def change_role(user_id, role, actor_id=None):
    if role not in Role.ALL:
        raise ValidationError(f"role must be one of: {', '.join(Role.ALL)}", field='role', allowed=list(Role.ALL))
    user = require_user(user_id)
    previous = user.role
    user.role = role
    with transaction() as session:
        events.record_change(session, 'User', user.id, 'update', actor_id,
                             before={'role': previous}, after={'role': role})
    return user


def create_category(data, actor_id=None):
    require_fields(data, 'name', 'code')
    rate = parse_decimal(data.get('depreciation_rate'), 'depreciation_rate')
    if rate is not None and rate > 100:
        raise ValidationError('depreciation_rate must be a percentage between 0 and 100', field='depreciation_rate')
    category = Category(
        name=clean_text(data['name'], 'name', required=True),
        code=clean_text(data['code'], 'code', required=True).upper(),
        description=clean_text(data.get('description'), 'description'),
        depreciation_rate=rate,
        useful_life_years=parse_int(data.get('useful_life_years'), 'useful_life_years', minimum=1),
        salvage_value=parse_decimal(data.get('salvage_value'), 'salvage_value'),
    )
    if Category.query.filter_by(code=category.code).first() is not None:
        raise ConflictError('Category code already exists', code=category.code)
    with transaction('Category code already exists') as session:
        session.add(category)
        session.flush()
        events.record_change(session, 'Category', category.id, 'create', actor_id, after=category.to_dict())
    return category


def list_categories():
    return Category.query.order_by(Category.name.asc()).all()
