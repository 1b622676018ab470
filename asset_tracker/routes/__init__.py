# asset_tracker/routes/__init__.py
from flask import Blueprint, request

from asset_tracker.errors import ValidationError

# Create blueprints
assets_bp = Blueprint('assets', __name__, url_prefix='/api/assets')
assignments_bp = Blueprint('assignments', __name__, url_prefix='/api/assignments')
transfers_bp = Blueprint('transfers', __name__, url_prefix='/api/transfers')


def json_body():
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


def page_payload(result, serialize=lambda item: item.to_dict()):
    return {
        'data': [serialize(item) for item in result['items']],
        'meta': {
            'total': result['total'],
            'page': result['page'],
            'limit': result['limit'],
            'total_pages': result['pages'],
        },
    }


# Import views after blueprints are created
from . import assets, assignments, transfers  # noqa: E402,F401
