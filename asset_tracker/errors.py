"""
Typed errors for the asset tracker.

Every error carries a stable ``code`` and HTTP ``status_code``. Clients branch
on the code; the message is for humans only.

    AssetTrackerError
    +-- NotFoundError        NOT_FOUND       404
    +-- ConflictError        CONFLICT        409
    +-- BadRequestError      BAD_REQUEST     400
    |   +-- ValidationError  VALIDATION_ERROR 400
    +-- UnauthorizedError    UNAUTHORIZED    401
    +-- ForbiddenError       FORBIDDEN       403
"""
from flask import jsonify
from werkzeug.exceptions import HTTPException

from asset_tracker.logger import get_logger

logger = get_logger(__name__)


class AssetTrackerError(Exception):
    code = 'INTERNAL_ERROR'
    status_code = 500
    default_message = 'Unexpected error'

    def __init__(self, message=None, **details):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self):
        return {
            'error': {
                'code': self.code,
                'message': self.message,
                'details': self.details,
            }
        }


class NotFoundError(AssetTrackerError):
    code = 'NOT_FOUND'
    status_code = 404
    default_message = 'Resource not found'


class ConflictError(AssetTrackerError):
    code = 'CONFLICT'
    status_code = 409
    default_message = 'Conflicting record already exists'


class BadRequestError(AssetTrackerError):
    code = 'BAD_REQUEST'
    status_code = 400
    default_message = 'Request violates a workflow precondition'


class ValidationError(BadRequestError):
    code = 'VALIDATION_ERROR'
    default_message = 'Invalid input'


class UnauthorizedError(AssetTrackerError):
    code = 'UNAUTHORIZED'
    status_code = 401
    default_message = 'Authentication required'


class ForbiddenError(AssetTrackerError):
    code = 'FORBIDDEN'
    status_code = 403
    default_message = 'Insufficient permissions'


def register_error_handlers(app):
    @app.errorhandler(AssetTrackerError)
    def handle_asset_tracker_error(error):
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_exception(error):
        body = {
            'error': {
                'code': error.name.upper().replace(' ', '_'),
                'message': error.description,
                'details': {},
            }
        }
        return jsonify(body), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        logger.exception('Unhandled error: %s', error)
        return jsonify(AssetTrackerError().to_dict()), 500
