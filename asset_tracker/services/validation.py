"""Coercion of request input into model values. Failures raise ValidationError."""
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from asset_tracker.errors import ValidationError
from asset_tracker.models import match_enum


def require_fields(data, *fields):
    missing = [f for f in fields if data.get(f) in (None, '')]
    if missing:
        raise ValidationError(f"Missing required field(s): {', '.join(missing)}", fields=missing)


def parse_id(value, field='id', required=True):
    if value in (None, ''):
        if required:
            raise ValidationError(f'{field} is required', field=field)
        return None
    if isinstance(value, bool):
        raise ValidationError(f'{field} must be an integer', field=field)
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be an integer', field=field)
    if parsed < 1:
        raise ValidationError(f'{field} must be positive', field=field)
    return parsed


def parse_int(value, field, default=None, minimum=None, maximum=None):
    if value in (None, ''):
        return default
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be an integer', field=field)
    if minimum is not None and parsed < minimum:
        raise ValidationError(f'{field} must be at least {minimum}', field=field)
    if maximum is not None and parsed > maximum:
        raise ValidationError(f'{field} must be at most {maximum}', field=field)
    return parsed


def parse_decimal(value, field, minimum=Decimal(0)):
    if value in (None, ''):
        return None
    try:
        parsed = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f'{field} must be a number', field=field)
    if not parsed.is_finite():
        raise ValidationError(f'{field} must be a number', field=field)
    if minimum is not None and parsed < minimum:
        raise ValidationError(f'{field} must not be negative', field=field)
    return parsed


def parse_date(value, field):
    if value in (None, ''):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        # Accept full ISO timestamps as well as plain dates
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValidationError(f'{field} must be an ISO date (YYYY-MM-DD)', field=field)


def parse_enum(enum_cls, value, field):
    try:
        return match_enum(enum_cls, value)
    except ValueError:
        allowed = [m.value for m in enum_cls]
        raise ValidationError(f'{field} must be one of: {", ".join(allowed)}', field=field, allowed=allowed)


def parse_rating(value, field='condition_rating'):
    if isinstance(value, bool):
        raise ValidationError(f'{field} must be an integer between 1 and 5', field=field)
    try:
        rating = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be an integer between 1 and 5', field=field)
    if rating != value and str(rating) != str(value).strip():
        raise ValidationError(f'{field} must be an integer between 1 and 5', field=field)
    if not 1 <= rating <= 5:
        raise ValidationError(f'{field} must be an integer between 1 and 5', field=field)
    return rating


def parse_bool(value, field):
    if value is None or isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ('true', '1', 'yes'):
        return True
    if text in ('false', '0', 'no'):
        return False
    raise ValidationError(f'{field} must be true or false', field=field)


def clean_text(value, field='value', required=False):
    if value is not None and not isinstance(value, str):
        raise ValidationError(f'{field} must be a string', field=field)
    text = value.strip() if value is not None else None
    if required and not text:
        raise ValidationError(f'{field} is required', field=field)
    return text or None
