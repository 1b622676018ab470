import re
import secrets

import pyotp
from flask import current_app

from asset_tracker import bcrypt, db
from asset_tracker.clock import utcnow
from asset_tracker.errors import BadRequestError, ConflictError, UnauthorizedError, ValidationError
from asset_tracker.logger import get_logger
from asset_tracker.models import RefreshToken, Role, User
from asset_tracker.qr import qr_data_url
from asset_tracker.security import ACCESS, REFRESH, decode_token, encode_token, hash_token
from asset_tracker.services import events
from asset_tracker.services.unit_of_work import transaction
from asset_tracker.services.validation import clean_text, require_fields

logger = get_logger(__name__)

EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
PASSWORD_PATTERN = re.compile(r'^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&]).{8,32}$')
PASSWORD_RULE = ('Password must be 8-32 characters and contain at least one uppercase letter, '
                 'one lowercase letter, one number and one special character')


class AuthService:

    # Registration and credentials

    def register(self, data):
        require_fields(data, 'email', 'password', 'first_name', 'last_name')
        email = str(data['email']).strip().lower()
        if not EMAIL_PATTERN.match(email):
            raise ValidationError('Invalid email address', field='email')
        if not PASSWORD_PATTERN.match(str(data['password'])):
            raise ValidationError(PASSWORD_RULE, field='password')
        if User.query.filter_by(email=email).first() is not None:
            raise ConflictError('User with this email already exists')

        user = User(
            email=email,
            first_name=clean_text(data['first_name'], 'first_name', required=True),
            last_name=clean_text(data['last_name'], 'last_name', required=True),
            phone=clean_text(data.get('phone'), 'phone'),
            department=clean_text(data.get('department'), 'department'),
            role=Role.EMPLOYEE,
        )
        user.set_password(data['password'])
        with transaction('User with this email already exists') as session:
            session.add(user)
            session.flush()
            events.record_change(session, 'User', user.id, 'create', user.id, after=user.to_dict())

        logger.info('Registered user %s', user.id)
        return user

    def login(self, email, password, mfa_code=None, ip_address=None, user_agent=None):
        if not email or not password:
            raise ValidationError('Email and password are required')
        user = User.query.filter_by(email=str(email).strip().lower()).first()
        if user is None or user.is_deleted or not user.check_password(password):
            logger.info('Failed login for %s', email)
            raise UnauthorizedError('Invalid credentials')
        if not user.is_active:
            raise UnauthorizedError('Account is inactive')

        if user.is_mfa_enabled:
            if not mfa_code:
                return {'requires_mfa': True, 'message': 'MFA code required'}
            if not self._check_mfa_code(user, mfa_code, allow_backup=True):
                logger.info('Invalid MFA code for user %s', user.id)
                raise UnauthorizedError('Invalid MFA code')

        tokens = self._issue_tokens(user, ip_address, user_agent)
        logger.info('User %s logged in', user.id)
        return dict(tokens, user=user.to_dict())

    def refresh(self, refresh_token, ip_address=None, user_agent=None):
        if not refresh_token:
            raise ValidationError('refresh_token is required', field='refresh_token')
        payload = decode_token(refresh_token, REFRESH)
        entry = RefreshToken.query.filter_by(token_hash=hash_token(refresh_token)).first()
        if entry is None:
            raise UnauthorizedError('Invalid refresh token')
        if str(entry.user_id) != payload['sub']:
            raise UnauthorizedError('Token does not belong to user')
        if entry.revoked_at is not None:
            raise UnauthorizedError('Token has been revoked')
        if entry.expires_at <= utcnow():
            raise UnauthorizedError('Token has expired')
        user = entry.user
        if not user.can_login:
            raise UnauthorizedError('Account is inactive')

        # Rotation: the presented token is spent either way
        entry.revoked_at = utcnow()
        return self._issue_tokens(user, ip_address, user_agent)

    def logout(self, refresh_token):
        if refresh_token:
            entry = RefreshToken.query.filter_by(token_hash=hash_token(refresh_token)).first()
            if entry is not None and entry.revoked_at is None:
                entry.revoked_at = utcnow()
                db.session.commit()
        return {'message': 'Logged out successfully'}

    def _issue_tokens(self, user, ip_address=None, user_agent=None):
        access_token, _ = encode_token(user, ACCESS)
        refresh_token, refresh_expires = encode_token(user, REFRESH)
        db.session.add(RefreshToken(
            user_id=user.id,
            token_hash=hash_token(refresh_token),
            expires_at=refresh_expires,
            ip_address=ip_address,
            user_agent=(user_agent or '')[:256] or None,
        ))
        db.session.commit()
        return {
            'access_token': access_token,
            'refresh_token': refresh_token,
            'token_type': 'Bearer',
            'expires_in': current_app.config['JWT_ACCESS_EXPIRES'],
        }

    # Multi-factor authentication

    def _totp(self, user):
        return pyotp.TOTP(user.mfa_secret)

    def _check_mfa_code(self, user, code, allow_backup=False):
        code = str(code).strip()
        if user.mfa_secret and self._totp(user).verify(code, valid_window=current_app.config['MFA_VALID_WINDOW']):
            return True
        if not allow_backup:
            return False

        # Backup codes are single use
        remaining = list(user.mfa_backup_codes or [])
        for hashed in remaining:
            if bcrypt.check_password_hash(hashed, code.upper()):
                remaining.remove(hashed)
                user.mfa_backup_codes = remaining
                db.session.commit()
                logger.info('User %s used an MFA backup code (%d left)', user.id, len(remaining))
                return True
        return False

    def setup_mfa(self, user):
        if user.is_mfa_enabled:
            raise BadRequestError('MFA is already enabled')
        secret = pyotp.random_base32()
        otpauth_url = pyotp.TOTP(secret).provisioning_uri(
            name=user.email, issuer_name=current_app.config['MFA_ISSUER'])
        user.mfa_secret = secret
        user.mfa_verified_at = None
        db.session.commit()
        return {
            'secret': secret,
            'otpauth_url': otpauth_url,
            'qr_code': qr_data_url(otpauth_url),
            'message': 'MFA setup initiated. Please verify with your authenticator app.',
        }

    def verify_mfa(self, user, code):
        if not user.mfa_secret:
            raise BadRequestError('MFA not set up')
        if not code or not self._check_mfa_code(user, code):
            raise BadRequestError('Invalid MFA code')

        backup_codes = [secrets.token_hex(4).upper()
                        for _ in range(current_app.config['MFA_BACKUP_CODE_COUNT'])]
        user.mfa_backup_codes = [bcrypt.generate_password_hash(c).decode('utf-8') for c in backup_codes]
        user.is_mfa_enabled = True
        user.mfa_verified_at = utcnow()
        db.session.commit()
        logger.info('MFA enabled for user %s', user.id)
        return {
            'message': 'MFA enabled successfully',
            'backup_codes': backup_codes,
            'warning': 'Save these backup codes in a safe place. They can be used if you lose '
                       'access to your authenticator app.',
        }

    def disable_mfa(self, user, code):
        if not user.is_mfa_enabled:
            raise BadRequestError('MFA not enabled')
        if not code or not self._check_mfa_code(user, code):
            raise BadRequestError('Invalid MFA code')
        user.is_mfa_enabled = False
        user.mfa_secret = None
        user.mfa_verified_at = None
        user.mfa_backup_codes = None
        db.session.commit()
        logger.info('MFA disabled for user %s', user.id)
        return {'message': 'MFA disabled successfully'}
