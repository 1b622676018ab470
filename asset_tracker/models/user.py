# asset_tracker/models/user.py
from flask_login import UserMixin

from asset_tracker import db, bcrypt
from asset_tracker.clock import utcnow


class Role:
    SUPER_ADMIN = 'SUPER_ADMIN'
    ASSET_MANAGER = 'ASSET_MANAGER'
    DEPT_HEAD = 'DEPT_HEAD'
    AUDITOR = 'AUDITOR'
    EMPLOYEE = 'EMPLOYEE'

    ALL = (SUPER_ADMIN, ASSET_MANAGER, DEPT_HEAD, AUDITOR, EMPLOYEE)


class User(db.Model, UserMixin):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(128), nullable=False)
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)
    phone = db.Column(db.String(30))
    department = db.Column(db.String(100))
    role = db.Column(db.String(20), nullable=False, default=Role.EMPLOYEE)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    deleted_at = db.Column(db.DateTime)

    is_mfa_enabled = db.Column(db.Boolean, nullable=False, default=False)
    mfa_secret = db.Column(db.String(64))
    mfa_verified_at = db.Column(db.DateTime)
    mfa_backup_codes = db.Column(db.JSON)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    refresh_tokens = db.relationship('RefreshToken', backref='user', lazy=True)

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.email = str(self.email).strip().lower()
        if self.role is None:
            self.role = Role.EMPLOYEE
        elif self.role not in Role.ALL:
            raise ValueError(f"Invalid role: {self.role}")

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    @property
    def is_deleted(self):
        return self.deleted_at is not None

    @property
    def can_login(self):
        return self.is_active and not self.is_deleted

    @property
    def full_name(self):
        return f'{self.first_name} {self.last_name}'

    def has_role(self, *roles):
        return self.role in roles

    def summary(self):
        return {
            'id': self.id,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'email': self.email,
            'department': self.department,
        }

    def to_dict(self):
        data = self.summary()
        data.update({
            'phone': self.phone,
            'role': self.role,
            'is_active': self.is_active,
            'is_mfa_enabled': self.is_mfa_enabled,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        })
        return data

    def __repr__(self):
        return f'<User {self.email} ({self.role})>'


class RefreshToken(db.Model):
    __tablename__ = 'refresh_tokens'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    token_hash = db.Column(db.String(64), unique=True, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
    revoked_at = db.Column(db.DateTime)
    ip_address = db.Column(db.String(64))
    user_agent = db.Column(db.String(256))
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
