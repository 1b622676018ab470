import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def env_flag(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-key-change-this'
    # Relative sqlite paths resolve inside the Flask instance folder
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or \
        'sqlite:///asset_tracker.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    JWT_SECRET = os.environ.get('JWT_SECRET') or SECRET_KEY
    JWT_REFRESH_SECRET = os.environ.get('JWT_REFRESH_SECRET') or f'{SECRET_KEY}-refresh'
    JWT_ALGORITHM = 'HS256'
    JWT_ACCESS_EXPIRES = int(os.environ.get('JWT_ACCESS_EXPIRES') or 15 * 60)
    JWT_REFRESH_EXPIRES = int(os.environ.get('JWT_REFRESH_EXPIRES') or 7 * 24 * 60 * 60)

    MFA_ISSUER = os.environ.get('MFA_ISSUER') or 'Asset Tracker'
    MFA_VALID_WINDOW = int(os.environ.get('MFA_VALID_WINDOW') or 2)
    MFA_BACKUP_CODE_COUNT = 10

    MAIL_SERVER = os.environ.get('MAIL_SERVER')
    MAIL_PORT = int(os.environ.get('MAIL_PORT') or 25)
    MAIL_USE_TLS = os.environ.get('MAIL_USE_TLS') is not None
    MAIL_USERNAME = os.environ.get('MAIL_USERNAME')
    MAIL_PASSWORD = os.environ.get('MAIL_PASSWORD')
    MAIL_DEFAULT_SENDER = os.environ.get('MAIL_DEFAULT_SENDER') or 'noreply@assettracker.local'

    # When False, tags and serial numbers of soft-deleted assets stay reserved
    RETIRED_IDENTIFIERS_REUSABLE = env_flag('RETIRED_IDENTIFIERS_REUSABLE')

    TRANSFER_DEFAULT_CONDITION = 'Good'
    TRANSFER_DEFAULT_CONDITION_RATING = 4

    DEFAULT_PAGE_SIZE = 20
    MAX_PAGE_SIZE = 100

    LOG_LEVEL = os.environ.get('LOG_LEVEL') or 'INFO'
    LOG_DIR = os.environ.get('LOG_DIR')
    LOG_FILE = os.environ.get('LOG_FILE') or 'asset_tracker.log'


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = 'testing-secret'
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    JWT_SECRET = 'testing-jwt-secret'
    JWT_REFRESH_SECRET = 'testing-jwt-refresh-secret'
    BCRYPT_LOG_ROUNDS = 4
    MAIL_SERVER = 'localhost'
    MAIL_SUPPRESS_SEND = True
    RETIRED_IDENTIFIERS_REUSABLE = False
    LOG_LEVEL = 'DEBUG'
    LOG_DIR = None
