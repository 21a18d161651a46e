import os

basedir = os.path.abspath(os.path.dirname(__file__))


def _env_bool(name, default=False):
    raw = os.environ.get(name)
    if raw is None:
        return default
    return str(raw).strip().lower() in {'1', 'true', 'yes', 'on'}


def _env_int(name, default):
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except (TypeError, ValueError):
        return default


def _env_float(name, default):
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except (TypeError, ValueError):
        return default


def _normalize_database_url(raw_url):
    if not raw_url:
        return raw_url
    if raw_url.startswith('postgres://'):
        return raw_url.replace('postgres://', 'postgresql://', 1)
    return raw_url


class BaseConfig:
    SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-secret-key-change-in-prod')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    JWT_EXPIRATION_HOURS = _env_int('JWT_EXPIRATION_HOURS', 24)
    ADMIN_EMAILS = os.environ.get('ADMIN_EMAILS', '')
    CORS_ALLOWED_ORIGINS = os.environ.get('CORS_ALLOWED_ORIGINS', '*')
    SOCKETIO_ASYNC_MODE = os.environ.get('SOCKETIO_ASYNC_MODE', 'threading')
    # Score rules for the two-party handshake
    SCORE_TARGET_POINTS = _env_int('SCORE_TARGET_POINTS', 11)
    SCORE_WIN_BY = _env_int('SCORE_WIN_BY', 2)
    SCORE_MAX_POINTS = _env_int('SCORE_MAX_POINTS', 99)
    DEFAULT_COURTS_AVAILABLE = _env_int('DEFAULT_COURTS_AVAILABLE', 4)
    AUTO_ASSIGN_DEFAULT = _env_bool('AUTO_ASSIGN_DEFAULT', True)
    # Scheduled nights start themselves at date + start_time (UTC)
    AUTO_START_NIGHTS = _env_bool('AUTO_START_NIGHTS', True)
    # Client synchronizer defaults
    REALTIME_BASE_DELAY_SECONDS = _env_float('REALTIME_BASE_DELAY_SECONDS', 1.0)
    REALTIME_MAX_DELAY_SECONDS = _env_float('REALTIME_MAX_DELAY_SECONDS', 30.0)
    REALTIME_MAX_RETRIES = _env_int('REALTIME_MAX_RETRIES', 10)


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _normalize_database_url(
        os.environ.get(
            'DATABASE_URL',
            'sqlite:///' + os.path.join(basedir, '..', 'leaguenight_dev.db')
        )
    )


class TestingConfig(BaseConfig):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'


class ProductionConfig(BaseConfig):
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = _normalize_database_url(os.environ.get('DATABASE_URL'))


config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
}
