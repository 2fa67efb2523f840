"""
Configuration for the School Management SaaS backend
"""

import os
from urllib.parse import quote_plus
import dotenv
dotenv.load_dotenv()  # Load environment variables from .env file


def _env_flag(name, default='False'):
    return os.environ.get(name, default).lower() in ('true', '1', 'yes')


class Config:
    """Base configuration shared by every environment"""

    # Flask settings
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'supersecretkey'
    JSON_SORT_KEYS = False

    # Database settings
    DATABASE_URL = os.environ.get('DATABASE_URL')
    MYSQL_HOST = os.environ.get('DB_HOST', 'localhost')
    MYSQL_PORT = int(os.environ.get('DB_PORT', 3306))
    MYSQL_USERNAME = os.environ.get('DB_USER', 'school_saas')
    MYSQL_PASSWORD = os.environ.get('DB_PASS', '')
    MYSQL_DATABASE = os.environ.get('DB_NAME', 'school_saas')
    MYSQL_CHARSET = 'utf8mb4'

    # SQLAlchemy settings
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_recycle': 280,
        'pool_pre_ping': True,
    }

    # Session cookie
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'
    SESSION_COOKIE_SECURE = _env_flag('SESSION_COOKIE_SECURE')

    # CSRF (flask-wtf); token travels in the X-CSRFToken header for JSON clients
    WTF_CSRF_ENABLED = True
    WTF_CSRF_HEADERS = ['X-CSRFToken', 'X-CSRF-Token']
    WTF_CSRF_TIME_LIMIT = int(os.environ.get('WTF_CSRF_TIME_LIMIT', 3600))

    # Rate limiting (flask-limiter)
    RATELIMIT_ENABLED = _env_flag('RATELIMIT_ENABLED', 'True')
    RATELIMIT_STORAGE_URI = os.environ.get('RATELIMIT_STORAGE_URI', 'memory://')
    RATELIMIT_HEADERS_ENABLED = True

    # Key-value cache; empty means the in-process fallback is used
    REDIS_URL = os.environ.get('REDIS_URL', '')

    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*')

    # Seed admin created by init_db when no admin exists
    DEFAULT_ADMIN_EMAIL = os.environ.get('DEFAULT_ADMIN_EMAIL', 'admin@school.com')
    DEFAULT_ADMIN_PASSWORD = os.environ.get('DEFAULT_ADMIN_PASSWORD', 'Admin@12345')

    def _encoded_password(self) -> str:
        """Percent-encode special characters for URL usage."""
        return quote_plus(self.MYSQL_PASSWORD) if self.MYSQL_PASSWORD else ''

    def get_database_uri(self) -> str:
        """Get the database URI (DATABASE_URL wins over the DB_* variables)."""
        if self.DATABASE_URL:
            return self.DATABASE_URL

        user = self.MYSQL_USERNAME
        pwd = self._encoded_password()
        host = self.MYSQL_HOST
        port = self.MYSQL_PORT
        database = self.MYSQL_DATABASE

        if pwd:
            return f"mysql+pymysql://{user}:{pwd}@{host}:{port}/{database}?charset={self.MYSQL_CHARSET}"
        return f"mysql+pymysql://{user}@{host}:{port}/{database}?charset={self.MYSQL_CHARSET}"

    def get_engine_options(self) -> dict:
        return dict(self.SQLALCHEMY_ENGINE_OPTIONS)


class DevelopmentConfig(Config):
    DEBUG = True


class ProductionConfig(Config):
    DEBUG = False
    SESSION_COOKIE_SECURE = True


class TestingConfig(Config):
    TESTING = True
    WTF_CSRF_ENABLED = False
    RATELIMIT_ENABLED = False
    RATELIMIT_STORAGE_URI = 'memory://'
    REDIS_URL = ''
    DEFAULT_ADMIN_EMAIL = 'admin@school.com'
    DEFAULT_ADMIN_PASSWORD = 'Admin@12345'

    # Use in-memory SQLite for testing; a single shared connection keeps the
    # schema alive across sessions
    def get_database_uri(self) -> str:
        return 'sqlite://'

    def get_engine_options(self) -> dict:
        from sqlalchemy.pool import StaticPool
        return {
            'poolclass': StaticPool,
            'connect_args': {'check_same_thread': False},
        }


config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
