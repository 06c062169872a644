"""
Centralized Configuration for OneManVan
Manages environment-specific settings and business defaults.
"""
import os
from datetime import timedelta

class Config:
    """Base configuration with defaults"""

    # Flask Settings
    SECRET_KEY = os.environ.get('SECRET_KEY') or os.urandom(32).hex()
    JSON_SORT_KEYS = False

    # CORS Settings
    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*').split(',')
    CORS_METHODS = ['GET', 'POST', 'PUT', 'DELETE', 'OPTIONS']
    CORS_ALLOW_HEADERS = ['Content-Type', 'Authorization', 'X-Requested-With']

    # Database Settings
    DATABASE_URL = os.environ.get('DATABASE_URL', 'sqlite:///onemanvan.db')
    SEED_DATABASE = os.environ.get('SEED_DATABASE', 'true').lower() == 'true'

    # Business Defaults
    COMPANY_NAME = os.environ.get('COMPANY_NAME', 'OneManVan HVAC')
    DEFAULT_TAX_RATE = float(os.environ.get('DEFAULT_TAX_RATE', '7.0'))  # percent
    DEFAULT_LABOR_RATE = float(os.environ.get('DEFAULT_LABOR_RATE', '85.00'))  # per hour
    INVOICE_DUE_DAYS = int(os.environ.get('INVOICE_DUE_DAYS', '30'))
    ESTIMATE_VALID_DAYS = int(os.environ.get('ESTIMATE_VALID_DAYS', '30'))
    WARRANTY_EXPIRING_DAYS = 90
    AGREEMENT_EXPIRING_DAYS = 30

    # Logging Configuration
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    LOG_FILE = os.environ.get('LOG_FILE', 'app.log')

    # Session Configuration
    SESSION_PERMANENT = False
    PERMANENT_SESSION_LIFETIME = timedelta(days=7)


class DevelopmentConfig(Config):
    """Development-specific configuration"""
    DEBUG = True
    TESTING = False
    LOG_LEVEL = 'DEBUG'
    # Allow all CORS in development
    CORS_ORIGINS = ['*']


class ProductionConfig(Config):
    """Production-specific configuration"""
    DEBUG = False
    TESTING = False
    # Strict CORS in production
    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', 'https://onemanvan.local').split(',')
    # Force HTTPS
    PREFERRED_URL_SCHEME = 'https'
    SESSION_COOKIE_SECURE = True
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'


class TestingConfig(Config):
    """Testing-specific configuration"""
    DEBUG = True
    TESTING = True
    DATABASE_URL = os.environ.get('TEST_DATABASE_URL', 'sqlite:///:memory:')
    SEED_DATABASE = False
    LOG_FILE = None


# Configuration selector
config_by_name = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig,
}


def get_config():
    """Get configuration based on FLASK_ENV environment variable"""
    env = os.environ.get('FLASK_ENV', 'development')
    return config_by_name.get(env, DevelopmentConfig)
