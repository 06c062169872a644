"""
Tests for configuration system
"""
import os
import pytest
from datetime import timedelta
from config import (
    Config,
    DevelopmentConfig,
    ProductionConfig,
    TestingConfig,
    config_by_name,
    get_config
)


@pytest.mark.unit
class TestBaseConfig:
    """Tests for base configuration"""

    def test_base_config_has_secret_key(self):
        """Test that base config has a secret key"""
        config = Config()
        assert hasattr(config, 'SECRET_KEY')
        assert config.SECRET_KEY is not None

    def test_base_config_has_cors_settings(self):
        """Test that base config has CORS settings"""
        config = Config()
        assert hasattr(config, 'CORS_ORIGINS')
        assert 'GET' in config.CORS_METHODS
        assert 'DELETE' in config.CORS_METHODS
        assert 'Content-Type' in config.CORS_ALLOW_HEADERS

    def test_base_config_has_business_defaults(self):
        """Test that base config has tax, labor and due-date defaults"""
        config = Config()
        assert isinstance(config.DEFAULT_TAX_RATE, float)
        assert isinstance(config.DEFAULT_LABOR_RATE, float)
        assert config.WARRANTY_EXPIRING_DAYS == 90
        assert config.AGREEMENT_EXPIRING_DAYS == 30
        assert config.INVOICE_DUE_DAYS > 0
        assert config.ESTIMATE_VALID_DAYS > 0

    def test_base_config_has_database_url(self):
        """Test that base config names a database"""
        config = Config()
        assert '://' in config.DATABASE_URL

    def test_base_config_has_session_settings(self):
        """Test that base config has session settings"""
        config = Config()
        assert config.SESSION_PERMANENT is False
        assert config.PERMANENT_SESSION_LIFETIME == timedelta(days=7)

    def test_base_config_does_not_sort_json(self):
        """Test that JSON keys keep their order"""
        assert Config.JSON_SORT_KEYS is False


@pytest.mark.unit
class TestDevelopmentConfig:
    """Tests for development configuration"""

    def test_development_config_has_debug(self):
        """Test that development config has debug enabled"""
        config = DevelopmentConfig()
        assert config.DEBUG is True
        assert config.TESTING is False

    def test_development_config_has_debug_log_level(self):
        """Test that development config has DEBUG log level"""
        assert DevelopmentConfig().LOG_LEVEL == 'DEBUG'

    def test_development_config_allows_all_cors(self):
        """Test that development config allows all CORS origins"""
        assert DevelopmentConfig().CORS_ORIGINS == ['*']


@pytest.mark.unit
class TestProductionConfig:
    """Tests for production configuration"""

    def test_production_config_has_debug_disabled(self):
        """Test that production config has debug disabled"""
        config = ProductionConfig()
        assert config.DEBUG is False
        assert config.TESTING is False

    def test_production_config_has_secure_cookies(self):
        """Test that production config has secure cookies"""
        config = ProductionConfig()
        assert config.SESSION_COOKIE_SECURE is True
        assert config.SESSION_COOKIE_HTTPONLY is True
        assert config.SESSION_COOKIE_SAMESITE == 'Lax'

    def test_production_config_has_https_scheme(self):
        """Test that production config prefers HTTPS"""
        assert ProductionConfig().PREFERRED_URL_SCHEME == 'https'


@pytest.mark.unit
class TestTestingConfig:
    """Tests for testing configuration"""

    def test_testing_config_has_testing_enabled(self):
        """Test that testing config has testing enabled"""
        config = TestingConfig()
        assert config.DEBUG is True
        assert config.TESTING is True

    def test_testing_config_uses_memory_database(self):
        """Test that testing config never touches a file database"""
        config = TestingConfig()
        assert config.SEED_DATABASE is False
        if 'TEST_DATABASE_URL' not in os.environ:
            assert config.DATABASE_URL == 'sqlite:///:memory:'

    def test_testing_config_has_no_log_file(self):
        """Test that testing config logs to the console only"""
        assert TestingConfig().LOG_FILE is None


@pytest.mark.unit
class TestGetConfig:
    """Tests for configuration selector"""

    def test_default_is_development(self):
        """Test the 'default' entry"""
        assert config_by_name['default'] is DevelopmentConfig

    def test_get_config_returns_development_by_default(self, monkeypatch):
        """Test that get_config returns development config by default"""
        monkeypatch.delenv('FLASK_ENV', raising=False)
        assert get_config() == DevelopmentConfig

    def test_get_config_returns_production_when_set(self, monkeypatch):
        """Test that get_config returns production config when env is production"""
        monkeypatch.setenv('FLASK_ENV', 'production')
        assert get_config() == ProductionConfig

    def test_get_config_returns_testing_when_set(self, monkeypatch):
        """Test that get_config returns testing config when env is testing"""
        monkeypatch.setenv('FLASK_ENV', 'testing')
        assert get_config() == TestingConfig

    def test_get_config_unknown_falls_back(self, monkeypatch):
        """Test that an unknown environment falls back to development"""
        monkeypatch.setenv('FLASK_ENV', 'staging')
        assert get_config() == DevelopmentConfig
