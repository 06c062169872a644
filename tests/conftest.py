"""
Pytest configuration and shared fixtures
"""
import os
import sys
import pytest
from datetime import date
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))


@pytest.fixture
def app_config():
    """Fixture providing test configuration"""
    from config import TestingConfig
    return TestingConfig


@pytest.fixture
def test_env_vars():
    """Fixture providing test environment variables"""
    original_env = os.environ.copy()

    # Set test environment variables
    os.environ['FLASK_ENV'] = 'testing'
    os.environ['SECRET_KEY'] = 'a8f5f167f44f4964e6c998dee827110c3b8b4a9e7f1c2d3e4f5a6b7c8d9e0f1a'
    os.environ['DATABASE_URL'] = 'sqlite:///:memory:'

    yield

    # Restore original environment
    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def today():
    """A fixed Monday so date arithmetic in tests is deterministic"""
    return date(2026, 3, 16)


@pytest.fixture
def db_session():
    """Fixture providing a session bound to a fresh in-memory database"""
    from database.connection import configure_database, init_db, drop_db, get_session_factory

    configure_database('sqlite:///:memory:')
    init_db()
    session = get_session_factory()()

    yield session

    session.rollback()
    session.close()
    drop_db()


@pytest.fixture
def app():
    """Fixture providing a Flask app with an empty in-memory database"""
    from app_init import create_app
    return create_app('testing')


@pytest.fixture
def client(app):
    """Fixture providing a test client"""
    return app.test_client()


@pytest.fixture
def sample_customer_data():
    """Fixture providing sample customer data"""
    return {
        'first_name': 'Dana',
        'last_name': 'Whitfield',
        'email': 'dana.whitfield@example.com',
        'phone': '(555) 123-4567',
        'customer_type': 'Residential',
        'tags': ['VIP', 'Referral']
    }


@pytest.fixture
def sample_site_data():
    """Fixture providing sample site data"""
    return {
        'address': '1420 Maple Ave',
        'city': 'Springfield',
        'state': 'IL',
        'zip_code': '62704',
        'is_primary': True
    }


@pytest.fixture
def sample_asset_data():
    """Fixture providing sample equipment data"""
    return {
        'serial': 'CAR-2291-XZ',
        'brand': 'Carrier',
        'model': '24ACC636A003',
        'equipment_type': 'AirConditioner',
        'fuel_type': 'Electric',
        'tonnage': 3.0,
        'seer_rating': 14.0,
        'install_date': '2020-05-01'
    }


@pytest.fixture
def sample_estimate_lines():
    """Fixture providing estimate lines: 2h labor, one part, one discount"""
    return [
        {'line_type': 'Labor', 'description': 'Diagnostic and repair', 'quantity': 2, 'unit_price': 85.0},
        {'line_type': 'Part', 'description': 'Dual run capacitor 45/5', 'quantity': 1, 'unit_price': 65.0},
        {'line_type': 'Discount', 'description': 'Agreement discount', 'quantity': 1, 'unit_price': 15.0}
    ]


@pytest.fixture
def sample_agreement_data():
    """Fixture providing sample service agreement data"""
    return {
        'name': 'Comfort Club',
        'service_tier': 'Standard',
        'annual_price': 240.0,
        'start_date': '2026-01-01'
    }
