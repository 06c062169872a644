"""
Application Initialization Module
Initializes the Flask app with configuration, logging, database and blueprints
"""
import os
from flask import Flask
from config import get_config, config_by_name
from logging_config import setup_logging
from security import setup_security
from health_checks import register_health_checks
from database.connection import configure_database, init_db
import logging

logger = logging.getLogger(__name__)


def create_app(config_name=None):
    """
    Application factory that creates and configures the Flask app

    Args:
        config_name: Key into config_by_name ('development', 'production',
            'testing'); defaults to FLASK_ENV

    Returns:
        Configured Flask application instance
    """
    app = Flask(__name__)

    # Load configuration
    config_class = config_by_name.get(config_name) if config_name else get_config()
    app.config.from_object(config_class or get_config())

    setup_logging(app)

    logger.info("=" * 60)
    logger.info(f"Initializing {app.config['COMPANY_NAME']} service manager")
    logger.info("=" * 60)
    logger.info(f"Environment: {config_name or os.environ.get('FLASK_ENV', 'development')}")
    logger.info(f"Debug mode: {app.debug}")

    initialize_database(app)

    # Setup security (CORS, headers, error handlers)
    setup_security(app, app.config)

    # Register API blueprints and health check endpoints
    from app import register_blueprints
    register_blueprints(app)
    register_health_checks(app)

    logger.info("Application initialization complete")
    logger.info("=" * 60)

    return app


def initialize_database(app):
    """
    Bind the data layer to DATABASE_URL, create tables and seed defaults

    Args:
        app: Flask application instance
    """
    url = app.config['DATABASE_URL']
    configure_database(url)
    init_db()

    if app.config.get('SEED_DATABASE'):
        from database.seed import seed_database
        try:
            seed_database()
        except Exception as e:
            logger.error(f"Seeding failed, continuing with empty catalog: {e}")

    logger.info(f"Database ready: {url.split('://')[0]}")
