"""
OneManVan - Application Package

This package contains the modular backend structure:
- api/: HTTP route handlers (Flask Blueprints)
- utils/: Shared utility functions (phone formatting, money, numbering)

The app factory and core Flask setup remain in app_init.py at the project root.
Business logic and repositories live in the root services/ package.
"""

import logging

logger = logging.getLogger(__name__)


def register_blueprints(app):
    """
    Register all API blueprints with the Flask app.
    Called from create_app() after configuration and security are set up.

    Blueprints are imported here rather than at module level because the
    database models import app.utils, and the blueprints import the models.

    Args:
        app: Flask application instance
    """
    from app.api.customers import customers_bp
    from app.api.assets import assets_bp
    from app.api.products import products_bp
    from app.api.inventory import inventory_bp
    from app.api.estimates import estimates_bp
    from app.api.jobs import jobs_bp
    from app.api.invoices import invoices_bp
    from app.api.agreements import agreements_bp
    from app.api.dashboard import dashboard_bp
    from app.api.utils import utils_bp

    blueprints = [
        customers_bp,
        assets_bp,
        products_bp,
        inventory_bp,
        estimates_bp,
        jobs_bp,
        invoices_bp,
        agreements_bp,
        dashboard_bp,
        utils_bp,
    ]
    for bp in blueprints:
        app.register_blueprint(bp)

    logger.info(f"Registered {len(blueprints)} API blueprints")


__all__ = ['register_blueprints']
