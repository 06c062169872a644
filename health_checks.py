"""
Health Check & Monitoring Endpoints
Liveness, readiness (database reachable), metrics and ping
"""
import os
import sys
import time
import psutil
from datetime import datetime
from typing import Dict, Any
from flask import Blueprint, jsonify
import logging

from database.connection import check_db_connection, get_db_session
from database.models import Customer, Job, Invoice, ServiceAgreement, InventoryItem, Asset

logger = logging.getLogger(__name__)

# Create Blueprint for health check routes
health_bp = Blueprint('health', __name__)

SERVICE_NAME = 'onemanvan'
SERVICE_VERSION = '1.0.0'

# Track application start time
START_TIME = time.time()

COUNTED_MODELS = {
    'customers': Customer,
    'assets': Asset,
    'jobs': Job,
    'invoices': Invoice,
    'service_agreements': ServiceAgreement,
    'inventory_items': InventoryItem,
}


def get_system_metrics() -> Dict[str, Any]:
    """
    Get basic process metrics

    Returns:
        Dictionary of system metrics, empty if psutil fails
    """
    try:
        process = psutil.Process()

        return {
            'cpu_percent': process.cpu_percent(interval=0.1),
            'memory_mb': process.memory_info().rss / 1024 / 1024,
            'memory_percent': process.memory_percent(),
            'threads': process.num_threads(),
        }
    except Exception as e:
        logger.warning(f"Failed to get system metrics: {e}")
        return {}


def get_uptime() -> Dict[str, Any]:
    uptime_seconds = time.time() - START_TIME

    return {
        'uptime_seconds': round(uptime_seconds, 2),
        'uptime_minutes': round(uptime_seconds / 60, 2),
        'uptime_hours': round(uptime_seconds / 3600, 2),
        'started_at': datetime.fromtimestamp(START_TIME).isoformat()
    }


def check_database() -> Dict[str, Any]:
    """
    Check that the database answers a trivial query

    Returns:
        {'connected': bool} plus 'error' when the check fails
    """
    try:
        check_db_connection()
        return {'connected': True}
    except Exception as e:
        logger.warning(f"Database check failed: {e}")
        return {'connected': False, 'error': str(e)}


def get_row_counts() -> Dict[str, int]:
    """Row counts for the main tables, empty if the database is unavailable."""
    try:
        with get_db_session() as session:
            return {name: session.query(model).count() for name, model in COUNTED_MODELS.items()}
    except Exception as e:
        logger.warning(f"Failed to count rows: {e}")
        return {}


@health_bp.route('/health', methods=['GET'])
def health_check():
    """
    Basic health check endpoint
    Returns 200 if application is running
    """
    return jsonify({
        'status': 'healthy',
        'timestamp': datetime.utcnow().isoformat(),
        'service': SERVICE_NAME
    }), 200


@health_bp.route('/ready', methods=['GET'])
def readiness_check():
    """
    Readiness check endpoint
    Returns 200 when the database is reachable, 503 otherwise
    """
    database = check_database()
    is_ready = database['connected']

    return jsonify({
        'status': 'ready' if is_ready else 'not_ready',
        'timestamp': datetime.utcnow().isoformat(),
        'checks': {'database': database}
    }), 200 if is_ready else 503


@health_bp.route('/metrics', methods=['GET'])
def metrics():
    """
    Basic metrics endpoint
    Returns process metrics and table row counts
    """
    try:
        response = {
            'timestamp': datetime.utcnow().isoformat(),
            'service': SERVICE_NAME,
            'version': SERVICE_VERSION,
            'environment': os.environ.get('FLASK_ENV', 'production'),
            'uptime': get_uptime(),
            'system': get_system_metrics(),
            'database': check_database(),
            'row_counts': get_row_counts(),
            'python_version': sys.version.split()[0]
        }

        return jsonify(response), 200

    except Exception as e:
        logger.error(f"Metrics collection failed: {e}")
        return jsonify({
            'status': 'error',
            'error': str(e),
            'timestamp': datetime.utcnow().isoformat()
        }), 500


@health_bp.route('/ping', methods=['GET'])
def ping():
    """
    Simple ping endpoint
    Returns immediate response for basic connectivity tests
    """
    return 'pong', 200


def register_health_checks(app):
    """
    Register health check blueprint with Flask app

    Args:
        app: Flask application instance
    """
    app.register_blueprint(health_bp, url_prefix='/api')
    logger.info("Health check endpoints registered")
    logger.info("Available endpoints: /api/health, /api/ready, /api/metrics, /api/ping")
