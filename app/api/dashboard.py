"""
Dashboard, Reminders, and Activity Routes Blueprint

Handles dashboard functionality:
- /api/dashboard/kpis: Revenue, jobs, receivables, estimates, agreements, stock
- /api/dashboard/alerts: Prioritized alerts
- /api/reminders: All reminder categories plus summary
- /api/activity/recent: Recent activity from the event log
"""

import logging
from flask import Blueprint, request, jsonify

from database.connection import get_db_session
from services.dashboard_service import DashboardService
from services.event_logger import EventLogger
from services.reminder_service import ReminderService

logger = logging.getLogger(__name__)

# Create blueprint
dashboard_bp = Blueprint('dashboard_bp', __name__)


# ============================================================================
# KPIs
# ============================================================================

@dashboard_bp.route('/api/dashboard/kpis', methods=['GET'])
def get_kpis():
    """Get every dashboard metric group."""
    try:
        with get_db_session() as session:
            return jsonify({'success': True, 'kpis': DashboardService(session).get_all()})
    except Exception as e:
        logger.error(f"Error getting dashboard KPIs: {e}")
        return jsonify({'success': False, 'error': str(e)}), 500


# ============================================================================
# REMINDERS & ALERTS
# ============================================================================

@dashboard_bp.route('/api/reminders', methods=['GET'])
def get_reminders():
    """Get all reminders and alerts that need attention."""
    try:
        with get_db_session() as session:
            service = ReminderService(session)
            return jsonify({
                'success': True,
                'reminders': service.check_all_reminders(),
                'summary': service.get_summary()
            })
    except Exception as e:
        logger.error(f"Error getting reminders: {e}")
        return jsonify({'success': False, 'error': str(e)}), 500


@dashboard_bp.route('/api/dashboard/alerts', methods=['GET'])
def get_dashboard_alerts():
    """Get prioritized alerts for the dashboard."""
    try:
        limit = request.args.get('limit', 20, type=int)
        with get_db_session() as session:
            return jsonify({
                'success': True,
                'alerts': ReminderService(session).get_dashboard_alerts(limit)
            })
    except Exception as e:
        logger.error(f"Error getting dashboard alerts: {e}")
        return jsonify({'success': False, 'error': str(e)}), 500


# ============================================================================
# ACTIVITY
# ============================================================================

@dashboard_bp.route('/api/activity/recent', methods=['GET'])
def get_recent_activity():
    """Get recent activity from the event log."""
    try:
        hours = request.args.get('hours', 24, type=int)
        limit = request.args.get('limit', 50, type=int)

        with get_db_session() as session:
            events_service = EventLogger(session)
            return jsonify({
                'success': True,
                'events': events_service.get_recent_events(hours=hours, limit=limit),
                'summary': events_service.get_activity_summary(days=7)
            })
    except Exception as e:
        logger.error(f"Error getting recent activity: {e}")
        return jsonify({'success': False, 'error': str(e)}), 500
