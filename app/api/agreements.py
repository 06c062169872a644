"""
Service Agreement API Routes Blueprint

Handles maintenance memberships:
- /api/agreements: List and create agreements
- /api/agreements/<id>: Get, update, cancel an agreement
- /api/agreements/<id>/activate|renew|suspend|cancel: Lifecycle
- /api/agreements/<id>/schedule-visit: Book the next tune-up as a job
- /api/agreements/expiring: Active agreements ending soon
- /api/agreements/maintenance-due: Agreements with a tune-up coming due
- /api/agreements/process-renewals: Daily auto-renew and expiry sweep
"""

import logging
from flask import Blueprint, request, jsonify

from database.connection import get_db_session
from services.agreement_repository import AgreementRepository
from services.billing import BusinessRuleError
from validators import ValidationError, format_validation_error, require_valid, validate_agreement_request

logger = logging.getLogger(__name__)

# Create blueprint
agreements_bp = Blueprint('agreements_bp', __name__)


@agreements_bp.route('/api/agreements', methods=['GET', 'POST'])
def handle_agreements():
    """List agreements or create a draft agreement"""
    try:
        with get_db_session() as session:
            repo = AgreementRepository(session)
            if request.method == 'GET':
                agreements = repo.list_agreements(
                    status=request.args.get('status'),
                    customer_id=request.args.get('customer_id', type=int)
                )
                return jsonify({'success': True, 'agreements': agreements, 'count': len(agreements)})

            data = request.get_json(silent=True) or {}
            require_valid(validate_agreement_request(data))
            agreement = repo.create_agreement(data)
            return jsonify({'success': True, 'agreement': agreement}), 201
    except ValidationError as e:
        return jsonify(format_validation_error(e.field, e.message)), 400
    except BusinessRuleError as e:
        return jsonify({'success': False, 'error': e.message}), 400
    except Exception as e:
        logger.error(f"Error handling agreements: {str(e)}")
        return jsonify({'success': False, 'error': str(e)}), 500


@agreements_bp.route('/api/agreements/expiring', methods=['GET'])
def get_expiring_agreements():
    """?days=30"""
    try:
        days = request.args.get('days', 30, type=int)
        with get_db_session() as session:
            agreements = AgreementRepository(session).expiring(days)
            return jsonify({'success': True, 'agreements': agreements, 'count': len(agreements)})
    except Exception as e:
        logger.error(f"Error getting expiring agreements: {str(e)}")
        return jsonify({'success': False, 'error': str(e)}), 500


@agreements_bp.route('/api/agreements/maintenance-due', methods=['GET'])
def get_maintenance_due():
    try:
        days = request.args.get('days', 14, type=int)
        with get_db_session() as session:
            agreements = AgreementRepository(session).due_for_maintenance(days)
            return jsonify({'success': True, 'agreements': agreements, 'count': len(agreements)})
    except Exception as e:
        logger.error(f"Error getting agreements due for maintenance: {str(e)}")
        return jsonify({'success': False, 'error': str(e)}), 500


@agreements_bp.route('/api/agreements/process-renewals', methods=['POST'])
def process_renewals():
    """Renew auto-renew agreements past their end date, expire the rest"""
    try:
        with get_db_session() as session:
            repo = AgreementRepository(session)
            renewed = repo.process_auto_renewals()
            expired = repo.mark_expired()
            return jsonify({'success': True, 'renewed': renewed, 'expired': expired})
    except Exception as e:
        logger.error(f"Error processing agreement renewals: {str(e)}")
        return jsonify({'success': False, 'error': str(e)}), 500


@agreements_bp.route('/api/agreements/<int:agreement_id>', methods=['GET', 'PUT', 'DELETE'])
def handle_agreement(agreement_id):
    """Get, update or cancel an agreement"""
    try:
        with get_db_session() as session:
            repo = AgreementRepository(session)
            if request.method == 'GET':
                agreement = repo.get_agreement(agreement_id)
            elif request.method == 'PUT':
                data = request.get_json(silent=True) or {}
                require_valid(validate_agreement_request(data, partial=True))
                agreement = repo.update_agreement(agreement_id, data)
            else:
                if not repo.delete_agreement(agreement_id):
                    return jsonify({'success': False, 'error': 'Agreement not found'}), 404
                return jsonify({'success': True})

            if not agreement:
                return jsonify({'success': False, 'error': 'Agreement not found'}), 404
            return jsonify({'success': True, 'agreement': agreement})
    except ValidationError as e:
        return jsonify(format_validation_error(e.field, e.message)), 400
    except BusinessRuleError as e:
        return jsonify({'success': False, 'error': e.message}), 400
    except Exception as e:
        logger.error(f"Error handling agreement {agreement_id}: {str(e)}")
        return jsonify({'success': False, 'error': str(e)}), 500


@agreements_bp.route('/api/agreements/<int:agreement_id>/<action>', methods=['POST'])
def agreement_lifecycle(agreement_id, action):
    """Activate, renew, suspend or cancel an agreement"""
    try:
        data = request.get_json(silent=True) or {}
        with get_db_session() as session:
            repo = AgreementRepository(session)
            handlers = {
                'activate': lambda: repo.activate(agreement_id),
                'renew': lambda: repo.renew(agreement_id),
                'suspend': lambda: repo.suspend(agreement_id),
                'cancel': lambda: repo.cancel(agreement_id, reason=data.get('reason')),
            }
            if action not in handlers:
                return jsonify({'success': False, 'error': f'Unknown action: {action}'}), 404

            agreement = handlers[action]()
            if not agreement:
                return jsonify({'success': False, 'error': 'Agreement not found'}), 404
            return jsonify({'success': True, 'agreement': agreement})
    except BusinessRuleError as e:
        return jsonify({'success': False, 'error': e.message}), 400
    except Exception as e:
        logger.error(f"Error running {action} on agreement {agreement_id}: {str(e)}")
        return jsonify({'success': False, 'error': str(e)}), 500


@agreements_bp.route('/api/agreements/<int:agreement_id>/schedule-visit', methods=['POST'])
def schedule_visit(agreement_id):
    """Book the next included maintenance visit as a scheduled job"""
    try:
        with get_db_session() as session:
            result = AgreementRepository(session).schedule_visit(agreement_id)
            if not result:
                return jsonify({'success': False, 'error': 'Agreement not found'}), 404
            return jsonify({'success': True, **result}), 201
    except BusinessRuleError as e:
        return jsonify({'success': False, 'error': e.message}), 400
    except Exception as e:
        logger.error(f"Error scheduling visit for agreement {agreement_id}: {str(e)}")
        return jsonify({'success': False, 'error': str(e)}), 500
