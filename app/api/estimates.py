"""
Estimate API Routes Blueprint

Handles quotes sent to customers:
- /api/estimates: List and create estimates
- /api/estimates/<id>: Get, update (draft only), deactivate
- /api/estimates/<id>/lines: Add a line; /lines/<line_id> removes one
- /api/estimates/<id>/send|accept|decline: Status transitions
- /api/estimates/<id>/convert: Turn an accepted estimate into a job
- /api/estimates/expire: Expire sent estimates past their date
"""

import logging
from flask import Blueprint, request, jsonify, current_app

from database.connection import get_db_session
from database.models import LineItemType
from services.billing import BusinessRuleError, DEFAULT_TAX_RATE
from services.job_repository import JobRepository, DEFAULT_ESTIMATE_VALID_DAYS
from validators import (
    ValidationError, format_validation_error, require_valid, validate_estimate_request, validate_line_items
)

logger = logging.getLogger(__name__)

# Create blueprint
estimates_bp = Blueprint('estimates_bp', __name__)


@estimates_bp.route('/api/estimates', methods=['GET', 'POST'])
def handle_estimates():
    """List estimates or create a draft estimate"""
    try:
        with get_db_session() as session:
            repo = JobRepository(session)
            if request.method == 'GET':
                estimates = repo.list_estimates(
                    status=request.args.get('status'),
                    customer_id=request.args.get('customer_id', type=int)
                )
                return jsonify({'success': True, 'estimates': estimates, 'count': len(estimates)})

            data = request.get_json(silent=True) or {}
            require_valid(validate_estimate_request(data))
            estimate = repo.create_estimate(
                data,
                tax_rate=current_app.config.get('DEFAULT_TAX_RATE', DEFAULT_TAX_RATE),
                valid_days=current_app.config.get('ESTIMATE_VALID_DAYS', DEFAULT_ESTIMATE_VALID_DAYS)
            )
            return jsonify({'success': True, 'estimate': estimate}), 201
    except ValidationError as e:
        return jsonify(format_validation_error(e.field, e.message)), 400
    except BusinessRuleError as e:
        return jsonify({'success': False, 'error': e.message}), 400
    except Exception as e:
        logger.error(f"Error handling estimates: {str(e)}")
        return jsonify({'success': False, 'error': str(e)}), 500


@estimates_bp.route('/api/estimates/<int:estimate_id>', methods=['GET', 'PUT', 'DELETE'])
def handle_estimate(estimate_id):
    """Get, update or deactivate an estimate"""
    try:
        with get_db_session() as session:
            repo = JobRepository(session)
            if request.method == 'GET':
                estimate = repo.get_estimate(estimate_id)
            elif request.method == 'PUT':
                data = request.get_json(silent=True) or {}
                require_valid(validate_estimate_request(data, partial=True))
                estimate = repo.update_estimate(estimate_id, data)
            else:
                if not repo.delete_estimate(estimate_id):
                    return jsonify({'success': False, 'error': 'Estimate not found'}), 404
                return jsonify({'success': True})

            if not estimate:
                return jsonify({'success': False, 'error': 'Estimate not found'}), 404
            return jsonify({'success': True, 'estimate': estimate})
    except ValidationError as e:
        return jsonify(format_validation_error(e.field, e.message)), 400
    except BusinessRuleError as e:
        return jsonify({'success': False, 'error': e.message}), 400
    except Exception as e:
        logger.error(f"Error handling estimate {estimate_id}: {str(e)}")
        return jsonify({'success': False, 'error': str(e)}), 500


@estimates_bp.route('/api/estimates/<int:estimate_id>/lines', methods=['POST'])
def add_estimate_line(estimate_id):
    try:
        data = request.get_json(silent=True) or {}
        require_valid(validate_line_items([data], 'line_type', LineItemType.ALL))
        with get_db_session() as session:
            estimate = JobRepository(session).add_estimate_line(estimate_id, data)
            if not estimate:
                return jsonify({'success': False, 'error': 'Estimate not found'}), 404
            return jsonify({'success': True, 'estimate': estimate}), 201
    except ValidationError as e:
        return jsonify(format_validation_error(e.field, e.message)), 400
    except BusinessRuleError as e:
        return jsonify({'success': False, 'error': e.message}), 400
    except Exception as e:
        logger.error(f"Error adding line to estimate {estimate_id}: {str(e)}")
        return jsonify({'success': False, 'error': str(e)}), 500


@estimates_bp.route('/api/estimates/<int:estimate_id>/lines/<int:line_id>', methods=['DELETE'])
def remove_estimate_line(estimate_id, line_id):
    try:
        with get_db_session() as session:
            estimate = JobRepository(session).remove_estimate_line(estimate_id, line_id)
            if not estimate:
                return jsonify({'success': False, 'error': 'Estimate line not found'}), 404
            return jsonify({'success': True, 'estimate': estimate})
    except BusinessRuleError as e:
        return jsonify({'success': False, 'error': e.message}), 400
    except Exception as e:
        logger.error(f"Error removing line {line_id} from estimate {estimate_id}: {str(e)}")
        return jsonify({'success': False, 'error': str(e)}), 500


@estimates_bp.route('/api/estimates/<int:estimate_id>/<action>', methods=['POST'])
def transition_estimate(estimate_id, action):
    """Send, accept or decline an estimate"""
    try:
        with get_db_session() as session:
            repo = JobRepository(session)
            handlers = {
                'send': repo.send_estimate,
                'accept': repo.accept_estimate,
                'decline': repo.decline_estimate,
            }
            if action not in handlers:
                return jsonify({'success': False, 'error': f'Unknown action: {action}'}), 404

            estimate = handlers[action](estimate_id)
            if not estimate:
                return jsonify({'success': False, 'error': 'Estimate not found'}), 404
            return jsonify({'success': True, 'estimate': estimate})
    except BusinessRuleError as e:
        return jsonify({'success': False, 'error': e.message}), 400
    except Exception as e:
        logger.error(f"Error running {action} on estimate {estimate_id}: {str(e)}")
        return jsonify({'success': False, 'error': str(e)}), 500


@estimates_bp.route('/api/estimates/<int:estimate_id>/convert', methods=['POST'])
def convert_estimate(estimate_id):
    """Convert an accepted estimate into a draft job"""
    try:
        with get_db_session() as session:
            job = JobRepository(session).convert_estimate_to_job(estimate_id)
            if not job:
                return jsonify({'success': False, 'error': 'Estimate not found'}), 404
            return jsonify({'success': True, 'job': job}), 201
    except BusinessRuleError as e:
        return jsonify({'success': False, 'error': e.message}), 400
    except Exception as e:
        logger.error(f"Error converting estimate {estimate_id}: {str(e)}")
        return jsonify({'success': False, 'error': str(e)}), 500


@estimates_bp.route('/api/estimates/expire', methods=['POST'])
def expire_estimates():
    try:
        with get_db_session() as session:
            expired = JobRepository(session).expire_estimates()
            return jsonify({'success': True, 'expired': expired, 'count': len(expired)})
    except Exception as e:
        logger.error(f"Error expiring estimates: {str(e)}")
        return jsonify({'success': False, 'error': str(e)}), 500
