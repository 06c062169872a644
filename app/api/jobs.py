"""
Job API Routes Blueprint

Handles work orders:
- /api/jobs: List (filter by status, customer, date range) and create jobs
- /api/jobs/<id>: Get, update, cancel a job
- /api/jobs/<id>/status: Move a job through its lifecycle
- /api/jobs/<id>/invoice: Generate an invoice from a completed job
- /api/jobs/overdue: Open jobs scheduled in the past
"""

import logging
from flask import Blueprint, request, jsonify, current_app

from database.connection import get_db_session
from services.billing import BusinessRuleError, DEFAULT_TAX_RATE, DEFAULT_LABOR_RATE, DEFAULT_DUE_DAYS
from services.job_repository import JobRepository
from services.invoice_repository import InvoiceRepository
from validators import ValidationError, format_validation_error, require_valid, validate_job_request

logger = logging.getLogger(__name__)

# Create blueprint
jobs_bp = Blueprint('jobs_bp', __name__)


@jobs_bp.route('/api/jobs', methods=['GET', 'POST'])
def handle_jobs():
    """List jobs or create one"""
    try:
        with get_db_session() as session:
            repo = JobRepository(session)
            if request.method == 'GET':
                jobs = repo.list_jobs(
                    status=request.args.get('status'),
                    customer_id=request.args.get('customer_id', type=int),
                    start_date=request.args.get('start_date'),
                    end_date=request.args.get('end_date')
                )
                return jsonify({'success': True, 'jobs': jobs, 'count': len(jobs)})

            data = request.get_json(silent=True) or {}
            require_valid(validate_job_request(data))
            job = repo.create_job(
                data,
                labor_rate=current_app.config.get('DEFAULT_LABOR_RATE', DEFAULT_LABOR_RATE),
                tax_rate=current_app.config.get('DEFAULT_TAX_RATE', DEFAULT_TAX_RATE)
            )
            return jsonify({'success': True, 'job': job}), 201
    except ValidationError as e:
        return jsonify(format_validation_error(e.field, e.message)), 400
    except BusinessRuleError as e:
        return jsonify({'success': False, 'error': e.message}), 400
    except Exception as e:
        logger.error(f"Error handling jobs: {str(e)}")
        return jsonify({'success': False, 'error': str(e)}), 500


@jobs_bp.route('/api/jobs/overdue', methods=['GET'])
def get_overdue_jobs():
    try:
        with get_db_session() as session:
            jobs = JobRepository(session).overdue_jobs()
            return jsonify({'success': True, 'jobs': jobs, 'count': len(jobs)})
    except Exception as e:
        logger.error(f"Error getting overdue jobs: {str(e)}")
        return jsonify({'success': False, 'error': str(e)}), 500


@jobs_bp.route('/api/jobs/<int:job_id>', methods=['GET', 'PUT', 'DELETE'])
def handle_job(job_id):
    """Get, update or cancel a job"""
    try:
        with get_db_session() as session:
            repo = JobRepository(session)
            if request.method == 'GET':
                job = repo.get_job(job_id)
            elif request.method == 'PUT':
                data = request.get_json(silent=True) or {}
                require_valid(validate_job_request(data, partial=True))
                job = repo.update_job(job_id, data,
                                      labor_rate=current_app.config.get('DEFAULT_LABOR_RATE', DEFAULT_LABOR_RATE))
            else:
                if not repo.delete_job(job_id):
                    return jsonify({'success': False, 'error': 'Job not found'}), 404
                return jsonify({'success': True})

            if not job:
                return jsonify({'success': False, 'error': 'Job not found'}), 404
            return jsonify({'success': True, 'job': job})
    except ValidationError as e:
        return jsonify(format_validation_error(e.field, e.message)), 400
    except BusinessRuleError as e:
        return jsonify({'success': False, 'error': e.message}), 400
    except Exception as e:
        logger.error(f"Error handling job {job_id}: {str(e)}")
        return jsonify({'success': False, 'error': str(e)}), 500


@jobs_bp.route('/api/jobs/<int:job_id>/status', methods=['POST', 'PUT'])
def update_job_status(job_id):
    """Body: {"status": "InProgress"}"""
    try:
        data = request.get_json(silent=True) or {}
        if not data.get('status'):
            return jsonify({'success': False, 'error': 'Missing required fields: status'}), 400
        with get_db_session() as session:
            job = JobRepository(session).set_job_status(job_id, data['status'])
            if not job:
                return jsonify({'success': False, 'error': 'Job not found'}), 404
            return jsonify({'success': True, 'job': job})
    except BusinessRuleError as e:
        return jsonify({'success': False, 'error': e.message}), 400
    except Exception as e:
        logger.error(f"Error updating status of job {job_id}: {str(e)}")
        return jsonify({'success': False, 'error': str(e)}), 500


@jobs_bp.route('/api/jobs/<int:job_id>/invoice', methods=['POST'])
def invoice_job(job_id):
    """Generate a draft invoice from a completed job"""
    try:
        with get_db_session() as session:
            invoice = InvoiceRepository(session).create_from_job(
                job_id,
                tax_rate=current_app.config.get('DEFAULT_TAX_RATE', DEFAULT_TAX_RATE),
                due_days=current_app.config.get('INVOICE_DUE_DAYS', DEFAULT_DUE_DAYS)
            )
            if not invoice:
                return jsonify({'success': False, 'error': 'Job not found'}), 404
            return jsonify({'success': True, 'invoice': invoice}), 201
    except BusinessRuleError as e:
        return jsonify({'success': False, 'error': e.message}), 400
    except Exception as e:
        logger.error(f"Error invoicing job {job_id}: {str(e)}")
        return jsonify({'success': False, 'error': str(e)}), 500
