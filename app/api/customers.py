"""
Customer & Site API Routes Blueprint

Handles customer accounts and their service locations:
- /api/customers: List/search and create customers
- /api/customers/<id>: Get, update, deactivate a customer
- /api/customers/<id>/summary: Site, asset, open job and balance counts
- /api/customers/<id>/sites: List and add service locations
- /api/sites/<id>: Update or deactivate a site
"""

import logging
from flask import Blueprint, request, jsonify

from database.connection import get_db_session
from services.billing import BusinessRuleError
from services.crm_repository import CustomerRepository
from validators import (
    ValidationError, format_validation_error, require_valid, validate_customer_request, validate_site_request
)

logger = logging.getLogger(__name__)

# Create blueprint
customers_bp = Blueprint('customers_bp', __name__)


# ============================================================================
# CUSTOMERS
# ============================================================================

@customers_bp.route('/api/customers', methods=['GET', 'POST'])
def handle_customers():
    """List (or search with ?search=) customers, or create one"""
    try:
        with get_db_session() as session:
            repo = CustomerRepository(session)
            if request.method == 'GET':
                search = request.args.get('search') or request.args.get('q')
                if search:
                    customers = repo.search_customers(search)
                else:
                    customers = repo.list_customers(
                        active_only=request.args.get('include_inactive', 'false').lower() != 'true',
                        status=request.args.get('status'),
                        customer_type=request.args.get('customer_type')
                    )
                return jsonify({'success': True, 'customers': customers, 'count': len(customers)})

            data = request.get_json(silent=True) or {}
            require_valid(validate_customer_request(data))
            customer = repo.create_customer(data)
            return jsonify({'success': True, 'customer': customer}), 201
    except ValidationError as e:
        return jsonify(format_validation_error(e.field, e.message)), 400
    except BusinessRuleError as e:
        return jsonify({'success': False, 'error': e.message}), 400
    except Exception as e:
        logger.error(f"Error handling customers: {str(e)}")
        return jsonify({'success': False, 'error': str(e)}), 500


@customers_bp.route('/api/customers/<int:customer_id>', methods=['GET', 'PUT', 'DELETE'])
def handle_customer(customer_id):
    """Get, update or deactivate a single customer"""
    try:
        with get_db_session() as session:
            repo = CustomerRepository(session)
            if request.method == 'GET':
                customer = repo.get_customer(customer_id)
            elif request.method == 'PUT':
                data = request.get_json(silent=True) or {}
                require_valid(validate_customer_request(data, partial=True))
                customer = repo.update_customer(customer_id, data)
            else:
                if not repo.delete_customer(customer_id):
                    return jsonify({'success': False, 'error': 'Customer not found'}), 404
                return jsonify({'success': True})

            if not customer:
                return jsonify({'success': False, 'error': 'Customer not found'}), 404
            return jsonify({'success': True, 'customer': customer})
    except ValidationError as e:
        return jsonify(format_validation_error(e.field, e.message)), 400
    except BusinessRuleError as e:
        return jsonify({'success': False, 'error': e.message}), 400
    except Exception as e:
        logger.error(f"Error handling customer {customer_id}: {str(e)}")
        return jsonify({'success': False, 'error': str(e)}), 500


@customers_bp.route('/api/customers/<int:customer_id>/summary', methods=['GET'])
def get_customer_summary(customer_id):
    """Counts of sites, assets, open jobs and the unpaid balance"""
    try:
        with get_db_session() as session:
            summary = CustomerRepository(session).get_customer_summary(customer_id)
            if not summary:
                return jsonify({'success': False, 'error': 'Customer not found'}), 404
            return jsonify({'success': True, 'summary': summary})
    except Exception as e:
        logger.error(f"Error getting summary for customer {customer_id}: {str(e)}")
        return jsonify({'success': False, 'error': str(e)}), 500


# ============================================================================
# SITES
# ============================================================================

@customers_bp.route('/api/customers/<int:customer_id>/sites', methods=['GET', 'POST'])
def handle_customer_sites(customer_id):
    """List a customer's sites or add a new one"""
    try:
        with get_db_session() as session:
            repo = CustomerRepository(session)
            if repo.get_customer(customer_id) is None:
                return jsonify({'success': False, 'error': 'Customer not found'}), 404

            if request.method == 'GET':
                sites = repo.list_sites(customer_id)
                return jsonify({'success': True, 'sites': sites, 'count': len(sites)})

            data = request.get_json(silent=True) or {}
            require_valid(validate_site_request(data))
            site = repo.create_site(customer_id, data)
            return jsonify({'success': True, 'site': site}), 201
    except ValidationError as e:
        return jsonify(format_validation_error(e.field, e.message)), 400
    except BusinessRuleError as e:
        return jsonify({'success': False, 'error': e.message}), 400
    except Exception as e:
        logger.error(f"Error handling sites for customer {customer_id}: {str(e)}")
        return jsonify({'success': False, 'error': str(e)}), 500


@customers_bp.route('/api/sites/<int:site_id>', methods=['GET', 'PUT', 'DELETE'])
def handle_site(site_id):
    """Get, update or deactivate a site"""
    try:
        with get_db_session() as session:
            repo = CustomerRepository(session)
            if request.method == 'GET':
                site = repo.get_site(site_id)
            elif request.method == 'PUT':
                data = request.get_json(silent=True) or {}
                require_valid(validate_site_request(data, partial=True))
                site = repo.update_site(site_id, data)
            else:
                if not repo.delete_site(site_id):
                    return jsonify({'success': False, 'error': 'Site not found'}), 404
                return jsonify({'success': True})

            if not site:
                return jsonify({'success': False, 'error': 'Site not found'}), 404
            return jsonify({'success': True, 'site': site})
    except ValidationError as e:
        return jsonify(format_validation_error(e.field, e.message)), 400
    except BusinessRuleError as e:
        return jsonify({'success': False, 'error': e.message}), 400
    except Exception as e:
        logger.error(f"Error handling site {site_id}: {str(e)}")
        return jsonify({'success': False, 'error': str(e)}), 500
