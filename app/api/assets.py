"""
Asset API Routes Blueprint

Handles HVAC equipment records:
- /api/assets: List (by customer or site) and create assets
- /api/assets/<id>: Get, update, deactivate an asset
- /api/assets/validate-serial: Check a serial number before saving
"""

import logging
from flask import Blueprint, request, jsonify

from database.connection import get_db_session
from services.billing import BusinessRuleError
from services.crm_repository import CustomerRepository
from validators import ValidationError, format_validation_error, require_valid, validate_asset_request

logger = logging.getLogger(__name__)

# Create blueprint
assets_bp = Blueprint('assets_bp', __name__)


@assets_bp.route('/api/assets', methods=['GET', 'POST'])
def handle_assets():
    """List assets or create one"""
    try:
        with get_db_session() as session:
            repo = CustomerRepository(session)
            if request.method == 'GET':
                assets = repo.list_assets(
                    customer_id=request.args.get('customer_id', type=int),
                    site_id=request.args.get('site_id', type=int),
                    active_only=request.args.get('include_inactive', 'false').lower() != 'true'
                )
                return jsonify({'success': True, 'assets': assets, 'count': len(assets)})

            data = request.get_json(silent=True) or {}
            require_valid(validate_asset_request(data), 'serial')
            asset = repo.create_asset(data)
            return jsonify({'success': True, 'asset': asset}), 201
    except ValidationError as e:
        return jsonify(format_validation_error(e.field, e.message)), 400
    except BusinessRuleError as e:
        return jsonify({'success': False, 'error': e.message}), 400
    except Exception as e:
        logger.error(f"Error handling assets: {str(e)}")
        return jsonify({'success': False, 'error': str(e)}), 500


@assets_bp.route('/api/assets/<int:asset_id>', methods=['GET', 'PUT', 'DELETE'])
def handle_asset(asset_id):
    """Get, update or deactivate a single asset"""
    try:
        with get_db_session() as session:
            repo = CustomerRepository(session)
            if request.method == 'GET':
                asset = repo.get_asset(asset_id)
            elif request.method == 'PUT':
                data = request.get_json(silent=True) or {}
                require_valid(validate_asset_request(data, partial=True))
                asset = repo.update_asset(asset_id, data)
            else:
                if not repo.delete_asset(asset_id):
                    return jsonify({'success': False, 'error': 'Asset not found'}), 404
                return jsonify({'success': True})

            if not asset:
                return jsonify({'success': False, 'error': 'Asset not found'}), 404
            return jsonify({'success': True, 'asset': asset})
    except ValidationError as e:
        return jsonify(format_validation_error(e.field, e.message)), 400
    except BusinessRuleError as e:
        return jsonify({'success': False, 'error': e.message}), 400
    except Exception as e:
        logger.error(f"Error handling asset {asset_id}: {str(e)}")
        return jsonify({'success': False, 'error': str(e)}), 500


@assets_bp.route('/api/assets/validate-serial', methods=['POST'])
def validate_serial():
    """Check whether a serial number is free to use on an asset"""
    try:
        data = request.get_json(silent=True) or {}
        with get_db_session() as session:
            result = CustomerRepository(session).validate_serial_number(
                data.get('serial'), exclude_asset_id=data.get('exclude_asset_id'))
            return jsonify({'success': True, **result})
    except Exception as e:
        logger.error(f"Error validating serial number: {str(e)}")
        return jsonify({'success': False, 'error': str(e)}), 500
