"""
Inventory API Routes Blueprint

Handles van and shop stock:
- /api/inventory: List/search and create items
- /api/inventory/<id>: Get, update, deactivate an item
- /api/inventory/<id>/adjust: Change quantity on hand (logged)
- /api/inventory/<id>/logs: Quantity history
- /api/inventory/low-stock: Items at or below reorder point
- /api/inventory/value: Total stock value at cost
"""

import logging
from flask import Blueprint, request, jsonify

from database.connection import get_db_session
from database.models import InventoryChangeType
from services.inventory_repository import InventoryRepository
from validators import (
    ValidationError, format_validation_error, require_valid, validate_inventory_request, validate_stock_adjustment
)

logger = logging.getLogger(__name__)

# Create blueprint
inventory_bp = Blueprint('inventory_bp', __name__)


@inventory_bp.route('/api/inventory', methods=['GET', 'POST'])
def handle_inventory():
    """List inventory items or create one"""
    try:
        with get_db_session() as session:
            repo = InventoryRepository(session)
            if request.method == 'GET':
                search = request.args.get('search')
                if search:
                    items = repo.search_items(search)
                else:
                    items = repo.list_items(
                        category=request.args.get('category'),
                        low_stock_only=request.args.get('low_stock', 'false').lower() == 'true'
                    )
                return jsonify({'success': True, 'items': items, 'count': len(items)})

            data = request.get_json(silent=True) or {}
            require_valid(validate_inventory_request(data))
            item = repo.create_item(data)
            return jsonify({'success': True, 'item': item}), 201
    except ValidationError as e:
        return jsonify(format_validation_error(e.field, e.message)), 400
    except Exception as e:
        logger.error(f"Error handling inventory: {str(e)}")
        return jsonify({'success': False, 'error': str(e)}), 500


@inventory_bp.route('/api/inventory/low-stock', methods=['GET'])
def get_low_stock():
    try:
        with get_db_session() as session:
            items = InventoryRepository(session).get_low_stock_items()
            return jsonify({'success': True, 'items': items, 'count': len(items)})
    except Exception as e:
        logger.error(f"Error getting low stock items: {str(e)}")
        return jsonify({'success': False, 'error': str(e)}), 500


@inventory_bp.route('/api/inventory/value', methods=['GET'])
def get_stock_value():
    try:
        with get_db_session() as session:
            return jsonify({'success': True, 'total_value': InventoryRepository(session).get_stock_value()})
    except Exception as e:
        logger.error(f"Error getting stock value: {str(e)}")
        return jsonify({'success': False, 'error': str(e)}), 500


@inventory_bp.route('/api/inventory/<int:item_id>', methods=['GET', 'PUT', 'DELETE'])
def handle_inventory_item(item_id):
    """Get, update or deactivate an inventory item"""
    try:
        with get_db_session() as session:
            repo = InventoryRepository(session)
            if request.method == 'GET':
                item = repo.get_item(item_id)
            elif request.method == 'PUT':
                data = request.get_json(silent=True) or {}
                require_valid(validate_inventory_request(data, partial=True))
                item = repo.update_item(item_id, data)
            else:
                if not repo.delete_item(item_id):
                    return jsonify({'success': False, 'error': 'Item not found'}), 404
                return jsonify({'success': True})

            if not item:
                return jsonify({'success': False, 'error': 'Item not found'}), 404
            return jsonify({'success': True, 'item': item})
    except ValidationError as e:
        return jsonify(format_validation_error(e.field, e.message)), 400
    except Exception as e:
        logger.error(f"Error handling inventory item {item_id}: {str(e)}")
        return jsonify({'success': False, 'error': str(e)}), 500


@inventory_bp.route('/api/inventory/<int:item_id>/adjust', methods=['POST'])
def adjust_inventory(item_id):
    """Adjust quantity on hand by a positive or negative change"""
    try:
        data = request.get_json(silent=True) or {}
        require_valid(validate_stock_adjustment(data), 'change')
        with get_db_session() as session:
            item = InventoryRepository(session).adjust_quantity(
                item_id,
                data['change'],
                change_type=data.get('change_type') or InventoryChangeType.ADJUSTMENT,
                reference_type=data.get('reference_type'),
                reference_id=data.get('reference_id'),
                notes=data.get('notes')
            )
            if not item:
                return jsonify({'success': False, 'error': 'Item not found'}), 404
            return jsonify({'success': True, 'item': item})
    except ValidationError as e:
        return jsonify(format_validation_error(e.field, e.message)), 400
    except Exception as e:
        logger.error(f"Error adjusting inventory item {item_id}: {str(e)}")
        return jsonify({'success': False, 'error': str(e)}), 500


@inventory_bp.route('/api/inventory/<int:item_id>/logs', methods=['GET'])
def get_inventory_logs(item_id):
    try:
        with get_db_session() as session:
            repo = InventoryRepository(session)
            if repo.get_item(item_id) is None:
                return jsonify({'success': False, 'error': 'Item not found'}), 404
            logs = repo.get_logs(item_id, limit=request.args.get('limit', 100, type=int))
            return jsonify({'success': True, 'logs': logs})
    except Exception as e:
        logger.error(f"Error getting logs for inventory item {item_id}: {str(e)}")
        return jsonify({'success': False, 'error': str(e)}), 500
