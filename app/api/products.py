"""
Product Catalog API Routes Blueprint

- /api/products: List/search and create catalog products
- /api/products/<id>: Get, update, deactivate a product
- /api/products/categories: Distinct catalog categories
"""

import logging
from flask import Blueprint, request, jsonify

from database.connection import get_db_session
from services.product_repository import ProductRepository
from validators import ValidationError, format_validation_error, require_valid, validate_product_request

logger = logging.getLogger(__name__)

# Create blueprint
products_bp = Blueprint('products_bp', __name__)


@products_bp.route('/api/products', methods=['GET', 'POST'])
def handle_products():
    """List catalog products or add one"""
    try:
        with get_db_session() as session:
            repo = ProductRepository(session)
            if request.method == 'GET':
                search = request.args.get('search')
                if search:
                    products = repo.search_products(search)
                else:
                    products = repo.list_products(
                        category=request.args.get('category'),
                        manufacturer=request.args.get('manufacturer'),
                        include_discontinued=request.args.get('include_discontinued', 'false').lower() == 'true'
                    )
                return jsonify({'success': True, 'products': products, 'count': len(products)})

            data = request.get_json(silent=True) or {}
            require_valid(validate_product_request(data))
            product = repo.create_product(data)
            return jsonify({'success': True, 'product': product}), 201
    except ValidationError as e:
        return jsonify(format_validation_error(e.field, e.message)), 400
    except Exception as e:
        logger.error(f"Error handling products: {str(e)}")
        return jsonify({'success': False, 'error': str(e)}), 500


@products_bp.route('/api/products/categories', methods=['GET'])
def get_product_categories():
    try:
        with get_db_session() as session:
            return jsonify({'success': True, 'categories': ProductRepository(session).get_categories()})
    except Exception as e:
        logger.error(f"Error getting product categories: {str(e)}")
        return jsonify({'success': False, 'error': str(e)}), 500


@products_bp.route('/api/products/<int:product_id>', methods=['GET', 'PUT', 'DELETE'])
def handle_product(product_id):
    """Get, update or deactivate a catalog product"""
    try:
        with get_db_session() as session:
            repo = ProductRepository(session)
            if request.method == 'GET':
                product = repo.get_product(product_id)
            elif request.method == 'PUT':
                data = request.get_json(silent=True) or {}
                require_valid(validate_product_request(data, partial=True))
                product = repo.update_product(product_id, data)
            else:
                if not repo.delete_product(product_id):
                    return jsonify({'success': False, 'error': 'Product not found'}), 404
                return jsonify({'success': True})

            if not product:
                return jsonify({'success': False, 'error': 'Product not found'}), 404
            return jsonify({'success': True, 'product': product})
    except ValidationError as e:
        return jsonify(format_validation_error(e.field, e.message)), 400
    except Exception as e:
        logger.error(f"Error handling product {product_id}: {str(e)}")
        return jsonify({'success': False, 'error': str(e)}), 500
