"""
Product Repository - Database access layer for the manufacturer catalog.
"""

import logging
from datetime import datetime
from typing import List, Optional, Dict
from sqlalchemy import or_

from database.models import Product
from services.base_repository import BaseRepository

logger = logging.getLogger(__name__)

PRODUCT_FIELDS = [
    'manufacturer', 'model_number', 'serial_number', 'product_name', 'category',
    'equipment_type', 'fuel_type', 'btu_rating', 'tonnage_x10', 'seer_rating',
    'afue_rating', 'refrigerant_type', 'msrp', 'wholesale_cost',
    'suggested_sell_price', 'parts_warranty_years', 'compressor_warranty_years',
    'labor_warranty_years', 'is_discontinued', 'notes', 'is_active'
]


class ProductRepository(BaseRepository):
    """Repository for catalog product operations."""

    def list_products(self, category: str = None, manufacturer: str = None,
                      include_discontinued: bool = False, active_only: bool = True) -> List[Dict]:
        query = self.session.query(Product)
        if active_only:
            query = query.filter(Product.is_active == True)
        if not include_discontinued:
            query = query.filter(Product.is_discontinued == False)
        if category:
            query = query.filter(Product.category == category)
        if manufacturer:
            query = query.filter(Product.manufacturer.ilike(manufacturer))
        products = query.order_by(Product.manufacturer, Product.model_number).all()
        return [p.to_dict() for p in products]

    def get_product(self, product_id) -> Optional[Dict]:
        product = self.session.query(Product).filter(Product.id == product_id).first()
        return product.to_dict() if product else None

    def create_product(self, data: Dict) -> Dict:
        """Create a catalog product with the next PROD-YYYY-NNNN number."""
        product = Product(
            product_number=self._next_number(Product.product_number, 'product'),
            manufacturer=data.get('manufacturer', ''),
            model_number=data.get('model_number', '')
        )
        self._apply_fields(product, data, PRODUCT_FIELDS)
        self.session.add(product)
        self.session.flush()

        self._log_event(
            entity_type='product',
            entity_id=product.id,
            event_type='CREATED',
            description=f"Product '{product.display_name}' was added to the catalog"
        )

        logger.info(f"Created product: {product.product_number}")
        return product.to_dict()

    def update_product(self, product_id, data: Dict) -> Optional[Dict]:
        product = self.session.query(Product).filter(Product.id == product_id).first()
        if not product:
            return None

        changes = self._apply_fields(product, data, PRODUCT_FIELDS)
        product.updated_at = datetime.utcnow()
        self.session.flush()

        if changes:
            self._log_event('product', product.id, 'UPDATED', metadata={'changes': changes})

        logger.info(f"Updated product: {product_id}")
        return product.to_dict()

    def delete_product(self, product_id) -> bool:
        """Soft delete a product."""
        product = self.session.query(Product).filter(Product.id == product_id).first()
        if not product:
            return False
        product.is_active = False
        product.updated_at = datetime.utcnow()
        self.session.flush()
        self._log_event('product', product.id, 'DELETED')
        logger.info(f"Deleted (deactivated) product: {product_id}")
        return True

    def search_products(self, query: str) -> List[Dict]:
        """Search products by manufacturer, model number or name."""
        search = f"%{query}%"
        products = self.session.query(Product).filter(
            Product.is_active == True,
            or_(
                Product.manufacturer.ilike(search),
                Product.model_number.ilike(search),
                Product.product_name.ilike(search)
            )
        ).order_by(Product.manufacturer, Product.model_number).all()
        return [p.to_dict() for p in products]

    def get_categories(self) -> List[str]:
        result = self.session.query(Product.category).filter(
            Product.is_active == True,
            Product.category.isnot(None)
        ).distinct().all()
        return sorted(r[0] for r in result if r[0])
