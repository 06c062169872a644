"""
Database seeding for OneManVan.
Adds a starter product catalog and van stock when those tables are empty.
"""

import logging
from database.connection import get_db_session
from database.models import Product, InventoryItem
from services.inventory_repository import InventoryRepository
from services.product_repository import ProductRepository

logger = logging.getLogger(__name__)

DEFAULT_PRODUCTS = [
    {'manufacturer': 'Carrier', 'model_number': '24ACC636A003', 'product_name': 'Comfort 13 SEER AC 3 Ton',
     'category': 'AirConditioner', 'equipment_type': 'AirConditioner', 'fuel_type': 'Electric',
     'tonnage_x10': 30, 'seer_rating': 13.0, 'refrigerant_type': 'R-410A',
     'msrp': 3200.00, 'wholesale_cost': 1850.00, 'suggested_sell_price': 2900.00,
     'parts_warranty_years': 10, 'compressor_warranty_years': 10, 'labor_warranty_years': 1},
    {'manufacturer': 'Trane', 'model_number': 'S9V2B060U4', 'product_name': 'S9V2 96% Gas Furnace',
     'category': 'Furnace', 'equipment_type': 'Furnace', 'fuel_type': 'NaturalGas',
     'btu_rating': 60000, 'afue_rating': 96.0,
     'msrp': 2800.00, 'wholesale_cost': 1500.00, 'suggested_sell_price': 2450.00,
     'parts_warranty_years': 10, 'labor_warranty_years': 1},
    {'manufacturer': 'Goodman', 'model_number': 'GSZ140361', 'product_name': '14 SEER Heat Pump 3 Ton',
     'category': 'HeatPump', 'equipment_type': 'HeatPump', 'fuel_type': 'Electric',
     'tonnage_x10': 30, 'seer_rating': 14.0, 'refrigerant_type': 'R-410A',
     'msrp': 3000.00, 'wholesale_cost': 1650.00, 'suggested_sell_price': 2700.00,
     'parts_warranty_years': 10, 'compressor_warranty_years': 10},
    {'manufacturer': 'Honeywell', 'model_number': 'TH6220WF2006', 'product_name': 'T6 Pro Smart Thermostat',
     'category': 'Thermostat', 'equipment_type': 'Thermostat',
     'msrp': 169.00, 'wholesale_cost': 95.00, 'suggested_sell_price': 149.00,
     'parts_warranty_years': 5},
]

DEFAULT_INVENTORY = [
    {'sku': 'FLT-16251', 'name': 'Pleated Filter 16x25x1 MERV 8', 'category': 'Filters',
     'quantity_on_hand': 24, 'reorder_point': 12, 'cost': 4.50, 'price': 12.00},
    {'sku': 'FLT-20251', 'name': 'Pleated Filter 20x25x1 MERV 8', 'category': 'Filters',
     'quantity_on_hand': 24, 'reorder_point': 12, 'cost': 4.75, 'price': 12.00},
    {'sku': 'CAP-4555', 'name': 'Dual Run Capacitor 45/5 MFD', 'category': 'Capacitors',
     'quantity_on_hand': 6, 'reorder_point': 3, 'cost': 11.00, 'price': 65.00},
    {'sku': 'CON-2P30', 'name': 'Contactor 2 Pole 30A 24V', 'category': 'Contactors',
     'quantity_on_hand': 4, 'reorder_point': 2, 'cost': 9.50, 'price': 55.00},
    {'sku': 'REF-410A', 'name': 'R-410A Refrigerant', 'category': 'Refrigerants', 'unit': 'lb',
     'quantity_on_hand': 25, 'reorder_point': 10, 'cost': 9.00, 'price': 75.00},
]


def seed_products(session):
    """Create the starter product catalog if there are no products yet."""
    if session.query(Product).first():
        logger.info("Product catalog already populated")
        return []

    repo = ProductRepository(session)
    created = [repo.create_product(data) for data in DEFAULT_PRODUCTS]
    logger.info(f"Seeded {len(created)} catalog products")
    return created


def seed_inventory(session):
    """Create the starter inventory if there are no items yet."""
    if session.query(InventoryItem).first():
        logger.info("Inventory already populated")
        return []

    repo = InventoryRepository(session)
    created = [repo.create_item(data) for data in DEFAULT_INVENTORY]
    logger.info(f"Seeded {len(created)} inventory items")
    return created


def seed_database():
    """
    Seed the database with default data if empty.
    Call this at application startup.
    """
    try:
        with get_db_session() as session:
            seed_products(session)
            seed_inventory(session)
            logger.info("Database seeding completed successfully")
            return True
    except Exception as e:
        logger.error(f"Database seeding failed: {e}")
        raise


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO)
    seed_database()
