"""
Inventory Repository - Database access layer for van and shop stock.

Every quantity change goes through adjust_quantity (or create_item for the
opening balance) so the inventory_logs table holds a complete audit trail.
"""

import logging
from datetime import datetime
from typing import List, Optional, Dict
from sqlalchemy import or_

from app.utils.helpers import to_money
from database.models import InventoryItem, InventoryLog, InventoryChangeType
from services.base_repository import BaseRepository

logger = logging.getLogger(__name__)

ITEM_FIELDS = [
    'name', 'sku', 'description', 'category', 'reorder_point', 'cost', 'price',
    'unit', 'location', 'supplier', 'btu_min', 'btu_max', 'fuel_type', 'is_active'
]


class InventoryRepository(BaseRepository):
    """Repository for inventory database operations."""

    def _get_item(self, item_id) -> Optional[InventoryItem]:
        return self.session.query(InventoryItem).filter(InventoryItem.id == item_id).first()

    def list_items(self, category: str = None, active_only: bool = True,
                   low_stock_only: bool = False) -> List[Dict]:
        """List inventory items with optional filters."""
        query = self.session.query(InventoryItem)
        if active_only:
            query = query.filter(InventoryItem.is_active == True)
        if category:
            query = query.filter(InventoryItem.category == category)
        if low_stock_only:
            query = query.filter(
                InventoryItem.reorder_point > 0,
                InventoryItem.quantity_on_hand <= InventoryItem.reorder_point
            )

        items = query.order_by(InventoryItem.name).all()
        return [item.to_dict() for item in items]

    def get_item(self, item_id) -> Optional[Dict]:
        """Get an inventory item by ID."""
        item = self._get_item(item_id)
        return item.to_dict() if item else None

    def get_item_by_sku(self, sku: str) -> Optional[Dict]:
        """Get an inventory item by SKU."""
        item = self.session.query(InventoryItem).filter(InventoryItem.sku == sku).first()
        return item.to_dict() if item else None

    def create_item(self, data: Dict) -> Dict:
        """Create a new inventory item, logging its opening quantity."""
        quantity = float(data.get('quantity_on_hand') or 0)
        item = InventoryItem(
            name=data.get('name', ''),
            quantity_on_hand=max(0.0, quantity)
        )
        self._apply_fields(item, data, ITEM_FIELDS)
        self.session.add(item)
        self.session.flush()

        self.session.add(InventoryLog(
            inventory_item_id=item.id,
            change_type=InventoryChangeType.INITIAL,
            quantity_change=item.quantity_on_hand,
            quantity_before=0.0,
            quantity_after=item.quantity_on_hand,
            notes='Initial stock'
        ))
        self.session.flush()

        self._log_event(
            entity_type='inventory_item',
            entity_id=item.id,
            event_type='CREATED',
            description=f"Inventory item '{item.name}' was created",
            metadata={'sku': item.sku, 'quantity': item.quantity_on_hand}
        )

        logger.info(f"Created inventory item: {item.id}")
        return item.to_dict()

    def update_item(self, item_id, data: Dict) -> Optional[Dict]:
        """
        Update an inventory item.

        Quantity is not editable here; use adjust_quantity so the change is logged.
        """
        item = self._get_item(item_id)
        if not item:
            return None

        changes = self._apply_fields(item, data, ITEM_FIELDS)
        item.updated_at = datetime.utcnow()
        self.session.flush()

        if changes:
            self._log_event('inventory_item', item.id, 'UPDATED', metadata={'changes': changes})

        logger.info(f"Updated inventory item: {item_id}")
        return item.to_dict()

    def delete_item(self, item_id) -> bool:
        """Soft delete an inventory item."""
        item = self._get_item(item_id)
        if not item:
            return False
        item.is_active = False
        item.updated_at = datetime.utcnow()
        self.session.flush()
        self._log_event('inventory_item', item.id, 'DELETED')
        logger.info(f"Deleted (deactivated) inventory item: {item_id}")
        return True

    def adjust_quantity(self, item_id, change: float,
                        change_type: str = InventoryChangeType.ADJUSTMENT,
                        reference_type: str = None, reference_id: int = None,
                        notes: str = None) -> Optional[Dict]:
        """
        Adjust inventory quantity (positive or negative).

        Stock never goes below zero; the log records the change actually applied.
        """
        item = self._get_item(item_id)
        if not item:
            return None

        before = item.quantity_on_hand or 0.0
        after = max(0.0, before + change)
        item.quantity_on_hand = after
        item.updated_at = datetime.utcnow()

        self.session.add(InventoryLog(
            inventory_item_id=item.id,
            change_type=change_type,
            quantity_change=after - before,
            quantity_before=before,
            quantity_after=after,
            reference_type=reference_type,
            reference_id=reference_id,
            notes=notes
        ))
        self.session.flush()

        self._log_event(
            entity_type='inventory_item',
            entity_id=item.id,
            event_type='STOCK_ADJUSTED',
            description=f"{item.name}: {before:g} -> {after:g} ({change_type})",
            metadata={'before': before, 'after': after, 'change_type': change_type}
        )
        if item.is_low_stock:
            logger.warning(f"Inventory item {item.id} ({item.name}) is at or below reorder point")

        logger.info(f"Adjusted inventory {item_id} by {change}: {notes}")
        return item.to_dict()

    def get_logs(self, item_id, limit: int = 100) -> List[Dict]:
        """Quantity history for an item, newest first."""
        logs = self.session.query(InventoryLog).filter(
            InventoryLog.inventory_item_id == item_id
        ).order_by(InventoryLog.created_at.desc(), InventoryLog.id.desc()).limit(limit).all()
        return [log.to_dict() for log in logs]

    def get_low_stock_items(self) -> List[Dict]:
        """Get all items that are at or below their reorder point."""
        return self.list_items(low_stock_only=True)

    def search_items(self, query: str) -> List[Dict]:
        """Search inventory items by name, SKU, or category."""
        search = f"%{query}%"
        items = self.session.query(InventoryItem).filter(
            InventoryItem.is_active == True,
            or_(
                InventoryItem.name.ilike(search),
                InventoryItem.sku.ilike(search),
                InventoryItem.category.ilike(search)
            )
        ).order_by(InventoryItem.name).all()
        return [item.to_dict() for item in items]

    def get_categories(self) -> List[str]:
        """Get list of unique categories."""
        result = self.session.query(InventoryItem.category).filter(
            InventoryItem.is_active == True,
            InventoryItem.category.isnot(None)
        ).distinct().all()
        return sorted(r[0] for r in result if r[0])

    def get_stock_value(self) -> float:
        """Calculate total stock value at cost."""
        items = self.session.query(InventoryItem).filter(
            InventoryItem.is_active == True
        ).all()
        return to_money(sum((item.quantity_on_hand or 0) * (item.cost or 0) for item in items))
