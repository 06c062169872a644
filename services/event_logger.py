"""
Event Logger Service - Activity trail for everything that changes.

Repositories record creates, updates, status changes and money movements
here so the dashboard can show recent activity and each record has a
history.
"""

import json
import logging
from typing import Dict, Optional, List, Any
from datetime import datetime, timedelta

from sqlalchemy import func

from database.models import EventLog

logger = logging.getLogger(__name__)

# Event types for different operations
EVENT_TYPES = {
    # CRUD Operations
    'CREATED': 'Entity was created',
    'UPDATED': 'Entity was updated',
    'DELETED': 'Entity was deleted',

    # Status changes
    'STATUS_CHANGED': 'Status was changed',

    # Estimate lifecycle
    'ESTIMATE_SENT': 'Estimate was sent to customer',
    'ESTIMATE_ACCEPTED': 'Estimate was accepted',
    'ESTIMATE_DECLINED': 'Estimate was declined',
    'ESTIMATE_EXPIRED': 'Estimate expired',
    'ESTIMATE_CONVERTED': 'Estimate was converted to a job',

    # Job lifecycle
    'JOB_SCHEDULED': 'Job was scheduled',
    'JOB_STARTED': 'Job work started',
    'JOB_COMPLETED': 'Job was completed',
    'JOB_CANCELLED': 'Job was cancelled',

    # Billing events
    'INVOICE_GENERATED': 'Invoice was generated',
    'INVOICE_SENT': 'Invoice was sent',
    'INVOICE_CANCELLED': 'Invoice was cancelled',
    'PAYMENT_RECEIVED': 'Payment was received',
    'PAYMENT_REFUNDED': 'Payment was refunded',
    'PAYMENT_OVERDUE': 'Payment is overdue',

    # Agreement events
    'AGREEMENT_ACTIVATED': 'Service agreement was activated',
    'AGREEMENT_RENEWED': 'Service agreement was renewed',
    'AGREEMENT_SUSPENDED': 'Service agreement was suspended',
    'AGREEMENT_CANCELLED': 'Service agreement was cancelled',
    'AGREEMENT_EXPIRED': 'Service agreement expired',
    'MAINTENANCE_SCHEDULED': 'Maintenance visit was scheduled',

    # Inventory events
    'STOCK_ADJUSTED': 'Stock quantity was adjusted',
    'LOW_STOCK_ALERT': 'Low stock alert triggered',
}

# Entity types
ENTITY_TYPES = [
    'customer', 'site', 'asset', 'product', 'inventory_item', 'estimate',
    'job', 'invoice', 'payment', 'service_agreement'
]


def _json_safe(metadata: Optional[Dict]) -> Dict:
    """Dates and decimals are stored as strings in the JSON column."""
    if not metadata:
        return {}
    return json.loads(json.dumps(metadata, default=str))


class EventLogger:
    """Service for logging system events to the database."""

    def __init__(self, session, actor_type: str = 'system', actor_id: str = None):
        """
        Initialize the event logger.

        Args:
            session: SQLAlchemy database session
            actor_type: Type of actor (user, system)
            actor_id: ID of the actor (user ID if user, None if system)
        """
        self.session = session
        self.actor_type = actor_type
        self.actor_id = actor_id

    def log(self, entity_type: str, entity_id, event_type: str,
            description: str = None, metadata: Dict = None) -> Optional[Dict]:
        """
        Log an event to the database.

        Args:
            entity_type: Type of entity (customer, invoice, etc.)
            entity_id: ID of the entity
            event_type: Type of event (CREATED, UPDATED, etc.)
            description: Human-readable description of the event
            metadata: Additional data about the event

        Returns:
            The created event log entry as a dict, or None on failure
        """
        try:
            event = EventLog(
                timestamp=datetime.utcnow(),
                actor_type=self.actor_type,
                actor_id=self.actor_id,
                entity_type=entity_type,
                entity_id=str(entity_id) if entity_id is not None else None,
                event_type=event_type,
                description=description or EVENT_TYPES.get(event_type, event_type),
                extra_data=_json_safe(metadata)
            )

            self.session.add(event)
            self.session.flush()

            logger.debug(f"Event logged: {event_type} on {entity_type}:{entity_id}")
            return event.to_dict()

        except Exception as e:
            logger.error(f"Failed to log event: {e}")
            return None

    def log_status_change(self, entity_type: str, entity_id, old_status: str,
                          new_status: str, event_type: str = 'STATUS_CHANGED') -> Optional[Dict]:
        """Log a status change event."""
        return self.log(
            entity_type=entity_type,
            entity_id=entity_id,
            event_type=event_type,
            description=f"{entity_type.replace('_', ' ').capitalize()} status changed from '{old_status}' to '{new_status}'",
            metadata={'old_status': old_status, 'new_status': new_status}
        )

    def get_entity_history(self, entity_type: str, entity_id, limit: int = 50) -> List[Dict]:
        """Get the event history for a specific entity."""
        events = self.session.query(EventLog).filter(
            EventLog.entity_type == entity_type,
            EventLog.entity_id == str(entity_id)
        ).order_by(EventLog.timestamp.desc()).limit(limit).all()
        return [e.to_dict() for e in events]

    def get_recent_events(self, hours: int = 24, event_types: List[str] = None,
                          entity_types: List[str] = None, limit: int = 100) -> List[Dict]:
        """Get recent events with optional filtering."""
        since = datetime.utcnow() - timedelta(hours=hours)

        query = self.session.query(EventLog).filter(EventLog.timestamp >= since)
        if event_types:
            query = query.filter(EventLog.event_type.in_(event_types))
        if entity_types:
            query = query.filter(EventLog.entity_type.in_(entity_types))

        events = query.order_by(EventLog.timestamp.desc(), EventLog.id.desc()).limit(limit).all()
        return [e.to_dict() for e in events]

    def get_activity_summary(self, days: int = 7) -> Dict[str, Any]:
        """Counts of events by type and entity over the last ``days`` days."""
        since = datetime.utcnow() - timedelta(days=days)

        event_counts = self.session.query(
            EventLog.event_type,
            func.count(EventLog.id).label('count')
        ).filter(EventLog.timestamp >= since).group_by(EventLog.event_type).all()

        entity_counts = self.session.query(
            EventLog.entity_type,
            func.count(EventLog.id).label('count')
        ).filter(EventLog.timestamp >= since).group_by(EventLog.entity_type).all()

        return {
            'period_days': days,
            'event_type_counts': {e[0]: e[1] for e in event_counts},
            'entity_type_counts': {e[0]: e[1] for e in entity_counts},
            'total_events': sum(e[1] for e in event_counts),
            'recent_events': self.get_recent_events(hours=24, limit=10)
        }


def get_event_logger(session, user_id: str = None) -> EventLogger:
    """
    Factory function to create an EventLogger instance.

    Args:
        session: SQLAlchemy database session
        user_id: Optional user ID if the actor is a user
    """
    actor_type = 'user' if user_id else 'system'
    return EventLogger(session, actor_type, user_id)
