"""
Shared plumbing for the repository classes: event logging, date parsing,
whitelisted field updates and record numbering.
"""

import logging
from datetime import datetime, date
from typing import Dict, Iterable, Optional

from dateutil import parser as date_parser
from sqlalchemy.orm import Session

from app.utils.helpers import format_document_number, parse_document_sequence, ENTITY_PREFIXES
from services.event_logger import get_event_logger

logger = logging.getLogger(__name__)


class BaseRepository:
    """Base class for repositories with event logging."""

    def __init__(self, session: Session, user_id: str = None):
        self.session = session
        self.user_id = user_id  # For tracking who made changes
        self.events = get_event_logger(session, user_id)

    def _log_event(self, entity_type: str, entity_id, event_type: str,
                   description: str = None, metadata: Dict = None):
        """Record an event in the activity trail."""
        self.events.log(entity_type, entity_id, event_type, description, metadata)

    def _apply_fields(self, obj, data: Dict, keys: Iterable[str]) -> Dict:
        """
        Copy whitelisted keys from ``data`` onto ``obj``.

        Returns a dict of {key: {'old': ..., 'new': ...}} for values that changed.
        """
        changes = {}
        for key in keys:
            if key in data:
                old_value = getattr(obj, key)
                new_value = data[key]
                if old_value != new_value:
                    changes[key] = {'old': old_value, 'new': new_value}
                setattr(obj, key, new_value)
        return changes

    def _apply_dates(self, obj, data: Dict, keys: Iterable[str]):
        for key in keys:
            if key in data:
                setattr(obj, key, self._parse_date(data[key]))

    def _next_number(self, column, entity: str, today: date = None) -> str:
        """Next PREFIX-YYYY-NNNN number for ``entity`` based on existing rows."""
        today = today or date.today()
        prefix = ENTITY_PREFIXES[entity]
        pattern = f"{prefix}-{today.year}-%"
        rows = self.session.query(column).filter(column.like(pattern)).all()
        last = max((parse_document_sequence(r[0]) for r in rows), default=0)
        return format_document_number(prefix, today.year, last + 1)

    def _parse_date(self, value) -> Optional[date]:
        """Parse a date from string or return None."""
        if not value:
            return None
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        try:
            return date_parser.isoparse(value).date()
        except (ValueError, TypeError, AttributeError):
            return None

    def _parse_datetime(self, value) -> Optional[datetime]:
        """Parse a datetime from string or return None."""
        if not value:
            return None
        if isinstance(value, datetime):
            return value
        try:
            return date_parser.isoparse(value)
        except (ValueError, TypeError, AttributeError):
            return None
