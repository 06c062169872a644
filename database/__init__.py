"""
Database package for OneManVan.
Provides SQLAlchemy models, connection management, and session handling.
"""

from database.connection import (
    Base,
    get_engine,
    get_db,
    get_db_session,
    configure_database,
    init_db,
    check_db_connection
)

from database.models import (
    Customer,
    Site,
    Asset,
    Product,
    InventoryItem,
    InventoryLog,
    Estimate,
    EstimateLine,
    Job,
    Invoice,
    InvoiceLineItem,
    Payment,
    ServiceAgreement,
    EventLog
)

__all__ = [
    # Connection
    'Base',
    'get_engine',
    'get_db',
    'get_db_session',
    'configure_database',
    'init_db',
    'check_db_connection',
    # Models
    'Customer',
    'Site',
    'Asset',
    'Product',
    'InventoryItem',
    'InventoryLog',
    'Estimate',
    'EstimateLine',
    'Job',
    'Invoice',
    'InvoiceLineItem',
    'Payment',
    'ServiceAgreement',
    'EventLog'
]
