"""
Services package for OneManVan.
Contains the business rules and the repository classes for database access.
"""

from services.billing import BusinessRuleError
from services.crm_repository import CustomerRepository
from services.product_repository import ProductRepository
from services.inventory_repository import InventoryRepository
from services.job_repository import JobRepository
from services.invoice_repository import InvoiceRepository
from services.agreement_repository import AgreementRepository
from services.dashboard_service import DashboardService
from services.reminder_service import ReminderService
from services.event_logger import EventLogger, get_event_logger

__all__ = [
    'BusinessRuleError',
    'CustomerRepository',
    'ProductRepository',
    'InventoryRepository',
    'JobRepository',
    'InvoiceRepository',
    'AgreementRepository',
    'DashboardService',
    'ReminderService',
    'EventLogger',
    'get_event_logger'
]
