"""
SQLAlchemy models for OneManVan.
Defines the core tables for customers, equipment, work, billing and stock.
"""

import json
from datetime import datetime, date, timedelta
from sqlalchemy import (
    Column, String, Text, Integer, Float, Boolean, DateTime, Date,
    ForeignKey, JSON, Index
)
from sqlalchemy.orm import relationship
from database.connection import Base
from app.utils.helpers import to_money, add_years, parse_csv_ids


def _iso(value):
    return value.isoformat() if value else None


class ModelDefaultsMixin:
    """
    Apply Python-side defaults when an instance is constructed.

    Column defaults only fire on INSERT; the billing and agreement rules
    run on unsaved instances too, so they need the values up front.
    """
    _defaults = {}

    def __init__(self, **kwargs):
        for key, value in self._defaults.items():
            if key not in kwargs:
                kwargs[key] = value() if callable(value) else value
        super().__init__(**kwargs)


# =============================================================================
# STATUS / TYPE VALUES
# =============================================================================

class CustomerType:
    RESIDENTIAL = 'Residential'
    COMMERCIAL = 'Commercial'
    PROPERTY_MANAGER = 'PropertyManager'
    GOVERNMENT = 'Government'
    NON_PROFIT = 'NonProfit'
    NEW_CONSTRUCTION = 'NewConstruction'
    ALL = [RESIDENTIAL, COMMERCIAL, PROPERTY_MANAGER, GOVERNMENT, NON_PROFIT, NEW_CONSTRUCTION]


class CustomerStatus:
    ACTIVE = 'Active'
    INACTIVE = 'Inactive'
    LEAD = 'Lead'
    VIP = 'VIP'
    DO_NOT_SERVICE = 'DoNotService'
    DELINQUENT = 'Delinquent'
    ARCHIVED = 'Archived'
    ALL = [ACTIVE, INACTIVE, LEAD, VIP, DO_NOT_SERVICE, DELINQUENT, ARCHIVED]


class PaymentTerms:
    COD = 'COD'
    DUE_ON_RECEIPT = 'DueOnReceipt'
    NET_15 = 'Net15'
    NET_30 = 'Net30'
    NET_45 = 'Net45'
    NET_60 = 'Net60'
    ALL = [COD, DUE_ON_RECEIPT, NET_15, NET_30, NET_45, NET_60]


class AssetStatus:
    ACTIVE = 'Active'
    INACTIVE = 'Inactive'
    UNDER_REPAIR = 'UnderRepair'
    REPLACED = 'Replaced'
    REMOVED = 'Removed'
    PENDING_INSTALL = 'PendingInstall'
    DECOMMISSIONED = 'Decommissioned'
    ALL = [ACTIVE, INACTIVE, UNDER_REPAIR, REPLACED, REMOVED, PENDING_INSTALL, DECOMMISSIONED]


class InventoryCategory:
    ALL = ['General', 'Filters', 'Coils', 'Refrigerants', 'Motors', 'Thermostats',
           'Capacitors', 'Contactors', 'Ductwork', 'Fittings', 'Electrical',
           'Tools', 'Consumables']


class InventoryChangeType:
    INITIAL = 'Initial'
    RESTOCK = 'Restock'
    ADJUSTMENT = 'Adjustment'
    USED_ON_JOB = 'UsedOnJob'
    USED_ON_ESTIMATE = 'UsedOnEstimate'
    RETURNED = 'Returned'
    DAMAGED = 'Damaged'
    EXPIRED = 'Expired'
    ALL = [INITIAL, RESTOCK, ADJUSTMENT, USED_ON_JOB, USED_ON_ESTIMATE, RETURNED, DAMAGED, EXPIRED]


class EstimateStatus:
    DRAFT = 'Draft'
    SENT = 'Sent'
    ACCEPTED = 'Accepted'
    DECLINED = 'Declined'
    EXPIRED = 'Expired'
    CONVERTED = 'Converted'
    ALL = [DRAFT, SENT, ACCEPTED, DECLINED, EXPIRED, CONVERTED]


class LineItemType:
    LABOR = 'Labor'
    PART = 'Part'
    MATERIAL = 'Material'
    EQUIPMENT = 'Equipment'
    SERVICE = 'Service'
    DISCOUNT = 'Discount'
    FEE = 'Fee'
    ALL = [LABOR, PART, MATERIAL, EQUIPMENT, SERVICE, DISCOUNT, FEE]


class JobStatus:
    DRAFT = 'Draft'
    SCHEDULED = 'Scheduled'
    EN_ROUTE = 'EnRoute'
    IN_PROGRESS = 'InProgress'
    COMPLETED = 'Completed'
    CLOSED = 'Closed'
    CANCELLED = 'Cancelled'
    ON_HOLD = 'OnHold'
    ALL = [DRAFT, SCHEDULED, EN_ROUTE, IN_PROGRESS, COMPLETED, CLOSED, CANCELLED, ON_HOLD]
    FINISHED = [COMPLETED, CLOSED, CANCELLED]


class JobType:
    ALL = ['ServiceCall', 'Repair', 'Maintenance', 'Installation', 'Replacement',
           'Inspection', 'Emergency', 'Warranty', 'Callback', 'Estimate',
           'Ductwork', 'StartUp', 'Other']


class JobPriority:
    ALL = ['Low', 'Normal', 'High', 'Urgent', 'Emergency']


class InvoiceStatus:
    DRAFT = 'Draft'
    SENT = 'Sent'
    PARTIALLY_PAID = 'PartiallyPaid'
    PAID = 'Paid'
    OVERDUE = 'Overdue'
    CANCELLED = 'Cancelled'
    REFUNDED = 'Refunded'
    ALL = [DRAFT, SENT, PARTIALLY_PAID, PAID, OVERDUE, CANCELLED, REFUNDED]
    OPEN = [SENT, PARTIALLY_PAID, OVERDUE]


class LineItemSource:
    CUSTOM = 'Custom'
    INVENTORY = 'Inventory'
    PRODUCT = 'Product'
    LABOR = 'Labor'
    ALL = [CUSTOM, INVENTORY, PRODUCT, LABOR]


class PaymentMethod:
    DISPLAY = {
        'Cash': 'Cash',
        'Check': 'Check',
        'CreditCard': 'Credit Card',
        'DebitCard': 'Debit Card',
        'BankTransfer': 'Bank Transfer',
        'Digital': 'Digital Payment',
        'Financing': 'Financing',
        'Other': 'Other',
    }
    ALL = list(DISPLAY)


class AgreementType:
    ALL = ['Basic', 'Standard', 'Premium', 'Annual', 'SemiAnnual', 'Quarterly', 'Custom']


class AgreementStatus:
    DRAFT = 'Draft'
    PENDING = 'Pending'
    ACTIVE = 'Active'
    EXPIRED = 'Expired'
    CANCELLED = 'Cancelled'
    SUSPENDED = 'Suspended'
    ALL = [DRAFT, PENDING, ACTIVE, EXPIRED, CANCELLED, SUSPENDED]


class ServiceTier:
    BASIC = 'Basic'
    STANDARD = 'Standard'
    PREMIUM = 'Premium'
    CUSTOM = 'Custom'
    ALL = [BASIC, STANDARD, PREMIUM, CUSTOM]


class BillingFrequency:
    ANNUAL = 'Annual'
    SEMI_ANNUAL = 'SemiAnnual'
    QUARTERLY = 'Quarterly'
    MONTHLY = 'Monthly'
    PER_VISIT = 'PerVisit'
    ALL = [ANNUAL, SEMI_ANNUAL, QUARTERLY, MONTHLY, PER_VISIT]


# =============================================================================
# CUSTOMERS & SITES
# =============================================================================

class Customer(ModelDefaultsMixin, Base):
    """Customer contact and account record."""
    __tablename__ = 'customers'

    _defaults = {
        'customer_type': CustomerType.RESIDENTIAL,
        'status': CustomerStatus.ACTIVE,
        'preferred_contact': 'Any',
        'payment_terms': PaymentTerms.DUE_ON_RECEIPT,
        'tax_exempt': False,
        'account_balance': 0.0,
        'is_active': True,
    }

    id = Column(Integer, primary_key=True, autoincrement=True)
    customer_number = Column(String(20), unique=True)
    name = Column(String(200), nullable=False, default='')
    first_name = Column(String(100))
    last_name = Column(String(100))
    company_name = Column(String(200))
    customer_type = Column(String(30), default=CustomerType.RESIDENTIAL)
    status = Column(String(30), default=CustomerStatus.ACTIVE)
    email = Column(String(255))
    phone = Column(String(20))
    mobile = Column(String(20))
    preferred_contact = Column(String(20), default='Any')  # Any, Phone, Email, Text
    payment_terms = Column(String(20), default=PaymentTerms.DUE_ON_RECEIPT)
    tax_exempt = Column(Boolean, default=False)
    account_balance = Column(Float, default=0)
    tags = Column(Text)  # comma-separated
    notes = Column(Text)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    sites = relationship("Site", back_populates="customer")
    assets = relationship("Asset", back_populates="customer")
    jobs = relationship("Job", back_populates="customer")
    estimates = relationship("Estimate", back_populates="customer")
    invoices = relationship("Invoice", back_populates="customer")
    agreements = relationship("ServiceAgreement", back_populates="customer")

    __table_args__ = (
        Index('ix_customers_name', 'name'),
        Index('ix_customers_email', 'email'),
    )

    @property
    def full_name(self):
        if self.first_name or self.last_name:
            return f"{self.first_name or ''} {self.last_name or ''}".strip()
        return self.name or ''

    @property
    def display_name(self):
        if self.company_name:
            return f"{self.full_name} ({self.company_name})"
        return self.full_name

    @property
    def tag_list(self):
        if not self.tags:
            return []
        return [t.strip() for t in self.tags.split(',') if t.strip()]

    @property
    def is_vip(self):
        return self.status == CustomerStatus.VIP or any(t.lower() == 'vip' for t in self.tag_list)

    def to_dict(self):
        return {
            'id': self.id,
            'customer_number': self.customer_number,
            'name': self.full_name,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'company_name': self.company_name,
            'display_name': self.display_name,
            'customer_type': self.customer_type,
            'status': self.status,
            'email': self.email,
            'phone': self.phone,
            'mobile': self.mobile,
            'preferred_contact': self.preferred_contact,
            'payment_terms': self.payment_terms,
            'tax_exempt': self.tax_exempt,
            'account_balance': self.account_balance or 0,
            'tags': self.tag_list,
            'is_vip': self.is_vip,
            'notes': self.notes,
            'is_active': self.is_active,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }


class Site(ModelDefaultsMixin, Base):
    """Service location belonging to a customer."""
    __tablename__ = 'sites'

    _defaults = {'country': 'USA', 'property_type': 'Unknown', 'is_primary': False, 'is_active': True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    site_number = Column(String(20), unique=True)
    customer_id = Column(Integer, ForeignKey('customers.id'), nullable=False)
    address = Column(String(300), nullable=False)
    address2 = Column(String(50))
    city = Column(String(100))
    state = Column(String(50))
    zip_code = Column(String(20))
    country = Column(String(50), default='USA')
    property_type = Column(String(30), default='Unknown')
    gate_code = Column(String(20))
    access_instructions = Column(Text)
    is_primary = Column(Boolean, default=False)
    is_active = Column(Boolean, default=True)
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    customer = relationship("Customer", back_populates="sites")
    assets = relationship("Asset", back_populates="site")

    __table_args__ = (
        Index('ix_sites_customer', 'customer_id'),
    )

    @property
    def full_address(self):
        street = self.address or ''
        if self.address2:
            street = f"{street} {self.address2}"
        region = ' '.join(p for p in [self.state, self.zip_code] if p)
        return ', '.join(p for p in [street, self.city, region] if p)

    def to_dict(self):
        return {
            'id': self.id,
            'site_number': self.site_number,
            'customer_id': self.customer_id,
            'address': self.address,
            'address2': self.address2,
            'city': self.city,
            'state': self.state,
            'zip_code': self.zip_code,
            'country': self.country,
            'full_address': self.full_address,
            'property_type': self.property_type,
            'gate_code': self.gate_code,
            'access_instructions': self.access_instructions,
            'is_primary': self.is_primary,
            'is_active': self.is_active,
            'notes': self.notes,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }


# =============================================================================
# EQUIPMENT
# =============================================================================

class Asset(ModelDefaultsMixin, Base):
    """HVAC equipment installed at a customer site."""
    __tablename__ = 'assets'

    _defaults = {
        'equipment_type': 'Unknown',
        'fuel_type': 'Unknown',
        'refrigerant_type': 'Unknown',
        'warranty_term_years': 10,
        'parts_warranty_years': 10,
        'labor_warranty_years': 1,
        'compressor_warranty_years': 10,
        'condition': 'Unknown',
        'status': AssetStatus.ACTIVE,
        'is_active': True,
    }

    id = Column(Integer, primary_key=True, autoincrement=True)
    asset_number = Column(String(20), unique=True)
    customer_id = Column(Integer, ForeignKey('customers.id'))
    site_id = Column(Integer, ForeignKey('sites.id'))
    serial = Column(String(100), nullable=False)
    brand = Column(String(100))
    model = Column(String(100))
    nickname = Column(String(100))
    equipment_type = Column(String(30), default='Unknown')  # GasFurnace, AirConditioner, HeatPump, ...
    fuel_type = Column(String(30), default='Unknown')
    btu_rating = Column(Integer)
    tonnage_x10 = Column(Integer)
    seer_rating = Column(Float)
    afue_rating = Column(Float)
    refrigerant_type = Column(String(20), default='Unknown')
    filter_size = Column(String(50))
    filter_change_months = Column(Integer)
    last_filter_change = Column(Date)
    next_filter_due = Column(Date)
    install_date = Column(Date)
    warranty_start_date = Column(Date)
    warranty_term_years = Column(Integer, default=10)
    parts_warranty_years = Column(Integer, default=10)
    labor_warranty_years = Column(Integer, default=1)
    compressor_warranty_years = Column(Integer, default=10)
    last_service_date = Column(Date)
    service_interval_months = Column(Integer)
    next_service_due = Column(Date)
    condition = Column(String(30), default='Unknown')
    status = Column(String(30), default=AssetStatus.ACTIVE)
    location = Column(String(200))
    notes = Column(Text)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    customer = relationship("Customer", back_populates="assets")
    site = relationship("Site", back_populates="assets")

    __table_args__ = (
        Index('ix_assets_serial', 'serial'),
        Index('ix_assets_customer', 'customer_id'),
    )

    def _warranty_end(self, years):
        if not self.warranty_start_date or years is None:
            return None
        return add_years(self.warranty_start_date, years)

    @property
    def warranty_end_date(self):
        return self._warranty_end(self.warranty_term_years)

    @property
    def parts_warranty_end(self):
        return self._warranty_end(self.parts_warranty_years)

    @property
    def labor_warranty_end(self):
        return self._warranty_end(self.labor_warranty_years)

    @property
    def compressor_warranty_end(self):
        return self._warranty_end(self.compressor_warranty_years)

    @property
    def is_warranty_expired(self):
        end = self.warranty_end_date
        return end is not None and end < date.today()

    @property
    def is_warranty_expiring_soon(self):
        end = self.warranty_end_date
        return (end is not None and not self.is_warranty_expired
                and end <= date.today() + timedelta(days=90))

    @property
    def days_until_warranty_expires(self):
        end = self.warranty_end_date
        return (end - date.today()).days if end else None

    @property
    def tonnage(self):
        return self.tonnage_x10 / 10.0 if self.tonnage_x10 is not None else None

    @property
    def age_years(self):
        if not self.install_date:
            return None
        return int((date.today() - self.install_date).days / 365.25)

    @property
    def display_name(self):
        if self.nickname and self.nickname.strip():
            return self.nickname
        return f"{self.brand or ''} {self.model or ''}".strip()

    @property
    def is_filter_due(self):
        return self.next_filter_due is not None and self.next_filter_due <= date.today()

    @property
    def is_service_due(self):
        return self.next_service_due is not None and self.next_service_due <= date.today()

    @property
    def capacity_summary(self):
        parts = []
        if self.tonnage is not None:
            parts.append(f"{self.tonnage:g} Ton")
        if self.btu_rating is not None:
            parts.append(f"{self.btu_rating:,} BTU")
        return ' / '.join(parts) if parts else 'N/A'

    def to_dict(self):
        return {
            'id': self.id,
            'asset_number': self.asset_number,
            'customer_id': self.customer_id,
            'site_id': self.site_id,
            'serial': self.serial,
            'brand': self.brand,
            'model': self.model,
            'nickname': self.nickname,
            'display_name': self.display_name,
            'equipment_type': self.equipment_type,
            'fuel_type': self.fuel_type,
            'btu_rating': self.btu_rating,
            'tonnage': self.tonnage,
            'capacity_summary': self.capacity_summary,
            'seer_rating': self.seer_rating,
            'afue_rating': self.afue_rating,
            'refrigerant_type': self.refrigerant_type,
            'filter_size': self.filter_size,
            'filter_change_months': self.filter_change_months,
            'next_filter_due': _iso(self.next_filter_due),
            'install_date': _iso(self.install_date),
            'age_years': self.age_years,
            'warranty_start_date': _iso(self.warranty_start_date),
            'warranty_end_date': _iso(self.warranty_end_date),
            'parts_warranty_end': _iso(self.parts_warranty_end),
            'labor_warranty_end': _iso(self.labor_warranty_end),
            'compressor_warranty_end': _iso(self.compressor_warranty_end),
            'is_warranty_expired': self.is_warranty_expired,
            'is_warranty_expiring_soon': self.is_warranty_expiring_soon,
            'days_until_warranty_expires': self.days_until_warranty_expires,
            'last_service_date': _iso(self.last_service_date),
            'next_service_due': _iso(self.next_service_due),
            'is_filter_due': self.is_filter_due,
            'is_service_due': self.is_service_due,
            'condition': self.condition,
            'status': self.status,
            'location': self.location,
            'notes': self.notes,
            'is_active': self.is_active,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }


class Product(ModelDefaultsMixin, Base):
    """Manufacturer catalog entry (equipment models and their pricing)."""
    __tablename__ = 'products'

    _defaults = {'is_discontinued': False, 'is_active': True, 'msrp': 0.0,
                 'wholesale_cost': 0.0, 'suggested_sell_price': 0.0}

    id = Column(Integer, primary_key=True, autoincrement=True)
    product_number = Column(String(20), unique=True)
    manufacturer = Column(String(100), nullable=False)
    model_number = Column(String(100), nullable=False)
    serial_number = Column(String(100))
    product_name = Column(String(200))
    category = Column(String(50))
    equipment_type = Column(String(30))
    fuel_type = Column(String(30))
    btu_rating = Column(Integer)
    tonnage_x10 = Column(Integer)
    seer_rating = Column(Float)
    afue_rating = Column(Float)
    refrigerant_type = Column(String(20))
    msrp = Column(Float, default=0)
    wholesale_cost = Column(Float, default=0)
    suggested_sell_price = Column(Float, default=0)
    parts_warranty_years = Column(Integer)
    compressor_warranty_years = Column(Integer)
    labor_warranty_years = Column(Integer)
    is_discontinued = Column(Boolean, default=False)
    is_active = Column(Boolean, default=True)
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index('ix_products_model_number', 'model_number'),
        Index('ix_products_manufacturer', 'manufacturer'),
    )

    @property
    def display_name(self):
        return self.product_name or f"{self.manufacturer} {self.model_number}"

    @property
    def profit_margin(self):
        if not self.wholesale_cost or self.wholesale_cost <= 0:
            return 0.0
        return to_money((self.suggested_sell_price - self.wholesale_cost) / self.wholesale_cost * 100)

    def to_dict(self):
        return {
            'id': self.id,
            'product_number': self.product_number,
            'manufacturer': self.manufacturer,
            'model_number': self.model_number,
            'serial_number': self.serial_number,
            'product_name': self.product_name,
            'display_name': self.display_name,
            'category': self.category,
            'equipment_type': self.equipment_type,
            'fuel_type': self.fuel_type,
            'btu_rating': self.btu_rating,
            'tonnage': self.tonnage_x10 / 10.0 if self.tonnage_x10 is not None else None,
            'seer_rating': self.seer_rating,
            'afue_rating': self.afue_rating,
            'refrigerant_type': self.refrigerant_type,
            'msrp': self.msrp or 0,
            'wholesale_cost': self.wholesale_cost or 0,
            'suggested_sell_price': self.suggested_sell_price or 0,
            'profit_margin': self.profit_margin,
            'parts_warranty_years': self.parts_warranty_years,
            'compressor_warranty_years': self.compressor_warranty_years,
            'labor_warranty_years': self.labor_warranty_years,
            'is_discontinued': self.is_discontinued,
            'is_active': self.is_active,
            'notes': self.notes,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }


# =============================================================================
# INVENTORY
# =============================================================================

class InventoryItem(ModelDefaultsMixin, Base):
    """Stock carried on the van or in the shop."""
    __tablename__ = 'inventory_items'

    _defaults = {'category': 'General', 'quantity_on_hand': 0.0, 'reorder_point': 0.0,
                 'cost': 0.0, 'price': 0.0, 'unit': 'ea', 'is_active': True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    sku = Column(String(100), unique=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    category = Column(String(50), default='General')
    quantity_on_hand = Column(Float, default=0)
    reorder_point = Column(Float, default=0)
    cost = Column(Float, default=0)
    price = Column(Float, default=0)
    unit = Column(String(20), default='ea')
    location = Column(String(100))
    supplier = Column(String(200))
    btu_min = Column(Integer)
    btu_max = Column(Integer)
    fuel_type = Column(String(30))
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    logs = relationship("InventoryLog", back_populates="item",
                        order_by="InventoryLog.created_at.desc()")

    __table_args__ = (
        Index('ix_inventory_category', 'category'),
        Index('ix_inventory_sku', 'sku'),
    )

    @property
    def is_low_stock(self):
        return (self.reorder_point or 0) > 0 and (self.quantity_on_hand or 0) <= self.reorder_point

    @property
    def is_out_of_stock(self):
        return (self.quantity_on_hand or 0) <= 0

    @property
    def profit_margin(self):
        if not self.cost or self.cost <= 0:
            return 0.0
        return to_money((self.price - self.cost) / self.cost * 100)

    @property
    def stock_value(self):
        return to_money((self.quantity_on_hand or 0) * (self.cost or 0))

    def to_dict(self):
        return {
            'id': self.id,
            'sku': self.sku,
            'name': self.name,
            'description': self.description,
            'category': self.category,
            'quantity_on_hand': self.quantity_on_hand or 0,
            'reorder_point': self.reorder_point or 0,
            'cost': self.cost or 0,
            'price': self.price or 0,
            'unit': self.unit,
            'location': self.location,
            'supplier': self.supplier,
            'btu_min': self.btu_min,
            'btu_max': self.btu_max,
            'fuel_type': self.fuel_type,
            'is_low_stock': self.is_low_stock,
            'is_out_of_stock': self.is_out_of_stock,
            'profit_margin': self.profit_margin,
            'stock_value': self.stock_value,
            'is_active': self.is_active,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }


class InventoryLog(Base):
    """Audit record for every stock quantity change."""
    __tablename__ = 'inventory_logs'

    id = Column(Integer, primary_key=True, autoincrement=True)
    inventory_item_id = Column(Integer, ForeignKey('inventory_items.id'), nullable=False)
    change_type = Column(String(30), nullable=False)
    quantity_change = Column(Float, nullable=False)
    quantity_before = Column(Float, nullable=False)
    quantity_after = Column(Float, nullable=False)
    reference_type = Column(String(30))  # job, estimate
    reference_id = Column(Integer)
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)

    item = relationship("InventoryItem", back_populates="logs")

    __table_args__ = (
        Index('ix_inventory_logs_item', 'inventory_item_id'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'inventory_item_id': self.inventory_item_id,
            'change_type': self.change_type,
            'quantity_change': self.quantity_change,
            'quantity_before': self.quantity_before,
            'quantity_after': self.quantity_after,
            'reference_type': self.reference_type,
            'reference_id': self.reference_id,
            'notes': self.notes,
            'created_at': _iso(self.created_at)
        }


# =============================================================================
# ESTIMATES
# =============================================================================

class Estimate(ModelDefaultsMixin, Base):
    """Quotation sent to a customer before work is booked."""
    __tablename__ = 'estimates'

    _defaults = {'status': EstimateStatus.DRAFT, 'subtotal': 0.0, 'tax_rate': 7.0,
                 'tax_included': False, 'tax_amount': 0.0, 'total': 0.0, 'is_active': True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    estimate_number = Column(String(20), unique=True)
    customer_id = Column(Integer, ForeignKey('customers.id'), nullable=False)
    site_id = Column(Integer, ForeignKey('sites.id'))
    asset_id = Column(Integer, ForeignKey('assets.id'))
    title = Column(String(200), nullable=False, default='')
    description = Column(Text)
    status = Column(String(20), default=EstimateStatus.DRAFT)
    subtotal = Column(Float, default=0)
    tax_rate = Column(Float, default=7.0)  # percent
    tax_included = Column(Boolean, default=False)
    tax_amount = Column(Float, default=0)
    total = Column(Float, default=0)
    expires_at = Column(Date)
    sent_at = Column(DateTime)
    accepted_at = Column(DateTime)
    declined_at = Column(DateTime)
    converted_job_id = Column(Integer)
    notes = Column(Text)
    terms = Column(Text)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    customer = relationship("Customer", back_populates="estimates")
    lines = relationship("EstimateLine", back_populates="estimate",
                         cascade="all, delete-orphan", order_by="EstimateLine.sort_order")

    __table_args__ = (
        Index('ix_estimates_customer', 'customer_id'),
        Index('ix_estimates_status', 'status'),
    )

    @property
    def can_edit(self):
        return self.status == EstimateStatus.DRAFT

    def is_valid_on(self, today=None):
        today = today or date.today()
        return self.expires_at is None or self.expires_at >= today

    @property
    def is_valid(self):
        return self.is_valid_on()

    def to_dict(self, include_lines=True):
        result = {
            'id': self.id,
            'estimate_number': self.estimate_number,
            'customer_id': self.customer_id,
            'site_id': self.site_id,
            'asset_id': self.asset_id,
            'title': self.title,
            'description': self.description,
            'status': self.status,
            'subtotal': self.subtotal or 0,
            'tax_rate': self.tax_rate,
            'tax_included': self.tax_included,
            'tax_amount': self.tax_amount or 0,
            'total': self.total or 0,
            'expires_at': _iso(self.expires_at),
            'can_edit': self.can_edit,
            'is_valid': self.is_valid,
            'sent_at': _iso(self.sent_at),
            'accepted_at': _iso(self.accepted_at),
            'declined_at': _iso(self.declined_at),
            'converted_job_id': self.converted_job_id,
            'notes': self.notes,
            'terms': self.terms,
            'is_active': self.is_active,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }
        if include_lines:
            result['lines'] = [line.to_dict() for line in self.lines]
        return result


class EstimateLine(ModelDefaultsMixin, Base):
    """Line item on an estimate."""
    __tablename__ = 'estimate_lines'

    _defaults = {'line_type': LineItemType.PART, 'quantity': 1.0, 'unit': 'ea',
                 'unit_price': 0.0, 'total': 0.0, 'sort_order': 0}

    id = Column(Integer, primary_key=True, autoincrement=True)
    estimate_id = Column(Integer, ForeignKey('estimates.id'), nullable=False)
    line_type = Column(String(20), default=LineItemType.PART)
    description = Column(String(500), nullable=False, default='')
    quantity = Column(Float, default=1)
    unit = Column(String(20), default='ea')
    unit_price = Column(Float, default=0)
    total = Column(Float, default=0)
    sort_order = Column(Integer, default=0)
    inventory_item_id = Column(Integer, ForeignKey('inventory_items.id'))

    estimate = relationship("Estimate", back_populates="lines")

    def to_dict(self):
        return {
            'id': self.id,
            'estimate_id': self.estimate_id,
            'line_type': self.line_type,
            'description': self.description,
            'quantity': self.quantity,
            'unit': self.unit,
            'unit_price': self.unit_price,
            'total': self.total,
            'sort_order': self.sort_order,
            'inventory_item_id': self.inventory_item_id
        }


# =============================================================================
# JOBS
# =============================================================================

class Job(ModelDefaultsMixin, Base):
    """Scheduled field work for a customer."""
    __tablename__ = 'jobs'

    _defaults = {
        'job_type': 'ServiceCall',
        'priority': 'Normal',
        'status': JobStatus.DRAFT,
        'labor_total': 0.0,
        'parts_total': 0.0,
        'materials_total': 0.0,
        'trip_charge': 0.0,
        'discount_amount': 0.0,
        'subtotal': 0.0,
        'tax_rate': 7.0,
        'tax_amount': 0.0,
        'total': 0.0,
    }

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_number = Column(String(20), unique=True)
    customer_id = Column(Integer, ForeignKey('customers.id'), nullable=False)
    site_id = Column(Integer, ForeignKey('sites.id'))
    asset_id = Column(Integer, ForeignKey('assets.id'))
    estimate_id = Column(Integer, ForeignKey('estimates.id'))
    service_agreement_id = Column(Integer, ForeignKey('service_agreements.id'))
    title = Column(String(200), nullable=False, default='')
    description = Column(Text)
    job_type = Column(String(30), default='ServiceCall')
    priority = Column(String(20), default='Normal')
    status = Column(String(20), default=JobStatus.DRAFT)
    scheduled_date = Column(Date)
    arrival_window_start = Column(String(10))  # HH:MM
    arrival_window_end = Column(String(10))
    estimated_hours = Column(Float)
    actual_hours = Column(Float)
    labor_total = Column(Float, default=0)
    parts_total = Column(Float, default=0)
    materials_total = Column(Float, default=0)
    trip_charge = Column(Float, default=0)
    discount_amount = Column(Float, default=0)
    subtotal = Column(Float, default=0)
    tax_rate = Column(Float, default=7.0)  # percent
    tax_amount = Column(Float, default=0)
    total = Column(Float, default=0)
    en_route_at = Column(DateTime)
    arrived_at = Column(DateTime)
    started_at = Column(DateTime)
    completed_at = Column(DateTime)
    closed_at = Column(DateTime)
    work_performed = Column(Text)
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    customer = relationship("Customer", back_populates="jobs")
    agreement = relationship("ServiceAgreement", back_populates="jobs")

    __table_args__ = (
        Index('ix_jobs_customer', 'customer_id'),
        Index('ix_jobs_status', 'status'),
        Index('ix_jobs_scheduled_date', 'scheduled_date'),
    )

    def set_status(self, new_status, now=None):
        """Change status, stamping each lifecycle timestamp the first time it is reached."""
        now = now or datetime.utcnow()
        self.status = new_status
        if new_status == JobStatus.EN_ROUTE:
            self.en_route_at = self.en_route_at or now
        elif new_status == JobStatus.IN_PROGRESS:
            self.arrived_at = self.arrived_at or now
            self.started_at = self.started_at or now
        elif new_status == JobStatus.COMPLETED:
            self.completed_at = self.completed_at or now
        elif new_status == JobStatus.CLOSED:
            self.closed_at = self.closed_at or now

    @property
    def can_start(self):
        return self.status in (JobStatus.SCHEDULED, JobStatus.EN_ROUTE)

    @property
    def can_complete(self):
        return self.status == JobStatus.IN_PROGRESS

    @property
    def can_edit(self):
        return self.status not in (JobStatus.CLOSED, JobStatus.CANCELLED)

    @property
    def can_invoice(self):
        return self.status == JobStatus.COMPLETED

    def is_overdue_on(self, today=None):
        today = today or date.today()
        return (self.scheduled_date is not None and self.scheduled_date < today
                and self.status not in JobStatus.FINISHED)

    @property
    def is_overdue(self):
        return self.is_overdue_on()

    def to_dict(self):
        return {
            'id': self.id,
            'job_number': self.job_number,
            'customer_id': self.customer_id,
            'site_id': self.site_id,
            'asset_id': self.asset_id,
            'estimate_id': self.estimate_id,
            'service_agreement_id': self.service_agreement_id,
            'title': self.title,
            'description': self.description,
            'job_type': self.job_type,
            'priority': self.priority,
            'status': self.status,
            'scheduled_date': _iso(self.scheduled_date),
            'arrival_window_start': self.arrival_window_start,
            'arrival_window_end': self.arrival_window_end,
            'estimated_hours': self.estimated_hours,
            'actual_hours': self.actual_hours,
            'labor_total': self.labor_total or 0,
            'parts_total': self.parts_total or 0,
            'materials_total': self.materials_total or 0,
            'trip_charge': self.trip_charge or 0,
            'discount_amount': self.discount_amount or 0,
            'subtotal': self.subtotal or 0,
            'tax_rate': self.tax_rate,
            'tax_amount': self.tax_amount or 0,
            'total': self.total or 0,
            'can_start': self.can_start,
            'can_complete': self.can_complete,
            'can_edit': self.can_edit,
            'can_invoice': self.can_invoice,
            'is_overdue': self.is_overdue,
            'en_route_at': _iso(self.en_route_at),
            'arrived_at': _iso(self.arrived_at),
            'started_at': _iso(self.started_at),
            'completed_at': _iso(self.completed_at),
            'closed_at': _iso(self.closed_at),
            'work_performed': self.work_performed,
            'notes': self.notes,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }


# =============================================================================
# INVOICES & PAYMENTS
# =============================================================================

class Invoice(ModelDefaultsMixin, Base):
    """Bill issued to a customer, usually from a completed job."""
    __tablename__ = 'invoices'

    _defaults = {
        'status': InvoiceStatus.DRAFT,
        'invoice_date': date.today,
        'labor_amount': 0.0,
        'parts_amount': 0.0,
        'other_amount': 0.0,
        'discount_amount': 0.0,
        'subtotal': 0.0,
        'tax_rate': 7.0,
        'tax_amount': 0.0,
        'total': 0.0,
        'amount_paid': 0.0,
    }

    id = Column(Integer, primary_key=True, autoincrement=True)
    invoice_number = Column(String(20), unique=True, nullable=False)
    customer_id = Column(Integer, ForeignKey('customers.id'), nullable=False)
    job_id = Column(Integer, ForeignKey('jobs.id'))
    site_id = Column(Integer, ForeignKey('sites.id'))
    status = Column(String(20), default=InvoiceStatus.DRAFT)
    invoice_date = Column(Date, default=date.today)
    due_date = Column(Date)
    labor_amount = Column(Float, default=0)
    parts_amount = Column(Float, default=0)
    other_amount = Column(Float, default=0)
    discount_amount = Column(Float, default=0)
    subtotal = Column(Float, default=0)
    tax_rate = Column(Float, default=7.0)  # percent
    tax_amount = Column(Float, default=0)
    total = Column(Float, default=0)
    amount_paid = Column(Float, default=0)
    sent_at = Column(DateTime)
    paid_at = Column(DateTime)
    cancelled_at = Column(DateTime)
    notes = Column(Text)
    terms = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    customer = relationship("Customer", back_populates="invoices")
    line_items = relationship("InvoiceLineItem", back_populates="invoice",
                              cascade="all, delete-orphan", order_by="InvoiceLineItem.display_order")
    payments = relationship("Payment", back_populates="invoice",
                            order_by="Payment.payment_date")

    __table_args__ = (
        Index('ix_invoices_customer', 'customer_id'),
        Index('ix_invoices_status', 'status'),
        Index('ix_invoices_due_date', 'due_date'),
    )

    @property
    def balance_due(self):
        return to_money((self.total or 0) - (self.amount_paid or 0))

    @property
    def is_paid(self):
        return (self.total or 0) > 0 and (self.amount_paid or 0) >= (self.total or 0)

    def is_overdue_on(self, today=None):
        today = today or date.today()
        return (not self.is_paid and self.due_date is not None and self.due_date < today
                and self.status != InvoiceStatus.CANCELLED)

    @property
    def is_overdue(self):
        return self.is_overdue_on()

    def days_past_due(self, today=None):
        today = today or date.today()
        if not self.due_date:
            return 0
        return max(0, (today - self.due_date).days)

    def to_dict(self, include_children=True):
        result = {
            'id': self.id,
            'invoice_number': self.invoice_number,
            'customer_id': self.customer_id,
            'job_id': self.job_id,
            'site_id': self.site_id,
            'status': self.status,
            'invoice_date': _iso(self.invoice_date),
            'due_date': _iso(self.due_date),
            'labor_amount': self.labor_amount or 0,
            'parts_amount': self.parts_amount or 0,
            'other_amount': self.other_amount or 0,
            'discount_amount': self.discount_amount or 0,
            'subtotal': self.subtotal or 0,
            'tax_rate': self.tax_rate,
            'tax_amount': self.tax_amount or 0,
            'total': self.total or 0,
            'amount_paid': self.amount_paid or 0,
            'balance_due': self.balance_due,
            'is_paid': self.is_paid,
            'is_overdue': self.is_overdue,
            'sent_at': _iso(self.sent_at),
            'paid_at': _iso(self.paid_at),
            'cancelled_at': _iso(self.cancelled_at),
            'notes': self.notes,
            'terms': self.terms,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }
        if include_children:
            result['line_items'] = [item.to_dict() for item in self.line_items]
            result['payments'] = [p.to_dict() for p in self.payments]
        return result


class InvoiceLineItem(ModelDefaultsMixin, Base):
    """Line on an invoice; may come from inventory, the catalog, or labor."""
    __tablename__ = 'invoice_line_items'

    _defaults = {'source': LineItemSource.CUSTOM, 'quantity': 1.0, 'unit_price': 0.0,
                 'total': 0.0, 'display_order': 0}

    id = Column(Integer, primary_key=True, autoincrement=True)
    invoice_id = Column(Integer, ForeignKey('invoices.id'), nullable=False)
    source = Column(String(20), default=LineItemSource.CUSTOM)
    source_id = Column(Integer)  # inventory item or product id
    description = Column(String(500), nullable=False, default='')
    quantity = Column(Float, default=1)
    unit_price = Column(Float, default=0)
    total = Column(Float, default=0)
    serial_number = Column(String(100))
    created_asset_id = Column(Integer)
    display_order = Column(Integer, default=0)

    invoice = relationship("Invoice", back_populates="line_items")

    def to_dict(self):
        return {
            'id': self.id,
            'invoice_id': self.invoice_id,
            'source': self.source,
            'source_id': self.source_id,
            'description': self.description,
            'quantity': self.quantity,
            'unit_price': self.unit_price,
            'total': self.total,
            'serial_number': self.serial_number,
            'created_asset_id': self.created_asset_id,
            'display_order': self.display_order
        }


class Payment(ModelDefaultsMixin, Base):
    """Money received against an invoice (negative amounts are refunds)."""
    __tablename__ = 'payments'

    _defaults = {'payment_method': 'Cash', 'processing_fee': 0.0, 'is_refund': False,
                 'payment_date': datetime.utcnow}

    id = Column(Integer, primary_key=True, autoincrement=True)
    invoice_id = Column(Integer, ForeignKey('invoices.id'), nullable=False)
    amount = Column(Float, nullable=False)
    payment_method = Column(String(20), default='Cash')
    payment_date = Column(DateTime, default=datetime.utcnow)
    transaction_id = Column(String(100))
    reference_number = Column(String(100))  # check number, confirmation code
    card_last4 = Column(String(4))
    processing_fee = Column(Float, default=0)
    is_refund = Column(Boolean, default=False)
    refund_reason = Column(String(500))
    original_payment_id = Column(Integer)
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)

    invoice = relationship("Invoice", back_populates="payments")

    __table_args__ = (
        Index('ix_payments_invoice', 'invoice_id'),
    )

    @property
    def net_amount(self):
        return to_money((self.amount or 0) - (self.processing_fee or 0))

    @property
    def description(self):
        text = PaymentMethod.DISPLAY.get(self.payment_method, self.payment_method or 'Other')
        if self.card_last4:
            text += f" ****{self.card_last4}"
        if self.reference_number:
            text += f" #{self.reference_number}"
        return text

    def to_dict(self):
        return {
            'id': self.id,
            'invoice_id': self.invoice_id,
            'amount': self.amount,
            'payment_method': self.payment_method,
            'description': self.description,
            'payment_date': _iso(self.payment_date),
            'transaction_id': self.transaction_id,
            'reference_number': self.reference_number,
            'card_last4': self.card_last4,
            'processing_fee': self.processing_fee or 0,
            'net_amount': self.net_amount,
            'is_refund': self.is_refund,
            'refund_reason': self.refund_reason,
            'original_payment_id': self.original_payment_id,
            'notes': self.notes,
            'created_at': _iso(self.created_at)
        }


# =============================================================================
# SERVICE AGREEMENTS
# =============================================================================

class ServiceAgreement(ModelDefaultsMixin, Base):
    """Recurring maintenance contract with a yearly visit allotment."""
    __tablename__ = 'service_agreements'

    _defaults = {
        'agreement_type': 'Annual',
        'status': AgreementStatus.DRAFT,
        'start_date': date.today,
        'auto_renew': True,
        'renewal_reminder_days': 30,
        'annual_price': 0.0,
        'monthly_price': 0.0,
        'billing_frequency': BillingFrequency.ANNUAL,
        'repair_discount_percent': 15.0,
        'priority_service': True,
        'waive_trip_charge': True,
        'included_visits_per_year': 2,
        'visits_used': 0,
        'includes_ac_tune_up': True,
        'includes_heating_tune_up': True,
        'includes_filter_replacement': False,
        'service_tier': ServiceTier.STANDARD,
        'no_emergency_dispatch_fee': False,
        'free_minor_adjustments': False,
        'filters_included_per_year': 0,
        'additional_check_visits': 0,
        'response_time_hours': 48,
        'preferred_spring_month': 4,
        'preferred_fall_month': 10,
    }

    id = Column(Integer, primary_key=True, autoincrement=True)
    agreement_number = Column(String(20), unique=True)
    customer_id = Column(Integer, ForeignKey('customers.id'), nullable=False)
    site_id = Column(Integer, ForeignKey('sites.id'))
    name = Column(String(200), nullable=False)
    description = Column(Text)
    agreement_type = Column(String(20), default='Annual')
    status = Column(String(20), default=AgreementStatus.DRAFT)

    # Term
    start_date = Column(Date, nullable=False, default=date.today)
    end_date = Column(Date, nullable=False)
    auto_renew = Column(Boolean, default=True)
    renewal_reminder_days = Column(Integer, default=30)

    # Pricing
    annual_price = Column(Float, default=0)
    monthly_price = Column(Float, default=0)
    billing_frequency = Column(String(20), default=BillingFrequency.ANNUAL)
    repair_discount_percent = Column(Float, default=15)
    priority_service = Column(Boolean, default=True)
    waive_trip_charge = Column(Boolean, default=True)

    # Included services
    included_visits_per_year = Column(Integer, default=2)
    visits_used = Column(Integer, default=0)
    includes_ac_tune_up = Column(Boolean, default=True)
    includes_heating_tune_up = Column(Boolean, default=True)
    includes_filter_replacement = Column(Boolean, default=False)

    # Tier
    service_tier = Column(String(20), default=ServiceTier.STANDARD)
    no_emergency_dispatch_fee = Column(Boolean, default=False)
    free_minor_adjustments = Column(Boolean, default=False)
    filters_included_per_year = Column(Integer, default=0)
    additional_check_visits = Column(Integer, default=0)
    response_time_hours = Column(Integer, default=48)
    spring_ac_tune_up_tasks = Column(JSON)
    fall_heating_tune_up_tasks = Column(JSON)

    # Scheduling
    preferred_spring_month = Column(Integer, default=4)
    preferred_fall_month = Column(Integer, default=10)
    last_maintenance_scheduled = Column(Date)
    next_maintenance_due = Column(Date)
    covered_asset_ids = Column(String(500))  # comma-separated asset ids

    terms = Column(Text)
    internal_notes = Column(Text)
    activated_at = Column(DateTime)
    cancelled_at = Column(DateTime)
    cancellation_reason = Column(String(500))
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    customer = relationship("Customer", back_populates="agreements")
    jobs = relationship("Job", back_populates="agreement")

    __table_args__ = (
        Index('ix_agreements_customer', 'customer_id'),
        Index('ix_agreements_status', 'status'),
        Index('ix_agreements_end_date', 'end_date'),
    )

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        if self.end_date is None and self.start_date is not None:
            self.end_date = add_years(self.start_date, 1)

    def is_active_on(self, today=None):
        today = today or date.today()
        return (self.status == AgreementStatus.ACTIVE
                and self.start_date <= today <= self.end_date)

    def is_expiring_soon_on(self, today=None):
        today = today or date.today()
        return (self.is_active_on(today)
                and self.end_date <= today + timedelta(days=self.renewal_reminder_days or 0))

    def is_expired_on(self, today=None):
        today = today or date.today()
        return today > self.end_date

    def days_until_expiration(self, today=None):
        today = today or date.today()
        return (self.end_date - today).days

    @property
    def visits_remaining(self):
        return max(0, (self.included_visits_per_year or 0) - (self.visits_used or 0))

    @property
    def monthly_recurring_revenue(self):
        if (self.monthly_price or 0) > 0:
            return to_money(self.monthly_price)
        return to_money((self.annual_price or 0) / 12)

    @property
    def installment_amount(self):
        """Amount billed each period for the billing frequency."""
        annual = self.annual_price or 0
        frequency = self.billing_frequency
        if frequency == BillingFrequency.MONTHLY:
            return self.monthly_recurring_revenue
        if frequency == BillingFrequency.QUARTERLY:
            return to_money(annual / 4)
        if frequency == BillingFrequency.SEMI_ANNUAL:
            return to_money(annual / 2)
        if frequency == BillingFrequency.PER_VISIT:
            visits = self.included_visits_per_year or 0
            return to_money(annual / visits) if visits > 0 else to_money(annual)
        return to_money(annual)

    def status_display(self, today=None):
        if self.status == AgreementStatus.ACTIVE:
            if self.is_expired_on(today):
                return 'Expired'
            if self.is_expiring_soon_on(today):
                return 'Expiring Soon'
            return 'Active'
        return self.status or 'Unknown'

    @property
    def covered_asset_id_list(self):
        return parse_csv_ids(self.covered_asset_ids)

    @staticmethod
    def _task_list(value):
        if not value:
            return []
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except ValueError:
                return []
        return list(value) if isinstance(value, list) else []

    def to_dict(self, today=None):
        return {
            'id': self.id,
            'agreement_number': self.agreement_number,
            'customer_id': self.customer_id,
            'site_id': self.site_id,
            'name': self.name,
            'description': self.description,
            'agreement_type': self.agreement_type,
            'status': self.status,
            'status_display': self.status_display(today),
            'start_date': _iso(self.start_date),
            'end_date': _iso(self.end_date),
            'auto_renew': self.auto_renew,
            'renewal_reminder_days': self.renewal_reminder_days,
            'is_active': self.is_active_on(today),
            'is_expiring_soon': self.is_expiring_soon_on(today),
            'is_expired': self.is_expired_on(today),
            'days_until_expiration': self.days_until_expiration(today),
            'annual_price': self.annual_price or 0,
            'monthly_price': self.monthly_price or 0,
            'billing_frequency': self.billing_frequency,
            'installment_amount': self.installment_amount,
            'monthly_recurring_revenue': self.monthly_recurring_revenue,
            'repair_discount_percent': self.repair_discount_percent,
            'priority_service': self.priority_service,
            'waive_trip_charge': self.waive_trip_charge,
            'included_visits_per_year': self.included_visits_per_year,
            'visits_used': self.visits_used,
            'visits_remaining': self.visits_remaining,
            'includes_ac_tune_up': self.includes_ac_tune_up,
            'includes_heating_tune_up': self.includes_heating_tune_up,
            'includes_filter_replacement': self.includes_filter_replacement,
            'service_tier': self.service_tier,
            'no_emergency_dispatch_fee': self.no_emergency_dispatch_fee,
            'free_minor_adjustments': self.free_minor_adjustments,
            'filters_included_per_year': self.filters_included_per_year,
            'additional_check_visits': self.additional_check_visits,
            'response_time_hours': self.response_time_hours,
            'spring_ac_tune_up_tasks': self._task_list(self.spring_ac_tune_up_tasks),
            'fall_heating_tune_up_tasks': self._task_list(self.fall_heating_tune_up_tasks),
            'preferred_spring_month': self.preferred_spring_month,
            'preferred_fall_month': self.preferred_fall_month,
            'last_maintenance_scheduled': _iso(self.last_maintenance_scheduled),
            'next_maintenance_due': _iso(self.next_maintenance_due),
            'covered_asset_ids': self.covered_asset_id_list,
            'terms': self.terms,
            'internal_notes': self.internal_notes,
            'activated_at': _iso(self.activated_at),
            'cancelled_at': _iso(self.cancelled_at),
            'cancellation_reason': self.cancellation_reason,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }


# =============================================================================
# EVENT LOG (activity trail)
# =============================================================================

class EventLog(Base):
    """Append-only record of significant changes."""
    __tablename__ = 'event_log'

    id = Column(Integer, primary_key=True, autoincrement=True)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)
    actor_type = Column(String(20), default='system')  # user, system
    actor_id = Column(String(100))
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(String(50))
    event_type = Column(String(50), nullable=False)
    description = Column(Text)
    extra_data = Column(JSON, default=dict)

    __table_args__ = (
        Index('ix_event_log_entity', 'entity_type', 'entity_id'),
        Index('ix_event_log_timestamp', 'timestamp'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'timestamp': _iso(self.timestamp),
            'actor_type': self.actor_type,
            'actor_id': self.actor_id,
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'event_type': self.event_type,
            'description': self.description,
            'metadata': self.extra_data or {}
        }
