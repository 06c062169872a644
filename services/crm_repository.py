"""
Customer Repository - Database access layer for customers, sites and equipment.
Handles customer accounts, their service locations and the HVAC assets installed there.
All significant changes are logged to the event_log table.
"""

import logging
from datetime import datetime
from typing import List, Optional, Dict, Any
from sqlalchemy import or_

from app.utils.phone import format_phone, unformat
from database.models import (
    Customer, CustomerStatus, Site, Asset, Product,
    Job, JobStatus, Invoice, InvoiceStatus
)
from services.base_repository import BaseRepository
from services.billing import BusinessRuleError

logger = logging.getLogger(__name__)

CUSTOMER_FIELDS = [
    'name', 'first_name', 'last_name', 'company_name', 'customer_type', 'status',
    'email', 'phone', 'mobile', 'preferred_contact', 'payment_terms',
    'tax_exempt', 'tags', 'notes', 'is_active'
]

SITE_FIELDS = [
    'address', 'address2', 'city', 'state', 'zip_code', 'country',
    'property_type', 'gate_code', 'access_instructions', 'is_primary',
    'notes', 'is_active'
]

ASSET_FIELDS = [
    'customer_id', 'site_id', 'serial', 'brand', 'model', 'nickname',
    'equipment_type', 'fuel_type', 'btu_rating', 'tonnage_x10', 'seer_rating',
    'afue_rating', 'refrigerant_type', 'filter_size', 'filter_change_months',
    'warranty_term_years', 'parts_warranty_years', 'labor_warranty_years',
    'compressor_warranty_years', 'service_interval_months', 'condition',
    'status', 'location', 'notes', 'is_active'
]

ASSET_DATE_FIELDS = [
    'install_date', 'warranty_start_date', 'last_filter_change', 'next_filter_due',
    'last_service_date', 'next_service_due'
]


def _tags_to_text(tags):
    if isinstance(tags, (list, tuple)):
        return ', '.join(str(t).strip() for t in tags if str(t).strip())
    return tags


class CustomerRepository(BaseRepository):
    """Repository for customer, site and asset operations with event logging."""

    # =========================================================================
    # CUSTOMERS
    # =========================================================================

    def _get_customer(self, customer_id) -> Optional[Customer]:
        return self.session.query(Customer).filter(Customer.id == customer_id).first()

    def list_customers(self, active_only: bool = True, status: str = None,
                       customer_type: str = None) -> List[Dict]:
        """List customers ordered by name."""
        query = self.session.query(Customer)
        if active_only:
            query = query.filter(Customer.is_active == True)
        if status:
            query = query.filter(Customer.status == status)
        if customer_type:
            query = query.filter(Customer.customer_type == customer_type)
        customers = query.order_by(Customer.name).all()
        return [c.to_dict() for c in customers]

    def get_customer(self, customer_id) -> Optional[Dict]:
        """Get a customer by ID."""
        customer = self._get_customer(customer_id)
        return customer.to_dict() if customer else None

    def create_customer(self, data: Dict) -> Dict:
        """Create a new customer with the next C-YYYY-NNNN number."""
        name = data.get('name') or ' '.join(
            p for p in [data.get('first_name'), data.get('last_name')] if p)
        customer = Customer(
            customer_number=self._next_number(Customer.customer_number, 'customer'),
            name=name,
            first_name=data.get('first_name'),
            last_name=data.get('last_name'),
            company_name=data.get('company_name'),
            customer_type=data.get('customer_type') or Customer._defaults['customer_type'],
            status=data.get('status') or CustomerStatus.ACTIVE,
            email=data.get('email'),
            phone=format_phone(data.get('phone')),
            mobile=format_phone(data.get('mobile')),
            preferred_contact=data.get('preferred_contact', 'Any'),
            payment_terms=data.get('payment_terms') or Customer._defaults['payment_terms'],
            tax_exempt=data.get('tax_exempt', False),
            tags=_tags_to_text(data.get('tags')),
            notes=data.get('notes')
        )
        self.session.add(customer)
        self.session.flush()

        self._log_event(
            entity_type='customer',
            entity_id=customer.id,
            event_type='CREATED',
            description=f"Customer '{customer.full_name}' was created",
            metadata={'customer_number': customer.customer_number, 'email': customer.email}
        )

        logger.info(f"Created customer: {customer.customer_number}")
        return customer.to_dict()

    def update_customer(self, customer_id, data: Dict) -> Optional[Dict]:
        """Update a customer."""
        customer = self._get_customer(customer_id)
        if not customer:
            return None

        data = dict(data)
        if 'tags' in data:
            data['tags'] = _tags_to_text(data['tags'])
        for key in ('phone', 'mobile'):
            if key in data:
                data[key] = format_phone(data[key])

        changes = self._apply_fields(customer, data, CUSTOMER_FIELDS)
        customer.updated_at = datetime.utcnow()
        self.session.flush()

        if changes:
            self._log_event(
                entity_type='customer',
                entity_id=customer.id,
                event_type='UPDATED',
                description=f"Customer '{customer.full_name}' was updated",
                metadata={'changes': changes}
            )

        logger.info(f"Updated customer: {customer_id}")
        return customer.to_dict()

    def delete_customer(self, customer_id) -> bool:
        """Soft delete a customer (set inactive)."""
        customer = self._get_customer(customer_id)
        if not customer:
            return False

        customer.is_active = False
        customer.updated_at = datetime.utcnow()
        self.session.flush()

        self._log_event(
            entity_type='customer',
            entity_id=customer.id,
            event_type='DELETED',
            description=f"Customer '{customer.full_name}' was deactivated"
        )

        logger.info(f"Deleted (deactivated) customer: {customer_id}")
        return True

    def search_customers(self, query: str, limit: int = 50) -> List[Dict]:
        """
        Search active customers by name, company, email or phone.

        Phone matching compares digits only, so "555-1234" finds "(555) 123-4567"
        style numbers stored in any format.
        """
        if not query or not query.strip():
            return self.list_customers()[:limit]

        search = f"%{query.strip()}%"
        matches = self.session.query(Customer).filter(
            Customer.is_active == True,
            or_(
                Customer.name.ilike(search),
                Customer.first_name.ilike(search),
                Customer.last_name.ilike(search),
                Customer.company_name.ilike(search),
                Customer.email.ilike(search),
                Customer.customer_number.ilike(search)
            )
        ).order_by(Customer.name).all()

        digits = unformat(query.strip())
        if digits and len(digits) >= 3:
            seen = {c.id for c in matches}
            for customer in self.session.query(Customer).filter(
                    Customer.is_active == True,
                    or_(Customer.phone.isnot(None), Customer.mobile.isnot(None))).all():
                if customer.id in seen:
                    continue
                numbers = [unformat(n) or '' for n in (customer.phone, customer.mobile)]
                if any(digits in n for n in numbers):
                    matches.append(customer)

        return [c.to_dict() for c in matches[:limit]]

    def get_customer_summary(self, customer_id) -> Optional[Dict[str, Any]]:
        """Counts of sites, assets and open jobs plus the unpaid balance."""
        customer = self._get_customer(customer_id)
        if not customer:
            return None

        site_count = self.session.query(Site).filter(
            Site.customer_id == customer.id, Site.is_active == True).count()
        asset_count = self.session.query(Asset).filter(
            Asset.customer_id == customer.id, Asset.is_active == True).count()
        open_jobs = self.session.query(Job).filter(
            Job.customer_id == customer.id,
            Job.status.notin_(JobStatus.FINISHED)
        ).count()
        unpaid = self.session.query(Invoice).filter(
            Invoice.customer_id == customer.id,
            Invoice.status.in_(InvoiceStatus.OPEN)
        ).all()

        return {
            'customer': customer.to_dict(),
            'site_count': site_count,
            'asset_count': asset_count,
            'open_job_count': open_jobs,
            'unpaid_invoice_count': len(unpaid),
            'unpaid_balance': round(sum(inv.balance_due for inv in unpaid), 2)
        }

    # =========================================================================
    # SITES
    # =========================================================================

    def list_sites(self, customer_id, active_only: bool = True) -> List[Dict]:
        """List a customer's sites, primary first."""
        query = self.session.query(Site).filter(Site.customer_id == customer_id)
        if active_only:
            query = query.filter(Site.is_active == True)
        sites = query.order_by(Site.is_primary.desc(), Site.id).all()
        return [s.to_dict() for s in sites]

    def get_site(self, site_id) -> Optional[Dict]:
        site = self.session.query(Site).filter(Site.id == site_id).first()
        return site.to_dict() if site else None

    def create_site(self, customer_id, data: Dict) -> Optional[Dict]:
        """Add a service location to a customer. Returns None if the customer is missing."""
        customer = self._get_customer(customer_id)
        if not customer:
            return None

        site = Site(
            site_number=self._next_number(Site.site_number, 'site'),
            customer_id=customer.id,
            address=data.get('address', ''),
            address2=data.get('address2'),
            city=data.get('city'),
            state=data.get('state'),
            zip_code=data.get('zip_code'),
            country=data.get('country', 'USA'),
            property_type=data.get('property_type', 'Unknown'),
            gate_code=data.get('gate_code'),
            access_instructions=data.get('access_instructions'),
            is_primary=data.get('is_primary', False),
            notes=data.get('notes')
        )
        self.session.add(site)
        self.session.flush()

        self._log_event(
            entity_type='site',
            entity_id=site.id,
            event_type='CREATED',
            description=f"Site '{site.full_address}' added for {customer.full_name}",
            metadata={'customer_id': customer.id}
        )

        logger.info(f"Created site {site.site_number} for customer {customer.id}")
        return site.to_dict()

    def update_site(self, site_id, data: Dict) -> Optional[Dict]:
        site = self.session.query(Site).filter(Site.id == site_id).first()
        if not site:
            return None

        changes = self._apply_fields(site, data, SITE_FIELDS)
        site.updated_at = datetime.utcnow()
        self.session.flush()

        if changes:
            self._log_event('site', site.id, 'UPDATED', metadata={'changes': changes})

        logger.info(f"Updated site: {site_id}")
        return site.to_dict()

    def delete_site(self, site_id) -> bool:
        """Soft delete a site."""
        site = self.session.query(Site).filter(Site.id == site_id).first()
        if not site:
            return False
        site.is_active = False
        site.updated_at = datetime.utcnow()
        self.session.flush()
        self._log_event('site', site.id, 'DELETED', f"Site '{site.full_address}' was deactivated")
        logger.info(f"Deleted (deactivated) site: {site_id}")
        return True

    # =========================================================================
    # ASSETS
    # =========================================================================

    def _get_asset(self, asset_id) -> Optional[Asset]:
        return self.session.query(Asset).filter(Asset.id == asset_id).first()

    def list_assets(self, customer_id=None, site_id=None, active_only: bool = True) -> List[Dict]:
        """List assets, optionally for one customer or site."""
        query = self.session.query(Asset)
        if customer_id:
            query = query.filter(Asset.customer_id == customer_id)
        if site_id:
            query = query.filter(Asset.site_id == site_id)
        if active_only:
            query = query.filter(Asset.is_active == True)
        assets = query.order_by(Asset.id).all()
        return [a.to_dict() for a in assets]

    def get_asset(self, asset_id) -> Optional[Dict]:
        asset = self._get_asset(asset_id)
        return asset.to_dict() if asset else None

    def validate_serial_number(self, serial: str, exclude_asset_id=None) -> Dict[str, Any]:
        """
        Check a serial number before it is saved on an asset.

        A serial already used by another asset is an error. A serial that
        matches a catalog product is allowed but flagged with a warning.
        Blank serials have nothing to compare and pass.
        """
        if not serial or not serial.strip():
            return {'is_valid': True, 'warning': False, 'message': None}

        serial = serial.strip()
        query = self.session.query(Asset).filter(Asset.serial == serial)
        if exclude_asset_id:
            query = query.filter(Asset.id != exclude_asset_id)
        existing = query.first()

        if existing:
            description = f"{existing.brand or ''} {existing.model or ''}".strip()
            message = f"Serial number '{serial}' already exists for asset: {description}"
            if existing.customer and existing.customer.full_name:
                message += f" (Customer: {existing.customer.full_name})"
            return {
                'is_valid': False,
                'warning': False,
                'error': message,
                'duplicate_type': 'asset',
                'duplicate_id': existing.id
            }

        product = self.session.query(Product).filter(Product.serial_number == serial).first()
        if product:
            return {
                'is_valid': True,
                'warning': True,
                'message': f"Note: Serial number matches product catalog item: "
                           f"{product.manufacturer} {product.model_number}",
                'duplicate_type': 'product',
                'duplicate_id': product.id
            }

        return {'is_valid': True, 'warning': False, 'message': 'Serial number is available'}

    def create_asset(self, data: Dict) -> Dict:
        """
        Create an asset.

        Raises:
            BusinessRuleError: when the serial number is already on another asset
        """
        check = self.validate_serial_number(data.get('serial'))
        if not check['is_valid']:
            raise BusinessRuleError(check['error'], 'asset')

        asset = Asset(
            asset_number=self._next_number(Asset.asset_number, 'asset'),
            serial=(data.get('serial') or '').strip()
        )
        self._apply_fields(asset, data, [k for k in ASSET_FIELDS if k != 'serial'])
        self._apply_dates(asset, data, ASSET_DATE_FIELDS)
        if 'tonnage' in data and 'tonnage_x10' not in data and data['tonnage'] is not None:
            asset.tonnage_x10 = int(round(float(data['tonnage']) * 10))
        if asset.warranty_start_date is None:
            asset.warranty_start_date = asset.install_date

        self.session.add(asset)
        self.session.flush()

        self._log_event(
            entity_type='asset',
            entity_id=asset.id,
            event_type='CREATED',
            description=f"Asset '{asset.display_name or asset.serial}' was added",
            metadata={'serial': asset.serial, 'customer_id': asset.customer_id}
        )

        logger.info(f"Created asset {asset.asset_number} (serial {asset.serial})")
        return asset.to_dict()

    def update_asset(self, asset_id, data: Dict) -> Optional[Dict]:
        """
        Update an asset.

        Raises:
            BusinessRuleError: when changing to a serial used by another asset
        """
        asset = self._get_asset(asset_id)
        if not asset:
            return None

        if 'serial' in data and data['serial'] != asset.serial:
            check = self.validate_serial_number(data['serial'], exclude_asset_id=asset.id)
            if not check['is_valid']:
                raise BusinessRuleError(check['error'], 'asset')

        changes = self._apply_fields(asset, data, ASSET_FIELDS)
        self._apply_dates(asset, data, ASSET_DATE_FIELDS)
        asset.updated_at = datetime.utcnow()
        self.session.flush()

        if changes:
            self._log_event('asset', asset.id, 'UPDATED', metadata={'changes': changes})

        logger.info(f"Updated asset: {asset_id}")
        return asset.to_dict()

    def delete_asset(self, asset_id) -> bool:
        """Soft delete an asset."""
        asset = self._get_asset(asset_id)
        if not asset:
            return False
        asset.is_active = False
        asset.updated_at = datetime.utcnow()
        self.session.flush()
        self._log_event('asset', asset.id, 'DELETED', f"Asset '{asset.serial}' was deactivated")
        logger.info(f"Deleted (deactivated) asset: {asset_id}")
        return True
