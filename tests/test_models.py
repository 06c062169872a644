"""
Tests for model properties (no database needed)
"""
import pytest
from datetime import date, datetime
from database.models import (
    Customer, CustomerStatus, Site, Asset, InventoryItem, Job, JobStatus,
    Invoice, InvoiceStatus, Payment, Estimate
)


@pytest.mark.unit
class TestCustomer:
    """Tests for customer naming and tags"""

    def test_full_name_from_parts(self):
        """Test that first/last name win over the name column"""
        customer = Customer(name='ignored', first_name='Dana', last_name='Whitfield')
        assert customer.full_name == 'Dana Whitfield'

    def test_full_name_fallback(self):
        """Test fallback to the name column"""
        assert Customer(name='Acme Property Group').full_name == 'Acme Property Group'

    def test_display_name_with_company(self):
        """Test that the company is appended"""
        customer = Customer(first_name='Lee', last_name='Ortiz', company_name='Ortiz Rentals')
        assert customer.display_name == 'Lee Ortiz (Ortiz Rentals)'

    def test_tags_and_vip(self):
        """Test tag parsing and VIP detection"""
        customer = Customer(name='X', tags='referral, VIP ,')
        assert customer.tag_list == ['referral', 'VIP']
        assert customer.is_vip
        assert Customer(name='Y', status=CustomerStatus.VIP).is_vip
        assert not Customer(name='Z').is_vip

    def test_defaults(self):
        """Test Python-side defaults on construction"""
        customer = Customer(name='X')
        assert customer.customer_type == 'Residential'
        assert customer.status == CustomerStatus.ACTIVE
        assert customer.is_active is True


@pytest.mark.unit
class TestSite:
    """Tests for site address formatting"""

    def test_full_address_skips_blanks(self):
        """Test that missing parts are left out"""
        site = Site(address='1420 Maple Ave', city='Springfield', state='IL', zip_code='62704')
        address = site.full_address
        assert address.startswith('1420 Maple Ave')
        assert 'Springfield' in address
        assert '62704' in address


@pytest.mark.unit
class TestAsset:
    """Tests for warranty and capacity properties"""

    def test_warranty_end_dates(self):
        """Test each warranty term from the start date"""
        asset = Asset(serial='S1', warranty_start_date=date(2020, 5, 1),
                      labor_warranty_years=1, compressor_warranty_years=12)
        assert asset.warranty_end_date == date(2030, 5, 1)
        assert asset.labor_warranty_end == date(2021, 5, 1)
        assert asset.compressor_warranty_end == date(2032, 5, 1)

    def test_no_warranty_without_start(self):
        """Test that no start date means no end date"""
        asset = Asset(serial='S1')
        assert asset.warranty_end_date is None
        assert asset.days_until_warranty_expires is None
        assert not asset.is_warranty_expired

    def test_expired_warranty(self):
        """Test an old install is expired"""
        asset = Asset(serial='S1', warranty_start_date=date(2001, 1, 1))
        assert asset.is_warranty_expired
        assert not asset.is_warranty_expiring_soon

    def test_tonnage_and_capacity(self):
        """Test tenths-of-a-ton storage and the summary string"""
        asset = Asset(serial='S1', tonnage_x10=35, btu_rating=42000)
        assert asset.tonnage == 3.5
        assert asset.capacity_summary == '3.5 Ton / 42,000 BTU'
        assert Asset(serial='S2').capacity_summary == 'N/A'

    def test_display_name(self):
        """Test nickname first, then brand and model"""
        assert Asset(serial='S1', nickname='Attic unit', brand='Trane').display_name == 'Attic unit'
        assert Asset(serial='S1', brand='Trane', model='XR14').display_name == 'Trane XR14'


@pytest.mark.unit
class TestInventoryItem:
    """Tests for stock properties"""

    def test_low_and_out_of_stock(self):
        """Test reorder point comparisons"""
        assert InventoryItem(name='Filter', quantity_on_hand=3, reorder_point=3).is_low_stock
        assert not InventoryItem(name='Filter', quantity_on_hand=3, reorder_point=0).is_low_stock
        assert InventoryItem(name='Filter', quantity_on_hand=0).is_out_of_stock

    def test_margin_and_value(self):
        """Test markup over cost and stock value"""
        item = InventoryItem(name='Capacitor', quantity_on_hand=6, cost=11.0, price=65.0)
        assert item.profit_margin == 490.91
        assert item.stock_value == 66.0


@pytest.mark.unit
class TestJob:
    """Tests for job lifecycle helpers"""

    def test_set_status_stamps_once(self):
        """Test timestamps are only set the first time"""
        job = Job(customer_id=1, title='Tune-up')
        first = datetime(2026, 3, 16, 8, 0)
        later = datetime(2026, 3, 16, 9, 0)
        job.set_status(JobStatus.IN_PROGRESS, first)
        job.set_status(JobStatus.ON_HOLD, later)
        job.set_status(JobStatus.IN_PROGRESS, later)
        assert job.started_at == first
        job.set_status(JobStatus.COMPLETED, later)
        assert job.completed_at == later
        assert job.can_invoice

    def test_overdue(self, today):
        """Test that open jobs before today are overdue"""
        job = Job(customer_id=1, title='Repair', status=JobStatus.SCHEDULED,
                  scheduled_date=date(2026, 3, 10))
        assert job.is_overdue_on(today)
        job.status = JobStatus.COMPLETED
        assert not job.is_overdue_on(today)

    def test_closed_jobs_cannot_edit(self):
        """Test can_edit"""
        assert not Job(customer_id=1, status=JobStatus.CLOSED).can_edit
        assert Job(customer_id=1, status=JobStatus.ON_HOLD).can_edit


@pytest.mark.unit
class TestInvoiceAndPayment:
    """Tests for invoice balance and payment descriptions"""

    def test_balance_and_days_past_due(self, today):
        """Test balance and days past due"""
        invoice = Invoice(invoice_number='INV-2026-0001', customer_id=1, status=InvoiceStatus.SENT,
                          total=250.0, amount_paid=100.0, due_date=date(2026, 3, 1))
        assert invoice.balance_due == 150.0
        assert invoice.days_past_due(today) == 15
        assert invoice.is_overdue_on(today)

    def test_payment_description(self):
        """Test card and reference formatting"""
        payment = Payment(invoice_id=1, amount=50.0, payment_method='CreditCard', card_last4='4242')
        assert payment.description == 'Credit Card ****4242'
        check = Payment(invoice_id=1, amount=50.0, payment_method='Check', reference_number='1043')
        assert check.description == 'Check #1043'

    def test_net_amount(self):
        """Test processing fees are deducted"""
        assert Payment(invoice_id=1, amount=100.0, processing_fee=2.9).net_amount == 97.1


@pytest.mark.unit
class TestEstimateValidity:
    """Tests for estimate expiry"""

    def test_valid_until_expiry(self, today):
        """Test the expiry day is inclusive"""
        estimate = Estimate(customer_id=1, expires_at=today)
        assert estimate.is_valid_on(today)
        assert not estimate.is_valid_on(date(2026, 3, 17))
        assert Estimate(customer_id=1).is_valid_on(today)
