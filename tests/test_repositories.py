"""
Tests for the repository layer against an in-memory SQLite database
"""
import pytest
from datetime import date, datetime
from database.models import (
    EventLog, EstimateStatus, JobStatus, InvoiceStatus, AgreementStatus
)
from services.agreement_repository import AgreementRepository
from services.billing import BusinessRuleError
from services.crm_repository import CustomerRepository
from services.inventory_repository import InventoryRepository
from services.invoice_repository import InvoiceRepository
from services.job_repository import JobRepository
from services.product_repository import ProductRepository

NOW = datetime(2026, 3, 16, 10, 0)


@pytest.fixture
def customer(db_session, sample_customer_data):
    return CustomerRepository(db_session).create_customer(sample_customer_data)


def event_types(session, entity_type, entity_id):
    rows = session.query(EventLog).filter(
        EventLog.entity_type == entity_type,
        EventLog.entity_id == str(entity_id)
    ).order_by(EventLog.id).all()
    return [row.event_type for row in rows]


@pytest.mark.integration
class TestCustomerRepository:
    """Tests for customers and sites"""

    def test_create_customer(self, db_session, customer):
        """Test numbering, phone formatting and tags"""
        assert customer['customer_number'].startswith('C-')
        assert customer['customer_number'].endswith('-0001')
        assert customer['name'] == 'Dana Whitfield'
        assert customer['phone'] == '555-123-4567'
        assert customer['tags'] == ['VIP', 'Referral']
        assert customer['is_vip'] is True
        assert event_types(db_session, 'customer', customer['id']) == ['CREATED']

    def test_numbers_increment(self, db_session, customer):
        """Test that the second customer gets the next number"""
        second = CustomerRepository(db_session).create_customer({'name': 'Acme Property Group'})
        assert second['customer_number'].endswith('-0002')

    def test_search_by_name_and_phone_digits(self, db_session, customer):
        """Test name search and digits-only phone search"""
        repo = CustomerRepository(db_session)
        repo.create_customer({'name': 'Acme Property Group', 'phone': '555-987-6543'})
        assert [c['id'] for c in repo.search_customers('whit')] == [customer['id']]
        assert [c['id'] for c in repo.search_customers('1234567')] == [customer['id']]
        assert len(repo.search_customers('')) == 2

    def test_update_logs_changes(self, db_session, customer):
        """Test that updates record what changed"""
        repo = CustomerRepository(db_session)
        updated = repo.update_customer(customer['id'], {'email': 'dana@example.org', 'mobile': '5559990000'})
        assert updated['email'] == 'dana@example.org'
        assert updated['mobile'] == '555-999-0000'
        event = db_session.query(EventLog).filter(EventLog.event_type == 'UPDATED').one()
        assert event.extra_data['changes']['email']['new'] == 'dana@example.org'

    def test_update_missing_returns_none(self, db_session):
        """Test that a missing customer gives None"""
        assert CustomerRepository(db_session).update_customer(999, {'email': 'x@example.com'}) is None

    def test_soft_delete(self, db_session, customer):
        """Test that deleted customers drop out of the default list"""
        repo = CustomerRepository(db_session)
        assert repo.delete_customer(customer['id']) is True
        assert repo.list_customers() == []
        assert len(repo.list_customers(active_only=False)) == 1
        assert repo.delete_customer(999) is False

    def test_sites(self, db_session, customer, sample_site_data):
        """Test adding and listing sites"""
        repo = CustomerRepository(db_session)
        site = repo.create_site(customer['id'], sample_site_data)
        assert site['site_number'].startswith('SITE-')
        assert repo.list_sites(customer['id'])[0]['id'] == site['id']
        assert repo.create_site(999, sample_site_data) is None

    def test_customer_summary(self, db_session, customer, sample_site_data, sample_asset_data):
        """Test the counts and unpaid balance"""
        repo = CustomerRepository(db_session)
        repo.create_site(customer['id'], sample_site_data)
        repo.create_asset(dict(sample_asset_data, customer_id=customer['id']))
        JobRepository(db_session).create_job({'customer_id': customer['id'], 'title': 'No cool'})
        invoices = InvoiceRepository(db_session)
        invoice = invoices.create_invoice({'customer_id': customer['id'], 'labor_amount': 100.0},
                                          tax_rate=0.0)
        invoices.send_invoice(invoice['id'], NOW)

        summary = repo.get_customer_summary(customer['id'])
        assert summary['site_count'] == 1
        assert summary['asset_count'] == 1
        assert summary['open_job_count'] == 1
        assert summary['unpaid_invoice_count'] == 1
        assert summary['unpaid_balance'] == 100.0


@pytest.mark.integration
class TestAssets:
    """Tests for equipment and serial number checks"""

    def test_create_asset(self, db_session, customer, sample_asset_data):
        """Test tonnage conversion and warranty start"""
        asset = CustomerRepository(db_session).create_asset(dict(sample_asset_data, customer_id=customer['id']))
        assert asset['asset_number'].startswith('AST-')
        assert asset['tonnage'] == 3.0
        assert asset['warranty_start_date'] == '2020-05-01'
        assert asset['warranty_end_date'] == '2030-05-01'

    def test_duplicate_serial_rejected(self, db_session, customer, sample_asset_data):
        """Test that a serial can only belong to one asset"""
        repo = CustomerRepository(db_session)
        repo.create_asset(dict(sample_asset_data, customer_id=customer['id']))
        result = repo.validate_serial_number(sample_asset_data['serial'])
        assert result['is_valid'] is False
        assert 'Dana Whitfield' in result['error']
        with pytest.raises(BusinessRuleError):
            repo.create_asset(dict(sample_asset_data, customer_id=customer['id']))

    def test_serial_matching_catalog_warns(self, db_session):
        """Test that a catalog serial is allowed with a warning"""
        ProductRepository(db_session).create_product(
            {'manufacturer': 'Trane', 'model_number': 'XR14', 'serial_number': 'TR-555'})
        result = CustomerRepository(db_session).validate_serial_number('TR-555')
        assert result['is_valid'] is True
        assert result['warning'] is True
        assert result['duplicate_type'] == 'product'

    def test_blank_serial_passes(self, db_session):
        """Test that there is nothing to check for a blank serial"""
        assert CustomerRepository(db_session).validate_serial_number('  ')['is_valid'] is True

    def test_update_to_existing_serial_rejected(self, db_session, customer, sample_asset_data):
        """Test that renaming onto another asset's serial fails"""
        repo = CustomerRepository(db_session)
        repo.create_asset(dict(sample_asset_data, customer_id=customer['id']))
        other = repo.create_asset({'serial': 'GDM-0001', 'customer_id': customer['id']})
        with pytest.raises(BusinessRuleError):
            repo.update_asset(other['id'], {'serial': sample_asset_data['serial']})
        assert repo.update_asset(other['id'], {'serial': 'GDM-0001', 'nickname': 'Garage'})['display_name'] == 'Garage'


@pytest.mark.integration
class TestProductRepository:
    """Tests for the catalog"""

    def test_list_and_categories(self, db_session):
        """Test filtering discontinued products and listing categories"""
        repo = ProductRepository(db_session)
        repo.create_product({'manufacturer': 'Carrier', 'model_number': 'A1', 'category': 'AirConditioner'})
        repo.create_product({'manufacturer': 'Trane', 'model_number': 'F1', 'category': 'Furnace',
                             'is_discontinued': True})
        assert [p['model_number'] for p in repo.list_products()] == ['A1']
        assert len(repo.list_products(include_discontinued=True)) == 2
        assert repo.get_categories() == ['AirConditioner', 'Furnace']
        assert [p['model_number'] for p in repo.search_products('tran')] == ['F1']


@pytest.mark.integration
class TestInventoryRepository:
    """Tests for stock adjustments and the audit log"""

    def test_adjustments_are_logged(self, db_session):
        """Test that every change is logged and stock never goes negative"""
        repo = InventoryRepository(db_session)
        item = repo.create_item({'name': 'Pleated Filter 16x25x1', 'sku': 'FLT-16251',
                                 'quantity_on_hand': 5, 'reorder_point': 3, 'cost': 4.5})
        after = repo.adjust_quantity(item['id'], -4, 'UsedOnJob', reference_type='job', reference_id=1)
        assert after['quantity_on_hand'] == 1
        assert after['is_low_stock'] is True

        after = repo.adjust_quantity(item['id'], -5)
        assert after['quantity_on_hand'] == 0

        logs = repo.get_logs(item['id'])
        assert [log['quantity_change'] for log in logs] == [-1.0, -4.0, 5.0]
        assert logs[-1]['change_type'] == 'Initial'
        assert repo.adjust_quantity(999, 1) is None

    def test_low_stock_and_value(self, db_session):
        """Test low stock listing and stock value at cost"""
        repo = InventoryRepository(db_session)
        repo.create_item({'name': 'Capacitor', 'quantity_on_hand': 2, 'reorder_point': 3, 'cost': 11.0})
        repo.create_item({'name': 'Contactor', 'quantity_on_hand': 4, 'reorder_point': 2, 'cost': 9.5})
        assert [i['name'] for i in repo.get_low_stock_items()] == ['Capacitor']
        assert repo.get_stock_value() == 60.0
        assert repo.get_item_by_sku('NOPE') is None


@pytest.mark.integration
class TestEstimatesAndJobs:
    """Tests for the estimate lifecycle and jobs"""

    def make_estimate(self, session, customer, lines, today=date(2026, 3, 16)):
        return JobRepository(session).create_estimate(
            {'customer_id': customer['id'], 'title': 'Capacitor replacement', 'lines': lines},
            tax_rate=7.0, valid_days=30, today=today)

    def test_create_estimate(self, db_session, customer, sample_estimate_lines):
        """Test numbering, expiry and totals"""
        estimate = self.make_estimate(db_session, customer, sample_estimate_lines)
        assert estimate['estimate_number'] == 'EST-2026-0001'
        assert estimate['expires_at'] == '2026-04-15'
        assert estimate['total'] == 235.4
        assert len(estimate['lines']) == 3

    def test_lines_only_editable_in_draft(self, db_session, customer, sample_estimate_lines):
        """Test line edits recalculate and are blocked after sending"""
        repo = JobRepository(db_session)
        estimate = self.make_estimate(db_session, customer, sample_estimate_lines)
        updated = repo.add_estimate_line(estimate['id'], {'line_type': 'Fee', 'description': 'Disposal',
                                                          'unit_price': 20.0})
        assert updated['subtotal'] == 240.0
        line_id = updated['lines'][-1]['id']
        assert repo.remove_estimate_line(estimate['id'], line_id)['subtotal'] == 220.0

        repo.send_estimate(estimate['id'], NOW)
        with pytest.raises(BusinessRuleError):
            repo.update_estimate(estimate['id'], {'title': 'Changed'})

    def test_accept_and_convert(self, db_session, customer, sample_estimate_lines):
        """Test that an accepted estimate becomes a draft job"""
        repo = JobRepository(db_session)
        estimate = self.make_estimate(db_session, customer, sample_estimate_lines)
        with pytest.raises(BusinessRuleError):
            repo.convert_estimate_to_job(estimate['id'], NOW)

        repo.send_estimate(estimate['id'], NOW)
        repo.accept_estimate(estimate['id'], NOW)
        job = repo.convert_estimate_to_job(estimate['id'], NOW)

        assert job['status'] == JobStatus.DRAFT
        assert job['estimate_id'] == estimate['id']
        assert job['labor_total'] == 170.0
        assert job['total'] == 235.4
        converted = repo.get_estimate(estimate['id'])
        assert converted['status'] == EstimateStatus.CONVERTED
        assert converted['converted_job_id'] == job['id']
        assert event_types(db_session, 'estimate', estimate['id'])[-1] == 'ESTIMATE_CONVERTED'

    def test_expire_estimates(self, db_session, customer, sample_estimate_lines):
        """Test the expiry sweep"""
        repo = JobRepository(db_session)
        estimate = self.make_estimate(db_session, customer, sample_estimate_lines)
        repo.send_estimate(estimate['id'], NOW)
        assert repo.expire_estimates(date(2026, 4, 15)) == []
        expired = repo.expire_estimates(date(2026, 4, 16))
        assert [e['id'] for e in expired] == [estimate['id']]
        assert repo.get_estimate(estimate['id'])['status'] == EstimateStatus.EXPIRED

    def test_create_job_and_status(self, db_session, customer):
        """Test scheduling, totals and status changes"""
        repo = JobRepository(db_session)
        job = repo.create_job({'customer_id': customer['id'], 'title': 'No cool',
                               'scheduled_date': '2026-03-20', 'estimated_hours': 2,
                               'parts_total': 65.0}, labor_rate=85.0, tax_rate=7.0)
        assert job['status'] == JobStatus.SCHEDULED
        assert job['labor_total'] == 170.0
        assert job['total'] == 251.45

        started = repo.set_job_status(job['id'], JobStatus.IN_PROGRESS, NOW)
        assert started['started_at'] == NOW.isoformat()
        with pytest.raises(BusinessRuleError):
            repo.set_job_status(job['id'], 'Teleported')

        assert repo.delete_job(job['id']) is True
        assert repo.get_job(job['id'])['status'] == JobStatus.CANCELLED
        with pytest.raises(BusinessRuleError):
            repo.update_job(job['id'], {'title': 'Too late'})

    def test_update_job_recalculates(self, db_session, customer):
        """Test that money fields re-run the totals"""
        repo = JobRepository(db_session)
        job = repo.create_job({'customer_id': customer['id'], 'title': 'Repair'}, tax_rate=0.0)
        updated = repo.update_job(job['id'], {'actual_hours': 1.5, 'trip_charge': 49.0}, labor_rate=100.0)
        assert updated['labor_total'] == 150.0
        assert updated['total'] == 199.0

    def test_overdue_and_date_filter(self, db_session, customer):
        """Test overdue jobs and scheduled date filtering"""
        repo = JobRepository(db_session)
        repo.create_job({'customer_id': customer['id'], 'title': 'Old', 'scheduled_date': '2026-03-10'})
        repo.create_job({'customer_id': customer['id'], 'title': 'New', 'scheduled_date': '2026-03-20'})
        assert [j['title'] for j in repo.overdue_jobs(date(2026, 3, 16))] == ['Old']
        in_range = repo.list_jobs(start_date='2026-03-15', end_date='2026-03-31')
        assert [j['title'] for j in in_range] == ['New']


@pytest.mark.integration
class TestInvoiceRepository:
    """Tests for invoices, payments and refunds"""

    def make_invoice(self, session, customer, **data):
        payload = {'customer_id': customer['id'], 'labor_amount': 100.0, 'parts_amount': 50.0}
        payload.update(data)
        return InvoiceRepository(session).create_invoice(payload, tax_rate=7.0, due_days=30,
                                                         today=date(2026, 3, 16))

    def test_create_invoice(self, db_session, customer):
        """Test numbering, due date and totals"""
        invoice = self.make_invoice(db_session, customer)
        assert invoice['invoice_number'] == 'INV-2026-0001'
        assert invoice['due_date'] == '2026-04-15'
        assert invoice['total'] == 160.5
        assert invoice['status'] == InvoiceStatus.DRAFT

    def test_invoice_from_completed_job(self, db_session, customer):
        """Test that only completed jobs can be invoiced"""
        jobs = JobRepository(db_session)
        job = jobs.create_job({'customer_id': customer['id'], 'title': 'Repair',
                               'estimated_hours': 2, 'parts_total': 65.0}, tax_rate=7.0)
        invoices = InvoiceRepository(db_session)
        with pytest.raises(BusinessRuleError):
            invoices.create_from_job(job['id'], now=NOW)

        jobs.set_job_status(job['id'], JobStatus.COMPLETED, NOW)
        invoice = invoices.create_from_job(job['id'], tax_rate=7.0, now=NOW)
        assert invoice['job_id'] == job['id']
        assert invoice['total'] == 251.45
        assert invoice['due_date'] == '2026-04-15'
        assert event_types(db_session, 'invoice', invoice['id']) == ['INVOICE_GENERATED']

    def test_payment_and_refund(self, db_session, customer):
        """Test partial payment, refund and refund limit"""
        repo = InvoiceRepository(db_session)
        invoice = self.make_invoice(db_session, customer)
        repo.send_invoice(invoice['id'], NOW)

        result = repo.record_payment(invoice['id'], {'amount': 60.0, 'payment_method': 'Check',
                                                     'reference_number': '1043'}, NOW)
        assert result['invoice']['status'] == InvoiceStatus.PARTIALLY_PAID
        assert result['invoice']['balance_due'] == 100.5
        assert result['payment']['description'] == 'Check #1043'

        payment_id = result['payment']['id']
        refund = repo.refund_payment(payment_id, 20.0, 'Overcharged for filter', NOW)
        assert refund['payment']['amount'] == -20.0
        assert refund['invoice']['amount_paid'] == 40.0
        with pytest.raises(BusinessRuleError):
            repo.refund_payment(payment_id, 50.0, now=NOW)
        assert len(repo.list_payments(invoice['id'])) == 2

    def test_paid_in_full(self, db_session, customer):
        """Test that paying the total marks the invoice paid and locks edits"""
        repo = InvoiceRepository(db_session)
        invoice = self.make_invoice(db_session, customer)
        repo.send_invoice(invoice['id'], NOW)
        result = repo.record_payment(invoice['id'], {'amount': 160.5}, NOW)
        assert result['invoice']['status'] == InvoiceStatus.PAID
        with pytest.raises(BusinessRuleError):
            repo.update_invoice(invoice['id'], {'notes': 'late edit'})
        with pytest.raises(BusinessRuleError):
            repo.cancel_invoice(invoice['id'], NOW)

    def test_line_items(self, db_session, customer):
        """Test that line items re-derive labor and parts"""
        repo = InvoiceRepository(db_session)
        invoice = self.make_invoice(db_session, customer, tax_rate=0.0)
        updated = repo.add_line_item(invoice['id'], {'source': 'Labor', 'description': 'Labor',
                                                     'quantity': 2, 'unit_price': 85.0})
        assert updated['labor_amount'] == 170.0
        assert updated['parts_amount'] == 0.0
        assert updated['total'] == 170.0

    def test_refresh_overdue(self, db_session, customer):
        """Test the overdue sweep"""
        repo = InvoiceRepository(db_session)
        invoice = self.make_invoice(db_session, customer)
        repo.send_invoice(invoice['id'], NOW)
        assert repo.refresh_overdue(date(2026, 4, 15)) == []
        overdue = repo.refresh_overdue(date(2026, 5, 1))
        assert [inv['id'] for inv in overdue] == [invoice['id']]
        assert repo.get_invoice(invoice['id'])['status'] == InvoiceStatus.OVERDUE
        assert repo.refresh_overdue(date(2026, 5, 2)) == []


@pytest.mark.integration
class TestAgreementRepository:
    """Tests for agreements, visits and sweeps"""

    def make_repo(self, session):
        return AgreementRepository(session, today=date(2026, 3, 16))

    def test_create_applies_tier(self, db_session, customer, sample_agreement_data):
        """Test tier package, term and next due date"""
        agreement = self.make_repo(db_session).create_agreement(
            dict(sample_agreement_data, customer_id=customer['id']))
        assert agreement['agreement_number'] == 'SA-2026-0001'
        assert agreement['status'] == AgreementStatus.DRAFT
        assert agreement['end_date'] == '2027-01-01'
        assert agreement['included_visits_per_year'] == 2
        assert agreement['repair_discount_percent'] == 15.0
        assert agreement['next_maintenance_due'] == '2026-04-15'
        assert len(agreement['spring_ac_tune_up_tasks']) > 0

    def test_default_tier_response_time(self, db_session, customer):
        """Test that an agreement created without a tier gets Standard's 24 hour response"""
        agreement = self.make_repo(db_session).create_agreement(
            {'customer_id': customer['id'], 'name': 'Comfort Club'})
        assert agreement['service_tier'] == 'Standard'
        assert agreement['response_time_hours'] == 24

    def test_explicit_fields_override_tier(self, db_session, customer, sample_agreement_data):
        """Test that payload values beat the tier package"""
        agreement = self.make_repo(db_session).create_agreement(
            dict(sample_agreement_data, customer_id=customer['id'], included_visits_per_year=3,
                 covered_asset_ids=[4, 9]))
        assert agreement['included_visits_per_year'] == 3
        assert agreement['covered_asset_ids'] == [4, 9]

    def test_activate_and_schedule_visit(self, db_session, customer, sample_agreement_data):
        """Test booking an included visit"""
        repo = self.make_repo(db_session)
        agreement = repo.create_agreement(dict(sample_agreement_data, customer_id=customer['id']))
        repo.activate(agreement['id'], NOW)

        result = repo.schedule_visit(agreement['id'])
        assert result['job']['scheduled_date'] == '2026-04-15'
        assert result['job']['status'] == JobStatus.SCHEDULED
        assert result['job']['service_agreement_id'] == agreement['id']
        assert result['agreement']['visits_remaining'] == 1
        assert result['agreement']['next_maintenance_due'] == '2026-10-15'

    def test_schedule_visit_requires_active(self, db_session, customer, sample_agreement_data):
        """Test that draft agreements cannot book visits"""
        repo = self.make_repo(db_session)
        agreement = repo.create_agreement(dict(sample_agreement_data, customer_id=customer['id']))
        with pytest.raises(BusinessRuleError):
            repo.schedule_visit(agreement['id'])

    def test_tier_change(self, db_session, customer, sample_agreement_data):
        """Test that changing tier re-applies the package"""
        repo = self.make_repo(db_session)
        agreement = repo.create_agreement(dict(sample_agreement_data, customer_id=customer['id']))
        updated = repo.update_agreement(agreement['id'], {'service_tier': 'Premium'})
        assert updated['repair_discount_percent'] == 20.0
        assert updated['response_time_hours'] == 12

    def test_expiring_and_maintenance_due(self, db_session, customer):
        """Test the expiring and maintenance-due queries"""
        repo = self.make_repo(db_session)
        agreement = repo.create_agreement({'customer_id': customer['id'], 'name': 'Spring Club',
                                           'start_date': '2025-04-01'})
        repo.activate(agreement['id'], NOW)
        assert [a['id'] for a in repo.expiring(days=30)] == [agreement['id']]
        # Ends 2026-04-01, sixteen days out; the window end is exclusive
        assert repo.expiring(days=16) == []
        assert [a['id'] for a in repo.expiring(days=17)] == [agreement['id']]
        assert repo.due_for_maintenance(days=14) == []
        assert [a['id'] for a in repo.due_for_maintenance(days=31)] == [agreement['id']]

    def test_renewal_sweep(self, db_session, customer):
        """Test auto renewal and expiry of lapsed agreements"""
        repo = self.make_repo(db_session)
        renewing = repo.create_agreement({'customer_id': customer['id'], 'name': 'Auto',
                                          'start_date': '2025-01-01'})
        lapsing = repo.create_agreement({'customer_id': customer['id'], 'name': 'Manual',
                                         'start_date': '2025-01-01', 'auto_renew': False})
        repo.activate(renewing['id'], NOW)
        repo.activate(lapsing['id'], NOW)

        renewed = repo.process_auto_renewals(NOW)
        assert [a['id'] for a in renewed] == [renewing['id']]
        assert renewed[0]['start_date'] == '2026-01-02'
        assert renewed[0]['end_date'] == '2027-01-02'

        expired = repo.mark_expired()
        assert [a['id'] for a in expired] == [lapsing['id']]
        assert repo.get_agreement(lapsing['id'])['status'] == AgreementStatus.EXPIRED

    def test_delete_cancels(self, db_session, customer, sample_agreement_data):
        """Test that deleting an agreement cancels it"""
        repo = self.make_repo(db_session)
        agreement = repo.create_agreement(dict(sample_agreement_data, customer_id=customer['id']))
        assert repo.delete_agreement(agreement['id']) is True
        cancelled = repo.get_agreement(agreement['id'])
        assert cancelled['status'] == AgreementStatus.CANCELLED
        assert cancelled['cancellation_reason'] == 'Deleted'
        assert repo.delete_agreement(999) is False
