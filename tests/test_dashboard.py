"""
Tests for dashboard KPIs, reminders and the activity trail
"""
import pytest
from datetime import date, datetime
from database.models import Customer
from services.agreement_repository import AgreementRepository
from services.crm_repository import CustomerRepository
from services.dashboard_service import DashboardService, get_date_ranges
from services.event_logger import get_event_logger
from services.inventory_repository import InventoryRepository
from services.invoice_repository import InvoiceRepository
from services.job_repository import JobRepository
from services.reminder_service import ReminderService, run_reminder_check

NOW = datetime(2026, 3, 16, 10, 0)


@pytest.fixture
def business(db_session, today):
    """A small shop's worth of records, all dated around Monday 2026-03-16"""
    customer = CustomerRepository(db_session).create_customer({'name': 'Dana Whitfield'})
    cid = customer['id']

    invoices = InvoiceRepository(db_session)
    current = invoices.create_invoice({'customer_id': cid, 'labor_amount': 100.0},
                                      tax_rate=0.0, today=today)
    invoices.send_invoice(current['id'], NOW)
    invoices.record_payment(current['id'], {'amount': 40.0}, datetime(2026, 3, 16, 11, 0))
    late = invoices.create_invoice({'customer_id': cid, 'labor_amount': 50.0,
                                    'invoice_date': '2026-02-10', 'due_date': '2026-02-20'},
                                   tax_rate=0.0, today=today)
    invoices.send_invoice(late['id'], NOW)

    jobs = JobRepository(db_session)
    jobs.create_job({'customer_id': cid, 'title': 'Spring tune-up', 'scheduled_date': '2026-03-16'})
    jobs.create_job({'customer_id': cid, 'title': 'Leak check', 'scheduled_date': '2026-03-10'})

    lines = [{'line_type': 'Labor', 'description': 'Labor', 'quantity': 1, 'unit_price': 100.0}]
    expiring = jobs.create_estimate({'customer_id': cid, 'title': 'Blower motor', 'lines': lines,
                                     'expires_at': '2026-03-18'}, tax_rate=0.0, today=today)
    stale = jobs.create_estimate({'customer_id': cid, 'title': 'New condenser', 'lines': lines},
                                 tax_rate=0.0, today=date(2026, 3, 1))
    jobs.send_estimate(stale['id'], datetime(2026, 3, 1, 9, 0))

    agreements = AgreementRepository(db_session, today=today)
    agreement = agreements.create_agreement({'customer_id': cid, 'name': 'Comfort Club',
                                             'annual_price': 240.0, 'start_date': '2025-04-01'})
    agreements.activate(agreement['id'], NOW)

    InventoryRepository(db_session).create_item(
        {'name': 'Capacitor 45/5', 'quantity_on_hand': 2, 'reorder_point': 3, 'cost': 10.0})

    asset = CustomerRepository(db_session).create_asset(
        {'customer_id': cid, 'serial': 'TR-88-0042', 'brand': 'Trane', 'model': 'XR14',
         'warranty_start_date': '2016-05-01', 'next_filter_due': '2026-03-01'})

    return {'customer': customer, 'current': current, 'late': late, 'expiring': expiring,
            'stale': stale, 'agreement': agreement, 'asset': asset}


@pytest.mark.unit
class TestDateRanges:
    """Tests for reporting periods"""

    def test_ranges_for_a_monday(self, today):
        """Test week, month and last month boundaries"""
        ranges = get_date_ranges(today)
        assert ranges['yesterday'] == (date(2026, 3, 15), date(2026, 3, 15))
        assert ranges['week'] == (date(2026, 3, 16), date(2026, 3, 22))
        assert ranges['month'] == (date(2026, 3, 1), date(2026, 3, 31))
        assert ranges['last_month'] == (date(2026, 2, 1), date(2026, 2, 28))
        assert ranges['year'] == (date(2026, 1, 1), date(2026, 12, 31))

    def test_january_last_month_is_december(self):
        """Test the year boundary"""
        assert get_date_ranges(date(2026, 1, 10))['last_month'] == (date(2025, 12, 1), date(2025, 12, 31))


@pytest.mark.integration
class TestDashboardService:
    """Tests for KPI groups"""

    def test_revenue(self, db_session, today, business):
        """Test invoiced revenue by period and money collected"""
        revenue = DashboardService(db_session, today).get_revenue_metrics()
        assert revenue['today'] == 100.0
        assert revenue['yesterday'] == 0.0
        assert revenue['month'] == 100.0
        assert revenue['last_month'] == 50.0
        assert revenue['day_over_day_change'] == 0.0
        assert revenue['month_over_month_change'] == 100.0
        assert revenue['paid_this_month'] == 40.0

    def test_jobs(self, db_session, today, business):
        """Test job counts for today, this week and overdue"""
        jobs = DashboardService(db_session, today).get_job_metrics()
        assert jobs['scheduled_today'] == 1
        assert jobs['this_week'] == 1
        assert jobs['overdue'] == 1
        assert jobs['completed_today'] == 0
        assert jobs['by_status']['Scheduled'] == 2
        assert jobs['in_progress'] == 0

    def test_receivables_aging(self, db_session, today, business):
        """Test open balances land in the right buckets"""
        aging = DashboardService(db_session, today).get_receivables_aging()
        assert aging['buckets']['current'] == 60.0
        assert aging['buckets']['days_1_30'] == 50.0
        assert aging['buckets']['over_90'] == 0.0
        assert aging['counts']['days_1_30'] == 1
        assert aging['total_outstanding'] == 110.0
        assert aging['overdue_count'] == 1

    def test_estimates(self, db_session, today, business):
        """Test estimate counts and pipeline value"""
        estimates = DashboardService(db_session, today).get_estimate_metrics()
        assert estimates['by_status']['Draft'] == 1
        assert estimates['by_status']['Sent'] == 1
        assert estimates['pending_value'] == 100.0
        assert estimates['conversion_rate'] == 0.0

    def test_agreements(self, db_session, today, business):
        """Test recurring revenue and renewal counts"""
        agreements = DashboardService(db_session, today).get_agreement_metrics()
        assert agreements['active'] == 1
        assert agreements['expiring_7_days'] == 0
        assert agreements['expiring_30_days'] == 1
        assert agreements['monthly_recurring_revenue'] == 20.0
        assert agreements['annual_contract_value'] == 240.0
        assert agreements['visits_remaining'] == 2
        assert agreements['expired'] == 0

    def test_expiring_windows_exclude_the_far_end(self, db_session, today, business):
        """Test that an agreement ending exactly seven days out is not in the 7-day count"""
        repo = AgreementRepository(db_session, today=today)
        cid = business['customer']['id']
        for name, end in (('Ends today', '2026-03-16'), ('Ends in a week', '2026-03-23')):
            agreement = repo.create_agreement({'customer_id': cid, 'name': name,
                                               'start_date': '2025-06-01', 'end_date': end})
            repo.activate(agreement['id'], NOW)
        agreements = DashboardService(db_session, today).get_agreement_metrics()
        assert agreements['expiring_7_days'] == 1
        assert agreements['expiring_30_days'] == 3

    def test_expired_count_survives_the_sweep(self, db_session, today, business):
        """Test that agreements marked Expired are still counted as expired"""
        repo = AgreementRepository(db_session, today=today)
        lapsed = repo.create_agreement({'customer_id': business['customer']['id'], 'name': 'Old Club',
                                        'start_date': '2025-01-01', 'auto_renew': False})
        repo.activate(lapsed['id'], NOW)
        service = DashboardService(db_session, today)
        assert service.get_agreement_metrics()['expired'] == 1

        assert [a['id'] for a in repo.mark_expired()] == [lapsed['id']]
        agreements = service.get_agreement_metrics()
        assert agreements['expired'] == 1
        assert agreements['active'] == 1

    def test_average_days_to_payment(self, db_session, today, business):
        """Test the time from invoice date to full payment"""
        invoices = InvoiceRepository(db_session)
        invoice = invoices.create_invoice({'customer_id': business['customer']['id'], 'labor_amount': 100.0,
                                           'invoice_date': '2026-03-10'}, tax_rate=0.0, today=today)
        invoices.send_invoice(invoice['id'], datetime(2026, 3, 10, 9, 0))
        invoices.record_payment(invoice['id'], {'amount': 100.0}, datetime(2026, 3, 16, 12, 0))
        revenue = DashboardService(db_session, today).get_revenue_metrics()
        assert revenue['average_days_to_payment'] == 6.5

    def test_job_duration_and_value(self, db_session, today, business):
        """Test average hours on site, completions this week and today's booked value"""
        jobs = JobRepository(db_session)
        cid = business['customer']['id']
        todays = jobs.create_job({'customer_id': cid, 'title': 'No cooling', 'scheduled_date': '2026-03-16',
                                  'labor_total': 150.0, 'parts_total': 50.0, 'tax_rate': 0})
        jobs.set_job_status(todays['id'], 'InProgress', datetime(2026, 3, 16, 8, 0))
        jobs.set_job_status(todays['id'], 'Completed', datetime(2026, 3, 16, 10, 30))
        friday = jobs.create_job({'customer_id': cid, 'title': 'Furnace cleaning',
                                  'scheduled_date': '2026-03-13'})
        jobs.set_job_status(friday['id'], 'InProgress', datetime(2026, 3, 13, 9, 0))
        jobs.set_job_status(friday['id'], 'Completed', datetime(2026, 3, 13, 13, 30))

        metrics = DashboardService(db_session, today).get_job_metrics()
        assert metrics['average_job_duration_hours'] == 3.5
        assert metrics['completed_today'] == 1
        assert metrics['completed_this_week'] == 1
        assert metrics['today_job_value'] == 200.0

    def test_customer_growth_and_repeat_business(self, db_session, today, business):
        """Test new-customer windows and customers with more than one job"""
        crm = CustomerRepository(db_session)
        recent = crm.create_customer({'name': 'Marcus Ortiz'})
        earlier = crm.create_customer({'name': 'Priya Natarajan'})
        created = {business['customer']['id']: datetime(2025, 11, 2, 9, 0),
                   recent['id']: datetime(2026, 3, 12, 14, 0),
                   earlier['id']: datetime(2026, 2, 20, 8, 0)}
        for customer in db_session.query(Customer).all():
            customer.created_at = created[customer.id]
        db_session.flush()
        JobRepository(db_session).create_job({'customer_id': recent['id'], 'title': 'Thermostat swap'})

        customers = DashboardService(db_session, today).get_customer_metrics()
        assert customers['total'] == 3
        assert customers['new_last_7_days'] == 1
        assert customers['new_last_30_days'] == 2
        assert customers['new_this_month'] == 1
        # Only the fixture customer has two jobs
        assert customers['repeat_customers'] == 1

    def test_inventory_and_customers(self, db_session, today, business):
        """Test stock and customer counts"""
        service = DashboardService(db_session, today)
        inventory = service.get_inventory_metrics()
        assert inventory['low_stock'] == 1
        assert inventory['out_of_stock'] == 0
        assert inventory['total_value'] == 20.0
        assert service.get_customer_metrics()['total_active'] == 1

    def test_get_all(self, db_session, today, business):
        """Test that every group is present"""
        kpis = DashboardService(db_session, today).get_all()
        for key in ('date_ranges', 'revenue', 'jobs', 'customers', 'receivables',
                    'estimates', 'agreements', 'inventory', 'generated_at'):
            assert key in kpis
        assert kpis['date_ranges']['week'] == {'start': '2026-03-16', 'end': '2026-03-22'}

    def test_empty_database(self, db_session, today):
        """Test that an empty shop reports zeros"""
        kpis = DashboardService(db_session, today).get_all()
        assert kpis['revenue']['month'] == 0.0
        assert kpis['receivables']['total_outstanding'] == 0.0
        assert kpis['estimates']['conversion_rate'] == 0.0


@pytest.mark.integration
class TestReminderService:
    """Tests for alert checks"""

    def test_check_all_reminders(self, db_session, today, business):
        """Test which categories fire and that empty ones are dropped"""
        reminders = ReminderService(db_session, today).check_all_reminders()
        assert set(reminders) == {
            'invoice_overdue', 'estimate_expiring', 'estimate_followup', 'agreement_expiring',
            'job_overdue', 'low_stock', 'warranty_expiring', 'equipment_service_due'
        }
        overdue = reminders['invoice_overdue'][0]
        assert overdue['entity_id'] == business['late']['id']
        assert overdue['amount'] == 50.0
        assert overdue['days_overdue'] == 24
        assert reminders['estimate_expiring'][0]['entity_id'] == business['expiring']['id']
        assert reminders['estimate_followup'][0]['entity_id'] == business['stale']['id']
        assert reminders['agreement_expiring'][0]['auto_renew'] is True
        assert reminders['warranty_expiring'][0]['days_until_expiration'] == 46

    def test_invoice_due_soon(self, db_session, today, business):
        """Test an invoice due within a week"""
        invoices = InvoiceRepository(db_session)
        soon = invoices.create_invoice({'customer_id': business['customer']['id'], 'labor_amount': 80.0,
                                        'due_date': '2026-03-20'}, tax_rate=0.0, today=today)
        invoices.send_invoice(soon['id'], NOW)
        due_soon = ReminderService(db_session, today).check_invoices_due_soon()
        assert [a['entity_id'] for a in due_soon] == [soon['id']]
        assert due_soon[0]['days_until_due'] == 4

    def test_maintenance_due(self, db_session, today, business):
        """Test the maintenance window is measured from today"""
        assert ReminderService(db_session, today).check_maintenance_due() == []
        alerts = ReminderService(db_session, date(2026, 4, 5)).check_maintenance_due()
        assert alerts[0]['due_date'] == '2026-04-15'

    def test_dashboard_alerts_sorted(self, db_session, today, business):
        """Test urgent items come first"""
        alerts = ReminderService(db_session, today).get_dashboard_alerts()
        assert alerts[0]['type'] == 'invoice_overdue'
        assert alerts[-1]['priority'] == 'low'
        assert len(ReminderService(db_session, today).get_dashboard_alerts(limit=3)) == 3

    def test_summary(self, db_session, today, business):
        """Test counts by priority"""
        summary = ReminderService(db_session, today).get_summary()
        assert summary['total_items'] == 8
        assert len(summary['urgent_items']) == 1
        assert len(summary['high_priority_items']) == 3
        assert summary['by_type']['low_stock'] == 1

    def test_run_reminder_check(self, db_session, today, business):
        """Test the combined payload"""
        result = run_reminder_check(db_session, today)
        assert set(result) == {'reminders', 'summary', 'dashboard_alerts'}

    def test_nothing_to_report(self, db_session, today):
        """Test an empty database"""
        assert ReminderService(db_session, today).check_all_reminders() == {}


@pytest.mark.integration
class TestEventLogger:
    """Tests for the activity trail"""

    def test_entity_history(self, db_session, business):
        """Test history for one record, newest first"""
        events = get_event_logger(db_session)
        history = events.get_entity_history('invoice', business['current']['id'])
        assert sorted(e['event_type'] for e in history) == ['CREATED', 'INVOICE_SENT']

    def test_metadata_dates_are_stored_as_text(self, db_session):
        """Test that dates in metadata survive the JSON column"""
        event = get_event_logger(db_session, user_id='owner').log(
            'job', 7, 'UPDATED', metadata={'scheduled_date': date(2026, 3, 20)})
        assert event['metadata'] == {'scheduled_date': '2026-03-20'}
        assert event['actor_type'] == 'user'
        assert event['entity_id'] == '7'

    def test_recent_events_and_summary(self, db_session, business):
        """Test filtering and the activity summary"""
        events = get_event_logger(db_session)
        payments = events.get_recent_events(event_types=['PAYMENT_RECEIVED'])
        assert len(payments) == 1
        assert payments[0]['metadata']['amount'] == 40.0

        summary = events.get_activity_summary(days=7)
        assert summary['event_type_counts']['INVOICE_SENT'] == 2
        assert summary['entity_type_counts']['customer'] == 1
        assert summary['total_events'] == sum(summary['event_type_counts'].values())
        assert len(summary['recent_events']) == 10
