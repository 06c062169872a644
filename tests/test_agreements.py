"""
Tests for service agreement scheduling, tiers, pricing and lifecycle
"""
import pytest
from datetime import date, datetime
from database.models import ServiceAgreement, AgreementStatus, JobStatus, ServiceTier
from services.billing import BusinessRuleError
from services.agreements import (
    TIER_DEFAULTS,
    SPRING_AC_TUNE_UP_TASKS,
    calculate_next_maintenance_due,
    schedule_maintenance_visit,
    apply_tier_defaults,
    activate_agreement,
    renew_agreement,
    suspend_agreement,
    cancel_agreement
)


def make_agreement(**kwargs):
    values = {'id': 3, 'customer_id': 1, 'name': 'Comfort Club', 'start_date': date(2026, 1, 1)}
    values.update(kwargs)
    return ServiceAgreement(**values)


@pytest.mark.unit
class TestAgreementModel:
    """Tests for term defaults and derived values"""

    def test_end_date_defaults_to_one_year(self):
        """Test that the term defaults to one year"""
        agreement = make_agreement()
        assert agreement.end_date == date(2027, 1, 1)

    def test_visits_remaining(self):
        """Test that remaining visits never go negative"""
        agreement = make_agreement(included_visits_per_year=2, visits_used=3)
        assert agreement.visits_remaining == 0

    def test_status_display(self, today):
        """Test Active, Expiring Soon and Expired labels"""
        agreement = make_agreement(status=AgreementStatus.ACTIVE)
        assert agreement.status_display(today) == 'Active'
        assert agreement.status_display(date(2026, 12, 15)) == 'Expiring Soon'
        assert agreement.status_display(date(2027, 1, 5)) == 'Expired'
        assert make_agreement().status_display(today) == AgreementStatus.DRAFT


@pytest.mark.unit
class TestMaintenanceScheduling:
    """Tests for calculate_next_maintenance_due and schedule_maintenance_visit"""

    def test_before_spring(self):
        """Test that spring this year comes first"""
        agreement = make_agreement(preferred_spring_month=4, preferred_fall_month=10)
        assert calculate_next_maintenance_due(agreement, date(2026, 3, 16)) == date(2026, 4, 15)

    def test_between_spring_and_fall(self):
        """Test that fall follows a passed spring date"""
        agreement = make_agreement(preferred_spring_month=4, preferred_fall_month=10)
        assert calculate_next_maintenance_due(agreement, date(2026, 4, 15)) == date(2026, 10, 15)

    def test_after_fall(self):
        """Test that spring next year follows a passed fall date"""
        agreement = make_agreement(preferred_spring_month=4, preferred_fall_month=10)
        assert calculate_next_maintenance_due(agreement, date(2026, 11, 1)) == date(2027, 4, 15)

    def test_single_month(self):
        """Test an agreement with only a fall preference"""
        agreement = make_agreement(preferred_spring_month=None, preferred_fall_month=9)
        assert calculate_next_maintenance_due(agreement, date(2026, 3, 16)) == date(2026, 9, 15)
        assert calculate_next_maintenance_due(agreement, date(2026, 9, 20)) == date(2027, 9, 15)

    def test_no_months(self):
        """Test that no preference means no due date"""
        agreement = make_agreement(preferred_spring_month=None, preferred_fall_month=None)
        assert calculate_next_maintenance_due(agreement, date(2026, 3, 16)) is None

    def test_schedule_visit(self, today):
        """Test booking a visit consumes it and advances the due date"""
        agreement = make_agreement(status=AgreementStatus.ACTIVE, included_visits_per_year=2,
                                   next_maintenance_due=date(2026, 4, 15))
        job = schedule_maintenance_visit(agreement, today)
        assert job.status == JobStatus.SCHEDULED
        assert job.job_type == 'Maintenance'
        assert job.scheduled_date == date(2026, 4, 15)
        assert job.service_agreement_id == 3
        assert agreement.visits_used == 1
        assert agreement.last_maintenance_scheduled == date(2026, 4, 15)
        assert agreement.next_maintenance_due == date(2026, 10, 15)

    def test_schedule_without_due_date(self, today):
        """Test that a visit with no due date is booked a week out"""
        agreement = make_agreement(status=AgreementStatus.ACTIVE, next_maintenance_due=None)
        job = schedule_maintenance_visit(agreement, today)
        assert job.scheduled_date == date(2026, 3, 23)

    def test_schedule_requires_active(self, today):
        """Test that drafts cannot book visits"""
        with pytest.raises(BusinessRuleError):
            schedule_maintenance_visit(make_agreement(), today)

    def test_schedule_requires_visits(self, today):
        """Test that used-up agreements cannot book visits"""
        agreement = make_agreement(status=AgreementStatus.ACTIVE, included_visits_per_year=1, visits_used=1)
        with pytest.raises(BusinessRuleError):
            schedule_maintenance_visit(agreement, today)


@pytest.mark.unit
class TestTiersAndPricing:
    """Tests for tier packages and installment pricing"""

    @pytest.mark.parametrize('tier,visits,discount,response', [
        (ServiceTier.BASIC, 1, 10.0, 48),
        (ServiceTier.STANDARD, 2, 15.0, 24),
        (ServiceTier.PREMIUM, 2, 20.0, 12),
    ])
    def test_tier_defaults(self, tier, visits, discount, response):
        """Test each tier's benefit package"""
        agreement = apply_tier_defaults(make_agreement(service_tier=tier))
        assert agreement.included_visits_per_year == visits
        assert agreement.repair_discount_percent == discount
        assert agreement.response_time_hours == response
        assert agreement.spring_ac_tune_up_tasks == SPRING_AC_TUNE_UP_TASKS

    def test_premium_includes_filters(self):
        """Test premium extras"""
        agreement = apply_tier_defaults(make_agreement(service_tier=ServiceTier.PREMIUM))
        assert agreement.filters_included_per_year == 2
        assert agreement.free_minor_adjustments is True

    def test_custom_tier_untouched(self):
        """Test that Custom keeps configured values"""
        agreement = apply_tier_defaults(make_agreement(service_tier=ServiceTier.CUSTOM,
                                                       included_visits_per_year=4))
        assert agreement.included_visits_per_year == 4
        assert ServiceTier.CUSTOM not in TIER_DEFAULTS

    def test_monthly_recurring_revenue(self):
        """Test MRR from annual or monthly price"""
        assert make_agreement(annual_price=240.0).monthly_recurring_revenue == 20.0
        assert make_agreement(annual_price=240.0, monthly_price=25.0).monthly_recurring_revenue == 25.0

    @pytest.mark.parametrize('frequency,expected', [
        ('Annual', 240.0),
        ('SemiAnnual', 120.0),
        ('Quarterly', 60.0),
        ('Monthly', 20.0),
        ('PerVisit', 120.0),
    ])
    def test_installment_amount(self, frequency, expected):
        """Test the per-period amount for each billing frequency"""
        agreement = make_agreement(annual_price=240.0, billing_frequency=frequency,
                                   included_visits_per_year=2)
        assert agreement.installment_amount == expected


@pytest.mark.unit
class TestAgreementLifecycle:
    """Tests for activate, renew, suspend and cancel"""

    def test_activate(self, today):
        """Test activation sets the next due date"""
        now = datetime(2026, 3, 16, 8, 0)
        agreement = activate_agreement(make_agreement(), today, now)
        assert agreement.status == AgreementStatus.ACTIVE
        assert agreement.activated_at == now
        assert agreement.next_maintenance_due == date(2026, 4, 15)

    def test_cannot_activate_cancelled(self, today):
        """Test that cancelled agreements stay cancelled"""
        with pytest.raises(BusinessRuleError):
            activate_agreement(make_agreement(status=AgreementStatus.CANCELLED), today)

    def test_renew(self, today):
        """Test the new term starts the day after the old one ends"""
        agreement = make_agreement(status=AgreementStatus.ACTIVE, visits_used=2)
        renew_agreement(agreement, today)
        assert agreement.start_date == date(2027, 1, 2)
        assert agreement.end_date == date(2028, 1, 2)
        assert agreement.visits_used == 0
        assert agreement.status == AgreementStatus.ACTIVE

    def test_cannot_renew_cancelled(self, today):
        """Test that cancelled agreements cannot renew"""
        with pytest.raises(BusinessRuleError):
            renew_agreement(make_agreement(status=AgreementStatus.CANCELLED), today)

    def test_suspend_only_active(self):
        """Test suspend rules"""
        assert suspend_agreement(make_agreement(status=AgreementStatus.ACTIVE)).status == AgreementStatus.SUSPENDED
        with pytest.raises(BusinessRuleError):
            suspend_agreement(make_agreement())

    def test_cancel(self):
        """Test cancellation records a reason and cannot repeat"""
        agreement = cancel_agreement(make_agreement(status=AgreementStatus.ACTIVE), 'Moved away')
        assert agreement.status == AgreementStatus.CANCELLED
        assert agreement.cancellation_reason == 'Moved away'
        assert agreement.cancelled_at is not None
        with pytest.raises(BusinessRuleError):
            cancel_agreement(agreement)
