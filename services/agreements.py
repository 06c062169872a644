"""
Service Agreement rules - maintenance scheduling, tiers and renewal.

Like the billing rules these operate on ServiceAgreement instances without
touching the session. Every date-dependent function accepts ``today`` so the
caller (and tests) control the clock.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from app.utils.helpers import add_years
from database.models import (
    ServiceAgreement, AgreementStatus, ServiceTier,
    Job, JobStatus
)
from services.billing import BusinessRuleError

logger = logging.getLogger(__name__)

MAINTENANCE_DAY_OF_MONTH = 15
MAINTENANCE_VISIT_HOURS = 2.0
DEFAULT_VISIT_LEAD_DAYS = 7

SPRING_AC_TUNE_UP_TASKS = [
    "Clean evaporator & condenser coils",
    "Check refrigerant charge & pressures",
    "Inspect/clean filters",
    "Test electrical components & capacitors",
    "Calibrate thermostat",
    "Check blower & airflow",
    "Clear condensate drain",
]

FALL_HEATING_TUNE_UP_TASKS = [
    "Inspect heat exchanger for cracks",
    "Clean burners/ignition assembly",
    "Check gas pressure & flue/vent",
    "Inspect belts/pulleys",
    "Measure temperature rise",
    "Test safety controls",
]

TIER_DEFAULTS = {
    ServiceTier.BASIC: {
        'included_visits_per_year': 1,
        'repair_discount_percent': 10.0,
        'priority_service': True,
        'waive_trip_charge': False,
        'no_emergency_dispatch_fee': False,
        'free_minor_adjustments': False,
        'filters_included_per_year': 0,
        'additional_check_visits': 0,
        'response_time_hours': 48,
        'includes_ac_tune_up': True,
        'includes_heating_tune_up': False,
    },
    ServiceTier.STANDARD: {
        'included_visits_per_year': 2,
        'repair_discount_percent': 15.0,
        'priority_service': True,
        'waive_trip_charge': True,
        'no_emergency_dispatch_fee': True,
        'free_minor_adjustments': False,
        'filters_included_per_year': 0,
        'additional_check_visits': 0,
        'response_time_hours': 24,
        'includes_ac_tune_up': True,
        'includes_heating_tune_up': True,
    },
    ServiceTier.PREMIUM: {
        'included_visits_per_year': 2,
        'repair_discount_percent': 20.0,
        'priority_service': True,
        'waive_trip_charge': True,
        'no_emergency_dispatch_fee': True,
        'free_minor_adjustments': True,
        'filters_included_per_year': 2,
        'additional_check_visits': 1,
        'response_time_hours': 12,
        'includes_ac_tune_up': True,
        'includes_heating_tune_up': True,
    },
}


# =============================================================================
# SCHEDULING
# =============================================================================

def calculate_next_maintenance_due(agreement: ServiceAgreement, today: date = None) -> Optional[date]:
    """
    Next tune-up date, on the 15th of the preferred spring/fall month.

    With both months set, the next of spring or fall this year, otherwise
    spring next year. With one month set, that month this year if still
    ahead, else next year. With neither, None.
    """
    today = today or date.today()
    spring = agreement.preferred_spring_month
    fall = agreement.preferred_fall_month

    if spring and fall:
        spring_date = date(today.year, spring, MAINTENANCE_DAY_OF_MONTH)
        fall_date = date(today.year, fall, MAINTENANCE_DAY_OF_MONTH)
        if today < spring_date:
            return spring_date
        if today < fall_date:
            return fall_date
        return date(today.year + 1, spring, MAINTENANCE_DAY_OF_MONTH)

    month = spring or fall
    if month:
        target = date(today.year, month, MAINTENANCE_DAY_OF_MONTH)
        return target if today < target else date(today.year + 1, month, MAINTENANCE_DAY_OF_MONTH)

    return None


def schedule_maintenance_visit(agreement: ServiceAgreement, today: date = None) -> Job:
    """
    Book the next included maintenance visit.

    Returns an unsaved Job and consumes one visit on the agreement.

    Raises:
        BusinessRuleError: when the agreement is not active or no visits remain
    """
    today = today or date.today()
    if not agreement.is_active_on(today):
        raise BusinessRuleError("Agreement is not active", 'service_agreement')
    if agreement.visits_remaining <= 0:
        raise BusinessRuleError("No maintenance visits remaining on this agreement", 'service_agreement')

    scheduled = agreement.next_maintenance_due or (today + timedelta(days=DEFAULT_VISIT_LEAD_DAYS))
    job = Job(
        customer_id=agreement.customer_id,
        site_id=agreement.site_id,
        service_agreement_id=agreement.id,
        title=f"Scheduled Maintenance - {agreement.name}",
        description=f"Included maintenance visit under agreement {agreement.agreement_number or agreement.name}",
        job_type='Maintenance',
        status=JobStatus.SCHEDULED,
        scheduled_date=scheduled,
        estimated_hours=MAINTENANCE_VISIT_HOURS,
    )

    agreement.visits_used = (agreement.visits_used or 0) + 1
    agreement.last_maintenance_scheduled = scheduled
    # Anchor on the visit just booked so the following season is picked
    agreement.next_maintenance_due = calculate_next_maintenance_due(
        agreement, max(today, scheduled + timedelta(days=1)))

    logger.info(f"Scheduled maintenance for agreement {agreement.id} on {scheduled}")
    return job


# =============================================================================
# TIERS
# =============================================================================

def set_default_tune_up_tasks(agreement: ServiceAgreement) -> ServiceAgreement:
    if not agreement.spring_ac_tune_up_tasks:
        agreement.spring_ac_tune_up_tasks = list(SPRING_AC_TUNE_UP_TASKS)
    if not agreement.fall_heating_tune_up_tasks:
        agreement.fall_heating_tune_up_tasks = list(FALL_HEATING_TUNE_UP_TASKS)
    return agreement


def apply_tier_defaults(agreement: ServiceAgreement) -> ServiceAgreement:
    """Apply the benefit package for the agreement's tier. Custom is left as configured."""
    defaults = TIER_DEFAULTS.get(agreement.service_tier)
    if defaults is None:
        return agreement
    for key, value in defaults.items():
        setattr(agreement, key, value)
    return set_default_tune_up_tasks(agreement)


# =============================================================================
# LIFECYCLE
# =============================================================================

def activate_agreement(agreement: ServiceAgreement, today: date = None,
                       now: datetime = None) -> ServiceAgreement:
    today = today or date.today()
    if agreement.status not in (AgreementStatus.DRAFT, AgreementStatus.PENDING, AgreementStatus.SUSPENDED):
        raise BusinessRuleError(f"Cannot activate a {agreement.status.lower()} agreement", 'service_agreement')
    agreement.status = AgreementStatus.ACTIVE
    agreement.activated_at = now or datetime.utcnow()
    agreement.next_maintenance_due = calculate_next_maintenance_due(agreement, today)
    return agreement


def renew_agreement(agreement: ServiceAgreement, today: date = None,
                    now: datetime = None) -> ServiceAgreement:
    """
    Roll the agreement into its next one-year term.

    The new term starts the day after the current one ends and the visit
    allotment resets.
    """
    today = today or date.today()
    if agreement.status == AgreementStatus.CANCELLED:
        raise BusinessRuleError("Cannot renew a cancelled agreement", 'service_agreement')

    agreement.start_date = agreement.end_date + timedelta(days=1)
    agreement.end_date = add_years(agreement.start_date, 1)
    agreement.visits_used = 0
    agreement.status = AgreementStatus.ACTIVE
    agreement.activated_at = now or datetime.utcnow()
    agreement.next_maintenance_due = calculate_next_maintenance_due(agreement, today)
    logger.info(f"Renewed agreement {agreement.id} through {agreement.end_date}")
    return agreement


def suspend_agreement(agreement: ServiceAgreement) -> ServiceAgreement:
    if agreement.status != AgreementStatus.ACTIVE:
        raise BusinessRuleError("Only active agreements can be suspended", 'service_agreement')
    agreement.status = AgreementStatus.SUSPENDED
    return agreement


def cancel_agreement(agreement: ServiceAgreement, reason: str = None,
                     now: datetime = None) -> ServiceAgreement:
    if agreement.status == AgreementStatus.CANCELLED:
        raise BusinessRuleError("Agreement is already cancelled", 'service_agreement')
    agreement.status = AgreementStatus.CANCELLED
    agreement.cancelled_at = now or datetime.utcnow()
    agreement.cancellation_reason = reason
    return agreement
