"""
Agreement Repository - Database access layer for service agreements.

Lifecycle, tier and scheduling rules come from services.agreements. The
sweeps (auto renewal and expiry) are meant to run once a day.
"""

import logging
from datetime import datetime, date, timedelta
from typing import List, Optional, Dict

from database.models import ServiceAgreement, AgreementStatus, ServiceTier, Job
from services.agreements import (
    apply_tier_defaults, set_default_tune_up_tasks, calculate_next_maintenance_due,
    schedule_maintenance_visit, activate_agreement, renew_agreement,
    suspend_agreement, cancel_agreement
)
from services.base_repository import BaseRepository

logger = logging.getLogger(__name__)

AGREEMENT_FIELDS = [
    'site_id', 'name', 'description', 'agreement_type', 'auto_renew',
    'renewal_reminder_days', 'annual_price', 'monthly_price', 'billing_frequency',
    'repair_discount_percent', 'priority_service', 'waive_trip_charge',
    'included_visits_per_year', 'includes_ac_tune_up', 'includes_heating_tune_up',
    'includes_filter_replacement', 'no_emergency_dispatch_fee', 'free_minor_adjustments',
    'filters_included_per_year', 'additional_check_visits', 'response_time_hours',
    'spring_ac_tune_up_tasks', 'fall_heating_tune_up_tasks',
    'preferred_spring_month', 'preferred_fall_month', 'covered_asset_ids',
    'terms', 'internal_notes'
]


def _ids_to_text(value):
    if isinstance(value, (list, tuple)):
        return ','.join(str(v) for v in value)
    return value


class AgreementRepository(BaseRepository):
    """Repository for service agreement operations with event logging."""

    def __init__(self, session, user_id: str = None, today: date = None):
        super().__init__(session, user_id)
        self.today = today

    def _today(self, today: date = None) -> date:
        return today or self.today or date.today()

    def _get(self, agreement_id) -> Optional[ServiceAgreement]:
        return self.session.query(ServiceAgreement).filter(ServiceAgreement.id == agreement_id).first()

    def _dict(self, agreement: ServiceAgreement) -> Dict:
        return agreement.to_dict(self._today())

    def list_agreements(self, status: str = None, customer_id=None) -> List[Dict]:
        query = self.session.query(ServiceAgreement)
        if status:
            query = query.filter(ServiceAgreement.status == status)
        if customer_id:
            query = query.filter(ServiceAgreement.customer_id == customer_id)
        agreements = query.order_by(ServiceAgreement.end_date).all()
        return [self._dict(a) for a in agreements]

    def get_agreement(self, agreement_id) -> Optional[Dict]:
        agreement = self._get(agreement_id)
        return self._dict(agreement) if agreement else None

    def create_agreement(self, data: Dict) -> Dict:
        """
        Create a draft agreement.

        The tier's benefit package is applied first; explicit fields in
        ``data`` then override it.
        """
        today = self._today()
        start = self._parse_date(data.get('start_date')) or today
        agreement = ServiceAgreement(
            agreement_number=self._next_number(ServiceAgreement.agreement_number,
                                               'service_agreement', today),
            customer_id=data.get('customer_id'),
            name=data.get('name') or 'Service Agreement',
            service_tier=data.get('service_tier') or ServiceTier.STANDARD,
            start_date=start,
            end_date=self._parse_date(data.get('end_date'))
        )
        apply_tier_defaults(agreement)

        data = dict(data)
        if 'covered_asset_ids' in data:
            data['covered_asset_ids'] = _ids_to_text(data['covered_asset_ids'])
        self._apply_fields(agreement, data, AGREEMENT_FIELDS)
        set_default_tune_up_tasks(agreement)
        agreement.next_maintenance_due = calculate_next_maintenance_due(agreement, today)

        self.session.add(agreement)
        self.session.flush()

        self._log_event(
            entity_type='service_agreement',
            entity_id=agreement.id,
            event_type='CREATED',
            description=f"Agreement {agreement.agreement_number} '{agreement.name}' was created",
            metadata={'customer_id': agreement.customer_id, 'tier': agreement.service_tier,
                      'annual_price': agreement.annual_price}
        )

        logger.info(f"Created service agreement: {agreement.agreement_number}")
        return self._dict(agreement)

    def update_agreement(self, agreement_id, data: Dict) -> Optional[Dict]:
        """Update an agreement. Changing ``service_tier`` re-applies that tier's package."""
        agreement = self._get(agreement_id)
        if not agreement:
            return None

        data = dict(data)
        changes = {}
        if 'service_tier' in data and data['service_tier'] != agreement.service_tier:
            changes['service_tier'] = {'old': agreement.service_tier, 'new': data['service_tier']}
            agreement.service_tier = data['service_tier']
            apply_tier_defaults(agreement)
        if 'covered_asset_ids' in data:
            data['covered_asset_ids'] = _ids_to_text(data['covered_asset_ids'])

        changes.update(self._apply_fields(agreement, data, AGREEMENT_FIELDS))
        self._apply_dates(agreement, data, ['start_date', 'end_date', 'next_maintenance_due'])
        if 'preferred_spring_month' in data or 'preferred_fall_month' in data:
            agreement.next_maintenance_due = calculate_next_maintenance_due(agreement, self._today())

        agreement.updated_at = datetime.utcnow()
        self.session.flush()

        if changes:
            self._log_event('service_agreement', agreement.id, 'UPDATED', metadata={'changes': changes})

        logger.info(f"Updated service agreement: {agreement_id}")
        return self._dict(agreement)

    def delete_agreement(self, agreement_id) -> bool:
        """Agreements are kept for history; deleting cancels."""
        agreement = self._get(agreement_id)
        if not agreement:
            return False
        if agreement.status != AgreementStatus.CANCELLED:
            self.cancel(agreement.id, reason='Deleted')
        return True

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def _lifecycle(self, agreement_id, action, event_type: str, **kwargs) -> Optional[Dict]:
        agreement = self._get(agreement_id)
        if not agreement:
            return None

        old_status = agreement.status
        action(agreement, **kwargs)
        agreement.updated_at = datetime.utcnow()
        self.session.flush()

        self._log_event(
            entity_type='service_agreement',
            entity_id=agreement.id,
            event_type=event_type,
            description=f"Agreement {agreement.agreement_number}: {old_status} -> {agreement.status}",
            metadata={'old_status': old_status, 'new_status': agreement.status,
                      'end_date': agreement.end_date}
        )
        logger.info(f"Agreement {agreement.agreement_number}: {old_status} -> {agreement.status}")
        return self._dict(agreement)

    def activate(self, agreement_id, now: datetime = None) -> Optional[Dict]:
        return self._lifecycle(agreement_id, activate_agreement, 'AGREEMENT_ACTIVATED',
                               today=self._today(), now=now)

    def renew(self, agreement_id, now: datetime = None) -> Optional[Dict]:
        return self._lifecycle(agreement_id, renew_agreement, 'AGREEMENT_RENEWED',
                               today=self._today(), now=now)

    def suspend(self, agreement_id) -> Optional[Dict]:
        return self._lifecycle(agreement_id, suspend_agreement, 'AGREEMENT_SUSPENDED')

    def cancel(self, agreement_id, reason: str = None, now: datetime = None) -> Optional[Dict]:
        return self._lifecycle(agreement_id, cancel_agreement, 'AGREEMENT_CANCELLED',
                               reason=reason, now=now)

    def schedule_visit(self, agreement_id) -> Optional[Dict]:
        """
        Book the next included maintenance visit as a scheduled job.

        Raises:
            BusinessRuleError: when the agreement is inactive or out of visits
        """
        agreement = self._get(agreement_id)
        if not agreement:
            return None

        job = schedule_maintenance_visit(agreement, self._today())
        job.job_number = self._next_number(Job.job_number, 'job', self._today())
        self.session.add(job)
        agreement.updated_at = datetime.utcnow()
        self.session.flush()

        self._log_event(
            entity_type='service_agreement',
            entity_id=agreement.id,
            event_type='MAINTENANCE_SCHEDULED',
            description=f"Maintenance visit {job.job_number} scheduled for {job.scheduled_date}",
            metadata={'job_id': job.id, 'visits_remaining': agreement.visits_remaining}
        )

        return {'job': job.to_dict(), 'agreement': self._dict(agreement)}

    # =========================================================================
    # QUERIES & SWEEPS
    # =========================================================================

    def expiring(self, days: int = 30) -> List[Dict]:
        """Active agreements ending on or after today and before today + ``days``."""
        today = self._today()
        agreements = self.session.query(ServiceAgreement).filter(
            ServiceAgreement.status == AgreementStatus.ACTIVE,
            ServiceAgreement.end_date >= today,
            ServiceAgreement.end_date < today + timedelta(days=days)
        ).order_by(ServiceAgreement.end_date).all()
        return [self._dict(a) for a in agreements]

    def due_for_maintenance(self, days: int = 14) -> List[Dict]:
        """Active agreements with visits left and a tune-up due within ``days`` days."""
        today = self._today()
        agreements = self.session.query(ServiceAgreement).filter(
            ServiceAgreement.status == AgreementStatus.ACTIVE,
            ServiceAgreement.next_maintenance_due.isnot(None),
            ServiceAgreement.next_maintenance_due <= today + timedelta(days=days)
        ).order_by(ServiceAgreement.next_maintenance_due).all()
        return [self._dict(a) for a in agreements if a.visits_remaining > 0]

    def process_auto_renewals(self, now: datetime = None) -> List[Dict]:
        """Renew every active auto-renew agreement whose term has ended."""
        today = self._today()
        due = self.session.query(ServiceAgreement).filter(
            ServiceAgreement.status == AgreementStatus.ACTIVE,
            ServiceAgreement.auto_renew == True,
            ServiceAgreement.end_date < today
        ).all()

        renewed = []
        for agreement in due:
            renewed.append(self.renew(agreement.id, now))

        if renewed:
            logger.info(f"Auto-renewed {len(renewed)} service agreement(s)")
        return renewed

    def mark_expired(self) -> List[Dict]:
        """Expire active agreements past their end date that do not auto-renew."""
        today = self._today()
        lapsed = self.session.query(ServiceAgreement).filter(
            ServiceAgreement.status == AgreementStatus.ACTIVE,
            ServiceAgreement.auto_renew == False,
            ServiceAgreement.end_date < today
        ).all()

        for agreement in lapsed:
            agreement.status = AgreementStatus.EXPIRED
            agreement.updated_at = datetime.utcnow()
            self.events.log_status_change('service_agreement', agreement.id, AgreementStatus.ACTIVE,
                                          AgreementStatus.EXPIRED, 'AGREEMENT_EXPIRED')
        self.session.flush()

        if lapsed:
            logger.info(f"Marked {len(lapsed)} service agreement(s) expired")
        return [self._dict(a) for a in lapsed]
