"""
Job Repository - Database access layer for estimates and jobs.

Estimates move Draft -> Sent -> Accepted/Declined/Expired and an accepted
estimate is converted into a job. Totals and status rules come from
services.billing; this layer loads, persists and logs.
"""

import logging
from datetime import datetime, date, timedelta
from typing import List, Optional, Dict

from database.models import (
    Estimate, EstimateLine, EstimateStatus,
    Job, JobStatus
)
from services.base_repository import BaseRepository
from services.billing import (
    BusinessRuleError, DEFAULT_TAX_RATE, DEFAULT_LABOR_RATE,
    recalculate_estimate, transition_estimate, job_from_estimate, recalculate_job
)

logger = logging.getLogger(__name__)

DEFAULT_ESTIMATE_VALID_DAYS = 30

ESTIMATE_FIELDS = ['customer_id', 'site_id', 'asset_id', 'title', 'description',
                   'tax_rate', 'tax_included', 'notes', 'terms']

LINE_FIELDS = ['line_type', 'description', 'quantity', 'unit', 'unit_price',
               'sort_order', 'inventory_item_id']

JOB_FIELDS = [
    'customer_id', 'site_id', 'asset_id', 'service_agreement_id', 'title',
    'description', 'job_type', 'priority', 'arrival_window_start',
    'arrival_window_end', 'estimated_hours', 'actual_hours', 'labor_total',
    'parts_total', 'materials_total', 'trip_charge', 'discount_amount',
    'tax_rate', 'work_performed', 'notes'
]

# Changing any of these re-runs the job totals
JOB_MONEY_FIELDS = {'estimated_hours', 'actual_hours', 'labor_total', 'parts_total',
                    'materials_total', 'trip_charge', 'discount_amount', 'tax_rate'}

ESTIMATE_EVENTS = {
    EstimateStatus.SENT: 'ESTIMATE_SENT',
    EstimateStatus.ACCEPTED: 'ESTIMATE_ACCEPTED',
    EstimateStatus.DECLINED: 'ESTIMATE_DECLINED',
    EstimateStatus.EXPIRED: 'ESTIMATE_EXPIRED',
}

JOB_EVENTS = {
    JobStatus.SCHEDULED: 'JOB_SCHEDULED',
    JobStatus.IN_PROGRESS: 'JOB_STARTED',
    JobStatus.COMPLETED: 'JOB_COMPLETED',
    JobStatus.CANCELLED: 'JOB_CANCELLED',
}


class JobRepository(BaseRepository):
    """Repository for estimate and job operations with event logging."""

    # =========================================================================
    # ESTIMATES
    # =========================================================================

    def _get_estimate(self, estimate_id) -> Optional[Estimate]:
        return self.session.query(Estimate).filter(Estimate.id == estimate_id).first()

    def _require_draft(self, estimate: Estimate):
        if not estimate.can_edit:
            raise BusinessRuleError(
                f"Estimate {estimate.estimate_number} is {estimate.status} and can no longer be edited",
                'estimate')

    def _build_line(self, data: Dict, sort_order: int) -> EstimateLine:
        line = EstimateLine(sort_order=sort_order)
        self._apply_fields(line, data, LINE_FIELDS)
        return line

    def list_estimates(self, status: str = None, customer_id=None,
                       active_only: bool = True) -> List[Dict]:
        query = self.session.query(Estimate)
        if active_only:
            query = query.filter(Estimate.is_active == True)
        if status:
            query = query.filter(Estimate.status == status)
        if customer_id:
            query = query.filter(Estimate.customer_id == customer_id)
        estimates = query.order_by(Estimate.created_at.desc(), Estimate.id.desc()).all()
        return [e.to_dict(include_lines=False) for e in estimates]

    def get_estimate(self, estimate_id) -> Optional[Dict]:
        estimate = self._get_estimate(estimate_id)
        return estimate.to_dict() if estimate else None

    def create_estimate(self, data: Dict, tax_rate: float = DEFAULT_TAX_RATE,
                        valid_days: int = DEFAULT_ESTIMATE_VALID_DAYS,
                        today: date = None) -> Dict:
        """
        Create a draft estimate with its lines.

        ``tax_rate`` and ``valid_days`` apply when the payload leaves them out.
        """
        today = today or date.today()
        estimate = Estimate(
            estimate_number=self._next_number(Estimate.estimate_number, 'estimate', today),
            customer_id=data.get('customer_id'),
            title=data.get('title', ''),
            tax_rate=tax_rate,
            expires_at=self._parse_date(data.get('expires_at')) or today + timedelta(days=valid_days)
        )
        self._apply_fields(estimate, data, [k for k in ESTIMATE_FIELDS if k != 'customer_id'])

        for index, line_data in enumerate(data.get('lines') or []):
            estimate.lines.append(self._build_line(line_data, line_data.get('sort_order', index)))

        recalculate_estimate(estimate)
        self.session.add(estimate)
        self.session.flush()

        self._log_event(
            entity_type='estimate',
            entity_id=estimate.id,
            event_type='CREATED',
            description=f"Estimate {estimate.estimate_number} '{estimate.title}' was created",
            metadata={'total': estimate.total, 'customer_id': estimate.customer_id}
        )

        logger.info(f"Created estimate: {estimate.estimate_number}")
        return estimate.to_dict()

    def update_estimate(self, estimate_id, data: Dict) -> Optional[Dict]:
        """
        Update a draft estimate. Passing ``lines`` replaces all lines.

        Raises:
            BusinessRuleError: if the estimate is no longer a draft
        """
        estimate = self._get_estimate(estimate_id)
        if not estimate:
            return None
        self._require_draft(estimate)

        changes = self._apply_fields(estimate, data, ESTIMATE_FIELDS)
        if 'expires_at' in data:
            estimate.expires_at = self._parse_date(data['expires_at'])

        if 'lines' in data:
            estimate.lines.clear()
            for index, line_data in enumerate(data['lines'] or []):
                estimate.lines.append(self._build_line(line_data, line_data.get('sort_order', index)))
            changes['lines'] = len(estimate.lines)

        recalculate_estimate(estimate)
        estimate.updated_at = datetime.utcnow()
        self.session.flush()

        if changes:
            self._log_event('estimate', estimate.id, 'UPDATED', metadata={'changes': changes})

        logger.info(f"Updated estimate: {estimate_id}")
        return estimate.to_dict()

    def delete_estimate(self, estimate_id) -> bool:
        """Soft delete an estimate."""
        estimate = self._get_estimate(estimate_id)
        if not estimate:
            return False
        estimate.is_active = False
        estimate.updated_at = datetime.utcnow()
        self.session.flush()
        self._log_event('estimate', estimate.id, 'DELETED')
        logger.info(f"Deleted (deactivated) estimate: {estimate_id}")
        return True

    def add_estimate_line(self, estimate_id, data: Dict) -> Optional[Dict]:
        estimate = self._get_estimate(estimate_id)
        if not estimate:
            return None
        self._require_draft(estimate)

        sort_order = data.get('sort_order', len(estimate.lines))
        estimate.lines.append(self._build_line(data, sort_order))
        recalculate_estimate(estimate)
        estimate.updated_at = datetime.utcnow()
        self.session.flush()
        return estimate.to_dict()

    def remove_estimate_line(self, estimate_id, line_id) -> Optional[Dict]:
        estimate = self._get_estimate(estimate_id)
        if not estimate:
            return None
        self._require_draft(estimate)

        line = next((l for l in estimate.lines if l.id == int(line_id)), None)
        if line is None:
            return None
        estimate.lines.remove(line)
        recalculate_estimate(estimate)
        estimate.updated_at = datetime.utcnow()
        self.session.flush()
        return estimate.to_dict()

    def _transition(self, estimate_id, new_status: str, now: datetime = None) -> Optional[Dict]:
        estimate = self._get_estimate(estimate_id)
        if not estimate:
            return None

        old_status = estimate.status
        transition_estimate(estimate, new_status, now)
        estimate.updated_at = datetime.utcnow()
        self.session.flush()

        self.events.log_status_change('estimate', estimate.id, old_status, new_status,
                                      ESTIMATE_EVENTS.get(new_status, 'STATUS_CHANGED'))
        logger.info(f"Estimate {estimate.estimate_number}: {old_status} -> {new_status}")
        return estimate.to_dict()

    def send_estimate(self, estimate_id, now: datetime = None) -> Optional[Dict]:
        return self._transition(estimate_id, EstimateStatus.SENT, now)

    def accept_estimate(self, estimate_id, now: datetime = None) -> Optional[Dict]:
        """Accept a sent estimate. Raises BusinessRuleError once it has expired."""
        return self._transition(estimate_id, EstimateStatus.ACCEPTED, now)

    def decline_estimate(self, estimate_id, now: datetime = None) -> Optional[Dict]:
        return self._transition(estimate_id, EstimateStatus.DECLINED, now)

    def expire_estimates(self, today: date = None) -> List[Dict]:
        """Mark every sent estimate past its expiry date as Expired."""
        today = today or date.today()
        stale = self.session.query(Estimate).filter(
            Estimate.status == EstimateStatus.SENT,
            Estimate.expires_at.isnot(None),
            Estimate.expires_at < today
        ).all()

        for estimate in stale:
            estimate.status = EstimateStatus.EXPIRED
            estimate.updated_at = datetime.utcnow()
            self.events.log_status_change('estimate', estimate.id, EstimateStatus.SENT,
                                          EstimateStatus.EXPIRED, 'ESTIMATE_EXPIRED')
        self.session.flush()

        if stale:
            logger.info(f"Expired {len(stale)} estimate(s)")
        return [e.to_dict(include_lines=False) for e in stale]

    def convert_estimate_to_job(self, estimate_id, now: datetime = None) -> Optional[Dict]:
        """
        Turn an accepted estimate into a draft job.

        Raises:
            BusinessRuleError: unless the estimate is Accepted
        """
        estimate = self._get_estimate(estimate_id)
        if not estimate:
            return None
        if estimate.status != EstimateStatus.ACCEPTED:
            raise BusinessRuleError(
                f"Only accepted estimates can be converted (status is {estimate.status})", 'estimate')

        job = job_from_estimate(estimate)
        job.job_number = self._next_number(Job.job_number, 'job')
        self.session.add(job)
        self.session.flush()

        transition_estimate(estimate, EstimateStatus.CONVERTED, now)
        estimate.converted_job_id = job.id
        estimate.updated_at = datetime.utcnow()
        self.session.flush()

        self._log_event(
            entity_type='estimate',
            entity_id=estimate.id,
            event_type='ESTIMATE_CONVERTED',
            description=f"Estimate {estimate.estimate_number} converted to job {job.job_number}",
            metadata={'job_id': job.id}
        )
        self._log_event('job', job.id, 'CREATED', f"Job {job.job_number} created from estimate")

        logger.info(f"Converted estimate {estimate.estimate_number} to job {job.job_number}")
        return job.to_dict()

    # =========================================================================
    # JOBS
    # =========================================================================

    def _get_job(self, job_id) -> Optional[Job]:
        return self.session.query(Job).filter(Job.id == job_id).first()

    def list_jobs(self, status: str = None, customer_id=None,
                  start_date=None, end_date=None) -> List[Dict]:
        """List jobs, optionally filtered by status, customer and scheduled date range."""
        query = self.session.query(Job)
        if status:
            query = query.filter(Job.status == status)
        if customer_id:
            query = query.filter(Job.customer_id == customer_id)
        start = self._parse_date(start_date)
        end = self._parse_date(end_date)
        if start:
            query = query.filter(Job.scheduled_date >= start)
        if end:
            query = query.filter(Job.scheduled_date <= end)
        jobs = query.order_by(Job.scheduled_date.desc(), Job.id.desc()).all()
        return [j.to_dict() for j in jobs]

    def get_job(self, job_id) -> Optional[Dict]:
        job = self._get_job(job_id)
        return job.to_dict() if job else None

    def create_job(self, data: Dict, labor_rate: float = DEFAULT_LABOR_RATE,
                   tax_rate: float = DEFAULT_TAX_RATE) -> Dict:
        """Create a job; jobs with a scheduled date start out Scheduled."""
        scheduled = self._parse_date(data.get('scheduled_date'))
        job = Job(
            job_number=self._next_number(Job.job_number, 'job'),
            customer_id=data.get('customer_id'),
            title=data.get('title', ''),
            tax_rate=tax_rate,
            scheduled_date=scheduled,
            status=data.get('status') or (JobStatus.SCHEDULED if scheduled else JobStatus.DRAFT)
        )
        self._apply_fields(job, data, [k for k in JOB_FIELDS if k not in ('customer_id', 'title')])
        recalculate_job(job, labor_rate)

        self.session.add(job)
        self.session.flush()

        self._log_event(
            entity_type='job',
            entity_id=job.id,
            event_type='CREATED',
            description=f"Job {job.job_number} '{job.title}' was created",
            metadata={'customer_id': job.customer_id, 'scheduled_date': job.scheduled_date}
        )

        logger.info(f"Created job: {job.job_number}")
        return job.to_dict()

    def update_job(self, job_id, data: Dict, labor_rate: float = DEFAULT_LABOR_RATE) -> Optional[Dict]:
        """
        Update a job.

        Raises:
            BusinessRuleError: when the job is Closed or Cancelled
        """
        job = self._get_job(job_id)
        if not job:
            return None
        if not job.can_edit:
            raise BusinessRuleError(f"Job {job.job_number} is {job.status} and cannot be edited", 'job')

        changes = self._apply_fields(job, data, JOB_FIELDS)
        if 'scheduled_date' in data:
            job.scheduled_date = self._parse_date(data['scheduled_date'])
            changes['scheduled_date'] = job.scheduled_date
        if JOB_MONEY_FIELDS.intersection(data):
            recalculate_job(job, labor_rate)

        job.updated_at = datetime.utcnow()
        self.session.flush()

        if changes:
            self._log_event('job', job.id, 'UPDATED', metadata={'changes': changes})

        logger.info(f"Updated job: {job_id}")
        return job.to_dict()

    def set_job_status(self, job_id, new_status: str, now: datetime = None) -> Optional[Dict]:
        """
        Move a job to a new status, stamping lifecycle timestamps.

        Raises:
            BusinessRuleError: for unknown statuses or jobs that are Closed/Cancelled
        """
        job = self._get_job(job_id)
        if not job:
            return None
        if new_status not in JobStatus.ALL:
            raise BusinessRuleError(f"Unknown job status: {new_status}", 'job')
        if not job.can_edit:
            raise BusinessRuleError(f"Job {job.job_number} is {job.status} and cannot change status", 'job')

        old_status = job.status
        job.set_status(new_status, now)
        job.updated_at = datetime.utcnow()
        self.session.flush()

        self.events.log_status_change('job', job.id, old_status, new_status,
                                      JOB_EVENTS.get(new_status, 'STATUS_CHANGED'))
        logger.info(f"Job {job.job_number}: {old_status} -> {new_status}")
        return job.to_dict()

    def delete_job(self, job_id) -> bool:
        """Jobs are never removed; deleting cancels the job."""
        job = self._get_job(job_id)
        if not job:
            return False
        if job.status != JobStatus.CANCELLED:
            self.set_job_status(job.id, JobStatus.CANCELLED)
        return True

    def overdue_jobs(self, today: date = None) -> List[Dict]:
        """Jobs scheduled before today that are still open."""
        today = today or date.today()
        jobs = self.session.query(Job).filter(
            Job.scheduled_date.isnot(None),
            Job.scheduled_date < today,
            Job.status.notin_(JobStatus.FINISHED)
        ).order_by(Job.scheduled_date).all()
        return [j.to_dict() for j in jobs]
