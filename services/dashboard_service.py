"""
Dashboard Service - Business KPIs for the owner's home screen.

Every figure is computed against ``today`` (injectable for tests) so the
numbers for "this week" or "last month" are deterministic.
"""

import calendar
import logging
from datetime import date, datetime, time, timedelta
from typing import Dict, Any, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.utils.helpers import to_money
from database.models import (
    Invoice, InvoiceStatus, Payment, Job, JobStatus, Customer, Estimate,
    EstimateStatus, ServiceAgreement, AgreementStatus, InventoryItem
)

logger = logging.getLogger(__name__)

# Invoices that do not count as revenue
NON_REVENUE_STATUSES = [InvoiceStatus.DRAFT, InvoiceStatus.CANCELLED]

AGING_BUCKETS = [
    ('current', None, 0),
    ('days_1_30', 1, 30),
    ('days_31_60', 31, 60),
    ('days_61_90', 61, 90),
    ('over_90', 91, None),
]


def _percent_change(current: float, previous: float) -> float:
    if not previous:
        return 0.0
    return round((current - previous) / previous * 100, 1)


def _average(values) -> float:
    return round(sum(values) / len(values), 1) if values else 0.0


def get_date_ranges(today: date = None) -> Dict[str, Tuple[date, date]]:
    """Inclusive (start, end) date pairs for the standard reporting periods."""
    today = today or date.today()
    yesterday = today - timedelta(days=1)
    week_start = today - timedelta(days=today.weekday())
    month_start = today.replace(day=1)
    month_end = today.replace(day=calendar.monthrange(today.year, today.month)[1])
    last_month_end = month_start - timedelta(days=1)
    last_month_start = last_month_end.replace(day=1)

    return {
        'today': (today, today),
        'yesterday': (yesterday, yesterday),
        'week': (week_start, week_start + timedelta(days=6)),
        'month': (month_start, month_end),
        'last_month': (last_month_start, last_month_end),
        'year': (date(today.year, 1, 1), date(today.year, 12, 31)),
    }


class DashboardService:
    """Computes KPI groups for the dashboard."""

    def __init__(self, session: Session, today: date = None):
        self.session = session
        self.today = today or date.today()
        self.ranges = get_date_ranges(self.today)

    def get_date_ranges(self) -> Dict[str, Dict[str, str]]:
        return {name: {'start': start.isoformat(), 'end': end.isoformat()}
                for name, (start, end) in self.ranges.items()}

    def _revenue_between(self, start: date, end: date) -> float:
        total = self.session.query(func.sum(Invoice.total)).filter(
            Invoice.invoice_date >= start,
            Invoice.invoice_date <= end,
            Invoice.status.notin_(NON_REVENUE_STATUSES)
        ).scalar()
        return to_money(total or 0)

    # =========================================================================
    # KPI GROUPS
    # =========================================================================

    def get_revenue_metrics(self) -> Dict[str, Any]:
        """Invoiced revenue for today, yesterday, this month (to date) and last month."""
        month_start = self.ranges['month'][0]
        today_revenue = self._revenue_between(self.today, self.today)
        yesterday_revenue = self._revenue_between(*self.ranges['yesterday'])
        month_revenue = self._revenue_between(month_start, self.today)
        last_month_revenue = self._revenue_between(*self.ranges['last_month'])

        paid = self.session.query(func.sum(Payment.amount)).filter(
            Payment.payment_date >= datetime.combine(month_start, time())
        ).scalar()

        # Invoices dated in the last 90 days, measured from the start of the invoice date
        paid_invoices = self.session.query(Invoice.invoice_date, Invoice.paid_at).filter(
            Invoice.status == InvoiceStatus.PAID,
            Invoice.paid_at.isnot(None),
            Invoice.invoice_date >= self.today - timedelta(days=90)
        ).all()
        days_to_pay = [(paid_at - datetime.combine(invoice_date, time())).total_seconds() / 86400
                       for invoice_date, paid_at in paid_invoices]

        return {
            'today': today_revenue,
            'yesterday': yesterday_revenue,
            'month': month_revenue,
            'last_month': last_month_revenue,
            'day_over_day_change': _percent_change(today_revenue, yesterday_revenue),
            'month_over_month_change': _percent_change(month_revenue, last_month_revenue),
            'paid_this_month': to_money(paid or 0),
            'average_days_to_payment': _average(days_to_pay),
        }

    def get_job_metrics(self) -> Dict[str, Any]:
        week_start, week_end = self.ranges['week']
        day_start = datetime.combine(self.today, time())
        day_end = day_start + timedelta(days=1)

        scheduled_today = self.session.query(Job).filter(
            Job.scheduled_date == self.today,
            Job.status != JobStatus.CANCELLED
        ).count()
        completed_today = self.session.query(Job).filter(
            Job.completed_at >= day_start,
            Job.completed_at < day_end
        ).count()
        this_week = self.session.query(Job).filter(
            Job.scheduled_date >= week_start,
            Job.scheduled_date <= week_end,
            Job.status != JobStatus.CANCELLED
        ).count()
        completed_this_week = self.session.query(Job).filter(
            Job.completed_at >= datetime.combine(week_start, time()),
            Job.completed_at < day_end
        ).count()
        by_status = dict(self.session.query(Job.status, func.count(Job.id)).group_by(Job.status).all())
        overdue = self.session.query(Job).filter(
            Job.scheduled_date < self.today,
            Job.status.notin_(JobStatus.FINISHED)
        ).count()

        finished = self.session.query(Job.started_at, Job.completed_at).filter(
            Job.status == JobStatus.COMPLETED,
            Job.started_at.isnot(None),
            Job.completed_at.isnot(None),
            Job.completed_at >= day_start - timedelta(days=30)
        ).all()
        durations = [(completed - started).total_seconds() / 3600 for started, completed in finished]
        today_value = self.session.query(func.sum(Job.total)).filter(
            Job.scheduled_date == self.today
        ).scalar()

        return {
            'scheduled_today': scheduled_today,
            'completed_today': completed_today,
            'this_week': this_week,
            'completed_this_week': completed_this_week,
            'by_status': {status: by_status.get(status, 0) for status in JobStatus.ALL},
            'in_progress': by_status.get(JobStatus.IN_PROGRESS, 0),
            'overdue': overdue,
            'average_job_duration_hours': _average(durations),
            'today_job_value': to_money(today_value or 0),
        }

    def get_customer_metrics(self) -> Dict[str, Any]:
        tomorrow = datetime.combine(self.today + timedelta(days=1), time())

        def created_since(start: date) -> int:
            return self.session.query(Customer).filter(
                Customer.created_at >= datetime.combine(start, time()),
                Customer.created_at < tomorrow
            ).count()

        repeat_customers = self.session.query(Job.customer_id).group_by(
            Job.customer_id
        ).having(func.count(Job.id) > 1).count()

        return {
            'total': self.session.query(Customer).count(),
            'total_active': self.session.query(Customer).filter(Customer.is_active == True).count(),
            'new_this_month': created_since(self.ranges['month'][0]),
            'new_last_7_days': created_since(self.today - timedelta(days=7)),
            'new_last_30_days': created_since(self.today - timedelta(days=30)),
            'repeat_customers': repeat_customers,
        }

    def get_receivables_aging(self) -> Dict[str, Any]:
        """Bucket unpaid, issued invoices by days past due."""
        invoices = self.session.query(Invoice).filter(
            Invoice.status.in_(InvoiceStatus.OPEN)
        ).all()

        buckets = {name: 0.0 for name, _, _ in AGING_BUCKETS}
        counts = {name: 0 for name, _, _ in AGING_BUCKETS}
        overdue_count = 0
        for invoice in invoices:
            balance = invoice.balance_due
            if balance <= 0:
                continue
            days = invoice.days_past_due(self.today)
            for name, low, high in AGING_BUCKETS:
                if (low is None or days >= low) and (high is None or days <= high):
                    buckets[name] += balance
                    counts[name] += 1
                    break
            if days > 0:
                overdue_count += 1

        return {
            'buckets': {name: to_money(amount) for name, amount in buckets.items()},
            'counts': counts,
            'total_outstanding': to_money(sum(buckets.values())),
            'overdue_count': overdue_count,
        }

    def get_estimate_metrics(self) -> Dict[str, Any]:
        rows = self.session.query(
            Estimate.status, func.count(Estimate.id), func.sum(Estimate.total)
        ).filter(Estimate.is_active == True).group_by(Estimate.status).all()
        counts = {status: 0 for status in EstimateStatus.ALL}
        values = {status: 0.0 for status in EstimateStatus.ALL}
        for status, count, total in rows:
            counts[status] = count
            values[status] = total or 0.0

        accepted = counts[EstimateStatus.ACCEPTED] + counts[EstimateStatus.CONVERTED]
        decided = counts[EstimateStatus.SENT] + accepted + counts[EstimateStatus.DECLINED]
        return {
            'by_status': counts,
            'pending_value': to_money(values[EstimateStatus.SENT]),
            'accepted_value': to_money(values[EstimateStatus.ACCEPTED] + values[EstimateStatus.CONVERTED]),
            'conversion_rate': round(accepted / decided * 100, 1) if decided else 0.0,
        }

    def get_agreement_metrics(self) -> Dict[str, Any]:
        agreements = self.session.query(ServiceAgreement).filter(
            ServiceAgreement.status == AgreementStatus.ACTIVE
        ).all()
        active = [a for a in agreements if a.is_active_on(self.today)]

        def expiring_within(days):
            limit = self.today + timedelta(days=days)
            return sum(1 for a in agreements if self.today <= a.end_date < limit)

        # Any status: agreements already swept to Expired still count
        expired = self.session.query(ServiceAgreement).filter(
            ServiceAgreement.end_date < self.today
        ).count()

        return {
            'active': len(active),
            'expiring_7_days': expiring_within(7),
            'expiring_30_days': expiring_within(30),
            'expired': expired,
            'monthly_recurring_revenue': to_money(sum(a.monthly_recurring_revenue for a in active)),
            'annual_contract_value': to_money(sum(a.annual_price or 0 for a in active)),
            'visits_remaining': sum(a.visits_remaining for a in active),
        }

    def get_inventory_metrics(self) -> Dict[str, Any]:
        items = self.session.query(InventoryItem).filter(InventoryItem.is_active == True).all()
        return {
            'item_count': len(items),
            'low_stock': sum(1 for i in items if i.is_low_stock),
            'out_of_stock': sum(1 for i in items if i.is_out_of_stock),
            'total_value': to_money(sum((i.quantity_on_hand or 0) * (i.cost or 0) for i in items)),
        }

    def get_all(self) -> Dict[str, Any]:
        """Every KPI group in one payload."""
        logger.debug(f"Computing dashboard KPIs for {self.today}")
        return {
            'date_ranges': self.get_date_ranges(),
            'revenue': self.get_revenue_metrics(),
            'jobs': self.get_job_metrics(),
            'customers': self.get_customer_metrics(),
            'receivables': self.get_receivables_aging(),
            'estimates': self.get_estimate_metrics(),
            'agreements': self.get_agreement_metrics(),
            'inventory': self.get_inventory_metrics(),
            'generated_at': datetime.utcnow().isoformat(),
        }
