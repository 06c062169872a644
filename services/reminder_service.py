"""
Reminder Service - Automated alert checks for the dashboard.

Each check looks for records that need the owner's attention (money that is
late, quotes going stale, contracts coming up for renewal, equipment due for
service) and returns alert dicts with a priority from REMINDER_CONFIGS.
"""

import logging
from typing import Dict, List, Any
from datetime import datetime, date, time, timedelta
from sqlalchemy.orm import Session
from sqlalchemy import or_

from database.models import (
    Invoice, InvoiceStatus, Estimate, EstimateStatus, ServiceAgreement,
    AgreementStatus, Job, JobStatus, InventoryItem, Asset
)

logger = logging.getLogger(__name__)


# Reminder types and their configurations
REMINDER_CONFIGS = {
    'invoice_overdue': {
        'description': 'Invoices that are past their due date',
        'days_threshold': 0,
        'priority': 'urgent'
    },
    'invoice_due_soon': {
        'description': 'Invoices coming due soon',
        'days_threshold': 7,
        'priority': 'normal'
    },
    'estimate_expiring': {
        'description': 'Estimates that are about to expire',
        'days_threshold': 3,
        'priority': 'high'
    },
    'estimate_followup': {
        'description': 'Follow up on estimates that have been sent but not answered',
        'days_threshold': 7,
        'priority': 'normal'
    },
    'agreement_expiring': {
        'description': 'Service agreements inside their renewal reminder window',
        'priority': 'high'
    },
    'maintenance_due': {
        'description': 'Agreement maintenance visits coming due',
        'days_threshold': 14,
        'priority': 'normal'
    },
    'job_overdue': {
        'description': 'Jobs that are past their scheduled date',
        'days_threshold': 0,
        'priority': 'high'
    },
    'low_stock': {
        'description': 'Inventory items at or below their reorder point',
        'priority': 'normal'
    },
    'warranty_expiring': {
        'description': 'Equipment warranties ending soon',
        'days_threshold': 90,
        'priority': 'low'
    },
    'equipment_service_due': {
        'description': 'Equipment with a filter change or service due',
        'priority': 'normal'
    }
}

PRIORITY_ORDER = {'urgent': 0, 'high': 1, 'normal': 2, 'low': 3}


def _alert(reminder_type: str, entity_type: str, entity_id, title: str,
           description: str, **extra) -> Dict[str, Any]:
    alert = {
        'type': reminder_type,
        'entity_type': entity_type,
        'entity_id': entity_id,
        'title': title,
        'description': description,
        'priority': REMINDER_CONFIGS[reminder_type]['priority'],
        'created_at': datetime.utcnow().isoformat()
    }
    alert.update(extra)
    return alert


class ReminderService:
    """Service for checking and generating automated reminders."""

    def __init__(self, session: Session, today: date = None):
        self.session = session
        self.today = today or date.today()

    def check_all_reminders(self) -> Dict[str, List[Dict]]:
        """
        Check all reminder types and return items needing attention.

        Returns a dictionary with reminder types as keys and lists of
        items needing attention as values. Empty categories are left out.
        """
        reminders = {}

        reminders['invoice_overdue'] = self.check_overdue_invoices()
        reminders['invoice_due_soon'] = self.check_invoices_due_soon()
        reminders['estimate_expiring'] = self.check_expiring_estimates()
        reminders['estimate_followup'] = self.check_estimate_followups()
        reminders['agreement_expiring'] = self.check_expiring_agreements()
        reminders['maintenance_due'] = self.check_maintenance_due()
        reminders['job_overdue'] = self.check_overdue_jobs()
        reminders['low_stock'] = self.check_low_stock()
        reminders['warranty_expiring'] = self.check_expiring_warranties()
        reminders['equipment_service_due'] = self.check_equipment_service_due()

        return {k: v for k, v in reminders.items() if v}

    # =========================================================================
    # BILLING
    # =========================================================================

    def check_overdue_invoices(self) -> List[Dict]:
        """Check for open invoices past their due date."""
        try:
            invoices = self.session.query(Invoice).filter(
                Invoice.status.in_(InvoiceStatus.OPEN),
                Invoice.due_date != None,
                Invoice.due_date < self.today
            ).order_by(Invoice.due_date).all()

            return [_alert(
                'invoice_overdue', 'invoice', inv.id,
                f"Overdue invoice {inv.invoice_number}: ${inv.balance_due:,.2f}",
                f"Invoice was due on {inv.due_date}, {inv.days_past_due(self.today)} days overdue",
                amount=inv.balance_due,
                days_overdue=inv.days_past_due(self.today)
            ) for inv in invoices if inv.balance_due > 0]
        except Exception as e:
            logger.error(f"Error checking overdue invoices: {e}")
            return []

    def check_invoices_due_soon(self) -> List[Dict]:
        """Check for open invoices coming due within the threshold."""
        try:
            threshold = self.today + timedelta(days=REMINDER_CONFIGS['invoice_due_soon']['days_threshold'])
            invoices = self.session.query(Invoice).filter(
                Invoice.status.in_(InvoiceStatus.OPEN),
                Invoice.due_date != None,
                Invoice.due_date >= self.today,
                Invoice.due_date <= threshold
            ).order_by(Invoice.due_date).all()

            return [_alert(
                'invoice_due_soon', 'invoice', inv.id,
                f"Invoice {inv.invoice_number} due soon: ${inv.balance_due:,.2f}",
                f"Invoice due on {inv.due_date}",
                amount=inv.balance_due,
                days_until_due=(inv.due_date - self.today).days
            ) for inv in invoices if inv.balance_due > 0]
        except Exception as e:
            logger.error(f"Error checking invoices due soon: {e}")
            return []

    # =========================================================================
    # ESTIMATES
    # =========================================================================

    def check_expiring_estimates(self) -> List[Dict]:
        """Check for sent estimates that are about to expire."""
        try:
            threshold = self.today + timedelta(days=REMINDER_CONFIGS['estimate_expiring']['days_threshold'])
            estimates = self.session.query(Estimate).filter(
                Estimate.is_active == True,
                Estimate.status.in_([EstimateStatus.DRAFT, EstimateStatus.SENT]),
                Estimate.expires_at != None,
                Estimate.expires_at >= self.today,
                Estimate.expires_at <= threshold
            ).order_by(Estimate.expires_at).all()

            return [_alert(
                'estimate_expiring', 'estimate', e.id,
                f"Estimate expiring soon: {e.title}",
                f"Estimate {e.estimate_number} expires on {e.expires_at}",
                amount=e.total,
                expires_in_days=(e.expires_at - self.today).days
            ) for e in estimates]
        except Exception as e:
            logger.error(f"Error checking expiring estimates: {e}")
            return []

    def check_estimate_followups(self) -> List[Dict]:
        """Check for sent estimates with no answer after the threshold."""
        try:
            days = REMINDER_CONFIGS['estimate_followup']['days_threshold']
            threshold = datetime.combine(self.today - timedelta(days=days), time.max)
            estimates = self.session.query(Estimate).filter(
                Estimate.is_active == True,
                Estimate.status == EstimateStatus.SENT,
                Estimate.sent_at != None,
                Estimate.sent_at <= threshold
            ).order_by(Estimate.sent_at).all()

            return [_alert(
                'estimate_followup', 'estimate', e.id,
                f"Follow up on estimate: {e.title}",
                f"Estimate sent {(self.today - e.sent_at.date()).days} days ago, no response yet",
                amount=e.total
            ) for e in estimates]
        except Exception as e:
            logger.error(f"Error checking estimate followups: {e}")
            return []

    # =========================================================================
    # SERVICE AGREEMENTS
    # =========================================================================

    def check_expiring_agreements(self) -> List[Dict]:
        """Check for active agreements inside their own renewal reminder window."""
        try:
            agreements = self.session.query(ServiceAgreement).filter(
                ServiceAgreement.status == AgreementStatus.ACTIVE,
                ServiceAgreement.end_date >= self.today
            ).order_by(ServiceAgreement.end_date).all()

            return [_alert(
                'agreement_expiring', 'service_agreement', a.id,
                f"Agreement expiring: {a.name}",
                f"Agreement {a.agreement_number} ends on {a.end_date}"
                + (" and will auto-renew" if a.auto_renew else ""),
                days_until_expiration=a.days_until_expiration(self.today),
                auto_renew=a.auto_renew
            ) for a in agreements if a.is_expiring_soon_on(self.today)]
        except Exception as e:
            logger.error(f"Error checking expiring agreements: {e}")
            return []

    def check_maintenance_due(self) -> List[Dict]:
        """Check for agreements with a tune-up due soon and visits left."""
        try:
            threshold = self.today + timedelta(days=REMINDER_CONFIGS['maintenance_due']['days_threshold'])
            agreements = self.session.query(ServiceAgreement).filter(
                ServiceAgreement.status == AgreementStatus.ACTIVE,
                ServiceAgreement.next_maintenance_due != None,
                ServiceAgreement.next_maintenance_due <= threshold
            ).order_by(ServiceAgreement.next_maintenance_due).all()

            return [_alert(
                'maintenance_due', 'service_agreement', a.id,
                f"Maintenance due: {a.name}",
                f"Next tune-up due {a.next_maintenance_due}, {a.visits_remaining} visit(s) remaining",
                due_date=a.next_maintenance_due.isoformat()
            ) for a in agreements if a.visits_remaining > 0]
        except Exception as e:
            logger.error(f"Error checking maintenance due: {e}")
            return []

    # =========================================================================
    # JOBS, STOCK & EQUIPMENT
    # =========================================================================

    def check_overdue_jobs(self) -> List[Dict]:
        """Check for jobs that are past their scheduled date."""
        try:
            jobs = self.session.query(Job).filter(
                Job.status.notin_(JobStatus.FINISHED),
                Job.scheduled_date != None,
                Job.scheduled_date < self.today
            ).order_by(Job.scheduled_date).all()

            return [_alert(
                'job_overdue', 'job', j.id,
                f"Overdue job: {j.title}",
                f"Job was scheduled for {j.scheduled_date}",
                days_overdue=(self.today - j.scheduled_date).days
            ) for j in jobs]
        except Exception as e:
            logger.error(f"Error checking overdue jobs: {e}")
            return []

    def check_low_stock(self) -> List[Dict]:
        """Check for inventory items at or below their reorder point."""
        try:
            items = self.session.query(InventoryItem).filter(
                InventoryItem.is_active == True,
                InventoryItem.reorder_point > 0,
                InventoryItem.quantity_on_hand <= InventoryItem.reorder_point
            ).order_by(InventoryItem.quantity_on_hand).all()

            return [_alert(
                'low_stock', 'inventory_item', i.id,
                f"Low stock: {i.name}",
                f"Current quantity: {i.quantity_on_hand:g}, Reorder point: {i.reorder_point:g}",
                quantity=i.quantity_on_hand,
                reorder_point=i.reorder_point
            ) for i in items]
        except Exception as e:
            logger.error(f"Error checking low stock: {e}")
            return []

    def check_expiring_warranties(self) -> List[Dict]:
        """Check for equipment whose warranty ends within the threshold."""
        try:
            threshold = self.today + timedelta(days=REMINDER_CONFIGS['warranty_expiring']['days_threshold'])
            assets = self.session.query(Asset).filter(
                Asset.is_active == True,
                Asset.warranty_start_date != None
            ).all()

            alerts = []
            for a in assets:
                end = a.warranty_end_date
                if end is None or not (self.today <= end <= threshold):
                    continue
                alerts.append(_alert(
                    'warranty_expiring', 'asset', a.id,
                    f"Warranty ending: {a.display_name or a.serial}",
                    f"Warranty on serial {a.serial} ends {end}",
                    days_until_expiration=(end - self.today).days
                ))
            return alerts
        except Exception as e:
            logger.error(f"Error checking expiring warranties: {e}")
            return []

    def check_equipment_service_due(self) -> List[Dict]:
        """Check for equipment with a filter change or service due today or earlier."""
        try:
            assets = self.session.query(Asset).filter(
                Asset.is_active == True,
                or_(Asset.next_filter_due <= self.today, Asset.next_service_due <= self.today)
            ).all()

            alerts = []
            for a in assets:
                due = []
                if a.next_filter_due and a.next_filter_due <= self.today:
                    due.append(f"filter change due {a.next_filter_due}")
                if a.next_service_due and a.next_service_due <= self.today:
                    due.append(f"service due {a.next_service_due}")
                alerts.append(_alert(
                    'equipment_service_due', 'asset', a.id,
                    f"Service due: {a.display_name or a.serial}",
                    '; '.join(due).capitalize(),
                    customer_id=a.customer_id
                ))
            return alerts
        except Exception as e:
            logger.error(f"Error checking equipment service: {e}")
            return []

    # =========================================================================
    # AGGREGATES
    # =========================================================================

    def get_dashboard_alerts(self, limit: int = 20) -> List[Dict]:
        """
        Get a prioritized list of alerts for the dashboard.

        Returns the most important items that need attention,
        sorted by priority (urgent > high > normal > low).
        """
        alerts = []
        for items in self.check_all_reminders().values():
            alerts.extend(items)

        alerts.sort(key=lambda x: PRIORITY_ORDER.get(x.get('priority', 'normal'), 2))
        return alerts[:limit]

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of all reminders."""
        all_reminders = self.check_all_reminders()

        summary = {
            'checked_at': datetime.utcnow().isoformat(),
            'total_items': sum(len(items) for items in all_reminders.values()),
            'by_type': {k: len(v) for k, v in all_reminders.items()},
            'urgent_items': [],
            'high_priority_items': []
        }

        for items in all_reminders.values():
            for item in items:
                if item.get('priority') == 'urgent':
                    summary['urgent_items'].append(item)
                elif item.get('priority') == 'high':
                    summary['high_priority_items'].append(item)

        return summary


def run_reminder_check(session: Session, today: date = None) -> Dict[str, Any]:
    """
    Run a complete reminder check and return results.

    This function can be called from a background job or scheduled task.
    """
    service = ReminderService(session, today)
    return {
        'reminders': service.check_all_reminders(),
        'summary': service.get_summary(),
        'dashboard_alerts': service.get_dashboard_alerts()
    }
