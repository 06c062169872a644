"""
Invoice Repository - Database access layer for invoices, invoice lines and payments.

Money rules (totals, status derivation, payment and refund checks) live in
services.billing. This layer loads the rows, applies the rules, persists
and records events.
"""

import logging
from datetime import datetime, date, time, timedelta
from typing import List, Optional, Dict, Any

from app.utils.helpers import to_money
from database.models import (
    Invoice, InvoiceStatus, InvoiceLineItem, Payment, Job
)
from services.base_repository import BaseRepository
from services.billing import (
    BusinessRuleError, DEFAULT_TAX_RATE, DEFAULT_DUE_DAYS,
    recalculate_invoice, update_invoice_status, invoice_from_job,
    mark_invoice_sent, cancel_invoice, apply_payment, create_refund
)

logger = logging.getLogger(__name__)

INVOICE_FIELDS = ['customer_id', 'job_id', 'site_id', 'labor_amount', 'parts_amount',
                  'other_amount', 'discount_amount', 'tax_rate', 'notes', 'terms']

LINE_FIELDS = ['source', 'source_id', 'description', 'quantity', 'unit_price',
               'serial_number', 'created_asset_id', 'display_order']

PAYMENT_FIELDS = ['payment_method', 'transaction_id', 'reference_number', 'card_last4',
                  'processing_fee', 'notes']

EDITABLE_STATUSES = (InvoiceStatus.DRAFT, InvoiceStatus.SENT)


class InvoiceRepository(BaseRepository):
    """Repository for invoice and payment operations with event logging."""

    def _get_invoice(self, invoice_id) -> Optional[Invoice]:
        return self.session.query(Invoice).filter(Invoice.id == invoice_id).first()

    def _require_editable(self, invoice: Invoice):
        if invoice.status not in EDITABLE_STATUSES:
            raise BusinessRuleError(
                f"Invoice {invoice.invoice_number} is {invoice.status} and cannot be edited", 'invoice')

    def _build_line(self, data: Dict, display_order: int) -> InvoiceLineItem:
        line = InvoiceLineItem(display_order=display_order)
        self._apply_fields(line, data, LINE_FIELDS)
        return line

    # =========================================================================
    # INVOICES
    # =========================================================================

    def list_invoices(self, status: str = None, customer_id=None) -> List[Dict]:
        query = self.session.query(Invoice)
        if status:
            query = query.filter(Invoice.status == status)
        if customer_id:
            query = query.filter(Invoice.customer_id == customer_id)
        invoices = query.order_by(Invoice.invoice_date.desc(), Invoice.id.desc()).all()
        return [inv.to_dict(include_children=False) for inv in invoices]

    def get_invoice(self, invoice_id) -> Optional[Dict]:
        """Get an invoice with its line items and payments."""
        invoice = self._get_invoice(invoice_id)
        return invoice.to_dict() if invoice else None

    def create_invoice(self, data: Dict, tax_rate: float = DEFAULT_TAX_RATE,
                       due_days: int = DEFAULT_DUE_DAYS, today: date = None) -> Dict:
        """Create a draft invoice, with optional ``line_items``."""
        today = today or date.today()
        invoice_date = self._parse_date(data.get('invoice_date')) or today
        invoice = Invoice(
            invoice_number=self._next_number(Invoice.invoice_number, 'invoice', today),
            customer_id=data.get('customer_id'),
            invoice_date=invoice_date,
            due_date=self._parse_date(data.get('due_date')) or invoice_date + timedelta(days=due_days),
            tax_rate=tax_rate
        )
        self._apply_fields(invoice, data, [k for k in INVOICE_FIELDS if k != 'customer_id'])

        for index, line_data in enumerate(data.get('line_items') or []):
            invoice.line_items.append(self._build_line(line_data, line_data.get('display_order', index)))

        recalculate_invoice(invoice)
        self.session.add(invoice)
        self.session.flush()

        self._log_event(
            entity_type='invoice',
            entity_id=invoice.id,
            event_type='CREATED',
            description=f"Invoice {invoice.invoice_number} was created",
            metadata={'total': invoice.total, 'customer_id': invoice.customer_id}
        )

        logger.info(f"Created invoice: {invoice.invoice_number}")
        return invoice.to_dict()

    def update_invoice(self, invoice_id, data: Dict) -> Optional[Dict]:
        """
        Update a Draft or Sent invoice and recalculate its totals.

        Raises:
            BusinessRuleError: for paid, cancelled or refunded invoices
        """
        invoice = self._get_invoice(invoice_id)
        if not invoice:
            return None
        self._require_editable(invoice)

        changes = self._apply_fields(invoice, data, INVOICE_FIELDS)
        if 'due_date' in data:
            invoice.due_date = self._parse_date(data['due_date'])
        recalculate_invoice(invoice)
        invoice.updated_at = datetime.utcnow()
        self.session.flush()

        if changes:
            self._log_event('invoice', invoice.id, 'UPDATED', metadata={'changes': changes})

        logger.info(f"Updated invoice: {invoice_id}")
        return invoice.to_dict()

    def add_line_item(self, invoice_id, data: Dict) -> Optional[Dict]:
        invoice = self._get_invoice(invoice_id)
        if not invoice:
            return None
        self._require_editable(invoice)

        order = data.get('display_order', len(invoice.line_items))
        invoice.line_items.append(self._build_line(data, order))
        recalculate_invoice(invoice)
        invoice.updated_at = datetime.utcnow()
        self.session.flush()
        return invoice.to_dict()

    def remove_line_item(self, invoice_id, line_id) -> Optional[Dict]:
        invoice = self._get_invoice(invoice_id)
        if not invoice:
            return None
        self._require_editable(invoice)

        line = next((l for l in invoice.line_items if l.id == int(line_id)), None)
        if line is None:
            return None
        invoice.line_items.remove(line)
        recalculate_invoice(invoice)
        invoice.updated_at = datetime.utcnow()
        self.session.flush()
        return invoice.to_dict()

    def recalculate(self, invoice_id) -> Optional[Dict]:
        invoice = self._get_invoice(invoice_id)
        if not invoice:
            return None
        recalculate_invoice(invoice)
        update_invoice_status(invoice)
        self.session.flush()
        return invoice.to_dict()

    def create_from_job(self, job_id, tax_rate: float = DEFAULT_TAX_RATE,
                        due_days: int = DEFAULT_DUE_DAYS, now: datetime = None) -> Optional[Dict]:
        """
        Generate a draft invoice for a completed job.

        Raises:
            BusinessRuleError: unless the job is Completed
        """
        now = now or datetime.utcnow()
        job = self.session.query(Job).filter(Job.id == job_id).first()
        if not job:
            return None
        if not job.can_invoice:
            raise BusinessRuleError(
                f"Job {job.job_number} must be completed before invoicing (status is {job.status})", 'job')

        number = self._next_number(Invoice.invoice_number, 'invoice', now.date())
        invoice = invoice_from_job(job, number, tax_rate, due_days, now)
        self.session.add(invoice)
        self.session.flush()

        self._log_event(
            entity_type='invoice',
            entity_id=invoice.id,
            event_type='INVOICE_GENERATED',
            description=f"Invoice {invoice.invoice_number} generated from job {job.job_number}",
            metadata={'job_id': job.id, 'total': invoice.total}
        )

        logger.info(f"Generated invoice {invoice.invoice_number} from job {job.job_number}")
        return invoice.to_dict()

    def send_invoice(self, invoice_id, now: datetime = None) -> Optional[Dict]:
        invoice = self._get_invoice(invoice_id)
        if not invoice:
            return None
        mark_invoice_sent(invoice, now)
        invoice.updated_at = datetime.utcnow()
        self.session.flush()
        self._log_event('invoice', invoice.id, 'INVOICE_SENT',
                        f"Invoice {invoice.invoice_number} was sent")
        logger.info(f"Sent invoice: {invoice.invoice_number}")
        return invoice.to_dict()

    def cancel_invoice(self, invoice_id, now: datetime = None) -> Optional[Dict]:
        invoice = self._get_invoice(invoice_id)
        if not invoice:
            return None
        old_status = invoice.status
        cancel_invoice(invoice, now)
        invoice.updated_at = datetime.utcnow()
        self.session.flush()
        self.events.log_status_change('invoice', invoice.id, old_status, invoice.status,
                                      'INVOICE_CANCELLED')
        logger.info(f"Cancelled invoice: {invoice.invoice_number}")
        return invoice.to_dict()

    def refresh_overdue(self, today: date = None) -> List[Dict]:
        """Re-derive the status of every open invoice; returns the ones now overdue."""
        today = today or date.today()
        now = datetime.combine(today, time())
        invoices = self.session.query(Invoice).filter(
            Invoice.status.in_([InvoiceStatus.SENT, InvoiceStatus.PARTIALLY_PAID])
        ).all()

        newly_overdue = []
        for invoice in invoices:
            old_status = invoice.status
            update_invoice_status(invoice, now)
            if invoice.status == InvoiceStatus.OVERDUE and old_status != InvoiceStatus.OVERDUE:
                newly_overdue.append(invoice)
                self._log_event(
                    entity_type='invoice',
                    entity_id=invoice.id,
                    event_type='PAYMENT_OVERDUE',
                    description=f"Invoice {invoice.invoice_number} is {invoice.days_past_due(today)} day(s) past due",
                    metadata={'balance_due': invoice.balance_due}
                )
        self.session.flush()

        if newly_overdue:
            logger.warning(f"{len(newly_overdue)} invoice(s) became overdue")
        return [inv.to_dict(include_children=False) for inv in newly_overdue]

    # =========================================================================
    # PAYMENTS
    # =========================================================================

    def list_payments(self, invoice_id) -> List[Dict]:
        payments = self.session.query(Payment).filter(
            Payment.invoice_id == invoice_id
        ).order_by(Payment.payment_date, Payment.id).all()
        return [p.to_dict() for p in payments]

    def record_payment(self, invoice_id, data: Dict, now: datetime = None) -> Optional[Dict[str, Any]]:
        """
        Record a payment against an invoice.

        Raises:
            BusinessRuleError: for non-positive amounts or closed invoices
        """
        now = now or datetime.utcnow()
        invoice = self._get_invoice(invoice_id)
        if not invoice:
            return None

        payment = Payment(
            invoice_id=invoice.id,
            amount=to_money(data.get('amount')),
            payment_date=self._parse_datetime(data.get('payment_date')) or now
        )
        self._apply_fields(payment, data, PAYMENT_FIELDS)
        apply_payment(invoice, payment, now)
        invoice.payments.append(payment)
        invoice.updated_at = datetime.utcnow()
        self.session.flush()

        self._log_event(
            entity_type='payment',
            entity_id=payment.id,
            event_type='PAYMENT_RECEIVED',
            description=f"{payment.description} payment of {payment.amount:.2f} on invoice {invoice.invoice_number}",
            metadata={'invoice_id': invoice.id, 'amount': payment.amount, 'status': invoice.status}
        )

        logger.info(f"Recorded payment of {payment.amount} on invoice {invoice.invoice_number}")
        return {'payment': payment.to_dict(), 'invoice': invoice.to_dict()}

    def refund_payment(self, payment_id, amount: float, reason: str = None,
                       now: datetime = None) -> Optional[Dict[str, Any]]:
        """
        Refund part or all of an earlier payment.

        Raises:
            BusinessRuleError: when the amount exceeds what is left to refund
        """
        original = self.session.query(Payment).filter(Payment.id == payment_id).first()
        if not original:
            return None

        already_refunded = sum(
            abs(p.amount or 0) for p in self.session.query(Payment).filter(
                Payment.original_payment_id == original.id,
                Payment.is_refund == True
            ).all()
        )
        refund = create_refund(original, amount, reason, already_refunded, now)
        invoice = original.invoice
        apply_payment(invoice, refund, now)
        invoice.payments.append(refund)
        invoice.updated_at = datetime.utcnow()
        self.session.flush()

        self._log_event(
            entity_type='payment',
            entity_id=refund.id,
            event_type='PAYMENT_REFUNDED',
            description=f"Refunded {abs(refund.amount):.2f} of payment {original.id}",
            metadata={'invoice_id': invoice.id, 'original_payment_id': original.id,
                      'reason': reason, 'status': invoice.status}
        )

        logger.info(f"Refunded {abs(refund.amount)} on invoice {invoice.invoice_number}")
        return {'payment': refund.to_dict(), 'invoice': invoice.to_dict()}
