"""
Billing Service - Totals, tax and status rules for estimates, jobs and invoices.

These functions work on model instances that are already loaded (or not yet
saved) and never touch the session. Repositories call them and persist the
result.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from app.utils.helpers import to_money
from database.models import (
    Estimate, EstimateStatus, LineItemType,
    Job, JobStatus,
    Invoice, InvoiceStatus, LineItemSource,
    Payment
)

logger = logging.getLogger(__name__)

DEFAULT_TAX_RATE = 7.0
DEFAULT_LABOR_RATE = 85.0
DEFAULT_DUE_DAYS = 30


class BusinessRuleError(Exception):
    """Raised when an operation is not allowed in the record's current state."""
    def __init__(self, message: str, entity_type: Optional[str] = None):
        self.message = message
        self.entity_type = entity_type
        super().__init__(self.message)


def line_total(quantity, unit_price) -> float:
    return to_money((quantity or 0) * (unit_price or 0))


# =============================================================================
# ESTIMATES
# =============================================================================

# Allowed manual transitions; Converted is reached only through conversion
ESTIMATE_TRANSITIONS = {
    EstimateStatus.DRAFT: [EstimateStatus.SENT],
    EstimateStatus.SENT: [EstimateStatus.ACCEPTED, EstimateStatus.DECLINED, EstimateStatus.EXPIRED],
    EstimateStatus.ACCEPTED: [EstimateStatus.CONVERTED],
}


def estimate_line_total(line) -> float:
    """Quantity times price; discount lines always count against the total."""
    total = line_total(line.quantity, line.unit_price)
    if line.line_type == LineItemType.DISCOUNT:
        return -abs(total)
    return total


def recalculate_estimate(estimate: Estimate) -> Estimate:
    """Recompute line totals, subtotal, tax and total for an estimate."""
    subtotal = 0.0
    for line in estimate.lines:
        line.total = estimate_line_total(line)
        subtotal += line.total

    estimate.subtotal = to_money(subtotal)
    if estimate.tax_included:
        estimate.tax_amount = 0.0
        estimate.total = estimate.subtotal
    else:
        estimate.tax_amount = to_money(estimate.subtotal * (estimate.tax_rate or 0) / 100)
        estimate.total = to_money(estimate.subtotal + estimate.tax_amount)
    return estimate


def transition_estimate(estimate: Estimate, new_status: str, now: datetime = None) -> Estimate:
    """
    Move an estimate to a new status, stamping the matching timestamp.

    Raises:
        BusinessRuleError: if the transition is not allowed, or an expired
            estimate is being accepted
    """
    now = now or datetime.utcnow()
    allowed = ESTIMATE_TRANSITIONS.get(estimate.status, [])
    if new_status not in allowed:
        raise BusinessRuleError(
            f"Cannot change estimate from {estimate.status} to {new_status}", 'estimate')

    if new_status == EstimateStatus.ACCEPTED and not estimate.is_valid_on(now.date()):
        raise BusinessRuleError("Estimate has expired and can no longer be accepted", 'estimate')

    estimate.status = new_status
    if new_status == EstimateStatus.SENT:
        estimate.sent_at = now
    elif new_status == EstimateStatus.ACCEPTED:
        estimate.accepted_at = now
    elif new_status == EstimateStatus.DECLINED:
        estimate.declined_at = now
    return estimate


def job_from_estimate(estimate: Estimate) -> Job:
    """
    Build a draft job from an accepted estimate.

    Labor lines become the labor total and hours; every other line except
    discounts becomes parts.
    """
    labor = sum(l.total or 0 for l in estimate.lines if l.line_type == LineItemType.LABOR)
    parts = sum(l.total or 0 for l in estimate.lines
                if l.line_type not in (LineItemType.LABOR, LineItemType.DISCOUNT))
    discount = sum(abs(l.total or 0) for l in estimate.lines if l.line_type == LineItemType.DISCOUNT)
    hours = sum(l.quantity or 0 for l in estimate.lines if l.line_type == LineItemType.LABOR)

    return Job(
        customer_id=estimate.customer_id,
        site_id=estimate.site_id,
        asset_id=estimate.asset_id,
        estimate_id=estimate.id,
        title=estimate.title,
        description=estimate.description,
        status=JobStatus.DRAFT,
        estimated_hours=hours or None,
        labor_total=to_money(labor),
        parts_total=to_money(parts),
        discount_amount=to_money(discount),
        subtotal=estimate.subtotal,
        tax_rate=0.0 if estimate.tax_included else estimate.tax_rate,
        tax_amount=estimate.tax_amount,
        total=estimate.total,
    )


# =============================================================================
# JOBS
# =============================================================================

def recalculate_job(job: Job, labor_rate: float = DEFAULT_LABOR_RATE) -> Job:
    """
    Recompute job totals.

    When hours are recorded (actual first, then estimated) the labor total
    is hours times ``labor_rate``; otherwise the stored labor total is kept.
    """
    hours = job.actual_hours if job.actual_hours is not None else job.estimated_hours
    if hours is not None:
        job.labor_total = to_money(hours * labor_rate)

    job.subtotal = to_money(
        (job.labor_total or 0) + (job.parts_total or 0) + (job.materials_total or 0)
        + (job.trip_charge or 0) - (job.discount_amount or 0)
    )
    job.tax_amount = to_money(job.subtotal * (job.tax_rate or 0) / 100)
    job.total = to_money(job.subtotal + job.tax_amount)
    return job


# =============================================================================
# INVOICES
# =============================================================================

def recalculate_invoice(invoice: Invoice) -> Invoice:
    """
    Recompute subtotal, tax and total.

    subtotal = labor + parts + other - discount; tax is a percentage of the
    subtotal. When the invoice has line items, labor and parts are first
    re-derived from them (Labor-sourced lines are labor, the rest parts).
    """
    if invoice.line_items:
        labor = 0.0
        parts = 0.0
        for item in invoice.line_items:
            item.total = line_total(item.quantity, item.unit_price)
            if item.source == LineItemSource.LABOR:
                labor += item.total
            else:
                parts += item.total
        invoice.labor_amount = to_money(labor)
        invoice.parts_amount = to_money(parts)

    invoice.subtotal = to_money(
        (invoice.labor_amount or 0) + (invoice.parts_amount or 0)
        + (invoice.other_amount or 0) - (invoice.discount_amount or 0)
    )
    invoice.tax_amount = to_money(invoice.subtotal * (invoice.tax_rate or 0) / 100)
    invoice.total = to_money(invoice.subtotal + invoice.tax_amount)
    return invoice


def update_invoice_status(invoice: Invoice, now: datetime = None) -> Invoice:
    """
    Derive the payment status from the amounts and due date.

    Cancelled and Refunded invoices are final and left alone.
    """
    now = now or datetime.utcnow()
    if invoice.status in (InvoiceStatus.CANCELLED, InvoiceStatus.REFUNDED):
        return invoice

    if invoice.is_paid:
        invoice.status = InvoiceStatus.PAID
        if invoice.paid_at is None:
            invoice.paid_at = now
    elif (invoice.amount_paid or 0) > 0:
        invoice.status = InvoiceStatus.PARTIALLY_PAID
    elif invoice.is_overdue_on(now.date()):
        invoice.status = InvoiceStatus.OVERDUE
    return invoice


def invoice_from_job(job: Job, invoice_number: str, tax_rate: float = DEFAULT_TAX_RATE,
                     due_days: int = DEFAULT_DUE_DAYS, now: datetime = None) -> Invoice:
    """Build a draft invoice for a completed job."""
    now = now or datetime.utcnow()
    invoice = Invoice(
        invoice_number=invoice_number,
        customer_id=job.customer_id,
        job_id=job.id,
        site_id=job.site_id,
        status=InvoiceStatus.DRAFT,
        invoice_date=now.date(),
        due_date=now.date() + timedelta(days=due_days),
        labor_amount=job.labor_total or 0,
        parts_amount=job.parts_total or 0,
        other_amount=to_money((job.materials_total or 0) + (job.trip_charge or 0)),
        discount_amount=job.discount_amount or 0,
        tax_rate=tax_rate,
    )
    return recalculate_invoice(invoice)


def mark_invoice_sent(invoice: Invoice, now: datetime = None) -> Invoice:
    now = now or datetime.utcnow()
    if invoice.status != InvoiceStatus.DRAFT:
        raise BusinessRuleError(f"Only draft invoices can be sent (status is {invoice.status})", 'invoice')
    if (invoice.total or 0) <= 0:
        raise BusinessRuleError("Cannot send an invoice with no amount due", 'invoice')
    invoice.status = InvoiceStatus.SENT
    invoice.sent_at = now
    return update_invoice_status(invoice, now)


def cancel_invoice(invoice: Invoice, now: datetime = None) -> Invoice:
    now = now or datetime.utcnow()
    if invoice.status in (InvoiceStatus.PAID, InvoiceStatus.REFUNDED):
        raise BusinessRuleError(f"Cannot cancel a {invoice.status.lower()} invoice", 'invoice')
    invoice.status = InvoiceStatus.CANCELLED
    invoice.cancelled_at = now
    return invoice


# =============================================================================
# PAYMENTS
# =============================================================================

def apply_payment(invoice: Invoice, payment: Payment, now: datetime = None) -> Invoice:
    """
    Apply a payment (or refund) to an invoice and refresh its status.

    Raises:
        BusinessRuleError: for non-positive payments or closed invoices
    """
    now = now or datetime.utcnow()
    if invoice.status in (InvoiceStatus.CANCELLED, InvoiceStatus.REFUNDED):
        raise BusinessRuleError(f"Cannot apply payments to a {invoice.status.lower()} invoice", 'invoice')
    if not payment.is_refund and (payment.amount or 0) <= 0:
        raise BusinessRuleError("Payment amount must be greater than zero", 'payment')

    invoice.amount_paid = to_money((invoice.amount_paid or 0) + payment.amount)

    if payment.is_refund and invoice.amount_paid <= 0:
        invoice.amount_paid = 0.0
        invoice.status = InvoiceStatus.REFUNDED
        return invoice

    if payment.is_refund and not invoice.is_paid:
        # Reopen so the status is derived from the remaining balance
        invoice.paid_at = None
        if invoice.status == InvoiceStatus.PAID:
            invoice.status = InvoiceStatus.SENT

    logger.debug(f"Applied {payment.amount} to invoice {invoice.invoice_number}")
    return update_invoice_status(invoice, now)


def create_refund(original: Payment, amount: float, reason: str = None,
                  already_refunded: float = 0.0, now: datetime = None) -> Payment:
    """
    Build a refund against an earlier payment.

    The refund is stored as a negative amount. It may not exceed what is
    left of the original payment after earlier refunds.
    """
    now = now or datetime.utcnow()
    if original.is_refund:
        raise BusinessRuleError("Cannot refund a refund", 'payment')
    amount = to_money(amount)
    if amount <= 0:
        raise BusinessRuleError("Refund amount must be greater than zero", 'payment')
    refundable = to_money((original.amount or 0) - abs(already_refunded or 0))
    if amount > refundable:
        raise BusinessRuleError(f"Refund of {amount:.2f} exceeds refundable amount {refundable:.2f}", 'payment')

    return Payment(
        invoice_id=original.invoice_id,
        amount=-amount,
        payment_method=original.payment_method,
        payment_date=now,
        card_last4=original.card_last4,
        is_refund=True,
        refund_reason=reason,
        original_payment_id=original.id,
    )
