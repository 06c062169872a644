"""
Invoice & Payment API Routes Blueprint

Handles billing:
- /api/invoices: List and create invoices
- /api/invoices/<id>: Get or update an invoice
- /api/invoices/<id>/lines: Add a line item; /lines/<line_id> removes one
- /api/invoices/<id>/send, /cancel: Status transitions
- /api/invoices/<id>/payments: List or record payments
- /api/payments/<id>/refund: Refund part or all of a payment
- /api/invoices/refresh-overdue: Flag invoices past their due date
"""

import logging
from flask import Blueprint, request, jsonify, current_app

from database.connection import get_db_session
from database.models import LineItemSource
from services.billing import BusinessRuleError, DEFAULT_TAX_RATE, DEFAULT_DUE_DAYS
from services.invoice_repository import InvoiceRepository
from validators import (
    ValidationError, format_validation_error, require_valid, validate_invoice_request, validate_line_items,
    validate_payment_request, validate_refund_request
)

logger = logging.getLogger(__name__)

# Create blueprint
invoices_bp = Blueprint('invoices_bp', __name__)


# ============================================================================
# INVOICES
# ============================================================================

@invoices_bp.route('/api/invoices', methods=['GET', 'POST'])
def handle_invoices():
    """List invoices or create a draft invoice"""
    try:
        with get_db_session() as session:
            repo = InvoiceRepository(session)
            if request.method == 'GET':
                invoices = repo.list_invoices(
                    status=request.args.get('status'),
                    customer_id=request.args.get('customer_id', type=int)
                )
                return jsonify({'success': True, 'invoices': invoices, 'count': len(invoices)})

            data = request.get_json(silent=True) or {}
            require_valid(validate_invoice_request(data))
            invoice = repo.create_invoice(
                data,
                tax_rate=current_app.config.get('DEFAULT_TAX_RATE', DEFAULT_TAX_RATE),
                due_days=current_app.config.get('INVOICE_DUE_DAYS', DEFAULT_DUE_DAYS)
            )
            return jsonify({'success': True, 'invoice': invoice}), 201
    except ValidationError as e:
        return jsonify(format_validation_error(e.field, e.message)), 400
    except BusinessRuleError as e:
        return jsonify({'success': False, 'error': e.message}), 400
    except Exception as e:
        logger.error(f"Error handling invoices: {str(e)}")
        return jsonify({'success': False, 'error': str(e)}), 500


@invoices_bp.route('/api/invoices/refresh-overdue', methods=['POST'])
def refresh_overdue():
    try:
        with get_db_session() as session:
            overdue = InvoiceRepository(session).refresh_overdue()
            return jsonify({'success': True, 'overdue': overdue, 'count': len(overdue)})
    except Exception as e:
        logger.error(f"Error refreshing overdue invoices: {str(e)}")
        return jsonify({'success': False, 'error': str(e)}), 500


@invoices_bp.route('/api/invoices/<int:invoice_id>', methods=['GET', 'PUT'])
def handle_invoice(invoice_id):
    """Get or update an invoice. Invoices are cancelled, never deleted."""
    try:
        with get_db_session() as session:
            repo = InvoiceRepository(session)
            if request.method == 'GET':
                invoice = repo.get_invoice(invoice_id)
            else:
                data = request.get_json(silent=True) or {}
                require_valid(validate_invoice_request(data, partial=True))
                invoice = repo.update_invoice(invoice_id, data)

            if not invoice:
                return jsonify({'success': False, 'error': 'Invoice not found'}), 404
            return jsonify({'success': True, 'invoice': invoice})
    except ValidationError as e:
        return jsonify(format_validation_error(e.field, e.message)), 400
    except BusinessRuleError as e:
        return jsonify({'success': False, 'error': e.message}), 400
    except Exception as e:
        logger.error(f"Error handling invoice {invoice_id}: {str(e)}")
        return jsonify({'success': False, 'error': str(e)}), 500


@invoices_bp.route('/api/invoices/<int:invoice_id>/lines', methods=['POST'])
def add_invoice_line(invoice_id):
    try:
        data = request.get_json(silent=True) or {}
        require_valid(validate_line_items([data], 'source', LineItemSource.ALL))
        with get_db_session() as session:
            invoice = InvoiceRepository(session).add_line_item(invoice_id, data)
            if not invoice:
                return jsonify({'success': False, 'error': 'Invoice not found'}), 404
            return jsonify({'success': True, 'invoice': invoice}), 201
    except ValidationError as e:
        return jsonify(format_validation_error(e.field, e.message)), 400
    except BusinessRuleError as e:
        return jsonify({'success': False, 'error': e.message}), 400
    except Exception as e:
        logger.error(f"Error adding line to invoice {invoice_id}: {str(e)}")
        return jsonify({'success': False, 'error': str(e)}), 500


@invoices_bp.route('/api/invoices/<int:invoice_id>/lines/<int:line_id>', methods=['DELETE'])
def remove_invoice_line(invoice_id, line_id):
    try:
        with get_db_session() as session:
            invoice = InvoiceRepository(session).remove_line_item(invoice_id, line_id)
            if not invoice:
                return jsonify({'success': False, 'error': 'Invoice line not found'}), 404
            return jsonify({'success': True, 'invoice': invoice})
    except BusinessRuleError as e:
        return jsonify({'success': False, 'error': e.message}), 400
    except Exception as e:
        logger.error(f"Error removing line {line_id} from invoice {invoice_id}: {str(e)}")
        return jsonify({'success': False, 'error': str(e)}), 500


@invoices_bp.route('/api/invoices/<int:invoice_id>/send', methods=['POST'])
def send_invoice(invoice_id):
    try:
        with get_db_session() as session:
            invoice = InvoiceRepository(session).send_invoice(invoice_id)
            if not invoice:
                return jsonify({'success': False, 'error': 'Invoice not found'}), 404
            return jsonify({'success': True, 'invoice': invoice})
    except BusinessRuleError as e:
        return jsonify({'success': False, 'error': e.message}), 400
    except Exception as e:
        logger.error(f"Error sending invoice {invoice_id}: {str(e)}")
        return jsonify({'success': False, 'error': str(e)}), 500


@invoices_bp.route('/api/invoices/<int:invoice_id>/cancel', methods=['POST'])
def cancel_invoice(invoice_id):
    try:
        with get_db_session() as session:
            invoice = InvoiceRepository(session).cancel_invoice(invoice_id)
            if not invoice:
                return jsonify({'success': False, 'error': 'Invoice not found'}), 404
            return jsonify({'success': True, 'invoice': invoice})
    except BusinessRuleError as e:
        return jsonify({'success': False, 'error': e.message}), 400
    except Exception as e:
        logger.error(f"Error cancelling invoice {invoice_id}: {str(e)}")
        return jsonify({'success': False, 'error': str(e)}), 500


# ============================================================================
# PAYMENTS
# ============================================================================

@invoices_bp.route('/api/invoices/<int:invoice_id>/payments', methods=['GET', 'POST'])
def handle_payments(invoice_id):
    """List payments on an invoice or record a new one"""
    try:
        with get_db_session() as session:
            repo = InvoiceRepository(session)
            if request.method == 'GET':
                if repo.get_invoice(invoice_id) is None:
                    return jsonify({'success': False, 'error': 'Invoice not found'}), 404
                payments = repo.list_payments(invoice_id)
                return jsonify({'success': True, 'payments': payments, 'count': len(payments)})

            data = request.get_json(silent=True) or {}
            require_valid(validate_payment_request(data))
            result = repo.record_payment(invoice_id, data)
            if not result:
                return jsonify({'success': False, 'error': 'Invoice not found'}), 404
            return jsonify({'success': True, **result}), 201
    except ValidationError as e:
        return jsonify(format_validation_error(e.field, e.message)), 400
    except BusinessRuleError as e:
        return jsonify({'success': False, 'error': e.message}), 400
    except Exception as e:
        logger.error(f"Error handling payments for invoice {invoice_id}: {str(e)}")
        return jsonify({'success': False, 'error': str(e)}), 500


@invoices_bp.route('/api/payments/<int:payment_id>/refund', methods=['POST'])
def refund_payment(payment_id):
    """Body: {"amount": 25.0, "reason": "..."}"""
    try:
        data = request.get_json(silent=True) or {}
        require_valid(validate_refund_request(data), 'amount')
        with get_db_session() as session:
            result = InvoiceRepository(session).refund_payment(
                payment_id, data['amount'], reason=data.get('reason'))
            if not result:
                return jsonify({'success': False, 'error': 'Payment not found'}), 404
            return jsonify({'success': True, **result}), 201
    except ValidationError as e:
        return jsonify(format_validation_error(e.field, e.message)), 400
    except BusinessRuleError as e:
        return jsonify({'success': False, 'error': e.message}), 400
    except Exception as e:
        logger.error(f"Error refunding payment {payment_id}: {str(e)}")
        return jsonify({'success': False, 'error': str(e)}), 500
