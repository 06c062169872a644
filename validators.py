"""
Input Validation & Sanitization Utilities
Provides validation for API request payloads before they reach the repositories
"""
import math
import re
from datetime import date, datetime
from typing import Dict, Any, List, Optional, Tuple
from dateutil import parser as date_parser
import logging

from app.utils.phone import is_valid_phone
from database.models import (
    CustomerType, CustomerStatus, PaymentTerms, AssetStatus, LineItemType,
    JobStatus, JobType, JobPriority, LineItemSource, PaymentMethod,
    AgreementType, ServiceTier, BillingFrequency, InventoryChangeType
)

logger = logging.getLogger(__name__)

# Regex patterns
EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')
CARD_LAST4_PATTERN = re.compile(r'^\d{4}$')


class ValidationError(Exception):
    """Custom exception for validation errors"""
    def __init__(self, message: str, field: Optional[str] = None):
        self.message = message
        self.field = field
        super().__init__(self.message)


def validate_required_fields(data: Dict[str, Any], required_fields: List[str]) -> Tuple[bool, Optional[str]]:
    """
    Validate that all required fields are present in the data

    Args:
        data: Dictionary of input data
        required_fields: List of required field names

    Returns:
        Tuple of (is_valid, error_message)
    """
    missing_fields = [field for field in required_fields if field not in data or data[field] is None or data[field] == '']

    if missing_fields:
        return False, f"Missing required fields: {', '.join(missing_fields)}"

    return True, None


def validate_email(email: str) -> Tuple[bool, Optional[str]]:
    """
    Validate email format

    Args:
        email: Email address to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not email or not isinstance(email, str):
        return False, "Email must be a non-empty string"

    if not EMAIL_PATTERN.match(email):
        return False, "Invalid email format"

    if len(email) > 254:  # RFC 5321
        return False, "Email address too long"

    return True, None


def validate_phone(phone: str) -> Tuple[bool, Optional[str]]:
    """
    Validate a US phone number (7, 10 or 11 digits, any punctuation)

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not phone or not isinstance(phone, str):
        return False, "Phone must be a non-empty string"

    if not is_valid_phone(phone):
        return False, "Invalid phone number format"

    return True, None


def validate_string_length(value: str, min_length: int = 0, max_length: int = 1000) -> Tuple[bool, Optional[str]]:
    """
    Validate string length is within acceptable range

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not isinstance(value, str):
        return False, "Value must be a string"

    if len(value) < min_length:
        return False, f"Value too short (minimum {min_length} characters)"

    if len(value) > max_length:
        return False, f"Value too long (maximum {max_length} characters)"

    return True, None


def validate_number_range(value: float, min_value: Optional[float] = None, max_value: Optional[float] = None) -> Tuple[bool, Optional[str]]:
    """
    Validate number is within acceptable range

    Returns:
        Tuple of (is_valid, error_message)
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False, "Value must be a number"

    if not math.isfinite(value):
        return False, "Value must be a finite number"

    if min_value is not None and value < min_value:
        return False, f"Value too small (minimum {min_value})"

    if max_value is not None and value > max_value:
        return False, f"Value too large (maximum {max_value})"

    return True, None


def validate_date(value: Any) -> Tuple[bool, Optional[str]]:
    """Accept date objects or ISO 8601 strings (YYYY-MM-DD, optionally with a time)."""
    if isinstance(value, (date, datetime)):
        return True, None
    if not value or not isinstance(value, str):
        return False, "Date must be an ISO 8601 string"
    try:
        date_parser.isoparse(value)
    except ValueError:
        return False, f"Invalid date: {value}"
    return True, None


def validate_choice(value: Any, choices: List[str]) -> Tuple[bool, Optional[str]]:
    if value not in choices:
        return False, f"'{value}' is not one of: {', '.join(choices)}"
    return True, None


def require_valid(result: Tuple[bool, Optional[str]], field: Optional[str] = None) -> None:
    """Raise ValidationError for a failed (is_valid, error) result."""
    is_valid, error = result
    if not is_valid:
        raise ValidationError(error, field)


def _check_optional(data: Dict[str, Any], checks: List[Tuple[str, Any]]) -> Tuple[bool, Optional[str]]:
    """Run ``(field, validator)`` pairs for the fields that are present and non-empty."""
    for field, check in checks:
        value = data.get(field)
        if value is None or value == '':
            continue
        is_valid, error = check(value)
        if not is_valid:
            return False, f"Invalid {field}: {error}"
    return True, None


def _non_negative(value):
    return validate_number_range(value, min_value=0)


def _as_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date_parser.isoparse(value).date()


def _dates(data: Dict[str, Any], fields: List[str]) -> Tuple[bool, Optional[str]]:
    return _check_optional(data, [(f, validate_date) for f in fields])


# =============================================================================
# REQUEST VALIDATORS
# =============================================================================

def validate_customer_request(data: Dict[str, Any], partial: bool = False) -> Tuple[bool, Optional[str]]:
    """
    Validate a customer create/update payload

    A new customer needs a name, or a first or last name.
    """
    if not isinstance(data, dict):
        return False, "Request body must be a JSON object"

    if not partial and not any(data.get(k) for k in ('name', 'first_name', 'last_name', 'company_name')):
        return False, "Customer name is required"

    for field in ('name', 'first_name', 'last_name', 'company_name'):
        if data.get(field):
            is_valid, error = validate_string_length(data[field], max_length=200)
            if not is_valid:
                return False, f"Invalid {field}: {error}"

    is_valid, error = _check_optional(data, [
        ('email', validate_email),
        ('phone', validate_phone),
        ('mobile', validate_phone),
        ('customer_type', lambda v: validate_choice(v, CustomerType.ALL)),
        ('status', lambda v: validate_choice(v, CustomerStatus.ALL)),
        ('payment_terms', lambda v: validate_choice(v, PaymentTerms.ALL)),
    ])
    if not is_valid:
        return False, error

    return True, None


def validate_site_request(data: Dict[str, Any], partial: bool = False) -> Tuple[bool, Optional[str]]:
    if not isinstance(data, dict):
        return False, "Request body must be a JSON object"
    if not partial:
        is_valid, error = validate_required_fields(data, ['address'])
        if not is_valid:
            return False, error
    if data.get('address'):
        is_valid, error = validate_string_length(data['address'], max_length=300)
        if not is_valid:
            return False, f"Invalid address: {error}"
    return True, None


def validate_asset_request(data: Dict[str, Any], partial: bool = False) -> Tuple[bool, Optional[str]]:
    """Validate an asset payload; serial numbers are required on create"""
    if not isinstance(data, dict):
        return False, "Request body must be a JSON object"

    if not partial:
        is_valid, error = validate_required_fields(data, ['serial'])
        if not is_valid:
            return False, error

    if 'serial' in data:
        if not isinstance(data['serial'], str) or not data['serial'].strip():
            return False, "Serial number cannot be blank"
        is_valid, error = validate_string_length(data['serial'].strip(), max_length=100)
        if not is_valid:
            return False, f"Invalid serial: {error}"

    is_valid, error = _check_optional(data, [
        ('btu_rating', _non_negative),
        ('seer_rating', _non_negative),
        ('afue_rating', lambda v: validate_number_range(v, 0, 100)),
        ('status', lambda v: validate_choice(v, AssetStatus.ALL)),
    ])
    if not is_valid:
        return False, error

    return _dates(data, ['install_date', 'warranty_start_date', 'last_service_date',
                         'next_service_due', 'next_filter_due'])


def validate_product_request(data: Dict[str, Any], partial: bool = False) -> Tuple[bool, Optional[str]]:
    if not isinstance(data, dict):
        return False, "Request body must be a JSON object"
    if not partial:
        is_valid, error = validate_required_fields(data, ['manufacturer', 'model_number'])
        if not is_valid:
            return False, error
    return _check_optional(data, [
        ('msrp', _non_negative),
        ('wholesale_cost', _non_negative),
        ('suggested_sell_price', _non_negative),
    ])


def validate_inventory_request(data: Dict[str, Any], partial: bool = False) -> Tuple[bool, Optional[str]]:
    if not isinstance(data, dict):
        return False, "Request body must be a JSON object"
    if not partial:
        is_valid, error = validate_required_fields(data, ['name'])
        if not is_valid:
            return False, error
    return _check_optional(data, [
        ('quantity_on_hand', _non_negative),
        ('reorder_point', _non_negative),
        ('cost', _non_negative),
        ('price', _non_negative),
    ])


def validate_stock_adjustment(data: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    if not isinstance(data, dict):
        return False, "Request body must be a JSON object"
    is_valid, error = validate_required_fields(data, ['change'])
    if not is_valid:
        return False, error
    is_valid, error = validate_number_range(data['change'])
    if not is_valid:
        return False, f"Invalid change: {error}"
    if data.get('change_type'):
        return validate_choice(data['change_type'], InventoryChangeType.ALL)
    return True, None


def validate_line_items(lines: Any, type_field: str, choices: List[str]) -> Tuple[bool, Optional[str]]:
    """Validate a list of estimate or invoice lines"""
    if not isinstance(lines, list):
        return False, "Line items must be an array"

    for idx, line in enumerate(lines):
        if not isinstance(line, dict):
            return False, f"Line {idx} must be an object"
        if not line.get('description'):
            return False, f"Line {idx} requires a description"
        is_valid, error = _check_optional(line, [
            ('quantity', _non_negative),
            ('unit_price', _non_negative),
            (type_field, lambda v: validate_choice(v, choices)),
        ])
        if not is_valid:
            return False, f"Line {idx}: {error}"

    return True, None


def validate_estimate_request(data: Dict[str, Any], partial: bool = False) -> Tuple[bool, Optional[str]]:
    if not isinstance(data, dict):
        return False, "Request body must be a JSON object"
    if not partial:
        is_valid, error = validate_required_fields(data, ['customer_id', 'title'])
        if not is_valid:
            return False, error
    if 'lines' in data:
        is_valid, error = validate_line_items(data['lines'], 'line_type', LineItemType.ALL)
        if not is_valid:
            return False, error
    is_valid, error = _check_optional(data, [('tax_rate', lambda v: validate_number_range(v, 0, 100))])
    if not is_valid:
        return False, error
    return _dates(data, ['expires_at'])


def validate_job_request(data: Dict[str, Any], partial: bool = False) -> Tuple[bool, Optional[str]]:
    if not isinstance(data, dict):
        return False, "Request body must be a JSON object"
    if not partial:
        is_valid, error = validate_required_fields(data, ['customer_id', 'title'])
        if not is_valid:
            return False, error
    is_valid, error = _check_optional(data, [
        ('job_type', lambda v: validate_choice(v, JobType.ALL)),
        ('priority', lambda v: validate_choice(v, JobPriority.ALL)),
        ('status', lambda v: validate_choice(v, JobStatus.ALL)),
        ('estimated_hours', _non_negative),
        ('actual_hours', _non_negative),
        ('parts_total', _non_negative),
        ('materials_total', _non_negative),
        ('trip_charge', _non_negative),
        ('discount_amount', _non_negative),
        ('tax_rate', lambda v: validate_number_range(v, 0, 100)),
    ])
    if not is_valid:
        return False, error
    return _dates(data, ['scheduled_date'])


def validate_invoice_request(data: Dict[str, Any], partial: bool = False) -> Tuple[bool, Optional[str]]:
    if not isinstance(data, dict):
        return False, "Request body must be a JSON object"
    if not partial:
        is_valid, error = validate_required_fields(data, ['customer_id'])
        if not is_valid:
            return False, error
    if 'line_items' in data:
        is_valid, error = validate_line_items(data['line_items'], 'source', LineItemSource.ALL)
        if not is_valid:
            return False, error
    is_valid, error = _check_optional(data, [
        ('labor_amount', _non_negative),
        ('parts_amount', _non_negative),
        ('other_amount', _non_negative),
        ('discount_amount', _non_negative),
        ('tax_rate', lambda v: validate_number_range(v, 0, 100)),
    ])
    if not is_valid:
        return False, error
    return _dates(data, ['invoice_date', 'due_date'])


def validate_payment_request(data: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """Validate a payment payload: positive amount, known method, 4-digit card suffix"""
    if not isinstance(data, dict):
        return False, "Request body must be a JSON object"

    is_valid, error = validate_required_fields(data, ['amount'])
    if not is_valid:
        return False, error

    is_valid, error = validate_number_range(data['amount'])
    if not is_valid:
        return False, f"Invalid amount: {error}"
    if data['amount'] <= 0:
        return False, "Payment amount must be greater than zero"

    return _check_optional(data, [
        ('payment_method', lambda v: validate_choice(v, PaymentMethod.ALL)),
        ('card_last4', lambda v: (True, None) if CARD_LAST4_PATTERN.match(str(v))
            else (False, "must be exactly 4 digits")),
        ('processing_fee', _non_negative),
        ('payment_date', validate_date),
    ])


def validate_refund_request(data: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    if not isinstance(data, dict):
        return False, "Request body must be a JSON object"
    is_valid, error = validate_required_fields(data, ['amount'])
    if not is_valid:
        return False, error
    is_valid, error = validate_number_range(data['amount'])
    if not is_valid:
        return False, f"Invalid amount: {error}"
    if data['amount'] <= 0:
        return False, "Refund amount must be greater than zero"
    return True, None


def validate_agreement_request(data: Dict[str, Any], partial: bool = False) -> Tuple[bool, Optional[str]]:
    """Validate a service agreement payload"""
    if not isinstance(data, dict):
        return False, "Request body must be a JSON object"

    if not partial:
        is_valid, error = validate_required_fields(data, ['customer_id', 'name'])
        if not is_valid:
            return False, error

    month = lambda v: validate_number_range(v, 1, 12)
    is_valid, error = _check_optional(data, [
        ('agreement_type', lambda v: validate_choice(v, AgreementType.ALL)),
        ('service_tier', lambda v: validate_choice(v, ServiceTier.ALL)),
        ('billing_frequency', lambda v: validate_choice(v, BillingFrequency.ALL)),
        ('annual_price', _non_negative),
        ('monthly_price', _non_negative),
        ('repair_discount_percent', lambda v: validate_number_range(v, 0, 100)),
        ('included_visits_per_year', _non_negative),
        ('preferred_spring_month', month),
        ('preferred_fall_month', month),
    ])
    if not is_valid:
        return False, error

    is_valid, error = _dates(data, ['start_date', 'end_date'])
    if not is_valid:
        return False, error

    if data.get('start_date') and data.get('end_date'):
        start = _as_date(data['start_date'])
        end = _as_date(data['end_date'])
        if end <= start:
            return False, "end_date must be after start_date"

    return True, None


def format_validation_error(field: Optional[str], message: str) -> Dict[str, Any]:
    """
    Format validation error for consistent API responses

    Args:
        field: Field name that failed validation, or None
        message: Error message

    Returns:
        Error response dictionary
    """
    return {
        'success': False,
        'error': message,
        'field': field
    }
