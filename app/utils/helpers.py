"""
Helper utility functions for money rounding and document numbering.
"""

import re
from datetime import date
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

CENTS = Decimal('0.01')

# Prefixes for human-facing record numbers (e.g. INV-2025-0001)
ENTITY_PREFIXES = {
    'customer': 'C',
    'site': 'SITE',
    'asset': 'AST',
    'product': 'PROD',
    'estimate': 'EST',
    'job': 'JOB',
    'invoice': 'INV',
    'service_agreement': 'SA',
}

_SEQUENCE_PATTERN = re.compile(r'^(?P<prefix>[A-Z]+)-(?P<year>\d{4})-(?P<seq>\d+)$')


def to_money(value) -> float:
    """
    Round a value to cents using half-up rounding.

    Args:
        value: int, float, Decimal, numeric string or None

    Returns:
        The rounded amount as a float (None is treated as 0)

    Raises:
        ValueError: for non-numeric, NaN or infinite values
    """
    if value is None:
        return 0.0
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"Not a monetary amount: {value!r}")
    if not amount.is_finite():
        raise ValueError(f"Not a finite amount: {value!r}")
    return float(amount.quantize(CENTS, rounding=ROUND_HALF_UP))


def format_document_number(prefix: str, year: int, sequence: int) -> str:
    """Format a record number like ``INV-2025-0001``."""
    return f"{prefix}-{year}-{sequence:04d}"


def parse_document_sequence(number: str) -> int:
    """
    Extract the trailing sequence from a record number.

    Returns 0 when the number is missing or not in PREFIX-YYYY-NNNN form.
    """
    if not number:
        return 0
    match = _SEQUENCE_PATTERN.match(number.strip())
    if not match:
        return 0
    return int(match.group('seq'))


def next_document_number(prefix: str, last_number: str = None, today: date = None) -> str:
    """
    Produce the next record number for the current year.

    The sequence restarts at 1 when ``last_number`` belongs to another year.
    """
    today = today or date.today()
    sequence = 1
    if last_number:
        match = _SEQUENCE_PATTERN.match(last_number.strip())
        if match and int(match.group('year')) == today.year:
            sequence = int(match.group('seq')) + 1
    return format_document_number(prefix, today.year, sequence)


def add_years(value: date, years: int) -> date:
    """Shift a date by whole years; Feb 29 falls back to Feb 28."""
    try:
        return value.replace(year=value.year + years)
    except ValueError:
        return value.replace(year=value.year + years, day=28)


def parse_csv_ids(value: str):
    """Parse a comma-separated id list, keeping positive integers only."""
    if not value:
        return []
    ids = []
    for part in value.split(','):
        part = part.strip()
        if part.isdigit() and int(part) > 0:
            ids.append(int(part))
    return ids
