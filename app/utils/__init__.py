"""
Utilities Package

Shared helper functions used across the application.
"""

from app.utils.helpers import (
    ENTITY_PREFIXES,
    to_money,
    format_document_number,
    parse_document_sequence,
    next_document_number,
    add_years,
    parse_csv_ids,
)

from app.utils.phone import (
    format_phone,
    unformat,
    is_valid_phone,
    format_as_typing,
    display_format,
    to_tel_link,
    to_sms_link,
)

__all__ = [
    'ENTITY_PREFIXES',
    'to_money',
    'format_document_number',
    'parse_document_sequence',
    'next_document_number',
    'add_years',
    'parse_csv_ids',
    'format_phone',
    'unformat',
    'is_valid_phone',
    'format_as_typing',
    'display_format',
    'to_tel_link',
    'to_sms_link',
]
