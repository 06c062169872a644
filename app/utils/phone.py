"""
Phone number formatting for US numbers.

All helpers work on the digits only, so "(555) 123-4567", "555.123.4567"
and "5551234567" are treated the same.
"""

import re
from typing import Optional

_NON_DIGITS = re.compile(r'\D')


def _digits(phone: str) -> str:
    return _NON_DIGITS.sub('', phone)


def _is_blank(phone: Optional[str]) -> bool:
    return phone is None or not phone.strip()


def format_phone(phone: Optional[str]) -> Optional[str]:
    """
    Format a phone number as xxx-xxx-xxxx.

    11-digit numbers with a leading country code 1 drop the 1; 7-digit
    local numbers become xxx-xxxx. Anything else is returned untouched.
    """
    if _is_blank(phone):
        return phone

    digits = _digits(phone)
    if len(digits) == 10:
        return f"{digits[0:3]}-{digits[3:6]}-{digits[6:10]}"
    if len(digits) == 11 and digits[0] == '1':
        return f"{digits[1:4]}-{digits[4:7]}-{digits[7:11]}"
    if len(digits) == 7:
        return f"{digits[0:3]}-{digits[3:7]}"
    return phone


def unformat(phone: Optional[str]) -> Optional[str]:
    """Strip everything but digits."""
    if _is_blank(phone):
        return phone
    return _digits(phone)


def is_valid_phone(phone: Optional[str]) -> bool:
    """A number is valid when it has 7, 10 or 11 digits."""
    if _is_blank(phone):
        return False
    return len(_digits(phone)) in (7, 10, 11)


def format_as_typing(text: Optional[str]) -> str:
    """Progressively format partial input, capped at 10 digits."""
    if _is_blank(text):
        return ''

    digits = _digits(text)[:10]
    if not digits:
        return ''
    if len(digits) <= 3:
        return digits
    if len(digits) <= 6:
        return f"{digits[0:3]}-{digits[3:]}"
    return f"{digits[0:3]}-{digits[3:6]}-{digits[6:]}"


def display_format(phone: Optional[str], include_country_code: bool = False) -> Optional[str]:
    formatted = format_phone(phone)
    if formatted is None:
        return None
    return f"+1 {formatted}" if include_country_code else formatted


def to_tel_link(phone: Optional[str]) -> Optional[str]:
    """Build a tel: URI, or None when there is nothing to dial."""
    if _is_blank(phone):
        return None
    digits = _digits(phone)
    return f"tel:{digits}" if digits else None


def to_sms_link(phone: Optional[str]) -> Optional[str]:
    """Build an sms: URI, or None when there is nothing to text."""
    if _is_blank(phone):
        return None
    digits = _digits(phone)
    return f"sms:{digits}" if digits else None
