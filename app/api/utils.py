"""
Utility Routes Blueprint

- /api/utils/phone/format: Format a phone number for display
"""

import logging
from flask import Blueprint, request, jsonify

from app.utils.phone import (
    format_phone, format_as_typing, is_valid_phone, unformat, to_tel_link, to_sms_link
)

logger = logging.getLogger(__name__)

# Create blueprint
utils_bp = Blueprint('utils_bp', __name__)


@utils_bp.route('/api/utils/phone/format', methods=['POST'])
def format_phone_number():
    """
    Body: {"phone": "5551234567", "partial": false}

    With ``partial`` set, the number is formatted as it would be while typing.
    """
    data = request.get_json(silent=True) or {}
    phone = data.get('phone')
    if phone is not None and not isinstance(phone, str):
        phone = str(phone)

    formatted = format_as_typing(phone) if data.get('partial') else format_phone(phone)
    return jsonify({
        'success': True,
        'formatted': formatted,
        'digits': unformat(phone),
        'is_valid': is_valid_phone(phone),
        'tel_link': to_tel_link(phone),
        'sms_link': to_sms_link(phone)
    })
