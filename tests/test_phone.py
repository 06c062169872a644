"""
Tests for phone number formatting
"""
import pytest
from app.utils.phone import (
    format_phone,
    unformat,
    is_valid_phone,
    format_as_typing,
    display_format,
    to_tel_link,
    to_sms_link
)


@pytest.mark.unit
class TestFormatPhone:
    """Tests for format_phone"""

    def test_ten_digits(self):
        """Test that a bare 10-digit number is dashed"""
        assert format_phone('5551234567') == '555-123-4567'

    def test_punctuation_is_ignored(self):
        """Test that any punctuation produces the same result"""
        assert format_phone('(555) 123-4567') == '555-123-4567'
        assert format_phone('555.123.4567') == '555-123-4567'

    def test_leading_country_code_dropped(self):
        """Test that an 11-digit number starting with 1 loses the 1"""
        assert format_phone('1-555-123-4567') == '555-123-4567'

    def test_seven_digit_local_number(self):
        """Test that a 7-digit number becomes xxx-xxxx"""
        assert format_phone('1234567') == '123-4567'

    def test_other_lengths_untouched(self):
        """Test that unrecognized lengths are returned as given"""
        assert format_phone('12345') == '12345'
        assert format_phone('25551234567') == '25551234567'

    def test_blank_values_pass_through(self):
        """Test that None and whitespace are returned unchanged"""
        assert format_phone(None) is None
        assert format_phone('   ') == '   '


@pytest.mark.unit
class TestPhoneHelpers:
    """Tests for unformat, validation and links"""

    def test_unformat(self):
        """Test that unformat keeps digits only"""
        assert unformat('(555) 123-4567') == '5551234567'
        assert unformat(None) is None

    def test_is_valid_phone(self):
        """Test the 7/10/11 digit rule"""
        assert is_valid_phone('555-1234')
        assert is_valid_phone('555-123-4567')
        assert is_valid_phone('+1 555 123 4567')
        assert not is_valid_phone('555-12')
        assert not is_valid_phone('')
        assert not is_valid_phone(None)

    def test_format_as_typing(self):
        """Test progressive formatting of partial input"""
        assert format_as_typing('55') == '55'
        assert format_as_typing('5551') == '555-1'
        assert format_as_typing('5551234') == '555-123-4'
        assert format_as_typing('555123456789') == '555-123-4567'
        assert format_as_typing('') == ''
        assert format_as_typing('abc') == ''

    def test_display_format(self):
        """Test optional +1 prefix"""
        assert display_format('5551234567') == '555-123-4567'
        assert display_format('5551234567', include_country_code=True) == '+1 555-123-4567'
        assert display_format(None) is None

    def test_links(self):
        """Test tel: and sms: URIs"""
        assert to_tel_link('(555) 123-4567') == 'tel:5551234567'
        assert to_sms_link('555-123-4567') == 'sms:5551234567'
        assert to_tel_link('') is None
        assert to_sms_link('---') is None
