"""
Phone Number Normalizer
Canonical comparison key for phone numbers
"""
import re
from typing import Optional

# Subscriber number length; anything in front is a country/trunk prefix
SUBSCRIBER_DIGITS = 9

_NON_DIGITS = re.compile(r"\D")


def normalize_phone(phone: Optional[str]) -> str:
    """
    Normalize a phone number for comparison.

    Strips every non-digit and keeps the last 9 digits, so
    "+48 123-456-789", "0048123456789" and "123456789" all compare equal.
    Shorter digit strings are returned unchanged.
    """
    digits = _NON_DIGITS.sub("", phone or "")
    if len(digits) >= SUBSCRIBER_DIGITS:
        return digits[-SUBSCRIBER_DIGITS:]
    return digits
