"""
Input validation utilities for owner and customer inputs.
"""

import re
from typing import Optional

from utils.constants import MAX_AVG_SERVICE_TIME, MIN_AVG_SERVICE_TIME


def validate_phone(phone: str) -> bool:
    """
    Validate phone number format.
    Accepts international format with optional + prefix.

    Args:
        phone: Phone number string

    Returns:
        True if valid format, False otherwise
    """
    if not phone or not isinstance(phone, str):
        return False

    # Remove spaces, dashes, parentheses
    cleaned = re.sub(r'[\s\-\(\)]', '', phone)

    pattern = r'^\+?[1-9]\d{6,14}$'
    return bool(re.match(pattern, cleaned))


def validate_avg_service_time(minutes: int) -> bool:
    """Check an average service time entered by a salon owner."""
    return (
        isinstance(minutes, int)
        and not isinstance(minutes, bool)
        and MIN_AVG_SERVICE_TIME <= minutes <= MAX_AVG_SERVICE_TIME
    )


def sanitize_text(text: Optional[str], max_length: Optional[int] = None) -> str:
    """
    Sanitize user input text.

    Args:
        text: Input text
        max_length: Optional maximum length

    Returns:
        Sanitized text
    """
    if not text:
        return ""

    # Remove control characters except newlines and tabs
    sanitized = re.sub(r'[\x00-\x08\x0B-\x0C\x0E-\x1F\x7F]', '', str(text))
    sanitized = sanitized.strip()

    if max_length and len(sanitized) > max_length:
        sanitized = sanitized[:max_length]

    return sanitized
