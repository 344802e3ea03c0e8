"""
Validation utilities for Roombot Meeting Room Booking Service

Contains helper functions for parsing and validating conversational input.
Validators return (value_or_flag, reason) tuples; a reason of None means valid.
"""

from datetime import date, timedelta
from typing import Optional, Tuple

from roombot.booking.models import (
    CANCEL_KEYWORDS, DATE_DMY, DATE_ISO, TIME_RANGE_PATTERN, TODAY_KEYWORDS, TOMORROW_KEYWORDS,
    REASON_DATE_IN_PAST, REASON_EMPTY_TEXT, REASON_INVALID_CALENDAR_DATE,
    REASON_INVALID_DATE_FORMAT, REASON_TEXT_TOO_LONG,
)


# ============================================================================
# Date Parsing
# ============================================================================

def parse_date(user_input: str, today: date) -> Tuple[Optional[date], Optional[str]]:
    """
    Parse a booking date.

    Accepts "today"/"tomorrow" (English or Thai) relative to `today`, plus
    DD/MM/YYYY and YYYY-MM-DD. Numeric dates must exist on the calendar.

    Args:
        user_input: Raw message text
        today: Server's current date

    Returns:
        Tuple of (parsed_date, error_reason)
    """
    if not user_input:
        return None, REASON_INVALID_DATE_FORMAT

    cleaned = user_input.strip().lower()

    if cleaned in TODAY_KEYWORDS:
        return today, None
    if cleaned in TOMORROW_KEYWORDS:
        return today + timedelta(days=1), None

    dmy_match = DATE_DMY.match(cleaned)
    if dmy_match:
        day, month, year = (int(part) for part in dmy_match.groups())
        return _build_date(year, month, day)

    iso_match = DATE_ISO.match(cleaned)
    if iso_match:
        year, month, day = (int(part) for part in iso_match.groups())
        return _build_date(year, month, day)

    return None, REASON_INVALID_DATE_FORMAT


def _build_date(year: int, month: int, day: int) -> Tuple[Optional[date], Optional[str]]:
    try:
        return date(year, month, day), None
    except ValueError:
        return None, REASON_INVALID_CALENDAR_DATE


def validate_booking_date(booking_date: date, today: date, allow_past: bool = False) -> Tuple[bool, Optional[str]]:
    """Reject dates before today unless past bookings are allowed"""
    if not allow_past and booking_date < today:
        return False, REASON_DATE_IN_PAST
    return True, None


# ============================================================================
# Time and Text Parsing
# ============================================================================

def parse_time_range(user_input: str) -> Optional[Tuple[str, str]]:
    """
    Parse typed slot text like "09:00-10:00" or "9:00 to 10:00".

    Returns:
        (start, end) strings or None if the text is not a time range
    """
    if not user_input:
        return None
    match = TIME_RANGE_PATTERN.match(user_input.strip())
    if not match:
        return None
    return match.group(1), match.group(2)


def validate_text(user_input: str, max_length: int) -> Tuple[Optional[str], Optional[str]]:
    """
    Validate free text for title and organizer fields.

    Case is preserved; surrounding whitespace is stripped.

    Returns:
        Tuple of (cleaned_text, error_reason)
    """
    cleaned = (user_input or "").strip()
    if not cleaned:
        return None, REASON_EMPTY_TEXT
    if len(cleaned) > max_length:
        return None, REASON_TEXT_TOO_LONG
    return cleaned, None


def is_cancel_request(user_input: str) -> bool:
    """True when the whole message asks to abandon the current booking"""
    if not user_input:
        return False
    return user_input.strip().lower() in CANCEL_KEYWORDS
