"""Time utilities for consistent timestamp handling.

Appointment date/time columns are clinic-local wall-clock values with no
zone, so comparisons against "now" use naive clinic-local time.
"""

import os
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

DEFAULT_CLINIC_TIMEZONE = "America/Cuiaba"


def utc_now() -> datetime:
    """Return current UTC timestamp (timezone-aware)."""
    return datetime.now(timezone.utc)


def clinic_timezone() -> ZoneInfo:
    """Clinic timezone from CLINIC_TIMEZONE (default America/Cuiaba)."""
    return ZoneInfo(os.environ.get("CLINIC_TIMEZONE", DEFAULT_CLINIC_TIMEZONE))


def to_clinic_local(moment: datetime) -> datetime:
    """Convert an aware timestamp to naive clinic-local wall-clock time."""
    return moment.astimezone(clinic_timezone()).replace(tzinfo=None)


def clinic_now() -> datetime:
    """Current naive clinic-local time."""
    return to_clinic_local(utc_now())
