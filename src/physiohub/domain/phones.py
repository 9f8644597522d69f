"""Brazilian phone number heuristics for WhatsApp identifiers.

Stored patient phones are not consistently formatted: some carry the
country code, some predate the mobile "9" prefix (10 digits instead of 11).
Lookups therefore match against every plausible variant of the sender.
"""

import re

COUNTRY_CODE = "55"

# Area code (DDD) used when a stored number has none
DEFAULT_AREA_CODE = "66"

_NON_DIGITS = re.compile(r"\D")


def extract_digits(identifier: str) -> str:
    """Return the digits of a WhatsApp identifier.

    Args:
        identifier: Wire address (e.g. "5566999516222@s.whatsapp.net") or a
            formatted phone (e.g. "(66) 99951-6222").
    """
    return _NON_DIGITS.sub("", identifier.split("@", 1)[0])


def strip_country_code(digits: str) -> str:
    """Drop a leading 55 only when a national number (10 or 11 digits) remains."""
    if digits.startswith(COUNTRY_CODE) and len(digits) - len(COUNTRY_CODE) in (10, 11):
        return digits[len(COUNTRY_CODE):]
    return digits


def insert_mobile_nine(national: str) -> str:
    """Insert the mobile 9 after the area code of a 10-digit number."""
    return national[:2] + "9" + national[2:]


def remove_mobile_nine(national: str) -> str:
    """Remove the mobile 9 following the area code of an 11-digit number."""
    return national[:2] + national[3:]


def toggled_mobile_nine(national: str) -> str | None:
    """Return the number with the mobile 9 toggled, or None if not applicable."""
    if len(national) == 10:
        return insert_mobile_nine(national)
    if len(national) == 11 and national[2] == "9":
        return remove_mobile_nine(national)
    return None


def phone_variants(identifier: str) -> list[str]:
    """Generate lookup variants for a sender identifier.

    Covers with/without the mobile 9 and with/without the country code.
    Order is stable and duplicates are removed. An identifier without
    digits yields an empty list.

    Example:
        >>> phone_variants("5566996525791@s.whatsapp.net")
        ['66996525791', '6696525791', '5566996525791', '556696525791']
    """
    digits = extract_digits(identifier)
    if not digits:
        return []

    national = strip_country_code(digits)
    base = [national]
    toggled = toggled_mobile_nine(national)
    if toggled is not None:
        base.append(toggled)

    variants = base + [COUNTRY_CODE + v for v in base]
    return list(dict.fromkeys(variants))


def format_whatsapp_number(phone: str, default_area_code: str = DEFAULT_AREA_CODE) -> str:
    """Format a stored phone as the number the messaging provider expects.

    - 8 digits: local number missing area code and mobile 9
    - 9 digits: mobile missing area code
    - 10/11 digits: area code + number, country code added
    - 12/13 digits starting with 55: already complete
    """
    digits = extract_digits(phone)
    if digits.startswith(COUNTRY_CODE) and len(digits) in (12, 13):
        return digits
    if len(digits) == 8:
        return COUNTRY_CODE + default_area_code + "9" + digits
    if len(digits) == 9:
        return COUNTRY_CODE + default_area_code + digits
    if len(digits) in (10, 11):
        return COUNTRY_CODE + digits
    if digits and not digits.startswith(COUNTRY_CODE):
        return COUNTRY_CODE + digits
    return digits
