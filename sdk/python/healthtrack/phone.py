"""Phone number normalization.

Numbers are entered as a subscriber number plus a country picked from a fixed
list, and are always sent to the provider in E.164 form
(``+<calling code><digits>``).

Splitting a stored E.164 number back into country and subscriber number is
first-match prefix matching over :data:`COUNTRIES`. Countries that share a
calling code (US and CA both use ``1``) cannot be told apart; the earlier entry
wins. Callers that need the exact country must keep the user's selection.
"""

from __future__ import annotations

import re
from typing import Iterable, Optional

from .exceptions import InputError
from .types.phone import Country

COUNTRIES: tuple[Country, ...] = (
    Country(code="AU", name="Australia", calling_code="61"),
    Country(code="US", name="United States", calling_code="1"),
    Country(code="GB", name="United Kingdom", calling_code="44"),
    Country(code="IN", name="India", calling_code="91"),
    Country(code="CA", name="Canada", calling_code="1"),
)

CODE_LENGTH = 6

_STRIP_RE = re.compile(r"[\s()-]")
_SUBSCRIBER_RE = re.compile(r"^\d{6,14}$")
_E164_RE = re.compile(r"^\+(\d+)$")
_CODE_RE = re.compile(r"^\d{%d}$" % CODE_LENGTH)


def clean_number(raw: str) -> str:
    return _STRIP_RE.sub("", raw or "")


def is_valid_subscriber_number(number: str) -> bool:
    return bool(_SUBSCRIBER_RE.match(number))


def is_valid_code(code: str) -> bool:
    return bool(_CODE_RE.match(code or ""))


def country_by_code(code: str, countries: Iterable[Country] = COUNTRIES) -> Country:
    for country in countries:
        if country.code == code.upper():
            return country
    raise InputError("country", f"Unsupported country: {code}")


def format_e164(number: str, country: Country) -> str:
    """Format a subscriber number for ``country``; raises :class:`InputError`."""
    cleaned = clean_number(number)
    if not is_valid_subscriber_number(cleaned):
        raise InputError("phone_number", "Please enter a valid phone number (digits only)")
    return f"+{country.calling_code}{cleaned}"


def find_country(digits: str, countries: Iterable[Country] = COUNTRIES) -> Optional[Country]:
    for country in countries:
        if digits.startswith(country.calling_code):
            return country
    return None


def split_e164(phone_number: str, countries: Iterable[Country] = COUNTRIES) -> tuple[Optional[Country], str]:
    """Split a stored number into ``(country, subscriber number)``.

    Numbers without a leading ``+`` are returned unchanged with no country.
    """
    if not phone_number:
        return None, ""
    match = _E164_RE.match(clean_number(phone_number))
    if not match:
        return None, phone_number.lstrip("+")
    digits = match.group(1)
    country = find_country(digits, countries)
    if country is None:
        return None, digits
    return country, digits[len(country.calling_code):]


def mask_phone(phone_number: Optional[str]) -> str:
    if not phone_number:
        return ""
    if len(phone_number) <= 4:
        return "***"
    return f"{phone_number[:3]}***{phone_number[-2:]}"
