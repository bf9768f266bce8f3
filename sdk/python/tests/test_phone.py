"""Tests for phone number normalization."""

import pytest

from healthtrack.exceptions import InputError
from healthtrack.phone import (
    COUNTRIES,
    country_by_code,
    format_e164,
    is_valid_code,
    mask_phone,
    split_e164,
)

AU = country_by_code("AU")
GB = country_by_code("GB")
IN = country_by_code("IN")
US = country_by_code("US")


@pytest.mark.parametrize("number", ["+61412345678", "+447911123456", "+919876543210", "+12025550123"])
def test_split_then_format_round_trips(number):
    country, subscriber = split_e164(number)

    assert country is not None
    assert format_e164(subscriber, country) == number


def test_format_strips_spaces_and_punctuation():
    assert format_e164("412 345-678", AU) == "+61412345678"
    assert format_e164("(020) 7946 0958", GB) == "+4402079460958"


@pytest.mark.parametrize("number", ["", "12a45678", "12345", "123456789012345"])
def test_format_rejects_bad_subscriber_numbers(number):
    with pytest.raises(InputError) as exc_info:
        format_e164(number, AU)

    assert exc_info.value.field == "phone_number"
    assert exc_info.value.message == "Please enter a valid phone number (digits only)"


def test_shared_calling_code_resolves_to_first_listed_country():
    """US and CA share +1; the earlier entry in the list wins."""
    country, subscriber = split_e164("+14165550123")

    assert country == US
    assert subscriber == "4165550123"


def test_split_keeps_numbers_without_plus():
    assert split_e164("0412345678") == (None, "0412345678")
    assert split_e164("") == (None, "")


def test_split_unknown_calling_code():
    assert split_e164("+8613800138000") == (None, "8613800138000")


def test_country_by_code_is_case_insensitive():
    assert country_by_code("in") == IN
    with pytest.raises(InputError):
        country_by_code("FR")


def test_country_list_order():
    assert [c.code for c in COUNTRIES] == ["AU", "US", "GB", "IN", "CA"]


@pytest.mark.parametrize("code,valid", [("123456", True), ("12345", False), ("1234567", False), ("12a456", False), ("", False)])
def test_code_must_be_six_digits(code, valid):
    assert is_valid_code(code) is valid


def test_mask_phone_hides_middle_digits():
    assert mask_phone("+61412345678") == "+61***78"
    assert mask_phone("123") == "***"
    assert mask_phone(None) == ""
