from __future__ import annotations

from decimal import Decimal

import pytest

from core.errors import PaymentValidationError
from core.money import minor_unit_exponent, normalize_currency, to_minor_units


def test_to_minor_units_uses_two_decimals_by_default():
    assert to_minor_units(Decimal("10.00"), "EUR") == 1000
    assert to_minor_units(Decimal("100"), "eur") == 10000
    assert to_minor_units("0.01", "USD") == 1


def test_to_minor_units_respects_currency_exponent():
    assert to_minor_units(Decimal("500"), "JPY") == 500
    assert to_minor_units(Decimal("1.234"), "KWD") == 1234
    assert minor_unit_exponent("jpy") == 0


def test_float_amounts_do_not_pick_up_binary_noise():
    assert to_minor_units(10.1, "USD") == 1010
    assert to_minor_units(19.99, "USD") == 1999


@pytest.mark.parametrize("amount", ["0", "-5", "0.00"])
def test_to_minor_units_rejects_non_positive_amounts(amount):
    with pytest.raises(PaymentValidationError) as exc_info:
        to_minor_units(amount, "USD")

    assert exc_info.value.status_code == 422


def test_to_minor_units_rejects_precision_loss():
    with pytest.raises(PaymentValidationError):
        to_minor_units(Decimal("10.005"), "USD")

    with pytest.raises(PaymentValidationError):
        to_minor_units(Decimal("1.5"), "JPY")


def test_to_minor_units_rejects_non_numbers():
    with pytest.raises(PaymentValidationError):
        to_minor_units("ten", "USD")

    with pytest.raises(PaymentValidationError):
        to_minor_units("NaN", "USD")


def test_normalize_currency():
    assert normalize_currency(" eur ") == "EUR"
    with pytest.raises(PaymentValidationError):
        normalize_currency("E1R")
    with pytest.raises(PaymentValidationError):
        normalize_currency("EURO")
