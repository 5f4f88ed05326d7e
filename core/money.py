from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from core.errors import PaymentValidationError

DEFAULT_MINOR_UNIT_EXPONENT = 2

# ISO 4217 currencies whose minor unit differs from the two-decimal default.
CURRENCY_MINOR_UNIT_EXPONENTS: dict[str, int] = {
    "BIF": 0,
    "CLP": 0,
    "DJF": 0,
    "GNF": 0,
    "ISK": 0,
    "JPY": 0,
    "KMF": 0,
    "KRW": 0,
    "PYG": 0,
    "RWF": 0,
    "UGX": 0,
    "VND": 0,
    "VUV": 0,
    "XAF": 0,
    "XOF": 0,
    "XPF": 0,
    "BHD": 3,
    "JOD": 3,
    "KWD": 3,
    "OMR": 3,
    "TND": 3,
}


def normalize_currency(currency: str) -> str:
    value = (currency or "").strip().upper()
    if len(value) != 3 or not value.isalpha():
        raise PaymentValidationError("Currency must be a 3-letter code", {"currency": currency})
    return value


def minor_unit_exponent(currency: str) -> int:
    return CURRENCY_MINOR_UNIT_EXPONENTS.get(currency.upper(), DEFAULT_MINOR_UNIT_EXPONENT)


def to_decimal(amount: Decimal | int | float | str) -> Decimal:
    try:
        # floats go through str() so 10.1 stays 10.1 instead of its binary expansion
        value = Decimal(str(amount)) if isinstance(amount, float) else Decimal(amount)
    except (InvalidOperation, TypeError, ValueError) as err:
        raise PaymentValidationError("Amount must be a number", {"amount": str(amount)}) from err
    if not value.is_finite():
        raise PaymentValidationError("Amount must be a finite number", {"amount": str(amount)})
    return value


def to_minor_units(amount: Decimal | int | float | str, currency: str) -> int:
    """Convert a major-unit amount into integer minor units for ``currency``.

    Amounts must be strictly positive and carry no more fractional digits than
    the currency's minor unit allows, so the conversion never loses precision.
    """
    value = to_decimal(amount)
    if value <= 0:
        raise PaymentValidationError("Amount must be greater than zero", {"amount": str(value)})

    exponent = minor_unit_exponent(currency)
    scaled = value.scaleb(exponent)
    rounded = scaled.quantize(Decimal(1), rounding=ROUND_HALF_UP)
    if scaled != rounded:
        raise PaymentValidationError(
            f"Amount has more than {exponent} decimal places for {currency.upper()}",
            {"amount": str(value), "currency": currency.upper()},
        )
    return int(rounded)
