"""
Money Utilities

Decimal arithmetic for cart amounts. Every currency is rounded to its own
minor unit with banker's rounding (ROUND_HALF_EVEN).
"""

from decimal import Decimal, ROUND_HALF_EVEN, InvalidOperation
from typing import Union

from .errors import UnknownCurrencyError

# ISO 4217 minor unit exponents for the currencies the marketplace trades in
MINOR_UNITS: dict[str, int] = {
    "USD": 2,
    "EUR": 2,
    "GBP": 2,
    "CAD": 2,
    "JMD": 2,
    "TTD": 2,
    "BBD": 2,
    "XCD": 2,
    "BSD": 2,
    "GYD": 2,
    "MXN": 2,
    "BRL": 2,
    "INR": 2,
    "CNY": 2,
    "AUD": 2,
    "CHF": 2,
    "JPY": 0,
    "KRW": 0,
    "CLP": 0,
    "ISK": 0,
    "KWD": 3,
    "BHD": 3,
    "OMR": 3,
    "JOD": 3,
    "TND": 3,
}

Amount = Union[str, int, float, Decimal]


def normalize_currency(currency: str) -> str:
    """Upper-case a currency code and make sure it is one we can round"""
    code = (currency or "").strip().upper()
    if code not in MINOR_UNITS:
        raise UnknownCurrencyError(f"Unknown currency code: {currency!r}")
    return code


def minor_unit_exponent(currency: str) -> int:
    """Number of decimal places in the currency's minor unit"""
    return MINOR_UNITS[normalize_currency(currency)]


def quantum(currency: str) -> Decimal:
    """Smallest representable amount for the currency, e.g. Decimal('0.01')"""
    return Decimal(1).scaleb(-minor_unit_exponent(currency))


def to_decimal(value: Amount) -> Decimal:
    """
    Convert a numeric value to Decimal.

    Floats go through their string form so 0.1 stays 0.1.
    """
    if isinstance(value, Decimal):
        return value
    try:
        if isinstance(value, float):
            return Decimal(str(value))
        return Decimal(value)
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise ValueError(f"Not a monetary amount: {value!r}") from exc


def round_money(value: Amount, currency: str) -> Decimal:
    """
    Round an amount to the currency's minor unit.

    Args:
        value: Amount in major units
        currency: ISO currency code

    Returns:
        Decimal quantized to the minor unit using ROUND_HALF_EVEN
    """
    return to_decimal(value).quantize(quantum(currency), rounding=ROUND_HALF_EVEN)


def zero(currency: str) -> Decimal:
    """Zero expressed at the currency's precision"""
    return quantum(currency) * 0


def format_money(value: Amount, currency: str) -> str:
    """Human readable amount, e.g. '63.00 USD'"""
    return f"{round_money(value, currency)} {normalize_currency(currency)}"
