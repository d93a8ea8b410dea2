"""Minor-unit amount helpers.

Amounts are stored and propagated as integer minor units (paise, cents)
with an explicit ISO-4217 currency code. Scale is never inferred from the
magnitude of the amount; conversion to major units exists for display only.
"""

from decimal import Decimal, ROUND_HALF_EVEN


# Minor-unit exponent per currency
CURRENCY_DECIMALS = {
    'INR': 2, 'USD': 2, 'EUR': 2, 'GBP': 2, 'MXN': 2,
    'CAD': 2, 'AUD': 2, 'CHF': 2, 'CNY': 2, 'SGD': 2, 'AED': 2,
    'JPY': 0, 'KRW': 0,  # No decimal currencies
    'KWD': 3, 'BHD': 3, 'OMR': 3,
}


def normalize_currency(currency: str) -> str:
    """Upper-case and validate a three-letter currency code."""
    code = (currency or '').strip().upper()
    if len(code) != 3 or not code.isalpha():
        raise ValueError(f"Invalid currency code: {currency!r}")
    return code


def to_major_units(amount: int, currency: str) -> Decimal:
    """Convert integer minor units to a Decimal in major units.

    Examples:
        to_major_units(50000, 'INR') -> Decimal('500.00')
        to_major_units(1200, 'JPY') -> Decimal('1200')
    """
    decimals = CURRENCY_DECIMALS.get(currency.upper(), 2)
    value = Decimal(int(amount)) / (Decimal(10) ** decimals)
    return value.quantize(Decimal(10) ** -decimals, rounding=ROUND_HALF_EVEN)


def format_amount(amount: int, currency: str) -> str:
    """Human-readable amount, e.g. 'INR 500.00'."""
    return f"{currency.upper()} {to_major_units(amount, currency)}"
