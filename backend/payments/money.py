"""
Monetary helpers shared by order pricing and payment settlement.

Money is always a Decimal quantized to the currency's minor unit. It crosses
the payment processor boundary as an integer in minor units (cents) and is
serialized to clients as a fixed-point string ("30.97").

Key Principles:
1. NEVER use float for money
2. Always quantize Decimals BEFORE converting to minor units
3. Use ROUND_HALF_EVEN (banker's rounding) to prevent systematic bias
"""

from decimal import Decimal, ROUND_HALF_EVEN
from typing import Iterable, Optional, Union

from django.conf import settings

from core_backend.exceptions import ValidationError

ZERO = Decimal("0.00")

# Every stored amount is a DecimalField(max_digits=10, decimal_places=2)
MAX_AMOUNT = Decimal("99999999.99")

# Currency minor unit exponents (how many decimal places)
CURRENCY_EXPONENT = {
    "USD": 2,
    "EUR": 2,
    "GBP": 2,
    "CAD": 2,
    "JPY": 0,
    "KRW": 0,
    "KWD": 3,
}

Amount = Union[Decimal, str, int]


def default_currency() -> str:
    return getattr(settings, "PAYMENT_CURRENCY", "usd")


def currency_exponent(currency: str) -> int:
    """
    >>> currency_exponent("usd")
    2
    >>> currency_exponent("JPY")
    0
    """
    return CURRENCY_EXPONENT.get(currency.upper(), 2)


def quantize(amount: Amount, currency: Optional[str] = None) -> Decimal:
    """
    Round to the currency's decimals using banker's rounding.

    Floats are rejected outright; they have no place in a money path.

    >>> quantize("10.125")
    Decimal('10.12')
    """
    if isinstance(amount, float):
        raise TypeError("Money amounts must be Decimal, str or int, never float")
    currency = currency or default_currency()
    step = Decimal(10) ** -currency_exponent(currency)
    return Decimal(amount).quantize(step, rounding=ROUND_HALF_EVEN)


def to_minor(amount: Amount, currency: Optional[str] = None) -> int:
    """
    Convert to minor units (e.g., cents) after quantization.

    >>> to_minor(Decimal("25.50"))
    2550
    """
    currency = currency or default_currency()
    quantized = quantize(amount, currency)
    return int((quantized * (10 ** currency_exponent(currency))).to_integral_value())


def ensure_storable(amount: Decimal, label: str = "Amount") -> Decimal:
    """
    Reject amounts too large to record.

    >>> ensure_storable(Decimal("30.97"))
    Decimal('30.97')
    """
    if abs(amount) > MAX_AMOUNT:
        raise ValidationError(f"{label} exceeds the largest amount that can be recorded.")
    return amount


def line_total(unit_price: Amount, quantity: int) -> Decimal:
    return quantize(Decimal(unit_price) * quantity)


def sum_amounts(amounts: Iterable[Amount]) -> Decimal:
    total = ZERO
    for amount in amounts:
        total += Decimal(amount)
    return quantize(total)
