"""
Unit Conversion
Decimal-exact conversion between human amounts and token base units
"""

from decimal import Decimal, InvalidOperation, localcontext
from typing import Union

Number = Union[int, float, str, Decimal]


def parse_units(value: Number, decimals: int) -> int:
    """
    Convert a human-readable amount to integer base units

    Args:
        value: Amount such as "1000000" or "0.5"
        decimals: Token decimals

    Returns:
        Amount in base units

    Raises:
        ValueError: If the value is not a number or has more
                    fractional digits than the token supports
    """
    if decimals < 0:
        raise ValueError(f"decimals must be non-negative, got {decimals}")

    try:
        # str() first so floats like 0.1 keep their printed form
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValueError(f"Invalid amount: {value!r}")

    if not amount.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")

    with localcontext() as ctx:
        ctx.prec = 100
        scaled = amount.scaleb(decimals)

    if scaled != scaled.to_integral_value():
        raise ValueError(f"Amount {value} has more than {decimals} decimal places")

    return int(scaled)


def format_units(value: int, decimals: int) -> str:
    """
    Convert integer base units to a human-readable string

    Always keeps at least one fractional digit ("1000.0"), like ethers.

    Args:
        value: Amount in base units
        decimals: Token decimals

    Returns:
        Formatted amount
    """
    negative = value < 0
    digits = str(abs(int(value)))

    if decimals == 0:
        text = f"{digits}.0"
    else:
        digits = digits.rjust(decimals + 1, "0")
        whole = digits[:-decimals]
        fraction = digits[-decimals:].rstrip("0") or "0"
        text = f"{whole}.{fraction}"

    return f"-{text}" if negative else text


def to_decimal(value: int, decimals: int) -> Decimal:
    """Convert base units to a Decimal amount"""
    with localcontext() as ctx:
        ctx.prec = 100
        return Decimal(int(value)).scaleb(-decimals)
