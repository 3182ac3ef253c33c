"""
Monetary Amount Model

All amounts are integers in minor currency units (agorot, cents).
Floating point never touches a stored amount.

DESIGN DECISION: Rounding happens in exactly one place - when an
obligation is first derived from a gross amount and a rate. Sums are
plain integer addition over already-rounded values.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation


def _require_int(value, name: str) -> int:
    # bool is an int subclass; True is not an amount
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an integer, got {type(value).__name__}")
    return value


def apply_rate(gross_amount: int, rate: int) -> int:
    """
    Compute round(gross_amount * rate / 100), rounding half away from zero.

    Python's round() rounds half to even, so Decimal with ROUND_HALF_UP
    (which is half away from zero) is used instead.

    >>> apply_rate(10000, 10)
    1000
    >>> apply_rate(5, 10)
    1
    >>> apply_rate(15, 10)
    2
    """
    _require_int(gross_amount, "gross_amount")
    _require_int(rate, "rate")
    exact = Decimal(gross_amount) * Decimal(rate) / Decimal(100)
    return int(exact.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def format_amount(
    amount: int,
    symbol: str = "₪",
    minor_units_per_major: int = 100,
) -> str:
    """
    Format minor units for display, e.g. 123456 -> "₪1,234.56".
    """
    _require_int(amount, "amount")
    places = len(str(minor_units_per_major)) - 1
    major = Decimal(amount) / Decimal(minor_units_per_major)
    sign = "-" if amount < 0 else ""
    return f"{sign}{symbol}{abs(major):,.{places}f}"


def parse_amount(value: str, minor_units_per_major: int = 100) -> int:
    """
    Parse a user-typed major-unit amount into minor units.

    Accepts an optional currency symbol and thousands separators
    ("₪1,234.50" -> 123450). Anything else is rejected; we never
    guess at a malformed amount.

    Raises:
        ValueError: If the value is not a non-negative decimal amount
                    with at most the currency's number of decimal places.
    """
    if not isinstance(value, str):
        raise ValueError(f"Amount must be text, got {type(value).__name__}")

    cleaned = value.strip().replace(",", "")
    cleaned = cleaned.lstrip("₪$€£").strip()
    if not cleaned:
        raise ValueError("Amount is empty")

    try:
        major = Decimal(cleaned)
    except InvalidOperation:
        raise ValueError(f"Not a valid amount: {value!r}")

    if not major.is_finite() or major < 0:
        raise ValueError(f"Not a valid amount: {value!r}")

    minor = major * Decimal(minor_units_per_major)
    if minor != minor.to_integral_value():
        raise ValueError(f"Too many decimal places in amount: {value!r}")

    return int(minor)
