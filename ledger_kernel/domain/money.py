"""
Money arithmetic helpers.

All amounts are ``Decimal``. Inputs arriving as strings or ints are
converted exactly; floats are rejected because their binary representation
would break the 0.01 balance tolerance.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

ZERO = Decimal("0")
DEFAULT_TOLERANCE = Decimal("0.01")


def to_decimal(value: Decimal | int | str, field_name: str = "amount") -> Decimal:
    """
    Convert a caller-supplied amount to Decimal.

    Raises:
        TypeError: value is a float or an unsupported type.
        ValueError: value is not a finite number.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(f"{field_name} must be Decimal, int or str, not {type(value).__name__}")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, str)):
        try:
            result = Decimal(value)
        except InvalidOperation as exc:
            raise ValueError(f"{field_name} is not a valid number: {value!r}") from exc
    else:
        raise TypeError(f"{field_name} must be Decimal, int or str, not {type(value).__name__}")
    if not result.is_finite():
        raise ValueError(f"{field_name} must be finite, got {value!r}")
    return result


def round_money(
    value: Decimal,
    decimal_places: int = 2,
    rounding: str = ROUND_HALF_UP,
) -> Decimal:
    """Round to currency precision."""
    quantizer = Decimal(1).scaleb(-decimal_places)
    return value.quantize(quantizer, rounding=rounding)


def to_money(value: Decimal | int | str, field_name: str = "amount", decimal_places: int = 2) -> Decimal:
    """
    Convert a caller-supplied amount to currency precision.

    Trailing zeros beyond the precision are accepted (``"10.500"``);
    significant digits beyond it are not.

    Raises:
        TypeError: see ``to_decimal``.
        ValueError: not a finite number, or finer than ``decimal_places``.
    """
    amount = to_decimal(value, field_name)
    rounded = round_money(amount, decimal_places)
    if rounded != amount:
        raise ValueError(
            f"{field_name} has more than {decimal_places} decimal places: {value!r}"
        )
    return rounded


def within_tolerance(a: Decimal, b: Decimal, tolerance: Decimal = DEFAULT_TOLERANCE) -> bool:
    """True if ``a`` and ``b`` differ by less than ``tolerance``."""
    return abs(a - b) < tolerance
