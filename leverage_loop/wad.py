"""WAD fixed-point arithmetic — integers scaled by 10^18.

All division truncates toward zero (operands are non-negative), which keeps
loan sizing conservative. Python integers have arbitrary width, so products of
two WAD-scaled 18-decimal amounts never lose precision; results are still
bounded to the uint256 range a lending ledger can hold.
"""
from __future__ import annotations

from decimal import ROUND_DOWN, Decimal, InvalidOperation, localcontext

from .errors import FixedPointError

WAD = 10**18
MAX_UINT256 = 2**256 - 1

# Enough digits for any uint256 amount at any supported scale.
_DECIMAL_PRECISION = 120


def _check(value: int) -> int:
    if value > MAX_UINT256:
        raise FixedPointError(f"Result {value} overflows uint256")
    return value


def _require_non_negative(*operands: int) -> None:
    for operand in operands:
        if operand < 0:
            raise FixedPointError(f"Negative operand {operand}")


def mul_div(a: int, b: int, denominator: int) -> int:
    """Return floor(a * b / denominator)."""
    _require_non_negative(a, b, denominator)
    if denominator == 0:
        raise FixedPointError("Division by zero")
    return _check(a * b // denominator)


def mul_div_up(a: int, b: int, denominator: int) -> int:
    """Return ceil(a * b / denominator)."""
    _require_non_negative(a, b, denominator)
    if denominator == 0:
        raise FixedPointError("Division by zero")
    return _check(-(-(a * b) // denominator))


def wad_mul(a: int, b: int) -> int:
    return mul_div(a, b, WAD)


def wad_mul_up(a: int, b: int) -> int:
    return mul_div_up(a, b, WAD)


def wad_div(a: int, b: int) -> int:
    return mul_div(a, WAD, b)


def to_value(amount: int, price: int, decimals: int) -> int:
    """Value of a native-unit amount in WAD-scaled quote currency."""
    return mul_div(amount, price, 10**decimals)


# ---------------------------------------------------------------------------
# Human-readable conversion (CLI and config only)
# ---------------------------------------------------------------------------


def parse_units(value: str | int | float | Decimal, decimals: int) -> int:
    """Convert a human amount such as ``"1.5"`` into native units.

    Digits beyond ``decimals`` are truncated.
    """
    try:
        dec = Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"Not a decimal number: {value!r}") from e
    if not dec.is_finite():
        raise ValueError(f"Not a finite number: {value!r}")
    with localcontext() as ctx:
        ctx.prec = _DECIMAL_PRECISION
        scaled = dec.scaleb(decimals).quantize(Decimal(1), rounding=ROUND_DOWN)
    if scaled < 0:
        raise ValueError(f"Negative amount: {value!r}")
    return _check(int(scaled))


def to_wad(value: str | int | float | Decimal) -> int:
    """Convert a human ratio or price into a WAD integer."""
    return parse_units(value, 18)


def format_units(amount: int, decimals: int) -> str:
    """Render native units as a plain decimal string, e.g. 1500000 @ 6 → "1.5"."""
    with localcontext() as ctx:
        ctx.prec = _DECIMAL_PRECISION
        text = format(Decimal(amount).scaleb(-decimals), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"


def format_wad(value: int) -> str:
    return format_units(value, 18)
