# -*- coding: utf-8 -*-
"""
echoforge.fixedpoint
====================

Deterministic, integer-only math helpers used by every EchoForge component.

Conventions
-----------
- All monetary quantities are integers scaled by ``WAD`` (1e18); the global
  rebasing index uses ``RAY`` (1e27).
- All functions are **pure** and deterministic. Failures raise
  :class:`~echoforge.errors.Underflow` or
  :class:`~echoforge.errors.DivisionByZero`.
- Rounding is explicit: ``*_down`` = floor, ``*_up`` = ceil. Unsuffixed
  helpers floor.
- Python integers are unbounded, so ``mul_div`` forms the exact product before
  its single division; there is no intermediate overflow to guard against.
- Percentages and ratios are basis points (``BPS_DEN`` = 10_000).

**Never** use floats here. ``Decimal`` appears only in the string
conversion helpers at the bottom, which are for CLI/RPC display and parsing.

Examples
--------
    from echoforge.fixedpoint import WAD, apply_bps, mul_div, pow_wad

    fee = apply_bps(1000 * WAD, 25)            # 2.5 tokens
    q = mul_div(123456789, 987654321, 10**9)
    r = pow_wad(WAD + WAD // 100, 365)         # 1.01 ** 365 in WAD
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_DOWN, localcontext
from typing import Final, Tuple

from .errors import ConvergenceError, DivisionByZero, InvalidAmount, Underflow

# ---------------------------------------------------------------------------
# Scales & constants
# ---------------------------------------------------------------------------

WAD: Final[int] = 10**18
RAY: Final[int] = 10**27
BPS_DEN: Final[int] = 10_000

# Generous: bisection over a 256-bit range needs at most 256 halvings.
ROOT_MAX_ITERATIONS: Final[int] = 512


# ---------------------------------------------------------------------------
# Guards
# ---------------------------------------------------------------------------


def require_divisor(d: int) -> None:
    if d == 0:
        raise DivisionByZero()


def require_nonneg(*xs: int) -> None:
    for n in xs:
        if n < 0:
            raise InvalidAmount("value must be non-negative", amount=n)


def clamp(x: int, lo: int, hi: int) -> int:
    """Return x clamped into [lo, hi]."""
    if lo > hi:
        raise ValueError(f"bad clamp range [{lo}, {hi}]")
    if x < lo:
        return lo
    if x > hi:
        return hi
    return x


# ---------------------------------------------------------------------------
# Basic arithmetic
# ---------------------------------------------------------------------------


def add(a: int, b: int) -> int:
    return a + b


def sub(a: int, b: int) -> int:
    """a - b; raises Underflow if the result would be negative."""
    if b > a:
        raise Underflow(a, b)
    return a - b


def mul(x: int, y: int, scale: int = WAD) -> int:
    """Fixed-point multiply: floor(x * y / scale)."""
    return mul_div(x, y, scale)


def div(x: int, y: int, scale: int = WAD) -> int:
    """Fixed-point divide: floor(x * scale / y)."""
    require_divisor(y)
    return mul_div(x, scale, y)


def mul_div(a: int, b: int, c: int) -> int:
    """floor((a * b) / c) computed on the exact product."""
    require_divisor(c)
    return (a * b) // c


def mul_div_up(a: int, b: int, c: int) -> int:
    """ceil((a * b) / c) computed on the exact product."""
    require_divisor(c)
    prod = a * b
    return -((-prod) // c)


def div_up(n: int, d: int) -> int:
    require_divisor(d)
    return -((-n) // d)


# ---------------------------------------------------------------------------
# Powers & roots
# ---------------------------------------------------------------------------


def pow_wad(x: int, n: int, scale: int = WAD) -> int:
    """
    x ** n for a fixed-point ``x`` and integer exponent ``n >= 0``.

    Exponentiation by repeated squaring; every multiply floors, so the result
    is monotone non-decreasing in ``x``.
    """
    if n < 0:
        raise ValueError("pow_wad exponent must be >= 0")
    require_nonneg(x)
    result = scale
    base = x
    while n:
        if n & 1:
            result = (result * base) // scale
        n >>= 1
        if n:
            base = (base * base) // scale
    return result


def nth_root_wad(x: int, n: int, scale: int = WAD) -> int:
    """
    Largest ``r`` with ``pow_wad(r, n) <= x``.

    Bounded bisection over ``pow_wad``; no logarithms or floats are involved,
    so the result is bit-reproducible.
    """
    if n <= 0:
        raise ValueError("nth_root_wad degree must be > 0")
    require_nonneg(x)
    if n == 1 or x in (0, scale):
        return x
    if x > scale:
        lo, hi = scale, x
    else:
        lo, hi = 0, scale
    for _ in range(ROOT_MAX_ITERATIONS):
        if lo >= hi:
            return lo
        mid = (lo + hi + 1) // 2
        if pow_wad(mid, n, scale) <= x:
            lo = mid
        else:
            hi = mid - 1
    raise ConvergenceError(
        "nth_root_wad bisection budget exhausted",
        details={"x": str(x), "n": n, "lo": str(lo), "hi": str(hi)},
    )


def isqrt(n: int) -> int:
    """Integer floor square root (exact & deterministic)."""
    require_nonneg(n)
    import math  # local import; we only use isqrt

    return math.isqrt(n)


# ---------------------------------------------------------------------------
# Percentages (BPS)
# ---------------------------------------------------------------------------


def apply_bps(amount: int, bps: int) -> int:
    """Return floor(amount * bps / 10_000)."""
    require_nonneg(amount, bps)
    return mul_div(amount, bps, BPS_DEN)


def apply_bps_up(amount: int, bps: int) -> int:
    """Return ceil(amount * bps / 10_000)."""
    require_nonneg(amount, bps)
    return mul_div_up(amount, bps, BPS_DEN)


def bps_split(amount: int, bps: int) -> Tuple[int, int]:
    """
    Split amount into (cut, remainder) with floor rounding on the cut.
    Guaranteed: cut + remainder == amount.
    """
    cut = apply_bps(amount, bps)
    return cut, amount - cut


def ratio_bps(numer: int, denom: int) -> int:
    """floor(numer / denom * 10_000); not clamped above 100%."""
    require_divisor(denom)
    r = mul_div(numer, BPS_DEN, denom)
    return 0 if r < 0 else r


# ---------------------------------------------------------------------------
# Display / parsing (edges only)
# ---------------------------------------------------------------------------


def to_wad(value: str | int | Decimal, scale: int = WAD) -> int:
    """Parse a decimal token string ("12.5") into scaled integer units (floor)."""
    try:
        with localcontext() as ctx:
            ctx.prec = 80
            d = Decimal(str(value).replace("_", "").strip())
            scaled = (d * scale).to_integral_value(rounding=ROUND_DOWN)
    except InvalidOperation as e:
        raise InvalidAmount(f"not a decimal amount: {value!r}") from e
    return int(scaled)


def from_wad(amount: int, scale: int = WAD, places: int = 18) -> str:
    """Render scaled integer units as a plain decimal string."""
    sign = "-" if amount < 0 else ""
    whole, frac = divmod(abs(amount), scale)
    width = len(str(scale)) - 1
    frac_s = str(frac).rjust(width, "0")[:places].rstrip("0")
    return f"{sign}{whole}.{frac_s}" if frac_s else f"{sign}{whole}"


__all__ = [
    "WAD",
    "RAY",
    "BPS_DEN",
    "ROOT_MAX_ITERATIONS",
    "require_divisor",
    "require_nonneg",
    "clamp",
    "add",
    "sub",
    "mul",
    "div",
    "mul_div",
    "mul_div_up",
    "div_up",
    "pow_wad",
    "nth_root_wad",
    "isqrt",
    "apply_bps",
    "apply_bps_up",
    "bps_split",
    "ratio_bps",
    "to_wad",
    "from_wad",
]
