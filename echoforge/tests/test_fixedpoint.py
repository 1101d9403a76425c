from __future__ import annotations

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from echoforge.errors import DivisionByZero, InvalidAmount, Underflow
from echoforge.fixedpoint import (BPS_DEN, WAD, apply_bps, apply_bps_up,
                                  bps_split, clamp, div, div_up, from_wad,
                                  isqrt, mul, mul_div, mul_div_up,
                                  nth_root_wad, pow_wad, ratio_bps, sub,
                                  to_wad)

# ------------------------------- arithmetic ----------------------------------


def test_mul_div_rounding_directions():
    assert mul_div(7, 3, 2) == 10
    assert mul_div_up(7, 3, 2) == 11
    assert mul_div_up(6, 3, 2) == 9
    assert div_up(1, 3) == 1
    assert div_up(0, 3) == 0


def test_fixed_point_mul_and_div():
    assert mul(3 * WAD, WAD // 2) == 3 * WAD // 2
    assert div(3 * WAD, 2 * WAD) == 3 * WAD // 2


def test_division_by_zero_is_a_fatal_arithmetic_fault():
    with pytest.raises(DivisionByZero) as ei:
        mul_div(1, 1, 0)
    assert ei.value.fatal


def test_sub_underflow():
    assert sub(5, 5) == 0
    with pytest.raises(Underflow):
        sub(1, 2)


def test_clamp():
    assert clamp(-3, 0, 10) == 0
    assert clamp(30, 0, 10) == 10
    assert clamp(4, 0, 10) == 4
    with pytest.raises(ValueError):
        clamp(1, 5, 4)


# ------------------------------- powers / roots -------------------------------


def test_pow_wad_small_cases():
    assert pow_wad(2 * WAD, 0) == WAD
    assert pow_wad(2 * WAD, 10) == 1024 * WAD
    assert pow_wad(WAD // 2, 2) == WAD // 4


def test_nth_root_inverts_pow():
    r = nth_root_wad(51 * WAD, 365)
    assert pow_wad(r, 365) <= 51 * WAD < pow_wad(r + 1, 365)
    assert nth_root_wad(4 * WAD, 2) == 2 * WAD
    assert nth_root_wad(WAD, 7) == WAD


def test_isqrt_rejects_negative():
    assert isqrt(10**36) == 10**18
    with pytest.raises(InvalidAmount):
        isqrt(-1)


# ------------------------------- bps ------------------------------------------


def test_bps_helpers():
    assert apply_bps(1000 * WAD, 25) == 25 * WAD // 10
    assert apply_bps(1, 5000) == 0
    assert apply_bps_up(1, 5000) == 1
    assert ratio_bps(1, 2) == 5000
    assert ratio_bps(3, 2) == 15000  # not clamped


def test_apply_bps_rejects_negative_amount():
    with pytest.raises(InvalidAmount):
        apply_bps(-1, 10)


@given(amount=st.integers(min_value=0, max_value=10**30), bps=st.integers(min_value=0, max_value=BPS_DEN))
def test_bps_split_conserves(amount: int, bps: int):
    cut, rest = bps_split(amount, bps)
    assert cut + rest == amount
    assert 0 <= cut <= amount


@settings(max_examples=50, deadline=None)
@given(
    a=st.integers(min_value=0, max_value=2**200),
    b=st.integers(min_value=0, max_value=2**200),
    c=st.integers(min_value=1, max_value=2**128),
)
def test_mul_div_floor_ceil_bracket_exact_quotient(a: int, b: int, c: int):
    lo, hi = mul_div(a, b, c), mul_div_up(a, b, c)
    assert lo * c <= a * b <= hi * c
    assert hi - lo in (0, 1)


@settings(max_examples=30, deadline=None)
@given(x=st.integers(min_value=WAD, max_value=1000 * WAD), n=st.integers(min_value=1, max_value=400))
def test_nth_root_is_largest_lower_root(x: int, n: int):
    r = nth_root_wad(x, n)
    assert pow_wad(r, n) <= x
    assert pow_wad(r + 1, n) > x or r + 1 > x


# ------------------------------- display --------------------------------------


def test_decimal_string_round_trip():
    assert to_wad("12.5") == 12 * WAD + WAD // 2
    assert to_wad("1_000") == 1000 * WAD
    assert to_wad(3) == 3 * WAD
    assert from_wad(12 * WAD + WAD // 2) == "12.5"
    assert from_wad(7 * WAD) == "7"
    assert from_wad(-WAD // 4) == "-0.25"


def test_to_wad_rejects_garbage():
    with pytest.raises(InvalidAmount):
        to_wad("twelve")
