"""
WAD fixed-point arithmetic (18 decimals) on Python integers.

`exp_wad` and `ln_wad` work internally with 38 decimal digits and
round once at the end, which keeps the relative error of exp below
1e-15 for every result >= 1e-3 and the absolute error of ln within a
couple of WAD units. Callers choose the rounding direction explicitly.
"""

WAD = 10 ** 18

_PREC = 10 ** 38
_WAD_TO_PREC = _PREC // WAD
# ln(2) * 1e38, rounded
_LN2 = 69314718055994530941723212145817656808

# exp(135) is the largest power the pricing curves ever evaluate; callers
# saturate their exponents here instead of letting prices explode.
MAX_EXP_INPUT = 135 * WAD
# Below this exp(x) is smaller than one WAD unit.
MIN_EXP_INPUT = -42 * WAD

_MAX_TERMS = 120


def mul_wad_down(a: int, b: int) -> int:
    return a * b // WAD


def mul_wad_up(a: int, b: int) -> int:
    return -(-(a * b) // WAD)


def div_wad_down(a: int, b: int) -> int:
    return a * WAD // b


def div_wad_up(a: int, b: int) -> int:
    return -(-(a * WAD) // b)


def _prec_to_wad(value: int, round_up: bool) -> int:
    if round_up:
        return -(-value // _WAD_TO_PREC)
    return value // _WAD_TO_PREC


def exp_wad(x: int, round_up: bool = False) -> int:
    """
    e ** (x / WAD), as a WAD.

    Range reduction x = k*ln2 + r with |r| <= ln2/2, Taylor series for
    e**r, then an exact shift by 2**k.
    """
    if x > MAX_EXP_INPUT:
        raise ValueError(f"exp_wad input {x} exceeds {MAX_EXP_INPUT}")
    if x <= MIN_EXP_INPUT:
        return 1 if round_up else 0

    xp = x * _WAD_TO_PREC
    k = (xp + _LN2 // 2) // _LN2
    r = xp - k * _LN2

    total = _PREC
    term = _PREC
    for i in range(1, _MAX_TERMS):
        term = term * r // (i * _PREC)
        if term == 0:
            break
        total += term

    if k >= 0:
        total <<= k
    elif round_up:
        total = -(-total >> -k)
    else:
        total >>= -k
    return _prec_to_wad(total, round_up)


def ln_wad(x: int, round_up: bool = False) -> int:
    """
    Natural log of x / WAD, as a (signed) WAD.

    Normalises x to y * 2**k with y in [1, 2) and sums the atanh series
    ln(y) = 2 * (s + s**3/3 + s**5/5 + ...) with s = (y-1)/(y+1) <= 1/3.
    """
    if x <= 0:
        raise ValueError(f"ln_wad undefined for {x}")

    xp = x * _WAD_TO_PREC
    k = xp.bit_length() - _PREC.bit_length()
    y = xp >> k if k >= 0 else xp << -k
    while y >= 2 * _PREC:
        y >>= 1
        k += 1
    while y < _PREC:
        y <<= 1
        k -= 1

    s = (y - _PREC) * _PREC // (y + _PREC)
    s_squared = s * s // _PREC
    total = 0
    term = s
    n = 1
    while term and n < 2 * _MAX_TERMS:
        total += term // n
        term = term * s_squared // _PREC
        n += 2

    return _prec_to_wad(k * _LN2 + 2 * total, round_up)
