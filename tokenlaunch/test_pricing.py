"""
Tests for the supply-driven pricing curve.

Covers the base price curve, the size premium, cost composition and the
currency -> tokens inverse.
"""
import pytest

from tokenlaunch.errors import InvalidParameterError
from tokenlaunch.fixed_point import WAD, MAX_EXP_INPUT, exp_wad, mul_wad_up
from tokenlaunch.pricing import (
    PricingConfig, apply_fee, calculate_base_price, calculate_premium,
    calculate_tokens_for_currency, calculate_total_cost, validate_price_parameters,
)
from tokenlaunch.token import TOKEN_UNIT

SUPPLY = 1_000_000 * TOKEN_UNIT
INITIAL_PRICE = WAD // 100


def relative_error(actual: int, expected: int) -> float:
    return abs(actual - expected) / expected


@pytest.fixture
def config():
    return PricingConfig(
        initial_price=INITIAL_PRICE,
        total_supply=SUPPLY,
        remaining_supply=SUPPLY,
        alpha=-WAD,
        k=10 * WAD,
        beta=WAD // 2,
    )


# Base price

def test_base_price_at_full_supply_is_initial_price(config):
    assert calculate_base_price(config) == INITIAL_PRICE


def test_base_price_doubles_at_half_supply(config):
    """alpha = -1: price = initial * total / remaining."""
    price = calculate_base_price(config.with_remaining(SUPPLY // 2))
    assert relative_error(price, 2 * INITIAL_PRICE) < 1e-12
    assert price >= 2 * INITIAL_PRICE - 1


def test_base_price_rises_as_supply_is_consumed(config):
    remaining_values = [SUPPLY, SUPPLY * 9 // 10, SUPPLY // 2, SUPPLY // 10,
                        SUPPLY // 1000, TOKEN_UNIT, 1000, 1, 0]
    prices = [calculate_base_price(config.with_remaining(r)) for r in remaining_values]
    assert prices == sorted(prices)
    assert prices[-1] > prices[0]


def test_exhausted_supply_priced_at_one_base_unit(config):
    assert (calculate_base_price(config.with_remaining(0))
            == calculate_base_price(config.with_remaining(1)))


def test_steep_curve_saturates_instead_of_overflowing(config):
    steep = PricingConfig(INITIAL_PRICE, SUPPLY, 0, -10 * WAD, 0, 0)
    expected = mul_wad_up(INITIAL_PRICE, exp_wad(MAX_EXP_INPUT, round_up=True))
    assert calculate_base_price(steep) == expected


# Premium

def test_premium_is_one_for_zero_amount_or_zero_k(config):
    assert calculate_premium(config, 0) == WAD
    flat = PricingConfig(INITIAL_PRICE, SUPPLY, SUPPLY, -WAD, 0, WAD // 2)
    assert calculate_premium(flat, 10_000 * TOKEN_UNIT) == WAD


def test_premium_for_one_percent_of_supply(config):
    """k = 10 and 1% of supply at full supply: exp(0.1)."""
    premium = calculate_premium(config, SUPPLY // 100)
    assert relative_error(premium, 1105170918075647625) < 1e-12


def test_premium_strictly_increasing_in_amount(config):
    amounts = [1, TOKEN_UNIT, 10 * TOKEN_UNIT, 1000 * TOKEN_UNIT, SUPPLY // 10, SUPPLY]
    premiums = [calculate_premium(config, a) for a in amounts]
    assert all(a < b for a, b in zip(premiums[1:], premiums[2:]))
    assert all(p >= WAD for p in premiums)


def test_premium_steeper_when_supply_is_scarce(config):
    amount = 1000 * TOKEN_UNIT
    full = calculate_premium(config, amount)
    scarce = calculate_premium(config.with_remaining(SUPPLY // 10), amount)
    assert scarce > full


def test_premium_ignores_supply_when_beta_is_zero(config):
    insensitive = PricingConfig(INITIAL_PRICE, SUPPLY, SUPPLY, -WAD, 10 * WAD, 0)
    amount = 1000 * TOKEN_UNIT
    assert (calculate_premium(insensitive, amount)
            == calculate_premium(insensitive.with_remaining(SUPPLY // 10), amount))


def test_premium_saturates_near_exhaustion():
    config = PricingConfig(INITIAL_PRICE, SUPPLY, 1, -WAD, 250 * WAD, WAD)
    assert calculate_premium(config, 1) == exp_wad(MAX_EXP_INPUT, round_up=True)


# Total cost

def test_total_cost_composition(config):
    for remaining in (SUPPLY, SUPPLY // 3):
        snapshot = config.with_remaining(remaining)
        for amount in (1, TOKEN_UNIT, 777 * TOKEN_UNIT, 50_000 * TOKEN_UNIT):
            cost = calculate_total_cost(snapshot, amount)
            assert cost.base_price == calculate_base_price(snapshot)
            assert cost.premium == calculate_premium(snapshot, amount)
            assert cost.base_cost == mul_wad_up(cost.base_price, amount)
            assert cost.final_cost == mul_wad_up(cost.base_cost, cost.premium)

            exact = cost.base_price * cost.premium * amount // (WAD * WAD)
            assert 0 <= cost.final_cost - exact <= cost.premium // WAD + 2


def test_cost_of_zero_tokens_is_zero(config):
    assert calculate_total_cost(config, 0).final_cost == 0


def test_apply_fee_rounds_up():
    assert apply_fee(1000, WAD // 100) == 1010
    assert apply_fee(1, WAD // 100) == 2
    assert apply_fee(0, WAD // 100) == 0


# Currency -> tokens

@pytest.mark.parametrize("amount", [1, 999, TOKEN_UNIT, 1234 * TOKEN_UNIT, 99_999 * TOKEN_UNIT])
def test_tokens_for_currency_round_trip(config, amount):
    currency = calculate_total_cost(config, amount).final_cost
    tokens = calculate_tokens_for_currency(config, currency)
    assert tokens >= amount
    assert calculate_total_cost(config, tokens).final_cost <= currency


@pytest.mark.parametrize("currency", [10 ** 15, 3 * WAD, 1000 * WAD + 7, 123456 * WAD])
def test_tokens_for_currency_is_maximal(config, currency):
    snapshot = config.with_remaining(SUPPLY // 2)
    fee = WAD // 100
    tokens = calculate_tokens_for_currency(snapshot, currency, fee)
    assert apply_fee(calculate_total_cost(snapshot, tokens).final_cost, fee) <= currency
    assert apply_fee(calculate_total_cost(snapshot, tokens + 1).final_cost, fee) > currency


def test_tokens_for_currency_respects_limit(config):
    limit = 10 * TOKEN_UNIT
    assert calculate_tokens_for_currency(config, 10 ** 9 * WAD, limit=limit) == limit
    assert calculate_tokens_for_currency(config, 0) == 0
    assert calculate_tokens_for_currency(config.with_remaining(0), WAD) == 0


# Scenario

def test_small_purchase_at_full_supply_versus_near_exhaustion(config):
    amount = 1000 * TOKEN_UNIT
    early = calculate_total_cost(config, amount)
    late = calculate_total_cost(config.with_remaining(amount), amount)

    assert early.base_price == INITIAL_PRICE
    assert WAD < early.premium < WAD * 102 // 100
    assert late.base_price > early.base_price
    assert late.premium > early.premium


# Validation

@pytest.mark.parametrize("alpha,k,beta", [
    (0, WAD, WAD // 2),
    (WAD, WAD, WAD // 2),
    (-10 * WAD - 1, WAD, WAD // 2),
    (-WAD, -1, WAD // 2),
    (-WAD, 250 * WAD + 1, WAD // 2),
    (-WAD, WAD, -1),
    (-WAD, WAD, WAD + 1),
])
def test_invalid_price_parameters(alpha, k, beta):
    with pytest.raises(InvalidParameterError):
        validate_price_parameters(alpha, k, beta)


def test_bounds_are_inclusive():
    validate_price_parameters(-10 * WAD, 250 * WAD, WAD)
    validate_price_parameters(-1, 0, 0)


def test_invalid_config_fails_fast(config):
    with pytest.raises(InvalidParameterError):
        calculate_base_price(config.with_remaining(SUPPLY + 1))
    with pytest.raises(InvalidParameterError):
        calculate_premium(config, -1)
    with pytest.raises(InvalidParameterError) as exc_info:
        calculate_base_price(PricingConfig(INITIAL_PRICE, SUPPLY, SUPPLY, 0, WAD, WAD))
    assert exc_info.value.name == 'alpha'
