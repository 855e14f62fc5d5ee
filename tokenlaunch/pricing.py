"""
Supply-driven pricing curve.

    base_price = initial_price * (remaining / total) ** alpha        (alpha < 0)
    premium    = exp(k * amount / effective_supply)
    effective  = beta * remaining + (1 - beta) * total

Prices are WAD-scaled currency per whole token, amounts are token base
units, so cost = price * amount / WAD. Everything a buyer owes rounds up.
All functions here are pure: they read a PricingConfig snapshot and
never mutate it.
"""
import logging
from dataclasses import dataclass, asdict, replace
from typing import NamedTuple

from tokenlaunch.errors import InvalidParameterError
from tokenlaunch.fixed_point import (
    WAD, MAX_EXP_INPUT, exp_wad, ln_wad, mul_wad_up,
)

logger = logging.getLogger(__name__)

MIN_ALPHA = -10 * WAD
MAX_K = 250 * WAD
MAX_BETA = WAD


@dataclass(frozen=True)
class PricingConfig:
    initial_price: int
    total_supply: int
    remaining_supply: int
    alpha: int
    k: int
    beta: int

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> 'PricingConfig':
        return cls(**{name: int(data[name]) for name in cls.__dataclass_fields__})

    def with_remaining(self, remaining_supply: int) -> 'PricingConfig':
        return replace(self, remaining_supply=remaining_supply)

    @property
    def sold(self) -> int:
        return self.total_supply - self.remaining_supply


class CostBreakdown(NamedTuple):
    base_price: int
    premium: int
    base_cost: int
    final_cost: int


def validate_price_parameters(alpha: int, k: int, beta: int):
    """Reject curve coefficients outside their admissible ranges."""
    if not MIN_ALPHA <= alpha < 0:
        raise InvalidParameterError('alpha', alpha)
    if not 0 <= k <= MAX_K:
        raise InvalidParameterError('k', k)
    if not 0 <= beta <= MAX_BETA:
        raise InvalidParameterError('beta', beta)


def validate_config(config: PricingConfig):
    if config.initial_price <= 0:
        raise InvalidParameterError('initial_price', config.initial_price)
    if config.total_supply <= 0:
        raise InvalidParameterError('total_supply', config.total_supply)
    if not 0 <= config.remaining_supply <= config.total_supply:
        raise InvalidParameterError('remaining_supply', config.remaining_supply)
    validate_price_parameters(config.alpha, config.k, config.beta)


def apply_fee(cost: int, fee: int) -> int:
    """Cost plus a WAD-fraction fee on it, fee rounded up."""
    return cost + mul_wad_up(cost, fee)


def calculate_base_price(config: PricingConfig) -> int:
    """
    Per-token price before any size premium.

    Equals initial_price at full supply and rises as supply is consumed.
    An exhausted supply is priced as if one base unit were left.
    """
    validate_config(config)
    remaining = max(config.remaining_supply, 1)
    if remaining == config.total_supply:
        return config.initial_price

    # floor(ln r) - ceil(ln T) keeps the exponent on the high side
    log_ratio = ln_wad(remaining * WAD) - ln_wad(config.total_supply * WAD, round_up=True)
    exponent = min(mul_wad_up(config.alpha, log_ratio), MAX_EXP_INPUT)
    return mul_wad_up(config.initial_price, exp_wad(exponent, round_up=True))


def _effective_supply(config: PricingConfig) -> int:
    effective = (config.beta * config.remaining_supply
                 + (WAD - config.beta) * config.total_supply) // WAD
    return max(effective, 1)


def calculate_premium(config: PricingConfig, amount: int) -> int:
    """Size multiplier (WAD, >= 1.0) for buying `amount` at the current supply."""
    validate_config(config)
    if amount < 0:
        raise InvalidParameterError('amount', amount)
    if amount == 0 or config.k == 0:
        return WAD

    effective = _effective_supply(config)
    exponent = min(-(-(config.k * amount) // effective), MAX_EXP_INPUT)
    return exp_wad(exponent, round_up=True)


def _cost_for(config: PricingConfig, base_price: int, amount: int) -> CostBreakdown:
    premium = calculate_premium(config, amount)
    base_cost = mul_wad_up(base_price, amount)
    return CostBreakdown(base_price, premium, base_cost, mul_wad_up(base_cost, premium))


def calculate_total_cost(config: PricingConfig, amount: int) -> CostBreakdown:
    """(base_price, premium, base_cost, final_cost) for buying `amount`."""
    if amount < 0:
        raise InvalidParameterError('amount', amount)
    return _cost_for(config, calculate_base_price(config), amount)


def calculate_tokens_for_currency(config: PricingConfig, currency_amount: int,
                                  fee: int = 0, limit: int = None) -> int:
    """
    Largest token amount n <= limit whose cost (plus `fee`) fits in
    `currency_amount`.

    Cost is non-decreasing in n, so a binary search over [0, limit]
    gives cost(n) <= currency_amount < cost(n + 1) whenever n < limit.
    `limit` defaults to the remaining supply.
    """
    if limit is None:
        limit = config.remaining_supply
    if currency_amount <= 0 or limit <= 0:
        return 0

    base_price = calculate_base_price(config)

    def affordable(n: int) -> bool:
        return apply_fee(_cost_for(config, base_price, n).final_cost, fee) <= currency_amount

    if affordable(limit):
        return limit

    lo, hi = 0, limit
    while hi - lo > 1:
        mid = (lo + hi) // 2
        if affordable(mid):
            lo = mid
        else:
            hi = mid
    logger.debug(f"{currency_amount} currency buys {lo} tokens at base price {base_price}")
    return lo
