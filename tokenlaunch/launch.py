"""
Distribution controller: the phase machine and the purchase protocol.

A purchase pulls the buyer's tendered value into the launch account,
applies every internal update (supply, mint total, token issue, vesting
schedule, statistics), pays the treasury and only then refunds any
excess. Everything up to and including the treasury payment is atomic;
a refused refund is kept in the launch account and recorded for the
admin sweep instead of undoing the purchase.
"""
import time
import logging
from dataclasses import dataclass, asdict
from enum import IntEnum
from typing import Callable, NamedTuple

from tokenlaunch import pricing
from tokenlaunch.access import (
    AccessControl, DEFAULT_ADMIN_ROLE, PARAMETER_MANAGER_ROLE, PAUSER_ROLE,
)
from tokenlaunch.crypto import ZERO_ADDRESS, is_zero_address
from tokenlaunch.errors import (
    EnforcedPauseError, ExceedsMaxPurchaseError, InsufficientMintCapacityError,
    InsufficientPaymentError, InsufficientSupplyError, InvalidParameterError,
    InvalidPhaseTransitionError, TransferFailedError, ValidationError,
    WrongPhaseError, ZeroAddressError,
)
from tokenlaunch.fixed_point import WAD
from tokenlaunch.pricing import CostBreakdown, PricingConfig

logger = logging.getLogger(__name__)

MAX_TRANSACTION_FEE = WAD // 10


class Phase(IntEnum):
    NOT_STARTED = 0
    DISTRIBUTION = 1
    AMM = 2
    MARKET = 3


@dataclass
class LaunchConfig:
    pricing: PricingConfig
    max_purchase_amount: int
    treasury: bytes
    transaction_fee: int
    mint_cap: int
    total_minted: int = 0
    vesting_cliff: int = 0

    def to_dict(self) -> dict:
        data = asdict(self)
        data['pricing'] = self.pricing.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'LaunchConfig':
        data = dict(data)
        data['pricing'] = PricingConfig.from_dict(data['pricing'])
        return cls(**data)


@dataclass
class DistributionStats:
    total_raised: int = 0
    total_participants: int = 0
    largest_purchase: int = 0
    largest_purchaser: bytes = ZERO_ADDRESS
    # derived from supply on read, never stored
    percentage_sold: int = 0

    def to_dict(self) -> dict:
        data = asdict(self)
        del data['percentage_sold']
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'DistributionStats':
        data = dict(data)
        data.pop('percentage_sold', None)
        return cls(**data)


class PurchaseResult(NamedTuple):
    token_amount: int
    base_price: int
    premium: int
    total_cost: int
    total_cost_with_fee: int
    refund: int
    vesting_duration: int
    schedule_id: int


class PurchasePreview(NamedTuple):
    token_amount: int
    total_cost_with_fee: int
    base_price: int
    premium: int


def validate_transaction_fee(fee: int):
    if not 0 < fee <= MAX_TRANSACTION_FEE:
        raise InvalidParameterError('transaction_fee', fee)


def validate_launch_config(config: LaunchConfig):
    pricing.validate_config(config.pricing)
    if config.max_purchase_amount <= 0:
        raise InvalidParameterError('max_purchase_amount', config.max_purchase_amount)
    if is_zero_address(config.treasury):
        raise ZeroAddressError('treasury')
    validate_transaction_fee(config.transaction_fee)
    if config.mint_cap <= 0:
        raise InvalidParameterError('mint_cap', config.mint_cap)
    if not 0 <= config.total_minted <= config.mint_cap:
        raise InvalidParameterError('total_minted', config.total_minted)
    if config.vesting_cliff < 0:
        raise InvalidParameterError('vesting_cliff', config.vesting_cliff)


class LaunchController:
    def __init__(self, store, address: bytes, token, vesting, currency,
                 clock: Callable[[], float] = time.time):
        self.store = store
        self.address = address
        self.token = token
        self.vesting = vesting
        self.currency = currency
        self.clock = clock
        self.access = AccessControl(store, 'launch:' + address.hex())
        self._namespace = b'launch:' + address
        self._participants = b'participant:' + address

    # ------------------------------------------------------------------ #
    # State records
    # ------------------------------------------------------------------ #

    @property
    def initialized(self) -> bool:
        return self.store.get(self._namespace, b'config') is not None

    def initialize(self, admin: bytes, config: LaunchConfig):
        """Store the launch configuration and make `admin` its administrator."""
        with self.store.atomic():
            if self.initialized:
                raise ValidationError("Launch is already initialized")
            validate_launch_config(config)
            vesting_config = self.vesting.get_vesting_config(self.token.address)
            if vesting_config is None:
                raise ValidationError("Sale token is not registered for vesting")
            if config.vesting_cliff >= vesting_config.d_min:
                raise InvalidParameterError('vesting_cliff', config.vesting_cliff)
            self._save_config(config)
            self.store.set(self._namespace, b'phase', int(Phase.NOT_STARTED))
            self.store.set(self._namespace, b'paused', False)
            self.store.set(self._namespace, b'unclaimed_refunds', 0)
            self.store.set(self._namespace, b'stats', DistributionStats().to_dict())
            self.access.bootstrap(admin)
            for role in (PAUSER_ROLE, PARAMETER_MANAGER_ROLE):
                self.access.grant_role(admin, role, admin)
        logger.info(f"Launch {self.address.hex()[:8]} initialized with supply "
                    f"{config.pricing.total_supply}")

    def get_launch_config(self) -> LaunchConfig:
        data = self.store.get(self._namespace, b'config')
        if data is None:
            raise ValidationError("Launch is not initialized")
        return LaunchConfig.from_dict(data)

    def _save_config(self, config: LaunchConfig):
        self.store.set(self._namespace, b'config', config.to_dict())

    def get_pricing_config(self) -> PricingConfig:
        return self.get_launch_config().pricing

    def get_phase(self) -> Phase:
        return Phase(self.store.get(self._namespace, b'phase', int(Phase.NOT_STARTED)))

    def is_paused(self) -> bool:
        return self.store.get(self._namespace, b'paused', False)

    @property
    def unclaimed_refunds(self) -> int:
        return self.store.get(self._namespace, b'unclaimed_refunds', 0)

    def get_distribution_stats(self) -> DistributionStats:
        stats = DistributionStats.from_dict(self.store.get(self._namespace, b'stats'))
        stats.percentage_sold = self.get_percentage_sold()
        return stats

    def has_participated(self, account: bytes) -> bool:
        return self.store.get(self._participants, account, False)

    # ------------------------------------------------------------------ #
    # Phase machine
    # ------------------------------------------------------------------ #

    def _transition(self, caller: bytes, target: Phase):
        with self.store.atomic():
            self.access.require(caller, DEFAULT_ADMIN_ROLE)
            current = self.get_phase()
            if target != current + 1:
                raise InvalidPhaseTransitionError(current, target)
            self.store.set(self._namespace, b'phase', int(target))
            self.store.emit('PhaseChanged', old_phase=int(current), new_phase=int(target))
        logger.info(f"Launch phase {current.name} -> {target.name}")

    def start_distribution(self, caller: bytes):
        self._transition(caller, Phase.DISTRIBUTION)

    def move_to_amm_phase(self, caller: bytes):
        self._transition(caller, Phase.AMM)

    def move_to_market_phase(self, caller: bytes):
        self._transition(caller, Phase.MARKET)

    # ------------------------------------------------------------------ #
    # Pricing views
    # ------------------------------------------------------------------ #

    def get_remaining_supply(self) -> int:
        return self.get_pricing_config().remaining_supply

    def get_base_price(self) -> int:
        return pricing.calculate_base_price(self.get_pricing_config())

    def calculate_premium(self, amount: int) -> int:
        return pricing.calculate_premium(self.get_pricing_config(), amount)

    def calculate_purchase_cost(self, amount: int) -> CostBreakdown:
        return pricing.calculate_total_cost(self.get_pricing_config(), amount)

    def calculate_total_cost(self, amount: int) -> tuple[int, int]:
        """(total_cost, total_cost_with_fee) of buying `amount` right now."""
        config = self.get_launch_config()
        cost = pricing.calculate_total_cost(config.pricing, amount)
        return cost.final_cost, pricing.apply_fee(cost.final_cost, config.transaction_fee)

    def calculate_tokens_for_currency(self, value: int) -> int:
        config = self.get_launch_config()
        limit = min(config.max_purchase_amount, config.pricing.remaining_supply)
        return pricing.calculate_tokens_for_currency(config.pricing, value,
                                                     config.transaction_fee, limit)

    def calculate_vesting_duration(self) -> int:
        """
        Vesting period for a purchase made now.

        Runs from the token's d_min at full supply up to d_max as the
        supply sells out.
        """
        vesting_config = self.vesting.get_vesting_config(self.token.address)
        if vesting_config is None:
            raise ValidationError("Sale token is not registered for vesting")
        config = self.get_pricing_config()
        spread = vesting_config.d_max - vesting_config.d_min
        return vesting_config.d_min + spread * config.sold // config.total_supply

    def preview_purchase_with_currency(self, value: int) -> PurchasePreview:
        amount = self.calculate_tokens_for_currency(value)
        if amount == 0:
            return PurchasePreview(0, 0, 0, 0)
        config = self.get_launch_config()
        cost = pricing.calculate_total_cost(config.pricing, amount)
        return PurchasePreview(amount, pricing.apply_fee(cost.final_cost, config.transaction_fee),
                               cost.base_price, cost.premium)

    # ------------------------------------------------------------------ #
    # Supply views
    # ------------------------------------------------------------------ #

    def get_supply_info(self) -> dict:
        config = self.get_launch_config()
        return {
            'total_distribution_supply': config.pricing.total_supply,
            'remaining_distribution_supply': config.pricing.remaining_supply,
            'total_mint_cap': config.mint_cap,
            'total_minted': config.total_minted,
            'mint_remaining': config.mint_cap - config.total_minted,
        }

    def get_percentage_sold(self) -> int:
        """Percentage of the distribution supply sold, WAD-scaled (50% -> 50 * WAD)."""
        config = self.get_pricing_config()
        return config.sold * 100 * WAD // config.total_supply

    # ------------------------------------------------------------------ #
    # Purchases
    # ------------------------------------------------------------------ #

    def _require_purchasable(self):
        phase = self.get_phase()
        if phase != Phase.DISTRIBUTION:
            raise WrongPhaseError(phase, Phase.DISTRIBUTION)
        if self.is_paused():
            raise EnforcedPauseError()

    def purchase_tokens(self, buyer: bytes, token_amount: int, value: int) -> PurchaseResult:
        """Buy exactly `token_amount` base units, paying with `value`."""
        with self.store.atomic():
            self._require_purchasable()
            config = self.get_launch_config()
            if token_amount <= 0:
                raise InvalidParameterError('token_amount', token_amount)
            if token_amount > config.max_purchase_amount:
                raise ExceedsMaxPurchaseError(token_amount, config.max_purchase_amount)
            if token_amount > config.pricing.remaining_supply:
                raise InsufficientSupplyError(token_amount, config.pricing.remaining_supply)

            cost = pricing.calculate_total_cost(config.pricing, token_amount)
            total_with_fee = pricing.apply_fee(cost.final_cost, config.transaction_fee)
            if value < total_with_fee:
                raise InsufficientPaymentError(total_with_fee, value)
            return self._execute_purchase(buyer, config, token_amount, cost, total_with_fee, value)

    def purchase_tokens_with_currency(self, buyer: bytes, value: int) -> PurchaseResult:
        """Buy as many tokens as `value` affords and refund the remainder."""
        with self.store.atomic():
            self._require_purchasable()
            if value <= 0:
                raise InvalidParameterError('value', value)
            config = self.get_launch_config()
            remaining = config.pricing.remaining_supply
            if remaining == 0:
                raise InsufficientSupplyError(1, 0)

            limit = min(config.max_purchase_amount, remaining)
            token_amount = pricing.calculate_tokens_for_currency(
                config.pricing, value, config.transaction_fee, limit)
            if token_amount == 0:
                cheapest = pricing.calculate_total_cost(config.pricing, 1)
                raise InsufficientPaymentError(
                    pricing.apply_fee(cheapest.final_cost, config.transaction_fee), value)

            cost = pricing.calculate_total_cost(config.pricing, token_amount)
            total_with_fee = pricing.apply_fee(cost.final_cost, config.transaction_fee)
            return self._execute_purchase(buyer, config, token_amount, cost, total_with_fee, value)

    def _execute_purchase(self, buyer: bytes, config: LaunchConfig, token_amount: int,
                          cost: CostBreakdown, total_with_fee: int, value: int) -> PurchaseResult:
        if not self.currency.send(buyer, self.address, value):
            raise TransferFailedError(buyer, self.address, value, "launch refused payment")

        vesting_duration = self.calculate_vesting_duration()

        if config.total_minted + token_amount > config.mint_cap:
            raise InsufficientMintCapacityError(token_amount, config.mint_cap - config.total_minted)
        config.pricing = config.pricing.with_remaining(config.pricing.remaining_supply - token_amount)
        config.total_minted += token_amount
        self._save_config(config)

        self.token.mint(self.address, buyer, token_amount)
        schedule_id = self.vesting.create_vesting_schedule(
            self.address, self.token.address, buyer, int(self.clock()),
            vesting_duration, config.vesting_cliff, token_amount)

        stats = self.get_distribution_stats()
        stats.total_raised += cost.final_cost
        if not self.has_participated(buyer):
            self.store.set(self._participants, buyer, True)
            stats.total_participants += 1
        if token_amount > stats.largest_purchase:
            stats.largest_purchase = token_amount
            stats.largest_purchaser = buyer
        self.store.set(self._namespace, b'stats', stats.to_dict())

        if not self.currency.send(self.address, config.treasury, total_with_fee):
            raise TransferFailedError(self.address, config.treasury, total_with_fee,
                                      "treasury refused payment")

        refund = value - total_with_fee
        if refund and not self.currency.send(self.address, buyer, refund):
            self.store.set(self._namespace, b'unclaimed_refunds', self.unclaimed_refunds + refund)
            self.store.emit('RefundFailed', buyer=buyer, amount=refund)
            logger.warning(f"Refund of {refund} to {buyer.hex()[:8]} failed; kept for sweep")

        self.store.emit('TokensPurchased', buyer=buyer, amount=token_amount,
                        base_price=cost.base_price, premium=cost.premium,
                        total_cost=cost.final_cost, vesting_duration=vesting_duration)
        logger.info(f"{buyer.hex()[:8]} bought {token_amount} for {total_with_fee} "
                    f"(vesting {vesting_duration}s)")
        return PurchaseResult(token_amount, cost.base_price, cost.premium, cost.final_cost,
                              total_with_fee, refund, vesting_duration, schedule_id)

    # ------------------------------------------------------------------ #
    # Administration
    # ------------------------------------------------------------------ #

    def update_price_parameters(self, caller: bytes, alpha: int, k: int, beta: int):
        with self.store.atomic():
            self.access.require(caller, PARAMETER_MANAGER_ROLE)
            pricing.validate_price_parameters(alpha, k, beta)
            config = self.get_launch_config()
            config.pricing = PricingConfig(config.pricing.initial_price, config.pricing.total_supply,
                                           config.pricing.remaining_supply, alpha, k, beta)
            self._save_config(config)
            self.store.emit('PriceParametersUpdated', alpha=alpha, k=k, beta=beta)

    def set_max_purchase_amount(self, caller: bytes, amount: int):
        with self.store.atomic():
            self.access.require(caller, PARAMETER_MANAGER_ROLE)
            if amount <= 0:
                raise InvalidParameterError('max_purchase_amount', amount)
            config = self.get_launch_config()
            old_amount, config.max_purchase_amount = config.max_purchase_amount, amount
            self._save_config(config)
            self.store.emit('MaxPurchaseAmountUpdated', old_amount=old_amount, new_amount=amount)

    def set_treasury(self, caller: bytes, treasury: bytes):
        with self.store.atomic():
            self.access.require(caller, DEFAULT_ADMIN_ROLE)
            if is_zero_address(treasury):
                raise ZeroAddressError('treasury')
            config = self.get_launch_config()
            old_treasury, config.treasury = config.treasury, treasury
            self._save_config(config)
            self.store.emit('TreasuryUpdated', old_treasury=old_treasury, new_treasury=treasury)

    def set_transaction_fee(self, caller: bytes, fee: int):
        with self.store.atomic():
            self.access.require(caller, PARAMETER_MANAGER_ROLE)
            validate_transaction_fee(fee)
            config = self.get_launch_config()
            old_fee, config.transaction_fee = config.transaction_fee, fee
            self._save_config(config)
            self.store.emit('TransactionFeeUpdated', old_fee=old_fee, new_fee=fee)

    def update_mint_cap(self, caller: bytes, new_cap: int):
        """Raise the mint cap; it never decreases and must cover what is minted and still for sale."""
        with self.store.atomic():
            self.access.require(caller, DEFAULT_ADMIN_ROLE)
            config = self.get_launch_config()
            if new_cap <= config.mint_cap:
                raise InvalidParameterError('mint_cap', new_cap)
            if new_cap < config.total_minted + config.pricing.remaining_supply:
                raise InvalidParameterError('mint_cap', new_cap)
            old_cap, config.mint_cap = config.mint_cap, new_cap
            self._save_config(config)
            self.store.emit('MintCapUpdated', old_cap=old_cap, new_cap=new_cap)
        logger.info(f"Mint cap raised from {old_cap} to {new_cap}")

    def admin_mint(self, caller: bytes, to: bytes, amount: int):
        """Mint outside the sale. The tokens carry no vesting schedule."""
        with self.store.atomic():
            self.access.require(caller, DEFAULT_ADMIN_ROLE)
            if is_zero_address(to):
                raise ZeroAddressError('to')
            if amount <= 0:
                raise InvalidParameterError('amount', amount)
            config = self.get_launch_config()
            available = config.mint_cap - config.total_minted - config.pricing.remaining_supply
            if amount > available:
                raise InsufficientMintCapacityError(amount, max(available, 0))
            config.total_minted += amount
            self._save_config(config)
            self.token.mint(self.address, to, amount)
            self.store.emit('AdminMint', to=to, amount=amount)
        logger.info(f"Admin minted {amount} to {to.hex()[:8]}")

    def pause(self, caller: bytes):
        with self.store.atomic():
            self.access.require(caller, PAUSER_ROLE)
            if self.is_paused():
                raise EnforcedPauseError()
            self.store.set(self._namespace, b'paused', True)
            self.store.emit('Paused', account=caller)
        logger.warning(f"Distribution paused by {caller.hex()[:8]}")

    def unpause(self, caller: bytes):
        with self.store.atomic():
            self.access.require(caller, PAUSER_ROLE)
            if not self.is_paused():
                raise InvalidParameterError('paused', False)
            self.store.set(self._namespace, b'paused', False)
            self.store.emit('Unpaused', account=caller)
        logger.info(f"Distribution unpaused by {caller.hex()[:8]}")

    def recover_token(self, caller: bytes, token_ledger, amount: int, to: bytes):
        """Move a foreign token balance held by the launch account to `to`."""
        with self.store.atomic():
            self.access.require(caller, DEFAULT_ADMIN_ROLE)
            if token_ledger.address == self.token.address:
                raise InvalidParameterError('token', token_ledger.address)
            if is_zero_address(to):
                raise ZeroAddressError('to')
            if amount <= 0:
                raise InvalidParameterError('amount', amount)
            token_ledger.transfer(self.address, to, amount)
            self.store.emit('TokenRecovered', token=token_ledger.address, to=to, amount=amount)

    def sweep_unclaimed_refunds(self, caller: bytes, to: bytes) -> int:
        """Send every refund buyers refused to `to` and return the amount swept."""
        with self.store.atomic():
            self.access.require(caller, DEFAULT_ADMIN_ROLE)
            if is_zero_address(to):
                raise ZeroAddressError('to')
            amount = self.unclaimed_refunds
            if amount == 0:
                raise InvalidParameterError('unclaimed_refunds', amount)
            if not self.currency.send(self.address, to, amount):
                raise TransferFailedError(self.address, to, amount, "recipient refused sweep")
            self.store.set(self._namespace, b'unclaimed_refunds', 0)
            self.store.emit('RefundsSwept', to=to, amount=amount)
        logger.info(f"Swept {amount} unclaimed refunds to {to.hex()[:8]}")
        return amount
