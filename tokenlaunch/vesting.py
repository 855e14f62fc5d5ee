"""
Vesting ledger: per-user linear vesting schedules per registered token.

A user may hold any number of schedules for a token. Their vested but
not yet transferred amounts add up to the user's transfer capacity. The
token ledger asks `is_transfer_allowed` before moving tokens and calls
`record_transfer` right after, which consumes capacity oldest schedule
first so that transferred tokens are never counted twice.
"""
import time
import logging
from dataclasses import dataclass, asdict
from typing import Callable, Optional

from tokenlaunch.access import AccessControl, DEFAULT_ADMIN_ROLE, VESTING_CREATOR_ROLE
from tokenlaunch.crypto import ZERO_ADDRESS, is_zero_address
from tokenlaunch.errors import (
    InvalidScheduleParamsError, InvalidUserSchedulesError, InvalidVestingConfigError,
    NotTokenContractError, TokenRegistrationError, TokensNotVestedError,
)

logger = logging.getLogger(__name__)

CONFIGS = b'vesting-config'
SCHEDULES = b'vesting-schedule'
USER_INDEX = b'vesting-user'
META = b'vesting-meta'


@dataclass(frozen=True)
class TokenVestingConfig:
    d_min: int
    d_max: int
    total_supply_cap: int
    launch_contract: bytes = ZERO_ADDRESS

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> 'TokenVestingConfig':
        return cls(**data)


@dataclass
class VestingSchedule:
    id: int
    token: bytes
    user: bytes
    start_time: int
    cliff_duration: int
    duration: int
    total_amount: int
    transferred_amount: int = 0

    @property
    def cliff_end_time(self) -> int:
        return self.start_time + self.cliff_duration

    @property
    def end_time(self) -> int:
        return self.start_time + self.duration

    def vested_at(self, t: int) -> int:
        return vested_amount(self, t)

    def available_at(self, t: int) -> int:
        """Vested but not yet transferred."""
        return max(vested_amount(self, t) - self.transferred_amount, 0)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> 'VestingSchedule':
        return cls(**data)


def vested_amount(schedule: VestingSchedule, t: int) -> int:
    """
    Amount of `schedule` vested at time t.

    Nothing before the cliff ends; afterwards the linear fraction is
    measured from start_time, not from the end of the cliff.
    """
    if t < schedule.start_time + schedule.cliff_duration:
        return 0
    if t >= schedule.start_time + schedule.duration:
        return schedule.total_amount
    return schedule.total_amount * (t - schedule.start_time) // schedule.duration


def _schedule_key(schedule_id: int) -> bytes:
    return schedule_id.to_bytes(8, 'big')


class VestingLedger:
    def __init__(self, store, address: bytes, clock: Callable[[], float] = time.time):
        self.store = store
        self.address = address
        self.clock = clock
        self.access = AccessControl(store, 'vesting:' + address.hex())

    def now(self) -> int:
        return int(self.clock())

    # ------------------------------------------------------------------ #
    # Token registration
    # ------------------------------------------------------------------ #

    @staticmethod
    def _validate_config(d_min: int, d_max: int, total_supply_cap: int):
        if d_min <= 0:
            raise InvalidVestingConfigError('d_min', d_min)
        if d_max <= 0 or d_max < d_min:
            raise InvalidVestingConfigError('d_max', d_max)
        if total_supply_cap <= 0:
            raise InvalidVestingConfigError('total_supply_cap', total_supply_cap)

    def get_vesting_config(self, token: bytes) -> Optional[TokenVestingConfig]:
        data = self.store.get(CONFIGS, token)
        return TokenVestingConfig.from_dict(data) if data else None

    def _require_config(self, token: bytes) -> TokenVestingConfig:
        config = self.get_vesting_config(token)
        if config is None:
            raise TokenRegistrationError(token, "token is not registered")
        return config

    def register_token(self, caller: bytes, token: bytes, d_min: int, d_max: int,
                       total_supply_cap: int, launch_contract: bytes = ZERO_ADDRESS):
        with self.store.atomic():
            self.access.require(caller, DEFAULT_ADMIN_ROLE)
            if is_zero_address(token):
                raise InvalidVestingConfigError('token', token)
            if self.get_vesting_config(token) is not None:
                raise TokenRegistrationError(token, "token is already registered")
            self._validate_config(d_min, d_max, total_supply_cap)

            config = TokenVestingConfig(d_min, d_max, total_supply_cap, launch_contract)
            self.store.set(CONFIGS, token, config.to_dict())
            self.store.emit('TokenRegistered', token=token, d_min=d_min, d_max=d_max,
                            total_supply_cap=total_supply_cap, launch_contract=launch_contract)
        logger.info(f"Registered token {token.hex()[:8]} with durations [{d_min}, {d_max}]")

    def set_vesting_config(self, caller: bytes, token: bytes, d_min: int, d_max: int,
                           total_supply_cap: int = None, launch_contract: bytes = None):
        with self.store.atomic():
            self.access.require(caller, DEFAULT_ADMIN_ROLE)
            current = self._require_config(token)
            if total_supply_cap is None:
                total_supply_cap = current.total_supply_cap
            if launch_contract is None:
                launch_contract = current.launch_contract
            self._validate_config(d_min, d_max, total_supply_cap)

            config = TokenVestingConfig(d_min, d_max, total_supply_cap, launch_contract)
            self.store.set(CONFIGS, token, config.to_dict())
            self.store.emit('VestingConfigUpdated', token=token, d_min=d_min, d_max=d_max,
                            total_supply_cap=total_supply_cap, launch_contract=launch_contract)

    # ------------------------------------------------------------------ #
    # Schedules
    # ------------------------------------------------------------------ #

    @property
    def next_schedule_id(self) -> int:
        return self.store.get(META, b'next_id', 1)

    def create_vesting_schedule(self, caller: bytes, token: bytes, user: bytes,
                                start_time: int, duration: int, cliff_duration: int,
                                total_amount: int) -> int:
        """Append a new schedule for (token, user) and return its id."""
        with self.store.atomic():
            config = self._require_config(token)
            if caller != config.launch_contract or is_zero_address(caller):
                self.access.require(caller, VESTING_CREATOR_ROLE)

            if is_zero_address(user):
                raise InvalidScheduleParamsError('user', user)
            if not config.d_min <= duration <= config.d_max:
                raise InvalidScheduleParamsError('duration', duration)
            if not 0 <= cliff_duration < duration:
                raise InvalidScheduleParamsError('cliff_duration', cliff_duration)
            if not 0 < total_amount <= config.total_supply_cap:
                raise InvalidScheduleParamsError('total_amount', total_amount)
            now = self.now()
            if start_time + duration <= now:
                raise InvalidScheduleParamsError('end_time', start_time + duration)
            if start_time > now + config.d_max:
                raise InvalidScheduleParamsError('start_time', start_time)

            schedule_id = self.next_schedule_id
            schedule = VestingSchedule(schedule_id, token, user, start_time,
                                       cliff_duration, duration, total_amount)
            self.store.set(SCHEDULES, _schedule_key(schedule_id), schedule.to_dict())
            ids = self.store.get(USER_INDEX, token + user, [])
            ids.append(schedule_id)
            self.store.set(USER_INDEX, token + user, ids)
            self.store.set(META, b'next_id', schedule_id + 1)

            self.store.emit('VestingScheduleCreated', schedule_id=schedule_id, token=token,
                            user=user, start_time=start_time, cliff_duration=cliff_duration,
                            duration=duration, total_amount=total_amount)
        logger.debug(f"Schedule {schedule_id}: {total_amount} for {user.hex()[:8]} over {duration}s")
        return schedule_id

    def get_schedule_by_id(self, schedule_id: int) -> Optional[VestingSchedule]:
        data = self.store.get(SCHEDULES, _schedule_key(schedule_id))
        return VestingSchedule.from_dict(data) if data else None

    def get_user_vesting_schedules(self, token: bytes, user: bytes) -> list[VestingSchedule]:
        """All schedules of `user` for `token`, oldest first."""
        ids = self.store.get(USER_INDEX, token + user, [])
        return [self.get_schedule_by_id(schedule_id) for schedule_id in ids]

    def get_vested_amount_for_user(self, token: bytes, user: bytes, at: int = None) -> int:
        """Vested minus already transferred, summed over the user's schedules."""
        if at is None:
            at = self.now()
        return sum(s.available_at(at) for s in self.get_user_vesting_schedules(token, user))

    # ------------------------------------------------------------------ #
    # Token hook
    # ------------------------------------------------------------------ #

    def _require_token_caller(self, caller: bytes, token: bytes):
        if caller != token or self.get_vesting_config(token) is None:
            raise NotTokenContractError(caller, token)

    def is_transfer_allowed(self, caller: bytes, sender: bytes, amount: int, token: bytes) -> bool:
        self._require_token_caller(caller, token)
        return amount <= self.get_vested_amount_for_user(token, sender)

    def record_transfer(self, caller: bytes, sender: bytes, amount: int, token: bytes):
        """
        Consume `amount` of the sender's vested capacity, oldest schedule first.

        Fails without touching any schedule if the capacity is short.
        """
        self._require_token_caller(caller, token)
        if amount == 0:
            return

        with self.store.atomic():
            schedules = self.get_user_vesting_schedules(token, sender)
            if not schedules:
                raise InvalidUserSchedulesError(token, sender)

            now = self.now()
            available = sum(s.available_at(now) for s in schedules)
            if amount > available:
                raise TokensNotVestedError(sender, amount, available)

            remaining = amount
            for schedule in schedules:
                if remaining == 0:
                    break
                take = min(schedule.available_at(now), remaining)
                if take == 0:
                    continue
                schedule.transferred_amount += take
                remaining -= take
                self.store.set(SCHEDULES, _schedule_key(schedule.id), schedule.to_dict())

            self.store.emit('TransferRecorded', user=sender, token=token, amount=amount)
        logger.debug(f"Recorded transfer of {amount} by {sender.hex()[:8]}")
