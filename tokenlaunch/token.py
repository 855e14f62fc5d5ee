"""
Fungible token balances with the vesting transfer hook.

Mints and burns move supply and never consult vesting. Ordinary
transfers, while vesting is active, ask the guard whether the sender has
enough vested capacity and then record the transfer with it, both inside
the same atomic operation.
"""
import logging
from typing import Optional, Protocol

from tokenlaunch.access import AccessControl, DEFAULT_ADMIN_ROLE, MINTER_ROLE
from tokenlaunch.crypto import is_zero_address
from tokenlaunch.errors import (
    InvalidParameterError, TokensNotVestedError, TransferFailedError,
    VestingNotConfiguredError, ZeroAddressError,
)

logger = logging.getLogger(__name__)

TOKEN_UNIT = 10 ** 18


class TransferGuard(Protocol):
    """The two calls a token makes into the vesting ledger, plus the view it reports failures with."""

    def is_transfer_allowed(self, caller: bytes, sender: bytes, amount: int, token: bytes) -> bool:
        ...

    def record_transfer(self, caller: bytes, sender: bytes, amount: int, token: bytes):
        ...

    def get_vested_amount_for_user(self, token: bytes, user: bytes, at: int = None) -> int:
        ...


class TokenLedger:
    def __init__(self, store, address: bytes, guard: Optional[TransferGuard] = None,
                 name: str = "Launch Token", symbol: str = "LAUNCH"):
        self.store = store
        self.address = address
        self.guard = guard
        self.name = name
        self.symbol = symbol
        self.access = AccessControl(store, 'token:' + address.hex())
        self._balances = b'balance:' + address
        self._meta = b'token:' + address

    # Supply

    def _supply(self) -> dict:
        return self.store.get(self._meta, b'supply', {'total_minted': 0, 'total_burned': 0})

    @property
    def total_minted(self) -> int:
        return self._supply()['total_minted']

    @property
    def total_burned(self) -> int:
        return self._supply()['total_burned']

    @property
    def total_supply(self) -> int:
        supply = self._supply()
        return supply['total_minted'] - supply['total_burned']

    @property
    def vesting_active(self) -> bool:
        return self.store.get(self._meta, b'vesting_active', True)

    def balance_of(self, account: bytes) -> int:
        return self.store.get(self._balances, account, 0)

    def _set_balance(self, account: bytes, amount: int):
        self.store.set(self._balances, account, amount)

    # Administration

    def set_vesting_active(self, caller: bytes, active: bool):
        with self.store.atomic():
            self.access.require(caller, DEFAULT_ADMIN_ROLE)
            if bool(active) == self.vesting_active:
                return
            self.store.set(self._meta, b'vesting_active', bool(active))
            self.store.emit('VestingActiveUpdated', token=self.address, active=bool(active))
        logger.info(f"Vesting checks {'enabled' if active else 'disabled'} for {self.symbol}")

    def set_guard(self, guard: Optional[TransferGuard]):
        self.guard = guard

    # Supply changes

    def mint(self, caller: bytes, to: bytes, amount: int):
        if amount <= 0:
            raise InvalidParameterError('amount', amount)
        if is_zero_address(to):
            raise ZeroAddressError('to')
        with self.store.atomic():
            self.access.require(caller, MINTER_ROLE)
            supply = self._supply()
            supply['total_minted'] += amount
            self.store.set(self._meta, b'supply', supply)
            self._set_balance(to, self.balance_of(to) + amount)
            self.store.emit('Transfer', token=self.address, sender=b'', recipient=to, amount=amount)

    def burn(self, holder: bytes, amount: int):
        if amount <= 0:
            raise InvalidParameterError('amount', amount)
        with self.store.atomic():
            balance = self.balance_of(holder)
            if balance < amount:
                raise TransferFailedError(holder, b'', amount, f"balance {balance} is too low")
            supply = self._supply()
            supply['total_burned'] += amount
            self.store.set(self._meta, b'supply', supply)
            self._set_balance(holder, balance - amount)
            self.store.emit('Transfer', token=self.address, sender=holder, recipient=b'', amount=amount)

    # Transfers

    def transfer(self, sender: bytes, recipient: bytes, amount: int):
        """Move tokens between two accounts, subject to the sender's vested capacity."""
        if amount < 0:
            raise InvalidParameterError('amount', amount)
        if amount == 0:
            return
        if is_zero_address(recipient):
            raise ZeroAddressError('recipient')

        with self.store.atomic():
            balance = self.balance_of(sender)
            if balance < amount:
                raise TransferFailedError(sender, recipient, amount, f"balance {balance} is too low")

            checked = self.vesting_active
            if checked:
                if self.guard is None:
                    raise VestingNotConfiguredError(self.address)
                if not self.guard.is_transfer_allowed(self.address, sender, amount, self.address):
                    available = self.guard.get_vested_amount_for_user(self.address, sender)
                    raise TokensNotVestedError(sender, amount, available)

            self._set_balance(sender, balance - amount)
            self._set_balance(recipient, self.balance_of(recipient) + amount)
            if checked:
                self.guard.record_transfer(self.address, sender, amount, self.address)
            self.store.emit('Transfer', token=self.address, sender=sender,
                            recipient=recipient, amount=amount)
        logger.debug(f"{self.symbol}: {amount} from {sender.hex()[:8]} to {recipient.hex()[:8]}")
