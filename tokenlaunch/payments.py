"""
Native value (currency) balances.

Value transfers are external calls from the launch's point of view: the
receiving account may refuse them. `send` reports a refusal by returning
False instead of raising, leaving it to the caller to decide whether the
refusal is fatal.
"""
import logging

from tokenlaunch.errors import InvalidParameterError, TransferFailedError

logger = logging.getLogger(__name__)

BALANCES = b'native'
REFUSING = b'native-refuses'


class CurrencyLedger:
    def __init__(self, store):
        self.store = store

    def balance_of(self, account: bytes) -> int:
        return self.store.get(BALANCES, account, 0)

    def accepts_payments(self, account: bytes) -> bool:
        return not self.store.get(REFUSING, account, False)

    def set_accepts_payments(self, account: bytes, accepts: bool):
        """Mark an account as able (or unable) to receive value."""
        with self.store.atomic():
            self.store.set(REFUSING, account, not accepts)

    def fund(self, account: bytes, amount: int):
        if amount < 0:
            raise InvalidParameterError('amount', amount)
        with self.store.atomic():
            self.store.set(BALANCES, account, self.balance_of(account) + amount)

    def send(self, sender: bytes, recipient: bytes, amount: int) -> bool:
        """
        Move `amount` from sender to recipient.

        Raises TransferFailedError when the sender cannot cover it; returns
        False (nothing moved) when the recipient refuses the value.
        """
        if amount < 0:
            raise InvalidParameterError('amount', amount)
        if amount == 0:
            return True
        if not self.accepts_payments(recipient):
            logger.warning(f"{recipient.hex()[:8]} refused {amount} from {sender.hex()[:8]}")
            return False

        with self.store.atomic():
            balance = self.balance_of(sender)
            if balance < amount:
                raise TransferFailedError(sender, recipient, amount,
                                          f"balance {balance} is too low")
            self.store.set(BALANCES, sender, balance - amount)
            self.store.set(BALANCES, recipient, self.balance_of(recipient) + amount)
        return True
