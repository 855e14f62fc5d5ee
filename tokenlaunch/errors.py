"""
Failure conditions raised by the launch, vesting and token ledgers.

Every condition carries the values that caused it so callers can explain
the rejection without re-deriving anything.
"""


class ValidationError(Exception):
    """Raised when validation fails."""
    pass


class UnauthorizedError(ValidationError):
    def __init__(self, caller: bytes, role: str):
        self.caller = caller
        self.role = role
        super().__init__(f"Account {caller.hex()} is missing role {role}")


# Phase errors

class WrongPhaseError(ValidationError):
    def __init__(self, current, required):
        self.current = current
        self.required = required
        super().__init__(f"Operation requires phase {required.name}, current phase is {current.name}")


class InvalidPhaseTransitionError(ValidationError):
    def __init__(self, current, requested):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot move from phase {current.name} to {requested.name}")


class EnforcedPauseError(ValidationError):
    def __init__(self):
        super().__init__("Distribution is paused")


# Payment errors

class InsufficientPaymentError(ValidationError):
    def __init__(self, required: int, provided: int):
        self.required = required
        self.provided = provided
        super().__init__(f"Insufficient payment: required {required}, provided {provided}")


class ExceedsMaxPurchaseError(ValidationError):
    def __init__(self, requested: int, maximum: int):
        self.requested = requested
        self.maximum = maximum
        super().__init__(f"Purchase of {requested} exceeds maximum {maximum}")


class InsufficientSupplyError(ValidationError):
    def __init__(self, requested: int, available: int):
        self.requested = requested
        self.available = available
        super().__init__(f"Requested {requested} tokens, only {available} remain")


class InsufficientMintCapacityError(ValidationError):
    def __init__(self, requested: int, available: int):
        self.requested = requested
        self.available = available
        super().__init__(f"Minting {requested} exceeds remaining mint capacity {available}")


# Configuration errors

class InvalidParameterError(ValidationError):
    def __init__(self, name: str, value=None):
        self.name = name
        self.value = value
        super().__init__(f"Invalid parameter {name}: {value!r}")


class ZeroAddressError(ValidationError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"{name} must not be the zero address")


# Transfer errors

class TransferFailedError(ValidationError):
    def __init__(self, sender: bytes, recipient: bytes, amount: int, reason: str = ""):
        self.sender = sender
        self.recipient = recipient
        self.amount = amount
        self.reason = reason
        super().__init__(
            f"Transfer of {amount} from {sender.hex()} to {recipient.hex()} failed"
            + (f": {reason}" if reason else "")
        )


# Vesting errors

class NotTokenContractError(ValidationError):
    def __init__(self, caller: bytes, token: bytes):
        self.caller = caller
        self.token = token
        super().__init__(f"Caller {caller.hex()} is not the registered token {token.hex()}")


class TokenRegistrationError(ValidationError):
    def __init__(self, token: bytes, reason: str):
        self.token = token
        self.reason = reason
        super().__init__(f"Token {token.hex()}: {reason}")


class InvalidVestingConfigError(ValidationError):
    def __init__(self, param: str, value=None):
        self.param = param
        self.value = value
        super().__init__(f"Invalid vesting config {param}: {value!r}")


class InvalidScheduleParamsError(ValidationError):
    def __init__(self, param: str, value=None):
        self.param = param
        self.value = value
        super().__init__(f"Invalid schedule parameter {param}: {value!r}")


class InvalidUserSchedulesError(ValidationError):
    def __init__(self, token: bytes, user: bytes):
        self.token = token
        self.user = user
        super().__init__(f"No vesting schedules for {user.hex()} on token {token.hex()}")


class TokensNotVestedError(ValidationError):
    def __init__(self, user: bytes, requested: int, available: int = None):
        self.user = user
        self.requested = requested
        self.available = available
        message = f"Transfer of {requested} by {user.hex()} exceeds vested capacity"
        if available is not None:
            message += f" {available}"
        super().__init__(message)


class VestingNotConfiguredError(ValidationError):
    def __init__(self, token: bytes):
        self.token = token
        super().__init__(f"Token {token.hex()} has vesting active but no vesting ledger")
