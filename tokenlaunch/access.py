"""
Role-based authorization context.

Each component holds its own AccessControl: a persisted mapping from
account address to the set of roles granted to it. Holders of
DEFAULT_ADMIN_ROLE grant and revoke every role.
"""
import logging

from tokenlaunch.errors import UnauthorizedError, ZeroAddressError
from tokenlaunch.crypto import is_zero_address

logger = logging.getLogger(__name__)

DEFAULT_ADMIN_ROLE = 'DEFAULT_ADMIN'
PAUSER_ROLE = 'PAUSER'
PARAMETER_MANAGER_ROLE = 'PARAMETER_MANAGER'
MINTER_ROLE = 'MINTER'
VESTING_CREATOR_ROLE = 'VESTING_CREATOR'


class AccessControl:
    def __init__(self, store, scope: str):
        self.store = store
        self._namespace = b'roles:' + scope.encode()

    def _roles(self, account: bytes) -> list:
        return self.store.get(self._namespace, account, [])

    def has_role(self, role: str, account: bytes) -> bool:
        return role in self._roles(account)

    def require(self, caller: bytes, role: str):
        if not self.has_role(role, caller):
            logger.warning(f"Rejected {caller.hex()[:8]}: missing {role}")
            raise UnauthorizedError(caller, role)

    def _grant(self, role: str, account: bytes):
        if is_zero_address(account):
            raise ZeroAddressError('account')
        roles = self._roles(account)
        if role not in roles:
            roles.append(role)
            self.store.set(self._namespace, account, roles)
            self.store.emit('RoleGranted', role=role, account=account)

    def bootstrap(self, admin: bytes):
        """Give `admin` the admin role; used once when a component is deployed."""
        with self.store.atomic():
            self._grant(DEFAULT_ADMIN_ROLE, admin)

    def grant_role(self, caller: bytes, role: str, account: bytes):
        with self.store.atomic():
            self.require(caller, DEFAULT_ADMIN_ROLE)
            self._grant(role, account)

    def revoke_role(self, caller: bytes, role: str, account: bytes):
        with self.store.atomic():
            self.require(caller, DEFAULT_ADMIN_ROLE)
            roles = self._roles(account)
            if role in roles:
                roles.remove(role)
                self.store.set(self._namespace, account, roles)
                self.store.emit('RoleRevoked', role=role, account=account)
