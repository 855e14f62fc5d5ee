"""
Wiring for a complete launch: state store, currency rail, vesting ledger,
sale token and distribution controller over one DB.

Component addresses derive from the admin address, so deploying again
with the same admin over an existing DB picks up the stored state
instead of initializing a new launch.
"""
import time
import logging
from typing import Callable, Optional

from tokenlaunch.access import MINTER_ROLE
from tokenlaunch.config import Config
from tokenlaunch.crypto import contract_address
from tokenlaunch.db import DB, MemoryDB
from tokenlaunch.launch import LaunchConfig, LaunchController
from tokenlaunch.monitoring import Monitor
from tokenlaunch.payments import CurrencyLedger
from tokenlaunch.pricing import PricingConfig
from tokenlaunch.store import StateStore
from tokenlaunch.token import TokenLedger
from tokenlaunch.vesting import VestingLedger

logger = logging.getLogger(__name__)


class LaunchSystem:
    def __init__(self, store: StateStore, currency: CurrencyLedger, vesting: VestingLedger,
                 token: TokenLedger, controller: LaunchController, monitor: Optional[Monitor] = None):
        self.store = store
        self.currency = currency
        self.vesting = vesting
        self.token = token
        self.controller = controller
        self.monitor = monitor

    @property
    def events(self):
        return self.store.events

    @classmethod
    def deploy(cls, config: Config, admin: bytes, db=None,
               clock: Callable[[], float] = time.time, with_monitor: bool = None) -> 'LaunchSystem':
        """
        Build (or reopen) the launch described by `config`, administered by `admin`.

        `db` defaults to an in-memory store. A Monitor is attached when
        `with_monitor` is true, or when it is None and monitoring is
        enabled in the config; the exporter only starts in the latter case.
        """
        if db is None:
            db = MemoryDB()
        store = StateStore(db)

        currency = CurrencyLedger(store)
        vesting = VestingLedger(store, contract_address(admin, 'vesting'), clock)
        token = TokenLedger(store, contract_address(admin, 'token'), guard=vesting)
        controller = LaunchController(store, contract_address(admin, 'launch'),
                                      token, vesting, currency, clock)

        if controller.initialized:
            logger.info(f"Reopened launch {controller.address.hex()[:8]} "
                        f"in phase {controller.get_phase().name}")
        else:
            cls._initialize(config, admin, store, vesting, token, controller)

        monitor = None
        if with_monitor or (with_monitor is None and config.monitoring.enabled):
            monitor = Monitor(config.monitoring.host, config.monitoring.port)
            store.events.subscribe(monitor.observe)
            monitor.update(controller)
            if config.monitoring.enabled:
                monitor.start_server()

        return cls(store, currency, vesting, token, controller, monitor)

    @classmethod
    def open(cls, config: Config, admin: bytes, **kwargs) -> 'LaunchSystem':
        """Deploy over the LevelDB database named in `config.database`."""
        db = DB(config.database.path,
                write_buffer_size=config.database.write_buffer_size,
                max_open_files=config.database.max_open_files)
        return cls.deploy(config, admin, db=db, **kwargs)

    @staticmethod
    def _initialize(config: Config, admin: bytes, store: StateStore, vesting: VestingLedger,
                    token: TokenLedger, controller: LaunchController):
        treasury = bytes.fromhex(config.sale.treasury) if config.sale.treasury else admin
        launch_config = LaunchConfig(
            pricing=PricingConfig(
                initial_price=config.pricing.initial_price,
                total_supply=config.pricing.total_supply,
                remaining_supply=config.pricing.total_supply,
                alpha=config.pricing.alpha,
                k=config.pricing.k,
                beta=config.pricing.beta,
            ),
            max_purchase_amount=config.sale.max_purchase_amount,
            treasury=treasury,
            transaction_fee=config.sale.transaction_fee,
            mint_cap=config.sale.mint_cap,
            vesting_cliff=config.vesting.cliff,
        )

        with store.atomic():
            vesting.access.bootstrap(admin)
            vesting.register_token(admin, token.address, config.vesting.d_min, config.vesting.d_max,
                                   config.sale.mint_cap, controller.address)
            token.access.bootstrap(admin)
            token.access.grant_role(admin, MINTER_ROLE, controller.address)
            controller.initialize(admin, launch_config)
        logger.info(f"Deployed launch {controller.address.hex()[:8]} for token {token.address.hex()[:8]}")

    def close(self):
        if self.monitor:
            self.monitor.stop_server()
        self.store.db.close()
