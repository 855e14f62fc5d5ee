"""
Configuration management for a token launch.
"""
import json
import os
from dataclasses import dataclass, asdict

from tokenlaunch.fixed_point import WAD
from tokenlaunch.token import TOKEN_UNIT

DAY = 24 * 60 * 60


@dataclass
class PricingSettings:
    """Pricing curve configuration."""
    initial_price: int = WAD // 100          # 0.01 currency per token
    total_supply: int = 1_000_000 * TOKEN_UNIT
    alpha: int = -WAD                         # price doubles at half supply
    k: int = 10 * WAD
    beta: int = WAD // 2


@dataclass
class SaleSettings:
    """Sale limits and fees."""
    max_purchase_amount: int = 100_000 * TOKEN_UNIT
    transaction_fee: int = WAD // 100         # 1%
    mint_cap: int = 2_000_000 * TOKEN_UNIT
    treasury: str = ""                        # hex address, empty means the admin


@dataclass
class VestingSettings:
    """Vesting durations for sale purchases."""
    d_min: int = 30 * DAY
    d_max: int = 365 * DAY
    cliff: int = 0


@dataclass
class DatabaseConfig:
    """Database configuration."""
    path: str = "./launch_data"
    write_buffer_size: int = 64 * 1024 * 1024  # 64MB
    max_open_files: int = 1000


@dataclass
class MonitoringConfig:
    """Monitoring configuration."""
    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 9090


@dataclass
class Config:
    """Main configuration."""
    pricing: PricingSettings
    sale: SaleSettings
    vesting: VestingSettings
    database: DatabaseConfig
    monitoring: MonitoringConfig

    @classmethod
    def default(cls) -> 'Config':
        """Create default configuration."""
        return cls(
            pricing=PricingSettings(),
            sale=SaleSettings(),
            vesting=VestingSettings(),
            database=DatabaseConfig(),
            monitoring=MonitoringConfig()
        )

    @classmethod
    def from_dict(cls, data: dict) -> 'Config':
        return cls(
            pricing=PricingSettings(**data.get('pricing', {})),
            sale=SaleSettings(**data.get('sale', {})),
            vesting=VestingSettings(**data.get('vesting', {})),
            database=DatabaseConfig(**data.get('database', {})),
            monitoring=MonitoringConfig(**data.get('monitoring', {}))
        )

    @classmethod
    def from_file(cls, path: str) -> 'Config':
        """Load configuration from JSON file."""
        with open(path, 'r') as f:
            data = json.load(f)
        return cls.from_dict(data)

    def to_file(self, path: str):
        """Save configuration to JSON file."""
        os.makedirs(os.path.dirname(path) or '.', exist_ok=True)
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            'pricing': asdict(self.pricing),
            'sale': asdict(self.sale),
            'vesting': asdict(self.vesting),
            'database': asdict(self.database),
            'monitoring': asdict(self.monitoring)
        }
