"""
Configuration management for the simulation.
"""
import json
import os
from typing import Optional
from dataclasses import dataclass, asdict


@dataclass
class ChainConfig:
    """Ledger configuration."""
    network_name: str = "ZUX-Testnet"
    version: str = "1.0.0.0.0"
    inception_year: int = 2025
    genesis_difficulty: int = 1
    block_difficulty: int = 2
    max_nonce: int = 1_000_000


@dataclass
class PoolConfig:
    """AMM pool configuration. Decimal values are kept as strings."""
    fee_rate: str = "0.003"
    price_history_limit: int = 1000
    window_seconds: int = 5
    liquidity_fraction: str = "0.0001"  # Share of the system wallet's ZUX seeded into the pool
    target_price: str = "0.01"  # USDZ per ZUX at funding


@dataclass
class SimulationConfig:
    """Wallet population and trading loop configuration."""
    wallet_count: int = 1000
    wallet_zux: str = "100"
    wallet_usdz: str = "500"
    system_zux: str = "1000000000"
    system_usdz: str = "5000000000"
    swap_count: int = 10000
    min_trade: str = "0.000001"
    max_selection_attempts: int = 100
    trade_on_hold: bool = True
    tick_delay: float = 0.005  # seconds
    progress_interval: int = 250
    strict_conservation: bool = False  # Check conservation after every block
    seed: Optional[int] = None  # Seeds the agents' RNG; None uses the OS CSPRNG


@dataclass
class MonitoringConfig:
    """Monitoring configuration."""
    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 9090


@dataclass
class Config:
    """Main configuration."""
    chain: ChainConfig
    pool: PoolConfig
    simulation: SimulationConfig
    monitoring: MonitoringConfig

    @classmethod
    def default(cls) -> 'Config':
        """Create default configuration."""
        return cls(
            chain=ChainConfig(),
            pool=PoolConfig(),
            simulation=SimulationConfig(),
            monitoring=MonitoringConfig()
        )

    @classmethod
    def from_file(cls, path: str) -> 'Config':
        """Load configuration from JSON file."""
        with open(path, 'r') as f:
            data = json.load(f)

        return cls(
            chain=ChainConfig(**data.get('chain', {})),
            pool=PoolConfig(**data.get('pool', {})),
            simulation=SimulationConfig(**data.get('simulation', {})),
            monitoring=MonitoringConfig(**data.get('monitoring', {}))
        )

    def to_file(self, path: str):
        """Save configuration to JSON file."""
        os.makedirs(os.path.dirname(path) or '.', exist_ok=True)
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            'chain': asdict(self.chain),
            'pool': asdict(self.pool),
            'simulation': asdict(self.simulation),
            'monitoring': asdict(self.monitoring)
        }

    @property
    def difficulty_overrides(self) -> dict:
        """Difficulty per block type for the chain."""
        overrides = {
            block_type: self.chain.block_difficulty
            for block_type in ("Wallet Creation", "Token Credit", "AMM Pool Creation", "Token Swap")
        }
        overrides["Genesis"] = self.chain.genesis_difficulty
        return overrides
