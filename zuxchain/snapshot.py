"""
Immutable views of the simulation for explorers, monitors and reports.

Nothing here holds a reference to live state: every snapshot is built by
copying values out under the owner's lock.
"""
import dataclasses
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

import msgpack


def _encode(value):
    if isinstance(value, Decimal):
        return str(value)
    if dataclasses.is_dataclass(value):
        return value.to_dict()
    if isinstance(value, (list, tuple)):
        return [_encode(v) for v in value]
    if isinstance(value, dict):
        return {k: _encode(v) for k, v in value.items()}
    return value


class _PlainData:
    """to_dict/from_dict for dataclasses whose Decimal fields travel as strings."""

    # field name -> nested snapshot class (for tuples, the element class)
    NESTED = {}
    # fields holding a dict of Decimal values
    DECIMAL_MAPS = ()

    def to_dict(self) -> dict:
        return {f.name: _encode(getattr(self, f.name)) for f in dataclasses.fields(self)}

    @classmethod
    def from_dict(cls, data: dict):
        kwargs = {}
        for f in dataclasses.fields(cls):
            value = data[f.name]
            nested = cls.NESTED.get(f.name)
            if value is None:
                pass
            elif nested is not None and isinstance(value, list):
                value = tuple(nested.from_dict(v) for v in value)
            elif nested is not None:
                value = nested.from_dict(value)
            elif f.type is Decimal:
                value = Decimal(value)
            elif f.name in cls.DECIMAL_MAPS:
                value = {k: Decimal(v) for k, v in value.items()}
            kwargs[f.name] = value
        return cls(**kwargs)


@dataclass(frozen=True)
class PricePoint(_PlainData):
    timestamp: int
    price: Decimal


@dataclass(frozen=True)
class BlockInfo(_PlainData):
    id: int
    hash: str
    parent_hash: str
    timestamp: int
    formatted_time: str
    block_type: str
    transactions_count: int
    difficulty: int
    nonce: int
    network_name: str
    version: str

    @classmethod
    def from_block(cls, block) -> 'BlockInfo':
        return cls(
            id=block.id,
            hash=block.hash,
            parent_hash=block.parent_hash,
            timestamp=block.timestamp,
            formatted_time=block.formatted_time,
            block_type=block.block_type,
            transactions_count=len(block.transactions),
            difficulty=block.difficulty,
            nonce=block.nonce,
            network_name=block.network_name,
            version=block.version,
        )


@dataclass(frozen=True)
class PoolSnapshot(_PlainData):
    NESTED = {'price_history': PricePoint}
    DECIMAL_MAPS = ('fees_collected',)

    reserve_a: Decimal
    reserve_b: Decimal
    k: Decimal
    price: Decimal
    fee_rate: Decimal
    swap_count: int
    fees_collected: dict
    volume_total: Decimal
    volume_window: Decimal
    window_open: Decimal
    window_high: Decimal
    window_low: Decimal
    inception_open: Decimal
    inception_high: Decimal
    inception_low: Decimal
    price_history: tuple = field(default_factory=tuple)

    @property
    def total_liquidity(self) -> Decimal:
        """Pool value in USDZ at the current price."""
        return self.reserve_a * self.price + self.reserve_b

    @property
    def window_change_pct(self) -> Decimal:
        if self.window_open <= 0:
            return Decimal('0')
        return (self.price - self.window_open) / self.window_open * 100

    @property
    def inception_change_pct(self) -> Decimal:
        if self.inception_open <= 0:
            return Decimal('0')
        return (self.price - self.inception_open) / self.inception_open * 100

    @property
    def avg_trade_size(self) -> Decimal:
        if self.swap_count == 0:
            return Decimal('0')
        return self.volume_total / self.swap_count


@dataclass(frozen=True)
class WalletSnapshot(_PlainData):
    address: str
    zux_balance: Decimal
    usdz_balance: Decimal
    total_value: Decimal
    trade_count: int
    is_whale: bool
    is_mega_whale: bool
    last_activity: int


@dataclass(frozen=True)
class SystemWalletInfo(_PlainData):
    address: str
    zux_balance: Decimal
    usdz_balance: Decimal
    total_issued_zux: Decimal
    total_issued_usdz: Decimal
    active_wallets: int
    total_transactions: int


@dataclass(frozen=True)
class SimulationSnapshot(_PlainData):
    NESTED = {
        'blocks': BlockInfo,
        'pool': PoolSnapshot,
        'wallets': WalletSnapshot,
        'system_wallet': SystemWalletInfo,
    }

    taken_at: int
    chain_height: int
    swap_count: int
    blocks: tuple
    pool: Optional[PoolSnapshot]
    wallets: tuple
    system_wallet: Optional[SystemWalletInfo]

    def pack(self) -> bytes:
        return msgpack.packb(self.to_dict(), use_bin_type=True)

    @classmethod
    def unpack(cls, encoded: bytes) -> 'SimulationSnapshot':
        return cls.from_dict(msgpack.unpackb(encoded, raw=False))
