"""
Append-only chain of mined blocks.
"""
import logging
import threading
import time
from typing import Optional

from .core import (
    GENESIS_PARENT_HASH,
    MAX_NONCE,
    Block,
    LedgerError,
    BlockEvent,
    Transaction,
    ValidationError,
    difficulty_for,
    event_block_type,
)

logger = logging.getLogger(__name__)

NETWORK_NAME = "ZUX-Testnet"
BLOCK_VERSION = "1.0.0.0.0"
INCEPTION_YEAR = 2025


class Chain:
    """
    Holds every block in order. Block ids start at 1 and equal the
    block's height; each block's parent hash is its predecessor's hash.
    """

    def __init__(self, network_name: str = NETWORK_NAME, version: str = BLOCK_VERSION,
                 inception_year: int = INCEPTION_YEAR, max_nonce: int = MAX_NONCE,
                 difficulty_overrides: Optional[dict] = None,
                 clock=time.time, monitor=None):
        self.network_name = network_name
        self.version = version
        self.inception_year = inception_year
        self.max_nonce = max_nonce
        # block type -> difficulty; unset types use the default schedule
        self.difficulty_overrides = dict(difficulty_overrides or {})
        self.clock = clock
        self.monitor = monitor

        self.lock = threading.RLock()
        self._blocks = []
        self._by_hash = {}
        self._tx_index = {}

    @property
    def height(self) -> int:
        with self.lock:
            return len(self._blocks)

    def get_latest_block(self) -> Optional[Block]:
        """Returns the most recent block, or None before genesis."""
        with self.lock:
            return self._blocks[-1] if self._blocks else None

    def get_block_by_height(self, height: int) -> Optional[Block]:
        with self.lock:
            if 1 <= height <= len(self._blocks):
                return self._blocks[height - 1]
            return None

    def get_block(self, block_hash: str) -> Optional[Block]:
        with self.lock:
            return self._by_hash.get(block_hash)

    def get_transaction(self, tx_id: bytes) -> Optional[tuple[Transaction, int]]:
        """Look up a transaction by id; returns (transaction, block height)."""
        with self.lock:
            return self._tx_index.get(tx_id)

    def blocks(self, start: int = 1, end: Optional[int] = None) -> list:
        """Blocks with heights in [start, end], as a new list."""
        with self.lock:
            end = len(self._blocks) if end is None else end
            return self._blocks[max(start, 1) - 1:end]

    def add_block(self, block: Block):
        """
        Append a mined block. Raises ValidationError when the block does not
        extend the current head or fails verification.
        """
        with self.lock:
            parent = self.get_latest_block()
            expected_parent = parent.hash if parent else GENESIS_PARENT_HASH
            expected_id = len(self._blocks) + 1

            if block.parent_hash != expected_parent:
                raise ValidationError(
                    f"Parent hash mismatch for block {block.id}: "
                    f"expected {expected_parent}, got {block.parent_hash}"
                )
            if block.id != expected_id:
                raise ValidationError(f"Invalid block id: expected {expected_id}, got {block.id}")

            block.verify(self.expected_difficulty(block.block_type))

            self._blocks.append(block)
            self._by_hash[block.hash] = block
            for tx in block.transactions:
                self._tx_index[tx.id] = (tx, block.id)

        logger.debug(f"Block {block.id} ({block.block_type}) added: {block.hash}")

    def mine_and_append(self, transactions, event: BlockEvent,
                        timestamp: Optional[int] = None) -> Block:
        """Mine the next block for `event` on top of the head and append it."""
        with self.lock:
            parent = self.get_latest_block()
            parent_hash = parent.hash if parent else GENESIS_PARENT_HASH
            timestamp = int(self.clock()) if timestamp is None else timestamp

            start = time.time()
            block = Block.create(
                block_id=len(self._blocks) + 1,
                parent_hash=parent_hash,
                transactions=transactions,
                event=event,
                network_name=self.network_name,
                version=self.version,
                inception_year=self.inception_year,
                timestamp=timestamp,
                difficulty=self.expected_difficulty(event_block_type(event)),
                max_nonce=self.max_nonce,
            )
            latency = time.time() - start

            self.add_block(block)

        if self.monitor:
            self.monitor.record_block(block.block_type, latency)
        return block

    def expected_difficulty(self, block_type: str) -> int:
        """Difficulty required of `block_type` blocks on this chain."""
        difficulty = self.difficulty_overrides.get(block_type)
        return difficulty_for(block_type) if difficulty is None else difficulty

    def validate_chain(self) -> bool:
        """Validates entire chain integrity."""
        with self.lock:
            blocks = list(self._blocks)

        parent_hash = GENESIS_PARENT_HASH
        for height, block in enumerate(blocks, start=1):
            if block.id != height:
                logger.error(f"Block id {block.id} found at height {height}")
                return False
            if block.parent_hash != parent_hash:
                logger.error(f"Missing parent block: {block.parent_hash}")
                return False
            try:
                block.verify(self.expected_difficulty(block.block_type))
            except LedgerError as e:
                logger.error(f"Block {height} failed verification: {e}")
                return False
            parent_hash = block.hash

        return True
