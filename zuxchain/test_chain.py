"""
Test Suite 6: Chain Continuity

Tests block appending, parent-hash linkage, lookups and whole-chain
validation.
"""
import dataclasses
import pytest
from decimal import Decimal
from zuxchain.chain import Chain
from zuxchain.core import (
    GENESIS_PARENT_HASH,
    Block,
    Genesis,
    TokenCredit,
    TransactionFactory,
    ValidationError,
    WalletCreation,
)
from zuxchain.wallet import Wallet

TIMESTAMP = 1_735_689_600


class RecordingMonitor:
    def __init__(self):
        self.blocks = []

    def record_block(self, block_type, latency):
        self.blocks.append(block_type)


@pytest.fixture
def chain():
    return Chain(clock=lambda: TIMESTAMP)


@pytest.fixture
def populated_chain(chain):
    chain.mine_and_append([], Genesis())
    chain.mine_and_append([], WalletCreation("aaaaaaa"))
    chain.mine_and_append([], WalletCreation("bbbbbbb"))
    return chain


class TestAppend:
    def test_empty_chain(self, chain):
        assert chain.height == 0
        assert chain.get_latest_block() is None
        assert chain.validate_chain()

    def test_genesis(self, chain):
        block = chain.mine_and_append([], Genesis())

        assert block.id == 1
        assert block.parent_hash == GENESIS_PARENT_HASH
        assert block.difficulty == 1
        assert block.timestamp == TIMESTAMP
        assert block.network_name == "ZUX-Testnet"
        assert block.version == "1.0.0.0.0"
        assert block.inception_year == 2025
        assert chain.get_latest_block() is block

    def test_blocks_link_to_parent(self, populated_chain):
        blocks = populated_chain.blocks()

        assert [b.id for b in blocks] == [1, 2, 3]
        for parent, child in zip(blocks, blocks[1:]):
            assert child.parent_hash == parent.hash
            assert child.difficulty == 2

    def test_rejects_wrong_parent(self, populated_chain):
        block = Block.create(
            block_id=4, parent_hash="ab" * 32, transactions=[], event=Genesis(),
            network_name="ZUX-Testnet", version="1.0.0.0.0", inception_year=2025,
            timestamp=TIMESTAMP,
        )
        with pytest.raises(ValidationError):
            populated_chain.add_block(block)
        assert populated_chain.height == 3

    def test_rejects_wrong_id(self, populated_chain):
        block = Block.create(
            block_id=7, parent_hash=populated_chain.get_latest_block().hash,
            transactions=[], event=Genesis(), network_name="ZUX-Testnet",
            version="1.0.0.0.0", inception_year=2025, timestamp=TIMESTAMP,
        )
        with pytest.raises(ValidationError):
            populated_chain.add_block(block)

    def test_rejects_tampered_block(self, populated_chain):
        block = Block.create(
            block_id=4, parent_hash=populated_chain.get_latest_block().hash,
            transactions=[], event=WalletCreation("ccccccc"), network_name="ZUX-Testnet",
            version="1.0.0.0.0", inception_year=2025, timestamp=TIMESTAMP,
        )
        tampered = dataclasses.replace(block, timestamp=TIMESTAMP + 60)
        with pytest.raises(ValidationError):
            populated_chain.add_block(tampered)

        populated_chain.add_block(block)
        assert populated_chain.height == 4

    def test_rejects_lowered_difficulty(self, populated_chain):
        block = Block.create(
            block_id=4, parent_hash=populated_chain.get_latest_block().hash,
            transactions=[], event=WalletCreation("ccccccc"), network_name="ZUX-Testnet",
            version="1.0.0.0.0", inception_year=2025, timestamp=TIMESTAMP, difficulty=0,
        )
        with pytest.raises(ValidationError):
            populated_chain.add_block(block)
        assert populated_chain.height == 3

    def test_override_is_enforced_on_append(self):
        chain = Chain(clock=lambda: TIMESTAMP, difficulty_overrides={"Genesis": 3})
        block = Block.create(
            block_id=1, parent_hash=GENESIS_PARENT_HASH, transactions=[], event=Genesis(),
            network_name="ZUX-Testnet", version="1.0.0.0.0", inception_year=2025,
            timestamp=TIMESTAMP,
        )
        with pytest.raises(ValidationError):
            chain.add_block(block)
        assert chain.expected_difficulty("Genesis") == 3
        assert chain.expected_difficulty("Token Swap") == 2

    def test_difficulty_overrides(self):
        chain = Chain(clock=lambda: TIMESTAMP, difficulty_overrides={"Genesis": 3})
        block = chain.mine_and_append([], Genesis())

        assert block.difficulty == 3
        assert block.hash.startswith("000")

    def test_monitor_records_blocks(self):
        monitor = RecordingMonitor()
        chain = Chain(clock=lambda: TIMESTAMP, monitor=monitor)
        chain.mine_and_append([], Genesis())
        chain.mine_and_append([], WalletCreation("aaaaaaa"))

        assert monitor.blocks == ["Genesis", "Wallet Creation"]


class TestLookups:
    def test_by_height(self, populated_chain):
        assert populated_chain.get_block_by_height(2).event == WalletCreation("aaaaaaa")
        assert populated_chain.get_block_by_height(0) is None
        assert populated_chain.get_block_by_height(4) is None

    def test_by_hash(self, populated_chain):
        latest = populated_chain.get_latest_block()
        assert populated_chain.get_block(latest.hash) is latest
        assert populated_chain.get_block("00" * 32) is None

    def test_block_range(self, populated_chain):
        assert [b.id for b in populated_chain.blocks(start=2)] == [2, 3]
        assert [b.id for b in populated_chain.blocks(start=1, end=1)] == [1]

    def test_transaction_lookup(self, populated_chain):
        wallet = Wallet.create("aaaaaaa")
        wallet.set_balance("ZUX", 10)
        tx = TransactionFactory(clock=lambda: TIMESTAMP).create_transfer(wallet, "bbbbbbb", 5, "ZUX")

        block = populated_chain.mine_and_append([tx], TokenCredit("bbbbbbb", "ZUX", Decimal(5)))

        assert populated_chain.get_transaction(tx.id) == (tx, block.id)
        assert populated_chain.get_transaction(b"\x00" * 32) is None


class TestValidation:
    def test_valid_chain(self, populated_chain):
        assert populated_chain.validate_chain()

    def test_detects_broken_link(self, populated_chain):
        blocks = populated_chain._blocks
        blocks[1] = Block.create(
            block_id=2, parent_hash="ab" * 32, transactions=[],
            event=WalletCreation("aaaaaaa"), network_name="ZUX-Testnet",
            version="1.0.0.0.0", inception_year=2025, timestamp=TIMESTAMP,
        )
        assert not populated_chain.validate_chain()

    def test_detects_lowered_difficulty(self, populated_chain):
        blocks = populated_chain._blocks
        blocks[2] = Block.create(
            block_id=3, parent_hash=blocks[1].hash, transactions=[],
            event=WalletCreation("bbbbbbb"), network_name="ZUX-Testnet",
            version="1.0.0.0.0", inception_year=2025, timestamp=TIMESTAMP, difficulty=1,
        )
        assert not populated_chain.validate_chain()

    def test_detects_tampered_block(self, populated_chain):
        blocks = populated_chain._blocks
        blocks[2] = dataclasses.replace(blocks[2], event=WalletCreation("zzzzzzz"))
        assert not populated_chain.validate_chain()
