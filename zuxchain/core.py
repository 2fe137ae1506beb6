"""
Core data structures for the ledger: transactions, block events and
proof-of-work sealed blocks.
"""
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_DOWN, InvalidOperation
from enum import Enum
from typing import Callable, Optional, Union

from .crypto import (
    generate_hash,
    sha256_hex,
    sign,
    verify_signature,
)

ZUX = "ZUX"
USDZ = "USDZ"
SUPPORTED_CURRENCIES = (ZUX, USDZ)

SYSTEM_WALLET_ADDRESS = "SYSTEM"
AMM_POOL_ADDRESS = "AMM_POOL_ZUX_USDZ"

# Smallest representable amount (9 decimal places)
AMOUNT_QUANTUM = Decimal('0.000000001')

GENESIS_PARENT_HASH = "0" * 64
MAX_NONCE = 1_000_000
GENESIS_DIFFICULTY = 1
BLOCK_DIFFICULTY = 2
PRIVATE_NETWORK_NAME = "ZUX-Testnet"

# Block timestamps are displayed in UTC+8
DISPLAY_TIMEZONE = timezone(timedelta(hours=8))


class LedgerError(Exception):
    """Base class for all ledger failures."""
    pass


class ValidationError(LedgerError):
    """Raised when validation fails (bad amount, unsupported currency, bad block)."""
    pass


class BalanceError(LedgerError):
    """Raised when a wallet cannot cover an amount."""
    pass


class SignatureError(LedgerError):
    """Raised for malformed keys/signatures or failed verification."""
    pass


class MiningExhausted(LedgerError):
    """Raised when the nonce bound is reached without a valid hash."""
    pass


class PoolError(LedgerError):
    """Raised when a swap would be degenerate."""
    pass


class GenerationExhausted(LedgerError):
    """Raised when no unused address can be produced."""
    pass


class TradingStalled(LedgerError):
    """Raised when no wallet could complete a trade within the attempt bound."""
    pass


def to_amount(value) -> Decimal:
    """Convert a number to a Decimal amount, truncated to 9 decimal places."""
    if isinstance(value, float):
        value = repr(value)
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError) as e:
        raise ValidationError(f"Invalid amount: {value!r}") from e
    if not amount.is_finite():
        raise ValidationError(f"Invalid amount: {value!r}")
    return amount.quantize(AMOUNT_QUANTUM, rounding=ROUND_DOWN)


def format_amount(amount: Decimal) -> str:
    return f"{amount:.9f}"


def check_currency(currency: str):
    if currency not in SUPPORTED_CURRENCIES:
        raise ValidationError(f"Unsupported currency: {currency}")


class SwapDirection(Enum):
    """Side A is ZUX, side B is USDZ."""
    A_TO_B = "ZUX_TO_USDZ"
    B_TO_A = "USDZ_TO_ZUX"

    @property
    def input_currency(self) -> str:
        return ZUX if self is SwapDirection.A_TO_B else USDZ

    @property
    def output_currency(self) -> str:
        return USDZ if self is SwapDirection.A_TO_B else ZUX

    @property
    def arrow(self) -> str:
        return f"{self.input_currency} → {self.output_currency}"


# ==============================================================================
# TRANSACTIONS
# ==============================================================================

@dataclass(frozen=True)
class Transaction:
    sender: str
    recipient: str
    amount: Decimal
    currency: str
    timestamp: int
    signature: bytes
    sender_public_key: bytes

    @classmethod
    def from_dict(cls, data: dict):
        """Creates a Transaction object from a dictionary."""
        return cls(
            sender=data["sender"],
            recipient=data["recipient"],
            amount=to_amount(data["amount"]),
            currency=data["currency"],
            timestamp=int(data["timestamp"]),
            signature=bytes.fromhex(data["signature"]),
            sender_public_key=bytes.fromhex(data["sender_public_key"]),
        )

    def to_dict(self) -> dict:
        return {
            "sender": self.sender,
            "recipient": self.recipient,
            "amount": format_amount(self.amount),
            "currency": self.currency,
            "timestamp": self.timestamp,
            "signature": self.signature.hex(),
            "sender_public_key": self.sender_public_key.hex(),
        }

    def get_signing_data(self) -> bytes:
        """Returns the canonical byte representation for signing."""
        return signing_payload(self.sender, self.recipient, self.amount,
                               self.currency, self.timestamp)

    @property
    def hash(self) -> str:
        """SHA-256 hex of the signing payload; the transaction's Merkle leaf."""
        return sha256_hex(self.get_signing_data())

    @property
    def id(self) -> bytes:
        """The unique hash identifier of the transaction."""
        return generate_hash(self.get_signing_data())

    def verify(self):
        """
        Checks the amount, the currency and the signature against the
        embedded public key. Raises on the first failure.
        """
        if self.amount <= 0:
            raise ValidationError("Transaction amount must be greater than zero")
        if self.amount != to_amount(self.amount):
            raise ValidationError(f"Transaction amount has more than 9 decimal places: {self.amount}")
        check_currency(self.currency)

        try:
            valid = verify_signature(self.sender_public_key, self.signature,
                                     self.get_signing_data())
        except ValueError as e:
            raise SignatureError(str(e)) from e
        if not valid:
            raise SignatureError(f"Signature verification failed for transaction from {self.sender}")


def signing_payload(sender: str, recipient: str, amount: Decimal,
                    currency: str, timestamp: int) -> bytes:
    return f"{sender}{recipient}{format_amount(amount)}{currency}{timestamp}".encode('utf-8')


class TransactionFactory:
    """Builds and signs transfer and swap transactions."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock

    def create_transfer(self, sender_wallet, recipient: str, amount, currency: str) -> Transaction:
        """
        Create a signed transfer. Checks the amount, the currency and the
        sender's funds, but does not move any balance.
        """
        amount = to_amount(amount)
        if amount <= 0:
            raise ValidationError("Transaction amount must be greater than zero")
        check_currency(currency)

        balance = sender_wallet.get_balance(currency)
        if balance < amount:
            raise BalanceError(
                f"Insufficient balance: {format_amount(balance)} {currency} "
                f"(needed: {format_amount(amount)})"
            )

        timestamp = int(self.clock())
        payload = signing_payload(sender_wallet.address, recipient, amount, currency, timestamp)

        return Transaction(
            sender=sender_wallet.address,
            recipient=recipient,
            amount=amount,
            currency=currency,
            timestamp=timestamp,
            signature=sign(sender_wallet.signing_key, payload),
            sender_public_key=sender_wallet.public_key,
        )

    def create_swap(self, wallet, direction: SwapDirection, input_amount) -> Transaction:
        """A swap is a transfer of the input currency into the pool account."""
        return self.create_transfer(wallet, AMM_POOL_ADDRESS, input_amount, direction.input_currency)


# ==============================================================================
# BLOCK EVENTS
# ==============================================================================

@dataclass(frozen=True)
class Genesis:
    pass


@dataclass(frozen=True)
class WalletCreation:
    address: str


@dataclass(frozen=True)
class TokenCredit:
    address: str
    currency: str
    amount: Decimal


@dataclass(frozen=True)
class PoolCreation:
    address: str


@dataclass(frozen=True)
class Swap:
    address: str
    direction: SwapDirection
    input_amount: Decimal
    output_amount: Decimal

    @property
    def effective_price(self) -> Decimal:
        """Quote paid (or received) per unit of base."""
        if self.direction is SwapDirection.A_TO_B:
            return self.output_amount / self.input_amount
        return self.input_amount / self.output_amount


BlockEvent = Union[Genesis, WalletCreation, TokenCredit, PoolCreation, Swap]


def describe_event(event: BlockEvent) -> str:
    """Canonical text of an event, hashed into the Merkle commitment."""
    if isinstance(event, Genesis):
        return "genesis_block"
    elif isinstance(event, WalletCreation):
        return f"wallet_creation:{event.address}"
    elif isinstance(event, TokenCredit):
        return f"token_credit:{event.address}:{event.currency}:{format_amount(event.amount)}"
    elif isinstance(event, PoolCreation):
        return f"amm_pool_creation:{event.address}"
    elif isinstance(event, Swap):
        return (f"swap:{event.address}:{event.direction.value}:"
                f"{format_amount(event.input_amount)}:{format_amount(event.output_amount)}")
    raise TypeError(f"Unknown block event: {event!r}")


def event_block_type(event: BlockEvent) -> str:
    if isinstance(event, Genesis):
        return "Genesis"
    elif isinstance(event, WalletCreation):
        return "Wallet Creation"
    elif isinstance(event, TokenCredit):
        return "Token Credit"
    elif isinstance(event, PoolCreation):
        return "AMM Pool Creation"
    elif isinstance(event, Swap):
        return "Token Swap"
    raise TypeError(f"Unknown block event: {event!r}")


def event_to_dict(event: BlockEvent) -> dict:
    data = {"type": event_block_type(event)}
    if isinstance(event, Genesis):
        pass
    elif isinstance(event, (WalletCreation, PoolCreation)):
        data["address"] = event.address
    elif isinstance(event, TokenCredit):
        data.update(address=event.address, currency=event.currency,
                    amount=format_amount(event.amount))
    elif isinstance(event, Swap):
        data.update(address=event.address, direction=event.direction.value,
                    input_amount=format_amount(event.input_amount),
                    output_amount=format_amount(event.output_amount))
    else:
        raise TypeError(f"Unknown block event: {event!r}")
    return data


def difficulty_for(block_type: str) -> int:
    return GENESIS_DIFFICULTY if block_type == "Genesis" else BLOCK_DIFFICULTY


# ==============================================================================
# MERKLE COMMITMENT AND MINING
# ==============================================================================

def merkle_root(transactions, event: BlockEvent) -> str:
    """
    Commit to a transaction list plus the block's event.

    Leaves are the transaction hashes in order followed by the event hash.
    Adjacent pairs are hashed level by level; an unpaired trailing node is
    promoted unchanged, so the tree shape depends on the leaf count.
    """
    event_hash = sha256_hex(describe_event(event).encode('utf-8'))
    if not transactions:
        return event_hash

    level = [tx.hash for tx in transactions]
    level.append(event_hash)

    while len(level) > 1:
        next_level = []
        for i in range(0, len(level), 2):
            if i + 1 < len(level):
                next_level.append(sha256_hex((level[i] + level[i + 1]).encode('utf-8')))
            else:
                next_level.append(level[i])
        level = next_level

    return level[0]


def header_content(block_id: int, parent_hash: str, merkle_root: str, timestamp: int,
                   block_class: str, block_type: str, version: str,
                   inception_year: int, network_name: str, nonce: int) -> bytes:
    return (
        f"{block_id}{parent_hash}{merkle_root}{timestamp}{block_class}"
        f"{block_type}{version}{inception_year}{network_name}{nonce}"
    ).encode('utf-8')


def meets_difficulty(block_hash: str, difficulty: int) -> bool:
    return block_hash.startswith("0" * difficulty)


def mine_block(block_id: int, parent_hash: str, merkle_root: str, timestamp: int,
               block_class: str, block_type: str, version: str, inception_year: int,
               network_name: str, difficulty: int, max_nonce: int = MAX_NONCE) -> tuple[str, int]:
    """
    Search nonces 0..max_nonce-1 for a header hash with `difficulty`
    leading zero hex characters. Returns (hash, nonce).
    """
    for nonce in range(max_nonce):
        block_hash = sha256_hex(header_content(
            block_id, parent_hash, merkle_root, timestamp, block_class,
            block_type, version, inception_year, network_name, nonce
        ))
        if meets_difficulty(block_hash, difficulty):
            return block_hash, nonce

    raise MiningExhausted(
        f"Failed to mine block {block_id}: could not find valid nonce within {max_nonce} attempts"
    )


# ==============================================================================
# BLOCKS
# ==============================================================================

@dataclass(frozen=True)
class Block:
    id: int
    hash: str
    parent_hash: str
    merkle_root: str
    timestamp: int
    difficulty: int
    nonce: int
    block_class: str
    block_type: str
    version: str
    inception_year: int
    network_name: str
    transactions: tuple = field(default_factory=tuple)
    event: BlockEvent = field(default_factory=Genesis)

    @classmethod
    def create(cls, block_id: int, parent_hash: str, transactions, event: BlockEvent,
               network_name: str, version: str, inception_year: int,
               timestamp: Optional[int] = None, difficulty: Optional[int] = None,
               max_nonce: int = MAX_NONCE) -> 'Block':
        """Assemble and mine a block for one event."""
        transactions = tuple(transactions)
        timestamp = int(time.time()) if timestamp is None else int(timestamp)
        block_type = event_block_type(event)
        block_class = "Private" if network_name == PRIVATE_NETWORK_NAME else "Public"
        if difficulty is None:
            difficulty = difficulty_for(block_type)

        root = merkle_root(transactions, event)
        block_hash, nonce = mine_block(
            block_id, parent_hash, root, timestamp, block_class, block_type,
            version, inception_year, network_name, difficulty, max_nonce
        )

        return cls(
            id=block_id,
            hash=block_hash,
            parent_hash=parent_hash,
            merkle_root=root,
            timestamp=timestamp,
            difficulty=difficulty,
            nonce=nonce,
            block_class=block_class,
            block_type=block_type,
            version=version,
            inception_year=inception_year,
            network_name=network_name,
            transactions=transactions,
            event=event,
        )

    def calculate_hash(self) -> str:
        """Recompute the header hash from the stored fields and nonce."""
        return sha256_hex(header_content(
            self.id, self.parent_hash, self.merkle_root, self.timestamp,
            self.block_class, self.block_type, self.version,
            self.inception_year, self.network_name, self.nonce
        ))

    def verify(self, expected_difficulty: Optional[int] = None):
        """
        Verify the proof of work, the commitment and every transaction.
        The difficulty must match `expected_difficulty`, or the default
        schedule for the block type when none is given.
        """
        if expected_difficulty is None:
            expected_difficulty = difficulty_for(self.block_type)
        if self.difficulty != expected_difficulty:
            raise ValidationError(
                f"Block {self.id} difficulty {self.difficulty} does not match "
                f"the {self.block_type} schedule ({expected_difficulty})"
            )

        calculated = self.calculate_hash()
        if calculated != self.hash:
            raise ValidationError(f"Invalid block hash: expected {self.hash}, got {calculated}")

        if not meets_difficulty(self.hash, self.difficulty):
            raise ValidationError(f"Block hash does not meet difficulty target: {self.difficulty}")

        if merkle_root(self.transactions, self.event) != self.merkle_root:
            raise ValidationError(f"Merkle root mismatch in block {self.id}")

        for tx in self.transactions:
            tx.verify()

    @property
    def formatted_time(self) -> str:
        dt = datetime.fromtimestamp(self.timestamp, tz=DISPLAY_TIMEZONE)
        return dt.strftime("%Y-%m-%d %H:%M:%S UTC+08:00")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "hash": self.hash,
            "parent_hash": self.parent_hash,
            "merkle_root": self.merkle_root,
            "timestamp": self.timestamp,
            "difficulty": self.difficulty,
            "nonce": self.nonce,
            "block_class": self.block_class,
            "block_type": self.block_type,
            "version": self.version,
            "inception_year": self.inception_year,
            "network_name": self.network_name,
            "transactions": [tx.to_dict() for tx in self.transactions],
            "event": event_to_dict(self.event),
        }
