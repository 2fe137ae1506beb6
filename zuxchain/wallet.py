"""
Wallets: an address, an Ed25519 key pair and per-currency balances.
"""
from decimal import Decimal

import nacl.signing

from .core import (
    SUPPORTED_CURRENCIES,
    BalanceError,
    ValidationError,
    check_currency,
    format_amount,
    to_amount,
)
from .crypto import encode_base64, generate_key_pair, serialize_public_key


class Wallet:
    def __init__(self, address: str, signing_key: nacl.signing.SigningKey):
        self.address = address
        self.signing_key = signing_key
        self.balances = {currency: Decimal('0') for currency in SUPPORTED_CURRENCIES}
        # TradingAgent, attached once trading starts
        self.agent = None

    @classmethod
    def create(cls, address: str, initial_balance=0) -> 'Wallet':
        """Create a wallet with a fresh key pair, every currency set to `initial_balance`."""
        signing_key, _ = generate_key_pair()
        wallet = cls(address, signing_key)
        initial_balance = to_amount(initial_balance)
        if initial_balance > 0:
            for currency in SUPPORTED_CURRENCIES:
                wallet.set_balance(currency, initial_balance)
        return wallet

    @property
    def public_key(self) -> bytes:
        return serialize_public_key(self.signing_key.verify_key)

    @property
    def public_key_base64(self) -> str:
        return encode_base64(self.public_key)

    @property
    def private_key_base64(self) -> str:
        return encode_base64(self.signing_key.encode())

    def get_balance(self, currency: str) -> Decimal:
        check_currency(currency)
        return self.balances[currency]

    def set_balance(self, currency: str, amount):
        check_currency(currency)
        amount = to_amount(amount)
        if amount < 0:
            raise ValidationError(f"Balance cannot be negative: {format_amount(amount)}")
        self.balances[currency] = amount

    def add_balance(self, currency: str, amount):
        check_currency(currency)
        amount = to_amount(amount)
        if amount < 0:
            raise ValidationError(f"Cannot add a negative amount: {format_amount(amount)}")
        self.balances[currency] += amount

    def subtract_balance(self, currency: str, amount):
        check_currency(currency)
        amount = to_amount(amount)
        if amount < 0:
            raise ValidationError(f"Cannot subtract a negative amount: {format_amount(amount)}")
        if self.balances[currency] < amount:
            raise BalanceError(
                f"Insufficient {currency} balance in {self.address}: "
                f"{format_amount(self.balances[currency])} < {format_amount(amount)}"
            )
        self.balances[currency] -= amount

    def __repr__(self) -> str:
        return (
            f"Wallet(address={self.address}, "
            f"ZUX={format_amount(self.balances['ZUX'])}, "
            f"USDZ={format_amount(self.balances['USDZ'])})"
        )
