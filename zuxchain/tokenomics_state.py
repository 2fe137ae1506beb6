"""
Issuance tracking and the conservation check.

Tokens only enter the ledger through issuance into the system wallet; every
later movement is a transfer or a swap, so the sum of all holdings per
currency must always equal what was issued.
"""
import logging
from decimal import Decimal

from .core import (
    SUPPORTED_CURRENCIES,
    SwapDirection,
    ValidationError,
    check_currency,
    format_amount,
    to_amount,
)

logger = logging.getLogger(__name__)


class TokenomicsState:
    """
    Tracks issued supply and traded volume per currency.
    """

    def __init__(self, data: dict = None):
        if data is None:
            data = {
                'issued': {currency: '0' for currency in SUPPORTED_CURRENCIES},
                'traded': {currency: '0' for currency in SUPPORTED_CURRENCIES},
            }

        self.issued = {c: Decimal(data['issued'].get(c, '0')) for c in SUPPORTED_CURRENCIES}
        self.traded = {c: Decimal(data['traded'].get(c, '0')) for c in SUPPORTED_CURRENCIES}
        self._validate()

    def to_dict(self) -> dict:
        return {
            'issued': {c: str(v) for c, v in self.issued.items()},
            'traded': {c: str(v) for c, v in self.traded.items()},
        }

    def issue(self, currency: str, amount) -> Decimal:
        """Record newly created supply."""
        check_currency(currency)
        amount = to_amount(amount)
        if amount <= 0:
            raise ValidationError("Issued amount must be greater than zero")
        self.issued[currency] += amount
        logger.info(f"Issued {format_amount(amount)} {currency} (total {format_amount(self.issued[currency])})")
        return amount

    def total_issued(self, currency: str) -> Decimal:
        check_currency(currency)
        return self.issued[currency]

    def record_swap(self, direction: SwapDirection, input_amount: Decimal, output_amount: Decimal):
        self.traded[direction.input_currency] += input_amount
        self.traded[direction.output_currency] += output_amount

    def check_conservation(self, holdings: dict):
        """
        Compare total holdings per currency (wallets plus pool) with issuance.
        Raises ValidationError on any mismatch.
        """
        for currency in SUPPORTED_CURRENCIES:
            held = holdings.get(currency, Decimal('0'))
            if held != self.issued[currency]:
                raise ValidationError(
                    f"Conservation violated for {currency}: "
                    f"held {format_amount(held)}, issued {format_amount(self.issued[currency])}"
                )

    def __repr__(self) -> str:
        return (
            f"TokenomicsState("
            f"issued_zux={format_amount(self.issued['ZUX'])}, "
            f"issued_usdz={format_amount(self.issued['USDZ'])}, "
            f"traded_zux={format_amount(self.traded['ZUX'])}, "
            f"traded_usdz={format_amount(self.traded['USDZ'])})"
        )

    def _validate(self):
        """Ensure state consistency."""
        for currency in SUPPORTED_CURRENCIES:
            if self.issued[currency] < 0 or self.traded[currency] < 0:
                raise ValueError(f"Issued/traded amounts cannot be negative ({currency})")
