"""
Per-wallet trading behaviour.

Each agent draws a handful of personality traits once (whale, mega whale,
FOMO/panic sensitivity, directional bias) and then decides on every tick
whether to buy ZUX with USDZ, sell ZUX for USDZ, or hold.
"""
import random
from collections import deque
from decimal import Decimal
from enum import Enum
from typing import Optional

PRICE_MEMORY = 3
BASE_TRADE_PROBABILITY = 0.99

WHALE_PROBABILITY = 0.10
MEGA_WHALE_PROBABILITY = 0.01
BIAS_PROBABILITY = 0.30
THRESHOLD_RANGE = (0.005, 0.03)


class TradeAction(Enum):
    BUY = "buy"    # quote in, base out
    SELL = "sell"  # base in, quote out
    HOLD = "hold"


class TradingAgent:
    def __init__(self, initial_price, rng: Optional[random.Random] = None,
                 is_whale: Optional[bool] = None,
                 is_mega_whale: Optional[bool] = None,
                 fomo_threshold: Optional[float] = None,
                 panic_threshold: Optional[float] = None,
                 bias: Optional[int] = None,
                 base_trade_probability: float = BASE_TRADE_PROBABILITY):
        self.rng = rng or random.SystemRandom()

        # Draw order is fixed so seeded agents are reproducible
        whale = self.rng.random() < WHALE_PROBABILITY
        mega_whale = self.rng.random() < MEGA_WHALE_PROBABILITY
        fomo = self.rng.uniform(*THRESHOLD_RANGE)
        panic = self.rng.uniform(*THRESHOLD_RANGE)
        if self.rng.random() < BIAS_PROBABILITY:
            drawn_bias = 1 if self.rng.random() < 0.5 else -1
        else:
            drawn_bias = 0

        self.is_whale = whale if is_whale is None else is_whale
        self.is_mega_whale = mega_whale if is_mega_whale is None else is_mega_whale
        self.fomo_threshold = Decimal(str(fomo if fomo_threshold is None else fomo_threshold))
        self.panic_threshold = Decimal(str(panic if panic_threshold is None else panic_threshold))
        self.bias = drawn_bias if bias is None else bias
        if self.bias not in (-1, 0, 1):
            raise ValueError(f"Bias must be -1, 0 or 1, got {self.bias}")

        self.base_trade_probability = base_trade_probability
        self.price_memory = deque([Decimal(initial_price)], maxlen=PRICE_MEMORY)
        self.last_trade_time = 0

    def _fraction(self, low: float, high: float) -> Decimal:
        return Decimal(str(self.rng.uniform(low, high)))

    def _chance(self, probability: float) -> bool:
        return self.rng.random() < probability

    def decide_action(self, current_price, current_time: int,
                      base_balance: Decimal, quote_balance: Decimal) -> tuple[TradeAction, Decimal]:
        """
        Returns the action and its size: a quote (USDZ) amount for BUY, a
        base (ZUX) amount for SELL, zero for HOLD.
        """
        current_price = Decimal(current_price)
        self.price_memory.append(current_price)

        if not self._chance(self.base_trade_probability):
            return TradeAction.HOLD, Decimal('0')

        previous_price = self.price_memory[-2] if len(self.price_memory) > 1 else current_price
        if previous_price > 0:
            price_change = (current_price - previous_price) / previous_price
        else:
            price_change = Decimal('0')

        if self.is_mega_whale and self._chance(0.8):
            if self.bias == 1 and quote_balance > 0:
                return TradeAction.BUY, quote_balance * self._fraction(0.95, 1.0)
            if self.bias == -1 and base_balance > 0:
                return TradeAction.SELL, base_balance * self._fraction(0.95, 1.0)

        if price_change > self.fomo_threshold:
            if self._chance(0.9) and quote_balance > 0:
                return TradeAction.BUY, quote_balance * self._fraction(0.9, 1.0)

        if price_change < -self.panic_threshold:
            if self._chance(0.9) and base_balance > 0:
                return TradeAction.SELL, base_balance * self._fraction(0.9, 1.0)

        if self.is_whale and self._chance(0.5):
            if self._chance(0.5) and quote_balance > 0:
                return TradeAction.BUY, quote_balance * self._fraction(0.9, 1.0)
            elif base_balance > 0:
                return TradeAction.SELL, base_balance * self._fraction(0.9, 1.0)

        if self._chance(0.5) and quote_balance > 0:
            return TradeAction.BUY, quote_balance * self._fraction(0.7, 1.0)
        elif base_balance > 0:
            return TradeAction.SELL, base_balance * self._fraction(0.7, 1.0)

        return TradeAction.HOLD, Decimal('0')

    def record_trade(self, timestamp: int):
        self.last_trade_time = timestamp

    def __repr__(self) -> str:
        return (
            f"TradingAgent(whale={self.is_whale}, mega_whale={self.is_mega_whale}, "
            f"bias={self.bias}, fomo={self.fomo_threshold:.4f}, panic={self.panic_threshold:.4f})"
        )
