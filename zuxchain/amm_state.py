"""
AMM (Automated Market Maker) liquidity pool state.
Implements constant product formula: x * y = k
"""
import logging
import threading
import time
from collections import deque
from decimal import Decimal, ROUND_DOWN, localcontext
from typing import Callable

from .core import (
    AMOUNT_QUANTUM,
    PoolError,
    SwapDirection,
    ValidationError,
    format_amount,
    to_amount,
)
from .snapshot import PoolSnapshot, PricePoint

logger = logging.getLogger(__name__)

# Working precision for swap arithmetic; results are truncated to AMOUNT_QUANTUM
SWAP_PRECISION = 50


class AmmPool:
    """
    Constant-product pool between ZUX (side A) and USDZ (side B).

    Price is USDZ per ZUX: reserve_b / reserve_a. The fee is taken from the
    input before pricing and stays in the pool, so k grows slowly with every
    swap.
    """

    DEFAULT_FEE_RATE = Decimal('0.003')  # 30 basis points
    PRICE_HISTORY_LIMIT = 1000
    WINDOW_SECONDS = 5

    def __init__(self, reserve_a, reserve_b, fee_rate=DEFAULT_FEE_RATE,
                 history_limit: int = PRICE_HISTORY_LIMIT,
                 window_seconds: int = WINDOW_SECONDS,
                 clock: Callable[[], float] = time.time):
        reserve_a = to_amount(reserve_a)
        reserve_b = to_amount(reserve_b)
        if reserve_a <= 0 or reserve_b <= 0:
            raise ValidationError("Pool reserves must be greater than zero")

        fee_rate = Decimal(str(fee_rate))
        if fee_rate < 0 or fee_rate >= 1:
            raise ValidationError(f"Fee rate must be in [0, 1): {fee_rate}")

        self.lock = threading.RLock()
        self.clock = clock
        self.fee_rate = fee_rate
        self.window_seconds = window_seconds

        self._reserve_a = reserve_a
        self._reserve_b = reserve_b
        with localcontext() as ctx:
            ctx.prec = SWAP_PRECISION
            self._k = reserve_a * reserve_b

        now = int(self.clock())
        price = self._price()
        self._price_history = deque([PricePoint(now, price)], maxlen=history_limit)

        self._swap_count = 0
        self._fees_collected = {d.input_currency: Decimal('0') for d in SwapDirection}

        self._volume_total = Decimal('0')
        self._volume_window = Decimal('0')
        self._volume_reset_at = now

        self._window_open = price
        self._window_high = price
        self._window_low = price
        self._price_reset_at = now

        self._inception_open = price
        self._inception_high = price
        self._inception_low = price

        logger.info(
            f"AMM pool created: {format_amount(reserve_a)} ZUX / "
            f"{format_amount(reserve_b)} USDZ (price {price:.9f})"
        )

    def _price(self) -> Decimal:
        with localcontext() as ctx:
            ctx.prec = SWAP_PRECISION
            return self._reserve_b / self._reserve_a

    def _reserves_for(self, direction: SwapDirection):
        if direction is SwapDirection.A_TO_B:
            return self._reserve_a, self._reserve_b
        return self._reserve_b, self._reserve_a

    @property
    def reserve_a(self) -> Decimal:
        with self.lock:
            return self._reserve_a

    @property
    def reserve_b(self) -> Decimal:
        with self.lock:
            return self._reserve_b

    @property
    def k(self) -> Decimal:
        with self.lock:
            return self._k

    @property
    def price(self) -> Decimal:
        with self.lock:
            return self._price()

    @property
    def swap_count(self) -> int:
        with self.lock:
            return self._swap_count

    def quote(self, input_amount, direction: SwapDirection) -> Decimal:
        """
        Output for `input_amount` without touching the pool.

        Formula: (x + dx * (1 - fee)) * (y - dy) = x * y
        Solving for dy: dy = y * dx * (1 - fee) / (x + dx * (1 - fee))
        """
        input_amount = to_amount(input_amount)
        if input_amount <= 0:
            raise ValidationError("Swap amount must be greater than zero")

        with self.lock:
            in_reserve, out_reserve = self._reserves_for(direction)
            with localcontext() as ctx:
                ctx.prec = SWAP_PRECISION
                effective = input_amount * (1 - self.fee_rate)
                output = (effective * out_reserve) / (in_reserve + effective)
            output = output.quantize(AMOUNT_QUANTUM, rounding=ROUND_DOWN)

        if output < AMOUNT_QUANTUM:
            raise PoolError("Swap would result in too small output")
        if output >= out_reserve:
            raise PoolError("Swap would drain the pool")
        return output

    def swap(self, input_amount, direction: SwapDirection) -> Decimal:
        """Execute a swap against the pool and return the output amount."""
        input_amount = to_amount(input_amount)

        with self.lock:
            output = self.quote(input_amount, direction)
            pre_price = self._price()

            with localcontext() as ctx:
                ctx.prec = SWAP_PRECISION
                if direction is SwapDirection.A_TO_B:
                    self._reserve_a += input_amount
                    self._reserve_b -= output
                    input_value, output_value = input_amount * pre_price, output
                else:
                    self._reserve_b += input_amount
                    self._reserve_a -= output
                    input_value, output_value = input_amount, output * pre_price

                self._k = self._reserve_a * self._reserve_b
                self._swap_count += 1
                self._fees_collected[direction.input_currency] += input_amount * self.fee_rate

                now = int(self.clock())
                new_price = self._price()
                self._price_history.append(PricePoint(now, new_price))
                self._record_volume((input_value + output_value) / 2, new_price, now)

        logger.debug(
            f"Swap {direction.arrow}: {format_amount(input_amount)} -> "
            f"{format_amount(output)} (price {new_price:.9f})"
        )
        return output

    def _record_volume(self, volume: Decimal, price: Decimal, now: int):
        self._volume_total += volume

        if now >= self._volume_reset_at + self.window_seconds:
            self._volume_window = Decimal('0')
            self._volume_reset_at = now
        self._volume_window += volume

        if now >= self._price_reset_at + self.window_seconds:
            self._window_open = price
            self._window_high = price
            self._window_low = price
            self._price_reset_at = now
        else:
            self._window_high = max(self._window_high, price)
            self._window_low = min(self._window_low, price)

        self._inception_high = max(self._inception_high, price)
        self._inception_low = min(self._inception_low, price)

    def recent_price_history(self, count: int) -> list:
        """The last `count` price points, oldest first."""
        with self.lock:
            if count <= 0:
                return []
            return list(self._price_history)[-count:]

    def snapshot(self) -> PoolSnapshot:
        with self.lock:
            return PoolSnapshot(
                reserve_a=self._reserve_a,
                reserve_b=self._reserve_b,
                k=self._k,
                price=self._price(),
                fee_rate=self.fee_rate,
                swap_count=self._swap_count,
                fees_collected=dict(self._fees_collected),
                volume_total=self._volume_total,
                volume_window=self._volume_window,
                window_open=self._window_open,
                window_high=self._window_high,
                window_low=self._window_low,
                inception_open=self._inception_open,
                inception_high=self._inception_high,
                inception_low=self._inception_low,
                price_history=tuple(self._price_history),
            )

    def __repr__(self) -> str:
        return (
            f"AmmPool("
            f"reserve_a={format_amount(self.reserve_a)}, "
            f"reserve_b={format_amount(self.reserve_b)}, "
            f"price={self.price:.9f})"
        )
