"""
Simulation orchestrator: builds the ledger, funds wallets and the pool,
then runs the agent trading loop one swap block at a time.
"""
import logging
import random
import threading
import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable, Optional

from .address import AddressGenerator
from .amm_state import AmmPool
from .chain import Chain
from .config import Config
from .core import (
    AMM_POOL_ADDRESS,
    SUPPORTED_CURRENCIES,
    SYSTEM_WALLET_ADDRESS,
    USDZ,
    ZUX,
    BalanceError,
    Block,
    Genesis,
    PoolCreation,
    PoolError,
    Swap,
    SwapDirection,
    TokenCredit,
    TradingStalled,
    TransactionFactory,
    ValidationError,
    WalletCreation,
    format_amount,
    to_amount,
)
from .snapshot import (
    BlockInfo,
    SimulationSnapshot,
    SystemWalletInfo,
    WalletSnapshot,
)
from .strategy import TradeAction, TradingAgent
from .tokenomics_state import TokenomicsState
from .wallet import Wallet

logger = logging.getLogger(__name__)

HOLD_TRADE_RANGE = (0.1, 0.3)


@dataclass(frozen=True)
class WalletPerformance:
    address: str
    performance_pct: Decimal
    initial_zux: Decimal
    final_zux: Decimal
    initial_usdz: Decimal
    final_usdz: Decimal


@dataclass(frozen=True)
class PerformanceReport:
    """Trading outcome per wallet, valued in USDZ at the final pool price."""
    final_price: Decimal
    total_wallets: int
    profitable_wallets: int
    participants: int
    avg_trades: Decimal
    max_trades: int
    min_trades: int
    traded: dict
    fees_collected: dict
    ranking: tuple = field(default_factory=tuple)

    @property
    def best(self) -> Optional[WalletPerformance]:
        return self.ranking[0] if self.ranking else None

    @property
    def worst(self) -> Optional[WalletPerformance]:
        return self.ranking[-1] if self.ranking else None

    @property
    def participation_rate(self) -> Decimal:
        if self.total_wallets == 0:
            return Decimal('0')
        return Decimal(self.participants) / self.total_wallets * 100

    def top(self, n: int = 5) -> tuple:
        return self.ranking[:n]

    def bottom(self, n: int = 5) -> tuple:
        return tuple(reversed(self.ranking[-n:])) if n > 0 else ()


class SimulationDriver:
    """Main simulation orchestrator."""

    def __init__(self, config: Config = None, monitor=None,
                 clock: Callable[[], float] = time.time,
                 sleep: Callable[[float], None] = time.sleep,
                 rng: Optional[random.Random] = None):
        self.config = config or Config.default()
        self.monitor = monitor
        self.clock = clock
        self.sleep = sleep

        seed = self.config.simulation.seed
        if rng is not None:
            self.rng = rng
        elif seed is not None:
            self.rng = random.Random(seed)
        else:
            self.rng = random.SystemRandom()

        self.lock = threading.RLock()
        self._stop_event = threading.Event()

        self.address_generator = AddressGenerator()
        self.address_generator.reserve_code(SYSTEM_WALLET_ADDRESS)
        self.address_generator.reserve_code(AMM_POOL_ADDRESS)

        chain_config = self.config.chain
        self.chain = Chain(
            network_name=chain_config.network_name,
            version=chain_config.version,
            inception_year=chain_config.inception_year,
            max_nonce=chain_config.max_nonce,
            difficulty_overrides=self.config.difficulty_overrides,
            clock=clock,
            monitor=monitor,
        )
        self.factory = TransactionFactory(clock=clock)
        self.tokenomics = TokenomicsState()

        self.system_wallet: Optional[Wallet] = None
        self.wallets = []
        self.pool: Optional[AmmPool] = None
        # Deposits held for the pool until both sides are funded
        self.pool_deposits = {currency: Decimal('0') for currency in SUPPORTED_CURRENCIES}

        self.swap_count = 0
        self.trade_counts = {}
        self.last_activity = {}
        self.initial_balances = {}

    # ==========================================================================
    # SETUP
    # ==========================================================================

    def setup(self):
        """Genesis, treasury, pool account, wallets, credits, pool funding and agents."""
        logger.info(f"Setting up simulation on {self.config.chain.network_name}")
        self.create_genesis()
        self.create_system_wallet()
        self.create_pool_account()
        self.create_wallets(self.config.simulation.wallet_count)
        self.credit_wallets()
        self.fund_pool()
        self.init_agents()
        self.check_conservation()
        logger.info(f"Setup complete at block {self.chain.height}")

    def _append(self, transactions, event) -> Block:
        block = self.chain.mine_and_append(transactions, event)
        if self.config.simulation.strict_conservation:
            self.check_conservation()
        return block

    def create_genesis(self) -> Block:
        block = self._append([], Genesis())
        logger.info(f"Genesis block created successfully! Block ID: {block.id}")
        return block

    def create_system_wallet(self) -> Wallet:
        sim = self.config.simulation
        wallet = Wallet.create(SYSTEM_WALLET_ADDRESS)
        wallet.set_balance(ZUX, self.tokenomics.issue(ZUX, sim.system_zux))
        wallet.set_balance(USDZ, self.tokenomics.issue(USDZ, sim.system_usdz))
        self.system_wallet = wallet

        block = self._append([], WalletCreation(wallet.address))
        logger.info(f"System Wallet created successfully! Block ID: {block.id}")
        logger.warning(
            f"System wallet {wallet.address} holds the entire issued supply "
            f"({format_amount(wallet.get_balance(ZUX))} ZUX, "
            f"{format_amount(wallet.get_balance(USDZ))} USDZ) and never trades"
        )
        return wallet

    def create_pool_account(self) -> Block:
        block = self._append([], PoolCreation(AMM_POOL_ADDRESS))
        logger.info(f"AMM Pool account {AMM_POOL_ADDRESS} created (will be funded later). Block ID: {block.id}")
        return block

    def create_wallets(self, count: int) -> list:
        logger.info(f"Creating {count} wallets...")
        created = []
        for _ in range(count):
            wallet = Wallet.create(self.address_generator.generate())
            with self.lock:
                self.wallets.append(wallet)
            self._append([], WalletCreation(wallet.address))
            created.append(wallet)
        logger.info(f"Created {count} wallets (chain height {self.chain.height})")
        return created

    def _transfer(self, sender: Wallet, recipient: str, amount, currency: str):
        """Sign and verify a transfer, then move the sender's funds."""
        tx = self.factory.create_transfer(sender, recipient, amount, currency)
        tx.verify()
        sender.subtract_balance(currency, tx.amount)
        return tx

    def credit_wallets(self):
        sim = self.config.simulation
        credits = ((ZUX, to_amount(sim.wallet_zux)), (USDZ, to_amount(sim.wallet_usdz)))
        logger.info(
            f"Crediting {len(self.wallets)} wallets with "
            f"{format_amount(credits[0][1])} ZUX and {format_amount(credits[1][1])} USDZ each"
        )

        for i, wallet in enumerate(self.wallets):
            for currency, amount in credits:
                tx = self._transfer(self.system_wallet, wallet.address, amount, currency)
                wallet.add_balance(currency, tx.amount)
                self._append([tx], TokenCredit(wallet.address, currency, tx.amount))

            if (i + 1) % 100 == 0:
                logger.info(f"Processed credits for {i + 1} wallets so far...")

        logger.info(
            f"System Wallet remaining balance: "
            f"{format_amount(self.system_wallet.get_balance(ZUX))} ZUX, "
            f"{format_amount(self.system_wallet.get_balance(USDZ))} USDZ"
        )

    def fund_pool(self) -> AmmPool:
        """
        Seed the pool with a fraction of the treasury's remaining ZUX and
        the USDZ needed to open at the target price.
        """
        pool_config = self.config.pool
        zux_amount = to_amount(self.system_wallet.get_balance(ZUX) * Decimal(pool_config.liquidity_fraction))
        usdz_amount = to_amount(zux_amount * Decimal(pool_config.target_price))
        if zux_amount <= 0 or usdz_amount <= 0:
            raise ValidationError("Pool funding amounts must be greater than zero")

        for currency, amount in ((ZUX, zux_amount), (USDZ, usdz_amount)):
            tx = self._transfer(self.system_wallet, AMM_POOL_ADDRESS, amount, currency)
            self.pool_deposits[currency] += tx.amount
            self._append([tx], TokenCredit(AMM_POOL_ADDRESS, currency, tx.amount))

        with self.lock:
            self.pool = AmmPool(
                self.pool_deposits[ZUX],
                self.pool_deposits[USDZ],
                fee_rate=Decimal(pool_config.fee_rate),
                history_limit=pool_config.price_history_limit,
                window_seconds=pool_config.window_seconds,
                clock=self.clock,
            )
            self.pool_deposits = {currency: Decimal('0') for currency in SUPPORTED_CURRENCIES}

        logger.info(f"AMM Pool funded: {format_amount(zux_amount)} ZUX, {format_amount(usdz_amount)} USDZ")
        return self.pool

    def _agent_rng(self) -> random.Random:
        if isinstance(self.rng, random.SystemRandom):
            return random.SystemRandom()
        return random.Random(self.rng.getrandbits(64))

    def init_agents(self):
        """Attach a trading agent to every wallet and record starting balances."""
        price = self.pool.price
        with self.lock:
            for wallet in self.wallets:
                wallet.agent = TradingAgent(price, rng=self._agent_rng())
                self.initial_balances[wallet.address] = (
                    wallet.get_balance(ZUX), wallet.get_balance(USDZ)
                )

        whales = sum(1 for w in self.wallets if w.agent.is_whale)
        mega_whales = sum(1 for w in self.wallets if w.agent.is_mega_whale)
        logger.info(f"Trading agents ready: {whales} whales, {mega_whales} mega whales")

    # ==========================================================================
    # TRADING
    # ==========================================================================

    def _plan_trade(self, wallet: Wallet, now: int):
        """Returns (direction, input amount) or None when the wallet should be skipped."""
        min_trade = to_amount(self.config.simulation.min_trade)
        zux_balance = wallet.get_balance(ZUX)
        usdz_balance = wallet.get_balance(USDZ)

        action, size = wallet.agent.decide_action(self.pool.price, now, zux_balance, usdz_balance)

        if action is TradeAction.BUY:
            direction, balance = SwapDirection.B_TO_A, usdz_balance
        elif action is TradeAction.SELL:
            direction, balance = SwapDirection.A_TO_B, zux_balance
        elif self.config.simulation.trade_on_hold:
            # Holding agents still probe the market with a small trade
            if self.rng.random() < 0.5:
                direction, balance = SwapDirection.A_TO_B, zux_balance
            else:
                direction, balance = SwapDirection.B_TO_A, usdz_balance
            size = balance * Decimal(str(self.rng.uniform(*HOLD_TRADE_RANGE)))
        else:
            self._record_rejection("hold")
            return None

        if balance < min_trade:
            self._record_rejection("low_balance")
            return None

        amount = to_amount(min(size, balance))
        if amount < min_trade:
            self._record_rejection("below_minimum")
            return None
        return direction, amount

    def _record_rejection(self, reason: str):
        if self.monitor:
            self.monitor.record_rejection(reason)

    def step(self) -> Block:
        """
        One tick: select a wallet, let its agent decide, execute the swap and
        mine its block. Wallets that cannot trade are skipped and another is
        selected, up to `max_selection_attempts` times.
        """
        attempts = self.config.simulation.max_selection_attempts
        with self.lock:
            if self.pool is None or not self.wallets:
                raise ValidationError("Simulation is not set up for trading")

            for _ in range(attempts):
                index = self.rng.randrange(len(self.wallets))
                wallet = self.wallets[index]
                now = int(self.clock())

                trade = self._plan_trade(wallet, now)
                if trade is None:
                    continue
                direction, amount = trade

                try:
                    tx = self.factory.create_swap(wallet, direction, amount)
                    tx.verify()
                    output = self.pool.swap(tx.amount, direction)
                except (BalanceError, PoolError, ValidationError) as e:
                    logger.debug(f"Wallet {wallet.address} could not trade: {e}")
                    self._record_rejection(type(e).__name__)
                    continue

                wallet.subtract_balance(direction.input_currency, tx.amount)
                wallet.add_balance(direction.output_currency, output)

                block = self._append([tx], Swap(wallet.address, direction, tx.amount, output))

                self.swap_count += 1
                self.trade_counts[wallet.address] = self.trade_counts.get(wallet.address, 0) + 1
                self.last_activity[wallet.address] = now
                self.tokenomics.record_swap(direction, tx.amount, output)
                wallet.agent.record_trade(now)
                if self.monitor:
                    self.monitor.record_swap(direction.value)
                return block

        raise TradingStalled(f"No wallet could trade after {attempts} attempts")

    def run_trading(self, swap_count: Optional[int] = None) -> int:
        """Run the trading loop; returns the number of swaps executed."""
        sim = self.config.simulation
        total = sim.swap_count if swap_count is None else swap_count
        logger.info(f"Starting trading simulation: {total} swaps across {len(self.wallets)} wallets")

        executed = 0
        while executed < total:
            if self._stop_event.is_set():
                logger.info(f"Stop requested after {executed} swaps")
                break

            self.step()
            executed += 1

            if sim.progress_interval and executed % sim.progress_interval == 0:
                logger.info(
                    f"Processed {executed} swaps ({executed / total * 100:.1f}% complete). "
                    f"Current ZUX price: {self.pool.price:.6f} USDZ"
                )
                if self.monitor:
                    self.monitor.update(self.snapshot(recent_blocks=0))

            if sim.tick_delay:
                self.sleep(sim.tick_delay)

        self.check_conservation()
        logger.info(f"Trading complete: {executed} swaps, chain height {self.chain.height}")
        return executed

    def stop(self):
        """Ask the trading loop to stop after the current tick."""
        self._stop_event.set()

    # ==========================================================================
    # STATE
    # ==========================================================================

    def holdings(self) -> dict:
        """Total held per currency across the treasury, wallets and the pool."""
        with self.lock:
            totals = {currency: Decimal('0') for currency in SUPPORTED_CURRENCIES}
            holders = list(self.wallets)
            if self.system_wallet:
                holders.append(self.system_wallet)
            for wallet in holders:
                for currency in SUPPORTED_CURRENCIES:
                    totals[currency] += wallet.get_balance(currency)

            if self.pool:
                totals[ZUX] += self.pool.reserve_a
                totals[USDZ] += self.pool.reserve_b
            else:
                for currency in SUPPORTED_CURRENCIES:
                    totals[currency] += self.pool_deposits[currency]
            return totals

    def check_conservation(self):
        self.tokenomics.check_conservation(self.holdings())

    def current_price(self) -> Decimal:
        return self.pool.price if self.pool else Decimal('0')

    def snapshot(self, recent_blocks: Optional[int] = None) -> SimulationSnapshot:
        """
        Capture a read-only view. `recent_blocks` limits how many of the
        latest blocks are included (None for all).
        """
        with self.lock:
            height = self.chain.height
            if recent_blocks is None:
                blocks = self.chain.blocks()
            elif recent_blocks > 0:
                blocks = self.chain.blocks(start=height - recent_blocks + 1)
            else:
                blocks = []

            price = self.current_price()
            wallets = []
            for wallet in self.wallets:
                zux = wallet.get_balance(ZUX)
                usdz = wallet.get_balance(USDZ)
                wallets.append(WalletSnapshot(
                    address=wallet.address,
                    zux_balance=zux,
                    usdz_balance=usdz,
                    total_value=to_amount(usdz + zux * price),
                    trade_count=self.trade_counts.get(wallet.address, 0),
                    is_whale=bool(wallet.agent and wallet.agent.is_whale),
                    is_mega_whale=bool(wallet.agent and wallet.agent.is_mega_whale),
                    last_activity=self.last_activity.get(wallet.address, 0),
                ))
            wallets.sort(key=lambda w: w.total_value, reverse=True)

            system_info = None
            if self.system_wallet:
                system_info = SystemWalletInfo(
                    address=self.system_wallet.address,
                    zux_balance=self.system_wallet.get_balance(ZUX),
                    usdz_balance=self.system_wallet.get_balance(USDZ),
                    total_issued_zux=self.tokenomics.total_issued(ZUX),
                    total_issued_usdz=self.tokenomics.total_issued(USDZ),
                    active_wallets=len(self.wallets),
                    total_transactions=height,
                )

            return SimulationSnapshot(
                taken_at=int(self.clock()),
                chain_height=height,
                swap_count=self.swap_count,
                blocks=tuple(BlockInfo.from_block(b) for b in blocks),
                pool=self.pool.snapshot() if self.pool else None,
                wallets=tuple(wallets),
                system_wallet=system_info,
            )

    # ==========================================================================
    # REPORTING
    # ==========================================================================

    def performance_report(self) -> PerformanceReport:
        with self.lock:
            price = self.current_price()
            ranking = []
            for wallet in self.wallets:
                if wallet.address not in self.initial_balances:
                    continue
                initial_zux, initial_usdz = self.initial_balances[wallet.address]
                final_zux = wallet.get_balance(ZUX)
                final_usdz = wallet.get_balance(USDZ)

                initial_value = initial_zux * price + initial_usdz
                final_value = final_zux * price + final_usdz
                if initial_value > 0:
                    pct = (final_value / initial_value - 1) * 100
                else:
                    pct = Decimal('0')

                ranking.append(WalletPerformance(
                    address=wallet.address,
                    performance_pct=pct,
                    initial_zux=initial_zux,
                    final_zux=final_zux,
                    initial_usdz=initial_usdz,
                    final_usdz=final_usdz,
                ))
            ranking.sort(key=lambda p: p.performance_pct, reverse=True)

            counts = list(self.trade_counts.values())
            participants = len(counts)
            return PerformanceReport(
                final_price=price,
                total_wallets=len(ranking),
                profitable_wallets=sum(1 for p in ranking if p.performance_pct > 0),
                participants=participants,
                avg_trades=Decimal(self.swap_count) / participants if participants else Decimal('0'),
                max_trades=max(counts, default=0),
                min_trades=min(counts, default=0),
                traded=dict(self.tokenomics.traded),
                fees_collected=self.pool.snapshot().fees_collected if self.pool else {},
                ranking=tuple(ranking),
            )

    def log_summary(self):
        """Log the final pool state and the trading performance report."""
        report = self.performance_report()
        if self.pool:
            pool = self.pool.snapshot()
            logger.info("Final AMM Pool Status:")
            logger.info(f"  - ZUX Reserve: {pool.reserve_a:.2f}")
            logger.info(f"  - USDZ Reserve: {pool.reserve_b:.2f}")
            logger.info(f"  - ZUX Price: {pool.price:.6f} USDZ per ZUX")
            logger.info(f"  - Swaps: {pool.swap_count}, volume {pool.volume_total:.2f} USDZ")

        holdings = self.holdings()
        logger.info(f"Total ZUX in circulation: {holdings[ZUX]:.2f} (issued {self.tokenomics.total_issued(ZUX):.2f})")

        if report.total_wallets == 0:
            return

        logger.info("Wallet Trading Performance:")
        logger.info(
            f"  - Profitable wallets: {report.profitable_wallets} out of {report.total_wallets} "
            f"({report.profitable_wallets / report.total_wallets * 100:.1f}%)"
        )
        logger.info(f"  - Best performing wallet: {report.best.address} with {report.best.performance_pct:.2f}% gain")
        logger.info(f"  - Worst performing wallet: {report.worst.address} with {report.worst.performance_pct:.2f}% change")

        logger.info("Wallet Participation Statistics:")
        logger.info(
            f"  - Wallets that participated in trading: {report.participants} out of "
            f"{report.total_wallets} ({report.participation_rate:.1f}%)"
        )
        logger.info(f"  - Average trades per wallet: {report.avg_trades:.1f}")
        logger.info(f"  - Maximum trades by a single wallet: {report.max_trades}")
        logger.info(f"  - Minimum trades by a participating wallet: {report.min_trades}")
        logger.info(f"  - Total ZUX traded: {report.traded[ZUX]:.2f}")
        logger.info(f"  - Total USDZ traded: {report.traded[USDZ]:.2f}")
        for currency, fees in report.fees_collected.items():
            logger.info(f"  - Fees collected in {currency}: {fees:.6f}")

        logger.info("Top 5 Performing Wallets:")
        for i, perf in enumerate(report.top(5), start=1):
            self._log_performance(f"#{i}", perf)

        logger.info("Bottom 5 Performing Wallets:")
        for i, perf in enumerate(report.bottom(5)):
            self._log_performance(f"#{report.total_wallets - i}", perf)

    @staticmethod
    def _log_performance(rank: str, perf: WalletPerformance):
        logger.info(f"  {rank} Wallet {perf.address} (Performance: {perf.performance_pct:+.2f}%):")
        logger.info(
            f"    - ZUX: {perf.initial_zux:.2f} → {perf.final_zux:.2f} "
            f"({perf.final_zux - perf.initial_zux:+.2f})"
        )
        logger.info(
            f"    - USDZ: {perf.initial_usdz:.2f} → {perf.final_usdz:.2f} "
            f"({perf.final_usdz - perf.initial_usdz:+.2f})"
        )
