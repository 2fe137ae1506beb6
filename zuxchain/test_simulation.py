"""
Test Suite 7: End-to-End Simulation

Runs the full setup sequence and a short trading session on a small wallet
population, checking conservation, chain validity and the reports.
"""
import logging
import pytest
from decimal import Decimal
from zuxchain.config import Config
from zuxchain.core import (
    AMM_POOL_ADDRESS,
    SYSTEM_WALLET_ADDRESS,
    TradingStalled,
    ValidationError,
)
from zuxchain.monitoring import Monitor
from zuxchain.simulation import SimulationDriver
from zuxchain.snapshot import SimulationSnapshot

WALLETS = 4


def small_config(**overrides) -> Config:
    config = Config.default()
    config.simulation.wallet_count = WALLETS
    config.simulation.swap_count = 30
    config.simulation.tick_delay = 0
    config.simulation.progress_interval = 10
    config.simulation.strict_conservation = True
    config.simulation.seed = 7
    for key, value in overrides.items():
        setattr(config.simulation, key, value)
    return config


@pytest.fixture
def driver():
    sim = SimulationDriver(small_config())
    sim.setup()
    return sim


@pytest.fixture
def traded(driver):
    driver.run_trading()
    return driver


class TestSetup:
    def test_block_sequence(self, driver):
        types = [b.block_type for b in driver.chain.blocks()]

        assert types[:3] == ["Genesis", "Wallet Creation", "AMM Pool Creation"]
        assert types[3:3 + WALLETS] == ["Wallet Creation"] * WALLETS
        assert types[3 + WALLETS:] == ["Token Credit"] * (2 * WALLETS + 2)
        assert driver.chain.height == 3 + WALLETS + 2 * WALLETS + 2

    def test_chain_is_valid(self, driver):
        assert driver.chain.validate_chain()

    def test_wallets_are_credited(self, driver):
        for wallet in driver.wallets:
            assert wallet.get_balance("ZUX") == Decimal("100")
            assert wallet.get_balance("USDZ") == Decimal("500")
            assert wallet.agent is not None

    def test_addresses_are_unique(self, driver):
        addresses = [w.address for w in driver.wallets]
        assert len(set(addresses)) == WALLETS
        assert SYSTEM_WALLET_ADDRESS not in addresses
        assert all(len(a) == 7 for a in addresses)

    def test_pool_funded_at_target_price(self, driver):
        remaining_zux = Decimal("1000000000") - 100 * WALLETS
        expected_zux = remaining_zux * Decimal("0.0001")

        assert driver.pool.reserve_a == expected_zux
        assert driver.pool.reserve_b == expected_zux * Decimal("0.01")
        assert driver.pool.price == Decimal("0.01")

    def test_funding_blocks_credit_the_pool(self, driver):
        funding = driver.chain.blocks()[-2:]
        assert [b.event.address for b in funding] == [AMM_POOL_ADDRESS, AMM_POOL_ADDRESS]
        assert [b.event.currency for b in funding] == ["ZUX", "USDZ"]
        assert all(b.transactions[0].recipient == AMM_POOL_ADDRESS for b in funding)

    def test_credit_blocks_carry_signed_transfers(self, driver):
        credit = driver.chain.get_block_by_height(3 + WALLETS + 1)
        tx = credit.transactions[0]

        assert tx.sender == SYSTEM_WALLET_ADDRESS
        assert tx.recipient == credit.event.address
        assert tx.amount == credit.event.amount
        tx.verify()

    def test_conservation_after_setup(self, driver):
        holdings = driver.holdings()
        assert holdings["ZUX"] == Decimal("1000000000")
        assert holdings["USDZ"] == Decimal("5000000000")

    def test_trading_requires_setup(self):
        sim = SimulationDriver(small_config())
        with pytest.raises(ValidationError):
            sim.step()


class TestTrading:
    def test_every_swap_mines_one_block(self, traded):
        swaps = traded.chain.blocks(start=3 + 3 * WALLETS + 3)

        assert traded.swap_count == 30
        assert len(swaps) == 30
        assert all(b.block_type == "Token Swap" for b in swaps)
        assert all(b.transactions[0].recipient == AMM_POOL_ADDRESS for b in swaps)
        assert traded.pool.swap_count == 30

    def test_swap_blocks_match_events(self, traded):
        for block in traded.chain.blocks(start=traded.chain.height - 5):
            tx = block.transactions[0]
            assert tx.sender == block.event.address
            assert tx.amount == block.event.input_amount
            assert tx.currency == block.event.direction.input_currency

    def test_chain_stays_valid(self, traded):
        assert traded.chain.validate_chain()

    def test_conservation_after_trading(self, traded):
        traded.check_conservation()
        holdings = traded.holdings()
        assert holdings["ZUX"] == traded.tokenomics.total_issued("ZUX")
        assert holdings["USDZ"] == traded.tokenomics.total_issued("USDZ")

    def test_balances_never_negative(self, traded):
        for wallet in traded.wallets:
            assert wallet.get_balance("ZUX") >= 0
            assert wallet.get_balance("USDZ") >= 0

    def test_trade_statistics(self, traded):
        assert sum(traded.trade_counts.values()) == 30
        assert traded.tokenomics.traded["ZUX"] > 0
        assert traded.tokenomics.traded["USDZ"] > 0
        for address in traded.trade_counts:
            assert traded.last_activity[address] > 0

    def test_stop_request(self, driver):
        driver.stop()
        assert driver.run_trading(10) == 0
        assert driver.swap_count == 0

    def test_stalls_when_no_wallet_can_trade(self):
        sim = SimulationDriver(small_config(max_selection_attempts=5, strict_conservation=False))
        sim.setup()
        for wallet in sim.wallets:
            wallet.set_balance("ZUX", 0)
            wallet.set_balance("USDZ", 0)

        with pytest.raises(TradingStalled):
            sim.step()

    def test_holding_agents_skip_without_probe_trades(self):
        sim = SimulationDriver(small_config(trade_on_hold=False))
        sim.setup()
        for wallet in sim.wallets:
            wallet.agent.base_trade_probability = 0.0

        with pytest.raises(TradingStalled):
            sim.step()


class TestSnapshots:
    def test_snapshot_contents(self, traded):
        snapshot = traded.snapshot()

        assert snapshot.chain_height == traded.chain.height
        assert len(snapshot.blocks) == traded.chain.height
        assert snapshot.swap_count == 30
        assert snapshot.pool.swap_count == 30
        assert len(snapshot.wallets) == WALLETS
        assert snapshot.system_wallet.address == SYSTEM_WALLET_ADDRESS
        assert snapshot.system_wallet.total_issued_zux == Decimal("1000000000")

        values = [w.total_value for w in snapshot.wallets]
        assert values == sorted(values, reverse=True)

    def test_recent_blocks_limit(self, traded):
        snapshot = traded.snapshot(recent_blocks=5)
        assert [b.id for b in snapshot.blocks] == list(range(traded.chain.height - 4, traded.chain.height + 1))
        assert traded.snapshot(recent_blocks=0).blocks == ()

    def test_pack_round_trip(self, traded):
        snapshot = traded.snapshot(recent_blocks=3)
        restored = SimulationSnapshot.unpack(snapshot.pack())

        assert restored == snapshot

    def test_snapshot_before_pool(self):
        sim = SimulationDriver(small_config())
        sim.create_genesis()
        snapshot = sim.snapshot()

        assert snapshot.pool is None
        assert snapshot.system_wallet is None
        assert SimulationSnapshot.unpack(snapshot.pack()) == snapshot


class TestReporting:
    def test_performance_report(self, traded):
        report = traded.performance_report()

        assert report.total_wallets == WALLETS
        assert 0 <= report.profitable_wallets <= WALLETS
        assert 1 <= report.participants <= WALLETS
        assert report.max_trades >= report.min_trades >= 1
        assert report.best.performance_pct >= report.worst.performance_pct
        assert len(report.top(5)) == WALLETS
        assert report.bottom(1)[0] == report.worst
        assert report.final_price == traded.pool.price
        assert set(report.fees_collected) == {"ZUX", "USDZ"}

    def test_log_summary(self, traded, caplog):
        with caplog.at_level(logging.INFO, logger="zuxchain.simulation"):
            traded.log_summary()

        assert "Wallet Trading Performance:" in caplog.text
        assert "Top 5 Performing Wallets:" in caplog.text


class TestMonitoringIntegration:
    def test_metrics_follow_simulation(self):
        monitor = Monitor()
        sim = SimulationDriver(small_config(), monitor=monitor)
        sim.setup()
        sim.run_trading(20)

        registry = monitor.registry
        assert registry.get_sample_value('zux_blocks_total', {'block_type': 'Genesis'}) == 1.0
        assert registry.get_sample_value('zux_blocks_total', {'block_type': 'Token Swap'}) == 20.0
        assert registry.get_sample_value('zux_chain_height') == sim.chain.height
        swaps = sum(
            registry.get_sample_value('zux_swaps_total', {'direction': d}) or 0.0
            for d in ('ZUX_TO_USDZ', 'USDZ_TO_ZUX')
        )
        assert swaps == 20.0
