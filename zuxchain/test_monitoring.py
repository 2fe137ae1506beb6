"""
Test the Prometheus monitor: counters, gauges from snapshots and the
metrics HTTP endpoint.
"""
import urllib.request
import pytest
from decimal import Decimal
from zuxchain.amm_state import AmmPool
from zuxchain.monitoring import Monitor
from zuxchain.node import main
from zuxchain.snapshot import SimulationSnapshot


@pytest.fixture
def monitor():
    return Monitor(host="127.0.0.1", port=0)


def test_record_counters(monitor):
    monitor.record_block("Genesis", 0.01)
    monitor.record_block("Token Swap", 0.02)
    monitor.record_block("Token Swap", 0.03)
    monitor.record_swap("ZUX_TO_USDZ")
    monitor.record_rejection("low_balance")

    registry = monitor.registry
    assert registry.get_sample_value('zux_blocks_total', {'block_type': 'Token Swap'}) == 2.0
    assert registry.get_sample_value('zux_block_mining_seconds_count') == 3.0
    assert registry.get_sample_value('zux_swaps_total', {'direction': 'ZUX_TO_USDZ'}) == 1.0
    assert registry.get_sample_value('zux_rejected_trades_total', {'reason': 'low_balance'}) == 1.0


def test_update_from_snapshot(monitor):
    pool = AmmPool(Decimal("1000"), Decimal("10"), clock=lambda: 0)
    snapshot = SimulationSnapshot(
        taken_at=0, chain_height=42, swap_count=7, blocks=(),
        pool=pool.snapshot(), wallets=(), system_wallet=None,
    )
    monitor.update(snapshot)

    registry = monitor.registry
    assert registry.get_sample_value('zux_chain_height') == 42.0
    assert registry.get_sample_value('amm_price_usdz_per_zux') == pytest.approx(0.01)
    assert registry.get_sample_value('amm_invariant_k') == pytest.approx(10000.0)
    assert registry.get_sample_value('amm_reserve', {'currency': 'ZUX'}) == 1000.0
    assert registry.get_sample_value('system_memory_percent') is not None


def test_metrics_endpoint(monitor):
    monitor.record_block("Genesis", 0.01)
    monitor.start_server()
    try:
        port = monitor.server.server_port
        with urllib.request.urlopen(f"http://127.0.0.1:{port}/metrics", timeout=5) as response:
            body = response.read().decode()
    finally:
        monitor.stop_server()

    assert 'zux_blocks_total{block_type="Genesis"} 1.0' in body
    assert monitor.server is None


def test_node_runs_small_simulation():
    assert main(["--wallets", "2", "--swaps", "5", "--seed", "1", "--log-level", "WARNING"]) == 0
