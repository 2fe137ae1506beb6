"""
Main entry point for running the ledger simulation.
"""
import argparse
import logging
import signal
import sys
from pathlib import Path

from zuxchain.config import Config
from zuxchain.core import LedgerError
from zuxchain.monitoring import Monitor
from zuxchain.simulation import SimulationDriver

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Run the ZUX ledger simulation')
    parser.add_argument('--config', type=str, help='Path to config file')
    parser.add_argument('--wallets', type=int, help='Number of trading wallets')
    parser.add_argument('--swaps', type=int, help='Number of swaps to simulate')
    parser.add_argument('--seed', type=int, help='Seed for reproducible agent behaviour')
    parser.add_argument('--metrics', action='store_true',
                       help='Expose Prometheus metrics')
    parser.add_argument('--metrics-port', type=int, help='Metrics port')
    parser.add_argument('--log-level', type=str, default='INFO',
                       choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                       help='Logging level')
    return parser


def load_config(args) -> Config:
    """Load or create config, then apply CLI overrides."""
    if args.config and Path(args.config).exists():
        config = Config.from_file(args.config)
    else:
        if args.config:
            logger.warning(f"Config file {args.config} not found, using defaults")
        config = Config.default()

    if args.wallets is not None:
        config.simulation.wallet_count = args.wallets
    if args.swaps is not None:
        config.simulation.swap_count = args.swaps
    if args.seed is not None:
        config.simulation.seed = args.seed
    if args.metrics:
        config.monitoring.enabled = True
    if args.metrics_port:
        config.monitoring.port = args.metrics_port
    return config


def main(argv=None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    config = load_config(args)

    monitor = None
    if config.monitoring.enabled:
        logger.info(f"Initializing Monitor with host={config.monitoring.host}, port={config.monitoring.port}")
        monitor = Monitor(host=config.monitoring.host, port=config.monitoring.port)
        monitor.start_server()

    driver = SimulationDriver(config, monitor=monitor)

    def signal_handler(signum, frame):
        logger.info("Received shutdown signal, stopping after the current swap")
        driver.stop()

    previous_handler = signal.signal(signal.SIGINT, signal_handler)

    try:
        driver.setup()
        driver.run_trading()
        driver.log_summary()
        if monitor:
            monitor.update(driver.snapshot(recent_blocks=0))
    except LedgerError as e:
        logger.error(f"Simulation aborted: {e}")
        return 1
    finally:
        signal.signal(signal.SIGINT, previous_handler)
        if monitor:
            monitor.stop_server()

    logger.info("Blockchain simulation completed successfully!")
    return 0


if __name__ == '__main__':
    sys.exit(main())
