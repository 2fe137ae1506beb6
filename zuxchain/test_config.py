"""
Test configuration defaults, JSON persistence and CLI overrides.
"""
import json
import unittest
import tempfile
import os
from zuxchain.config import Config
from zuxchain.node import build_parser, load_config


class TestConfig(unittest.TestCase):
    def test_defaults(self):
        config = Config.default()
        self.assertEqual(config.chain.network_name, "ZUX-Testnet")
        self.assertEqual(config.chain.genesis_difficulty, 1)
        self.assertEqual(config.chain.block_difficulty, 2)
        self.assertEqual(config.pool.fee_rate, "0.003")
        self.assertEqual(config.pool.window_seconds, 5)
        self.assertEqual(config.simulation.wallet_count, 1000)
        self.assertEqual(config.simulation.swap_count, 10000)
        self.assertIsNone(config.simulation.seed)
        self.assertFalse(config.monitoring.enabled)

    def test_difficulty_overrides(self):
        config = Config.default()
        config.chain.block_difficulty = 3
        overrides = config.difficulty_overrides

        self.assertEqual(overrides["Genesis"], 1)
        self.assertEqual(overrides["Token Swap"], 3)
        self.assertEqual(len(overrides), 5)

    def test_file_round_trip(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            path = os.path.join(temp_dir, "nested", "config.json")
            config = Config.default()
            config.simulation.wallet_count = 12
            config.pool.target_price = "0.02"
            config.to_file(path)

            loaded = Config.from_file(path)
            self.assertEqual(loaded.to_dict(), config.to_dict())

    def test_partial_file_uses_defaults(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            path = os.path.join(temp_dir, "config.json")
            with open(path, 'w') as f:
                json.dump({"simulation": {"swap_count": 5}}, f)

            loaded = Config.from_file(path)
            self.assertEqual(loaded.simulation.swap_count, 5)
            self.assertEqual(loaded.simulation.wallet_count, 1000)
            self.assertEqual(loaded.chain.version, "1.0.0.0.0")

    def test_cli_overrides(self):
        args = build_parser().parse_args([
            "--wallets", "3", "--swaps", "7", "--seed", "9",
            "--metrics", "--metrics-port", "9191",
        ])
        config = load_config(args)

        self.assertEqual(config.simulation.wallet_count, 3)
        self.assertEqual(config.simulation.swap_count, 7)
        self.assertEqual(config.simulation.seed, 9)
        self.assertTrue(config.monitoring.enabled)
        self.assertEqual(config.monitoring.port, 9191)

    def test_missing_config_file_falls_back(self):
        args = build_parser().parse_args(["--config", "/nonexistent/zux.json"])
        config = load_config(args)
        self.assertEqual(config.to_dict(), Config.default().to_dict())


if __name__ == '__main__':
    unittest.main()
