"""ZUX ledger simulation: signed transfers, proof-of-work blocks and an AMM."""
