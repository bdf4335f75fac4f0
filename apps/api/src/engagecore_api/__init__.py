"""EngageCore loyalty API: transaction sync, points ledger and tiers."""
