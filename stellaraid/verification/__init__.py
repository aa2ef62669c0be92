"""Error types for on-chain verification of Stellar transactions."""

__all__ = ["errors"]